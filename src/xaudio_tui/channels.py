"""Bounded one-directional channels between the UI and the coordinator."""
from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from .logging_utils import get_logger
from .messages import Command, Message

log = get_logger(__name__)

T = TypeVar("T")


class CommandMailbox:
    """Lossy UI-to-coordinator mailbox.

    ``offer`` never waits: while the coordinator has not yet picked up the
    previous command a new one is dropped, so the render loop is never stalled
    by slow network work. Callers must treat every command as best-effort.
    """

    def __init__(self, capacity: int = 1) -> None:
        self._queue: asyncio.Queue[Command] = asyncio.Queue(maxsize=max(capacity, 1))
        self.dropped = 0

    def offer(self, command: Command) -> bool:
        """Queue *command* if there is room; return whether it was accepted."""

        try:
            self._queue.put_nowait(command)
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("Command mailbox full; dropped %r", command)
            return False
        return True

    async def receive(self) -> Command:
        return await self._queue.get()

    def empty(self) -> bool:
        return self._queue.empty()


class MessageChannel(Generic[T]):
    """Coordinator-to-UI channel whose sender waits while it is full."""

    def __init__(self, capacity: int = 1) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=max(capacity, 1))

    async def send(self, message: T) -> None:
        await self._queue.put(message)

    def drain(self) -> list[T]:
        """Return every pending message in arrival order without waiting."""

        pending: list[T] = []
        while True:
            try:
                pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return pending


def create_channels(
    command_capacity: int = 1,
) -> tuple[CommandMailbox, MessageChannel[Message]]:
    """Return a fresh ``(commands, messages)`` pair."""

    return CommandMailbox(command_capacity), MessageChannel[Message](1)


__all__ = ["CommandMailbox", "MessageChannel", "create_channels"]
