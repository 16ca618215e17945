"""Client for mpv's line-delimited JSON IPC protocol."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Optional, Union

from .logging_utils import get_logger

log = get_logger(__name__)

DEFAULT_CONNECT_RETRIES = 50
DEFAULT_CONNECT_DELAY = 0.1


class PlaybackConnectionError(RuntimeError):
    """Raised when the player's IPC socket cannot be opened."""


class PlaybackConnectionLost(RuntimeError):
    """Raised when the player closes the IPC socket mid-session."""


@dataclass(frozen=True, slots=True)
class StartFile:
    """Playback of a newly loaded file has begun."""


@dataclass(frozen=True, slots=True)
class EndFile:
    """A file stopped playing; ``reason`` is ``"eof"`` on natural completion."""

    reason: str


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    """Any other line the player sent (replies, unrelated events)."""

    raw: str


PlaybackEvent = Union[StartFile, EndFile, UnknownEvent]


def encode_command(*tokens: str) -> bytes:
    """Serialize a command as a single newline-terminated JSON request."""

    return (json.dumps({"command": list(tokens)}) + "\n").encode("utf-8")


def decode_event(line: Union[bytes, str]) -> Optional[PlaybackEvent]:
    """Classify a line received from the player.

    Returns ``None`` for lines that are not a JSON object.
    """

    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    text = line.strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        log.debug("Dropping malformed IPC line: %r", text)
        return None
    if not isinstance(payload, dict):
        log.debug("Dropping non-object IPC line: %r", text)
        return None
    event = payload.get("event")
    if event == "start-file":
        return StartFile()
    if event == "end-file":
        reason = payload.get("reason")
        return EndFile(reason if isinstance(reason, str) else "")
    return UnknownEvent(text)


class PlaybackChannel:
    """Persistent duplex connection to a running mpv instance."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    @classmethod
    async def connect(
        cls,
        path: str,
        *,
        retries: int = DEFAULT_CONNECT_RETRIES,
        delay: float = DEFAULT_CONNECT_DELAY,
    ) -> "PlaybackChannel":
        """Open the IPC socket at *path*, waiting for the player to create it."""

        last_error: Optional[BaseException] = None
        for attempt in range(max(retries, 1)):
            try:
                reader, writer = await asyncio.open_unix_connection(path)
            except (FileNotFoundError, ConnectionRefusedError) as exc:
                last_error = exc
            except OSError as exc:
                log.debug(
                    "Attempt %s to connect to mpv IPC at %s failed: %s",
                    attempt + 1,
                    path,
                    exc,
                )
                last_error = exc
            else:
                log.info("Connected to mpv IPC at %s", path)
                return cls(reader, writer)
            await asyncio.sleep(delay)
        log.error("Unable to connect to mpv IPC server at %s", path)
        raise PlaybackConnectionError(
            f"Cannot connect to mpv at {path}: {last_error}"
        ) from last_error

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, *tokens: str) -> None:
        """Write one command to the player."""

        if self._closed:
            raise PlaybackConnectionLost("IPC connection is closed")
        log.debug("IPC -> %s", list(tokens))
        try:
            self._writer.write(encode_command(*tokens))
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._closed = True
            raise PlaybackConnectionLost(str(exc)) from exc

    async def load_file(self, url: str) -> None:
        # Only one track is ever resident in the player.
        await self.send("loadfile", url, "replace")

    async def play(self) -> None:
        await self.send("playlist-play-index", "0")

    async def set_pause(self, paused: bool) -> None:
        await self.send("set", "pause", "yes" if paused else "no")

    async def next_event(self) -> PlaybackEvent:
        """Return the next decodable event, skipping malformed lines."""

        while True:
            if self._closed:
                raise PlaybackConnectionLost("IPC connection is closed")
            try:
                line = await self._reader.readline()
            except (ConnectionError, OSError) as exc:
                self._closed = True
                raise PlaybackConnectionLost(str(exc)) from exc
            except ValueError as exc:
                # The reader discards the oversized chunk; any remainder
                # arrives as a fragment that fails to decode below.
                log.debug("Dropping oversized IPC line: %s", exc)
                continue
            if not line:
                self._closed = True
                raise PlaybackConnectionLost("mpv closed the IPC connection")
            event = decode_event(line)
            if event is not None:
                return event

    async def close(self) -> None:
        if self._closed and self._writer.is_closing():
            return
        self._closed = True
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError):  # pragma: no cover - cleanup best-effort
            log.debug("Error while closing IPC connection", exc_info=True)


__all__ = [
    "EndFile",
    "PlaybackChannel",
    "PlaybackConnectionError",
    "PlaybackConnectionLost",
    "PlaybackEvent",
    "StartFile",
    "UnknownEvent",
    "decode_event",
    "encode_command",
]
