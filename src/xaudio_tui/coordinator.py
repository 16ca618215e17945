"""Background task owning all network and playback I/O."""
from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from .channels import CommandMailbox, MessageChannel
from .logging_utils import get_logger
from .messages import (
    Command,
    DisplaySearchResult,
    Message,
    OperationFailed,
    Play,
    PlaybackUnavailable,
    SavePlaylist,
    Search,
    SearchFailed,
    SetPause,
    SongDuration,
    SongStarted,
    SongStopped,
)
from .mpv import (
    EndFile,
    PlaybackChannel,
    PlaybackConnectionLost,
    PlaybackEvent,
    StartFile,
)
from .player import PlayerHandle, launch_player, stop_player
from .playlist import PlaylistEntry, PlaylistError, save_playlist
from .youtube import ResolutionError, YouTubeClient, YouTubeError, resolve_stream_url

log = get_logger(__name__)

Resolver = Callable[[str], Awaitable[str]]
PlaylistWriter = Callable[[Sequence[PlaylistEntry]], None]


class BackendCoordinator:
    """Service UI commands and player events until cancelled.

    The coordinator is the only owner of the player connection. It talks to
    the UI exclusively through *commands* (inbound) and *messages* (outbound).
    """

    def __init__(
        self,
        commands: CommandMailbox,
        messages: MessageChannel[Message],
        *,
        client: YouTubeClient,
        playlist_path: Optional[Path] = None,
        ipc_path: Optional[str] = None,
        preferred_player: Optional[str] = None,
        resolver: Optional[Resolver] = None,
        playlist_writer: Optional[PlaylistWriter] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._commands = commands
        self._messages = messages
        self._client = client
        self._playlist_path = playlist_path
        self._ipc_path = ipc_path
        self._preferred_player = preferred_player
        self._resolver: Resolver = resolver or resolve_stream_url
        self._playlist_writer = playlist_writer or self._write_playlist
        self._clock = clock
        self._channel: Optional[PlaybackChannel] = None
        self._player: Optional[PlayerHandle] = None

    async def start(self) -> None:
        """Spawn the player when needed and connect to it.

        Failures here are fatal and propagate to the caller.
        """

        ipc_path = self._ipc_path
        if ipc_path is None:
            self._player = await launch_player(preferred=self._preferred_player)
            ipc_path = self._player.command.ipc_path
        try:
            self._channel = await PlaybackChannel.connect(ipc_path)
        except BaseException:
            await self._stop_player()
            raise

    async def run(self) -> None:
        """Start the backend and multiplex commands and events forever."""

        if self._channel is None:
            await self.start()
        try:
            await self.serve()
        finally:
            await self.shutdown()

    async def serve(self) -> None:
        """Service whichever of the two sources is ready, both when both are."""

        command_task: Optional[asyncio.Task[Command]] = None
        event_task: Optional[asyncio.Task[PlaybackEvent]] = None
        try:
            while True:
                if command_task is None:
                    command_task = asyncio.ensure_future(self._commands.receive())
                if event_task is None and self._channel is not None and not self._channel.closed:
                    event_task = asyncio.ensure_future(self._channel.next_event())
                pending = {task for task in (command_task, event_task) if task is not None}
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if command_task in done:
                    command = command_task.result()
                    command_task = None
                    await self.handle_command(command)
                if event_task is not None and event_task in done:
                    finished, event_task = event_task, None
                    try:
                        event = finished.result()
                    except PlaybackConnectionLost as exc:
                        log.error("Lost connection to the player: %s", exc)
                        await self._messages.send(PlaybackUnavailable(str(exc)))
                        continue
                    await self.handle_event(event)
        finally:
            for task in (command_task, event_task):
                if task is not None and not task.done():
                    task.cancel()

    async def handle_command(self, command: Command) -> None:
        if isinstance(command, Search):
            await self._search(command)
        elif isinstance(command, Play):
            await self._play(command.video_id)
        elif isinstance(command, SetPause):
            await self._set_pause(command.paused)
        elif isinstance(command, SavePlaylist):
            await self._save(command.entries)
        else:
            raise TypeError(f"Unhandled command: {command!r}")

    async def handle_event(self, event: PlaybackEvent) -> None:
        if isinstance(event, StartFile):
            log.debug("Player started a file")
            await self._messages.send(SongStarted(self._clock()))
        elif isinstance(event, EndFile):
            log.debug("Player ended a file (reason=%s)", event.reason)
            await self._messages.send(SongStopped(event.reason))
        else:
            log.debug("Ignoring player event %s", event)

    async def _search(self, command: Search) -> None:
        try:
            results = await self._client.search(command.keyword)
        except YouTubeError as exc:
            log.warning("Search for %r failed: %s", command.keyword, exc)
            await self._messages.send(SearchFailed(str(exc), command.generation))
            return
        await self._messages.send(DisplaySearchResult(tuple(results), command.generation))

    async def _play(self, video_id: str) -> None:
        try:
            duration = await self._client.lookup_duration(video_id)
        except YouTubeError as exc:
            log.info("Duration lookup for %s failed: %s", video_id, exc)
            duration = 0
        await self._messages.send(SongDuration(float(duration)))
        channel = self._channel
        if channel is None or channel.closed:
            await self._messages.send(OperationFailed("Player is not connected"))
            return
        try:
            url = await self._resolver(video_id)
            await channel.load_file(url)
            await channel.play()
        except ResolutionError as exc:
            log.error("Cannot resolve %s: %s", video_id, exc)
            await self._messages.send(OperationFailed(f"Cannot play {video_id}: {exc}"))
        except PlaybackConnectionLost as exc:
            log.error("Player connection lost while loading %s: %s", video_id, exc)
            await self._messages.send(OperationFailed(f"Player connection lost: {exc}"))

    async def _set_pause(self, paused: bool) -> None:
        channel = self._channel
        if channel is None or channel.closed:
            await self._messages.send(OperationFailed("Player is not connected"))
            return
        try:
            await channel.set_pause(paused)
        except PlaybackConnectionLost as exc:
            await self._messages.send(OperationFailed(f"Player connection lost: {exc}"))

    def _write_playlist(self, entries: Sequence[PlaylistEntry]) -> None:
        save_playlist(entries, self._playlist_path)

    async def _save(self, entries: Sequence[PlaylistEntry]) -> None:
        try:
            await asyncio.to_thread(self._playlist_writer, entries)
        except PlaylistError as exc:
            log.warning("Playlist not saved: %s", exc)

    async def _stop_player(self) -> None:
        player, self._player = self._player, None
        if player is not None:
            await stop_player(player)

    async def shutdown(self) -> None:
        """Close the connection and stop the player this coordinator spawned."""

        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
        await self._stop_player()


__all__ = ["BackendCoordinator"]
