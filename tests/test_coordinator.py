from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Sequence

import pytest

from xaudio_tui import youtube
from xaudio_tui.channels import MessageChannel, create_channels
from xaudio_tui.coordinator import BackendCoordinator
from xaudio_tui.messages import (
    DisplaySearchResult,
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
from xaudio_tui.mpv import PlaybackConnectionError
from xaudio_tui.playlist import PlaylistEntry, PlaylistError, load_playlist
from xaudio_tui.youtube import ResolutionError, YouTubeClient, YouTubeError


class FakeClient:
    def __init__(self, *, fail_search: bool = False, fail_duration: bool = False) -> None:
        self.fail_search = fail_search
        self.fail_duration = fail_duration
        self.searches: list[str] = []

    async def search(self, keyword: str) -> list[PlaylistEntry]:
        self.searches.append(keyword)
        if self.fail_search:
            raise YouTubeError("quota exceeded")
        return [PlaylistEntry("v1", f"{keyword} one"), PlaylistEntry("v2", f"{keyword} two")]

    async def lookup_duration(self, video_id: str) -> int:
        if self.fail_duration:
            raise YouTubeError("no such video")
        return 215


async def fake_resolver(video_id: str) -> str:
    return f"https://media.example/{video_id}"


async def failing_resolver(video_id: str) -> str:
    raise ResolutionError(f"yt-dlp refused {video_id}")


async def collect(channel: MessageChannel, count: int, timeout: float = 2.0) -> list[object]:
    received: list[object] = []

    async def _poll() -> None:
        while len(received) < count:
            received.extend(channel.drain())
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)
    return received


def make_coordinator(socket_path: Path, tmp_path: Path, **kwargs):
    commands, messages = create_channels()
    options = {
        "client": FakeClient(),
        "playlist_path": tmp_path / "playlist",
        "ipc_path": str(socket_path),
        "resolver": fake_resolver,
        "clock": lambda: 42.0,
    }
    options.update(kwargs)
    coordinator = BackendCoordinator(commands, messages, **options)
    return coordinator, commands, messages


def run_with_backend(fake_mpv_factory, socket_path, tmp_path, script, **kwargs):
    async def scenario():
        server = await fake_mpv_factory()
        coordinator, commands, messages = make_coordinator(socket_path, tmp_path, **kwargs)
        task = asyncio.ensure_future(coordinator.run())
        try:
            return await script(server, commands, messages)
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            await server.close()

    return asyncio.run(scenario())


def test_search_emits_results(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        commands.offer(Search("lofi", 3))
        return await collect(messages, 1)

    (message,) = run_with_backend(fake_mpv_factory, socket_path, tmp_path, script)
    assert isinstance(message, DisplaySearchResult)
    assert message.generation == 3
    assert [entry.id for entry in message.results] == ["v1", "v2"]


def test_search_failure_is_reported(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        commands.offer(Search("lofi", 1))
        return await collect(messages, 1)

    (message,) = run_with_backend(
        fake_mpv_factory, socket_path, tmp_path, script, client=FakeClient(fail_search=True)
    )
    assert message == SearchFailed("quota exceeded", 1)


def test_play_sends_duration_then_loads(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        commands.offer(Play("abc"))
        received = await collect(messages, 1)
        sent = await server.wait_for_commands(2)
        return received, sent

    received, sent = run_with_backend(fake_mpv_factory, socket_path, tmp_path, script)
    assert received == [SongDuration(215.0)]
    assert sent == [
        ["loadfile", "https://media.example/abc", "replace"],
        ["playlist-play-index", "0"],
    ]


def test_play_with_unknown_duration_uses_zero(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        commands.offer(Play("abc"))
        return await collect(messages, 1)

    received = run_with_backend(
        fake_mpv_factory, socket_path, tmp_path, script, client=FakeClient(fail_duration=True)
    )
    assert received == [SongDuration(0.0)]


def test_resolution_failure_is_reported(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        commands.offer(Play("abc"))
        return await collect(messages, 2)

    received = run_with_backend(
        fake_mpv_factory, socket_path, tmp_path, script, resolver=failing_resolver
    )
    assert received[0] == SongDuration(215.0)
    assert isinstance(received[1], OperationFailed)
    assert "abc" in received[1].reason


def test_set_pause_is_forwarded(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        commands.offer(SetPause(True))
        return await server.wait_for_commands(1)

    sent = run_with_backend(fake_mpv_factory, socket_path, tmp_path, script)
    assert sent == [["set", "pause", "yes"]]


def test_save_playlist_writes_file(fake_mpv_factory, socket_path, tmp_path) -> None:
    path = tmp_path / "playlist"

    async def script(server, commands, messages):
        commands.offer(SavePlaylist((PlaylistEntry("x", "T1"), PlaylistEntry("y", "T2"))))
        for _ in range(200):
            if path.exists():
                break
            await asyncio.sleep(0.01)

    run_with_backend(fake_mpv_factory, socket_path, tmp_path, script)
    assert [(entry.id, entry.title) for entry in load_playlist(path)] == [
        ("x", "T1"),
        ("y", "T2"),
    ]


def test_save_failure_is_swallowed(fake_mpv_factory, socket_path, tmp_path) -> None:
    attempts: list[Sequence[PlaylistEntry]] = []

    def broken_writer(entries: Sequence[PlaylistEntry]) -> None:
        attempts.append(entries)
        raise PlaylistError("disk full")

    async def script(server, commands, messages):
        commands.offer(SavePlaylist((PlaylistEntry("x", "T1"),)))
        for _ in range(200):
            if attempts:
                break
            await asyncio.sleep(0.01)
        commands.offer(Search("still alive", 1))
        return await collect(messages, 1)

    (message,) = run_with_backend(
        fake_mpv_factory, socket_path, tmp_path, script, playlist_writer=broken_writer
    )
    assert len(attempts) == 1
    assert isinstance(message, DisplaySearchResult)


def test_player_events_become_messages(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        await server.emit({"event": "start-file"})
        await server.emit({"event": "property-change", "name": "volume"})
        await server.emit({"event": "end-file", "reason": "eof"})
        return await collect(messages, 2)

    received = run_with_backend(fake_mpv_factory, socket_path, tmp_path, script)
    assert received == [SongStarted(42.0), SongStopped("eof")]


def test_connection_loss_surfaces_once(fake_mpv_factory, socket_path, tmp_path) -> None:
    async def script(server, commands, messages):
        await asyncio.wait_for(server.connected.wait(), 2.0)
        await server.disconnect()
        lost = await collect(messages, 1)
        commands.offer(SetPause(True))
        failed = await collect(messages, 1)
        return lost, failed

    lost, failed = run_with_backend(fake_mpv_factory, socket_path, tmp_path, script)
    assert isinstance(lost[0], PlaybackUnavailable)
    assert isinstance(failed[0], OperationFailed)


def test_start_fails_without_player_socket(socket_path, tmp_path, monkeypatch) -> None:
    from xaudio_tui import mpv

    original_connect = mpv.PlaybackChannel.connect.__func__

    async def quick_connect(cls, path, *, retries=1, delay=0.0):
        return await original_connect(cls, path, retries=1, delay=0.0)

    monkeypatch.setattr(mpv.PlaybackChannel, "connect", classmethod(quick_connect))
    coordinator, _, _ = make_coordinator(socket_path, tmp_path)
    with pytest.raises(PlaybackConnectionError):
        asyncio.run(coordinator.run())


class _GarbledResponse:
    def __enter__(self) -> "_GarbledResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def read(self) -> bytes:
        return b"\xff\xfe not utf8"


def test_undecodable_api_body_keeps_backend_alive(
    fake_mpv_factory, socket_path, tmp_path, monkeypatch
) -> None:
    monkeypatch.setattr(youtube.request, "urlopen", lambda req, timeout: _GarbledResponse())

    async def script(server, commands, messages):
        commands.offer(Search("lofi", 1))
        failed = await collect(messages, 1)
        commands.offer(Play("abc"))
        duration = await collect(messages, 1)
        sent = await server.wait_for_commands(2)
        return failed, duration, sent

    failed, duration, sent = run_with_backend(
        fake_mpv_factory, socket_path, tmp_path, script, client=YouTubeClient("secret")
    )
    assert isinstance(failed[0], SearchFailed)
    assert failed[0].generation == 1
    assert duration == [SongDuration(0.0)]
    assert sent[0] == ["loadfile", "https://media.example/abc", "replace"]
