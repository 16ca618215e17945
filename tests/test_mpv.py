from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from xaudio_tui.mpv import (
    EndFile,
    PlaybackChannel,
    PlaybackConnectionError,
    PlaybackConnectionLost,
    StartFile,
    UnknownEvent,
    decode_event,
    encode_command,
)


def test_encode_command_is_newline_terminated_json() -> None:
    raw = encode_command("set", "pause", "yes")
    assert raw.endswith(b"\n")
    assert json.loads(raw) == {"command": ["set", "pause", "yes"]}


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        (b'{"event": "start-file"}\n', StartFile()),
        (b'{"event": "end-file", "reason": "eof"}\n', EndFile("eof")),
        ('{"event":"end-file","reason":"stop"}', EndFile("stop")),
        ('{"event": "end-file"}', EndFile("")),
        ('{"data": null, "error": "success"}', UnknownEvent('{"data": null, "error": "success"}')),
    ],
)
def test_decode_event(line, expected) -> None:
    assert decode_event(line) == expected


@pytest.mark.parametrize("line", [b"", b"\n", b"not json\n", b"[1, 2]\n"])
def test_decode_event_drops_malformed_lines(line: bytes) -> None:
    assert decode_event(line) is None


def test_connect_failure_raises(socket_path: Path) -> None:
    with pytest.raises(PlaybackConnectionError):
        asyncio.run(PlaybackChannel.connect(str(socket_path), retries=2, delay=0.01))


def test_commands_reach_the_player(fake_mpv_factory, socket_path: Path) -> None:
    async def scenario() -> list[list[str]]:
        server = await fake_mpv_factory()
        channel = await PlaybackChannel.connect(str(socket_path))
        try:
            await channel.load_file("https://media.example/a")
            await channel.play()
            await channel.set_pause(True)
            await channel.set_pause(False)
            return await server.wait_for_commands(4)
        finally:
            await channel.close()
            await server.close()

    assert asyncio.run(scenario()) == [
        ["loadfile", "https://media.example/a", "replace"],
        ["playlist-play-index", "0"],
        ["set", "pause", "yes"],
        ["set", "pause", "no"],
    ]


def test_next_event_skips_garbage(fake_mpv_factory, socket_path: Path) -> None:
    async def scenario() -> list[object]:
        server = await fake_mpv_factory()
        channel = await PlaybackChannel.connect(str(socket_path))
        try:
            await server.emit("garbage")
            await server.emit({"event": "start-file"})
            await server.emit({"event": "end-file", "reason": "eof"})
            first = await asyncio.wait_for(channel.next_event(), 2.0)
            second = await asyncio.wait_for(channel.next_event(), 2.0)
            return [first, second]
        finally:
            await channel.close()
            await server.close()

    assert asyncio.run(scenario()) == [StartFile(), EndFile("eof")]


def test_connection_loss_is_reported(fake_mpv_factory, socket_path: Path) -> None:
    async def scenario() -> bool:
        server = await fake_mpv_factory()
        channel = await PlaybackChannel.connect(str(socket_path))
        try:
            await asyncio.wait_for(server.connected.wait(), 2.0)
            await server.disconnect()
            with pytest.raises(PlaybackConnectionLost):
                await asyncio.wait_for(channel.next_event(), 2.0)
            with pytest.raises(PlaybackConnectionLost):
                await channel.play()
            return channel.closed
        finally:
            await channel.close()
            await server.close()

    assert asyncio.run(scenario()) is True


def test_oversized_line_is_dropped(fake_mpv_factory, socket_path: Path) -> None:
    async def scenario() -> tuple[object, bool]:
        server = await fake_mpv_factory()
        channel = await PlaybackChannel.connect(str(socket_path))
        try:
            huge = json.dumps({"event": "property-change", "data": "x" * 70_000})
            await server.emit(huge)
            await server.emit({"event": "start-file"})
            event = await asyncio.wait_for(channel.next_event(), 2.0)
            return event, channel.closed
        finally:
            await channel.close()
            await server.close()

    event, closed = asyncio.run(scenario())
    assert event == StartFile()
    assert closed is False
