from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import pytest


class FakeMpv:
    """In-process stand-in for mpv's IPC socket."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.commands: list[list[str]] = []
        self._server: Optional[asyncio.AbstractServer] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self.connected = asyncio.Event()
        self.received = asyncio.Event()

    async def start(self) -> "FakeMpv":
        self._server = await asyncio.start_unix_server(self._handle, path=str(self.path))
        return self

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writer = writer
        self.connected.set()
        while True:
            line = await reader.readline()
            if not line:
                break
            self.commands.append(json.loads(line)["command"])
            self.received.set()

    async def wait_for_commands(self, count: int, timeout: float = 2.0) -> list[list[str]]:
        async def _wait() -> None:
            while len(self.commands) < count:
                self.received.clear()
                await self.received.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self.commands

    async def emit(self, payload: object) -> None:
        await asyncio.wait_for(self.connected.wait(), 2.0)
        assert self._writer is not None
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._writer.write((text + "\n").encode("utf-8"))
        await self._writer.drain()

    async def disconnect(self) -> None:
        if self._writer is not None:
            self._writer.close()

    async def close(self) -> None:
        await self.disconnect()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()


@pytest.fixture
def socket_path(tmp_path: Path) -> Path:
    return tmp_path / "mpv.sock"


@pytest.fixture
def fake_mpv_factory(socket_path: Path):
    async def factory() -> FakeMpv:
        return await FakeMpv(socket_path).start()

    return factory
