import asyncio
import shutil
import subprocess
import sys

import pytest

from xaudio_tui import player as player_module
from xaudio_tui.player import (
    PlayerCommand,
    PlayerError,
    PlayerHandle,
    build_player_command,
    detect_player,
    probe_player,
    stop_player,
)


def test_detect_player_prefers_preferred(monkeypatch):
    calls = []

    def fake_which(cmd: str):
        calls.append(cmd)
        return f"/opt/bin/{cmd}" if cmd in {"mpv", "mpv-nightly"} else None

    monkeypatch.setattr(shutil, "which", fake_which)
    assert detect_player("mpv-nightly") == "/opt/bin/mpv-nightly"
    assert calls[0] == "mpv-nightly"


def test_detect_player_falls_back_to_mpv(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda cmd: "/usr/bin/mpv" if cmd == "mpv" else None)
    assert detect_player("missing-player") == "/usr/bin/mpv"


def test_build_player_command_raises_when_missing(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda _: None)
    with pytest.raises(PlayerError):
        build_player_command()


def test_build_player_command_uses_given_socket(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda cmd: f"/usr/bin/{cmd}")
    command = build_player_command(ipc_path="/tmp/mpv-socket")
    assert isinstance(command, PlayerCommand)
    assert command.executable == "/usr/bin/mpv"
    assert command.args == [
        "--input-ipc-server=/tmp/mpv-socket",
        "--no-terminal",
        "--no-video",
        "--idle",
    ]
    assert command.cleanup_paths == ()


def test_build_player_command_creates_private_socket_dir(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda cmd: f"/usr/bin/{cmd}")
    command = build_player_command()
    assert command.args[0] == f"--input-ipc-server={command.ipc_path}"
    assert command.cleanup_paths
    for path in command.cleanup_paths:
        assert path.exists()
        player_module.cleanup_player_paths(command)
        assert not path.exists()


def test_stop_player_terminates_process(tmp_path):
    async def scenario() -> int:
        process = await asyncio.create_subprocess_exec(
            sys.executable, "-c", "import time; time.sleep(30)"
        )
        leftover = tmp_path / "ipc"
        leftover.mkdir()
        command = PlayerCommand(
            executable=sys.executable,
            args=[],
            ipc_path=str(leftover / "ipc.sock"),
            cleanup_paths=(leftover,),
        )
        await stop_player(PlayerHandle(process=process, command=command), timeout=5.0)
        assert not leftover.exists()
        return process.returncode

    assert asyncio.run(scenario()) is not None


def test_probe_player_success(monkeypatch):
    monkeypatch.setattr(player_module, "detect_player", lambda preferred=None, **kwargs: "/usr/bin/mpv")

    class Result:
        returncode = 0
        stdout = "mpv 0.37.0 Copyright © 2000-2023 mpv/MPlayer/mplayer2 projects"
        stderr = ""

    monkeypatch.setattr(player_module.subprocess, "run", lambda *args, **kwargs: Result())
    assert probe_player().startswith("mpv 0.37.0")


def test_probe_player_failure(monkeypatch):
    monkeypatch.setattr(player_module, "detect_player", lambda preferred=None, **kwargs: "/usr/bin/mpv")

    class Result:
        returncode = 1
        stdout = ""
        stderr = "fatal error"

    monkeypatch.setattr(player_module.subprocess, "run", lambda *args, **kwargs: Result())
    with pytest.raises(PlayerError) as excinfo:
        probe_player()
    assert "fatal error" in str(excinfo.value)


def test_probe_player_missing(monkeypatch):
    monkeypatch.setattr(player_module, "detect_player", lambda preferred=None, **kwargs: None)
    with pytest.raises(PlayerError):
        probe_player()


def test_probe_player_timeout(monkeypatch):
    monkeypatch.setattr(player_module, "detect_player", lambda preferred=None, **kwargs: "/usr/bin/mpv")

    def fake_run(*args, **kwargs):
        raise subprocess.TimeoutExpired(cmd=args[0], timeout=kwargs["timeout"])

    monkeypatch.setattr(player_module.subprocess, "run", fake_run)
    monkeypatch.setenv(player_module.PLAYER_PROBE_TIMEOUT_ENV, "2.5")

    with pytest.raises(RuntimeError) as excinfo:
        probe_player()

    assert "timed out after 2.5 seconds" in str(excinfo.value)
