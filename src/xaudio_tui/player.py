"""Player detection, spawning and shutdown helpers."""
from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .logging_utils import get_logger


# Only mpv speaks the JSON IPC protocol the coordinator relies on.
DEFAULT_PLAYER_CANDIDATES: Sequence[str] = ("mpv",)

PLAYER_PROBE_TIMEOUT_ENV = "XAUDIO_TUI_PLAYER_PROBE_TIMEOUT"
DEFAULT_PLAYER_PROBE_TIMEOUT = 10.0
PLAYER_STOP_TIMEOUT = 3.0


log = get_logger(__name__)


class PlayerError(RuntimeError):
    """Raised when the player executable cannot be found or started."""


@dataclass(slots=True)
class PlayerCommand:
    """Describe a player invocation."""

    executable: str
    args: list[str]
    ipc_path: str
    cleanup_paths: tuple[Path, ...] = ()

    def as_sequence(self) -> list[str]:
        return [self.executable, *self.args]


@dataclass(slots=True)
class PlayerHandle:
    """Return value from :func:`launch_player` containing process metadata."""

    process: asyncio.subprocess.Process
    command: PlayerCommand


def detect_player(
    preferred: Optional[str] = None,
    *,
    candidates: Iterable[str] = DEFAULT_PLAYER_CANDIDATES,
) -> Optional[str]:
    """Return the path to the first available player executable."""

    search_order: list[str] = []
    if preferred:
        preferred_str = str(preferred)
        log.debug("Preferred player requested: %s", preferred_str)
        search_order.append(preferred_str)
    for candidate in candidates:
        if candidate not in search_order:
            search_order.append(candidate)
    for executable in search_order:
        path = shutil.which(executable)
        if path:
            log.info("Selected player executable: %s (from candidate %s)", path, executable)
            return path
        log.debug("Player candidate %s not found on PATH", executable)
    return None


def prepare_ipc_path() -> tuple[str, tuple[Path, ...]]:
    """Return a fresh socket path for mpv along with cleanup targets."""

    temp_dir = Path(tempfile.mkdtemp(prefix="xaudio_tui_mpv_"))
    return str(temp_dir / "ipc.sock"), (temp_dir,)


def _player_probe_timeout() -> float:
    """Return the timeout to use for player probes."""

    raw_value = os.getenv(PLAYER_PROBE_TIMEOUT_ENV)
    if raw_value is None:
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    try:
        timeout = float(raw_value)
    except ValueError:
        log.warning(
            "Invalid %s value %r; using default %.1f seconds",
            PLAYER_PROBE_TIMEOUT_ENV,
            raw_value,
            DEFAULT_PLAYER_PROBE_TIMEOUT,
        )
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    if timeout <= 0:
        log.warning(
            "Probe timeout %.1f from %s must be positive; using default",
            timeout,
            PLAYER_PROBE_TIMEOUT_ENV,
        )
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    return timeout


def build_player_command(
    *, preferred: Optional[str] = None, ipc_path: Optional[str] = None
) -> PlayerCommand:
    """Construct an idle, audio-only mpv command serving IPC on *ipc_path*."""

    executable = detect_player(preferred)
    if executable is None:
        log.error("Unable to locate mpv")
        raise PlayerError("mpv was not found on PATH")
    cleanup_paths: tuple[Path, ...] = ()
    if ipc_path is None:
        ipc_path, cleanup_paths = prepare_ipc_path()
    args = [
        f"--input-ipc-server={ipc_path}",
        "--no-terminal",
        "--no-video",
        "--idle",
    ]
    command = PlayerCommand(
        executable=executable,
        args=args,
        ipc_path=ipc_path,
        cleanup_paths=cleanup_paths,
    )
    log.info("Built player command: %s", command.as_sequence())
    return command


async def launch_player(
    *, preferred: Optional[str] = None, ipc_path: Optional[str] = None
) -> PlayerHandle:
    """Spawn the long-running player process."""

    command = build_player_command(preferred=preferred, ipc_path=ipc_path)
    log.info("Launching player process")
    try:
        process = await asyncio.create_subprocess_exec(
            *command.as_sequence(),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        cleanup_player_paths(command)
        raise PlayerError(f"Cannot start {command.executable}: {exc}") from exc
    log.debug("Spawned process PID %s", getattr(process, "pid", "unknown"))
    return PlayerHandle(process=process, command=command)


def cleanup_player_paths(command: PlayerCommand) -> None:
    for path in command.cleanup_paths:
        try:
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            elif path.exists():
                path.unlink()
        except OSError:  # pragma: no cover - cleanup best-effort
            log.debug("Failed to remove %s", path, exc_info=True)


async def stop_player(handle: PlayerHandle, *, timeout: float = PLAYER_STOP_TIMEOUT) -> None:
    """Terminate the player, escalating to kill, and remove its IPC directory."""

    process = handle.process
    if process.returncode is None:
        try:
            process.terminate()
        except ProcessLookupError:  # pragma: no cover - defensive guard
            pass
        try:
            await asyncio.wait_for(process.wait(), timeout)
        except asyncio.TimeoutError:
            log.warning("Player did not exit after %.1f seconds; killing it", timeout)
            try:
                process.kill()
            except ProcessLookupError:  # pragma: no cover - defensive guard
                pass
            await process.wait()
    log.info("Player exited with code %s", process.returncode)
    cleanup_player_paths(handle.command)


def probe_player(preferred: Optional[str] = None) -> str:
    """Invoke the preferred player with ``--version`` to verify availability."""

    executable = detect_player(preferred)
    if executable is None:
        raise PlayerError("mpv was not found on PATH")
    timeout = _player_probe_timeout()
    try:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise PlayerError(
            (
                f"{Path(executable).name} --version timed out after {timeout:.1f} seconds. "
                f"Increase the timeout via the {PLAYER_PROBE_TIMEOUT_ENV} environment variable "
                "or run the command manually."
            )
        ) from exc
    except OSError as exc:  # pragma: no cover - defensive
        raise PlayerError(f"Failed to execute {executable}: {exc}") from exc
    if result.returncode != 0:
        output = result.stderr.strip() or result.stdout.strip()
        raise PlayerError(
            f"{Path(executable).name} --version exited with {result.returncode}: {output}"
        )
    output = result.stdout.strip() or result.stderr.strip()
    summary = output.splitlines()[0] if output else Path(executable).name
    log.info("Player probe succeeded using %s: %s", executable, summary)
    return summary


__all__ = [
    "PlayerCommand",
    "PlayerError",
    "PlayerHandle",
    "build_player_command",
    "cleanup_player_paths",
    "detect_player",
    "launch_player",
    "prepare_ipc_path",
    "probe_player",
    "stop_player",
]
