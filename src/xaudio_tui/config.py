"""Configuration management for xaudio-tui."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .logging_utils import get_logger
from .playlist import PLAYLIST_PATH

CONFIG_PATH = Path.home() / ".config" / "xaudio_tui" / "config.yaml"

ENV_API_KEY = "YOUTUBE_API_KEY"
ENV_PLAYLIST = "XAUDIO_TUI_PLAYLIST"
ENV_SOCKET = "XAUDIO_TUI_SOCKET"

log = get_logger(__name__)


@dataclass(slots=True)
class AppConfig:
    """Top level application configuration."""

    api_key: Optional[str] = None
    playlist_path: Path = field(default_factory=lambda: PLAYLIST_PATH)
    player: Optional[str] = None
    resolver: str = "yt-dlp"
    # Socket of an mpv that is already running; when unset one is spawned.
    ipc_path: Optional[str] = None
    poll_interval: float = 0.2
    command_buffer: int = 1
    search_results: int = 50
    request_timeout: float = 10.0
    dedupe_playlist: bool = False


def _clean_scalar(value: str) -> str:
    value = value.strip()
    if value.startswith(("'", '"')) and value.endswith(("'", '"')):
        value = value[1:-1]
    return value


def _parse_bool(value: object, *, default: bool = False) -> bool:
    """Coerce *value* into a boolean flag."""

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "yes", "on", "1"}:
            return True
        if normalized in {"false", "no", "off", "0"}:
            return False
    return default


def _parse_number(key: str, value: object, default: float, *, minimum: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        log.warning("Ignoring invalid %s value %r", key, value)
        return default
    if number < minimum:
        log.warning("Ignoring %s value %r below %s", key, value, minimum)
        return default
    return number


def _parse_config(raw: str) -> dict[str, object]:
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        pass
    else:
        return data if isinstance(data, dict) else {}

    result: dict[str, object] = {}
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, separator, value = stripped.partition(":")
        if not separator:
            log.warning("Ignoring config line without a key: %r", line)
            continue
        result[key.strip()] = _clean_scalar(value)
    return result


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """Load configuration from *path*, then apply environment overrides."""

    config_path = path or CONFIG_PATH
    env = os.environ if environ is None else environ
    data: dict[str, object] = {}
    if config_path.exists():
        log.debug("Loading configuration from %s", config_path)
        data = _parse_config(config_path.read_text(encoding="utf8"))
    else:
        log.info("Configuration file missing at %s; using defaults", config_path)

    defaults = AppConfig()
    config = AppConfig(
        api_key=_optional_str(data.get("api_key")),
        player=_optional_str(data.get("player")),
        resolver=_optional_str(data.get("resolver")) or defaults.resolver,
        ipc_path=_optional_str(data.get("ipc_path")),
        poll_interval=_parse_number(
            "poll_interval", data.get("poll_interval", defaults.poll_interval),
            defaults.poll_interval, minimum=0.01,
        ),
        command_buffer=int(
            _parse_number(
                "command_buffer", data.get("command_buffer", defaults.command_buffer),
                defaults.command_buffer, minimum=1,
            )
        ),
        search_results=int(
            _parse_number(
                "search_results", data.get("search_results", defaults.search_results),
                defaults.search_results, minimum=1,
            )
        ),
        request_timeout=_parse_number(
            "request_timeout", data.get("request_timeout", defaults.request_timeout),
            defaults.request_timeout, minimum=0.1,
        ),
        dedupe_playlist=_parse_bool(data.get("dedupe_playlist"), default=False),
    )
    playlist_raw = _optional_str(data.get("playlist_path"))
    if playlist_raw:
        config.playlist_path = Path(playlist_raw).expanduser()

    api_key = _optional_str(env.get(ENV_API_KEY))
    if api_key:
        config.api_key = api_key
    playlist_env = _optional_str(env.get(ENV_PLAYLIST))
    if playlist_env:
        config.playlist_path = Path(playlist_env).expanduser()
    socket_env = _optional_str(env.get(ENV_SOCKET))
    if socket_env:
        config.ipc_path = socket_env

    if not config.api_key:
        log.warning("No %s configured; searching will fail", ENV_API_KEY)
    log.info(
        "Configuration loaded (playlist=%s, player=%s, ipc_path=%s)",
        config.playlist_path,
        config.player or "auto",
        config.ipc_path or "spawned",
    )
    return config


__all__ = [
    "AppConfig",
    "CONFIG_PATH",
    "ENV_API_KEY",
    "ENV_PLAYLIST",
    "ENV_SOCKET",
    "load_config",
]
