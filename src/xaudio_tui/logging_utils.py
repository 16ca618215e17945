"""Logging helpers for :mod:`xaudio_tui`."""

from __future__ import annotations

import logging
import os
import threading
import weakref
from pathlib import Path
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .app import XaudioApp

__all__ = ["configure_logging", "get_log_file_path", "get_logger"]

_LOGGER_NAME = "xaudio_tui"
_ENV_LEVEL = "XAUDIO_TUI_LOG_LEVEL"
_ENV_FILE = "XAUDIO_TUI_LOG_FILE"
_DEFAULT_LOG_PATH = Path.home() / ".cache" / "xaudio_tui.log"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _StatusLineHandler(logging.Handler):
    """Forward warnings and errors to the application's status line."""

    def __init__(self, app: "XaudioApp") -> None:
        super().__init__()
        self._app_ref: "weakref.ReferenceType[XaudioApp]" = weakref.ref(app)

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        if record.levelno < logging.WARNING:
            return
        app = self._app_ref()
        if app is None:
            return
        try:
            message = record.getMessage()
            app_thread_id = getattr(app, "_app_thread_id", None)
            if app_thread_id is not None and threading.get_ident() == app_thread_id:
                app.show_status(message)
            else:
                app.call_from_thread(app.show_status, message)
        except Exception:  # pragma: no cover - defensive against UI failures
            self.handleError(record)


def _create_formatter() -> logging.Formatter:
    return logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)


def _attach_status_handler(logger: logging.Logger, app: Optional["XaudioApp"]) -> None:
    existing = getattr(configure_logging, "_status_handler", None)
    if existing is not None:
        logger.removeHandler(existing)
        configure_logging._status_handler = None  # type: ignore[attr-defined]
    if app is None:
        return
    handler = _StatusLineHandler(app)
    logger.addHandler(handler)
    configure_logging._status_handler = handler  # type: ignore[attr-defined]


def _detach_stream_handler(logger: logging.Logger) -> None:
    handler: Optional[logging.Handler] = getattr(
        configure_logging, "_stream_handler", None
    )
    if handler is None:
        return
    if handler in logger.handlers:
        logger.removeHandler(handler)
    configure_logging._stream_handler = None  # type: ignore[attr-defined]


def _coerce_level(value: str) -> int:
    """Return a logging level derived from *value*."""

    normalized = value.strip().upper()
    if normalized.isdigit():
        level = int(normalized)
        if 0 <= level <= logging.CRITICAL:
            return level
    return getattr(logging, normalized, logging.INFO)


def _apply_log_level(logger: logging.Logger, level: int) -> None:
    """Update the logger and all attached handlers to ``level``."""

    logger.setLevel(level)
    for handler in list(logger.handlers):
        handler.setLevel(level)


def _configure_file_logging(
    logger: logging.Logger,
    formatter: logging.Formatter,
    level: int,
    destination: Optional[str],
) -> None:
    """Attach or update a file handler based on ``destination``."""

    existing: Optional[logging.Handler] = getattr(
        configure_logging, "_file_handler", None
    )
    if existing is not None:
        logger.removeHandler(existing)
        existing.close()
        configure_logging._file_handler = None  # type: ignore[attr-defined]

    if not destination:
        configure_logging._log_path = None  # type: ignore[attr-defined]
        return

    log_path = Path(destination).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf8")
    except OSError:
        logger.warning("Failed to set up file logging at %s", log_path)
        configure_logging._log_path = None  # type: ignore[attr-defined]
        return

    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    logger.addHandler(file_handler)
    configure_logging._file_handler = file_handler  # type: ignore[attr-defined]
    configure_logging._log_path = log_path  # type: ignore[attr-defined]
    logger.debug("File logging enabled at %s", log_path)


_MISSING = object()


def configure_logging(
    *,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    app: object = _MISSING,
) -> logging.Logger:
    """Configure the package logger if it hasn't been set up yet.

    Passing ``app`` hands terminal output over to the running application:
    the stderr handler is removed so it cannot corrupt the screen, and
    warnings are shown on the status line instead. ``app=None`` detaches it.
    """

    logger = logging.getLogger(_LOGGER_NAME)

    configured = getattr(configure_logging, "_configured", False)
    env_level = os.getenv(_ENV_LEVEL)
    env_file = os.getenv(_ENV_FILE)

    if configured:
        base_level = getattr(configure_logging, "_level", logger.level or logging.INFO)
        if level is not None:
            log_level = _coerce_level(level)
        elif env_level is not None:
            log_level = _coerce_level(env_level)
        else:
            log_level = base_level
    else:
        log_level = _coerce_level(level or env_level or "INFO")

    formatter = _create_formatter()
    if not configured:
        logger.propagate = False

        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
        configure_logging._stream_handler = stream_handler  # type: ignore[attr-defined]

        if log_file is not None:
            file_destination: Optional[str] = log_file
        elif env_file is not None:
            file_destination = env_file
        else:
            file_destination = str(_DEFAULT_LOG_PATH)
        _configure_file_logging(logger, formatter, log_level, file_destination)
        configure_logging._configured = True  # type: ignore[attr-defined]
    elif log_file is not None:
        _configure_file_logging(logger, formatter, log_level, log_file)

    _apply_log_level(logger, log_level)
    configure_logging._level = log_level  # type: ignore[attr-defined]

    if app is not _MISSING:
        _attach_status_handler(logger, app)  # type: ignore[arg-type]
        if app is not None:
            _detach_stream_handler(logger)
    logger.debug("Logging configured with level %s", logging.getLevelName(log_level))
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger."""

    base = configure_logging()
    if not name or name == base.name:
        return base
    if name.startswith(base.name + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{base.name}.{name}")


def get_log_file_path() -> Optional[Path]:
    """Return the active log file, if file logging is enabled."""

    return getattr(configure_logging, "_log_path", None)
