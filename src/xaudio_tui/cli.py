"""Command line entry point for xaudio-tui."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable

from dotenv import load_dotenv

from . import __version__
from .app import XaudioApp
from .config import CONFIG_PATH, ENV_API_KEY, load_config
from .logging_utils import configure_logging, get_log_file_path, get_logger
from .player import PlayerError, probe_player
from .playlist import PlaylistError, load_playlist

log = get_logger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="xaudio-tui", description="Terminal YouTube audio player"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--playlist",
        type=Path,
        default=None,
        help="Playlist file to load and save (overrides the configuration)",
    )
    parser.add_argument(
        "--player",
        default=None,
        help="mpv executable to launch (default: auto-detect on PATH)",
    )
    parser.add_argument(
        "--socket",
        default=None,
        help="Attach to an mpv already serving IPC on this path instead of spawning one",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override XAUDIO_TUI_LOG_LEVEL for this invocation",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write logs to this file instead of the default or XAUDIO_TUI_LOG_FILE",
    )
    parser.add_argument(
        "--probe",
        action="store_true",
        help="Check that mpv can be executed and exit.",
    )
    return parser.parse_args(argv)


def _probe(preferred: str | None) -> int:
    try:
        summary = probe_player(preferred)
    except PlayerError as exc:
        print(f"Player probe failed: {exc}")
        return 1
    print(summary)
    return 0


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    load_dotenv()
    configure_logging(
        level=args.log_level,
        log_file=str(args.log_file) if args.log_file is not None else None,
    )
    log.info("CLI invoked with config=%s", args.config)
    config = load_config(args.config)
    if args.playlist is not None:
        config.playlist_path = args.playlist.expanduser()
    if args.player is not None:
        config.player = args.player
    if args.socket is not None:
        config.ipc_path = args.socket

    if args.probe:
        raise SystemExit(_probe(config.player))

    try:
        playlist = load_playlist(config.playlist_path)
    except PlaylistError as exc:
        log.error("Starting with an empty playlist: %s", exc)
        playlist = []
    if not config.api_key:
        print(f"{ENV_API_KEY} is not set; searching will not work.")

    app = XaudioApp(config, playlist)
    log.info("Launching Textual application")
    try:
        app.run()
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received; exiting application")
        if app.is_running:
            app.exit()
        raise SystemExit(130) from None
    finally:
        configure_logging(app=None)
    if app.return_code:
        log_path = get_log_file_path()
        if log_path is not None:
            print(f"See {log_path} for details.")
        raise SystemExit(app.return_code)


if __name__ == "__main__":  # pragma: no cover
    main()
