"""Playlist entries and their flat-file persistence."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .logging_utils import get_logger

log = get_logger(__name__)

PLAYLIST_PATH = Path.home() / ".xaudio-playlist"
SEPARATOR = " - "


@dataclass(frozen=True, slots=True)
class PlaylistEntry:
    """A single video in the playlist or in a search result set."""

    id: str
    title: str = field(compare=False)

    def as_line(self) -> str:
        return f"{self.id}{SEPARATOR}{self.title}"


class PlaylistError(RuntimeError):
    """Raised when the playlist file cannot be read or written."""


def parse_playlist(lines: Iterable[str]) -> list[PlaylistEntry]:
    """Parse ``<id> - <title>`` lines, skipping any without the separator."""

    entries: list[PlaylistEntry] = []
    for line_number, raw_line in enumerate(lines, start=1):
        video_id, separator, title = raw_line.rstrip("\r\n").partition(SEPARATOR)
        if not separator:
            if raw_line.strip():
                log.debug("Skipping playlist line %d without separator", line_number)
            continue
        entries.append(PlaylistEntry(id=video_id, title=title.strip()))
    return entries


def load_playlist(path: Optional[Path] = None) -> list[PlaylistEntry]:
    """Load the persisted playlist, returning an empty list when absent."""

    playlist_path = path or PLAYLIST_PATH
    if not playlist_path.exists():
        log.info("No playlist found at %s; starting empty", playlist_path)
        return []
    try:
        raw = playlist_path.read_text(encoding="utf8")
    except OSError as exc:
        raise PlaylistError(f"Failed to read playlist {playlist_path}: {exc}") from exc
    entries = parse_playlist(raw.splitlines())
    log.info("Loaded %d playlist entries from %s", len(entries), playlist_path)
    return entries


def save_playlist(entries: Sequence[PlaylistEntry], path: Optional[Path] = None) -> None:
    """Write *entries* to disk, replacing any previous content."""

    playlist_path = path or PLAYLIST_PATH
    payload = "".join(f"{entry.as_line()}\n" for entry in entries)
    try:
        playlist_path.parent.mkdir(parents=True, exist_ok=True)
        playlist_path.write_text(payload, encoding="utf8")
    except OSError as exc:
        raise PlaylistError(f"Failed to write playlist {playlist_path}: {exc}") from exc
    log.debug("Saved %d playlist entries to %s", len(entries), playlist_path)


__all__ = [
    "PLAYLIST_PATH",
    "PlaylistEntry",
    "PlaylistError",
    "load_playlist",
    "parse_playlist",
    "save_playlist",
]
