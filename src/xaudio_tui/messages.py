"""Values exchanged between the presentation loop and the backend coordinator.

Commands travel from the UI to the coordinator, messages travel back. Both
sides only ever see these immutable values; neither reaches into the other's
state.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .playlist import PlaylistEntry

ENTER_KEY = "\n"
TAB_KEY = "\t"
ESCAPE_KEY = "\x1b"
BACKSPACE_KEY = "\x7f"
SPACE_KEY = " "


class AppMode(Enum):
    """Exclusive UI context deciding the active bindings and list."""

    PLAYING = "playing"
    SEARCH_INPUT = "search-input"
    SEARCH_BROWSE = "search-browse"

    @property
    def label(self) -> str:
        if self is AppMode.PLAYING:
            return "Now Playing"
        return "Song Search"


@dataclass(frozen=True, slots=True)
class KeyInput:
    """A single key press, normalised to a character."""

    char: str


# Commands (UI -> coordinator)


@dataclass(frozen=True, slots=True)
class Search:
    keyword: str
    generation: int = 0


@dataclass(frozen=True, slots=True)
class Play:
    video_id: str


@dataclass(frozen=True, slots=True)
class SetPause:
    paused: bool


@dataclass(frozen=True, slots=True)
class SavePlaylist:
    entries: tuple[PlaylistEntry, ...]


Command = Union[Search, Play, SetPause, SavePlaylist]


# Messages (coordinator -> UI)


@dataclass(frozen=True, slots=True)
class DisplaySearchResult:
    results: tuple[PlaylistEntry, ...]
    generation: int = 0


@dataclass(frozen=True, slots=True)
class SearchFailed:
    reason: str
    generation: int = 0


@dataclass(frozen=True, slots=True)
class SongStarted:
    started_at: float


@dataclass(frozen=True, slots=True)
class SongStopped:
    reason: str

    @property
    def finished(self) -> bool:
        """True when the track ran to its natural end."""

        return self.reason == "eof"


@dataclass(frozen=True, slots=True)
class SongDuration:
    seconds: float


@dataclass(frozen=True, slots=True)
class OperationFailed:
    reason: str


@dataclass(frozen=True, slots=True)
class PlaybackUnavailable:
    reason: Optional[str] = None


Message = Union[
    DisplaySearchResult,
    SearchFailed,
    SongStarted,
    SongStopped,
    SongDuration,
    OperationFailed,
    PlaybackUnavailable,
]


__all__ = [
    "AppMode",
    "BACKSPACE_KEY",
    "Command",
    "DisplaySearchResult",
    "ENTER_KEY",
    "ESCAPE_KEY",
    "KeyInput",
    "Message",
    "OperationFailed",
    "Play",
    "PlaybackUnavailable",
    "SPACE_KEY",
    "SavePlaylist",
    "Search",
    "SearchFailed",
    "SetPause",
    "SongDuration",
    "SongStarted",
    "SongStopped",
    "TAB_KEY",
]
