"""Application state and the transition function driving it.

:func:`update` is the only place the state changes. It never performs I/O;
side effects are returned as :class:`Transition` commands for the caller to
hand to the backend coordinator.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from .logging_utils import get_logger
from .messages import (
    BACKSPACE_KEY,
    ENTER_KEY,
    ESCAPE_KEY,
    SPACE_KEY,
    TAB_KEY,
    AppMode,
    Command,
    DisplaySearchResult,
    KeyInput,
    Message,
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
from .paging import items_on_page, paginate, total_pages
from .play_queue import PlayQueue
from .playlist import PlaylistEntry

log = get_logger(__name__)

# Rows used by the header, separators, page footer and status/instruction bar.
RESERVED_ROWS = 6


@dataclass(slots=True)
class Transition:
    """Outcome of a single :func:`update` step."""

    commands: list[Command] = field(default_factory=list)
    quit: bool = False


@dataclass
class AppState:
    """Everything the UI knows, owned exclusively by the presentation loop."""

    playlist: list[PlaylistEntry] = field(default_factory=list)
    mode: AppMode = AppMode.PLAYING
    search_results: list[PlaylistEntry] = field(default_factory=list)
    page: int = 0
    page_size: int = 1
    selected: int = 0
    keyword: str = ""
    loading: bool = False
    is_playing: bool = False
    is_paused: bool = False
    playing_index: Optional[int] = None
    now_playing: Optional[PlaylistEntry] = None
    song_start_time: float = 0.0
    song_duration: float = 0.0
    paused_at: Optional[float] = None
    search_generation: int = 0
    status: str = ""
    dedupe_playlist: bool = False
    queue: PlayQueue = field(default_factory=PlayQueue)

    def __post_init__(self) -> None:
        self.playlist = list(self.playlist)
        self.page_size = max(self.page_size, 1)
        self.queue.rebuild(len(self.playlist))

    @property
    def is_shuffle(self) -> bool:
        return self.queue.shuffle

    @property
    def active_list(self) -> list[PlaylistEntry]:
        """The list shown and navigated in the current mode."""

        if self.mode is AppMode.PLAYING:
            return self.playlist
        return self.search_results

    @property
    def total_pages(self) -> int:
        return total_pages(len(self.active_list), self.page_size)

    def page_items(self) -> Sequence[PlaylistEntry]:
        return paginate(self.active_list, self.page, self.page_size)

    def selected_position(self) -> Optional[int]:
        """Index of the highlighted row in :attr:`active_list`, if any."""

        count = items_on_page(len(self.active_list), self.page, self.page_size)
        if not 0 <= self.selected < count:
            return None
        return self.page * self.page_size + self.selected

    def elapsed(self, now: float) -> float:
        """Seconds the current track has been sounding."""

        if not self.is_playing:
            return 0.0
        reference = self.paused_at if self.is_paused and self.paused_at is not None else now
        return max(reference - self.song_start_time, 0.0)

    def set_page_size(self, size: int) -> None:
        self.page_size = max(size, 1)
        _clamp_cursor(self)

    def set_terminal_height(self, height: int) -> None:
        self.set_page_size(height - RESERVED_ROWS)


Event = Union[KeyInput, Message]


def _switch_mode(state: AppState, mode: AppMode) -> None:
    state.mode = mode
    state.selected = 0
    state.page = 0


def _clamp_cursor(state: AppState) -> None:
    pages = state.total_pages
    if pages == 0:
        state.page = 0
        state.selected = 0
        return
    if state.page > pages - 1:
        state.page = pages - 1
    count = items_on_page(len(state.active_list), state.page, state.page_size)
    if state.selected > count - 1:
        state.selected = max(count - 1, 0)


def _save(state: AppState) -> Command:
    return SavePlaylist(tuple(state.playlist))


def _play_index(state: AppState, playlist_index: Optional[int]) -> Transition:
    if playlist_index is None or not 0 <= playlist_index < len(state.playlist):
        return Transition()
    entry = state.playlist[playlist_index]
    state.playing_index = playlist_index
    state.now_playing = entry
    log.info("Requesting playback of %s (%s)", entry.title, entry.id)
    return Transition([Play(entry.id)])


def _move_selection(state: AppState, step: int) -> Transition:
    count = items_on_page(len(state.active_list), state.page, state.page_size)
    target = state.selected + step
    if 0 <= target < count:
        state.selected = target
    return Transition()


def _change_page(state: AppState, step: int) -> Transition:
    target = state.page + step
    if 0 <= target < state.total_pages:
        state.page = target
    state.selected = 0
    return Transition()


def _play_selected(state: AppState) -> Transition:
    position = state.selected_position()
    if position is None:
        return Transition()
    state.queue.seek(position)
    return _play_index(state, position)


def _play_next(state: AppState) -> Transition:
    return _play_index(state, state.queue.next())


def _play_previous(state: AppState) -> Transition:
    return _play_index(state, state.queue.previous())


def _remove_selected(state: AppState) -> Transition:
    position = state.selected_position()
    if position is None:
        return Transition()
    removed = state.playlist.pop(position)
    if state.playing_index is not None:
        if position == state.playing_index:
            state.playing_index = None
        elif position < state.playing_index:
            state.playing_index -= 1
    state.queue.rebuild(len(state.playlist))
    _clamp_cursor(state)
    state.status = f"Removed {removed.title}"
    log.info("Removed %s (%s) from playlist", removed.title, removed.id)
    return Transition([_save(state)])


def _add_selected(state: AppState) -> Transition:
    position = state.selected_position()
    if position is None:
        return Transition()
    entry = state.search_results[position]
    if state.dedupe_playlist and entry in state.playlist:
        state.status = f"Already in playlist: {entry.title}"
        return Transition()
    state.playlist.append(entry)
    state.queue.rebuild(len(state.playlist))
    state.status = f"Added {entry.title}"
    log.info("Added %s (%s) to playlist", entry.title, entry.id)
    return Transition([_save(state)])


def _toggle_shuffle(state: AppState) -> Transition:
    state.queue.rebuild(shuffle=not state.queue.shuffle)
    state.status = f"Shuffle {'on' if state.is_shuffle else 'off'}"
    return Transition()


def _toggle_pause(state: AppState, now: float) -> Transition:
    if not state.is_playing:
        return Transition()
    if state.is_paused:
        if state.paused_at is not None:
            state.song_start_time += now - state.paused_at
        state.is_paused = False
        state.paused_at = None
    else:
        state.is_paused = True
        state.paused_at = now
    return Transition([SetPause(state.is_paused)])


def _submit_search(state: AppState) -> Transition:
    keyword = state.keyword.strip()
    if not keyword:
        return Transition()
    state.search_generation += 1
    state.loading = True
    log.info("Searching for %r (generation %d)", keyword, state.search_generation)
    return Transition([Search(keyword, state.search_generation)])


def _enter_search_input(state: AppState) -> Transition:
    _switch_mode(state, AppMode.SEARCH_INPUT)
    state.keyword = ""
    return Transition()


def _enter_mode(mode: AppMode) -> Callable[[AppState, float], Transition]:
    def handler(state: AppState, now: float) -> Transition:
        _switch_mode(state, mode)
        return Transition()

    return handler


KeyHandler = Callable[[AppState, float], Transition]

_PLAYING_KEYS: dict[str, KeyHandler] = {
    ENTER_KEY: lambda state, now: _play_selected(state),
    "/": lambda state, now: _enter_search_input(state),
    TAB_KEY: _enter_mode(AppMode.SEARCH_BROWSE),
    "j": lambda state, now: _move_selection(state, 1),
    "k": lambda state, now: _move_selection(state, -1),
    "x": lambda state, now: _remove_selected(state),
    ">": lambda state, now: _change_page(state, 1),
    "<": lambda state, now: _change_page(state, -1),
    "n": lambda state, now: _play_next(state),
    "p": lambda state, now: _play_previous(state),
    "s": lambda state, now: _toggle_shuffle(state),
    SPACE_KEY: _toggle_pause,
    "q": lambda state, now: Transition(quit=True),
}

_SEARCH_BROWSE_KEYS: dict[str, KeyHandler] = {
    ESCAPE_KEY: _enter_mode(AppMode.PLAYING),
    "q": _enter_mode(AppMode.PLAYING),
    "/": lambda state, now: _enter_search_input(state),
    ">": lambda state, now: _change_page(state, 1),
    "<": lambda state, now: _change_page(state, -1),
    "j": lambda state, now: _move_selection(state, 1),
    "k": lambda state, now: _move_selection(state, -1),
    ENTER_KEY: lambda state, now: _add_selected(state),
}


def _search_input_key(state: AppState, char: str) -> Transition:
    if char == ESCAPE_KEY:
        _switch_mode(state, AppMode.PLAYING)
    elif char == BACKSPACE_KEY:
        state.keyword = state.keyword[:-1]
    elif char == ENTER_KEY:
        return _submit_search(state)
    elif len(char) == 1 and char.isprintable():
        state.keyword += char
    return Transition()


def handle_key(state: AppState, key: KeyInput, now: float) -> Transition:
    """Apply a key press according to the active mode's bindings."""

    if state.mode is AppMode.PLAYING:
        handler = _PLAYING_KEYS.get(key.char)
        return handler(state, now) if handler else Transition()
    if state.mode is AppMode.SEARCH_BROWSE:
        handler = _SEARCH_BROWSE_KEYS.get(key.char)
        return handler(state, now) if handler else Transition()
    if state.mode is AppMode.SEARCH_INPUT:
        return _search_input_key(state, key.char)
    raise TypeError(f"Unhandled mode: {state.mode!r}")


def handle_message(state: AppState, message: Message) -> Transition:
    """Apply a notification from the backend coordinator, in any mode."""

    if isinstance(message, DisplaySearchResult):
        if message.generation != state.search_generation:
            log.debug("Discarding stale search result (generation %d)", message.generation)
            return Transition()
        state.search_results = list(message.results)
        _switch_mode(state, AppMode.SEARCH_BROWSE)
        state.loading = False
        state.status = f"{len(state.search_results)} result(s)"
        return Transition()
    if isinstance(message, SearchFailed):
        if message.generation != state.search_generation:
            log.debug("Discarding stale search failure (generation %d)", message.generation)
            return Transition()
        state.loading = False
        state.status = f"Search failed: {message.reason}"
        return Transition()
    if isinstance(message, SongStarted):
        state.is_playing = True
        state.is_paused = False
        state.paused_at = None
        state.song_start_time = message.started_at
        return Transition()
    if isinstance(message, SongStopped):
        state.is_playing = False
        state.is_paused = False
        state.paused_at = None
        if message.finished:
            return _play_next(state)
        return Transition()
    if isinstance(message, SongDuration):
        state.song_duration = message.seconds
        return Transition()
    if isinstance(message, OperationFailed):
        state.status = message.reason
        return Transition()
    if isinstance(message, PlaybackUnavailable):
        state.is_playing = False
        state.is_paused = False
        state.status = "Playback unavailable" + (f": {message.reason}" if message.reason else "")
        return Transition()
    raise TypeError(f"Unhandled message: {message!r}")


def update(state: AppState, event: Event, *, now: Optional[float] = None) -> Transition:
    """Advance *state* by one key press or backend message."""

    if now is None:
        now = time.monotonic()
    if isinstance(event, KeyInput):
        return handle_key(state, event, now)
    return handle_message(state, event)


__all__ = [
    "AppState",
    "Event",
    "RESERVED_ROWS",
    "Transition",
    "handle_key",
    "handle_message",
    "update",
]
