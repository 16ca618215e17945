"""Textual application hosting the presentation loop."""
from __future__ import annotations

import asyncio
import functools
import threading
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

try:
    from textual import events
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.widgets import Static
except ModuleNotFoundError as exc:  # pragma: no cover - dependency guard
    raise ModuleNotFoundError(
        "The 'textual' package is required to run xaudio_tui. "
        "Install dependencies with 'pip install -e .[dev]'."
    ) from exc

from rich.text import Text

from .channels import CommandMailbox, MessageChannel, create_channels
from .config import AppConfig
from .coordinator import BackendCoordinator
from .logging_utils import configure_logging, get_logger
from .messages import (
    BACKSPACE_KEY,
    ENTER_KEY,
    ESCAPE_KEY,
    SPACE_KEY,
    TAB_KEY,
    AppMode,
    KeyInput,
    Message,
    Search,
)
from .paging import format_clock, truncate
from .playlist import PlaylistEntry
from .state import AppState, Event, Transition, update
from .youtube import YouTubeClient, resolve_stream_url

log = get_logger(__name__)

Backend = Callable[[CommandMailbox, MessageChannel[Message]], Awaitable[None]]

TITLE_PADDING = 12
HEADER_TITLE_WIDTH = 60
RULE = "─"
EMPTY_LIST_TEXT = "Nothing to show. Hit search and add something here."

SELECTED_STYLE = "reverse"
HIGHLIGHT_STYLE = "bold blue"

PLAYING_HELP = (
    "[/] Search  [x] Remove  [Enter] Play  [n/p] Next/Prev  "
    "[s] Shuffle {shuffle}  [Space] Pause  [Tab] Back to search  [q] Quit"
)
BROWSE_HELP = (
    "[j/k] Up/Down    [<] Previous page    [>] Next page    "
    "[/] Search    [Enter] Add    [q] Back"
)

_NAMED_KEYS = {
    "enter": ENTER_KEY,
    "tab": TAB_KEY,
    "escape": ESCAPE_KEY,
    "backspace": BACKSPACE_KEY,
    "ctrl+h": BACKSPACE_KEY,
    "space": SPACE_KEY,
}


def key_from_event(event: events.Key) -> Optional[str]:
    """Translate a Textual key event into the character the state machine uses."""

    named = _NAMED_KEYS.get(event.key)
    if named is not None:
        return named
    if event.is_printable and event.character:
        return event.character
    return None


def render_header(state: AppState, now: float, width: int) -> Text:
    """Now-playing line (or the mode label) followed by a rule."""

    text = Text(no_wrap=True, overflow="ellipsis")
    if state.is_playing and state.now_playing is not None:
        marker = "⏸" if state.is_paused else "▶"
        shuffle = "~" if state.is_shuffle else ""
        text.append(
            f"{marker}{shuffle} {truncate(state.now_playing.title, HEADER_TITLE_WIDTH)}"
            f" - {format_clock(state.elapsed(now))} / {format_clock(state.song_duration)}"
        )
    else:
        text.append(state.mode.label)
    text.append("\n" + RULE * max(width, 0))
    return text


def _highlighted_rows(state: AppState, rows: Sequence[PlaylistEntry]) -> set[int]:
    if state.mode is AppMode.PLAYING:
        if not state.is_playing or state.playing_index is None:
            return set()
        start = state.page * state.page_size
        local = state.playing_index - start
        return {local} if 0 <= local < len(rows) else set()
    in_playlist = {entry.id for entry in state.playlist}
    return {row for row, entry in enumerate(rows) if entry.id in in_playlist}


def render_list(state: AppState, width: int) -> Text:
    """Numbered rows of the current page plus the page indicator."""

    rows = state.page_items()
    if not rows:
        return Text(EMPTY_LIST_TEXT)
    highlighted = _highlighted_rows(state, rows)
    first_number = state.page * state.page_size + 1
    text = Text(no_wrap=True, overflow="ellipsis")
    for row, entry in enumerate(rows):
        styles = []
        if row == state.selected:
            styles.append(SELECTED_STYLE)
        if row in highlighted:
            styles.append(HIGHLIGHT_STYLE)
        label = f"{first_number + row}. {truncate(entry.title, width - TITLE_PADDING)}"
        text.append(label, style=" ".join(styles) or None)
        text.append("\n")
    text.append(f"Page: {state.page + 1}/{state.total_pages}")
    return text


def render_footer(state: AppState, width: int) -> Text:
    """Rule, the mode's instructions (or search box / loading), then the status."""

    text = Text(RULE * max(width, 0) + "\n", no_wrap=True, overflow="ellipsis")
    if state.loading:
        text.append(" Loading...")
    elif state.mode is AppMode.SEARCH_INPUT:
        text.append(f" Search: {state.keyword}█")
    elif state.mode is AppMode.SEARCH_BROWSE:
        text.append(" " + BROWSE_HELP)
    else:
        text.append(" " + PLAYING_HELP.format(shuffle="ON" if state.is_shuffle else "OFF"))
    text.append("\n")
    if state.status:
        text.append(" " + state.status, style="italic")
    return text


_INLINE_DEFAULT_CSS = """
Screen {
    layout: vertical;
    overflow: hidden;
}

#now-playing {
    height: 2;
}

#track-list {
    height: 1fr;
}

#footer {
    height: 3;
    dock: bottom;
}
"""

DEFAULT_CSS = _INLINE_DEFAULT_CSS


class XaudioApp(App[None]):
    """Render the state, feed it keys, and drain backend messages every tick."""

    CSS = DEFAULT_CSS
    CSS_PATH: list[str] = []
    ENABLE_COMMAND_PALETTE = False

    # Tab and Escape would otherwise be claimed by focus handling.
    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
        Binding("ctrl+q", "quit", "Quit", show=False, priority=True),
        Binding("tab", "send_key('tab')", show=False, priority=True),
        Binding("escape", "send_key('escape')", show=False, priority=True),
    ]

    def __init__(
        self,
        config: AppConfig,
        playlist: Sequence[PlaylistEntry] = (),
        *,
        backend: Optional[Backend] = None,
    ) -> None:
        super().__init__()
        self._config = config
        self.state = AppState(
            playlist=list(playlist), dedupe_playlist=config.dedupe_playlist
        )
        self._commands, self._messages = create_channels(config.command_buffer)
        self._backend: Backend = backend or self._run_coordinator
        self._backend_task: Optional[asyncio.Task[None]] = None
        self._stopping = False
        self._app_thread_id: int = threading.get_ident()
        log.info("XaudioApp initialized with %d playlist entries", len(self.state.playlist))

    @property
    def commands(self) -> CommandMailbox:
        return self._commands

    @property
    def messages(self) -> MessageChannel[Message]:
        return self._messages

    def compose(self) -> ComposeResult:
        yield Static(id="now-playing", markup=False)
        yield Static(id="track-list", markup=False)
        yield Static(id="footer", markup=False)

    def on_mount(self) -> None:
        log.debug("Application mounted")
        self._app_thread_id = threading.get_ident()
        configure_logging(app=self)
        self.state.set_terminal_height(self.size.height)
        loop = asyncio.get_running_loop()
        self._backend_task = loop.create_task(self._backend(self._commands, self._messages))
        self._backend_task.add_done_callback(self._on_backend_done)
        self.set_interval(self._config.poll_interval, self._on_tick)
        self.render_state()

    def on_unmount(self) -> None:
        configure_logging(app=None)
        task = self._backend_task
        if task is not None and not task.done():
            task.cancel()

    def on_resize(self, event: events.Resize) -> None:
        self.state.set_terminal_height(event.size.height)
        self.render_state()

    async def on_key(self, event: events.Key) -> None:
        char = key_from_event(event)
        if char is None:
            return
        event.stop()
        event.prevent_default()
        await self.send_key(char)

    async def send_key(self, char: str) -> None:
        """Apply one key press and act on the resulting transition."""

        transition = self.apply_event(KeyInput(char))
        if transition.quit:
            await self.action_quit()
            return
        self.render_state()

    async def action_send_key(self, name: str) -> None:
        await self.send_key(_NAMED_KEYS[name])

    async def action_quit(self) -> None:
        await self._stop_backend()
        self.exit()

    def apply_event(self, event: Event) -> Transition:
        """Run the state machine and hand its commands to the coordinator."""

        transition = update(self.state, event)
        for command in transition.commands:
            if not self._commands.offer(command):
                log.debug("Coordinator busy; %s was dropped", type(command).__name__)
                if isinstance(command, Search):
                    # No reply will ever arrive for this generation.
                    self.state.loading = False
                    self.state.status = "Busy, search not sent"
        return transition

    def _on_tick(self) -> None:
        for message in self._messages.drain():
            self.apply_event(message)
        self.render_state()

    def show_status(self, message: str) -> None:
        self.state.status = message
        self.render_state()

    def render_state(self) -> None:
        width = self.size.width
        now = time.monotonic()
        targets = (
            ("#now-playing", lambda: render_header(self.state, now, width)),
            ("#track-list", lambda: render_list(self.state, width)),
            ("#footer", lambda: render_footer(self.state, width)),
        )
        for selector, build in targets:
            widget = self._query_optional_widget(selector, Static)
            if widget is not None:
                widget.update(build())

    def _query_optional_widget(
        self, query: str, widget_type: Optional[type[Any]] = None
    ) -> Optional[Any]:
        """Return the first matching widget if it exists."""

        try:
            if widget_type is None:
                return self.query_one(query)
            return self.query_one(query, widget_type)
        except Exception:
            return None

    async def _run_coordinator(
        self, commands: CommandMailbox, messages: MessageChannel[Message]
    ) -> None:
        config = self._config
        client = YouTubeClient(
            config.api_key,
            timeout=config.request_timeout,
            max_results=config.search_results,
        )
        coordinator = BackendCoordinator(
            commands,
            messages,
            client=client,
            playlist_path=config.playlist_path,
            ipc_path=config.ipc_path,
            preferred_player=config.player,
            resolver=functools.partial(resolve_stream_url, resolver=config.resolver),
        )
        await coordinator.run()

    def _on_backend_done(self, task: asyncio.Task[None]) -> None:
        if self._stopping or task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            message = "Playback backend stopped unexpectedly"
        else:
            message = f"Playback backend failed: {exc}"
        log.error(message, exc_info=exc)
        self.exit(return_code=1, message=message)

    async def _stop_backend(self) -> None:
        self._stopping = True
        task, self._backend_task = self._backend_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:  # pragma: no cover - shutdown is best-effort
            log.exception("Backend raised during shutdown")


__all__ = [
    "DEFAULT_CSS",
    "XaudioApp",
    "key_from_event",
    "render_footer",
    "render_header",
    "render_list",
]
