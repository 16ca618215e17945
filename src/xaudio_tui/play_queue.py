"""Play-queue ordering for sequential and shuffled playback."""
from __future__ import annotations

import random
from typing import Optional

from .logging_utils import get_logger

log = get_logger(__name__)


def build_queue(
    length: int, shuffle: bool, *, rng: Optional[random.Random] = None
) -> list[int]:
    """Return a traversal order over ``range(length)``.

    The result is the identity order when *shuffle* is false and a uniformly
    random permutation otherwise. Every index appears exactly once.
    """

    order = list(range(max(length, 0)))
    if shuffle and len(order) > 1:
        (rng or random).shuffle(order)
    return order


class PlayQueue:
    """Traversal order over playlist positions plus a cursor into it."""

    __slots__ = ("_order", "_cursor", "_length", "_shuffle", "_rng")

    def __init__(
        self,
        length: int = 0,
        shuffle: bool = False,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._length = max(length, 0)
        self._shuffle = shuffle
        self._rng = rng
        self._order: list[int] = []
        self._cursor = 0
        self.rebuild()

    @property
    def order(self) -> tuple[int, ...]:
        return tuple(self._order)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def shuffle(self) -> bool:
        return self._shuffle

    def __len__(self) -> int:
        return len(self._order)

    def rebuild(
        self, length: Optional[int] = None, shuffle: Optional[bool] = None
    ) -> None:
        """Regenerate the order and reset the cursor to the first position."""

        if length is not None:
            self._length = max(length, 0)
        if shuffle is not None:
            self._shuffle = shuffle
        self._order = build_queue(self._length, self._shuffle, rng=self._rng)
        self._cursor = 0
        log.debug(
            "Play queue rebuilt (length=%d, shuffle=%s)", self._length, self._shuffle
        )

    def current(self) -> Optional[int]:
        """Return the playlist index at the cursor."""

        if not self._order:
            return None
        return self._order[self._cursor]

    def next(self) -> Optional[int]:
        """Advance the cursor, rebuilding the order once it is exhausted."""

        if not self._order:
            return None
        if self._cursor < len(self._order) - 1:
            self._cursor += 1
        else:
            self.rebuild()
        return self.current()

    def previous(self) -> Optional[int]:
        """Step the cursor back; stays on the first position."""

        if not self._order:
            return None
        if self._cursor > 0:
            self._cursor -= 1
        return self.current()

    def seek(self, playlist_index: int) -> bool:
        """Move the cursor to the position holding *playlist_index*."""

        try:
            self._cursor = self._order.index(playlist_index)
        except ValueError:
            return False
        return True


__all__ = ["PlayQueue", "build_queue"]
