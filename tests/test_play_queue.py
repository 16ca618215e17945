import random

import pytest

from xaudio_tui.play_queue import PlayQueue, build_queue


@pytest.mark.parametrize("length", [0, 1, 2, 7, 50])
@pytest.mark.parametrize("shuffle", [False, True])
def test_build_queue_is_a_permutation(length: int, shuffle: bool) -> None:
    order = build_queue(length, shuffle, rng=random.Random(length))
    assert sorted(order) == list(range(length))


def test_build_queue_identity_without_shuffle() -> None:
    assert build_queue(5, False) == [0, 1, 2, 3, 4]


def test_next_walks_in_order_and_wraps() -> None:
    queue = PlayQueue(3)
    assert queue.current() == 0
    assert [queue.next() for _ in range(4)] == [1, 2, 0, 1]


def test_next_on_empty_queue_returns_none() -> None:
    queue = PlayQueue(0)
    assert queue.next() is None
    assert queue.previous() is None
    assert queue.current() is None


def test_previous_stays_at_start() -> None:
    queue = PlayQueue(3)
    assert queue.previous() == 0
    queue.next()
    queue.next()
    assert queue.previous() == 1
    assert queue.cursor == 1


def test_shuffled_queue_reshuffles_after_exhaustion() -> None:
    queue = PlayQueue(6, shuffle=True, rng=random.Random(3))
    seen = [queue.current()] + [queue.next() for _ in range(5)]
    assert sorted(seen) == list(range(6))
    following = queue.next()
    assert queue.cursor == 0
    assert following == queue.order[0]
    assert sorted(queue.order) == list(range(6))


def test_rebuild_resets_cursor() -> None:
    queue = PlayQueue(4)
    queue.next()
    queue.rebuild(length=2)
    assert queue.cursor == 0
    assert queue.order == (0, 1)
    queue.rebuild(shuffle=True)
    assert queue.shuffle is True
    assert sorted(queue.order) == [0, 1]


def test_seek_moves_cursor_to_playlist_index() -> None:
    queue = PlayQueue(4)
    assert queue.seek(2) is True
    assert queue.next() == 3
    assert queue.seek(9) is False
