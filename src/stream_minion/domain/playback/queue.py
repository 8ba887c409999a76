"""
Play queue for Stream Minion

Ordered track list plus shuffle permutation, cursor and repeat mode. Owned
by the event loop; never touched from worker threads.
"""

import random
from enum import Enum
from typing import Optional, Sequence

from loguru import logger

from stream_minion.domain.errors import OutOfBounds
from stream_minion.domain.models import Track


class RepeatMode(str, Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"

    def next(self) -> "RepeatMode":
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class Direction(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"


def fisher_yates_shuffle(items: list[int], rng: Optional[random.Random] = None) -> list[int]:
    """In-place unbiased Fisher–Yates (Knuth) shuffle.

    Args:
        items: List to shuffle. Will be mutated in place.
        rng: Optional ``random.Random`` instance for deterministic testing.

    Returns:
        The same list (shuffled in place) for convenience.
    """
    rng = rng or random.Random()
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


class PlayQueue:
    """Track list with an optional shuffled play order.

    ``current_index`` is a position in the play order (the shuffled order when
    shuffle is on, otherwise the original order). It is None exactly when the
    queue is empty.
    """

    def __init__(
        self,
        tracks: Sequence[Track] = (),
        repeat_mode: RepeatMode = RepeatMode.OFF,
        rng: Optional[random.Random] = None,
    ):
        self._rng = rng or random.Random()
        self.tracks: list[Track] = []
        self.shuffled_order: Optional[list[int]] = None
        self.current_index: Optional[int] = None
        self.repeat_mode = repeat_mode
        if tracks:
            self.set_tracks(tracks)

    def __len__(self) -> int:
        return len(self.tracks)

    @property
    def shuffle_enabled(self) -> bool:
        return self.shuffled_order is not None

    def play_order(self) -> list[int]:
        """Indices into ``tracks`` in the order they will play."""
        if self.shuffled_order is not None:
            return list(self.shuffled_order)
        return list(range(len(self.tracks)))

    def set_tracks(self, tracks: Sequence[Track], start_index: int = 0) -> Optional[Track]:
        """Replace the queue contents and select ``start_index`` (original order).

        Shuffle stays enabled if it was on; a new permutation is drawn with the
        selected track first.

        Raises:
            OutOfBounds: If ``start_index`` does not address a track
        """
        tracks = list(tracks)
        if tracks and not 0 <= start_index < len(tracks):
            raise OutOfBounds(start_index, len(tracks))

        was_shuffled = self.shuffle_enabled
        self.tracks = tracks
        self.shuffled_order = None
        self.current_index = start_index if tracks else None

        if was_shuffled and tracks:
            self._shuffle_around_current()

        logger.debug(
            f"Queue set: {len(tracks)} tracks, start={start_index}, shuffle={was_shuffled}"
        )
        return self.current()

    def append(self, track: Track) -> None:
        """Add a track at the end of the play order."""
        self.tracks.append(track)
        if self.shuffled_order is not None:
            self.shuffled_order.append(len(self.tracks) - 1)
        if self.current_index is None:
            self.current_index = 0

    def clear(self) -> None:
        self.tracks = []
        self.shuffled_order = None
        self.current_index = None

    def current(self) -> Optional[Track]:
        """Currently selected track, or None when the queue is empty."""
        if self.current_index is None:
            return None
        return self.tracks[self.play_order()[self.current_index]]

    def select(self, index: int) -> Track:
        """Select a track by its position in the original order.

        Raises:
            OutOfBounds: If ``index`` does not address a track
        """
        if not 0 <= index < len(self.tracks):
            raise OutOfBounds(index, len(self.tracks))
        self.current_index = self.play_order().index(index)
        return self.tracks[index]

    def toggle_shuffle(self) -> bool:
        """Toggle shuffle, keeping the current track selected.

        Turning shuffle on draws a fresh permutation with the current track in
        front; turning it off restores the original order.

        Returns:
            True if shuffle is now enabled
        """
        if self.shuffle_enabled:
            original_index = self._current_track_index()
            self.shuffled_order = None
            self.current_index = original_index
            logger.debug("Shuffle disabled")
            return False

        self._shuffle_around_current()
        logger.debug("Shuffle enabled")
        return True

    def cycle_repeat(self) -> RepeatMode:
        self.repeat_mode = self.repeat_mode.next()
        return self.repeat_mode

    def peek(self, direction: Direction = Direction.NEXT) -> Optional[Track]:
        """Track that ``advance(direction)`` would select, without moving."""
        target = self._target_index(direction)
        if target is None:
            return None
        return self.tracks[self.play_order()[target]]

    def advance(self, direction: Direction = Direction.NEXT) -> Optional[Track]:
        """Move the cursor according to ``repeat_mode``.

        OFF stops at either end, ALL wraps around, ONE re-selects the current
        track. Returns None (and leaves the cursor alone) when there is
        nothing to move to, including on an empty queue.
        """
        target = self._target_index(direction)
        if target is None:
            return None
        self.current_index = target
        return self.current()

    def upcoming(self, count: int) -> list[Track]:
        """Up to ``count`` tracks after the current one in play order (no wrap)."""
        if self.current_index is None:
            return []
        order = self.play_order()
        start = self.current_index + 1
        return [self.tracks[i] for i in order[start : start + count]]

    def validate(self) -> list[str]:
        """Check queue invariants and return a list of problems (empty when sound)."""
        issues = []
        size = len(self.tracks)
        if size == 0 and self.current_index is not None:
            issues.append("current_index set on empty queue")
        if size and (self.current_index is None or not 0 <= self.current_index < size):
            issues.append(f"current_index {self.current_index} invalid for {size} tracks")
        if self.shuffled_order is not None and sorted(self.shuffled_order) != list(range(size)):
            issues.append("shuffled_order is not a permutation of the track indices")
        return issues

    def _current_track_index(self) -> Optional[int]:
        if self.current_index is None:
            return None
        return self.play_order()[self.current_index]

    def _shuffle_around_current(self) -> None:
        current = self._current_track_index()
        if current is None:
            self.shuffled_order = []
            return
        rest = [i for i in range(len(self.tracks)) if i != current]
        fisher_yates_shuffle(rest, rng=self._rng)
        self.shuffled_order = [current] + rest
        self.current_index = 0

    def _target_index(self, direction: Direction) -> Optional[int]:
        if self.current_index is None:
            return None
        if self.repeat_mode == RepeatMode.ONE:
            return self.current_index

        size = len(self.tracks)
        step = 1 if direction == Direction.NEXT else -1
        target = self.current_index + step
        if 0 <= target < size:
            return target
        if self.repeat_mode == RepeatMode.ALL:
            return target % size
        return None
