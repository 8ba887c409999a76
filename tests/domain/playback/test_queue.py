"""Tests for the play queue."""

import random

import pytest

from conftest import make_track
from stream_minion.domain.errors import OutOfBounds
from stream_minion.domain.playback.queue import (
    Direction,
    PlayQueue,
    RepeatMode,
    fisher_yates_shuffle,
)


@pytest.fixture
def queue(tracks) -> PlayQueue:
    return PlayQueue(tracks, rng=random.Random(7))


class TestPlayQueue:
    """Tests for cursor movement and repeat modes."""

    def test_empty_queue(self):
        queue = PlayQueue()
        assert queue.current() is None
        assert queue.current_index is None
        assert queue.advance() is None
        assert queue.validate() == []

    def test_set_tracks_selects_start(self, tracks):
        queue = PlayQueue()
        assert queue.set_tracks(tracks, start_index=1).id == "B"
        assert queue.current_index == 1

    def test_set_tracks_out_of_bounds(self, tracks):
        with pytest.raises(OutOfBounds):
            PlayQueue().set_tracks(tracks, start_index=3)

    def test_advance_repeat_off_stops_at_end(self, queue):
        assert queue.advance().id == "B"
        assert queue.advance().id == "C"
        assert queue.advance() is None
        assert queue.current().id == "C"

    def test_previous_stops_at_start(self, queue):
        assert queue.advance(Direction.PREVIOUS) is None
        assert queue.current().id == "A"

    def test_repeat_all_wraps_both_ways(self, queue):
        queue.repeat_mode = RepeatMode.ALL
        assert queue.advance(Direction.PREVIOUS).id == "C"
        assert queue.advance().id == "A"

    @pytest.mark.parametrize("direction", [Direction.NEXT, Direction.PREVIOUS])
    @pytest.mark.parametrize("shuffled", [False, True])
    def test_repeat_all_full_cycle_returns_to_start(self, queue, direction, shuffled):
        """N steps in either direction stay in bounds and come back around."""
        queue.repeat_mode = RepeatMode.ALL
        if shuffled:
            queue.toggle_shuffle()
        start = queue.current()

        for _ in range(len(queue)):
            assert queue.advance(direction) is not None
            assert queue.validate() == []

        assert queue.current() == start

    def test_repeat_one_stays(self, queue):
        queue.repeat_mode = RepeatMode.ONE
        assert queue.advance().id == "A"
        assert queue.peek(Direction.PREVIOUS).id == "A"

    def test_cycle_repeat(self, queue):
        assert queue.cycle_repeat() == RepeatMode.ALL
        assert queue.cycle_repeat() == RepeatMode.ONE
        assert queue.cycle_repeat() == RepeatMode.OFF

    def test_select_uses_original_index(self, queue):
        queue.toggle_shuffle()
        assert queue.select(2).id == "C"
        assert queue.current().id == "C"

    def test_select_out_of_bounds(self, queue):
        with pytest.raises(OutOfBounds) as excinfo:
            queue.select(5)
        assert excinfo.value.size == 3

    def test_upcoming(self, queue):
        assert [t.id for t in queue.upcoming(5)] == ["B", "C"]

    def test_append(self, queue):
        queue.append(make_track("D"))
        assert len(queue) == 4
        assert queue.validate() == []

    def test_append_to_empty_selects_it(self):
        queue = PlayQueue()
        queue.append(make_track("D"))
        assert queue.current().id == "D"


class TestShuffle:
    """Tests for shuffle keeping the current track."""

    def test_shuffle_keeps_current_track_first(self, queue):
        queue.advance()
        assert queue.toggle_shuffle() is True
        assert queue.current().id == "B"
        assert queue.current_index == 0
        assert queue.validate() == []

    def test_unshuffle_restores_original_position(self, queue):
        queue.toggle_shuffle()
        queue.advance()
        playing = queue.current()

        assert queue.toggle_shuffle() is False
        assert queue.current() == playing
        assert queue.current_index == queue.tracks.index(playing)
        assert queue.play_order() == list(range(len(queue.tracks)))

    def test_shuffle_survives_set_tracks(self, queue, tracks):
        queue.toggle_shuffle()
        queue.set_tracks(tracks, start_index=2)
        assert queue.shuffle_enabled
        assert queue.current().id == "C"
        assert sorted(queue.play_order()) == [0, 1, 2]

    def test_append_while_shuffled(self, queue):
        queue.toggle_shuffle()
        queue.append(make_track("D"))
        assert queue.play_order()[-1] == 3
        assert queue.validate() == []

    def test_fisher_yates_is_permutation(self):
        items = list(range(20))
        shuffled = fisher_yates_shuffle(items[:], rng=random.Random(1))
        assert sorted(shuffled) == items

    def test_fisher_yates_deterministic_with_seed(self):
        first = fisher_yates_shuffle(list(range(10)), rng=random.Random(3))
        second = fisher_yates_shuffle(list(range(10)), rng=random.Random(3))
        assert first == second
