"""Tests for the transport state machine."""

import pytest

from conftest import make_track
from stream_minion.domain.errors import TransportError
from stream_minion.domain.playback import transport
from stream_minion.domain.playback.transport import (
    ERROR,
    IDLE,
    LOADING,
    PAUSED,
    PLAYING,
    TransportState,
)


@pytest.fixture
def playing() -> TransportState:
    state = transport.begin_loading(TransportState(), make_track("A", duration=200.0))
    return transport.start_playing(state)


class TestTransitions:
    """Tests for allowed and rejected transitions."""

    def test_load_then_play(self, playing):
        assert playing.status == PLAYING
        assert playing.track.id == "A"
        assert playing.duration == 200.0

    def test_start_requires_loading(self):
        with pytest.raises(TransportError) as excinfo:
            transport.start_playing(TransportState())
        assert excinfo.value.action == "start"
        assert excinfo.value.status == "idle"

    def test_pause_resume(self, playing):
        paused = transport.pause(playing)
        assert paused.status == PAUSED
        assert transport.resume(paused).status == PLAYING

    def test_pause_requires_playing(self):
        with pytest.raises(TransportError):
            transport.pause(TransportState())

    def test_fail_then_recover(self, playing):
        failed = transport.fail(playing, "Network error")
        assert failed.status == ERROR
        assert failed.error == "Network error"

        recovered = transport.recover(failed)
        assert recovered.status == IDLE
        assert recovered.error is None
        assert recovered.track is None

    def test_stop_clears_track(self, playing):
        stopped = transport.stop(playing)
        assert stopped.status == IDLE
        assert stopped.track is None
        assert stopped.position == 0.0

    def test_reload_keeps_resume_point(self, playing):
        reloading = transport.begin_loading(playing, playing.track, resume_at=30.0)
        assert reloading.status == LOADING
        assert reloading.position == 30.0
        assert reloading.resume_at == 30.0

    def test_replace_hint(self):
        with pytest.raises(AttributeError, match="_replace"):
            TransportState().with_status(PLAYING)


class TestPositionAndVolume:
    """Tests for clamping and clock advance."""

    def test_seek_clamped(self, playing):
        assert transport.seek(playing, -5).position == 0.0
        assert transport.seek(playing, 500).position == 200.0

    def test_seek_not_allowed_when_idle(self):
        assert not transport.can(TransportState(), "seek")

    def test_advance_clock_and_finish(self, playing):
        state = transport.advance_clock(playing, 199.0)
        assert not transport.track_finished(state)
        state = transport.advance_clock(state, 1.0)
        assert transport.track_finished(state)

    def test_negative_elapsed_ignored(self, playing):
        assert transport.advance_clock(playing, -3.0) == playing

    def test_report_position_ignored_when_idle(self):
        assert transport.report_position(TransportState(), 10.0).position == 0.0

    @pytest.mark.parametrize(
        "requested,expected",
        [(-10, 0), (0, 0), (55.4, 55), (100, 100), (250, 100)],
    )
    def test_volume_clamped(self, requested, expected):
        assert transport.set_volume(TransportState(), requested).volume == expected

    def test_volume_in_every_status(self, playing):
        assert transport.set_volume(playing, 80).status == PLAYING

    def test_set_duration_fills_unknown_only(self):
        state = transport.begin_loading(TransportState(), make_track("X", duration=0.0))
        assert transport.set_duration(state, 123.0).duration == 123.0

        known = transport.begin_loading(TransportState(), make_track("Y", duration=90.0))
        assert transport.set_duration(known, 123.0).duration == 90.0
