"""Tests for the MPRIS media session."""

from unittest.mock import MagicMock

import pytest

from stream_minion.bridge.mpris import (
    MPRIS_PATH,
    NO_TRACK,
    PLAYER_INTERFACE,
    MprisSession,
    changed_properties,
    mpris_metadata,
    playback_status,
    track_object_path,
)
from stream_minion.engine.commands import MediaKey


def now_playing(**overrides) -> dict:
    metadata = {
        "track_id": "12345",
        "title": "Track A",
        "artist": "Test Artist",
        "album": "Test Album",
        "status": "playing",
        "position": 42,
        "duration": 180,
        "error": None,
    }
    metadata.update(overrides)
    return metadata


class FakeGLib:
    """Stands in for gi.repository.GLib: variants as tuples, idle callbacks run inline."""

    @staticmethod
    def Variant(signature, value):
        return (signature, value)

    @staticmethod
    def idle_add(callback, *args):
        callback(*args)


@pytest.fixture
def received() -> dict:
    return {"keys": [], "seeks": []}


@pytest.fixture
def session(received) -> MprisSession:
    return MprisSession(
        received["keys"].append, lambda seconds, relative: received["seeks"].append((seconds, relative))
    )


@pytest.fixture
def connected(session) -> MprisSession:
    """Session wired to a fake bus without a real D-Bus connection."""
    session._glib = FakeGLib
    session._bus = MagicMock()
    return session


class TestMetadataMapping:
    """Tests for mapping now-playing fields onto MPRIS."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("playing", "Playing"),
            ("loading", "Playing"),
            ("paused", "Paused"),
            ("idle", "Stopped"),
            ("error", "Stopped"),
            (None, "Stopped"),
        ],
    )
    def test_playback_status(self, status, expected):
        assert playback_status({"status": status}) == expected

    def test_track_path_is_valid_object_path(self):
        assert track_object_path("12345") == "/org/stream_minion/track/12345"
        assert track_object_path("a-b.c") == "/org/stream_minion/track/a_b_c"
        assert track_object_path(None) == NO_TRACK

    def test_metadata_fields(self):
        metadata = mpris_metadata(now_playing())
        assert metadata["xesam:title"] == ("s", "Track A")
        assert metadata["xesam:artist"] == ("as", ["Test Artist"])
        assert metadata["xesam:album"] == ("s", "Test Album")
        assert metadata["mpris:length"] == ("x", 180_000_000)
        assert metadata["mpris:trackid"] == ("o", "/org/stream_minion/track/12345")

    def test_metadata_without_track(self):
        assert mpris_metadata(now_playing(title=None)) == {"mpris:trackid": ("o", NO_TRACK)}

    def test_changed_properties_first_update_sends_everything(self):
        changes = changed_properties(now_playing(), None)
        assert set(changes) == {"PlaybackStatus", "Metadata", "CanPlay", "CanPause", "CanSeek"}

    def test_position_only_change_sends_nothing(self):
        """Position is read by clients, not signalled."""
        assert changed_properties(now_playing(position=43), now_playing()) == {}

    def test_pause_sends_status_only(self):
        changes = changed_properties(now_playing(status="paused"), now_playing())
        assert changes == {"PlaybackStatus": ("s", "Paused")}


class TestPlayerMethods:
    """Tests for D-Bus calls turning into media keys and seeks."""

    @pytest.mark.parametrize(
        "method,key",
        [
            ("PlayPause", MediaKey.PLAY_PAUSE),
            ("Play", MediaKey.PLAY),
            ("Pause", MediaKey.PAUSE),
            ("Next", MediaKey.NEXT),
            ("Previous", MediaKey.PREVIOUS),
            ("Stop", MediaKey.STOP),
        ],
    )
    def test_method_forwards_key(self, session, received, method, key):
        getattr(session, method)()
        assert received["keys"] == [key]

    def test_seek_is_relative_seconds(self, session, received):
        session.Seek(-5_000_000)
        assert received["seeks"] == [(-5.0, True)]

    def test_set_position_for_current_track(self, session, received):
        session.update(now_playing(), None)
        session.SetPosition("/org/stream_minion/track/12345", 90_000_000)
        assert received["seeks"] == [(90.0, False)]

    def test_set_position_for_other_track_ignored(self, session, received):
        session.update(now_playing(), None)
        session.SetPosition("/org/stream_minion/track/999", 90_000_000)
        assert received["seeks"] == []

    def test_properties_follow_latest_update(self, session):
        session.update(now_playing(status="paused", position=12), None)
        assert session.PlaybackStatus == "Paused"
        assert session.Position == 12_000_000
        assert session.CanSeek is True
        assert session.Identity == "Stream Minion"


class TestSignals:
    """Tests for PropertiesChanged emission."""

    def test_update_before_start_emits_nothing(self, session):
        session.update(now_playing(), None)
        assert session.connected is False

    def test_update_emits_properties_changed(self, connected):
        connected.update(now_playing(status="paused"), now_playing())

        connected._bus.con.emit_signal.assert_called_once()
        args = connected._bus.con.emit_signal.call_args.args
        assert args[1] == MPRIS_PATH
        assert args[3] == "PropertiesChanged"
        signature, (interface, changed, invalidated) = args[4]
        assert signature == "(sa{sv}as)"
        assert interface == PLAYER_INTERFACE
        assert changed == {"PlaybackStatus": ("s", "Paused")}
        assert invalidated == []

    def test_unchanged_update_emits_nothing(self, connected):
        connected.update(now_playing(position=50), now_playing())
        connected._bus.con.emit_signal.assert_not_called()

    def test_metadata_wrapped_as_variants(self, connected):
        connected.update(now_playing(), None)
        assert connected.Metadata["xesam:title"] == ("s", "Track A")

    def test_stop_unpublishes(self, connected):
        publication = MagicMock()
        main_loop = MagicMock()
        connected._publication = publication
        connected._main_loop = main_loop

        connected.stop()

        publication.unpublish.assert_called_once()
        main_loop.quit.assert_called_once()
        assert connected.connected is False
