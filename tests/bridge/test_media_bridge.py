"""Tests for the media session bridge."""

from unittest.mock import patch

import pytest

from conftest import make_track
from stream_minion.bridge.media import (
    CombinedSession,
    MediaBridge,
    NotifySendSession,
    snapshot_metadata,
)
from stream_minion.domain.playback import transport
from stream_minion.domain.playback.transport import TransportState
from stream_minion.engine.commands import MediaKey, MediaKeyPressed, Seek, SeekRelative
from stream_minion.engine.snapshot import Snapshot


class RecordingSession:
    def __init__(self):
        self.updates = []

    def update(self, metadata, previous):
        self.updates.append((metadata, previous))


def snapshot(state: TransportState, sequence: int = 1) -> Snapshot:
    return Snapshot(sequence=sequence, transport=state)


def playing(track_id: str = "A", position: float = 0.0) -> TransportState:
    state = transport.begin_loading(TransportState(), make_track(track_id))
    return transport.report_position(transport.start_playing(state), position)


@pytest.fixture
def session() -> RecordingSession:
    return RecordingSession()


@pytest.fixture
def submitted() -> list:
    return []


@pytest.fixture
def bridge(session, submitted) -> MediaBridge:
    return MediaBridge(submitted.append, session)


class TestPublish:
    """Tests for change detection."""

    def test_first_snapshot_published(self, bridge, session):
        assert bridge.publish(snapshot(TransportState())) is True
        assert session.updates[0][1] is None

    def test_unchanged_fields_not_republished(self, bridge, session):
        bridge.publish(snapshot(playing(position=10.2), 1))
        assert bridge.publish(snapshot(playing(position=10.7), 2)) is False
        assert bridge.published == 1

    def test_whole_second_change_republished(self, bridge, session):
        bridge.publish(snapshot(playing(position=10.2)))
        assert bridge.publish(snapshot(playing(position=11.0))) is True
        assert session.updates[1][1]["position"] == 10

    def test_volume_change_ignored(self, bridge):
        bridge.publish(snapshot(playing()))
        assert bridge.publish(snapshot(transport.set_volume(playing(), 90))) is False

    def test_track_change_published(self, bridge, session):
        bridge.publish(snapshot(playing("A")))
        bridge.publish(snapshot(playing("B")))
        assert session.updates[-1][0]["title"] == "Track B"

    def test_failing_session_does_not_raise(self, submitted):
        class Broken:
            def update(self, metadata, previous):
                raise RuntimeError("dbus gone")

        bridge = MediaBridge(submitted.append, Broken())
        assert bridge.publish(snapshot(playing())) is True

    def test_metadata_fields(self):
        metadata = snapshot_metadata(snapshot(playing(position=42.9)))
        assert metadata["status"] == "playing"
        assert metadata["position"] == 42
        assert metadata["duration"] == 180
        assert metadata["album"] == "Test Album"


class TestMediaKeys:
    """Tests for forwarding media keys to the loop."""

    def test_key_submitted(self, bridge, submitted):
        bridge.on_media_key(MediaKey.NEXT)
        assert submitted == [MediaKeyPressed(MediaKey.NEXT)]


class TestNotifySendSession:
    """Tests for now-playing notifications."""

    def test_notifies_on_new_track(self):
        session = NotifySendSession()
        with patch("stream_minion.bridge.media.notifications.notify_track") as notify:
            session.update(snapshot_metadata(snapshot(playing("A"))), None)
            session.update(
                snapshot_metadata(snapshot(playing("A", 5))),
                snapshot_metadata(snapshot(playing("A"))),
            )
        notify.assert_called_once_with("Track A", "Test Artist", "Test Album")

    def test_notifies_on_error(self):
        session = NotifySendSession()
        failed = transport.fail(playing(), "Network error")
        with patch("stream_minion.bridge.media.notifications.notify_error") as notify:
            session.update(
                snapshot_metadata(snapshot(failed)), snapshot_metadata(snapshot(playing()))
            )
        notify.assert_called_once_with("Network error")

    def test_errors_can_be_silenced(self):
        session = NotifySendSession(show_errors=False)
        failed = transport.fail(playing(), "Network error")
        with patch("stream_minion.bridge.media.notifications.notify_error") as notify:
            session.update(snapshot_metadata(snapshot(failed)), None)
        notify.assert_not_called()

    def test_disabled(self):
        with patch("stream_minion.bridge.media.notifications.notify_track") as notify:
            NotifySendSession(enabled=False).update(snapshot_metadata(snapshot(playing())), None)
        notify.assert_not_called()


class TestSeek:
    """Tests for seek requests coming from the media session."""

    def test_absolute_seek(self, bridge, submitted):
        bridge.on_seek(90.0)
        assert submitted == [Seek(90.0)]

    def test_relative_seek(self, bridge, submitted):
        bridge.on_seek(-5.0, relative=True)
        assert submitted == [SeekRelative(-5.0)]

    def test_metadata_carries_track_id(self):
        assert snapshot_metadata(snapshot(playing("B")))["track_id"] == "B"


class TestCombinedSession:
    """Tests for fanning updates out to several sessions."""

    def test_every_session_updated(self):
        first, second = RecordingSession(), RecordingSession()
        CombinedSession(first, second).update({"title": "A"}, None)
        assert first.updates == second.updates == [({"title": "A"}, None)]

    def test_failing_session_does_not_block_others(self):
        class Broken:
            def update(self, metadata, previous):
                raise RuntimeError("dbus gone")

        healthy = RecordingSession()
        CombinedSession(Broken(), healthy).update({"title": "A"}, None)
        assert len(healthy.updates) == 1
