"""
OS media session bridge.

Mirrors now-playing metadata from engine snapshots to a desktop media
session and turns media keys back into loop commands. Metadata is pushed
only when one of the published fields changed, so the bridge can subscribe
to every snapshot without spamming the session.
"""

from typing import Any, Callable, Optional, Protocol

from loguru import logger

from stream_minion import notifications
from stream_minion.domain.playback.transport import ERROR, PLAYING
from stream_minion.engine.commands import Command, MediaKey, MediaKeyPressed, Seek, SeekRelative
from stream_minion.engine.snapshot import Snapshot

PUBLISHED_FIELDS = ("title", "artist", "album", "status", "position", "duration")


class MediaSession(Protocol):
    """Desktop media session the bridge publishes into."""

    def update(self, metadata: dict[str, Any], previous: Optional[dict[str, Any]]) -> None: ...


class NotifySendSession:
    """Media session backed by notify-send.

    Shows a notification when a new track starts playing and, if enabled,
    when playback enters an error.
    """

    def __init__(self, enabled: bool = True, show_errors: bool = True):
        self.enabled = enabled
        self.show_errors = show_errors

    def update(self, metadata: dict[str, Any], previous: Optional[dict[str, Any]]) -> None:
        if not self.enabled:
            return

        previous = previous or {}
        status = metadata.get("status")
        started = status == PLAYING.value and (
            previous.get("status") != PLAYING.value
            or previous.get("title") != metadata.get("title")
            or previous.get("artist") != metadata.get("artist")
        )
        if started and metadata.get("title"):
            notifications.notify_track(
                metadata["title"], metadata.get("artist") or "", metadata.get("album") or ""
            )
        elif status == ERROR.value and previous.get("status") != ERROR.value and self.show_errors:
            notifications.notify_error(metadata.get("error") or "Playback error")


class CombinedSession:
    """Fans updates out to several sessions; one failing does not stop the rest."""

    def __init__(self, *sessions: MediaSession):
        self.sessions = list(sessions)

    def update(self, metadata: dict[str, Any], previous: Optional[dict[str, Any]]) -> None:
        for session in self.sessions:
            try:
                session.update(metadata, previous)
            except Exception:
                logger.exception(f"{type(session).__name__} update failed")


def snapshot_metadata(snapshot: Snapshot) -> dict[str, Any]:
    """Extract the published now-playing fields from a snapshot."""
    transport = snapshot.transport
    track = transport.track
    return {
        "track_id": track.id if track else None,
        "title": track.title if track else None,
        "artist": track.artist if track else None,
        "album": track.album if track else None,
        "status": transport.status.value,
        # Whole seconds; sub-second clock advances are not republished
        "position": int(transport.position),
        "duration": int(transport.duration),
        "error": transport.error,
    }


class MediaBridge:
    """Connects the event loop to an OS media session.

    Args:
        submit: Thread-safe command sink (EventLoop.submit)
        session: Media session to publish into
    """

    def __init__(self, submit: Callable[[Command], None], session: MediaSession):
        self._submit = submit
        self.session = session
        self._last: Optional[dict[str, Any]] = None
        self.published = 0

    def publish(self, snapshot: Snapshot) -> bool:
        """Push metadata if any published field changed; returns True if pushed."""
        metadata = snapshot_metadata(snapshot)
        if self._last is not None and all(
            metadata[name] == self._last.get(name) for name in PUBLISHED_FIELDS
        ):
            return False

        previous, self._last = self._last, metadata
        self.published += 1
        try:
            self.session.update(metadata, previous)
        except Exception:
            logger.exception("Media session update failed")
        return True

    def on_media_key(self, key: MediaKey) -> None:
        """Forward a media key to the loop. Safe from any thread."""
        logger.debug(f"Media key received: {key.value}")
        self._submit(MediaKeyPressed(key))

    def on_seek(self, seconds: float, relative: bool = False) -> None:
        """Forward a seek request from the media session. Safe from any thread."""
        self._submit(SeekRelative(seconds) if relative else Seek(seconds))
