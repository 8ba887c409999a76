"""
Immutable engine snapshots.

One Snapshot is published per applied command. Renderers, the media bridge
and the control socket read these and never the live engine state.
"""

from typing import Any, NamedTuple, Optional

from stream_minion.domain.auth.models import Session, SessionKind, SessionStatus
from stream_minion.domain.models import Track
from stream_minion.domain.playback.queue import RepeatMode
from stream_minion.domain.playback.transport import TransportState


class SessionView(NamedTuple):
    """What the UI may show about a session (never the tokens)."""

    kind: SessionKind
    status: SessionStatus
    auth_url: Optional[str] = None
    user_code: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionView":
        pending = session.pending
        return cls(
            kind=session.kind,
            status=session.status,
            auth_url=pending.auth_url if pending else None,
            user_code=pending.user_code if pending else None,
            error=session.error,
        )


class Snapshot(NamedTuple):
    """State of the engine after one applied command.

    Attributes:
        sequence: Increases by one per published snapshot
        transport: Transport state
        generation: Current resolve generation
        queue_length: Number of tracks in the queue
        queue_position: Cursor position in play order, None when empty
        current: Track under the queue cursor
        upcoming: Next few tracks in play order
        shuffle: Whether shuffle is on
        repeat: Repeat mode
        sessions: Session views by kind
        library_loading: True while a library fetch is in flight
        message: Latest user-facing message
        message_level: Level of ``message`` (info, warning, error)
    """

    sequence: int
    transport: TransportState
    generation: int = 0
    queue_length: int = 0
    queue_position: Optional[int] = None
    current: Optional[Track] = None
    upcoming: tuple[Track, ...] = ()
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.OFF
    sessions: tuple[SessionView, ...] = ()
    library_loading: bool = False
    message: Optional[str] = None
    message_level: str = "info"

    def session(self, kind: SessionKind) -> Optional[SessionView]:
        return next((view for view in self.sessions if view.kind == kind), None)

    def summary(self) -> dict[str, Any]:
        """JSON-friendly summary for the control socket's ``status`` command."""
        track = self.transport.track
        return {
            "status": self.transport.status.value,
            "error": self.transport.error,
            "title": track.title if track else None,
            "artist": track.artist if track else None,
            "album": track.album if track else None,
            "position": round(self.transport.position, 1),
            "duration": self.transport.duration,
            "volume": self.transport.volume,
            "quality": self.transport.quality.value,
            "shuffle": self.shuffle,
            "repeat": self.repeat.value,
            "queue_length": self.queue_length,
            "sessions": {view.kind.value: view.status.value for view in self.sessions},
        }
