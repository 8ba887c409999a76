"""Error taxonomy for Stream Minion.

Every error surfaced to the user derives from StreamMinionError so the UI can
render a readable reason without knowing which layer raised it.
"""

from typing import Optional


class StreamMinionError(Exception):
    """Base exception for Stream Minion operations."""

    pass


class ConfigError(StreamMinionError):
    """Raised when configuration is unreadable or invalid."""

    pass


# Sessions


class SessionError(StreamMinionError):
    """Base exception for authentication sessions."""

    def __init__(self, message: str, kind: Optional[str] = None):
        self.kind = kind
        super().__init__(message)


class SessionRequired(SessionError):
    """Raised when a command needs a session that is not active."""

    def __init__(self, kind: str):
        super().__init__(f"{kind} login required", kind=kind)


class SessionExpired(SessionError):
    """Raised when a remote call is rejected because the token expired."""

    pass


class RefreshFailed(SessionError):
    """Raised when a refresh token can no longer be exchanged.

    Attributes:
        transient: True when retrying later may succeed (network, 5xx)
    """

    def __init__(self, message: str, kind: Optional[str] = None, transient: bool = False):
        self.transient = transient
        super().__init__(message, kind=kind)


class LoginFailed(SessionError):
    """Raised when a login flow is denied, malformed, or rejected."""

    pass


# Stream resolution


class ResolveError(StreamMinionError):
    """Base exception for turning a track into a playable stream."""

    pass


class NotFound(ResolveError):
    """Raised when the catalog has no such track or no playable asset."""

    pass


class QuotaExceeded(ResolveError):
    """Raised when the catalog rate-limits or the account hit its stream limit."""

    pass


class TransientError(ResolveError):
    """Raised for network failures and 5xx responses."""

    pass


# Playback


class PlaybackError(StreamMinionError):
    """Base exception for the audio output backend."""

    pass


class DecodeError(PlaybackError):
    """Raised when the backend cannot open or decode a stream."""

    pass


class DeviceError(PlaybackError):
    """Raised when the audio device or player process is unavailable."""

    pass


# Queue


class QueueError(StreamMinionError):
    """Base exception for queue operations."""

    pass


class EmptyQueue(QueueError):
    """Raised when an operation needs a track but the queue is empty."""

    def __init__(self, message: str = "Queue is empty"):
        super().__init__(message)


class OutOfBounds(QueueError):
    """Raised when an index does not address a queue entry."""

    def __init__(self, index: int, size: int):
        self.index = index
        self.size = size
        super().__init__(f"Index {index} out of bounds for queue of {size}")


# Engine


class OperationTimeout(StreamMinionError, TimeoutError):
    """Raised when login polling or stream resolution exceeds its deadline."""

    pass


class TransportError(StreamMinionError):
    """Raised on a transport transition that the current status does not allow."""

    def __init__(self, action: str, status: str):
        self.action = action
        self.status = status
        super().__init__(f"Cannot {action} while {status}")


def describe_error(error: BaseException) -> str:
    """Human-readable reason for an error, used in snapshots and history."""
    labels = {
        NotFound: "Track not available",
        QuotaExceeded: "Streaming quota exceeded",
        TransientError: "Network error",
        DecodeError: "Could not decode stream",
        DeviceError: "Audio device unavailable",
        OperationTimeout: "Timed out",
        SessionExpired: "Session expired",
    }
    for error_type, label in labels.items():
        if isinstance(error, error_type):
            detail = str(error)
            return f"{label}: {detail}" if detail else label
    return str(error) or error.__class__.__name__
