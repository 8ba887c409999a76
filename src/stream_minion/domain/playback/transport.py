"""
Transport state machine for Stream Minion

Pure functions over an immutable TransportState. Each transition checks
that the current status allows it and returns a new state; side effects
(resolving, talking to mpv) are the event loop's job.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional

from stream_minion.domain.errors import TransportError
from stream_minion.domain.models import QualityTier, Track


class TransportStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


IDLE = TransportStatus.IDLE
LOADING = TransportStatus.LOADING
PLAYING = TransportStatus.PLAYING
PAUSED = TransportStatus.PAUSED
ERROR = TransportStatus.ERROR

# Source statuses each transition may start from
_ALLOWED: dict[str, frozenset[TransportStatus]] = {
    "load": frozenset({IDLE, LOADING, PLAYING, PAUSED, ERROR}),
    "start": frozenset({LOADING}),
    "fail": frozenset({IDLE, LOADING, PLAYING, PAUSED}),
    "recover": frozenset({ERROR}),
    "pause": frozenset({PLAYING}),
    "resume": frozenset({PAUSED}),
    "stop": frozenset({LOADING, PLAYING, PAUSED, ERROR, IDLE}),
    "seek": frozenset({PLAYING, PAUSED}),
    "advance_clock": frozenset({PLAYING}),
}


class TransportState(NamedTuple):
    """Immutable transport state."""

    status: TransportStatus = IDLE
    error: Optional[str] = None  # Human-readable reason while status is ERROR
    track: Optional[Track] = None
    position: float = 0.0
    duration: float = 0.0
    volume: int = 50
    quality: QualityTier = QualityTier.HIGH
    resume_at: float = 0.0  # Position to restore after a quality reload

    def __getattr__(self, name: str) -> Any:
        """Provide helpful error for missing attributes, especially with_* methods."""
        if name.startswith("with_"):
            raise AttributeError(
                f"TransportState is a NamedTuple and does not have '{name}' method. "
                f"Use '._replace({name[5:]}=value)' instead."
            )
        raise AttributeError(f"TransportState has no attribute '{name}'")

    @property
    def is_active(self) -> bool:
        """True while a track is loading, playing or paused."""
        return self.status in (LOADING, PLAYING, PAUSED)


def can(state: TransportState, action: str) -> bool:
    return state.status in _ALLOWED[action]


def _require(state: TransportState, action: str) -> None:
    if not can(state, action):
        raise TransportError(action, state.status.value)


def clamp_volume(volume: float) -> int:
    """Clamp a requested volume into 0..100."""
    return int(max(0, min(100, round(volume))))


def begin_loading(
    state: TransportState, track: Track, resume_at: float = 0.0
) -> TransportState:
    """Enter LOADING for ``track`` (new selection or quality reload)."""
    _require(state, "load")
    return state._replace(
        status=LOADING,
        error=None,
        track=track,
        position=resume_at,
        duration=track.duration,
        resume_at=resume_at,
    )


def start_playing(state: TransportState) -> TransportState:
    """LOADING -> PLAYING once the stream resolved and was handed to the backend."""
    _require(state, "start")
    return state._replace(status=PLAYING, error=None)


def fail(state: TransportState, reason: str) -> TransportState:
    """Enter ERROR with a human-readable reason."""
    _require(state, "fail")
    return state._replace(status=ERROR, error=reason, position=0.0, resume_at=0.0)


def recover(state: TransportState) -> TransportState:
    """ERROR -> IDLE after the error was surfaced; keeps the reason out of the way."""
    _require(state, "recover")
    return state._replace(status=IDLE, error=None, track=None, position=0.0, duration=0.0)


def pause(state: TransportState) -> TransportState:
    _require(state, "pause")
    return state._replace(status=PAUSED)


def resume(state: TransportState) -> TransportState:
    _require(state, "resume")
    return state._replace(status=PLAYING)


def stop(state: TransportState) -> TransportState:
    """Any status -> IDLE, clearing the current track."""
    _require(state, "stop")
    return state._replace(
        status=IDLE, error=None, track=None, position=0.0, duration=0.0, resume_at=0.0
    )


def seek(state: TransportState, position: float) -> TransportState:
    """Move to ``position`` seconds, clamped into the track's duration."""
    _require(state, "seek")
    position = max(0.0, position)
    if state.duration > 0:
        position = min(position, state.duration)
    return state._replace(position=position)


def advance_clock(state: TransportState, elapsed: float) -> TransportState:
    """Advance position by wall-clock ``elapsed`` seconds while PLAYING."""
    _require(state, "advance_clock")
    if elapsed <= 0:
        return state
    return state._replace(position=state.position + elapsed)


def report_position(state: TransportState, position: float) -> TransportState:
    """Apply a position measured by the audio backend (authoritative over the clock)."""
    if not state.is_active or position < 0:
        return state
    return state._replace(position=position)


def set_volume(state: TransportState, volume: float) -> TransportState:
    """Volume changes apply in every status and never change it."""
    return state._replace(volume=clamp_volume(volume))


def set_quality(state: TransportState, quality: QualityTier) -> TransportState:
    return state._replace(quality=quality)


def track_finished(state: TransportState) -> bool:
    """True once a PLAYING track reached its known duration."""
    return state.status == PLAYING and state.duration > 0 and state.position >= state.duration


def set_duration(state: TransportState, duration: float) -> TransportState:
    """Fill in the duration the backend measured when the catalog had none."""
    if duration <= 0 or state.duration > 0:
        return state
    return state._replace(duration=duration)
