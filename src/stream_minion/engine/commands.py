"""
Commands accepted by the event loop.

Every user intent, timer tick, task completion and media key arrives as one
of these frozen dataclasses. Completions carry the generation they were
issued under so the loop can drop stale ones.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from stream_minion.domain.auth.models import PendingLogin, PollResult, RefreshResult, SessionKind
from stream_minion.domain.models import QualityTier, StreamLocator, Track


class MediaKey(str, Enum):
    PLAY_PAUSE = "playpause"
    PLAY = "play"
    PAUSE = "pause"
    NEXT = "next"
    PREVIOUS = "previous"
    STOP = "stop"


@dataclass(frozen=True)
class Command:
    """Marker base type for loop commands."""

    pass


# Transport


@dataclass(frozen=True)
class Play(Command):
    pass


@dataclass(frozen=True)
class Pause(Command):
    pass


@dataclass(frozen=True)
class TogglePlayPause(Command):
    pass


@dataclass(frozen=True)
class Stop(Command):
    pass


@dataclass(frozen=True)
class Next(Command):
    """Advance to the next track; ``track_ended`` when synthesized at end of track."""

    track_ended: bool = False


@dataclass(frozen=True)
class Previous(Command):
    pass


@dataclass(frozen=True)
class Seek(Command):
    position: float


@dataclass(frozen=True)
class SeekRelative(Command):
    delta: float


@dataclass(frozen=True)
class SetVolume(Command):
    volume: float


@dataclass(frozen=True)
class ChangeVolume(Command):
    delta: float


@dataclass(frozen=True)
class SetQuality(Command):
    quality: QualityTier


@dataclass(frozen=True)
class CycleQuality(Command):
    pass


@dataclass(frozen=True)
class Recover(Command):
    """Leave ERROR for IDLE once the error was surfaced."""

    pass


# Queue


@dataclass(frozen=True)
class ToggleShuffle(Command):
    pass


@dataclass(frozen=True)
class CycleRepeat(Command):
    pass


@dataclass(frozen=True)
class SetTracks(Command):
    tracks: tuple[Track, ...]
    start_index: int = 0
    play: bool = False


@dataclass(frozen=True)
class PlayIndex(Command):
    """Select a track by its position in the original order and play it."""

    index: int


@dataclass(frozen=True)
class LoadLibrary(Command):
    pass


@dataclass(frozen=True)
class LibraryLoaded(Command):
    tracks: tuple[Track, ...] = ()
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class AddTrack(Command):
    """Look up a track by id and append it to the queue."""

    track_id: str


@dataclass(frozen=True)
class TrackLookedUp(Command):
    track: Optional[Track] = None
    error: Optional[BaseException] = None


# Sessions


@dataclass(frozen=True)
class LoginStart(Command):
    kind: SessionKind


@dataclass(frozen=True)
class LoginPending(Command):
    kind: SessionKind
    pending: Optional[PendingLogin] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class LoginPoll(Command):
    """Check a pending login; ``payload`` is the pasted redirect URL for the API flow."""

    kind: SessionKind
    payload: Optional[str] = None


@dataclass(frozen=True)
class LoginCompleted(Command):
    kind: SessionKind
    result: PollResult


@dataclass(frozen=True)
class Logout(Command):
    kind: SessionKind


@dataclass(frozen=True)
class TokenRefreshed(Command):
    kind: SessionKind
    result: RefreshResult


# Timers and task completions


@dataclass(frozen=True)
class Tick(Command):
    at: float


@dataclass(frozen=True)
class StreamResolved(Command):
    track_id: str
    generation: int
    locator: Optional[StreamLocator] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class PlaybackStarted(Command):
    generation: int
    duration: float = 0.0


@dataclass(frozen=True)
class PlaybackFailed(Command):
    generation: int
    error: BaseException = field(default_factory=lambda: RuntimeError("playback failed"))


@dataclass(frozen=True)
class PositionReported(Command):
    generation: int
    position: float
    finished: bool = False


# Outside world


@dataclass(frozen=True)
class MediaKeyPressed(Command):
    key: MediaKey


@dataclass(frozen=True)
class Quit(Command):
    pass

