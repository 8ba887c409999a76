"""Shared fixtures for Stream Minion tests."""

from typing import Callable, Optional

import pytest

from stream_minion.core.config import Config
from stream_minion.domain.auth.models import (
    PendingLogin,
    PollResult,
    SessionKind,
    StillPending,
    TokenSet,
)
from stream_minion.domain.auth.session import SessionStore
from stream_minion.domain.errors import RefreshFailed
from stream_minion.domain.models import QualityTier, StreamLocator, Track
from stream_minion.engine.commands import Command
from stream_minion.engine.loop import EventLoop
from stream_minion.engine.supervisor import IO_LANE, TaskHandle

START_TIME = 1_000.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingSupervisor:
    """Supervisor that records spawned operations and runs them on demand.

    Lets engine tests decide exactly when (and in which order) background
    work completes.
    """

    def __init__(self):
        self.tasks: list[tuple[TaskHandle, Callable, Optional[Callable]]] = []
        self.ran: set[int] = set()
        self.shut_down = False

    def spawn(
        self,
        operation,
        *,
        kind: str,
        lane: str = IO_LANE,
        track_id: Optional[str] = None,
        generation: Optional[int] = None,
        on_error=None,
    ) -> TaskHandle:
        handle = TaskHandle(
            task_id=len(self.tasks) + 1,
            kind=kind,
            lane=lane,
            track_id=track_id,
            generation=generation,
        )
        self.tasks.append((handle, operation, on_error))
        return handle

    def cancel(self, handle: Optional[TaskHandle]) -> bool:
        if handle is None or handle.task_id in self.ran or handle.cancelled:
            return False
        handle._cancelled.set()
        return True

    def shutdown(self, wait: bool = False) -> None:
        self.shut_down = True

    def handles(self, kind: Optional[str] = None) -> list[TaskHandle]:
        return [h for h, _, _ in self.tasks if kind is None or h.kind == kind]

    def pending(self, kind: Optional[str] = None) -> list[TaskHandle]:
        """Spawned, not yet run and not cancelled."""
        return [
            h
            for h in self.handles(kind)
            if h.task_id not in self.ran and not h.cancelled
        ]

    def run(self, handle: TaskHandle) -> Optional[Command]:
        """Execute a recorded operation (even a cancelled one) and return its result."""
        _, operation, on_error = next(t for t in self.tasks if t[0] is handle)
        self.ran.add(handle.task_id)
        try:
            return operation()
        except Exception as e:
            if on_error is None:
                raise
            return on_error(e)

    def complete(self, loop: EventLoop, kind: Optional[str] = None) -> list[Command]:
        """Run every pending task of ``kind``, deliver the results and pump."""
        results = []
        for handle in self.pending(kind):
            result = self.run(handle)
            if result is not None:
                results.append(result)
                loop.submit(result)
        loop.pump()
        return results


class FakeCatalog:
    """In-memory catalog provider."""

    def __init__(self, tracks: list[Track]):
        self.tracks = {track.id: track for track in tracks}
        self.favourites = list(tracks)
        self.resolved: list[tuple[str, QualityTier]] = []
        self.resolve_error: Optional[Exception] = None

    def resolve(self, track_id: str, quality: QualityTier, tokens: TokenSet) -> StreamLocator:
        self.resolved.append((track_id, quality))
        if self.resolve_error is not None:
            raise self.resolve_error
        return StreamLocator(track_id, f"https://cdn.example/{track_id}.flac", quality)

    def favourite_tracks(self, tokens: TokenSet) -> list[Track]:
        return list(self.favourites)

    def lookup_track(self, track_id: str, tokens: TokenSet) -> Track:
        return self.tracks[track_id]


class FakeBackend:
    """Audio backend that records calls."""

    def __init__(self, duration: float = 0.0):
        self.calls: list[tuple] = []
        self.duration = duration
        self.current_position = 0.0
        self.finished = False

    def load(self, locator: StreamLocator, start: float = 0.0) -> float:
        self.calls.append(("load", locator.track_id, start))
        return self.duration

    def play(self) -> None:
        self.calls.append(("play",))

    def pause(self) -> None:
        self.calls.append(("pause",))

    def stop(self) -> None:
        self.calls.append(("stop",))

    def seek(self, position: float) -> None:
        self.calls.append(("seek", position))

    def set_volume(self, volume: float) -> None:
        self.calls.append(("set_volume", volume))

    def position(self) -> float:
        return self.current_position

    def is_finished(self) -> bool:
        return self.finished

    def close(self) -> None:
        self.calls.append(("close",))


class FakeAuthenticator:
    """Authenticator with scripted login and refresh outcomes."""

    def __init__(self, kind: SessionKind, interval: float = 5.0):
        self.kind = kind
        self.interval = interval
        self.poll_results: list[PollResult] = []
        self.refresh_result: Optional[TokenSet] = None
        self.refresh_error: Optional[Exception] = None
        self.polls: list[Optional[str]] = []

    def start_login(self) -> PendingLogin:
        return PendingLogin(
            auth_url="https://link.example/ABCDE",
            poll_token="device-code",
            user_code="ABCDE",
            interval=self.interval,
            expires_in=300.0,
        )

    def poll(self, pending: PendingLogin, payload: Optional[str] = None) -> PollResult:
        self.polls.append(payload)
        if self.poll_results:
            return self.poll_results.pop(0)
        return StillPending()

    def refresh(self, tokens: TokenSet) -> TokenSet:
        if self.refresh_error is not None:
            raise self.refresh_error
        if self.refresh_result is not None:
            return self.refresh_result
        raise RefreshFailed("no scripted refresh", kind=self.kind.value)


def make_track(track_id: str, duration: float = 180.0, **kwargs) -> Track:
    return Track(
        id=track_id,
        title=kwargs.pop("title", f"Track {track_id}"),
        artist=kwargs.pop("artist", "Test Artist"),
        album=kwargs.pop("album", "Test Album"),
        duration=duration,
        available_quality_tiers=kwargs.pop(
            "tiers", (QualityTier.LOW, QualityTier.HIGH, QualityTier.LOSSLESS)
        ),
        **kwargs,
    )


def make_tokens(expires_at: float = START_TIME + 3600, **kwargs) -> TokenSet:
    return TokenSet(
        access_token=kwargs.pop("access_token", "access"),
        refresh_token=kwargs.pop("refresh_token", "refresh"),
        expires_at=expires_at,
        user_id=kwargs.pop("user_id", "42"),
        country_code=kwargs.pop("country_code", "US"),
    )


@pytest.fixture
def tracks() -> list[Track]:
    """Three tracks A, B, C."""
    return [make_track("A"), make_track("B"), make_track("C")]


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def authenticators() -> dict[SessionKind, FakeAuthenticator]:
    return {kind: FakeAuthenticator(kind) for kind in SessionKind}


@pytest.fixture
def sessions(authenticators, clock) -> SessionStore:
    """Session store with an ACTIVE streaming session."""
    store = SessionStore(authenticators, clock=clock)
    store.activate(SessionKind.STREAMING, make_tokens(), clock())
    return store


@pytest.fixture
def catalog(tracks) -> FakeCatalog:
    return FakeCatalog(tracks)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def supervisor() -> RecordingSupervisor:
    return RecordingSupervisor()


@pytest.fixture
def loop(config, sessions, catalog, backend, supervisor, clock, tracks) -> EventLoop:
    """Event loop over fakes with A, B, C queued."""
    event_loop = EventLoop(
        config, sessions, catalog, backend, supervisor=supervisor, clock=clock
    )
    event_loop.queue.set_tracks(tracks)
    return event_loop
