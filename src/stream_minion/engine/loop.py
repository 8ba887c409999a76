"""
Event loop for Stream Minion

The single owner of sessions, queue and transport. Terminal keys, timer
ticks, task completions and media keys all arrive through ``submit`` and are
applied one at a time in arrival order; after each one a Snapshot is
published to subscribers.

Background work goes through the TaskSupervisor and comes back as commands.
Resolve and audio results carry the generation they were issued under; a
result from an older generation is dropped without touching state.
"""

import queue
import threading
import time
from collections import deque
from typing import Callable, Optional

from loguru import logger

from stream_minion.core.config import Config
from stream_minion.domain.auth.models import Active, Failed, SessionKind, SessionStatus
from stream_minion.domain.auth.session import SessionStore
from stream_minion.domain.catalog.provider import CatalogProvider
from stream_minion.domain.errors import (
    EmptyQueue,
    OperationTimeout,
    QueueError,
    SessionExpired,
    SessionRequired,
    StreamMinionError,
    TransportError,
    describe_error,
)
from stream_minion.domain.models import QualityTier, Track, best_available_tier
from stream_minion.domain.playback import transport
from stream_minion.domain.playback.player import AudioBackend
from stream_minion.domain.playback.queue import Direction, PlayQueue, RepeatMode
from stream_minion.domain.playback.transport import (
    ERROR,
    IDLE,
    LOADING,
    PAUSED,
    PLAYING,
    TransportState,
)
from stream_minion.engine.commands import (
    AddTrack,
    ChangeVolume,
    Command,
    CycleQuality,
    CycleRepeat,
    LibraryLoaded,
    LoadLibrary,
    LoginCompleted,
    LoginPending,
    LoginPoll,
    LoginStart,
    Logout,
    MediaKey,
    MediaKeyPressed,
    Next,
    Pause,
    Play,
    PlaybackFailed,
    PlaybackStarted,
    PlayIndex,
    PositionReported,
    Previous,
    Quit,
    Recover,
    Seek,
    SeekRelative,
    SetQuality,
    SetTracks,
    SetVolume,
    Stop,
    StreamResolved,
    Tick,
    TogglePlayPause,
    ToggleShuffle,
    TokenRefreshed,
    TrackLookedUp,
)
from stream_minion.engine.snapshot import SessionView, Snapshot
from stream_minion.engine.supervisor import AUDIO_LANE, IO_LANE, TaskHandle, TaskSupervisor

Subscriber = Callable[[Snapshot], None]

MEDIA_KEY_COMMANDS: dict[MediaKey, Command] = {
    MediaKey.PLAY_PAUSE: TogglePlayPause(),
    MediaKey.PLAY: Play(),
    MediaKey.PAUSE: Pause(),
    MediaKey.NEXT: Next(),
    MediaKey.PREVIOUS: Previous(),
    MediaKey.STOP: Stop(),
}


class EventLoop:
    """Serializes every command and applies it to engine state.

    Args:
        config: Application configuration (player defaults, engine timings)
        sessions: Session store, mutated only here
        catalog: Catalog provider used by resolve and library tasks
        backend: Audio backend driven on the audio lane
        supervisor: Task supervisor; one feeding ``submit`` is created when None
        clock: Unix time source shared with the session store
        rng: Random source for shuffle
    """

    def __init__(
        self,
        config: Config,
        sessions: SessionStore,
        catalog: CatalogProvider,
        backend: AudioBackend,
        supervisor: Optional[TaskSupervisor] = None,
        clock: Callable[[], float] = time.time,
        rng=None,
    ):
        self.config = config
        self.sessions = sessions
        self.catalog = catalog
        self.backend = backend
        self._clock = clock
        self._engine = config.engine

        self._input: "queue.Queue[Command]" = queue.Queue()
        self._internal: deque[Command] = deque()
        self._subscribers: list[Subscriber] = []

        self.queue = PlayQueue(repeat_mode=RepeatMode(config.player.repeat), rng=rng)
        self.transport = TransportState(
            volume=transport.clamp_volume(config.player.volume),
            quality=QualityTier.parse(config.player.quality),
        )
        self.generation = 0
        self.running = True

        self.supervisor = supervisor or TaskSupervisor(
            self.submit, max_workers=self._engine.max_workers
        )

        self._resolve_task: Optional[TaskHandle] = None
        self._resolve_deadline: Optional[float] = None
        self._position_task: Optional[TaskHandle] = None
        self._last_position_poll = 0.0
        self._library_task: Optional[TaskHandle] = None
        self._login_tasks: dict[SessionKind, TaskHandle] = {}
        self._refresh_tasks: dict[SessionKind, TaskHandle] = {}
        self._next_login_poll: dict[SessionKind, float] = {}
        self._last_tick_at: Optional[float] = None
        self._next_tick = clock()
        self._library_loaded_once = False

        self._message: Optional[str] = None
        self._message_level = "info"
        self._sequence = 0
        self.snapshot = self._build_snapshot()

        self._handlers: dict[type, Callable] = {
            Play: self._play,
            Pause: self._pause,
            TogglePlayPause: self._toggle_play_pause,
            Stop: self._stop,
            Next: self._next,
            Previous: self._previous,
            Seek: self._seek,
            SeekRelative: self._seek_relative,
            SetVolume: self._set_volume,
            ChangeVolume: self._change_volume,
            SetQuality: self._set_quality,
            CycleQuality: self._cycle_quality,
            Recover: self._recover,
            ToggleShuffle: self._toggle_shuffle,
            CycleRepeat: self._cycle_repeat,
            SetTracks: self._set_tracks,
            PlayIndex: self._play_index,
            LoadLibrary: self._load_library,
            LibraryLoaded: self._library_loaded,
            AddTrack: self._add_track,
            TrackLookedUp: self._track_looked_up,
            LoginStart: self._login_start,
            LoginPending: self._login_pending,
            LoginPoll: self._login_poll,
            LoginCompleted: self._login_completed,
            Logout: self._logout,
            TokenRefreshed: self._token_refreshed,
            Tick: self._tick,
            StreamResolved: self._stream_resolved,
            PlaybackStarted: self._playback_started,
            PlaybackFailed: self._playback_failed,
            PositionReported: self._position_reported,
            MediaKeyPressed: self._media_key,
            Quit: self._quit,
        }

    # Public surface

    def submit(self, command: Command) -> None:
        """Queue a command for the loop thread. Safe from any thread."""
        self._input.put(command)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Receive every published snapshot; returns an unsubscribe callable."""
        self._subscribers.append(subscriber)
        return lambda: self._subscribers.remove(subscriber)

    def start(self) -> None:
        """Push initial settings to the backend and load the library if possible."""
        self._audio("volume", self.backend.set_volume, self.transport.volume)
        if self.sessions.is_active(SessionKind.STREAMING):
            self._internal.append(LoadLibrary())
        self._drain_internal()

    def pump(self, timeout: float = 0.0) -> int:
        """Apply pending commands.

        Waits at most ``timeout`` seconds for input, then drains synthesized
        commands and the input queued so far in arrival order, and emits a
        Tick once ``tick_interval`` has elapsed. Commands submitted while the
        batch is applied wait for the next pump.

        Returns:
            Number of commands applied
        """
        applied = self._drain_internal()

        commands: list[Command] = []
        try:
            if timeout > 0 and not applied:
                commands.append(self._input.get(timeout=timeout))
            for _ in range(self._input.qsize()):
                commands.append(self._input.get_nowait())
        except queue.Empty:
            pass

        for command in commands:
            applied += self._dispatch(command)

        now = self._clock()
        if now >= self._next_tick:
            self._next_tick = now + self._engine.tick_interval
            applied += self._dispatch(Tick(now))

        return applied

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Pump until Quit or ``stop_event`` (headless use)."""
        stop_event = stop_event or threading.Event()
        self.start()
        while self.running and not stop_event.is_set():
            self.pump(timeout=self._engine.refresh_interval)

    def close(self) -> None:
        """Cancel background work and persist sessions."""
        self.running = False
        self.supervisor.shutdown()
        self.sessions.save_all()

    # Dispatch

    def _dispatch(self, command: Command) -> int:
        self._apply(command)
        self._publish()
        return 1 + self._drain_internal()

    def _drain_internal(self) -> int:
        applied = 0
        while self._internal:
            self._apply(self._internal.popleft())
            self._publish()
            applied += 1
        return applied

    def _apply(self, command: Command) -> None:
        handler = self._handlers.get(type(command))
        if handler is None:
            logger.warning(f"No handler for {type(command).__name__}")
            return

        try:
            handler(command)
        except SessionRequired as e:
            self._notify(f"{e}, press {'l' if e.kind == 'streaming' else 'L'} to log in", "warning")
        except (QueueError, TransportError) as e:
            self._notify(str(e), "warning")
        except StreamMinionError as e:
            self._notify(describe_error(e), "error")
        except Exception as e:
            logger.exception(f"Failed to apply {type(command).__name__}")
            self._notify(f"Internal error: {e}", "error")

    def _publish(self) -> None:
        self._sequence += 1
        self.snapshot = self._build_snapshot()
        self._message = None
        for subscriber in list(self._subscribers):
            try:
                subscriber(self.snapshot)
            except Exception:
                logger.exception("Snapshot subscriber failed")

    def _build_snapshot(self) -> Snapshot:
        return Snapshot(
            sequence=self._sequence,
            transport=self.transport,
            generation=self.generation,
            queue_length=len(self.queue),
            queue_position=self.queue.current_index,
            current=self.queue.current(),
            upcoming=tuple(self.queue.upcoming(self.config.ui.queue_preview)),
            shuffle=self.queue.shuffle_enabled,
            repeat=self.queue.repeat_mode,
            sessions=tuple(SessionView.from_session(s) for s in self.sessions.all().values()),
            library_loading=self._library_task is not None,
            message=self._message,
            message_level=self._message_level,
        )

    def _notify(self, message: str, level: str = "info") -> None:
        """Attach a user-facing message to the next snapshot."""
        self._message = message
        self._message_level = level
        logger.log(level.upper(), message)

    # Transport

    def _play(self, command: Play) -> None:
        status = self.transport.status
        if status in (LOADING, PLAYING):
            logger.debug(f"Play ignored while {status.value}")
            return

        if status == PAUSED:
            self.transport = transport.resume(self.transport)
            self._audio("play", self.backend.play)
            return

        track = self.queue.current()
        if track is None:
            raise EmptyQueue()
        self._start_loading(track)

    def _pause(self, command: Pause) -> None:
        if self.transport.status != PLAYING:
            logger.debug(f"Pause ignored while {self.transport.status.value}")
            return
        self.transport = transport.pause(self.transport)
        self._audio("pause", self.backend.pause)

    def _toggle_play_pause(self, command: TogglePlayPause) -> None:
        if self.transport.status == PLAYING:
            self._pause(Pause())
        else:
            self._play(Play())

    def _stop(self, command: Stop) -> None:
        self._halt()

    def _next(self, command: Next) -> None:
        if command.track_ended and self.transport.status != PLAYING:
            # A second end-of-track signal for a track already left behind
            return
        self._step(Direction.NEXT, track_ended=command.track_ended)

    def _previous(self, command: Previous) -> None:
        self._step(Direction.PREVIOUS)

    def _step(self, direction: Direction, track_ended: bool = False) -> None:
        active = self.transport.is_active
        if active and not self.sessions.is_active(SessionKind.STREAMING):
            if track_ended:
                self._halt("Playback stopped: streaming session not active")
            raise SessionRequired(SessionKind.STREAMING.value)

        track = self.queue.advance(direction)
        if track is None:
            if track_ended:
                self._halt("End of queue")
            else:
                logger.debug(f"No track in direction {direction.value}")
            return

        if active:
            self._start_loading(track)
        else:
            logger.debug(f"Cursor moved to {track.display_name}")

    def _seek(self, command: Seek) -> None:
        if not transport.can(self.transport, "seek"):
            logger.debug(f"Seek ignored while {self.transport.status.value}")
            return
        self.transport = transport.seek(self.transport, command.position)
        self._audio("seek", self.backend.seek, self.transport.position)

    def _seek_relative(self, command: SeekRelative) -> None:
        self._seek(Seek(self.transport.position + command.delta))

    def _set_volume(self, command: SetVolume) -> None:
        self.transport = transport.set_volume(self.transport, command.volume)
        self._audio("volume", self.backend.set_volume, self.transport.volume)

    def _change_volume(self, command: ChangeVolume) -> None:
        self._set_volume(SetVolume(self.transport.volume + command.delta))

    def _set_quality(self, command: SetQuality) -> None:
        previous = self.transport
        if command.quality == previous.quality:
            return

        self.transport = transport.set_quality(previous, command.quality)
        self._notify(f"Quality: {command.quality.label}")

        # Re-resolve the current track at the new tier, keeping its place
        if previous.status in (PLAYING, PAUSED) and previous.track is not None:
            self._start_loading(previous.track, resume_at=previous.position)
        elif previous.status == LOADING and previous.track is not None:
            self._start_loading(previous.track, resume_at=previous.resume_at)

    def _cycle_quality(self, command: CycleQuality) -> None:
        self._set_quality(SetQuality(self.transport.quality.next()))

    def _recover(self, command: Recover) -> None:
        if self.transport.status == ERROR:
            self.transport = transport.recover(self.transport)

    # Queue

    def _toggle_shuffle(self, command: ToggleShuffle) -> None:
        enabled = self.queue.toggle_shuffle()
        self._notify(f"Shuffle {'on' if enabled else 'off'}")

    def _cycle_repeat(self, command: CycleRepeat) -> None:
        mode = self.queue.cycle_repeat()
        self._notify(f"Repeat {mode.value}")

    def _set_tracks(self, command: SetTracks) -> None:
        self.queue.set_tracks(command.tracks, command.start_index)
        if self._halt_if_queue_empty():
            return
        if command.play and self.queue.current() is not None:
            self._start_loading(self.queue.current())

    def _play_index(self, command: PlayIndex) -> None:
        self.sessions.require(SessionKind.STREAMING)
        track = self.queue.select(command.index)
        self._start_loading(track)

    def _load_library(self, command: LoadLibrary) -> None:
        if self._library_task is not None:
            logger.debug("Library load already in flight")
            return

        tokens = self.sessions.require(SessionKind.STREAMING).tokens
        catalog = self.catalog

        def operation() -> Command:
            return LibraryLoaded(tracks=tuple(catalog.favourite_tracks(tokens)))

        self._library_task = self.supervisor.spawn(
            operation,
            kind="library",
            on_error=lambda e: LibraryLoaded(error=e),
        )
        self._notify("Loading favourites...")

    def _library_loaded(self, command: LibraryLoaded) -> None:
        self._library_task = None

        if command.error is not None:
            if isinstance(command.error, SessionExpired):
                self._expire_session(SessionKind.STREAMING)
            self._notify(f"Could not load library: {describe_error(command.error)}", "error")
            return

        tracks = list(command.tracks)
        playing = self.transport.track
        start_index = 0
        if playing is not None:
            start_index = next((i for i, t in enumerate(tracks) if t.id == playing.id), 0)

        self.queue.set_tracks(tracks, start_index)
        self._halt_if_queue_empty()
        if (
            not self._library_loaded_once
            and self.config.player.shuffle_on_start
            and not self.queue.shuffle_enabled
            and tracks
        ):
            self.queue.toggle_shuffle()
        self._library_loaded_once = True
        self._notify(f"Loaded {len(tracks)} favourite tracks")

    def _add_track(self, command: AddTrack) -> None:
        tokens = self.sessions.require(SessionKind.API).tokens
        catalog = self.catalog
        track_id = command.track_id

        def operation() -> Command:
            return TrackLookedUp(track=catalog.lookup_track(track_id, tokens))

        self.supervisor.spawn(
            operation,
            kind="lookup",
            track_id=track_id,
            on_error=lambda e: TrackLookedUp(error=e),
        )

    def _track_looked_up(self, command: TrackLookedUp) -> None:
        if command.error is not None or command.track is None:
            if isinstance(command.error, SessionExpired):
                self._expire_session(SessionKind.API)
            self._notify(f"Track lookup failed: {describe_error(command.error)}", "error")
            return
        self.queue.append(command.track)
        self._notify(f"Queued {command.track.display_name}")

    # Sessions

    def _login_start(self, command: LoginStart) -> None:
        kind = command.kind
        if self.sessions.get(kind).status == SessionStatus.PENDING:
            self._notify(f"{kind.value} login already in progress", "warning")
            return
        if kind in self._login_tasks:
            return

        sessions = self.sessions
        self._login_tasks[kind] = self.supervisor.spawn(
            lambda: LoginPending(kind, pending=sessions.start_login(kind)),
            kind="login",
            on_error=lambda e: LoginPending(kind, error=e),
        )
        self._notify(f"Starting {kind.value} login...")

    def _login_pending(self, command: LoginPending) -> None:
        kind = command.kind
        self._login_tasks.pop(kind, None)

        if command.error is not None or command.pending is None:
            self._notify(f"Could not start {kind.value} login: {describe_error(command.error)}", "error")
            return

        pending = command.pending
        now = self._clock()
        self.sessions.mark_pending(kind, pending, now)

        if pending.interval > 0:
            self._next_login_poll[kind] = now + self._poll_interval(pending.interval)

        if pending.user_code:
            self._notify(f"Visit {pending.auth_url} and enter code {pending.user_code}")
        else:
            self._notify(f"Open {pending.auth_url} then paste the redirect URL")

    def _login_poll(self, command: LoginPoll) -> None:
        kind = command.kind
        session = self.sessions.get(kind)
        if session.status != SessionStatus.PENDING or session.pending is None:
            logger.debug(f"No pending {kind.value} login to poll")
            return
        if kind in self._login_tasks:
            logger.debug(f"{kind.value} poll already in flight")
            return

        self._next_login_poll.pop(kind, None)
        sessions = self.sessions
        pending = session.pending
        payload = command.payload

        self._login_tasks[kind] = self.supervisor.spawn(
            lambda: LoginCompleted(kind, sessions.poll(kind, pending, payload)),
            kind="login",
            on_error=lambda e: LoginCompleted(kind, Failed(describe_error(e))),
        )

    def _login_completed(self, command: LoginCompleted) -> None:
        kind = command.kind
        self._login_tasks.pop(kind, None)
        session = self.sessions.get(kind)
        if session.status != SessionStatus.PENDING:
            logger.debug(f"Dropping {kind.value} login result, session is {session.status.value}")
            return

        result = command.result
        now = self._clock()
        if isinstance(result, Active):
            self.sessions.activate(kind, result.tokens, now)
            self._next_login_poll.pop(kind, None)
            self._notify(f"✓ {kind.value} session active")
            if kind == SessionKind.STREAMING and len(self.queue) == 0:
                self._internal.append(LoadLibrary())
        elif isinstance(result, Failed):
            self.sessions.reset(kind, error=result.error)
            self._next_login_poll.pop(kind, None)
            self._notify(f"{kind.value} login failed: {result.error}", "error")
        elif session.pending is not None and session.pending.interval > 0:
            interval = result.interval or session.pending.interval
            self._next_login_poll[kind] = now + self._poll_interval(interval)

    def _logout(self, command: Logout) -> None:
        kind = command.kind
        self.supervisor.cancel(self._login_tasks.pop(kind, None))
        self.supervisor.cancel(self._refresh_tasks.pop(kind, None))
        self._next_login_poll.pop(kind, None)
        self.sessions.reset(kind)
        self._notify(f"Logged out of {kind.value} session")

    def _token_refreshed(self, command: TokenRefreshed) -> None:
        kind = command.kind
        self._refresh_tasks.pop(kind, None)
        session = self.sessions.apply_refresh(kind, command.result, self._clock())

        if session.status == SessionStatus.UNAUTHENTICATED:
            self._notify(f"{kind.value} session lost ({session.error}), please log in again", "error")
        elif isinstance(command.result, Active):
            logger.debug(f"{kind.value} token refreshed")
            if (
                kind == SessionKind.STREAMING
                and len(self.queue) == 0
                and not self._library_loaded_once
            ):
                self._internal.append(LoadLibrary())

    def _poll_interval(self, interval: float) -> float:
        return max(interval, self._engine.login_poll_interval)

    def _expire_session(self, kind: SessionKind) -> None:
        session = self.sessions.expire(kind, self._clock())
        if session.status == SessionStatus.EXPIRED:
            self._notify(f"{kind.value} session expired, refreshing", "warning")
        else:
            self._notify(f"{kind.value} session expired, please log in again", "error")

    # Timers

    def _tick(self, command: Tick) -> None:
        at = command.at
        elapsed = 0.0
        if self._last_tick_at is not None:
            elapsed = at - self._last_tick_at
        if self._last_tick_at is None or at > self._last_tick_at:
            self._last_tick_at = at

        if self.transport.status == PLAYING and elapsed > 0:
            self.transport = transport.advance_clock(self.transport, elapsed)
            if transport.track_finished(self.transport):
                self._internal.append(Next(track_ended=True))

        self._check_resolve_timeout(at)
        self._check_sessions(at)
        self._poll_position(at)

    def _check_resolve_timeout(self, now: float) -> None:
        if self.transport.status != LOADING or self._resolve_deadline is None:
            return
        if now < self._resolve_deadline:
            return

        track = self.transport.track
        title = track.display_name if track else "track"
        self.generation += 1
        self._fail(
            OperationTimeout(
                f"resolving {title} took longer than {self._engine.resolve_timeout:.0f}s"
            )
        )

    def _check_sessions(self, now: float) -> None:
        for kind in self.sessions.pending_lapsed(now):
            self.supervisor.cancel(self._login_tasks.pop(kind, None))
            self._next_login_poll.pop(kind, None)
            self.sessions.reset(kind, error="Login timed out")
            self._notify(describe_error(OperationTimeout(f"{kind.value} login")), "error")

        for kind, due in list(self._next_login_poll.items()):
            if now >= due and kind not in self._login_tasks:
                self._internal.append(LoginPoll(kind))

        self.sessions.check_expiry(now)

        for kind in self.sessions.refresh_due(now):
            if kind in self._refresh_tasks:
                continue
            tokens = self.sessions.begin_refresh(kind)
            if tokens is None:
                continue
            sessions = self.sessions
            self._refresh_tasks[kind] = self.supervisor.spawn(
                lambda kind=kind, tokens=tokens: TokenRefreshed(kind, sessions.refresh(kind, tokens)),
                kind="refresh",
                on_error=lambda e, kind=kind: TokenRefreshed(
                    kind, Failed(describe_error(e), transient=True)
                ),
            )

    def _poll_position(self, now: float) -> None:
        if self.transport.status != PLAYING:
            return
        if now - self._last_position_poll < self._engine.position_poll_interval:
            return
        if self._position_task is not None and not self._position_task.done:
            return

        self._last_position_poll = now
        generation = self.generation
        backend = self.backend

        def operation() -> Command:
            return PositionReported(generation, backend.position(), backend.is_finished())

        self._position_task = self.supervisor.spawn(
            operation,
            kind="position",
            lane=AUDIO_LANE,
            generation=generation,
            on_error=lambda e: PlaybackFailed(generation, e),
        )

    # Completions

    def _stream_resolved(self, command: StreamResolved) -> None:
        track = self.transport.track
        if (
            command.generation != self.generation
            or self.transport.status != LOADING
            or track is None
            or track.id != command.track_id
        ):
            logger.debug(
                f"Dropping stale resolve for {command.track_id} "
                f"(generation {command.generation}, current {self.generation})"
            )
            return

        self._resolve_task = None
        self._resolve_deadline = None

        if command.error is not None or command.locator is None:
            if isinstance(command.error, SessionExpired):
                self._expire_session(SessionKind.STREAMING)
            self._fail(command.error or RuntimeError("no stream"))
            return

        self.transport = transport.start_playing(self.transport)
        self._last_position_poll = self._clock()

        generation = self.generation
        locator = command.locator
        start = self.transport.resume_at
        volume = self.transport.volume
        backend = self.backend

        def operation() -> Command:
            backend.set_volume(volume)
            duration = backend.load(locator, start=start)
            backend.play()
            return PlaybackStarted(generation, duration)

        self.supervisor.spawn(
            operation,
            kind="load",
            lane=AUDIO_LANE,
            track_id=command.track_id,
            generation=generation,
            on_error=lambda e: PlaybackFailed(generation, e),
        )

    def _playback_started(self, command: PlaybackStarted) -> None:
        if command.generation != self.generation or self.transport.track is None:
            return
        self.transport = transport.set_duration(self.transport, command.duration)
        self._notify(f"♪ {self.transport.track.display_name}")

    def _playback_failed(self, command: PlaybackFailed) -> None:
        if command.generation != self.generation or not self.transport.is_active:
            logger.debug(f"Dropping stale playback failure: {command.error!r}")
            return
        self._fail(command.error)

    def _position_reported(self, command: PositionReported) -> None:
        if command.generation != self.generation:
            return
        self.transport = transport.report_position(self.transport, command.position)
        if command.finished and self.transport.status == PLAYING:
            self._internal.append(Next(track_ended=True))

    def _media_key(self, command: MediaKeyPressed) -> None:
        mapped = MEDIA_KEY_COMMANDS.get(command.key)
        if mapped is None:
            logger.warning(f"Unknown media key {command.key}")
            return
        logger.debug(f"Media key {command.key.value}")
        self._handlers[type(mapped)](mapped)

    def _quit(self, command: Quit) -> None:
        self.running = False

    # Helpers

    def _start_loading(self, track: Track, resume_at: float = 0.0) -> None:
        """Enter LOADING for ``track`` and issue its resolve under a new generation."""
        tokens = self.sessions.require(SessionKind.STREAMING).tokens

        self._cancel_resolve()
        was_sounding = self.transport.status in (PLAYING, PAUSED)
        self.generation += 1
        generation = self.generation

        self.transport = transport.begin_loading(self.transport, track, resume_at)
        if was_sounding:
            self._audio("stop", self.backend.stop)

        quality = best_available_tier(self.transport.quality, track.available_quality_tiers)
        catalog = self.catalog

        def operation() -> Command:
            locator = catalog.resolve(track.id, quality, tokens)
            return StreamResolved(track.id, generation, locator=locator)

        self._resolve_task = self.supervisor.spawn(
            operation,
            kind="resolve",
            lane=IO_LANE,
            track_id=track.id,
            generation=generation,
            on_error=lambda e: StreamResolved(track.id, generation, error=e),
        )
        self._resolve_deadline = self._clock() + self._engine.resolve_timeout
        self._notify(f"Loading {track.display_name}")

    def _cancel_resolve(self) -> None:
        self.supervisor.cancel(self._resolve_task)
        self._resolve_task = None
        self._resolve_deadline = None

    def _fail(self, error: BaseException) -> None:
        """Surface ``error`` as an ERROR snapshot, then fall back to IDLE."""
        reason = describe_error(error)
        self._cancel_resolve()
        if self.transport.status == ERROR:
            return
        self.transport = transport.fail(self.transport, reason)
        self._audio("stop", self.backend.stop)
        self._notify(reason, "error")
        self._internal.append(Recover())

    def _halt(self, message: Optional[str] = None) -> None:
        self._cancel_resolve()
        self.generation += 1
        self.transport = transport.stop(self.transport)
        self._audio("stop", self.backend.stop)
        if message:
            self._notify(message)

    def _halt_if_queue_empty(self) -> bool:
        """Stop playback once the queue no longer holds any track."""
        if len(self.queue) == 0 and self.transport.is_active:
            self._halt("Queue cleared")
            return True
        return False

    def _audio(self, kind: str, action: Callable, *args) -> None:
        """Run a backend call on the audio lane; failures come back as PlaybackFailed."""
        generation = self.generation

        def operation() -> None:
            action(*args)
            return None

        self.supervisor.spawn(
            operation,
            kind=kind,
            lane=AUDIO_LANE,
            generation=generation,
            on_error=lambda e: PlaybackFailed(generation, e),
        )
