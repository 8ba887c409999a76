"""
Task supervisor for background work.

Runs blocking operations (stream resolution, auth network calls, audio
backend commands) on worker threads and hands their outcome back to the
event loop as a Command. Nothing here touches engine state.
"""

import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger

from stream_minion.engine.commands import Command

IO_LANE = "io"
AUDIO_LANE = "audio"

Operation = Callable[[], Optional[Command]]
ErrorMapper = Callable[[BaseException], Optional[Command]]


@dataclass(eq=False)
class TaskHandle:
    """Reference to one spawned operation.

    Attributes:
        task_id: Unique, increasing id
        kind: What the task does ("resolve", "login", "refresh", ...)
        lane: Worker lane it runs on
        track_id: Track the task concerns, if any
        generation: Loop generation the task was issued under, if any
    """

    task_id: int
    kind: str
    lane: str = IO_LANE
    track_id: Optional[str] = None
    generation: Optional[int] = None
    future: Optional[Future] = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self.future is not None and self.future.done()


class TaskSupervisor:
    """Spawns operations on two lanes and routes completions to ``submit``.

    The ``io`` lane is a pool of ``max_workers`` threads. The ``audio`` lane
    has a single thread so backend commands execute in the order issued.

    Cancellation is best effort: a cancelled task that has not started never
    runs, and one that already ran delivers nothing. The loop's generation
    check is what keeps stale results out of state.

    Args:
        submit: Thread-safe sink for completion commands (EventLoop.submit)
        max_workers: Size of the io pool
    """

    def __init__(self, submit: Callable[[Command], None], max_workers: int = 4):
        self._submit = submit
        self._lanes = {
            IO_LANE: ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sm-io"),
            AUDIO_LANE: ThreadPoolExecutor(max_workers=1, thread_name_prefix="sm-audio"),
        }
        self._ids = itertools.count(1)
        self._active: dict[int, TaskHandle] = {}
        self._lock = threading.Lock()
        self._closed = False

    def spawn(
        self,
        operation: Operation,
        *,
        kind: str,
        lane: str = IO_LANE,
        track_id: Optional[str] = None,
        generation: Optional[int] = None,
        on_error: Optional[ErrorMapper] = None,
    ) -> TaskHandle:
        """Run ``operation`` in the background.

        Args:
            operation: Blocking callable returning the completion Command
                (or None for nothing to report)
            kind: Task kind, used by cancel_kind and logging
            lane: IO_LANE or AUDIO_LANE
            track_id: Track the task concerns
            generation: Generation the task was issued under
            on_error: Maps an exception raised by ``operation`` to a Command

        Returns:
            Handle for cancellation
        """
        handle = TaskHandle(
            task_id=next(self._ids),
            kind=kind,
            lane=lane,
            track_id=track_id,
            generation=generation,
        )

        with self._lock:
            if self._closed:
                logger.debug(f"Supervisor closed, not spawning {kind}")
                handle._cancelled.set()
                return handle
            self._active[handle.task_id] = handle
            handle.future = self._lanes[lane].submit(self._run, handle, operation, on_error)

        logger.debug(f"Spawned {kind} task #{handle.task_id} on {lane} lane")
        return handle

    def cancel(self, handle: Optional[TaskHandle]) -> bool:
        """Cancel ``handle``; returns True if it had not finished yet."""
        if handle is None or handle.done:
            return False
        handle._cancelled.set()
        if handle.future is not None:
            handle.future.cancel()
        with self._lock:
            self._active.pop(handle.task_id, None)
        logger.debug(f"Cancelled {handle.kind} task #{handle.task_id}")
        return True

    def cancel_kind(self, kind: str) -> int:
        """Cancel every active task of ``kind``; returns how many were cancelled."""
        with self._lock:
            handles = [h for h in self._active.values() if h.kind == kind]
        return sum(1 for handle in handles if self.cancel(handle))

    def active(self, kind: Optional[str] = None) -> list[TaskHandle]:
        with self._lock:
            return [h for h in self._active.values() if kind is None or h.kind == kind]

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work and cancel everything queued."""
        with self._lock:
            self._closed = True
            handles = list(self._active.values())
        for handle in handles:
            self.cancel(handle)
        for executor in self._lanes.values():
            executor.shutdown(wait=wait, cancel_futures=True)

    def _run(
        self,
        handle: TaskHandle,
        operation: Operation,
        on_error: Optional[ErrorMapper],
    ) -> None:
        try:
            if handle.cancelled:
                return
            try:
                result = operation()
            except Exception as e:
                if on_error is None:
                    logger.exception(f"{handle.kind} task #{handle.task_id} failed")
                    return
                logger.debug(f"{handle.kind} task #{handle.task_id} raised {e!r}")
                result = on_error(e)

            if result is not None and not handle.cancelled:
                self._submit(result)
        except Exception:
            # Error mapper or submit failed; nothing can be delivered
            logger.exception(f"Could not deliver {handle.kind} task #{handle.task_id}")
        finally:
            with self._lock:
                self._active.pop(handle.task_id, None)
