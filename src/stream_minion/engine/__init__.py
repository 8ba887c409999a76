"""Engine - the event loop, its commands and background task supervision."""

from .loop import EventLoop
from .snapshot import SessionView, Snapshot
from .supervisor import AUDIO_LANE, IO_LANE, TaskHandle, TaskSupervisor

__all__ = [
    "AUDIO_LANE",
    "EventLoop",
    "IO_LANE",
    "SessionView",
    "Snapshot",
    "TaskHandle",
    "TaskSupervisor",
]
