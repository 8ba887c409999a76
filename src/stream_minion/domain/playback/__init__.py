"""Playback domain - MPV integration and state management.

This domain handles:
- MPV player integration via JSON IPC
- Transport state machine (idle, loading, playing, paused, error)
- Play queue with shuffle and repeat
"""

from .player import AudioBackend, MpvBackend, PlayerState, check_mpv_available
from .queue import Direction, PlayQueue, RepeatMode, fisher_yates_shuffle
from .transport import TransportState, TransportStatus

__all__ = [
    "AudioBackend",
    "Direction",
    "MpvBackend",
    "PlayQueue",
    "PlayerState",
    "RepeatMode",
    "TransportState",
    "TransportStatus",
    "check_mpv_available",
    "fisher_yates_shuffle",
]
