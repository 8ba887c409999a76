"""
Unified output system using Loguru.

Every user-facing message goes to the log file; where it is displayed depends
on the mode. With the blessed UI running, messages queue up for the UI's
history pane. Otherwise (headless login, ctl) they print through the Rich
console.
"""

import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from stream_minion.core.console import safe_print

# Global blessed mode tracking (set when blessed UI starts)
_blessed_mode_active = False
_blessed_mode_lock = threading.Lock()

# Messages logged while the blessed UI runs, drained by its render loop
_pending_history_messages: list[tuple[str, str]] = []
_pending_messages_lock = threading.Lock()

LEVEL_COLORS = {
    "debug": "cyan",
    "info": "white",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


def setup_loguru(
    log_file: Path,
    level: str = "INFO",
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """
    Configure loguru for file-only logging (blessed UI handles console display).

    Args:
        log_file: Path to log file
        level: Minimum level for file logging (DEBUG, INFO, WARNING, ERROR)
        max_file_size_mb: Rotate the file when it grows past this size
        backup_count: Number of rotated files to keep
    """
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation=f"{max_file_size_mb} MB",
        retention=backup_count,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {thread.name} | {name}:{line} | {message}",
        enqueue=False,  # Synchronous writes (thread-safe but blocking)
    )

    logger.info(f"Loguru initialized: {log_file} (level={level})")


def set_blessed_mode() -> None:
    """Enable blessed mode - log() queues messages for the UI instead of printing."""
    global _blessed_mode_active
    with _blessed_mode_lock:
        _blessed_mode_active = True
    logger.debug("Blessed mode enabled - log() will route to UI history")


def clear_blessed_mode() -> None:
    """Disable blessed mode - restores console printing."""
    global _blessed_mode_active
    with _blessed_mode_lock:
        _blessed_mode_active = False
    logger.debug("Blessed mode disabled - log() will print to console")


def is_blessed_mode() -> bool:
    with _blessed_mode_lock:
        return _blessed_mode_active


def drain_pending_history_messages() -> list[tuple[str, str]]:
    """
    Get and clear all pending history messages.

    Returns:
        List of (message, color) tuples
    """
    global _pending_history_messages
    with _pending_messages_lock:
        messages = _pending_history_messages[:]
        _pending_history_messages = []
        return messages


def log(message: str, level: str = "info", style: Optional[str] = None) -> None:
    """
    Unified logging: writes to file AND displays the message.

    Use this instead of print() for user-facing messages that should also be logged.

    Args:
        message: User-facing message
        level: Log level (debug, info, success, warning, error)
        style: Rich style for console mode, derived from level if None
    """
    logger.opt(depth=1).log(level.upper(), message)

    color = LEVEL_COLORS.get(level, "white")
    if is_blessed_mode():
        with _pending_messages_lock:
            _pending_history_messages.append((message, color))
    else:
        safe_print(message, style=style or (None if color == "white" else color))
