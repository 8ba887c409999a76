"""Desktop notification helpers for Stream Minion."""

import shutil
import subprocess
from typing import Literal

from loguru import logger

APP_NAME = "Stream Minion"


def notify(
    title: str, message: str, urgency: Literal["low", "normal", "critical"] = "normal"
) -> bool:
    """
    Show a desktop notification using notify-send.

    Args:
        title: Notification title
        message: Notification message body
        urgency: Urgency level ('low', 'normal', 'critical')

    Returns:
        True if notify-send ran, False if it is missing or failed

    Note:
        Notifications are best effort; failures are logged at debug level.
    """
    if not shutil.which("notify-send"):
        return False

    try:
        subprocess.run(
            [
                "notify-send",
                "--urgency",
                urgency,
                "--app-name",
                APP_NAME,
                title,
                message,
            ],
            check=False,
            timeout=2.0,
            capture_output=True,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"notify-send failed: {e}")
        return False
    return True


def notify_track(title: str, artist: str, album: str = "") -> bool:
    """Show a now-playing notification."""
    body = f"{artist} - {album}" if album else artist
    return notify(f"♪ {title}", body, urgency="low")


def notify_error(message: str) -> bool:
    """Show an error notification with X mark."""
    return notify(f"✗ {APP_NAME}", message, urgency="critical")
