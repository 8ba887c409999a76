"""OS media integration."""

from .media import CombinedSession, MediaBridge, MediaSession, NotifySendSession

__all__ = ["CombinedSession", "MediaBridge", "MediaSession", "NotifySendSession"]
