"""Auth domain - the two catalog sessions.

This domain handles:
- Browser login with PKCE and a pasted redirect URL (API session)
- Device-link login with a user code (streaming session)
- Token refresh and persistence
- Session lifecycle (unauthenticated, pending, active, expired)
"""

from .device_link import DeviceLinkAuthenticator
from .models import Active, Failed, PendingLogin, Session, SessionKind, SessionStatus, StillPending, TokenSet
from .redirect import RedirectAuthenticator
from .session import SessionStore
from .tokens import TokenStore

__all__ = [
    "Active",
    "DeviceLinkAuthenticator",
    "Failed",
    "PendingLogin",
    "RedirectAuthenticator",
    "Session",
    "SessionKind",
    "SessionStatus",
    "SessionStore",
    "StillPending",
    "TokenSet",
    "TokenStore",
]
