"""
Session data structures.

Sessions are frozen; the SessionStore replaces them on every transition so a
snapshot handed to another thread can never change underneath it.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import NamedTuple, Optional, Union


class SessionKind(str, Enum):
    """The two independent credential sets the client holds."""

    API = "api"  # Authorization-code session for catalog metadata
    STREAMING = "streaming"  # Device-link session entitled to stream audio


class SessionStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenSet:
    """OAuth tokens for one session kind.

    ``expires_at`` is a Unix timestamp. ``user_id`` and ``country_code`` come
    from the token response when the service includes them.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: float = 0.0
    user_id: Optional[str] = None
    country_code: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user_id": self.user_id,
            "country_code": self.country_code,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenSet":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=float(data.get("expires_at", 0.0)),
            user_id=data.get("user_id"),
            country_code=data.get("country_code"),
        )


@dataclass(frozen=True)
class PendingLogin:
    """An in-progress login the operator has to complete.

    Attributes:
        auth_url: URL to open in a browser
        poll_token: Device code (device link) or CSRF state (redirect flow)
        user_code: Code to enter on the link page, device link only
        verifier: PKCE code verifier, redirect flow only
        interval: Minimum seconds between polls (0 for the redirect flow)
        expires_in: Seconds until the login attempt lapses, None if unbounded
    """

    auth_url: str
    poll_token: str
    user_code: Optional[str] = None
    verifier: Optional[str] = None
    interval: float = 0.0
    expires_in: Optional[float] = None


class Active(NamedTuple):
    """Login or refresh produced usable tokens."""

    tokens: TokenSet


class StillPending(NamedTuple):
    """Device link not confirmed yet; poll again after ``interval`` seconds."""

    interval: Optional[float] = None


class Failed(NamedTuple):
    """Login or refresh failed.

    ``transient`` marks failures that may succeed on retry (network, 5xx).
    """

    error: str
    transient: bool = False


PollResult = Union[Active, StillPending, Failed]
RefreshResult = Union[Active, Failed]


@dataclass(frozen=True)
class Session:
    """One session kind's credentials and lifecycle status.

    Attributes:
        kind: Which credential set this is
        status: Lifecycle status
        tokens: Current tokens while ACTIVE or EXPIRED
        pending: Login the operator has to complete while PENDING
        pending_deadline: Unix time after which a PENDING login lapses
        refresh_at: Unix time the next proactive refresh is due, None when
            no refresh is scheduled (including while one is in flight)
        error: Last surfaced failure, cleared on activation
    """

    kind: SessionKind
    status: SessionStatus = SessionStatus.UNAUTHENTICATED
    tokens: Optional[TokenSet] = None
    pending: Optional[PendingLogin] = None
    pending_deadline: Optional[float] = None
    refresh_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def evolve(self, **changes) -> "Session":
        return replace(self, **changes)
