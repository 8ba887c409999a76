"""
Session store for Stream Minion

Holds the API and streaming sessions side by side. Blocking calls
(start_login, poll, refresh) only talk to the authenticator and return
results; they are safe on worker threads. Everything that changes a session
(mark_pending, activate, apply_refresh, expire, reset) is called by the event
loop thread alone.
"""

import time
from typing import Callable, Mapping, Optional, Protocol

from loguru import logger

from stream_minion.domain.auth.models import (
    Active,
    Failed,
    PendingLogin,
    PollResult,
    RefreshResult,
    Session,
    SessionKind,
    SessionStatus,
    TokenSet,
)
from stream_minion.domain.auth.tokens import TokenStore
from stream_minion.domain.errors import LoginFailed, RefreshFailed, SessionRequired


class Authenticator(Protocol):
    """One login flow plus its refresh grant."""

    kind: SessionKind

    def start_login(self) -> PendingLogin: ...

    def poll(self, pending: PendingLogin, payload: Optional[str] = None) -> PollResult: ...

    def refresh(self, tokens: TokenSet) -> TokenSet: ...


class SessionStore:
    """Two independent session state machines.

    ``UNAUTHENTICATED -> PENDING -> ACTIVE -> (EXPIRED -> ACTIVE via refresh)``,
    with any failed login or unrecoverable refresh falling back to
    UNAUTHENTICATED.

    Args:
        authenticators: Login flow per session kind
        token_store: Where tokens are persisted, None to keep them in memory
        refresh_margin: Seconds before expiry a proactive refresh is due
        refresh_retry_delay: Seconds between retries after a transient failure
        clock: Source of Unix time, injectable for tests
    """

    def __init__(
        self,
        authenticators: Mapping[SessionKind, Authenticator],
        token_store: Optional[TokenStore] = None,
        refresh_margin: float = 60.0,
        refresh_retry_delay: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self._authenticators = dict(authenticators)
        self._token_store = token_store
        self.refresh_margin = refresh_margin
        self.refresh_retry_delay = refresh_retry_delay
        self._clock = clock
        self._sessions = {kind: Session(kind=kind) for kind in SessionKind}

    # Queries

    def get(self, kind: SessionKind) -> Session:
        return self._sessions[kind]

    def all(self) -> dict[SessionKind, Session]:
        return dict(self._sessions)

    def is_active(self, kind: SessionKind) -> bool:
        return self._sessions[kind].is_active

    def require(self, kind: SessionKind) -> Session:
        """Return the session if ACTIVE.

        Raises:
            SessionRequired: If the session is in any other status
        """
        session = self._sessions[kind]
        if not session.is_active:
            raise SessionRequired(kind.value)
        return session

    def refresh_due(self, now: Optional[float] = None) -> list[SessionKind]:
        """Kinds whose scheduled refresh time has passed."""
        now = self._clock() if now is None else now
        return [
            kind
            for kind, session in self._sessions.items()
            if session.status in (SessionStatus.ACTIVE, SessionStatus.EXPIRED)
            and session.refresh_at is not None
            and now >= session.refresh_at
        ]

    def pending_lapsed(self, now: Optional[float] = None) -> list[SessionKind]:
        """Kinds whose PENDING login passed its deadline."""
        now = self._clock() if now is None else now
        return [
            kind
            for kind, session in self._sessions.items()
            if session.status == SessionStatus.PENDING
            and session.pending_deadline is not None
            and now > session.pending_deadline
        ]

    # Blocking operations, run on workers

    def start_login(self, kind: SessionKind) -> PendingLogin:
        """Begin a login for ``kind``.

        Raises:
            LoginFailed: If the flow cannot be started
        """
        return self._authenticators[kind].start_login()

    def poll(
        self, kind: SessionKind, pending: PendingLogin, payload: Optional[str] = None
    ) -> PollResult:
        """Check whether a pending login completed."""
        try:
            return self._authenticators[kind].poll(pending, payload)
        except LoginFailed as e:
            return Failed(str(e))

    def refresh(self, kind: SessionKind, tokens: TokenSet) -> RefreshResult:
        """Exchange the refresh token of ``tokens`` for new tokens."""
        try:
            return Active(self._authenticators[kind].refresh(tokens))
        except RefreshFailed as e:
            return Failed(str(e), transient=e.transient)

    # Mutations, event loop thread only

    def restore(self) -> None:
        """Load persisted tokens.

        Still-valid tokens restore ACTIVE. Expired tokens with a refresh token
        restore EXPIRED with a refresh due immediately.
        """
        if not self._token_store:
            return

        now = self._clock()
        for kind in SessionKind:
            tokens = self._token_store.load(kind)
            if tokens is None:
                continue
            if not tokens.is_expired(now):
                self._set(
                    kind,
                    status=SessionStatus.ACTIVE,
                    tokens=tokens,
                    refresh_at=self._refresh_time(tokens, now),
                )
                logger.info(f"Restored {kind.value} session")
            elif tokens.refresh_token:
                self._set(kind, status=SessionStatus.EXPIRED, tokens=tokens, refresh_at=now)
                logger.info(f"Restored expired {kind.value} session, refreshing")
            else:
                self._token_store.delete(kind)

    def mark_pending(
        self, kind: SessionKind, pending: PendingLogin, now: Optional[float] = None
    ) -> Session:
        now = self._clock() if now is None else now
        deadline = now + pending.expires_in if pending.expires_in else None
        return self._set(
            kind,
            status=SessionStatus.PENDING,
            tokens=None,
            pending=pending,
            pending_deadline=deadline,
            refresh_at=None,
            error=None,
        )

    def activate(
        self, kind: SessionKind, tokens: TokenSet, now: Optional[float] = None
    ) -> Session:
        """Make ``kind`` ACTIVE with ``tokens`` and persist them."""
        now = self._clock() if now is None else now
        session = self._set(
            kind,
            status=SessionStatus.ACTIVE,
            tokens=tokens,
            pending=None,
            pending_deadline=None,
            refresh_at=self._refresh_time(tokens, now),
            error=None,
        )
        self._persist(kind, tokens)
        logger.info(f"{kind.value} session active")
        return session

    def begin_refresh(self, kind: SessionKind) -> Optional[TokenSet]:
        """Clear the refresh schedule while a refresh is in flight."""
        session = self._set(kind, refresh_at=None)
        return session.tokens

    def apply_refresh(
        self, kind: SessionKind, result: RefreshResult, now: Optional[float] = None
    ) -> Session:
        """Apply a refresh outcome.

        Success activates the new tokens. A transient failure while the
        current token is still valid keeps the session ACTIVE and retries
        after ``refresh_retry_delay``. Anything else drops the session to
        UNAUTHENTICATED with the error recorded.
        """
        now = self._clock() if now is None else now
        session = self._sessions[kind]

        if session.status not in (SessionStatus.ACTIVE, SessionStatus.EXPIRED):
            logger.debug(f"Ignoring refresh result for {kind.value} in {session.status.value}")
            return session

        if isinstance(result, Active):
            return self.activate(kind, result.tokens, now)

        still_valid = session.tokens is not None and not session.tokens.is_expired(now)
        if result.transient and still_valid:
            logger.warning(
                f"{kind.value} refresh failed ({result.error}), "
                f"retrying in {self.refresh_retry_delay:.0f}s"
            )
            return self._set(
                kind, refresh_at=now + self.refresh_retry_delay, error=result.error
            )

        logger.error(f"{kind.value} session lost: {result.error}")
        return self.reset(kind, error=result.error)

    def expire(self, kind: SessionKind, now: Optional[float] = None) -> Session:
        """Mark an ACTIVE session EXPIRED after the service rejected its token."""
        now = self._clock() if now is None else now
        session = self._sessions[kind]
        if session.status != SessionStatus.ACTIVE:
            return session
        if session.tokens is None or not session.tokens.refresh_token:
            return self.reset(kind, error="Session expired")
        return self._set(kind, status=SessionStatus.EXPIRED, refresh_at=now)

    def check_expiry(self, now: Optional[float] = None) -> list[SessionKind]:
        """Move ACTIVE sessions past their expiry to EXPIRED; return those kinds."""
        now = self._clock() if now is None else now
        expired = [
            kind
            for kind, session in self._sessions.items()
            if session.status == SessionStatus.ACTIVE
            and session.tokens is not None
            and session.tokens.is_expired(now)
        ]
        for kind in expired:
            self.expire(kind, now)
        return expired

    def reset(self, kind: SessionKind, error: Optional[str] = None) -> Session:
        """Back to UNAUTHENTICATED, forgetting persisted tokens."""
        if self._token_store:
            self._token_store.delete(kind)
        return self._set(
            kind,
            status=SessionStatus.UNAUTHENTICATED,
            tokens=None,
            pending=None,
            pending_deadline=None,
            refresh_at=None,
            error=error,
        )

    def save_all(self) -> None:
        """Persist tokens of every session holding them (shutdown)."""
        for kind, session in self._sessions.items():
            if session.tokens is not None:
                self._persist(kind, session.tokens)

    def _refresh_time(self, tokens: TokenSet, now: float) -> Optional[float]:
        if not tokens.refresh_token:
            return None
        return max(now, tokens.expires_at - self.refresh_margin)

    def _persist(self, kind: SessionKind, tokens: TokenSet) -> None:
        if not self._token_store:
            return
        try:
            self._token_store.save(kind, tokens)
        except OSError as e:
            logger.warning(f"Could not persist {kind.value} tokens: {e}")

    def _set(self, kind: SessionKind, **changes) -> Session:
        session = self._sessions[kind].evolve(**changes)
        self._sessions[kind] = session
        return session
