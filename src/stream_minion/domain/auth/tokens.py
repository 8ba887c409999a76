"""
OAuth token endpoint calls and token persistence.

Shared by the redirect and device-link flows: both exchange grants at the
same token endpoint and refresh the same way.
"""

import base64
import json
import time
from pathlib import Path
from typing import Any, Optional

import requests
from loguru import logger

from stream_minion.domain.auth.models import SessionKind, TokenSet
from stream_minion.domain.errors import RefreshFailed

TOKEN_URL = "https://auth.tidal.com/v1/oauth2/token"

# Fallback lifetime when a token response omits expires_in
DEFAULT_EXPIRES_IN = 3600


def basic_auth_header(client_id: str, client_secret: str) -> dict[str, str]:
    """Basic auth header for confidential clients, empty for public ones."""
    if not client_secret:
        return {}
    encoded = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode(
        "utf-8"
    )
    return {"Authorization": f"Basic {encoded}"}


def token_set_from_response(
    token_data: dict[str, Any],
    now: Optional[float] = None,
    previous: Optional[TokenSet] = None,
) -> TokenSet:
    """Build a TokenSet from a token endpoint response.

    Fields the response omits (refresh token, user, country) are carried over
    from ``previous`` so a refresh never loses them.
    """
    now = time.time() if now is None else now
    expires_in = token_data.get("expires_in") or DEFAULT_EXPIRES_IN
    user = token_data.get("user") or {}

    user_id = user.get("userId") or token_data.get("user_id")
    country_code = user.get("countryCode") or token_data.get("country_code")

    return TokenSet(
        access_token=token_data["access_token"],
        refresh_token=token_data.get("refresh_token")
        or (previous.refresh_token if previous else None),
        expires_at=now + float(expires_in),
        user_id=str(user_id) if user_id else (previous.user_id if previous else None),
        country_code=country_code or (previous.country_code if previous else None),
    )


def refresh_tokens(
    kind: SessionKind,
    tokens: TokenSet,
    client_id: str,
    client_secret: str = "",
    timeout: float = 10.0,
) -> TokenSet:
    """Exchange a refresh token for a new access token.

    Raises:
        RefreshFailed: ``transient=True`` for network errors and 5xx
            responses, ``transient=False`` when the grant was rejected
    """
    if not tokens.refresh_token:
        raise RefreshFailed("No refresh token available", kind=kind.value)

    try:
        response = requests.post(
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": tokens.refresh_token,
                "client_id": client_id,
            },
            headers=basic_auth_header(client_id, client_secret),
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning(f"Token refresh for {kind.value} session failed: {e}")
        raise RefreshFailed(f"Network error: {e}", kind=kind.value, transient=True) from e

    if response.status_code >= 500:
        raise RefreshFailed(
            f"Token endpoint returned {response.status_code}",
            kind=kind.value,
            transient=True,
        )
    if not response.ok:
        try:
            detail = response.json().get("error_description") or response.text
        except ValueError:
            detail = response.text
        logger.error(f"Token refresh for {kind.value} rejected: {detail}")
        raise RefreshFailed(f"Refresh rejected: {detail}", kind=kind.value)

    new_tokens = token_set_from_response(response.json(), previous=tokens)
    logger.info(f"Refreshed {kind.value} session, expires at {new_tokens.expires_at:.0f}")
    return new_tokens


class TokenStore:
    """Persists both session kinds' tokens as one JSON file per kind.

    Files are written with 0600 permissions since they hold bearer tokens.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, kind: SessionKind) -> Path:
        return self.directory / f"{kind.value}_tokens.json"

    def load(self, kind: SessionKind) -> Optional[TokenSet]:
        """Load tokens for ``kind``, or None if missing or unreadable."""
        tokens_file = self._path(kind)
        if not tokens_file.exists():
            return None

        try:
            with open(tokens_file, encoding="utf-8") as f:
                return TokenSet.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to load {kind.value} tokens from {tokens_file}: {e}")
            return None

    def save(self, kind: SessionKind, tokens: TokenSet) -> None:
        """Save tokens for ``kind`` with owner-only permissions."""
        self.directory.mkdir(parents=True, exist_ok=True)
        tokens_file = self._path(kind)

        # Create with restrictive permissions before any token bytes land
        tokens_file.touch(mode=0o600, exist_ok=True)
        tokens_file.chmod(0o600)
        with open(tokens_file, "w", encoding="utf-8") as f:
            json.dump(tokens.to_dict(), f, indent=2)

        logger.debug(f"Saved {kind.value} tokens to {tokens_file}")

    def delete(self, kind: SessionKind) -> None:
        tokens_file = self._path(kind)
        if tokens_file.exists():
            tokens_file.unlink()
            logger.debug(f"Deleted {kind.value} tokens at {tokens_file}")
