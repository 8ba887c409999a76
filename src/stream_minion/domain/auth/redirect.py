"""
Authorization-code login with PKCE for the API session.

The operator opens the authorization URL, logs in, and pastes the full URL
the browser was redirected to. Code and CSRF state are read from its query.
"""

import base64
import hashlib
import secrets
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

import requests
from loguru import logger

from stream_minion.domain.auth.models import (
    Active,
    Failed,
    PendingLogin,
    PollResult,
    SessionKind,
    StillPending,
    TokenSet,
)
from stream_minion.domain.auth.tokens import (
    TOKEN_URL,
    basic_auth_header,
    refresh_tokens,
    token_set_from_response,
)
from stream_minion.domain.errors import LoginFailed

AUTHORIZE_URL = "https://login.tidal.com/authorize"

API_SCOPES = [
    "user.read",
    "collection.read",
    "collection.write",
    "playlists.read",
    "playlists.write",
]


def _generate_pkce() -> dict[str, str]:
    """Generate PKCE code verifier and challenge."""
    code_verifier = (
        base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
    )
    challenge_bytes = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    code_challenge = base64.urlsafe_b64encode(challenge_bytes).decode("utf-8").rstrip("=")

    return {"code_verifier": code_verifier, "code_challenge": code_challenge}


def parse_redirect_url(redirect_url: str) -> dict[str, Optional[str]]:
    """Extract ``code``, ``state`` and ``error`` from a pasted redirect URL."""
    params = parse_qs(urlparse(redirect_url.strip()).query)
    return {
        "code": params.get("code", [None])[0],
        "state": params.get("state", [None])[0],
        "error": params.get("error", [None])[0],
    }


class RedirectAuthenticator:
    """OAuth 2.0 authorization code + PKCE flow.

    Args:
        client_id: Registered client id
        client_secret: Client secret, empty for public clients
        redirect_uri: Redirect URI registered for the client
        login_timeout: Seconds the operator has to paste the redirect URL
        timeout: HTTP timeout for the token exchange
    """

    kind = SessionKind.API

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        redirect_uri: str = "http://localhost",
        login_timeout: float = 300.0,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.login_timeout = login_timeout
        self.timeout = timeout

    def start_login(self) -> PendingLogin:
        """Build the authorization URL with a fresh PKCE pair and CSRF state.

        Raises:
            LoginFailed: If no client id is configured
        """
        if not self.client_id:
            raise LoginFailed(
                "API client id not configured (set catalog.client_id)", kind=self.kind.value
            )

        pkce = _generate_pkce()
        csrf_state = (
            base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
        )

        auth_params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": pkce["code_challenge"],
            "state": csrf_state,
            "scope": " ".join(API_SCOPES),
        }
        auth_url = (
            AUTHORIZE_URL
            + "?"
            + "&".join(f"{k}={quote(str(v))}" for k, v in auth_params.items())
        )
        logger.debug(f"Authorization URL: {auth_url}")

        return PendingLogin(
            auth_url=auth_url,
            poll_token=csrf_state,
            verifier=pkce["code_verifier"],
            expires_in=self.login_timeout,
        )

    def poll(self, pending: PendingLogin, payload: Optional[str] = None) -> PollResult:
        """Complete the login from the pasted redirect URL.

        Without a payload the login is still waiting on the operator.
        """
        if not payload:
            return StillPending()

        result = parse_redirect_url(payload)

        if result["error"]:
            logger.error(f"Authorization error from service: {result['error']}")
            return Failed(f"Authorization error: {result['error']}")
        if not result["code"]:
            return Failed("No authorization code in redirect URL")
        if result["state"] != pending.poll_token:
            logger.error(
                f"CSRF state mismatch: expected {pending.poll_token}, got {result['state']}"
            )
            return Failed("CSRF state mismatch, please log in again")

        return Active(self._exchange_code(result["code"], pending.verifier))

    def refresh(self, tokens: TokenSet) -> TokenSet:
        return refresh_tokens(
            self.kind, tokens, self.client_id, self.client_secret, timeout=self.timeout
        )

    def _exchange_code(self, code: str, verifier: Optional[str]) -> TokenSet:
        """Exchange the authorization code for tokens.

        Raises:
            LoginFailed: If the token endpoint rejects the exchange or is unreachable
        """
        logger.debug("Exchanging authorization code for tokens")
        try:
            response = requests.post(
                TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "code_verifier": verifier or "",
                    "client_id": self.client_id,
                },
                headers=basic_auth_header(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            detail = e.response.text if e.response is not None else str(e)
            logger.error(f"Token exchange failed: {detail}")
            raise LoginFailed(f"Token exchange failed: {detail}", kind=self.kind.value) from e
        except requests.RequestException as e:
            raise LoginFailed(f"Token exchange failed: {e}", kind=self.kind.value) from e

        tokens = token_set_from_response(response.json())
        logger.info(f"API login successful, token expires at {tokens.expires_at:.0f}")
        return tokens
