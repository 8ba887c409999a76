"""
Device authorization login for the streaming session.

The service hands out a link and a short user code; the client polls the
token endpoint until the operator confirms the code, denies it, or the
device code lapses.
"""

from typing import Optional

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

DEVICE_AUTHORIZATION_URL = "https://auth.tidal.com/v1/oauth2/device_authorization"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
DEVICE_SCOPE = "r_usr w_usr w_sub"

# Token endpoint errors that mean "keep polling"
PENDING_ERRORS = {"authorization_pending", "slow_down"}


class DeviceLinkAuthenticator:
    """OAuth 2.0 device authorization grant.

    Args:
        client_id: Device client id
        client_secret: Device client secret, empty for public clients
        min_interval: Lower bound on the poll interval in seconds
        fallback_expires_in: Login lifetime when the server omits expiresIn
        timeout: HTTP timeout per request
    """

    kind = SessionKind.STREAMING

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        min_interval: float = 3.0,
        fallback_expires_in: float = 300.0,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.min_interval = min_interval
        self.fallback_expires_in = fallback_expires_in
        self.timeout = timeout

    def start_login(self) -> PendingLogin:
        """Request a device code and user code.

        Raises:
            LoginFailed: If no client id is configured or the request fails
        """
        if not self.client_id:
            raise LoginFailed(
                "Device client id not configured (set catalog.device_client_id)",
                kind=self.kind.value,
            )

        try:
            response = requests.post(
                DEVICE_AUTHORIZATION_URL,
                data={"client_id": self.client_id, "scope": DEVICE_SCOPE},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise LoginFailed(f"Device authorization failed: {e}", kind=self.kind.value) from e

        link = data.get("verificationUriComplete") or data.get("verificationUri", "")
        if link and not link.startswith("http"):
            link = f"https://{link}"

        interval = max(float(data.get("interval") or 0), self.min_interval)
        expires_in = float(data.get("expiresIn") or self.fallback_expires_in)

        logger.info(f"Device link issued: {link} (code {data.get('userCode')})")
        return PendingLogin(
            auth_url=link,
            poll_token=data["deviceCode"],
            user_code=data.get("userCode"),
            interval=interval,
            expires_in=expires_in,
        )

    def poll(self, pending: PendingLogin, payload: Optional[str] = None) -> PollResult:
        """Ask the token endpoint whether the device link was confirmed.

        Network errors and 5xx responses keep the login pending; the caller's
        deadline bounds how long that can go on.
        """
        try:
            response = requests.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "device_code": pending.poll_token,
                    "grant_type": DEVICE_GRANT_TYPE,
                    "scope": DEVICE_SCOPE,
                },
                headers=basic_auth_header(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Device link poll failed, will retry: {e}")
            return StillPending()

        if response.ok:
            tokens = token_set_from_response(response.json())
            logger.info(f"Device linked for user {tokens.user_id}")
            return Active(tokens)

        if response.status_code >= 500:
            logger.warning(f"Device link poll got {response.status_code}, will retry")
            return StillPending()

        try:
            body = response.json()
        except ValueError:
            body = {}
        error = body.get("error", "")

        if error in PENDING_ERRORS:
            # slow_down asks for a longer interval
            if error == "slow_down":
                return StillPending(interval=pending.interval + 5)
            return StillPending()
        if error == "expired_token":
            return Failed("Device code expired, please log in again")
        if error == "access_denied":
            return Failed("Device link was denied")

        description = body.get("error_description") or error or response.text
        logger.error(f"Device link rejected: {description}")
        return Failed(f"Device link failed: {description}")

    def refresh(self, tokens: TokenSet) -> TokenSet:
        return refresh_tokens(
            self.kind, tokens, self.client_id, self.client_secret, timeout=self.timeout
        )
