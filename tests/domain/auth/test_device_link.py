"""Tests for the device-link login flow."""

from unittest.mock import Mock, patch

import pytest
import requests

from stream_minion.domain.auth.device_link import DeviceLinkAuthenticator
from stream_minion.domain.auth.models import Active, Failed, PendingLogin, StillPending
from stream_minion.domain.errors import LoginFailed

POST = "stream_minion.domain.auth.device_link.requests.post"


def response(status: int = 200, body=None) -> Mock:
    resp = Mock(status_code=status, ok=status < 400, text="raw")
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    return resp


@pytest.fixture
def authenticator() -> DeviceLinkAuthenticator:
    return DeviceLinkAuthenticator("device-client")


@pytest.fixture
def pending() -> PendingLogin:
    return PendingLogin(
        auth_url="https://link.tidal.com/ABCDE",
        poll_token="device-code",
        user_code="ABCDE",
        interval=5.0,
        expires_in=300.0,
    )


class TestStartLogin:
    """Tests for requesting a device code."""

    def test_requires_client_id(self):
        with pytest.raises(LoginFailed):
            DeviceLinkAuthenticator("").start_login()

    def test_builds_pending_login(self, authenticator):
        body = {
            "deviceCode": "dc",
            "userCode": "WXYZ",
            "verificationUriComplete": "link.tidal.com/WXYZ",
            "interval": 2,
            "expiresIn": 600,
        }
        with patch(POST, return_value=response(body=body)):
            pending = authenticator.start_login()

        assert pending.auth_url == "https://link.tidal.com/WXYZ"
        assert pending.poll_token == "dc"
        assert pending.user_code == "WXYZ"
        assert pending.interval == 3.0
        assert pending.expires_in == 600.0

    def test_missing_expiry_uses_fallback(self, authenticator):
        body = {"deviceCode": "dc", "verificationUri": "https://link.tidal.com", "interval": 10}
        with patch(POST, return_value=response(body=body)):
            pending = authenticator.start_login()

        assert pending.interval == 10.0
        assert pending.expires_in == 300.0

    def test_network_error(self, authenticator):
        with patch(POST, side_effect=requests.ConnectionError("down")):
            with pytest.raises(LoginFailed):
                authenticator.start_login()


class TestPoll:
    """Tests for polling the token endpoint."""

    def test_authorization_pending(self, authenticator, pending):
        body = {"error": "authorization_pending"}
        with patch(POST, return_value=response(400, body)):
            assert authenticator.poll(pending) == StillPending()

    def test_slow_down_lengthens_interval(self, authenticator, pending):
        with patch(POST, return_value=response(400, {"error": "slow_down"})):
            assert authenticator.poll(pending) == StillPending(interval=10.0)

    def test_expired(self, authenticator, pending):
        with patch(POST, return_value=response(400, {"error": "expired_token"})):
            result = authenticator.poll(pending)
        assert isinstance(result, Failed)
        assert not result.transient

    def test_denied(self, authenticator, pending):
        with patch(POST, return_value=response(400, {"error": "access_denied"})):
            assert authenticator.poll(pending) == Failed("Device link was denied")

    def test_other_rejection_uses_description(self, authenticator, pending):
        body = {"error": "invalid_client", "error_description": "Unknown client"}
        with patch(POST, return_value=response(401, body)):
            assert authenticator.poll(pending) == Failed("Device link failed: Unknown client")

    def test_server_error_keeps_polling(self, authenticator, pending):
        with patch(POST, return_value=response(503, ValueError("not json"))):
            assert authenticator.poll(pending) == StillPending()

    def test_network_error_keeps_polling(self, authenticator, pending):
        with patch(POST, side_effect=requests.Timeout("slow")):
            assert authenticator.poll(pending) == StillPending()

    def test_confirmed(self, authenticator, pending):
        body = {
            "access_token": "acc",
            "refresh_token": "ref",
            "expires_in": 3600,
            "user": {"userId": 99, "countryCode": "NO"},
        }
        with patch(POST, return_value=response(200, body)) as post:
            result = authenticator.poll(pending)

        assert isinstance(result, Active)
        assert result.tokens.user_id == "99"
        assert result.tokens.country_code == "NO"
        assert post.call_args.kwargs["data"]["device_code"] == "device-code"
