"""Tests for rate limiting: key selection, 429 envelope and enforcement."""

import json
from unittest.mock import MagicMock

import pytest
from starlette.requests import Request as StarletteRequest

from app.core.config import settings
from app.core.rate_limiting import (
    client_key,
    limiter,
    rate_limit_exceeded_handler,
)
from tests.conftest import create_session_token


def _request(cookie: str | None = None) -> StarletteRequest:
    headers = []
    if cookie is not None:
        headers.append(
            (b"cookie", f"{settings.auth_cookie_name}={cookie}".encode("latin-1"))
        )
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": headers,
        "client": ("203.0.113.7", 5000),
    }
    return StarletteRequest(scope)


class TestRateLimitKey:
    def test_anonymous_keyed_by_ip(self):
        assert client_key(_request()) == "unauth:203.0.113.7"

    def test_invalid_cookie_keyed_by_ip(self):
        assert client_key(_request("garbage")) == "unauth:203.0.113.7"

    async def test_valid_session_keyed_by_user(self, make_user):
        user = await make_user()
        key = client_key(_request(create_session_token(user)))
        assert key == f"user:{user.id}"


class TestRateLimitExceededHandler:
    def test_returns_429_envelope(self):
        exc = MagicMock()
        exc.detail = "3 per 1 hour"
        exc.limit.limit.get_expiry.return_value = 3600

        response = rate_limit_exceeded_handler(_request(), exc)

        assert response.status_code == 429
        body = json.loads(response.body)
        assert body["error"]["code"] == "RATE_LIMITED"
        assert "3 per 1 hour" in body["error"]["message"]
        assert response.headers["retry-after"] == "3600"

    def test_retry_after_defaults_to_a_minute(self):
        exc = MagicMock()
        exc.detail = "x"
        exc.limit = None
        response = rate_limit_exceeded_handler(_request(), exc)
        assert response.headers["retry-after"] == "60"


class TestEnforcement:
    @pytest.fixture
    def enabled_limiter(self):
        limiter.reset()
        limiter.enabled = True
        yield limiter
        limiter.enabled = False
        limiter.reset()

    async def test_check_email_blocked_after_ten_per_minute(
        self, unauthenticated_client, enabled_limiter
    ):
        for _ in range(10):
            response = await unauthenticated_client.get(
                "/api/v1/auth/check-email", params={"email": "a@example.com"}
            )
            assert response.status_code == 200

        response = await unauthenticated_client.get(
            "/api/v1/auth/check-email", params={"email": "a@example.com"}
        )
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert "retry-after" in response.headers

    async def test_resend_verification_limited_to_three_per_hour(
        self, unauthenticated_client, enabled_limiter
    ):
        statuses = []
        for _ in range(4):
            response = await unauthenticated_client.post(
                "/api/v1/auth/resend-verification", json={"email": "a@example.com"}
            )
            statuses.append(response.status_code)
        assert statuses == [200, 200, 200, 429]
