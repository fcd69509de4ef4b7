"""End-to-end auth journeys through the HTTP API.

Each test drives several endpoints in sequence the way a browser would.
"""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

from app.core.config import settings
from app.core.oauth import OAuthProfile, create_oauth_state_cookie
from app.repositories.user_repository import UserRepository
from tests.conftest import TEST_AUTH_SECRET, TEST_PASSWORD

_EMAIL = "ada@example.com"


def _token_from_email(text: str) -> str:
    for line in text.splitlines():
        if "verify-email?token=" in line:
            return parse_qs(urlparse(line.strip()).query)["token"][0]
    raise AssertionError("no verification link in email")


class TestCredentialJourney:
    async def test_signup_verify_signin(self, unauthenticated_client, email_sender):
        client = unauthenticated_client
        response = await client.post(
            "/api/v1/auth/signup",
            json={"name": "Ada", "email": _EMAIL, "password": TEST_PASSWORD},
        )
        assert response.status_code == 201

        # Signing in before verification is refused
        response = await client.post(
            "/api/v1/auth/signin", json={"email": _EMAIL, "password": TEST_PASSWORD}
        )
        assert response.status_code == 403

        token = _token_from_email(email_sender.sent[0].text)
        response = await client.get(
            "/api/v1/auth/verify-email", params={"token": token}
        )
        assert parse_qs(urlparse(response.headers["location"]).query) == {
            "verified": ["true"]
        }

        response = await client.post(
            "/api/v1/auth/signin", json={"email": _EMAIL, "password": TEST_PASSWORD}
        )
        assert response.status_code == 200
        assert response.json()["data"]["is_verified"] is True

        response = await client.get("/api/v1/auth/session")
        assert response.status_code == 200
        assert response.json()["data"]["email"] == _EMAIL

        response = await client.post("/api/v1/auth/logout")
        assert response.status_code == 200
        response = await client.get("/api/v1/auth/session")
        assert response.status_code == 401

        assert email_sender.subjects() == ["Verify your email", "Welcome to Authflow"]

    async def test_second_signup_with_same_email_is_rejected(
        self, unauthenticated_client, email_sender
    ):
        body = {"name": "Ada", "email": _EMAIL, "password": TEST_PASSWORD}
        first = await unauthenticated_client.post("/api/v1/auth/signup", json=body)
        second = await unauthenticated_client.post(
            "/api/v1/auth/signup", json={**body, "email": _EMAIL.upper()}
        )
        assert first.status_code == 201
        assert second.status_code == 409
        assert len(email_sender.sent) == 1

    async def test_failed_email_allows_retry(
        self, unauthenticated_client, email_sender, db_session
    ):
        body = {"name": "Ada", "email": _EMAIL, "password": TEST_PASSWORD}
        email_sender.fail = True
        response = await unauthenticated_client.post("/api/v1/auth/signup", json=body)
        assert response.status_code == 503

        email_sender.fail = False
        response = await unauthenticated_client.post("/api/v1/auth/signup", json=body)
        assert response.status_code == 201
        assert await UserRepository.get_by_email(db_session, _EMAIL) is not None

    async def test_resent_link_replaces_the_first(
        self, unauthenticated_client, email_sender
    ):
        client = unauthenticated_client
        await client.post(
            "/api/v1/auth/signup",
            json={"name": "Ada", "email": _EMAIL, "password": TEST_PASSWORD},
        )
        await client.post("/api/v1/auth/resend-verification", json={"email": _EMAIL})
        first, second = (_token_from_email(e.text) for e in email_sender.sent)

        response = await client.post("/api/v1/auth/verify-email", json={"token": first})
        assert response.status_code == 400
        response = await client.post(
            "/api/v1/auth/verify-email", json={"token": second}
        )
        assert response.json()["data"]["status"] == "verified"


class TestOAuthJourney:
    async def test_oauth_completes_pending_signup(
        self, unauthenticated_client, email_sender, monkeypatch
    ):
        """A pending credential sign-up is verified by signing in with Google."""
        monkeypatch.setattr(settings, "google_client_id", "google-client")
        client = unauthenticated_client
        await client.post(
            "/api/v1/auth/signup",
            json={"name": "Ada", "email": _EMAIL, "password": TEST_PASSWORD},
        )
        pending_token = _token_from_email(email_sender.sent[0].text)

        client.cookies.set(
            "oauth_state",
            create_oauth_state_cookie(
                provider="google",
                state="s",
                code_verifier="v" * 64,
                secret=TEST_AUTH_SECRET,
            ),
        )
        profile = OAuthProfile(
            provider="google",
            provider_account_id="g-1",
            email=_EMAIL,
            email_verified=True,
            name="Ada G",
        )
        with (
            patch(
                "app.api.v1.auth_oauth.exchange_code_for_tokens",
                new=AsyncMock(return_value={"access_token": "ya29"}),
            ),
            patch(
                "app.api.v1.auth_oauth.fetch_profile",
                new=AsyncMock(return_value=profile),
            ),
        ):
            response = await client.get(
                "/api/v1/auth/callback/google", params={"code": "c", "state": "s"}
            )
        assert response.status_code == 307

        # The emailed token no longer works, the password now does
        response = await client.post(
            "/api/v1/auth/verify-email", json={"token": pending_token}
        )
        assert response.status_code == 400
        response = await client.post(
            "/api/v1/auth/signin", json={"email": _EMAIL, "password": TEST_PASSWORD}
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Ada"
        assert email_sender.subjects() == ["Verify your email", "Welcome to Authflow"]
