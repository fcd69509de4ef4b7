"""Tests for the FastAPI application, error envelope and security headers."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    EmailDeliveryError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.main import create_app


@pytest.fixture
def app():
    """Application with extra routes that raise each error type."""
    application = create_app()

    errors = {
        "validation": ValidationError("Bad input", details=[{"field": "name"}]),
        "unauthorized": UnauthorizedError(),
        "forbidden": ForbiddenError(),
        "not-found": NotFoundError("User", "abc"),
        "conflict": ConflictError(code="EMAIL_ALREADY_EXISTS", message="Taken"),
        "email": EmailDeliveryError(),
    }

    @application.get("/raise/{name}")
    async def raise_error(name: str) -> dict:
        raise errors[name]

    @application.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("secret internals")

    @application.get("/integrity")
    async def integrity() -> dict:
        raise IntegrityError("INSERT ...", {}, Exception("duplicate key"))

    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoint:
    async def test_health_returns_healthy_status(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestErrorEnvelope:
    @pytest.mark.parametrize(
        ("name", "status", "code"),
        [
            ("validation", 400, "VALIDATION_ERROR"),
            ("unauthorized", 401, "UNAUTHORIZED"),
            ("forbidden", 403, "FORBIDDEN"),
            ("not-found", 404, "NOT_FOUND"),
            ("conflict", 409, "EMAIL_ALREADY_EXISTS"),
            ("email", 503, "EMAIL_DELIVERY_FAILED"),
        ],
    )
    async def test_api_errors(self, client, name, status, code):
        response = await client.get(f"/raise/{name}")
        assert response.status_code == status
        assert response.json()["error"]["code"] == code

    async def test_details_are_passed_through(self, client):
        response = await client.get("/raise/validation")
        assert response.json()["error"]["details"] == [{"field": "name"}]

    async def test_request_validation_is_400(self, client):
        response = await client.post("/api/v1/auth/signin", json={})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]

    async def test_integrity_error_is_409(self, client):
        response = await client.get("/integrity")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    async def test_unhandled_error_hides_details(self, client):
        response = await client.get("/boom")
        assert response.status_code == 500
        assert response.json()["error"] == {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": None,
        }
        assert "secret internals" not in response.text


class TestSecurityHeaders:
    async def test_static_headers(self, client):
        response = await client.get("/health")
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert "default-src 'none'" in response.headers["content-security-policy"]

    async def test_api_responses_not_cached(self, client):
        response = await client.post("/api/v1/auth/logout")
        assert response.headers["cache-control"] == "no-store, max-age=0"

    async def test_health_cacheable(self, client):
        response = await client.get("/health")
        assert "cache-control" not in response.headers

    async def test_hsts_only_in_production(self, client, monkeypatch):
        response = await client.get("/health")
        assert "strict-transport-security" not in response.headers

        monkeypatch.setattr(settings, "environment", "production")
        response = await client.get("/health")
        assert response.headers["strict-transport-security"].startswith(
            "max-age=31536000"
        )


class TestCors:
    async def test_preflight_from_allowed_origin(self, client):
        origin = settings.allowed_origins[0]
        response = await client.options(
            "/api/v1/auth/signin",
            headers={
                "Origin": origin,
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == origin
        assert response.headers["access-control-allow-credentials"] == "true"
