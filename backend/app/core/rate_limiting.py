"""slowapi limiter for the auth endpoints.

Limits are declared per route (``@limiter.limit("10/minute")``) and counted
in process memory. A request with a valid session counts against its user;
anything else counts against the client address.
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.auth import verify_session_token
from app.core.config import settings

_DEFAULT_RETRY_AFTER = 60


def client_key(request: Request) -> str:
    """``user:<id>`` for a valid session cookie, otherwise ``unauth:<ip>``."""
    token = request.cookies.get(settings.auth_cookie_name)
    claims = (
        verify_session_token(token, secret=settings.auth_secret.get_secret_value())
        if token
        else None
    )
    if claims is not None:
        return f"user:{claims.id}"
    return f"unauth:{get_remote_address(request)}"


limiter = Limiter(key_func=client_key, enabled=settings.rate_limit_enabled)


def _retry_after_seconds(exc: RateLimitExceeded) -> int:
    # exc.limit is slowapi's Limit wrapper; .limit is the limits item
    item = getattr(getattr(exc, "limit", None), "limit", None)
    try:
        return int(item.get_expiry())  # type: ignore[union-attr]
    except (AttributeError, TypeError, ValueError):
        return _DEFAULT_RETRY_AFTER


def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> Response:
    """429 RATE_LIMITED in the error envelope, with Retry-After."""
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
                "details": None,
            }
        },
        headers={"Retry-After": str(_retry_after_seconds(exc))},
    )
