"""Session tokens: signed, time-limited identity claims.

A session is a stateless HS256 JWT carried in an httpOnly cookie (or an
``Authorization: Bearer`` header for API clients). The token only identifies
the user; anything security sensitive is re-read from the database.

Pipeline:
- issue_session_token: claims -> signed JWT
- verify_session_token: signed JWT -> claims, or None for any failure
- set_session_cookie / clear_session_cookie: cookie management
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from app.core.config import settings

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


@dataclass(frozen=True)
class SessionClaims:
    """Identity facts embedded in a session token.

    Attributes:
        id: User UUID as a string.
        email: User email address.
        is_verified: Whether the email was verified when the token was issued.
        name: Display name, if any.
        image: Profile picture URL, if any.
    """

    id: str
    email: str
    is_verified: bool
    name: str | None = None
    image: str | None = None


def session_lifetime() -> timedelta:
    """Absolute lifetime of a session token."""
    return timedelta(days=settings.session_max_age_days)


def issue_session_token(
    claims: SessionClaims,
    *,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token.

    Args:
        claims: Identity claims to embed.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to session_lifetime().

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": claims.id,
        "email": claims.email,
        "verified": claims.is_verified,
        "name": claims.name,
        "picture": claims.image,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or session_lifetime()),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_session_token(token: str, *, secret: str) -> SessionClaims | None:
    """Check a session token and return its claims.

    Signature, audience, issuer and expiry are all verified. Any failure,
    including missing or mistyped claims, is reported the same way.

    Args:
        token: Encoded JWT string.
        secret: HMAC signing secret.

    Returns:
        SessionClaims if the token is valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.InvalidTokenError:
        return None

    sub = payload.get("sub")
    email = payload.get("email")
    verified = payload.get("verified")
    if not isinstance(sub, str) or not isinstance(email, str):
        return None
    if not isinstance(verified, bool):
        return None

    return SessionClaims(
        id=sub,
        email=email,
        is_verified=verified,
        name=payload.get("name"),
        image=payload.get("picture"),
    )


def set_session_cookie(response: Response, token: str) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: Session token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(session_lifetime().total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def clear_session_cookie(response: Response) -> None:
    """Delete the session cookie.

    Attributes must match set_session_cookie() for the browser to drop it.
    """
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )
