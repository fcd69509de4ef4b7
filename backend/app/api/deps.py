"""Shared dependencies for API endpoints.

Session authentication and collaborator injection. Tests replace the email
sender through app.dependency_overrides.
"""

import uuid
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionClaims, verify_session_token
from app.core.config import settings
from app.core.database import get_db
from app.core.email import EmailSender, get_email_sender
from app.core.errors import ForbiddenError, UnauthorizedError
from app.models import User
from app.repositories.user_repository import UserRepository

_BEARER_PREFIX = "bearer "


def _read_session_token(request: Request) -> str | None:
    """Session token from the cookie, else from an Authorization header."""
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith(_BEARER_PREFIX):
        return header[len(_BEARER_PREFIX) :].strip() or None
    return None


async def get_session_claims(request: Request) -> SessionClaims:
    """Validate the session token and return its claims.

    Raises:
        UnauthorizedError: Missing, expired, tampered or malformed token.
            The message never says which.
    """
    token = _read_session_token(request)
    if not token:
        raise UnauthorizedError()
    claims = verify_session_token(
        token, secret=settings.auth_secret.get_secret_value()
    )
    if claims is None:
        raise UnauthorizedError()
    return claims


async def get_current_user(
    claims: Annotated[SessionClaims, Depends(get_session_claims)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Load the signed-in user from the database.

    Claims only identify the user: verification status is re-checked against
    the stored row, so a token minted before a change cannot outlive it.

    Raises:
        UnauthorizedError: The user no longer exists.
        ForbiddenError: The user's email is not verified.
    """
    try:
        user_id = uuid.UUID(claims.id)
    except ValueError:
        raise UnauthorizedError() from None

    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise UnauthorizedError()
    if not user.is_verified:
        raise ForbiddenError(
            message="Please verify your email address",
            code="EMAIL_NOT_VERIFIED",
        )
    return user


# Type aliases for cleaner endpoint signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionClaimsDep = Annotated[SessionClaims, Depends(get_session_claims)]
CurrentUser = Annotated[User, Depends(get_current_user)]
EmailSenderDep = Annotated[EmailSender, Depends(get_email_sender)]
