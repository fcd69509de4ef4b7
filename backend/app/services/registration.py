"""Credential sign-up with email verification.

The user row and its verification token are committed before the email is
sent. If the email cannot be delivered the user is deleted again, so a
failed sign-up leaves nothing behind and the address can be retried.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.email import EmailSender
from app.core.errors import ConflictError, EmailDeliveryError
from app.core.passwords import hash_password, validate_password_strength
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.services.notifications import send_verification_email
from app.services.verification import issue_verification_token

logger = logging.getLogger(__name__)


def _email_taken() -> ConflictError:
    return ConflictError(
        code="EMAIL_ALREADY_EXISTS",
        message="An account with this email already exists",
    )


async def register_user(
    db: AsyncSession,
    sender: EmailSender,
    *,
    name: str,
    email: str,
    password: str,
) -> User:
    """Create an unverified credential account and email its token.

    Args:
        db: Async database session. Committed by this function.
        sender: Email backend for the verification message.
        name: Display name.
        email: Email address (normalized to lower case).
        password: Plain-text password.

    Returns:
        The created, unverified user.

    Raises:
        ValidationError: If the password is too weak.
        ConflictError: If the email is already registered (409).
        EmailDeliveryError: If the verification email failed; the user has
            been removed (503).
    """
    validate_password_strength(password)

    if await UserRepository.get_by_email(db, email) is not None:
        raise _email_taken()

    password_hash = await hash_password(password)
    try:
        user = await UserRepository.create(
            db, email=email, name=name, password_hash=password_hash
        )
    except IntegrityError as exc:
        # Lost a race with a concurrent sign-up for the same address.
        await db.rollback()
        raise _email_taken() from exc

    user_id = user.id
    token = await issue_verification_token(db, user)
    await db.commit()
    logger.info("User registered", extra={"user_id": str(user_id)})

    sent = await send_verification_email(
        sender, to_email=user.email, token=token, name=user.name
    )
    if not sent:
        await UserRepository.delete(db, user_id)
        await db.commit()
        logger.warning(
            "Verification email failed, sign-up rolled back",
            extra={"user_id": str(user_id)},
        )
        raise EmailDeliveryError()

    return user
