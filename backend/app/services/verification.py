"""Email verification tokens: issue, consume, and the verified transition.

A token is a 256-bit random string stored on the user while verification is
pending. Consuming it is single-use: the transition is a conditional UPDATE
that only matches an unverified row still holding that token.
"""

import enum
import logging
import secrets
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

# 32 bytes -> 256 bits of entropy, 43 URL-safe characters
_TOKEN_BYTES = 32


class VerificationOutcome(enum.Enum):
    VERIFIED = "verified"
    INVALID_TOKEN = "invalid_token"
    ALREADY_VERIFIED = "already_verified"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of consuming a verification token.

    Attributes:
        outcome: What happened.
        user: The verified user for VERIFIED and ALREADY_VERIFIED, else None.
    """

    outcome: VerificationOutcome
    user: User | None = None


async def issue_verification_token(db: AsyncSession, user: User) -> str:
    """Generate a new token for ``user``, replacing any pending one.

    Args:
        db: Async database session.
        user: User awaiting verification.

    Returns:
        The plain token to put in the verification link.
    """
    token = secrets.token_urlsafe(_TOKEN_BYTES)
    await UserRepository.set_verification_token(db, user.id, token)
    return token


async def mark_user_verified(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    token: str | None = None,
) -> bool:
    """Perform the unverified -> verified transition.

    Shared by token verification and OAuth sign-in. Returns True only for
    the caller whose update flipped the flag, which is the one that owes the
    user a welcome email.
    """
    transitioned = await UserRepository.mark_verified(db, user_id, token=token)
    if transitioned:
        logger.info("User verified", extra={"user_id": str(user_id)})
    return transitioned


async def consume_verification_token(
    db: AsyncSession, token: str
) -> VerificationResult:
    """Use a verification token.

    Args:
        db: Async database session.
        token: Token from the verification link.

    Returns:
        VERIFIED for the request that verified the user, ALREADY_VERIFIED if
        the holder was verified by other means, INVALID_TOKEN if the token is
        unknown or a concurrent request consumed it first.
    """
    user = await UserRepository.get_by_verification_token(db, token)
    if user is None:
        return VerificationResult(VerificationOutcome.INVALID_TOKEN)

    if user.is_verified:
        return VerificationResult(VerificationOutcome.ALREADY_VERIFIED, user)

    if not await mark_user_verified(db, user.id, token=token):
        logger.info(
            "Verification token lost race",
            extra={"user_id": str(user.id)},
        )
        return VerificationResult(VerificationOutcome.INVALID_TOKEN)

    return VerificationResult(VerificationOutcome.VERIFIED, user)
