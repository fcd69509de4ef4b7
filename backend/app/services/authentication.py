"""Authentication core: credential and OAuth sign-in.

Results are tagged values rather than exceptions; route handlers translate
a LoginFailed reason into an HTTP error exactly once.

Credential checks run in a fixed order: unknown email, social-only account,
unverified email, wrong password. With ``AUTH_DETAILED_LOGIN_ERRORS`` off the
password is checked first and the first three failures collapse into
INVALID_PASSWORD, so responses stop revealing which emails are registered.

OAuth account resolution:
1. provider + provider_account_id already linked -> returning user
2. email matches an existing user -> verify it, link the provider
3. no match -> create a verified, password-less user + provider link
"""

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionClaims
from app.core.config import settings
from app.core.oauth import OAuthProfile
from app.core.passwords import verify_password
from app.models.base import utcnow
from app.models.user import IMAGE_SOURCE_PROVIDER, IMAGE_SOURCE_UPLOAD, User
from app.repositories.account_repository import AccountRepository
from app.repositories.user_repository import UserRepository
from app.services.verification import mark_user_verified

logger = logging.getLogger(__name__)


class LoginFailure(enum.Enum):
    UNKNOWN_EMAIL = "UNKNOWN_EMAIL"
    SOCIAL_ACCOUNT_ONLY = "SOCIAL_ACCOUNT_ONLY"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    PROVIDER_EMAIL_MISSING = "PROVIDER_EMAIL_MISSING"


@dataclass(frozen=True)
class LoginSucceeded:
    """Successful sign-in.

    Attributes:
        claims: Identity claims for the session token.
        user: The signed-in user.
        newly_verified: True when this sign-in verified (or created) the
            account, i.e. a welcome email is due.
    """

    claims: SessionClaims
    user: User
    newly_verified: bool = False


@dataclass(frozen=True)
class LoginFailed:
    reason: LoginFailure


LoginResult = LoginSucceeded | LoginFailed


def claims_for(user: User) -> SessionClaims:
    """Build session claims from the stored user."""
    return SessionClaims(
        id=str(user.id),
        email=user.email,
        is_verified=user.is_verified,
        name=user.name,
        image=user.image,
    )


async def authenticate_credentials(
    db: AsyncSession, email: str, password: str
) -> LoginResult:
    """Check an email + password pair.

    Args:
        db: Async database session.
        email: Email address as typed (case-insensitive).
        password: Plain-text password.

    Returns:
        LoginSucceeded with claims, or LoginFailed with the first failing check.
    """
    user = await UserRepository.get_by_email(db, email)

    if not settings.auth_detailed_login_errors:
        # Always pay for one bcrypt comparison, even with no stored hash.
        password_ok = await verify_password(
            password, user.password_hash if user else None
        )
        if user is None or not password_ok:
            return LoginFailed(LoginFailure.INVALID_PASSWORD)
        if not user.is_verified:
            return LoginFailed(LoginFailure.EMAIL_NOT_VERIFIED)
        return LoginSucceeded(claims_for(user), user)

    if user is None:
        await verify_password(password, None)
        return LoginFailed(LoginFailure.UNKNOWN_EMAIL)
    if user.password_hash is None:
        return LoginFailed(LoginFailure.SOCIAL_ACCOUNT_ONLY)
    if not user.is_verified:
        return LoginFailed(LoginFailure.EMAIL_NOT_VERIFIED)
    if not await verify_password(password, user.password_hash):
        return LoginFailed(LoginFailure.INVALID_PASSWORD)

    return LoginSucceeded(claims_for(user), user)


async def _refresh_from_provider(
    db: AsyncSession, user: User, profile: OAuthProfile
) -> None:
    """Copy provider profile data onto an existing user.

    The picture is replaced unless the user uploaded their own; the name is
    only filled when the user has none.
    """
    changes: dict[str, str] = {}
    if (
        profile.image
        and user.image_source != IMAGE_SOURCE_UPLOAD
        and user.image != profile.image
    ):
        changes["image"] = profile.image
        changes["image_source"] = IMAGE_SOURCE_PROVIDER
    if profile.name and not user.name:
        changes["name"] = profile.name
    if changes:
        await UserRepository.update(db, user.id, **changes)


async def _find_existing_user(
    db: AsyncSession, profile: OAuthProfile, email: str
) -> tuple[User | None, bool]:
    """Return (user, already_linked) for a provider identity."""
    account = await AccountRepository.find_linked(
        db, profile.provider, profile.provider_account_id
    )
    if account is not None:
        user = await UserRepository.get_by_id(db, account.user_id)
        if user is not None:
            return user, True
    return await UserRepository.get_by_email(db, email), False


async def authenticate_oauth(db: AsyncSession, profile: OAuthProfile) -> LoginResult:
    """Sign in (or sign up) with a provider identity.

    The provider's email assertion counts as verification, so an existing
    unverified account is verified here and its pending token dropped.

    Args:
        db: Async database session.
        profile: Identity reported by the provider.

    Returns:
        LoginSucceeded, or LoginFailed(PROVIDER_EMAIL_MISSING) when the
        provider did not supply a verified email address.
    """
    if not profile.email or not profile.email_verified:
        logger.warning(
            "OAuth profile without verified email",
            extra={"provider": profile.provider},
        )
        return LoginFailed(LoginFailure.PROVIDER_EMAIL_MISSING)

    email = profile.email.strip().lower()
    user, linked = await _find_existing_user(db, profile, email)

    if user is None:
        user = await UserRepository.create(
            db,
            email=email,
            name=profile.name,
            is_verified=True,
            email_verified=utcnow(),
            image=profile.image,
            image_source=IMAGE_SOURCE_PROVIDER if profile.image else None,
        )
        await AccountRepository.link(
            db,
            user_id=user.id,
            provider=profile.provider,
            provider_account_id=profile.provider_account_id,
        )
        logger.info(
            "Created new OAuth user",
            extra={"user_id": str(user.id), "provider": profile.provider},
        )
        return LoginSucceeded(claims_for(user), user, newly_verified=True)

    newly_verified = False
    if not user.is_verified:
        newly_verified = await mark_user_verified(db, user.id)
    await _refresh_from_provider(db, user, profile)

    if not linked:
        await AccountRepository.link(
            db,
            user_id=user.id,
            provider=profile.provider,
            provider_account_id=profile.provider_account_id,
        )
        logger.info(
            "Linked OAuth account to existing user",
            extra={"user_id": str(user.id), "provider": profile.provider},
        )

    return LoginSucceeded(claims_for(user), user, newly_verified=newly_verified)
