"""Queries for the users table.

Verification state is never written through ``update``: it moves only via
``set_verification_token`` and the conditional UPDATE in ``mark_verified``.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.user import User

# Profile columns a caller may change. Identity (id, email), timestamps and
# verification columns are left out on purpose.
PROFILE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "image",
        "image_source",
        "password_hash",
        "full_name",
        "gender",
        "date_of_birth",
        "fb_link",
        "linkedin_link",
    }
)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """User rows. All methods are static; the caller owns the transaction."""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Case-insensitive: the address is normalized the way ``create`` stores it."""
        result = await db.execute(
            select(User).where(User.email == _normalize_email(email))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_verification_token(db: AsyncSession, token: str) -> User | None:
        """User whose pending verification token is ``token``, if any."""
        result = await db.execute(select(User).where(User.verification_token == token))
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str | None = None,
        password_hash: str | None = None,
        is_verified: bool = False,
        email_verified: datetime | None = None,
        image: str | None = None,
        image_source: str | None = None,
    ) -> User:
        """Insert a user and flush so ``id`` and timestamps are populated.

        ``password_hash`` is None for users who only ever sign in through a
        provider.

        Raises:
            sqlalchemy.exc.IntegrityError: The normalized email is taken.
        """
        user = User(
            email=_normalize_email(email),
            name=name,
            password_hash=password_hash,
            is_verified=is_verified,
            email_verified=email_verified,
            image=image,
            image_source=image_source,
        )
        db.add(user)
        await db.flush()
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **fields: str | date | None,
    ) -> User | None:
        """Set profile fields on a user; None when the user does not exist.

        Raises:
            ValueError: A name outside PROFILE_FIELDS was passed.
        """
        rejected = sorted(set(fields) - PROFILE_FIELDS)
        if rejected:
            raise ValueError(f"Fields not updatable: {', '.join(rejected)}")

        user = await db.get(User, user_id)
        if user is None:
            return None
        for name, value in fields.items():
            setattr(user, name, value)
        await db.flush()
        return user

    @staticmethod
    async def delete(db: AsyncSession, user_id: uuid.UUID) -> bool:
        """Remove a user; the database cascades to accounts and posts."""
        result = await db.execute(
            delete(User)
            .where(User.id == user_id)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount > 0

    @staticmethod
    async def set_verification_token(
        db: AsyncSession, user_id: uuid.UUID, token: str
    ) -> None:
        """Replace the pending token; an earlier link stops working."""
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(verification_token=token)
            .execution_options(synchronize_session=False)
        )
        await db.get(User, user_id, populate_existing=True)

    @staticmethod
    async def mark_verified(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        token: str | None = None,
    ) -> bool:
        """Flip an unverified user to verified in one conditional UPDATE.

        The statement stamps ``email_verified`` and clears the pending token.
        It matches only while the row is still unverified (and still holds
        ``token`` when one is given), so among concurrent callers exactly one
        gets True.
        """
        stmt = update(User).where(User.id == user_id, User.is_verified.is_(False))
        if token is not None:
            stmt = stmt.where(User.verification_token == token)
        result = await db.execute(
            stmt.values(
                is_verified=True,
                email_verified=utcnow(),
                verification_token=None,
            ).execution_options(synchronize_session=False)
        )
        # An instance already in the identity map must see the new row.
        await db.get(User, user_id, populate_existing=True)
        return result.rowcount == 1
