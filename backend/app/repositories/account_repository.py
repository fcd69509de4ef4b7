"""Queries for the accounts table (OAuth provider links)."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account


class AccountRepository:
    """Provider links. All methods are static; the caller owns the transaction."""

    @staticmethod
    async def link(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        provider: str,
        provider_account_id: str,
    ) -> Account:
        """Attach a provider identity to a user.

        Raises:
            sqlalchemy.exc.IntegrityError: The identity is already linked to
                some user.
        """
        account = Account(
            user_id=user_id,
            type="oauth",
            provider=provider,
            provider_account_id=provider_account_id,
        )
        db.add(account)
        await db.flush()
        return account

    @staticmethod
    async def find_linked(
        db: AsyncSession, provider: str, provider_account_id: str
    ) -> Account | None:
        """Link for a provider identity, independent of the email it reports now."""
        result = await db.execute(
            select(Account).where(
                Account.provider == provider,
                Account.provider_account_id == provider_account_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[Account]:
        result = await db.execute(select(Account).where(Account.user_id == user_id))
        return list(result.scalars().all())
