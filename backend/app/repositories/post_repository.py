"""Repository for Post operations.

Every query is scoped to the owning user.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.post import Post


class PostRepository:
    """Stateless repository for Post table operations."""

    @staticmethod
    async def create(db: AsyncSession, *, user_id: uuid.UUID, name: str) -> Post:
        """Create a post owned by ``user_id``."""
        post = Post(name=name, created_by_id=user_id)
        db.add(post)
        await db.flush()
        await db.refresh(post)
        return post

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Post], int]:
        """Return one page of a user's posts (newest first) and the total count.

        Args:
            db: Async database session.
            user_id: Owner of the posts.
            offset: Rows to skip.
            limit: Maximum rows to return.

        Returns:
            Tuple of (posts, total).
        """
        total = await db.scalar(
            select(func.count()).select_from(Post).where(Post.created_by_id == user_id)
        )
        stmt = (
            select(Post)
            .where(Post.created_by_id == user_id)
            .order_by(Post.created_at.desc(), Post.id)
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def get_latest(db: AsyncSession, user_id: uuid.UUID) -> Post | None:
        """Most recently created post of a user, or None."""
        stmt = (
            select(Post)
            .where(Post.created_by_id == user_id)
            .order_by(Post.created_at.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
