"""SQLAlchemy ORM models for Authflow.

All models are exported from this module for convenient imports:
    from app.models import User, Account, Post

- user.py: User (identity, credentials, profile)
- account.py: Account (OAuth provider links)
- post.py: Post (user-owned content)
"""

from app.models.account import Account
from app.models.base import Base, TimestampMixin
from app.models.post import Post
from app.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Account",
    "Post",
]
