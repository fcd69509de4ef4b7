"""User model - identity, credentials and profile."""

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, String, Text, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.account import Account
    from app.models.post import Post

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"

# image_source values
IMAGE_SOURCE_PROVIDER = "provider"
IMAGE_SOURCE_UPLOAD = "upload"


class User(Base, TimestampMixin):
    """User account.

    Credential sign-ups start unverified with a pending verification token;
    OAuth sign-ups are created verified and have no password.

    Attributes:
        id: UUID primary key.
        email: Unique, lower-cased email address.
        password_hash: bcrypt hash. NULL for OAuth-only users.
        name: Display name (from sign-up or the OAuth provider).
        image: Profile picture URL.
        image_source: "provider" when the picture came from OAuth, "upload"
            when the user set it. OAuth sign-in never overwrites "upload".
        is_verified: Whether the email address has been confirmed.
        email_verified: When the address was confirmed. Set once.
        verification_token: Pending single-use verification token.
        full_name: Optional legal/full name.
        gender: One of male, female, other, prefer-not-to-say.
        date_of_birth: Optional date of birth.
        fb_link: Facebook profile URL.
        linkedin_link: LinkedIn profile URL.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    image: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    image_source: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    verification_token: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gender: Mapped[str | None] = mapped_column(String(32), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date(), nullable=True)
    fb_link: Mapped[str | None] = mapped_column(Text(), nullable=True)
    linkedin_link: Mapped[str | None] = mapped_column(Text(), nullable=True)

    # Relationships. Deletes rely on ON DELETE CASCADE in the database.
    accounts: Mapped[list["Account"]] = relationship(
        "Account",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )
    posts: Mapped[list["Post"]] = relationship(
        "Post",
        back_populates="created_by",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )
