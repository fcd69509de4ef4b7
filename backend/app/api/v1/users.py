"""Profile endpoints.

GET/POST /user/details read and update the signed-in user's profile;
PUT /users/{user_id}/profile is the id-addressed variant that refuses to
touch anyone else's profile.
"""

import uuid
from datetime import date
from typing import Literal

from fastapi import APIRouter
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from app.api.deps import CurrentUser, DbSession
from app.core.errors import ForbiddenError, NotFoundError
from app.core.responses import DataResponse
from app.models.user import IMAGE_SOURCE_UPLOAD, User
from app.repositories.user_repository import UserRepository

user_router = APIRouter()
users_router = APIRouter()

Gender = Literal["male", "female", "other", "prefer-not-to-say"]


class UserDetailsRequest(BaseModel):
    """Request body for POST /user/details."""

    model_config = ConfigDict(extra="forbid")

    full_name: str = Field(min_length=1, max_length=255)
    gender: Gender
    date_of_birth: date
    fb_link: AnyHttpUrl | None = None
    linkedin_link: AnyHttpUrl | None = None
    image: str | None = Field(None, max_length=2048)


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /users/{user_id}/profile. All fields optional."""

    model_config = ConfigDict(extra="forbid")

    full_name: str | None = Field(None, min_length=1, max_length=255)
    gender: Gender | None = None
    date_of_birth: date | None = None
    fb_link: AnyHttpUrl | None = None
    linkedin_link: AnyHttpUrl | None = None


def profile_to_response(user: User) -> dict:
    """Profile payload with the date of birth as an ISO string."""
    return {
        "id": str(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "gender": user.gender,
        "date_of_birth": (
            user.date_of_birth.isoformat() if user.date_of_birth else None
        ),
        "fb_link": user.fb_link,
        "linkedin_link": user.linkedin_link,
        "image": user.image,
    }


def _link(value: AnyHttpUrl | None) -> str | None:
    return str(value) if value is not None else None


@user_router.get("/details")
async def get_user_details(user: CurrentUser) -> DataResponse[dict]:
    """Return the signed-in user's profile."""
    return DataResponse(data=profile_to_response(user))


@user_router.post("/details")
async def update_user_details(
    body: UserDetailsRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[dict]:
    """Replace the signed-in user's profile details.

    Setting ``image`` marks the picture as user-managed, so later OAuth
    sign-ins leave it alone.
    """
    changes: dict[str, str | date | None] = {
        "full_name": body.full_name,
        "gender": body.gender,
        "date_of_birth": body.date_of_birth,
        "fb_link": _link(body.fb_link),
        "linkedin_link": _link(body.linkedin_link),
    }
    if "image" in body.model_fields_set:
        changes["image"] = body.image
        changes["image_source"] = IMAGE_SOURCE_UPLOAD if body.image else None

    updated = await UserRepository.update(db, user.id, **changes)
    if updated is None:
        raise NotFoundError("User", str(user.id))
    return DataResponse(data=profile_to_response(updated))


@users_router.put("/{user_id}/profile")
async def update_profile(
    user_id: uuid.UUID,
    body: ProfileUpdateRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[dict]:
    """Partially update a profile. Only the owner may call this (403)."""
    if user_id != user.id:
        raise ForbiddenError()

    changes: dict[str, str | date | None] = {}
    for field in body.model_fields_set:
        value = getattr(body, field)
        if field in ("fb_link", "linkedin_link"):
            value = _link(value)
        changes[field] = value

    updated = await UserRepository.update(db, user.id, **changes)
    if updated is None:
        raise NotFoundError("User", str(user_id))
    return DataResponse(data=profile_to_response(updated))
