"""Post endpoints: create, list (paginated) and latest, scoped to the caller."""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import CurrentUser, DbSession
from app.core.pagination import Pagination
from app.core.responses import DataResponse, ListResponse
from app.models.post import Post
from app.repositories.post_repository import PostRepository

router = APIRouter()


class CreatePostRequest(BaseModel):
    """Request body for POST /posts."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=256)


def post_to_response(post: Post) -> dict:
    return {
        "id": str(post.id),
        "name": post.name,
        "created_by_id": str(post.created_by_id),
        "created_at": post.created_at.isoformat(),
        "updated_at": post.updated_at.isoformat(),
    }


@router.post("", status_code=201)
async def create_post(
    body: CreatePostRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[dict]:
    """Create a post owned by the signed-in user."""
    post = await PostRepository.create(db, user_id=user.id, name=body.name)
    return DataResponse(data=post_to_response(post))


@router.get("")
async def list_posts(
    user: CurrentUser,
    db: DbSession,
    pagination: Pagination,
) -> ListResponse[dict]:
    """List the signed-in user's posts, newest first."""
    posts, total = await PostRepository.list_for_user(
        db, user.id, offset=pagination.offset, limit=pagination.per_page
    )
    return ListResponse(
        data=[post_to_response(p) for p in posts], meta=pagination.meta(total)
    )


@router.get("/latest")
async def get_latest_post(user: CurrentUser, db: DbSession) -> DataResponse[dict | None]:
    """Most recent post of the signed-in user, or null when there is none."""
    post = await PostRepository.get_latest(db, user.id)
    return DataResponse(data=post_to_response(post) if post else None)
