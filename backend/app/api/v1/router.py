"""API v1 router aggregator.

URL structure with /api/v1 prefix. All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from app.api.v1 import auth, auth_oauth, posts, users

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_oauth.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Profile
# =============================================================================

router.include_router(users.user_router, prefix="/user", tags=["users"])
router.include_router(users.users_router, prefix="/users", tags=["users"])

# =============================================================================
# Posts
# =============================================================================

router.include_router(posts.router, prefix="/posts", tags=["posts"])
