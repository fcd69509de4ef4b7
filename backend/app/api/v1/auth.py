"""Authentication endpoints for credential accounts.

signup, signin, email verification, resend-verification, check-email,
session and logout.

Security considerations:
- signin: bcrypt comparison against DUMMY_HASH when the account has no
  password, so timing does not reveal which emails exist
- signup: no session is issued until the email has been verified
- resend-verification: same answer whether or not the address is known
"""

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Query, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.api.deps import CurrentUser, DbSession, EmailSenderDep
from app.core.auth import clear_session_cookie, issue_session_token, set_session_cookie
from app.core.config import settings
from app.core.errors import ForbiddenError, UnauthorizedError, ValidationError
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.services.authentication import (
    LoginFailed,
    LoginFailure,
    authenticate_credentials,
)
from app.services.notifications import send_verification_email, send_welcome_email
from app.services.registration import register_user
from app.services.verification import (
    VerificationOutcome,
    consume_verification_token,
    issue_verification_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# User-facing messages per credential failure
_LOGIN_FAILURE_MESSAGES = {
    LoginFailure.UNKNOWN_EMAIL: "Email does not exist",
    LoginFailure.SOCIAL_ACCOUNT_ONLY: "Please sign in with your social account",
    LoginFailure.EMAIL_NOT_VERIFIED: "Please verify your email before signing in",
}
_GENERIC_LOGIN_FAILURE = "Invalid email or password"
_INCORRECT_PASSWORD = "Incorrect password"  # nosec B105


# ===================================================================
# Request models
# ===================================================================


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class SigninRequest(BaseModel):
    """Request body for POST /auth/signin."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)


class ResendVerificationRequest(BaseModel):
    """Request body for POST /auth/resend-verification."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


def user_to_response(user: User) -> dict:
    """Build the public user payload shared by signin and session."""
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "is_verified": user.is_verified,
    }


def login_failure_error(
    reason: LoginFailure,
) -> UnauthorizedError | ForbiddenError:
    """Translate a credential failure into the HTTP error to raise."""
    if reason is LoginFailure.EMAIL_NOT_VERIFIED:
        return ForbiddenError(
            message=_LOGIN_FAILURE_MESSAGES[reason],
            code=reason.value,
        )
    if reason is LoginFailure.INVALID_PASSWORD:
        message = (
            _INCORRECT_PASSWORD
            if settings.auth_detailed_login_errors
            else _GENERIC_LOGIN_FAILURE
        )
        return UnauthorizedError(message=message, code=reason.value)
    return UnauthorizedError(
        message=_LOGIN_FAILURE_MESSAGES.get(reason, _GENERIC_LOGIN_FAILURE),
        code=reason.value,
    )


# ===================================================================
# POST /auth/signup
# ===================================================================


@router.post("/signup", status_code=201)
@limiter.limit("5/hour")
async def signup(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SignupRequest,
    db: DbSession,
    sender: EmailSenderDep,
) -> DataResponse[dict]:
    """Create a credential account and send the verification email.

    Returns 409 if the email is taken and 503 if the verification email
    could not be sent (the account is removed again in that case).

    Rate limit: 5 per hour per IP.
    """
    user = await register_user(
        db, sender, name=body.name, email=body.email, password=body.password
    )
    return DataResponse(
        data={
            "id": str(user.id),
            "email": user.email,
            "message": "Account created. Please check your email to verify your account.",
        }
    )


# ===================================================================
# POST /auth/signin
# ===================================================================


@router.post("/signin")
@limiter.limit("10/15minute")
async def signin(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SigninRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Check email + password and issue the session cookie.

    401 for unknown email, social-only account or wrong password; 403 when
    the email is not verified yet.

    Rate limit: 10 per 15 minutes per IP.
    """
    result = await authenticate_credentials(db, body.email, body.password)
    if isinstance(result, LoginFailed):
        logger.info("Sign-in rejected", extra={"reason": result.reason.value})
        raise login_failure_error(result.reason)

    token = issue_session_token(
        result.claims, secret=settings.auth_secret.get_secret_value()
    )
    set_session_cookie(response, token)
    return DataResponse(data=user_to_response(result.user))


# ===================================================================
# GET/POST /auth/verify-email
# ===================================================================


def _signin_redirect(**params: str) -> RedirectResponse:
    url = f"{settings.frontend_url}/signin?{urlencode(params)}"
    response = RedirectResponse(url=url, status_code=307)
    # Keep the token out of the Referer header on the next page
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


@router.get("/verify-email")
@limiter.limit("20/hour")
async def verify_email_link(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    db: DbSession,
    sender: EmailSenderDep,
    background_tasks: BackgroundTasks,
    token: Annotated[str | None, Query(max_length=255)] = None,
) -> Response:
    """Handle the link from the verification email.

    Redirects to the frontend sign-in page with ``verified=true`` or an
    ``error`` of ``missing_token`` / ``invalid_token``. A link for an
    already verified account counts as success.

    Rate limit: 20 per hour per IP.
    """
    if not token:
        return _signin_redirect(error="missing_token")

    result = await consume_verification_token(db, token)
    await db.commit()

    if result.outcome is VerificationOutcome.INVALID_TOKEN:
        return _signin_redirect(error="invalid_token")

    if result.outcome is VerificationOutcome.VERIFIED and result.user is not None:
        background_tasks.add_task(
            send_welcome_email,
            sender,
            to_email=result.user.email,
            name=result.user.name,
        )
    return _signin_redirect(verified="true")


@router.post("/verify-email")
@limiter.limit("20/hour")
async def verify_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyEmailRequest,
    db: DbSession,
    sender: EmailSenderDep,
    background_tasks: BackgroundTasks,
) -> DataResponse[dict]:
    """JSON variant of email verification for API clients.

    Returns 400 INVALID_TOKEN for unknown or already consumed tokens.

    Rate limit: 20 per hour per IP.
    """
    result = await consume_verification_token(db, body.token)
    await db.commit()

    if result.outcome is VerificationOutcome.INVALID_TOKEN or result.user is None:
        raise ValidationError(
            "Invalid or expired verification token", code="INVALID_TOKEN"
        )

    if result.outcome is VerificationOutcome.VERIFIED:
        background_tasks.add_task(
            send_welcome_email,
            sender,
            to_email=result.user.email,
            name=result.user.name,
        )
        message = "Email verified successfully"
    else:
        message = "Email already verified"

    return DataResponse(
        data={
            "email": result.user.email,
            "status": result.outcome.value,
            "message": message,
        }
    )


# ===================================================================
# POST /auth/resend-verification
# ===================================================================


@router.post("/resend-verification")
@limiter.limit("3/hour")
async def resend_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResendVerificationRequest,
    db: DbSession,
    sender: EmailSenderDep,
) -> DataResponse[dict]:
    """Issue a fresh verification token and email it.

    Only unverified credential accounts get a new token; every request gets
    the same answer so the endpoint cannot be used to probe for accounts.

    Rate limit: 3 per hour per IP.
    """
    user = await UserRepository.get_by_email(db, body.email)
    if user is not None and not user.is_verified and user.password_hash is not None:
        token = await issue_verification_token(db, user)
        await db.commit()
        sent = await send_verification_email(
            sender, to_email=user.email, token=token, name=user.name
        )
        if not sent:
            logger.warning(
                "Resent verification email failed",
                extra={"user_id": str(user.id)},
            )

    return DataResponse(
        data={
            "message": "If an unverified account exists for this email, "
            "a new verification link has been sent."
        }
    )


# ===================================================================
# GET /auth/check-email
# ===================================================================


@router.get("/check-email")
@limiter.limit("10/minute")
async def check_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    email: EmailStr,
    db: DbSession,
) -> DataResponse[dict]:
    """Report whether an account exists for ``email``.

    Rate limit: 10 per minute per IP.
    """
    user = await UserRepository.get_by_email(db, email)
    return DataResponse(data={"exists": user is not None})


# ===================================================================
# GET /auth/session, POST /auth/logout
# ===================================================================


@router.get("/session")
async def get_session(user: CurrentUser) -> DataResponse[dict]:
    """Return the signed-in user. 401 without a valid session."""
    return DataResponse(data=user_to_response(user))


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the session cookie. No auth required."""
    clear_session_cookie(response)
    return DataResponse(data={"message": "Signed out"})
