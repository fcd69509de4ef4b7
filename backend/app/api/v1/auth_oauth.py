"""Provider sign-in: GET /auth/providers/{provider} and its callback.

Authorization code flow with PKCE. The start endpoint parks the state and
verifier in a signed, path-scoped cookie and redirects to the provider; the
callback checks that cookie, trades the code for a profile, signs the user
in and sends the browser back to the frontend. Provider or sign-in failures
after a valid callback end on the frontend's sign-in page with ``?error=``.
"""

import logging
import secrets
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError
from starlette.responses import Response

from app.api.deps import DbSession, EmailSenderDep
from app.core.auth import issue_session_token, set_session_cookie
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.oauth import (
    STATE_TTL_SECONDS,
    OAuthProviderConfig,
    create_oauth_state_cookie,
    generate_code_challenge,
    generate_code_verifier,
    get_provider_config,
    validate_oauth_state_cookie,
)
from app.core.oauth_client import (
    OAuthExchangeError,
    exchange_code_for_tokens,
    fetch_profile,
    get_client_credentials,
)
from app.core.rate_limiting import limiter
from app.services.authentication import LoginFailed, authenticate_oauth
from app.services.notifications import send_welcome_email

logger = logging.getLogger(__name__)

router = APIRouter()

STATE_COOKIE = "oauth_state"
# Only the callback ever needs to read it
STATE_COOKIE_PATH = "/api/v1/auth/callback"


def _provider(provider: str) -> OAuthProviderConfig:
    try:
        return get_provider_config(provider)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _callback_url(request: Request, provider: str) -> str:
    """Absolute callback on the host the browser used to reach us."""
    return f"{str(request.base_url).rstrip('/')}/api/v1/auth/callback/{provider}"


def _redirect(url: str) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=307)
    response.delete_cookie(key=STATE_COOKIE, path=STATE_COOKIE_PATH)
    return response


def _signin_error(error: str) -> RedirectResponse:
    return _redirect(f"{settings.frontend_url}/signin?{urlencode({'error': error})}")


@router.get("/providers/{provider}")
@limiter.limit("10/hour")
async def oauth_initiate(provider: str, request: Request) -> Response:
    """Start a provider sign-in: 307 to the provider's consent page."""
    config = _provider(provider)
    client_id, _ = get_client_credentials(provider)
    if not client_id:
        raise ValidationError(f"OAuth provider {provider} is not configured")

    verifier = generate_code_verifier()
    state = secrets.token_urlsafe(32)
    query = {
        "client_id": client_id,
        "redirect_uri": _callback_url(request, provider),
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
        "code_challenge": generate_code_challenge(verifier),
        "code_challenge_method": "S256",
    }
    if provider == "google":
        query["prompt"] = "select_account"

    response = RedirectResponse(
        url=f"{config.authorization_url}?{urlencode(query)}", status_code=307
    )
    response.set_cookie(
        key=STATE_COOKIE,
        value=create_oauth_state_cookie(
            provider=provider,
            state=state,
            code_verifier=verifier,
            secret=settings.auth_secret.get_secret_value(),
        ),
        max_age=STATE_TTL_SECONDS,
        path=STATE_COOKIE_PATH,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/callback/{provider}")
@limiter.limit("20/hour")
async def oauth_callback(
    provider: str,
    request: Request,
    db: DbSession,
    sender: EmailSenderDep,
    background_tasks: BackgroundTasks,
    code: str | None = None,
    state: str | None = None,
) -> Response:
    """Finish a provider sign-in and land on the frontend with a session.

    A malformed callback (no code, no state, unknown provider, missing or
    mismatched state cookie) is a 400. Accounts created or verified by this
    sign-in get a welcome email after the response.
    """
    if not code:
        raise ValidationError("Missing authorization code")
    if not state:
        raise ValidationError("Missing state parameter")
    _provider(provider)

    cookie = request.cookies.get(STATE_COOKIE)
    if not cookie:
        raise ValidationError("Missing OAuth state cookie")
    verifier = validate_oauth_state_cookie(
        cookie_value=cookie,
        provider=provider,
        expected_state=state,
        secret=settings.auth_secret.get_secret_value(),
    )
    if not verifier:
        raise ValidationError("Invalid or expired OAuth state")

    try:
        tokens = await exchange_code_for_tokens(
            provider=provider,
            code=code,
            code_verifier=verifier,
            redirect_uri=_callback_url(request, provider),
        )
        profile = await fetch_profile(
            provider=provider, access_token=tokens["access_token"]
        )
    except (httpx.HTTPError, OAuthExchangeError, KeyError):
        logger.exception("OAuth provider exchange failed", extra={"provider": provider})
        return _signin_error("oauth_failed")

    try:
        result = await authenticate_oauth(db, profile)
        if isinstance(result, LoginFailed):
            return _signin_error(result.reason.value.lower())
        await db.commit()
    except IntegrityError:
        # A concurrent sign-in created the same user or link first
        await db.rollback()
        logger.warning(
            "OAuth sign-in hit a unique constraint", extra={"provider": provider}
        )
        return _signin_error("oauth_conflict")

    if result.newly_verified:
        background_tasks.add_task(
            send_welcome_email,
            sender,
            to_email=result.user.email,
            name=result.user.name,
            provider=provider,
        )

    response = _redirect(settings.frontend_url)
    set_session_cookie(
        response,
        issue_session_token(
            result.claims, secret=settings.auth_secret.get_secret_value()
        ),
    )
    return response
