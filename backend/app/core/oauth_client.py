"""OAuth HTTP client: token exchange and profile fetching.

HTTP client functions for exchanging authorization codes for tokens and
turning provider user info into an OAuthProfile.
"""

from typing import Any

import httpx

from app.core.config import settings
from app.core.oauth import OAuthProfile, get_provider_config

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0

# Map provider names to settings attribute prefixes
_PROVIDER_CREDENTIALS = {
    "github": ("github_client_id", "github_client_secret"),
    "google": ("google_client_id", "google_client_secret"),
}

_GITHUB_ACCEPT = "application/vnd.github+json"


class OAuthExchangeError(Exception):
    """The provider answered the token request without an access token."""


def get_client_credentials(provider: str) -> tuple[str, str]:
    """Return (client_id, client_secret) for a provider from settings.

    Either value is an empty string when the provider is not configured.
    """
    id_attr, secret_attr = _PROVIDER_CREDENTIALS[provider]
    return (
        getattr(settings, id_attr),
        getattr(settings, secret_attr).get_secret_value(),
    )


async def exchange_code_for_tokens(
    *,
    provider: str,
    code: str,
    code_verifier: str,
    redirect_uri: str,
) -> dict[str, Any]:
    """Exchange authorization code for OAuth tokens.

    GitHub reports failures as HTTP 200 with an ``error`` field, so the body
    is checked for an access token as well as the status.

    Args:
        provider: Provider name.
        code: Authorization code from callback.
        code_verifier: PKCE code verifier.
        redirect_uri: Callback URL used in initiation.

    Returns:
        Token response dict containing at least ``access_token``.

    Raises:
        httpx.HTTPStatusError: If the provider rejects the request.
        OAuthExchangeError: If no access token came back.
    """
    config = get_provider_config(provider)
    client_id, client_secret = get_client_credentials(provider)

    async with httpx.AsyncClient() as client:
        resp = await client.post(
            config.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
                "code_verifier": code_verifier,
            },
            headers={"Accept": "application/json"},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()

    if not result.get("access_token"):
        msg = f"{provider} token response had no access token: {result.get('error')}"
        raise OAuthExchangeError(msg)
    return result


def _pick_github_email(emails: list[dict[str, Any]]) -> str | None:
    """Primary verified address first, then any verified address."""
    verified = [e for e in emails if e.get("verified") and e.get("email")]
    for entry in verified:
        if entry.get("primary"):
            return str(entry["email"])
    return str(verified[0]["email"]) if verified else None


async def _fetch_github_profile(
    client: httpx.AsyncClient, access_token: str
) -> OAuthProfile:
    config = get_provider_config("github")
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": _GITHUB_ACCEPT,
    }
    resp = await client.get(
        config.userinfo_url, headers=headers, timeout=_OAUTH_HTTP_TIMEOUT
    )
    resp.raise_for_status()
    info: dict[str, Any] = resp.json()

    # The public profile email carries no verification flag; only the emails
    # endpoint reports verification per address.
    email: str | None = None
    if config.emails_url:
        resp = await client.get(
            config.emails_url, headers=headers, timeout=_OAUTH_HTTP_TIMEOUT
        )
        resp.raise_for_status()
        email = _pick_github_email(resp.json())
    email_verified = email is not None
    if email is None:
        email = info.get("email")

    return OAuthProfile(
        provider="github",
        provider_account_id=str(info["id"]),
        email=email,
        email_verified=email_verified,
        name=info.get("name") or info.get("login"),
        image=info.get("avatar_url"),
    )


async def _fetch_google_profile(
    client: httpx.AsyncClient, access_token: str
) -> OAuthProfile:
    config = get_provider_config("google")
    resp = await client.get(
        config.userinfo_url,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=_OAUTH_HTTP_TIMEOUT,
    )
    resp.raise_for_status()
    info: dict[str, Any] = resp.json()

    return OAuthProfile(
        provider="google",
        provider_account_id=str(info["sub"]),
        email=info.get("email"),
        email_verified=info.get("email_verified") is True,
        name=info.get("name"),
        image=info.get("picture"),
    )


async def fetch_profile(*, provider: str, access_token: str) -> OAuthProfile:
    """Fetch the user's identity from the OAuth provider.

    Args:
        provider: Provider name.
        access_token: OAuth access token.

    Returns:
        OAuthProfile for the authenticated provider account.

    Raises:
        httpx.HTTPStatusError: If a userinfo request fails.
        KeyError: If the provider response has no account id.
    """
    async with httpx.AsyncClient() as client:
        if provider == "github":
            return await _fetch_github_profile(client, access_token)
        return await _fetch_google_profile(client, access_token)
