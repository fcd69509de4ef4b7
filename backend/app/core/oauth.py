"""Provider-independent pieces of the OAuth sign-in flow.

PKCE (RFC 7636, S256 only), the signed state cookie that carries the flow
between the redirect and the callback, and the endpoint table for the
supported providers. Nothing here does network I/O; see oauth_client.
"""

import base64
import hashlib
import secrets
import time
from dataclasses import dataclass

import jwt

# RFC 7636 section 4.1: 43-128 characters from the unreserved set
_VERIFIER_LENGTH = 128
_VERIFIER_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ" "abcdefghijklmnopqrstuvwxyz" "0123456789" "-._~"
)

# Time the user has to finish consent at the provider
STATE_TTL_SECONDS = 600


def generate_code_verifier() -> str:
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Unpadded base64url of the verifier's SHA-256."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def create_oauth_state_cookie(
    *,
    provider: str,
    state: str,
    code_verifier: str,
    secret: str,
    ttl_seconds: int = STATE_TTL_SECONDS,
) -> str:
    """HS256 token binding the CSRF state and PKCE verifier to one provider.

    Kept in the browser for the length of the round trip; the server stores
    nothing between the redirect and the callback.
    """
    claims = {
        "provider": provider,
        "state": state,
        "code_verifier": code_verifier,
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def validate_oauth_state_cookie(
    *,
    cookie_value: str,
    provider: str,
    expected_state: str,
    secret: str,
) -> str | None:
    """PKCE verifier for a matching callback, otherwise None.

    None covers a bad signature, an expired cookie, a cookie minted for
    another provider and a state that differs from the callback's.
    """
    try:
        claims = jwt.decode(cookie_value, secret, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None

    if claims.get("provider") != provider:
        return None
    if not secrets.compare_digest(
        str(claims.get("state", "")).encode(), expected_state.encode()
    ):
        return None
    verifier = claims.get("code_verifier")
    return verifier if isinstance(verifier, str) else None


@dataclass(frozen=True)
class OAuthProfile:
    """Who the provider says the user is, in one shape for every provider.

    ``email_verified`` is True only when the provider vouches for the
    address; sign-in refuses profiles without a vouched email.
    """

    provider: str
    provider_account_id: str
    email: str | None
    email_verified: bool = False
    name: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class OAuthProviderConfig:
    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    # Separate address listing, for userinfo that can omit a private email
    emails_url: str | None = None


_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "github": OAuthProviderConfig(  # nosec B106 (token_url is an endpoint)
        authorization_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        userinfo_url="https://api.github.com/user",
        scopes=("read:user", "user:email"),
        emails_url="https://api.github.com/user/emails",
    ),
    "google": OAuthProviderConfig(  # nosec B106 (token_url is an endpoint)
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        scopes=("openid", "email", "profile"),
    ),
}

SUPPORTED_PROVIDERS: tuple[str, ...] = tuple(_PROVIDERS)


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Endpoints for ``provider``.

    Raises:
        ValueError: ``provider`` is not one of SUPPORTED_PROVIDERS.
    """
    try:
        return _PROVIDERS[provider]
    except KeyError:
        raise ValueError(f"Unsupported OAuth provider: {provider}") from None
