"""Transactional email content: verification link and welcome message.

Both messages go through app.core.email.deliver(), which bounds the send
with the configured timeout.
"""

import logging
from html import escape
from urllib.parse import quote, urlencode

from app.core.config import settings
from app.core.email import EmailSender, OutgoingEmail, deliver

logger = logging.getLogger(__name__)

_PROVIDER_LABELS = {"github": "GitHub", "google": "Google"}


def build_verification_url(token: str) -> str:
    """Link the user clicks to confirm their address (hits the API directly)."""
    params = urlencode({"token": token}, quote_via=quote)
    return f"{settings.backend_url}/api/v1/auth/verify-email?{params}"


def _greeting(name: str | None) -> str:
    return f"Hi {name}," if name else "Hi,"


async def send_verification_email(
    sender: EmailSender,
    *,
    to_email: str,
    token: str,
    name: str | None = None,
) -> bool:
    """Send the address-confirmation email.

    Args:
        sender: Email backend.
        to_email: Recipient address.
        token: Pending verification token.
        name: Recipient display name, if known.

    Returns:
        True if the message was handed to the backend in time.
    """
    url = build_verification_url(token)
    text = (
        f"{_greeting(name)}\n\n"
        "Please confirm your email address by opening this link:\n\n"
        f"{url}\n\n"
        "If you didn't create an account, you can safely ignore this email."
    )
    html = (
        f"<p>{escape(_greeting(name))}</p>"
        "<p>Please confirm your email address:</p>"
        f'<p><a href="{escape(url)}">Verify email</a></p>'
        "<p>If you didn't create an account, you can safely ignore this email.</p>"
    )
    return await deliver(
        sender,
        OutgoingEmail(to=to_email, subject="Verify your email", text=text, html=html),
    )


async def send_welcome_email(
    sender: EmailSender,
    *,
    to_email: str,
    name: str | None = None,
    provider: str | None = None,
) -> None:
    """Send the one-time welcome email after verification.

    Runs as a background task: failures are logged, never raised.

    Args:
        sender: Email backend.
        to_email: Recipient address.
        name: Recipient display name, if known.
        provider: OAuth provider the user signed in with, if any.
    """
    if provider:
        how = f"You're signed in with {_PROVIDER_LABELS.get(provider, provider)}."
    else:
        how = "Your email address is confirmed and you can now sign in."
    text = f"{_greeting(name)}\n\nWelcome to Authflow! {how}\n"
    html = f"<p>{escape(_greeting(name))}</p><p>Welcome to Authflow! {escape(how)}</p>"

    delivered = await deliver(
        sender,
        OutgoingEmail(to=to_email, subject="Welcome to Authflow", text=text, html=html),
    )
    if not delivered:
        logger.warning("Welcome email was not delivered", extra={"provider": provider})
