"""Outbound email delivery.

One EmailSender per backend (Resend HTTP API, SMTP, console log), selected by
``EMAIL_BACKEND``. Senders report failure by returning False instead of
raising, and deliver() bounds each send with a timeout so a slow mail
provider cannot stall a request.

The sender reaches handlers through the get_email_sender() dependency, which
tests override with a recording fake.
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass, replace
from email.message import EmailMessage

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0
_SMTP_TIMEOUT = 30


@dataclass(frozen=True)
class OutgoingEmail:
    """A single transactional message.

    Attributes:
        to: Recipient address.
        subject: Subject line.
        text: Plain-text body (always sent).
        html: Optional HTML alternative.
    """

    to: str
    subject: str
    text: str
    html: str | None = None


class EmailSender:
    """Base class for email backends."""

    async def send(self, email: OutgoingEmail) -> bool:
        """Send a message. Returns True on success, False on failure."""
        raise NotImplementedError


class ResendEmailSender(EmailSender):
    """Sends through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str) -> None:
        self._api_key = api_key
        self._from = from_address

    async def send(self, email: OutgoingEmail) -> bool:
        body: dict[str, str] = {
            "from": self._from,
            "to": email.to,
            "subject": email.subject,
            "text": email.text,
        }
        if email.html:
            body["html"] = email.html
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json=body,
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning(
                "Resend rejected email",
                extra={"subject": email.subject},
                exc_info=True,
            )
            return False
        return True


class SmtpEmailSender(EmailSender):
    """Sends through an SMTP relay (STARTTLS or implicit SSL).

    smtplib is blocking, so the conversation runs in a worker thread.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        use_tls: bool = True,
        use_ssl: bool = False,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from = from_address
        self._use_tls = use_tls
        self._use_ssl = use_ssl

    def _build_message(self, email: OutgoingEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._from
        msg["To"] = email.to
        msg["Subject"] = email.subject
        msg.set_content(email.text)
        if email.html:
            msg.add_alternative(email.html, subtype="html")
        return msg

    def _send_sync(self, email: OutgoingEmail) -> None:
        server: smtplib.SMTP
        if self._use_ssl:
            server = smtplib.SMTP_SSL(self._host, self._port, timeout=_SMTP_TIMEOUT)
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=_SMTP_TIMEOUT)
            if self._use_tls:
                server.starttls()
        try:
            if self._username:
                server.login(self._username, self._password)
            server.send_message(self._build_message(email))
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                logger.debug("SMTP quit failed", exc_info=True)

    async def send(self, email: OutgoingEmail) -> bool:
        if not self._host:
            logger.error("SMTP_HOST is not configured")
            return False
        try:
            await asyncio.to_thread(self._send_sync, email)
        except (smtplib.SMTPException, OSError):
            logger.warning(
                "SMTP delivery failed",
                extra={"subject": email.subject},
                exc_info=True,
            )
            return False
        return True


class ConsoleEmailSender(EmailSender):
    """Writes messages to the log instead of sending them (development)."""

    async def send(self, email: OutgoingEmail) -> bool:
        logger.info(
            "Email (console backend)",
            extra={"to": email.to, "subject": email.subject, "body": email.text},
        )
        return True


def _apply_dev_recipient(email: OutgoingEmail) -> OutgoingEmail:
    """Outside production, redirect mail to EMAIL_DEV_RECIPIENT when set."""
    if settings.is_production or not settings.email_dev_recipient:
        return email
    notice = f"[Originally addressed to {email.to}]\n\n"
    return replace(
        email,
        to=settings.email_dev_recipient,
        text=notice + email.text,
        html=f"<p>{notice.strip()}</p>{email.html}" if email.html else None,
    )


async def deliver(
    sender: EmailSender,
    email: OutgoingEmail,
    *,
    timeout: float | None = None,
) -> bool:
    """Send an email, treating a timeout or a sender crash as failure.

    Args:
        sender: Backend to send with.
        email: Message to send.
        timeout: Seconds to wait. Defaults to settings.email_send_timeout_seconds.

    Returns:
        True if the backend reported success within the timeout.
    """
    limit = timeout if timeout is not None else settings.email_send_timeout_seconds
    try:
        return await asyncio.wait_for(
            sender.send(_apply_dev_recipient(email)), timeout=limit
        )
    except TimeoutError:
        logger.warning(
            "Email send timed out",
            extra={"subject": email.subject, "timeout_seconds": limit},
        )
        return False
    except Exception:
        logger.exception("Email sender raised", extra={"subject": email.subject})
        return False


def build_email_sender() -> EmailSender:
    """Create the sender configured by EMAIL_BACKEND."""
    if settings.email_backend == "resend":
        return ResendEmailSender(
            api_key=settings.resend_api_key.get_secret_value(),
            from_address=settings.email_from,
        )
    if settings.email_backend == "smtp":
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password.get_secret_value(),
            from_address=settings.email_from,
            use_tls=settings.smtp_use_tls,
            use_ssl=settings.smtp_use_ssl,
        )
    return ConsoleEmailSender()


def get_email_sender() -> EmailSender:
    """FastAPI dependency returning the configured email sender."""
    return build_email_sender()
