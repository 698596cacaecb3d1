"""Email provider adapters.

ResendEmailSender posts to the Resend HTTP API with httpx using a bounded
timeout so a slow provider cannot hold a request open. There is no retry:
by the time an email is attempted the triggering state change is already
committed, and a failed delivery is reported, not repeated.

LoggingEmailSender is used when no RESEND_API_KEY is configured (local
development, tests): it logs the message and reports it as skipped.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from src.app.config import Settings
from src.app.notifications.models import EmailMessage, SentEmailResult

logger = structlog.get_logger(__name__)


class EmailDeliveryError(Exception):
    """The provider rejected the message or could not be reached."""


class EmailNotConfiguredError(EmailDeliveryError):
    """No provider is configured; the message was not attempted."""


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> SentEmailResult: ...


class ResendEmailSender:
    """Async client for the Resend transactional email API.

    Args:
        api_key: Resend API key.
        from_address: Sender, e.g. "Bookings <bookings@example.com>".
        timeout: Total request timeout in seconds.
        api_url: Emails endpoint (overridable for tests).
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        from_address: str,
        timeout: float = 5.0,
        api_url: str = "https://api.resend.com/emails",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._from = from_address
        self._timeout = timeout
        self._api_url = api_url
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with the configured timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )

    async def send(self, message: EmailMessage) -> SentEmailResult:
        """Send one message.

        Raises:
            EmailDeliveryError: On timeout, connection failure or non-2xx response.
        """
        body: dict = {
            "from": self._from,
            "to": [message.to],
            "subject": message.subject,
            "html": message.body_html,
        }
        if message.body_text:
            body["text"] = message.body_text
        if message.reply_to:
            body["reply_to"] = message.reply_to
        if message.cc:
            body["cc"] = message.cc
        if message.tags:
            body["tags"] = [{"name": k, "value": v} for k, v in message.tags.items()]

        try:
            async with self._client() as client:
                response = await client.post(self._api_url, json=body)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise EmailDeliveryError(f"Email provider timed out after {self._timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise EmailDeliveryError(
                f"Email provider returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Email provider request failed: {exc}") from exc

        data = response.json()
        message_id = str(data.get("id", ""))
        logger.info("email.sent", provider="resend", message_id=message_id, subject=message.subject)
        return SentEmailResult(message_id=message_id, provider="resend")


class LoggingEmailSender:
    """Stand-in sender for environments without a provider key."""

    async def send(self, message: EmailMessage) -> SentEmailResult:
        logger.info(
            "email.not_configured",
            to=message.to,
            subject=message.subject,
        )
        raise EmailNotConfiguredError("No email provider configured")


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the provider adapter from settings."""
    if settings.RESEND_API_KEY:
        return ResendEmailSender(
            api_key=settings.RESEND_API_KEY,
            from_address=settings.EMAIL_FROM,
            timeout=settings.EMAIL_TIMEOUT,
            api_url=settings.RESEND_API_URL,
        )
    logger.warning("email.provider_missing", hint="set RESEND_API_KEY to send email")
    return LoggingEmailSender()
