import asyncio
import logging

import resend

from costagolf.config import settings
from costagolf.providers.email_base import EmailProvider, EmailResult

logger = logging.getLogger(__name__)


class ResendEmailProvider(EmailProvider):
    """Resend implementation of the email provider interface."""

    def __init__(self, api_key: str | None = None, from_address: str | None = None) -> None:
        self.api_key = settings.resend_api_key if api_key is None else api_key
        self.from_address = from_address or settings.email_from_address

    async def send_email(self, to_address: str, subject: str, text: str, html: str | None = None) -> EmailResult:
        """
        Send an email via Resend.

        Without an API key the message is only logged, so local runs never
        fail on email.
        """
        if not self.api_key:
            logger.info(f"[Email Mock] To: {to_address}, Subject: {subject}")
            return EmailResult(success=True, message_id="mock_email")

        params: dict = {
            "from": self.from_address,
            "to": [to_address],
            "subject": subject,
            "text": text,
        }
        if html:
            params["html"] = html

        try:
            resend.api_key = self.api_key
            # The Resend SDK is blocking; keep it off the event loop.
            response = await asyncio.to_thread(resend.Emails.send, params)
            message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
            logger.info(f"Sent email to {to_address}: {subject}")
            return EmailResult(success=True, message_id=message_id)
        except Exception as e:
            logger.error(f"Error sending email to {to_address}: {e}")
            return EmailResult(success=False, error_message=str(e))


class MockEmailProvider(EmailProvider):
    """Mock email provider for testing and development."""

    def __init__(self) -> None:
        self.sent_messages: list[dict] = []

    async def send_email(self, to_address: str, subject: str, text: str, html: str | None = None) -> EmailResult:
        """Record the message and return a mock success result."""
        self.sent_messages.append({"to": to_address, "subject": subject, "text": text, "html": html})
        logger.info(f"[Email Mock] To: {to_address}, Subject: {subject}")
        return EmailResult(success=True, message_id=f"mock_email_{len(self.sent_messages)}")
