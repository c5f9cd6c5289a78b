from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class EmailResult:
    success: bool
    message_id: str | None = None
    error_message: str | None = None


class EmailProvider(ABC):
    """Abstract base class for outbound email providers."""

    @abstractmethod
    async def send_email(self, to_address: str, subject: str, text: str, html: str | None = None) -> EmailResult:
        """
        Send an email message.

        Args:
            to_address: The recipient's email address.
            subject: The subject line.
            text: Plain-text body.
            html: Optional HTML body.

        Returns:
            EmailResult with success status and message id or error.
        """
        pass
