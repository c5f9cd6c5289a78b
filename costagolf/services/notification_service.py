import logging

from costagolf.models.schemas import Booking
from costagolf.providers.email_base import EmailProvider, EmailResult

logger = logging.getLogger(__name__)


def format_amount(amount_minor: int, currency: str) -> str:
    return f"{amount_minor / 100:.2f} {currency}"


class NotificationService:
    """Sends customer-facing booking emails. Never raises to the caller."""

    def __init__(self, email_provider: EmailProvider) -> None:
        self.email_provider = email_provider

    def build_confirmation(self, booking: Booking, course_name: str, voucher_url: str) -> tuple[str, str]:
        tee_time = booking.tee_time.strftime("%A, %d %B %Y at %H:%M")
        subject = f"Booking Confirmed - {course_name}"
        text = (
            f"Hi {booking.customer_name},\n\n"
            f"Your tee time at {course_name} is confirmed.\n\n"
            f"Date: {tee_time}\n"
            f"Players: {booking.players}\n"
            f"Holes: {booking.holes}\n"
            f"Total: {format_amount(booking.total_amount, booking.currency)}\n"
            f"Booking reference: {booking.id}\n\n"
            f"Your voucher: {voucher_url}\n"
        )
        return subject, text

    async def send_booking_confirmation(self, booking: Booking, course_name: str, voucher_url: str) -> EmailResult:
        subject, text = self.build_confirmation(booking, course_name, voucher_url)
        try:
            result = await self.email_provider.send_email(booking.customer_email, subject, text)
        except Exception as e:
            logger.exception(f"Confirmation email for booking {booking.id} failed")
            return EmailResult(success=False, error_message=str(e))
        if not result.success:
            logger.error(f"Confirmation email for booking {booking.id} failed: {result.error_message}")
        return result
