import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

from costagolf.models.schemas import Booking, Course, GolfmanagerLink, TeeOneLink, TeeTimeSlot, ZestLink

logger = logging.getLogger(__name__)

CourseLink = GolfmanagerLink | TeeOneLink | ZestLink


@dataclass
class BookingSyncResult:
    success: bool
    provider: str | None = None
    provider_booking_id: str | None = None
    error_message: str | None = None


class ProviderError(Exception):
    """An upstream booking engine call failed after retries."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


def unsupported_link(provider: str, link: CourseLink) -> ProviderError:
    return ProviderError(provider, f"cannot serve a {link.kind} course link")


class TeeTimeProvider(ABC):
    """Abstract base class for tee-sheet booking engines (Golfmanager, TeeOne, Zest)."""

    name: str = "provider"

    @abstractmethod
    async def search_availability(
        self,
        course: Course,
        link: CourseLink,
        target_date: date,
        players: int = 2,
        holes: int = 18,
        from_time: str | None = None,
        to_time: str | None = None,
    ) -> list[TeeTimeSlot]:
        """Get priced tee times for a course on a given date."""
        pass

    @abstractmethod
    async def create_booking(self, booking: Booking, course: Course, link: CourseLink) -> BookingSyncResult:
        """
        Mirror a confirmed booking onto the provider's tee sheet.

        Implementations never raise; failures come back as an unsuccessful result.
        """
        pass

    async def cancel_booking(self, provider_booking_id: str) -> bool:
        logger.warning(f"{self.name} does not support cancelling booking {provider_booking_id}")
        return False

    @abstractmethod
    async def close(self) -> None:
        pass


def in_time_window(tee_time: str, from_time: str | None, to_time: str | None) -> bool:
    """Check an ISO tee time's HH:MM against an optional inclusive window."""
    clock = tee_time.partition("T")[2][:5]
    if not clock:
        return True
    if from_time and clock < from_time:
        return False
    if to_time and clock > to_time:
        return False
    return True
