"""
Mirrors confirmed bookings onto the upstream tee sheet that owns the course.

Sync is best effort: the customer's booking already exists when this runs,
so failures are recorded on the booking row for manual reconciliation and
never raised.
"""

import logging

from costagolf.models.schemas import Booking, Course, SyncStatus
from costagolf.providers.base import BookingSyncResult, TeeTimeProvider
from costagolf.services.database_service import DatabaseService

logger = logging.getLogger(__name__)


def sync_status_for(result: BookingSyncResult) -> SyncStatus:
    if not result.success:
        return SyncStatus.FAILED
    if result.provider_booking_id:
        return SyncStatus.SYNCED
    return SyncStatus.NOT_REQUIRED


class ProviderSyncService:
    def __init__(self, providers: dict[str, TeeTimeProvider], db: DatabaseService) -> None:
        self.providers = providers
        self.db = db

    async def sync_booking_to_provider(self, booking: Booking, course: Course) -> BookingSyncResult:
        """
        Dispatch a booking to the provider linked to its course.

        A course with no usable provider link needs no sync and succeeds
        trivially. Errors of any kind come back as a failed result.
        """
        try:
            links = await self.db.get_links_by_course_id(course.id)
            if not links:
                logger.info(f"No provider link for course {course.name} ({course.id})")
                return BookingSyncResult(success=True)

            link = links[0]
            provider = self.providers.get(link.kind)
            if provider is None:
                logger.info(f"No provider registered for {link.kind}; skipping sync of booking {booking.id}")
                return BookingSyncResult(success=True, provider=link.kind)

            logger.info(f"Syncing booking {booking.id} to {link.kind}")
            return await provider.create_booking(booking, course, link)
        except Exception as e:
            logger.exception(f"Unexpected error syncing booking {booking.id}")
            return BookingSyncResult(success=False, error_message=str(e))

    async def sync_and_record(self, booking: Booking, course: Course | None) -> Booking | None:
        """Run the sync and store its outcome on the booking row."""
        if course is None:
            result = BookingSyncResult(success=False, error_message=f"Course {booking.course_id} not found")
        else:
            result = await self.sync_booking_to_provider(booking, course)

        status = sync_status_for(result)
        if status == SyncStatus.FAILED:
            logger.error(f"Provider sync failed for booking {booking.id}: {result.error_message}")
        else:
            logger.info(f"Provider sync for booking {booking.id}: {status.value}")

        try:
            return await self.db.update_booking_sync_status(
                booking.id,  # type: ignore[arg-type]
                status,
                error=result.error_message,
                provider_booking_id=result.provider_booking_id,
            )
        except Exception:
            logger.exception(f"Could not record sync status for booking {booking.id}")
            return None
