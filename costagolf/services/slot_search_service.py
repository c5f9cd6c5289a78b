import logging
from datetime import date

from costagolf.models.schemas import SlotSearchResponse
from costagolf.providers.base import TeeTimeProvider
from costagolf.services.database_service import DatabaseService
from costagolf.services.price_cache import PriceCache

logger = logging.getLogger(__name__)


class CourseNotFoundError(Exception):
    pass


class SlotSearchService:
    """
    Availability search across provider adapters.

    This is the only writer of the price cache: every priced slot returned to
    a customer is recorded so checkout can charge exactly what was shown.
    """

    def __init__(
        self,
        providers: dict[str, TeeTimeProvider],
        price_cache: PriceCache,
        db: DatabaseService,
    ) -> None:
        self.providers = providers
        self.price_cache = price_cache
        self.db = db

    async def search(
        self,
        course_id: str,
        target_date: date,
        players: int = 2,
        holes: int = 18,
        from_time: str | None = None,
        to_time: str | None = None,
    ) -> SlotSearchResponse:
        course = await self.db.get_course(course_id)
        if course is None:
            raise CourseNotFoundError(f"Course {course_id} not found")

        links = await self.db.get_links_by_course_id(course_id)
        provider = None
        link = None
        for candidate in links:
            provider = self.providers.get(candidate.kind)
            if provider is not None:
                link = candidate
                break

        if provider is None or link is None:
            return SlotSearchResponse(
                course_id=course_id,
                date=target_date.isoformat(),
                note="Book directly on course booking page",
            )

        # ProviderError propagates to the route.
        slots = await provider.search_availability(
            course, link, target_date, players, holes, from_time, to_time
        )

        cached = 0
        for slot in slots:
            if slot.green_fee > 0:
                self.price_cache.put(
                    course_id, slot.tee_time, slot.price_minor_units, slot.source, slot.currency
                )
                cached += 1
        logger.info(f"Search for {course.name} on {target_date}: {len(slots)} slots, {cached} prices cached")

        return SlotSearchResponse(
            course_id=course_id,
            date=target_date.isoformat(),
            provider=link.kind,
            slots=slots,
            note=None if slots else "No availability for selected date/time",
        )
