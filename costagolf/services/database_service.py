"""
Database service for persistent storage of courses and bookings.

This module provides async CRUD operations for the durable records,
handling conversion between Pydantic schemas and SQLAlchemy models.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from costagolf.models.database import (
    AddOnRecord,
    AsyncSessionLocal,
    BookingRecord,
    CourseRecord,
    ProviderLinkRecord,
    RatePeriodRecord,
)
from costagolf.models.schemas import (
    AddOn,
    Booking,
    Course,
    GolfmanagerLink,
    RatePeriod,
    SyncStatus,
    TeeOneLink,
    ZestLink,
    parse_provider_course_code,
    utc_now_naive,
)

logger = logging.getLogger(__name__)


class DatabaseService:
    """
    Provides database operations for courses, their commercial configuration
    and bookings.

    Args:
        session_factory: Optional sessionmaker override (tests bind an
            in-memory engine here). Defaults to the application session factory.
    """

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or AsyncSessionLocal
        return factory()

    def _booking_to_record(self, booking: Booking) -> BookingRecord:
        """Convert a Booking Pydantic model to a BookingRecord SQLAlchemy model."""
        record = BookingRecord(
            course_id=booking.course_id,
            order_id=booking.order_id,
            tee_time=booking.tee_time,
            players=booking.players,
            holes=booking.holes,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
            status=booking.status,
            payment_status=booking.payment_status,
            payment_reference=booking.payment_reference,
            total_amount=booking.total_amount,
            currency=booking.currency,
            sync_status=booking.sync_status,
            sync_error=booking.sync_error,
            provider_booking_id=booking.provider_booking_id,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )
        if booking.id:
            record.id = booking.id
        return record

    def _record_to_booking(self, record: BookingRecord) -> Booking:
        """Convert a BookingRecord SQLAlchemy model to a Booking Pydantic model."""
        return Booking(
            id=record.id,  # type: ignore[arg-type]
            course_id=record.course_id,  # type: ignore[arg-type]
            order_id=record.order_id,  # type: ignore[arg-type]
            tee_time=record.tee_time,  # type: ignore[arg-type]
            players=record.players,  # type: ignore[arg-type]
            holes=record.holes,  # type: ignore[arg-type]
            customer_name=record.customer_name,  # type: ignore[arg-type]
            customer_email=record.customer_email,  # type: ignore[arg-type]
            customer_phone=record.customer_phone,  # type: ignore[arg-type]
            status=record.status,  # type: ignore[arg-type]
            payment_status=record.payment_status,  # type: ignore[arg-type]
            payment_reference=record.payment_reference,  # type: ignore[arg-type]
            total_amount=record.total_amount,  # type: ignore[arg-type]
            currency=record.currency,  # type: ignore[arg-type]
            sync_status=record.sync_status,  # type: ignore[arg-type]
            sync_error=record.sync_error,  # type: ignore[arg-type]
            provider_booking_id=record.provider_booking_id,  # type: ignore[arg-type]
            created_at=record.created_at,  # type: ignore[arg-type]
            updated_at=record.updated_at,  # type: ignore[arg-type]
        )

    def _record_to_course(self, record: CourseRecord) -> Course:
        return Course(
            id=record.id,  # type: ignore[arg-type]
            name=record.name,  # type: ignore[arg-type]
            city=record.city or "",  # type: ignore[arg-type]
            email=record.email,  # type: ignore[arg-type]
            kickback_percent=record.kickback_percent,  # type: ignore[arg-type]
            teeone_id_empresa=record.teeone_id_empresa,  # type: ignore[arg-type]
            teeone_id_tee_sheet=record.teeone_id_tee_sheet,  # type: ignore[arg-type]
            teeone_api_user=record.teeone_api_user,  # type: ignore[arg-type]
            teeone_api_password=record.teeone_api_password,  # type: ignore[arg-type]
        )

    def _record_to_add_on(self, record: AddOnRecord) -> AddOn:
        return AddOn(
            id=record.id,  # type: ignore[arg-type]
            course_id=record.course_id,  # type: ignore[arg-type]
            name=record.name,  # type: ignore[arg-type]
            price=record.price,  # type: ignore[arg-type]
            currency=record.currency,  # type: ignore[arg-type]
            per_player=record.per_player,  # type: ignore[arg-type]
        )

    def _record_to_rate_period(self, record: RatePeriodRecord) -> RatePeriod:
        return RatePeriod(
            id=record.id,  # type: ignore[arg-type]
            course_id=record.course_id,  # type: ignore[arg-type]
            name=record.name,  # type: ignore[arg-type]
            start_date=record.start_date,  # type: ignore[arg-type]
            end_date=record.end_date,  # type: ignore[arg-type]
            rack_rate=record.rack_rate,  # type: ignore[arg-type]
            is_early_bird=record.is_early_bird,  # type: ignore[arg-type]
            is_twilight=record.is_twilight,  # type: ignore[arg-type]
            includes_lunch=record.includes_lunch,  # type: ignore[arg-type]
        )

    async def create_booking(self, booking: Booking) -> Booking:
        """Create a new booking record in the database."""
        async with self._session() as db:
            record = self._booking_to_record(booking)
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return self._record_to_booking(record)

    async def get_booking(self, booking_id: str) -> Booking | None:
        """Get a booking by its ID."""
        async with self._session() as db:
            record = await db.get(BookingRecord, booking_id)
            if record:
                return self._record_to_booking(record)
            return None

    async def get_booking_by_payment_reference(self, payment_reference: str) -> Booking | None:
        """Find the booking already created for a payment, if any."""
        async with self._session() as db:
            result = await db.execute(
                select(BookingRecord).where(BookingRecord.payment_reference == payment_reference)
            )
            record = result.scalar_one_or_none()
            if record:
                return self._record_to_booking(record)
            return None

    async def update_booking_sync_status(
        self,
        booking_id: str,
        status: SyncStatus,
        error: str | None = None,
        provider_booking_id: str | None = None,
    ) -> Booking:
        """Record the outcome of mirroring a booking to its upstream provider."""
        async with self._session() as db:
            record = await db.get(BookingRecord, booking_id)
            if not record:
                raise ValueError(f"Booking {booking_id} not found")

            record.sync_status = status  # type: ignore[assignment]
            record.sync_error = error  # type: ignore[assignment]
            record.provider_booking_id = provider_booking_id  # type: ignore[assignment]
            record.updated_at = utc_now_naive()  # type: ignore[assignment]

            await db.commit()
            await db.refresh(record)
            return self._record_to_booking(record)

    async def get_course(self, course_id: str) -> Course | None:
        """Get a course by its ID."""
        async with self._session() as db:
            record = await db.get(CourseRecord, course_id)
            if record:
                return self._record_to_course(record)
            return None

    async def create_course(self, course: Course) -> Course:
        async with self._session() as db:
            record = CourseRecord(**course.model_dump())
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return self._record_to_course(record)

    async def get_add_ons_by_course_id(self, course_id: str) -> list[AddOn]:
        """Get the add-on catalog configured for a course."""
        async with self._session() as db:
            result = await db.execute(select(AddOnRecord).where(AddOnRecord.course_id == course_id))
            return [self._record_to_add_on(r) for r in result.scalars().all()]

    async def create_add_on(self, add_on: AddOn) -> AddOn:
        async with self._session() as db:
            record = AddOnRecord(**add_on.model_dump())
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return self._record_to_add_on(record)

    async def get_rate_periods_by_course_id(self, course_id: str) -> list[RatePeriod]:
        """Get the contract rate periods for a course."""
        async with self._session() as db:
            result = await db.execute(
                select(RatePeriodRecord).where(RatePeriodRecord.course_id == course_id)
            )
            return [self._record_to_rate_period(r) for r in result.scalars().all()]

    async def create_rate_period(self, period: RatePeriod) -> RatePeriod:
        async with self._session() as db:
            record = RatePeriodRecord(**period.model_dump())
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return self._record_to_rate_period(record)

    async def get_links_by_course_id(
        self, course_id: str
    ) -> list[GolfmanagerLink | TeeOneLink | ZestLink]:
        """
        Get the decoded provider links for a course.

        Codes that do not decode to a known provider are skipped with a warning,
        so callers never see the raw prefixed strings.
        """
        async with self._session() as db:
            result = await db.execute(
                select(ProviderLinkRecord).where(ProviderLinkRecord.course_id == course_id)
            )
            links: list[GolfmanagerLink | TeeOneLink | ZestLink] = []
            for record in result.scalars().all():
                link = parse_provider_course_code(record.provider_course_code)  # type: ignore[arg-type]
                if link is None:
                    logger.warning(
                        f"Ignoring invalid provider course code for course {course_id}: "
                        f"{record.provider_course_code!r}"
                    )
                    continue
                links.append(link)
            return links

    async def create_provider_link(
        self, course_id: str, provider_course_code: str, booking_url: str | None = None
    ) -> None:
        async with self._session() as db:
            db.add(
                ProviderLinkRecord(
                    course_id=course_id,
                    provider_course_code=provider_course_code,
                    booking_url=booking_url,
                )
            )
            await db.commit()


database_service = DatabaseService()
