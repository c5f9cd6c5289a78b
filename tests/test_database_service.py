"""
Tests for DatabaseService in costagolf/services/database_service.py.

These tests use an in-memory SQLite database to verify actual SQL behavior,
including CRUD operations, lookups, constraints, and edge cases.
"""

from datetime import date, datetime

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from costagolf.models.schemas import (
    AddOn,
    Booking,
    BookingStatus,
    Course,
    GolfmanagerLink,
    PaymentStatus,
    RatePeriod,
    SyncStatus,
    ZestLink,
)
from costagolf.services.database_service import DatabaseService


@pytest_asyncio.fixture
async def database_service(test_engine, monkeypatch):
    """DatabaseService using the module-level session factory, patched to the test engine."""
    test_session_local = sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr("costagolf.services.database_service.AsyncSessionLocal", test_session_local)
    return DatabaseService()


@pytest.fixture
def sample_booking() -> Booking:
    return Booking(
        course_id="course-1",
        order_id="ORD-ABC123DEF456",
        tee_time=datetime(2026, 5, 2, 9, 30),
        players=2,
        customer_name="Ana Lopez",
        customer_email="ana@example.com",
        payment_status=PaymentStatus.PAID,
        payment_reference="pi_123",
        total_amount=16000,
    )


class TestBookings:
    @pytest.mark.asyncio
    async def test_create_assigns_id(self, database_service: DatabaseService, sample_booking: Booking) -> None:
        created = await database_service.create_booking(sample_booking)

        assert created.id
        assert created.status == BookingStatus.CONFIRMED
        assert created.sync_status == SyncStatus.PENDING
        assert created.tee_time == datetime(2026, 5, 2, 9, 30)

    @pytest.mark.asyncio
    async def test_get_booking(self, database_service: DatabaseService, sample_booking: Booking) -> None:
        created = await database_service.create_booking(sample_booking)

        fetched = await database_service.get_booking(created.id)

        assert fetched == created

    @pytest.mark.asyncio
    async def test_get_missing_booking(self, database_service: DatabaseService) -> None:
        assert await database_service.get_booking("missing") is None

    @pytest.mark.asyncio
    async def test_lookup_by_payment_reference(
        self, database_service: DatabaseService, sample_booking: Booking
    ) -> None:
        created = await database_service.create_booking(sample_booking)

        found = await database_service.get_booking_by_payment_reference("pi_123")

        assert found.id == created.id
        assert await database_service.get_booking_by_payment_reference("pi_other") is None

    @pytest.mark.asyncio
    async def test_payment_reference_unique(self, database_service: DatabaseService, sample_booking: Booking) -> None:
        await database_service.create_booking(sample_booking)

        with pytest.raises(IntegrityError):
            await database_service.create_booking(sample_booking.model_copy(update={"order_id": "ORD-2"}))

    @pytest.mark.asyncio
    async def test_bookings_without_payment_reference_allowed(
        self, database_service: DatabaseService, sample_booking: Booking
    ) -> None:
        unpaid = sample_booking.model_copy(update={"payment_reference": None})

        first = await database_service.create_booking(unpaid)
        second = await database_service.create_booking(unpaid)

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_update_sync_status(self, database_service: DatabaseService, sample_booking: Booking) -> None:
        created = await database_service.create_booking(sample_booking)

        updated = await database_service.update_booking_sync_status(
            created.id, SyncStatus.SYNCED, provider_booking_id="98765"
        )

        assert updated.sync_status == SyncStatus.SYNCED
        assert updated.provider_booking_id == "98765"
        assert updated.sync_error is None
        assert updated.updated_at >= created.updated_at

    @pytest.mark.asyncio
    async def test_update_sync_status_missing_booking(self, database_service: DatabaseService) -> None:
        with pytest.raises(ValueError, match="not found"):
            await database_service.update_booking_sync_status("missing", SyncStatus.FAILED, error="x")


class TestCourses:
    @pytest.mark.asyncio
    async def test_create_and_get_course(self, database_service: DatabaseService) -> None:
        course = Course(
            id="course-2",
            name="El Paraiso Golf",
            city="Estepona",
            kickback_percent=15.0,
            teeone_id_empresa=42,
        )

        await database_service.create_course(course)

        assert await database_service.get_course("course-2") == course
        assert await database_service.get_course("missing") is None

    @pytest.mark.asyncio
    async def test_add_ons_by_course(self, database_service: DatabaseService) -> None:
        await database_service.create_add_on(AddOn(id="buggy", course_id="course-1", name="Buggy", price=2500))
        await database_service.create_add_on(AddOn(id="other", course_id="course-2", name="Trolley", price=500))

        add_ons = await database_service.get_add_ons_by_course_id("course-1")

        assert [a.id for a in add_ons] == ["buggy"]
        assert add_ons[0].per_player

    @pytest.mark.asyncio
    async def test_rate_periods_by_course(self, database_service: DatabaseService) -> None:
        period = RatePeriod(
            id="rp-1",
            course_id="course-1",
            name="Spring twilight",
            start_date=date(2026, 3, 1),
            end_date=date(2026, 5, 31),
            rack_rate=55.0,
            is_twilight=True,
        )
        await database_service.create_rate_period(period)

        assert await database_service.get_rate_periods_by_course_id("course-1") == [period]
        assert await database_service.get_rate_periods_by_course_id("course-2") == []


class TestProviderLinks:
    @pytest.mark.asyncio
    async def test_links_are_decoded(self, database_service: DatabaseService) -> None:
        await database_service.create_provider_link("course-1", "golfmanagerv3:naranjos")
        await database_service.create_provider_link("course-1", "zest:1234")

        links = await database_service.get_links_by_course_id("course-1")

        assert GolfmanagerLink(tenant="naranjos", version="v3") in links
        assert ZestLink(facility_id=1234) in links

    @pytest.mark.asyncio
    async def test_invalid_codes_skipped(self, database_service: DatabaseService) -> None:
        await database_service.create_provider_link("course-1", "zest:abc")
        await database_service.create_provider_link("course-1", "unknown:thing")
        await database_service.create_provider_link("course-1", "teeone:paraiso")

        links = await database_service.get_links_by_course_id("course-1")

        assert [link.kind for link in links] == ["teeone"]
