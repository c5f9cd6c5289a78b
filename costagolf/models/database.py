"""
SQLAlchemy database models for persistent storage.

The tee-time holds and the price cache live in process memory; this module
only covers the durable side of the marketplace: courses and their commercial
configuration (add-ons, contract rate periods, provider links) and the
bookings created once a hold is confirmed.
"""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from costagolf.config import settings
from costagolf.models.schemas import BookingStatus, PaymentStatus, SyncStatus, utc_now_naive


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class CourseRecord(Base):
    """
    A golf course listed on the marketplace.

    Columns:
        kickback_percent: Commission markup applied over a provider's wholesale
            price when no contract rate period matches. NULL means the
            configured default applies.
        teeone_*: Per-course TeeOne API credentials. All four must be present
            for live TeeOne calls; otherwise TeeOne runs in mock mode.
    """

    __tablename__ = "golf_courses"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    city = Column(String(100), nullable=False, default="")
    email = Column(String(200), nullable=True)
    kickback_percent = Column(Float, nullable=True)
    teeone_id_empresa = Column(Integer, nullable=True)
    teeone_id_tee_sheet = Column(Integer, nullable=True)
    teeone_api_user = Column(String(100), nullable=True)
    teeone_api_password = Column(String(200), nullable=True)


class AddOnRecord(Base):
    """Bookable extras (buggy, trolley, club hire) with catalog prices in minor units."""

    __tablename__ = "course_add_ons"

    id = Column(String(36), primary_key=True, default=_new_id)
    course_id = Column(String(36), ForeignKey("golf_courses.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    per_player = Column(Boolean, nullable=False, default=True)


class RatePeriodRecord(Base):
    """
    Contract rate period negotiated with a course.

    The rack rate is the customer-facing price per player and already includes
    the marketplace margin. The flags describe which package type the period
    prices; a period with no flags set prices the standard green fee.
    """

    __tablename__ = "course_rate_periods"

    id = Column(String(36), primary_key=True, default=_new_id)
    course_id = Column(String(36), ForeignKey("golf_courses.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    rack_rate = Column(Float, nullable=False)
    is_early_bird = Column(Boolean, nullable=False, default=False)
    is_twilight = Column(Boolean, nullable=False, default=False)
    includes_lunch = Column(Boolean, nullable=False, default=False)


class ProviderLinkRecord(Base):
    """
    Maps a course to the booking engine that owns its tee sheet.

    provider_course_code is stored in prefixed form ("golfmanager:tenant",
    "teeone:paraiso", "zest:1234") and decoded once when read.
    """

    __tablename__ = "course_provider_links"

    id = Column(String(36), primary_key=True, default=_new_id)
    course_id = Column(String(36), ForeignKey("golf_courses.id"), nullable=False, index=True)
    provider_course_code = Column(String(200), nullable=True)
    booking_url = Column(Text, nullable=True)


class BookingRecord(Base):
    """
    A confirmed tee-time booking.

    Created exactly once per confirmed hold. payment_reference is unique so a
    repeated payment notification cannot produce a second booking. The sync_*
    columns record the outcome of mirroring the booking to the course's
    upstream provider; failures stay here for manual reconciliation.
    """

    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_new_id)
    course_id = Column(String(36), ForeignKey("golf_courses.id"), nullable=False, index=True)
    order_id = Column(String(64), nullable=True, index=True)
    tee_time = Column(DateTime, nullable=False)
    players = Column(Integer, nullable=False)
    holes = Column(Integer, nullable=False, default=18)
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200), nullable=False)
    customer_phone = Column(String(50), nullable=True)
    status = Column(Enum(BookingStatus), default=BookingStatus.CONFIRMED)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.UNPAID)
    payment_reference = Column(String(200), nullable=True, unique=True)
    total_amount = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")
    sync_status = Column(Enum(SyncStatus), default=SyncStatus.PENDING)
    sync_error = Column(Text, nullable=True)
    provider_booking_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utc_now_naive)
    updated_at = Column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)


engine = create_async_engine(
    settings.database_url.replace("sqlite://", "sqlite+aiosqlite://")
    if settings.database_url.startswith("sqlite://")
    else settings.database_url,
    echo=False,
)

AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
