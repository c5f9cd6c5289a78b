from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SLOT_ID_SEPARATOR = "|"


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """Naive UTC timestamp, matching the database columns (timestamp without timezone)."""
    return datetime.now(UTC).replace(tzinfo=None)


class CamelModel(BaseModel):
    """Base for JSON bodies exchanged with the web client (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HoldStatus(str, Enum):
    HELD = "HELD"
    CONFIRMING = "CONFIRMING"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PENDING = "PENDING"
    PAID = "PAID"


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"
    NOT_REQUIRED = "NOT_REQUIRED"


class PackageSlug(str, Enum):
    STANDARD = "standard"
    EARLYBIRD = "earlybird"
    TWILIGHT = "twilight"
    LUNCH = "lunch"
    TWO_PLAYER = "2player"


class Money(CamelModel):
    """An amount in minor currency units (cents)."""

    amount: int
    currency: str = "EUR"


class ExtraLineItem(CamelModel):
    type: str = "extra"
    amount: int = Field(..., ge=0, description="Amount in minor currency units")
    currency: str = "EUR"
    description: str | None = None


class Customer(CamelModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str | None = None
    language: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    def from_full_name(cls, name: str | None, email: str, phone: str | None = None) -> "Customer":
        first_name, last_name = split_full_name(name)
        return cls(first_name=first_name, last_name=last_name, email=email, phone=phone)


def split_full_name(name: str | None) -> tuple[str, str]:
    parts = (name or "").split()
    first_name = parts[0] if parts else "Guest"
    last_name = " ".join(parts[1:]) or "Customer"
    return first_name, last_name


class PaymentInfo(CamelModel):
    method: str
    status: str
    transaction_id: str | None = None


class SlotPackage(CamelModel):
    name: str
    slug: PackageSlug
    wholesale_price: float
    customer_price: float
    uses_contract_rate: bool = False


class TeeTimeSlot(CamelModel):
    slot_id: str
    course_id: str
    tee_time: str = Field(..., description="Course-local ISO timestamp, e.g. 2026-05-02T09:30:00")
    green_fee: float = Field(..., description="Per-player customer price in major units")
    currency: str = "EUR"
    players: int
    holes: int = 18
    source: str
    package_name: str | None = None
    package_slug: PackageSlug | None = None
    alternatives: list[SlotPackage] = Field(default_factory=list)

    @property
    def price_minor_units(self) -> int:
        return round(self.green_fee * 100)


def build_slot_id(course_id: str, tee_time: str) -> str:
    return f"{course_id}{SLOT_ID_SEPARATOR}{tee_time}"


def parse_slot_id(slot_id: str) -> tuple[str, str] | None:
    """Split a slot id into (course id, tee time); None unless the tee time is ISO 8601."""
    course_id, sep, tee_time = slot_id.partition(SLOT_ID_SEPARATOR)
    if not sep or not course_id or not tee_time:
        return None
    try:
        datetime.fromisoformat(tee_time)
    except ValueError:
        return None
    return course_id, tee_time


class Order(CamelModel):
    """An in-memory hold on a tee time while the customer completes checkout."""

    order_id: str
    course_id: str
    tenant: str | None = None
    slot_id: str
    tee_time: str
    date: str
    time: str
    players: int = Field(..., ge=1, le=4)
    holes: int = 18
    green_fee: Money
    extras: list[ExtraLineItem] = Field(default_factory=list)
    total: Money
    status: HoldStatus = HoldStatus.HELD
    hold_expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    customer: Customer | None = None
    payment: PaymentInfo | None = None
    booking_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (HoldStatus.CONFIRMED, HoldStatus.EXPIRED)


class GolfmanagerLink(BaseModel):
    kind: Literal["golfmanager"] = "golfmanager"
    tenant: str
    version: Literal["v1", "v3"] = "v1"


class TeeOneLink(BaseModel):
    kind: Literal["teeone"] = "teeone"
    code: str


class ZestLink(BaseModel):
    kind: Literal["zest"] = "zest"
    facility_id: int


ProviderLink = Annotated[GolfmanagerLink | TeeOneLink | ZestLink, Field(discriminator="kind")]


def parse_provider_course_code(code: str | None) -> GolfmanagerLink | TeeOneLink | ZestLink | None:
    """
    Decode a stored provider course code such as "golfmanager:tenantX",
    "golfmanagerv3:tenantX", "teeone:paraiso" or "zest:1234".

    Returns None for empty, malformed or unknown codes.
    """
    if not code:
        return None

    prefix, sep, value = code.strip().partition(":")
    prefix = prefix.lower()
    value = value.strip()
    if not sep or not value or ":" in value:
        return None

    if prefix == "golfmanager":
        return GolfmanagerLink(tenant=value)
    if prefix == "golfmanagerv3":
        return GolfmanagerLink(tenant=value, version="v3")
    if prefix == "teeone":
        return TeeOneLink(code=value)
    if prefix == "zest":
        if not value.isdigit():
            return None
        return ZestLink(facility_id=int(value))
    return None


class Course(BaseModel):
    id: str
    name: str
    city: str = ""
    email: str | None = None
    kickback_percent: float | None = None
    teeone_id_empresa: int | None = None
    teeone_id_tee_sheet: int | None = None
    teeone_api_user: str | None = None
    teeone_api_password: str | None = None


class AddOn(BaseModel):
    id: str
    course_id: str
    name: str
    price: int = Field(..., ge=0, description="Price in minor currency units")
    currency: str = "EUR"
    per_player: bool = True


class RatePeriod(BaseModel):
    id: str
    course_id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None
    rack_rate: float = Field(..., description="Customer price per player in major units")
    is_early_bird: bool = False
    is_twilight: bool = False
    includes_lunch: bool = False

    def covers(self, day: date) -> bool:
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True


class Booking(CamelModel):
    id: str | None = None
    course_id: str
    order_id: str | None = None
    tee_time: datetime
    players: int
    holes: int = 18
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    status: BookingStatus = BookingStatus.CONFIRMED
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_reference: str | None = None
    total_amount: int = 0
    currency: str = "EUR"
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_error: str | None = None
    provider_booking_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class OrderItemRequest(CamelModel):
    slot_id: str = Field(..., min_length=3)
    players: int = Field(..., ge=1, le=4)
    holes: int = 18
    green_fee: Money | None = None
    extras: list[ExtraLineItem] = Field(default_factory=list)
    order_id: str | None = None
    tenant: str | None = None


class ConfirmOrderRequest(CamelModel):
    order_id: str
    customer: Customer
    payment: PaymentInfo | None = None


class ConfirmationResponse(CamelModel):
    booking_id: str
    order_id: str
    status: HoldStatus
    course_id: str
    tee_time: str
    players: int
    total: Money
    voucher_url: str
    sync_status: SyncStatus


class SlotSearchResponse(CamelModel):
    course_id: str
    date: str
    provider: str | None = None
    slots: list[TeeTimeSlot] = Field(default_factory=list)
    note: str | None = None


class CheckoutSessionRequest(CamelModel):
    course_id: str
    tee_time: str
    players: int = Field(..., ge=1, le=4)
    holes: int = 18
    order_id: str | None = None
    add_on_ids: list[str] = Field(default_factory=list)
    customer_email: str | None = None
    # Accepted for compatibility with older clients; never used for pricing.
    green_fee: Money | None = None


class CheckoutLineItem(CamelModel):
    name: str
    unit_amount: int
    quantity: int
    currency: str = "EUR"

    @property
    def amount(self) -> int:
        return self.unit_amount * self.quantity


class CheckoutSessionResponse(CamelModel):
    session_id: str
    url: str | None = None
    status: str | None = None
    payment_status: str | None = None
    total: Money
    line_items: list[CheckoutLineItem] = Field(default_factory=list)
    order_id: str | None = None
    hold_expires_at: datetime | None = None
