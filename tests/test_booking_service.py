"""
End-to-end tests for the hold lifecycle in costagolf/services/booking_service.py.

These run against an in-memory database with a mock-mode Zest adapter and
the mock email provider, on a controllable clock.
"""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select

from costagolf.models.database import BookingRecord
from costagolf.models.schemas import (
    ConfirmOrderRequest,
    Course,
    Customer,
    HoldStatus,
    Money,
    OrderItemRequest,
    PaymentInfo,
    PaymentStatus,
    SyncStatus,
)
from costagolf.providers.resend_provider import MockEmailProvider
from costagolf.providers.zest_provider import ZestProvider
from costagolf.services.booking_service import BookingService, payment_status_for, voucher_url
from costagolf.services.hold_store import HoldExpiredError, HoldStateError, HoldStore, OrderNotFoundError
from costagolf.services.notification_service import NotificationService
from costagolf.services.price_cache import PriceCache
from costagolf.services.provider_sync_service import ProviderSyncService

TEE_TIME = "2026-05-02T09:30:00"
SLOT_ID = f"course-1|{TEE_TIME}"


@pytest.fixture
def email_provider() -> MockEmailProvider:
    return MockEmailProvider()


@pytest.fixture
def price_cache(clock) -> PriceCache:
    return PriceCache(clock=clock)


@pytest_asyncio.fixture
async def service(db, course: Course, clock, price_cache: PriceCache, email_provider: MockEmailProvider):
    await db.create_provider_link(course.id, "zest:1234")
    zest = ZestProvider(username="", password="", client=httpx.AsyncClient())
    booking_service = BookingService(
        hold_store=HoldStore(clock=clock),
        price_cache=price_cache,
        db=db,
        sync_service=ProviderSyncService({"zest": zest}, db),
        notification_service=NotificationService(email_provider),
        public_base_url="https://costagolf.test",
    )
    yield booking_service
    await booking_service.wait_for_background_tasks()
    await zest.close()


@pytest.fixture
def customer() -> Customer:
    return Customer(first_name="Ana", last_name="Lopez", email="ana@example.com", phone="+34600000000")


def item_request(**overrides) -> OrderItemRequest:
    fields = {"slot_id": SLOT_ID, "players": 2, "green_fee": Money(amount=8000)}
    fields.update(overrides)
    return OrderItemRequest(**fields)


class TestHelpers:
    def test_voucher_url(self) -> None:
        assert voucher_url("b-1", "https://costagolf.test/") == "https://costagolf.test/bookings/b-1/voucher"

    def test_payment_status(self) -> None:
        assert payment_status_for(None) == PaymentStatus.UNPAID
        assert payment_status_for(PaymentInfo(method="stripe", status="succeeded")) == PaymentStatus.PAID
        assert payment_status_for(PaymentInfo(method="stripe", status="processing")) == PaymentStatus.PENDING


class TestAddOrderItem:
    @pytest.mark.asyncio
    async def test_client_green_fee_used_without_cached_price(self, service: BookingService) -> None:
        order = await service.add_order_item(item_request())

        assert order.green_fee.amount == 8000
        assert order.total == Money(amount=16000, currency="EUR")
        assert order.status == HoldStatus.HELD

    @pytest.mark.asyncio
    async def test_cached_price_wins(self, service: BookingService, price_cache: PriceCache) -> None:
        price_cache.put("course-1", TEE_TIME, 9500, "Zest")

        order = await service.add_order_item(item_request(green_fee=Money(amount=100)))

        assert order.green_fee.amount == 9500
        assert order.total.amount == 19000

    @pytest.mark.asyncio
    async def test_cached_currency_wins(self, service: BookingService, price_cache: PriceCache) -> None:
        price_cache.put("course-1", TEE_TIME, 9500, "Zest", currency="EUR")

        order = await service.add_order_item(item_request(green_fee=Money(amount=9500, currency="USD")))

        assert order.green_fee == Money(amount=9500, currency="EUR")
        assert order.total == Money(amount=19000, currency="EUR")

    @pytest.mark.asyncio
    async def test_no_price_anywhere(self, service: BookingService) -> None:
        with pytest.raises(ValueError):
            await service.add_order_item(item_request(green_fee=None))

    @pytest.mark.asyncio
    async def test_bad_slot_id(self, service: BookingService) -> None:
        with pytest.raises(ValueError):
            await service.add_order_item(item_request(slot_id="not-a-slot"))

    @pytest.mark.asyncio
    async def test_slot_id_with_unparseable_tee_time(self, service: BookingService) -> None:
        with pytest.raises(ValueError):
            await service.add_order_item(item_request(slot_id="course-1|tomorrow"))

        assert len(service.hold_store) == 0

    @pytest.mark.asyncio
    async def test_unknown_order_lookup(self, service: BookingService) -> None:
        with pytest.raises(OrderNotFoundError):
            service.get_order("ORD-NOPE")


class TestConfirmOrder:
    @pytest.mark.asyncio
    async def test_confirm_creates_booking_then_syncs(
        self, service: BookingService, customer: Customer, email_provider: MockEmailProvider
    ) -> None:
        order = await service.add_order_item(item_request())
        assert order.total.amount == 16000

        confirmation = await service.confirm_order(ConfirmOrderRequest(order_id=order.order_id, customer=customer))

        assert confirmation.status == HoldStatus.CONFIRMED
        assert confirmation.total.amount == 16000
        assert confirmation.sync_status == SyncStatus.PENDING
        assert confirmation.voucher_url == f"https://costagolf.test/bookings/{confirmation.booking_id}/voucher"
        assert service.get_order(order.order_id).booking_id == confirmation.booking_id

        await service.wait_for_background_tasks()

        booking = await service.get_booking(confirmation.booking_id)
        assert booking.sync_status == SyncStatus.SYNCED
        assert booking.provider_booking_id == f"ZEST-MOCK-{confirmation.booking_id}"
        assert booking.customer_name == "Ana Lopez"
        assert booking.payment_status == PaymentStatus.UNPAID
        assert len(email_provider.sent_messages) == 1
        message = email_provider.sent_messages[0]
        assert message["to"] == "ana@example.com"
        assert message["subject"] == "Booking Confirmed - Los Naranjos Golf Club"
        assert confirmation.voucher_url in message["text"]

    @pytest.mark.asyncio
    async def test_expired_hold_cannot_be_confirmed(
        self, service: BookingService, customer: Customer, clock, db
    ) -> None:
        order = await service.add_order_item(item_request())
        clock.advance(minutes=15, seconds=1)

        with pytest.raises(HoldExpiredError):
            await service.confirm_order(ConfirmOrderRequest(order_id=order.order_id, customer=customer))

        assert service.get_order(order.order_id).status == HoldStatus.EXPIRED
        async with db._session() as session:
            count = (await session.execute(select(func.count()).select_from(BookingRecord))).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_second_confirm_rejected(self, service: BookingService, customer: Customer) -> None:
        order = await service.add_order_item(item_request())
        await service.confirm_order(ConfirmOrderRequest(order_id=order.order_id, customer=customer))

        with pytest.raises(HoldStateError):
            await service.confirm_order(ConfirmOrderRequest(order_id=order.order_id, customer=customer))

    @pytest.mark.asyncio
    async def test_payment_reference_replay_returns_same_booking(
        self, service: BookingService, customer: Customer
    ) -> None:
        order = await service.add_order_item(item_request())
        payment = PaymentInfo(method="stripe", status="paid", transaction_id="pi_123")
        request = ConfirmOrderRequest(order_id=order.order_id, customer=customer, payment=payment)

        first = await service.confirm_order(request)
        second = await service.confirm_order(request)

        assert second.booking_id == first.booking_id
        booking = await service.get_booking(first.booking_id)
        assert booking.payment_status == PaymentStatus.PAID
        assert booking.payment_reference == "pi_123"

    @pytest.mark.asyncio
    async def test_unknown_order(self, service: BookingService, customer: Customer) -> None:
        with pytest.raises(OrderNotFoundError):
            await service.confirm_order(ConfirmOrderRequest(order_id="ORD-NOPE", customer=customer))

    @pytest.mark.asyncio
    async def test_database_failure_releases_hold(
        self, service: BookingService, customer: Customer, monkeypatch
    ) -> None:
        order = await service.add_order_item(item_request())

        async def broken_create(booking):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(service.db, "create_booking", broken_create)

        with pytest.raises(RuntimeError):
            await service.confirm_order(ConfirmOrderRequest(order_id=order.order_id, customer=customer))

        assert service.get_order(order.order_id).status == HoldStatus.HELD
