"""
Booking service for the tee-time hold lifecycle.

This module ties the in-memory hold store to durable bookings: it prices
order items from the price cache, confirms holds into booking rows, and
kicks off provider sync and the confirmation email in the background.
"""

import asyncio
import logging
from collections.abc import Coroutine
from datetime import datetime
from typing import Any

from costagolf.config import settings
from costagolf.models.schemas import (
    Booking,
    BookingStatus,
    ConfirmationResponse,
    ConfirmOrderRequest,
    HoldStatus,
    Money,
    Order,
    OrderItemRequest,
    PaymentInfo,
    PaymentStatus,
    SyncStatus,
    parse_slot_id,
)
from costagolf.services.database_service import DatabaseService
from costagolf.services.hold_store import HoldStore, OrderNotFoundError
from costagolf.services.notification_service import NotificationService
from costagolf.services.price_cache import PriceCache
from costagolf.services.provider_sync_service import ProviderSyncService

logger = logging.getLogger(__name__)

PAID_STATUSES = {"paid", "succeeded", "complete", "completed"}


def voucher_url(booking_id: str, base_url: str | None = None) -> str:
    base = (base_url or settings.public_base_url).rstrip("/")
    return f"{base}/bookings/{booking_id}/voucher"


def payment_status_for(payment: PaymentInfo | None) -> PaymentStatus:
    if payment is None:
        return PaymentStatus.UNPAID
    if payment.status.lower() in PAID_STATUSES:
        return PaymentStatus.PAID
    return PaymentStatus.PENDING


class BookingService:
    """
    Manages orders from first "add to order" through to a durable booking.

    Confirmation is split so the expiry sweep can never race it: the hold is
    moved to CONFIRMING synchronously before any awaits, the booking row is
    written, and only then is the hold marked CONFIRMED. Provider sync and
    the confirmation email run as tracked background tasks whose outcome
    never affects the response.

    Attributes:
        hold_store: In-memory holds keyed by order id.
        price_cache: Authoritative prices recorded during slot search.
    """

    def __init__(
        self,
        hold_store: HoldStore,
        price_cache: PriceCache,
        db: DatabaseService,
        sync_service: ProviderSyncService,
        notification_service: NotificationService,
        public_base_url: str | None = None,
    ) -> None:
        self.hold_store = hold_store
        self.price_cache = price_cache
        self.db = db
        self.sync_service = sync_service
        self.notification_service = notification_service
        self.public_base_url = public_base_url or settings.public_base_url
        self._background_tasks: set[asyncio.Task] = set()

    async def add_order_item(self, request: OrderItemRequest) -> Order:
        """
        Create or update the hold for an order item.

        The green fee comes from the price cache when the slot's price was
        recorded during search; a client-supplied greenFee is only used when
        nothing is cached for the slot.

        Raises:
            ValueError: Unparseable slot id or tee time, or no price available.
            HoldExpiredError: The existing hold has expired.
            HoldStateError: The existing hold is no longer HELD.
        """
        parsed = parse_slot_id(request.slot_id)
        if parsed is None:
            raise ValueError(f"Invalid slotId: {request.slot_id}")
        course_id, tee_time = parsed

        cached = self.price_cache.get(course_id, tee_time)
        if cached is not None:
            green_fee = Money(amount=cached.price_minor_units, currency=cached.currency)
            if request.green_fee and request.green_fee != green_fee:
                logger.warning(
                    f"Client greenFee {request.green_fee.amount} {request.green_fee.currency} for "
                    f"{request.slot_id} differs from cached {green_fee.amount} {green_fee.currency}; "
                    f"using cached price"
                )
        elif request.green_fee is not None:
            logger.warning(f"No cached price for {request.slot_id}; using client greenFee")
            green_fee = request.green_fee
        else:
            raise ValueError(f"No price available for slot {request.slot_id}")

        return self.hold_store.create_or_update(
            order_id=request.order_id,
            course_id=course_id,
            slot_id=request.slot_id,
            tee_time=tee_time,
            players=request.players,
            green_fee=green_fee,
            extras=request.extras,
            tenant=request.tenant,
            holes=request.holes,
        )

    def get_order(self, order_id: str) -> Order:
        order = self.hold_store.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def confirm_order(self, request: ConfirmOrderRequest) -> ConfirmationResponse:
        """
        Confirm a held order into a durable booking.

        Replaying a confirmation with the same payment reference returns the
        booking already created for it instead of creating another.

        Raises:
            OrderNotFoundError: Unknown order id.
            HoldExpiredError: The hold expired before confirmation.
            HoldStateError: Already confirmed or a confirmation is in flight.
        """
        payment_reference = request.payment.transaction_id if request.payment else None
        if payment_reference:
            existing = await self.db.get_booking_by_payment_reference(payment_reference)
            if existing is not None:
                logger.info(f"Payment {payment_reference} already produced booking {existing.id}")
                order = self.hold_store.get(request.order_id)
                return self._response(existing, order)

        order = self.hold_store.begin_confirmation(request.order_id)
        try:
            booking = await self.db.create_booking(
                Booking(
                    course_id=order.course_id,
                    order_id=order.order_id,
                    tee_time=datetime.fromisoformat(order.tee_time),
                    players=order.players,
                    holes=order.holes,
                    customer_name=request.customer.full_name,
                    customer_email=request.customer.email,
                    customer_phone=request.customer.phone,
                    status=BookingStatus.CONFIRMED,
                    payment_status=payment_status_for(request.payment),
                    payment_reference=payment_reference,
                    total_amount=order.total.amount,
                    currency=order.total.currency,
                    sync_status=SyncStatus.PENDING,
                )
            )
        except Exception:
            logger.exception(f"Failed to create booking for order {order.order_id}")
            self.hold_store.abort_confirmation(order.order_id)
            raise

        order = self.hold_store.complete_confirmation(
            order.order_id, booking.id, request.customer, request.payment  # type: ignore[arg-type]
        )
        self._spawn(self._after_confirmation(booking), name=f"after-confirm:{booking.id}")
        return self._response(booking, order)

    async def get_booking(self, booking_id: str) -> Booking | None:
        return await self.db.get_booking(booking_id)

    async def wait_for_background_tasks(self) -> None:
        """Await provider sync and email tasks (tests and shutdown)."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _after_confirmation(self, booking: Booking) -> None:
        try:
            course = await self.db.get_course(booking.course_id)
            await self.sync_service.sync_and_record(booking, course)
            course_name = course.name if course else "your golf course"
            await self.notification_service.send_booking_confirmation(
                booking, course_name, voucher_url(booking.id, self.public_base_url)  # type: ignore[arg-type]
            )
        except Exception:
            logger.exception(f"Post-confirmation work failed for booking {booking.id}")

    def _response(self, booking: Booking, order: Order | None) -> ConfirmationResponse:
        return ConfirmationResponse(
            booking_id=booking.id,  # type: ignore[arg-type]
            order_id=booking.order_id or (order.order_id if order else ""),
            status=order.status if order else HoldStatus.CONFIRMED,
            course_id=booking.course_id,
            tee_time=booking.tee_time.strftime("%Y-%m-%dT%H:%M:%S"),
            players=booking.players,
            total=Money(amount=booking.total_amount, currency=booking.currency),
            voucher_url=voucher_url(booking.id, self.public_base_url),  # type: ignore[arg-type]
            sync_status=booking.sync_status,
        )
