"""
In-memory tee-time hold store.

Each order holds one tee time for a customer while they check out. Status
moves HELD -> CONFIRMED or HELD -> EXPIRED and never leaves a terminal state.
Confirmation goes through a transient CONFIRMING state, entered by a single
synchronous check-and-transition, so the expiry sweep cannot flip a hold
whose durable booking is being written.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from costagolf.models.schemas import (
    Customer,
    ExtraLineItem,
    HoldStatus,
    Money,
    Order,
    PaymentInfo,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_HOLD_TTL = timedelta(minutes=15)
DEFAULT_TERMINAL_RETENTION = timedelta(hours=24)


class HoldError(Exception):
    """Base error for hold store operations."""


class OrderNotFoundError(HoldError):
    """Raised when no order exists for the given id."""


class HoldExpiredError(HoldError):
    """Raised when the hold's expiry has passed."""


class HoldStateError(HoldError):
    """Raised when the hold is not in a state that allows the operation."""


def compute_total(green_fee: Money, players: int, extras: list[ExtraLineItem]) -> Money:
    for extra in extras:
        if extra.currency != green_fee.currency:
            raise ValueError(
                f"Extra '{extra.description or extra.type}' is priced in {extra.currency}, "
                f"order is in {green_fee.currency}"
            )
    amount = green_fee.amount * players + sum(extra.amount for extra in extras)
    return Money(amount=amount, currency=green_fee.currency)


def generate_order_id() -> str:
    return f"ORD-{uuid.uuid4().hex[:12].upper()}"


class HoldStore:
    """
    Process-local map of orders.

    All operations are synchronous, so each one is atomic with respect to the
    others inside a single event loop.
    """

    def __init__(
        self,
        hold_ttl: timedelta = DEFAULT_HOLD_TTL,
        terminal_retention: timedelta = DEFAULT_TERMINAL_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._hold_ttl = hold_ttl
        self._terminal_retention = terminal_retention
        self._clock = clock
        self._orders: dict[str, Order] = {}

    def __len__(self) -> int:
        return len(self._orders)

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def create_or_update(
        self,
        *,
        order_id: str | None,
        course_id: str,
        slot_id: str,
        tee_time: str,
        players: int,
        green_fee: Money,
        extras: list[ExtraLineItem] | None = None,
        tenant: str | None = None,
        holes: int = 18,
    ) -> Order:
        """
        Create a hold, or re-price an existing HELD one in place.

        A new hold expires hold_ttl from now. Updating keeps the original
        expiry. Holds in any other state are rejected.
        """
        extras = list(extras or [])
        total = compute_total(green_fee, players, extras)
        now = self._clock()
        tee_date, _, tee_clock = tee_time.partition("T")

        existing = self._orders.get(order_id) if order_id else None
        if existing is None:
            order = Order(
                order_id=order_id or generate_order_id(),
                course_id=course_id,
                tenant=tenant,
                slot_id=slot_id,
                tee_time=tee_time,
                date=tee_date,
                time=tee_clock[:5],
                players=players,
                holes=holes,
                green_fee=green_fee,
                extras=extras,
                total=total,
                status=HoldStatus.HELD,
                hold_expires_at=now + self._hold_ttl,
                created_at=now,
                updated_at=now,
            )
            self._orders[order.order_id] = order
            logger.info(
                f"Created hold {order.order_id} for course {course_id} at {tee_time}, "
                f"expires {order.hold_expires_at.isoformat()}"
            )
            return order

        self._ensure_held(existing, now)
        existing.course_id = course_id
        existing.tenant = tenant
        existing.slot_id = slot_id
        existing.tee_time = tee_time
        existing.date = tee_date
        existing.time = tee_clock[:5]
        existing.players = players
        existing.holes = holes
        existing.green_fee = green_fee
        existing.extras = extras
        existing.total = total
        existing.updated_at = now
        logger.info(f"Updated hold {existing.order_id}: {players} players, total {total.amount}")
        return existing

    def extend_hold(self, order_id: str, ttl: timedelta) -> Order:
        """Push a HELD order's expiry out to now + ttl (never shortens it)."""
        order = self._require(order_id)
        now = self._clock()
        self._ensure_held(order, now)
        order.hold_expires_at = max(order.hold_expires_at, now + ttl)
        order.updated_at = now
        return order

    def begin_confirmation(self, order_id: str) -> Order:
        """
        Move a HELD, unexpired order to CONFIRMING.

        This is the only step that needs to be atomic with the expiry sweep;
        the caller does its asynchronous work afterwards.
        """
        order = self._require(order_id)
        now = self._clock()
        if order.status == HoldStatus.CONFIRMED:
            raise HoldStateError(f"Order {order_id} is already confirmed")
        if order.status == HoldStatus.CONFIRMING:
            raise HoldStateError(f"Order {order_id} is already being confirmed")
        self._ensure_held(order, now)
        order.status = HoldStatus.CONFIRMING
        order.updated_at = now
        return order

    def complete_confirmation(
        self,
        order_id: str,
        booking_id: str,
        customer: Customer,
        payment: PaymentInfo | None = None,
    ) -> Order:
        order = self._require(order_id)
        if order.status != HoldStatus.CONFIRMING:
            raise HoldStateError(f"Order {order_id} is not being confirmed (status {order.status.value})")
        order.status = HoldStatus.CONFIRMED
        order.booking_id = booking_id
        order.customer = customer
        order.payment = payment
        order.updated_at = self._clock()
        logger.info(f"Confirmed hold {order_id} as booking {booking_id}")
        return order

    def abort_confirmation(self, order_id: str) -> Order:
        """Return a CONFIRMING order to HELD, or EXPIRED if its hold ran out meanwhile."""
        order = self._require(order_id)
        if order.status != HoldStatus.CONFIRMING:
            return order
        now = self._clock()
        order.status = HoldStatus.EXPIRED if now >= order.hold_expires_at else HoldStatus.HELD
        order.updated_at = now
        logger.warning(f"Aborted confirmation of hold {order_id}, now {order.status.value}")
        return order

    def sweep_expired(self) -> int:
        """Flip every HELD order past its expiry to EXPIRED."""
        now = self._clock()
        expired = 0
        for order in self._orders.values():
            if order.status == HoldStatus.HELD and now >= order.hold_expires_at:
                order.status = HoldStatus.EXPIRED
                order.updated_at = now
                expired += 1
        if expired:
            logger.info(f"Hold sweep expired {expired} holds")
        return expired

    def purge_terminal(self) -> int:
        """Drop CONFIRMED/EXPIRED orders that reached their terminal state over the retention window ago."""
        cutoff = self._clock() - self._terminal_retention
        stale = [
            order_id
            for order_id, order in self._orders.items()
            if order.is_terminal and order.updated_at <= cutoff
        ]
        for order_id in stale:
            del self._orders[order_id]
        if stale:
            logger.info(f"Purged {len(stale)} terminal holds")
        return len(stale)

    def sweep(self) -> int:
        expired = self.sweep_expired()
        self.purge_terminal()
        return expired

    def _require(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    def _ensure_held(self, order: Order, now: datetime) -> None:
        if order.status == HoldStatus.HELD and now >= order.hold_expires_at:
            order.status = HoldStatus.EXPIRED
            order.updated_at = now
        if order.status == HoldStatus.EXPIRED:
            raise HoldExpiredError(f"Hold for order {order.order_id} has expired")
        if order.status != HoldStatus.HELD:
            raise HoldStateError(
                f"Order {order.order_id} cannot be changed (status {order.status.value})"
            )
