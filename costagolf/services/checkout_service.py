"""
Checkout price guard and payment processing.

A checkout session is only created for a (course, tee time) whose price is
in the price cache, and it always charges the cached price. Any greenFee in
the request body is ignored. A session linked to an order must be for that
order's slot, and the payment webhook only confirms the order when the
amount paid matches the order total.
"""

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import stripe

from costagolf.config import settings
from costagolf.models.schemas import (
    CheckoutLineItem,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    ConfirmOrderRequest,
    Customer,
    ExtraLineItem,
    Money,
    Order,
    PaymentInfo,
)
from costagolf.services.booking_service import BookingService
from costagolf.services.database_service import DatabaseService
from costagolf.services.hold_store import HoldError, HoldStateError, HoldStore
from costagolf.services.price_cache import PriceCache

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class PriceIntegrityError(Exception):
    """Checkout refused because the price cannot be vouched for."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class InvalidAddOnError(PriceIntegrityError):
    def __init__(self, add_on_id: str) -> None:
        super().__init__("INVALID_ADD_ON", f"Unknown add-on: {add_on_id}")
        self.add_on_id = add_on_id


class InvalidSignatureError(Exception):
    pass


@dataclass
class PaymentSession:
    id: str
    url: str | None = None
    status: str | None = None
    payment_status: str | None = None
    payment_intent: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    customer_email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class PaymentProcessor(ABC):
    """Abstract base class for hosted checkout providers."""

    @abstractmethod
    async def create_session(
        self,
        line_items: list[CheckoutLineItem],
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> PaymentSession:
        pass

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> PaymentSession | None:
        pass

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify and decode a payment webhook payload.

        Raises:
            InvalidSignatureError: The payload could not be verified.
        """
        pass


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    return obj.get(name) if isinstance(obj, dict) else getattr(obj, name, None)


def _session_from_stripe(session: Any) -> PaymentSession:
    metadata = _field(session, "metadata") or {}
    if not isinstance(metadata, dict):
        metadata = metadata.to_dict()
    return PaymentSession(
        id=_field(session, "id"),
        url=_field(session, "url"),
        status=_field(session, "status"),
        payment_status=_field(session, "payment_status"),
        payment_intent=_field(session, "payment_intent"),
        amount_total=_field(session, "amount_total"),
        currency=_field(session, "currency"),
        customer_email=_field(session, "customer_email")
        or _field(_field(session, "customer_details"), "email"),
        metadata={k: str(v) for k, v in metadata.items()},
    )


class StripePaymentProcessor(PaymentProcessor):
    """Stripe hosted Checkout implementation."""

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> None:
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret if webhook_secret is None else webhook_secret
        self.success_url = success_url or settings.stripe_success_url
        self.cancel_url = cancel_url or settings.stripe_cancel_url

    async def create_session(
        self,
        line_items: list[CheckoutLineItem],
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> PaymentSession:
        params: dict[str, Any] = {
            "api_key": self.secret_key,
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": item.currency.lower(),
                        "product_data": {"name": item.name},
                        "unit_amount": item.unit_amount,
                    },
                    "quantity": item.quantity,
                }
                for item in line_items
            ],
            "metadata": metadata,
            "success_url": f"{self.success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": self.cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        # The Stripe SDK is blocking; keep it off the event loop.
        session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
        return _session_from_stripe(session)

    async def retrieve_session(self, session_id: str) -> PaymentSession | None:
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=self.secret_key
            )
        except stripe.InvalidRequestError:
            return None
        return _session_from_stripe(session)

    def parse_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise InvalidSignatureError(str(e)) from e
        return json.loads(payload)


class MockPaymentProcessor(PaymentProcessor):
    """In-memory payment processor for development and tests. Does not verify signatures."""

    def __init__(self, success_url: str | None = None) -> None:
        self.success_url = success_url or settings.stripe_success_url
        self.sessions: dict[str, PaymentSession] = {}
        self._ids = itertools.count(1)

    async def create_session(
        self,
        line_items: list[CheckoutLineItem],
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> PaymentSession:
        session_id = f"cs_mock_{next(self._ids)}"
        session = PaymentSession(
            id=session_id,
            url=f"{self.success_url}?session_id={session_id}",
            status="open",
            payment_status="unpaid",
            amount_total=sum(item.amount for item in line_items),
            currency=line_items[0].currency.lower() if line_items else "eur",
            customer_email=customer_email,
            metadata=dict(metadata),
        )
        self.sessions[session_id] = session
        logger.info(f"[Payment Mock] Created session {session_id} for {session.amount_total}")
        return session

    async def retrieve_session(self, session_id: str) -> PaymentSession | None:
        return self.sessions.get(session_id)

    def parse_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        try:
            return json.loads(payload)
        except ValueError as e:
            raise InvalidSignatureError(f"Invalid payload: {e}") from e


def check_request_matches_order(request: CheckoutSessionRequest, order: Order) -> None:
    """Raise HoldStateError unless the checkout is for the order's slot and party."""
    requested = (request.course_id, request.tee_time, request.players, request.holes)
    held = (order.course_id, order.tee_time, order.players, order.holes)
    if requested != held:
        raise HoldStateError(
            f"Checkout for {request.course_id} {request.tee_time} ({request.players} players, "
            f"{request.holes} holes) does not match order {order.order_id} for {order.course_id} "
            f"{order.tee_time} ({order.players} players, {order.holes} holes)"
        )


def payment_mismatch(session: dict[str, Any], order: Order) -> str | None:
    """Describe how a completed checkout session differs from the order, or None if it agrees."""
    amount = session.get("amount_total")
    currency = (session.get("currency") or "").upper()
    if amount != order.total.amount or currency != order.total.currency.upper():
        return f"paid {amount} {currency}, order total is {order.total.amount} {order.total.currency}"
    metadata = session.get("metadata") or {}
    paid_for = (metadata.get("course_id"), metadata.get("tee_time"), metadata.get("players"))
    if paid_for != (order.course_id, order.tee_time, str(order.players)):
        return (
            f"paid for {paid_for[0]} {paid_for[1]} x{paid_for[2]}, "
            f"order is for {order.course_id} {order.tee_time} x{order.players}"
        )
    return None


class CheckoutService:
    def __init__(
        self,
        price_cache: PriceCache,
        hold_store: HoldStore,
        db: DatabaseService,
        booking_service: BookingService,
        payment_processor: PaymentProcessor,
        checkout_hold_ttl: timedelta | None = None,
    ) -> None:
        self.price_cache = price_cache
        self.hold_store = hold_store
        self.db = db
        self.booking_service = booking_service
        self.payment_processor = payment_processor
        self.checkout_hold_ttl = checkout_hold_ttl or timedelta(minutes=settings.checkout_hold_ttl_minutes)

    def _authoritative_price(self, course_id: str, tee_time: str) -> Money:
        entry = self.price_cache.peek(course_id, tee_time)
        if entry is None:
            raise PriceIntegrityError(
                "PRICE_NOT_CACHED",
                "No price on record for this tee time. Please search again and re-select.",
            )
        if self.price_cache.is_expired(entry):
            self.price_cache.evict(course_id, tee_time)
            raise PriceIntegrityError(
                "PRICE_EXPIRED",
                "The price for this tee time has expired. Please search again and re-select.",
            )
        return Money(amount=entry.price_minor_units, currency=entry.currency)

    async def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionResponse:
        """
        Create a payment session charging the cached price.

        When the request names an order, it must be for the order's course,
        tee time, players and holes. The hold is then re-priced to exactly
        what the session charges, so the booking written on payment carries
        the amount that was paid.

        Raises:
            PriceIntegrityError: PRICE_NOT_CACHED, PRICE_EXPIRED or INVALID_ADD_ON.
            HoldStateError: The request does not match the linked order, or the
                order is no longer HELD.
            OrderNotFoundError / HoldExpiredError: The linked hold is gone.
        """
        order = None
        if request.order_id:
            order = self.booking_service.get_order(request.order_id)
            check_request_matches_order(request, order)

        green_fee = self._authoritative_price(request.course_id, request.tee_time)
        if request.green_fee is not None and request.green_fee != green_fee:
            logger.warning(
                f"Ignoring client greenFee {request.green_fee.amount} {request.green_fee.currency} for "
                f"{request.course_id} {request.tee_time}; charging cached {green_fee.amount} {green_fee.currency}"
            )

        line_items = [
            CheckoutLineItem(
                name="Green fee",
                unit_amount=green_fee.amount,
                quantity=request.players,
                currency=green_fee.currency,
            )
        ]
        extras: list[ExtraLineItem] = []
        if request.add_on_ids:
            catalog = {a.id: a for a in await self.db.get_add_ons_by_course_id(request.course_id)}
            for add_on_id in request.add_on_ids:
                add_on = catalog.get(add_on_id)
                if add_on is None or add_on.currency != green_fee.currency:
                    raise InvalidAddOnError(add_on_id)
                item = CheckoutLineItem(
                    name=add_on.name,
                    unit_amount=add_on.price,
                    quantity=request.players if add_on.per_player else 1,
                    currency=add_on.currency,
                )
                line_items.append(item)
                extras.append(
                    ExtraLineItem(type="add_on", amount=item.amount, currency=item.currency, description=add_on.name)
                )

        metadata = {
            "course_id": request.course_id,
            "tee_time": request.tee_time,
            "players": str(request.players),
            "holes": str(request.holes),
        }
        hold_expires_at = None
        if order is not None:
            order = self.hold_store.create_or_update(
                order_id=order.order_id,
                course_id=order.course_id,
                slot_id=order.slot_id,
                tee_time=order.tee_time,
                players=order.players,
                green_fee=green_fee,
                extras=extras,
                tenant=order.tenant,
                holes=order.holes,
            )
            order = self.hold_store.extend_hold(order.order_id, self.checkout_hold_ttl)
            hold_expires_at = order.hold_expires_at
            metadata["order_id"] = order.order_id

        session = await self.payment_processor.create_session(line_items, metadata, request.customer_email)
        total = Money(amount=sum(item.amount for item in line_items), currency=green_fee.currency)
        logger.info(
            f"Checkout session {session.id} created for {request.course_id} {request.tee_time}: {total.amount}"
        )
        return CheckoutSessionResponse(
            session_id=session.id,
            url=session.url,
            status=session.status,
            payment_status=session.payment_status,
            total=total,
            line_items=line_items,
            order_id=request.order_id,
            hold_expires_at=hold_expires_at,
        )

    async def get_checkout_session(self, session_id: str) -> PaymentSession | None:
        return await self.payment_processor.retrieve_session(session_id)

    async def handle_payment_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Process a payment webhook.

        A completed checkout confirms the linked order, but only when the paid
        amount, currency and slot agree with the order. Confirmation is keyed
        on the payment reference, so redelivered events do not create a second
        booking.

        Raises:
            InvalidSignatureError: The payload failed verification.
        """
        event = self.payment_processor.parse_event(payload, signature)
        event_type = event.get("type")
        if event_type != CHECKOUT_COMPLETED:
            logger.info(f"Ignoring payment event {event_type}")
            return {"received": True, "handled": False}

        session = (event.get("data") or {}).get("object") or {}
        metadata = session.get("metadata") or {}
        order_id = metadata.get("order_id")
        if not order_id:
            logger.warning(f"Checkout session {session.get('id')} completed without an order id")
            return {"received": True, "handled": False, "reason": "missing order id"}

        details = session.get("customer_details") or {}
        email = details.get("email") or session.get("customer_email")
        if not email:
            logger.error(f"Checkout session {session.get('id')} completed without a customer email")
            return {"received": True, "handled": False, "reason": "missing customer email"}

        payment_reference = session.get("payment_intent") or session.get("id")
        order = self.hold_store.get(order_id)
        mismatch = payment_mismatch(session, order) if order is not None else None
        if mismatch:
            # Paid for something other than the held order; needs a manual refund or rebook.
            logger.error(f"Payment {payment_reference} does not match order {order_id}: {mismatch}")
            return {"received": True, "handled": False, "reason": mismatch}

        try:
            confirmation = await self.booking_service.confirm_order(
                ConfirmOrderRequest(
                    order_id=order_id,
                    customer=Customer.from_full_name(details.get("name"), email, details.get("phone")),
                    payment=PaymentInfo(method="stripe", status="paid", transaction_id=payment_reference),
                )
            )
        except HoldError as e:
            # Paid but the hold cannot be confirmed; needs a manual refund or rebook.
            logger.error(f"Payment {payment_reference} for order {order_id} could not be confirmed: {e}")
            return {"received": True, "handled": False, "reason": str(e)}

        return {"received": True, "handled": True, "bookingId": confirmation.booking_id}
