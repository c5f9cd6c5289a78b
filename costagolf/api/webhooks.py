import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from costagolf.api.deps import get_services
from costagolf.services.checkout_service import InvalidSignatureError
from costagolf.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """
    Handle Stripe webhook events.

    Security: with Stripe configured the Stripe-Signature header is required
    and verified against STRIPE_WEBHOOK_SECRET. In mock mode the payload is
    accepted as-is to allow local testing.

    A completed checkout confirms the linked order. Redelivered events are
    answered with the existing booking.
    """
    payload = await request.body()
    try:
        return await services.checkout_service.handle_payment_event(payload, stripe_signature)
    except InvalidSignatureError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid or missing Stripe signature") from e
