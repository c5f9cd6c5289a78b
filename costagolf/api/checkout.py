from fastapi import APIRouter, Depends, HTTPException

from costagolf.api.deps import get_services, hold_error_response
from costagolf.models.schemas import CheckoutSessionRequest, CheckoutSessionResponse, Money
from costagolf.services.checkout_service import PriceIntegrityError
from costagolf.services.container import Services
from costagolf.services.hold_store import HoldError

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("/session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest, services: Services = Depends(get_services)
) -> CheckoutSessionResponse:
    """
    Start a hosted payment for a tee time at its cached price.

    Price problems come back as 400 with a machine-readable code
    (PRICE_NOT_CACHED, PRICE_EXPIRED, INVALID_ADD_ON) so the client can ask
    the customer to re-select.
    """
    try:
        return await services.checkout_service.create_checkout_session(request)
    except PriceIntegrityError as e:
        raise HTTPException(status_code=400, detail={"code": e.code, "message": e.message}) from e
    except HoldError as e:
        raise hold_error_response(e) from e


@router.get("/session/{session_id}", response_model=CheckoutSessionResponse)
async def get_checkout_session(
    session_id: str, services: Services = Depends(get_services)
) -> CheckoutSessionResponse:
    session = await services.checkout_service.get_checkout_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return CheckoutSessionResponse(
        session_id=session.id,
        url=session.url,
        status=session.status,
        payment_status=session.payment_status,
        total=Money(amount=session.amount_total or 0, currency=(session.currency or "eur").upper()),
        order_id=session.metadata.get("order_id"),
    )
