from fastapi import APIRouter, Depends, HTTPException

from costagolf.api.deps import get_services, hold_error_response
from costagolf.models.schemas import ConfirmationResponse, ConfirmOrderRequest, Order, OrderItemRequest
from costagolf.services.container import Services
from costagolf.services.hold_store import HoldError

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("/items", response_model=Order)
async def add_order_item(request: OrderItemRequest, services: Services = Depends(get_services)) -> Order:
    try:
        return await services.booking_service.add_order_item(request)
    except HoldError as e:
        raise hold_error_response(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/confirm", response_model=ConfirmationResponse)
async def confirm_order(
    request: ConfirmOrderRequest, services: Services = Depends(get_services)
) -> ConfirmationResponse:
    """
    Confirm a held order into a booking.

    Returns 404 for an unknown order, 410 when the hold has expired and 400
    when it is already confirmed.
    """
    try:
        return await services.booking_service.confirm_order(request)
    except HoldError as e:
        raise hold_error_response(e) from e


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: str, services: Services = Depends(get_services)) -> Order:
    try:
        return services.booking_service.get_order(order_id)
    except HoldError as e:
        raise hold_error_response(e) from e
