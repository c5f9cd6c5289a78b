from fastapi import APIRouter, Depends, HTTPException

from costagolf.api.deps import get_services
from costagolf.models.schemas import Booking
from costagolf.services.container import Services

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(booking_id: str, services: Services = Depends(get_services)) -> Booking:
    booking = await services.booking_service.get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking
