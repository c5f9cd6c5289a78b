from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "costagolf"}


@router.get("/")
async def root() -> dict[str, str | dict[str, str]]:
    return {
        "service": "Costa Golf - Tee Time Booking API",
        "version": "0.1.0",
        "endpoints": {
            "health": "/health",
            "slots": "/api/slots/search",
            "orders": "/api/orders/items",
            "checkout": "/api/checkout/session",
            "bookings": "/api/bookings/{booking_id}",
        },
    }
