import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from costagolf.api.deps import get_services
from costagolf.models.schemas import SlotSearchResponse
from costagolf.providers.base import ProviderError
from costagolf.services.container import Services
from costagolf.services.slot_search_service import CourseNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/slots", tags=["slots"])

TIME_PATTERN = r"^\d{2}:\d{2}$"


@router.get("/search", response_model=SlotSearchResponse)
async def search_slots(
    course_id: str = Query(..., alias="courseId"),
    search_date: date = Query(..., alias="date"),
    players: int = Query(2, ge=1, le=4),
    holes: int = Query(18),
    from_time: str | None = Query(None, alias="fromTime", pattern=TIME_PATTERN),
    to_time: str | None = Query(None, alias="toTime", pattern=TIME_PATTERN),
    services: Services = Depends(get_services),
) -> SlotSearchResponse:
    if holes not in (9, 18):
        raise HTTPException(status_code=400, detail="holes must be 9 or 18")
    try:
        return await services.slot_search_service.search(
            course_id, search_date, players, holes, from_time, to_time
        )
    except CourseNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ProviderError as e:
        logger.error(f"Slot search failed for course {course_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Tee time provider unavailable: {e.provider}") from e
