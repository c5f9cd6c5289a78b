import logging
import random
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any

import httpx

from costagolf.config import settings
from costagolf.models.schemas import Booking, Course, TeeTimeSlot, ZestLink, build_slot_id, split_full_name
from costagolf.providers.base import (
    BookingSyncResult,
    CourseLink,
    ProviderError,
    TeeTimeProvider,
    in_time_window,
    unsupported_link,
)
from costagolf.providers.retry import call_with_retry

logger = logging.getLogger(__name__)

ZEST_BASE_URL = "https://cm.zest.golf"
ZEST_SANDBOX_URL = "https://sandbox-cm.zest.golf"


def format_booking_date(day: date) -> str:
    return day.strftime("%d-%m-%Y")


def normalize_tee_time(value: str, target_date: date) -> str:
    """Zest sends either a bare "HH:MM[:SS]" or a full "YYYY-MM-DD HH:MM:SS"."""
    value = value.strip()
    if len(value) <= 8:
        clock = value if len(value) == 8 else f"{value[:5]}:00"
        return f"{target_date.isoformat()}T{clock}"
    return value.replace(" ", "T")[:19]


def per_player_price(tee_time: dict[str, Any], players: int) -> float | None:
    """
    Work out the per-player green fee from a Zest tee time.

    Uses the pricing entry for the requested group size when there is one
    (else the first), prefers the public rate over the channel price, and
    divides the group total by the number of players it covers.
    """
    pricing = tee_time.get("pricing") or []
    if not pricing:
        return None
    entry = next((p for p in pricing if str(p.get("players")) == str(players)), pricing[0])
    rate = entry.get("publicRate") or entry.get("price")
    if not rate or rate.get("amount") is None:
        return None
    try:
        group_size = int(entry.get("players") or players)
    except (TypeError, ValueError):
        group_size = players
    return round(float(rate["amount"]) / max(group_size, 1), 2)


class ZestProvider(TeeTimeProvider):
    """
    Zest Golf channel manager client (HTTP basic auth).

    Without ZEST_GOLF_USERNAME / ZEST_GOLF_PASSWORD both search and booking
    run in mock mode.
    """

    name = "zest"

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        sandbox: bool | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.username = settings.zest_golf_username if username is None else username
        self.password = settings.zest_golf_password if password is None else password
        use_sandbox = settings.zest_golf_sandbox if sandbox is None else sandbox
        self.base_url = ZEST_SANDBOX_URL if use_sandbox else ZEST_BASE_URL
        self._client = client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        self._sleep = sleep
        if self.is_mock:
            logger.warning("Zest Golf credentials not configured. Running in mock mode.")

    @property
    def is_mock(self) -> bool:
        return not self.username or not self.password

    @property
    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.username, self.password)

    async def get_tee_times(
        self, facility_id: int, target_date: date, players: int, holes: int = 18
    ) -> list[dict[str, Any]]:
        async def request() -> Any:
            response = await self._client.get(
                f"{self.base_url}/api/v3/teetimes/{facility_id}/",
                params={
                    "bookingDate": format_booking_date(target_date),
                    "players": players,
                    "holes": holes,
                },
                auth=self._auth,
            )
            response.raise_for_status()
            return response.json()

        retry_kwargs: dict[str, Any] = {"name": "zest teetimes"}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep
        try:
            body = await call_with_retry(request, **retry_kwargs)
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.name, f"{e.response.status_code} fetching tee times", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"fetching tee times failed: {e}") from e

        if not body.get("success"):
            raise ProviderError(self.name, "Failed to fetch tee times")
        data = body.get("data") or {}
        return data.get("teeTimeV3") or data.get("teeTimeV2") or []

    def _mock_slots(
        self, course: Course, facility_id: int, target_date: date, players: int, holes: int
    ) -> list[TeeTimeSlot]:
        rng = random.Random(f"{facility_id}:{target_date.isoformat()}:{players}:{holes}")
        base_price = 50 if holes == 9 else 90
        slots = []
        for hour in range(8, 17):
            for minutes in (0, 20, 40):
                available = rng.random() > 0.4
                jitter = rng.randint(0, 25)
                if not available:
                    continue
                tee_time = f"{target_date.isoformat()}T{hour:02d}:{minutes:02d}:00"
                slots.append(
                    TeeTimeSlot(
                        slot_id=build_slot_id(course.id, tee_time),
                        course_id=course.id,
                        tee_time=tee_time,
                        green_fee=float(base_price + jitter),
                        players=players,
                        holes=holes,
                        source="Zest MOCK",
                    )
                )
        return slots

    async def search_availability(
        self,
        course: Course,
        link: CourseLink,
        target_date: date,
        players: int = 2,
        holes: int = 18,
        from_time: str | None = None,
        to_time: str | None = None,
    ) -> list[TeeTimeSlot]:
        if not isinstance(link, ZestLink):
            raise unsupported_link(self.name, link)
        if self.is_mock:
            logger.info(f"Zest MOCK availability for {course.name} (facility {link.facility_id})")
            slots = self._mock_slots(course, link.facility_id, target_date, players, holes)
        else:
            raw = await self.get_tee_times(link.facility_id, target_date, players, holes)
            slots = []
            for item in raw:
                price = per_player_price(item, players)
                if price is None or not item.get("time"):
                    continue
                tee_time = normalize_tee_time(item["time"], target_date)
                slots.append(
                    TeeTimeSlot(
                        slot_id=build_slot_id(course.id, tee_time),
                        course_id=course.id,
                        tee_time=tee_time,
                        green_fee=price,
                        players=players,
                        holes=item.get("holes") or holes,
                        source="Zest",
                    )
                )
        logger.info(f"Zest returned {len(slots)} slots for {course.name}")
        return [s for s in slots if in_time_window(s.tee_time, from_time, to_time)]

    async def create_booking(self, booking: Booking, course: Course, link: CourseLink) -> BookingSyncResult:
        if not isinstance(link, ZestLink):
            return BookingSyncResult(
                success=False, provider=self.name, error_message=str(unsupported_link(self.name, link))
            )
        if self.is_mock:
            logger.info(f"MOCK: Zest sync for booking {booking.id} to facility {link.facility_id}")
            return BookingSyncResult(
                success=True,
                provider=self.name,
                provider_booking_id=f"ZEST-MOCK-{booking.id}",
            )

        first_name, last_name = split_full_name(booking.customer_name)
        payload = {
            "facilityId": link.facility_id,
            "teetime": booking.tee_time.strftime("%Y-%m-%d %H:%M:%S"),
            "course": str(booking.holes),
            "players": booking.players,
            "teeId": 0,
            "holes": booking.holes,
            "contactFirstName": first_name,
            "contactLastName": last_name,
            "contactPhone": booking.customer_phone or "",
            "contactEmail": booking.customer_email,
        }
        try:
            logger.info(f"Zest: creating booking {booking.id} at facility {link.facility_id}")
            response = await self._client.post(
                f"{self.base_url}/api/v3/bookings", json=payload, auth=self._auth
            )
            response.raise_for_status()
            body = response.json()
            if not body.get("success"):
                raise ValueError("Failed to create booking")
            provider_booking_id = str(body["data"]["bookingId"])
        except Exception as e:
            logger.error(f"Zest: failed to create booking {booking.id}: {e}")
            return BookingSyncResult(success=False, provider=self.name, error_message=f"Zest API error: {e}")

        logger.info(f"Zest: booking {booking.id} created as {provider_booking_id}")
        return BookingSyncResult(success=True, provider=self.name, provider_booking_id=provider_booking_id)

    async def cancel_booking(self, provider_booking_id: str) -> bool:
        if self.is_mock:
            logger.info(f"MOCK: Zest cancel for {provider_booking_id}")
            return True
        try:
            response = await self._client.delete(
                f"{self.base_url}/api/v3/bookings/{provider_booking_id}", auth=self._auth
            )
            response.raise_for_status()
            return response.json().get("success") is True
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Zest: failed to cancel booking {provider_booking_id}: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
