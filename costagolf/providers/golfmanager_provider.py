"""
Golfmanager availability adapter.

Golfmanager returns one row per bookable package (green fee, green fee +
buggy, twilight, ...) at each start time, priced at the wholesale rate we
pay the course. This adapter groups the rows into tee times and replaces the
wholesale price with the customer price: a matching contract rate period
wins verbatim, otherwise the course's kickback is applied on top.
"""

import logging
import random
import re
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any

import httpx
import pytz

from costagolf.config import settings
from costagolf.models.schemas import (
    Booking,
    Course,
    GolfmanagerLink,
    PackageSlug,
    RatePeriod,
    SlotPackage,
    TeeTimeSlot,
    build_slot_id,
)
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

DEFAULT_PACKAGE_NAME = "Green Fee"

TTOO_PATTERN = re.compile(r"\bT\.?T\.?O\.?O\b\.?", re.IGNORECASE)
TRAILING_NUMBER_PATTERN = re.compile(r"(?:[\s\-_/]+\d+)+\s*$")
WHITESPACE_PATTERN = re.compile(r"\s+")
TRAILING_SEPARATORS = " -+/_,."

# Checked in order; the first slug with a matching keyword wins.
PACKAGE_KEYWORDS: list[tuple[PackageSlug, tuple[str, ...]]] = [
    (PackageSlug.EARLYBIRD, ("early bird", "earlybird", "early", "madrugador", "temprano")),
    (PackageSlug.TWILIGHT, ("twilight", "tarde", "crepuscular", "sunset")),
    (PackageSlug.LUNCH, ("lunch", "almuerzo", "comida", "menu", "menú")),
    (PackageSlug.TWO_PLAYER, ("2 players", "2 jugadores", "2 pax", "2player", "pareja")),
]


def clean_package_name(name: str | None) -> str:
    """
    Strip tour-operator codes (TTOO) and trailing numeric suffixes from a
    Golfmanager package name.

    "Greenfee + Buggy TTOO 25" -> "Greenfee + Buggy". Names that end up empty
    or purely numeric become "Green Fee".
    """
    if not name:
        return DEFAULT_PACKAGE_NAME
    cleaned = TTOO_PATTERN.sub(" ", name)
    cleaned = TRAILING_NUMBER_PATTERN.sub("", cleaned)
    cleaned = WHITESPACE_PATTERN.sub(" ", cleaned).strip().rstrip(TRAILING_SEPARATORS).strip()
    if not cleaned or cleaned.replace(" ", "").isdigit():
        return DEFAULT_PACKAGE_NAME
    return cleaned


def classify_package(name: str) -> PackageSlug:
    lowered = name.lower()
    for slug, keywords in PACKAGE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return slug
    return PackageSlug.STANDARD


def _period_prices(period: RatePeriod, slug: PackageSlug) -> bool:
    if slug == PackageSlug.EARLYBIRD:
        return period.is_early_bird
    if slug == PackageSlug.TWILIGHT:
        return period.is_twilight
    if slug == PackageSlug.LUNCH:
        return period.includes_lunch
    if slug == PackageSlug.STANDARD:
        return not (period.is_early_bird or period.is_twilight or period.includes_lunch)
    return False


def match_rate_period(periods: list[RatePeriod], slug: PackageSlug, tee_date: date) -> RatePeriod | None:
    """Find the contract rate period pricing this package type on the tee date."""
    for period in periods:
        if period.covers(tee_date) and _period_prices(period, slug):
            return period
    return None


def price_package(
    raw_name: str | None,
    wholesale_price: float,
    periods: list[RatePeriod],
    kickback_percent: float,
    tee_date: date,
) -> SlotPackage:
    name = clean_package_name(raw_name)
    slug = classify_package(name)
    period = match_rate_period(periods, slug, tee_date)
    if period is not None:
        return SlotPackage(
            name=name,
            slug=slug,
            wholesale_price=wholesale_price,
            customer_price=period.rack_rate,
            uses_contract_rate=True,
        )
    return SlotPackage(
        name=name,
        slug=slug,
        wholesale_price=wholesale_price,
        customer_price=round(wholesale_price * (1 + kickback_percent / 100), 2),
    )


def to_local_iso(value: str, tz_name: str) -> str:
    """Normalize a provider timestamp to course-local "YYYY-MM-DDTHH:MM:SS"."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(pytz.timezone(tz_name)).replace(tzinfo=None)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S")


def build_slots(
    course: Course,
    rows: list[dict[str, Any]],
    periods: list[RatePeriod],
    kickback_percent: float,
    players: int,
    holes: int,
    source: str,
    tz_name: str = "Europe/Madrid",
) -> list[TeeTimeSlot]:
    """Group package rows by start time and price each one for the customer."""
    grouped: dict[str, list[SlotPackage]] = {}
    for row in rows:
        start = row.get("start")
        wholesale = row.get("price")
        if not start or wholesale is None:
            continue
        tee_time = to_local_iso(start, tz_name)
        package = price_package(
            row.get("typeName") or row.get("name"),
            float(wholesale),
            periods,
            kickback_percent,
            date.fromisoformat(tee_time[:10]),
        )
        grouped.setdefault(tee_time, []).append(package)

    slots = []
    for tee_time in sorted(grouped):
        packages = sorted(grouped[tee_time], key=lambda p: p.customer_price)
        headline = packages[0]
        slots.append(
            TeeTimeSlot(
                slot_id=build_slot_id(course.id, tee_time),
                course_id=course.id,
                tee_time=tee_time,
                green_fee=headline.customer_price,
                players=players,
                holes=holes,
                source=source,
                package_name=headline.name,
                package_slug=headline.slug,
                alternatives=packages,
            )
        )
    return slots


def mock_rows(tenant: str, target_date: date, players: int, holes: int) -> list[dict[str, Any]]:
    """Deterministic package rows for running without an API key."""
    rng = random.Random(f"{tenant}:{target_date.isoformat()}:{players}:{holes}")
    base = 40 if holes == 9 else 70
    rows: list[dict[str, Any]] = []
    for hour in range(8, 18):
        for minute in (0, 30):
            if rng.random() < 0.3:
                continue
            start = f"{target_date.isoformat()}T{hour:02d}:{minute:02d}:00"
            greenfee = base + rng.randint(0, 15)
            if hour < 9:
                rows.append({"start": start, "typeName": "Early Bird TTOO", "price": greenfee - 15})
            rows.append({"start": start, "typeName": "Greenfee TTOO 25", "price": greenfee})
            rows.append({"start": start, "typeName": "Greenfee + Buggy TTOO 25", "price": greenfee + 25})
            if hour >= 15:
                rows.append({"start": start, "typeName": "Twilight", "price": greenfee - 20})
    return rows


class GolfmanagerProvider(TeeTimeProvider):
    """
    Golfmanager REST client (V1 and V3 tenants).

    Without GOLFMANAGER_API_KEY the adapter serves deterministic mock
    availability tagged "Golfmanager MOCK" so the booking flow still works.
    """

    name = "golfmanager"

    def __init__(
        self,
        rate_periods: Callable[[str], Awaitable[list[RatePeriod]]],
        api_key: str | None = None,
        base_url: str | None = None,
        v3_base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.api_key = settings.golfmanager_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.golfmanager_base_url).rstrip("/")
        self.v3_base_url = (v3_base_url or settings.golfmanager_v3_base_url).rstrip("/")
        self._rate_periods = rate_periods
        self._client = client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        self._sleep = sleep
        if not self.api_key:
            logger.warning("Golfmanager API key not configured. Serving mock availability.")

    @property
    def is_mock(self) -> bool:
        return not self.api_key

    def _url_for(self, link: GolfmanagerLink, path: str) -> str:
        base = self.v3_base_url if link.version == "v3" else self.base_url
        return f"{base}/{path.lstrip('/')}"

    async def _get_json(self, link: GolfmanagerLink, path: str, params: dict[str, Any]) -> Any:
        async def request() -> Any:
            response = await self._client.get(
                self._url_for(link, path),
                params=params,
                headers={"key": self.api_key, "tenant": link.tenant},
            )
            response.raise_for_status()
            return response.json()

        retry_kwargs: dict[str, Any] = {"name": f"golfmanager {path}"}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep
        try:
            return await call_with_retry(request, **retry_kwargs)
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.name,
                f"{e.response.status_code} from {path}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"{path} failed: {e}") from e

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
        if not isinstance(link, GolfmanagerLink):
            raise unsupported_link(self.name, link)
        kickback = (
            course.kickback_percent
            if course.kickback_percent is not None
            else settings.default_kickback_percent
        )
        periods = await self._rate_periods(course.id)

        if self.is_mock:
            logger.info(f"Golfmanager MOCK availability for {course.name} (tenant: {link.tenant})")
            rows = mock_rows(link.tenant, target_date, players, holes)
            source = "Golfmanager MOCK"
        else:
            day = target_date.isoformat()
            params = {
                "start": f"{day}T{from_time or '07:00'}:00",
                "end": f"{day}T{to_time or '20:00'}:00",
                "slots": players,
                "tags": f"{holes}holes",
            }
            logger.info(
                f"Fetching Golfmanager availability for {course.name} "
                f"(tenant: {link.tenant}, version: {link.version})"
            )
            rows = await self._get_json(link, "bookings/searchAvailability", params)
            if not isinstance(rows, list):
                raise ProviderError(self.name, "unexpected searchAvailability response")
            source = "Golfmanager"

        slots = build_slots(course, rows, periods, kickback, players, holes, source, settings.timezone)
        slots = [s for s in slots if in_time_window(s.tee_time, from_time, to_time)]
        logger.info(f"Golfmanager returned {len(slots)} slots for {course.name}")
        return slots

    async def create_booking(self, booking: Booking, course: Course, link: CourseLink) -> BookingSyncResult:
        # Golfmanager tee sheets take our bookings through the course's own
        # channel; nothing is mirrored from here.
        logger.info(f"Booking {booking.id} at {course.name} needs no Golfmanager mirror call")
        return BookingSyncResult(success=True, provider=self.name)

    async def close(self) -> None:
        await self._client.aclose()
