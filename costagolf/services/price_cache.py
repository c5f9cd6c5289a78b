"""
Price authority cache.

Holds the last price we showed a customer for a (course, tee time) pair, in
minor currency units. Entries are written only from provider adapter output
during slot search; checkout reads them back instead of trusting any price in
the request body.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from costagolf.models.schemas import utc_now

logger = logging.getLogger(__name__)

DEFAULT_PRICE_TTL = timedelta(minutes=30)


@dataclass(frozen=True)
class PriceCacheEntry:
    course_id: str
    tee_time: str
    price_minor_units: int
    source: str
    expires_at: datetime
    currency: str = "EUR"

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class PriceCache:
    """
    Self-expiring map of authoritative prices keyed by (course, tee time).

    Lookups treat past-expiry entries as misses even before the periodic
    sweep removes them; the sweep only bounds memory.
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_PRICE_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[tuple[str, str], PriceCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(
        self,
        course_id: str,
        tee_time: str,
        price_minor_units: int,
        source: str,
        currency: str = "EUR",
    ) -> PriceCacheEntry:
        entry = PriceCacheEntry(
            course_id=course_id,
            tee_time=tee_time,
            price_minor_units=price_minor_units,
            source=source,
            expires_at=self._clock() + self._ttl,
            currency=currency,
        )
        self._entries[(course_id, tee_time)] = entry
        return entry

    def get(self, course_id: str, tee_time: str) -> PriceCacheEntry | None:
        entry = self._entries.get((course_id, tee_time))
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def peek(self, course_id: str, tee_time: str) -> PriceCacheEntry | None:
        """Return the stored entry even if it has expired."""
        return self._entries.get((course_id, tee_time))

    def is_expired(self, entry: PriceCacheEntry) -> bool:
        return entry.is_expired(self._clock())

    def evict(self, course_id: str, tee_time: str) -> None:
        self._entries.pop((course_id, tee_time), None)

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"Price cache sweep removed {len(expired)} expired entries")
        return len(expired)
