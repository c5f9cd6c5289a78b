"""Tests for the Zest Golf channel manager adapter."""

import json
from datetime import date
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from costagolf.models.schemas import Booking, Course, TeeOneLink, ZestLink
from costagolf.providers.base import ProviderError
from costagolf.providers.zest_provider import (
    ZEST_SANDBOX_URL,
    ZestProvider,
    format_booking_date,
    normalize_tee_time,
    per_player_price,
)

TEE_DATE = date(2026, 5, 2)
LINK = ZestLink(facility_id=1234)
TEETIMES_URL = f"{ZEST_SANDBOX_URL}/api/v3/teetimes/1234/"
BOOKINGS_URL = f"{ZEST_SANDBOX_URL}/api/v3/bookings"


@pytest.fixture
def zest_course() -> Course:
    return Course(id="course-3", name="La Reserva Club")


@pytest.fixture
def booking() -> Booking:
    return Booking(
        id="booking-7",
        course_id="course-3",
        tee_time="2026-05-02T10:20:00",
        players=2,
        customer_name="Ana Maria Lopez",
        customer_email="ana@example.com",
        customer_phone="+34600000000",
    )


def live_provider(sleep=None) -> ZestProvider:
    return ZestProvider(
        username="costa", password="secret", sandbox=True, client=httpx.AsyncClient(), sleep=sleep or AsyncMock()
    )


def mock_provider() -> ZestProvider:
    return ZestProvider(username="", password="", sandbox=True, client=httpx.AsyncClient())


class TestHelpers:
    def test_booking_date_format(self) -> None:
        assert format_booking_date(TEE_DATE) == "02-05-2026"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("09:40", "2026-05-02T09:40:00"),
            ("09:40:00", "2026-05-02T09:40:00"),
            ("2026-05-02 09:40:00", "2026-05-02T09:40:00"),
        ],
    )
    def test_normalize_tee_time(self, raw: str, expected: str) -> None:
        assert normalize_tee_time(raw, TEE_DATE) == expected

    def test_price_for_matching_group_size(self) -> None:
        tee_time = {
            "pricing": [
                {"players": 1, "price": {"amount": 80}},
                {"players": "2", "price": {"amount": 150}, "publicRate": {"amount": 180}},
            ]
        }

        assert per_player_price(tee_time, 2) == 90.0

    def test_price_falls_back_to_first_entry(self) -> None:
        tee_time = {"pricing": [{"players": 4, "price": {"amount": 300}}]}

        assert per_player_price(tee_time, 2) == 75.0

    def test_price_missing(self) -> None:
        assert per_player_price({}, 2) is None
        assert per_player_price({"pricing": [{"players": 2}]}, 2) is None


class TestZestSearch:
    @pytest.mark.asyncio
    async def test_mock_mode(self, zest_course: Course) -> None:
        provider = mock_provider()

        first = await provider.search_availability(zest_course, LINK, TEE_DATE)
        second = await provider.search_availability(zest_course, LINK, TEE_DATE)

        assert provider.is_mock
        assert first
        assert [s.green_fee for s in first] == [s.green_fee for s in second]
        assert all(s.source == "Zest MOCK" for s in first)
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_live_search(self, zest_course: Course) -> None:
        route = respx.get(TEETIMES_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "teeTimeV3": [
                            {"time": "09:40", "holes": 18, "pricing": [{"players": 2, "price": {"amount": 170}}]},
                            {"time": "15:00", "pricing": [{"players": 2, "publicRate": {"amount": 130}}]},
                            {"time": "16:00", "pricing": []},
                        ]
                    },
                },
            )
        )
        provider = live_provider()

        slots = await provider.search_availability(zest_course, LINK, TEE_DATE, players=2, to_time="15:00")

        request = route.calls.last.request
        assert request.url.params["bookingDate"] == "02-05-2026"
        assert request.url.params["players"] == "2"
        assert request.headers["authorization"].startswith("Basic ")
        assert [(s.tee_time, s.green_fee) for s in slots] == [
            ("2026-05-02T09:40:00", 85.0),
            ("2026-05-02T15:00:00", 65.0),
        ]
        assert all(s.source == "Zest" for s in slots)
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_unsuccessful_body_raises(self, zest_course: Course) -> None:
        respx.get(TEETIMES_URL).mock(return_value=httpx.Response(200, json={"success": False}))
        provider = live_provider()

        with pytest.raises(ProviderError):
            await provider.search_availability(zest_course, LINK, TEE_DATE)
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_errors_retried_then_raise(self, zest_course: Course) -> None:
        route = respx.get(TEETIMES_URL).mock(side_effect=httpx.ConnectError("reset"))
        sleep = AsyncMock()
        provider = live_provider(sleep=sleep)

        with pytest.raises(ProviderError):
            await provider.search_availability(zest_course, LINK, TEE_DATE)

        assert route.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]
        await provider.close()


class TestZestBookings:
    @pytest.mark.asyncio
    async def test_mock_booking_id(self, zest_course: Course, booking: Booking) -> None:
        provider = mock_provider()

        result = await provider.create_booking(booking, zest_course, LINK)

        assert result.success
        assert result.provider_booking_id == "ZEST-MOCK-booking-7"
        assert await provider.cancel_booking("ZEST-MOCK-booking-7")
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_live_booking_payload(self, zest_course: Course, booking: Booking) -> None:
        route = respx.post(BOOKINGS_URL).mock(
            return_value=httpx.Response(200, json={"success": True, "data": {"bookingId": 98765}})
        )
        provider = live_provider()

        result = await provider.create_booking(booking, zest_course, LINK)

        payload = json.loads(route.calls.last.request.content)
        assert payload["facilityId"] == 1234
        assert payload["teetime"] == "2026-05-02 10:20:00"
        assert payload["contactFirstName"] == "Ana"
        assert payload["contactLastName"] == "Maria Lopez"
        assert payload["contactEmail"] == "ana@example.com"
        assert result.success
        assert result.provider_booking_id == "98765"
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_live_booking_failure(self, zest_course: Course, booking: Booking) -> None:
        respx.post(BOOKINGS_URL).mock(return_value=httpx.Response(422, json={"success": False}))
        provider = live_provider()

        result = await provider.create_booking(booking, zest_course, LINK)

        assert not result.success
        assert result.error_message.startswith("Zest API error")
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_cancel(self) -> None:
        respx.delete(f"{BOOKINGS_URL}/98765").mock(return_value=httpx.Response(200, json={"success": True}))
        respx.delete(f"{BOOKINGS_URL}/404").mock(return_value=httpx.Response(404))
        provider = live_provider()

        assert await provider.cancel_booking("98765")
        assert not await provider.cancel_booking("404")
        await provider.close()

    @pytest.mark.asyncio
    async def test_other_link_kind_reported_as_failure(self, zest_course: Course, booking: Booking) -> None:
        provider = mock_provider()

        result = await provider.create_booking(booking, zest_course, TeeOneLink(code="paraiso"))

        assert not result.success
        assert result.error_message == "zest: cannot serve a teeone course link"
        with pytest.raises(ProviderError):
            await provider.search_availability(zest_course, TeeOneLink(code="paraiso"), TEE_DATE)
        await provider.close()
