"""
Tests for request correlation headers and the log processors.
"""

import pytest
import structlog
from httpx import AsyncClient

from ridemarket.api.middleware import service_side
from ridemarket.core.logging import bind_request_context, enum_values, redact_passenger_codes
from ridemarket.models.enums import BookingStatus, ServiceType


@pytest.mark.asyncio
async def test_gateway_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "gw-42"})
    assert response.headers["X-Request-ID"] == "gw-42"
    assert response.headers["X-Response-Time"].endswith("ms")


@pytest.mark.asyncio
async def test_request_id_is_generated_when_missing(client: AsyncClient):
    first = await client.get("/health")
    second = await client.get("/health")
    assert len(first.headers["X-Request-ID"]) == 8
    assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/v1/bookings/pooling", "pooling"),
        ("/api/v1/offers/rental/5/slots", "rental"),
        ("/api/v1/trips/pooling/3/start", "pooling"),
        ("/api/v1/bookings/12", None),
        ("/api/v1/offers/rentals-archive", None),
    ],
)
def test_service_side_from_path(path, expected):
    assert service_side(path) == expected


def test_enums_are_logged_as_stored_values():
    event = enum_values(
        None, "info", {"status": BookingStatus.IN_PROGRESS, "service_type": ServiceType.RENTAL, "seats": 2}
    )
    assert event == {"status": "in_progress", "service_type": "rental", "seats": 2}


def test_passenger_codes_never_reach_the_output():
    event = redact_passenger_codes(None, "info", {"booking_id": 7, "passenger_code": "4821", "code": "4821"})
    assert event == {"booking_id": 7, "passenger_code": "****", "code": "****"}


def test_request_context_skips_missing_fields():
    structlog.contextvars.clear_contextvars()
    try:
        bind_request_context(request_id="abc", user_id=None, service_type="rental")
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc", "service_type": "rental"}
    finally:
        structlog.contextvars.clear_contextvars()
