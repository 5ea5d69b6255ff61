"""
Tests for the trip state machine: starting, boarding, drop-off codes and
ending a whole trip.
"""

from datetime import datetime, time

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from ridemarket.core.exceptions import ConflictError, ValidationError
from ridemarket.models.booking import Booking
from ridemarket.models.enums import BookingStatus, PassengerStatus, PaymentMethod, ServiceType
from ridemarket.services import trip_service
from ridemarket.services.inventory_service import load_booking
from ridemarket.services.trip_service import (
    generate_passenger_code,
    mark_got_in,
    mark_got_out,
    start_trip,
    verify_code_and_complete,
)

ROUTE = {"from_lat": 12.95, "from_lng": 77.55, "to_lat": 13.05, "to_lng": 77.65}


async def _book(client: AsyncClient, headers: dict, offer_id: int, payment_method: str = "upi") -> dict:
    response = await client.post(
        "/api/v1/bookings/pooling",
        json={"offer_id": offer_id, "payment_method": payment_method, "route": ROUTE},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def test_generated_codes_are_four_digits_and_avoid_taken():
    taken = {str(n) for n in range(1000, 9999)}
    assert generate_passenger_code(taken) == "9999"
    for _ in range(50):
        assert 1000 <= int(generate_passenger_code()) <= 9999


@pytest.mark.asyncio
async def test_passenger_completes_only_with_generated_code(
    client: AsyncClient, auth_headers, driver, rider, make_pooling_offer, yesterday
):
    offer = await make_pooling_offer(driver, date=yesterday)
    booking = await _book(client, auth_headers(rider.id), offer.id)
    booking_id = booking["id"]

    started = await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(driver.id))
    assert started.status_code == 200
    assert started.json()["bookings_updated"] == 1

    # Only the driver marks boarding
    assert (await client.post(f"/api/v1/trips/bookings/{booking_id}/got-in", headers=auth_headers(rider.id))).status_code == 409

    # Drop-off before boarding is rejected
    early_out = await client.post(f"/api/v1/trips/bookings/{booking_id}/got-out", headers=auth_headers(driver.id))
    assert early_out.status_code == 409

    got_in = await client.post(f"/api/v1/trips/bookings/{booking_id}/got-in", headers=auth_headers(driver.id))
    assert got_in.status_code == 200
    assert got_in.json()["passenger_status"] == "got_in"

    got_out = await client.post(f"/api/v1/trips/bookings/{booking_id}/got-out", headers=auth_headers(driver.id))
    assert got_out.status_code == 200
    assert got_out.json()["passenger_status"] == "got_out"
    assert "passenger_code" not in got_out.json()

    # The code is shown to the rider, not to the driver
    assert (await client.get(f"/api/v1/bookings/{booking_id}/code", headers=auth_headers(driver.id))).status_code == 404
    code_response = await client.get(f"/api/v1/bookings/{booking_id}/code", headers=auth_headers(rider.id))
    code = code_response.json()["passenger_code"]
    assert len(code) == 4 and code.isdigit()

    malformed = await client.post(
        f"/api/v1/trips/bookings/{booking_id}/verify-code",
        json={"code": "12a4"},
        headers=auth_headers(driver.id),
    )
    assert malformed.status_code == 422

    wrong_code = "1000" if code != "1000" else "1001"
    wrong = await client.post(
        f"/api/v1/trips/bookings/{booking_id}/verify-code",
        json={"code": wrong_code},
        headers=auth_headers(driver.id),
    )
    assert wrong.status_code == 409
    assert wrong.json()["detail"] == "Invalid passenger code"

    verified = await client.post(
        f"/api/v1/trips/bookings/{booking_id}/verify-code",
        json={"code": code},
        headers=auth_headers(driver.id),
    )
    assert verified.status_code == 200
    data = verified.json()
    assert data["status"] == "completed"
    assert data["settlement_status"] == "requested"
    assert data["operator_settlement_amount"] == pytest.approx(booking["amount"])

    offer_data = (await client.get(f"/api/v1/offers/pooling/{offer.id}")).json()
    assert offer_data["status"] == "completed"

    ledger = (await client.get("/api/v1/settlements/ledger/me", headers=auth_headers(driver.id))).json()
    assert ledger["inflow_amount"] == pytest.approx(booking["amount"])
    assert ledger["outflow_amount"] == 0


@pytest.mark.asyncio
async def test_start_trip_too_early(client: AsyncClient, auth_headers, driver, rider, make_pooling_offer):
    """Offers dated tomorrow cannot start yet; the response carries the wait."""
    offer = await make_pooling_offer(driver)
    await _book(client, auth_headers(rider.id), offer.id)

    response = await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(driver.id))
    assert response.status_code == 409
    assert response.json()["context"]["minutes_remaining"] > 0


@pytest.mark.asyncio
async def test_start_trip_needs_bookings_and_operator(
    client: AsyncClient, auth_headers, driver, rider, make_pooling_offer, yesterday
):
    offer = await make_pooling_offer(driver, date=yesterday)

    empty = await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(driver.id))
    assert empty.status_code == 409

    await _book(client, auth_headers(rider.id), offer.id)
    not_operator = await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(rider.id))
    assert not_operator.status_code == 409

    missing = await client.post("/api/v1/trips/pooling/99999/start", headers=auth_headers(driver.id))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_start_trip_is_idempotent(client: AsyncClient, auth_headers, driver, rider, make_pooling_offer, yesterday):
    offer = await make_pooling_offer(driver, date=yesterday)
    await _book(client, auth_headers(rider.id), offer.id)

    first = await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(driver.id))
    second = await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(driver.id))

    assert first.json()["bookings_updated"] == 1
    assert second.status_code == 200
    assert second.json()["bookings_updated"] == 0
    assert second.json()["trip_started_at"] == first.json()["trip_started_at"]


@pytest.mark.asyncio
async def test_end_trip_completes_and_settles_everyone(
    client: AsyncClient, auth_headers, driver, rider, second_rider, make_pooling_offer, yesterday
):
    offer = await make_pooling_offer(driver, date=yesterday)
    cash = await _book(client, auth_headers(rider.id), offer.id, payment_method="offline_cash")
    online = await _book(client, auth_headers(second_rider.id), offer.id, payment_method="card")

    await client.post(f"/api/v1/trips/pooling/{offer.id}/start", headers=auth_headers(driver.id))
    ended = await client.post(f"/api/v1/trips/pooling/{offer.id}/end", headers=auth_headers(driver.id))
    assert ended.status_code == 200
    assert ended.json()["bookings_updated"] == 2
    assert ended.json()["offer_status"] == "completed"

    for booking in (cash, online):
        data = (await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers(driver.id))).json()
        assert data["status"] == "completed"

    # Cash fee owed is offset by the card fare before anything is owed to the driver
    ledger = (await client.get("/api/v1/settlements/ledger/me", headers=auth_headers(driver.id))).json()
    expected_inflow = max(online["amount"] - cash["platform_fee"], 0)
    expected_outflow = max(cash["platform_fee"] - online["amount"], 0)
    assert ledger["inflow_amount"] == pytest.approx(expected_inflow)
    assert ledger["outflow_amount"] == pytest.approx(expected_outflow)

    again = await client.post(f"/api/v1/trips/pooling/{offer.id}/end", headers=auth_headers(driver.id))
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_rental_trip_starts_at_window_opening(
    client: AsyncClient, auth_headers, owner, rider, make_rental_offer, yesterday
):
    offer = await make_rental_offer(owner, date=yesterday)
    response = await client.post(
        "/api/v1/bookings/rental",
        json={"offer_id": offer.id, "payment_method": "offline_cash", "duration_hours": 2},
        headers=auth_headers(rider.id),
    )
    assert response.status_code == 201

    started = await client.post(f"/api/v1/trips/rental/{offer.id}/start", headers=auth_headers(owner.id))
    assert started.status_code == 200
    assert started.json()["service_type"] == "rental"

    # Boarding codes are a pooling concept
    booking_id = response.json()["id"]
    got_in = await client.post(f"/api/v1/trips/bookings/{booking_id}/got-in", headers=auth_headers(owner.id))
    assert got_in.status_code == 409


@pytest.mark.asyncio
async def test_start_trip_grace_period(db_session, driver, rider, make_pooling_offer, make_pooling_booking, tomorrow):
    """Starting is allowed from five minutes before departure."""
    offer = await make_pooling_offer(driver, date=tomorrow, time="10:00")
    await make_pooling_booking(offer, rider, status=BookingStatus.CONFIRMED)

    with pytest.raises(ConflictError) as exc_info:
        await start_trip(db_session, ServiceType.POOLING, offer.id, driver.id, now=datetime.combine(tomorrow, time(9, 54)))
    assert exc_info.value.context["minutes_remaining"] == 6

    result = await start_trip(db_session, ServiceType.POOLING, offer.id, driver.id, now=datetime.combine(tomorrow, time(9, 55)))
    assert result.bookings_updated == 1
    assert result.trip_started_at == datetime.combine(tomorrow, time(9, 55))


@pytest.mark.asyncio
async def test_code_is_required_after_drop_off(db_session, driver, rider, make_pooling_offer, make_pooling_booking):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(offer, rider, payment_method=PaymentMethod.UPI)

    with pytest.raises(ValidationError):
        await verify_code_and_complete(db_session, booking.id, driver.id, "123")

    await mark_got_in(db_session, booking.id, driver.id)
    with pytest.raises(ConflictError):
        await verify_code_and_complete(db_session, booking.id, driver.id, "1234")

    booking = await mark_got_out(db_session, booking.id, driver.id)
    assert booking.passenger_status == PassengerStatus.GOT_OUT
    assert booking.code_generated_at is not None

    completed = await verify_code_and_complete(db_session, booking.id, driver.id, booking.passenger_code)
    assert completed.status == BookingStatus.COMPLETED

    with pytest.raises(ConflictError):
        await verify_code_and_complete(db_session, booking.id, driver.id, booking.passenger_code)


@pytest.mark.asyncio
async def test_start_trip_skips_booking_cancelled_after_read(
    monkeypatch, session_factory, db_session, driver, rider, second_rider, make_pooling_offer, make_pooling_booking, yesterday
):
    offer = await make_pooling_offer(driver, date=yesterday)
    kept = await make_pooling_booking(offer, rider, status=BookingStatus.CONFIRMED)
    cancelled = await make_pooling_booking(offer, second_rider, status=BookingStatus.PENDING)
    read_earlier = [kept, cancelled]

    async with session_factory() as other:
        await other.execute(
            update(Booking).where(Booking.id == cancelled.id).values(status=BookingStatus.CANCELLED)
        )
        await other.commit()

    async def active_before_cancel(db, service_type, offer_id):
        return read_earlier

    monkeypatch.setattr(trip_service, "_active_bookings", active_before_cancel)
    result = await start_trip(db_session, ServiceType.POOLING, offer.id, driver.id)
    await db_session.commit()
    assert result.bookings_updated == 1

    async with session_factory() as fresh:
        assert (await load_booking(fresh, kept.id)).status == BookingStatus.IN_PROGRESS
        stored = await load_booking(fresh, cancelled.id)
    assert stored.status == BookingStatus.CANCELLED
    assert stored.trip_started_at is None


@pytest.mark.asyncio
async def test_got_in_twice_from_stale_copy_conflicts(
    monkeypatch, db_session, driver, rider, make_pooling_offer, make_pooling_booking
):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(offer, rider)
    await mark_got_in(db_session, booking.id, driver.id)
    await db_session.commit()

    # The first request's copy still says "waiting"
    booking.passenger_status = PassengerStatus.WAITING
    db_session.expunge(booking)

    async def read_before_boarding(db, booking_id):
        return booking

    monkeypatch.setattr(trip_service, "load_booking", read_before_boarding)
    with pytest.raises(ConflictError):
        await mark_got_in(db_session, booking.id, driver.id)
