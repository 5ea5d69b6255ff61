"""
Tests for completion settlement, the operator ledger and the admin
settlement queue.
"""

import asyncio
from datetime import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from ridemarket.core.exceptions import ConflictError, ValidationError
from ridemarket.models.enums import BookingStatus, PaymentMethod, PaymentStatus, SettlementStatus
from ridemarket.models.user import User
from ridemarket.services import settlement_service
from ridemarket.services.inventory_service import load_booking
from ridemarket.services.ledger_service import SqlUserLedger
from ridemarket.services.settlement_service import (
    approve_settlement,
    reject_settlement,
    get_ledger,
    list_settlements,
    request_withdrawal,
    settle_completed_booking,
)


async def _set_ledger(session_factory, user_id: int, inflow: float = 0, outflow: float = 0) -> None:
    async with session_factory() as session:
        await session.execute(
            update(User).where(User.id == user_id).values(inflow_amount=inflow, outflow_amount=outflow)
        )
        await session.commit()


@pytest.mark.asyncio
async def test_cash_completions_accumulate_platform_fees(
    db_session, driver, rider, second_rider, make_pooling_offer, make_pooling_booking
):
    offer = await make_pooling_offer(driver)
    for passenger in (rider, second_rider):
        booking = await make_pooling_booking(offer, passenger, status=BookingStatus.COMPLETED)
        booking = await settle_completed_booking(db_session, booking)
        assert booking.payment_status == PaymentStatus.PAID
        assert booking.settlement_status == SettlementStatus.PENDING
        assert booking.operator_settlement_amount == 100.0

    ledger = await get_ledger(db_session, driver.id)
    assert ledger["outflow_amount"] == pytest.approx(20.0)
    assert ledger["inflow_amount"] == 0
    assert ledger["net_amount"] == pytest.approx(-20.0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outflow, amount, expected_outflow, expected_inflow",
    [
        (20.0, 100.0, 0.0, 80.0),
        (150.0, 100.0, 50.0, 0.0),
        (0.0, 100.0, 0.0, 100.0),
    ],
)
async def test_electronic_payment_offsets_cash_debt_first(
    session_factory, db_session, driver, rider, make_pooling_offer, make_pooling_booking,
    outflow, amount, expected_outflow, expected_inflow,
):
    await _set_ledger(session_factory, driver.id, inflow=5.0, outflow=outflow)
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(
        offer, rider, status=BookingStatus.COMPLETED, payment_method=PaymentMethod.UPI, amount=amount
    )

    booking = await settle_completed_booking(db_session, booking, now=datetime(2030, 1, 15, 12, 0))

    assert booking.settlement_status == SettlementStatus.REQUESTED
    assert booking.settlement_requested_at == datetime(2030, 1, 15, 12, 0)
    ledger = await get_ledger(db_session, driver.id)
    assert ledger["outflow_amount"] == pytest.approx(expected_outflow)
    assert ledger["inflow_amount"] == pytest.approx(5.0 + expected_inflow)


@pytest.mark.asyncio
async def test_only_completed_bookings_settle(db_session, driver, rider, make_pooling_offer, make_pooling_booking):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(offer, rider)
    with pytest.raises(ConflictError):
        await settle_completed_booking(db_session, booking)


@pytest.mark.asyncio
async def test_concurrent_ledger_updates_are_not_lost(session_factory, driver):
    """Many completions settling against one operator at once all land."""

    async def cash_fee():
        async with session_factory() as session:
            await SqlUserLedger(session).increment_outflow(driver.id, 5)
            await session.commit()

    async def card_fare():
        async with session_factory() as session:
            await SqlUserLedger(session).increment_inflow(driver.id, 12.5)
            await session.commit()

    await asyncio.gather(*([cash_fee() for _ in range(8)] + [card_fare() for _ in range(4)]))

    async with session_factory() as session:
        ledger = await get_ledger(session, driver.id)
    assert ledger["outflow_amount"] == pytest.approx(40.0)
    assert ledger["inflow_amount"] == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_ledger_rejects_negative_amounts(db_session, driver):
    with pytest.raises(ValidationError):
        await SqlUserLedger(db_session).increment_inflow(driver.id, -1)


@pytest.mark.asyncio
async def test_decrement_outflow_never_goes_below_zero(session_factory, db_session, driver):
    await _set_ledger(session_factory, driver.id, outflow=30.0)
    ledger = SqlUserLedger(db_session)

    await ledger.decrement_outflow(driver.id, 10)
    assert (await get_ledger(db_session, driver.id))["outflow_amount"] == pytest.approx(20.0)

    await ledger.decrement_outflow(driver.id, 50)
    assert (await get_ledger(db_session, driver.id))["outflow_amount"] == 0


@pytest.mark.asyncio
async def test_withdrawal_rules(db_session, driver, rider, second_rider, make_pooling_offer, make_pooling_booking):
    offer = await make_pooling_offer(driver)
    electronic = await make_pooling_booking(
        offer, rider, status=BookingStatus.COMPLETED, payment_method=PaymentMethod.CARD
    )
    cash = await make_pooling_booking(offer, second_rider, status=BookingStatus.COMPLETED)

    with pytest.raises(ConflictError):
        await request_withdrawal(db_session, cash.id, driver.id)
    with pytest.raises(ConflictError):
        await request_withdrawal(db_session, electronic.id, rider.id)

    booking = await request_withdrawal(db_session, electronic.id, driver.id)
    assert booking.settlement_status == SettlementStatus.REQUESTED
    assert booking.settlement_requested_at is not None

    # Asking again while the request is open is accepted
    await request_withdrawal(db_session, electronic.id, driver.id)
    assert [b.id for b in await list_settlements(db_session)] == [electronic.id]


@pytest.mark.asyncio
async def test_withdrawal_needs_a_completed_trip(db_session, driver, rider, make_pooling_offer, make_pooling_booking):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(offer, rider, payment_method=PaymentMethod.UPI)
    with pytest.raises(ConflictError):
        await request_withdrawal(db_session, booking.id, driver.id)


@pytest.mark.asyncio
async def test_admin_approves_requested_settlement(
    client: AsyncClient, auth_headers, driver, rider, make_pooling_offer, make_pooling_booking
):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(
        offer,
        rider,
        status=BookingStatus.COMPLETED,
        payment_method=PaymentMethod.UPI,
        settlement_status=SettlementStatus.REQUESTED,
        settlement_requested_at=datetime(2030, 1, 15, 12, 0),
    )
    admin = auth_headers(999, admin=True)

    forbidden = await client.get("/api/v1/settlements/admin", headers=auth_headers(driver.id))
    assert forbidden.status_code == 403

    queue = await client.get("/api/v1/settlements/admin", headers=admin)
    assert queue.status_code == 200
    assert queue.json()["total"] == 1
    assert queue.json()["settlements"][0]["operator_id"] == driver.id

    approved = await client.post(f"/api/v1/settlements/admin/{booking.id}/approve", headers=admin)
    assert approved.status_code == 200
    assert approved.json()["settlement_status"] == "approved"
    assert approved.json()["settlement_approved_at"] is not None

    # Decisions only move forward
    again = await client.post(f"/api/v1/settlements/admin/{booking.id}/approve", headers=admin)
    assert again.status_code == 409
    rejected = await client.post(
        f"/api/v1/settlements/admin/{booking.id}/reject", json={"reason": "Too late"}, headers=admin
    )
    assert rejected.status_code == 409

    withdraw = await client.post(f"/api/v1/settlements/{booking.id}/withdraw", headers=auth_headers(driver.id))
    assert withdraw.status_code == 409

    empty = await client.get("/api/v1/settlements/admin", headers=admin)
    assert empty.json()["total"] == 0
    approved_list = await client.get("/api/v1/settlements/admin", params={"status": "approved"}, headers=admin)
    assert approved_list.json()["total"] == 1


@pytest.mark.asyncio
async def test_admin_rejects_with_reason(
    client: AsyncClient, auth_headers, driver, rider, make_pooling_offer, make_pooling_booking
):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(
        offer,
        rider,
        status=BookingStatus.COMPLETED,
        payment_method=PaymentMethod.WALLET,
        settlement_status=SettlementStatus.REQUESTED,
    )
    admin = auth_headers(999, admin=True)

    blank = await client.post(f"/api/v1/settlements/admin/{booking.id}/reject", json={"reason": "   "}, headers=admin)
    assert blank.status_code == 422

    rejected = await client.post(
        f"/api/v1/settlements/admin/{booking.id}/reject",
        json={"reason": "Bank details missing"},
        headers=admin,
    )
    assert rejected.status_code == 200
    assert rejected.json()["settlement_status"] == "rejected"
    assert rejected.json()["settlement_rejected_reason"] == "Bank details missing"

    # Rejected is terminal, even for the operator
    withdraw = await client.post(f"/api/v1/settlements/{booking.id}/withdraw", headers=auth_headers(driver.id))
    assert withdraw.status_code == 409


@pytest.mark.asyncio
async def test_ledger_endpoints(client: AsyncClient, auth_headers, session_factory, driver):
    await _set_ledger(session_factory, driver.id, inflow=120.0, outflow=20.0)

    mine = await client.get("/api/v1/settlements/ledger/me", headers=auth_headers(driver.id))
    assert mine.json() == {"user_id": driver.id, "inflow_amount": 120.0, "outflow_amount": 20.0, "net_amount": 100.0}

    admin = auth_headers(999, admin=True)
    assert (await client.get(f"/api/v1/settlements/admin/ledger/{driver.id}", headers=admin)).status_code == 200
    assert (await client.get("/api/v1/settlements/admin/ledger/424242", headers=admin)).status_code == 404


@pytest.mark.asyncio
async def test_approve_and_reject_cannot_both_win(
    monkeypatch, session_factory, db_session, driver, rider, make_pooling_offer, make_pooling_booking
):
    offer = await make_pooling_offer(driver)
    booking = await make_pooling_booking(
        offer,
        rider,
        status=BookingStatus.COMPLETED,
        payment_method=PaymentMethod.UPI,
        payment_status=PaymentStatus.PAID,
        settlement_status=SettlementStatus.REQUESTED,
    )

    # A second admin approves after this one has read the request
    async with session_factory() as other:
        await approve_settlement(other, booking.id, admin_id=1)
        await other.commit()

    async def read_before_approval(db, booking_id):
        return booking

    monkeypatch.setattr(settlement_service, "load_booking", read_before_approval)
    booking_id = booking.id
    with pytest.raises(ConflictError):
        await reject_settlement(db_session, booking.id, admin_id=2, reason="Duplicate claim")
    await db_session.rollback()

    async with session_factory() as fresh:
        stored = await load_booking(fresh, booking_id)
    assert stored.settlement_status == SettlementStatus.APPROVED
    assert stored.settlement_rejected_reason is None
