"""
Settlement between the platform and trip operators.

On completion every booking settles once:

  Cash (offline_cash)
    The operator collected the whole fare, so they owe the platform fee:
      outflow += platform_fee
    Payment is recorded as paid; nothing needs to be transferred, so the
    settlement stays "pending".

  Electronic (upi, card, wallet, net_banking)
    The platform holds the fare and owes the operator the net amount
    (amount, i.e. total minus fee). Outstanding cash debt is offset first:
      outflow' = max(outflow - amount, 0)
      inflow'  = inflow + max(amount - outflow, 0)
    The settlement becomes "requested" and waits for an admin.

Admin decisions move "requested" forward only: approved, or rejected with a
reason (terminal). Ledger changes are single-statement updates
(services.ledger_service).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ConflictError, NotFoundError, ValidationError
from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import record_settlement, record_settlement_decision
from ridemarket.core.timeutils import local_now
from ridemarket.models.booking import Booking
from ridemarket.models.enums import BookingStatus, PaymentStatus, SettlementStatus
from ridemarket.models.user import User
from ridemarket.services.interfaces.ledger import UserLedger
from ridemarket.services.inventory_service import load_booking, transition_booking
from ridemarket.services.ledger_service import SqlUserLedger

logger = get_logger(__name__)

WITHDRAWABLE_STATUSES = (SettlementStatus.PENDING, SettlementStatus.REQUESTED)


async def settle_completed_booking(
    db: AsyncSession,
    booking: Booking,
    now: Optional[datetime] = None,
    ledger: Optional[UserLedger] = None,
) -> Booking:
    """Apply the ledger effect of one completed booking."""
    if booking.status != BookingStatus.COMPLETED:
        raise ConflictError("Only completed bookings can be settled", booking_id=booking.id)

    ledger = ledger or SqlUserLedger(db)
    operator_id = booking.operator_id
    booking.operator_settlement_amount = booking.amount

    if booking.payment_method.is_cash:
        await ledger.increment_outflow(operator_id, booking.platform_fee)
        booking.payment_status = PaymentStatus.PAID
        booking.settlement_status = SettlementStatus.PENDING
        kind = "cash"
    else:
        await ledger.apply_electronic_payment(operator_id, booking.amount)
        booking.settlement_status = SettlementStatus.REQUESTED
        booking.settlement_requested_at = now or local_now()
        kind = "electronic"
    await db.flush()

    record_settlement(kind)
    logger.info(
        "settlement_recorded",
        booking_id=booking.id,
        operator_id=operator_id,
        kind=kind,
        amount=booking.amount,
        platform_fee=booking.platform_fee,
        settlement_status=booking.settlement_status.value,
    )
    return booking


async def approve_settlement(db: AsyncSession, booking_id: int, admin_id: int) -> Booking:
    booking = await load_booking(db, booking_id)
    if booking.settlement_status != SettlementStatus.REQUESTED:
        raise ConflictError(
            f"Settlement is not in requested state. Current: {booking.settlement_status.value}",
            booking_id=booking_id,
        )

    booking = await transition_booking(
        db,
        booking_id,
        [Booking.settlement_status == SettlementStatus.REQUESTED],
        "Settlement is no longer in requested state",
        settlement_status=SettlementStatus.APPROVED,
        settlement_approved_at=local_now(),
    )

    record_settlement_decision("approved")
    logger.info("settlement_approved", booking_id=booking_id, admin_id=admin_id)
    return booking


async def reject_settlement(db: AsyncSession, booking_id: int, admin_id: int, reason: str) -> Booking:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")

    booking = await load_booking(db, booking_id)
    if booking.settlement_status != SettlementStatus.REQUESTED:
        raise ConflictError(
            f"Settlement is not in requested state. Current: {booking.settlement_status.value}",
            booking_id=booking_id,
        )

    booking = await transition_booking(
        db,
        booking_id,
        [Booking.settlement_status == SettlementStatus.REQUESTED],
        "Settlement is no longer in requested state",
        settlement_status=SettlementStatus.REJECTED,
        settlement_rejected_reason=reason.strip(),
    )

    record_settlement_decision("rejected")
    logger.info("settlement_rejected", booking_id=booking_id, admin_id=admin_id, reason=booking.settlement_rejected_reason)
    return booking


async def request_withdrawal(db: AsyncSession, booking_id: int, operator_id: int) -> Booking:
    """Operator asks for the payout of an electronically paid, completed trip."""
    booking = await load_booking(db, booking_id)
    if booking.operator_id != operator_id:
        raise ConflictError("You are not authorized to request withdrawal", booking_id=booking_id)
    if booking.status != BookingStatus.COMPLETED:
        raise ConflictError("Booking must be completed before withdrawal", booking_id=booking_id)
    if booking.payment_method.is_cash:
        raise ConflictError("Withdrawal not available for offline cash payments", booking_id=booking_id)
    if booking.settlement_status not in WITHDRAWABLE_STATUSES:
        raise ConflictError(
            f"Settlement already {booking.settlement_status.value}",
            booking_id=booking_id,
        )

    booking = await transition_booking(
        db,
        booking_id,
        [Booking.status == BookingStatus.COMPLETED, Booking.settlement_status.in_(WITHDRAWABLE_STATUSES)],
        "Settlement can no longer be requested",
        settlement_status=SettlementStatus.REQUESTED,
        settlement_requested_at=local_now(),
    )

    record_settlement_decision("requested")
    logger.info("withdrawal_requested", booking_id=booking_id, operator_id=operator_id)
    return booking


async def list_settlements(
    db: AsyncSession,
    status: Optional[SettlementStatus] = SettlementStatus.REQUESTED,
) -> list[Booking]:
    """Completed bookings by settlement status, oldest request first."""
    query = select(Booking).where(Booking.status == BookingStatus.COMPLETED)
    if status is not None:
        query = query.where(Booking.settlement_status == status)
    result = await db.execute(query.order_by(Booking.settlement_requested_at.asc(), Booking.id.asc()))
    return list(result.scalars().all())


async def get_ledger(db: AsyncSession, user_id: int) -> dict:
    result = await db.execute(
        select(User.inflow_amount, User.outflow_amount).where(User.id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("User not found", user_id=user_id)
    inflow, outflow = float(row.inflow_amount), float(row.outflow_amount)
    return {
        "user_id": user_id,
        "inflow_amount": inflow,
        "outflow_amount": outflow,
        "net_amount": round(inflow - outflow, 2),
    }
