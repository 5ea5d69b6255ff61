"""
Trip state machine.

Booking status:    pending -> confirmed -> in_progress -> completed
                   (cancelled from any non-terminal state, see booking_service)
Passenger status:  waiting -> got_in -> got_out        (pooling only)

A pooling passenger is completed individually with the drop-off code
protocol: the driver marks the passenger out, the system generates a
4-digit code that only the passenger sees, and the driver must enter that
code to complete the booking. There is no way to complete a passenger
without the generated code.

Whole-trip actions (start_trip / end_trip) act on every booking of one
offer. The trip scheduler calls auto_start_offer, the unattended variant of
start_trip.

Every completion runs the settlement ledger for that booking and then
checks whether the offer itself is now completed.
"""

import hmac
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.config import get_settings
from ridemarket.core.exceptions import ConflictError, NotFoundError, ValidationError
from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import record_trip_transition
from ridemarket.core.timeutils import local_now, scheduled_at
from ridemarket.models.booking import Booking, TripOperator
from ridemarket.models.enums import (
    ACTIVE_BOOKING_STATUSES,
    STARTABLE_BOOKING_STATUSES,
    BookingStatus,
    OfferStatus,
    PassengerStatus,
    ServiceType,
)
from ridemarket.models.offer import PoolingOffer, RentalOffer
from ridemarket.services.inventory_service import (
    load_booking,
    load_pooling_offer,
    load_rental_offer,
    transition_booking,
)
from ridemarket.services.settlement_service import settle_completed_booking

logger = get_logger(__name__)

PASSENGER_CODE_RE = re.compile(r"^\d{4}$")

Offer = Union[PoolingOffer, RentalOffer]


@dataclass
class TripActionResult:
    service_type: ServiceType
    offer_id: int
    offer_status: OfferStatus
    bookings_updated: int
    trip_started_at: Optional[datetime] = None


def generate_passenger_code(taken: Optional[set] = None) -> str:
    """Random 4-digit code (1000-9999) not already in `taken`."""
    taken = taken or set()
    while True:
        code = str(secrets.randbelow(9000) + 1000)
        if code not in taken:
            return code


def require_operator(booking: Booking, actor_id: int) -> TripOperator:
    operator = booking.operator
    if operator.user_id != actor_id:
        raise ConflictError("Only the trip operator can perform this action", booking_id=booking.id)
    return operator


def _offer_column(service_type: ServiceType):
    return Booking.pooling_offer_id if service_type == ServiceType.POOLING else Booking.rental_offer_id


def _offer_model(service_type: ServiceType):
    return PoolingOffer if service_type == ServiceType.POOLING else RentalOffer


def _operator_id(offer: Offer) -> int:
    return offer.driver_id if isinstance(offer, PoolingOffer) else offer.owner_id


def offer_scheduled_at(offer: Offer) -> datetime:
    """Departure for pooling, start of the availability window for rentals."""
    clock = offer.time if isinstance(offer, PoolingOffer) else offer.available_from
    return scheduled_at(offer.date, clock)


async def _load_offer(db: AsyncSession, service_type: ServiceType, offer_id: int) -> Offer:
    if service_type == ServiceType.POOLING:
        offer = await load_pooling_offer(db, offer_id)
    else:
        offer = await load_rental_offer(db, offer_id)
    if offer is None:
        raise NotFoundError("Offer not found", service_type=service_type.value, offer_id=offer_id)
    return offer


async def _active_bookings(db: AsyncSession, service_type: ServiceType, offer_id: int) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            _offer_column(service_type) == offer_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .order_by(Booking.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _require_pooling_trip(booking: Booking) -> None:
    if booking.service_type != ServiceType.POOLING:
        raise ConflictError("Passenger boarding applies to pooling bookings only", booking_id=booking.id)
    if booking.status != BookingStatus.IN_PROGRESS:
        raise ConflictError("Trip has not started for this booking", booking_id=booking.id)


async def complete_booking(db: AsyncSession, booking: Booking, now: datetime) -> None:
    """Mark one booking completed and settle it with the operator."""
    # Conditional on the status so a booking is never settled twice
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .values(status=BookingStatus.COMPLETED, trip_completed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError("Booking is already completed or cancelled", booking_id=booking.id)
    await db.refresh(booking)

    await settle_completed_booking(db, booking, now)

    if booking.service_type == ServiceType.RENTAL:
        await db.execute(
            update(RentalOffer)
            .where(RentalOffer.id == booking.rental_offer_id)
            .values(completed_count=RentalOffer.completed_count + 1)
            .execution_options(synchronize_session=False)
        )
    record_trip_transition("completed")


async def complete_offer_if_done(db: AsyncSession, service_type: ServiceType, offer_id: int) -> bool:
    """Complete the offer once every non-cancelled booking on it is completed."""
    column = _offer_column(service_type)
    result = await db.execute(
        select(
            func.count(Booking.id),
            func.count(Booking.id).filter(Booking.status != BookingStatus.COMPLETED),
        ).where(column == offer_id, Booking.status != BookingStatus.CANCELLED)
    )
    total, unfinished = result.one()
    if total == 0 or unfinished > 0:
        return False

    model = _offer_model(service_type)
    await db.execute(
        update(model)
        .where(model.id == offer_id, model.status != OfferStatus.COMPLETED)
        .values(status=OfferStatus.COMPLETED, version=model.version + 1)
        .execution_options(synchronize_session=False)
    )
    logger.info("offer_completed", service_type=service_type.value, offer_id=offer_id)
    return True


async def mark_got_in(db: AsyncSession, booking_id: int, operator_id: int) -> Booking:
    booking = await load_booking(db, booking_id)
    require_operator(booking, operator_id)
    _require_pooling_trip(booking)
    if booking.passenger_status != PassengerStatus.WAITING:
        raise ConflictError(
            f"Passenger is already marked {booking.passenger_status.value}",
            booking_id=booking_id,
        )

    booking = await transition_booking(
        db,
        booking_id,
        [Booking.status == BookingStatus.IN_PROGRESS, Booking.passenger_status == PassengerStatus.WAITING],
        "Passenger can no longer be marked as got in",
        passenger_status=PassengerStatus.GOT_IN,
    )

    record_trip_transition("got_in")
    logger.info("passenger_got_in", booking_id=booking_id, operator_id=operator_id)
    return booking


async def mark_got_out(
    db: AsyncSession,
    booking_id: int,
    operator_id: int,
    now: Optional[datetime] = None,
) -> Booking:
    """Drop the passenger off and issue the completion code."""
    booking = await load_booking(db, booking_id)
    require_operator(booking, operator_id)
    _require_pooling_trip(booking)
    if booking.passenger_status != PassengerStatus.GOT_IN:
        raise ConflictError('Passenger must be marked as "got in" first', booking_id=booking_id)

    booking = await transition_booking(
        db,
        booking_id,
        [Booking.status == BookingStatus.IN_PROGRESS, Booking.passenger_status == PassengerStatus.GOT_IN],
        "Passenger can no longer be marked as got out",
        passenger_status=PassengerStatus.GOT_OUT,
        passenger_code=generate_passenger_code(),
        code_generated_at=now or local_now(),
    )

    record_trip_transition("got_out")
    logger.info("passenger_got_out", booking_id=booking_id, operator_id=operator_id)
    return booking


async def verify_code_and_complete(
    db: AsyncSession,
    booking_id: int,
    operator_id: int,
    code: str,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Complete a pooling passenger with the code generated at drop-off.

    Raises:
        ValidationError: code is not 4 digits
        ConflictError: wrong operator, passenger not dropped off, or code mismatch
    """
    code = (code or "").strip()
    if not PASSENGER_CODE_RE.match(code):
        raise ValidationError("Passenger code must be a 4-digit number")

    booking = await load_booking(db, booking_id)
    require_operator(booking, operator_id)
    if booking.status == BookingStatus.COMPLETED:
        raise ConflictError("Booking is already completed", booking_id=booking_id)
    _require_pooling_trip(booking)
    if booking.passenger_status != PassengerStatus.GOT_OUT:
        raise ConflictError('Passenger must be marked as "got out" first', booking_id=booking_id)

    if not booking.passenger_code or not hmac.compare_digest(code, booking.passenger_code):
        logger.warning("passenger_code_mismatch", booking_id=booking_id, operator_id=operator_id)
        raise ConflictError("Invalid passenger code", booking_id=booking_id)

    await complete_booking(db, booking, now or local_now())
    await complete_offer_if_done(db, ServiceType.POOLING, booking.pooling_offer_id)

    logger.info("passenger_trip_completed", booking_id=booking_id, operator_id=operator_id)
    return booking


async def start_trip(
    db: AsyncSession,
    service_type: ServiceType,
    offer_id: int,
    operator_id: int,
    now: Optional[datetime] = None,
) -> TripActionResult:
    """
    Start every pending/confirmed booking on the offer with one shared start
    time. Allowed from TRIP_START_GRACE_MINUTES before the scheduled time.
    Starting an already started trip changes nothing.
    """
    now = now or local_now()
    offer = await _load_offer(db, service_type, offer_id)
    if _operator_id(offer) != operator_id:
        raise ConflictError("You are not authorized to start this trip", offer_id=offer_id)
    if offer.status == OfferStatus.COMPLETED:
        raise ConflictError("This trip has already been completed", offer_id=offer_id)
    if offer.status == OfferStatus.CANCELLED:
        raise ConflictError("This offer has been cancelled", offer_id=offer_id)

    scheduled = offer_scheduled_at(offer)
    grace = timedelta(minutes=get_settings().TRIP_START_GRACE_MINUTES)
    if now < scheduled - grace:
        minutes_remaining = math.ceil((scheduled - now).total_seconds() / 60)
        raise ConflictError(
            f"Trip can only be started at {scheduled:%H:%M}. Please wait {minutes_remaining} more minutes.",
            offer_id=offer_id,
            minutes_remaining=minutes_remaining,
        )

    bookings = await _active_bookings(db, service_type, offer_id)
    if not bookings:
        raise ConflictError("No bookings found for this offer", offer_id=offer_id)

    to_start = [b for b in bookings if b.status != BookingStatus.IN_PROGRESS]
    if not to_start:
        logger.info("trip_already_started", service_type=service_type.value, offer_id=offer_id)
        return TripActionResult(service_type, offer_id, offer.status, 0, bookings[0].trip_started_at)

    # Bookings cancelled since they were read are skipped by the WHERE clause
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id.in_([b.id for b in to_start]),
            Booking.status.in_(STARTABLE_BOOKING_STATUSES),
        )
        .values(status=BookingStatus.IN_PROGRESS, trip_started_at=now)
        .execution_options(synchronize_session=False)
    )
    started = result.rowcount

    record_trip_transition("started", started)
    logger.info(
        "trip_started",
        service_type=service_type.value,
        offer_id=offer_id,
        bookings=started,
        operator_id=operator_id,
    )
    return TripActionResult(service_type, offer_id, offer.status, started, now)


async def end_trip(
    db: AsyncSession,
    service_type: ServiceType,
    offer_id: int,
    operator_id: int,
    now: Optional[datetime] = None,
) -> TripActionResult:
    """Complete and settle every non-terminal booking, then complete the offer."""
    now = now or local_now()
    offer = await _load_offer(db, service_type, offer_id)
    if _operator_id(offer) != operator_id:
        raise ConflictError("You are not authorized to end this trip", offer_id=offer_id)
    if offer.status == OfferStatus.COMPLETED:
        raise ConflictError("This trip has already been completed", offer_id=offer_id)
    if offer.status == OfferStatus.CANCELLED:
        raise ConflictError("This offer has been cancelled", offer_id=offer_id)

    bookings = await _active_bookings(db, service_type, offer_id)
    for booking in bookings:
        await complete_booking(db, booking, now)

    model = _offer_model(service_type)
    await db.execute(
        update(model)
        .where(model.id == offer_id)
        .values(status=OfferStatus.COMPLETED, version=model.version + 1)
        .execution_options(synchronize_session=False)
    )

    logger.info(
        "trip_ended",
        service_type=service_type.value,
        offer_id=offer_id,
        bookings=len(bookings),
        operator_id=operator_id,
    )
    return TripActionResult(service_type, offer_id, OfferStatus.COMPLETED, len(bookings))


async def auto_start_offer(db: AsyncSession, offer_id: int, now: datetime) -> int:
    """
    Scheduler path for a pooling offer whose departure time has passed.

    Pending/confirmed bookings move to in_progress, each with its own
    passenger code; bookings already in progress are left alone, so repeated
    ticks are harmless. The offer moves pending -> active.

    Returns:
        Number of bookings started
    """
    offer = await load_pooling_offer(db, offer_id)
    if offer is None:
        raise NotFoundError("Pooling offer not found", offer_id=offer_id)

    result = await db.execute(
        select(Booking.id)
        .where(
            Booking.pooling_offer_id == offer_id,
            Booking.status.in_(STARTABLE_BOOKING_STATUSES),
        )
        .order_by(Booking.id)
    )
    booking_ids = list(result.scalars().all())

    codes: set[str] = set()
    started = 0
    for booking_id in booking_ids:
        code = generate_passenger_code(codes)
        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status.in_(STARTABLE_BOOKING_STATUSES))
            .values(
                status=BookingStatus.IN_PROGRESS,
                passenger_code=code,
                code_generated_at=now,
                trip_started_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            codes.add(code)
            started += 1
    if not started:
        return 0

    await db.execute(
        update(PoolingOffer)
        .where(PoolingOffer.id == offer_id, PoolingOffer.status == OfferStatus.PENDING)
        .values(status=OfferStatus.ACTIVE, version=PoolingOffer.version + 1)
        .execution_options(synchronize_session=False)
    )

    record_trip_transition("started", started)
    logger.info("trip_auto_started", offer_id=offer_id, bookings=started)
    return started
