"""
Booking orchestration for pooling seats and rental time slots.

CONCURRENCY STRATEGY
====================

Problem:
  Two riders try to book the last seat of a pooling offer (or two renters
  ask for overlapping hours of the same car) at the same moment. A
  read-check-write sequence lets both pass the check and both succeed.

Solution:
  The booking row is inserted in the same transaction as an atomic
  inventory change (services.inventory_service):
  - Pooling: a conditional UPDATE ... WHERE available_seats > 0. The
    database serializes the two UPDATEs on the offer row; the loser matches
    zero rows and gets Conflict.
  - Rental: a compare-and-set on the offer version after the overlap check,
    retried up to MAX_RETRY_ATTEMPTS times. The loser re-reads, sees the
    winner's booking and gets Conflict.
  If anything after the reservation fails, the request transaction rolls
  back and the seat or slot is never consumed.

Everything that can be validated without touching the inventory (payment
method, times, duration, price snapshot) is validated first, so invalid
requests never mutate anything.

Price snapshot:
  amount / platform_fee / total_amount are copied onto the booking at
  creation and never written again.
"""

import secrets
import time
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import booking_latency, record_booking_attempt, record_trip_transition
from ridemarket.core.timeutils import duration_hours, format_minutes, local_now, slot_bounds
from ridemarket.models.booking import Booking, TripOperator
from ridemarket.models.enums import (
    ACTIVE_BOOKING_STATUSES,
    BOOKABLE_OFFER_STATUSES,
    STARTABLE_BOOKING_STATUSES,
    BookingStatus,
    CancelledBy,
    OperatorRole,
    PassengerStatus,
    PaymentStatus,
    ServiceType,
    SettlementStatus,
)
from ridemarket.schemas.booking import PoolingBookingCreate, RentalBookingCreate
from ridemarket.services.interfaces.admission import AdmissionStrategy
from ridemarket.services.interfaces.collaborators import ConversationGateway
from ridemarket.services.interfaces.optimistic_admission import OptimisticAdmission
from ridemarket.services.inventory_service import SqlOfferInventory, load_booking, transition_booking
from ridemarket.services.offer_service import get_pooling_offer, get_rental_offer, get_user
from ridemarket.services.pricing_service import (
    PassengerRoute,
    quote_pooling_price,
    rental_price,
    validate_precomputed_price,
)
from ridemarket.services.trip_service import complete_booking, complete_offer_if_done, require_operator

logger = get_logger(__name__)


def generate_booking_number() -> str:
    return f"BK{local_now():%Y%m%d}{secrets.token_hex(3).upper()}"


async def _notify_conversation(conversations: Optional[ConversationGateway], booking: Booking) -> None:
    """Best effort: a chat failure never undoes the booking."""
    if conversations is None:
        return
    try:
        await conversations.create_or_get_conversation(booking.id, booking.service_type.value)
    except Exception as exc:
        logger.warning(
            "conversation_create_failed",
            booking_id=booking.id,
            error=str(exc),
        )


async def _ensure_no_active_booking(db: AsyncSession, rider_id: int, offer_column, offer_id: int) -> None:
    existing = await db.execute(
        select(Booking.id).where(
            Booking.rider_id == rider_id,
            offer_column == offer_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    if existing.first():
        raise ConflictError("You already have an active booking for this offer", offer_id=offer_id)


async def create_pooling_booking(
    db: AsyncSession,
    rider_id: int,
    data: PoolingBookingCreate,
    admission: Optional[AdmissionStrategy] = None,
    conversations: Optional[ConversationGateway] = None,
) -> Booking:
    """
    Book one seat on a pooling offer for the rider's (sub-)route.

    A precomputed price from an earlier quote is accepted if its parts add
    up; otherwise the price is computed now.
    """
    admission = admission or OptimisticAdmission()
    started = time.perf_counter()
    try:
        rider = await get_user(db, rider_id)
        offer = await get_pooling_offer(db, data.offer_id)

        if offer.driver_id == rider.id:
            raise ConflictError("You cannot book your own offer", offer_id=offer.id)
        if offer.status not in BOOKABLE_OFFER_STATUSES:
            raise ConflictError("Offer is not available for booking", offer_id=offer.id)
        if offer.available_seats <= 0:
            raise ConflictError("No seats available", offer_id=offer.id)

        await _ensure_no_active_booking(db, rider.id, Booking.pooling_offer_id, offer.id)

        route = PassengerRoute(
            from_lat=data.route.from_lat,
            from_lng=data.route.from_lng,
            to_lat=data.route.to_lat,
            to_lng=data.route.to_lng,
            from_address=data.route.from_address,
            to_address=data.route.to_address,
        )
        if data.price is not None:
            validate_precomputed_price(data.price.final_price, data.price.platform_fee, data.price.total_amount)
            amount, fee, total = data.price.final_price, data.price.platform_fee, data.price.total_amount
        else:
            quote = await quote_pooling_price(db, offer, route)
            amount, fee, total = quote.final_price, quote.platform_fee, quote.total_amount

        if not await admission.admit(offer.id):
            raise ConflictError("No seats available", offer_id=offer.id)

        try:
            offer = await SqlOfferInventory(db).reserve_seat(offer.id, rider.id)

            booking = Booking(
                booking_number=generate_booking_number(),
                rider_id=rider.id,
                service_type=ServiceType.POOLING,
                pooling_offer_id=offer.id,
                from_address=route.from_address or offer.from_address,
                from_lat=route.from_lat,
                from_lng=route.from_lng,
                to_address=route.to_address or offer.to_address,
                to_lat=route.to_lat,
                to_lng=route.to_lng,
                date=offer.date,
                time=offer.time,
                operator=TripOperator(OperatorRole.DRIVER, offer.driver_id, offer.driver_name),
                vehicle_type=offer.vehicle_type,
                vehicle_brand=offer.vehicle_brand,
                vehicle_number=offer.vehicle_number,
                amount=amount,
                platform_fee=fee,
                total_amount=total,
                payment_method=data.payment_method,
                payment_status=PaymentStatus.PENDING,
                status=BookingStatus.PENDING,
                passenger_status=PassengerStatus.WAITING,
                settlement_status=SettlementStatus.PENDING,
            )
            db.add(booking)
            await db.flush()
            await db.refresh(booking)
        finally:
            await admission.release(offer.id)
        await admission.sync(offer.id, offer.available_seats)

    except DomainError as exc:
        record_booking_attempt(ServiceType.POOLING.value, _outcome(exc))
        raise

    booking_latency.labels(service_type=ServiceType.POOLING.value).observe(time.perf_counter() - started)
    record_booking_attempt(ServiceType.POOLING.value, "success")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        booking_number=booking.booking_number,
        service_type=ServiceType.POOLING.value,
        rider_id=rider_id,
        offer_id=offer.id,
        total_amount=booking.total_amount,
        seats_left=offer.available_seats,
    )

    await _notify_conversation(conversations, booking)
    return booking


async def create_rental_booking(
    db: AsyncSession,
    rider_id: int,
    data: RentalBookingCreate,
    conversations: Optional[ConversationGateway] = None,
) -> Booking:
    """
    Book a rental offer either for a bare duration or for an explicit
    [start_time, end_time) slot, which is then claimed on the offer.
    """
    started = time.perf_counter()
    try:
        has_slot = data.start_time is not None or data.end_time is not None
        if has_slot and (data.start_time is None or data.end_time is None):
            raise ValidationError("Both start_time and end_time are required for a time slot")
        if not has_slot and data.duration_hours is None:
            raise ValidationError("Either duration_hours or start_time and end_time is required")

        start_time = end_time = None
        if has_slot:
            start_min, end_min = slot_bounds(data.start_time, data.end_time)
            start_time, end_time = format_minutes(start_min), format_minutes(end_min)
            duration = duration_hours(start_time, end_time)
        else:
            duration = data.duration_hours

        rider = await get_user(db, rider_id)
        offer = await get_rental_offer(db, data.offer_id)

        if offer.owner_id == rider.id:
            raise ConflictError("You cannot book your own offer", offer_id=offer.id)
        if offer.status not in BOOKABLE_OFFER_STATUSES:
            raise ConflictError("Offer is not available for booking", offer_id=offer.id)
        if duration < offer.minimum_hours:
            raise ValidationError(
                f"Minimum rental duration is {offer.minimum_hours} hours",
                minimum_hours=offer.minimum_hours,
                duration=duration,
            )

        amount, fee, total = rental_price(offer.price_per_hour, duration)

        inventory = SqlOfferInventory(db)
        if has_slot:
            await inventory.reserve_time_slot(offer.id, offer.date, start_time, end_time)
        await inventory.register_rental_booking(offer.id)

        # Cash is collected at pickup, so the booking needs no payment step
        initial_status = BookingStatus.CONFIRMED if data.payment_method.is_cash else BookingStatus.PENDING

        booking = Booking(
            booking_number=generate_booking_number(),
            rider_id=rider.id,
            service_type=ServiceType.RENTAL,
            rental_offer_id=offer.id,
            from_address=offer.pickup_address,
            from_lat=offer.pickup_lat,
            from_lng=offer.pickup_lng,
            date=offer.date,
            time=start_time or offer.available_from,
            duration_hours=duration,
            start_time=start_time,
            end_time=end_time,
            operator=TripOperator(OperatorRole.OWNER, offer.owner_id, offer.owner_name),
            vehicle_type=offer.vehicle_type,
            vehicle_brand=offer.vehicle_brand,
            vehicle_number=offer.vehicle_number,
            amount=amount,
            platform_fee=fee,
            total_amount=total,
            payment_method=data.payment_method,
            payment_status=PaymentStatus.PENDING,
            status=initial_status,
            passenger_status=PassengerStatus.WAITING,
            settlement_status=SettlementStatus.PENDING,
        )
        db.add(booking)
        await db.flush()
        await db.refresh(booking)

    except DomainError as exc:
        record_booking_attempt(ServiceType.RENTAL.value, _outcome(exc))
        raise

    booking_latency.labels(service_type=ServiceType.RENTAL.value).observe(time.perf_counter() - started)
    record_booking_attempt(ServiceType.RENTAL.value, "success")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        booking_number=booking.booking_number,
        service_type=ServiceType.RENTAL.value,
        rider_id=rider_id,
        offer_id=offer.id,
        slot=f"{start_time}-{end_time}" if has_slot else None,
        duration_hours=duration,
        total_amount=booking.total_amount,
    )

    await _notify_conversation(conversations, booking)
    return booking


def _outcome(exc: DomainError) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ValidationError):
        return "invalid"
    return "conflict"


async def get_booking(db: AsyncSession, booking_id: int, user_id: int) -> Booking:
    """A booking is visible to its rider and its operator only."""
    booking = await load_booking(db, booking_id)
    if user_id not in (booking.rider_id, booking.operator_id):
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking


async def list_user_bookings(
    db: AsyncSession,
    user_id: int,
    status: Optional[BookingStatus] = None,
    service_type: Optional[ServiceType] = None,
) -> list[Booking]:
    """Bookings where the user is the rider or the trip operator, newest first."""
    query = select(Booking).where(or_(Booking.rider_id == user_id, Booking.operator_id == user_id))
    if status is not None:
        query = query.where(Booking.status == status)
    if service_type is not None:
        query = query.where(Booking.service_type == service_type)
    result = await db.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    actor_id: int,
    reason: str,
    admission: Optional[AdmissionStrategy] = None,
) -> Booking:
    """
    Cancel a booking and give its seat or slot back to the offer.
    Cancellation is terminal; completed bookings cannot be cancelled.
    """
    booking = await load_booking(db, booking_id)

    if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
        raise ConflictError(f"Booking is already {booking.status.value}", booking_id=booking_id)

    operator = booking.operator
    if actor_id == booking.rider_id:
        cancelled_by = CancelledBy.USER
    elif actor_id == operator.user_id:
        cancelled_by = CancelledBy.DRIVER if operator.role == OperatorRole.DRIVER else CancelledBy.OWNER
    else:
        raise ConflictError("Only the rider or the trip operator can cancel this booking", booking_id=booking_id)

    # Conditional on the status so two concurrent cancels release only once
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .values(
            status=BookingStatus.CANCELLED,
            cancellation_reason=reason,
            cancelled_by=cancelled_by,
            cancelled_at=local_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError("Booking can no longer be cancelled", booking_id=booking_id)

    inventory = SqlOfferInventory(db)
    if booking.service_type == ServiceType.POOLING:
        await inventory.release_seat(booking.pooling_offer_id, booking.rider_id)
        if admission is not None:
            offer = await get_pooling_offer(db, booking.pooling_offer_id)
            await admission.sync(offer.id, offer.available_seats)
    else:
        await inventory.register_rental_cancellation(booking.rental_offer_id)

    await db.refresh(booking)

    record_trip_transition("cancelled")
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        actor_id=actor_id,
        cancelled_by=cancelled_by.value,
        service_type=booking.service_type.value,
        offer_id=booking.offer_id,
    )
    return booking


async def update_booking_status(
    db: AsyncSession,
    booking_id: int,
    new_status: BookingStatus,
    actor_id: int,
) -> Booking:
    """
    Operator-driven status change:
      pending | confirmed -> in_progress
      in_progress         -> completed   (settles and may complete the offer)
    Asking for the current status again is a no-op.
    """
    booking = await load_booking(db, booking_id)
    require_operator(booking, actor_id)

    if booking.status == new_status:
        return booking

    now = local_now()
    if new_status == BookingStatus.IN_PROGRESS and booking.status in STARTABLE_BOOKING_STATUSES:
        booking = await transition_booking(
            db,
            booking_id,
            [Booking.status.in_(STARTABLE_BOOKING_STATUSES)],
            "Booking can no longer be started",
            status=BookingStatus.IN_PROGRESS,
            trip_started_at=func.coalesce(Booking.trip_started_at, now),
        )
        record_trip_transition("started")
    elif new_status == BookingStatus.COMPLETED and booking.status == BookingStatus.IN_PROGRESS:
        await complete_booking(db, booking, now)
        await complete_offer_if_done(db, booking.service_type, booking.offer_id)
    else:
        raise ConflictError(
            f"Cannot change booking status from {booking.status.value} to {new_status.value}",
            booking_id=booking_id,
        )

    await db.refresh(booking)
    logger.info("booking_status_updated", booking_id=booking.id, status=booking.status.value, actor_id=actor_id)
    return booking


async def get_passenger_code(db: AsyncSession, booking_id: int, rider_id: int) -> Booking:
    """The completion code is shown to the rider only."""
    booking = await load_booking(db, booking_id)
    if booking.rider_id != rider_id:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking
