"""
Offer inventory backed by conditional SQL updates.

CONCURRENCY STRATEGY
====================

Pooling seats: one conditional UPDATE
  UPDATE pooling_offers
     SET available_seats = available_seats - 1,
         status = CASE WHEN available_seats = 1 THEN 'booked' ELSE 'active' END,
         version = version + 1
   WHERE id = :offer_id AND status IN ('pending', 'active') AND available_seats > 0

  Two riders racing for the last seat both issue the UPDATE; the database
  serializes them on the row, the second re-evaluates the WHERE clause
  against the committed row and matches nothing. rowcount == 0 means
  Conflict. No read-then-write window exists.

Rental slots: compare-and-set on the offer version
  A slot is not a counter, so overlap has to be checked against the set of
  existing bookings. We read the offer version, check the window and the
  overlaps, then
    UPDATE rental_offers SET version = version + 1
     WHERE id = :offer_id AND version = :seen_version
  If another booking claimed a slot in between, the version moved and the
  UPDATE matches nothing: re-read and re-check (bounded retries). The loser
  of an overlapping race therefore sees the winner's booking and fails with
  Conflict.
"""

from datetime import date
from typing import Sequence

from sqlalchemy import ColumnElement, case, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ConflictError, NotFoundError
from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import slot_reservation_retries
from ridemarket.core.timeutils import format_minutes, intervals_overlap, slot_bounds, slot_in_window
from ridemarket.models.booking import Booking
from ridemarket.models.enums import BOOKABLE_OFFER_STATUSES, BookingStatus, OfferStatus
from ridemarket.models.offer import OfferParticipant, PoolingOffer, RentalOffer
from ridemarket.services.interfaces.inventory import OfferInventory

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


async def load_pooling_offer(db: AsyncSession, offer_id: int) -> PoolingOffer | None:
    result = await db.execute(
        select(PoolingOffer)
        .where(PoolingOffer.id == offer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_rental_offer(db: AsyncSession, offer_id: int) -> RentalOffer | None:
    result = await db.execute(
        select(RentalOffer)
        .where(RentalOffer.id == offer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def booked_slots(db: AsyncSession, offer_id: int, day: date) -> list[Booking]:
    """Non-cancelled bookings on the offer/date that hold an explicit slot."""
    result = await db.execute(
        select(Booking).where(
            Booking.rental_offer_id == offer_id,
            Booking.date == day,
            Booking.status != BookingStatus.CANCELLED,
            Booking.start_time.is_not(None),
            Booking.end_time.is_not(None),
        )
    )
    return list(result.scalars().all())


class SqlOfferInventory(OfferInventory):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve_seat(self, offer_id: int, rider_id: int) -> PoolingOffer:
        result = await self.db.execute(
            update(PoolingOffer)
            .where(
                PoolingOffer.id == offer_id,
                PoolingOffer.status.in_(BOOKABLE_OFFER_STATUSES),
                PoolingOffer.available_seats > 0,
            )
            .values(
                available_seats=PoolingOffer.available_seats - 1,
                booking_requests=PoolingOffer.booking_requests + 1,
                version=PoolingOffer.version + 1,
                # SET expressions see the pre-update row
                status=case(
                    (PoolingOffer.available_seats == 1, OfferStatus.BOOKED.value),
                    else_=OfferStatus.ACTIVE.value,
                ),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            offer = await load_pooling_offer(self.db, offer_id)
            if offer is None:
                raise NotFoundError("Pooling offer not found", offer_id=offer_id)
            if offer.status not in BOOKABLE_OFFER_STATUSES:
                raise ConflictError("Offer is not available for booking", offer_id=offer_id)
            logger.warning("seat_reservation_failed", offer_id=offer_id, rider_id=rider_id)
            raise ConflictError("No seats available", offer_id=offer_id)

        self.db.add(OfferParticipant(offer_id=offer_id, rider_id=rider_id))
        await self.db.flush()

        offer = await load_pooling_offer(self.db, offer_id)
        logger.info(
            "seat_reserved",
            offer_id=offer_id,
            rider_id=rider_id,
            available_seats=offer.available_seats,
            offer_status=offer.status.value,
        )
        return offer

    async def release_seat(self, offer_id: int, rider_id: int) -> None:
        await self.db.execute(
            update(PoolingOffer)
            .where(
                PoolingOffer.id == offer_id,
                PoolingOffer.available_seats < PoolingOffer.total_seats,
            )
            .values(
                available_seats=PoolingOffer.available_seats + 1,
                version=PoolingOffer.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(OfferParticipant)
            .where(
                OfferParticipant.offer_id == offer_id,
                OfferParticipant.rider_id == rider_id,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info("seat_released", offer_id=offer_id, rider_id=rider_id)

    async def reserve_time_slot(
        self,
        offer_id: int,
        day: date,
        start_time: str,
        end_time: str,
    ) -> RentalOffer:
        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            offer = await load_rental_offer(self.db, offer_id)
            if offer is None:
                raise NotFoundError("Rental offer not found", offer_id=offer_id)
            if offer.status not in BOOKABLE_OFFER_STATUSES:
                raise ConflictError("Offer is not available for booking", offer_id=offer_id)

            window = slot_bounds(offer.available_from, offer.available_until)
            slot = slot_in_window(start_time, end_time, window)
            if slot[0] < window[0] or slot[1] > window[1]:
                raise ConflictError(
                    "Selected time slot is outside the offer's available window",
                    offer_id=offer_id,
                    window=f"{offer.available_from}-{offer.available_until}",
                )

            for booking in await booked_slots(self.db, offer_id, day):
                if intervals_overlap(slot, slot_in_window(booking.start_time, booking.end_time, window)):
                    logger.info(
                        "slot_conflict",
                        offer_id=offer_id,
                        requested=f"{format_minutes(slot[0])}-{format_minutes(slot[1])}",
                        booking_id=booking.id,
                    )
                    raise ConflictError(
                        "This time slot overlaps with an existing booking",
                        offer_id=offer_id,
                        booking_id=booking.id,
                    )

            current_version = offer.version
            result = await self.db.execute(
                update(RentalOffer)
                .where(RentalOffer.id == offer_id, RentalOffer.version == current_version)
                .values(version=RentalOffer.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.info(
                    "slot_reserved",
                    offer_id=offer_id,
                    start_time=start_time,
                    end_time=end_time,
                    attempt=attempt,
                )
                return offer

            slot_reservation_retries.inc()
            logger.info("slot_reservation_retry", offer_id=offer_id, attempt=attempt, reason="version_conflict")

        raise ConflictError("Slot reservation failed due to high demand. Please try again.", offer_id=offer_id)

    async def register_rental_booking(self, offer_id: int) -> None:
        """Count a new rental booking; the first one activates a pending offer."""
        result = await self.db.execute(
            update(RentalOffer)
            .where(
                RentalOffer.id == offer_id,
                RentalOffer.status.in_(BOOKABLE_OFFER_STATUSES),
            )
            .values(
                total_bookings=RentalOffer.total_bookings + 1,
                version=RentalOffer.version + 1,
                status=case(
                    (RentalOffer.status == OfferStatus.PENDING.value, OfferStatus.ACTIVE.value),
                    else_=RentalOffer.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError("Offer is not available for booking", offer_id=offer_id)

    async def register_rental_cancellation(self, offer_id: int) -> None:
        await self.db.execute(
            update(RentalOffer)
            .where(RentalOffer.id == offer_id)
            .values(cancelled_count=RentalOffer.cancelled_count + 1)
            .execution_options(synchronize_session=False)
        )


async def load_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking


async def transition_booking(
    db: AsyncSession,
    booking_id: int,
    guard: Sequence[ColumnElement[bool]],
    message: str,
    **values,
) -> Booking:
    """
    Write `values` to the booking only while every `guard` condition still
    holds on the stored row, then return the reloaded booking.

    The status check a caller made on its loaded copy may be stale by the
    time it writes (a concurrent cancel, a second admin decision), so the
    check is repeated inside the UPDATE. rowcount == 0 raises ConflictError
    with `message`.
    """
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, *guard)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("booking_transition_lost", booking_id=booking_id)
        raise ConflictError(message, booking_id=booking_id)
    return await load_booking(db, booking_id)
