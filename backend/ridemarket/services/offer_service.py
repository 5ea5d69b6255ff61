"""
Offer service: creating, reading and cancelling pooling and rental offers.

Seat and slot changes are not made here; they go through the inventory
(services.inventory_service) so every capacity change is one conditional
UPDATE.
"""

from datetime import date
from typing import Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ConflictError, NotFoundError, ValidationError
from ridemarket.core.geo import haversine_km
from ridemarket.core.logging import get_logger
from ridemarket.core.timeutils import (
    format_minutes,
    intervals_overlap,
    parse_clock,
    slot_bounds,
    slot_in_window,
)
from ridemarket.models.enums import OfferStatus, ServiceType
from ridemarket.models.offer import PoolingOffer, RentalOffer
from ridemarket.models.user import User
from ridemarket.schemas.offer import PoolingOfferCreate, RentalOfferCreate
from ridemarket.services.inventory_service import booked_slots, load_pooling_offer, load_rental_offer

logger = get_logger(__name__)

MAX_TIME_SLOTS = 50

Offer = Union[PoolingOffer, RentalOffer]


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found", user_id=user_id)
    return user


async def require_verified_operator(db: AsyncSession, user_id: int) -> User:
    """Only identity-verified users may publish offers."""
    user = await get_user(db, user_id)
    if not user.is_active:
        raise ConflictError("User account is inactive", user_id=user_id)
    if not user.is_verified:
        raise ConflictError("Identity verification is required before publishing offers", user_id=user_id)
    return user


async def create_pooling_offer(db: AsyncSession, data: PoolingOfferCreate, driver_id: int) -> PoolingOffer:
    """Publish a pooling trip with every seat available."""
    driver = await require_verified_operator(db, driver_id)
    parse_clock(data.time)

    distance = data.distance_km
    if distance is None:
        distance = round(
            haversine_km(data.from_location.lat, data.from_location.lng, data.to_location.lat, data.to_location.lng),
            2,
        )

    offer = PoolingOffer(
        driver_id=driver.id,
        driver_name=driver.name,
        from_address=data.from_location.address,
        from_lat=data.from_location.lat,
        from_lng=data.from_location.lng,
        to_address=data.to_location.address,
        to_lat=data.to_location.lat,
        to_lng=data.to_location.lng,
        distance_km=distance,
        date=data.date,
        time=data.time.strip(),
        vehicle_type=data.vehicle.type,
        vehicle_brand=data.vehicle.brand,
        vehicle_number=data.vehicle.number,
        total_seats=data.total_seats,
        available_seats=data.total_seats,
        status=OfferStatus.PENDING,
        views=0,
        booking_requests=0,
        notes=data.notes,
        version=1,
    )
    db.add(offer)
    await db.flush()
    await db.refresh(offer)

    logger.info("pooling_offer_created", offer_id=offer.id, driver_id=driver_id, seats=offer.total_seats)
    return offer


async def create_rental_offer(db: AsyncSession, data: RentalOfferCreate, owner_id: int) -> RentalOffer:
    """Publish a rental listing for one day's availability window."""
    owner = await require_verified_operator(db, owner_id)
    start, end = slot_bounds(data.available_from, data.available_until)
    if end == start:
        raise ValidationError("Availability window must not be empty")
    if end - start < data.minimum_hours * 60:
        raise ValidationError(
            "Availability window is shorter than the minimum rental duration",
            minimum_hours=data.minimum_hours,
        )

    offer = RentalOffer(
        owner_id=owner.id,
        owner_name=owner.name,
        pickup_address=data.pickup.address,
        pickup_lat=data.pickup.lat,
        pickup_lng=data.pickup.lng,
        city=data.city,
        date=data.date,
        available_from=format_minutes(start),
        available_until=format_minutes(end),
        price_per_hour=data.price_per_hour,
        minimum_hours=data.minimum_hours,
        vehicle_type=data.vehicle.type,
        vehicle_brand=data.vehicle.brand,
        vehicle_number=data.vehicle.number,
        vehicle_seats=data.vehicle_seats,
        status=OfferStatus.PENDING,
        total_bookings=0,
        completed_count=0,
        cancelled_count=0,
        views=0,
        notes=data.notes,
        version=1,
    )
    db.add(offer)
    await db.flush()
    await db.refresh(offer)

    logger.info(
        "rental_offer_created",
        offer_id=offer.id,
        owner_id=owner_id,
        window=f"{offer.available_from}-{offer.available_until}",
    )
    return offer


async def get_pooling_offer(db: AsyncSession, offer_id: int, count_view: bool = False) -> PoolingOffer:
    if count_view:
        await db.execute(
            update(PoolingOffer)
            .where(PoolingOffer.id == offer_id)
            .values(views=PoolingOffer.views + 1)
            .execution_options(synchronize_session=False)
        )
    offer = await load_pooling_offer(db, offer_id)
    if not offer:
        raise NotFoundError("Pooling offer not found", offer_id=offer_id)
    return offer


async def get_rental_offer(db: AsyncSession, offer_id: int, count_view: bool = False) -> RentalOffer:
    if count_view:
        await db.execute(
            update(RentalOffer)
            .where(RentalOffer.id == offer_id)
            .values(views=RentalOffer.views + 1)
            .execution_options(synchronize_session=False)
        )
    offer = await load_rental_offer(db, offer_id)
    if not offer:
        raise NotFoundError("Rental offer not found", offer_id=offer_id)
    return offer


async def get_offer(db: AsyncSession, service_type: ServiceType, offer_id: int) -> Offer:
    if service_type == ServiceType.POOLING:
        return await get_pooling_offer(db, offer_id)
    return await get_rental_offer(db, offer_id)


def offer_operator_id(offer: Offer) -> int:
    return offer.driver_id if isinstance(offer, PoolingOffer) else offer.owner_id


async def list_pooling_offers(
    db: AsyncSession,
    day: Optional[date] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[PoolingOffer], int]:
    """Bookable pooling offers, soonest first."""
    query = select(PoolingOffer).where(
        PoolingOffer.status.in_((OfferStatus.PENDING, OfferStatus.ACTIVE)),
        PoolingOffer.available_seats > 0,
    )
    if day is not None:
        query = query.where(PoolingOffer.date == day)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query.order_by(PoolingOffer.date.asc(), PoolingOffer.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_rental_offers(
    db: AsyncSession,
    day: Optional[date] = None,
    city: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[RentalOffer], int]:
    query = select(RentalOffer).where(RentalOffer.status.in_((OfferStatus.PENDING, OfferStatus.ACTIVE)))
    if day is not None:
        query = query.where(RentalOffer.date == day)
    if city:
        query = query.where(func.lower(RentalOffer.city) == city.lower())

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query.order_by(RentalOffer.date.asc(), RentalOffer.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def cancel_offer(db: AsyncSession, service_type: ServiceType, offer_id: int, operator_id: int) -> Offer:
    """
    Withdraw an offer. Only its operator may do this, and not once the trip
    is completed. Bookings still holding a seat or slot keep their own state;
    the operator cancels them individually.
    """
    offer = await get_offer(db, service_type, offer_id)
    if offer_operator_id(offer) != operator_id:
        raise ConflictError("Only the offer's operator can cancel it", offer_id=offer_id)
    if offer.status == OfferStatus.COMPLETED:
        raise ConflictError("Completed offers cannot be cancelled", offer_id=offer_id)
    if offer.status == OfferStatus.CANCELLED:
        return offer

    model = PoolingOffer if service_type == ServiceType.POOLING else RentalOffer
    await db.execute(
        update(model)
        .where(model.id == offer_id, model.status != OfferStatus.COMPLETED)
        .values(status=OfferStatus.CANCELLED, version=model.version + 1)
        .execution_options(synchronize_session=False)
    )
    offer = await get_offer(db, service_type, offer_id)
    logger.info("offer_cancelled", service_type=service_type.value, offer_id=offer_id, operator_id=operator_id)
    return offer


async def available_time_slots(db: AsyncSession, offer_id: int) -> list[dict]:
    """
    Bookable [start, end) slots on a rental offer: every whole-hour start
    inside the window, for every whole-hour duration from minimum_hours up to
    the end of the window, minus anything overlapping an existing booking.
    """
    offer = await get_rental_offer(db, offer_id)
    if offer.status not in (OfferStatus.PENDING, OfferStatus.ACTIVE):
        return []

    window = slot_bounds(offer.available_from, offer.available_until)
    window_start, window_end = window
    taken = [slot_in_window(b.start_time, b.end_time, window) for b in await booked_slots(db, offer_id, offer.date)]

    slots = []
    start = window_start
    while start < window_end and len(slots) < MAX_TIME_SLOTS:
        hours = offer.minimum_hours
        while start + hours * 60 <= window_end and len(slots) < MAX_TIME_SLOTS:
            candidate = (start, start + hours * 60)
            if not any(intervals_overlap(candidate, other) for other in taken):
                slots.append({
                    "start_time": format_minutes(candidate[0]),
                    "end_time": format_minutes(candidate[1]),
                    "duration_hours": float(hours),
                })
            hours += 1
        start += 60
    return slots

