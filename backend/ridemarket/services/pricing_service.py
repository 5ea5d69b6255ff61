"""
Dynamic pricing for pooling rides and hourly rentals.

Pooling price:
    base   = distance_km * rate_per_km          (car 8/km, bike 5/km)
    final  = base * time_multiplier * supply_multiplier
    fee    = max(final * 10%, 5)
    total  = final + fee

The time multiplier is a night premium for offers departing in [22:00, 06:00).
The supply multiplier looks at how many other open offers could carry the
same passenger. "Could carry" is an axis-aligned bounding-box test on the
offer endpoints (see core.geo.route_within_bounds): a cheap approximation of
route overlap, kept for price compatibility, not a geometric guarantee.

Money is rounded to 2 decimals at each stage that is shown to the user and
the total is the sum of the rounded final price and the rounded fee, so a
stored snapshot always satisfies total_amount == amount + platform_fee.
"""

from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ValidationError
from ridemarket.core.geo import haversine_km, route_within_bounds
from ridemarket.core.logging import get_logger
from ridemarket.core.timeutils import parse_clock
from ridemarket.models.enums import OfferStatus, VehicleType
from ridemarket.models.offer import PoolingOffer

logger = get_logger(__name__)

RATE_PER_KM = {
    VehicleType.CAR: 8.0,
    VehicleType.BIKE: 5.0,
}

NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 6
NIGHT_MULTIPLIER = 1.3
DAY_MULTIPLIER = 1.0

HIGH_SUPPLY_THRESHOLD = 5
LOW_SUPPLY_THRESHOLD = 2
HIGH_SUPPLY_MULTIPLIER = 0.92
NORMAL_SUPPLY_MULTIPLIER = 1.0
LOW_SUPPLY_MULTIPLIER = 1.25

PLATFORM_FEE_RATE = 0.10
MIN_PLATFORM_FEE = 5.0

SUPPLY_OFFER_STATUSES = (OfferStatus.ACTIVE, OfferStatus.PENDING, OfferStatus.BOOKED)


@dataclass(frozen=True)
class PassengerRoute:
    from_lat: float
    from_lng: float
    to_lat: float
    to_lng: float
    from_address: Optional[str] = None
    to_address: Optional[str] = None


@dataclass(frozen=True)
class PriceBreakdown:
    distance_km: float
    rate_per_km: float
    base_price: float
    time_multiplier: float
    time_label: str
    time_charge: float
    competing_offers: int
    supply_multiplier: float
    supply_label: str
    supply_adjustment: float
    final_price: float
    platform_fee: float
    total_amount: float

    def as_dict(self) -> dict:
        return asdict(self)


def _round(value: float) -> float:
    return round(value, 2)


def platform_fee_for(amount: float) -> float:
    return _round(max(amount * PLATFORM_FEE_RATE, MIN_PLATFORM_FEE))


def is_night_hour(hour: int) -> bool:
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def supply_multiplier_for(competing_offers: int) -> tuple[float, str]:
    if competing_offers >= HIGH_SUPPLY_THRESHOLD:
        return HIGH_SUPPLY_MULTIPLIER, "High Supply (-8%)"
    if competing_offers < LOW_SUPPLY_THRESHOLD:
        return LOW_SUPPLY_MULTIPLIER, "Low Supply (+25%)"
    return NORMAL_SUPPLY_MULTIPLIER, "Normal Supply"


def calculate_price(
    distance_km: float,
    vehicle_type: VehicleType,
    offer_hour: int,
    competing_offers: int,
) -> PriceBreakdown:
    """
    Price a pooling ride. Pure function: every input is already resolved.

    Args:
        distance_km: Passenger route length
        vehicle_type: Offer vehicle (car or bike)
        offer_hour: Offer departure hour in local time (0-23)
        competing_offers: Other open offers covering the passenger's route
    """
    if distance_km < 0:
        raise ValidationError("Distance must be non-negative", distance_km=distance_km)
    if not 0 <= offer_hour <= 23:
        raise ValidationError("Offer hour must be between 0 and 23", offer_hour=offer_hour)

    rate = RATE_PER_KM[VehicleType(vehicle_type)]
    base = distance_km * rate

    if is_night_hour(offer_hour):
        time_multiplier, time_label = NIGHT_MULTIPLIER, "Night Time (+30%)"
    else:
        time_multiplier, time_label = DAY_MULTIPLIER, "Day Time"

    supply_multiplier, supply_label = supply_multiplier_for(competing_offers)

    after_time = base * time_multiplier
    final = _round(after_time * supply_multiplier)
    fee = platform_fee_for(final)

    return PriceBreakdown(
        distance_km=_round(distance_km),
        rate_per_km=rate,
        base_price=_round(base),
        time_multiplier=time_multiplier,
        time_label=time_label,
        time_charge=_round(after_time - base),
        competing_offers=competing_offers,
        supply_multiplier=supply_multiplier,
        supply_label=supply_label,
        supply_adjustment=_round(final - after_time),
        final_price=final,
        platform_fee=fee,
        total_amount=_round(final + fee),
    )


def rental_price(price_per_hour: float, duration_hours: float) -> tuple[float, float, float]:
    """(amount, platform_fee, total_amount) for an hourly rental."""
    if duration_hours <= 0:
        raise ValidationError("Duration must be positive", duration=duration_hours)
    amount = _round(float(price_per_hour) * duration_hours)
    fee = platform_fee_for(amount)
    return amount, fee, _round(amount + fee)


def validate_precomputed_price(final_price: float, platform_fee: float, total_amount: float) -> None:
    """A client-supplied quote is accepted only if its parts add up."""
    if min(final_price, platform_fee, total_amount) < 0:
        raise ValidationError("Price components must be non-negative")
    if abs(_round(final_price + platform_fee) - _round(total_amount)) > 0.005:
        raise ValidationError(
            "Precomputed price is inconsistent: total must equal amount plus platform fee",
            final_price=final_price,
            platform_fee=platform_fee,
            total_amount=total_amount,
        )


async def count_competing_offers(db: AsyncSession, offer_id: int, route: PassengerRoute) -> int:
    """
    Other open offers with seats whose endpoint bounding box holds the passenger route.

    Approximate: a box around two endpoints is not a route corridor.
    """
    result = await db.execute(
        select(
            PoolingOffer.from_lat,
            PoolingOffer.from_lng,
            PoolingOffer.to_lat,
            PoolingOffer.to_lng,
        ).where(
            PoolingOffer.id != offer_id,
            PoolingOffer.status.in_(SUPPLY_OFFER_STATUSES),
            PoolingOffer.available_seats > 0,
        )
    )
    point_from = (route.from_lat, route.from_lng)
    point_to = (route.to_lat, route.to_lng)
    return sum(
        1
        for row in result.all()
        if route_within_bounds((row.from_lat, row.from_lng), (row.to_lat, row.to_lng), point_from, point_to)
    )


async def quote_pooling_price(db: AsyncSession, offer: PoolingOffer, route: PassengerRoute) -> PriceBreakdown:
    distance = haversine_km(route.from_lat, route.from_lng, route.to_lat, route.to_lng)
    competing = await count_competing_offers(db, offer.id, route)
    breakdown = calculate_price(
        distance_km=distance,
        vehicle_type=offer.vehicle_type,
        offer_hour=parse_clock(offer.time).hour,
        competing_offers=competing,
    )
    logger.info(
        "price_calculated",
        offer_id=offer.id,
        distance_km=breakdown.distance_km,
        time_multiplier=breakdown.time_multiplier,
        supply_multiplier=breakdown.supply_multiplier,
        final_price=breakdown.final_price,
        total_amount=breakdown.total_amount,
    )
    return breakdown
