"""
Tests for the pooling price formula, rental pricing and the supply signal.
"""

import pytest

from ridemarket.core.exceptions import ValidationError
from ridemarket.models.enums import OfferStatus, VehicleType
from ridemarket.services.pricing_service import (
    PassengerRoute,
    calculate_price,
    count_competing_offers,
    quote_pooling_price,
    rental_price,
    validate_precomputed_price,
)


def test_daytime_car_ride_with_high_supply():
    """10 km by car at 10:00 with 5 competing offers totals 80.96."""
    price = calculate_price(distance_km=10, vehicle_type=VehicleType.CAR, offer_hour=10, competing_offers=5)

    assert price.rate_per_km == 8
    assert price.base_price == pytest.approx(80.0)
    assert price.time_multiplier == 1.0
    assert price.time_label == "Day Time"
    assert price.supply_multiplier == 0.92
    assert price.supply_label == "High Supply (-8%)"
    assert price.final_price == pytest.approx(73.6)
    assert price.platform_fee == pytest.approx(7.36)
    assert price.total_amount == pytest.approx(80.96)


@pytest.mark.parametrize("hour", [22, 23, 0, 3, 5])
def test_night_multiplier_applies_between_22_and_6(hour):
    price = calculate_price(distance_km=10, vehicle_type=VehicleType.CAR, offer_hour=hour, competing_offers=3)
    assert price.time_multiplier == 1.3
    assert price.time_label == "Night Time (+30%)"
    assert price.final_price == pytest.approx(104.0)
    assert price.time_charge == pytest.approx(24.0)


@pytest.mark.parametrize("hour", [6, 12, 21])
def test_no_night_multiplier_during_the_day(hour):
    price = calculate_price(distance_km=10, vehicle_type=VehicleType.CAR, offer_hour=hour, competing_offers=3)
    assert price.time_multiplier == 1.0
    assert price.final_price == pytest.approx(80.0)


@pytest.mark.parametrize(
    "competing, multiplier",
    [(0, 1.25), (1, 1.25), (2, 1.0), (4, 1.0), (5, 0.92), (12, 0.92)],
)
def test_supply_multiplier_thresholds(competing, multiplier):
    price = calculate_price(distance_km=10, vehicle_type=VehicleType.BIKE, offer_hour=10, competing_offers=competing)
    assert price.supply_multiplier == multiplier
    assert price.final_price == pytest.approx(round(50 * multiplier, 2))


def test_platform_fee_has_a_minimum_of_five():
    """1 km by bike with low supply: 6.25, so the 10% fee is raised to 5."""
    price = calculate_price(distance_km=1, vehicle_type=VehicleType.BIKE, offer_hour=10, competing_offers=0)
    assert price.final_price == pytest.approx(6.25)
    assert price.platform_fee == 5
    assert price.total_amount == pytest.approx(11.25)


def test_total_is_sum_of_rounded_parts():
    price = calculate_price(distance_km=7.333, vehicle_type=VehicleType.CAR, offer_hour=23, competing_offers=3)
    assert price.total_amount == pytest.approx(round(price.final_price + price.platform_fee, 2))
    assert price.platform_fee == pytest.approx(max(round(price.final_price * 0.10, 2), 5))


def test_invalid_price_inputs_are_rejected():
    with pytest.raises(ValidationError):
        calculate_price(distance_km=-1, vehicle_type=VehicleType.CAR, offer_hour=10, competing_offers=0)
    with pytest.raises(ValidationError):
        calculate_price(distance_km=1, vehicle_type=VehicleType.CAR, offer_hour=24, competing_offers=0)


def test_rental_price_uses_the_same_fee_rule():
    assert rental_price(100, 2) == (200.0, 20.0, 220.0)
    assert rental_price(20, 2) == (40.0, 5.0, 45.0)
    with pytest.raises(ValidationError):
        rental_price(100, 0)


def test_precomputed_price_must_add_up():
    validate_precomputed_price(73.6, 7.36, 80.96)
    with pytest.raises(ValidationError):
        validate_precomputed_price(73.6, 7.36, 90.0)
    with pytest.raises(ValidationError):
        validate_precomputed_price(-1, 5, 4)


@pytest.mark.asyncio
async def test_competing_offers_use_bounding_box_of_open_offers(db_session, driver, make_pooling_offer):
    """Only other open offers with seats whose box holds both passenger points count."""
    own = await make_pooling_offer(driver)
    for _ in range(4):
        await make_pooling_offer(driver)
    await make_pooling_offer(driver, status=OfferStatus.BOOKED, total_seats=2, available_seats=1)
    await make_pooling_offer(driver, status=OfferStatus.CANCELLED)
    await make_pooling_offer(driver, available_seats=0)
    await make_pooling_offer(driver, from_lat=28.50, from_lng=77.10, to_lat=28.70, to_lng=77.30)

    route = PassengerRoute(from_lat=12.95, from_lng=77.55, to_lat=13.05, to_lng=77.65)
    assert await count_competing_offers(db_session, own.id, route) == 5

    # A passenger point outside every box matches nothing
    outside = PassengerRoute(from_lat=12.95, from_lng=77.55, to_lat=13.20, to_lng=77.65)
    assert await count_competing_offers(db_session, own.id, outside) == 0


@pytest.mark.asyncio
async def test_quote_uses_distance_departure_hour_and_supply(db_session, driver, make_pooling_offer):
    offer = await make_pooling_offer(driver, time="11:30 PM", vehicle_type=VehicleType.BIKE)
    route = PassengerRoute(from_lat=12.95, from_lng=77.55, to_lat=13.05, to_lng=77.65)

    quote = await quote_pooling_price(db_session, offer, route)

    assert quote.time_multiplier == 1.3
    assert quote.rate_per_km == 5
    assert quote.competing_offers == 0
    assert quote.supply_multiplier == 1.25
    assert 15 < quote.distance_km < 16
    assert quote.total_amount == pytest.approx(round(quote.final_price + quote.platform_fee, 2))
