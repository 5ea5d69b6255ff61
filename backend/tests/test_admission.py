"""
Tests for the Redis admission gate in front of pooling seat reservations.

fakeredis runs the real Lua gate; BrokenRedis stands in for an outage.
"""

import fakeredis
import pytest
from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from ridemarket.core.exceptions import ConflictError
from ridemarket.models.enums import PaymentMethod
from ridemarket.schemas.booking import PoolingBookingCreate
from ridemarket.services.admission_service import RedisAdmission
from ridemarket.services.booking_service import create_pooling_booking
from ridemarket.services.inventory_service import load_pooling_offer

ROUTE = {"from_lat": 12.95, "from_lng": 77.55, "to_lat": 13.05, "to_lng": 77.65}


class BrokenRedis:
    """Every command fails the way a dropped connection does."""

    def register_script(self, script):
        async def run(keys=None, args=None):
            raise RedisConnectionError("Connection refused")

        return run

    async def decrby(self, key, amount):
        raise RedisConnectionError("Connection refused")

    async def set(self, key, value):
        raise RedisConnectionError("Connection refused")


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


def _breaker_state() -> float:
    return REGISTRY.get_sample_value("redis_circuit_breaker_open")


@pytest.mark.asyncio
async def test_gate_rejects_once_admitted_requests_fill_the_seats(redis_client):
    gate = RedisAdmission(redis_client)
    await gate.sync(7, 2)

    assert await gate.admit(7) is True
    assert await gate.admit(7) is True
    assert await gate.admit(7) is False
    assert await redis_client.get("reserved:7") == "2"

    # A settled request frees its place in the gate
    await gate.release(7)
    assert await gate.admit(7) is True


@pytest.mark.asyncio
async def test_unknown_offer_is_left_to_the_database(redis_client):
    assert await RedisAdmission(redis_client).admit(404) is True
    assert await redis_client.get("reserved:404") is None


@pytest.mark.asyncio
async def test_release_never_leaves_a_negative_reservation(redis_client):
    gate = RedisAdmission(redis_client)
    await gate.release(9, seats=2)
    assert await redis_client.get("reserved:9") == "0"


@pytest.mark.asyncio
async def test_redis_outage_fails_open(redis_client):
    broken = RedisAdmission(BrokenRedis())

    assert await broken.admit(3) is True
    assert _breaker_state() == 1

    # Neither call raises into the booking path
    await broken.release(3)
    await broken.sync(3, 1)

    await RedisAdmission(redis_client).admit(3)
    assert _breaker_state() == 0


@pytest.mark.asyncio
async def test_sold_out_gate_turns_riders_away_before_the_seat_update(
    db_session, redis_client, driver, rider, make_pooling_offer
):
    offer = await make_pooling_offer(driver)
    gate = RedisAdmission(redis_client)
    await gate.sync(offer.id, 0)

    with pytest.raises(ConflictError):
        await create_pooling_booking(
            db_session,
            rider.id,
            PoolingBookingCreate(offer_id=offer.id, payment_method=PaymentMethod.UPI, route=ROUTE),
            admission=gate,
        )

    offer = await load_pooling_offer(db_session, offer.id)
    assert offer.available_seats == offer.total_seats


@pytest.mark.asyncio
async def test_booking_syncs_the_gate_with_remaining_seats(
    db_session, redis_client, driver, rider, make_pooling_offer
):
    offer = await make_pooling_offer(driver, total_seats=3)
    gate = RedisAdmission(redis_client)
    await gate.sync(offer.id, 3)

    await create_pooling_booking(
        db_session,
        rider.id,
        PoolingBookingCreate(offer_id=offer.id, payment_method=PaymentMethod.UPI, route=ROUTE),
        admission=gate,
    )

    assert await redis_client.get(f"seats:{offer.id}") == "2"
    assert await redis_client.get(f"reserved:{offer.id}") == "0"
