"""
Admission control service for high-contention pooling offers.
Implements AdmissionStrategy interface using Redis.

Circuit Breaker Pattern:
  On Redis failure, the system "fails open" (admits all requests).
  This prevents Redis outages from blocking all bookings.
  Database remains authoritative - Redis is advisory only.

  Tradeoff: During Redis outage, system reverts to the plain conditional
  seat UPDATE. This is acceptable because:
  - Temporary degradation better than total outage
  - The WHERE available_seats > 0 guard and CHECK constraints still prevent overbooking
  - Redis failures should be rare and monitored
"""

import os

from redis.exceptions import RedisError

from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import redis_circuit_breaker_open, redis_connection_errors
from ridemarket.infrastructure.redis_client import get_redis
from ridemarket.services.interfaces.admission import AdmissionStrategy

logger = get_logger(__name__)

# Load Lua script
SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '../infrastructure/admission_lua.lua')
with open(SCRIPT_PATH, 'r') as f:
    ADMISSION_SCRIPT = f.read()


class RedisAdmission(AdmissionStrategy):
    """
    Redis-based admission control.

    Strategy: Fail fast at Redis gate before hitting database.
    Prevents a burst of riders on a sold-out offer from all reaching the
    seat UPDATE.

    Use when:
    - Many riders race for the same few seats
    - Need to protect database from overload
    """

    def __init__(self, client=None):
        self.redis = client if client is not None else get_redis()
        self.script = self.redis.register_script(ADMISSION_SCRIPT)

    def _on_error(self, operation: str, offer_id: int, exc: Exception):
        redis_connection_errors.inc()
        redis_circuit_breaker_open.set(1)
        logger.warning("admission_redis_error", operation=operation, offer_id=offer_id, error=str(exc))

    async def admit(self, offer_id: int, seats: int = 1) -> bool:
        """
        Check if request should be admitted.

        Returns:
            True if admitted (proceed to DB)
            False if rejected (fail fast)
        """
        seats_key = f"seats:{offer_id}"
        reserved_key = f"reserved:{offer_id}"

        try:
            result = await self.script(keys=[seats_key, reserved_key], args=[seats])
        except RedisError as exc:
            # Circuit breaker: On Redis failure, fail open (admit all)
            self._on_error("admit", offer_id, exc)
            return True
        redis_circuit_breaker_open.set(0)
        return bool(result)

    async def release(self, offer_id: int, seats: int = 1):
        """Release admitted seats once the database has decided."""
        reserved_key = f"reserved:{offer_id}"
        try:
            remaining = await self.redis.decrby(reserved_key, seats)
            if remaining < 0:
                await self.redis.set(reserved_key, 0)
        except RedisError as exc:
            self._on_error("release", offer_id, exc)

    async def sync(self, offer_id: int, available_seats: int):
        """Sync Redis counter with DB (reconciliation)."""
        seats_key = f"seats:{offer_id}"
        try:
            await self.redis.set(seats_key, available_seats)
        except RedisError as exc:
            self._on_error("sync", offer_id, exc)
