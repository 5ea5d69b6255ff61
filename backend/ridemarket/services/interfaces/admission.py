"""
Admission control strategy interface.
Allows swapping between a pass-through gate and a Redis fail-fast gate in
front of pooling seat reservation.
"""

from abc import ABC, abstractmethod


class AdmissionStrategy(ABC):
    """
    Interface for admission control strategies.

    Implementations:
    - OptimisticAdmission: No pre-check, rely on the conditional seat UPDATE
    - RedisAdmission: Fast fail-fast check in Redis before the database
    """

    @abstractmethod
    async def admit(self, offer_id: int, seats: int = 1) -> bool:
        """
        Check if a booking request for a pooling offer should be admitted.

        Returns:
            True if admitted (proceed to DB)
            False if rejected (fail fast)
        """
        pass

    @abstractmethod
    async def release(self, offer_id: int, seats: int = 1):
        """Release admitted seats (on booking failure or cancellation)."""
        pass

    @abstractmethod
    async def sync(self, offer_id: int, available_seats: int):
        """Reconcile admission state with the seat count from the database."""
        pass
