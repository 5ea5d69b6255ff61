"""
Optimistic admission strategy - no pre-check.
Relies entirely on the conditional seat UPDATE in the database.
"""

from ridemarket.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    No admission control - always admit.

    Use when:
    - Normal load, a handful of riders per offer
    - Simplicity preferred over fail-fast
    """

    async def admit(self, offer_id: int, seats: int = 1) -> bool:
        return True

    async def release(self, offer_id: int, seats: int = 1):
        pass

    async def sync(self, offer_id: int, available_seats: int):
        pass
