"""
Offer inventory contract.

Every method is a single atomic step against the offer row: implementations
must use conditional updates (or compare-and-set on a version) rather than
reading a value and writing it back.
"""

from abc import ABC, abstractmethod
from datetime import date


class OfferInventory(ABC):

    @abstractmethod
    async def reserve_seat(self, offer_id: int, rider_id: int):
        """
        Take one seat on a pooling offer for the rider.

        Raises:
            NotFoundError: offer does not exist
            ConflictError: offer not bookable or no seats left
        """
        pass

    @abstractmethod
    async def release_seat(self, offer_id: int, rider_id: int) -> None:
        """Give the rider's seat back. Never regresses the offer status."""
        pass

    @abstractmethod
    async def reserve_time_slot(self, offer_id: int, day: date, start_time: str, end_time: str):
        """
        Claim [start_time, end_time) on a rental offer.

        Raises:
            NotFoundError: offer does not exist
            ConflictError: outside the availability window or overlapping
        """
        pass

    @abstractmethod
    async def register_rental_booking(self, offer_id: int) -> None:
        """Count a rental booking against the offer, activating it if pending."""
        pass

    @abstractmethod
    async def register_rental_cancellation(self, offer_id: int) -> None:
        pass
