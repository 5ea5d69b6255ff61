"""
Contract the trip scheduler drives on every tick.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class TripAdvancer(ABC):

    @abstractmethod
    async def advance_due_trips(self, now: datetime) -> int:
        """
        Start every trip whose scheduled time has arrived.

        Returns:
            Number of offers advanced during this call
        """
        pass
