"""
Per-user settlement ledger contract.

Each operation is one atomic increment/decrement on the user's row, so
concurrent updates to the same user never lose writes.
"""

from abc import ABC, abstractmethod


class UserLedger(ABC):

    @abstractmethod
    async def increment_inflow(self, user_id: int, amount: float) -> None:
        pass

    @abstractmethod
    async def increment_outflow(self, user_id: int, amount: float) -> None:
        pass

    @abstractmethod
    async def decrement_outflow(self, user_id: int, amount: float) -> None:
        """Reduce outflow by amount, clamped at zero."""
        pass

    @abstractmethod
    async def apply_electronic_payment(self, user_id: int, amount: float) -> None:
        """
        Offset outstanding outflow with an electronic payment and credit the
        remainder to inflow, as one update:
            outflow' = max(outflow - amount, 0)
            inflow'  = inflow + max(amount - outflow, 0)
        """
        pass
