"""
SQL implementation of the operator settlement ledger.

Every method is one UPDATE whose SET clause is computed from the current
row inside the database, so two completions settling against the same
operator at the same time never overwrite each other. Nothing is read into
Python and written back.
"""

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import NotFoundError, ValidationError
from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import record_ledger_update
from ridemarket.models.user import User
from ridemarket.services.interfaces.ledger import UserLedger

logger = get_logger(__name__)


def _money(amount: float) -> float:
    amount = round(float(amount), 2)
    if amount < 0:
        raise ValidationError("Ledger amounts must be non-negative", amount=amount)
    return amount


class SqlUserLedger(UserLedger):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _apply(self, user_id: int, operation: str, **values) -> None:
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("User not found", user_id=user_id)
        record_ledger_update(operation)

    async def increment_inflow(self, user_id: int, amount: float) -> None:
        amount = _money(amount)
        await self._apply(user_id, "inflow_inc", inflow_amount=User.inflow_amount + amount)
        logger.info("ledger_inflow_incremented", user_id=user_id, amount=amount)

    async def increment_outflow(self, user_id: int, amount: float) -> None:
        amount = _money(amount)
        await self._apply(user_id, "outflow_inc", outflow_amount=User.outflow_amount + amount)
        logger.info("ledger_outflow_incremented", user_id=user_id, amount=amount)

    async def decrement_outflow(self, user_id: int, amount: float) -> None:
        amount = _money(amount)
        await self._apply(
            user_id,
            "outflow_dec",
            outflow_amount=case(
                (User.outflow_amount >= amount, User.outflow_amount - amount),
                else_=0,
            ),
        )
        logger.info("ledger_outflow_decremented", user_id=user_id, amount=amount)

    async def apply_electronic_payment(self, user_id: int, amount: float) -> None:
        amount = _money(amount)
        # Both SET expressions read the pre-update outflow
        await self._apply(
            user_id,
            "electronic",
            outflow_amount=case(
                (User.outflow_amount >= amount, User.outflow_amount - amount),
                else_=0,
            ),
            inflow_amount=User.inflow_amount + case(
                (User.outflow_amount < amount, amount - User.outflow_amount),
                else_=0,
            ),
        )
        logger.info("ledger_electronic_payment_applied", user_id=user_id, amount=amount)
