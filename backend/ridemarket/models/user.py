"""
User model carrying the operator settlement ledger.

Key design decisions:
- inflow_amount: money the platform owes the user from electronic payments
- outflow_amount: platform fees the user owes from cash trips
- Both are only changed by single-statement SQL increments (see ledger_service)
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Numeric, String

from ridemarket.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), unique=True, index=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    inflow_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    outflow_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("inflow_amount >= 0", name="check_inflow_non_negative"),
        CheckConstraint("outflow_amount >= 0", name="check_outflow_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, inflow={self.inflow_amount}, outflow={self.outflow_amount})>"
