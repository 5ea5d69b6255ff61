"""
Booking model: a rider's commitment against exactly one offer.

Key design decisions:
- Exactly one of pooling_offer_id / rental_offer_id is set (CHECK constraint)
- amount / platform_fee / total_amount are a frozen price snapshot written
  once at creation; total_amount == amount + platform_fee
- The driver (pooling) or owner (rental) is a single TripOperator value
  instead of two optional shapes
- Passenger boarding status is an axis orthogonal to the trip status
"""

from dataclasses import dataclass

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import composite

from ridemarket.db.base import Base, TimestampMixin
from ridemarket.models.enums import (
    BookingStatus,
    CancelledBy,
    OperatorRole,
    PassengerStatus,
    PaymentMethod,
    PaymentStatus,
    ServiceType,
    SettlementStatus,
    VehicleType,
    enum_column,
)


@dataclass
class TripOperator:
    """The user running the trip: a pooling driver or a rental owner."""
    role: OperatorRole
    user_id: int
    name: str


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(32), unique=True, nullable=False)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_type = Column(enum_column(ServiceType), nullable=False)
    pooling_offer_id = Column(Integer, ForeignKey("pooling_offers.id"), nullable=True, index=True)
    rental_offer_id = Column(Integer, ForeignKey("rental_offers.id"), nullable=True, index=True)

    # Route snapshot; for pooling this may be a sub-segment of the offer route
    from_address = Column(String(255), nullable=True)
    from_lat = Column(Float, nullable=True)
    from_lng = Column(Float, nullable=True)
    to_address = Column(String(255), nullable=True)
    to_lat = Column(Float, nullable=True)
    to_lng = Column(Float, nullable=True)

    date = Column(Date, nullable=False)
    time = Column(String(10), nullable=True)
    duration_hours = Column(Float, nullable=True)
    start_time = Column(String(10), nullable=True)
    end_time = Column(String(10), nullable=True)

    operator_role = Column(enum_column(OperatorRole), nullable=False)
    operator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    operator_name = Column(String(100), nullable=False)
    operator = composite(TripOperator, operator_role, operator_id, operator_name)

    vehicle_type = Column(enum_column(VehicleType), nullable=False)
    vehicle_brand = Column(String(50), nullable=False)
    vehicle_number = Column(String(20), nullable=False)

    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    platform_fee = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    total_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)

    payment_method = Column(enum_column(PaymentMethod), nullable=False)
    payment_status = Column(enum_column(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_reference = Column(String(100), nullable=True)

    status = Column(enum_column(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    passenger_status = Column(enum_column(PassengerStatus), nullable=False, default=PassengerStatus.WAITING)
    passenger_code = Column(String(4), nullable=True)
    code_generated_at = Column(DateTime, nullable=True)

    settlement_status = Column(enum_column(SettlementStatus), nullable=False, default=SettlementStatus.PENDING)
    operator_settlement_amount = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    settlement_requested_at = Column(DateTime, nullable=True)
    settlement_approved_at = Column(DateTime, nullable=True)
    settlement_rejected_reason = Column(String(500), nullable=True)

    cancellation_reason = Column(String(500), nullable=True)
    cancelled_by = Column(enum_column(CancelledBy), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    trip_started_at = Column(DateTime, nullable=True)
    trip_completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(pooling_offer_id IS NULL) <> (rental_offer_id IS NULL)",
            name="check_booking_single_offer",
        ),
        CheckConstraint("amount >= 0 AND platform_fee >= 0", name="check_booking_amounts_non_negative"),
        Index("ix_bookings_rider_status", "rider_id", "status"),
        Index("ix_bookings_settlement_status", "settlement_status"),
    )

    @property
    def offer_id(self) -> int:
        return self.pooling_offer_id if self.service_type == ServiceType.POOLING else self.rental_offer_id

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, rider={self.rider_id}, status={self.status})>"
