"""
Offer models: a driver's pooling trip and an owner's rental listing.

Key design decisions:
- `available_seats` is denormalized and only changed by conditional UPDATEs
  (WHERE available_seats > 0), never by read-modify-write
- `version` is bumped on every inventory change; rental slot claims
  compare-and-set on it so overlapping requests serialize per offer
- Committed pooling riders live in `offer_participants`, one row per rider
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ridemarket.db.base import Base, TimestampMixin
from ridemarket.models.enums import OfferStatus, VehicleType, enum_column


class PoolingOffer(Base, TimestampMixin):
    __tablename__ = "pooling_offers"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    driver_name = Column(String(100), nullable=False)

    from_address = Column(String(255), nullable=False)
    from_lat = Column(Float, nullable=False)
    from_lng = Column(Float, nullable=False)
    to_address = Column(String(255), nullable=False)
    to_lat = Column(Float, nullable=False)
    to_lng = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=True)

    date = Column(Date, nullable=False)
    time = Column(String(10), nullable=False)

    vehicle_type = Column(enum_column(VehicleType), nullable=False)
    vehicle_brand = Column(String(50), nullable=False)
    vehicle_number = Column(String(20), nullable=False)

    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    status = Column(enum_column(OfferStatus), nullable=False, default=OfferStatus.PENDING)
    views = Column(Integer, nullable=False, default=0)
    booking_requests = Column(Integer, nullable=False, default=0)
    notes = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    participants = relationship(
        "OfferParticipant",
        back_populates="offer",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_pooling_seats_non_negative"),
        CheckConstraint("total_seats > 0", name="check_pooling_total_seats_positive"),
        CheckConstraint("available_seats <= total_seats", name="check_pooling_available_lte_total"),
        # Scheduler scan and supply signal both filter on status + date
        Index("ix_pooling_offers_status_date", "status", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<PoolingOffer(id={self.id}, status={self.status}, "
            f"seats={self.available_seats}/{self.total_seats})>"
        )


class OfferParticipant(Base, TimestampMixin):
    __tablename__ = "offer_participants"

    id = Column(Integer, primary_key=True)
    offer_id = Column(Integer, ForeignKey("pooling_offers.id", ondelete="CASCADE"), nullable=False, index=True)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    offer = relationship("PoolingOffer", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("offer_id", "rider_id", name="uq_offer_participant"),
    )


class RentalOffer(Base, TimestampMixin):
    __tablename__ = "rental_offers"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    owner_name = Column(String(100), nullable=False)

    pickup_address = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    city = Column(String(100), nullable=True)

    date = Column(Date, nullable=False)
    available_from = Column(String(10), nullable=False)
    available_until = Column(String(10), nullable=False)
    price_per_hour = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    minimum_hours = Column(Integer, nullable=False, default=2)

    vehicle_type = Column(enum_column(VehicleType), nullable=False)
    vehicle_brand = Column(String(50), nullable=False)
    vehicle_number = Column(String(20), nullable=False)
    vehicle_seats = Column(Integer, nullable=False, default=4)

    status = Column(enum_column(OfferStatus), nullable=False, default=OfferStatus.PENDING)
    total_bookings = Column(Integer, nullable=False, default=0)
    completed_count = Column(Integer, nullable=False, default=0)
    cancelled_count = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    notes = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("minimum_hours >= 1", name="check_rental_minimum_hours"),
        CheckConstraint("price_per_hour >= 0", name="check_rental_price_non_negative"),
        Index("ix_rental_offers_status_date", "status", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<RentalOffer(id={self.id}, status={self.status}, "
            f"window={self.available_from}-{self.available_until})>"
        )
