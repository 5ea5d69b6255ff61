"""
Closed status and category sets shared by models, schemas and services.
Stored in the database as their string values.
"""

import enum

from sqlalchemy import Enum as SAEnum


class OfferStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


class PassengerStatus(str, enum.Enum):
    WAITING = "waiting"
    GOT_IN = "got_in"
    GOT_OUT = "got_out"


class SettlementStatus(str, enum.Enum):
    PENDING = "pending"
    REQUESTED = "requested"
    APPROVED = "approved"
    SETTLED = "settled"
    REJECTED = "rejected"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    UPI = "upi"
    CARD = "card"
    WALLET = "wallet"
    NET_BANKING = "net_banking"
    OFFLINE_CASH = "offline_cash"

    @property
    def is_cash(self) -> bool:
        return self is PaymentMethod.OFFLINE_CASH


class ServiceType(str, enum.Enum):
    POOLING = "pooling"
    RENTAL = "rental"


class VehicleType(str, enum.Enum):
    CAR = "car"
    BIKE = "bike"


class OperatorRole(str, enum.Enum):
    DRIVER = "driver"
    OWNER = "owner"


class CancelledBy(str, enum.Enum):
    USER = "user"
    DRIVER = "driver"
    OWNER = "owner"
    ADMIN = "admin"


# Non-terminal booking states that hold a seat or slot
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
)

# Booking states a trip start moves to in_progress
STARTABLE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

BOOKABLE_OFFER_STATUSES = (OfferStatus.PENDING, OfferStatus.ACTIVE)


def enum_column(enum_cls: type[enum.Enum]) -> SAEnum:
    """VARCHAR-backed enum column storing member values, not names."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=True,
        length=20,
        name=f"{enum_cls.__name__.lower()}_enum",
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
