"""Initial schema: users with ledger, pooling/rental offers, participants, bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OFFER_STATUSES = ("pending", "active", "booked", "completed", "cancelled", "expired", "suspended")
BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
PASSENGER_STATUSES = ("waiting", "got_in", "got_out")
SETTLEMENT_STATUSES = ("pending", "requested", "approved", "settled", "rejected")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PAYMENT_METHODS = ("upi", "card", "wallet", "net_banking", "offline_cash")
SERVICE_TYPES = ("pooling", "rental")
VEHICLE_TYPES = ("car", "bike")
OPERATOR_ROLES = ("driver", "owner")
CANCELLED_BY = ("user", "driver", "owner", "admin")


def _enum(name: str, values: tuple) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=20)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("inflow_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("outflow_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("inflow_amount >= 0", name="check_inflow_non_negative"),
        sa.CheckConstraint("outflow_amount >= 0", name="check_outflow_non_negative"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_phone", "users", ["phone"], unique=True)

    # Pooling offers
    op.create_table(
        "pooling_offers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_name", sa.String(100), nullable=False),
        sa.Column("from_address", sa.String(255), nullable=False),
        sa.Column("from_lat", sa.Float(), nullable=False),
        sa.Column("from_lng", sa.Float(), nullable=False),
        sa.Column("to_address", sa.String(255), nullable=False),
        sa.Column("to_lat", sa.Float(), nullable=False),
        sa.Column("to_lng", sa.Float(), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(10), nullable=False),
        sa.Column("vehicle_type", _enum("vehicletype_enum", VEHICLE_TYPES), nullable=False),
        sa.Column("vehicle_brand", sa.String(50), nullable=False),
        sa.Column("vehicle_number", sa.String(20), nullable=False),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        sa.Column("status", _enum("offerstatus_enum", OFFER_STATUSES), nullable=False, server_default="pending"),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("booking_requests", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("available_seats >= 0", name="check_pooling_seats_non_negative"),
        sa.CheckConstraint("total_seats > 0", name="check_pooling_total_seats_positive"),
        sa.CheckConstraint("available_seats <= total_seats", name="check_pooling_available_lte_total"),
    )
    op.create_index("ix_pooling_offers_id", "pooling_offers", ["id"])
    op.create_index("ix_pooling_offers_driver_id", "pooling_offers", ["driver_id"])
    # Scheduler scan and supply signal both filter on status + date
    op.create_index("ix_pooling_offers_status_date", "pooling_offers", ["status", "date"])

    # One row per committed pooling rider
    op.create_table(
        "offer_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "offer_id",
            sa.Integer(),
            sa.ForeignKey("pooling_offers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rider_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("offer_id", "rider_id", name="uq_offer_participant"),
    )
    op.create_index("ix_offer_participants_offer_id", "offer_participants", ["offer_id"])

    # Rental offers
    op.create_table(
        "rental_offers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_name", sa.String(100), nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float(), nullable=False),
        sa.Column("pickup_lng", sa.Float(), nullable=False),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("available_from", sa.String(10), nullable=False),
        sa.Column("available_until", sa.String(10), nullable=False),
        sa.Column("price_per_hour", sa.Numeric(10, 2), nullable=False),
        sa.Column("minimum_hours", sa.Integer(), nullable=False, server_default=sa.text("2")),
        sa.Column("vehicle_type", _enum("vehicletype_enum", VEHICLE_TYPES), nullable=False),
        sa.Column("vehicle_brand", sa.String(50), nullable=False),
        sa.Column("vehicle_number", sa.String(20), nullable=False),
        sa.Column("vehicle_seats", sa.Integer(), nullable=False, server_default=sa.text("4")),
        sa.Column("status", _enum("offerstatus_enum", OFFER_STATUSES), nullable=False, server_default="pending"),
        sa.Column("total_bookings", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancelled_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("minimum_hours >= 1", name="check_rental_minimum_hours"),
        sa.CheckConstraint("price_per_hour >= 0", name="check_rental_price_non_negative"),
    )
    op.create_index("ix_rental_offers_id", "rental_offers", ["id"])
    op.create_index("ix_rental_offers_owner_id", "rental_offers", ["owner_id"])
    op.create_index("ix_rental_offers_status_date", "rental_offers", ["status", "date"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_number", sa.String(32), nullable=False),
        sa.Column("rider_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("service_type", _enum("servicetype_enum", SERVICE_TYPES), nullable=False),
        sa.Column("pooling_offer_id", sa.Integer(), sa.ForeignKey("pooling_offers.id"), nullable=True),
        sa.Column("rental_offer_id", sa.Integer(), sa.ForeignKey("rental_offers.id"), nullable=True),
        sa.Column("from_address", sa.String(255), nullable=True),
        sa.Column("from_lat", sa.Float(), nullable=True),
        sa.Column("from_lng", sa.Float(), nullable=True),
        sa.Column("to_address", sa.String(255), nullable=True),
        sa.Column("to_lat", sa.Float(), nullable=True),
        sa.Column("to_lng", sa.Float(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(10), nullable=True),
        sa.Column("duration_hours", sa.Float(), nullable=True),
        sa.Column("start_time", sa.String(10), nullable=True),
        sa.Column("end_time", sa.String(10), nullable=True),
        sa.Column("operator_role", _enum("operatorrole_enum", OPERATOR_ROLES), nullable=False),
        sa.Column("operator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("operator_name", sa.String(100), nullable=False),
        sa.Column("vehicle_type", _enum("vehicletype_enum", VEHICLE_TYPES), nullable=False),
        sa.Column("vehicle_brand", sa.String(50), nullable=False),
        sa.Column("vehicle_number", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", _enum("paymentmethod_enum", PAYMENT_METHODS), nullable=False),
        sa.Column("payment_status", _enum("paymentstatus_enum", PAYMENT_STATUSES), nullable=False, server_default="pending"),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        sa.Column("status", _enum("bookingstatus_enum", BOOKING_STATUSES), nullable=False, server_default="pending"),
        sa.Column("passenger_status", _enum("passengerstatus_enum", PASSENGER_STATUSES), nullable=False, server_default="waiting"),
        sa.Column("passenger_code", sa.String(4), nullable=True),
        sa.Column("code_generated_at", sa.DateTime(), nullable=True),
        sa.Column(
            "settlement_status",
            _enum("settlementstatus_enum", SETTLEMENT_STATUSES),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("operator_settlement_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("settlement_requested_at", sa.DateTime(), nullable=True),
        sa.Column("settlement_approved_at", sa.DateTime(), nullable=True),
        sa.Column("settlement_rejected_reason", sa.String(500), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", _enum("cancelledby_enum", CANCELLED_BY), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("trip_started_at", sa.DateTime(), nullable=True),
        sa.Column("trip_completed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_number", name="uq_bookings_booking_number"),
        sa.CheckConstraint(
            "(pooling_offer_id IS NULL) <> (rental_offer_id IS NULL)",
            name="check_booking_single_offer",
        ),
        sa.CheckConstraint("amount >= 0 AND platform_fee >= 0", name="check_booking_amounts_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_rider_id", "bookings", ["rider_id"])
    op.create_index("ix_bookings_operator_id", "bookings", ["operator_id"])
    op.create_index("ix_bookings_pooling_offer_id", "bookings", ["pooling_offer_id"])
    op.create_index("ix_bookings_rental_offer_id", "bookings", ["rental_offer_id"])
    # "My active bookings" and the duplicate-booking guard
    op.create_index("ix_bookings_rider_status", "bookings", ["rider_id", "status"])
    # Admin settlement queue
    op.create_index("ix_bookings_settlement_status", "bookings", ["settlement_status"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("rental_offers")
    op.drop_table("offer_participants")
    op.drop_table("pooling_offers")
    op.drop_table("users")
