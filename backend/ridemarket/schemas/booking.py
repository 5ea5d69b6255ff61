"""
Pydantic schemas for booking-related request/response validation.
"""

import datetime as dt
from typing import Optional
from pydantic import BaseModel, Field

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
)
from ridemarket.schemas.pricing import PassengerRouteIn, PrecomputedPrice


class PoolingBookingCreate(BaseModel):
    offer_id: int
    payment_method: PaymentMethod
    route: PassengerRouteIn
    price: Optional[PrecomputedPrice] = None


class RentalBookingCreate(BaseModel):
    offer_id: int
    payment_method: PaymentMethod
    duration_hours: Optional[float] = Field(None, gt=0, le=24)
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class BookingCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class TripOperatorResponse(BaseModel):
    role: OperatorRole
    user_id: int
    name: str

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    rider_id: int
    service_type: ServiceType
    pooling_offer_id: Optional[int]
    rental_offer_id: Optional[int]
    from_address: Optional[str]
    to_address: Optional[str]
    date: dt.date
    time: Optional[str]
    duration_hours: Optional[float]
    start_time: Optional[str]
    end_time: Optional[str]
    operator: TripOperatorResponse
    vehicle_type: VehicleType
    vehicle_brand: str
    vehicle_number: str
    amount: float
    platform_fee: float
    total_amount: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    status: BookingStatus
    passenger_status: PassengerStatus
    settlement_status: SettlementStatus
    operator_settlement_amount: Optional[float]
    cancellation_reason: Optional[str]
    cancelled_by: Optional[CancelledBy]
    cancelled_at: Optional[dt.datetime]
    trip_started_at: Optional[dt.datetime]
    trip_completed_at: Optional[dt.datetime]
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class PassengerCodeResponse(BaseModel):
    """Returned to the rider only; the operator must ask for the code."""
    booking_id: int
    passenger_status: PassengerStatus
    passenger_code: Optional[str]
    code_generated_at: Optional[dt.datetime]

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
