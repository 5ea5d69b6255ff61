"""
Pydantic schemas for pooling and rental offers.
"""

import datetime as dt
from typing import Optional
from pydantic import BaseModel, Field

from ridemarket.models.enums import OfferStatus, VehicleType


class Location(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class VehicleInfo(BaseModel):
    type: VehicleType
    brand: str = Field(..., min_length=1, max_length=50)
    number: str = Field(..., min_length=1, max_length=20)


class PoolingOfferCreate(BaseModel):
    from_location: Location
    to_location: Location
    distance_km: Optional[float] = Field(None, ge=0)
    date: dt.date
    time: str = Field(..., description='"HH:MM" or "h:MM AM/PM"')
    vehicle: VehicleInfo
    total_seats: int = Field(..., ge=1, le=8)
    notes: Optional[str] = Field(None, max_length=500)


class RentalOfferCreate(BaseModel):
    pickup: Location
    city: Optional[str] = Field(None, max_length=100)
    date: dt.date
    available_from: str
    available_until: str
    price_per_hour: float = Field(..., gt=0)
    minimum_hours: int = Field(default=2, ge=1, le=24)
    vehicle: VehicleInfo
    vehicle_seats: int = Field(default=4, ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=500)


class PoolingOfferResponse(BaseModel):
    id: int
    driver_id: int
    driver_name: str
    from_address: str
    from_lat: float
    from_lng: float
    to_address: str
    to_lat: float
    to_lng: float
    distance_km: Optional[float]
    date: dt.date
    time: str
    vehicle_type: VehicleType
    vehicle_brand: str
    vehicle_number: str
    total_seats: int
    available_seats: int
    status: OfferStatus
    views: int
    booking_requests: int
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class RentalOfferResponse(BaseModel):
    id: int
    owner_id: int
    owner_name: str
    pickup_address: str
    pickup_lat: float
    pickup_lng: float
    city: Optional[str]
    date: dt.date
    available_from: str
    available_until: str
    price_per_hour: float
    minimum_hours: int
    vehicle_type: VehicleType
    vehicle_brand: str
    vehicle_number: str
    vehicle_seats: int
    status: OfferStatus
    total_bookings: int
    completed_count: int
    cancelled_count: int
    views: int
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class TimeSlotResponse(BaseModel):
    start_time: str
    end_time: str
    duration_hours: float


class TimeSlotListResponse(BaseModel):
    offer_id: int
    date: dt.date
    slots: list[TimeSlotResponse]


class PoolingOfferListResponse(BaseModel):
    offers: list[PoolingOfferResponse]
    total: int
    page: int
    page_size: int


class RentalOfferListResponse(BaseModel):
    offers: list[RentalOfferResponse]
    total: int
    page: int
    page_size: int
