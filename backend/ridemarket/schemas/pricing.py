"""
Pydantic schemas for price quotes.
"""

from typing import Optional
from pydantic import BaseModel, Field


class PassengerRouteIn(BaseModel):
    from_address: Optional[str] = Field(None, max_length=255)
    from_lat: float = Field(..., ge=-90, le=90)
    from_lng: float = Field(..., ge=-180, le=180)
    to_address: Optional[str] = Field(None, max_length=255)
    to_lat: float = Field(..., ge=-90, le=90)
    to_lng: float = Field(..., ge=-180, le=180)


class PrecomputedPrice(BaseModel):
    final_price: float = Field(..., ge=0)
    platform_fee: float = Field(..., ge=0)
    total_amount: float = Field(..., ge=0)


class PriceBreakdownResponse(BaseModel):
    distance_km: float
    rate_per_km: float
    base_price: float
    time_multiplier: float
    time_label: str
    time_charge: float
    competing_offers: int
    supply_multiplier: float
    supply_label: str
    supply_adjustment: float
    final_price: float
    platform_fee: float
    total_amount: float

    model_config = {"from_attributes": True}
