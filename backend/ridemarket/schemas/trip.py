"""
Pydantic schemas for trip lifecycle actions.
"""

import datetime as dt
from pydantic import BaseModel, Field

from ridemarket.models.enums import OfferStatus, ServiceType


class CodeVerification(BaseModel):
    code: str = Field(..., description="4-digit code shown to the passenger at drop-off")


class TripActionResponse(BaseModel):
    service_type: ServiceType
    offer_id: int
    offer_status: OfferStatus
    bookings_updated: int
    trip_started_at: dt.datetime | None = None

    model_config = {"from_attributes": True}
