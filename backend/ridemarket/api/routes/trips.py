"""
Trip lifecycle endpoints for operators: boarding, drop-off, completion codes,
and starting or ending a whole offer.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.api.dependencies import get_current_user_id
from ridemarket.db.session import get_db
from ridemarket.models.enums import ServiceType
from ridemarket.schemas.booking import BookingResponse
from ridemarket.schemas.trip import CodeVerification, TripActionResponse
from ridemarket.services.trip_service import (
    end_trip,
    mark_got_in,
    mark_got_out,
    start_trip,
    verify_code_and_complete,
)

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("/bookings/{booking_id}/got-in", response_model=BookingResponse)
async def passenger_got_in(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await mark_got_in(db, booking_id, user_id)


@router.post("/bookings/{booking_id}/got-out", response_model=BookingResponse)
async def passenger_got_out(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Drop-off. A fresh 4-digit code is issued to the passenger."""
    return await mark_got_out(db, booking_id, user_id)


@router.post("/bookings/{booking_id}/verify-code", response_model=BookingResponse)
async def verify_passenger_code(
    booking_id: int,
    verification: CodeVerification,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Complete and settle the booking when the passenger's code matches."""
    return await verify_code_and_complete(db, booking_id, user_id, verification.code)


@router.post("/{service_type}/{offer_id}/start", response_model=TripActionResponse)
async def start_offer_trip(
    service_type: ServiceType,
    offer_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Start every waiting booking on the offer. Allowed from a few minutes
    before the scheduled time; earlier calls get a 409 with the minutes left.
    """
    return await start_trip(db, service_type, offer_id, user_id)


@router.post("/{service_type}/{offer_id}/end", response_model=TripActionResponse)
async def end_offer_trip(
    service_type: ServiceType,
    offer_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await end_trip(db, service_type, offer_id, user_id)
