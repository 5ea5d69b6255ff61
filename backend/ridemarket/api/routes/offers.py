"""
Offer endpoints: publishing, browsing and withdrawing pooling and rental offers.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.api.dependencies import get_current_user_id
from ridemarket.db.session import get_db
from ridemarket.models.enums import ServiceType
from ridemarket.schemas.offer import (
    PoolingOfferCreate,
    PoolingOfferListResponse,
    PoolingOfferResponse,
    RentalOfferCreate,
    RentalOfferListResponse,
    RentalOfferResponse,
    TimeSlotListResponse,
)
from ridemarket.schemas.pricing import PassengerRouteIn, PriceBreakdownResponse
from ridemarket.services.offer_service import (
    available_time_slots,
    cancel_offer,
    create_pooling_offer,
    create_rental_offer,
    get_pooling_offer,
    get_rental_offer,
    list_pooling_offers,
    list_rental_offers,
)
from ridemarket.services.pricing_service import PassengerRoute, quote_pooling_price

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.post("/pooling", response_model=PoolingOfferResponse, status_code=status.HTTP_201_CREATED)
async def publish_pooling_offer(
    offer_data: PoolingOfferCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Publish a pooling trip. The driver must be identity-verified."""
    return await create_pooling_offer(db, offer_data, user_id)


@router.get("/pooling", response_model=PoolingOfferListResponse)
async def browse_pooling_offers(
    day: Optional[date] = Query(None, alias="date"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    offers, total = await list_pooling_offers(db, day=day, page=page, page_size=page_size)
    return PoolingOfferListResponse(offers=offers, total=total, page=page, page_size=page_size)


@router.get("/pooling/{offer_id}", response_model=PoolingOfferResponse)
async def read_pooling_offer(offer_id: int, db: AsyncSession = Depends(get_db)):
    return await get_pooling_offer(db, offer_id, count_view=True)


@router.post("/pooling/{offer_id}/quote", response_model=PriceBreakdownResponse)
async def quote_pooling_offer(
    offer_id: int,
    route: PassengerRouteIn,
    db: AsyncSession = Depends(get_db),
):
    """
    Price a passenger's segment of the offer's route.

    The returned final_price / platform_fee / total_amount can be sent back
    with the booking request to hold this quote.
    """
    offer = await get_pooling_offer(db, offer_id)
    breakdown = await quote_pooling_price(db, offer, PassengerRoute(**route.model_dump()))
    return breakdown.as_dict()


@router.delete("/pooling/{offer_id}", response_model=PoolingOfferResponse)
async def withdraw_pooling_offer(
    offer_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await cancel_offer(db, ServiceType.POOLING, offer_id, user_id)


@router.post("/rental", response_model=RentalOfferResponse, status_code=status.HTTP_201_CREATED)
async def publish_rental_offer(
    offer_data: RentalOfferCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Publish a rental vehicle for one day's availability window."""
    return await create_rental_offer(db, offer_data, user_id)


@router.get("/rental", response_model=RentalOfferListResponse)
async def browse_rental_offers(
    day: Optional[date] = Query(None, alias="date"),
    city: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    offers, total = await list_rental_offers(db, day=day, city=city, page=page, page_size=page_size)
    return RentalOfferListResponse(offers=offers, total=total, page=page, page_size=page_size)


@router.get("/rental/{offer_id}", response_model=RentalOfferResponse)
async def read_rental_offer(offer_id: int, db: AsyncSession = Depends(get_db)):
    return await get_rental_offer(db, offer_id, count_view=True)


@router.get("/rental/{offer_id}/slots", response_model=TimeSlotListResponse)
async def list_rental_slots(offer_id: int, db: AsyncSession = Depends(get_db)):
    """Free [start, end) slots on the offer's day, in whole hours."""
    offer = await get_rental_offer(db, offer_id)
    slots = await available_time_slots(db, offer_id)
    return TimeSlotListResponse(offer_id=offer.id, date=offer.date, slots=slots)


@router.delete("/rental/{offer_id}", response_model=RentalOfferResponse)
async def withdraw_rental_offer(
    offer_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await cancel_offer(db, ServiceType.RENTAL, offer_id, user_id)
