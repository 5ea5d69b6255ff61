"""
Booking endpoints with concurrency-safe seat and slot reservation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.api.dependencies import (
    get_admission,
    get_conversations,
    get_current_user_id,
    get_payment_authority,
)
from ridemarket.db.session import get_db
from ridemarket.models.enums import BookingStatus, ServiceType
from ridemarket.schemas.booking import (
    BookingCancel,
    BookingListResponse,
    BookingResponse,
    BookingStatusUpdate,
    PassengerCodeResponse,
    PoolingBookingCreate,
    RentalBookingCreate,
)
from ridemarket.schemas.settlement import PaymentConfirm, PaymentOrderResponse
from ridemarket.services.booking_service import (
    cancel_booking,
    create_pooling_booking,
    create_rental_booking,
    get_booking,
    get_passenger_code,
    list_user_bookings,
    update_booking_status,
)
from ridemarket.services.interfaces import (
    AdmissionStrategy,
    ConversationGateway,
    PaymentAuthority,
)
from ridemarket.services.payment_service import confirm_payment, create_payment_order

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/pooling", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_pooling_seat(
    booking_data: PoolingBookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    admission: AdmissionStrategy = Depends(get_admission),
    conversations: ConversationGateway = Depends(get_conversations),
):
    """
    Book one seat on a pooling offer.

    The seat is taken with a single conditional UPDATE, so two riders racing
    for the last seat cannot both win; the loser gets a 409.
    """
    return await create_pooling_booking(db, user_id, booking_data, admission=admission, conversations=conversations)


@router.post("/rental", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_rental(
    booking_data: RentalBookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    conversations: ConversationGateway = Depends(get_conversations),
):
    """
    Book a rental offer for a duration or an explicit time slot.

    Overlapping slots are rejected with a 409; the slot claim retries on
    version conflicts before giving up.
    """
    return await create_rental_booking(db, user_id, booking_data, conversations=conversations)


@router.get("/", response_model=BookingListResponse)
async def list_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    service_type: Optional[ServiceType] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Bookings where the caller is the rider or the trip operator."""
    bookings = await list_user_bookings(db, user_id, status=booking_status, service_type=service_type)
    return BookingListResponse(bookings=bookings, total=len(bookings))


@router.get("/{booking_id}", response_model=BookingResponse)
async def read_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await get_booking(db, booking_id, user_id)


@router.get("/{booking_id}/code", response_model=PassengerCodeResponse)
async def read_passenger_code(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_passenger_code(db, booking_id, user_id)
    return PassengerCodeResponse(
        booking_id=booking.id,
        passenger_status=booking.passenger_status,
        passenger_code=booking.passenger_code,
        code_generated_at=booking.code_generated_at,
    )


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    cancel_data: BookingCancel,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    admission: AdmissionStrategy = Depends(get_admission),
):
    """Cancel a booking and give its seat or slot back to the offer."""
    return await cancel_booking(db, booking_id, user_id, cancel_data.reason, admission=admission)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def change_booking_status(
    booking_id: int,
    status_data: BookingStatusUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Operator moves a booking to in_progress or completed."""
    return await update_booking_status(db, booking_id, status_data.status, user_id)


@router.post("/{booking_id}/payment-order", response_model=PaymentOrderResponse)
async def open_payment_order(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    authority: PaymentAuthority = Depends(get_payment_authority),
):
    order = await create_payment_order(db, booking_id, user_id, authority)
    return PaymentOrderResponse(
        booking_id=booking_id,
        order_id=order.order_id,
        amount=order.amount,
        currency=order.currency,
    )


@router.post("/{booking_id}/payment/confirm", response_model=BookingResponse)
async def confirm_booking_payment(
    booking_id: int,
    payment_data: PaymentConfirm,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    authority: PaymentAuthority = Depends(get_payment_authority),
):
    """Verify the payment gateway's signature and mark the booking paid."""
    return await confirm_payment(
        db,
        booking_id,
        user_id,
        payment_data.order_id,
        payment_data.payment_id,
        payment_data.signature,
        authority,
    )
