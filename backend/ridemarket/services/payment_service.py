"""
Payment confirmation for electronically paid bookings.

The payment authority is an opaque collaborator: the core asks it once to
create an order and once to verify the gateway's callback, and only reacts
to the boolean result. No retries happen here.
"""

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ConflictError, NotFoundError
from ridemarket.core.logging import get_logger
from ridemarket.models.booking import Booking
from ridemarket.models.enums import BookingStatus, PaymentStatus
from ridemarket.services.interfaces.collaborators import PaymentAuthority, PaymentOrder
from ridemarket.services.inventory_service import load_booking, transition_booking

logger = get_logger(__name__)


async def _payable_booking(db: AsyncSession, booking_id: int, rider_id: int) -> Booking:
    booking = await load_booking(db, booking_id)
    if booking.rider_id != rider_id:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    if booking.payment_method.is_cash:
        raise ConflictError("Cash bookings are paid to the operator directly", booking_id=booking_id)
    if booking.payment_status == PaymentStatus.PAID:
        raise ConflictError("Booking is already paid", booking_id=booking_id)
    if booking.status == BookingStatus.CANCELLED:
        raise ConflictError("Booking is cancelled", booking_id=booking_id)
    return booking


async def create_payment_order(
    db: AsyncSession,
    booking_id: int,
    rider_id: int,
    authority: PaymentAuthority,
) -> PaymentOrder:
    booking = await _payable_booking(db, booking_id, rider_id)
    order = await authority.create_order(booking.id, booking.total_amount)
    logger.info("payment_order_created", booking_id=booking.id, order_id=order.order_id, amount=order.amount)
    return order


async def confirm_payment(
    db: AsyncSession,
    booking_id: int,
    rider_id: int,
    order_id: str,
    payment_id: str,
    signature: str,
    authority: PaymentAuthority,
) -> Booking:
    """
    Verify the gateway callback. A verified payment marks the booking paid
    and confirms it if still pending; a failed one marks the payment failed
    and raises ConflictError.
    """
    booking = await _payable_booking(db, booking_id, rider_id)

    verification = await authority.verify_payment(order_id, payment_id, signature)
    if not verification.verified:
        # The failed attempt is recorded even though the request errors
        await db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.payment_status != PaymentStatus.PAID)
            .values(payment_status=PaymentStatus.FAILED)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.warning("payment_verification_failed", booking_id=booking.id, order_id=order_id)
        raise ConflictError("Payment verification failed", booking_id=booking.id)

    booking = await transition_booking(
        db,
        booking.id,
        [Booking.payment_status != PaymentStatus.PAID, Booking.status != BookingStatus.CANCELLED],
        "Booking can no longer be paid",
        payment_status=PaymentStatus.PAID,
        payment_reference=verification.transaction_id or payment_id,
        # SET expressions see the pre-update row
        status=case(
            (Booking.status == BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value),
            else_=Booking.status,
        ),
    )

    logger.info(
        "payment_confirmed",
        booking_id=booking.id,
        payment_reference=booking.payment_reference,
        status=booking.status.value,
    )
    return booking
