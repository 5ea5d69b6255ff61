from ridemarket.schemas.offer import (
    PoolingOfferCreate, PoolingOfferResponse,
    RentalOfferCreate, RentalOfferResponse,
    TimeSlotListResponse,
)
from ridemarket.schemas.pricing import PassengerRouteIn, PrecomputedPrice, PriceBreakdownResponse
from ridemarket.schemas.booking import (
    PoolingBookingCreate, RentalBookingCreate, BookingCancel,
    BookingStatusUpdate, BookingResponse, BookingListResponse,
)
from ridemarket.schemas.trip import CodeVerification, TripActionResponse
from ridemarket.schemas.settlement import (
    SettlementReject, SettlementResponse, SettlementListResponse, LedgerResponse,
)

__all__ = [
    "PoolingOfferCreate", "PoolingOfferResponse",
    "RentalOfferCreate", "RentalOfferResponse", "TimeSlotListResponse",
    "PassengerRouteIn", "PrecomputedPrice", "PriceBreakdownResponse",
    "PoolingBookingCreate", "RentalBookingCreate", "BookingCancel",
    "BookingStatusUpdate", "BookingResponse", "BookingListResponse",
    "CodeVerification", "TripActionResponse",
    "SettlementReject", "SettlementResponse", "SettlementListResponse", "LedgerResponse",
]
