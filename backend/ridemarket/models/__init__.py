from ridemarket.models.user import User
from ridemarket.models.offer import PoolingOffer, RentalOffer, OfferParticipant
from ridemarket.models.booking import Booking, TripOperator

__all__ = [
    "User",
    "PoolingOffer", "RentalOffer", "OfferParticipant",
    "Booking", "TripOperator",
]
