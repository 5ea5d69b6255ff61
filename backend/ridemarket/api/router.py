"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from ridemarket.api.routes import bookings, offers, operators, settlements, trips

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(offers.router)
api_router.include_router(bookings.router)
api_router.include_router(trips.router)
api_router.include_router(settlements.router)
api_router.include_router(operators.router)
