"""
Ride Marketplace API - Main Application Entry Point

The transactional core of a ride-pooling and vehicle-rental marketplace:
- Seat and time-slot reservation that cannot overbook under concurrency
- Passenger boarding, drop-off codes and trip completion
- Dynamic pooling prices and cash/electronic settlement with operators
- A background scheduler that starts trips nobody started by hand
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ridemarket.api.errors import register_exception_handlers
from ridemarket.api.middleware import RequestLoggingMiddleware
from ridemarket.api.router import api_router
from ridemarket.core.config import get_settings
from ridemarket.core.logging import get_logger, setup_logging
from ridemarket.core.metrics import metrics_endpoint
from ridemarket.db.session import get_session_factory
from ridemarket.infrastructure.redis_client import RedisClient
from ridemarket.services.interfaces import LoggingConversationGateway
from ridemarket.services.scheduler import DueTripAdvancer, TripScheduler
from ridemarket.services.strategy_factory import get_admission_strategy

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        admission_strategy=settings.ADMISSION_STRATEGY,
    )

    app.state.admission = get_admission_strategy()
    app.state.conversations = LoggingConversationGateway()

    scheduler = None
    if settings.TRIP_SCHEDULER_ENABLED:
        scheduler = TripScheduler(
            DueTripAdvancer(get_session_factory()),
            interval_seconds=settings.TRIP_SCHEDULER_INTERVAL_SECONDS,
        )
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    # Cleanup
    if scheduler is not None:
        await scheduler.stop()
    if settings.ADMISSION_STRATEGY == "redis":
        await RedisClient.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Ride-pooling and rental marketplace API with concurrency-safe reservations",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "scheduler_running": bool(scheduler and scheduler.running),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
