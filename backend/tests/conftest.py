"""
Pytest fixtures for test database, client, and seeded marketplace data.

Each test gets its own SQLite file (aiosqlite) under tmp_path, so
concurrent sessions really contend on the same database. Collaborators the
core only talks to through interfaces are replaced by in-memory fakes.
"""

import itertools
from datetime import date, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ridemarket.main import app
from ridemarket.db.base import Base
from ridemarket.db.session import get_db
from ridemarket.core.timeutils import local_now
from ridemarket.models.booking import Booking, TripOperator
from ridemarket.models.enums import (
    BookingStatus,
    OfferStatus,
    OperatorRole,
    PassengerStatus,
    PaymentMethod,
    PaymentStatus,
    ServiceType,
    SettlementStatus,
    VehicleType,
)
from ridemarket.models.offer import PoolingOffer, RentalOffer
from ridemarket.models.user import User
from ridemarket.services.interfaces import (
    ConversationGateway,
    IdentityResult,
    IdentityVerifier,
    OptimisticAdmission,
    PaymentAuthority,
    PaymentOrder,
    PaymentVerification,
)


class RecordingConversations(ConversationGateway):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def create_or_get_conversation(self, booking_id: int, service_type: str) -> None:
        self.calls.append((booking_id, service_type))
        if self.fail:
            raise RuntimeError("chat service unavailable")


class FakePaymentAuthority(PaymentAuthority):
    """Accepts any payment whose signature is "valid"."""

    async def create_order(self, booking_id: int, amount: float) -> PaymentOrder:
        return PaymentOrder(order_id=f"order_{booking_id}", amount=amount)

    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> PaymentVerification:
        if signature == "valid":
            return PaymentVerification(verified=True, transaction_id=f"txn_{payment_id}")
        return PaymentVerification(verified=False)


class FakeIdentityVerifier(IdentityVerifier):
    """Verifies any document number that does not start with "0"."""

    async def verify(self, document_type: str, number: str, extra: Optional[dict] = None) -> IdentityResult:
        return IdentityResult(verified=not number.startswith("0"), task_id=f"task_{number}")


_booking_numbers = itertools.count(1)


@pytest.fixture
def auth_headers():
    """Builds the headers the upstream gateway forwards for an authenticated user."""

    def _headers(user_id: int, admin: bool = False) -> dict:
        headers = {"X-User-Id": str(user_id)}
        if admin:
            headers["X-User-Role"] = "admin"
        return headers

    return _headers


@pytest.fixture
def tomorrow() -> date:
    return local_now().date() + timedelta(days=1)


@pytest.fixture
def yesterday() -> date:
    return local_now().date() - timedelta(days=1)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh SQLite file, yield a session factory, then dispose."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ridemarket_test.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def conversations() -> RecordingConversations:
    return RecordingConversations()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, conversations) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency and wires fake collaborators."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.admission = OptimisticAdmission()
    app.state.conversations = conversations
    app.state.payment_authority = FakePaymentAuthority()
    app.state.identity_verifier = FakeIdentityVerifier()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    for name in ("admission", "conversations", "payment_authority", "identity_verifier"):
        if hasattr(app.state, name):
            delattr(app.state, name)


async def _add_user(db_session: AsyncSession, name: str, phone: str, verified: bool) -> User:
    user = User(name=name, phone=phone, is_verified=verified, inflow_amount=0, outflow_amount=0)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def driver(db_session: AsyncSession) -> User:
    """A verified driver."""
    return await _add_user(db_session, "Asha Driver", "+910000000001", verified=True)


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    """A verified vehicle owner."""
    return await _add_user(db_session, "Ravi Owner", "+910000000002", verified=True)


@pytest_asyncio.fixture
async def rider(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "Meera Rider", "+910000000003", verified=False)


@pytest_asyncio.fixture
async def second_rider(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "Kiran Rider", "+910000000004", verified=False)


@pytest.fixture
def make_pooling_offer(db_session: AsyncSession, tomorrow: date):
    """Factory for pooling offers; defaults to a 3-seat car trip tomorrow at 10:00."""

    async def _make(driver: User, **overrides) -> PoolingOffer:
        total_seats = overrides.pop("total_seats", 3)
        values = dict(
            driver_id=driver.id,
            driver_name=driver.name,
            from_address="MG Road",
            from_lat=12.90,
            from_lng=77.50,
            to_address="Airport",
            to_lat=13.10,
            to_lng=77.70,
            distance_km=30.0,
            date=tomorrow,
            time="10:00",
            vehicle_type=VehicleType.CAR,
            vehicle_brand="Maruti",
            vehicle_number="KA01AB1234",
            total_seats=total_seats,
            available_seats=total_seats,
            status=OfferStatus.PENDING,
            views=0,
            booking_requests=0,
            version=1,
        )
        values.update(overrides)
        offer = PoolingOffer(**values)
        db_session.add(offer)
        await db_session.commit()
        await db_session.refresh(offer)
        return offer

    return _make


@pytest.fixture
def make_rental_offer(db_session: AsyncSession, tomorrow: date):
    """Factory for rental offers; defaults to 08:00-20:00 tomorrow at 100/hour, 2h minimum."""

    async def _make(owner: User, **overrides) -> RentalOffer:
        values = dict(
            owner_id=owner.id,
            owner_name=owner.name,
            pickup_address="Indiranagar",
            pickup_lat=12.97,
            pickup_lng=77.64,
            city="Bengaluru",
            date=tomorrow,
            available_from="08:00",
            available_until="20:00",
            price_per_hour=100.0,
            minimum_hours=2,
            vehicle_type=VehicleType.CAR,
            vehicle_brand="Hyundai",
            vehicle_number="KA05XY9876",
            vehicle_seats=4,
            status=OfferStatus.PENDING,
            total_bookings=0,
            completed_count=0,
            cancelled_count=0,
            views=0,
            version=1,
        )
        values.update(overrides)
        offer = RentalOffer(**values)
        db_session.add(offer)
        await db_session.commit()
        await db_session.refresh(offer)
        return offer

    return _make


@pytest.fixture
def make_pooling_booking(db_session: AsyncSession):
    """
    Factory for a pooling booking row, bypassing pricing and seat inventory.
    Defaults to an in-progress cash booking of 100 + 10.
    """

    async def _make(offer: PoolingOffer, rider: User, **overrides) -> Booking:
        values = dict(
            booking_number=f"BKTEST{next(_booking_numbers):06d}",
            rider_id=rider.id,
            service_type=ServiceType.POOLING,
            pooling_offer_id=offer.id,
            from_address=offer.from_address,
            from_lat=offer.from_lat,
            from_lng=offer.from_lng,
            to_address=offer.to_address,
            to_lat=offer.to_lat,
            to_lng=offer.to_lng,
            date=offer.date,
            time=offer.time,
            operator=TripOperator(OperatorRole.DRIVER, offer.driver_id, offer.driver_name),
            vehicle_type=offer.vehicle_type,
            vehicle_brand=offer.vehicle_brand,
            vehicle_number=offer.vehicle_number,
            amount=100.0,
            platform_fee=10.0,
            total_amount=110.0,
            payment_method=PaymentMethod.OFFLINE_CASH,
            payment_status=PaymentStatus.PENDING,
            status=BookingStatus.IN_PROGRESS,
            passenger_status=PassengerStatus.WAITING,
            settlement_status=SettlementStatus.PENDING,
        )
        values.update(overrides)
        booking = Booking(**values)
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking

    return _make
