"""
Trip scheduler: a fallback that starts pooling trips nobody started by hand.

TripScheduler owns only the timer. On every tick it asks a TripAdvancer to
move due trips forward; DueTripAdvancer is the database-backed advancer.
Both are plain objects created and wired by the application lifespan, so
tests can drive tick() directly with a fake advancer and no real timer.

Each offer is started in its own session and transaction. A failure is
logged and counted for that offer only; the rest of the scan continues and
no lock is held across the scan.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridemarket.core.logging import get_logger
from ridemarket.core.metrics import scheduler_offer_failures, scheduler_offers_started, scheduler_ticks
from ridemarket.core.timeutils import local_now, scheduled_at
from ridemarket.models.enums import BOOKABLE_OFFER_STATUSES
from ridemarket.models.offer import PoolingOffer
from ridemarket.services.interfaces.trips import TripAdvancer
from ridemarket.services.trip_service import auto_start_offer

logger = get_logger(__name__)


class DueTripAdvancer(TripAdvancer):
    """Starts today's pending/active pooling offers whose departure has passed."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _due_offers(self, now: datetime) -> list[tuple[int, str]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PoolingOffer.id, PoolingOffer.time)
                .where(
                    PoolingOffer.status.in_(BOOKABLE_OFFER_STATUSES),
                    PoolingOffer.date == now.date(),
                )
                .order_by(PoolingOffer.id)
            )
            return [(row.id, row.time) for row in result.all()]

    async def _start_offer(self, offer_id: int, now: datetime) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                return await auto_start_offer(session, offer_id, now)

    async def advance_due_trips(self, now: datetime) -> int:
        advanced = 0
        for offer_id, clock in await self._due_offers(now):
            try:
                if scheduled_at(now.date(), clock) > now:
                    continue
                started = await self._start_offer(offer_id, now)
            except Exception as exc:
                scheduler_offer_failures.inc()
                logger.error("scheduler_offer_failed", offer_id=offer_id, error=str(exc), exc_info=True)
                continue
            if started:
                advanced += 1
                scheduler_offers_started.inc()
        return advanced


class TripScheduler:
    """
    Runs advancer.advance_due_trips(now) every interval_seconds on its own
    asyncio task. start() ticks once immediately, like a manual kick.
    """

    def __init__(
        self,
        advancer: TripAdvancer,
        interval_seconds: float = 60,
        clock: Callable[[], datetime] = local_now,
    ):
        self.advancer = advancer
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> int:
        """Run one scan. Never raises; failures are logged and counted."""
        try:
            advanced = await self.advancer.advance_due_trips(self.clock())
        except Exception as exc:
            scheduler_ticks.labels(result="error").inc()
            logger.error("scheduler_tick_failed", error=str(exc), exc_info=True)
            return 0
        scheduler_ticks.labels(result="ok").inc()
        if advanced:
            logger.info("scheduler_tick", offers_started=advanced)
        return advanced

    async def _run(self):
        while not self._stopping.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def start(self):
        if self.running:
            logger.warning("scheduler_already_running")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="trip-scheduler")
        logger.info("scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self):
        if not self.running:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("scheduler_stopped")
