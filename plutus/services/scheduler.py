"""
Pricing Scheduler

Background loop that recalculates prices, materializes due seasonal events
and refreshes promotion statuses on a fixed interval.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from plutus.services.dynamic_pricing import DynamicPricingService
from plutus.services.promotions import PromotionService
from plutus.services.seasonal import SeasonalEventService
from plutus.services.timeutils import Clock, utcnow

logger = structlog.get_logger()


class PricingScheduler:
    """
    Cooperative periodic task with explicit start/stop.

    `stop()` never interrupts a tick: the in-flight tick finishes, then the
    loop exits.
    """

    def __init__(
        self,
        pricing: DynamicPricingService,
        seasonal: SeasonalEventService,
        promotions: PromotionService,
        interval_seconds: float = 300.0,
        clock: Clock = utcnow,
    ):
        self.pricing = pricing
        self.seasonal = seasonal
        self.promotions = promotions
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.ticks = 0
        self.last_run_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Pricing scheduler already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Pricing scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        task, self._task = self._task, None
        await task
        logger.info("Pricing scheduler stopped", ticks=self.ticks)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def run_once(self) -> Dict[str, Any]:
        """Run a single tick. Each step is isolated from the others."""
        summary: Dict[str, Any] = {"prices": {}, "events_activated": 0, "promotions_updated": 0}

        try:
            summary["events_activated"] = await self.seasonal.check_due()
        except Exception as e:
            logger.error("Seasonal check failed", error=str(e))

        try:
            summary["promotions_updated"] = await self.promotions.refresh_statuses()
        except Exception as e:
            logger.error("Promotion status refresh failed", error=str(e))

        try:
            summary["prices"] = await self.pricing.recalculate_all()
        except Exception as e:
            logger.error("Price recalculation tick failed", error=str(e))

        self.ticks += 1
        self.last_run_at = self.clock()
        logger.debug(
            "Scheduler tick completed",
            tick=self.ticks,
            packages=len(summary["prices"]),
            events_activated=summary["events_activated"],
        )
        return summary
