"""
Unit Tests for the Pricing Scheduler
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from plutus.services.scheduler import PricingScheduler


@pytest.fixture
def scheduler(engine, clock):
    return PricingScheduler(
        engine.pricing,
        engine.seasonal,
        engine.promotions,
        interval_seconds=0.01,
        clock=clock,
    )


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_tick_recalculates_prices(self, engine, scheduler, clock):
        await engine.create_dynamic_pricing("pkg-1", 10.0, rules=[
            {"name": "flat", "type": "time_based", "adjustment": {"type": "set_price", "value": 8}},
        ])

        summary = await scheduler.run_once()

        assert summary["prices"] == {"pkg-1": 8.0}
        assert engine.get_dynamic_price("pkg-1") == 8.0
        assert scheduler.ticks == 1
        assert scheduler.last_run_at == clock()

    @pytest.mark.asyncio
    async def test_tick_activates_due_events(self, engine, scheduler, clock):
        await engine.create_seasonal_event({
            "id": "flash",
            "name": "Flash Sale",
            "category": "flash",
            "start_date": clock().isoformat(),
            "end_date": (clock().replace(hour=23)).isoformat(),
            "promotion_templates": [
                {"id": "deal", "name": "Deal", "discount": {"kind": "flash_sale", "percentage": 40}},
            ],
        })

        summary = await scheduler.run_once()

        assert summary["events_activated"] == 1
        assert engine.promotions.get_promotion("flash:deal") is not None
        await engine.promotions.cancel_timers()

    @pytest.mark.asyncio
    async def test_failing_step_is_isolated(self, engine, scheduler):
        await engine.create_dynamic_pricing("pkg-1", 10.0)
        scheduler.seasonal.check_due = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler.promotions.refresh_statuses = AsyncMock(side_effect=RuntimeError("boom"))

        summary = await scheduler.run_once()

        assert summary["prices"] == {"pkg-1": 10.0}
        assert summary["events_activated"] == 0
        assert summary["promotions_updated"] == 0


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        scheduler.start()
        assert scheduler.is_running

        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.ticks >= 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scheduler):
        scheduler.start()
        task = scheduler._task
        scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, scheduler):
        await scheduler.stop()
        await scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self, scheduler):
        started = asyncio.Event()
        finished = []

        async def slow_recalculate_all():
            started.set()
            await asyncio.sleep(0.05)
            finished.append(True)
            return {}

        scheduler.pricing.recalculate_all = slow_recalculate_all
        scheduler.start()
        await started.wait()

        await scheduler.stop()

        assert finished == [True]
        assert scheduler.ticks == 1


class TestEngineScheduling:

    @pytest.mark.asyncio
    async def test_scheduled_promotion_arms_timer(self, engine, clock, make_promotion):
        promotion = await engine.create_promotion(make_promotion(
            status="scheduled",
            start_date=(clock() + timedelta(hours=1)).isoformat(),
        ))

        assert promotion.id in engine.promotions._timers
        await engine.promotions.cancel_timers()

    @pytest.mark.asyncio
    async def test_active_promotion_arms_no_timer(self, engine, make_promotion):
        promotion = await engine.create_promotion(make_promotion())

        assert promotion.id not in engine.promotions._timers
