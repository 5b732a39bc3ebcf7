"""
Unit Tests for Persistence Ports
"""

import asyncio

import pytest
import pytest_asyncio

from plutus.exceptions import StorageError
from plutus.services.ab_testing import ABTestingService
from plutus.services.database import Database
from plutus.services.dynamic_pricing import DynamicPricingService
from plutus.services.persistence import BoundedPersistence, InMemoryPersistence
from plutus.services.promotions import PromotionService
from plutus.services.sql_store import SqlPersistence


class SlowPersistence(InMemoryPersistence):
    async def save_promotion(self, promotion):
        await asyncio.sleep(1)


class BrokenPersistence(InMemoryPersistence):
    async def load_experiments(self):
        raise ConnectionError("database unreachable")


class TestBoundedPersistence:

    @pytest.mark.asyncio
    async def test_timeout_becomes_storage_error(self, make_promotion):
        service = PromotionService(BoundedPersistence(SlowPersistence(), timeout_seconds=0.01))

        with pytest.raises(StorageError, match="timed out"):
            await service.create_promotion(make_promotion())

    @pytest.mark.asyncio
    async def test_driver_errors_become_storage_error(self):
        bounded = BoundedPersistence(BrokenPersistence(), timeout_seconds=1)

        with pytest.raises(StorageError, match="database unreachable"):
            await bounded.load_experiments()

    @pytest.mark.asyncio
    async def test_storage_errors_pass_through(self):
        inner = InMemoryPersistence()
        inner.fail_reads = True
        bounded = BoundedPersistence(inner, timeout_seconds=1)

        with pytest.raises(StorageError, match="unavailable for reads"):
            await bounded.load_promotions()


class TestInMemoryPersistence:

    @pytest.mark.asyncio
    async def test_stores_copies(self, persistence, clock):
        service = DynamicPricingService(persistence, clock=clock)
        pricing = await service.create_pricing("pkg-1", 9.99)

        pricing.current_price = 1.0

        assert persistence.pricing["pkg-1"].current_price == 9.99
        loaded = await persistence.load_dynamic_pricing()
        loaded[0].current_price = 2.0
        assert persistence.pricing["pkg-1"].current_price == 9.99

    @pytest.mark.asyncio
    async def test_write_count(self, persistence, clock):
        service = DynamicPricingService(persistence, clock=clock)

        await service.create_pricing("pkg-1", 9.99)
        await service.update_pricing("pkg-1", base_price=10.99)

        assert persistence.write_count == 2


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'plutus.db'}")
    await db.init()
    yield db
    await db.close()


class TestSqlPersistence:

    @pytest.mark.asyncio
    async def test_experiment_round_trip(self, database, identity, clock, make_experiment):
        store = SqlPersistence(database)
        service = ABTestingService(store, identity=identity, clock=clock)
        experiment = await service.create_experiment(**make_experiment())
        await service.start_experiment(experiment.id)
        variant_id = await service.assign(experiment.id, "user-1")
        await service.track(experiment.id, "user-1", "purchase", {"amount": 4.99})

        restored = ABTestingService(store, clock=clock)
        await restored.load()

        loaded = restored.get_experiment(experiment.id)
        assert loaded.status.value == "running"
        assert loaded.started_at == clock()
        assert loaded.get_variant(variant_id).conversions == 1
        assignment = restored.get_assignment("user-1", experiment.id)
        assert assignment.variant_id == variant_id
        assert assignment.conversion_value == pytest.approx(4.99)

    @pytest.mark.asyncio
    async def test_save_is_an_upsert(self, database, clock, make_promotion):
        store = SqlPersistence(database)
        service = PromotionService(store, clock=clock)
        promotion = await service.create_promotion(make_promotion())

        await service.apply(promotion.id, 10.0, {"id": "pkg-1"}, "user-1")
        await service.apply(promotion.id, 10.0, {"id": "pkg-1"}, "user-2")

        loaded = await store.load_promotions()
        assert len(loaded) == 1
        assert loaded[0].usage_limits.usage_count == 2
        assert loaded[0].analytics.unique_users == 2

    @pytest.mark.asyncio
    async def test_pricing_round_trip(self, database, clock):
        store = SqlPersistence(database)
        service = DynamicPricingService(store, clock=clock)
        await service.create_pricing("pkg-1", 9.99, rules=[{
            "id": "weekend",
            "name": "Weekend",
            "type": "time_based",
            "conditions": {"days_of_week": [4, 5], "time_ranges": [{"start": "18:00", "end": "23:00"}]},
            "adjustment": {"type": "percentage", "value": -10},
            "ramp_up": {"minutes": 30, "steps": 3},
        }])

        restored = DynamicPricingService(store, clock=clock)
        await restored.load()

        rule = restored.get_pricing("pkg-1").rules[0]
        assert rule.conditions.days_of_week == [4, 5]
        assert rule.conditions.time_ranges[0].start == "18:00"
        assert rule.ramp_up.steps == 3
        assert rule.adjustment.value == -10
