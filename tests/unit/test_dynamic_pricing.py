"""
Unit Tests for Dynamic Pricing Service

Tests for rule selection, adjustments, limits, throttling and ramp-up.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from plutus.exceptions import NotFoundError, StorageError, ValidationError
from plutus.services.dynamic_pricing import (
    HISTORY_LIMIT,
    DynamicPricingService,
    MarketSignals,
    RampUp,
    StaticSignalProvider,
    calculate_fallback_price,
)
from plutus.services.persistence import InMemoryPersistence
from plutus.services.seasonal import SeasonalCategory

FRIDAY = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def signals():
    return StaticSignalProvider()


@pytest.fixture
def pricing_service(persistence, signals, clock):
    return DynamicPricingService(persistence, signals=signals, clock=clock)


def rule(adjustment_type="percentage", value=-10, **overrides):
    definition = {
        "name": "rule",
        "type": "time_based",
        "adjustment": {"type": adjustment_type, "value": value},
    }
    definition.update(overrides)
    return definition


WEEKEND_DISCOUNT = rule(
    id="weekend",
    name="Weekend discount",
    conditions={"days_of_week": [4, 5]},
)


class TestAdjustments:

    def test_fallback_price(self):
        assert calculate_fallback_price(100, hour=20, day_of_week=4) == 138.0
        assert calculate_fallback_price(100) == 100.0
        assert calculate_fallback_price(100, demand=0.5) == 100.0
        assert calculate_fallback_price(100, demand=1.0) == 120.0
        assert calculate_fallback_price(100, hour=3, day_of_week=0) == 72.0
        assert calculate_fallback_price(100, inventory=5) == 130.0
        assert calculate_fallback_price(100, inventory=500) == 90.0

    def test_ramp_up_fraction(self):
        ramp = RampUp(minutes=60, steps=4)

        assert ramp.fraction(timedelta(0)) == 0.25
        assert ramp.fraction(timedelta(minutes=14)) == 0.25
        assert ramp.fraction(timedelta(minutes=15)) == 0.5
        assert ramp.fraction(timedelta(minutes=59)) == 1.0
        assert ramp.fraction(timedelta(minutes=90)) == 1.0
        assert RampUp(minutes=0).fraction(timedelta(0)) == 1.0


class TestRecalculation:

    @pytest.mark.asyncio
    async def test_weekend_rule(self, pricing_service, clock):
        await pricing_service.create_pricing("pkg-1", 9.99, rules=[WEEKEND_DISCOUNT])

        clock.set(FRIDAY)
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(8.991)
        assert pricing_service.get_pricing("pkg-1").active_rule_id == "weekend"

        clock.advance(days=4)  # Tuesday
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(9.99)
        assert pricing_service.get_pricing("pkg-1").active_rule_id is None

    @pytest.mark.asyncio
    async def test_rule_timezone(self, pricing_service, clock):
        # 02:00 UTC Saturday is still Friday evening in Los Angeles
        clock.set(datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc))
        await pricing_service.create_pricing(
            "pkg-1", 10.0, rules=[rule(conditions={"days_of_week": [4]}, timezone="America/Los_Angeles")]
        )

        assert await pricing_service.recalculate("pkg-1") == pytest.approx(9.0)

    @pytest.mark.asyncio
    async def test_limits_clamp(self, pricing_service):
        await pricing_service.create_pricing(
            "pkg-high", 10.0, rules=[rule(value=50, limits={"maximum_price": 12})]
        )
        await pricing_service.create_pricing(
            "pkg-low", 10.0, rules=[rule("set_price", 1, limits={"minimum_price": 5})]
        )

        assert await pricing_service.recalculate("pkg-high") == 12.0
        assert await pricing_service.recalculate("pkg-low") == 5.0

    @pytest.mark.asyncio
    async def test_price_never_negative(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[rule("fixed_amount", -25)])

        assert await pricing_service.recalculate("pkg-1") == 0.0

    @pytest.mark.asyncio
    async def test_highest_priority_wins(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[
            rule("set_price", 9, id="low", priority=1),
            rule("set_price", 7, id="high", priority=10),
            rule("set_price", 8, id="inactive", priority=50, is_active=False),
        ])

        assert await pricing_service.recalculate("pkg-1") == 7.0
        assert pricing_service.get_pricing("pkg-1").active_rule_id == "high"

    @pytest.mark.asyncio
    async def test_priority_ties_keep_definition_order(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[
            rule("set_price", 9, id="first", priority=1),
            rule("set_price", 7, id="second", priority=1),
        ])

        assert await pricing_service.recalculate("pkg-1") == 9.0

    @pytest.mark.asyncio
    async def test_demand_condition(self, pricing_service, signals):
        surge = rule(value=20, type="demand_based", conditions={"min_demand": 50})
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[surge])

        # Missing signal never matches a populated condition
        assert await pricing_service.recalculate("pkg-1") == 10.0

        signals.set("pkg-1", MarketSignals(demand_rate=80))
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(12.0)

        signals.set("pkg-1", MarketSignals(demand_rate=10))
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_inventory_and_competitor_conditions(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[
            rule(value=30, id="scarce", priority=2, type="inventory_based",
                 conditions={"max_inventory": 10}),
            rule("set_price", 8.5, id="undercut", priority=1, type="competitor_based",
                 conditions={"competitor_price_below": 9}),
        ])

        scarce = MarketSignals(inventory_level=3, competitor_price=8)
        assert await pricing_service.recalculate("pkg-1", scarce) == pytest.approx(13.0)

        plenty = MarketSignals(inventory_level=200, competitor_price=8)
        assert await pricing_service.recalculate("pkg-1", plenty) == pytest.approx(8.5)

        expensive = MarketSignals(inventory_level=200, competitor_price=12)
        assert await pricing_service.recalculate("pkg-1", expensive) == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_seasonal_condition(self, persistence, signals, clock):
        events = []
        service = DynamicPricingService(
            persistence, signals=signals, clock=clock, active_events=lambda now: events
        )
        await service.create_pricing("pkg-1", 10.0, rules=[
            rule(value=-25, type="seasonal", conditions={"seasonal_categories": ["holiday"]}),
        ])

        assert await service.recalculate("pkg-1") == 10.0

        events.append(SimpleNamespace(id="black-friday", category=SeasonalCategory.HOLIDAY))
        assert await service.recalculate("pkg-1") == pytest.approx(7.5)

    @pytest.mark.asyncio
    async def test_date_window_condition(self, pricing_service, clock):
        window = {"start": "2024-06-10T00:00:00+00:00", "end": "2024-06-12T00:00:00+00:00"}
        await pricing_service.create_pricing(
            "pkg-1", 10.0, rules=[rule(conditions={"date_windows": [window]})]
        )

        assert await pricing_service.recalculate("pkg-1") == pytest.approx(9.0)

        clock.advance(days=1)
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_changes_below_epsilon_ignored(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[rule("fixed_amount", 0.005)])

        assert await pricing_service.recalculate("pkg-1") == 10.0
        assert len(pricing_service.get_pricing("pkg-1").price_history) == 1

    @pytest.mark.asyncio
    async def test_history_records_changes(self, pricing_service, clock):
        await pricing_service.create_pricing("pkg-1", 9.99, rules=[WEEKEND_DISCOUNT])
        clock.set(FRIDAY)

        await pricing_service.recalculate("pkg-1")
        await pricing_service.recalculate("pkg-1")

        history = pricing_service.get_pricing("pkg-1").price_history
        assert [h.reason for h in history] == ["initial", "rule Weekend discount"]
        assert history[-1].rule_id == "weekend"
        assert history[-1].timestamp == FRIDAY

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, pricing_service, signals):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[
            rule("set_price", 12, conditions={"min_demand": 1}),
        ])

        for i in range(HISTORY_LIMIT + 20):
            demand = MarketSignals(demand_rate=i % 2)
            await pricing_service.recalculate("pkg-1", demand)

        assert len(pricing_service.get_pricing("pkg-1").price_history) == HISTORY_LIMIT

    @pytest.mark.asyncio
    async def test_daily_change_limit(self, pricing_service, clock):
        surge = rule(value=10, conditions={"min_demand": 5}, limits={"max_daily_changes": 1})
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[surge])

        assert await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=10)) == (
            pytest.approx(11.0)
        )
        # Reverting counts as a change and is throttled for the rest of the day
        assert await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=0)) == (
            pytest.approx(11.0)
        )

        clock.advance(days=1)
        assert await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=0)) == (
            pytest.approx(10.0)
        )

    @pytest.mark.asyncio
    async def test_throttled_price_respects_new_rule_limits(self, pricing_service, clock):
        surge = rule(
            id="surge",
            value=50,
            priority=10,
            conditions={"min_demand": 5},
            limits={"minimum_price": 0, "maximum_price": 100},
        )
        everyday = rule(
            id="everyday",
            priority=1,
            limits={"minimum_price": 7.99, "maximum_price": 12.99, "max_daily_changes": 1},
        )
        await pricing_service.create_pricing("pkg-1", 9.99, rules=[surge, everyday])

        assert await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=10)) == (
            pytest.approx(14.985)
        )

        clock.advance(minutes=5)
        price = await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=0))

        assert price == pytest.approx(12.99)
        pricing = pricing_service.get_pricing("pkg-1")
        assert pricing.active_rule_id == "everyday"
        assert pricing.price_history[-1].reason.endswith("(limit)")

    @pytest.mark.asyncio
    async def test_min_minutes_between_changes(self, pricing_service, clock):
        surge = rule(
            value=10, conditions={"min_demand": 5}, limits={"min_minutes_between_changes": 30}
        )
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[surge])

        await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=10))
        clock.advance(minutes=10)
        assert await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=0)) == (
            pytest.approx(11.0)
        )

        clock.advance(minutes=25)
        assert await pricing_service.recalculate("pkg-1", MarketSignals(demand_rate=0)) == (
            pytest.approx(10.0)
        )

    @pytest.mark.asyncio
    async def test_ramp_up(self, pricing_service, clock):
        await pricing_service.create_pricing(
            "pkg-1", 10.0, rules=[rule(value=-20, ramp_up={"minutes": 60, "steps": 4})]
        )

        assert await pricing_service.recalculate("pkg-1") == pytest.approx(9.5)
        clock.advance(minutes=15)
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(9.0)
        clock.advance(minutes=45)
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(8.0)

    @pytest.mark.asyncio
    async def test_unknown_package(self, pricing_service):
        with pytest.raises(NotFoundError):
            await pricing_service.recalculate("pkg-missing")

    @pytest.mark.asyncio
    async def test_save_failure_restores_state(self, pricing_service, persistence, clock):
        await pricing_service.create_pricing("pkg-1", 9.99, rules=[WEEKEND_DISCOUNT])
        clock.set(FRIDAY)
        persistence.fail_writes = True

        with pytest.raises(StorageError):
            await pricing_service.recalculate("pkg-1")

        pricing = pricing_service.get_pricing("pkg-1")
        assert pricing.current_price == 9.99
        assert pricing.active_rule_id is None
        assert len(pricing.price_history) == 1

        persistence.fail_writes = False
        assert await pricing_service.recalculate("pkg-1") == pytest.approx(8.991)


class FlakyPersistence(InMemoryPersistence):
    """Fails writes for selected packages."""

    def __init__(self):
        super().__init__()
        self.failing = set()

    async def save_dynamic_pricing(self, pricing):
        if pricing.package_id in self.failing:
            raise StorageError(f"cannot write {pricing.package_id}")
        await super().save_dynamic_pricing(pricing)


class TestRecalculateAll:

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, signals, clock):
        persistence = FlakyPersistence()
        service = DynamicPricingService(persistence, signals=signals, clock=clock)
        for package_id in ("pkg-bad", "pkg-good"):
            await service.create_pricing(package_id, 10.0, rules=[rule("set_price", 8)])
        persistence.failing.add("pkg-bad")

        prices = await service.recalculate_all()

        assert prices == {"pkg-good": 8.0}
        assert service.get_current_price("pkg-good") == 8.0
        assert service.get_current_price("pkg-bad") == 10.0

    @pytest.mark.asyncio
    async def test_skips_inactive(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[rule("set_price", 8)])
        await pricing_service.create_pricing(
            "pkg-2", 10.0, rules=[rule("set_price", 8)], is_active=False
        )

        assert await pricing_service.recalculate_all() == {"pkg-1": 8.0}


class TestPricingManagement:

    @pytest.mark.asyncio
    async def test_current_price(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 9.99)
        await pricing_service.create_pricing("pkg-2", 4.99, is_active=False)

        assert pricing_service.get_current_price("pkg-1") == 9.99
        assert pricing_service.get_current_price("pkg-2") is None
        assert pricing_service.get_current_price("pkg-missing") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rules", [
        [rule(limits={"minimum_price": 10, "maximum_price": 5})],
        [rule(limits={"minimum_price": -1})],
        [rule(limits={"max_daily_changes": 0})],
        [rule(ramp_up={"minutes": 10, "steps": 0})],
        [rule("discount", 5)],
        [rule(type="astrological")],
        [rule(id="dup"), rule(id="dup")],
        [{"name": "no adjustment", "type": "time_based"}],
    ])
    async def test_invalid_rules(self, pricing_service, rules):
        with pytest.raises(ValidationError):
            await pricing_service.create_pricing("pkg-1", 10.0, rules=rules)
        assert pricing_service.get_pricing("pkg-1") is None

    @pytest.mark.asyncio
    async def test_invalid_base_price(self, pricing_service):
        with pytest.raises(ValidationError):
            await pricing_service.create_pricing("pkg-1", 0)

    @pytest.mark.asyncio
    async def test_duplicate_package(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0)

        with pytest.raises(ValidationError):
            await pricing_service.create_pricing("pkg-1", 12.0)

    @pytest.mark.asyncio
    async def test_add_and_remove_rule(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0)

        added = await pricing_service.add_rule("pkg-1", rule("set_price", 8, id="promo"))
        assert added.id == "promo"
        assert await pricing_service.recalculate("pkg-1") == 8.0

        with pytest.raises(ValidationError):
            await pricing_service.add_rule("pkg-1", rule(id="promo"))

        await pricing_service.remove_rule("pkg-1", "promo")
        assert pricing_service.get_pricing("pkg-1").active_rule_id is None
        assert await pricing_service.recalculate("pkg-1") == 10.0

        with pytest.raises(NotFoundError):
            await pricing_service.remove_rule("pkg-1", "promo")

    @pytest.mark.asyncio
    async def test_update_base_price(self, pricing_service):
        await pricing_service.create_pricing("pkg-1", 10.0, rules=[rule(value=-10)])

        await pricing_service.update_pricing("pkg-1", base_price=20.0)

        assert await pricing_service.recalculate("pkg-1") == pytest.approx(18.0)

    @pytest.mark.asyncio
    async def test_load_restores_registry(self, pricing_service, persistence, clock):
        await pricing_service.create_pricing("pkg-1", 9.99, rules=[WEEKEND_DISCOUNT])

        restored = DynamicPricingService(persistence, clock=clock)
        await restored.load()

        assert restored.get_pricing("pkg-1").rules[0].id == "weekend"
