"""
Dynamic Pricing Service

Rule-based price recalculation for purchasable packages.
Features:
- Prioritized pricing rules (first matching rule wins)
- Demand, time, inventory, competitor and seasonal conditions
- Percentage / fixed amount / set price adjustments with ramp-up
- Price limits and change throttling
- Price history
"""

import asyncio
import copy
import math
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    Union,
)

import structlog
from prometheus_client import Counter, Histogram

from plutus.exceptions import NotFoundError, StorageError, ValidationError
from plutus.services.persistence import PersistencePort
from plutus.services.timeutils import (
    Clock,
    TimeRange,
    get_zone,
    in_time_ranges,
    parse_datetime,
    to_iso,
    utcnow,
)

if TYPE_CHECKING:
    from plutus.services.seasonal import SeasonalEvent

logger = structlog.get_logger()

PRICE_CHANGES = Counter(
    "plutus_price_changes_total",
    "Applied price changes",
    ["source"],
)
RECALCULATION_DURATION = Histogram(
    "plutus_recalculation_duration_seconds",
    "Time spent recalculating all package prices",
)

HISTORY_LIMIT = 500


class PricingRuleType(str, Enum):
    DEMAND_BASED = "demand_based"
    TIME_BASED = "time_based"
    INVENTORY_BASED = "inventory_based"
    COMPETITOR_BASED = "competitor_based"
    SEASONAL = "seasonal"


# =============================================================================
# Adjustments
# =============================================================================

class AdjustmentKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    SET_PRICE = "set_price"


@dataclass(frozen=True)
class Percentage:
    value: float
    kind: ClassVar[AdjustmentKind] = AdjustmentKind.PERCENTAGE

    def apply(self, base: float) -> float:
        return base * (1 + self.value / 100)


@dataclass(frozen=True)
class FixedAmount:
    value: float
    kind: ClassVar[AdjustmentKind] = AdjustmentKind.FIXED_AMOUNT

    def apply(self, base: float) -> float:
        return base + self.value


@dataclass(frozen=True)
class SetPrice:
    value: float
    kind: ClassVar[AdjustmentKind] = AdjustmentKind.SET_PRICE

    def apply(self, base: float) -> float:
        return self.value


PriceAdjustment = Union[Percentage, FixedAmount, SetPrice]

_ADJUSTMENT_TYPES = {cls.kind: cls for cls in (Percentage, FixedAmount, SetPrice)}


def adjustment_from_dict(data: Dict[str, Any]) -> PriceAdjustment:
    try:
        kind = AdjustmentKind(data["type"])
        return _ADJUSTMENT_TYPES[kind](value=float(data["value"]))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed price adjustment: {data!r}") from e


def adjustment_to_dict(adjustment: PriceAdjustment) -> Dict[str, Any]:
    return {"type": adjustment.kind.value, "value": adjustment.value}


@dataclass(frozen=True)
class RampUp:
    """Phase an adjustment in over `minutes`, in `steps` equal increments."""
    minutes: float
    steps: int = 1

    def fraction(self, elapsed: timedelta) -> float:
        duration = self.minutes * 60
        if duration <= 0 or elapsed.total_seconds() >= duration:
            return 1.0
        # The first step applies as soon as the rule matches
        step = math.floor(elapsed.total_seconds() / duration * self.steps) + 1
        return min(1.0, step / self.steps)


# =============================================================================
# Rules
# =============================================================================

@dataclass(frozen=True)
class DateWindow:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class PricingConditions:
    """All populated conditions must hold for a rule to match."""
    min_demand: Optional[float] = None
    max_demand: Optional[float] = None
    time_ranges: List[TimeRange] = field(default_factory=list)
    days_of_week: List[int] = field(default_factory=list)  # Monday=0
    min_inventory: Optional[int] = None
    max_inventory: Optional[int] = None
    competitor_price_below: Optional[float] = None
    competitor_price_above: Optional[float] = None
    date_windows: List[DateWindow] = field(default_factory=list)
    seasonal_event_ids: List[str] = field(default_factory=list)
    seasonal_categories: List[str] = field(default_factory=list)

    def matches(
        self,
        signals: "MarketSignals",
        local_now: datetime,
        active_events: List["SeasonalEvent"],
    ) -> bool:
        if self.min_demand is not None or self.max_demand is not None:
            demand = signals.demand_rate
            if demand is None:
                return False
            if self.min_demand is not None and demand < self.min_demand:
                return False
            if self.max_demand is not None and demand > self.max_demand:
                return False

        if self.min_inventory is not None or self.max_inventory is not None:
            inventory = signals.inventory_level
            if inventory is None:
                return False
            if self.min_inventory is not None and inventory < self.min_inventory:
                return False
            if self.max_inventory is not None and inventory > self.max_inventory:
                return False

        if self.competitor_price_below is not None or self.competitor_price_above is not None:
            competitor = signals.competitor_price
            if competitor is None:
                return False
            if self.competitor_price_below is not None and competitor >= self.competitor_price_below:
                return False
            if self.competitor_price_above is not None and competitor <= self.competitor_price_above:
                return False

        if self.days_of_week and local_now.weekday() not in self.days_of_week:
            return False
        if not in_time_ranges(self.time_ranges, local_now):
            return False
        if self.date_windows and not any(w.contains(local_now) for w in self.date_windows):
            return False

        if self.seasonal_event_ids or self.seasonal_categories:
            if not any(
                e.id in self.seasonal_event_ids or e.category.value in self.seasonal_categories
                for e in active_events
            ):
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_demand": self.min_demand,
            "max_demand": self.max_demand,
            "time_ranges": [r.to_dict() for r in self.time_ranges],
            "days_of_week": self.days_of_week,
            "min_inventory": self.min_inventory,
            "max_inventory": self.max_inventory,
            "competitor_price_below": self.competitor_price_below,
            "competitor_price_above": self.competitor_price_above,
            "date_windows": [
                {"start": to_iso(w.start), "end": to_iso(w.end)} for w in self.date_windows
            ],
            "seasonal_event_ids": self.seasonal_event_ids,
            "seasonal_categories": self.seasonal_categories,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PricingConditions":
        data = data or {}
        return cls(
            min_demand=data.get("min_demand"),
            max_demand=data.get("max_demand"),
            time_ranges=[TimeRange.from_dict(r) for r in data.get("time_ranges", [])],
            days_of_week=[int(d) for d in data.get("days_of_week", [])],
            min_inventory=data.get("min_inventory"),
            max_inventory=data.get("max_inventory"),
            competitor_price_below=data.get("competitor_price_below"),
            competitor_price_above=data.get("competitor_price_above"),
            date_windows=[
                DateWindow(start=parse_datetime(w["start"]), end=parse_datetime(w["end"]))
                for w in data.get("date_windows", [])
            ],
            seasonal_event_ids=list(data.get("seasonal_event_ids", [])),
            seasonal_categories=list(data.get("seasonal_categories", [])),
        )


@dataclass
class PricingLimits:
    minimum_price: Optional[float] = None
    maximum_price: Optional[float] = None
    max_daily_changes: Optional[int] = None
    min_minutes_between_changes: Optional[float] = None

    def clamp(self, price: float) -> float:
        if self.minimum_price is not None:
            price = max(price, self.minimum_price)
        if self.maximum_price is not None:
            price = min(price, self.maximum_price)
        return price

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PricingLimits":
        return cls(**(data or {}))


@dataclass
class PricingRule:
    id: str
    name: str
    type: PricingRuleType
    adjustment: PriceAdjustment
    priority: int = 0
    is_active: bool = True
    conditions: PricingConditions = field(default_factory=PricingConditions)
    limits: PricingLimits = field(default_factory=PricingLimits)
    ramp_up: Optional[RampUp] = None
    timezone: str = "UTC"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "priority": self.priority,
            "is_active": self.is_active,
            "conditions": self.conditions.to_dict(),
            "adjustment": adjustment_to_dict(self.adjustment),
            "limits": {
                "minimum_price": self.limits.minimum_price,
                "maximum_price": self.limits.maximum_price,
                "max_daily_changes": self.limits.max_daily_changes,
                "min_minutes_between_changes": self.limits.min_minutes_between_changes,
            },
            "ramp_up": (
                {"minutes": self.ramp_up.minutes, "steps": self.ramp_up.steps}
                if self.ramp_up else None
            ),
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingRule":
        ramp_up = data.get("ramp_up")
        return cls(
            id=str(data.get("id") or f"rule_{uuid.uuid4().hex[:8]}"),
            name=data.get("name", ""),
            type=PricingRuleType(data["type"]),
            priority=int(data.get("priority", 0)),
            is_active=bool(data.get("is_active", True)),
            conditions=PricingConditions.from_dict(data.get("conditions")),
            adjustment=adjustment_from_dict(data["adjustment"]),
            limits=PricingLimits.from_dict(data.get("limits")),
            ramp_up=RampUp(**ramp_up) if ramp_up else None,
            timezone=data.get("timezone") or "UTC",
        )


@dataclass
class PriceHistoryEntry:
    price: float
    timestamp: datetime
    reason: str
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "timestamp": to_iso(self.timestamp),
            "reason": self.reason,
            "rule_id": self.rule_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceHistoryEntry":
        return cls(
            price=float(data["price"]),
            timestamp=parse_datetime(data["timestamp"]),
            reason=data.get("reason", ""),
            rule_id=data.get("rule_id"),
        )


@dataclass
class DynamicPricing:
    """Pricing state of a single package."""
    package_id: str
    base_price: float
    current_price: float
    rules: List[PricingRule] = field(default_factory=list)
    price_history: List[PriceHistoryEntry] = field(default_factory=list)
    is_active: bool = True
    active_rule_id: Optional[str] = None
    active_rule_since: Optional[datetime] = None
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def active_rules(self) -> List[PricingRule]:
        """Active rules, highest priority first. Ties keep definition order."""
        return sorted(
            (r for r in self.rules if r.is_active),
            key=lambda r: r.priority,
            reverse=True,
        )

    def get_rule(self, rule_id: str) -> Optional[PricingRule]:
        return next((r for r in self.rules if r.id == rule_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "base_price": self.base_price,
            "current_price": self.current_price,
            "rules": [r.to_dict() for r in self.rules],
            "price_history": [h.to_dict() for h in self.price_history],
            "is_active": self.is_active,
            "active_rule_id": self.active_rule_id,
            "active_rule_since": to_iso(self.active_rule_since),
            "last_updated": to_iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DynamicPricing":
        return cls(
            package_id=str(data["package_id"]),
            base_price=float(data["base_price"]),
            current_price=float(data.get("current_price", data["base_price"])),
            rules=[PricingRule.from_dict(r) for r in data.get("rules", [])],
            price_history=[PriceHistoryEntry.from_dict(h) for h in data.get("price_history", [])],
            is_active=bool(data.get("is_active", True)),
            active_rule_id=data.get("active_rule_id"),
            active_rule_since=parse_datetime(data.get("active_rule_since")),
            last_updated=parse_datetime(data.get("last_updated")) or utcnow(),
        )


# =============================================================================
# Market signals
# =============================================================================

@dataclass
class MarketSignals:
    demand_rate: Optional[float] = None  # purchases per hour
    inventory_level: Optional[int] = None
    competitor_price: Optional[float] = None


class MarketSignalProvider(Protocol):
    async def get_signals(self, package_id: str) -> MarketSignals:
        ...


class StaticSignalProvider:
    """Signal provider returning configured values per package."""

    def __init__(self, signals: Optional[Dict[str, MarketSignals]] = None):
        self.signals: Dict[str, MarketSignals] = dict(signals or {})

    def set(self, package_id: str, signals: MarketSignals) -> None:
        self.signals[package_id] = signals

    async def get_signals(self, package_id: str) -> MarketSignals:
        return self.signals.get(package_id, MarketSignals())


def calculate_fallback_price(
    base_price: float,
    demand: Optional[float] = None,
    hour: Optional[int] = None,
    day_of_week: Optional[int] = None,
    inventory: Optional[int] = None,
) -> float:
    """
    Heuristic price for packages without rules.

    demand is normalized to 0..1 (yielding a 0.8x-1.2x factor); hour is
    0-23; day_of_week uses Monday=0.
    """
    multiplier = 1.0

    if demand is not None:
        multiplier *= 0.8 + demand * 0.4

    if hour is not None:
        if 18 <= hour <= 22:  # peak
            multiplier *= 1.2
        elif 2 <= hour <= 6:
            multiplier *= 0.8

    if day_of_week is not None:
        if day_of_week in (4, 5):  # Friday, Saturday
            multiplier *= 1.15
        elif day_of_week == 0:
            multiplier *= 0.9

    if inventory is not None:
        if inventory < 10:
            multiplier *= 1.3
        elif inventory > 100:
            multiplier *= 0.9

    return round(base_price * multiplier, 2)


# =============================================================================
# Service
# =============================================================================

class DynamicPricingService:
    """
    Service for package prices.

    `get_current_price` never raises. `recalculate` leaves state untouched
    when the save fails and re-raises StorageError; `recalculate_all`
    isolates per-package failures.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        signals: Optional[MarketSignalProvider] = None,
        clock: Clock = utcnow,
        price_change_epsilon: float = 0.01,
        active_events: Optional[Callable[[datetime], List["SeasonalEvent"]]] = None,
    ):
        self.persistence = persistence
        self.signals = signals or StaticSignalProvider()
        self.clock = clock
        self.price_change_epsilon = price_change_epsilon
        self.active_events = active_events or (lambda now: [])
        self._pricing: Dict[str, DynamicPricing] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self) -> None:
        for pricing in await self.persistence.load_dynamic_pricing():
            self._pricing[pricing.package_id] = pricing
        logger.info("Dynamic pricing loaded", packages=len(self._pricing))

    # =========================================================================
    # Administration
    # =========================================================================

    async def create_pricing(
        self,
        package_id: str,
        base_price: float,
        rules: Optional[List[Dict[str, Any]]] = None,
        is_active: bool = True,
    ) -> DynamicPricing:
        if package_id in self._pricing:
            raise ValidationError(f"Dynamic pricing for package {package_id} already exists")
        if base_price <= 0:
            raise ValidationError("Base price must be positive")

        parsed = [self._parse_rule(r) for r in rules or []]
        ids = [r.id for r in parsed]
        if len(ids) != len(set(ids)):
            raise ValidationError("Pricing rule ids must be unique")

        now = self.clock()
        pricing = DynamicPricing(
            package_id=package_id,
            base_price=base_price,
            current_price=base_price,
            rules=parsed,
            is_active=is_active,
            price_history=[PriceHistoryEntry(price=base_price, timestamp=now, reason="initial")],
            last_updated=now,
        )
        await self.persistence.save_dynamic_pricing(pricing)
        self._pricing[package_id] = pricing

        logger.info(
            "Dynamic pricing created",
            package_id=package_id,
            base_price=base_price,
            rules=len(parsed),
        )
        return pricing

    async def update_pricing(
        self,
        package_id: str,
        base_price: Optional[float] = None,
        is_active: Optional[bool] = None,
    ) -> DynamicPricing:
        pricing = self._require(package_id)
        if base_price is not None and base_price <= 0:
            raise ValidationError("Base price must be positive")

        async with self._locks[package_id]:
            snapshot = copy.deepcopy(pricing)
            if base_price is not None:
                pricing.base_price = base_price
            if is_active is not None:
                pricing.is_active = is_active
            pricing.last_updated = self.clock()
            await self._save_or_restore(package_id, pricing, snapshot)

        logger.info("Dynamic pricing updated", package_id=package_id, base_price=pricing.base_price)
        return pricing

    async def add_rule(self, package_id: str, rule: Dict[str, Any]) -> PricingRule:
        pricing = self._require(package_id)
        parsed = self._parse_rule(rule)
        if pricing.get_rule(parsed.id):
            raise ValidationError(f"Pricing rule {parsed.id} already exists")

        async with self._locks[package_id]:
            snapshot = copy.deepcopy(pricing)
            pricing.rules.append(parsed)
            await self._save_or_restore(package_id, pricing, snapshot)

        logger.info("Pricing rule added", package_id=package_id, rule_id=parsed.id)
        return parsed

    async def remove_rule(self, package_id: str, rule_id: str) -> None:
        pricing = self._require(package_id)
        if not pricing.get_rule(rule_id):
            raise NotFoundError("Pricing rule", rule_id)

        async with self._locks[package_id]:
            snapshot = copy.deepcopy(pricing)
            pricing.rules = [r for r in pricing.rules if r.id != rule_id]
            if pricing.active_rule_id == rule_id:
                pricing.active_rule_id = None
                pricing.active_rule_since = None
            await self._save_or_restore(package_id, pricing, snapshot)

        logger.info("Pricing rule removed", package_id=package_id, rule_id=rule_id)

    @staticmethod
    def _parse_rule(data: Dict[str, Any]) -> PricingRule:
        try:
            rule = PricingRule.from_dict(data)
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed pricing rule: {e}") from e

        limits = rule.limits
        if (
            limits.minimum_price is not None
            and limits.maximum_price is not None
            and limits.minimum_price > limits.maximum_price
        ):
            raise ValidationError("Rule minimum price exceeds its maximum price")
        if limits.minimum_price is not None and limits.minimum_price < 0:
            raise ValidationError("Rule minimum price cannot be negative")
        if limits.max_daily_changes is not None and limits.max_daily_changes < 1:
            raise ValidationError("max_daily_changes must be at least 1")
        if rule.ramp_up and (rule.ramp_up.minutes < 0 or rule.ramp_up.steps < 1):
            raise ValidationError("Ramp-up needs a non-negative duration and at least one step")
        return rule

    def _require(self, package_id: str) -> DynamicPricing:
        pricing = self._pricing.get(package_id)
        if not pricing:
            raise NotFoundError("Dynamic pricing", package_id)
        return pricing

    async def _save_or_restore(
        self,
        package_id: str,
        pricing: DynamicPricing,
        snapshot: DynamicPricing,
    ) -> None:
        try:
            await self.persistence.save_dynamic_pricing(pricing)
        except StorageError:
            self._pricing[package_id] = snapshot
            raise

    def get_pricing(self, package_id: str) -> Optional[DynamicPricing]:
        return self._pricing.get(package_id)

    def get_all_pricing(self) -> List[DynamicPricing]:
        return list(self._pricing.values())

    # =========================================================================
    # Request path
    # =========================================================================

    def get_current_price(self, package_id: str) -> Optional[float]:
        """Current price, or None for unknown or inactive packages."""
        pricing = self._pricing.get(package_id)
        if not pricing or not pricing.is_active:
            return None
        return pricing.current_price

    # =========================================================================
    # Recalculation
    # =========================================================================

    async def _get_signals(self, package_id: str) -> MarketSignals:
        try:
            return await self.signals.get_signals(package_id)
        except Exception as e:
            logger.warning("Market signals unavailable", package_id=package_id, error=str(e))
            return MarketSignals()

    def _select_rule(
        self,
        pricing: DynamicPricing,
        signals: MarketSignals,
        now: datetime,
    ) -> Tuple[Optional[PricingRule], List[PricingRule]]:
        rules = pricing.active_rules
        events = self.active_events(now) if any(
            r.conditions.seasonal_event_ids or r.conditions.seasonal_categories for r in rules
        ) else []
        for rule in rules:
            local_now = now.astimezone(get_zone(rule.timezone))
            if rule.conditions.matches(signals, local_now, events):
                return rule, rules
        return None, rules

    @staticmethod
    def _is_throttled(pricing: DynamicPricing, limits: PricingLimits, now: datetime) -> bool:
        changes = [h for h in pricing.price_history if h.reason != "initial"]
        if limits.max_daily_changes is not None:
            today = now.date()
            changed_today = sum(1 for h in changes if h.timestamp.date() == today)
            if changed_today >= limits.max_daily_changes:
                return True
        if limits.min_minutes_between_changes is not None and changes:
            since_last = now - changes[-1].timestamp
            if since_last < timedelta(minutes=limits.min_minutes_between_changes):
                return True
        return False

    async def recalculate(
        self,
        package_id: str,
        signals: Optional[MarketSignals] = None,
    ) -> float:
        """
        Re-evaluate the package's rules and update its current price.

        Returns the (possibly unchanged) current price.
        """
        pricing = self._require(package_id)
        if signals is None:
            signals = await self._get_signals(package_id)

        async with self._locks[package_id]:
            pricing = self._require(package_id)
            now = self.clock()
            rule, active_rules = self._select_rule(pricing, signals, now)
            snapshot = copy.deepcopy(pricing)
            dirty = False

            if rule is None:
                new_price = pricing.base_price
                # Revert toward base, still bounded by the dominant rule's limits
                limits = active_rules[0].limits if active_rules else PricingLimits()
                reason = "base price"
                if pricing.active_rule_id is not None:
                    pricing.active_rule_id = None
                    pricing.active_rule_since = None
                    dirty = True
            else:
                if pricing.active_rule_id != rule.id:
                    pricing.active_rule_id = rule.id
                    pricing.active_rule_since = now
                    dirty = True
                target = rule.adjustment.apply(pricing.base_price)
                if rule.ramp_up:
                    fraction = rule.ramp_up.fraction(now - pricing.active_rule_since)
                    target = pricing.base_price + (target - pricing.base_price) * fraction
                new_price = target
                limits = rule.limits
                reason = f"rule {rule.name or rule.id}"

            new_price = max(0.0, limits.clamp(new_price))
            changed = abs(new_price - pricing.current_price) >= self.price_change_epsilon
            if changed and self._is_throttled(pricing, limits, now):
                # A throttled price must still sit inside the current limits
                bounded = max(0.0, limits.clamp(pricing.current_price))
                if abs(bounded - pricing.current_price) < self.price_change_epsilon:
                    logger.debug("Price change throttled", package_id=package_id)
                    changed = False
                else:
                    new_price = bounded
                    reason = f"{reason} (limit)"

            if changed:
                previous = pricing.current_price
                pricing.current_price = new_price
                pricing.last_updated = now
                pricing.price_history.append(
                    PriceHistoryEntry(
                        price=new_price,
                        timestamp=now,
                        reason=reason,
                        rule_id=rule.id if rule else None,
                    )
                )
                del pricing.price_history[:-HISTORY_LIMIT]
                dirty = True

            if dirty:
                await self._save_or_restore(package_id, pricing, snapshot)

            if changed:
                PRICE_CHANGES.labels(source="rule" if rule else "base").inc()
                logger.info(
                    "Price changed",
                    package_id=package_id,
                    previous=previous,
                    price=new_price,
                    rule_id=rule.id if rule else None,
                )
            return self._pricing[package_id].current_price

    async def recalculate_all(self) -> Dict[str, float]:
        """Recalculate every active package; a failing package is skipped."""
        start = time.perf_counter()
        prices: Dict[str, float] = {}
        for package_id, pricing in list(self._pricing.items()):
            if not pricing.is_active:
                continue
            try:
                prices[package_id] = await self.recalculate(package_id)
            except Exception as e:
                logger.error(
                    "Price recalculation failed",
                    package_id=package_id,
                    error=str(e),
                )
        RECALCULATION_DURATION.observe(time.perf_counter() - start)
        return prices
