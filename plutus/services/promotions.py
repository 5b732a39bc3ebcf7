"""
Promotions Service

Promotion registry, eligibility evaluation and discount computation.
Features:
- Tagged discount configurations
- Package, audience and condition checks
- Atomic usage limits (global, per user, per day)
- Redemption analytics
- Scheduled activation and expiry
"""

import asyncio
import copy
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

import structlog
from prometheus_client import Counter

from plutus.exceptions import InvalidStateError, NotFoundError, StorageError, ValidationError
from plutus.services.persistence import PersistencePort
from plutus.services.targeting import AudienceTargeting, IdentityProvider, UserProfile
from plutus.services.timeutils import (
    Clock,
    TimeRange,
    get_zone,
    in_time_ranges,
    parse_datetime,
    to_iso,
    utcnow,
)

logger = structlog.get_logger()

REDEMPTIONS = Counter(
    "plutus_promotion_redemptions_total",
    "Promotion apply attempts by outcome",
    ["outcome"],
)


class PromotionStatus(str, Enum):
    """Promotion lifecycle status."""
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    COMPLETED = "completed"


class IneligibleReason(str, Enum):
    """Why a promotion did not apply."""
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    OUTSIDE_WINDOW = "outside_window"
    PACKAGE_NOT_ELIGIBLE = "package_not_eligible"
    USER_NOT_ELIGIBLE = "user_not_eligible"
    BELOW_MINIMUM_PURCHASE = "below_minimum_purchase"
    FIRST_PURCHASE_ONLY = "first_purchase_only"
    OUTSIDE_TIME_OF_DAY = "outside_time_of_day"
    OUTSIDE_DAY_OF_WEEK = "outside_day_of_week"
    NOT_IN_BUNDLE = "not_in_bundle"
    EXHAUSTED = "exhausted"
    USER_LIMIT_REACHED = "user_limit_reached"
    DAILY_LIMIT_REACHED = "daily_limit_reached"
    STORAGE_UNAVAILABLE = "storage_unavailable"


# =============================================================================
# Discount configurations
# =============================================================================

class DiscountKind(str, Enum):
    PERCENTAGE_OFF = "percentage_off"
    FIXED_OFF = "fixed_off"
    BONUS_COINS = "bonus_coins"
    BUNDLE = "bundle"
    FLASH_SALE = "flash_sale"
    SEASONAL_MULTIPLIER = "seasonal_multiplier"


@dataclass(frozen=True)
class PercentageOff:
    percentage: float
    kind: ClassVar[DiscountKind] = DiscountKind.PERCENTAGE_OFF


@dataclass(frozen=True)
class FixedOff:
    amount: float
    kind: ClassVar[DiscountKind] = DiscountKind.FIXED_OFF


@dataclass(frozen=True)
class BonusCoins:
    """Either a fixed grant or a percentage of the package's base coins."""
    coins: Optional[int] = None
    percentage: Optional[float] = None
    kind: ClassVar[DiscountKind] = DiscountKind.BONUS_COINS


@dataclass(frozen=True)
class Bundle:
    package_ids: Tuple[str, ...]
    percentage: float
    kind: ClassVar[DiscountKind] = DiscountKind.BUNDLE


@dataclass(frozen=True)
class FlashSale:
    percentage: float
    kind: ClassVar[DiscountKind] = DiscountKind.FLASH_SALE


@dataclass(frozen=True)
class SeasonalMultiplier:
    """Scales the package's bonus coins."""
    multiplier: float
    kind: ClassVar[DiscountKind] = DiscountKind.SEASONAL_MULTIPLIER


DiscountConfig = Union[PercentageOff, FixedOff, BonusCoins, Bundle, FlashSale, SeasonalMultiplier]

_DISCOUNT_TYPES = {
    cls.kind: cls
    for cls in (PercentageOff, FixedOff, BonusCoins, Bundle, FlashSale, SeasonalMultiplier)
}


def discount_to_dict(discount: DiscountConfig) -> Dict[str, Any]:
    data = asdict(discount)
    if isinstance(discount, Bundle):
        data["package_ids"] = list(discount.package_ids)
    return {"kind": discount.kind.value, **data}


def discount_from_dict(data: Dict[str, Any]) -> DiscountConfig:
    """Build the discount variant named by `kind`."""
    try:
        kind = DiscountKind(data["kind"])
    except (KeyError, ValueError) as e:
        raise ValidationError(f"Unknown discount kind: {data.get('kind')!r}") from e

    fields = {k: v for k, v in data.items() if k != "kind"}
    if kind == DiscountKind.BUNDLE:
        fields["package_ids"] = tuple(fields.get("package_ids", ()))
    try:
        return _DISCOUNT_TYPES[kind](**fields)
    except TypeError as e:
        raise ValidationError(f"Malformed {kind.value} discount: {e}") from e


def validate_discount(discount: DiscountConfig) -> None:
    if isinstance(discount, (PercentageOff, FlashSale, Bundle)):
        if not 0 <= discount.percentage <= 100:
            raise ValidationError("Discount percentage must be between 0 and 100")
        if isinstance(discount, Bundle) and not discount.package_ids:
            raise ValidationError("Bundle discount needs at least one package")
    elif isinstance(discount, FixedOff):
        if discount.amount < 0:
            raise ValidationError("Fixed discount cannot be negative")
    elif isinstance(discount, BonusCoins):
        if (discount.coins is None) == (discount.percentage is None):
            raise ValidationError("Bonus coins need exactly one of coins or percentage")
        if (discount.coins or 0) < 0 or (discount.percentage or 0) < 0:
            raise ValidationError("Bonus coins cannot be negative")
    elif isinstance(discount, SeasonalMultiplier):
        if discount.multiplier <= 0:
            raise ValidationError("Seasonal multiplier must be positive")
    else:
        raise ValidationError(f"Unsupported discount type: {type(discount).__name__}")


def calculate_discount(
    discount: DiscountConfig,
    amount: float,
    package_data: Dict[str, Any],
) -> Tuple[float, int, Optional[IneligibleReason]]:
    """Return (discount amount, bonus coins, ineligible reason)."""
    if isinstance(discount, (PercentageOff, FlashSale)):
        return amount * discount.percentage / 100, 0, None
    if isinstance(discount, FixedOff):
        return min(discount.amount, amount), 0, None
    if isinstance(discount, BonusCoins):
        if discount.coins is not None:
            return 0.0, int(discount.coins), None
        base_coins = package_data.get("gold_coins", 0) or 0
        return 0.0, round(base_coins * (discount.percentage or 0) / 100), None
    if isinstance(discount, Bundle):
        package_id = _package_id(package_data)
        if package_id not in discount.package_ids:
            return 0.0, 0, IneligibleReason.NOT_IN_BUNDLE
        return amount * discount.percentage / 100, 0, None
    if isinstance(discount, SeasonalMultiplier):
        bonus = package_data.get("bonus_coins", 0) or 0
        return 0.0, round(bonus * discount.multiplier), None
    raise TypeError(f"Unsupported discount type: {type(discount).__name__}")


def _package_id(package_data: Dict[str, Any]) -> Optional[str]:
    value = package_data.get("id", package_data.get("package_id"))
    return str(value) if value is not None else None


# =============================================================================
# Promotion model
# =============================================================================

@dataclass
class UsageLimits:
    total_usage_limit: Optional[int] = None
    user_usage_limit: Optional[int] = None
    daily_usage_limit: Optional[int] = None
    maximum_discount_amount: Optional[float] = None
    usage_count: int = 0
    user_usage: Dict[str, int] = field(default_factory=dict)
    daily_usage: Dict[str, int] = field(default_factory=dict)  # ISO date -> uses

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UsageLimits":
        data = data or {}
        return cls(
            total_usage_limit=data.get("total_usage_limit"),
            user_usage_limit=data.get("user_usage_limit"),
            daily_usage_limit=data.get("daily_usage_limit"),
            maximum_discount_amount=data.get("maximum_discount_amount"),
            usage_count=int(data.get("usage_count", 0)),
            user_usage=dict(data.get("user_usage", {})),
            daily_usage=dict(data.get("daily_usage", {})),
        )


@dataclass
class PromotionConditions:
    minimum_purchase_amount: Optional[float] = None
    first_purchase_only: bool = False
    time_ranges: List[TimeRange] = field(default_factory=list)
    days_of_week: List[int] = field(default_factory=list)  # Monday=0
    stackable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minimum_purchase_amount": self.minimum_purchase_amount,
            "first_purchase_only": self.first_purchase_only,
            "time_ranges": [r.to_dict() for r in self.time_ranges],
            "days_of_week": self.days_of_week,
            "stackable": self.stackable,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PromotionConditions":
        data = data or {}
        return cls(
            minimum_purchase_amount=data.get("minimum_purchase_amount"),
            first_purchase_only=bool(data.get("first_purchase_only", False)),
            time_ranges=[TimeRange.from_dict(r) for r in data.get("time_ranges", [])],
            days_of_week=[int(d) for d in data.get("days_of_week", [])],
            stackable=bool(data.get("stackable", False)),
        )


@dataclass
class PromotionAnalytics:
    total_uses: int = 0
    unique_users: int = 0
    total_revenue: float = 0.0
    total_savings_provided: float = 0.0
    total_bonus_coins: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PromotionAnalytics":
        return cls(**(data or {}))


@dataclass
class Promotion:
    """A time-boxed, prioritized discount offer."""
    id: str
    name: str
    status: PromotionStatus
    discount: DiscountConfig
    start_date: datetime
    end_date: datetime
    priority: int = 0
    timezone: str = "UTC"
    description: str = ""
    target_packages: List[str] = field(default_factory=list)
    targeting: AudienceTargeting = field(default_factory=AudienceTargeting)
    usage_limits: UsageLimits = field(default_factory=UsageLimits)
    conditions: PromotionConditions = field(default_factory=PromotionConditions)
    display: Dict[str, Any] = field(default_factory=dict)
    analytics: PromotionAnalytics = field(default_factory=PromotionAnalytics)
    seasonal_event_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_in_window(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date

    def applies_to_package(self, package_id: Optional[str]) -> bool:
        return not self.target_packages or package_id in self.target_packages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority,
            "start_date": to_iso(self.start_date),
            "end_date": to_iso(self.end_date),
            "timezone": self.timezone,
            "discount": discount_to_dict(self.discount),
            "target_packages": self.target_packages,
            "targeting": self.targeting.to_dict(),
            "usage_limits": asdict(self.usage_limits),
            "conditions": self.conditions.to_dict(),
            "display": self.display,
            "analytics": asdict(self.analytics),
            "seasonal_event_id": self.seasonal_event_id,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Promotion":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description", ""),
            status=PromotionStatus(data.get("status", PromotionStatus.DRAFT.value)),
            priority=int(data.get("priority", 0)),
            start_date=parse_datetime(data["start_date"]),
            end_date=parse_datetime(data["end_date"]),
            timezone=data.get("timezone") or "UTC",
            discount=discount_from_dict(data["discount"]),
            target_packages=[str(p) for p in data.get("target_packages", [])],
            targeting=AudienceTargeting.from_dict(data.get("targeting")),
            usage_limits=UsageLimits.from_dict(data.get("usage_limits")),
            conditions=PromotionConditions.from_dict(data.get("conditions")),
            display=dict(data.get("display") or {}),
            analytics=PromotionAnalytics.from_dict(data.get("analytics")),
            seasonal_event_id=data.get("seasonal_event_id"),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
        )


@dataclass
class DiscountResult:
    """Outcome of applying a promotion. Never an exception."""
    success: bool
    original_amount: float
    discount_amount: float = 0.0
    final_amount: float = 0.0
    bonus_coins: int = 0
    promotion_id: Optional[str] = None
    reason: Optional[IneligibleReason] = None

    @classmethod
    def ineligible(
        cls,
        amount: float,
        reason: IneligibleReason,
        promotion_id: Optional[str] = None,
    ) -> "DiscountResult":
        return cls(
            success=False,
            original_amount=amount,
            final_amount=max(0.0, amount),
            promotion_id=promotion_id,
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "original_amount": self.original_amount,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
            "bonus_coins": self.bonus_coins,
            "promotion_id": self.promotion_id,
            "reason": self.reason.value if self.reason else None,
        }


def check_usage_limits(
    promotion: Promotion,
    user_id: Optional[str],
    day: str,
) -> Optional[IneligibleReason]:
    """Pure usage-limit predicate; None means redemption is allowed."""
    limits = promotion.usage_limits
    if limits.total_usage_limit is not None and limits.usage_count >= limits.total_usage_limit:
        return IneligibleReason.EXHAUSTED
    if (
        user_id is not None
        and limits.user_usage_limit is not None
        and limits.user_usage.get(user_id, 0) >= limits.user_usage_limit
    ):
        return IneligibleReason.USER_LIMIT_REACHED
    if (
        limits.daily_usage_limit is not None
        and limits.daily_usage.get(day, 0) >= limits.daily_usage_limit
    ):
        return IneligibleReason.DAILY_LIMIT_REACHED
    return None


# =============================================================================
# Service
# =============================================================================

class PromotionService:
    """
    Service for promotion definitions and redemption.

    Eligibility and apply paths never raise; administration paths raise
    ValidationError / NotFoundError / InvalidStateError / StorageError.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        identity: Optional[IdentityProvider] = None,
        clock: Clock = utcnow,
    ):
        self.persistence = persistence
        self.identity = identity
        self.clock = clock
        self._promotions: Dict[str, Promotion] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._timers: Dict[str, asyncio.Task] = {}

    async def load(self) -> None:
        for promotion in await self.persistence.load_promotions():
            self._promotions[promotion.id] = promotion
        logger.info("Promotions loaded", promotions=len(self._promotions))

    # =========================================================================
    # Administration
    # =========================================================================

    async def create_promotion(self, definition: Dict[str, Any]) -> Promotion:
        """Validate a definition and register the promotion."""
        data = {
            **definition,
            "id": definition.get("id") or f"promo_{uuid.uuid4().hex[:12]}",
            "usage_limits": {
                **(definition.get("usage_limits") or {}),
                "usage_count": 0,
                "user_usage": {},
                "daily_usage": {},
            },
            "analytics": None,
        }
        try:
            promotion = Promotion.from_dict(data)
            if promotion.start_date is None or promotion.end_date is None:
                raise ValidationError("Promotion start and end dates are required")
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed promotion definition: {e}") from e

        now = self.clock()
        promotion.created_at = now
        promotion.updated_at = now
        if promotion.status == PromotionStatus.ACTIVE and promotion.start_date > now:
            promotion.status = PromotionStatus.SCHEDULED

        return await self.register(promotion)

    async def register(self, promotion: Promotion) -> Promotion:
        """Validate and persist a fully built promotion."""
        if promotion.id in self._promotions:
            raise ValidationError(f"Promotion {promotion.id} already exists")
        self.validate_promotion(promotion)

        await self.persistence.save_promotion(promotion)
        self._promotions[promotion.id] = promotion

        logger.info(
            "Promotion created",
            promotion_id=promotion.id,
            name=promotion.name,
            status=promotion.status.value,
            kind=promotion.discount.kind.value,
        )
        return promotion

    @staticmethod
    def validate_promotion(promotion: Promotion) -> None:
        if not promotion.name:
            raise ValidationError("Promotion name is required")
        if promotion.end_date <= promotion.start_date:
            raise ValidationError("Promotion end date must be after its start date")
        validate_discount(promotion.discount)

        limits = promotion.usage_limits
        for name in ("total_usage_limit", "user_usage_limit", "daily_usage_limit"):
            value = getattr(limits, name)
            if value is not None and value < 1:
                raise ValidationError(f"{name} must be at least 1")
        if limits.maximum_discount_amount is not None and limits.maximum_discount_amount < 0:
            raise ValidationError("maximum_discount_amount cannot be negative")
        if any(not 0 <= d <= 6 for d in promotion.conditions.days_of_week):
            raise ValidationError("days_of_week must be between 0 (Monday) and 6 (Sunday)")

    def get_promotion(self, promotion_id: str) -> Optional[Promotion]:
        return self._promotions.get(promotion_id)

    def get_all_promotions(self) -> List[Promotion]:
        return sorted(self._promotions.values(), key=lambda p: p.created_at, reverse=True)

    async def _set_status(
        self,
        promotion_id: str,
        allowed_from: Tuple[PromotionStatus, ...],
        to: PromotionStatus,
    ) -> Promotion:
        promotion = self._promotions.get(promotion_id)
        if not promotion:
            raise NotFoundError("Promotion", promotion_id)
        async with self._locks[promotion_id]:
            if promotion.status not in allowed_from:
                raise InvalidStateError(
                    f"Cannot move promotion from {promotion.status.value} to {to.value}"
                )
            previous = promotion.status
            promotion.status = to
            promotion.updated_at = self.clock()
            try:
                await self.persistence.save_promotion(promotion)
            except StorageError:
                promotion.status = previous
                raise
        logger.info(
            "Promotion status changed",
            promotion_id=promotion_id,
            previous=previous.value,
            status=to.value,
        )
        return promotion

    async def activate_promotion(self, promotion_id: str) -> Promotion:
        return await self._set_status(
            promotion_id,
            (PromotionStatus.DRAFT, PromotionStatus.SCHEDULED, PromotionStatus.PAUSED),
            PromotionStatus.ACTIVE,
        )

    async def pause_promotion(self, promotion_id: str) -> Promotion:
        return await self._set_status(
            promotion_id, (PromotionStatus.ACTIVE,), PromotionStatus.PAUSED
        )

    async def resume_promotion(self, promotion_id: str) -> Promotion:
        return await self._set_status(
            promotion_id, (PromotionStatus.PAUSED,), PromotionStatus.ACTIVE
        )

    async def complete_promotion(self, promotion_id: str) -> Promotion:
        return await self._set_status(
            promotion_id,
            (PromotionStatus.ACTIVE, PromotionStatus.PAUSED, PromotionStatus.EXPIRED),
            PromotionStatus.COMPLETED,
        )

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_activation(self, promotion_id: str, at: datetime) -> asyncio.Task:
        """Arm a timer that flips a scheduled promotion to active at `at`."""
        existing = self._timers.get(promotion_id)
        if existing and not existing.done():
            return existing
        task = asyncio.create_task(self._activate_at(promotion_id, at))
        self._timers[promotion_id] = task
        return task

    async def _activate_at(self, promotion_id: str, at: datetime) -> None:
        delay = (at - self.clock()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)
        promotion = self._promotions.get(promotion_id)
        if not promotion or promotion.status != PromotionStatus.SCHEDULED:
            return
        try:
            await self.activate_promotion(promotion_id)
        except (InvalidStateError, StorageError) as e:
            # The periodic status sweep retries
            logger.warning("Scheduled activation failed", promotion_id=promotion_id, error=str(e))
        finally:
            self._timers.pop(promotion_id, None)

    async def cancel_timers(self) -> None:
        timers = list(self._timers.values())
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()

    async def refresh_statuses(self) -> int:
        """Activate due scheduled promotions and expire finished ones."""
        now = self.clock()
        changed = 0
        for promotion in list(self._promotions.values()):
            target = None
            if promotion.status in (PromotionStatus.SCHEDULED, PromotionStatus.ACTIVE):
                if now > promotion.end_date:
                    target = PromotionStatus.EXPIRED
                elif promotion.status == PromotionStatus.SCHEDULED and now >= promotion.start_date:
                    target = PromotionStatus.ACTIVE
            if target is None:
                continue
            try:
                await self._set_status(promotion.id, (promotion.status,), target)
                changed += 1
            except (InvalidStateError, StorageError) as e:
                logger.warning(
                    "Promotion status refresh failed",
                    promotion_id=promotion.id,
                    error=str(e),
                )
        return changed

    # =========================================================================
    # Eligibility
    # =========================================================================

    def _local_now(self, promotion: Promotion, now: datetime) -> datetime:
        return now.astimezone(get_zone(promotion.timezone))

    async def _resolve_profile(self, user_id: Optional[str]) -> Optional[UserProfile]:
        if user_id is None or self.identity is None:
            return UserProfile(id=user_id) if user_id else None
        try:
            return await self.identity.get_user(user_id)
        except Exception as e:
            logger.warning("Identity lookup failed", user_id=user_id, error=str(e))
            return None

    async def list_active(
        self,
        package_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Promotion]:
        """Promotions currently redeemable for the package/user, highest priority first."""
        now = self.clock()
        profile: Optional[UserProfile] = None
        profile_loaded = False
        active: List[Promotion] = []

        for promotion in self._promotions.values():
            if promotion.status != PromotionStatus.ACTIVE or not promotion.is_in_window(now):
                continue
            if package_id is not None and not promotion.applies_to_package(package_id):
                continue
            if not promotion.targeting.is_empty:
                if not profile_loaded:
                    profile = await self._resolve_profile(user_id)
                    profile_loaded = True
                if not promotion.targeting.matches(profile):
                    continue
            day = self._local_now(promotion, now).date().isoformat()
            if check_usage_limits(promotion, user_id, day):
                continue
            active.append(promotion)

        return sorted(active, key=lambda p: p.priority, reverse=True)

    async def apply(
        self,
        promotion_id: str,
        original_amount: float,
        package_data: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> DiscountResult:
        """Evaluate and redeem a promotion against a purchase amount."""
        try:
            result = await self._apply(promotion_id, original_amount, package_data or {}, user_id)
        except Exception as e:
            logger.error(
                "Promotion apply failed",
                promotion_id=promotion_id,
                error=str(e),
                exc_info=True,
            )
            result = DiscountResult.ineligible(
                original_amount, IneligibleReason.STORAGE_UNAVAILABLE, promotion_id
            )
        REDEMPTIONS.labels(outcome=result.reason.value if result.reason else "applied").inc()
        return result

    async def _apply(
        self,
        promotion_id: str,
        amount: float,
        package_data: Dict[str, Any],
        user_id: Optional[str],
    ) -> DiscountResult:
        promotion = self._promotions.get(promotion_id)
        if not promotion:
            return DiscountResult.ineligible(amount, IneligibleReason.NOT_FOUND, promotion_id)

        reason = await self._check_conditions(promotion, amount, package_data, user_id)
        if reason:
            return DiscountResult.ineligible(amount, reason, promotion_id)

        discount_amount, bonus_coins, reason = calculate_discount(
            promotion.discount, amount, package_data
        )
        if reason:
            return DiscountResult.ineligible(amount, reason, promotion_id)

        cap = promotion.usage_limits.maximum_discount_amount
        if cap is not None:
            discount_amount = min(discount_amount, cap)
        discount_amount = round(max(0.0, discount_amount), 2)
        final_amount = round(max(0.0, amount - discount_amount), 2)

        async with self._locks[promotion_id]:
            now = self.clock()
            day = self._local_now(promotion, now).date().isoformat()
            reason = check_usage_limits(promotion, user_id, day)
            if reason:
                return DiscountResult.ineligible(amount, reason, promotion_id)

            limits_before = copy.deepcopy(promotion.usage_limits)
            analytics_before = copy.deepcopy(promotion.analytics)
            self._record_usage(promotion, user_id, day, final_amount, discount_amount, bonus_coins)
            promotion.updated_at = now
            try:
                await self.persistence.save_promotion(promotion)
            except StorageError as e:
                promotion.usage_limits = limits_before
                promotion.analytics = analytics_before
                logger.warning(
                    "Promotion redemption not persisted; rolled back",
                    promotion_id=promotion_id,
                    error=str(e),
                )
                return DiscountResult.ineligible(
                    amount, IneligibleReason.STORAGE_UNAVAILABLE, promotion_id
                )

        logger.info(
            "Promotion applied",
            promotion_id=promotion_id,
            user_id=user_id,
            discount=discount_amount,
            bonus_coins=bonus_coins,
        )
        return DiscountResult(
            success=True,
            original_amount=amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
            bonus_coins=bonus_coins,
            promotion_id=promotion_id,
        )

    async def _check_conditions(
        self,
        promotion: Promotion,
        amount: float,
        package_data: Dict[str, Any],
        user_id: Optional[str],
    ) -> Optional[IneligibleReason]:
        now = self.clock()
        if promotion.status != PromotionStatus.ACTIVE:
            return IneligibleReason.NOT_ACTIVE
        if not promotion.is_in_window(now):
            return IneligibleReason.OUTSIDE_WINDOW
        if not promotion.applies_to_package(_package_id(package_data)):
            return IneligibleReason.PACKAGE_NOT_ELIGIBLE

        conditions = promotion.conditions
        needs_profile = not promotion.targeting.is_empty or conditions.first_purchase_only
        profile = await self._resolve_profile(user_id) if needs_profile else None
        if not promotion.targeting.matches(profile):
            return IneligibleReason.USER_NOT_ELIGIBLE

        if (
            conditions.minimum_purchase_amount is not None
            and amount < conditions.minimum_purchase_amount
        ):
            return IneligibleReason.BELOW_MINIMUM_PURCHASE
        if conditions.first_purchase_only and (profile is None or profile.purchase_count > 0):
            return IneligibleReason.FIRST_PURCHASE_ONLY

        local = self._local_now(promotion, now)
        if conditions.days_of_week and local.weekday() not in conditions.days_of_week:
            return IneligibleReason.OUTSIDE_DAY_OF_WEEK
        if not in_time_ranges(conditions.time_ranges, local):
            return IneligibleReason.OUTSIDE_TIME_OF_DAY
        return None

    @staticmethod
    def _record_usage(
        promotion: Promotion,
        user_id: Optional[str],
        day: str,
        final_amount: float,
        discount_amount: float,
        bonus_coins: int,
    ) -> None:
        limits = promotion.usage_limits
        limits.usage_count += 1
        limits.daily_usage[day] = limits.daily_usage.get(day, 0) + 1

        analytics = promotion.analytics
        if user_id is not None:
            if limits.user_usage.get(user_id, 0) == 0:
                analytics.unique_users += 1
            limits.user_usage[user_id] = limits.user_usage.get(user_id, 0) + 1

        analytics.total_uses += 1
        analytics.total_revenue += final_amount
        analytics.total_savings_provided += discount_amount
        analytics.total_bonus_coins += bonus_coins
