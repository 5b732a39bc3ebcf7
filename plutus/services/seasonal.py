"""
Seasonal Events Service

Time-boxed campaigns that spawn promotions from templates.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from plutus.exceptions import NotFoundError, StorageError, ValidationError
from plutus.services.persistence import PersistencePort
from plutus.services.promotions import (
    Promotion,
    PromotionConditions,
    PromotionService,
    PromotionStatus,
    SeasonalMultiplier,
    UsageLimits,
    discount_from_dict,
)
from plutus.services.targeting import AudienceTargeting
from plutus.services.timeutils import Clock, parse_datetime, to_iso, utcnow

logger = structlog.get_logger()


class SeasonalCategory(str, Enum):
    HOLIDAY = "holiday"
    SPECIAL = "special"
    WEEKLY = "weekly"
    FLASH = "flash"


@dataclass
class PromotionTemplate:
    """Blueprint for a promotion spawned by a seasonal event."""
    id: str
    name: str
    discount: Dict[str, Any] = field(default_factory=dict)
    priority: int = 0
    description: str = ""
    target_packages: List[str] = field(default_factory=list)
    targeting: Dict[str, Any] = field(default_factory=dict)
    usage_limits: Dict[str, Any] = field(default_factory=dict)
    conditions: Dict[str, Any] = field(default_factory=dict)
    display: Dict[str, Any] = field(default_factory=dict)
    use_event_multiplier: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "discount": self.discount,
            "priority": self.priority,
            "description": self.description,
            "target_packages": self.target_packages,
            "targeting": self.targeting,
            "usage_limits": self.usage_limits,
            "conditions": self.conditions,
            "display": self.display,
            "use_event_multiplier": self.use_event_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromotionTemplate":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            discount=dict(data.get("discount") or {}),
            priority=int(data.get("priority", 0)),
            description=data.get("description", ""),
            target_packages=[str(p) for p in data.get("target_packages", [])],
            targeting=dict(data.get("targeting") or {}),
            usage_limits=dict(data.get("usage_limits") or {}),
            conditions=dict(data.get("conditions") or {}),
            display=dict(data.get("display") or {}),
            use_event_multiplier=bool(data.get("use_event_multiplier", False)),
        )


@dataclass
class SeasonalEvent:
    id: str
    name: str
    start_date: datetime
    end_date: datetime
    category: SeasonalCategory = SeasonalCategory.SPECIAL
    intensity: float = 1.0
    description: str = ""
    is_global: bool = True
    regions: List[str] = field(default_factory=list)
    target_audience: List[str] = field(default_factory=list)
    timezone: str = "UTC"
    promotion_templates: List[PromotionTemplate] = field(default_factory=list)
    pricing_strategy: Dict[str, Any] = field(default_factory=dict)
    marketing_assets: Dict[str, Any] = field(default_factory=dict)
    expected_lift: Optional[float] = None
    actual_lift: Optional[float] = None
    promotion_ids: List[str] = field(default_factory=list)
    activated_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def is_running(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "start_date": to_iso(self.start_date),
            "end_date": to_iso(self.end_date),
            "category": self.category.value,
            "intensity": self.intensity,
            "description": self.description,
            "is_global": self.is_global,
            "regions": self.regions,
            "target_audience": self.target_audience,
            "timezone": self.timezone,
            "promotion_templates": [t.to_dict() for t in self.promotion_templates],
            "pricing_strategy": self.pricing_strategy,
            "marketing_assets": self.marketing_assets,
            "expected_lift": self.expected_lift,
            "actual_lift": self.actual_lift,
            "promotion_ids": self.promotion_ids,
            "activated_at": to_iso(self.activated_at),
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeasonalEvent":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            start_date=parse_datetime(data["start_date"]),
            end_date=parse_datetime(data["end_date"]),
            category=SeasonalCategory(data.get("category", SeasonalCategory.SPECIAL.value)),
            intensity=float(data.get("intensity", 1.0)),
            description=data.get("description", ""),
            is_global=bool(data.get("is_global", True)),
            regions=list(data.get("regions", [])),
            target_audience=list(data.get("target_audience", [])),
            timezone=data.get("timezone") or "UTC",
            promotion_templates=[
                PromotionTemplate.from_dict(t) for t in data.get("promotion_templates", [])
            ],
            pricing_strategy=dict(data.get("pricing_strategy") or {}),
            marketing_assets=dict(data.get("marketing_assets") or {}),
            expected_lift=data.get("expected_lift"),
            actual_lift=data.get("actual_lift"),
            promotion_ids=list(data.get("promotion_ids", [])),
            activated_at=parse_datetime(data.get("activated_at")),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )


class SeasonalEventService:
    """Owns seasonal events and materializes their promotions."""

    def __init__(
        self,
        persistence: PersistencePort,
        promotions: PromotionService,
        clock: Clock = utcnow,
        lookahead_minutes: int = 60,
    ):
        self.persistence = persistence
        self.promotions = promotions
        self.clock = clock
        self.lookahead = timedelta(minutes=lookahead_minutes)
        self._events: Dict[str, SeasonalEvent] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self) -> None:
        for event in await self.persistence.load_seasonal_events():
            self._events[event.id] = event
        logger.info("Seasonal events loaded", events=len(self._events))

    async def create_event(self, definition: Dict[str, Any]) -> SeasonalEvent:
        try:
            event = SeasonalEvent.from_dict({**definition, "promotion_ids": [], "activated_at": None})
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed seasonal event: {e}") from e

        if event.id in self._events:
            raise ValidationError(f"Seasonal event {event.id} already exists")
        if event.end_date <= event.start_date:
            raise ValidationError("Seasonal event end date must be after its start date")
        if event.intensity <= 0:
            raise ValidationError("Seasonal event intensity must be positive")
        template_ids = [t.id for t in event.promotion_templates]
        if len(template_ids) != len(set(template_ids)):
            raise ValidationError("Promotion template ids must be unique within an event")
        for template in event.promotion_templates:
            if not template.use_event_multiplier:
                discount_from_dict(template.discount)

        event.created_at = self.clock()
        await self.persistence.save_seasonal_event(event)
        self._events[event.id] = event

        logger.info(
            "Seasonal event created",
            event_id=event.id,
            category=event.category.value,
            templates=len(event.promotion_templates),
        )
        return event

    def get_event(self, event_id: str) -> Optional[SeasonalEvent]:
        return self._events.get(event_id)

    def get_all_events(self) -> List[SeasonalEvent]:
        return sorted(self._events.values(), key=lambda e: e.start_date)

    def active_events(self, now: Optional[datetime] = None) -> List[SeasonalEvent]:
        now = now or self.clock()
        return [e for e in self._events.values() if e.is_running(now)]

    def _build_promotion(self, event: SeasonalEvent, template: PromotionTemplate) -> Promotion:
        if template.use_event_multiplier:
            discount = SeasonalMultiplier(multiplier=event.intensity)
        else:
            discount = discount_from_dict(template.discount)

        targeting = AudienceTargeting.from_dict(template.targeting)
        if not targeting.user_segments and event.target_audience:
            targeting.user_segments = list(event.target_audience)
        if not event.is_global and not targeting.geo_targeting:
            targeting.geo_targeting = list(event.regions)

        now = self.clock()
        return Promotion(
            id=f"{event.id}:{template.id}",
            name=template.name,
            description=template.description or event.description,
            status=PromotionStatus.SCHEDULED,
            discount=discount,
            start_date=event.start_date,
            end_date=event.end_date,
            priority=template.priority,
            timezone=event.timezone,
            target_packages=list(template.target_packages),
            targeting=targeting,
            usage_limits=UsageLimits.from_dict(template.usage_limits),
            conditions=PromotionConditions.from_dict(template.conditions),
            display={**event.marketing_assets, **template.display},
            seasonal_event_id=event.id,
            created_at=now,
            updated_at=now,
        )

    async def activate(self, event_id: str) -> List[Promotion]:
        """
        Materialize the event's promotions as scheduled and arm their
        activation timers. Re-activating never duplicates promotions.
        """
        event = self._events.get(event_id)
        if not event:
            raise NotFoundError("Seasonal event", event_id)

        async with self._locks[event_id]:
            materialized: List[Promotion] = []
            created = 0
            for template in event.promotion_templates:
                promotion_id = f"{event.id}:{template.id}"
                promotion = self.promotions.get_promotion(promotion_id)
                if promotion is None:
                    promotion = await self.promotions.register(
                        self._build_promotion(event, template)
                    )
                    created += 1
                if promotion.status == PromotionStatus.SCHEDULED:
                    self.promotions.schedule_activation(promotion.id, event.start_date)
                materialized.append(promotion)

            ids = [p.id for p in materialized]
            if event.promotion_ids != ids or event.activated_at is None:
                previous_ids, previous_activated = event.promotion_ids, event.activated_at
                event.promotion_ids = ids
                event.activated_at = event.activated_at or self.clock()
                try:
                    await self.persistence.save_seasonal_event(event)
                except StorageError:
                    event.promotion_ids, event.activated_at = previous_ids, previous_activated
                    raise

        logger.info(
            "Seasonal event activated",
            event_id=event_id,
            promotions=len(materialized),
            created=created,
        )
        return materialized

    async def check_due(self) -> int:
        """Activate events starting within the lookahead. Returns how many."""
        now = self.clock()
        activated = 0
        for event in list(self._events.values()):
            if event.activated_at is not None or now > event.end_date:
                continue
            if event.start_date - self.lookahead > now:
                continue
            try:
                await self.activate(event.id)
                activated += 1
            except Exception as e:
                logger.error("Seasonal event activation failed", event_id=event.id, error=str(e))
        return activated
