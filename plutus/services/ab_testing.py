"""
A/B Testing Service

Experiment registry, sticky variant assignment and event tracking for the
storefront.
Features:
- Experiment creation, validation and lifecycle
- Hash-based traffic allocation and variant bucketing
- Audience targeting
- Event tracking with per-variant counters
- Results on completion
"""

import asyncio
import hashlib
import math
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import structlog
from prometheus_client import Counter

from plutus.exceptions import InvalidStateError, NotFoundError, StorageError, ValidationError
from plutus.services.persistence import PersistencePort
from plutus.services.results import ExperimentResults, ResultsCalculator
from plutus.services.targeting import AudienceTargeting, IdentityProvider, UserProfile
from plutus.services.timeutils import Clock, parse_datetime, to_iso, utcnow

logger = structlog.get_logger()

ASSIGNMENTS = Counter(
    "plutus_variant_assignments_total",
    "New sticky variant assignments",
    ["experiment_id", "variant_id"],
)

SPLIT_TOLERANCE = 0.01
MIN_SAMPLE_SIZE_FLOOR = 100


class ExperimentStatus(str, Enum):
    """Experiment lifecycle status."""
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class ExperimentType(str, Enum):
    """What part of the storefront an experiment varies."""
    PACKAGE_DESIGN = "package_design"
    PRICING = "pricing"
    LAYOUT = "layout"
    COPY = "copy"
    COLOR_SCHEME = "color_scheme"


class EventType(str, Enum):
    """Tracked storefront events."""
    VIEW = "view"
    CLICK = "click"
    PURCHASE = "purchase"
    ADD_TO_CART = "add_to_cart"
    CHECKOUT_START = "checkout_start"


@dataclass
class ExperimentVariant:
    """A treatment competing for a share of the experiment's traffic."""
    id: str
    name: str
    traffic_split: float  # Percentage within the experiment
    is_control: bool = False
    description: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    views: int = 0
    conversions: int = 0
    revenue: float = 0.0
    unique_users: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "traffic_split": self.traffic_split,
            "is_control": self.is_control,
            "description": self.description,
            "config": self.config,
            "views": self.views,
            "conversions": self.conversions,
            "revenue": self.revenue,
            "unique_users": self.unique_users,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExperimentVariant":
        return cls(
            id=str(data["id"]),
            name=data.get("name", data["id"]),
            traffic_split=float(data["traffic_split"]),
            is_control=bool(data.get("is_control", False)),
            description=data.get("description", ""),
            config=dict(data.get("config") or {}),
            views=int(data.get("views", 0)),
            conversions=int(data.get("conversions", 0)),
            revenue=float(data.get("revenue", 0.0)),
            unique_users=int(data.get("unique_users", 0)),
        )


@dataclass
class ExperimentMetrics:
    """Metric configuration for an experiment."""
    primary: str = "conversion_rate"
    secondary: List[str] = field(default_factory=list)
    minimum_sample_size: int = 1000
    confidence_level: float = 95.0  # 90, 95, 99
    minimum_detectable_effect: float = 10.0  # Percentage
    expected_runtime_days: int = 14

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "secondary": self.secondary,
            "minimum_sample_size": self.minimum_sample_size,
            "confidence_level": self.confidence_level,
            "minimum_detectable_effect": self.minimum_detectable_effect,
            "expected_runtime_days": self.expected_runtime_days,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExperimentMetrics":
        data = data or {}
        return cls(
            primary=data.get("primary", "conversion_rate"),
            secondary=list(data.get("secondary", [])),
            minimum_sample_size=int(data.get("minimum_sample_size", 1000)),
            confidence_level=float(data.get("confidence_level", 95.0)),
            minimum_detectable_effect=float(data.get("minimum_detectable_effect", 10.0)),
            expected_runtime_days=int(data.get("expected_runtime_days", 14)),
        )


@dataclass
class Experiment:
    """An A/B experiment."""
    id: str
    name: str
    type: ExperimentType
    status: ExperimentStatus
    variants: List[ExperimentVariant]
    metrics: ExperimentMetrics
    traffic_allocation: float  # % of eligible users in the experiment
    description: str = ""
    targeting: AudienceTargeting = field(default_factory=AudienceTargeting)
    created_by: Optional[str] = None

    # State
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    result: Optional[ExperimentResults] = None

    @property
    def control_variant(self) -> ExperimentVariant:
        return next(v for v in self.variants if v.is_control)

    def get_variant(self, variant_id: str) -> Optional[ExperimentVariant]:
        return next((v for v in self.variants if v.id == variant_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "status": self.status.value,
            "description": self.description,
            "variants": [v.to_dict() for v in self.variants],
            "metrics": self.metrics.to_dict(),
            "traffic_allocation": self.traffic_allocation,
            "targeting": self.targeting.to_dict(),
            "created_by": self.created_by,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "started_at": to_iso(self.started_at),
            "ended_at": to_iso(self.ended_at),
            "result": self.result.to_dict() if self.result else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Experiment":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            type=ExperimentType(data.get("type", ExperimentType.PACKAGE_DESIGN.value)),
            status=ExperimentStatus(data.get("status", ExperimentStatus.DRAFT.value)),
            description=data.get("description", ""),
            variants=[ExperimentVariant.from_dict(v) for v in data.get("variants", [])],
            metrics=ExperimentMetrics.from_dict(data.get("metrics")),
            traffic_allocation=float(data.get("traffic_allocation", 100.0)),
            targeting=AudienceTargeting.from_dict(data.get("targeting")),
            created_by=data.get("created_by"),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
            started_at=parse_datetime(data.get("started_at")),
            ended_at=parse_datetime(data.get("ended_at")),
            result=ExperimentResults.from_dict(data["result"]) if data.get("result") else None,
        )


@dataclass
class ABTestEvent:
    """An event recorded against a user's assignment."""
    event_type: EventType
    variant_id: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "variant_id": self.variant_id,
            "timestamp": to_iso(self.timestamp),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ABTestEvent":
        return cls(
            event_type=EventType(data["event_type"]),
            variant_id=data["variant_id"],
            timestamp=parse_datetime(data["timestamp"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class UserAssignment:
    """Sticky (user, experiment) -> variant binding."""
    user_id: str
    test_id: str
    variant_id: str
    assigned_at: datetime = field(default_factory=utcnow)
    has_converted: bool = False
    conversion_value: float = 0.0
    events: List[ABTestEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "test_id": self.test_id,
            "variant_id": self.variant_id,
            "assigned_at": to_iso(self.assigned_at),
            "has_converted": self.has_converted,
            "conversion_value": self.conversion_value,
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserAssignment":
        return cls(
            user_id=data["user_id"],
            test_id=data["test_id"],
            variant_id=data["variant_id"],
            assigned_at=parse_datetime(data.get("assigned_at")) or utcnow(),
            has_converted=bool(data.get("has_converted", False)),
            conversion_value=float(data.get("conversion_value", 0.0)),
            events=[ABTestEvent.from_dict(e) for e in data.get("events", [])],
        )


def stable_fraction(*parts: str) -> float:
    """Map the parts to a stable value in [0, 1)."""
    digest = hashlib.sha256(":".join(parts).encode()).digest()
    return int.from_bytes(digest[:8], "big") / 2**64


class ABTestingService:
    """
    Service for storefront A/B experiments.

    Holds the experiment and assignment registries in memory, writing every
    mutation through the persistence port.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        identity: Optional[IdentityProvider] = None,
        clock: Clock = utcnow,
        calculator: Optional[ResultsCalculator] = None,
    ):
        self.persistence = persistence
        self.identity = identity
        self.clock = clock
        self.calculator = calculator or ResultsCalculator()
        self._experiments: Dict[str, Experiment] = {}
        self._assignments: Dict[Tuple[str, str], UserAssignment] = {}  # (user_id, test_id)
        self._assignment_locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._assignment_lock_users: Dict[Tuple[str, str], int] = {}
        self._experiment_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self) -> None:
        """Populate registries from the persistence port."""
        for experiment in await self.persistence.load_experiments():
            self._experiments[experiment.id] = experiment
        for assignment in await self.persistence.load_assignments():
            self._assignments[(assignment.user_id, assignment.test_id)] = assignment
        logger.info(
            "Experiments loaded",
            experiments=len(self._experiments),
            assignments=len(self._assignments),
        )

    # =========================================================================
    # Experiment Management
    # =========================================================================

    async def create_experiment(
        self,
        name: str,
        variants: List[Dict[str, Any]],
        metrics: Optional[Dict[str, Any]] = None,
        type: str = ExperimentType.PACKAGE_DESIGN.value,
        description: str = "",
        traffic_allocation: float = 100.0,
        targeting: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> Experiment:
        """Validate and register a new draft experiment."""
        try:
            experiment_type = ExperimentType(type)
            experiment_variants = [
                ExperimentVariant.from_dict({**v, "views": 0, "conversions": 0, "revenue": 0.0})
                for v in variants
            ]
            experiment_metrics = ExperimentMetrics.from_dict(metrics)
            audience = AudienceTargeting.from_dict(targeting)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed experiment definition: {e}") from e

        now = self.clock()
        experiment = Experiment(
            id=f"test_{uuid.uuid4().hex[:12]}",
            name=name,
            type=experiment_type,
            status=ExperimentStatus.DRAFT,
            description=description,
            variants=experiment_variants,
            metrics=experiment_metrics,
            traffic_allocation=traffic_allocation,
            targeting=audience,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.validate_experiment(experiment)

        await self.persistence.save_experiment(experiment)
        self._experiments[experiment.id] = experiment

        logger.info(
            "Experiment created",
            experiment_id=experiment.id,
            name=name,
            variants=len(experiment_variants),
        )

        return experiment

    @staticmethod
    def validate_experiment(experiment: Experiment) -> None:
        """Reject definitions that break the variant invariants."""
        if not experiment.name:
            raise ValidationError("Experiment name is required")
        if len(experiment.variants) < 2:
            raise ValidationError("Experiment must have at least 2 variants")

        ids = [v.id for v in experiment.variants]
        if len(ids) != len(set(ids)):
            raise ValidationError("Variant ids must be unique")

        total_split = sum(v.traffic_split for v in experiment.variants)
        if abs(total_split - 100) > SPLIT_TOLERANCE:
            raise ValidationError(
                f"Variant traffic splits must add up to 100%, got {total_split}"
            )
        if any(v.traffic_split < 0 for v in experiment.variants):
            raise ValidationError("Variant traffic splits cannot be negative")

        control_count = sum(1 for v in experiment.variants if v.is_control)
        if control_count != 1:
            raise ValidationError("Experiment must have exactly one control variant")

        if not 0 <= experiment.traffic_allocation <= 100:
            raise ValidationError("Traffic allocation must be between 0 and 100")
        if experiment.metrics.minimum_sample_size < MIN_SAMPLE_SIZE_FLOOR:
            raise ValidationError(
                f"Minimum sample size must be at least {MIN_SAMPLE_SIZE_FLOOR}"
            )
        if not 0 < experiment.metrics.confidence_level < 100:
            raise ValidationError("Confidence level must be between 0 and 100")

    def _require(self, experiment_id: str) -> Experiment:
        experiment = self._experiments.get(experiment_id)
        if not experiment:
            raise NotFoundError("Experiment", experiment_id)
        return experiment

    async def _transition(
        self,
        experiment_id: str,
        allowed_from: Tuple[ExperimentStatus, ...],
        to: ExperimentStatus,
    ) -> Experiment:
        experiment = self._require(experiment_id)
        async with self._experiment_locks[experiment_id]:
            if experiment.status not in allowed_from:
                raise InvalidStateError(
                    f"Cannot move experiment from {experiment.status.value} to {to.value}"
                )
            previous = experiment.status
            rollback = (experiment.started_at, experiment.ended_at, experiment.result)
            now = self.clock()
            experiment.status = to
            experiment.updated_at = now
            if to == ExperimentStatus.RUNNING and experiment.started_at is None:
                experiment.started_at = now
            if to == ExperimentStatus.COMPLETED:
                experiment.ended_at = now
                experiment.result = self.calculator.compute(
                    experiment, self.get_assignments(experiment_id)
                )
            try:
                await self.persistence.save_experiment(experiment)
            except StorageError:
                experiment.status = previous
                experiment.started_at, experiment.ended_at, experiment.result = rollback
                raise

        logger.info(
            "Experiment status changed",
            experiment_id=experiment_id,
            previous=previous.value,
            status=to.value,
        )
        return experiment

    async def start_experiment(self, experiment_id: str) -> Experiment:
        """Start a draft experiment."""
        return await self._transition(
            experiment_id, (ExperimentStatus.DRAFT,), ExperimentStatus.RUNNING
        )

    async def pause_experiment(self, experiment_id: str) -> Experiment:
        """Pause a running experiment."""
        return await self._transition(
            experiment_id, (ExperimentStatus.RUNNING,), ExperimentStatus.PAUSED
        )

    async def resume_experiment(self, experiment_id: str) -> Experiment:
        """Resume a paused experiment."""
        return await self._transition(
            experiment_id, (ExperimentStatus.PAUSED,), ExperimentStatus.RUNNING
        )

    async def complete_experiment(self, experiment_id: str) -> Experiment:
        """Complete an experiment, attaching final results."""
        return await self._transition(
            experiment_id,
            (ExperimentStatus.RUNNING, ExperimentStatus.PAUSED),
            ExperimentStatus.COMPLETED,
        )

    def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return self._experiments.get(experiment_id)

    def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        type: Optional[ExperimentType] = None,
        created_by: Optional[str] = None,
    ) -> List[Experiment]:
        """List experiments, newest first."""
        experiments = list(self._experiments.values())
        if status:
            experiments = [e for e in experiments if e.status == status]
        if type:
            experiments = [e for e in experiments if e.type == type]
        if created_by:
            experiments = [e for e in experiments if e.created_by == created_by]
        return sorted(experiments, key=lambda e: e.created_at, reverse=True)

    def compute_results(self, experiment_id: str) -> ExperimentResults:
        """Compute interim (or final) results."""
        experiment = self._require(experiment_id)
        if experiment.status == ExperimentStatus.COMPLETED and experiment.result:
            return experiment.result
        return self.calculator.compute(experiment, self.get_assignments(experiment_id))

    # =========================================================================
    # Traffic Assignment
    # =========================================================================

    async def assign(
        self,
        test_id: str,
        user_id: str,
        profile: Optional[UserProfile] = None,
    ) -> Optional[str]:
        """
        Return the user's sticky variant, bucketing them on first contact.

        `profile` skips the identity lookup when the caller already has it.

        Returns None when the experiment is not running, the user is outside
        targeting or traffic allocation, or the assignment cannot be stored.
        """
        key = (user_id, test_id)
        existing = self._assignments.get(key)
        if existing:
            return existing.variant_id

        experiment = self._experiments.get(test_id)
        if not experiment or experiment.status != ExperimentStatus.RUNNING:
            return None

        async with self._assignment_lock(key):
            # A concurrent caller may have assigned while we waited
            existing = self._assignments.get(key)
            if existing:
                return existing.variant_id

            experiment = self._experiments.get(test_id)
            if not experiment or experiment.status != ExperimentStatus.RUNNING:
                return None

            if not experiment.targeting.is_empty:
                if profile is None:
                    profile = await self._resolve_profile(user_id)
                if not experiment.targeting.matches(profile):
                    return None

            if stable_fraction("traffic", user_id, test_id) >= experiment.traffic_allocation / 100:
                return None

            variant = self._choose_variant(experiment, user_id)
            assignment = UserAssignment(
                user_id=user_id,
                test_id=test_id,
                variant_id=variant.id,
                assigned_at=self.clock(),
            )
            try:
                await self.persistence.save_assignment(assignment)
            except StorageError as e:
                logger.warning(
                    "Assignment not persisted; serving no variant",
                    experiment_id=test_id,
                    user_id=user_id,
                    error=str(e),
                )
                return None

            self._assignments[key] = assignment

        async with self._experiment_locks[test_id]:
            variant.unique_users += 1

        ASSIGNMENTS.labels(experiment_id=test_id, variant_id=variant.id).inc()
        logger.debug(
            "User assigned to variant",
            experiment_id=test_id,
            user_id=user_id,
            variant_id=variant.id,
        )
        return variant.id

    @asynccontextmanager
    async def _assignment_lock(self, key: Tuple[str, str]) -> AsyncIterator[None]:
        """Per (user, experiment) lock, dropped once no caller holds or awaits it."""
        lock = self._assignment_locks.get(key)
        if lock is None:
            lock = self._assignment_locks[key] = asyncio.Lock()
        self._assignment_lock_users[key] = self._assignment_lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._assignment_lock_users[key] -= 1
            if not self._assignment_lock_users[key]:
                del self._assignment_lock_users[key]
                del self._assignment_locks[key]

    def _choose_variant(self, experiment: Experiment, user_id: str) -> ExperimentVariant:
        """Walk variants in order accumulating their share of traffic."""
        draw = stable_fraction("variant", user_id, experiment.id)
        cumulative = 0.0
        for variant in experiment.variants:
            cumulative += variant.traffic_split / 100
            if draw < cumulative:
                return variant
        return experiment.control_variant

    async def _resolve_profile(self, user_id: str) -> Optional[UserProfile]:
        if self.identity is None:
            return None
        try:
            return await self.identity.get_user(user_id)
        except Exception as e:
            logger.warning("Identity lookup failed", user_id=user_id, error=str(e))
            return None

    def get_assignment(self, user_id: str, test_id: str) -> Optional[UserAssignment]:
        return self._assignments.get((user_id, test_id))

    def get_assignments(self, test_id: str) -> List[UserAssignment]:
        return [a for (_, tid), a in self._assignments.items() if tid == test_id]

    def get_variant_config(self, test_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        experiment = self._experiments.get(test_id)
        if not experiment:
            return None
        variant = experiment.get_variant(variant_id)
        return variant.config if variant else None

    async def get_package_design_variant(
        self,
        package_id: str,
        user_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Config of the first running package design test the user is in."""
        for experiment in self._running(ExperimentType.PACKAGE_DESIGN):
            variant_id = await self.assign(experiment.id, user_id)
            if variant_id:
                config = self.get_variant_config(experiment.id, variant_id)
                if config:
                    return config
        return None

    def _running(self, experiment_type: ExperimentType) -> List[Experiment]:
        return [
            e for e in self._experiments.values()
            if e.status == ExperimentStatus.RUNNING and e.type == experiment_type
        ]

    # =========================================================================
    # Event Tracking
    # =========================================================================

    async def track(
        self,
        test_id: str,
        user_id: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record an event against the user's assignment.

        Silently ignores unknown users, unknown event types and experiments
        that are not running; telemetry never fails the caller.
        """
        try:
            await self._track(test_id, user_id, EventType(event_type), metadata or {})
        except ValueError:
            logger.debug("Ignoring unknown event type", event_type=event_type)
        except Exception as e:
            logger.error(
                "Event tracking failed",
                experiment_id=test_id,
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )

    async def _track(
        self,
        test_id: str,
        user_id: str,
        event_type: EventType,
        metadata: Dict[str, Any],
    ) -> None:
        assignment = self._assignments.get((user_id, test_id))
        if not assignment:
            return
        experiment = self._experiments.get(test_id)
        if not experiment or experiment.status != ExperimentStatus.RUNNING:
            return

        async with self._experiment_locks[test_id]:
            variant = experiment.get_variant(assignment.variant_id)
            if variant is None:
                return

            assignment.events.append(ABTestEvent(
                event_type=event_type,
                variant_id=variant.id,
                timestamp=self.clock(),
                metadata=metadata,
            ))

            if event_type == EventType.VIEW:
                variant.views += 1
            elif event_type == EventType.PURCHASE:
                amount = metadata.get("amount")
                if (
                    isinstance(amount, (int, float))
                    and not isinstance(amount, bool)
                    and math.isfinite(amount)
                    and amount >= 0
                ):
                    variant.conversions += 1
                    variant.revenue += amount
                    assignment.has_converted = True
                    assignment.conversion_value += amount

            try:
                await self.persistence.save_assignment(assignment)
                await self.persistence.save_experiment(experiment)
            except StorageError as e:
                logger.warning("Tracked event not persisted", experiment_id=test_id, error=str(e))

    async def track_package_view(self, package_id: str, user_id: str) -> None:
        for experiment in self._running(ExperimentType.PACKAGE_DESIGN):
            await self.track(experiment.id, user_id, EventType.VIEW.value, {"package_id": package_id})

    async def track_package_purchase(self, package_id: str, user_id: str, amount: float) -> None:
        for experiment in self._running(ExperimentType.PACKAGE_DESIGN):
            await self.track(
                experiment.id,
                user_id,
                EventType.PURCHASE.value,
                {"package_id": package_id, "amount": amount},
            )

    # =========================================================================
    # Templates
    # =========================================================================

    def get_test_templates(self) -> List[Dict[str, Any]]:
        """Ready-made experiment definitions."""
        return TEST_TEMPLATES

    async def create_from_template(
        self,
        template_id: str,
        created_by: Optional[str] = None,
        **overrides: Any,
    ) -> Experiment:
        template = next((t for t in TEST_TEMPLATES if t["id"] == template_id), None)
        if template is None:
            raise NotFoundError("Template", template_id)
        definition = {**template["template"], **overrides}
        return await self.create_experiment(created_by=created_by, **definition)


def _package_design(color_scheme: str, button_style: str, button_text: str, animation_type: str) -> Dict[str, Any]:
    return {
        "package_design": {
            "layout": "card",
            "color_scheme": color_scheme,
            "badge_style": "rounded",
            "animation_type": animation_type,
            "show_discount": True,
            "show_bonus_coins": True,
            "show_popular_badge": True,
            "button_style": button_style,
            "button_text": button_text,
            "icon_style": "emoji",
            "price_position": "center",
            "description_length": "medium",
        }
    }


TEST_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "package_design_colors",
        "name": "Package Color Scheme Test",
        "description": "Test different color schemes for package cards",
        "category": "Design",
        "difficulty": "beginner",
        "template": {
            "name": "Package Color Scheme Test",
            "type": ExperimentType.PACKAGE_DESIGN.value,
            "traffic_allocation": 50,
            "variants": [
                {
                    "id": "control",
                    "name": "Blue Theme (Control)",
                    "is_control": True,
                    "traffic_split": 50,
                    "config": _package_design("blue", "solid", "Purchase Now", "none"),
                },
                {
                    "id": "variant_gold",
                    "name": "Gold Theme",
                    "traffic_split": 50,
                    "config": _package_design("gold", "gradient", "Purchase Now", "glow"),
                },
            ],
            "metrics": {
                "primary": "conversion_rate",
                "secondary": ["revenue", "aov"],
                "minimum_sample_size": 1000,
                "confidence_level": 95,
                "minimum_detectable_effect": 10,
                "expected_runtime_days": 14,
            },
        },
    },
    {
        "id": "package_button_styles",
        "name": "Button Style Optimization",
        "description": "Test different button styles and text for purchase buttons",
        "category": "CTA",
        "difficulty": "intermediate",
        "template": {
            "name": "Button Style Test",
            "type": ExperimentType.PACKAGE_DESIGN.value,
            "traffic_allocation": 30,
            "variants": [
                {
                    "id": "control",
                    "name": "Solid Button (Control)",
                    "is_control": True,
                    "traffic_split": 33.34,
                    "config": _package_design("blue", "solid", "Purchase Now", "none"),
                },
                {
                    "id": "variant_gradient",
                    "name": "Gradient Button",
                    "traffic_split": 33.33,
                    "config": _package_design("blue", "gradient", "Buy Coins Now", "none"),
                },
                {
                    "id": "variant_outline",
                    "name": "Outline Button",
                    "traffic_split": 33.33,
                    "config": _package_design("blue", "outline", "Get Coins", "none"),
                },
            ],
            "metrics": {
                "primary": "conversion_rate",
                "secondary": ["click_through_rate"],
                "minimum_sample_size": 1500,
                "confidence_level": 95,
                "minimum_detectable_effect": 15,
                "expected_runtime_days": 21,
            },
        },
    },
]
