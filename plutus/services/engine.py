"""
Plutus Engine

Composes the experiment, promotion, pricing and seasonal services behind
the operations exposed to the storefront and the admin API.
"""

from typing import Any, Dict, List, Optional

import structlog

from plutus.config import Settings, get_settings
from plutus.services.ab_testing import ABTestingService, Experiment
from plutus.services.database import Database
from plutus.services.dynamic_pricing import (
    DynamicPricing,
    DynamicPricingService,
    MarketSignalProvider,
    PricingRule,
)
from plutus.services.persistence import BoundedPersistence, InMemoryPersistence, PersistencePort
from plutus.services.promotions import (
    DiscountResult,
    Promotion,
    PromotionService,
    PromotionStatus,
)
from plutus.services.results import ExperimentResults
from plutus.services.scheduler import PricingScheduler
from plutus.services.seasonal import SeasonalEvent, SeasonalEventService
from plutus.services.sql_store import SqlPersistence
from plutus.services.targeting import IdentityProvider
from plutus.services.timeutils import Clock, utcnow

logger = structlog.get_logger()


class PlutusEngine:
    """
    Experimentation and dynamic pricing engine.

    Storefront operations never raise; admin operations raise
    ValidationError, InvalidStateError, NotFoundError or StorageError.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        identity: Optional[IdentityProvider] = None,
        signals: Optional[MarketSignalProvider] = None,
        clock: Clock = utcnow,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database
        self.identity = identity
        self.persistence = BoundedPersistence(
            persistence, self.settings.persistence_timeout_seconds
        )

        self.experiments = ABTestingService(self.persistence, identity=identity, clock=clock)
        self.promotions = PromotionService(self.persistence, identity=identity, clock=clock)
        self.seasonal = SeasonalEventService(
            self.persistence,
            self.promotions,
            clock=clock,
            lookahead_minutes=self.settings.seasonal_lookahead_minutes,
        )
        self.pricing = DynamicPricingService(
            self.persistence,
            signals=signals,
            clock=clock,
            price_change_epsilon=self.settings.price_change_epsilon,
            active_events=self.seasonal.active_events,
        )
        self.scheduler = PricingScheduler(
            self.pricing,
            self.seasonal,
            self.promotions,
            interval_seconds=self.settings.recalculation_interval_seconds,
            clock=clock,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Load every registry from the persistence port."""
        if self.database is not None:
            await self.database.init()
        await self.experiments.load()
        await self.promotions.load()
        await self.seasonal.load()
        await self.pricing.load()
        logger.info("Plutus engine initialized")

    async def start(self) -> None:
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.promotions.cancel_timers()
        if self.database is not None:
            await self.database.close()
        logger.info("Plutus engine stopped")

    # =========================================================================
    # Storefront
    # =========================================================================

    async def _current_user_id(self, user_id: Optional[str]) -> Optional[str]:
        if user_id is not None or self.identity is None:
            return user_id
        try:
            user = await self.identity.current_user()
        except Exception as e:
            logger.warning("Current user lookup failed", error=str(e))
            return None
        return user.id if user else None

    async def get_user_variant(self, test_id: str, user_id: Optional[str] = None) -> Optional[str]:
        user_id = await self._current_user_id(user_id)
        if user_id is None:
            return None
        try:
            return await self.experiments.assign(test_id, user_id)
        except Exception as e:
            logger.error("Variant assignment failed", experiment_id=test_id, error=str(e))
            return None

    def get_variant_config(self, test_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        return self.experiments.get_variant_config(test_id, variant_id)

    async def track_event(
        self,
        test_id: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> None:
        user_id = await self._current_user_id(user_id)
        if user_id is None:
            return
        await self.experiments.track(test_id, user_id, event_type, metadata)

    async def get_active_promotions(
        self,
        package_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Promotion]:
        try:
            return await self.promotions.list_active(package_id, user_id)
        except Exception as e:
            logger.error("Listing active promotions failed", package_id=package_id, error=str(e))
            return []

    async def apply_promotion(
        self,
        promotion_id: str,
        amount: float,
        package_data: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> DiscountResult:
        return await self.promotions.apply(promotion_id, amount, package_data, user_id)

    def get_dynamic_price(self, package_id: str) -> Optional[float]:
        return self.pricing.get_current_price(package_id)

    # =========================================================================
    # Admin
    # =========================================================================

    async def create_experiment(self, **definition: Any) -> Experiment:
        return await self.experiments.create_experiment(**definition)

    async def start_experiment(self, experiment_id: str) -> Experiment:
        return await self.experiments.start_experiment(experiment_id)

    async def pause_experiment(self, experiment_id: str) -> Experiment:
        return await self.experiments.pause_experiment(experiment_id)

    async def resume_experiment(self, experiment_id: str) -> Experiment:
        return await self.experiments.resume_experiment(experiment_id)

    async def complete_experiment(self, experiment_id: str) -> Experiment:
        return await self.experiments.complete_experiment(experiment_id)

    def get_experiment_results(self, experiment_id: str) -> ExperimentResults:
        return self.experiments.compute_results(experiment_id)

    def get_all_experiments(self) -> List[Experiment]:
        return self.experiments.list_experiments()

    async def create_promotion(self, definition: Dict[str, Any]) -> Promotion:
        promotion = await self.promotions.create_promotion(definition)
        if promotion.status == PromotionStatus.SCHEDULED:
            self.promotions.schedule_activation(promotion.id, promotion.start_date)
        return promotion

    def get_all_promotions(self) -> List[Promotion]:
        return self.promotions.get_all_promotions()

    async def create_seasonal_event(self, definition: Dict[str, Any]) -> SeasonalEvent:
        return await self.seasonal.create_event(definition)

    async def create_seasonal_promotions(self, event_id: str) -> List[Promotion]:
        return await self.seasonal.activate(event_id)

    def get_all_seasonal_events(self) -> List[SeasonalEvent]:
        return self.seasonal.get_all_events()

    async def create_dynamic_pricing(
        self,
        package_id: str,
        base_price: float,
        rules: Optional[List[Dict[str, Any]]] = None,
        is_active: bool = True,
    ) -> DynamicPricing:
        return await self.pricing.create_pricing(package_id, base_price, rules, is_active)

    async def add_pricing_rule(self, package_id: str, rule: Dict[str, Any]) -> PricingRule:
        return await self.pricing.add_rule(package_id, rule)

    async def recalculate_price(self, package_id: str) -> float:
        return await self.pricing.recalculate(package_id)

    def get_all_dynamic_pricing(self) -> List[DynamicPricing]:
        return self.pricing.get_all_pricing()


def build_engine(
    settings: Optional[Settings] = None,
    identity: Optional[IdentityProvider] = None,
    signals: Optional[MarketSignalProvider] = None,
) -> PlutusEngine:
    """Create an engine wired to the configured persistence backend."""
    settings = settings or get_settings()
    database = None
    if settings.persistence_backend == "sql":
        database = Database.from_settings(settings)
        persistence: PersistencePort = SqlPersistence(database)
    else:
        persistence = InMemoryPersistence()

    logger.info("Building engine", backend=settings.persistence_backend)
    return PlutusEngine(
        persistence,
        identity=identity,
        signals=signals,
        settings=settings,
        database=database,
    )
