"""
SQL Persistence

Persistence port backed by SQLAlchemy. Each entity is stored as a JSON
document next to a few denormalized columns used for filtering.
"""

from typing import List

from sqlalchemy import select

from plutus.models import (
    AssignmentRecord,
    DynamicPricingRecord,
    ExperimentRecord,
    PromotionRecord,
    SeasonalEventRecord,
)
from plutus.services.ab_testing import Experiment, UserAssignment
from plutus.services.database import Database
from plutus.services.dynamic_pricing import DynamicPricing
from plutus.services.promotions import Promotion
from plutus.services.seasonal import SeasonalEvent


class SqlPersistence:
    """Write-through store; every save is an upsert in its own transaction."""

    def __init__(self, database: Database):
        self.database = database

    async def load_experiments(self) -> List[Experiment]:
        async with self.database.session() as session:
            result = await session.execute(select(ExperimentRecord))
            return [Experiment.from_dict(r.document) for r in result.scalars()]

    async def save_experiment(self, experiment: Experiment) -> None:
        async with self.database.session() as session:
            await session.merge(ExperimentRecord(
                id=experiment.id,
                name=experiment.name,
                status=experiment.status.value,
                document=experiment.to_dict(),
            ))

    async def load_assignments(self) -> List[UserAssignment]:
        async with self.database.session() as session:
            result = await session.execute(select(AssignmentRecord))
            return [UserAssignment.from_dict(r.document) for r in result.scalars()]

    async def save_assignment(self, assignment: UserAssignment) -> None:
        async with self.database.session() as session:
            await session.merge(AssignmentRecord(
                user_id=assignment.user_id,
                test_id=assignment.test_id,
                variant_id=assignment.variant_id,
                conversion_value=assignment.conversion_value,
                document=assignment.to_dict(),
            ))

    async def load_promotions(self) -> List[Promotion]:
        async with self.database.session() as session:
            result = await session.execute(select(PromotionRecord))
            return [Promotion.from_dict(r.document) for r in result.scalars()]

    async def save_promotion(self, promotion: Promotion) -> None:
        async with self.database.session() as session:
            await session.merge(PromotionRecord(
                id=promotion.id,
                name=promotion.name,
                status=promotion.status.value,
                priority=promotion.priority,
                document=promotion.to_dict(),
            ))

    async def load_dynamic_pricing(self) -> List[DynamicPricing]:
        async with self.database.session() as session:
            result = await session.execute(select(DynamicPricingRecord))
            return [DynamicPricing.from_dict(r.document) for r in result.scalars()]

    async def save_dynamic_pricing(self, pricing: DynamicPricing) -> None:
        async with self.database.session() as session:
            await session.merge(DynamicPricingRecord(
                package_id=pricing.package_id,
                current_price=pricing.current_price,
                is_active=pricing.is_active,
                document=pricing.to_dict(),
            ))

    async def load_seasonal_events(self) -> List[SeasonalEvent]:
        async with self.database.session() as session:
            result = await session.execute(select(SeasonalEventRecord))
            return [SeasonalEvent.from_dict(r.document) for r in result.scalars()]

    async def save_seasonal_event(self, event: SeasonalEvent) -> None:
        async with self.database.session() as session:
            await session.merge(SeasonalEventRecord(
                id=event.id,
                name=event.name,
                category=event.category.value,
                document=event.to_dict(),
            ))
