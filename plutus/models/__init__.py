"""
Plutus Data Models

SQLAlchemy ORM models for the Plutus database.
"""

from plutus.models.base import Base
from plutus.models.experiment import AssignmentRecord, ExperimentRecord
from plutus.models.pricing import DynamicPricingRecord, SeasonalEventRecord
from plutus.models.promotion import PromotionRecord

__all__ = [
    "Base",
    "ExperimentRecord",
    "AssignmentRecord",
    "PromotionRecord",
    "DynamicPricingRecord",
    "SeasonalEventRecord",
]
