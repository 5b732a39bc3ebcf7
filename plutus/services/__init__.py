"""
Plutus Services

Business logic layer for the Plutus engine.
"""

from plutus.services.ab_testing import ABTestingService
from plutus.services.dynamic_pricing import DynamicPricingService
from plutus.services.engine import PlutusEngine, build_engine
from plutus.services.persistence import BoundedPersistence, InMemoryPersistence
from plutus.services.promotions import PromotionService
from plutus.services.seasonal import SeasonalEventService

__all__ = [
    "ABTestingService",
    "PromotionService",
    "DynamicPricingService",
    "SeasonalEventService",
    "PlutusEngine",
    "build_engine",
    "InMemoryPersistence",
    "BoundedPersistence",
]
