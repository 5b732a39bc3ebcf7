"""
Plutus API Routes

FastAPI routers for the Plutus API.
"""

from plutus.api import experiments, health, pricing, promotions, seasonal

__all__ = ["health", "experiments", "promotions", "pricing", "seasonal"]
