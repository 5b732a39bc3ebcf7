"""
Pricing API

REST API endpoints for dynamic package pricing.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from plutus.api.dependencies import get_engine, require_admin
from plutus.services.dynamic_pricing import calculate_fallback_price
from plutus.services.engine import PlutusEngine

router = APIRouter(prefix="/pricing", tags=["Pricing"])


class PricingCreate(BaseModel):
    package_id: str
    base_price: float = Field(..., gt=0)
    rules: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True


class PricingUpdate(BaseModel):
    base_price: Optional[float] = Field(None, gt=0)
    is_active: Optional[bool] = None


class FallbackPriceRequest(BaseModel):
    """Inputs for the rule-less pricing heuristic."""
    base_price: float = Field(..., gt=0)
    demand: Optional[float] = Field(None, ge=0, le=1)
    hour: Optional[int] = Field(None, ge=0, le=23)
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    inventory: Optional[int] = Field(None, ge=0)


@router.get("/", summary="List pricing state", dependencies=[Depends(require_admin)])
async def list_pricing(engine: PlutusEngine = Depends(get_engine)):
    return [p.to_dict() for p in engine.get_all_dynamic_pricing()]


@router.post("/", summary="Create package pricing", dependencies=[Depends(require_admin)])
async def create_pricing(data: PricingCreate, engine: PlutusEngine = Depends(get_engine)):
    pricing = await engine.create_dynamic_pricing(
        data.package_id, data.base_price, data.rules, data.is_active
    )
    return pricing.to_dict()


@router.post(
    "/recalculate",
    summary="Recalculate every package",
    dependencies=[Depends(require_admin)],
)
async def recalculate_all(engine: PlutusEngine = Depends(get_engine)):
    prices = await engine.pricing.recalculate_all()
    return {"prices": prices}


@router.post("/fallback", summary="Heuristic price without rules")
async def fallback_price(data: FallbackPriceRequest):
    return {
        "price": calculate_fallback_price(
            data.base_price,
            demand=data.demand,
            hour=data.hour,
            day_of_week=data.day_of_week,
            inventory=data.inventory,
        )
    }


@router.get("/{package_id}", summary="Current package price")
async def get_price(package_id: str, engine: PlutusEngine = Depends(get_engine)):
    """`price` is null for unknown or inactive packages."""
    return {"package_id": package_id, "price": engine.get_dynamic_price(package_id)}


@router.get(
    "/{package_id}/details",
    summary="Pricing state with rules and history",
    dependencies=[Depends(require_admin)],
)
async def get_pricing(package_id: str, engine: PlutusEngine = Depends(get_engine)):
    pricing = engine.pricing.get_pricing(package_id)
    if not pricing:
        raise HTTPException(status_code=404, detail="Dynamic pricing not found")
    return pricing.to_dict()


@router.patch(
    "/{package_id}",
    summary="Update base price or activation",
    dependencies=[Depends(require_admin)],
)
async def update_pricing(
    package_id: str,
    data: PricingUpdate,
    engine: PlutusEngine = Depends(get_engine),
):
    pricing = await engine.pricing.update_pricing(
        package_id, base_price=data.base_price, is_active=data.is_active
    )
    return pricing.to_dict()


@router.post(
    "/{package_id}/rules",
    summary="Add a pricing rule",
    dependencies=[Depends(require_admin)],
)
async def add_rule(
    package_id: str,
    rule: Dict[str, Any],
    engine: PlutusEngine = Depends(get_engine),
):
    return (await engine.add_pricing_rule(package_id, rule)).to_dict()


@router.delete(
    "/{package_id}/rules/{rule_id}",
    summary="Remove a pricing rule",
    dependencies=[Depends(require_admin)],
)
async def remove_rule(package_id: str, rule_id: str, engine: PlutusEngine = Depends(get_engine)):
    await engine.pricing.remove_rule(package_id, rule_id)
    return {"status": "removed"}


@router.post(
    "/{package_id}/recalculate",
    summary="Recalculate one package",
    dependencies=[Depends(require_admin)],
)
async def recalculate(package_id: str, engine: PlutusEngine = Depends(get_engine)):
    return {"package_id": package_id, "price": await engine.recalculate_price(package_id)}
