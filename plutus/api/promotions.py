"""
Promotions API

REST API endpoints for promotions and discount redemption.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from plutus.api.dependencies import get_engine, require_admin
from plutus.services.engine import PlutusEngine
from plutus.services.promotions import PromotionStatus

router = APIRouter(prefix="/promotions", tags=["Promotions"])


class PromotionCreate(BaseModel):
    """Request model for creating a promotion."""
    id: Optional[str] = None
    name: str
    description: str = ""
    status: PromotionStatus = PromotionStatus.DRAFT
    priority: int = 0
    start_date: datetime
    end_date: datetime
    timezone: str = "UTC"
    discount: Dict[str, Any] = Field(..., description="Discount config tagged by `kind`")
    target_packages: List[str] = Field(default_factory=list)
    targeting: Optional[Dict[str, Any]] = None
    usage_limits: Optional[Dict[str, Any]] = None
    conditions: Optional[Dict[str, Any]] = None
    display: Dict[str, Any] = Field(default_factory=dict)


class ApplyRequest(BaseModel):
    amount: float = Field(..., ge=0, description="Original purchase amount")
    package_data: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None


@router.post("/", summary="Create a promotion", dependencies=[Depends(require_admin)])
async def create_promotion(data: PromotionCreate, engine: PlutusEngine = Depends(get_engine)):
    promotion = await engine.create_promotion(data.model_dump(mode="json", exclude_none=True))
    return promotion.to_dict()


@router.get("/", summary="List all promotions", dependencies=[Depends(require_admin)])
async def list_promotions(engine: PlutusEngine = Depends(get_engine)):
    return [p.to_dict() for p in engine.get_all_promotions()]


@router.get("/active", summary="List redeemable promotions")
async def list_active_promotions(
    package_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    engine: PlutusEngine = Depends(get_engine),
):
    """Active promotions for the package/user, highest priority first."""
    promotions = await engine.get_active_promotions(package_id, user_id)
    return [p.to_dict() for p in promotions]


@router.get("/{promotion_id}", summary="Get a promotion")
async def get_promotion(promotion_id: str, engine: PlutusEngine = Depends(get_engine)):
    promotion = engine.promotions.get_promotion(promotion_id)
    if not promotion:
        raise HTTPException(status_code=404, detail="Promotion not found")
    return promotion.to_dict()


@router.post("/{promotion_id}/apply", summary="Apply a promotion")
async def apply_promotion(
    promotion_id: str,
    data: ApplyRequest,
    engine: PlutusEngine = Depends(get_engine),
):
    """
    Redeem a promotion. Ineligible requests still return 200 with
    `success: false` and a reason so checkout can fall back to full price.
    """
    result = await engine.apply_promotion(
        promotion_id, data.amount, data.package_data, data.user_id
    )
    return result.to_dict()


@router.post(
    "/{promotion_id}/pause",
    summary="Pause a promotion",
    dependencies=[Depends(require_admin)],
)
async def pause_promotion(promotion_id: str, engine: PlutusEngine = Depends(get_engine)):
    promotion = await engine.promotions.pause_promotion(promotion_id)
    return promotion.to_dict()


@router.post(
    "/{promotion_id}/resume",
    summary="Resume a promotion",
    dependencies=[Depends(require_admin)],
)
async def resume_promotion(promotion_id: str, engine: PlutusEngine = Depends(get_engine)):
    promotion = await engine.promotions.resume_promotion(promotion_id)
    return promotion.to_dict()
