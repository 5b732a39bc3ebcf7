"""
Seasonal Events API
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from plutus.api.dependencies import get_engine, require_admin
from plutus.services.engine import PlutusEngine
from plutus.services.seasonal import SeasonalCategory

router = APIRouter(prefix="/seasonal-events", tags=["Seasonal Events"])


class SeasonalEventCreate(BaseModel):
    id: str
    name: str
    start_date: datetime
    end_date: datetime
    category: SeasonalCategory = SeasonalCategory.SPECIAL
    intensity: float = Field(1.0, gt=0)
    description: str = ""
    is_global: bool = True
    regions: List[str] = Field(default_factory=list)
    target_audience: List[str] = Field(default_factory=list)
    timezone: str = "UTC"
    promotion_templates: List[Dict[str, Any]] = Field(default_factory=list)
    pricing_strategy: Dict[str, Any] = Field(default_factory=dict)
    marketing_assets: Dict[str, Any] = Field(default_factory=dict)
    expected_lift: Optional[float] = None


@router.post("/", summary="Create a seasonal event", dependencies=[Depends(require_admin)])
async def create_event(data: SeasonalEventCreate, engine: PlutusEngine = Depends(get_engine)):
    event = await engine.create_seasonal_event(data.model_dump(mode="json"))
    return event.to_dict()


@router.get("/", summary="List seasonal events")
async def list_events(engine: PlutusEngine = Depends(get_engine)):
    return [e.to_dict() for e in engine.get_all_seasonal_events()]


@router.get("/{event_id}", summary="Get a seasonal event")
async def get_event(event_id: str, engine: PlutusEngine = Depends(get_engine)):
    event = engine.seasonal.get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Seasonal event not found")
    return event.to_dict()


@router.post(
    "/{event_id}/activate",
    summary="Materialize the event's promotions",
    dependencies=[Depends(require_admin)],
)
async def activate_event(event_id: str, engine: PlutusEngine = Depends(get_engine)):
    """Idempotent: promotions already created for the event are reused."""
    promotions = await engine.create_seasonal_promotions(event_id)
    return [p.to_dict() for p in promotions]
