"""
Experiments API

REST API endpoints for storefront A/B experiments.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from plutus.api.dependencies import get_engine, require_admin
from plutus.services.ab_testing import EventType, ExperimentStatus, ExperimentType
from plutus.services.engine import PlutusEngine

router = APIRouter(prefix="/experiments", tags=["Experiments"])


# =============================================================================
# Request/Response Models
# =============================================================================

class VariantCreate(BaseModel):
    """Request model for creating a variant."""
    id: str = Field(..., description="Variant identifier, unique within the experiment")
    name: str = Field(..., description="Variant name")
    traffic_split: float = Field(..., description="Share of allocated traffic, in percent")
    is_control: bool = Field(False, description="Is this the control variant")
    description: str = ""
    config: Dict[str, Any] = Field(default_factory=dict, description="Opaque display config")


class MetricsConfig(BaseModel):
    primary: str = "conversion_rate"
    secondary: List[str] = Field(default_factory=list)
    minimum_sample_size: int = 1000
    confidence_level: float = 95.0
    minimum_detectable_effect: float = 10.0
    expected_runtime_days: int = 14


class ExperimentCreate(BaseModel):
    """Request model for creating an experiment."""
    name: str = Field(..., description="Experiment name")
    description: str = Field("", description="Experiment description")
    type: ExperimentType = ExperimentType.PACKAGE_DESIGN
    variants: List[VariantCreate]
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    traffic_allocation: float = Field(100.0, description="% of eligible users included")
    targeting: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = None


class TemplateCreate(BaseModel):
    name: Optional[str] = None
    created_by: Optional[str] = None


class TrackEventRequest(BaseModel):
    """Request model for recording an event."""
    user_id: str = Field(..., description="User identifier")
    event_type: EventType
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Experiment Management
# =============================================================================

@router.post("/", summary="Create a new experiment", dependencies=[Depends(require_admin)])
async def create_experiment(
    data: ExperimentCreate,
    engine: PlutusEngine = Depends(get_engine),
):
    """Create a draft experiment. Invalid splits or controls are rejected."""
    experiment = await engine.create_experiment(
        name=data.name,
        description=data.description,
        type=data.type.value,
        variants=[v.model_dump() for v in data.variants],
        metrics=data.metrics.model_dump(),
        traffic_allocation=data.traffic_allocation,
        targeting=data.targeting,
        created_by=data.created_by,
    )
    return experiment.to_dict()


@router.get("/", summary="List experiments")
async def list_experiments(
    status: Optional[ExperimentStatus] = Query(None, description="Filter by status"),
    type: Optional[ExperimentType] = Query(None, description="Filter by type"),
    engine: PlutusEngine = Depends(get_engine),
):
    experiments = engine.experiments.list_experiments(status=status, type=type)
    return [e.to_dict() for e in experiments]


@router.get("/templates", summary="List experiment templates")
async def list_templates(engine: PlutusEngine = Depends(get_engine)):
    return engine.experiments.get_test_templates()


@router.post(
    "/templates/{template_id}",
    summary="Create an experiment from a template",
    dependencies=[Depends(require_admin)],
)
async def create_from_template(
    template_id: str,
    data: TemplateCreate,
    engine: PlutusEngine = Depends(get_engine),
):
    overrides = {"name": data.name} if data.name else {}
    experiment = await engine.experiments.create_from_template(
        template_id, created_by=data.created_by, **overrides
    )
    return experiment.to_dict()


@router.get("/{experiment_id}", summary="Get experiment details")
async def get_experiment(experiment_id: str, engine: PlutusEngine = Depends(get_engine)):
    experiment = engine.experiments.get_experiment(experiment_id)
    if not experiment:
        raise HTTPException(status_code=404, detail="Experiment not found")
    return experiment.to_dict()


@router.post(
    "/{experiment_id}/start",
    summary="Start an experiment",
    dependencies=[Depends(require_admin)],
)
async def start_experiment(experiment_id: str, engine: PlutusEngine = Depends(get_engine)):
    experiment = await engine.start_experiment(experiment_id)
    return experiment.to_dict()


@router.post(
    "/{experiment_id}/pause",
    summary="Pause an experiment",
    dependencies=[Depends(require_admin)],
)
async def pause_experiment(experiment_id: str, engine: PlutusEngine = Depends(get_engine)):
    experiment = await engine.pause_experiment(experiment_id)
    return experiment.to_dict()


@router.post(
    "/{experiment_id}/resume",
    summary="Resume an experiment",
    dependencies=[Depends(require_admin)],
)
async def resume_experiment(experiment_id: str, engine: PlutusEngine = Depends(get_engine)):
    experiment = await engine.resume_experiment(experiment_id)
    return experiment.to_dict()


@router.post(
    "/{experiment_id}/complete",
    summary="Complete an experiment",
    dependencies=[Depends(require_admin)],
)
async def complete_experiment(experiment_id: str, engine: PlutusEngine = Depends(get_engine)):
    """Complete the experiment and attach final results."""
    experiment = await engine.complete_experiment(experiment_id)
    return experiment.to_dict()


# =============================================================================
# Results
# =============================================================================

@router.get("/{experiment_id}/results", summary="Get experiment results")
async def get_results(experiment_id: str, engine: PlutusEngine = Depends(get_engine)):
    return engine.get_experiment_results(experiment_id).to_dict()


# =============================================================================
# Traffic Assignment & Events
# =============================================================================

@router.get("/{experiment_id}/assign", summary="Assign a variant for a user")
async def assign_variant(
    experiment_id: str,
    user_id: str = Query(..., description="User identifier"),
    engine: PlutusEngine = Depends(get_engine),
):
    """
    Return the user's sticky variant.

    Users outside the experiment get `in_experiment: false`.
    """
    variant_id = await engine.get_user_variant(experiment_id, user_id)
    if not variant_id:
        return {"in_experiment": False, "variant_id": None, "config": None}
    return {
        "in_experiment": True,
        "variant_id": variant_id,
        "config": engine.get_variant_config(experiment_id, variant_id),
    }


@router.post("/{experiment_id}/events", summary="Record an event")
async def track_event(
    experiment_id: str,
    event: TrackEventRequest,
    engine: PlutusEngine = Depends(get_engine),
):
    await engine.track_event(
        experiment_id, event.event_type.value, event.metadata, user_id=event.user_id
    )
    return {"status": "recorded"}
