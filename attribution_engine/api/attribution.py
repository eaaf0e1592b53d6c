"""
FastAPI router module for attribution endpoints.

Implements:
- POST /attribution/markov/diagnostics: Markov transition matrix and removal effects
- POST /attribution/trends: Channel share trends across cutoff dates
- POST /attribution/divergence: Per-channel share spread across models
- POST /attribution/compare: Every model over the same deals
- POST /attribution/{model}: Channel credit under one model

Every endpoint takes the full deal set in the request body; nothing is stored
between calls.

Error Mapping:
- Empty deal list: 400
- ConfigurationError (unknown model name, invalid override): 400
- Anything else: 500, logged with traceback
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from attribution_engine.core.dependencies import SettingsDep
from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import AttributionModel, Channel
from attribution_engine.models.schemas import (
    AttributionResult,
    ChannelTrend,
    Deal,
    MarkovDiagnostics,
    ModelDivergence,
)
from attribution_engine.services.attribution import (
    attribution_totals,
    compute_attribution,
    resolve_model,
    run_all_models,
)
from attribution_engine.services.attribution_trends import (
    compute_channel_trends,
    compute_model_divergence,
)
from attribution_engine.services.markov import markov_diagnostics


# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags for OpenAPI documentation
router = APIRouter(prefix="/attribution", tags=["attribution"])


# =============================================================================
# Local Pydantic Models for API Requests/Responses
# =============================================================================

class DealBatch(BaseModel):
    """Request body carrying the deals to analyze."""
    deals: List[Deal] = Field(
        default_factory=list,
        description="Deals with their touchpoints, in any order"
    )


class TrendRequest(DealBatch):
    """Request body for the channel trend endpoint."""
    model: AttributionModel = Field(
        default=AttributionModel.LINEAR,
        description="Attribution model applied at every cutoff"
    )
    cutoffs: List[date] = Field(
        ...,
        min_length=1,
        description="Cutoff dates; sorted ascending before use"
    )


class DivergenceRequest(DealBatch):
    """Request body for the model divergence endpoint."""
    models: Optional[List[AttributionModel]] = Field(
        default=None,
        description="Models to compare; defaults to every model"
    )


class AttributionResponse(BaseModel):
    """Channel credit under one model plus the totals across channels."""
    model: AttributionModel
    results: Dict[Channel, AttributionResult]
    totals: AttributionResult


def _require_deals(batch: DealBatch) -> None:
    if not batch.deals:
        raise HTTPException(status_code=400, detail="At least one deal is required")


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/markov/diagnostics", response_model=MarkovDiagnostics)
async def markov_diagnostics_endpoint(
    batch: DealBatch,
    settings: SettingsDep,
) -> MarkovDiagnostics:
    """
    Markov chain diagnostics for the deals.

    Returns:
        MarkovDiagnostics with the transition matrix, base conversion rate,
        raw and normalized removal effects and path frequency. A dataset with
        no converting journey returns isDegenerate=True.

    Raises:
        HTTPException 400: If no deals are provided
        HTTPException 500: If the computation fails
    """
    _require_deals(batch)
    try:
        return markov_diagnostics(batch.deals, settings=settings)
    except Exception as e:
        logger.error(f"Error computing Markov diagnostics: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing Markov diagnostics: {str(e)}",
        )


@router.post("/trends", response_model=List[ChannelTrend])
async def channel_trends_endpoint(
    request: TrendRequest,
    settings: SettingsDep,
) -> List[ChannelTrend]:
    """
    Attribution of each channel as of every cutoff date.

    Raises:
        HTTPException 400: If no deals are provided
        HTTPException 500: If the computation fails
    """
    _require_deals(request)
    try:
        return compute_channel_trends(request.model, request.deals, request.cutoffs, settings=settings)
    except Exception as e:
        logger.error(f"Error computing channel trends: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing channel trends: {str(e)}",
        )


@router.post("/divergence", response_model=List[ModelDivergence])
async def model_divergence_endpoint(
    request: DivergenceRequest,
    settings: SettingsDep,
) -> List[ModelDivergence]:
    """
    How far the models disagree on each channel's pipeline share.

    Returns:
        Channels sorted by spread (percentage points) descending.
    """
    _require_deals(request)
    try:
        return compute_model_divergence(request.deals, models=request.models, settings=settings)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error computing model divergence: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing model divergence: {str(e)}",
        )


@router.post("/compare", response_model=List[AttributionResponse])
async def compare_models_endpoint(
    batch: DealBatch,
    settings: SettingsDep,
    include_markov: bool = Query(default=True, description="Include the Markov model"),
) -> List[AttributionResponse]:
    """Run every attribution model over the same deals."""
    _require_deals(batch)
    try:
        models = run_all_models(batch.deals, settings=settings, include_markov=include_markov)
    except Exception as e:
        logger.error(f"Error comparing attribution models: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error comparing attribution models: {str(e)}",
        )
    return [
        AttributionResponse(model=model, results=results, totals=attribution_totals(results))
        for model, results in models.items()
    ]


@router.post("/{model}", response_model=AttributionResponse)
async def attribution_endpoint(
    model: str,
    batch: DealBatch,
    settings: SettingsDep,
    half_life_days: Optional[float] = Query(
        default=None,
        gt=0,
        description="Time-decay half-life override in days",
    ),
) -> AttributionResponse:
    """
    Channel credit for pipeline, revenue and opportunities under one model.

    Args:
        model: One of first_touch, last_touch, linear, time_decay,
            position_based, w_shaped, markov
        batch: Deals to attribute
        half_life_days: Optional time-decay override

    Raises:
        HTTPException 400: If no deals are provided or the model is unknown
        HTTPException 500: If the computation fails
    """
    _require_deals(batch)
    try:
        resolved = resolve_model(model)
        results = compute_attribution(
            resolved, batch.deals, settings=settings, half_life_days=half_life_days
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error computing {model} attribution: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing {model} attribution: {str(e)}",
        )

    logger.info(f"{resolved.value} attribution over {len(batch.deals)} deals")
    return AttributionResponse(model=resolved, results=results, totals=attribution_totals(results))
