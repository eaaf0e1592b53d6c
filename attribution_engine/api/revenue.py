"""
FastAPI router module for deal scoring, forecast and spend endpoints.

Implements:
- POST /scores: Score every open deal against the closed deals
- POST /scores/signals: Win/loss touchpoint signals
- POST /scores/backtest: Leave-one-out backtest over closed deals
- POST /forecast: Marketing- vs stage-weighted forecast with scenarios
- POST /spend/optimize: Budget reallocation from explicit spend and pipeline
- POST /spend/scenarios: Reallocation at several budget multipliers
- POST /spend/response-curves: Fitted response curve per channel
- POST /spend/from-attribution: Reallocation using attributed pipeline

Error Mapping:
- ConfigurationError (bad thresholds, bounds, budget, channel or model): 400
- Anything else: 500, logged with traceback
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from attribution_engine.api.attribution import DealBatch
from attribution_engine.core.dependencies import SettingsDep
from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import AttributionModel, Channel
from attribution_engine.models.schemas import (
    BacktestResult,
    ChannelSpendBounds,
    DealScore,
    ForecastScenario,
    OptimizationResult,
    ResponseCurvePoint,
    RevenueForecast,
    SpendObservation,
    SpendScenarioResult,
    WinLossSignal,
)
from attribution_engine.services.deal_scoring import (
    backtest_deal_scoring,
    calculate_win_loss_signals,
    score_all_open_deals,
)
from attribution_engine.services.forecast import generate_forecast, model_forecast_scenarios
from attribution_engine.services.spend_optimizer import (
    RESPONSE_CURVE_POINTS,
    SCENARIO_MULTIPLIERS,
    build_channel_plans,
    channel_response_curve,
    compare_spend_scenarios,
    optimize_spend,
    optimize_spend_from_attribution,
)


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["revenue"])


# =============================================================================
# Local Pydantic Models for API Requests/Responses
# =============================================================================

class ScoreRequest(DealBatch):
    """Request body for deal scoring."""
    referenceDate: Optional[date] = Field(
        default=None,
        description="'Today' for recency; defaults to the latest activity"
    )


class ForecastRequest(ScoreRequest):
    """Request body for the revenue forecast."""
    thresholds: Optional[Tuple[float, float, float]] = Field(
        default=None,
        description="(commit, best_case, pipeline) score floors, strictly descending"
    )


class ForecastResponse(BaseModel):
    """Forecast plus its named scenarios."""
    forecast: RevenueForecast
    scenarios: List[ForecastScenario]


class SpendInputs(BaseModel):
    """Current per-channel spend and pipeline; spend keys define the channel set."""
    currentSpend: Dict[str, float] = Field(..., description="Current spend by channel value")
    currentPipeline: Dict[str, float] = Field(..., description="Current pipeline by channel value")
    bounds: Dict[str, ChannelSpendBounds] = Field(default_factory=dict)
    spendHistory: Dict[str, List[SpendObservation]] = Field(default_factory=dict)


class SpendRequest(SpendInputs):
    totalBudget: float = Field(..., description="Budget to allocate")


class SpendScenarioRequest(SpendInputs):
    multipliers: List[float] = Field(
        default_factory=lambda: list(SCENARIO_MULTIPLIERS),
        description="Multiples of the current total budget"
    )


class AttributedSpendRequest(DealBatch):
    """Reallocation request using attributed pipeline as current pipeline."""
    totalBudget: Optional[float] = Field(
        default=None,
        description="Defaults to the current total spend"
    )
    model: AttributionModel = AttributionModel.LINEAR
    currentSpend: Optional[Dict[str, float]] = Field(
        default=None,
        description="Defaults to recorded touchpoint cost"
    )
    bounds: Dict[str, ChannelSpendBounds] = Field(default_factory=dict)


# =============================================================================
# Deal Scoring Endpoints
# =============================================================================


@router.post("/scores", response_model=List[DealScore])
async def scores_endpoint(request: ScoreRequest, settings: SettingsDep) -> List[DealScore]:
    """
    Close-probability score for every open deal.

    Returns:
        DealScores sorted by probability descending; empty when no deal is open.
    """
    try:
        return score_all_open_deals(
            request.deals, reference_date=request.referenceDate, settings=settings
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error scoring deals: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error scoring deals: {str(e)}")


@router.post("/scores/signals", response_model=List[WinLossSignal])
async def signals_endpoint(
    batch: DealBatch,
    limit: int = Query(default=20, ge=1, le=500, description="Maximum signals returned"),
) -> List[WinLossSignal]:
    """Touchpoint descriptors ranked by won/lost lift."""
    try:
        return calculate_win_loss_signals(batch.deals)[:limit]
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error computing win/loss signals: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing win/loss signals: {str(e)}",
        )


@router.post("/scores/backtest", response_model=BacktestResult)
async def backtest_endpoint(
    batch: DealBatch,
    settings: SettingsDep,
    threshold: Optional[float] = Query(
        default=None,
        ge=0,
        le=100,
        description="Score at which a win is predicted; defaults to settings",
    ),
) -> BacktestResult:
    """
    Backtest the scoring model on closed deals.

    Fewer than two closed deals, or a single outcome class, returns a neutral
    result with isDegenerate=True rather than an error.
    """
    try:
        return backtest_deal_scoring(batch.deals, threshold=threshold, settings=settings)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error running backtest: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error running backtest: {str(e)}")


# =============================================================================
# Forecast Endpoint
# =============================================================================


@router.post("/forecast", response_model=ForecastResponse)
async def forecast_endpoint(request: ForecastRequest, settings: SettingsDep) -> ForecastResponse:
    """
    Score open deals, then compose the forecast and its scenarios.

    Raises:
        HTTPException 400: If thresholds are out of range or not descending
        HTTPException 500: If the computation fails
    """
    try:
        scores = score_all_open_deals(
            request.deals, reference_date=request.referenceDate, settings=settings
        )
        forecast = generate_forecast(
            request.deals,
            scores,
            reference_date=request.referenceDate,
            settings=settings,
            thresholds=request.thresholds,
        )
        scenarios = model_forecast_scenarios(forecast, settings=settings, thresholds=request.thresholds)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating forecast: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generating forecast: {str(e)}")
    return ForecastResponse(forecast=forecast, scenarios=scenarios)


# =============================================================================
# Spend Endpoints
# =============================================================================


@router.post("/spend/optimize", response_model=OptimizationResult)
async def optimize_endpoint(request: SpendRequest, settings: SettingsDep) -> OptimizationResult:
    """
    Redistribute totalBudget to equalize marginal ROI within bounds.

    Raises:
        HTTPException 400: Negative budget or spend, min above max, or an
            unknown channel
    """
    try:
        return optimize_spend(
            request.totalBudget,
            request.currentSpend,
            request.currentPipeline,
            bounds=request.bounds,
            spend_history=request.spendHistory,
            settings=settings,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error optimizing spend: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error optimizing spend: {str(e)}")


@router.post("/spend/scenarios", response_model=List[SpendScenarioResult])
async def spend_scenarios_endpoint(
    request: SpendScenarioRequest,
    settings: SettingsDep,
) -> List[SpendScenarioResult]:
    """Optimized allocation at each budget multiplier."""
    try:
        return compare_spend_scenarios(
            request.currentSpend,
            request.currentPipeline,
            multipliers=request.multipliers,
            bounds=request.bounds,
            spend_history=request.spendHistory,
            settings=settings,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error comparing spend scenarios: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error comparing spend scenarios: {str(e)}",
        )


@router.post("/spend/response-curves", response_model=Dict[Channel, List[ResponseCurvePoint]])
async def response_curves_endpoint(
    request: SpendInputs,
    settings: SettingsDep,
    points: int = Query(default=RESPONSE_CURVE_POINTS, ge=2, le=200, description="Points per curve"),
) -> Dict[Channel, List[ResponseCurvePoint]]:
    """Projected pipeline and marginal ROI from zero to 3x current spend per channel."""
    try:
        plans = build_channel_plans(
            request.currentSpend,
            request.currentPipeline,
            bounds=request.bounds,
            spend_history=request.spendHistory,
            settings=settings,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        plan.channel: channel_response_curve(plan.coefficient, plan.current_spend, points=points)
        for plan in plans
    }


@router.post("/spend/from-attribution", response_model=OptimizationResult)
async def attributed_spend_endpoint(
    request: AttributedSpendRequest,
    settings: SettingsDep,
) -> OptimizationResult:
    """
    Reallocate spend using each channel's attributed pipeline.

    Spend defaults to recorded touchpoint cost, so deals without cost data
    need an explicit currentSpend.
    """
    if request.currentSpend is None and not any(
        tp.cost is not None for deal in request.deals for tp in deal.touchpoints
    ):
        raise HTTPException(
            status_code=400,
            detail="No touchpoint cost recorded; provide currentSpend",
        )
    try:
        return optimize_spend_from_attribution(
            request.deals,
            total_budget=request.totalBudget,
            model=request.model,
            current_spend_by_channel=request.currentSpend,
            bounds=request.bounds,
            settings=settings,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error optimizing attributed spend: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error optimizing attributed spend: {str(e)}",
        )
