"""
FastAPI router module for segment-level analysis endpoints.

Implements:
- POST /cohorts: Time, first-touch channel, touch density and industry cohorts
- POST /funnel: Stage conversion, drop-off and velocity
- POST /content: Content asset by stage heatmap and stage gaps
- POST /cross-sell: Product expansion patterns and cross-sell readiness

Optional tag filters (industry, segment, region, product_line) narrow the deal
set through JourneyStore.filter before any analysis runs.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from attribution_engine.api.attribution import DealBatch
from attribution_engine.core.dependencies import SettingsDep
from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.schemas import (
    CohortAnalysis,
    ContentIntelligence,
    CrossSellSummary,
    Deal,
    FunnelAnalysis,
)
from attribution_engine.services.cohorts import analyze_cohorts
from attribution_engine.services.content_intelligence import analyze_content
from attribution_engine.services.cross_sell import analyze_cross_sell
from attribution_engine.services.funnel import analyze_funnel
from attribution_engine.services.journey_store import JourneyStore


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["segments"])


def _filtered(
    deals: List[Deal],
    industry: Optional[str],
    segment: Optional[str],
    region: Optional[str],
    product_line: Optional[str],
) -> JourneyStore:
    """Store over the deals matching every given tag."""
    try:
        store = JourneyStore(deals)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    filtered = store.filter(
        industry=industry, segment=segment, region=region, product_line=product_line
    )
    if len(filtered) == 0:
        raise HTTPException(
            status_code=400,
            detail=(
                f"No deals match the filter criteria (industry={industry}, segment={segment}, "
                f"region={region}, product_line={product_line})"
            ),
        )
    return filtered


@router.post("/cohorts", response_model=CohortAnalysis)
async def cohorts_endpoint(
    batch: DealBatch,
    settings: SettingsDep,
    industry: Optional[str] = Query(default=None, description="Filter by industry"),
    segment: Optional[str] = Query(default=None, description="Filter by segment"),
    region: Optional[str] = Query(default=None, description="Filter by region"),
    product_line: Optional[str] = Query(default=None, description="Filter by product line"),
) -> CohortAnalysis:
    """
    Cohort analysis over the (optionally filtered) deals.

    Density buckets come from Settings.density_buckets; every bucket is
    reported, empty ones with zero metrics.

    Raises:
        HTTPException 400: If no deals are provided, ids repeat, or the
            filters match nothing
        HTTPException 500: If the computation fails
    """
    if not batch.deals:
        raise HTTPException(status_code=400, detail="At least one deal is required")
    store = _filtered(batch.deals, industry, segment, region, product_line)
    try:
        return analyze_cohorts(store, settings=settings)
    except Exception as e:
        logger.error(f"Error computing cohorts: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing cohorts: {str(e)}",
        )


@router.post("/funnel", response_model=FunnelAnalysis)
async def funnel_endpoint(
    batch: DealBatch,
    industry: Optional[str] = Query(default=None, description="Filter by industry"),
    segment: Optional[str] = Query(default=None, description="Filter by segment"),
    region: Optional[str] = Query(default=None, description="Filter by region"),
    product_line: Optional[str] = Query(default=None, description="Filter by product line"),
) -> FunnelAnalysis:
    """Stage funnel over the (optionally filtered) deals."""
    if not batch.deals:
        raise HTTPException(status_code=400, detail="At least one deal is required")
    store = _filtered(batch.deals, industry, segment, region, product_line)
    try:
        return analyze_funnel(store)
    except Exception as e:
        logger.error(f"Error computing funnel: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing funnel: {str(e)}",
        )


@router.post("/content", response_model=ContentIntelligence)
async def content_endpoint(
    batch: DealBatch,
    industry: Optional[str] = Query(default=None, description="Filter by industry"),
    segment: Optional[str] = Query(default=None, description="Filter by segment"),
    region: Optional[str] = Query(default=None, description="Filter by region"),
    product_line: Optional[str] = Query(default=None, description="Filter by product line"),
) -> ContentIntelligence:
    """Content heatmap by stage and stage content gaps."""
    if not batch.deals:
        raise HTTPException(status_code=400, detail="At least one deal is required")
    store = _filtered(batch.deals, industry, segment, region, product_line)
    try:
        return analyze_content(store)
    except Exception as e:
        logger.error(f"Error computing content intelligence: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing content intelligence: {str(e)}",
        )


@router.post("/cross-sell", response_model=CrossSellSummary)
async def cross_sell_endpoint(
    batch: DealBatch,
    industry: Optional[str] = Query(default=None, description="Filter by industry"),
    segment: Optional[str] = Query(default=None, description="Filter by segment"),
    region: Optional[str] = Query(default=None, description="Filter by region"),
) -> CrossSellSummary:
    """
    Cross-sell patterns and readiness across product lines.

    There is no product_line filter; the analysis needs every product line.
    """
    if not batch.deals:
        raise HTTPException(status_code=400, detail="At least one deal is required")
    store = _filtered(batch.deals, industry, segment, region, None)
    try:
        return analyze_cross_sell(store)
    except Exception as e:
        logger.error(f"Error computing cross-sell analysis: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing cross-sell analysis: {str(e)}",
        )
