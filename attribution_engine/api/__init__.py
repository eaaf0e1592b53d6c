"""
Attribution engine API package initialization.

This package contains FastAPI router modules:
- attribution: Rule-based and Markov attribution, trends, model divergence
- segments: Cohort analysis and the stage funnel
- revenue: Deal scoring, backtest, forecast and spend optimization
"""

from fastapi import APIRouter

from attribution_engine.api.attribution import router as attribution_router
from attribution_engine.api.segments import router as segments_router
from attribution_engine.api.revenue import router as revenue_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers; each carries its own paths
api_router.include_router(attribution_router)
api_router.include_router(segments_router)
api_router.include_router(revenue_router)

# Export all routers for selective imports
__all__ = [
    "api_router",
    "attribution_router",
    "segments_router",
    "revenue_router",
]
