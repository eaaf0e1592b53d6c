"""
FastAPI application entry point for the attribution engine API.

Every endpoint is a stateless computation over the deals posted with the
request; the app holds no database or cache.

Run:
    uvicorn attribution_engine.app:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from attribution_engine import __version__
from attribution_engine.api import api_router
from attribution_engine.core.config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Create FastAPI application
app = FastAPI(
    title="Attribution Engine API",
    version=__version__,
    description=(
        "Marketing attribution, cohort analysis, deal scoring, revenue "
        "forecasting and spend optimization over posted deal journeys."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Attribution Engine API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "attribution_engine.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
