"""
Attribution Engine Package.

Marketing attribution and revenue analytics over B2B deal journeys: which
channels create pipeline, how cohorts convert, which open deals are likely to
close, what the pipeline forecasts to, and where the next marketing dollar
should go.

Subpackages:
    - core: Configuration (pydantic-settings), ConfigurationError and
      FastAPI dependencies
    - api: FastAPI routers exposing every analysis over HTTP
    - models: Pydantic schemas and enums
    - services: Analysis services
    - tests: pytest suite

Entry points:
    python -m attribution_engine.main prints a JSON report for a seeded
    sample dataset.
    uvicorn attribution_engine.app:app serves the HTTP API.
"""

__version__ = "1.0.0"
