"""
Pytest Configuration and Shared Fixtures for Attribution Engine Tests.

This module provides fixtures and configuration for all engine tests, supporting:
- A deal factory building journeys from a list of channels
- The three-deal reference scenario (won / lost / open) with known
  attribution figures
- A seeded synthetic dataset for integration-style checks
- Default Settings isolated from the environment and any .env file

Dependencies:
- pytest
- numpy
- pandas
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

import pytest

from attribution_engine.core.config import Settings
from attribution_engine.models.enums import Channel, Stage
from attribution_engine.models.schemas import Deal, Touchpoint
from attribution_engine.services.journey_store import JourneyStore
from attribution_engine.services.sample_data import generate_sample_deals


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks tests running the full pipeline on synthetic data
    - invariant: Marks property tests that must hold for any deal set

    Usage:
        # Run only fast tests:
        pytest -m "not slow"

        # Run only property tests:
        pytest -m invariant
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests running every service over a synthetic dataset'
    )
    config.addinivalue_line(
        'markers',
        'invariant: marks property tests that must hold for any deal set'
    )


# ============================================================
# CONSTANTS
# ============================================================

# Timestamp of the first touch in factory-built journeys
JOURNEY_START: datetime = datetime(2025, 3, 3, 9, 0)


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Settings:
    """
    Default Settings, ignoring ATTRIBUTION_* environment variables and .env.

    Returns:
        Settings: Fresh instance with documented defaults
    """
    return Settings(_env_file=None)


# ============================================================
# DEAL FACTORY
# ============================================================

DealFactory = Callable[..., Deal]


@pytest.fixture
def make_deal() -> DealFactory:
    """
    Factory building a Deal whose touches follow `channels` in order.

    Touches are spaced `spacing_days` apart starting at JOURNEY_START (or
    `start`). Extra keyword arguments are passed to Deal.

    Example:
        def test_x(make_deal):
            deal = make_deal("OPP-1", Stage.CLOSED_WON, 10_000, [Channel.EMAIL])
    """
    def _make(
        opportunity_id: str,
        stage: Stage,
        amount: float,
        channels: Sequence[Channel],
        start: Optional[datetime] = None,
        spacing_days: float = 1.0,
        touch_kwargs: Optional[Sequence[dict]] = None,
        **kwargs,
    ) -> Deal:
        first = start or JOURNEY_START
        extras = list(touch_kwargs or [{}] * len(channels))
        touches = [
            Touchpoint(
                channel=channel,
                timestamp=first + timedelta(days=spacing_days * i),
                **extras[i],
            )
            for i, channel in enumerate(channels)
        ]
        kwargs.setdefault('account_id', f"ACC-{opportunity_id}")
        return Deal(
            opportunity_id=opportunity_id,
            stage=stage,
            deal_amount=amount,
            touchpoints=touches,
            **kwargs,
        )

    return _make


# ============================================================
# REFERENCE SCENARIO
# ============================================================

@pytest.fixture
def scenario_deals(make_deal: DealFactory) -> List[Deal]:
    """
    Three-deal reference scenario.

    - Deal A: won,  $10,000, touches [linkedin, email, form]
    - Deal B: lost,  $5,000, touches [email]
    - Deal C: open, $20,000, touches [events, events, form]

    Linear attribution over these deals:
        email 8,333.33 | linkedin 3,333.33 | form 10,000 | events 13,333.33
        email revenue 3,333.33 | total pipeline 35,000
    """
    return [
        make_deal(
            "A", Stage.CLOSED_WON, 10_000.0,
            [Channel.LINKEDIN, Channel.EMAIL, Channel.FORM],
            account_name="Account A", industry="Technology",
        ),
        make_deal(
            "B", Stage.CLOSED_LOST, 5_000.0,
            [Channel.EMAIL],
            account_name="Account B", industry="Retail",
        ),
        make_deal(
            "C", Stage.EVAL_PLANNING, 20_000.0,
            [Channel.EVENTS, Channel.EVENTS, Channel.FORM],
            account_name="Account C", industry="Technology",
        ),
    ]


@pytest.fixture
def scenario_store(scenario_deals: List[Deal]) -> JourneyStore:
    return JourneyStore(scenario_deals)


# ============================================================
# SYNTHETIC DATASET
# ============================================================

@pytest.fixture(scope='session')
def sample_deals() -> List[Deal]:
    """
    Seeded synthetic dataset shared across the session.

    Deals are immutable, so sharing one instance is safe.
    """
    return generate_sample_deals(n_deals=80, seed=7)


@pytest.fixture
def sample_store(sample_deals: List[Deal]) -> JourneyStore:
    return JourneyStore(sample_deals)
