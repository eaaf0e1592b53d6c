"""
Seeded synthetic journey dataset.

Produces realistic-looking deals for demos, the command-line report and
integration tests. The same seed always yields the same deals.

Generation Rules:
    - Outcome mix: ~30% won, ~30% lost, ~40% open (open deals spread over the
      open pipeline stages)
    - Won deals receive more touches and lean toward events, webinars, BDR
      calls and pricing-page visits; lost deals lean toward passive email
    - Stage history walks PIPELINE_STAGES from disco_set; lost deals exit at a
      random stage
    - Paid channels carry a per-touch cost; organic channels carry none

Usage:
    from attribution_engine.services.sample_data import generate_sample_deals

    deals = generate_sample_deals(n_deals=80, seed=7)
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence

import numpy as np

from attribution_engine.models.enums import OPEN_STAGES, PIPELINE_STAGES, Channel, Stage
from attribution_engine.models.schemas import Deal, StageHistoryEntry, Touchpoint


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_SEED: int = 42
DEFAULT_DEAL_COUNT: int = 60
DEFAULT_REFERENCE_DATE: date = date(2025, 12, 31)

INDUSTRIES: List[str] = ["Financial Services", "Healthcare", "Manufacturing", "Retail", "Technology"]
SEGMENTS: List[str] = ["Enterprise", "Mid-Market", "SMB"]
REGIONS: List[str] = ["NA", "EMEA", "APAC"]
PRODUCT_LINES: List[str] = ["Workload Automation", "Data Pipelines", "Managed File Transfer"]

ACCOUNT_PREFIXES: List[str] = [
    "Northwind", "Contoso", "Fabrikam", "Tailspin", "Litware", "Adatum", "Proseware", "Wingtip",
]
ACCOUNT_SUFFIXES: List[str] = ["Logistics", "Health", "Bank", "Systems", "Retail", "Energy"]

# Relative channel propensity for won / lost / open journeys
CHANNEL_PROPENSITY: Dict[str, Dict[Channel, float]] = {
    'won': {
        Channel.LINKEDIN_ADS: 3, Channel.ORGANIC_SOCIAL: 1, Channel.EMAIL_NURTURE: 2,
        Channel.EMAIL_NEWSLETTER: 1, Channel.WEB_VISIT: 4, Channel.FORM_SUBMISSION: 2,
        Channel.EVENT: 3, Channel.WEBINAR: 3, Channel.BDR_EMAIL: 2, Channel.BDR_CALL: 3,
        Channel.BDR_LINKEDIN: 1, Channel.CONTENT_DOWNLOAD: 2,
    },
    'lost': {
        Channel.LINKEDIN_ADS: 3, Channel.ORGANIC_SOCIAL: 2, Channel.EMAIL_NURTURE: 4,
        Channel.EMAIL_NEWSLETTER: 4, Channel.WEB_VISIT: 3, Channel.FORM_SUBMISSION: 1,
        Channel.EVENT: 1, Channel.WEBINAR: 1, Channel.BDR_EMAIL: 3, Channel.BDR_CALL: 1,
        Channel.BDR_LINKEDIN: 2, Channel.CONTENT_DOWNLOAD: 1,
    },
    'open': {
        Channel.LINKEDIN_ADS: 3, Channel.ORGANIC_SOCIAL: 1, Channel.EMAIL_NURTURE: 3,
        Channel.EMAIL_NEWSLETTER: 2, Channel.WEB_VISIT: 4, Channel.FORM_SUBMISSION: 1,
        Channel.EVENT: 2, Channel.WEBINAR: 2, Channel.BDR_EMAIL: 2, Channel.BDR_CALL: 2,
        Channel.BDR_LINKEDIN: 1, Channel.CONTENT_DOWNLOAD: 2,
    },
}

# Touch count range (inclusive) per outcome
TOUCH_RANGE: Dict[str, tuple] = {'won': (4, 14), 'lost': (1, 8), 'open': (1, 11)}

# Per-touch cost; channels absent here are unpaid
CHANNEL_COST: Dict[Channel, float] = {
    Channel.LINKEDIN_ADS: 180.0,
    Channel.EMAIL_NURTURE: 15.0,
    Channel.EMAIL_NEWSLETTER: 8.0,
    Channel.EVENT: 650.0,
    Channel.WEBINAR: 120.0,
    Channel.BDR_EMAIL: 40.0,
    Channel.BDR_CALL: 85.0,
    Channel.BDR_LINKEDIN: 55.0,
    Channel.CONTENT_DOWNLOAD: 60.0,
}

CAMPAIGNS: Dict[Channel, List[str]] = {
    Channel.LINKEDIN_ADS: ["Q3 Automation ABM", "Q4 Cloud Migration Sponsored"],
    Channel.EMAIL_NURTURE: ["Evaluation Nurture", "Onboarding Nurture"],
    Channel.EMAIL_NEWSLETTER: ["Monthly Newsletter"],
    Channel.EVENT: ["Automation Summit", "Regional Roadshow"],
    Channel.WEBINAR: ["Q4 Automation Webinar Series", "Data Pipelines Deep Dive"],
    Channel.BDR_EMAIL: ["BDR Sequence A", "BDR Sequence B"],
}

CONTENT_ASSETS: List[str] = [
    "Orchestration Buyer's Guide", "Analyst Report", "TCO Whitepaper", "Customer Case Study",
]

PAGES: List[str] = ["/pricing/", "/roi-calculator/", "/product/", "/customers/", "/blog/", "/docs/"]

# Page weights for won deals vs everyone else
WON_PAGE_WEIGHTS: List[float] = [4, 3, 2, 2, 1, 1]
OTHER_PAGE_WEIGHTS: List[float] = [1, 1, 2, 2, 3, 2]

ACTIVITY_TYPES: Dict[Channel, str] = {
    Channel.LINKEDIN_ADS: "ad_click",
    Channel.ORGANIC_SOCIAL: "post_engagement",
    Channel.EMAIL_NURTURE: "email_click",
    Channel.EMAIL_NEWSLETTER: "email_open",
    Channel.WEB_VISIT: "page_view",
    Channel.FORM_SUBMISSION: "form_fill",
    Channel.EVENT: "booth_visit",
    Channel.WEBINAR: "attended",
    Channel.BDR_EMAIL: "reply",
    Channel.BDR_CALL: "connected_call",
    Channel.BDR_LINKEDIN: "inmail_reply",
    Channel.CONTENT_DOWNLOAD: "download",
}

# Days spent in each pipeline stage, inclusive range
STAGE_DAYS_RANGE: tuple = (3, 30)

# Lead time of the journey before the opportunity is created
PRE_OPPORTUNITY_DAYS: int = 60


# =============================================================================
# Builders
# =============================================================================


def _weighted_choice(rng: np.random.Generator, options: Sequence, weights: Sequence[float]):
    p = np.asarray(weights, dtype=np.float64)
    return options[int(rng.choice(len(options), p=p / p.sum()))]


def _outcome(rng: np.random.Generator) -> str:
    return _weighted_choice(rng, ['won', 'lost', 'open'], [0.3, 0.3, 0.4])


def _final_stage(rng: np.random.Generator, outcome: str) -> Stage:
    if outcome == 'won':
        return Stage.CLOSED_WON
    if outcome == 'lost':
        return Stage.CLOSED_LOST
    return OPEN_STAGES[int(rng.integers(len(OPEN_STAGES)))]


def _stage_walk(rng: np.random.Generator, stage: Stage) -> List[tuple]:
    """(stage, days_in_stage) pairs from disco_set to `stage`."""
    if stage is Stage.CLOSED_LOST:
        # Exit after any open stage
        walked = PIPELINE_STAGES[:int(rng.integers(1, len(OPEN_STAGES) + 1))] + [Stage.CLOSED_LOST]
    else:
        walked = PIPELINE_STAGES[:stage.pipeline_index + 1]
    low, high = STAGE_DAYS_RANGE
    return [(s, 0 if s.is_terminal else int(rng.integers(low, high + 1))) for s in walked]


def _stage_history(walk: Sequence[tuple], created: date) -> List[StageHistoryEntry]:
    history = []
    entered = created
    for s, days in walk:
        history.append(StageHistoryEntry(stage=s, entered_date=entered, days_in_stage=days))
        entered = entered + timedelta(days=days)
    return history


def _touchpoint(
    rng: np.random.Generator,
    channel: Channel,
    when: datetime,
    outcome: str,
) -> Touchpoint:
    campaign = None
    content_asset = None
    page_url = None
    if channel in CAMPAIGNS:
        campaign = _weighted_choice(rng, CAMPAIGNS[channel], [1] * len(CAMPAIGNS[channel]))
    if channel is Channel.CONTENT_DOWNLOAD:
        content_asset = _weighted_choice(rng, CONTENT_ASSETS, [1] * len(CONTENT_ASSETS))
    if channel is Channel.WEB_VISIT:
        weights = WON_PAGE_WEIGHTS if outcome == 'won' else OTHER_PAGE_WEIGHTS
        page_url = _weighted_choice(rng, PAGES, weights)
    return Touchpoint(
        channel=channel,
        timestamp=when,
        campaign=campaign,
        content_asset=content_asset,
        page_url=page_url,
        activity_type=ACTIVITY_TYPES.get(channel),
        cost=CHANNEL_COST.get(channel),
    )


def generate_sample_deal(
    rng: np.random.Generator,
    index: int,
    reference_date: date = DEFAULT_REFERENCE_DATE,
) -> Deal:
    """One synthetic deal drawn from `rng`."""
    outcome = _outcome(rng)
    stage = _final_stage(rng, outcome)
    walk = _stage_walk(rng, stage)
    elapsed = sum(days for _, days in walk)
    created = reference_date - timedelta(days=elapsed + int(rng.integers(0, 120)))
    history = _stage_history(walk, created)

    if stage.is_terminal:
        close_date: Optional[date] = min(history[-1].entered_date, reference_date)
        journey_end = close_date
    else:
        close_date = (
            reference_date + timedelta(days=int(rng.integers(7, 120)))
            if rng.random() < 0.8 else None
        )
        journey_end = reference_date
    journey_start = created - timedelta(days=PRE_OPPORTUNITY_DAYS)

    low, high = TOUCH_RANGE[outcome]
    n_touches = int(rng.integers(low, high + 1))
    propensity = CHANNEL_PROPENSITY[outcome]
    channels = list(propensity)
    span_seconds = max(1, int((journey_end - journey_start).total_seconds()))
    offsets = np.sort(rng.integers(0, span_seconds, size=n_touches))
    start = datetime.combine(journey_start, time(9, 0))
    touchpoints = [
        _touchpoint(
            rng,
            _weighted_choice(rng, channels, list(propensity.values())),
            start + timedelta(seconds=int(offset)),
            outcome,
        )
        for offset in offsets
    ]

    prefix = ACCOUNT_PREFIXES[index % len(ACCOUNT_PREFIXES)]
    suffix = ACCOUNT_SUFFIXES[(index // len(ACCOUNT_PREFIXES)) % len(ACCOUNT_SUFFIXES)]
    amount = float(np.round(rng.lognormal(mean=10.6, sigma=0.6) / 500.0) * 500.0)
    return Deal(
        opportunity_id=f"OPP-{1000 + index}",
        account_id=f"ACC-{300 + index}",
        account_name=f"{prefix} {suffix}",
        deal_amount=max(amount, 500.0),
        stage=stage,
        product_line=_weighted_choice(rng, PRODUCT_LINES, [1] * len(PRODUCT_LINES)),
        segment=_weighted_choice(rng, SEGMENTS, [2, 3, 1]),
        industry=_weighted_choice(rng, INDUSTRIES, [1] * len(INDUSTRIES)),
        region=_weighted_choice(rng, REGIONS, [3, 2, 1]),
        created_date=created,
        close_date=close_date,
        stage_history=history,
        touchpoints=touchpoints,
    )


def generate_sample_deals(
    n_deals: int = DEFAULT_DEAL_COUNT,
    seed: int = DEFAULT_SEED,
    reference_date: date = DEFAULT_REFERENCE_DATE,
) -> List[Deal]:
    """
    Generate a reproducible synthetic dataset.

    Args:
        n_deals: Number of deals to generate.
        seed: Seed for numpy's default_rng.
        reference_date: "Today" for the dataset; no activity falls after it.

    Returns:
        List of Deal records with unique opportunity ids.
    """
    if n_deals < 0:
        raise ValueError(f"n_deals must be non-negative, got {n_deals}")
    rng = np.random.default_rng(seed)
    deals = [generate_sample_deal(rng, i, reference_date) for i in range(n_deals)]
    logger.debug(f"Generated {len(deals)} sample deals with seed {seed}")
    return deals
