"""
Revenue Forecast Composer.

Combines deal scores with a CRM-style stage probability table to produce two
forecasts over open deals, reported side by side and never merged:

    marketing_weighted_amount = deal_amount * score / 100
    stage_weighted_amount     = deal_amount * stage_probabilities[stage]

Forecast Categories (Settings thresholds, defaults shown):
    | Category  | Score   |
    |-----------|---------|
    | commit    | >= 80   |
    | best_case | >= 60   |
    | pipeline  | >= 35   |
    | at_risk   | < 35    |

    Open deals without a score are forecast at Settings.default_deal_score (30).

Weekly Projection:
    Each deal lands in the week of its close date (overdue close dates land in
    week 0), or, without a close date, Settings.stage_weeks_to_close[stage]
    weeks out. Weekly and cumulative sums are reported for both series over
    Settings.forecast_horizon_weeks; deals landing later count in the totals
    but not in the projection.

Scenarios:
    Named perturbations re-tier individual deals. A deal moved to a tier takes
    that tier's score floor as its effective score (deals dropped entirely
    contribute 0). Each scenario lists every changed deal with its impact on
    the marketing-weighted total.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple, Union

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import check_forecast_thresholds
from attribution_engine.models.enums import ForecastCategory
from attribution_engine.models.schemas import (
    Deal,
    DealScore,
    ForecastBucket,
    ForecastDeal,
    ForecastScenario,
    RevenueForecast,
    ScenarioDealChange,
    WeeklyProjection,
)
from attribution_engine.services.deal_scoring import UNDATED_REFERENCE
from attribution_engine.services.journey_store import DealSource, as_store
from attribution_engine.services.stats import safe_divide


logger = logging.getLogger(__name__)


# Categories in ascending order of confidence
CATEGORY_LADDER: List[ForecastCategory] = [
    ForecastCategory.AT_RISK,
    ForecastCategory.PIPELINE,
    ForecastCategory.BEST_CASE,
    ForecastCategory.COMMIT,
]

Thresholds = Tuple[float, float, float]


def resolve_thresholds(
    settings: Settings,
    thresholds: Optional[Thresholds] = None,
) -> Thresholds:
    """
    (commit, best_case, pipeline) thresholds from an override or settings.

    Raises:
        ConfigurationError: If the override is out of range or not descending.
    """
    if thresholds is None:
        return (settings.commit_threshold, settings.best_case_threshold, settings.pipeline_threshold)
    commit, best_case, pipeline = thresholds
    check_forecast_thresholds(commit, best_case, pipeline)
    return (float(commit), float(best_case), float(pipeline))


def categorize(score: float, thresholds: Thresholds) -> ForecastCategory:
    commit, best_case, pipeline = thresholds
    if score >= commit:
        return ForecastCategory.COMMIT
    if score >= best_case:
        return ForecastCategory.BEST_CASE
    if score >= pipeline:
        return ForecastCategory.PIPELINE
    return ForecastCategory.AT_RISK


def category_floor(category: ForecastCategory, thresholds: Thresholds) -> float:
    """Lowest score that still lands in `category`."""
    commit, best_case, pipeline = thresholds
    return {
        ForecastCategory.COMMIT: commit,
        ForecastCategory.BEST_CASE: best_case,
        ForecastCategory.PIPELINE: pipeline,
        ForecastCategory.AT_RISK: 0.0,
        ForecastCategory.LOST: 0.0,
    }[category]


def expected_close_week(deal: Deal, reference: date, settings: Settings) -> int:
    if deal.close_date is not None:
        return max(0, (deal.close_date - reference).days // 7)
    return settings.stage_weeks_to_close.get(deal.stage, 0)


def _bucket(category: ForecastCategory, deals: Sequence[ForecastDeal]) -> ForecastBucket:
    members = [d for d in deals if d.category is category]
    return ForecastBucket(
        category=category,
        dealCount=len(members),
        totalAmount=sum(d.deal_amount for d in members),
        marketingWeighted=sum(d.marketing_weighted_amount for d in members),
        stageWeighted=sum(d.stage_weighted_amount for d in members),
    )


def weekly_projection(
    deals: Sequence[ForecastDeal],
    reference: date,
    horizon_weeks: int,
) -> List[WeeklyProjection]:
    marketing = [0.0] * horizon_weeks
    stage = [0.0] * horizon_weeks
    for deal in deals:
        if deal.expected_close_week < horizon_weeks:
            marketing[deal.expected_close_week] += deal.marketing_weighted_amount
            stage[deal.expected_close_week] += deal.stage_weighted_amount

    projection = []
    cumulative_marketing = 0.0
    cumulative_stage = 0.0
    for week in range(horizon_weeks):
        cumulative_marketing += marketing[week]
        cumulative_stage += stage[week]
        projection.append(WeeklyProjection(
            week=week,
            weekStart=reference + timedelta(weeks=week),
            marketingWeighted=marketing[week],
            stageWeighted=stage[week],
            cumulativeMarketing=cumulative_marketing,
            cumulativeStage=cumulative_stage,
        ))
    return projection


def generate_forecast(
    deals: DealSource,
    deal_scores: Sequence[DealScore],
    reference_date: Optional[Union[date, datetime]] = None,
    settings: Optional[Settings] = None,
    thresholds: Optional[Thresholds] = None,
) -> RevenueForecast:
    """
    Marketing-weighted and stage-weighted forecast over open deals.

    Args:
        deals: JourneyStore or iterable of Deal records; only open deals are
            forecast.
        deal_scores: Output of score_all_open_deals (matched by opportunity id).
        reference_date: Start of the weekly projection; defaults to the latest
            activity in `deals`.
        settings: Optional settings override.
        thresholds: Optional (commit, best_case, pipeline) override.

    Returns:
        RevenueForecast with per-deal rows, category buckets and projection.

    Raises:
        ConfigurationError: If `thresholds` is out of range or not descending.
    """
    settings = settings or get_settings()
    tiers = resolve_thresholds(settings, thresholds)
    store = as_store(deals)

    if reference_date is None:
        reference_date = store.reference_date() or UNDATED_REFERENCE
    reference = reference_date.date() if isinstance(reference_date, datetime) else reference_date

    scores: Dict[str, int] = {s.opportunity_id: s.probability for s in deal_scores}

    rows = []
    for deal in store.open():
        is_scored = deal.opportunity_id in scores
        score = float(scores[deal.opportunity_id]) if is_scored else settings.default_deal_score
        probability = settings.stage_probabilities[deal.stage]
        rows.append(ForecastDeal(
            opportunity_id=deal.opportunity_id,
            account_id=deal.account_id,
            account_name=deal.account_name,
            stage=deal.stage,
            deal_amount=deal.deal_amount,
            score=score,
            category=categorize(score, tiers),
            marketing_weighted_amount=deal.deal_amount * score / 100.0,
            stage_weighted_amount=deal.deal_amount * probability,
            stage_probability=probability,
            expected_close_week=expected_close_week(deal, reference, settings),
            is_scored=is_scored,
        ))
    rows.sort(key=lambda d: (-d.marketing_weighted_amount, d.opportunity_id))

    unscored = sum(1 for r in rows if not r.is_scored)
    if unscored:
        logger.info(f"{unscored} open deals had no score; using {settings.default_deal_score}")

    buckets = [_bucket(c, rows) for c in reversed(CATEGORY_LADDER)]
    marketing_total = sum(r.marketing_weighted_amount for r in rows)
    stage_total = sum(r.stage_weighted_amount for r in rows)
    by_category = {b.category: b for b in buckets}

    return RevenueForecast(
        referenceDate=reference,
        deals=rows,
        buckets=buckets,
        totalPipeline=sum(r.deal_amount for r in rows),
        marketingWeightedTotal=marketing_total,
        stageWeightedTotal=stage_total,
        highConfidenceTotal=(
            by_category[ForecastCategory.COMMIT].marketingWeighted
            + by_category[ForecastCategory.BEST_CASE].marketingWeighted
        ),
        atRiskTotal=by_category[ForecastCategory.AT_RISK].marketingWeighted,
        forecastDelta=marketing_total - stage_total,
        forecastDeltaPct=round(safe_divide(marketing_total - stage_total, stage_total) * 100.0, 1),
        weeklyProjection=weekly_projection(rows, reference, settings.forecast_horizon_weeks),
    )


# =============================================================================
# Scenarios
# =============================================================================


def _retier(
    deal: ForecastDeal,
    target: ForecastCategory,
    tiers: Thresholds,
) -> ScenarioDealChange:
    if target is ForecastCategory.LOST:
        new_amount = 0.0
    else:
        new_amount = deal.deal_amount * category_floor(target, tiers) / 100.0
    return ScenarioDealChange(
        opportunity_id=deal.opportunity_id,
        account_name=deal.account_name,
        originalCategory=deal.category,
        newCategory=target,
        impact=new_amount - deal.marketing_weighted_amount,
    )


def _scenario(
    forecast: RevenueForecast,
    label: str,
    description: str,
    changes: List[ScenarioDealChange],
) -> ForecastScenario:
    delta = sum(c.impact for c in changes)
    return ForecastScenario(
        label=label,
        description=description,
        adjustedTotal=forecast.marketingWeightedTotal + delta,
        deltaFromBase=delta,
        adjustedDeals=changes,
    )


def model_forecast_scenarios(
    forecast: RevenueForecast,
    settings: Optional[Settings] = None,
    thresholds: Optional[Thresholds] = None,
) -> List[ForecastScenario]:
    """
    Apply named perturbations to a forecast.

    Scenarios:
        - Rescue top at-risk deals: the largest N at-risk deals move to best_case
        - Upgrade pipeline tier: every pipeline deal moves up to best_case
        - Commit slippage: every commit deal slips to best_case
        - Lose at-risk deals: every at-risk deal drops out

    Returns:
        Scenarios in the order above, each with its changed deals.
    """
    settings = settings or get_settings()
    tiers = resolve_thresholds(settings, thresholds)

    def in_category(category: ForecastCategory) -> List[ForecastDeal]:
        return [d for d in forecast.deals if d.category is category]

    at_risk = sorted(
        in_category(ForecastCategory.AT_RISK),
        key=lambda d: (-d.deal_amount, d.opportunity_id),
    )
    rescue_count = settings.scenario_rescue_count
    rescued = at_risk[:rescue_count]

    scenarios = [
        _scenario(
            forecast,
            'Rescue top at-risk deals',
            f"Move the {len(rescued)} largest at-risk deals to best case",
            [_retier(d, ForecastCategory.BEST_CASE, tiers) for d in rescued],
        ),
        _scenario(
            forecast,
            'Upgrade pipeline tier',
            'Shift every pipeline deal up one tier to best case',
            [_retier(d, ForecastCategory.BEST_CASE, tiers)
             for d in in_category(ForecastCategory.PIPELINE)],
        ),
        _scenario(
            forecast,
            'Commit slippage',
            'Every commit deal slips one tier to best case',
            [_retier(d, ForecastCategory.BEST_CASE, tiers)
             for d in in_category(ForecastCategory.COMMIT)],
        ),
        _scenario(
            forecast,
            'Lose at-risk deals',
            'Every at-risk deal is lost and drops out of the forecast',
            [_retier(d, ForecastCategory.LOST, tiers) for d in at_risk],
        ),
    ]
    logger.debug(
        "Scenario deltas: " + ", ".join(f"{s.label}={s.deltaFromBase:.0f}" for s in scenarios)
    )
    return scenarios
