"""
Spend Optimizer: redistribute a budget to maximize projected pipeline.

Response Model:
    pipeline_c(spend) = a_c * sqrt(spend)

    a_c is fit from the channel's current (spend, pipeline) observation,
    a_c = pipeline / sqrt(spend), or, when at least two historical points
    exist, by least squares through the origin on sqrt(spend).

Optimization:
    Maximizing sum_c a_c * sqrt(s_c) subject to sum_c s_c = B and
    lo_c <= s_c <= hi_c gives equal marginal returns on the free channels:

        a_c / (2 * sqrt(s_c)) = lambda   =>   s_c = a_c^2 * t,  t = 1 / (4 lambda^2)

    The water level t is found by bisection on
        g(t) = sum_c clamp(a_c^2 * t, lo_c, hi_c) = B
    which is monotone in t.

Bounds:
    Defaults are Settings.spend_min_fraction / spend_max_fraction of current
    spend; ChannelSpendBounds overrides them per channel. A channel with zero
    current spend has no observable coefficient and receives the fixed
    Settings.zero_spend_floor allocation instead (isFloorAllocation).

Edge Cases:
    - Budget below the sum of minimums: allocate proportionally to minimums
    - Budget above the sum of maximums: every channel at its maximum, the rest
      reported as unallocatedBudget
    - Marginal ROI at zero spend is reported as 0

Dependencies:
    - numpy: vectorized water-filling
    - scikit-learn: LinearRegression(fit_intercept=False) for multi-point fits
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
from sklearn.linear_model import LinearRegression

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import ConfigurationError, check_spend_bounds
from attribution_engine.models.enums import AttributionModel, CHANNEL_LABELS, Channel, channel_order
from attribution_engine.models.schemas import (
    ChannelAllocation,
    ChannelSpendBounds,
    OptimizationResult,
    ResponseCurvePoint,
    SpendObservation,
    SpendScenarioResult,
)
from attribution_engine.services.attribution import compute_attribution
from attribution_engine.services.journey_store import DealSource, as_deals
from attribution_engine.services.stats import pct, safe_divide


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Budget multipliers compared by compare_spend_scenarios
SCENARIO_MULTIPLIERS: Sequence[float] = (0.8, 1.0, 1.2, 1.5)

# Response curves span this multiple of current spend
RESPONSE_CURVE_SPAN: float = 3.0
RESPONSE_CURVE_POINTS: int = 20

# Water-level bisection
BISECTION_ITERATIONS: int = 200
MAX_WATER_LEVEL: float = 1e30

# Attribution model supplying current pipeline when none is given
DEFAULT_PIPELINE_MODEL: AttributionModel = AttributionModel.LINEAR


@dataclass
class ChannelPlan:
    """Inputs of one channel to the allocation solve."""
    channel: Channel
    current_spend: float
    current_pipeline: float
    coefficient: float
    min_budget: float
    max_budget: Optional[float]
    is_floor: bool = False


# =============================================================================
# Response Curve
# =============================================================================


def fit_response_coefficient(
    current_spend: float,
    current_pipeline: float,
    history: Optional[Sequence[SpendObservation]] = None,
) -> float:
    """
    Coefficient a in pipeline = a * sqrt(spend).

    Returns:
        Least-squares fit through the origin over the current point plus
        history when there are at least two points with positive spend;
        otherwise the single-point fit; 0 when spend is 0.
    """
    points = [(o.spend, o.pipeline) for o in (history or []) if o.spend > 0]
    if current_spend > 0:
        points.append((current_spend, current_pipeline))
    if len(points) >= 2:
        x = np.sqrt(np.array([p[0] for p in points], dtype=np.float64)).reshape(-1, 1)
        y = np.array([p[1] for p in points], dtype=np.float64)
        model = LinearRegression(fit_intercept=False).fit(x, y)
        return max(0.0, float(model.coef_[0]))
    if len(points) == 1:
        spend, pipeline = points[0]
        return pipeline / np.sqrt(spend)
    return 0.0


def projected_pipeline(coefficient: float, spend: float) -> float:
    return float(coefficient * np.sqrt(max(spend, 0.0)))


def marginal_roi(coefficient: float, spend: float) -> float:
    """d(pipeline)/d(spend) = a / (2 sqrt(spend)); 0 at zero spend."""
    if spend <= 0:
        return 0.0
    return float(coefficient / (2.0 * np.sqrt(spend)))


def channel_response_curve(
    coefficient: float,
    current_spend: float,
    points: int = RESPONSE_CURVE_POINTS,
    span: float = RESPONSE_CURVE_SPAN,
) -> List[ResponseCurvePoint]:
    """Pipeline and marginal ROI from 0 to span x current spend."""
    if points < 2:
        raise ConfigurationError("A response curve needs at least two points")
    upper = max(current_spend, 0.0) * span
    return [
        ResponseCurvePoint(
            spend=float(s),
            pipeline=projected_pipeline(coefficient, s),
            marginalROI=marginal_roi(coefficient, s),
        )
        for s in np.linspace(0.0, upper, points)
    ]


# =============================================================================
# Allocation
# =============================================================================


def _as_channel(key: Union[Channel, str]) -> Channel:
    if isinstance(key, Channel):
        return key
    try:
        return Channel(key)
    except ValueError:
        raise ConfigurationError(f"Unknown channel {key!r}") from None


def build_channel_plans(
    current_spend_by_channel: Mapping[Union[Channel, str], float],
    current_pipeline_by_channel: Mapping[Union[Channel, str], float],
    bounds: Optional[Mapping[Union[Channel, str], ChannelSpendBounds]] = None,
    spend_history: Optional[Mapping[Union[Channel, str], Sequence[SpendObservation]]] = None,
    settings: Optional[Settings] = None,
) -> List[ChannelPlan]:
    """Resolve coefficients and bounds for every channel with a spend entry."""
    settings = settings or get_settings()
    spend = {_as_channel(k): float(v) for k, v in current_spend_by_channel.items()}
    pipeline = {_as_channel(k): float(v) for k, v in current_pipeline_by_channel.items()}
    explicit = {_as_channel(k): v for k, v in (bounds or {}).items()}
    history = {_as_channel(k): v for k, v in (spend_history or {}).items()}

    ignored = sorted(set(pipeline) - set(spend), key=channel_order)
    if ignored:
        logger.debug(f"No spend entry for {[c.value for c in ignored]}; left out of the plan")

    plans = []
    for ch in sorted(spend, key=channel_order):
        current = spend[ch]
        if current < 0:
            raise ConfigurationError(f"Current spend for {ch.value} cannot be negative")
        coefficient = fit_response_coefficient(current, pipeline.get(ch, 0.0), history.get(ch))
        is_floor = current == 0 and not history.get(ch)

        if ch in explicit:
            low, high = explicit[ch].min_budget, explicit[ch].max_budget
        elif is_floor:
            low, high = settings.zero_spend_floor, settings.zero_spend_floor
        elif current == 0:
            low, high = 0.0, None
        else:
            low = current * settings.spend_min_fraction
            high = current * settings.spend_max_fraction
        check_spend_bounds(ch.value, low, high)

        if is_floor and ch in explicit:
            floor = settings.zero_spend_floor
            floor = max(low, floor if high is None else min(high, floor))
            low, high = floor, floor

        plans.append(ChannelPlan(
            channel=ch,
            current_spend=current,
            current_pipeline=pipeline.get(ch, 0.0),
            coefficient=coefficient,
            min_budget=low,
            max_budget=high,
            is_floor=is_floor,
        ))
    return plans


def water_fill(
    coefficients: np.ndarray,
    lower: np.ndarray,
    upper: np.ndarray,
    budget: float,
) -> np.ndarray:
    """
    Allocation with equal marginal return on unconstrained channels.

    `upper` may hold np.inf. Assumes sum(lower) <= budget < sum(upper).
    """
    demand = coefficients ** 2

    def allocate(level: float) -> np.ndarray:
        return np.clip(demand * level, lower, upper)

    low_level, high_level = 0.0, 1.0
    while allocate(high_level).sum() < budget and high_level < MAX_WATER_LEVEL:
        high_level *= 2.0
    for _ in range(BISECTION_ITERATIONS):
        mid = (low_level + high_level) / 2.0
        if allocate(mid).sum() < budget:
            low_level = mid
        else:
            high_level = mid
    return allocate(high_level)


def allocate_budget(plans: Sequence[ChannelPlan], total_budget: float) -> np.ndarray:
    """Recommended spend per plan, in plan order."""
    lower = np.array([p.min_budget for p in plans], dtype=np.float64)
    upper = np.array(
        [np.inf if p.max_budget is None else p.max_budget for p in plans],
        dtype=np.float64,
    )
    coefficients = np.array([p.coefficient for p in plans], dtype=np.float64)

    min_total = lower.sum()
    if total_budget < min_total:
        logger.warning(
            f"Budget {total_budget:,.0f} below channel minimums {min_total:,.0f}; "
            f"allocating proportionally to minimums"
        )
        if min_total == 0:
            return np.zeros(len(plans))
        return lower * (total_budget / min_total)

    if np.isfinite(upper).all() and total_budget >= upper.sum():
        return upper.copy()

    # Channels without response cannot absorb budget beyond their minimum
    absorbing = (coefficients > 0) & (upper > lower)
    if not absorbing.any():
        return lower.copy()
    if np.isfinite(upper[absorbing]).all():
        capacity = lower[~absorbing].sum() + upper[absorbing].sum()
        if total_budget >= capacity:
            result = lower.copy()
            result[absorbing] = upper[absorbing]
            return result

    result = lower.copy()
    result[absorbing] = water_fill(
        coefficients[absorbing],
        lower[absorbing],
        upper[absorbing],
        total_budget - lower[~absorbing].sum(),
    )
    return result


def optimize_spend(
    total_budget: float,
    current_spend_by_channel: Mapping[Union[Channel, str], float],
    current_pipeline_by_channel: Mapping[Union[Channel, str], float],
    bounds: Optional[Mapping[Union[Channel, str], ChannelSpendBounds]] = None,
    spend_history: Optional[Mapping[Union[Channel, str], Sequence[SpendObservation]]] = None,
    settings: Optional[Settings] = None,
) -> OptimizationResult:
    """
    Redistribute `total_budget` across channels to maximize projected pipeline.

    Args:
        total_budget: Budget to allocate (>= 0).
        current_spend_by_channel: Current spend; defines the channel set.
        current_pipeline_by_channel: Current pipeline per channel.
        bounds: Optional per-channel min/max overrides.
        spend_history: Optional historical (spend, pipeline) points per channel.
        settings: Optional settings override.

    Returns:
        OptimizationResult with allocations sorted by recommended budget.

    Raises:
        ConfigurationError: Negative budget or spend, min above max, or an
            unknown channel name.

    Example:
        >>> result = optimize_spend(
        ...     100_000,
        ...     {"linkedin_ads": 40_000, "webinar": 60_000},
        ...     {"linkedin_ads": 400_000, "webinar": 300_000},
        ... )
        >>> [(a.channel.value, round(a.recommendedBudget)) for a in result.allocations]
        [('linkedin_ads', 70000), ('webinar', 30000)]
    """
    if total_budget < 0:
        raise ConfigurationError(f"Total budget cannot be negative, got {total_budget}")
    settings = settings or get_settings()
    plans = build_channel_plans(
        current_spend_by_channel,
        current_pipeline_by_channel,
        bounds=bounds,
        spend_history=spend_history,
        settings=settings,
    )
    recommended = allocate_budget(plans, float(total_budget)) if plans else np.zeros(0)

    allocations = []
    for plan, budget in zip(plans, recommended):
        budget = float(budget)
        if plan.is_floor:
            projected = plan.current_pipeline
        else:
            projected = projected_pipeline(plan.coefficient, budget)
        change = budget - plan.current_spend
        allocations.append(ChannelAllocation(
            channel=plan.channel,
            channelName=CHANNEL_LABELS[plan.channel],
            currentBudget=plan.current_spend,
            recommendedBudget=budget,
            change=change,
            changePct=pct(change, plan.current_spend),
            currentPipeline=plan.current_pipeline,
            projectedPipeline=projected,
            pipelineDelta=projected - plan.current_pipeline,
            currentROI=safe_divide(plan.current_pipeline, plan.current_spend),
            projectedROI=safe_divide(projected, budget),
            marginalROI=marginal_roi(plan.coefficient, budget),
            coefficient=plan.coefficient,
            minBudget=plan.min_budget,
            maxBudget=plan.max_budget,
            isFloorAllocation=plan.is_floor,
        ))
    allocations.sort(key=lambda a: (-a.recommendedBudget, channel_order(a.channel)))

    current_total = sum(a.currentPipeline for a in allocations)
    projected_total = sum(a.projectedPipeline for a in allocations)
    allocated = sum(a.recommendedBudget for a in allocations)
    result = OptimizationResult(
        totalBudget=float(total_budget),
        currentTotalBudget=sum(a.currentBudget for a in allocations),
        allocatedBudget=allocated,
        unallocatedBudget=max(0.0, float(total_budget) - allocated),
        currentTotalPipeline=current_total,
        projectedTotalPipeline=projected_total,
        pipelineDelta=projected_total - current_total,
        pipelineDeltaPct=pct(projected_total - current_total, current_total),
        allocations=allocations,
    )
    logger.info(
        f"Optimized {total_budget:,.0f} across {len(allocations)} channels: "
        f"pipeline {current_total:,.0f} -> {projected_total:,.0f}"
    )
    return result


def compare_spend_scenarios(
    current_spend_by_channel: Mapping[Union[Channel, str], float],
    current_pipeline_by_channel: Mapping[Union[Channel, str], float],
    multipliers: Sequence[float] = SCENARIO_MULTIPLIERS,
    bounds: Optional[Mapping[Union[Channel, str], ChannelSpendBounds]] = None,
    spend_history: Optional[Mapping[Union[Channel, str], Sequence[SpendObservation]]] = None,
    settings: Optional[Settings] = None,
) -> List[SpendScenarioResult]:
    """Optimize at several multiples of the current total budget."""
    current_total = sum(float(v) for v in current_spend_by_channel.values())
    scenarios = []
    for multiplier in multipliers:
        result = optimize_spend(
            current_total * multiplier,
            current_spend_by_channel,
            current_pipeline_by_channel,
            bounds=bounds,
            spend_history=spend_history,
            settings=settings,
        )
        label = "Current budget" if multiplier == 1.0 else f"{(multiplier - 1.0) * 100:+.0f}% budget"
        scenarios.append(SpendScenarioResult(
            label=label,
            budgetMultiplier=multiplier,
            totalBudget=result.totalBudget,
            projectedTotalPipeline=result.projectedTotalPipeline,
            pipelineDelta=result.pipelineDelta,
            pipelineDeltaPct=result.pipelineDeltaPct,
            result=result,
        ))
    return scenarios


# =============================================================================
# Inputs from the journey dataset
# =============================================================================


def spend_by_channel(deals: DealSource) -> Dict[Channel, float]:
    """Total recorded touchpoint cost per channel (channels with any cost)."""
    totals: Dict[Channel, float] = {}
    for deal in as_deals(deals):
        for tp in deal.touchpoints:
            if tp.cost is not None:
                totals[tp.channel] = totals.get(tp.channel, 0.0) + tp.cost
    return {ch: totals[ch] for ch in sorted(totals, key=channel_order)}


def pipeline_by_channel(
    deals: DealSource,
    model: Union[AttributionModel, str] = DEFAULT_PIPELINE_MODEL,
    settings: Optional[Settings] = None,
) -> Dict[Channel, float]:
    """Attributed pipeline per channel under `model`."""
    results = compute_attribution(model, deals, settings=settings)
    return {ch: r.pipeline for ch, r in results.items()}


def optimize_spend_from_attribution(
    deals: DealSource,
    total_budget: Optional[float] = None,
    model: Union[AttributionModel, str] = DEFAULT_PIPELINE_MODEL,
    current_spend_by_channel: Optional[Mapping[Union[Channel, str], float]] = None,
    bounds: Optional[Mapping[Union[Channel, str], ChannelSpendBounds]] = None,
    settings: Optional[Settings] = None,
) -> OptimizationResult:
    """
    Optimize using attributed pipeline as the current per-channel pipeline.

    Spend defaults to recorded touchpoint cost and the budget to current total
    spend (a pure reallocation).
    """
    deal_list = as_deals(deals)
    spend = (
        dict(current_spend_by_channel)
        if current_spend_by_channel is not None
        else spend_by_channel(deal_list)
    )
    budget = sum(float(v) for v in spend.values()) if total_budget is None else total_budget
    return optimize_spend(
        budget,
        spend,
        pipeline_by_channel(deal_list, model=model, settings=settings),
        bounds=bounds,
        settings=settings,
    )
