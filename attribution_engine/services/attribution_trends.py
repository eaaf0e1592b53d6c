"""
Attribution trend analysis across reporting cutoffs.

Runs an attribution model over journeys truncated at successive cutoffs to
show how channel credit shifts over time, and compares how much the models
disagree about each channel.

Key Outputs:
    - PeriodAttribution: one model run at one cutoff with totals
    - ChannelTrend: pipeline/share/opps/revenue series per channel, the last
      period-over-period deltas and an overall momentum label
    - ModelDivergence: spread between the most and least generous model for
      each channel, in percentage points of pipeline share

Momentum Rules:
    With three or more periods, the share change first->middle plus
    middle->last above +1.5pp is rising and below -1.5pp is declining. With
    two periods, the last delta must exceed 1pp either way. Otherwise stable.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union

from attribution_engine.core.config import Settings
from attribution_engine.models.enums import AttributionModel, Channel, Momentum, channel_order
from attribution_engine.models.schemas import (
    AttributionResult,
    ChannelTrend,
    ModelDivergence,
    PeriodAttribution,
    TrendPoint,
)
from attribution_engine.services.attribution import (
    RULE_BASED_MODELS,
    attribution_totals,
    compute_attribution,
    resolve_model,
)
from attribution_engine.services.journey_store import DealSource, as_store
from attribution_engine.services.stats import pct, safe_divide, to_datetime


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Net share change (pp) across three or more periods that counts as movement
MOMENTUM_MULTI_PERIOD_PP: float = 1.5

# Share change (pp) between exactly two periods that counts as movement
MOMENTUM_TWO_PERIOD_PP: float = 1.0


def attribution_as_of(
    model: Union[AttributionModel, str],
    deals: DealSource,
    cutoff: Union[date, datetime],
    settings: Optional[Settings] = None,
) -> PeriodAttribution:
    """Run `model` over touches recorded on or before `cutoff`."""
    model = resolve_model(model)
    cutoff_dt = to_datetime(cutoff)
    store = as_store(deals).as_of(cutoff_dt)
    results = compute_attribution(model, store, settings=settings)
    totals = attribution_totals(results)
    return PeriodAttribution(
        cutoff=cutoff_dt,
        model=model,
        results=results,
        totalPipeline=totals.pipeline,
        totalRevenue=totals.revenue,
        totalOpps=totals.opps,
    )


def _momentum(shares: List[float], share_delta_pp: float) -> Momentum:
    if len(shares) >= 3:
        first, middle, last = shares[0], shares[len(shares) // 2], shares[-1]
        net = (middle - first) + (last - middle)
        if net > MOMENTUM_MULTI_PERIOD_PP:
            return Momentum.RISING
        if net < -MOMENTUM_MULTI_PERIOD_PP:
            return Momentum.DECLINING
    elif len(shares) == 2:
        if share_delta_pp > MOMENTUM_TWO_PERIOD_PP:
            return Momentum.RISING
        if share_delta_pp < -MOMENTUM_TWO_PERIOD_PP:
            return Momentum.DECLINING
    return Momentum.STABLE


def compute_channel_trends(
    model: Union[AttributionModel, str],
    deals: DealSource,
    cutoffs: Sequence[Union[date, datetime]],
    settings: Optional[Settings] = None,
) -> List[ChannelTrend]:
    """
    Per-channel attribution series across ascending cutoffs.

    Channels that appear at any cutoff are reported; periods where a channel
    has no credit contribute 0.

    Example:
        >>> trends = compute_channel_trends("linear", store, [date(2025, 10, 31),
        ...                                                   date(2025, 11, 30),
        ...                                                   date(2025, 12, 31)])
        >>> [t.momentum for t in trends]
    """
    store = as_store(deals)
    periods = [
        attribution_as_of(model, store, c, settings=settings)
        for c in sorted(to_datetime(c) for c in cutoffs)
    ]
    channels = sorted({ch for p in periods for ch in p.results}, key=channel_order)

    trends = []
    empty = AttributionResult()
    for ch in channels:
        pipeline, share, opps, revenue = [], [], [], []
        for p in periods:
            result = p.results.get(ch, empty)
            pipeline.append(TrendPoint(cutoff=p.cutoff, value=result.pipeline))
            share.append(TrendPoint(cutoff=p.cutoff, value=pct(result.pipeline, p.totalPipeline)))
            opps.append(TrendPoint(cutoff=p.cutoff, value=round(result.opps, 1)))
            revenue.append(TrendPoint(cutoff=p.cutoff, value=result.revenue))

        share_values = [pt.value for pt in share]
        last_share = share_values[-1] if share_values else 0.0
        prev_share = share_values[-2] if len(share_values) >= 2 else last_share
        share_delta_pp = round(last_share - prev_share, 1)

        last_pipeline = pipeline[-1].value if pipeline else 0.0
        prev_pipeline = pipeline[-2].value if len(pipeline) >= 2 else last_pipeline
        trends.append(ChannelTrend(
            channel=ch,
            pipeline=pipeline,
            share=share,
            opps=opps,
            revenue=revenue,
            shareDeltaPp=share_delta_pp,
            pipelineDelta=last_pipeline - prev_pipeline,
            pipelineDeltaPct=round(safe_divide(last_pipeline - prev_pipeline, prev_pipeline) * 100, 1),
            momentum=_momentum(share_values, share_delta_pp),
        ))
    logger.debug(f"Channel trends for {len(channels)} channels over {len(periods)} cutoffs")
    return trends


def compute_model_divergence(
    deals: DealSource,
    models: Optional[Sequence[Union[AttributionModel, str]]] = None,
    settings: Optional[Settings] = None,
) -> List[ModelDivergence]:
    """
    How far apart the models are on each channel's pipeline share.

    Returns:
        One ModelDivergence per observed channel, sorted by spread descending.
        Ties between models resolve to the earlier model in `models`.
    """
    model_list = [resolve_model(m) for m in (models or RULE_BASED_MODELS)]
    shares: Dict[AttributionModel, Dict[Channel, float]] = {}
    for m in model_list:
        results = compute_attribution(m, deals, settings=settings)
        total = attribution_totals(results).pipeline
        shares[m] = {ch: pct(r.pipeline, total) for ch, r in results.items()}

    channels = sorted({ch for s in shares.values() for ch in s}, key=channel_order)
    divergences = []
    for ch in channels:
        by_model = [(m, shares[m].get(ch, 0.0)) for m in model_list]
        highest = max(by_model, key=lambda item: item[1])
        lowest = min(by_model, key=lambda item: item[1])
        divergences.append(ModelDivergence(
            channel=ch,
            spreadPp=round(highest[1] - lowest[1], 1),
            highestModel=highest[0],
            lowestModel=lowest[0],
            highestSharePct=highest[1],
            lowestSharePct=lowest[1],
        ))
    divergences.sort(key=lambda d: (-d.spreadPp, channel_order(d.channel)))
    return divergences
