"""
Cohort & Segmentation Analyzer.

Groups accounts by a shared trait and reports aggregate outcomes per group.

Cohort Types:
    - timeCohorts: calendar month (YYYY-MM) of the first touch, chronological,
      with the share of the cohort that reached each pipeline stage
    - channelCohorts: first-touch channel, enum order, with the channel mix of
      every touch after the first
    - densityCohorts: total touch count bucketed by Settings.density_buckets
      (default 1-3, 4-6, 7-9, 10+). Every configured bucket is reported, even
      when empty, so downstream comparisons can rely on fixed labels
    - industryCohorts: industry tag, alphabetical, with the plurality
      first-touch channel

Metric Definitions:
    winRate = won / (won + lost); open deals count toward accountCount and
    pipeline only. avgVelocityDays averages the first-to-last touch span over
    accounts with at least two touches.

Zero-touch accounts have no first touch and no density, so they are left out
of the time, channel and density cohorts. They still count in their industry.

Dependencies:
    - pandas: groupby aggregation over JourneyStore.to_frame()
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.models.enums import PIPELINE_STAGES, Channel, channel_order
from attribution_engine.models.schemas import (
    ChannelCohort,
    CohortAnalysis,
    Deal,
    DensityCohort,
    IndustryCohort,
    TimeCohort,
)
from attribution_engine.services.funnel import reached_stage
from attribution_engine.services.journey_store import DealSource, as_store
from attribution_engine.services.stats import safe_divide


logger = logging.getLogger(__name__)


# =============================================================================
# Shared aggregation
# =============================================================================


def _group_metrics(frame: pd.DataFrame, label: str) -> Dict[str, object]:
    """CohortGroup fields for the rows of one group."""
    won = int(frame['is_won'].sum())
    lost = int(frame['is_lost'].sum())
    velocity = frame['velocity_days'].dropna()
    count = int(len(frame))
    return {
        'label': label,
        'accountCount': count,
        'pipeline': float(frame['deal_amount'].sum()),
        'revenue': float(frame['won_amount'].sum()),
        'winRate': safe_divide(won, won + lost),
        'avgTouches': float(frame['touch_count'].mean()) if count else 0.0,
        'avgDealSize': float(frame['deal_amount'].mean()) if count else 0.0,
        'avgVelocityDays': float(velocity.mean()) if len(velocity) else 0.0,
    }


def channel_mix(channels: Iterable[Channel]) -> Dict[Channel, float]:
    """Share of each channel in `channels`, enum order; empty when no input."""
    counts = Counter(channels)
    total = sum(counts.values())
    return {
        ch: safe_divide(counts[ch], total)
        for ch in sorted(counts, key=channel_order)
    }


def plurality_channel(channels: Iterable[Channel]) -> Optional[Channel]:
    """Most common channel; ties resolve to enum order, None for no input."""
    counts = Counter(channels)
    if not counts:
        return None
    return min(counts, key=lambda ch: (-counts[ch], channel_order(ch)))


def density_label(low: int, high: Optional[int]) -> str:
    return f"{low}+" if high is None else f"{low}-{high}"


# =============================================================================
# Cohort builders
# =============================================================================


def time_cohorts(frame: pd.DataFrame, deals_by_id: Dict[str, Deal]) -> List[TimeCohort]:
    touched = frame[frame['touch_count'] > 0]
    cohorts = []
    for month, group in touched.groupby('first_touch_month', sort=True):
        members = [deals_by_id[oid] for oid in group['opportunity_id']]
        conversion = {
            stage: safe_divide(sum(1 for d in members if reached_stage(d, stage)), len(members))
            for stage in PIPELINE_STAGES
        }
        cohorts.append(TimeCohort(**_group_metrics(group, str(month)), stageConversion=conversion))
    return cohorts


def channel_cohorts(frame: pd.DataFrame, deals_by_id: Dict[str, Deal]) -> List[ChannelCohort]:
    touched = frame[frame['touch_count'] > 0]
    groups = dict(tuple(touched.groupby('first_touch_channel')))
    cohorts = []
    for value in sorted(groups, key=lambda v: channel_order(Channel(v))):
        group = groups[value]
        channel = Channel(value)
        subsequent = [
            tp.channel
            for oid in group['opportunity_id']
            for tp in deals_by_id[oid].touchpoints[1:]
        ]
        cohorts.append(ChannelCohort(
            **_group_metrics(group, channel.value),
            channel=channel,
            subsequentChannelMix=channel_mix(subsequent),
        ))
    return cohorts


def density_cohorts(
    frame: pd.DataFrame,
    deals_by_id: Dict[str, Deal],
    buckets: Sequence[tuple],
) -> List[DensityCohort]:
    touched = frame[frame['touch_count'] > 0]
    cohorts = []
    for low, high in buckets:
        mask = touched['touch_count'] >= low
        if high is not None:
            mask &= touched['touch_count'] <= high
        group = touched[mask]
        mix = channel_mix(
            tp.channel for oid in group['opportunity_id'] for tp in deals_by_id[oid].touchpoints
        )
        cohorts.append(DensityCohort(
            **_group_metrics(group, density_label(low, high)),
            minTouches=low,
            maxTouches=high,
            channelMix=mix,
        ))
    return cohorts


def industry_cohorts(frame: pd.DataFrame, deals_by_id: Dict[str, Deal]) -> List[IndustryCohort]:
    cohorts = []
    for industry, group in frame.groupby('industry', sort=True):
        first_channels = [
            deals_by_id[oid].first_touch.channel
            for oid in group['opportunity_id']
            if deals_by_id[oid].touchpoints
        ]
        cohorts.append(IndustryCohort(
            **_group_metrics(group, str(industry)),
            topFirstTouchChannel=plurality_channel(first_channels),
        ))
    return cohorts


# =============================================================================
# Public API
# =============================================================================


def analyze_cohorts(deals: DealSource, settings: Optional[Settings] = None) -> CohortAnalysis:
    """
    Time, channel, density and industry cohorts for the given deals.

    Args:
        deals: JourneyStore or iterable of Deal records.
        settings: Optional settings override; density_buckets is read here.

    Returns:
        CohortAnalysis with the four cohort lists.

    Example:
        >>> cohorts = analyze_cohorts(store)
        >>> [c.label for c in cohorts.densityCohorts]
        ['1-3', '4-6', '7-9', '10+']
    """
    settings = settings or get_settings()
    store = as_store(deals)
    if len(store) == 0:
        return CohortAnalysis(
            densityCohorts=density_cohorts(
                store.to_frame(), {}, settings.density_buckets
            ),
        )

    frame = store.to_frame()
    deals_by_id = {d.opportunity_id: d for d in store}

    analysis = CohortAnalysis(
        timeCohorts=time_cohorts(frame, deals_by_id),
        channelCohorts=channel_cohorts(frame, deals_by_id),
        densityCohorts=density_cohorts(frame, deals_by_id, settings.density_buckets),
        industryCohorts=industry_cohorts(frame, deals_by_id),
    )
    logger.info(
        f"Cohorts: {len(analysis.timeCohorts)} months, {len(analysis.channelCohorts)} "
        f"origin channels, {len(analysis.industryCohorts)} industries over {len(store)} accounts"
    )
    return analysis
