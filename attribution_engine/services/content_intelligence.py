"""
Content Performance Intelligence.

Builds a content asset x pipeline stage heatmap and flags stages where
content engagement is thin.

Content Touches:
    - any touchpoint with a content_asset, keyed by the asset name
    - web visits to content-like pages (whitepaper, case study, datasheet,
      ROI calculator), keyed by the page URL
    The asset type is inferred from keywords in the name or URL and defaults
    to whitepaper.

Engagement Stage:
    A touch is placed at the latest open stage the deal had entered on the
    touch date according to its stage history. Touches before the first
    recorded stage land at disco_set. Without any stage history the deal's
    current stage is used when it is open, disco_set otherwise.

Gap Rules (per open stage):
    - low_density: stage engagements below LOW_DENSITY_RATIO of the busiest
      stage; critical when deals average more than CRITICAL_STALL_DAYS there
    - missing_asset_type: MISSING_TYPE_GAP_MIN or more of the stage's
      suited formats (IDEAL_ASSET_TYPES) never engaged
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from attribution_engine.models.enums import (
    OPEN_STAGES,
    STAGE_LABELS,
    AssetType,
    Channel,
    ContentGapType,
    GapSeverity,
    Stage,
)
from attribution_engine.models.schemas import (
    ContentGap,
    ContentIntelligence,
    ContentPerformance,
    ContentStageCell,
    Deal,
    Touchpoint,
)
from attribution_engine.services.journey_store import DealSource, as_deals
from attribution_engine.services.stats import mean, round_half_up, safe_divide


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Stages content is mapped onto; closed stages have no buying activity
CONTENT_STAGES: List[Stage] = list(OPEN_STAGES)

# URL fragments marking a web visit as content consumption
CONTENT_PAGE_KEYWORDS: tuple = ('whitepaper', 'case-study', 'datasheet', 'roi-calculator')

# First match wins; names are lowercased with '-' and '_' read as spaces
ASSET_KEYWORDS: List[tuple] = [
    ('case study', AssetType.CASE_STUDY),
    ('roi calculator', AssetType.ROI_CALCULATOR),
    ('datasheet', AssetType.DATASHEET),
    ('webinar', AssetType.WEBINAR_RECORDING),
    ('infographic', AssetType.INFOGRAPHIC),
    ('video', AssetType.VIDEO),
    ('guide', AssetType.GUIDE),
    ('whitepaper', AssetType.WHITEPAPER),
]

# Formats suited to each stage of the buying journey
IDEAL_ASSET_TYPES: Dict[Stage, List[AssetType]] = {
    Stage.DISCO_SET: [AssetType.WHITEPAPER, AssetType.INFOGRAPHIC, AssetType.GUIDE],
    Stage.DISCO_COMPLETED: [AssetType.DATASHEET, AssetType.CASE_STUDY, AssetType.GUIDE],
    Stage.SOLUTION_ACCEPTED: [AssetType.CASE_STUDY, AssetType.VIDEO, AssetType.GUIDE],
    Stage.EVAL_PLANNING: [AssetType.ROI_CALCULATOR, AssetType.DATASHEET, AssetType.CASE_STUDY],
    Stage.NEGOTIATION: [AssetType.CASE_STUDY, AssetType.WHITEPAPER, AssetType.ROI_CALCULATOR],
}

LOW_DENSITY_RATIO: float = 0.15
CRITICAL_STALL_DAYS: int = 20
MISSING_TYPE_GAP_MIN: int = 2

# Used when no deal records time in a stage
DEFAULT_STAGE_DAYS: int = 15

# Baseline won-deal cycle when no won deal has stage history
DEFAULT_WON_CYCLE_DAYS: float = 120.0


@dataclass
class _AssetTally:
    asset_type: AssetType
    engagements: int = 0
    pipeline: float = 0.0
    deal_ids: Set[str] = field(default_factory=set)
    won_ids: Set[str] = field(default_factory=set)
    lost_ids: Set[str] = field(default_factory=set)
    won_cycles: List[float] = field(default_factory=list)
    stage_counts: Dict[Stage, int] = field(default_factory=dict)


# =============================================================================
# Touch classification
# =============================================================================


def infer_asset_type(name: str) -> AssetType:
    text = name.lower().replace('-', ' ').replace('_', ' ')
    for keyword, asset_type in ASSET_KEYWORDS:
        if keyword in text:
            return asset_type
    return AssetType.WHITEPAPER


def content_key(touch: Touchpoint) -> Optional[str]:
    """Asset name a touch engaged with, or None for non-content touches."""
    if touch.content_asset:
        return touch.content_asset
    if touch.channel is Channel.WEB_VISIT and touch.page_url:
        url = touch.page_url.lower()
        if any(keyword in url for keyword in CONTENT_PAGE_KEYWORDS):
            return touch.page_url
    return None


def engagement_stage(deal: Deal, touch: Touchpoint) -> Stage:
    """Open stage the deal was in when the touch happened."""
    touch_day = touch.timestamp.date()
    entered = [
        e for e in deal.stage_history
        if e.stage in CONTENT_STAGES and e.entered_date <= touch_day
    ]
    if entered:
        return max(entered, key=lambda e: (e.entered_date, e.stage.pipeline_index)).stage
    if deal.stage_history:
        return Stage.DISCO_SET
    return deal.stage if deal.stage in CONTENT_STAGES else Stage.DISCO_SET


def cycle_days(deal: Deal) -> float:
    return float(sum(e.days_in_stage for e in deal.stage_history))


# =============================================================================
# Heatmap
# =============================================================================


def build_content_heatmap(deals: DealSource) -> List[ContentPerformance]:
    """
    Per-asset engagement, pipeline influence and stage distribution.

    Returns:
        ContentPerformance list sorted by engagements descending, then name.
    """
    deal_list = as_deals(deals)
    won_total = sum(1 for d in deal_list if d.is_won)
    lost_total = sum(1 for d in deal_list if d.is_lost)

    tallies: Dict[str, _AssetTally] = {}
    for deal in deal_list:
        for tp in deal.touchpoints:
            key = content_key(tp)
            if key is None:
                continue
            tally = tallies.setdefault(key, _AssetTally(asset_type=infer_asset_type(key)))
            tally.engagements += 1
            stage = engagement_stage(deal, tp)
            tally.stage_counts[stage] = tally.stage_counts.get(stage, 0) + 1
            if deal.opportunity_id in tally.deal_ids:
                continue
            tally.deal_ids.add(deal.opportunity_id)
            tally.pipeline += deal.deal_amount
            if deal.is_won:
                tally.won_ids.add(deal.opportunity_id)
                tally.won_cycles.append(cycle_days(deal))
            elif deal.is_lost:
                tally.lost_ids.add(deal.opportunity_id)

    max_cell = max([1] + [n for t in tallies.values() for n in t.stage_counts.values()])
    won_cycles = [cycle_days(d) for d in deal_list if d.is_won and d.stage_history]
    baseline = mean(won_cycles) if won_cycles else DEFAULT_WON_CYCLE_DAYS

    heatmap = []
    for name, tally in tallies.items():
        asset_cycle = mean(tally.won_cycles) if tally.won_cycles else baseline
        heatmap.append(ContentPerformance(
            contentAsset=name,
            assetType=tally.asset_type,
            totalEngagements=tally.engagements,
            dealsInfluenced=len(tally.deal_ids),
            pipelineInfluenced=tally.pipeline,
            appearsInWonPct=round_half_up(safe_divide(len(tally.won_ids), won_total) * 100.0),
            appearsInLostPct=round_half_up(safe_divide(len(tally.lost_ids), lost_total) * 100.0),
            accelerationDays=round_half_up(baseline - asset_cycle),
            stageDistribution=[
                ContentStageCell(
                    stage=stage,
                    stageLabel=STAGE_LABELS[stage],
                    count=tally.stage_counts.get(stage, 0),
                    intensity=tally.stage_counts.get(stage, 0) / max_cell,
                )
                for stage in CONTENT_STAGES
            ],
        ))
    heatmap.sort(key=lambda c: (-c.totalEngagements, c.contentAsset))
    return heatmap


# =============================================================================
# Gap analysis
# =============================================================================


def average_stage_days(deals: Sequence[Deal]) -> Dict[Stage, int]:
    """Rounded mean days_in_stage per stage over every recorded entry."""
    days: Dict[Stage, List[float]] = {}
    for deal in deals:
        for entry in deal.stage_history:
            days.setdefault(entry.stage, []).append(float(entry.days_in_stage))
    return {stage: round_half_up(mean(values)) for stage, values in days.items()}


def identify_content_gaps(
    heatmap: Sequence[ContentPerformance],
    deals: DealSource,
) -> List[ContentGap]:
    """
    Stages with thin content engagement or unused suited formats.

    Returns:
        ContentGaps ordered critical first; stage order within a severity.
    """
    density: Dict[Stage, int] = {stage: 0 for stage in CONTENT_STAGES}
    types_seen: Dict[Stage, Set[AssetType]] = {stage: set() for stage in CONTENT_STAGES}
    for content in heatmap:
        for cell in content.stageDistribution:
            density[cell.stage] += cell.count
            if cell.count > 0:
                types_seen[cell.stage].add(content.assetType)

    max_density = max([1] + list(density.values()))
    stage_days = average_stage_days(as_deals(deals))

    gaps = []
    for stage in CONTENT_STAGES:
        label = STAGE_LABELS[stage]
        avg_days = stage_days.get(stage, DEFAULT_STAGE_DAYS)

        if density[stage] / max_density < LOW_DENSITY_RATIO:
            gaps.append(ContentGap(
                stage=stage,
                stageLabel=label,
                gapType=ContentGapType.LOW_DENSITY,
                severity=GapSeverity.CRITICAL if avg_days > CRITICAL_STALL_DAYS else GapSeverity.MODERATE,
                description=f"Only {density[stage]} content interactions at {label}",
                avgDaysInStage=avg_days,
            ))

        missing = [t for t in IDEAL_ASSET_TYPES[stage] if t not in types_seen[stage]]
        if len(missing) >= MISSING_TYPE_GAP_MIN:
            gaps.append(ContentGap(
                stage=stage,
                stageLabel=label,
                gapType=ContentGapType.MISSING_ASSET_TYPE,
                severity=GapSeverity.MODERATE,
                description=f"No {', '.join(t.value for t in missing)} content engaged at {label}",
                missingAssetTypes=missing,
                avgDaysInStage=avg_days,
            ))

    gaps.sort(key=lambda g: g.severity.rank)
    return gaps


# =============================================================================
# Public API
# =============================================================================


def analyze_content(deals: DealSource) -> ContentIntelligence:
    """Content heatmap plus the stage gaps derived from it."""
    deal_list = as_deals(deals)
    heatmap = build_content_heatmap(deal_list)
    gaps = identify_content_gaps(heatmap, deal_list)
    logger.info(f"Content intelligence: {len(heatmap)} assets, {len(gaps)} stage gaps")
    return ContentIntelligence(heatmap=heatmap, gaps=gaps)


__all__ = [
    'analyze_content',
    'build_content_heatmap',
    'identify_content_gaps',
    'engagement_stage',
    'content_key',
    'infer_asset_type',
    'IDEAL_ASSET_TYPES',
]
