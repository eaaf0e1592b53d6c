"""
Funnel analysis: stage-to-stage conversion and velocity by stage.

Stage Reach Rules:
    A deal reached a pipeline stage when its stage history records that stage,
    or when its current stage is at or past it in PIPELINE_STAGES. A closed_lost
    deal can exit from any stage, so without history it is only known to have
    reached the entry stage (disco_set); with history, it reached every stage
    up to the furthest one recorded.

Key Outputs:
    - stageMetrics: reach count, pipeline, conversion to next stage, drop-off
    - velocityByStage: mean positive days_in_stage for won/lost/open/all deals
    - topDropoffStage: non-terminal stage with the highest drop-off rate
    - bottleneckStage: stage with the highest all-deal average days, falling
      back to topDropoffStage when no stage history exists
"""

import logging
from typing import List, Sequence

from attribution_engine.models.enums import PIPELINE_STAGES, STAGE_LABELS, Stage
from attribution_engine.models.schemas import Deal, FunnelAnalysis, StageMetrics, StageVelocity
from attribution_engine.services.journey_store import DealSource, as_deals
from attribution_engine.services.stats import mean, safe_divide


logger = logging.getLogger(__name__)


def reached_stage(deal: Deal, stage: Stage) -> bool:
    """Whether `deal` reached or passed pipeline `stage`."""
    target = stage.pipeline_index
    if target < 0:
        return False
    if any(entry.stage is stage for entry in deal.stage_history):
        return True
    if deal.is_lost:
        furthest = max(
            (entry.stage.pipeline_index for entry in deal.stage_history),
            default=0,
        )
        return target <= furthest
    return deal.stage.pipeline_index >= target


def _days_in_stage(deals: Sequence[Deal], stage: Stage) -> List[float]:
    return [
        float(entry.days_in_stage)
        for deal in deals
        for entry in deal.stage_history
        if entry.stage is stage and entry.days_in_stage > 0
    ]


def analyze_velocity(deals: DealSource) -> List[StageVelocity]:
    """Average days spent in each non-terminal pipeline stage by outcome."""
    deal_list = as_deals(deals)
    won = [d for d in deal_list if d.is_won]
    lost = [d for d in deal_list if d.is_lost]
    open_ = [d for d in deal_list if d.is_open]
    velocity = []
    for stage in PIPELINE_STAGES:
        if stage is Stage.CLOSED_WON:
            continue
        won_days = _days_in_stage(won, stage)
        lost_days = _days_in_stage(lost, stage)
        open_days = _days_in_stage(open_, stage)
        velocity.append(StageVelocity(
            stage=stage,
            stageName=STAGE_LABELS[stage],
            wonAvgDays=mean(won_days),
            lostAvgDays=mean(lost_days),
            openAvgDays=mean(open_days),
            allAvgDays=mean(won_days + lost_days + open_days),
        ))
    return velocity


def analyze_funnel(deals: DealSource) -> FunnelAnalysis:
    """
    Stage conversion, drop-off and velocity across the pipeline.

    Example:
        >>> funnel = analyze_funnel(store)
        >>> funnel.topDropoffStage
        <Stage.DISCO_COMPLETED: 'disco_completed'>
    """
    deal_list = as_deals(deals)
    won = [d for d in deal_list if d.is_won]
    lost = [d for d in deal_list if d.is_lost]

    metrics: List[StageMetrics] = []
    for i, stage in enumerate(PIPELINE_STAGES):
        reached = [d for d in deal_list if reached_stage(d, stage)]
        pipeline = sum(d.deal_amount for d in reached)
        if stage is Stage.CLOSED_WON:
            conversion = 1.0
        else:
            next_stage = PIPELINE_STAGES[i + 1]
            reached_next = sum(1 for d in deal_list if reached_stage(d, next_stage))
            conversion = safe_divide(reached_next, len(reached))
        metrics.append(StageMetrics(
            stage=stage,
            stageName=STAGE_LABELS[stage],
            accountCount=len(reached),
            pipeline=pipeline,
            conversionToNext=conversion,
            dropoffRate=1.0 - conversion,
            avgDealSize=safe_divide(pipeline, len(reached)),
            wonDealsAtOrPast=sum(1 for d in won if reached_stage(d, stage)),
            lostDealsAtOrPast=sum(1 for d in lost if reached_stage(d, stage)),
        ))

    entered = metrics[0].accountCount
    closed_won = metrics[-1].accountCount

    non_terminal = [m for m in metrics if m.stage is not Stage.CLOSED_WON and m.accountCount > 0]
    top_dropoff = max(non_terminal, key=lambda m: m.dropoffRate).stage if non_terminal else None

    velocity = analyze_velocity(deal_list)
    with_days = [v for v in velocity if v.allAvgDays > 0]
    bottleneck = max(with_days, key=lambda v: v.allAvgDays).stage if with_days else top_dropoff

    return FunnelAnalysis(
        stageMetrics=metrics,
        velocityByStage=velocity,
        overallConversionRate=safe_divide(closed_won, entered),
        avgTouchesWon=mean(d.touch_count for d in won),
        avgTouchesLost=mean(d.touch_count for d in lost),
        topDropoffStage=top_dropoff,
        bottleneckStage=bottleneck,
    )
