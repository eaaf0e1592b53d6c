"""
Pydantic models for the attribution engine.

This module provides the input records (Touchpoint, StageHistoryEntry, Deal)
and every result structure returned by the services. All result models dump
to JSON with stable field names via `model_dump(mode="json")`, so the
presentation layer can render them without transformation.

Naming:
    Per-deal records (Deal, DealScore, ForecastDeal) use snake_case fields that
    mirror the CRM export. Aggregates (attribution, cohorts, forecast totals,
    optimizer output) use camelCase fields as rendered by the dashboard.

Immutability:
    Input records are frozen. A Deal sorts its touchpoints by timestamp at
    construction (stable for equal timestamps) and is read-only afterwards.
    Touchpoint timestamps with a UTC offset are stored as naive UTC.

All models use Pydantic v2 syntax.
"""

from datetime import date as DateType, datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from attribution_engine.models.enums import (
    AssetType,
    AttributionModel,
    Channel,
    Confidence,
    ContentGapType,
    DescriptorType,
    ForecastCategory,
    GapSeverity,
    Momentum,
    Severity,
    SignalConfidence,
    Stage,
    Trend,
)


# =============================================================================
# Journey Input Records
# =============================================================================


class Touchpoint(BaseModel):
    """
    One recorded marketing interaction.

    Only channel and timestamp are required. The optional descriptors feed
    win/loss signal mining and the event/content scoring factor; `cost` feeds
    observed channel spend.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "channel": "webinar",
                "timestamp": "2025-10-14T15:00:00",
                "campaign": "Q4 Automation Webinar Series",
                "content_asset": None,
                "page_url": None,
                "activity_type": "attended",
                "interaction_detail": "Attended live session",
                "cost": 120.0
            }
        }
    )

    channel: Channel
    timestamp: datetime
    campaign: Optional[str] = None
    content_asset: Optional[str] = None
    page_url: Optional[str] = None
    activity_type: Optional[str] = None
    interaction_detail: Optional[str] = None
    cost: Optional[float] = Field(default=None, ge=0)

    @field_validator('timestamp')
    @classmethod
    def _naive_utc_timestamp(cls, value: datetime) -> datetime:
        # Offsets are folded into UTC so every timestamp compares with date cutoffs
        if value.tzinfo is not None and value.utcoffset() is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class StageHistoryEntry(BaseModel):
    """A stage the opportunity passed through and how long it stayed there."""
    model_config = ConfigDict(frozen=True)

    stage: Stage
    entered_date: DateType
    days_in_stage: int = Field(default=0, ge=0)


class Deal(BaseModel):
    """
    One sales opportunity and its marketing journey.

    Touchpoints are kept sorted ascending by timestamp. A deal with no
    touchpoints is valid; touch-weighted computations skip it.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "opportunity_id": "OPP-1042",
                "account_id": "ACC-311",
                "account_name": "Northwind Logistics",
                "deal_amount": 48000.0,
                "stage": "eval_planning",
                "product_line": "Workload Automation",
                "segment": "Enterprise",
                "industry": "Manufacturing",
                "region": "NA",
                "created_date": "2025-09-02",
                "close_date": None,
                "stage_history": [
                    {"stage": "disco_set", "entered_date": "2025-09-02", "days_in_stage": 9}
                ],
                "touchpoints": []
            }
        }
    )

    opportunity_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    account_name: str = ""
    deal_amount: float = Field(..., ge=0)
    stage: Stage
    product_line: str = "Unspecified"
    segment: str = "Unspecified"
    industry: str = "Unspecified"
    region: str = "Unspecified"
    created_date: Optional[DateType] = None
    close_date: Optional[DateType] = None
    stage_history: Tuple[StageHistoryEntry, ...] = ()
    touchpoints: Tuple[Touchpoint, ...] = ()

    @field_validator('touchpoints')
    @classmethod
    def _sort_touchpoints(cls, value: Tuple[Touchpoint, ...]) -> Tuple[Touchpoint, ...]:
        return tuple(sorted(value, key=lambda tp: tp.timestamp))

    @property
    def is_won(self) -> bool:
        return self.stage is Stage.CLOSED_WON

    @property
    def is_lost(self) -> bool:
        return self.stage is Stage.CLOSED_LOST

    @property
    def is_closed(self) -> bool:
        return self.stage.is_terminal

    @property
    def is_open(self) -> bool:
        return self.stage.is_open

    @property
    def touch_count(self) -> int:
        return len(self.touchpoints)

    @property
    def channels(self) -> List[Channel]:
        """Distinct channels in order of first appearance."""
        return list(dict.fromkeys(tp.channel for tp in self.touchpoints))

    @property
    def first_touch(self) -> Optional[Touchpoint]:
        return self.touchpoints[0] if self.touchpoints else None

    @property
    def last_touch(self) -> Optional[Touchpoint]:
        return self.touchpoints[-1] if self.touchpoints else None

    def stage_entry(self, stage: Stage) -> Optional[StageHistoryEntry]:
        for entry in self.stage_history:
            if entry.stage is stage:
                return entry
        return None


# =============================================================================
# Attribution
# =============================================================================


class AttributionResult(BaseModel):
    """
    Per-channel credit under one attribution model.

    pipeline: credited share of deal amounts (all deals)
    revenue: credited share of won deal amounts
    opps: fractional count of deals credited
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"pipeline": 8333.33, "revenue": 3333.33, "opps": 1.33}
        }
    )

    pipeline: float = 0.0
    revenue: float = 0.0
    opps: float = 0.0


class PathFrequency(BaseModel):
    """Path-frequency signal for one channel across won and lost journeys."""
    channel: Channel
    wonRate: float = Field(..., description="Share of won journeys containing the channel")
    lostRate: float = Field(..., description="Share of lost journeys containing the channel")
    wonDensity: float = Field(..., description="Average touches on the channel per won journey")
    overallDensity: float = Field(..., description="Average touches on the channel per journey")
    score: float = Field(..., description="Composite frequency score (>= 0.01)")


class MarkovDiagnostics(BaseModel):
    """
    Diagnostics for the Markov attribution run.

    transitionMatrix maps from-state to {to-state: probability} rounded to
    three decimals. States are 'start', channel values, 'conversion', 'null'.
    removalEffects are normalized to sum to 1 (all zero when degenerate);
    rawRemovalEffects are base - removed conversion rates.
    """
    transitionMatrix: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    baseConversionRate: float = 0.0
    removalEffects: Dict[Channel, float] = Field(default_factory=dict)
    rawRemovalEffects: Dict[Channel, float] = Field(default_factory=dict)
    pathFrequency: List[PathFrequency] = Field(default_factory=list)
    blendWeights: Dict[Channel, float] = Field(default_factory=dict)
    removalShare: float = Field(0.0, description="Effective blend ratio actually applied")
    convertingJourneys: int = 0
    totalJourneys: int = 0
    isDegenerate: bool = False


class PeriodAttribution(BaseModel):
    """Attribution computed over touches up to a cutoff."""
    cutoff: datetime
    model: AttributionModel
    results: Dict[Channel, AttributionResult]
    totalPipeline: float
    totalRevenue: float
    totalOpps: float


class TrendPoint(BaseModel):
    cutoff: datetime
    value: float


class ChannelTrend(BaseModel):
    """How one channel's attributed credit moves across cutoffs."""
    channel: Channel
    pipeline: List[TrendPoint]
    share: List[TrendPoint] = Field(..., description="Pipeline share in percent, one decimal")
    opps: List[TrendPoint]
    revenue: List[TrendPoint]
    shareDeltaPp: float
    pipelineDelta: float
    pipelineDeltaPct: float
    momentum: Momentum


class ModelDivergence(BaseModel):
    """Spread of one channel's pipeline share across attribution models."""
    channel: Channel
    spreadPp: float
    highestModel: AttributionModel
    lowestModel: AttributionModel
    highestSharePct: float
    lowestSharePct: float


# =============================================================================
# Cohorts
# =============================================================================


class CohortGroup(BaseModel):
    """
    Aggregate outcomes for one cohort.

    winRate excludes open deals from the denominator; avgVelocityDays is the
    first-to-last touch span averaged over accounts with at least two touches.
    """
    label: str
    accountCount: int
    pipeline: float
    revenue: float
    winRate: float
    avgTouches: float
    avgDealSize: float
    avgVelocityDays: float


class TimeCohort(CohortGroup):
    """Accounts whose first touch fell in the same calendar month (YYYY-MM)."""
    stageConversion: Dict[Stage, float] = Field(
        default_factory=dict,
        description="Share of the cohort that reached each pipeline stage"
    )


class ChannelCohort(CohortGroup):
    """Accounts sharing a first-touch channel."""
    channel: Channel
    subsequentChannelMix: Dict[Channel, float] = Field(
        default_factory=dict,
        description="Channel distribution of touches after the first"
    )


class DensityCohort(CohortGroup):
    """Accounts bucketed by total touch count."""
    minTouches: int
    maxTouches: Optional[int] = None
    channelMix: Dict[Channel, float] = Field(default_factory=dict)


class IndustryCohort(CohortGroup):
    """Accounts sharing an industry tag."""
    topFirstTouchChannel: Optional[Channel] = None


class CohortAnalysis(BaseModel):
    timeCohorts: List[TimeCohort] = Field(default_factory=list)
    channelCohorts: List[ChannelCohort] = Field(default_factory=list)
    densityCohorts: List[DensityCohort] = Field(default_factory=list)
    industryCohorts: List[IndustryCohort] = Field(default_factory=list)


# =============================================================================
# Funnel
# =============================================================================


class StageMetrics(BaseModel):
    stage: Stage
    stageName: str
    accountCount: int
    pipeline: float
    conversionToNext: float
    dropoffRate: float
    avgDealSize: float
    wonDealsAtOrPast: int
    lostDealsAtOrPast: int


class StageVelocity(BaseModel):
    stage: Stage
    stageName: str
    wonAvgDays: float
    lostAvgDays: float
    openAvgDays: float
    allAvgDays: float


class FunnelAnalysis(BaseModel):
    stageMetrics: List[StageMetrics]
    velocityByStage: List[StageVelocity]
    overallConversionRate: float
    avgTouchesWon: float
    avgTouchesLost: float
    topDropoffStage: Optional[Stage] = None
    bottleneckStage: Optional[Stage] = None


# =============================================================================
# Deal Scoring
# =============================================================================


class WinLossSignal(BaseModel):
    """
    Touchpoint descriptor presence in won vs lost deals.

    lift_ratio = won_pct / lost_pct; 10 when the descriptor never appears in a
    lost deal but does in a won deal, 1 when it appears in neither.
    """
    touchpoint_descriptor: str
    touchpoint_type: DescriptorType
    won_deals_with: int
    won_deals_total: int
    won_pct: float
    lost_deals_with: int
    lost_deals_total: int
    lost_pct: float
    lift_ratio: float
    chi_squared: float
    p_value: float
    statistical_significance: bool
    confidence_level: SignalConfidence


class ScoreComponent(BaseModel):
    factor: str
    weight: float
    score: int = Field(..., ge=0, le=100)
    detail: str


class RiskFactor(BaseModel):
    label: str
    severity: Severity
    description: str


class DealScore(BaseModel):
    """
    Close-probability score for one open deal.

    probability is the weighted sum of the component scores rounded to an
    integer percentage. risk_factors are ordered high to low severity.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "account_id": "ACC-311",
                "account_name": "Northwind Logistics",
                "opportunity_id": "OPP-1042",
                "deal_amount": 48000.0,
                "stage": "eval_planning",
                "product_line": "Workload Automation",
                "probability": 64,
                "confidence": "high",
                "score_components": [
                    {"factor": "Recency", "weight": 0.1, "score": 90, "detail": "Last touch 5d ago"}
                ],
                "risk_factors": [],
                "matching_won_patterns": ["Pattern B: Content → Webinar → BDR"],
                "matching_lost_patterns": [],
                "trend": "improving",
                "days_since_last_touch": 5
            }
        }
    )

    account_id: str
    account_name: str
    opportunity_id: str
    deal_amount: float
    stage: Stage
    product_line: str
    probability: int = Field(..., ge=0, le=100)
    confidence: Confidence
    score_components: List[ScoreComponent]
    risk_factors: List[RiskFactor]
    matching_won_patterns: List[str]
    matching_lost_patterns: List[str]
    trend: Trend
    days_since_last_touch: int


class ThresholdPoint(BaseModel):
    threshold: float
    precision: float
    recall: float
    f1: float


class BacktestResult(BaseModel):
    """
    Deal scoring backtest over historical closed deals.

    When fewer than two closed deals exist, or only one outcome is present,
    the result is neutral (auc 0.5, empty sweep) and flagged isDegenerate.
    """
    auc: float
    precision: float
    recall: float
    scoreSeparation: float
    avgScoreWon: float
    avgScoreLost: float
    threshold: float
    sampleSize: int
    thresholdAnalysis: List[ThresholdPoint] = Field(default_factory=list)
    isDegenerate: bool = False
    confidence: Confidence = Confidence.HIGH


# =============================================================================
# Revenue Forecast
# =============================================================================


class ForecastDeal(BaseModel):
    """One open deal in the forecast with both weighting series."""
    opportunity_id: str
    account_id: str
    account_name: str
    stage: Stage
    deal_amount: float
    score: float
    category: ForecastCategory
    marketing_weighted_amount: float
    stage_weighted_amount: float
    stage_probability: float
    expected_close_week: int = Field(..., ge=0, description="0-based week index from the reference date")
    is_scored: bool = True


class ForecastBucket(BaseModel):
    category: ForecastCategory
    dealCount: int
    totalAmount: float
    marketingWeighted: float
    stageWeighted: float


class WeeklyProjection(BaseModel):
    week: int
    weekStart: DateType
    marketingWeighted: float
    stageWeighted: float
    cumulativeMarketing: float
    cumulativeStage: float


class RevenueForecast(BaseModel):
    """
    Marketing-weighted vs stage-weighted forecast over open deals.

    The two series are reported side by side and never merged.
    """
    referenceDate: DateType
    deals: List[ForecastDeal]
    buckets: List[ForecastBucket]
    totalPipeline: float
    marketingWeightedTotal: float
    stageWeightedTotal: float
    highConfidenceTotal: float = Field(..., description="Marketing-weighted commit + best_case")
    atRiskTotal: float = Field(..., description="Marketing-weighted at_risk amount")
    forecastDelta: float = Field(..., description="marketing - stage weighted total")
    forecastDeltaPct: float
    weeklyProjection: List[WeeklyProjection]


class ScenarioDealChange(BaseModel):
    opportunity_id: str
    account_name: str
    originalCategory: ForecastCategory
    newCategory: ForecastCategory
    impact: float = Field(..., description="Change in marketing-weighted amount")


class ForecastScenario(BaseModel):
    label: str
    description: str
    adjustedTotal: float
    deltaFromBase: float
    adjustedDeals: List[ScenarioDealChange]


# =============================================================================
# Spend Optimizer
# =============================================================================


class ChannelSpendBounds(BaseModel):
    """Explicit spend limits for one channel; max_budget None means unbounded."""
    min_budget: float = 0.0
    max_budget: Optional[float] = None


class SpendObservation(BaseModel):
    """A historical (spend, pipeline) point for one channel."""
    spend: float = Field(..., ge=0)
    pipeline: float = Field(..., ge=0)


class ChannelAllocation(BaseModel):
    channel: Channel
    channelName: str
    currentBudget: float
    recommendedBudget: float
    change: float
    changePct: float
    currentPipeline: float
    projectedPipeline: float
    pipelineDelta: float
    currentROI: float
    projectedROI: float
    marginalROI: float
    coefficient: float
    minBudget: float
    maxBudget: Optional[float] = None
    isFloorAllocation: bool = False


class OptimizationResult(BaseModel):
    totalBudget: float
    currentTotalBudget: float
    allocatedBudget: float
    unallocatedBudget: float
    currentTotalPipeline: float
    projectedTotalPipeline: float
    pipelineDelta: float
    pipelineDeltaPct: float
    allocations: List[ChannelAllocation]


class ResponseCurvePoint(BaseModel):
    spend: float
    pipeline: float
    marginalROI: float


class SpendScenarioResult(BaseModel):
    label: str
    budgetMultiplier: float
    totalBudget: float
    projectedTotalPipeline: float
    pipelineDelta: float
    pipelineDeltaPct: float
    result: OptimizationResult


# =============================================================================
# Content Intelligence
# =============================================================================


class ContentStageCell(BaseModel):
    """Engagements with one asset at one open pipeline stage."""
    stage: Stage
    stageLabel: str
    count: int
    intensity: float = Field(..., ge=0, le=1, description="count / busiest cell across all assets")


class ContentPerformance(BaseModel):
    """
    One content asset's reach and outcome association.

    Won/lost percentages count distinct deals, so each lies in 0-100.
    accelerationDays is the average won-deal cycle minus the cycle of won
    deals that engaged with the asset; positive means faster.
    """
    contentAsset: str
    assetType: AssetType
    totalEngagements: int
    dealsInfluenced: int
    pipelineInfluenced: float
    appearsInWonPct: int
    appearsInLostPct: int
    accelerationDays: int
    stageDistribution: List[ContentStageCell]


class ContentGap(BaseModel):
    stage: Stage
    stageLabel: str
    gapType: ContentGapType
    severity: GapSeverity
    description: str
    missingAssetTypes: List[AssetType] = Field(default_factory=list)
    avgDaysInStage: int


class ContentIntelligence(BaseModel):
    heatmap: List[ContentPerformance] = Field(default_factory=list)
    gaps: List[ContentGap] = Field(default_factory=list)


# =============================================================================
# Cross-Sell
# =============================================================================


class CrossSellPattern(BaseModel):
    """Accounts that bought `primaryProduct` first and later opened `crossSellProduct`."""
    primaryProduct: str
    crossSellProduct: str
    accountCount: int
    commonTriggers: List[str]
    avgDaysBetweenProducts: int
    crossSellConversionRate: int = Field(..., description="Percent of primary-product accounts")


class CrossSellOpportunity(BaseModel):
    account_id: str
    account_name: str
    opportunity_id: str
    currentProduct: str
    currentStage: Stage
    currentDealAmount: float
    crossSellProduct: str
    crossSellStage: Optional[Stage] = None
    crossSellDealAmount: Optional[float] = None
    readinessScore: int = Field(..., ge=0, le=100)
    indicatorsPresent: List[str]
    indicatorsMissing: List[str]


class ProductBreakdown(BaseModel):
    product: str
    totalAccounts: int
    crossSellAccounts: int
    crossSellRate: int


class CrossSellSummary(BaseModel):
    totalCrossSellOpportunities: int
    totalCrossSellPipeline: float
    avgReadinessScore: int
    patterns: List[CrossSellPattern]
    opportunities: List[CrossSellOpportunity]
    productBreakdown: List[ProductBreakdown]
