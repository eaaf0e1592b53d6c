"""
Package initialization file for attribution engine models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py so other modules can import data models from attribution_engine.models
directly.

Usage:
    from attribution_engine.models import (
        Channel,
        Stage,
        Deal,
        Touchpoint,
        AttributionResult,
        DealScore,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from attribution_engine.models.enums import (
    # Journey vocabulary
    Channel,
    ChannelFamily,
    Stage,
    AttributionModel,
    # Result labels
    Confidence,
    Trend,
    Severity,
    ForecastCategory,
    Momentum,
    SignalConfidence,
    DescriptorType,
    AssetType,
    ContentGapType,
    GapSeverity,
    # Lookup tables
    PIPELINE_STAGES,
    OPEN_STAGES,
    STAGE_LABELS,
    CHANNEL_FAMILIES,
    CHANNEL_LABELS,
    channel_order,
    channels_in_family,
)

# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from attribution_engine.models.schemas import (
    # Journey input records
    Touchpoint,
    StageHistoryEntry,
    Deal,
    # Attribution
    AttributionResult,
    PathFrequency,
    MarkovDiagnostics,
    PeriodAttribution,
    TrendPoint,
    ChannelTrend,
    ModelDivergence,
    # Cohorts
    CohortGroup,
    TimeCohort,
    ChannelCohort,
    DensityCohort,
    IndustryCohort,
    CohortAnalysis,
    # Funnel
    StageMetrics,
    StageVelocity,
    FunnelAnalysis,
    # Deal scoring
    WinLossSignal,
    ScoreComponent,
    RiskFactor,
    DealScore,
    ThresholdPoint,
    BacktestResult,
    # Revenue forecast
    ForecastDeal,
    ForecastBucket,
    WeeklyProjection,
    RevenueForecast,
    ScenarioDealChange,
    ForecastScenario,
    # Spend optimizer
    ChannelSpendBounds,
    SpendObservation,
    ChannelAllocation,
    OptimizationResult,
    ResponseCurvePoint,
    SpendScenarioResult,
    # Content intelligence
    ContentStageCell,
    ContentPerformance,
    ContentGap,
    ContentIntelligence,
    # Cross-sell
    CrossSellPattern,
    CrossSellOpportunity,
    ProductBreakdown,
    CrossSellSummary,
)

__all__ = [
    # Enums
    'Channel',
    'ChannelFamily',
    'Stage',
    'AttributionModel',
    'Confidence',
    'Trend',
    'Severity',
    'ForecastCategory',
    'Momentum',
    'SignalConfidence',
    'DescriptorType',
    'AssetType',
    'ContentGapType',
    'GapSeverity',
    'PIPELINE_STAGES',
    'OPEN_STAGES',
    'STAGE_LABELS',
    'CHANNEL_FAMILIES',
    'CHANNEL_LABELS',
    'channel_order',
    'channels_in_family',
    # Journey input records
    'Touchpoint',
    'StageHistoryEntry',
    'Deal',
    # Attribution
    'AttributionResult',
    'PathFrequency',
    'MarkovDiagnostics',
    'PeriodAttribution',
    'TrendPoint',
    'ChannelTrend',
    'ModelDivergence',
    # Cohorts
    'CohortGroup',
    'TimeCohort',
    'ChannelCohort',
    'DensityCohort',
    'IndustryCohort',
    'CohortAnalysis',
    # Funnel
    'StageMetrics',
    'StageVelocity',
    'FunnelAnalysis',
    # Deal scoring
    'WinLossSignal',
    'ScoreComponent',
    'RiskFactor',
    'DealScore',
    'ThresholdPoint',
    'BacktestResult',
    # Revenue forecast
    'ForecastDeal',
    'ForecastBucket',
    'WeeklyProjection',
    'RevenueForecast',
    'ScenarioDealChange',
    'ForecastScenario',
    # Spend optimizer
    'ChannelSpendBounds',
    'SpendObservation',
    'ChannelAllocation',
    'OptimizationResult',
    'ResponseCurvePoint',
    'SpendScenarioResult',
    # Content intelligence
    'ContentStageCell',
    'ContentPerformance',
    'ContentGap',
    'ContentIntelligence',
    # Cross-sell
    'CrossSellPattern',
    'CrossSellOpportunity',
    'ProductBreakdown',
    'CrossSellSummary',
]
