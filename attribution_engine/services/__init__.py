"""
Attribution Engine Services Module

This module contains all analysis services of the attribution engine. Each
service is a set of pure functions over immutable Deal records.

Services:
- journey_store: Read-only deal collection with filters and a pandas frame view
- attribution: Rule-based multi-touch attribution models and dispatcher
- markov: Data-driven Markov chain attribution (removal effects)
- attribution_trends: Channel share trends and model divergence over time
- cohorts: Time, channel, density and industry cohorts
- funnel: Stage-to-stage conversion and velocity by stage
- deal_scoring: Open-deal win probability, win/loss signals and backtest
- forecast: Marketing- vs stage-weighted revenue forecast and scenarios
- spend_optimizer: Budget reallocation on concave response curves
- content_intelligence: Content asset by stage heatmap and stage gaps
- cross_sell: Product expansion patterns and cross-sell readiness
- sample_data: Seeded synthetic journey dataset

All services accept a JourneyStore or any iterable of Deal records and an
optional Settings override.
"""

# =============================================================================
# Journey Store Exports
# =============================================================================

from attribution_engine.services.journey_store import (
    JourneyStore,
    DealSource,
    as_deals,
    as_store,
    FRAME_COLUMNS,
)

# =============================================================================
# Attribution Service Exports
# Rule-based models share one credit accumulator so every model conserves
# deal pipeline, revenue and opportunity counts
# =============================================================================

from attribution_engine.services.attribution import (
    compute_attribution,
    run_all_models,
    attribution_totals,
    touch_weights,
    resolve_model,
    RULE_BASED_MODELS,
)

# =============================================================================
# Markov Attribution Exports
# Absorbing Markov chain over channel states with removal-effect credit
# =============================================================================

from attribution_engine.services.markov import (
    fit_markov,
    markov_attribution,
    markov_diagnostics,
    transition_matrix,
    absorption_probability,
    removal_effects,
    path_frequency,
    blend_weights,
    MarkovFit,
)

# =============================================================================
# Attribution Trends Exports
# =============================================================================

from attribution_engine.services.attribution_trends import (
    attribution_as_of,
    compute_channel_trends,
    compute_model_divergence,
)

# =============================================================================
# Cohort & Funnel Exports
# =============================================================================

from attribution_engine.services.cohorts import (
    analyze_cohorts,
    time_cohorts,
    channel_cohorts,
    density_cohorts,
    industry_cohorts,
    channel_mix,
)
from attribution_engine.services.funnel import (
    analyze_funnel,
    analyze_velocity,
    reached_stage,
)

# =============================================================================
# Deal Scoring Exports
# Weighted factor model, chi-squared win/loss signals and leave-one-out
# backtest evaluated with scikit-learn metrics
# =============================================================================

from attribution_engine.services.deal_scoring import (
    score_deal,
    score_all_open_deals,
    calculate_win_loss_signals,
    build_reference_profile,
    evaluate_scores,
    backtest_deal_scoring,
    chi_squared_2x2,
    FACTOR_WEIGHTS,
)

# =============================================================================
# Revenue Forecast Exports
# =============================================================================

from attribution_engine.services.forecast import (
    generate_forecast,
    model_forecast_scenarios,
    categorize,
    weekly_projection,
)

# =============================================================================
# Spend Optimizer Exports
# Square-root response curves fit with scikit-learn, water-filling allocation
# =============================================================================

from attribution_engine.services.spend_optimizer import (
    optimize_spend,
    optimize_spend_from_attribution,
    compare_spend_scenarios,
    channel_response_curve,
    fit_response_coefficient,
    spend_by_channel,
    pipeline_by_channel,
)

# =============================================================================
# Content & Cross-Sell Exports
# =============================================================================

from attribution_engine.services.content_intelligence import (
    analyze_content,
    build_content_heatmap,
    identify_content_gaps,
)
from attribution_engine.services.cross_sell import (
    analyze_cross_sell,
    detect_cross_sell_patterns,
    identify_cross_sell_opportunities,
    product_breakdown,
)

# =============================================================================
# Sample Data Exports
# =============================================================================

from attribution_engine.services.sample_data import (
    generate_sample_deals,
)


__all__ = [
    # ----- Journey Store -----
    'JourneyStore',
    'DealSource',
    'as_deals',
    'as_store',
    'FRAME_COLUMNS',
    # ----- Attribution -----
    'compute_attribution',
    'run_all_models',
    'attribution_totals',
    'touch_weights',
    'resolve_model',
    'RULE_BASED_MODELS',
    # ----- Markov -----
    'fit_markov',
    'markov_attribution',
    'markov_diagnostics',
    'transition_matrix',
    'absorption_probability',
    'removal_effects',
    'path_frequency',
    'blend_weights',
    'MarkovFit',
    # ----- Attribution Trends -----
    'attribution_as_of',
    'compute_channel_trends',
    'compute_model_divergence',
    # ----- Cohorts & Funnel -----
    'analyze_cohorts',
    'time_cohorts',
    'channel_cohorts',
    'density_cohorts',
    'industry_cohorts',
    'channel_mix',
    'analyze_funnel',
    'analyze_velocity',
    'reached_stage',
    # ----- Deal Scoring -----
    'score_deal',
    'score_all_open_deals',
    'calculate_win_loss_signals',
    'build_reference_profile',
    'evaluate_scores',
    'backtest_deal_scoring',
    'chi_squared_2x2',
    'FACTOR_WEIGHTS',
    # ----- Revenue Forecast -----
    'generate_forecast',
    'model_forecast_scenarios',
    'categorize',
    'weekly_projection',
    # ----- Spend Optimizer -----
    'optimize_spend',
    'optimize_spend_from_attribution',
    'compare_spend_scenarios',
    'channel_response_curve',
    'fit_response_coefficient',
    'spend_by_channel',
    'pipeline_by_channel',
    # ----- Content & Cross-Sell -----
    'analyze_content',
    'build_content_heatmap',
    'identify_content_gaps',
    'analyze_cross_sell',
    'detect_cross_sell_patterns',
    'identify_cross_sell_opportunities',
    'product_breakdown',
    # ----- Sample Data -----
    'generate_sample_deals',
]
