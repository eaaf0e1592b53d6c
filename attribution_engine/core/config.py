"""
Settings and environment management for the attribution engine.

This module provides centralized configuration using pydantic-settings, which
loads values from environment variables (prefix ATTRIBUTION_) and an optional
.env file. Every tunable constant used by the services lives here so that no
analysis quietly hard-codes a modelling assumption.

Key Features:
- Environment variable validation and type coercion
- Defaults matching the reporting dashboard's established behaviour
- Singleton access via @lru_cache
- Frozen instances: services receive configuration, they never mutate it

Configuration Groups:
- Attribution: time-decay half-life, position-based and W-shaped weights
- Markov: blend ratio between removal effects and path frequency
- Cohorts: touch-density bucket boundaries
- Forecast: category thresholds, stage probability table, close-week table
- Deal scoring: backtest threshold and sweep, trend window
- Spend optimizer: default min/max fractions of current spend, zero-spend floor
- HTTP API: CORS origins

Usage:
    from attribution_engine.core.config import get_settings

    settings = get_settings()
    half_life = settings.time_decay_half_life_days

    # Per-call override without touching the environment
    custom = Settings(markov_blend_ratio=0.4)
    results = markov_attribution(deals, settings=custom)
"""

from functools import lru_cache
from typing import Dict, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from attribution_engine.core.exceptions import (
    check_density_buckets,
    check_forecast_thresholds,
    check_unit_interval,
)
from attribution_engine.models.enums import OPEN_STAGES, Stage


DEFAULT_STAGE_PROBABILITIES: Dict[Stage, float] = {
    Stage.DISCO_SET: 0.10,
    Stage.DISCO_COMPLETED: 0.20,
    Stage.SOLUTION_ACCEPTED: 0.40,
    Stage.EVAL_PLANNING: 0.60,
    Stage.NEGOTIATION: 0.80,
    Stage.CLOSED_WON: 1.00,
    Stage.CLOSED_LOST: 0.00,
}

# Typical remaining weeks to close by stage, used when a deal has no close date
DEFAULT_STAGE_WEEKS_TO_CLOSE: Dict[Stage, int] = {
    Stage.DISCO_SET: 12,
    Stage.DISCO_COMPLETED: 10,
    Stage.SOLUTION_ACCEPTED: 8,
    Stage.EVAL_PLANNING: 5,
    Stage.NEGOTIATION: 2,
}


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Attributes:
        time_decay_half_life_days: Half-life of the time-decay model in days.
        position_first_weight: Position-based credit for the first touch.
        position_last_weight: Position-based credit for the last touch.
        w_shaped_milestone_weight: W-shaped credit for each of the three milestones.
        markov_blend_ratio: Share of Markov weight taken from removal effects.
        markov_uniform_tolerance: Spread below which removal effects count as uniform.
        markov_min_removal_total: Total removal effect below which effects are degenerate.
        density_buckets: Inclusive (low, high) touch-count ranges; last high is None.
        commit_threshold / best_case_threshold / pipeline_threshold: Score floors
            for the forecast categories.
        default_deal_score: Score assumed for an open deal that was not scored.
        stage_probabilities: CRM-style close probability per stage.
        stage_weeks_to_close: Expected remaining weeks per open stage.
        forecast_horizon_weeks: Length of the weekly projection.
        scenario_rescue_count: Number of at-risk deals the rescue scenario lifts.
        backtest_threshold: Score at which the backtest predicts a win.
        backtest_sweep: Thresholds evaluated in the backtest sweep.
        trend_window_days: Window used to compare recent vs prior touch velocity.
        spend_min_fraction / spend_max_fraction: Default per-channel bounds as a
            fraction of current spend.
        zero_spend_floor: Allocation given to channels without observed spend.
        cors_allowed_origins: Browser origins allowed by the API CORS middleware.
    """

    model_config = SettingsConfigDict(
        env_prefix='ATTRIBUTION_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
        frozen=True,
    )

    # =========================================================================
    # Attribution models
    # =========================================================================

    # 2^(-days/half_life): a touch one half-life before the last touch earns
    # half the weight of the last touch
    time_decay_half_life_days: float = Field(default=30.0, gt=0)

    # U-shaped model; the remainder is split across the middle touches
    position_first_weight: float = 0.4
    position_last_weight: float = 0.4

    # First touch, lead creation and opportunity creation each earn this share;
    # the remainder goes to the other middle touches
    w_shaped_milestone_weight: float = 0.3

    # =========================================================================
    # Markov attribution
    # =========================================================================

    # weight_c = r * removal_share_c + (1 - r) * frequency_share_c
    markov_blend_ratio: float = 0.6

    # Normalized removal effects whose max-min spread is below this count as
    # uniform; r then drops to 0 and path frequency alone decides
    markov_uniform_tolerance: float = Field(default=1e-3, ge=0)

    markov_min_removal_total: float = Field(default=1e-8, ge=0)

    # =========================================================================
    # Cohorts
    # =========================================================================

    density_buckets: Tuple[Tuple[int, Optional[int]], ...] = (
        (1, 3),
        (4, 6),
        (7, 9),
        (10, None),
    )

    # =========================================================================
    # Revenue forecast
    # =========================================================================

    commit_threshold: float = 80.0
    best_case_threshold: float = 60.0
    pipeline_threshold: float = 35.0

    default_deal_score: float = Field(default=30.0, ge=0, le=100)

    stage_probabilities: Dict[Stage, float] = Field(
        default_factory=lambda: dict(DEFAULT_STAGE_PROBABILITIES)
    )
    stage_weeks_to_close: Dict[Stage, int] = Field(
        default_factory=lambda: dict(DEFAULT_STAGE_WEEKS_TO_CLOSE)
    )

    forecast_horizon_weeks: int = Field(default=13, ge=1)
    scenario_rescue_count: int = Field(default=3, ge=0)

    # =========================================================================
    # Deal scoring
    # =========================================================================

    backtest_threshold: float = Field(default=50.0, ge=0, le=100)
    backtest_sweep: Tuple[float, ...] = (10, 20, 30, 40, 50, 60, 70, 80, 90)
    trend_window_days: int = Field(default=30, ge=1)

    # =========================================================================
    # Spend optimizer
    # =========================================================================

    spend_min_fraction: float = Field(default=0.5, ge=0)
    spend_max_fraction: float = Field(default=2.0, gt=0)
    zero_spend_floor: float = Field(default=1000.0, ge=0)

    # =========================================================================
    # HTTP API
    # =========================================================================

    # Browser origins allowed to call the API (JSON list in the environment)
    cors_allowed_origins: Tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    )

    @field_validator('position_first_weight', 'position_last_weight',
                     'markov_blend_ratio', 'w_shaped_milestone_weight')
    @classmethod
    def _unit_interval(cls, value: float, info) -> float:
        return check_unit_interval(info.field_name, value)

    @field_validator('density_buckets')
    @classmethod
    def _valid_buckets(cls, value):
        check_density_buckets(value)
        return value

    @field_validator('stage_probabilities')
    @classmethod
    def _valid_probabilities(cls, value: Dict[Stage, float]) -> Dict[Stage, float]:
        missing = [s.value for s in Stage if s not in value]
        if missing:
            raise ValueError(f"stage_probabilities missing stages: {', '.join(missing)}")
        for stage, probability in value.items():
            check_unit_interval(f"stage_probabilities[{stage.value}]", probability)
        return value

    @field_validator('stage_weeks_to_close')
    @classmethod
    def _valid_weeks(cls, value: Dict[Stage, int]) -> Dict[Stage, int]:
        missing = [s.value for s in OPEN_STAGES if s not in value]
        if missing:
            raise ValueError(f"stage_weeks_to_close missing stages: {', '.join(missing)}")
        return value

    @model_validator(mode='after')
    def _cross_field_checks(self) -> 'Settings':
        check_forecast_thresholds(
            self.commit_threshold, self.best_case_threshold, self.pipeline_threshold
        )
        if self.position_first_weight + self.position_last_weight > 1.0:
            raise ValueError("position_first_weight + position_last_weight must not exceed 1")
        if 3 * self.w_shaped_milestone_weight > 1.0:
            raise ValueError("w_shaped_milestone_weight must not exceed 1/3")
        if self.spend_min_fraction > self.spend_max_fraction:
            raise ValueError("spend_min_fraction must not exceed spend_max_fraction")
        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get the engine settings singleton.

    Returns:
        Settings: Cached settings instance.

    Raises:
        pydantic.ValidationError: If an environment override is invalid
            (e.g., ATTRIBUTION_COMMIT_THRESHOLD=120).

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
