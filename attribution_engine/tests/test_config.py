"""
Test suite for engine configuration and caller-error validation.

The tests verify:
1. Documented defaults of Settings
2. ATTRIBUTION_* environment overrides
3. Invalid settings fail pydantic validation at construction
4. The standalone ConfigurationError checks used at call boundaries
"""

import pytest
from pydantic import ValidationError

from attribution_engine.core.config import (
    DEFAULT_STAGE_PROBABILITIES,
    Settings,
    get_settings,
)
from attribution_engine.core.exceptions import (
    ConfigurationError,
    check_density_buckets,
    check_forecast_thresholds,
    check_score_threshold,
    check_spend_bounds,
    check_unit_interval,
)
from attribution_engine.models.enums import Stage


class TestDefaults:

    def test_documented_defaults(self, settings: Settings) -> None:
        assert settings.time_decay_half_life_days == 30.0
        assert settings.position_first_weight == 0.4
        assert settings.position_last_weight == 0.4
        assert settings.markov_blend_ratio == 0.6
        assert (settings.commit_threshold, settings.best_case_threshold,
                settings.pipeline_threshold) == (80.0, 60.0, 35.0)
        assert settings.density_buckets == ((1, 3), (4, 6), (7, 9), (10, None))
        assert settings.zero_spend_floor == 1000.0

    def test_stage_probabilities_cover_every_stage(self, settings: Settings) -> None:
        assert set(settings.stage_probabilities) == set(Stage)
        assert settings.stage_probabilities[Stage.CLOSED_WON] == 1.0
        assert settings.stage_probabilities[Stage.CLOSED_LOST] == 0.0

    def test_default_table_not_shared(self) -> None:
        """Each Settings gets its own copy of the probability table."""
        a = Settings(_env_file=None)
        b = Settings(_env_file=None)

        assert a.stage_probabilities == DEFAULT_STAGE_PROBABILITIES
        assert a.stage_probabilities is not b.stage_probabilities

    def test_settings_are_frozen(self, settings: Settings) -> None:
        with pytest.raises(ValidationError):
            settings.markov_blend_ratio = 0.9

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestEnvironmentOverrides:

    def test_prefixed_env_var_is_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ATTRIBUTION_TIME_DECAY_HALF_LIFE_DAYS", "14")
        monkeypatch.setenv("ATTRIBUTION_MARKOV_BLEND_RATIO", "0.25")

        settings = Settings(_env_file=None)

        assert settings.time_decay_half_life_days == 14.0
        assert settings.markov_blend_ratio == 0.25

    def test_invalid_env_override_fails(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ATTRIBUTION_COMMIT_THRESHOLD", "120")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestSettingsValidation:

    @pytest.mark.parametrize("overrides", [
        {'commit_threshold': 50.0},
        {'pipeline_threshold': 60.0},
        {'best_case_threshold': 101.0},
        {'time_decay_half_life_days': 0.0},
        {'markov_blend_ratio': 1.5},
        {'position_first_weight': 0.7, 'position_last_weight': 0.7},
        {'w_shaped_milestone_weight': 0.4},
        {'spend_min_fraction': 3.0},
        {'density_buckets': ((1, 3), (5, None))},
        {'stage_probabilities': {Stage.DISCO_SET: 0.1}},
    ])
    def test_invalid_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)

    def test_custom_buckets_accepted(self) -> None:
        settings = Settings(_env_file=None, density_buckets=((1, 5), (6, None)))

        assert settings.density_buckets == ((1, 5), (6, None))


class TestBoundaryChecks:

    @pytest.mark.parametrize("thresholds", [
        (80, 60, 35),
        (100, 50, 0),
        (90.5, 90.4, 90.3),
    ])
    def test_valid_thresholds(self, thresholds) -> None:
        check_forecast_thresholds(*thresholds)

    @pytest.mark.parametrize("thresholds", [
        (60, 80, 35),
        (80, 80, 35),
        (80, 60, -1),
        (101, 60, 35),
    ])
    def test_invalid_thresholds(self, thresholds) -> None:
        with pytest.raises(ConfigurationError):
            check_forecast_thresholds(*thresholds)

    @pytest.mark.parametrize("buckets", [
        [],
        [(0, 3), (4, None)],
        [(1, 3), (5, None)],
        [(1, None), (2, None)],
        [(1, 3), (4, 6)],
        [(1, 3), (4, 2), (3, None)],
    ])
    def test_invalid_buckets(self, buckets) -> None:
        with pytest.raises(ConfigurationError):
            check_density_buckets(buckets)

    def test_spend_bounds(self) -> None:
        check_spend_bounds("webinar", 0.0, None)
        check_spend_bounds("webinar", 100.0, 100.0)
        with pytest.raises(ConfigurationError):
            check_spend_bounds("webinar", 200.0, 100.0)
        with pytest.raises(ConfigurationError):
            check_spend_bounds("webinar", -1.0, None)

    def test_score_threshold(self) -> None:
        assert check_score_threshold(0) == 0
        assert check_score_threshold(100.0) == 100.0
        with pytest.raises(ConfigurationError):
            check_score_threshold(100.5)

    def test_unit_interval(self) -> None:
        assert check_unit_interval("x", 0.0) == 0.0
        with pytest.raises(ConfigurationError):
            check_unit_interval("x", 1.01)
