"""
Exception types raised at the engine's call boundary.

Only caller errors raise. Insufficient data (too few closed deals, no
converting journeys, zero spend) never raises; services return a neutral
result flagged with `isDegenerate` / low confidence instead.
"""

from typing import Iterable, Optional


class ConfigurationError(ValueError):
    """
    Raised for invalid caller-supplied configuration.

    Examples: an unknown attribution model name, forecast thresholds outside
    0-100 or not strictly descending, a negative budget, or channel spend
    bounds with min above max.
    """


def check_unit_interval(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must lie in [0, 1], got {value}")
    return value


def check_forecast_thresholds(commit: float, best_case: float, pipeline: float) -> None:
    """
    Validate forecast category thresholds.

    Raises:
        ConfigurationError: If any threshold is outside 0-100 or the three are
            not strictly descending (commit > best_case > pipeline).
    """
    for name, value in (("commit", commit), ("best_case", best_case), ("pipeline", pipeline)):
        if not 0.0 <= value <= 100.0:
            raise ConfigurationError(f"{name} threshold must lie in [0, 100], got {value}")
    if not commit > best_case > pipeline:
        raise ConfigurationError(
            f"Forecast thresholds must be strictly descending, got "
            f"commit={commit}, best_case={best_case}, pipeline={pipeline}"
        )


def check_score_threshold(threshold: float) -> float:
    """Validate a 0-100 score cut-off such as the backtest win threshold."""
    if not 0.0 <= threshold <= 100.0:
        raise ConfigurationError(f"Score threshold must lie in [0, 100], got {threshold}")
    return threshold


def check_density_buckets(buckets: Iterable[tuple]) -> None:
    """
    Validate touch-density bucket boundaries.

    Buckets must start at 1, be contiguous and ascending, and only the last
    bucket may be open-ended (upper bound None).
    """
    buckets = list(buckets)
    if not buckets:
        raise ConfigurationError("At least one density bucket is required")
    expected_low = 1
    for i, (low, high) in enumerate(buckets):
        is_last = i == len(buckets) - 1
        if low != expected_low:
            raise ConfigurationError(
                f"Density bucket {i} must start at {expected_low}, got {low}"
            )
        if high is None:
            if not is_last:
                raise ConfigurationError("Only the last density bucket may be open-ended")
            continue
        if high < low:
            raise ConfigurationError(f"Density bucket {i} has upper bound {high} below {low}")
        expected_low = high + 1
    if buckets[-1][1] is not None:
        raise ConfigurationError("The last density bucket must be open-ended")


def check_spend_bounds(channel: str, min_budget: float, max_budget: Optional[float]) -> None:
    if min_budget < 0:
        raise ConfigurationError(f"Minimum budget for {channel} cannot be negative")
    if max_budget is not None and max_budget < min_budget:
        raise ConfigurationError(
            f"Minimum budget {min_budget} exceeds maximum {max_budget} for {channel}"
        )
