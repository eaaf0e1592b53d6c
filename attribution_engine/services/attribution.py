"""
Attribution Engine: per-channel pipeline and revenue credit.

This module implements the rule-based multi-touch attribution models and the
`compute_attribution` dispatcher that also routes to the Markov model.

Algorithm Overview:
    Each rule-based model assigns a weight to every touch in a journey such
    that the weights sum to 1. Weights are collapsed per channel and the deal
    amount is credited proportionally; won deals also credit revenue and every
    deal credits a fractional opportunity count.

Models:
    - first_touch: 100% to the first touch
    - last_touch: 100% to the last touch
    - linear: 1/N per touch
    - time_decay: 2^(-(T_last - t_i) / half_life), normalized per journey
    - position_based: 40% first, 40% last, 20% split across middle touches
    - w_shaped: 30% first, 30% lead creation (~40% through the journey),
      30% opportunity creation (~80% through), 10% across remaining touches
    - markov: data-driven removal-effect model (services.markov)

Degenerate Journeys:
    Zero-touch deals contribute nothing. One touch always earns 100%; two
    touches split 50/50 under position_based and w_shaped.

Usage:
    from attribution_engine.services.attribution import compute_attribution

    results = compute_attribution("linear", deals)
    results[Channel.EMAIL].pipeline
"""

import logging
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import AttributionModel, Channel
from attribution_engine.models.schemas import AttributionResult, Deal
from attribution_engine.services.credit import (
    accumulate_credit,
    shares_from_touch_weights,
)
from attribution_engine.services.journey_store import DealSource, as_deals
from attribution_engine.services.markov import markov_attribution
from attribution_engine.services.stats import days_between, round_half_up


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Relative journey positions of the lead-creation and opportunity-creation
# milestones in the W-shaped model
W_SHAPED_LEAD_POSITION: float = 0.4
W_SHAPED_OPP_POSITION: float = 0.8

RULE_BASED_MODELS: List[AttributionModel] = [
    AttributionModel.FIRST_TOUCH,
    AttributionModel.LAST_TOUCH,
    AttributionModel.LINEAR,
    AttributionModel.TIME_DECAY,
    AttributionModel.POSITION_BASED,
    AttributionModel.W_SHAPED,
]


# =============================================================================
# Per-touch weight functions
# =============================================================================


def _first_touch_weights(n: int, deal: Deal, settings: Settings) -> List[float]:
    return [1.0] + [0.0] * (n - 1)


def _last_touch_weights(n: int, deal: Deal, settings: Settings) -> List[float]:
    return [0.0] * (n - 1) + [1.0]


def _linear_weights(n: int, deal: Deal, settings: Settings) -> List[float]:
    return [1.0 / n] * n


def _time_decay_weights(n: int, deal: Deal, settings: Settings) -> List[float]:
    half_life = settings.time_decay_half_life_days
    last = deal.touchpoints[-1].timestamp
    ages = np.array([days_between(tp.timestamp, last) for tp in deal.touchpoints])
    raw = np.power(2.0, -ages / half_life)
    return list(raw / raw.sum())


def _position_based_weights(n: int, deal: Deal, settings: Settings) -> List[float]:
    if n == 1:
        return [1.0]
    if n == 2:
        return [0.5, 0.5]
    first = settings.position_first_weight
    last = settings.position_last_weight
    middle = (1.0 - first - last) / (n - 2)
    return [first] + [middle] * (n - 2) + [last]


def _w_shaped_weights(n: int, deal: Deal, settings: Settings) -> List[float]:
    if n == 1:
        return [1.0]
    if n == 2:
        return [0.5, 0.5]
    if n == 3:
        return [1.0 / 3] * 3

    milestone = settings.w_shaped_milestone_weight
    remainder = 1.0 - 3 * milestone
    last_idx = n - 1
    lead_idx = round_half_up(n * W_SHAPED_LEAD_POSITION)
    opp_idx = round_half_up(n * W_SHAPED_OPP_POSITION)

    weights = [0.0] * n
    for idx in (0, lead_idx, opp_idx):
        weights[idx] += milestone

    # The last touch is excluded from the middle pool even when it is not a
    # milestone; it only absorbs the remainder when no middle touch is left
    milestones = {0, lead_idx, opp_idx, last_idx}
    middle = [i for i in range(n) if i not in milestones]
    if middle:
        for i in middle:
            weights[i] += remainder / len(middle)
    else:
        weights[last_idx] += remainder
    return weights


TouchWeighter = Callable[[int, Deal, Settings], List[float]]

_TOUCH_WEIGHTERS: Dict[AttributionModel, TouchWeighter] = {
    AttributionModel.FIRST_TOUCH: _first_touch_weights,
    AttributionModel.LAST_TOUCH: _last_touch_weights,
    AttributionModel.LINEAR: _linear_weights,
    AttributionModel.TIME_DECAY: _time_decay_weights,
    AttributionModel.POSITION_BASED: _position_based_weights,
    AttributionModel.W_SHAPED: _w_shaped_weights,
}

_unhandled = set(AttributionModel) - set(_TOUCH_WEIGHTERS) - {AttributionModel.MARKOV}
if _unhandled:
    raise RuntimeError(f"No attribution runner for: {sorted(m.value for m in _unhandled)}")


# =============================================================================
# Public API
# =============================================================================


def resolve_model(model: Union[AttributionModel, str]) -> AttributionModel:
    """
    Coerce a model name to AttributionModel.

    Raises:
        ConfigurationError: If `model` is not a known attribution model.
    """
    if isinstance(model, AttributionModel):
        return model
    if isinstance(model, str):
        try:
            return AttributionModel(model)
        except ValueError:
            pass
    valid = ', '.join(m.value for m in AttributionModel)
    raise ConfigurationError(f"Unknown attribution model {model!r}; expected one of: {valid}")


def touch_weights(
    model: Union[AttributionModel, str],
    deal: Deal,
    settings: Optional[Settings] = None,
) -> List[float]:
    """
    Per-touch weights of one journey under a rule-based model.

    Returns an empty list for a zero-touch deal; otherwise weights sum to 1.

    Raises:
        ConfigurationError: For an unknown model or for markov, which has no
            per-touch weights.
    """
    model = resolve_model(model)
    if model not in _TOUCH_WEIGHTERS:
        raise ConfigurationError(f"{model.value} does not assign per-touch weights")
    if not deal.touchpoints:
        return []
    settings = settings or get_settings()
    return _TOUCH_WEIGHTERS[model](deal.touch_count, deal, settings)


def compute_attribution(
    model: Union[AttributionModel, str],
    deals: DealSource,
    settings: Optional[Settings] = None,
    half_life_days: Optional[float] = None,
) -> Dict[Channel, AttributionResult]:
    """
    Credit pipeline, revenue and opportunities to channels under `model`.

    Args:
        model: AttributionModel member or its string value.
        deals: JourneyStore or iterable of Deal records.
        settings: Optional settings override (defaults to get_settings()).
        half_life_days: Optional time-decay half-life override for this call.

    Returns:
        Mapping of every observed channel (enum order) to a fresh
        AttributionResult. Sum of pipeline equals the total amount of deals
        with at least one touch (except Markov with zero conversions).

    Raises:
        ConfigurationError: Unknown model, or a non-positive half-life.

    Example:
        >>> results = compute_attribution("linear", store)
        >>> round(results[Channel.FORM].pipeline, 2)
        10000.0
    """
    model = resolve_model(model)
    settings = settings or get_settings()
    if half_life_days is not None:
        if half_life_days <= 0:
            raise ConfigurationError(f"half_life_days must be positive, got {half_life_days}")
        settings = settings.model_copy(update={'time_decay_half_life_days': float(half_life_days)})

    deal_list = as_deals(deals)
    if model is AttributionModel.MARKOV:
        return markov_attribution(deal_list, settings=settings)

    weighter = _TOUCH_WEIGHTERS[model]
    results = accumulate_credit(
        deal_list,
        lambda deal: shares_from_touch_weights(
            deal, weighter(deal.touch_count, deal, settings)
        ),
    )
    logger.debug(
        f"{model.value}: credited {sum(r.pipeline for r in results.values()):.2f} "
        f"across {len(results)} channels"
    )
    return results


def run_all_models(
    deals: DealSource,
    settings: Optional[Settings] = None,
    include_markov: bool = True,
) -> Dict[AttributionModel, Dict[Channel, AttributionResult]]:
    """Run every attribution model over the same deals."""
    deal_list = as_deals(deals)
    models = list(RULE_BASED_MODELS)
    if include_markov:
        models.append(AttributionModel.MARKOV)
    return {m: compute_attribution(m, deal_list, settings=settings) for m in models}


def attribution_totals(results: Dict[Channel, AttributionResult]) -> AttributionResult:
    """Sum pipeline, revenue and opps across channels."""
    return AttributionResult(
        pipeline=sum(r.pipeline for r in results.values()),
        revenue=sum(r.revenue for r in results.values()),
        opps=sum(r.opps for r in results.values()),
    )
