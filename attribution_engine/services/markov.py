"""
Markov Attribution Submodule: data-driven credit via removal effects.

This module models every journey as a path through an absorbing Markov chain
and credits channels by how much the probability of conversion drops when the
channel is removed from the graph.

Algorithm Overview:
    1. Each deal with touches becomes the path
       start -> c_1 -> ... -> c_N -> conversion | null
       where conversion is used only for closed_won (open deals are treated
       as non-converting).
    2. Consecutive state pairs are counted and normalized per from-state.
    3. With transient states T and absorbing states {conversion, null}, the
       absorption probabilities x satisfy (I - Q) x = R, where Q holds
       transient-to-transient probabilities and R transient-to-conversion
       probabilities. The base conversion rate is x[start].
    4. Removing channel c zeroes its row and drops every transition into it
       while keeping the original row totals, so that mass flows to null.
       removal_effect(c) = max(0, base - removed).
    5. Small datasets give unstable removal effects, so the final channel
       weight blends normalized removal effects with a path-frequency score:
           weight_c = r * removal_c + (1 - r) * frequency_c
       r is Settings.markov_blend_ratio, and drops to 0 when removal effects
       are degenerate (near-zero total or near-uniform).
    6. Each deal's amount is split across its channels in proportion to
       weight_c * touches_c, so per-deal credit is conserved.

Failure Semantics:
    With zero converting deals the base conversion rate is 0 and removal
    effects are undefined: attribution is all zero and diagnostics are
    flagged isDegenerate.

Dependencies:
    - numpy: exact linear solve of the absorbing chain
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.models.enums import Channel
from attribution_engine.models.schemas import (
    AttributionResult,
    Deal,
    MarkovDiagnostics,
    PathFrequency,
)
from attribution_engine.services.credit import accumulate_credit, observed_channels
from attribution_engine.services.journey_store import DealSource, as_deals
from attribution_engine.services.stats import safe_divide


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

START_STATE: str = "start"
CONVERSION_STATE: str = "conversion"
NULL_STATE: str = "null"

# Floor on the path-frequency score so that no observed channel gets zero weight
MIN_FREQUENCY_SCORE: float = 0.01

# Decimal places of the reported transition matrix
MATRIX_DECIMALS: int = 3


TransitionCounts = Dict[str, Dict[str, int]]


@dataclass
class MarkovFit:
    """Intermediate results of one Markov run over a deal set."""
    transitions: TransitionCounts
    channels: List[Channel]
    base_conversion_rate: float
    raw_removal_effects: Dict[Channel, float]
    normalized_removal_effects: Dict[Channel, float]
    path_frequency: List[PathFrequency]
    blend_weights: Dict[Channel, float]
    removal_share: float
    converting_journeys: int
    total_journeys: int
    is_degenerate: bool = False
    notes: List[str] = field(default_factory=list)


# =============================================================================
# Transition Graph
# =============================================================================


def journey_path(deal: Deal) -> List[str]:
    """State sequence of one journey; empty for a zero-touch deal."""
    if not deal.touchpoints:
        return []
    end_state = CONVERSION_STATE if deal.is_won else NULL_STATE
    return [START_STATE] + [tp.channel.value for tp in deal.touchpoints] + [end_state]


def count_transitions(deals: Sequence[Deal]) -> TransitionCounts:
    """Tally consecutive state pairs across every journey."""
    counts: TransitionCounts = {}
    for deal in deals:
        path = journey_path(deal)
        for src, dst in zip(path, path[1:]):
            row = counts.setdefault(src, {})
            row[dst] = row.get(dst, 0) + 1
    return counts


def transition_matrix(counts: TransitionCounts) -> Dict[str, Dict[str, float]]:
    """Row-normalized transition probabilities rounded for reporting."""
    matrix: Dict[str, Dict[str, float]] = {}
    for src, row in counts.items():
        total = sum(row.values())
        if total == 0:
            continue
        matrix[src] = {dst: round(n / total, MATRIX_DECIMALS) for dst, n in row.items()}
    return matrix


def absorption_probability(counts: TransitionCounts, removed: Optional[str] = None) -> float:
    """
    Probability of reaching conversion from start.

    Args:
        counts: Transition counts from count_transitions.
        removed: Optional channel state to excise; its outgoing row is dropped
            and transitions into it are redirected to null.

    Returns:
        Absorption probability in [0, 1]; 0 when start has no transitions.
    """
    if START_STATE not in counts:
        return 0.0

    transient = [s for s in counts if s not in (CONVERSION_STATE, NULL_STATE)]
    for row in counts.values():
        for dst in row:
            if dst not in (CONVERSION_STATE, NULL_STATE) and dst not in transient:
                transient.append(dst)
    index = {s: i for i, s in enumerate(transient)}
    n = len(transient)

    q = np.zeros((n, n), dtype=np.float64)
    r = np.zeros(n, dtype=np.float64)
    for src, row in counts.items():
        if src == removed or src not in index:
            continue
        total = sum(row.values())
        if total == 0:
            continue
        i = index[src]
        for dst, count in row.items():
            if dst == removed or dst == NULL_STATE:
                continue
            prob = count / total
            if dst == CONVERSION_STATE:
                r[i] += prob
            else:
                q[i, index[dst]] += prob

    system = np.eye(n) - q
    try:
        solution = np.linalg.solve(system, r)
    except np.linalg.LinAlgError:
        logger.warning("Singular absorbing-chain system; using least squares")
        solution = np.linalg.lstsq(system, r, rcond=None)[0]

    value = float(solution[index[START_STATE]])
    return min(1.0, max(0.0, value))


def removal_effects(
    counts: TransitionCounts,
    channels: Sequence[Channel],
) -> Tuple[float, Dict[Channel, float]]:
    """
    Base conversion rate and the raw removal effect of each channel.

    Returns:
        Tuple of (base_conversion_rate, {channel: max(0, base - removed)}).
    """
    base = absorption_probability(counts)
    effects = {
        ch: max(0.0, base - absorption_probability(counts, removed=ch.value))
        for ch in channels
    }
    return base, effects


# =============================================================================
# Path Frequency
# =============================================================================


def path_frequency(deals: Sequence[Deal], channels: Sequence[Channel]) -> List[PathFrequency]:
    """
    Presence and density of each channel in won vs lost journeys.

    score = max(0.01, (1 + wonRate - lostRate) * wonDensity / overallDensity),
    with the density ratio taken as 1 when the channel has no touches overall.
    """
    won = [d for d in deals if d.is_won]
    lost = [d for d in deals if d.is_lost]
    signals = []
    for ch in channels:
        won_with = sum(1 for d in won if ch in d.channels)
        lost_with = sum(1 for d in lost if ch in d.channels)
        won_rate = safe_divide(won_with, len(won))
        lost_rate = safe_divide(lost_with, len(lost))
        won_density = safe_divide(
            sum(1 for d in won for tp in d.touchpoints if tp.channel is ch), len(won)
        )
        overall_density = safe_divide(
            sum(1 for d in deals for tp in d.touchpoints if tp.channel is ch), len(deals)
        )
        density_lift = safe_divide(won_density, overall_density, default=1.0)
        score = max(MIN_FREQUENCY_SCORE, (1.0 + won_rate - lost_rate) * density_lift)
        signals.append(PathFrequency(
            channel=ch,
            wonRate=won_rate,
            lostRate=lost_rate,
            wonDensity=won_density,
            overallDensity=overall_density,
            score=score,
        ))
    return signals


# =============================================================================
# Blending
# =============================================================================


def normalize_effects(effects: Dict[Channel, float]) -> Dict[Channel, float]:
    total = sum(effects.values())
    return {ch: safe_divide(v, total) for ch, v in effects.items()}


def effects_are_degenerate(effects: Dict[Channel, float], settings: Settings) -> bool:
    """True when removal effects carry no usable signal."""
    total = sum(effects.values())
    if total <= settings.markov_min_removal_total:
        return True
    if len(effects) < 2:
        return False
    normalized = list(normalize_effects(effects).values())
    return max(normalized) - min(normalized) < settings.markov_uniform_tolerance


def blend_weights(
    effects: Dict[Channel, float],
    frequency: Sequence[PathFrequency],
    settings: Settings,
) -> Tuple[Dict[Channel, float], float]:
    """
    Blend normalized removal effects with normalized path-frequency scores.

    Returns:
        Tuple of ({channel: weight}, removal_share actually applied).
    """
    removal_share = 0.0 if effects_are_degenerate(effects, settings) else settings.markov_blend_ratio
    removal_norm = normalize_effects(effects)
    freq_total = sum(f.score for f in frequency)
    weights = {}
    for f in frequency:
        freq_norm = safe_divide(f.score, freq_total, default=safe_divide(1.0, len(frequency)))
        weights[f.channel] = (
            removal_share * removal_norm.get(f.channel, 0.0)
            + (1.0 - removal_share) * freq_norm
        )
    return weights, removal_share


# =============================================================================
# Fitting
# =============================================================================


def fit_markov(deals: DealSource, settings: Optional[Settings] = None) -> MarkovFit:
    """Build the transition graph, removal effects and blended weights."""
    settings = settings or get_settings()
    deal_list = as_deals(deals)
    channels = observed_channels(deal_list)
    counts = count_transitions(deal_list)
    journeys = [d for d in deal_list if d.touchpoints]
    converting = sum(1 for d in journeys if d.is_won)

    frequency = path_frequency(deal_list, channels)

    if converting == 0:
        logger.warning(
            f"No converting journeys among {len(journeys)}; Markov attribution is degenerate"
        )
        zeros = {ch: 0.0 for ch in channels}
        weights, _ = blend_weights(zeros, frequency, settings)
        return MarkovFit(
            transitions=counts,
            channels=channels,
            base_conversion_rate=0.0,
            raw_removal_effects=dict(zeros),
            normalized_removal_effects=dict(zeros),
            path_frequency=frequency,
            blend_weights=weights,
            removal_share=0.0,
            converting_journeys=0,
            total_journeys=len(journeys),
            is_degenerate=True,
            notes=["no converting journeys"],
        )

    base, raw = removal_effects(counts, channels)
    weights, removal_share = blend_weights(raw, frequency, settings)
    degenerate_effects = removal_share == 0.0 and settings.markov_blend_ratio > 0.0
    if degenerate_effects:
        logger.info("Removal effects degenerate; weighting by path frequency only")

    logger.debug(
        f"Markov fit: {len(journeys)} journeys, {converting} converting, "
        f"base rate {base:.4f}, removal share {removal_share:.2f}"
    )
    return MarkovFit(
        transitions=counts,
        channels=channels,
        base_conversion_rate=base,
        raw_removal_effects=raw,
        normalized_removal_effects=(
            {ch: 0.0 for ch in raw} if sum(raw.values()) <= settings.markov_min_removal_total
            else normalize_effects(raw)
        ),
        path_frequency=frequency,
        blend_weights=weights,
        removal_share=removal_share,
        converting_journeys=converting,
        total_journeys=len(journeys),
        is_degenerate=False,
        notes=["removal effects degenerate"] if degenerate_effects else [],
    )


def _deal_shares(deal: Deal, weights: Dict[Channel, float]) -> Dict[Channel, float]:
    touches: Dict[Channel, int] = {}
    for tp in deal.touchpoints:
        touches[tp.channel] = touches.get(tp.channel, 0) + 1
    scores = {ch: weights.get(ch, 0.0) * n for ch, n in touches.items()}
    total = sum(scores.values())
    if total <= 0:
        # Every channel floored to zero weight; fall back to touch share
        return {ch: n / deal.touch_count for ch, n in touches.items()}
    return {ch: s / total for ch, s in scores.items()}


# =============================================================================
# Public API
# =============================================================================


def markov_attribution(
    deals: DealSource,
    settings: Optional[Settings] = None,
) -> Dict[Channel, AttributionResult]:
    """
    Credit channels by blended Markov removal effect.

    Returns:
        Mapping of every observed channel to an AttributionResult. All zero
        when no deal converted.

    Example:
        >>> results = markov_attribution(store)
        >>> sum(r.pipeline for r in results.values()) == sum(
        ...     d.deal_amount for d in store.with_touches())
        True
    """
    deal_list = as_deals(deals)
    fit = fit_markov(deal_list, settings=settings)
    if fit.is_degenerate:
        return {ch: AttributionResult() for ch in fit.channels}
    return accumulate_credit(deal_list, lambda deal: _deal_shares(deal, fit.blend_weights))


def markov_diagnostics(
    deals: DealSource,
    settings: Optional[Settings] = None,
) -> MarkovDiagnostics:
    """
    Transition matrix, base conversion rate, removal effects and path frequency.

    removalEffects are normalized to sum to 1 unless degenerate (then all 0).
    """
    fit = fit_markov(deals, settings=settings)
    return MarkovDiagnostics(
        transitionMatrix=transition_matrix(fit.transitions),
        baseConversionRate=fit.base_conversion_rate,
        removalEffects=fit.normalized_removal_effects,
        rawRemovalEffects=fit.raw_removal_effects,
        pathFrequency=fit.path_frequency,
        blendWeights=fit.blend_weights,
        removalShare=fit.removal_share,
        convertingJourneys=fit.converting_journeys,
        totalJourneys=fit.total_journeys,
        isDegenerate=fit.is_degenerate,
    )
