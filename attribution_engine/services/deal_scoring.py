"""
Deal Scoring Model: close probability for open deals, with a backtest.

This module scores each open deal by how closely its journey resembles the
journeys of historical won deals, and validates the score against historical
closed deals.

Algorithm Overview:
    A reference profile is built from closed deals only:
        - won channel frequency (top 6 channels form the won channel set)
        - average touch count of won deals
        - median days per stage for won deals
        - top 10 win signals (touch descriptors with lift > 1)
    Each open deal then earns six 0-100 factor scores:

        | Factor            | Weight | Basis                                   |
        |-------------------|--------|-----------------------------------------|
        | Channel Diversity | 0.20   | Jaccard vs the top won channels          |
        | Touchpoint Volume | 0.15   | Touch count / won average                |
        | Win Signals       | 0.25   | Share of top win signals present         |
        | Velocity          | 0.15   | Days in current stage / won median       |
        | Recency           | 0.10   | Days since last touch                    |
        | Event & Content   | 0.15   | Events, webinars, pricing, ROI, demo     |

    probability = round(sum(weight * score)). Weights sum to 1.

Win/Loss Signals:
    Every touch yields descriptors (campaign, content asset, page, channel,
    activity). For each descriptor, lift = won% / lost% (10 when only won
    deals have it, 1 when neither does) with a 2x2 chi-squared test of
    significance (1 degree of freedom).

Backtest:
    Closed deals only. Each closed deal is scored against a profile built from
    the other closed deals (leave-one-out), as of its close date. Outcomes
    (won=1, lost=0) vs scores give AUC, precision/recall at a threshold and a
    precision/recall/F1 sweep. Fewer than two closed deals, or a single
    outcome class, give a neutral result (AUC 0.5, empty sweep) flagged
    isDegenerate.

Determinism:
    The reference date defaults to the latest activity in the dataset, never
    the wall clock, so scoring the same input twice yields identical output.

Dependencies:
    - numpy: score arrays
    - scikit-learn: roc_auc_score, precision/recall/F1 for the backtest
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import numpy as np
from sklearn.metrics import f1_score, precision_score, recall_score, roc_auc_score

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import check_score_threshold
from attribution_engine.models.enums import (
    Channel,
    ChannelFamily,
    CHANNEL_FAMILIES,
    Confidence,
    DescriptorType,
    Severity,
    SignalConfidence,
    Stage,
    Trend,
    channel_order,
)
from attribution_engine.models.schemas import (
    BacktestResult,
    Deal,
    DealScore,
    RiskFactor,
    ScoreComponent,
    StageHistoryEntry,
    ThresholdPoint,
    WinLossSignal,
)
from attribution_engine.services.journey_store import DealSource, as_store
from attribution_engine.services.stats import mean, median, round_half_up, safe_divide, to_datetime


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

FACTOR_WEIGHTS: Dict[str, float] = {
    'Channel Diversity': 0.20,
    'Touchpoint Volume': 0.15,
    'Win Signals': 0.25,
    'Velocity': 0.15,
    'Recency': 0.10,
    'Event & Content': 0.15,
}

# Number of most frequent won channels compared against a deal's channels
TOP_WON_CHANNELS: int = 6

# Number of highest-lift win signals checked per deal
TOP_WIN_SIGNALS: int = 10

# Neutral sub-score used when the reference profile cannot support a factor
NEUTRAL_SCORE: float = 50.0

# Won-deal median days assumed for a stage with no won history
DEFAULT_STAGE_MEDIAN_DAYS: float = 20.0

# Lift reported for a descriptor seen in won deals but never in lost deals
MAX_LIFT_RATIO: float = 10.0

# Touch counts at which confidence becomes high / medium
HIGH_CONFIDENCE_TOUCHES: int = 6
MEDIUM_CONFIDENCE_TOUCHES: int = 3

# Closed deals required before any score is more than low confidence
MIN_REFERENCE_DEALS: int = 2

# Days without a touch before a deal is "gone dark" (medium / high severity)
GONE_DARK_DAYS: int = 21
GONE_DARK_HIGH_DAYS: int = 30

# Backtest sample sizes for high / medium confidence
BACKTEST_HIGH_CONFIDENCE_SAMPLE: int = 30
BACKTEST_MEDIUM_CONFIDENCE_SAMPLE: int = 10

# Chi-squared significance cutoffs (p-values)
SIGNIFICANCE_P: float = 0.10
HIGH_CONFIDENCE_P: float = 0.05

# Reference date used when a dataset carries no dates at all
UNDATED_REFERENCE: datetime = datetime(1970, 1, 1)

PRICING_PAGE: str = "/pricing/"
ROI_PAGE: str = "/roi-calculator/"

EVENT_CHANNELS: Set[Channel] = {Channel.EVENT, Channel.EVENTS}
BDR_CHANNELS: Set[Channel] = {Channel.BDR_EMAIL, Channel.BDR_CALL}
PAID_SOCIAL_CHANNELS: Set[Channel] = {Channel.LINKEDIN_ADS, Channel.LINKEDIN}
PASSIVE_EMAIL_CHANNELS: Set[Channel] = {Channel.EMAIL_NEWSLETTER, Channel.EMAIL_NURTURE}


# =============================================================================
# Reference Profile
# =============================================================================


@dataclass
class ReferenceProfile:
    """
    Statistics from closed deals that open deals are compared against.

    Attributes:
        won_channel_counts: Touch count per channel across won deals.
        won_avg_touches: Mean touch count of won deals (0 with no won deals).
        won_median_days: Median days_in_stage per stage across won deals.
        win_signals: Descriptors with lift > 1, highest lift first.
        closed_count: Number of closed deals the profile was built from.
    """
    won_channel_counts: Dict[Channel, int] = field(default_factory=dict)
    won_avg_touches: float = 0.0
    won_median_days: Dict[Stage, float] = field(default_factory=dict)
    win_signals: List[WinLossSignal] = field(default_factory=list)
    closed_count: int = 0

    @property
    def top_won_channels(self) -> Set[Channel]:
        ranked = sorted(
            self.won_channel_counts,
            key=lambda ch: (-self.won_channel_counts[ch], channel_order(ch)),
        )
        return set(ranked[:TOP_WON_CHANNELS])


def build_reference_profile(closed_deals: Sequence[Deal]) -> ReferenceProfile:
    """Build the won/lost reference profile from closed deals."""
    won = [d for d in closed_deals if d.is_won]

    channel_counts: Dict[Channel, int] = {}
    for deal in won:
        for tp in deal.touchpoints:
            channel_counts[tp.channel] = channel_counts.get(tp.channel, 0) + 1

    days_by_stage: Dict[Stage, List[float]] = {}
    for deal in won:
        for entry in deal.stage_history:
            days_by_stage.setdefault(entry.stage, []).append(entry.days_in_stage)

    signals = [s for s in calculate_win_loss_signals(closed_deals) if s.lift_ratio > 1]

    return ReferenceProfile(
        won_channel_counts=channel_counts,
        won_avg_touches=mean(d.touch_count for d in won),
        won_median_days={stage: median(days) for stage, days in days_by_stage.items()},
        win_signals=signals[:TOP_WIN_SIGNALS],
        closed_count=sum(1 for d in closed_deals if d.is_closed),
    )


# =============================================================================
# Win/Loss Signals
# =============================================================================


def touch_descriptors(deal: Deal) -> Dict[str, DescriptorType]:
    """Every descriptor present in a deal's journey."""
    descriptors: Dict[str, DescriptorType] = {}
    for tp in deal.touchpoints:
        if tp.campaign:
            descriptors[f"Campaign: {tp.campaign}"] = DescriptorType.CAMPAIGN
        if tp.content_asset:
            descriptors[f"Content: {tp.content_asset}"] = DescriptorType.CONTENT
        if tp.page_url:
            descriptors[f"Page: {tp.page_url}"] = DescriptorType.PAGE
        descriptors[f"Channel: {tp.channel.value}"] = DescriptorType.CHANNEL
        if tp.activity_type:
            descriptors[f"Activity: {tp.activity_type}"] = DescriptorType.ACTIVITY
    return descriptors


def chi_squared_2x2(a: int, b: int, c: int, d: int) -> Tuple[float, float]:
    """
    Chi-squared statistic and p-value for a 2x2 contingency table.

        |          | with | without |
        |----------|------|---------|
        | won      |  a   |    b    |
        | lost     |  c   |    d    |

    Returns (0.0, 1.0) when any marginal total is zero.
    """
    n = a + b + c + d
    rows = (a + b, c + d)
    cols = (a + c, b + d)
    if n == 0 or 0 in rows or 0 in cols:
        return 0.0, 1.0
    chi2 = n * (a * d - b * c) ** 2 / (rows[0] * rows[1] * cols[0] * cols[1])
    # Survival function of chi-squared with one degree of freedom
    p_value = math.erfc(math.sqrt(chi2 / 2.0))
    return float(chi2), float(p_value)


def calculate_win_loss_signals(deals: DealSource) -> List[WinLossSignal]:
    """
    Lift of every touch descriptor in won vs lost deals.

    Returns:
        Signals sorted by lift descending (ties by descriptor). Empty unless
        there is at least one won and one lost deal.
    """
    store = as_store(deals)
    won = store.won()
    lost = store.lost()
    if not won or not lost:
        return []

    won_sets = [touch_descriptors(d) for d in won]
    lost_sets = [touch_descriptors(d) for d in lost]
    all_descriptors: Dict[str, DescriptorType] = {}
    for descriptors in won_sets + lost_sets:
        all_descriptors.update(descriptors)

    signals = []
    for descriptor, kind in all_descriptors.items():
        won_with = sum(1 for s in won_sets if descriptor in s)
        lost_with = sum(1 for s in lost_sets if descriptor in s)
        won_pct = won_with / len(won)
        lost_pct = lost_with / len(lost)
        if lost_pct > 0:
            lift = won_pct / lost_pct
        else:
            lift = MAX_LIFT_RATIO if won_pct > 0 else 1.0

        chi2, p_value = chi_squared_2x2(
            won_with, len(won) - won_with, lost_with, len(lost) - lost_with
        )
        if p_value < HIGH_CONFIDENCE_P:
            level = SignalConfidence.HIGH
        elif p_value < SIGNIFICANCE_P:
            level = SignalConfidence.MODERATE
        else:
            level = SignalConfidence.LOW

        signals.append(WinLossSignal(
            touchpoint_descriptor=descriptor,
            touchpoint_type=kind,
            won_deals_with=won_with,
            won_deals_total=len(won),
            won_pct=won_pct,
            lost_deals_with=lost_with,
            lost_deals_total=len(lost),
            lost_pct=lost_pct,
            lift_ratio=lift,
            chi_squared=chi2,
            p_value=p_value,
            statistical_significance=p_value < SIGNIFICANCE_P,
            confidence_level=level,
        ))
    signals.sort(key=lambda s: (-s.lift_ratio, s.touchpoint_descriptor))
    return signals


# =============================================================================
# Factor Scores
# =============================================================================


def channel_diversity_score(deal_channels: Set[Channel], profile: ReferenceProfile) -> float:
    """Jaccard similarity x 100 between the deal's channels and the top won channels."""
    top = profile.top_won_channels
    union = deal_channels | top
    return safe_divide(len(deal_channels & top), len(union)) * 100.0


def touch_volume_score(touch_count: int, won_avg_touches: float) -> float:
    if won_avg_touches <= 0:
        return NEUTRAL_SCORE
    ratio = touch_count / won_avg_touches
    if 0.8 <= ratio <= 1.5:
        return 100.0
    if 0.5 <= ratio <= 2.0:
        return 70.0
    if ratio >= 0.3:
        return 40.0
    return 15.0


def win_signal_score(deal: Deal, signals: Sequence[WinLossSignal]) -> Tuple[float, int]:
    """Share of top win signals present (x 100) and the match count."""
    if not signals:
        return NEUTRAL_SCORE, 0
    present = touch_descriptors(deal)
    matched = sum(1 for s in signals if s.touchpoint_descriptor in present)
    return matched / len(signals) * 100.0, matched


def scoring_stage_entry(deal: Deal) -> Optional[StageHistoryEntry]:
    """
    Stage history entry the velocity factor is measured on.

    The current stage for open deals; for closed deals, the last open stage
    the deal passed through.
    """
    if deal.is_open:
        return deal.stage_entry(deal.stage)
    for entry in reversed(deal.stage_history):
        if entry.stage.is_open:
            return entry
    return None


def velocity_score(entry: Optional[StageHistoryEntry], profile: ReferenceProfile) -> float:
    if entry is None:
        return NEUTRAL_SCORE
    won_median = profile.won_median_days.get(entry.stage) or DEFAULT_STAGE_MEDIAN_DAYS
    ratio = entry.days_in_stage / won_median
    if ratio <= 0.8:
        return 95.0
    if ratio <= 1.2:
        return 80.0
    if ratio <= 1.8:
        return 55.0
    if ratio <= 2.5:
        return 30.0
    return 10.0


def recency_score(days_since_last_touch: int) -> float:
    """Step decay on days since the last touch."""
    if days_since_last_touch <= 3:
        return 100.0
    if days_since_last_touch <= 7:
        return 90.0
    if days_since_last_touch <= 14:
        return 75.0
    if days_since_last_touch <= 21:
        return 55.0
    if days_since_last_touch <= 30:
        return 35.0
    return max(5.0, 35.0 - (days_since_last_touch - 30) * 0.8)


def _engagement_signals(deal: Deal) -> Dict[str, bool]:
    tps = deal.touchpoints
    return {
        'event': any(tp.channel in EVENT_CHANNELS for tp in tps),
        'webinar': any(tp.channel is Channel.WEBINAR for tp in tps),
        'content_download': any(tp.channel is Channel.CONTENT_DOWNLOAD for tp in tps),
        'pricing': any(tp.page_url == PRICING_PAGE for tp in tps),
        'roi': any(
            (tp.content_asset and 'roi' in tp.content_asset.lower()) or tp.page_url == ROI_PAGE
            for tp in tps
        ),
        'demo': any(
            tp.activity_type == 'form_fill'
            and ('demo' in (tp.page_url or '') or 'demo' in (tp.interaction_detail or ''))
            for tp in tps
        ),
    }


# Points per high-value engagement signal, capped at 100 in total
ENGAGEMENT_POINTS: Dict[str, float] = {
    'event': 20.0,
    'webinar': 15.0,
    'content_download': 15.0,
    'pricing': 20.0,
    'roi': 15.0,
    'demo': 15.0,
}


def event_content_score(deal: Deal) -> Tuple[float, int]:
    signals = _engagement_signals(deal)
    points = sum(ENGAGEMENT_POINTS[name] for name, present in signals.items() if present)
    return min(100.0, points), sum(signals.values())


# =============================================================================
# Risk Factors, Patterns, Trend
# =============================================================================


def detect_risk_factors(deal: Deal, days_since_last_touch: int) -> List[RiskFactor]:
    """Risk factors for one deal, ordered high to low severity."""
    risks = []
    families = {CHANNEL_FAMILIES[tp.channel] for tp in deal.touchpoints}

    if days_since_last_touch > GONE_DARK_DAYS:
        risks.append(RiskFactor(
            label='Gone dark',
            severity=Severity.HIGH if days_since_last_touch > GONE_DARK_HIGH_DAYS else Severity.MEDIUM,
            description=f"No engagement for {days_since_last_touch} days",
        ))
    if deal.touch_count <= 2:
        risks.append(RiskFactor(
            label='Low engagement',
            severity=Severity.HIGH,
            description=f"Only {deal.touch_count} touchpoints, well below average",
        ))
    if len(deal.channels) <= 1:
        risks.append(RiskFactor(
            label='Single channel',
            severity=Severity.MEDIUM,
            description='Engagement limited to one channel with no multi-channel reinforcement',
        ))
    if ChannelFamily.EVENT not in families and deal.touch_count >= 3:
        risks.append(RiskFactor(
            label='Missing events',
            severity=Severity.LOW,
            description='No event or webinar attendance, a key conversion signal',
        ))
    if ChannelFamily.OUTBOUND not in families:
        risks.append(RiskFactor(
            label='No outbound',
            severity=Severity.LOW,
            description='No BDR/SDR engagement; may need a human touch',
        ))
    return sorted(risks, key=lambda r: r.severity.rank)


def detect_matching_patterns(deal: Deal) -> Tuple[List[str], List[str]]:
    """Named won and lost journey patterns the deal matches."""
    channels = {tp.channel for tp in deal.touchpoints}
    signals = _engagement_signals(deal)
    has_event = signals['event']
    has_webinar = signals['webinar']
    has_bdr = bool(channels & BDR_CHANNELS)

    won_patterns = []
    if channels & PAID_SOCIAL_CHANNELS and has_event and signals['pricing']:
        won_patterns.append('Pattern A: Paid → Event → Pricing')
    if signals['content_download'] and has_webinar and has_bdr:
        won_patterns.append('Pattern B: Content → Webinar → BDR')
    if has_bdr and Channel.EMAIL_NURTURE in channels and has_event:
        won_patterns.append('Pattern C: BDR → Nurture → Event')

    lost_patterns = []
    if deal.touch_count <= 2 and not has_event and not has_webinar:
        lost_patterns.append('Low engagement: matches lost deal profile')
    if deal.touch_count >= 2 and channels <= PASSIVE_EMAIL_CHANNELS:
        lost_patterns.append('Newsletter-only: passive engagement')
    return won_patterns, lost_patterns


def touch_trend(deal: Deal, reference: datetime, window_days: int) -> Trend:
    """
    Compare touches in the last window before `reference` with the window before.

    improving when recent > prior + 1, declining when recent < prior - 1.
    """
    window = timedelta(days=window_days)
    recent_start = reference - window
    prior_start = recent_start - window
    recent = sum(1 for tp in deal.touchpoints if recent_start < tp.timestamp <= reference)
    prior = sum(1 for tp in deal.touchpoints if prior_start < tp.timestamp <= recent_start)
    if recent > prior + 1:
        return Trend.IMPROVING
    if recent < prior - 1:
        return Trend.DECLINING
    return Trend.STABLE


def days_since_last_touch(deal: Deal, reference: datetime) -> int:
    if deal.touchpoints:
        last = deal.touchpoints[-1].timestamp
    elif deal.created_date is not None:
        last = to_datetime(deal.created_date)
    else:
        return 0
    return max(0, (reference - last).days)


# =============================================================================
# Scoring
# =============================================================================


def score_deal(
    deal: Deal,
    profile: ReferenceProfile,
    reference_date: Union[date, datetime],
    settings: Optional[Settings] = None,
) -> DealScore:
    """
    Score one deal against a reference profile.

    Args:
        deal: Deal to score. Open deals are the normal case; the backtest also
            scores closed deals.
        profile: Reference profile from closed deals (see build_reference_profile).
        reference_date: "Today" for recency and trend.
        settings: Optional settings override.

    Returns:
        DealScore with six components whose weights sum to 1.
    """
    settings = settings or get_settings()
    reference = to_datetime(reference_date)
    days_idle = days_since_last_touch(deal, reference)
    deal_channels = set(deal.channels)

    signal_score, matched = win_signal_score(deal, profile.win_signals)
    engagement, engagement_count = event_content_score(deal)
    entry = scoring_stage_entry(deal)
    if entry is None:
        velocity_detail = "No stage history for the current stage"
    else:
        won_median = profile.won_median_days.get(entry.stage) or DEFAULT_STAGE_MEDIAN_DAYS
        velocity_detail = (
            f"{entry.days_in_stage}d in {entry.stage.value} vs won median {won_median:.0f}d"
        )

    raw_scores = [
        ('Channel Diversity', channel_diversity_score(deal_channels, profile),
         f"{len(deal_channels)} channels engaged vs {len(profile.top_won_channels)} top won channels"),
        ('Touchpoint Volume', touch_volume_score(deal.touch_count, profile.won_avg_touches),
         f"{deal.touch_count} touches (won avg: {profile.won_avg_touches:.0f})"),
        ('Win Signals', signal_score,
         f"Matches {matched}/{len(profile.win_signals)} top win signals"),
        ('Velocity', velocity_score(entry, profile), velocity_detail),
        ('Recency', recency_score(days_idle), f"Last touch {days_idle}d ago"),
        ('Event & Content', engagement, f"{engagement_count} high-value engagement signals"),
    ]
    components = [
        ScoreComponent(
            factor=name,
            weight=FACTOR_WEIGHTS[name],
            score=min(100, max(0, round_half_up(score))),
            detail=detail,
        )
        for name, score, detail in raw_scores
    ]
    probability = round_half_up(sum(c.score * c.weight for c in components))

    if deal.touch_count >= HIGH_CONFIDENCE_TOUCHES:
        confidence = Confidence.HIGH
    elif deal.touch_count >= MEDIUM_CONFIDENCE_TOUCHES:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW
    if profile.closed_count < MIN_REFERENCE_DEALS:
        confidence = Confidence.LOW

    won_patterns, lost_patterns = detect_matching_patterns(deal)

    return DealScore(
        account_id=deal.account_id,
        account_name=deal.account_name,
        opportunity_id=deal.opportunity_id,
        deal_amount=deal.deal_amount,
        stage=deal.stage,
        product_line=deal.product_line,
        probability=min(100, max(0, probability)),
        confidence=confidence,
        score_components=components,
        risk_factors=detect_risk_factors(deal, days_idle),
        matching_won_patterns=won_patterns,
        matching_lost_patterns=lost_patterns,
        trend=touch_trend(deal, reference, settings.trend_window_days),
        days_since_last_touch=days_idle,
    )


def score_all_open_deals(
    deals: DealSource,
    reference_date: Optional[Union[date, datetime]] = None,
    settings: Optional[Settings] = None,
) -> List[DealScore]:
    """
    Score every open deal against a profile of the closed deals.

    Args:
        deals: JourneyStore or iterable of Deal records.
        reference_date: "Today"; defaults to the latest activity in `deals`.
        settings: Optional settings override.

    Returns:
        DealScores sorted by probability descending, ties by opportunity id.
    """
    store = as_store(deals)
    open_deals = store.open()
    if not open_deals:
        return []

    settings = settings or get_settings()
    reference = reference_date if reference_date is not None else store.reference_date()
    if reference is None:
        # No dated activity anywhere, so recency and trend cannot differ
        reference = UNDATED_REFERENCE
    profile = build_reference_profile(store.closed())
    if profile.closed_count < MIN_REFERENCE_DEALS:
        logger.warning(
            f"Only {profile.closed_count} closed deals in the reference profile; "
            f"scores are low confidence"
        )

    scores = [score_deal(d, profile, reference, settings=settings) for d in open_deals]
    scores.sort(key=lambda s: (-s.probability, s.opportunity_id))
    logger.info(f"Scored {len(scores)} open deals against {profile.closed_count} closed deals")
    return scores


# =============================================================================
# Backtest
# =============================================================================


def _degenerate_backtest(scores: Sequence[float], outcomes: Sequence[int], threshold: float) -> BacktestResult:
    won = [s for s, y in zip(scores, outcomes) if y == 1]
    lost = [s for s, y in zip(scores, outcomes) if y == 0]
    return BacktestResult(
        auc=0.5,
        precision=0.0,
        recall=0.0,
        scoreSeparation=mean(won) - mean(lost) if won and lost else 0.0,
        avgScoreWon=mean(won),
        avgScoreLost=mean(lost),
        threshold=threshold,
        sampleSize=len(scores),
        thresholdAnalysis=[],
        isDegenerate=True,
        confidence=Confidence.LOW,
    )


def evaluate_scores(
    scores: Sequence[float],
    outcomes: Sequence[int],
    threshold: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> BacktestResult:
    """
    Discrimination metrics for scores against binary outcomes (won=1, lost=0).

    A deal is predicted to win when its score is at or above the threshold.
    Constant scores carry no ranking information and give AUC 0.5.

    Raises:
        ConfigurationError: If threshold lies outside 0-100.
        ValueError: If scores and outcomes differ in length.
    """
    settings = settings or get_settings()
    threshold = settings.backtest_threshold if threshold is None else check_score_threshold(threshold)
    if len(scores) != len(outcomes):
        raise ValueError(f"Got {len(scores)} scores for {len(outcomes)} outcomes")

    y_true = np.asarray(outcomes, dtype=int)
    y_score = np.asarray(scores, dtype=np.float64)
    if len(y_true) < 2 or len(set(y_true.tolist())) < 2:
        logger.warning(
            f"Backtest over {len(y_true)} closed deals lacks both outcomes; returning neutral result"
        )
        return _degenerate_backtest(list(y_score), list(y_true), threshold)

    def _metrics(cut: float) -> Tuple[float, float, float]:
        y_pred = (y_score >= cut).astype(int)
        return (
            float(precision_score(y_true, y_pred, zero_division=0)),
            float(recall_score(y_true, y_pred, zero_division=0)),
            float(f1_score(y_true, y_pred, zero_division=0)),
        )

    precision, recall, _ = _metrics(threshold)
    sweep = []
    for cut in settings.backtest_sweep:
        p, r, f = _metrics(cut)
        sweep.append(ThresholdPoint(threshold=cut, precision=p, recall=r, f1=f))

    avg_won = float(y_score[y_true == 1].mean())
    avg_lost = float(y_score[y_true == 0].mean())

    if len(y_true) >= BACKTEST_HIGH_CONFIDENCE_SAMPLE:
        confidence = Confidence.HIGH
    elif len(y_true) >= BACKTEST_MEDIUM_CONFIDENCE_SAMPLE:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW

    return BacktestResult(
        auc=float(roc_auc_score(y_true, y_score)),
        precision=precision,
        recall=recall,
        scoreSeparation=avg_won - avg_lost,
        avgScoreWon=avg_won,
        avgScoreLost=avg_lost,
        threshold=threshold,
        sampleSize=int(len(y_true)),
        thresholdAnalysis=sweep,
        isDegenerate=False,
        confidence=confidence,
    )


def _backtest_reference(deal: Deal, fallback: datetime) -> datetime:
    if deal.close_date is not None:
        return to_datetime(deal.close_date)
    if deal.touchpoints:
        return deal.touchpoints[-1].timestamp
    return fallback


def backtest_deal_scoring(
    deals: DealSource,
    threshold: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> BacktestResult:
    """
    Backtest the scoring model against historical closed deals.

    Open deals are never scored here. Each closed deal is scored against a
    profile of the other closed deals as of its close date (or last touch).

    Returns:
        BacktestResult; degenerate (AUC 0.5, empty sweep) with fewer than two
        closed deals or only one outcome class.

    Raises:
        ConfigurationError: If threshold lies outside 0-100.
    """
    settings = settings or get_settings()
    threshold = settings.backtest_threshold if threshold is None else check_score_threshold(threshold)
    store = as_store(deals)
    closed = store.closed()
    outcomes = [1 if d.is_won else 0 for d in closed]

    if len(closed) < 2 or len(set(outcomes)) < 2:
        logger.warning(f"Backtest needs won and lost deals; got {len(closed)} closed deals")
        return _degenerate_backtest([], [], threshold).model_copy(
            update={'sampleSize': len(closed)}
        )

    fallback = store.reference_date() or UNDATED_REFERENCE
    scores = []
    for i, deal in enumerate(closed):
        others = closed[:i] + closed[i + 1:]
        profile = build_reference_profile(others)
        reference = _backtest_reference(deal, fallback)
        scores.append(float(score_deal(deal, profile, reference, settings=settings).probability))

    result = evaluate_scores(scores, outcomes, threshold=threshold, settings=settings)
    logger.info(
        f"Backtest over {len(closed)} closed deals: AUC {result.auc:.3f}, "
        f"separation {result.scoreSeparation:.1f}"
    )
    return result
