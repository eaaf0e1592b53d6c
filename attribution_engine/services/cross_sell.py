"""
Cross-Sell Analysis.

Finds accounts that expanded from one product line into another and scores
every non-lost deal for readiness to open a second product.

Patterns:
    Deals of an account are ordered by creation date (first touch when the
    deal has no created_date). The first deal's product is the account's
    primary product; each later deal on a different product is one
    primary -> cross-sell link. Triggers are the readiness indicators the
    primary deal already showed for the product that followed.

Readiness Indicators (equal weight):
    - product_content: touches mention the target product
    - event_attendance: attended a webinar or event
    - multi_product_pages: visited pages for both products
    - advanced_stage: deal reached evaluation, negotiation or closed won
    - high_engagement: HIGH_ENGAGEMENT_TOUCHES or more touches

    readinessScore = round(indicators present / indicator count x 100)
    Opportunities below MIN_READINESS are dropped.

Deals with product_line "Unspecified" take no part in the analysis.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Set

from attribution_engine.models.enums import CHANNEL_FAMILIES, ChannelFamily, Stage
from attribution_engine.models.schemas import (
    CrossSellOpportunity,
    CrossSellPattern,
    CrossSellSummary,
    Deal,
    ProductBreakdown,
)
from attribution_engine.services.journey_store import DealSource, as_deals
from attribution_engine.services.stats import days_between, mean, round_half_up, safe_divide


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

UNSPECIFIED_PRODUCT: str = "Unspecified"

HIGH_ENGAGEMENT_TOUCHES: int = 8
MIN_READINESS: int = 15
MAX_TRIGGERS: int = 3

ADVANCED_STAGES: Set[Stage] = {Stage.EVAL_PLANNING, Stage.NEGOTIATION, Stage.CLOSED_WON}


def _product_terms(product: str) -> List[str]:
    name = product.lower()
    return [name, name.replace(' ', '-')]


def _touch_mentions(deal: Deal, product: str, fields: Sequence[str]) -> bool:
    terms = _product_terms(product)
    for tp in deal.touchpoints:
        for attr in fields:
            text = getattr(tp, attr)
            if text and any(term in text.lower() for term in terms):
                return True
    return False


def _mentions_product(deal: Deal, product: str) -> bool:
    return _touch_mentions(deal, product, ('page_url', 'content_asset', 'campaign', 'interaction_detail'))


def _attended_event(deal: Deal, product: str) -> bool:
    return any(CHANNEL_FAMILIES[tp.channel] is ChannelFamily.EVENT for tp in deal.touchpoints)


def _visited_both(deal: Deal, product: str) -> bool:
    return (
        _touch_mentions(deal, deal.product_line, ('page_url',))
        and _touch_mentions(deal, product, ('page_url',))
    )


def _advanced_stage(deal: Deal, product: str) -> bool:
    return deal.stage in ADVANCED_STAGES


def _highly_engaged(deal: Deal, product: str) -> bool:
    return deal.touch_count >= HIGH_ENGAGEMENT_TOUCHES


@dataclass(frozen=True)
class Indicator:
    key: str
    label: str
    check: Callable[[Deal, str], bool]


INDICATORS: List[Indicator] = [
    Indicator('product_content', "Engaged with cross-sell product content", _mentions_product),
    Indicator('event_attendance', "Attended a webinar or event", _attended_event),
    Indicator('multi_product_pages', "Visited pages for both products", _visited_both),
    Indicator('advanced_stage', "Reached evaluation or later", _advanced_stage),
    Indicator('high_engagement', f"{HIGH_ENGAGEMENT_TOUCHES}+ marketing touches", _highly_engaged),
]


# =============================================================================
# Helpers
# =============================================================================


def _with_product(deals: Sequence[Deal]) -> List[Deal]:
    return [d for d in deals if d.product_line != UNSPECIFIED_PRODUCT]


def _deal_start(deal: Deal) -> Optional[date]:
    if deal.created_date is not None:
        return deal.created_date
    if deal.first_touch is not None:
        return deal.first_touch.timestamp.date()
    return None


def _by_account(deals: Sequence[Deal]) -> Dict[str, List[Deal]]:
    accounts: Dict[str, List[Deal]] = {}
    for deal in deals:
        accounts.setdefault(deal.account_id, []).append(deal)
    for account_deals in accounts.values():
        account_deals.sort(key=lambda d: (_deal_start(d) or date.min, d.opportunity_id))
    return accounts


def indicators_for(deal: Deal, target_product: str) -> List[Indicator]:
    """Indicators the deal shows toward `target_product`, in INDICATORS order."""
    return [ind for ind in INDICATORS if ind.check(deal, target_product)]


# =============================================================================
# Patterns
# =============================================================================


def detect_cross_sell_patterns(deals: DealSource) -> List[CrossSellPattern]:
    """
    Primary -> cross-sell product pairs observed across accounts.

    Returns:
        Patterns sorted by account count descending, then product names.
    """
    accounts = _by_account(_with_product(as_deals(deals)))

    primary_accounts: Counter = Counter()
    pair_accounts: Dict[tuple, Set[str]] = {}
    pair_days: Dict[tuple, List[float]] = {}
    pair_triggers: Dict[tuple, Counter] = {}

    for account_id, account_deals in accounts.items():
        primary = account_deals[0]
        primary_accounts[primary.product_line] += 1
        seen = {primary.product_line}
        for deal in account_deals[1:]:
            if deal.product_line in seen:
                continue
            seen.add(deal.product_line)
            pair = (primary.product_line, deal.product_line)
            pair_accounts.setdefault(pair, set()).add(account_id)
            start, later = _deal_start(primary), _deal_start(deal)
            if start is not None and later is not None:
                pair_days.setdefault(pair, []).append(abs(days_between(start, later)))
            triggers = pair_triggers.setdefault(pair, Counter())
            for ind in indicators_for(primary, deal.product_line):
                triggers[ind.label] += 1

    order = {ind.label: i for i, ind in enumerate(INDICATORS)}
    patterns = []
    for pair, account_ids in pair_accounts.items():
        ranked = sorted(pair_triggers[pair].items(), key=lambda kv: (-kv[1], order[kv[0]]))
        patterns.append(CrossSellPattern(
            primaryProduct=pair[0],
            crossSellProduct=pair[1],
            accountCount=len(account_ids),
            commonTriggers=[label for label, _ in ranked[:MAX_TRIGGERS]],
            avgDaysBetweenProducts=round_half_up(mean(pair_days.get(pair, []))),
            crossSellConversionRate=round_half_up(
                safe_divide(len(account_ids), primary_accounts[pair[0]]) * 100.0
            ),
        ))
    patterns.sort(key=lambda p: (-p.accountCount, p.primaryProduct, p.crossSellProduct))
    return patterns


# =============================================================================
# Opportunities
# =============================================================================


def identify_cross_sell_opportunities(deals: DealSource) -> List[CrossSellOpportunity]:
    """
    Readiness of every non-lost deal to open each other product line.

    An existing deal of the same account on the target product supplies
    crossSellStage and crossSellDealAmount (the most recent one wins).

    Returns:
        Opportunities sorted by readiness, then current deal amount, both
        descending.
    """
    product_deals = _with_product(as_deals(deals))
    products = sorted({d.product_line for d in product_deals})
    accounts = _by_account(product_deals)

    opportunities = []
    for deal in product_deals:
        if deal.is_lost:
            continue
        for target in products:
            if target == deal.product_line:
                continue
            present = indicators_for(deal, target)
            readiness = round_half_up(len(present) / len(INDICATORS) * 100.0)
            if readiness < MIN_READINESS:
                continue
            existing = [d for d in accounts[deal.account_id] if d.product_line == target]
            match = existing[-1] if existing else None
            opportunities.append(CrossSellOpportunity(
                account_id=deal.account_id,
                account_name=deal.account_name,
                opportunity_id=deal.opportunity_id,
                currentProduct=deal.product_line,
                currentStage=deal.stage,
                currentDealAmount=deal.deal_amount,
                crossSellProduct=target,
                crossSellStage=match.stage if match else None,
                crossSellDealAmount=match.deal_amount if match else None,
                readinessScore=readiness,
                indicatorsPresent=[ind.label for ind in present],
                indicatorsMissing=[ind.label for ind in INDICATORS if ind not in present],
            ))

    opportunities.sort(key=lambda o: (
        -o.readinessScore, -o.currentDealAmount, o.opportunity_id, o.crossSellProduct,
    ))
    return opportunities


def product_breakdown(deals: DealSource) -> List[ProductBreakdown]:
    """Per product: accounts buying it and how many of them hold another product."""
    accounts = _by_account(_with_product(as_deals(deals)))
    multi_product = {
        account_id for account_id, account_deals in accounts.items()
        if len({d.product_line for d in account_deals}) > 1
    }

    holders: Dict[str, Set[str]] = {}
    for account_id, account_deals in accounts.items():
        for deal in account_deals:
            holders.setdefault(deal.product_line, set()).add(account_id)

    breakdown = []
    for product in sorted(holders):
        total = len(holders[product])
        cross = len(holders[product] & multi_product)
        breakdown.append(ProductBreakdown(
            product=product,
            totalAccounts=total,
            crossSellAccounts=cross,
            crossSellRate=round_half_up(safe_divide(cross, total) * 100.0),
        ))
    return breakdown


# =============================================================================
# Public API
# =============================================================================


def analyze_cross_sell(deals: DealSource) -> CrossSellSummary:
    """Patterns, scored opportunities and per-product breakdown."""
    deal_list = as_deals(deals)
    opportunities = identify_cross_sell_opportunities(deal_list)
    summary = CrossSellSummary(
        totalCrossSellOpportunities=len(opportunities),
        totalCrossSellPipeline=sum(
            o.crossSellDealAmount for o in opportunities if o.crossSellDealAmount is not None
        ),
        avgReadinessScore=round_half_up(mean(o.readinessScore for o in opportunities)),
        patterns=detect_cross_sell_patterns(deal_list),
        opportunities=opportunities,
        productBreakdown=product_breakdown(deal_list),
    )
    logger.info(
        f"Cross-sell: {len(summary.patterns)} patterns, "
        f"{summary.totalCrossSellOpportunities} opportunities"
    )
    return summary


__all__ = [
    'analyze_cross_sell',
    'detect_cross_sell_patterns',
    'identify_cross_sell_opportunities',
    'product_breakdown',
    'indicators_for',
    'INDICATORS',
]
