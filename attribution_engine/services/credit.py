"""
Shared credit accumulation for the attribution models.

Every model reduces a journey to {channel: share} with shares summing to 1 and
hands it to `accumulate_credit`, which spreads the deal amount (and, for won
deals, revenue) across channels. Keeping the accumulation in one place is what
makes credit conservation hold for every model.
"""

from typing import Callable, Dict, Iterable, List, Sequence

from attribution_engine.models.enums import Channel, channel_order
from attribution_engine.models.schemas import AttributionResult, Deal


ChannelShares = Dict[Channel, float]


def observed_channels(deals: Iterable[Deal]) -> List[Channel]:
    """Channels touched in any journey, in enum order."""
    seen = {tp.channel for d in deals for tp in d.touchpoints}
    return sorted(seen, key=channel_order)


def shares_from_touch_weights(deal: Deal, weights: Sequence[float]) -> ChannelShares:
    """Collapse per-touch weights into per-channel shares."""
    shares: ChannelShares = {}
    for tp, weight in zip(deal.touchpoints, weights):
        shares[tp.channel] = shares.get(tp.channel, 0.0) + weight
    return shares


def accumulate_credit(
    deals: Sequence[Deal],
    shares_for: Callable[[Deal], ChannelShares],
) -> Dict[Channel, AttributionResult]:
    """
    Credit each deal's amount to channels according to `shares_for(deal)`.

    Zero-touch deals contribute nothing. The returned mapping holds every
    channel observed in `deals` (zero-filled) in enum order.
    """
    totals: Dict[Channel, List[float]] = {ch: [0.0, 0.0, 0.0] for ch in observed_channels(deals)}
    for deal in deals:
        if not deal.touchpoints:
            continue
        for channel, share in shares_for(deal).items():
            bucket = totals[channel]
            bucket[0] += deal.deal_amount * share
            if deal.is_won:
                bucket[1] += deal.deal_amount * share
            bucket[2] += share
    return {
        ch: AttributionResult(pipeline=p, revenue=r, opps=o)
        for ch, (p, r, o) in totals.items()
    }
