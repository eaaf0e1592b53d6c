"""
Journey Store: immutable in-memory snapshot of deals and their journeys.

The store is built once per reporting snapshot and never mutated. Every
analysis service accepts either a JourneyStore or a plain iterable of Deal
records; `as_deals` normalizes both.

Key Operations:
    - won / lost / closed / open / with_touches: outcome partitions
    - channels: channels observed in any journey, in enum order
    - reference_date: latest recorded activity, used as "today" for scoring
    - filter: segment / region / product line / industry slice
    - as_of: journeys truncated to touches on or before a cutoff
    - to_frame: one pandas row per deal for grouped analysis

Dependencies:
    - pandas: tabular view used by the cohort analyzer
"""

import logging
from datetime import date, datetime
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import pandas as pd

from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import Channel, channel_order
from attribution_engine.models.schemas import Deal
from attribution_engine.services.stats import days_between, to_datetime


logger = logging.getLogger(__name__)


# Columns of JourneyStore.to_frame(), in order
FRAME_COLUMNS: List[str] = [
    'opportunity_id',
    'account_id',
    'account_name',
    'industry',
    'segment',
    'region',
    'product_line',
    'stage',
    'deal_amount',
    'won_amount',
    'is_won',
    'is_lost',
    'is_open',
    'touch_count',
    'first_touch_at',
    'last_touch_at',
    'first_touch_month',
    'first_touch_channel',
    'velocity_days',
]


class JourneyStore:
    """
    Immutable collection of Deal records.

    Args:
        deals: Deal records. Opportunity ids must be unique.

    Raises:
        ConfigurationError: If two deals share an opportunity id.

    Example:
        >>> store = JourneyStore(deals)
        >>> len(store.won()), len(store.open())
        (12, 30)
        >>> enterprise = store.filter(segment="Enterprise")
    """

    __slots__ = ('_deals',)

    def __init__(self, deals: Iterable[Deal]):
        deals = tuple(deals)
        seen = set()
        for deal in deals:
            if deal.opportunity_id in seen:
                raise ConfigurationError(f"Duplicate opportunity_id: {deal.opportunity_id}")
            seen.add(deal.opportunity_id)
        self._deals: Tuple[Deal, ...] = deals

    @property
    def deals(self) -> Tuple[Deal, ...]:
        return self._deals

    def __len__(self) -> int:
        return len(self._deals)

    def __iter__(self) -> Iterator[Deal]:
        return iter(self._deals)

    def __repr__(self) -> str:
        return f"JourneyStore(deals={len(self._deals)})"

    # -------------------------------------------------------------------------
    # Partitions
    # -------------------------------------------------------------------------

    def won(self) -> List[Deal]:
        return [d for d in self._deals if d.is_won]

    def lost(self) -> List[Deal]:
        return [d for d in self._deals if d.is_lost]

    def closed(self) -> List[Deal]:
        return [d for d in self._deals if d.is_closed]

    def open(self) -> List[Deal]:
        return [d for d in self._deals if d.is_open]

    def with_touches(self) -> List[Deal]:
        return [d for d in self._deals if d.touchpoints]

    def channels(self) -> List[Channel]:
        """Channels that appear in at least one journey, in enum order."""
        observed = {tp.channel for d in self._deals for tp in d.touchpoints}
        return sorted(observed, key=channel_order)

    def reference_date(self) -> Optional[datetime]:
        """
        Latest recorded activity in the snapshot.

        Uses the latest touchpoint timestamp; falls back to the latest close or
        created date when no deal has touches. None for an empty store.
        """
        stamps = [d.touchpoints[-1].timestamp for d in self._deals if d.touchpoints]
        if stamps:
            return max(stamps)
        dates = [
            to_datetime(value)
            for d in self._deals
            for value in (d.close_date, d.created_date)
            if value is not None
        ]
        return max(dates) if dates else None

    # -------------------------------------------------------------------------
    # Derived stores
    # -------------------------------------------------------------------------

    def filter(
        self,
        segment: Optional[str] = None,
        region: Optional[str] = None,
        product_line: Optional[str] = None,
        industry: Optional[str] = None,
    ) -> 'JourneyStore':
        """Return a store holding only deals matching every given tag."""
        criteria = {
            'segment': segment,
            'region': region,
            'product_line': product_line,
            'industry': industry,
        }
        active = {k: v for k, v in criteria.items() if v is not None}
        return JourneyStore(
            d for d in self._deals
            if all(getattr(d, key) == value for key, value in active.items())
        )

    def as_of(self, cutoff: Union[date, datetime]) -> 'JourneyStore':
        """
        Journeys truncated to touches on or before `cutoff`.

        Deals left without any touch are dropped. Stage and amount are kept as
        recorded since stage history at the cutoff is not reconstructed.
        """
        cutoff_dt = to_datetime(cutoff)
        truncated = []
        for deal in self._deals:
            kept = tuple(tp for tp in deal.touchpoints if tp.timestamp <= cutoff_dt)
            if not kept:
                continue
            if len(kept) == len(deal.touchpoints):
                truncated.append(deal)
            else:
                truncated.append(deal.model_copy(update={'touchpoints': kept}))
        logger.debug(f"as_of({cutoff_dt:%Y-%m-%d}): kept {len(truncated)} of {len(self._deals)} deals")
        return JourneyStore(truncated)

    def to_frame(self) -> pd.DataFrame:
        """
        One row per deal with outcome flags and journey summary columns.

        first_touch_* and velocity_days are NaN/None for zero-touch deals;
        velocity_days is only set when the journey has at least two touches.
        """
        rows = []
        for deal in self._deals:
            first = deal.first_touch
            last = deal.last_touch
            velocity = None
            if deal.touch_count >= 2:
                velocity = days_between(first.timestamp, last.timestamp)
            rows.append({
                'opportunity_id': deal.opportunity_id,
                'account_id': deal.account_id,
                'account_name': deal.account_name,
                'industry': deal.industry,
                'segment': deal.segment,
                'region': deal.region,
                'product_line': deal.product_line,
                'stage': deal.stage.value,
                'deal_amount': deal.deal_amount,
                'won_amount': deal.deal_amount if deal.is_won else 0.0,
                'is_won': deal.is_won,
                'is_lost': deal.is_lost,
                'is_open': deal.is_open,
                'touch_count': deal.touch_count,
                'first_touch_at': first.timestamp if first else pd.NaT,
                'last_touch_at': last.timestamp if last else pd.NaT,
                'first_touch_month': first.timestamp.strftime('%Y-%m') if first else None,
                'first_touch_channel': first.channel.value if first else None,
                'velocity_days': velocity,
            })
        frame = pd.DataFrame(rows, columns=FRAME_COLUMNS)
        frame['velocity_days'] = pd.to_numeric(frame['velocity_days'], errors='coerce')
        return frame


DealSource = Union[JourneyStore, Iterable[Deal]]


def as_deals(source: DealSource) -> Tuple[Deal, ...]:
    """Normalize a JourneyStore or iterable of deals to a tuple of deals."""
    if isinstance(source, JourneyStore):
        return source.deals
    return tuple(source)


def as_store(source: DealSource) -> JourneyStore:
    if isinstance(source, JourneyStore):
        return source
    return JourneyStore(source)
