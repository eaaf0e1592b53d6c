"""
Test suite for the Journey Store and the Deal/Touchpoint schemas.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List

import pandas as pd
import pytest
from pydantic import ValidationError

from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import Channel, Stage
from attribution_engine.models.schemas import Deal, Touchpoint
from attribution_engine.services.journey_store import (
    FRAME_COLUMNS,
    JourneyStore,
    as_deals,
    as_store,
)


class TestDealSchema:

    def test_outcome_flags(self, scenario_deals: List[Deal]) -> None:
        won, lost, open_ = scenario_deals

        assert won.is_won and won.is_closed and not won.is_open
        assert lost.is_lost and lost.is_closed
        assert open_.is_open and not open_.is_closed

    def test_channels_and_touch_count(self, scenario_deals: List[Deal]) -> None:
        deal = scenario_deals[2]

        assert deal.touch_count == 3
        assert deal.channels == [Channel.EVENTS, Channel.FORM]
        assert deal.first_touch.channel is Channel.EVENTS
        assert deal.last_touch.channel is Channel.FORM

    def test_zero_touch_deal_is_valid(self) -> None:
        deal = Deal(opportunity_id="Z", account_id="A", deal_amount=0.0, stage=Stage.DISCO_SET)

        assert deal.touch_count == 0
        assert deal.first_touch is None

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Deal(opportunity_id="N", account_id="A", deal_amount=-1.0, stage=Stage.DISCO_SET)

    def test_unknown_channel_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Touchpoint(channel="carrier_pigeon", timestamp=datetime(2025, 1, 1))

    def test_deal_is_immutable(self, scenario_deals: List[Deal]) -> None:
        with pytest.raises(ValidationError):
            scenario_deals[0].deal_amount = 1.0

    def test_parses_json_payload(self) -> None:
        deal = Deal.model_validate({
            "opportunity_id": "OPP-1",
            "account_id": "ACC-1",
            "deal_amount": 48000,
            "stage": "eval_planning",
            "touchpoints": [
                {"channel": "webinar", "timestamp": "2025-10-14T15:00:00"},
                {"channel": "linkedin_ads", "timestamp": "2025-09-01T10:00:00"},
            ],
        })

        assert deal.first_touch.channel is Channel.LINKEDIN_ADS
        assert deal.stage is Stage.EVAL_PLANNING

    def test_offset_timestamp_stored_as_naive_utc(self) -> None:
        touch = Touchpoint(
            channel=Channel.EMAIL,
            timestamp=datetime(2025, 3, 3, 9, 0, tzinfo=timezone(timedelta(hours=2))),
        )

        assert touch.timestamp == datetime(2025, 3, 3, 7, 0)
        assert touch.timestamp.tzinfo is None

    def test_mixed_offset_and_naive_touches_sort(self) -> None:
        deal = Deal.model_validate({
            "opportunity_id": "OPP-2",
            "account_id": "ACC-2",
            "deal_amount": 1000,
            "stage": "disco_set",
            "touchpoints": [
                {"channel": "email", "timestamp": "2025-03-03T08:00:00"},
                {"channel": "webinar", "timestamp": "2025-03-03T09:00:00+02:00"},
                {"channel": "form", "timestamp": "2025-03-03T12:00:00Z"},
            ],
        })

        assert [tp.channel for tp in deal.touchpoints] == [Channel.WEBINAR, Channel.EMAIL, Channel.FORM]
        assert JourneyStore([deal]).reference_date() == datetime(2025, 3, 3, 12, 0)


class TestJourneyStore:

    def test_partitions(self, scenario_store: JourneyStore) -> None:
        assert [d.opportunity_id for d in scenario_store.won()] == ["A"]
        assert [d.opportunity_id for d in scenario_store.lost()] == ["B"]
        assert [d.opportunity_id for d in scenario_store.open()] == ["C"]
        assert len(scenario_store.closed()) == 2

    def test_duplicate_ids_rejected(self, scenario_deals: List[Deal]) -> None:
        with pytest.raises(ConfigurationError):
            JourneyStore(scenario_deals + [scenario_deals[0]])

    def test_channels_in_enum_order(self, scenario_store: JourneyStore) -> None:
        assert scenario_store.channels() == [
            Channel.LINKEDIN, Channel.EMAIL, Channel.FORM, Channel.EVENTS,
        ]

    def test_reference_date_is_latest_touch(self, scenario_store: JourneyStore) -> None:
        latest = max(d.last_touch.timestamp for d in scenario_store)

        assert scenario_store.reference_date() == latest

    def test_reference_date_without_touches(self) -> None:
        store = JourneyStore([
            Deal(opportunity_id="X", account_id="A", deal_amount=1.0, stage=Stage.CLOSED_WON,
                 close_date=date(2025, 5, 1), created_date=date(2025, 1, 1)),
        ])

        assert store.reference_date() == datetime(2025, 5, 1)
        assert JourneyStore([]).reference_date() is None

    def test_filter_by_tags(self, scenario_store: JourneyStore) -> None:
        tech = scenario_store.filter(industry="Technology")

        assert [d.opportunity_id for d in tech] == ["A", "C"]
        assert len(scenario_store.filter(industry="Technology", segment="SMB")) == 0
        assert len(scenario_store.filter()) == 3

    def test_as_of_truncates_journeys(self, scenario_store: JourneyStore) -> None:
        cutoff = scenario_store.deals[0].touchpoints[0].timestamp

        truncated = scenario_store.as_of(cutoff)

        assert all(d.touch_count == 1 for d in truncated)
        assert len(truncated) == 3
        assert scenario_store.deals[0].touch_count == 3, "Original store must be unchanged"

    def test_as_of_drops_deals_without_touches(self, make_deal) -> None:
        early = make_deal("E", Stage.DISCO_SET, 1.0, [Channel.EMAIL], start=datetime(2025, 1, 1))
        late = make_deal("L", Stage.DISCO_SET, 1.0, [Channel.EMAIL], start=datetime(2025, 6, 1))

        truncated = JourneyStore([early, late]).as_of(date(2025, 3, 1))

        assert [d.opportunity_id for d in truncated] == ["E"]

    def test_as_store_and_as_deals(self, scenario_deals: List[Deal], scenario_store: JourneyStore) -> None:
        assert as_store(scenario_store) is scenario_store
        assert as_deals(scenario_store) == scenario_store.deals
        assert as_deals(iter(scenario_deals)) == tuple(scenario_deals)


class TestFrame:

    def test_columns_and_rows(self, scenario_store: JourneyStore) -> None:
        frame = scenario_store.to_frame()

        assert list(frame.columns) == FRAME_COLUMNS
        assert len(frame) == 3
        assert frame['won_amount'].sum() == 10_000.0

    def test_first_touch_fields(self, scenario_store: JourneyStore) -> None:
        frame = scenario_store.to_frame().set_index('opportunity_id')

        assert frame.loc['C', 'first_touch_channel'] == "events"
        assert frame.loc['A', 'first_touch_month'] == "2025-03"
        assert frame.loc['A', 'velocity_days'] == pytest.approx(2.0)

    def test_single_touch_has_no_velocity(self, scenario_store: JourneyStore) -> None:
        frame = scenario_store.to_frame().set_index('opportunity_id')

        assert pd.isna(frame.loc['B', 'velocity_days'])

    def test_empty_store_frame(self) -> None:
        frame = JourneyStore([]).to_frame()

        assert frame.empty
        assert list(frame.columns) == FRAME_COLUMNS
