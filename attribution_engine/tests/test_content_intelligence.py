"""
Test suite for Content Performance Intelligence.

Content scenario (won cycle baseline = mean(30, 50) = 40 days):

    | Asset             | Type           | Deals     | Stage        | Won % | Lost % | Accel |
    |-------------------|----------------|-----------|--------------|-------|--------|-------|
    | TCO Whitepaper    | whitepaper     | W1, L1    | disco_set x2 | 50    | 100    | +10   |
    | /case-study/acme  | case_study     | W1        | eval_planning| 50    | 0      | +10   |
    | /roi-calculator/  | roi_calculator | W2        | disco_set    | 50    | 0      | -10   |
"""

from datetime import date, datetime
from typing import List

import pytest

from attribution_engine.models.enums import AssetType, Channel, ContentGapType, GapSeverity, Stage
from attribution_engine.models.schemas import Deal, StageHistoryEntry, Touchpoint
from attribution_engine.services.content_intelligence import (
    analyze_content,
    build_content_heatmap,
    content_key,
    engagement_stage,
    identify_content_gaps,
    infer_asset_type,
)


def _touch(channel: Channel, day: int, **kwargs) -> Touchpoint:
    return Touchpoint(channel=channel, timestamp=datetime(2025, 3, day, 10, 0), **kwargs)


def _history(*entries) -> List[StageHistoryEntry]:
    return [
        StageHistoryEntry(stage=stage, entered_date=entered, days_in_stage=days)
        for stage, entered, days in entries
    ]


@pytest.fixture
def content_deals() -> List[Deal]:
    return [
        Deal(
            opportunity_id="W1", account_id="ACC-1", deal_amount=10_000.0, stage=Stage.CLOSED_WON,
            stage_history=_history(
                (Stage.DISCO_SET, date(2025, 3, 1), 10),
                (Stage.EVAL_PLANNING, date(2025, 3, 11), 20),
                (Stage.CLOSED_WON, date(2025, 3, 31), 0),
            ),
            touchpoints=[
                _touch(Channel.CONTENT_DOWNLOAD, 5, content_asset="TCO Whitepaper"),
                _touch(Channel.EMAIL_NURTURE, 6),
                _touch(Channel.WEB_VISIT, 15, page_url="/case-study/acme"),
            ],
        ),
        Deal(
            opportunity_id="L1", account_id="ACC-2", deal_amount=5_000.0, stage=Stage.CLOSED_LOST,
            stage_history=_history(
                (Stage.DISCO_SET, date(2025, 3, 1), 30),
                (Stage.CLOSED_LOST, date(2025, 3, 31), 0),
            ),
            touchpoints=[_touch(Channel.CONTENT_DOWNLOAD, 10, content_asset="TCO Whitepaper")],
        ),
        Deal(
            opportunity_id="W2", account_id="ACC-3", deal_amount=8_000.0, stage=Stage.CLOSED_WON,
            stage_history=_history(
                (Stage.DISCO_SET, date(2025, 3, 1), 50),
                (Stage.CLOSED_WON, date(2025, 4, 20), 0),
            ),
            touchpoints=[_touch(Channel.WEB_VISIT, 2, page_url="/roi-calculator/")],
        ),
    ]


class TestTouchClassification:

    @pytest.mark.parametrize("name,asset_type", [
        ("Customer Case Study", AssetType.CASE_STUDY),
        ("/roi-calculator/", AssetType.ROI_CALCULATOR),
        ("product_datasheet.pdf", AssetType.DATASHEET),
        ("Orchestration Buyer's Guide", AssetType.GUIDE),
        ("Analyst Report", AssetType.WHITEPAPER),
    ])
    def test_infer_asset_type(self, name, asset_type) -> None:
        assert infer_asset_type(name) is asset_type

    def test_content_key(self) -> None:
        assert content_key(_touch(Channel.CONTENT_DOWNLOAD, 3, content_asset="Analyst Report")) == "Analyst Report"
        assert content_key(_touch(Channel.WEB_VISIT, 3, page_url="/whitepaper/tco")) == "/whitepaper/tco"
        assert content_key(_touch(Channel.WEB_VISIT, 3, page_url="/pricing/")) is None
        assert content_key(_touch(Channel.EMAIL_NURTURE, 3)) is None

    def test_engagement_stage_follows_history(self, content_deals: List[Deal]) -> None:
        won = content_deals[0]

        assert engagement_stage(won, won.touchpoints[0]) is Stage.DISCO_SET
        assert engagement_stage(won, won.touchpoints[2]) is Stage.EVAL_PLANNING

    def test_touch_before_history_lands_at_first_stage(self) -> None:
        deal = Deal(
            opportunity_id="X", account_id="A", deal_amount=1.0, stage=Stage.NEGOTIATION,
            stage_history=_history((Stage.NEGOTIATION, date(2025, 3, 20), 5)),
        )

        assert engagement_stage(deal, _touch(Channel.WEB_VISIT, 2)) is Stage.DISCO_SET

    def test_without_history_uses_open_stage(self) -> None:
        open_deal = Deal(opportunity_id="X", account_id="A", deal_amount=1.0, stage=Stage.SOLUTION_ACCEPTED)
        won_deal = Deal(opportunity_id="Y", account_id="A", deal_amount=1.0, stage=Stage.CLOSED_WON)
        touch = _touch(Channel.WEB_VISIT, 2)

        assert engagement_stage(open_deal, touch) is Stage.SOLUTION_ACCEPTED
        assert engagement_stage(won_deal, touch) is Stage.DISCO_SET


class TestContentHeatmap:

    def test_order_and_types(self, content_deals: List[Deal]) -> None:
        heatmap = build_content_heatmap(content_deals)

        assert [c.contentAsset for c in heatmap] == [
            "TCO Whitepaper", "/case-study/acme", "/roi-calculator/",
        ]
        assert [c.assetType for c in heatmap] == [
            AssetType.WHITEPAPER, AssetType.CASE_STUDY, AssetType.ROI_CALCULATOR,
        ]

    def test_asset_metrics(self, content_deals: List[Deal]) -> None:
        whitepaper = build_content_heatmap(content_deals)[0]

        assert whitepaper.totalEngagements == 2
        assert whitepaper.dealsInfluenced == 2
        assert whitepaper.pipelineInfluenced == pytest.approx(15_000.0)
        assert whitepaper.appearsInWonPct == 50
        assert whitepaper.appearsInLostPct == 100
        assert whitepaper.accelerationDays == 10

    def test_slower_won_deals_give_negative_acceleration(self, content_deals: List[Deal]) -> None:
        roi = build_content_heatmap(content_deals)[2]

        assert roi.accelerationDays == -10

    def test_stage_distribution(self, content_deals: List[Deal]) -> None:
        whitepaper, case_study, _ = build_content_heatmap(content_deals)
        cells = {c.stage: c for c in whitepaper.stageDistribution}

        assert [c.stage for c in whitepaper.stageDistribution][0] is Stage.DISCO_SET
        assert cells[Stage.DISCO_SET].count == 2
        assert cells[Stage.DISCO_SET].intensity == pytest.approx(1.0)
        assert {c.stage: c.intensity for c in case_study.stageDistribution}[Stage.EVAL_PLANNING] == pytest.approx(0.5)

    def test_repeat_touches_count_deal_once(self, content_deals: List[Deal]) -> None:
        repeat = Deal(
            opportunity_id="R", account_id="ACC-9", deal_amount=2_000.0, stage=Stage.DISCO_SET,
            touchpoints=[
                _touch(Channel.CONTENT_DOWNLOAD, 3, content_asset="TCO Whitepaper"),
                _touch(Channel.CONTENT_DOWNLOAD, 4, content_asset="TCO Whitepaper"),
            ],
        )

        whitepaper = build_content_heatmap(content_deals + [repeat])[0]

        assert whitepaper.totalEngagements == 4
        assert whitepaper.dealsInfluenced == 3
        assert whitepaper.pipelineInfluenced == pytest.approx(17_000.0)


class TestContentGaps:

    def test_low_density_stages(self, content_deals: List[Deal]) -> None:
        gaps = identify_content_gaps(build_content_heatmap(content_deals), content_deals)
        low = [g.stage for g in gaps if g.gapType is ContentGapType.LOW_DENSITY]

        assert low == [Stage.DISCO_COMPLETED, Stage.SOLUTION_ACCEPTED, Stage.NEGOTIATION]
        assert all(g.severity is GapSeverity.MODERATE for g in gaps)
        assert all(g.avgDaysInStage == 15 for g in gaps if g.stage is Stage.NEGOTIATION)

    def test_missing_asset_types(self, content_deals: List[Deal]) -> None:
        gaps = identify_content_gaps(build_content_heatmap(content_deals), content_deals)
        missing = {
            g.stage: g.missingAssetTypes for g in gaps
            if g.gapType is ContentGapType.MISSING_ASSET_TYPE
        }

        assert missing[Stage.DISCO_SET] == [AssetType.INFOGRAPHIC, AssetType.GUIDE]
        assert missing[Stage.EVAL_PLANNING] == [AssetType.ROI_CALCULATOR, AssetType.DATASHEET]
        assert len(missing) == 5

    def test_slow_stage_without_content_is_critical(self, content_deals: List[Deal]) -> None:
        stalled = Deal(
            opportunity_id="S", account_id="ACC-5", deal_amount=3_000.0, stage=Stage.NEGOTIATION,
            stage_history=_history((Stage.NEGOTIATION, date(2025, 3, 1), 45)),
        )
        deals = content_deals + [stalled]

        gaps = identify_content_gaps(build_content_heatmap(deals), deals)

        assert gaps[0].stage is Stage.NEGOTIATION
        assert gaps[0].severity is GapSeverity.CRITICAL
        assert gaps[0].avgDaysInStage == 45


class TestAnalyzeContent:

    def test_no_content_touches(self, scenario_deals: List[Deal]) -> None:
        result = analyze_content(scenario_deals)

        assert result.heatmap == []
        assert {g.gapType for g in result.gaps} == set(ContentGapType)

    @pytest.mark.integration
    def test_sample_dataset(self, sample_deals: List[Deal]) -> None:
        result = analyze_content(sample_deals)

        assert result.heatmap
        assert all(0.0 <= cell.intensity <= 1.0 for c in result.heatmap for cell in c.stageDistribution)
        assert max(cell.intensity for c in result.heatmap for cell in c.stageDistribution) == pytest.approx(1.0)
