"""
Test suite for the Spend Optimizer.

Balanced fixture: linkedin_ads spends 40,000 for 400,000 pipeline (a = 2,000)
and webinar 10,000 for 100,000 (a = 1,000). Spend is already proportional to
a^2, so both marginal returns equal 5 and the current split is optimal.
"""

from typing import Dict

import pytest

from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import Channel, Stage
from attribution_engine.models.schemas import ChannelSpendBounds, SpendObservation
from attribution_engine.services.spend_optimizer import (
    channel_response_curve,
    compare_spend_scenarios,
    fit_response_coefficient,
    marginal_roi,
    optimize_spend,
    optimize_spend_from_attribution,
    spend_by_channel,
)


BALANCED_SPEND: Dict[Channel, float] = {Channel.LINKEDIN_ADS: 40_000.0, Channel.WEBINAR: 10_000.0}
BALANCED_PIPELINE: Dict[Channel, float] = {Channel.LINKEDIN_ADS: 400_000.0, Channel.WEBINAR: 100_000.0}


def by_channel(result) -> dict:
    return {a.channel: a for a in result.allocations}


class TestResponseCurve:

    def test_single_point_fit(self) -> None:
        assert fit_response_coefficient(40_000.0, 400_000.0) == pytest.approx(2_000.0)

    def test_zero_spend_has_no_coefficient(self) -> None:
        assert fit_response_coefficient(0.0, 50_000.0) == 0.0

    def test_regression_over_history(self) -> None:
        history = [
            SpendObservation(spend=10_000.0, pipeline=100_000.0),
            SpendObservation(spend=40_000.0, pipeline=200_000.0),
        ]

        coefficient = fit_response_coefficient(90_000.0, 300_000.0, history)

        assert coefficient == pytest.approx(1_000.0)

    def test_marginal_roi(self) -> None:
        assert marginal_roi(2_000.0, 40_000.0) == pytest.approx(5.0)
        assert marginal_roi(2_000.0, 0.0) == 0.0

    def test_curve_points(self) -> None:
        curve = channel_response_curve(1_000.0, 10_000.0, points=5)

        assert [p.spend for p in curve] == pytest.approx([0.0, 7_500.0, 15_000.0, 22_500.0, 30_000.0])
        assert curve[0].pipeline == 0.0
        assert curve[0].marginalROI == 0.0
        assert curve[3].pipeline == pytest.approx(150_000.0)

    def test_curve_needs_two_points(self) -> None:
        with pytest.raises(ConfigurationError):
            channel_response_curve(1_000.0, 10_000.0, points=1)


class TestOptimizeSpend:

    def test_optimal_split_is_a_fixed_point(self) -> None:
        result = optimize_spend(50_000.0, BALANCED_SPEND, BALANCED_PIPELINE)
        allocations = by_channel(result)

        assert allocations[Channel.LINKEDIN_ADS].recommendedBudget == pytest.approx(40_000.0)
        assert allocations[Channel.WEBINAR].recommendedBudget == pytest.approx(10_000.0)
        assert result.pipelineDelta == pytest.approx(0.0, abs=1e-3)
        assert allocations[Channel.WEBINAR].marginalROI == pytest.approx(5.0)

    def test_shifts_budget_to_stronger_channel(self) -> None:
        spend = {Channel.LINKEDIN_ADS: 25_000.0, Channel.WEBINAR: 25_000.0}

        result = optimize_spend(50_000.0, spend, BALANCED_PIPELINE)
        allocations = by_channel(result)

        assert allocations[Channel.WEBINAR].recommendedBudget == pytest.approx(12_500.0)
        assert allocations[Channel.LINKEDIN_ADS].recommendedBudget == pytest.approx(37_500.0)
        assert result.projectedTotalPipeline > result.currentTotalPipeline
        assert result.allocations[0].channel is Channel.LINKEDIN_ADS

    def test_budget_fully_allocated(self) -> None:
        result = optimize_spend(60_000.0, BALANCED_SPEND, BALANCED_PIPELINE)

        assert result.allocatedBudget == pytest.approx(60_000.0)
        assert result.unallocatedBudget == pytest.approx(0.0, abs=1e-6)

    def test_explicit_bounds(self) -> None:
        bounds = {Channel.WEBINAR: ChannelSpendBounds(min_budget=15_000.0, max_budget=15_000.0)}

        result = optimize_spend(50_000.0, BALANCED_SPEND, BALANCED_PIPELINE, bounds=bounds)
        allocations = by_channel(result)

        assert allocations[Channel.WEBINAR].recommendedBudget == pytest.approx(15_000.0)
        assert allocations[Channel.LINKEDIN_ADS].recommendedBudget == pytest.approx(35_000.0)

    def test_string_channel_keys(self) -> None:
        result = optimize_spend(
            50_000.0,
            {"linkedin_ads": 40_000.0, "webinar": 10_000.0},
            {"linkedin_ads": 400_000.0, "webinar": 100_000.0},
        )

        assert {a.channel for a in result.allocations} == set(BALANCED_SPEND)

    def test_pipeline_without_spend_is_ignored(self) -> None:
        pipeline = {**BALANCED_PIPELINE, Channel.EMAIL: 80_000.0}

        result = optimize_spend(50_000.0, BALANCED_SPEND, pipeline)

        assert Channel.EMAIL not in by_channel(result)


class TestBudgetEdges:

    def test_budget_below_minimums_is_proportional(self) -> None:
        result = optimize_spend(10_000.0, BALANCED_SPEND, BALANCED_PIPELINE)
        allocations = by_channel(result)

        assert allocations[Channel.LINKEDIN_ADS].recommendedBudget == pytest.approx(8_000.0)
        assert allocations[Channel.WEBINAR].recommendedBudget == pytest.approx(2_000.0)

    def test_budget_above_maximums_reports_unallocated(self) -> None:
        result = optimize_spend(1_000_000.0, BALANCED_SPEND, BALANCED_PIPELINE)
        allocations = by_channel(result)

        assert allocations[Channel.LINKEDIN_ADS].recommendedBudget == pytest.approx(80_000.0)
        assert allocations[Channel.WEBINAR].recommendedBudget == pytest.approx(20_000.0)
        assert result.unallocatedBudget == pytest.approx(900_000.0)

    def test_zero_budget(self) -> None:
        result = optimize_spend(0.0, BALANCED_SPEND, BALANCED_PIPELINE)

        assert result.allocatedBudget == 0.0

    def test_zero_spend_channel_gets_floor(self) -> None:
        spend = {**BALANCED_SPEND, Channel.EVENT: 0.0}
        pipeline = {**BALANCED_PIPELINE, Channel.EVENT: 5_000.0}

        result = optimize_spend(51_000.0, spend, pipeline)
        event = by_channel(result)[Channel.EVENT]

        assert event.isFloorAllocation
        assert event.recommendedBudget == pytest.approx(1_000.0)
        assert event.projectedPipeline == pytest.approx(5_000.0)
        assert event.marginalROI == pytest.approx(0.0)
        assert by_channel(result)[Channel.LINKEDIN_ADS].recommendedBudget == pytest.approx(40_000.0)

    def test_zero_spend_with_history_is_optimized(self) -> None:
        spend = {**BALANCED_SPEND, Channel.EVENT: 0.0}
        history = {Channel.EVENT: [SpendObservation(spend=10_000.0, pipeline=100_000.0)]}

        result = optimize_spend(50_000.0, spend, BALANCED_PIPELINE, spend_history=history)
        event = by_channel(result)[Channel.EVENT]

        assert not event.isFloorAllocation
        assert event.maxBudget is None
        assert event.recommendedBudget == pytest.approx(50_000.0 / 6, rel=1e-6)


class TestCallerErrors:

    def test_negative_budget(self) -> None:
        with pytest.raises(ConfigurationError):
            optimize_spend(-1.0, BALANCED_SPEND, BALANCED_PIPELINE)

    def test_negative_spend(self) -> None:
        with pytest.raises(ConfigurationError):
            optimize_spend(1_000.0, {Channel.WEBINAR: -5.0}, {})

    def test_min_above_max(self) -> None:
        bounds = {Channel.WEBINAR: ChannelSpendBounds(min_budget=500.0, max_budget=100.0)}

        with pytest.raises(ConfigurationError):
            optimize_spend(50_000.0, BALANCED_SPEND, BALANCED_PIPELINE, bounds=bounds)

    def test_unknown_channel(self) -> None:
        with pytest.raises(ConfigurationError):
            optimize_spend(1_000.0, {"carrier_pigeon": 500.0}, {})


class TestScenarios:

    def test_labels_and_budgets(self) -> None:
        scenarios = compare_spend_scenarios(BALANCED_SPEND, BALANCED_PIPELINE)

        assert [s.label for s in scenarios] == [
            "-20% budget", "Current budget", "+20% budget", "+50% budget",
        ]
        assert [s.totalBudget for s in scenarios] == pytest.approx([40_000.0, 50_000.0, 60_000.0, 75_000.0])

    def test_more_budget_never_less_pipeline(self) -> None:
        scenarios = compare_spend_scenarios(BALANCED_SPEND, BALANCED_PIPELINE)

        projected = [s.projectedTotalPipeline for s in scenarios]
        assert projected == sorted(projected)


class TestFromAttribution:

    def test_spend_by_channel_sums_cost(self, make_deal) -> None:
        deals = [
            make_deal("A", Stage.CLOSED_WON, 1.0, [Channel.WEBINAR, Channel.EMAIL],
                      touch_kwargs=[{'cost': 100.0}, {}]),
            make_deal("B", Stage.DISCO_SET, 1.0, [Channel.WEBINAR],
                      touch_kwargs=[{'cost': 50.0}]),
        ]

        assert spend_by_channel(deals) == {Channel.WEBINAR: 150.0}

    @pytest.mark.integration
    def test_sample_reallocation(self, sample_deals) -> None:
        result = optimize_spend_from_attribution(sample_deals)

        assert result.totalBudget == pytest.approx(result.currentTotalBudget)
        assert result.allocatedBudget == pytest.approx(result.totalBudget, rel=1e-6)
        for allocation in result.allocations:
            assert allocation.minBudget - 1e-6 <= allocation.recommendedBudget
            if allocation.maxBudget is not None:
                assert allocation.recommendedBudget <= allocation.maxBudget + 1e-6

    @pytest.mark.integration
    def test_interior_channels_share_marginal_roi(self, sample_deals) -> None:
        result = optimize_spend_from_attribution(sample_deals)

        interior = [
            a.marginalROI for a in result.allocations
            if a.recommendedBudget > a.minBudget + 1.0
            and (a.maxBudget is None or a.recommendedBudget < a.maxBudget - 1.0)
        ]
        if len(interior) >= 2:
            assert max(interior) == pytest.approx(min(interior), rel=1e-4)
