"""
Test suite for the rule-based attribution models and the model dispatcher.

The tests verify:
1. Credit conservation: per-channel pipeline sums to the amount of every
   deal with at least one touch, for every model
2. The three-deal reference scenario under linear attribution
3. Degenerate journeys (one touch, two touches, zero touches)
4. Time-decay half-life behavior and its per-call override
5. W-shaped milestone placement
6. ConfigurationError for unknown model names
"""

import math
from typing import List

import pytest

from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import AttributionModel, Channel, Stage
from attribution_engine.models.schemas import Deal
from attribution_engine.services.attribution import (
    RULE_BASED_MODELS,
    attribution_totals,
    compute_attribution,
    resolve_model,
    run_all_models,
    touch_weights,
)


# =============================================================================
# REFERENCE SCENARIO
# =============================================================================


class TestReferenceScenario:
    """Linear attribution over the won / lost / open reference deals."""

    def test_linear_pipeline_by_channel(self, scenario_deals: List[Deal]) -> None:
        """Each touch earns 1/N of its deal's amount."""
        results = compute_attribution(AttributionModel.LINEAR, scenario_deals)

        assert results[Channel.EMAIL].pipeline == pytest.approx(10_000 / 3 + 5_000)
        assert results[Channel.LINKEDIN].pipeline == pytest.approx(10_000 / 3)
        assert results[Channel.FORM].pipeline == pytest.approx(10_000 / 3 + 20_000 / 3)
        assert results[Channel.EVENTS].pipeline == pytest.approx(2 * 20_000 / 3)

    def test_linear_revenue_only_from_won_deal(self, scenario_deals: List[Deal]) -> None:
        """Only Deal A is won, so revenue is a third of 10,000 per channel."""
        results = compute_attribution("linear", scenario_deals)

        assert results[Channel.EMAIL].revenue == pytest.approx(10_000 / 3)
        assert results[Channel.LINKEDIN].revenue == pytest.approx(10_000 / 3)
        assert results[Channel.EVENTS].revenue == 0.0

    def test_total_pipeline_is_sum_of_deal_amounts(self, scenario_deals: List[Deal]) -> None:
        totals = attribution_totals(compute_attribution("linear", scenario_deals))

        assert totals.pipeline == pytest.approx(35_000.0)
        assert totals.revenue == pytest.approx(10_000.0)
        assert totals.opps == pytest.approx(3.0)

    def test_channels_in_enum_order(self, scenario_deals: List[Deal]) -> None:
        results = compute_attribution("first_touch", scenario_deals)

        assert list(results) == [Channel.LINKEDIN, Channel.EMAIL, Channel.FORM, Channel.EVENTS], (
            f"Unexpected channel order {list(results)}"
        )
        assert results[Channel.FORM].pipeline == 0.0


# =============================================================================
# CONSERVATION
# =============================================================================


@pytest.mark.invariant
class TestCreditConservation:
    """Sum of channel pipeline equals the amount of deals with touches."""

    @pytest.mark.parametrize("model", list(AttributionModel))
    def test_conservation_on_scenario(self, model: AttributionModel, scenario_deals: List[Deal]) -> None:
        totals = attribution_totals(compute_attribution(model, scenario_deals))

        assert math.isclose(totals.pipeline, 35_000.0, rel_tol=1e-9), (
            f"{model.value} credited {totals.pipeline}, expected 35000"
        )

    @pytest.mark.integration
    @pytest.mark.parametrize("model", list(AttributionModel))
    def test_conservation_on_sample_data(self, model: AttributionModel, sample_deals: List[Deal]) -> None:
        expected = sum(d.deal_amount for d in sample_deals if d.touchpoints)
        expected_revenue = sum(d.deal_amount for d in sample_deals if d.touchpoints and d.is_won)

        totals = attribution_totals(compute_attribution(model, sample_deals))

        assert totals.pipeline == pytest.approx(expected, rel=1e-9)
        assert totals.revenue == pytest.approx(expected_revenue, rel=1e-9)

    def test_zero_touch_deal_contributes_nothing(self, make_deal, scenario_deals: List[Deal]) -> None:
        deals = scenario_deals + [make_deal("Z", Stage.CLOSED_WON, 99_000.0, [])]

        totals = attribution_totals(compute_attribution("linear", deals))

        assert totals.pipeline == pytest.approx(35_000.0)

    @pytest.mark.parametrize("model", RULE_BASED_MODELS)
    def test_touch_weights_sum_to_one(self, model: AttributionModel, make_deal) -> None:
        for n in range(1, 12):
            deal = make_deal(f"N{n}", Stage.DISCO_SET, 1_000.0, [Channel.EMAIL] * n)

            weights = touch_weights(model, deal)

            assert len(weights) == n
            assert sum(weights) == pytest.approx(1.0), (
                f"{model.value} weights for {n} touches sum to {sum(weights)}"
            )
            assert all(w >= 0 for w in weights)


# =============================================================================
# DEGENERATE JOURNEYS
# =============================================================================


class TestDegenerateJourneys:

    def test_single_channel_journey_same_under_linear_first_last(self, make_deal) -> None:
        """A journey with a single channel credits it fully under every model."""
        deal = make_deal("S", Stage.CLOSED_WON, 12_000.0, [Channel.WEBINAR] * 4)

        linear = compute_attribution("linear", [deal])
        first = compute_attribution("first_touch", [deal])
        last = compute_attribution("last_touch", [deal])

        assert linear == first == last
        assert linear[Channel.WEBINAR].pipeline == pytest.approx(12_000.0)

    @pytest.mark.parametrize("pair", [
        (Channel.LINKEDIN, Channel.EMAIL),
        (Channel.EVENT, Channel.BDR_CALL),
        (Channel.FORM_SUBMISSION, Channel.WEB_VISIT),
    ])
    def test_position_based_two_touches_split_evenly(self, pair, make_deal) -> None:
        deal = make_deal("P", Stage.NEGOTIATION, 8_000.0, list(pair))

        results = compute_attribution("position_based", [deal])

        assert results[pair[0]].pipeline == pytest.approx(4_000.0)
        assert results[pair[1]].pipeline == pytest.approx(4_000.0)

    def test_position_based_middle_share(self, make_deal) -> None:
        deal = make_deal(
            "P4", Stage.DISCO_SET, 10_000.0,
            [Channel.LINKEDIN, Channel.EMAIL, Channel.WEBINAR, Channel.FORM],
        )

        weights = touch_weights("position_based", deal)

        assert weights == pytest.approx([0.4, 0.1, 0.1, 0.4])

    def test_single_touch_earns_everything(self, make_deal) -> None:
        deal = make_deal("ONE", Stage.CLOSED_LOST, 3_000.0, [Channel.EMAIL_NURTURE])

        for model in RULE_BASED_MODELS:
            assert touch_weights(model, deal) == pytest.approx([1.0])

    def test_zero_touch_weights_empty(self, make_deal) -> None:
        deal = make_deal("NONE", Stage.DISCO_SET, 3_000.0, [])

        assert touch_weights("linear", deal) == []


# =============================================================================
# TIME DECAY
# =============================================================================


class TestTimeDecay:

    def test_one_half_life_apart_halves_weight(self, make_deal, settings) -> None:
        deal = make_deal("TD", Stage.DISCO_SET, 9_000.0, [Channel.EMAIL, Channel.FORM], spacing_days=7)

        results = compute_attribution("time_decay", [deal], settings=settings, half_life_days=7)

        assert results[Channel.EMAIL].pipeline == pytest.approx(3_000.0)
        assert results[Channel.FORM].pipeline == pytest.approx(6_000.0)

    def test_default_half_life_used_without_override(self, make_deal, settings) -> None:
        deal = make_deal(
            "TD", Stage.DISCO_SET, 1.0, [Channel.EMAIL, Channel.FORM],
            spacing_days=settings.time_decay_half_life_days,
        )

        weights = touch_weights("time_decay", deal, settings=settings)

        assert weights == pytest.approx([1 / 3, 2 / 3])

    def test_same_day_touches_weighted_equally(self, make_deal) -> None:
        deal = make_deal("TD", Stage.DISCO_SET, 1.0, [Channel.EMAIL] * 3, spacing_days=0)

        assert touch_weights("time_decay", deal) == pytest.approx([1 / 3] * 3)

    @pytest.mark.parametrize("half_life", [0, -5])
    def test_non_positive_half_life_rejected(self, half_life: float, scenario_deals: List[Deal]) -> None:
        with pytest.raises(ConfigurationError):
            compute_attribution("time_decay", scenario_deals, half_life_days=half_life)


# =============================================================================
# W-SHAPED
# =============================================================================


class TestWShaped:

    def test_five_touch_milestones(self, make_deal) -> None:
        """First, lead (index 2) and opportunity (index 4) touches get 30% each."""
        deal = make_deal("W5", Stage.DISCO_SET, 1.0, [Channel.EMAIL] * 5)

        weights = touch_weights("w_shaped", deal)

        assert weights == pytest.approx([0.3, 0.05, 0.3, 0.05, 0.3])

    def test_three_touches_split_evenly(self, make_deal) -> None:
        deal = make_deal("W3", Stage.DISCO_SET, 1.0, [Channel.EMAIL] * 3)

        assert touch_weights("w_shaped", deal) == pytest.approx([1 / 3] * 3)

    def test_ten_touches_last_touch_outside_middle_pool(self, make_deal) -> None:
        deal = make_deal("W10", Stage.DISCO_SET, 1.0, [Channel.EMAIL] * 10)

        weights = touch_weights("w_shaped", deal)

        assert weights[0] == pytest.approx(0.3)
        assert weights[4] == pytest.approx(0.3)
        assert weights[8] == pytest.approx(0.3)
        assert weights[9] == 0.0
        assert weights[1] == pytest.approx(0.1 / 6)


# =============================================================================
# DISPATCHER
# =============================================================================


class TestModelDispatch:

    @pytest.mark.parametrize("name", ["u_shaped", "", "LINEAR"])
    def test_unknown_model_raises(self, name: str, scenario_deals: List[Deal]) -> None:
        with pytest.raises(ConfigurationError):
            compute_attribution(name, scenario_deals)

    def test_configuration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            resolve_model("nope")

    def test_markov_has_no_touch_weights(self, scenario_deals: List[Deal]) -> None:
        with pytest.raises(ConfigurationError):
            touch_weights("markov", scenario_deals[0])

    def test_run_all_models_returns_every_model(self, scenario_deals: List[Deal]) -> None:
        results = run_all_models(scenario_deals)

        assert set(results) == set(AttributionModel)

    def test_run_all_models_without_markov(self, scenario_deals: List[Deal]) -> None:
        results = run_all_models(scenario_deals, include_markov=False)

        assert AttributionModel.MARKOV not in results
        assert set(results) == set(RULE_BASED_MODELS)

    def test_results_are_fresh_objects(self, scenario_deals: List[Deal]) -> None:
        """Mutating one call's result must not leak into the next call."""
        first = compute_attribution("linear", scenario_deals)
        first[Channel.EMAIL].pipeline = -1.0

        second = compute_attribution("linear", scenario_deals)

        assert second[Channel.EMAIL].pipeline == pytest.approx(8_333.333333)

    def test_input_order_does_not_matter(self, scenario_deals: List[Deal]) -> None:
        forward = compute_attribution("time_decay", scenario_deals)
        backward = compute_attribution("time_decay", list(reversed(scenario_deals)))

        for channel in forward:
            assert forward[channel].pipeline == pytest.approx(backward[channel].pipeline)

    def test_touches_sorted_on_construction(self, make_deal) -> None:
        deal = make_deal("SORT", Stage.DISCO_SET, 1.0, [Channel.EMAIL, Channel.FORM])
        shuffled = Deal(
            opportunity_id="SORT2",
            account_id="ACC",
            deal_amount=1.0,
            stage=Stage.DISCO_SET,
            touchpoints=list(reversed(deal.touchpoints)),
        )

        assert shuffled.first_touch.channel is Channel.EMAIL
        assert shuffled.first_touch.timestamp == deal.touchpoints[0].timestamp
        assert shuffled.last_touch.timestamp == deal.touchpoints[1].timestamp
