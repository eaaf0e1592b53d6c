"""
Test suite for the command-line report.

The report runs every analysis over one dataset, so these tests are marked
integration and use a small seeded sample.
"""

import json
from datetime import date

import pytest

from attribution_engine.main import build_report, main, trend_cutoffs
from attribution_engine.models.enums import AttributionModel, Stage
from attribution_engine.models.schemas import Deal
from attribution_engine.services.sample_data import generate_sample_deals


REPORT_SECTIONS = {
    'summary', 'attribution', 'markov', 'modelDivergence', 'cohorts', 'funnel',
    'content', 'crossSell',
    'winLossSignals', 'dealScores', 'backtest', 'forecast', 'forecastScenarios',
    'trends', 'spendOptimization', 'spendScenarios',
}


@pytest.fixture(scope='module')
def report() -> dict:
    return build_report(generate_sample_deals(40, seed=11))


class TestTrendCutoffs:

    def test_evenly_spaced_ending_at_reference(self) -> None:
        cutoffs = trend_cutoffs(date(2025, 12, 31), periods=3, window_days=30)

        assert cutoffs == [date(2025, 11, 1), date(2025, 12, 1), date(2025, 12, 31)]


@pytest.mark.integration
class TestBuildReport:

    def test_sections(self, report: dict) -> None:
        assert set(report) == REPORT_SECTIONS

    def test_every_model_reported(self, report: dict) -> None:
        assert set(report['attribution']) == {m.value for m in AttributionModel}

    def test_summary_counts(self, report: dict) -> None:
        summary = report['summary']

        assert summary['deals'] == 40
        assert summary['won'] + summary['lost'] + summary['open'] == 40

    def test_json_serialisable(self, report: dict) -> None:
        assert json.loads(json.dumps(report)) == report

    def test_zero_touch_dataset(self) -> None:
        deals = [Deal(opportunity_id="X", account_id="A", deal_amount=1.0, stage=Stage.DISCO_SET)]

        result = build_report(deals)

        assert 'trends' not in result
        assert 'spendOptimization' not in result
        assert result['content']['heatmap'] == []
        assert result['crossSell']['opportunities'] == []


@pytest.mark.integration
class TestMain:

    def test_prints_json(self, capsys: pytest.CaptureFixture) -> None:
        code = main(["--deals", "15", "--seed", "5"])

        assert code == 0
        assert json.loads(capsys.readouterr().out)['summary']['deals'] == 15

    def test_negative_budget_exits_with_error(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["--deals", "15", "--budget", "-5"]) == 2
