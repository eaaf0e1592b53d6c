"""
Command-line entry point for the attribution engine.

Builds a full analytics report (attribution under every model, Markov
diagnostics, trends, cohorts, funnel, content and cross-sell analysis, deal
scores, backtest, forecast and spend optimization) over a seeded synthetic
dataset and prints it as JSON.

Usage:
    python -m attribution_engine.main --deals 80 --seed 7 --budget 120000
"""

import argparse
import json
import logging
import sys
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import ConfigurationError
from attribution_engine.models.enums import AttributionModel
from attribution_engine.services.attribution import attribution_totals, run_all_models
from attribution_engine.services.attribution_trends import (
    compute_channel_trends,
    compute_model_divergence,
)
from attribution_engine.services.cohorts import analyze_cohorts
from attribution_engine.services.content_intelligence import analyze_content
from attribution_engine.services.cross_sell import analyze_cross_sell
from attribution_engine.services.deal_scoring import (
    backtest_deal_scoring,
    calculate_win_loss_signals,
    score_all_open_deals,
)
from attribution_engine.services.forecast import generate_forecast, model_forecast_scenarios
from attribution_engine.services.funnel import analyze_funnel
from attribution_engine.services.journey_store import DealSource, as_store
from attribution_engine.services.markov import markov_diagnostics
from attribution_engine.services.sample_data import (
    DEFAULT_DEAL_COUNT,
    DEFAULT_SEED,
    generate_sample_deals,
)
from attribution_engine.services.spend_optimizer import (
    compare_spend_scenarios,
    optimize_spend_from_attribution,
    pipeline_by_channel,
    spend_by_channel,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Number of trailing 30-day periods in the trend section
TREND_PERIODS: int = 4

# Win/loss signals included in the report
REPORT_SIGNALS: int = 10


def _dump(value: Any) -> Any:
    """JSON-ready form of pydantic models, enum-keyed dicts and lists of them."""
    if hasattr(value, 'model_dump'):
        return value.model_dump(mode='json')
    if isinstance(value, dict):
        return {getattr(k, 'value', k): _dump(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    return value


def trend_cutoffs(reference: date, periods: int, window_days: int) -> List[date]:
    """Ascending cut-off dates ending at `reference`, `window_days` apart."""
    return [reference - timedelta(days=window_days * i) for i in reversed(range(periods))]


def build_report(
    deals: DealSource,
    total_budget: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Run every analysis over `deals` and collect the results.

    Args:
        deals: JourneyStore or iterable of Deal records.
        total_budget: Budget for the spend optimizer; defaults to current
            recorded spend.
        settings: Optional settings override.

    Returns:
        JSON-serialisable dict keyed by report section.
    """
    settings = settings or get_settings()
    store = as_store(deals)
    reference = store.reference_date()
    logger.info(f"Building report over {store!r}")

    models = run_all_models(store, settings=settings)
    scores = score_all_open_deals(store, reference_date=reference, settings=settings)
    forecast = generate_forecast(store, scores, reference_date=reference, settings=settings)

    report: Dict[str, Any] = {
        'summary': {
            'deals': len(store),
            'won': len(store.won()),
            'lost': len(store.lost()),
            'open': len(store.open()),
            'referenceDate': reference.isoformat() if reference else None,
        },
        'attribution': {
            model.value: {
                'channels': _dump(results),
                'totals': _dump(attribution_totals(results)),
            }
            for model, results in models.items()
        },
        'markov': _dump(markov_diagnostics(store, settings=settings)),
        'modelDivergence': _dump(compute_model_divergence(store, settings=settings)),
        'cohorts': _dump(analyze_cohorts(store, settings=settings)),
        'funnel': _dump(analyze_funnel(store)),
        'content': _dump(analyze_content(store)),
        'crossSell': _dump(analyze_cross_sell(store)),
        'winLossSignals': _dump(calculate_win_loss_signals(store)[:REPORT_SIGNALS]),
        'dealScores': _dump(scores),
        'backtest': _dump(backtest_deal_scoring(store, settings=settings)),
        'forecast': _dump(forecast),
        'forecastScenarios': _dump(model_forecast_scenarios(forecast, settings=settings)),
    }

    if reference is not None:
        cutoffs = trend_cutoffs(reference.date(), TREND_PERIODS, settings.trend_window_days)
        report['trends'] = _dump(
            compute_channel_trends(AttributionModel.LINEAR, store, cutoffs, settings=settings)
        )

    spend = spend_by_channel(store)
    if spend:
        report['spendOptimization'] = _dump(
            optimize_spend_from_attribution(
                store, total_budget=total_budget, current_spend_by_channel=spend, settings=settings
            )
        )
        report['spendScenarios'] = [
            {k: v for k, v in s.items() if k != 'result'}
            for s in _dump(compare_spend_scenarios(
                spend, pipeline_by_channel(store, settings=settings), settings=settings
            ))
        ]
    else:
        logger.warning("No touchpoint cost recorded; skipping spend optimization")

    return report


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='attribution_engine',
        description='Print a marketing attribution report for a seeded sample dataset.',
    )
    parser.add_argument('--deals', type=int, default=DEFAULT_DEAL_COUNT, help='Number of sample deals')
    parser.add_argument('--seed', type=int, default=DEFAULT_SEED, help='Random seed')
    parser.add_argument('--budget', type=float, default=None, help='Total budget to optimize')
    parser.add_argument('--indent', type=int, default=2, help='JSON indent')
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    deals = generate_sample_deals(n_deals=args.deals, seed=args.seed)
    try:
        report = build_report(deals, total_budget=args.budget)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    json.dump(report, sys.stdout, indent=args.indent)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
