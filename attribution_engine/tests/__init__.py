'''
Attribution Engine Test Suite

Covers every service over hand-built journeys with known figures, plus
integration checks over the seeded synthetic dataset.

Test Modules:
-------------
- test_journey_store.py: Deal/Touchpoint schemas and the Journey Store
  - Outcome partitions, duplicate ids, tag filters
  - as_of truncation and the flat pandas frame

- test_attribution.py: Rule-based attribution models
  - Reference scenario figures (linear, first/last touch)
  - Credit conservation for every model
  - Time-decay half-life and W-shaped milestone weights

- test_markov.py: Markov chain attribution
  - Hand-solved removal effects on the reference scenario
  - Degenerate chains (no conversions, single channel)

- test_trends.py: Attribution trends and model divergence
- test_cohorts.py: Time, channel, density and industry cohorts
- test_funnel.py: Stage funnel conversion and stage velocity
- test_content_intelligence.py: Content heatmap by stage and stage gaps
- test_cross_sell.py: Cross-sell patterns, readiness and product breakdown

- test_deal_scoring.py: Deal scoring and backtest
  - Win/loss signals and the 2x2 chi-squared test
  - Factor step functions, risk factors, journey patterns
  - AUC / precision / recall and the degenerate backtest

- test_forecast.py: Revenue forecast and scenarios
- test_spend_optimizer.py: Response curves and budget allocation
- test_sample_data.py: Seeded synthetic dataset
- test_report.py: Command-line report
- test_api.py: HTTP endpoints through FastAPI's TestClient
- test_config.py: Settings defaults, env overrides, caller-error checks

Markers:
--------
| Marker      | Meaning                                           |
|-------------|---------------------------------------------------|
| integration | Runs services over the synthetic dataset          |
| invariant   | Property that must hold for any deal set          |
| slow        | Long-running; deselect with -m "not slow"         |

Running Tests:
--------------
    pip install -e ".[test]"
    pytest attribution_engine/tests -v
    pytest attribution_engine/tests -m "not integration"

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
