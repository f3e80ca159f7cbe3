import logging
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from aggregator import AggregationError, aggregate_results, results_to_frame
from simulator import ScenarioEstimate, SimulationResult


NAN = float("nan")


def _result(n, iteration, ratios, converged=(True, True, True), scenarios=(1, 2, 3)):
    estimates = []
    for scenario, ratio, ok in zip(scenarios, ratios, converged):
        estimates.append(
            ScenarioEstimate(
                scenario=scenario,
                estimated_ratio=ratio if ok else NAN,
                p_value=ratio / 10 if ok else NAN,
                empirical_ratio=ratio + 0.1,
                converged=ok,
            )
        )
    return SimulationResult(sample_size=n, iteration=iteration, estimates=tuple(estimates))


def test_means_use_only_converged_records():
    results = [
        _result(200, 0, (0.5, 0.6, 0.9)),
        _result(200, 1, (0.7, 0.8, 0.95)),
        _result(200, 2, (0.1, 0.2, 0.3), converged=(False, True, True)),
    ]

    aggregation = aggregate_results(results, sample_sizes=[200])
    by_scenario = {r.scenario: r for r in aggregation.records}

    s1 = by_scenario[1]
    assert np.isclose(s1.mean_estimated_ratio, 0.6)
    assert np.isclose(s1.mean_p_value, 0.06)
    # Empirical ratio of the excluded record is excluded too.
    assert np.isclose(s1.mean_empirical_ratio, 0.7)
    assert s1.n_iterations == 2
    assert s1.n_excluded == 1
    assert not s1.gap

    s2 = by_scenario[2]
    assert np.isclose(s2.mean_estimated_ratio, np.mean([0.6, 0.8, 0.2]))
    assert s2.n_iterations == 3
    assert s2.n_excluded == 0
    assert aggregation.total_excluded == 1


def test_group_without_usable_records_is_an_explicit_gap():
    results = [
        _result(200, 0, (0.5, 0.6, 0.9), converged=(True, True, False)),
        _result(200, 1, (0.5, 0.6, 0.9), converged=(True, True, False)),
    ]

    aggregation = aggregate_results(results, sample_sizes=[200, 400])

    assert (3, 200) in aggregation.gaps
    # Sample size 400 produced no records at all.
    assert {(1, 400), (2, 400), (3, 400)}.issubset(set(aggregation.gaps))
    assert len(aggregation.records) == 6

    gap = next(r for r in aggregation.records if (r.scenario, r.sample_size) == (3, 200))
    assert np.isnan(gap.mean_estimated_ratio)
    assert gap.n_iterations == 0
    assert gap.n_excluded == 2


def test_exclusions_and_gaps_are_logged(caplog):
    results = [_result(200, 0, (0.5, 0.6, 0.9), converged=(False, True, True))]
    with caplog.at_level(logging.WARNING):
        aggregate_results(results, sample_sizes=[200])
    assert "excluded 1 non-converged" in caplog.text
    assert "gap" in caplog.text


def test_duplicate_slot_is_a_contract_violation():
    results = [_result(200, 0, (0.5, 0.6, 0.9)), _result(200, 0, (0.5, 0.6, 0.9))]
    with pytest.raises(AggregationError, match="Duplicate"):
        aggregate_results(results)


def test_missing_scenario_is_a_contract_violation():
    results = [_result(200, 0, (0.5, 0.6), scenarios=(1, 2))]
    with pytest.raises(AggregationError, match="scenarios"):
        aggregate_results(results)


def test_sample_size_outside_grid_is_rejected():
    with pytest.raises(AggregationError, match="not in grid"):
        aggregate_results([_result(600, 0, (0.5, 0.6, 0.9))], sample_sizes=[200, 400])


def test_to_frame_adds_labels_and_threshold_flags():
    results = [_result(200, 0, (0.5, 0.9, 0.9)), _result(400, 0, (0.6, 0.95, 0.95))]

    summary = aggregate_results(results).to_frame(four_fifths_threshold=0.8, significance_level=0.05)

    assert list(summary["sample_size"].unique()) == [200, 400]
    assert "scenario_label" in summary.columns
    row = summary[(summary["scenario"] == 1) & (summary["sample_size"] == 200)].iloc[0]
    assert bool(row["below_four_fifths"])  # empirical 0.6
    assert not bool(row["significant"])  # p 0.05 is not below alpha


def test_results_to_frame_is_long_format():
    df = results_to_frame([_result(200, 0, (0.5, 0.6, 0.9)), _result(200, 1, (0.5, 0.6, 0.9))])
    assert len(df) == 6
    assert set(df["scenario"]) == {1, 2, 3}
    assert df["converged"].all()
