from pathlib import Path

import numpy as np
import pandas as pd
import pytest


ALPHA = 0.05


def _load_summary() -> pd.DataFrame:
    summary_path = Path("outputs") / "simulator" / "simulation_summary.csv"
    if not summary_path.exists():
        pytest.skip("Missing outputs/simulator/simulation_summary.csv. Run main.py to run this quality test.")
    return pd.read_csv(summary_path)


def test_summary_ratios_are_positive_and_finite():
    summary = _load_summary()
    usable = summary[~summary["gap"].astype(bool)]

    failures = []
    for column in ("mean_estimated_ratio", "mean_empirical_ratio"):
        bad = usable[~(np.isfinite(usable[column]) & (usable[column] > 0))]
        failures.extend(f"{column} scenario={r.scenario} n={r.sample_size}: {r[column]}" for _, r in bad.iterrows())
    bad_p = usable[(usable["mean_p_value"] < 0) | (usable["mean_p_value"] > 1)]
    failures.extend(f"mean_p_value scenario={r.scenario} n={r.sample_size}" for _, r in bad_p.iterrows())

    assert not failures, "Out-of-range summary values: " + "; ".join(failures)


def test_direct_discrimination_is_detected_at_largest_sample():
    summary = _load_summary()
    s1 = summary[(summary["scenario"] == 1) & ~summary["gap"].astype(bool)].sort_values("sample_size")
    if s1.empty:
        pytest.skip("Scenario 1 has no usable rows.")

    assert (s1["mean_estimated_ratio"] < 1).all()
    largest = s1.iloc[-1]
    if largest["sample_size"] >= 1000:
        assert largest["mean_p_value"] < ALPHA
