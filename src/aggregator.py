from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import SCENARIO_LABELS, SCENARIOS
from simulator import SimulationResult


logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "sample_size",
    "iteration",
    "scenario",
    "estimated_ratio",
    "p_value",
    "empirical_ratio",
    "converged",
]
_MEAN_FIELDS = ("estimated_ratio", "p_value", "empirical_ratio")


class AggregationError(ValueError):
    """The result collection violates the aggregation contract."""


@dataclass(frozen=True)
class AggregatedResult:
    scenario: int
    sample_size: int
    mean_estimated_ratio: float
    mean_p_value: float
    mean_empirical_ratio: float
    n_iterations: int
    n_excluded: int
    gap: bool


@dataclass(frozen=True)
class Aggregation:
    records: Tuple[AggregatedResult, ...]

    @property
    def gaps(self) -> List[Tuple[int, int]]:
        return [(r.scenario, r.sample_size) for r in self.records if r.gap]

    @property
    def total_excluded(self) -> int:
        return sum(r.n_excluded for r in self.records)

    def to_frame(
        self,
        four_fifths_threshold: Optional[float] = None,
        significance_level: Optional[float] = None,
    ) -> pd.DataFrame:
        df = pd.DataFrame([asdict(r) for r in self.records])
        if df.empty:
            df = pd.DataFrame(columns=[f for f in AggregatedResult.__dataclass_fields__])
        df.insert(1, "scenario_label", df["scenario"].map(SCENARIO_LABELS))
        if four_fifths_threshold is not None:
            df["below_four_fifths"] = df["mean_empirical_ratio"] < four_fifths_threshold
        if significance_level is not None:
            df["significant"] = df["mean_p_value"] < significance_level
        return df


def results_to_frame(results: Iterable[SimulationResult]) -> pd.DataFrame:
    """Long format: one row per (sample size, iteration, scenario)."""
    rows = []
    for result in results:
        for estimate in result.estimates:
            rows.append(
                {
                    "sample_size": result.sample_size,
                    "iteration": result.iteration,
                    "scenario": estimate.scenario,
                    "estimated_ratio": estimate.estimated_ratio,
                    "p_value": estimate.p_value,
                    "empirical_ratio": estimate.empirical_ratio,
                    "converged": bool(estimate.converged),
                }
            )
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def _validate_results(
    results: Sequence[SimulationResult],
    scenarios: Sequence[int],
    sample_sizes: Optional[Sequence[int]],
) -> None:
    seen = set()
    expected = set(scenarios)
    allowed_sizes = set(sample_sizes) if sample_sizes is not None else None

    for result in results:
        slot = (result.sample_size, result.iteration)
        if slot in seen:
            raise AggregationError(f"Duplicate result for sample_size={slot[0]}, iteration={slot[1]}.")
        seen.add(slot)

        if allowed_sizes is not None and result.sample_size not in allowed_sizes:
            raise AggregationError(f"Unexpected sample_size {result.sample_size} (not in grid).")

        got = [e.scenario for e in result.estimates]
        if len(got) != len(set(got)) or set(got) != expected:
            raise AggregationError(
                f"Result for sample_size={slot[0]}, iteration={slot[1]} has scenarios {got}, "
                f"expected {sorted(expected)}."
            )
        for estimate in result.estimates:
            if estimate.converged and not np.isfinite(
                [estimate.estimated_ratio, estimate.p_value, estimate.empirical_ratio]
            ).all():
                raise AggregationError(
                    f"Converged estimate with non-finite values "
                    f"(scenario={estimate.scenario}, sample_size={slot[0]}, iteration={slot[1]})."
                )


def aggregate_results(
    results: Iterable[SimulationResult],
    sample_sizes: Optional[Sequence[int]] = None,
    scenarios: Sequence[int] = SCENARIOS,
) -> Aggregation:
    """
    Mean estimated ratio, p-value and empirical ratio per (scenario, sample size).

    Non-converged estimates are excluded from the means (never zero-filled) and
    counted in n_excluded. An excluded record drops out of all three means,
    including its empirical ratio, so n_iterations is the record count behind
    every mean in a row. Every expected (scenario, sample size) pair appears in
    the output; a pair with no usable record is a gap with NaN means.

    Parameters
    ----------
    results : iterable of SimulationResult
        One record per (sample size, iteration).
    sample_sizes : sequence of int, optional
        The grid. When given, records outside it are rejected and every grid
        size is reported even if it has no records at all.
    scenarios : sequence of int
        Scenario ids each record must cover exactly.
    """
    results = list(results)
    _validate_results(results, scenarios, sample_sizes)

    df = results_to_frame(results)
    if sample_sizes is None:
        sizes = sorted(df["sample_size"].unique().tolist())
    else:
        sizes = sorted(sample_sizes)

    converged = df["converged"].astype(bool)
    used = df[converged]
    means = used.groupby(["scenario", "sample_size"])[list(_MEAN_FIELDS)].mean()
    counts = used.groupby(["scenario", "sample_size"]).size()
    excluded = df[~converged].groupby(["scenario", "sample_size"]).size()

    records = []
    for scenario in scenarios:
        for size in sizes:
            key = (scenario, size)
            n_used = int(counts.get(key, 0))
            n_excluded = int(excluded.get(key, 0))
            if n_excluded:
                logger.warning(
                    "Scenario %d, n=%d: excluded %d non-converged fit(s) from the means.",
                    scenario,
                    size,
                    n_excluded,
                )
            if n_used == 0:
                logger.warning("Scenario %d, n=%d: no usable iterations (gap).", scenario, size)
                mean_values = (float("nan"),) * 3
            else:
                row = means.loc[key]
                mean_values = tuple(float(row[f]) for f in _MEAN_FIELDS)

            records.append(
                AggregatedResult(
                    scenario=int(scenario),
                    sample_size=int(size),
                    mean_estimated_ratio=mean_values[0],
                    mean_p_value=mean_values[1],
                    mean_empirical_ratio=mean_values[2],
                    n_iterations=n_used,
                    n_excluded=n_excluded,
                    gap=n_used == 0,
                )
            )

    return Aggregation(records=tuple(records))
