from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from config import SCENARIO_LABELS, SCENARIOS, SimConfig


SCENARIO_COLORS = {1: "#4C78A8", 2: "#F58518", 3: "#54A24B"}

PLOT_FILES = {
    "estimated_ratio": "estimated_ratio_vs_sample_size.png",
    "p_value": "p_value_vs_sample_size.png",
    "empirical_ratio": "empirical_ratio_vs_sample_size.png",
}


def _require_scenarios(summary: pd.DataFrame, column: str, scenarios: Sequence[int]) -> None:
    missing_cols = [c for c in ("scenario", "sample_size", column) if c not in summary.columns]
    if missing_cols:
        raise ValueError(f"Summary is missing columns: {missing_cols}")

    present = set(summary["scenario"].astype(int).unique().tolist())
    missing = [s for s in scenarios if s not in present]
    if missing:
        raise ValueError(f"Summary has no rows for scenario(s) {missing}.")

    empty = [
        s for s in scenarios
        if summary.loc[summary["scenario"].astype(int) == s, column].notna().sum() == 0
    ]
    if empty:
        raise ValueError(f"No plottable '{column}' values for scenario(s) {empty}.")


def _plot_by_scenario(
    summary: pd.DataFrame,
    column: str,
    config: SimConfig,
    scenarios: Sequence[int],
    ylabel: str,
    title: str,
    references: List[Dict],
    output_path: Path,
) -> Path:
    _require_scenarios(summary, column, scenarios)

    fig, ax = plt.subplots(figsize=(9, 5))
    for scenario in scenarios:
        rows = summary[summary["scenario"].astype(int) == scenario].sort_values("sample_size")
        ax.plot(
            rows["sample_size"],
            rows[column],
            marker="o",
            markersize=3,
            color=SCENARIO_COLORS.get(scenario),
            label=f"Scenario {scenario}: {SCENARIO_LABELS.get(scenario, '')}",
        )

    for ref in references:
        ax.axhline(ref["y"], linestyle="--", color=ref["color"], linewidth=1, label=ref["label"])

    ax.set_xlim(config.min_sample_size, config.max_sample_size)
    ax.set_xlabel("Sample size")
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    ax.legend(loc="best", fontsize=8)

    fig.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path


def plot_estimated_ratio(
    summary: pd.DataFrame,
    config: SimConfig,
    output_path: Path,
    scenarios: Sequence[int] = SCENARIOS,
) -> Path:
    ref = config.reference
    return _plot_by_scenario(
        summary,
        "mean_estimated_ratio",
        config,
        scenarios,
        ylabel="Mean model-implied selection ratio",
        title="Estimated disparity ratio by sample size",
        references=[
            {"y": ref.true_ratio, "color": "black", "label": f"True ratio ({ref.true_ratio:g})"},
            {"y": ref.four_fifths_threshold, "color": "red", "label": f"Four-fifths rule ({ref.four_fifths_threshold:g})"},
        ],
        output_path=output_path,
    )


def plot_p_values(
    summary: pd.DataFrame,
    config: SimConfig,
    output_path: Path,
    scenarios: Sequence[int] = SCENARIOS,
) -> Path:
    alpha = config.reference.significance_level
    return _plot_by_scenario(
        summary,
        "mean_p_value",
        config,
        scenarios,
        ylabel="Mean p-value of race coefficient",
        title="Significance of the race coefficient by sample size",
        references=[{"y": alpha, "color": "red", "label": f"alpha = {alpha:g}"}],
        output_path=output_path,
    )


def plot_empirical_ratio(
    summary: pd.DataFrame,
    config: SimConfig,
    output_path: Path,
    scenarios: Sequence[int] = SCENARIOS,
) -> Path:
    threshold = config.reference.four_fifths_threshold
    return _plot_by_scenario(
        summary,
        "mean_empirical_ratio",
        config,
        scenarios,
        ylabel="Mean observed selection-rate ratio",
        title="Unadjusted selection-rate ratio by sample size",
        references=[{"y": threshold, "color": "red", "label": f"Four-fifths rule ({threshold:g})"}],
        output_path=output_path,
    )


def render_report(summary: pd.DataFrame, config: SimConfig, output_dir: Path) -> Dict[str, Path]:
    output_dir = Path(output_dir)
    return {
        "estimated_ratio": plot_estimated_ratio(summary, config, output_dir / PLOT_FILES["estimated_ratio"]),
        "p_value": plot_p_values(summary, config, output_dir / PLOT_FILES["p_value"]),
        "empirical_ratio": plot_empirical_ratio(summary, config, output_dir / PLOT_FILES["empirical_ratio"]),
    }
