import argparse
import json
import logging
import warnings
from pathlib import Path
import sys

# Allow running without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from sklearn.exceptions import ConvergenceWarning

from aggregator import aggregate_results, results_to_frame
from experiment import run_grid
from io_utils import build_config, config_to_dict, load_parameters


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the disparate-impact Monte Carlo simulation over the sample-size grid."
    )
    parser.add_argument(
        "--params",
        type=Path,
        default=Path("input_parameters") / "simulation_parameters.json",
        help="Path to simulation_parameters.json.",
    )
    parser.add_argument("--min-sample-size", type=int, default=None, help="Smallest sample size in the grid.")
    parser.add_argument("--max-sample-size", type=int, default=None, help="Largest sample size in the grid.")
    parser.add_argument("--step", type=int, default=None, help="Sample-size step.")
    parser.add_argument("--iterations", type=int, default=None, help="Iterations per sample size.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for the whole run.")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel workers (joblib). 1 runs sequentially.")
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory for result tables and metadata. Default: outputs/simulator.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    # Non-convergence is detected per fit and reported in the summary.
    warnings.filterwarnings("ignore", category=ConvergenceWarning)

    raw = load_parameters(str(args.params))
    config = build_config(
        raw,
        min_sample_size=args.min_sample_size,
        max_sample_size=args.max_sample_size,
        sample_size_step=args.step,
        iterations=args.iterations,
        seed=args.seed,
        n_jobs=args.n_jobs,
        output_dir=args.output_dir,
    )

    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    run = run_grid(config)
    if not run.results:
        raise ValueError(f"All {run.n_cells} simulation cells failed; nothing to aggregate.")

    aggregation = aggregate_results(run.results, sample_sizes=config.sample_sizes)
    summary = aggregation.to_frame(
        four_fifths_threshold=config.reference.four_fifths_threshold,
        significance_level=config.reference.significance_level,
    )

    results_path = output_dir / "simulation_results.csv"
    results_to_frame(run.results).to_csv(results_path, index=False)

    summary_path = output_dir / "simulation_summary.csv"
    summary.to_csv(summary_path, index=False)

    meta_path = output_dir / "simulation_metadata.json"
    meta_payload = {
        "config": config_to_dict(config),
        "cells": {
            "total": run.n_cells,
            "completed": len(run.results),
            "failed": len(run.failures),
        },
        "excluded_fits": int(aggregation.total_excluded),
        "gaps": [{"scenario": s, "sample_size": n} for s, n in aggregation.gaps],
        "failures": [
            {"sample_size": f.sample_size, "iteration": f.iteration, "error": f.error}
            for f in run.failures
        ],
    }
    meta_path.write_text(json.dumps(meta_payload, indent=2) + "\n", encoding="utf-8")

    print(f"Cells completed: {len(run.results)}/{run.n_cells}")
    print(f"Excluded non-converged fits: {aggregation.total_excluded}")
    if aggregation.gaps:
        print(f"Gaps (scenario, sample size): {aggregation.gaps}")
    print(f"Results: {results_path}")
    print(f"Summary: {summary_path}")
    print(f"Metadata: {meta_path}")


if __name__ == "__main__":
    main()
