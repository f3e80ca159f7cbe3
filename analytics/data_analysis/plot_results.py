import argparse
import sys
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from io_utils import build_config, load_parameters
from reporter import render_report


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Plot aggregated simulation results against the reference thresholds."
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=Path("outputs") / "simulator" / "simulation_summary.csv",
        help="Aggregated summary CSV written by main.py.",
    )
    parser.add_argument(
        "--params",
        type=Path,
        default=Path("input_parameters") / "simulation_parameters.json",
        help="Parameters used for the grid range and reference lines.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("analytics") / "data_analysis" / "artifacts" / "06_visualizations",
        help="Directory to save the charts.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    if not args.summary.exists():
        raise FileNotFoundError(f"Missing summary: {args.summary}. Run main.py first.")

    summary = pd.read_csv(args.summary)
    if summary.empty:
        raise ValueError(f"Summary is empty: {args.summary}")

    # Keep the x-axis on the grid that actually produced the summary.
    sizes = summary["sample_size"].astype(int)
    config = build_config(
        load_parameters(str(args.params)),
        min_sample_size=int(sizes.min()),
        max_sample_size=int(sizes.max()),
    )

    paths = render_report(summary, config, args.output_dir)
    for name, path in paths.items():
        print(f"Saved {name} chart: {path}")


if __name__ == "__main__":
    main()
