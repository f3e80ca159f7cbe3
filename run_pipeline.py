import subprocess
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parent


def _run_script(script: str, extra_args: list[str] | None = None) -> None:
    cmd = [sys.executable, str(ROOT / script)]
    if extra_args:
        cmd.extend(extra_args)
    print(f"\nRunning: {' '.join(cmd)}")
    subprocess.run(cmd, check=True)


def run_simulation() -> None:
    n_jobs = input("Parallel workers (blank = use parameters file): ").strip()
    sim_args = ["--n-jobs", n_jobs] if n_jobs else []
    _run_script("main.py", sim_args)
    print("\nSimulation completed.")


def run_report() -> None:
    _run_script("analytics/data_analysis/plot_results.py")
    print("\nReport charts completed.")


def run_archive() -> None:
    dry_run = input("Run archive in dry-run mode first? (y/n) [n]: ").strip().lower()
    archive_args = ["--dry-run"] if dry_run in ("y", "yes") else []
    _run_script("analytics/data_analysis/archive_outputs.py", archive_args)
    print("\nArchive step completed.")


def main() -> None:
    while True:
        print("\nChoose pipeline:")
        print("1) Run simulation grid")
        print("2) Plot results")
        print("3) Archive outputs")
        print("4) Exit")
        choice = input("Enter 1, 2, 3 or 4: ").strip()

        if choice == "1":
            run_simulation()
        elif choice == "2":
            run_report()
        elif choice == "3":
            run_archive()
        elif choice == "4":
            print("Exiting pipeline menu.")
            break
        else:
            print("Invalid choice. Please select 1, 2, 3 or 4.")


if __name__ == "__main__":
    main()
