from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import product
from typing import List, Optional, Tuple, Union

from joblib import Parallel, delayed

from config import SimConfig
from simulator import NumericalDomainError, SimulationResult, simulate_cell


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellFailure:
    sample_size: int
    iteration: int
    error: str


@dataclass(frozen=True)
class GridRun:
    results: Tuple[SimulationResult, ...]
    failures: Tuple[CellFailure, ...]

    @property
    def n_cells(self) -> int:
        return len(self.results) + len(self.failures)


def grid_cells(config: SimConfig) -> List[Tuple[int, int]]:
    return list(product(config.sample_sizes, range(config.iterations)))


def _run_cell(sample_size: int, iteration: int, config: SimConfig) -> Union[SimulationResult, CellFailure]:
    try:
        return simulate_cell(sample_size, iteration, config)
    except NumericalDomainError as exc:
        return CellFailure(sample_size=sample_size, iteration=iteration, error=str(exc))


def run_grid(config: SimConfig, cells: Optional[List[Tuple[int, int]]] = None) -> GridRun:
    """
    Evaluate every (sample size, iteration) cell.

    Cells are independent and each seeds its own generator, so the records are
    identical for any n_jobs. Workers only return records; merging happens here
    after all of them have finished.
    """
    cells = grid_cells(config) if cells is None else list(cells)
    logger.info(
        "Running %d cells (%d sample sizes x %d iterations), n_jobs=%d",
        len(cells),
        len(config.sample_sizes),
        config.iterations,
        config.n_jobs,
    )

    if config.n_jobs == 1:
        outcomes = [_run_cell(n, it, config) for n, it in cells]
    else:
        outcomes = Parallel(n_jobs=config.n_jobs, backend=config.backend, verbose=0)(
            delayed(_run_cell)(n, it, config) for n, it in cells
        )

    results = []
    failures = []
    for outcome in outcomes:
        if isinstance(outcome, CellFailure):
            logger.warning(
                "Cell aborted (n=%d, iteration=%d): %s",
                outcome.sample_size,
                outcome.iteration,
                outcome.error,
            )
            failures.append(outcome)
        else:
            results.append(outcome)

    return GridRun(results=tuple(results), failures=tuple(failures))
