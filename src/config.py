from dataclasses import dataclass, field
from typing import Tuple


SCENARIOS: Tuple[int, ...] = (1, 2, 3)

SCENARIO_LABELS = {
    1: "Direct discrimination",
    2: "Flagged subgroup",
    3: "Proxy via mediator",
}


@dataclass(frozen=True)
class PopulationParams:
    race_prob: float = 0.14
    incarceration_base: float = 0.04
    incarceration_race_effect: float = 0.241
    incarceration_noise: float = 0.03
    earnings_shape: float = 2.0
    earnings_rate: float = 3.0
    earnings_scale: float = 1000.0
    earnings_incarceration_penalty: float = 0.2
    earnings_race_penalty: float = 0.35


@dataclass(frozen=True)
class ScenarioParams:
    jail_penalty: float = 0.5
    direct_race_penalty: float = 0.25
    flag_prob: float = 0.3
    flag_penalty: float = 0.75
    proxy_jail_penalty: float = 0.99


@dataclass(frozen=True)
class ReferenceLines:
    true_ratio: float = 0.75
    four_fifths_threshold: float = 0.8
    significance_level: float = 0.05


@dataclass(frozen=True)
class SimConfig:
    min_sample_size: int = 200
    max_sample_size: int = 4000
    sample_size_step: int = 200
    iterations: int = 100
    seed: int = 9487565
    n_jobs: int = 1
    backend: str = "loky"
    # Iteration cap for the logistic fit; hitting it counts as non-convergence.
    max_iter: int = 1000
    output_dir: str = "outputs/simulator"
    population: PopulationParams = field(default_factory=PopulationParams)
    scenarios: ScenarioParams = field(default_factory=ScenarioParams)
    reference: ReferenceLines = field(default_factory=ReferenceLines)

    @property
    def sample_sizes(self) -> Tuple[int, ...]:
        return tuple(range(self.min_sample_size, self.max_sample_size + 1, self.sample_size_step))
