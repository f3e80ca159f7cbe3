from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from scipy.special import expit
from scipy.stats import norm
from sklearn.linear_model import LogisticRegression
from sklearn.preprocessing import StandardScaler

from config import SCENARIOS, PopulationParams, ScenarioParams, SimConfig


MODEL_FEATURES = ("race", "earnings", "incarcerated")


class NumericalDomainError(ValueError):
    """A draw or derived quantity left its valid numeric domain."""


class ModelConvergenceError(RuntimeError):
    """The logistic fit for one scenario produced no usable estimate."""


@dataclass(frozen=True)
class SimulatedPopulation:
    sample_size: int
    iteration: int
    race: np.ndarray
    incarcerated: np.ndarray
    earnings: np.ndarray
    flagged: np.ndarray
    decisions: Dict[int, np.ndarray]

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(
            {
                "race": self.race,
                "incarcerated": self.incarcerated,
                "earnings": self.earnings,
                "flagged": self.flagged,
            }
        )
        for scenario, decision in self.decisions.items():
            df[f"decision{scenario}"] = decision
        df["sample_size"] = self.sample_size
        df["iteration"] = self.iteration
        return df


@dataclass(frozen=True)
class ScenarioEstimate:
    scenario: int
    estimated_ratio: float
    p_value: float
    empirical_ratio: float
    converged: bool = True


@dataclass(frozen=True)
class SimulationResult:
    sample_size: int
    iteration: int
    estimates: Tuple[ScenarioEstimate, ...]

    @property
    def estimated_ratio(self) -> Tuple[float, ...]:
        return tuple(e.estimated_ratio for e in self.estimates)

    @property
    def p_value(self) -> Tuple[float, ...]:
        return tuple(e.p_value for e in self.estimates)

    @property
    def empirical_ratio(self) -> Tuple[float, ...]:
        return tuple(e.empirical_ratio for e in self.estimates)


@dataclass(frozen=True)
class LogitFit:
    intercept: float
    coef: Dict[str, float]    # raw-unit coefficients
    std_err: Dict[str, float]
    p_values: Dict[str, float]
    n_iter: int


def cell_rng(seed: int, sample_size: int, iteration: int) -> np.random.Generator:
    """
    Generator for one (sample size, iteration) cell.

    The stream depends only on the three integers, so a cell reproduces its
    draws whatever order (or worker) the grid is executed in.
    """
    return np.random.default_rng(np.random.SeedSequence([int(seed), int(sample_size), int(iteration)]))


def _check_probabilities(p: np.ndarray, name: str) -> None:
    if not np.all(np.isfinite(p)):
        raise NumericalDomainError(f"{name}: non-finite probability.")
    lo = float(np.min(p))
    hi = float(np.max(p))
    if lo < 0 or hi > 1:
        raise NumericalDomainError(f"{name}: probability outside [0, 1] (min={lo:.4f}, max={hi:.4f}).")


def normalized_log_earnings(earnings: np.ndarray) -> np.ndarray:
    """Min-max rescale log earnings to [0, 1] over the current sample."""
    earnings = np.asarray(earnings, dtype=float)
    if np.any(earnings <= 0):
        raise NumericalDomainError("earnings must be strictly positive before taking logs.")
    log_e = np.log(earnings)
    lo = float(np.min(log_e))
    hi = float(np.max(log_e))
    if not hi > lo:
        raise NumericalDomainError("log earnings have zero range; cannot normalize.")
    return (log_e - lo) / (hi - lo)


def scenario_probabilities(
    race: np.ndarray,
    incarcerated: np.ndarray,
    earnings: np.ndarray,
    flagged: np.ndarray,
    params: ScenarioParams,
) -> Dict[int, np.ndarray]:
    """
    Selection probabilities for the three decision processes:
      1) base * (1 - direct_race_penalty * race)
      2) base * (1 - flag_penalty * flagged), flagged only ever set for race=1
      3) nle * (1 - proxy_jail_penalty * incarcerated), no race term
    where base = nle * (1 - jail_penalty * incarcerated).
    """
    nle = normalized_log_earnings(earnings)
    base = nle * (1 - params.jail_penalty * incarcerated)
    probs = {
        1: base * (1 - params.direct_race_penalty * race),
        2: base * (1 - params.flag_penalty * flagged),
        3: nle * (1 - params.proxy_jail_penalty * incarcerated),
    }
    for scenario, p in probs.items():
        _check_probabilities(p, f"scenario {scenario}")
    return probs


def simulate_population(
    sample_size: int,
    iteration: int,
    config: SimConfig,
    rng: np.random.Generator,
) -> SimulatedPopulation:
    """
    Draw one synthetic population and its three decision columns.

    Steps:
      1) race ~ Bernoulli(race_prob)
      2) incarcerated ~ Bernoulli(base + race_effect * race + U(-noise, noise))
      3) earnings ~ Gamma(shape, rate) * scale, reduced for incarceration and race
      4) flagged ~ Bernoulli(flag_prob) among race=1 only
      5) decision_k ~ Bernoulli(p_k) for each scenario

    No probability is clamped: values outside [0, 1] raise NumericalDomainError.
    """
    n = int(sample_size)
    if n < 2:
        raise ValueError("sample_size must be >= 2.")
    pop: PopulationParams = config.population

    race = rng.binomial(1, pop.race_prob, size=n).astype(int)

    noise = rng.uniform(-pop.incarceration_noise, pop.incarceration_noise, size=n)
    p_inc = pop.incarceration_base + pop.incarceration_race_effect * race + noise
    _check_probabilities(p_inc, "incarceration")
    incarcerated = rng.binomial(1, p_inc).astype(int)

    raw_earnings = rng.gamma(shape=pop.earnings_shape, scale=1.0 / pop.earnings_rate, size=n)
    earnings = raw_earnings * pop.earnings_scale * (
        1 - pop.earnings_incarceration_penalty * incarcerated - pop.earnings_race_penalty * race
    )
    if np.any(earnings <= 0):
        raise NumericalDomainError(f"{int(np.sum(earnings <= 0))} non-positive earnings drawn.")

    flagged = rng.binomial(1, config.scenarios.flag_prob, size=n).astype(int) * race

    probs = scenario_probabilities(race, incarcerated, earnings, flagged, config.scenarios)
    decisions = {scenario: rng.binomial(1, probs[scenario]).astype(int) for scenario in SCENARIOS}

    return SimulatedPopulation(
        sample_size=n,
        iteration=int(iteration),
        race=race,
        incarcerated=incarcerated,
        earnings=earnings,
        flagged=flagged,
        decisions=decisions,
    )


def empirical_ratio(decision: np.ndarray, race: np.ndarray) -> float:
    """Raw selection-rate ratio, race=1 over race=0."""
    decision = np.asarray(decision)
    race = np.asarray(race)
    protected = decision[race == 1]
    reference = decision[race == 0]
    if len(protected) == 0 or len(reference) == 0:
        raise NumericalDomainError("empirical ratio needs both race groups in the sample.")
    reference_rate = float(reference.mean())
    if reference_rate == 0:
        raise NumericalDomainError("reference group selection rate is zero.")
    return float(protected.mean()) / reference_rate


def fit_race_logit(df: pd.DataFrame, target: str, max_iter: int = 1000) -> LogitFit:
    """
    Unpenalized logistic regression of `target` on race, earnings, incarcerated,
    with Wald p-values from the inverse Fisher information.

    The design is scaled (no centering) for the solver; coefficients and
    standard errors are mapped back to raw units, which leaves z-scores and the
    intercept unchanged.
    """
    y = df[target].astype(int).to_numpy()
    if len(np.unique(y)) < 2:
        raise ModelConvergenceError(f"{target}: outcome has a single class.")

    X = df[list(MODEL_FEATURES)].to_numpy(dtype=float)
    scaler = StandardScaler(with_mean=False)
    X_scaled = scaler.fit_transform(X)

    model = LogisticRegression(solver="lbfgs", penalty=None, max_iter=max_iter)
    model.fit(X_scaled, y)
    n_iter = int(np.max(model.n_iter_))
    if n_iter >= max_iter:
        raise ModelConvergenceError(f"{target}: lbfgs did not converge in {max_iter} iterations.")

    coef_scaled = np.concatenate(([model.intercept_[0]], model.coef_.ravel()))
    if not np.all(np.isfinite(coef_scaled)):
        raise ModelConvergenceError(f"{target}: non-finite coefficients.")

    probs = model.predict_proba(X_scaled)[:, 1]
    probs = np.clip(probs, 1e-9, 1 - 1e-9)
    X_design = np.column_stack([np.ones(len(y)), X_scaled])
    weights = probs * (1 - probs)
    fisher = X_design.T @ (X_design * weights[:, None])

    try:
        cov = np.linalg.inv(fisher)
    except np.linalg.LinAlgError as exc:
        raise ModelConvergenceError(f"{target}: singular Fisher information.") from exc

    variances = np.diag(cov)
    if not np.all(np.isfinite(variances)) or np.any(variances <= 0):
        raise ModelConvergenceError(f"{target}: invalid coefficient variances.")
    se_scaled = np.sqrt(variances)
    z_scores = coef_scaled / se_scaled
    p_values = 2 * norm.sf(np.abs(z_scores))

    unit = np.concatenate(([1.0], scaler.scale_))
    coef_raw = coef_scaled / unit
    se_raw = se_scaled / unit

    names = ("intercept",) + MODEL_FEATURES
    return LogitFit(
        intercept=float(coef_raw[0]),
        coef={name: float(c) for name, c in zip(names[1:], coef_raw[1:])},
        std_err={name: float(s) for name, s in zip(names, se_raw)},
        p_values={name: float(p) for name, p in zip(names, p_values)},
        n_iter=n_iter,
    )


def implied_ratio(fit: LogitFit) -> float:
    """P(select | race=1) / P(select | race=0) with earnings=0, incarcerated=0."""
    p1 = expit(fit.intercept + fit.coef["race"])
    p0 = expit(fit.intercept)
    return float(p1 / p0)


def evaluate_population(population: SimulatedPopulation, max_iter: int = 1000) -> SimulationResult:
    """
    Reduce one population to a SimulationResult.

    A non-converging fit marks only that scenario's estimate as missing;
    numerical-domain problems propagate and abort the whole cell.
    """
    df = population.to_frame()
    estimates = []
    for scenario in SCENARIOS:
        target = f"decision{scenario}"
        observed = empirical_ratio(population.decisions[scenario], population.race)
        try:
            fit = fit_race_logit(df, target, max_iter=max_iter)
        except ModelConvergenceError:
            estimates.append(
                ScenarioEstimate(
                    scenario=scenario,
                    estimated_ratio=float("nan"),
                    p_value=float("nan"),
                    empirical_ratio=observed,
                    converged=False,
                )
            )
            continue

        estimates.append(
            ScenarioEstimate(
                scenario=scenario,
                estimated_ratio=implied_ratio(fit),
                p_value=fit.p_values["race"],
                empirical_ratio=observed,
            )
        )

    return SimulationResult(
        sample_size=population.sample_size,
        iteration=population.iteration,
        estimates=tuple(estimates),
    )


def simulate_cell(sample_size: int, iteration: int, config: SimConfig) -> SimulationResult:
    rng = cell_rng(config.seed, sample_size, iteration)
    population = simulate_population(sample_size, iteration, config, rng)
    return evaluate_population(population, max_iter=config.max_iter)
