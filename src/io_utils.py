import json
from dataclasses import asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import PopulationParams, ReferenceLines, ScenarioParams, SimConfig


_GRID_KEYS = ("min_sample_size", "max_sample_size", "sample_size_step", "iterations")
_EXECUTION_KEYS = ("n_jobs", "backend", "max_iter", "output_dir")


def load_parameters(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Parameters file not found: {p.resolve()}")
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _as_float(value: object, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {field_name}: {value}") from exc


def _as_int(value: object, field_name: str) -> int:
    try:
        as_float = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {field_name}: {value}") from exc
    if not as_float.is_integer():
        raise ValueError(f"Invalid {field_name}: {value} is not an integer.")
    return int(as_float)


def _check_section_keys(raw: Dict[str, Any], section: str, allowed: List[str]) -> List[str]:
    payload = raw.get(section, {})
    if not isinstance(payload, dict):
        return [f"{section}: expected an object."]
    unknown = sorted(set(payload) - set(allowed))
    if unknown:
        return [f"{section}: unknown keys {unknown}."]
    return []


def _validate_grid(grid: Dict[str, Any]) -> List[str]:
    errors = []
    values = {}
    for key in _GRID_KEYS:
        if key not in grid:
            continue
        try:
            values[key] = _as_int(grid[key], key)
        except ValueError as exc:
            errors.append(f"grid: {exc}")

    defaults = SimConfig()
    lo = values.get("min_sample_size", defaults.min_sample_size)
    hi = values.get("max_sample_size", defaults.max_sample_size)
    step = values.get("sample_size_step", defaults.sample_size_step)
    iterations = values.get("iterations", defaults.iterations)

    if lo < 2:
        errors.append("grid: min_sample_size must be >= 2.")
    if hi < lo:
        errors.append("grid: max_sample_size must be >= min_sample_size.")
    if step <= 0:
        errors.append("grid: sample_size_step must be > 0.")
    if iterations <= 0:
        errors.append("grid: iterations must be > 0.")
    return errors


def _validate_probability(value: float, name: str, section: str) -> List[str]:
    if not (0.0 <= value <= 1.0):
        return [f"{section}: {name} must be between 0 and 1."]
    return []


def _validate_population(params: PopulationParams) -> List[str]:
    errors = []
    errors += _validate_probability(params.race_prob, "race_prob", "population")
    if params.incarceration_noise < 0:
        errors.append("population: incarceration_noise must be >= 0.")

    # Worst-case incarceration probability for either race value.
    for race in (0, 1):
        centre = params.incarceration_base + params.incarceration_race_effect * race
        if centre - params.incarceration_noise < 0 or centre + params.incarceration_noise > 1:
            errors.append(
                f"population: incarceration probability for race={race} can leave [0, 1] "
                f"({centre - params.incarceration_noise:.3f} to {centre + params.incarceration_noise:.3f})."
            )

    if params.earnings_shape <= 0:
        errors.append("population: earnings_shape must be > 0.")
    if params.earnings_rate <= 0:
        errors.append("population: earnings_rate must be > 0.")
    if params.earnings_scale <= 0:
        errors.append("population: earnings_scale must be > 0.")
    multiplier = 1 - params.earnings_incarceration_penalty - params.earnings_race_penalty
    if multiplier <= 0:
        errors.append("population: earnings penalties leave non-positive earnings for some individuals.")
    return errors


def _validate_scenarios(params: ScenarioParams) -> List[str]:
    errors = []
    for name in ("jail_penalty", "direct_race_penalty", "flag_prob", "flag_penalty", "proxy_jail_penalty"):
        errors += _validate_probability(getattr(params, name), name, "scenarios")
    return errors


def _validate_reference(params: ReferenceLines) -> List[str]:
    errors = []
    if params.true_ratio <= 0:
        errors.append("reference: true_ratio must be > 0.")
    if not (0 < params.four_fifths_threshold <= 1):
        errors.append("reference: four_fifths_threshold must be in (0, 1].")
    if not (0 < params.significance_level < 1):
        errors.append("reference: significance_level must be in (0, 1).")
    return errors


def _build_section(cls, payload: Dict[str, Any], section: str):
    kwargs = {}
    for f in fields(cls):
        if f.name in payload:
            kwargs[f.name] = _as_float(payload[f.name], f"{section}.{f.name}")
    return cls(**kwargs)


def validate_parameters(raw: Dict[str, Any]) -> List[str]:
    """
    Expected structure (every section optional, defaults from SimConfig):
      raw["grid"]       -> min_sample_size, max_sample_size, sample_size_step, iterations
      raw["seed"]       -> integer
      raw["population"] -> PopulationParams fields
      raw["scenarios"]  -> ScenarioParams fields
      raw["reference"]  -> ReferenceLines fields
      raw["execution"]  -> n_jobs, backend, max_iter, output_dir
    Returns a list of error messages (empty when valid).
    """
    errors: List[str] = []
    errors += _check_section_keys(raw, "grid", list(_GRID_KEYS))
    errors += _check_section_keys(raw, "execution", list(_EXECUTION_KEYS))
    for section, cls in (
        ("population", PopulationParams),
        ("scenarios", ScenarioParams),
        ("reference", ReferenceLines),
    ):
        errors += _check_section_keys(raw, section, [f.name for f in fields(cls)])
    if errors:
        return errors

    errors += _validate_grid(raw.get("grid", {}))

    if "seed" in raw:
        try:
            if _as_int(raw["seed"], "seed") < 0:
                errors.append("seed must be >= 0.")
        except ValueError as exc:
            errors.append(str(exc))

    execution = raw.get("execution", {})
    if "n_jobs" in execution:
        try:
            if _as_int(execution["n_jobs"], "n_jobs") == 0:
                errors.append("execution: n_jobs must not be 0.")
        except ValueError as exc:
            errors.append(f"execution: {exc}")
    if "max_iter" in execution:
        try:
            if _as_int(execution["max_iter"], "max_iter") <= 0:
                errors.append("execution: max_iter must be > 0.")
        except ValueError as exc:
            errors.append(f"execution: {exc}")

    try:
        errors += _validate_population(_build_section(PopulationParams, raw.get("population", {}), "population"))
        errors += _validate_scenarios(_build_section(ScenarioParams, raw.get("scenarios", {}), "scenarios"))
        errors += _validate_reference(_build_section(ReferenceLines, raw.get("reference", {}), "reference"))
    except ValueError as exc:
        errors.append(str(exc))

    return errors


def build_config(raw: Dict[str, Any], **overrides: Optional[Any]) -> SimConfig:
    """Validate raw parameters and resolve them into a SimConfig.

    Keyword overrides whose value is None are ignored, so argparse namespaces
    can be passed through directly.
    """
    errors = validate_parameters(raw)
    if errors:
        raise ValueError("Invalid simulation parameters:\n  - " + "\n  - ".join(errors))

    grid = raw.get("grid", {})
    execution = raw.get("execution", {})
    kwargs: Dict[str, Any] = {key: _as_int(grid[key], key) for key in _GRID_KEYS if key in grid}
    if "seed" in raw:
        kwargs["seed"] = _as_int(raw["seed"], "seed")
    for key in ("n_jobs", "max_iter"):
        if key in execution:
            kwargs[key] = _as_int(execution[key], key)
    for key in ("backend", "output_dir"):
        if key in execution:
            kwargs[key] = str(execution[key])

    config = SimConfig(
        population=_build_section(PopulationParams, raw.get("population", {}), "population"),
        scenarios=_build_section(ScenarioParams, raw.get("scenarios", {}), "scenarios"),
        reference=_build_section(ReferenceLines, raw.get("reference", {}), "reference"),
        **kwargs,
    )

    applied = {key: value for key, value in overrides.items() if value is not None}
    unknown = sorted(set(applied) - {f.name for f in fields(SimConfig)})
    if unknown:
        raise ValueError(f"Unknown config overrides: {unknown}")
    if applied:
        config = replace(config, **applied)
        # Re-check the grid after CLI overrides.
        grid_errors = _validate_grid({key: getattr(config, key) for key in _GRID_KEYS})
        if grid_errors:
            raise ValueError("Invalid simulation parameters:\n  - " + "\n  - ".join(grid_errors))
        if config.n_jobs == 0:
            raise ValueError("n_jobs must not be 0.")
    return config


def config_to_dict(config: SimConfig) -> Dict[str, Any]:
    payload = asdict(config)
    payload["sample_sizes"] = list(config.sample_sizes)
    return payload
