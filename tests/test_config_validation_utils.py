from pathlib import Path

import pytest
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from config import SimConfig
from io_utils import build_config, config_to_dict, load_parameters, validate_parameters


def test_load_parameters_raises_for_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_parameters(str(tmp_path / "missing.json"))


def test_empty_parameters_resolve_to_defaults():
    assert validate_parameters({}) == []
    config = build_config({})
    assert config == SimConfig()
    assert config.sample_sizes[0] == 200
    assert config.sample_sizes[-1] == 4000
    assert len(config.sample_sizes) == 20


def test_shipped_parameters_file_is_valid(project_root: Path):
    raw = load_parameters(str(project_root / "input_parameters" / "simulation_parameters.json"))
    assert validate_parameters(raw) == []
    assert build_config(raw) == SimConfig()


def test_invalid_grid_is_reported():
    errs = validate_parameters(
        {"grid": {"min_sample_size": 500, "max_sample_size": 300, "sample_size_step": 0, "iterations": 0}}
    )
    assert any("max_sample_size must be >= min_sample_size" in e for e in errs)
    assert any("sample_size_step must be > 0" in e for e in errs)
    assert any("iterations must be > 0" in e for e in errs)


def test_incarceration_bounds_and_earnings_penalties_are_checked():
    errs = validate_parameters(
        {
            "population": {
                "incarceration_base": 0.9,
                "earnings_incarceration_penalty": 0.6,
                "earnings_race_penalty": 0.5,
            }
        }
    )
    assert any("race=1 can leave [0, 1]" in e for e in errs)
    assert any("non-positive earnings" in e for e in errs)


def test_scenario_constants_must_be_probabilities():
    errs = validate_parameters({"scenarios": {"flag_prob": 1.5}})
    assert errs == ["scenarios: flag_prob must be between 0 and 1."]


def test_unknown_keys_are_rejected():
    errs = validate_parameters({"population": {"race_probability": 0.2}})
    assert any("unknown keys" in e for e in errs)


def test_non_numeric_values_are_reported():
    errs = validate_parameters({"grid": {"iterations": "many"}, "population": {"race_prob": "x"}})
    assert any("Invalid iterations" in e for e in errs)
    assert any("Invalid population.race_prob" in e for e in errs)


def test_build_config_raises_with_all_messages():
    with pytest.raises(ValueError, match="iterations must be > 0"):
        build_config({"grid": {"iterations": 0}})


def test_build_config_applies_overrides_and_ignores_none():
    config = build_config({"seed": 5}, iterations=3, seed=None, n_jobs=2)
    assert config.iterations == 3
    assert config.seed == 5
    assert config.n_jobs == 2


def test_build_config_rechecks_grid_after_overrides():
    with pytest.raises(ValueError, match="max_sample_size"):
        build_config({}, min_sample_size=5000)
    with pytest.raises(ValueError, match="Unknown config overrides"):
        build_config({}, sample_count=3)


def test_config_to_dict_lists_sample_sizes():
    payload = config_to_dict(build_config({"grid": {"max_sample_size": 600}}))
    assert payload["sample_sizes"] == [200, 400, 600]
    assert payload["population"]["race_prob"] == 0.14
