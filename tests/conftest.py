import importlib.util
import json
from pathlib import Path
from uuid import uuid4

import numpy as np
import pandas as pd
import pytest


def load_module(module_path: Path):
    spec = importlib.util.spec_from_file_location(f"testmod_{uuid4().hex}", module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def mini_parameters() -> dict:
    return {
        "grid": {
            "min_sample_size": 600,
            "max_sample_size": 1200,
            "sample_size_step": 600,
            "iterations": 2,
        },
        "seed": 11,
        "execution": {"n_jobs": 1, "max_iter": 1000},
    }


@pytest.fixture
def logit_dataset() -> pd.DataFrame:
    rng = np.random.default_rng(5)
    n = 3000
    race = rng.binomial(1, 0.3, size=n)
    incarcerated = rng.binomial(1, 0.1, size=n)
    earnings = rng.gamma(2.0, 1 / 3, size=n) * 1000
    logits = 0.2 - 1.5 * race + 0.0005 * earnings - 0.5 * incarcerated
    probs = 1 / (1 + np.exp(-logits))
    decision = rng.binomial(1, probs).astype(int)
    return pd.DataFrame(
        {
            "race": race,
            "earnings": earnings,
            "incarcerated": incarcerated,
            "decision1": decision,
        }
    )


@pytest.fixture
def project_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture
def write_json():
    def _write(path: Path, payload: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    return _write
