"""Test configuration and fixtures."""

import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from src.config.settings import load_config, merge_config

# Header of the public Pima CSV; the loader renames columns by position
RAW_HEADER = [
    "Pregnancies",
    "Glucose",
    "BloodPressure",
    "SkinThickness",
    "Insulin",
    "BMI",
    "DiabetesPedigreeFunction",
    "Age",
    "Outcome",
]


def make_pima_like(n_rows=240, seed=42):
    """Synthetic table with the Pima layout, zero-coded missing values and ~35% positives."""
    rng = np.random.RandomState(seed)

    age = rng.randint(21, 70, n_rows)
    glucose = rng.normal(120, 30, n_rows).clip(50, 199).round(0)
    bmi = rng.normal(32, 7, n_rows).clip(18, 60).round(1)
    logit = -8.9 + 0.04 * glucose + 0.08 * bmi + 0.02 * age
    outcome = rng.binomial(1, 1 / (1 + np.exp(-logit)))

    df = pd.DataFrame(
        {
            "timesPregnant": rng.poisson(3, n_rows),
            "plasmaGlucose": glucose,
            "diastolicPressure": rng.normal(70, 12, n_rows).clip(30, 120).round(0),
            "tricepThickness": rng.normal(29, 10, n_rows).clip(7, 60).round(0),
            "serumInsulin": rng.normal(150, 80, n_rows).clip(15, 600).round(0),
            "bmi": bmi,
            "pedigreeFunction": rng.gamma(2, 0.25, n_rows).round(3),
            "age": age,
            "diabetes": outcome,
        }
    )

    zero_rates = {
        "plasmaGlucose": 0.02,
        "diastolicPressure": 0.05,
        "tricepThickness": 0.25,
        "serumInsulin": 0.40,
        "bmi": 0.02,
    }
    for col, rate in zero_rates.items():
        df.loc[rng.rand(n_rows) < rate, col] = 0

    return df


@pytest.fixture
def raw_pima_frame():
    """Raw synthetic table (canonical names, 0/1 class)."""
    return make_pima_like()


@pytest.fixture
def temp_directory():
    """Create temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def pima_csv(raw_pima_frame, temp_directory):
    """Synthetic data written with the public dataset's header."""
    path = temp_directory / "diabetes.csv"
    raw = raw_pima_frame.copy()
    raw.columns = RAW_HEADER
    raw.to_csv(path, index=False)
    return path


@pytest.fixture
def fast_config():
    """Small configuration so the full pipeline runs in seconds."""
    return merge_config(
        load_config(None),
        {
            "random_seed": 7,
            "imputation": {"n_imputations": 2, "n_burnin": 2},
            "cross_validation": {"n_splits": 3, "n_repeats": 1, "n_jobs": None},
            "models": {
                "random_forest": {
                    "n_estimators": 20,
                    "variants": {"rf": {"grid": {"mtry": [2, 4]}}},
                },
                "svm": {
                    "variants": {
                        "linear": {
                            "grid": {"C": [0.1, 1.0]},
                            "stages": 2,
                            "refine": {"C": {"scale": "log"}},
                            "refine_points": 3,
                        },
                        "rbf": {"grid": {"sigma": [0.05], "C": [1.0]}},
                    },
                },
                "neural_network": {
                    "max_iter": 2000,
                    "variants": {
                        "mlp": {"grid": {"hidden_layers": [1], "hidden_units": [2, 3], "alpha": [0.1]}},
                    },
                },
            },
            "output": {"dir": None, "save_figures": False},
        },
    )
