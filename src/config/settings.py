"""Configuration loading for the analysis pipeline."""

import copy
from pathlib import Path

import yaml

from src.config.constants import ZERO_AS_MISSING_COLUMNS
from src.errors import ConfigurationError

DEFAULT_CONFIG = {
    "random_seed": 1234,
    "data": {
        "raw_path": "data/raw/diabetes.csv",
        "has_header": True,
    },
    "preprocessing": {
        "zero_as_missing": list(ZERO_AS_MISSING_COLUMNS),
        "correlation_threshold": 0.7,
        "drop_correlated": True,
        "missingness_alpha": 0.05,
    },
    "imputation": {
        "n_imputations": 5,
        "n_burnin": 5,
        "n_skip": 1,
        "k_pmm": 5,
        "aggregate": "mean",
    },
    "split": {
        "train_fraction": 0.7,
    },
    "cross_validation": {
        "n_splits": 10,
        "n_repeats": 10,
        "n_jobs": None,
    },
    "models": {
        "random_forest": {
            "enabled": True,
            "decision": "label",
            "n_estimators": 500,
            "variants": {
                "rf": {
                    "grid": {"mtry": [2, 3, 4, 5, 6, 7, 8]},
                },
            },
        },
        "svm": {
            "enabled": True,
            "decision": "label",
            "variants": {
                "linear": {
                    "grid": {"C": [0.01, 0.1, 1.0, 10.0, 100.0]},
                    "stages": 2,
                    "refine": {"C": {"scale": "log"}},
                    "refine_points": 5,
                },
                "rbf": {
                    "grid": {"sigma": [0.01, 0.05, 0.1], "C": [0.25, 0.5, 1.0, 2.0, 4.0]},
                    "stages": 1,
                },
            },
        },
        "neural_network": {
            "enabled": True,
            "decision": "probability",
            "max_iter": 2000,
            "variants": {
                "mlp": {
                    "grid": {
                        "hidden_layers": [1, 2],
                        "hidden_units": [1, 3, 5, 7],
                        "alpha": [0.0001, 0.1],
                    },
                },
            },
        },
    },
    "evaluation": {
        "threshold": 0.5,
    },
    "mlflow": {
        "enabled": False,
        "tracking_uri": "file:./mlruns",
        "experiment_name": "pima-diabetes-classification",
    },
    "output": {
        "dir": "reports/analysis",
        "save_figures": True,
    },
    "logging": {
        "log_level": "INFO",
        "optuna_verbose": False,
    },
}


# A model's variants and grids are taken as written, never merged with the defaults
REPLACED_SECTIONS = {"variants", "grid", "refine"}


def merge_config(base: dict, overrides: dict) -> dict:
    """Recursively merge ``overrides`` into a copy of ``base``.

    Nested dictionaries are merged key by key, except the keys in
    ``REPLACED_SECTIONS`` which are replaced whole; any other value replaces
    the base value outright (lists are not concatenated).
    """
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if key in REPLACED_SECTIONS:
            merged[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Path = None) -> dict:
    """Load analysis configuration.

    Args:
        config_path: YAML file with overrides; ``None`` returns the defaults

    Returns:
        Complete configuration dictionary
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {config_path}")

    return merge_config(DEFAULT_CONFIG, overrides)


def stage_seed(config: dict, section: str) -> int:
    """Seed for a stochastic stage: ``<section>.seed`` or the global ``random_seed``."""
    return config.get(section, {}).get("seed", config["random_seed"])
