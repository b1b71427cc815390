"""Analysis pipeline: load, impute, standardize, split, tune and compare three model families."""

import argparse
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import mlflow
import numpy as np
import optuna
import pandas as pd

from src.config.constants import POSITIVE_LABEL, PREDICTOR_COLUMNS, TARGET_COLUMN
from src.config.settings import load_config, stage_seed
from src.data.load_data import load_observations
from src.data.missingness import assess_missingness, summarize_zeros
from src.errors import PipelineError, SearchFailedError
from src.features.preprocess import (
    create_preprocessing_pipeline,
    drop_correlated_features,
    find_correlated_pairs,
    split_indices,
)
from src.models.evaluate import (
    EvaluationResult,
    evaluate_family,
    generate_figures,
    majority_baseline_accuracy,
    select_best_family,
)
from src.models.families import FamilyResult, train_family
from src.models.grid_search import make_cv

logger = logging.getLogger(__name__)


@dataclass
class AnalysisReport:
    """Everything the report layer consumes from a pipeline run."""

    n_rows: int
    n_train: int
    n_test: int
    zero_summary: pd.DataFrame
    missingness: Dict
    correlated_pairs: List
    dropped_features: List[str]
    features: List[str]
    families: Dict[str, FamilyResult] = field(default_factory=dict)
    evaluations: Dict[str, EvaluationResult] = field(default_factory=dict)
    failed_families: Dict[str, str] = field(default_factory=dict)
    baseline_accuracy: float = float("nan")
    best_family: str = None

    def grid_results(self) -> pd.DataFrame:
        """One row per evaluated grid point across all families."""
        rows = []
        for family, result in self.families.items():
            for search in result.searches.values():
                for point in search.points:
                    rows.append(
                        {
                            "family": family,
                            "variant": point.variant,
                            "stage": point.stage + 1,
                            "params": json.dumps(point.params, sort_keys=True),
                            "cv_auc": point.mean_auc,
                            "cv_auc_std": point.std_auc,
                            "failed": point.failed,
                            "error": point.error,
                        }
                    )
        return pd.DataFrame(rows)

    def summary(self) -> dict:
        """JSON-serializable summary of the run."""
        return {
            "n_rows": self.n_rows,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "zero_counts": self.zero_summary["zero_count"].to_dict(),
            "missingness": {
                "columns_with_missing": self.missingness["columns_with_missing"],
                "dependent_pairs": [list(p) for p in self.missingness["dependent_pairs"]],
                "mcar_plausible": self.missingness["mcar_plausible"],
                "max_indicator_correlation": self.missingness["max_indicator_correlation"],
            },
            "correlated_pairs": [[a, b, round(r, 4)] for a, b, r in self.correlated_pairs],
            "dropped_features": self.dropped_features,
            "baseline_accuracy": self.baseline_accuracy,
            "families": {
                name: {
                    "variant": result.variant,
                    "params": result.params,
                    "cv_auc": result.cv_auc,
                    "cv_auc_std": result.cv_auc_std,
                    "failed_grid_points": result.n_failed,
                    "test_accuracy": self.evaluations[name].accuracy,
                    "test_auc": self.evaluations[name].test_auc,
                    "viable": self.evaluations[name].viable,
                }
                for name, result in self.families.items()
            },
            "failed_families": self.failed_families,
            "best_family": self.best_family,
        }


def prepare_features(observations: pd.DataFrame, config: dict):
    """Stages 3-6: zero-as-missing, imputation, correlation screen, standardization.

    Returns:
        Tuple of (standardized_features, zero_summary, missingness_report,
        correlated_pairs, dropped_columns)
    """
    preprocessing = config["preprocessing"]
    zero_columns = preprocessing["zero_as_missing"]

    X = observations[PREDICTOR_COLUMNS]
    zero_summary = summarize_zeros(X, zero_columns)
    logger.info(f"Zero-coded values per column: {zero_summary['zero_count'].to_dict()}")

    preprocessor = create_preprocessing_pipeline(
        zero_as_missing=zero_columns,
        imputer_params={k: v for k, v in config["imputation"].items() if k != "seed"},
        seed=stage_seed(config, "imputation"),
    )

    with_missing = preprocessor.named_steps["zero_to_missing"].fit_transform(X)
    missingness = assess_missingness(
        with_missing, zero_columns, alpha=preprocessing["missingness_alpha"]
    )

    features = preprocessor.fit_transform(X)

    pairs = find_correlated_pairs(
        features, list(features.columns), threshold=preprocessing["correlation_threshold"]
    )
    if pairs:
        logger.info(f"Correlated pairs above {preprocessing['correlation_threshold']}: {pairs}")
    else:
        logger.info(f"No predictor pair exceeds |r| > {preprocessing['correlation_threshold']}")

    dropped = []
    if pairs and preprocessing["drop_correlated"]:
        features, dropped = drop_correlated_features(features, pairs)

    return features, zero_summary, missingness, pairs, dropped


def run_pipeline(config: dict, data_path: Path = None, output_dir: Path = None) -> AnalysisReport:
    """Run the whole analysis.

    Args:
        config: Configuration from ``load_config``
        data_path: Input CSV (default ``data.raw_path``)
        output_dir: Where the summary and figures go (default ``output.dir``);
            nothing is written when both are unset

    Returns:
        AnalysisReport

    Raises:
        PipelineError: A stage failed; family search failures only raise
            when every family failed
    """
    data_path = Path(data_path or config["data"]["raw_path"])
    if output_dir is None and config["output"].get("dir"):
        output_dir = Path(config["output"]["dir"])

    observations = load_observations(data_path, has_header=config["data"]["has_header"])
    features, zero_summary, missingness, pairs, dropped = prepare_features(observations, config)

    y = (observations[TARGET_COLUMN] == POSITIVE_LABEL).astype(int).to_numpy()

    train_idx, test_idx = split_indices(
        len(features), config["split"]["train_fraction"], seed=stage_seed(config, "split")
    )
    X_train, X_test = features.iloc[train_idx], features.iloc[test_idx]
    y_train, y_test = y[train_idx], y[test_idx]
    logger.info(
        f"Train size: {len(X_train)}, Test size: {len(X_test)}, "
        f"train positive rate: {y_train.mean():.3f}, test positive rate: {y_test.mean():.3f}"
    )

    report = AnalysisReport(
        n_rows=len(observations),
        n_train=len(X_train),
        n_test=len(X_test),
        zero_summary=zero_summary,
        missingness=missingness,
        correlated_pairs=pairs,
        dropped_features=dropped,
        features=list(features.columns),
    )

    training_seed = stage_seed(config, "cross_validation")
    cv = make_cv(config["cross_validation"], seed=training_seed)
    n_jobs = config["cross_validation"].get("n_jobs")

    for family, family_config in config["models"].items():
        if not family_config.get("enabled", True):
            continue
        try:
            report.families[family] = train_family(
                family, family_config, X_train, y_train, cv, seed=training_seed, n_jobs=n_jobs
            )
        except SearchFailedError as e:
            logger.error(f"{family} excluded: {e}")
            report.failed_families[family] = str(e)

    if not report.families:
        raise SearchFailedError("Every model family failed to train")

    report.baseline_accuracy = majority_baseline_accuracy(y_train, y_test)
    logger.info(f"Majority-class baseline accuracy: {report.baseline_accuracy:.4f}")

    threshold = config["evaluation"]["threshold"]
    for family, result in report.families.items():
        evaluation = evaluate_family(result, X_test, y_test, report.baseline_accuracy, threshold)
        report.evaluations[family] = evaluation
        logger.info(
            f"{family}: test accuracy {evaluation.accuracy:.4f} "
            f"(CV AUC {evaluation.cv_auc:.4f}, test AUC {evaluation.test_auc:.4f})"
        )

    best = select_best_family(list(report.evaluations.values()))
    report.best_family = best.family
    logger.info(f"Best family: {best.family} (test accuracy {best.accuracy:.4f})")

    if output_dir is not None:
        artifacts = save_outputs(report, features, X_test, y_test, config, Path(output_dir))
    else:
        artifacts = {}

    if config["mlflow"]["enabled"]:
        log_to_mlflow(report, config, artifacts)

    return report


def save_outputs(report: AnalysisReport, features, X_test, y_test, config: dict, output_dir: Path) -> Dict[str, Path]:
    """Write the JSON summary, the grid-point table and optional figures."""
    output_dir.mkdir(parents=True, exist_ok=True)

    summary = report.summary()
    summary["generated_at"] = datetime.now().isoformat()

    paths = {
        "summary": output_dir / "analysis_summary.json",
        "grid_results": output_dir / "grid_results.csv",
    }
    with open(paths["summary"], "w") as f:
        json.dump(summary, f, indent=2, default=_json_default)
    report.grid_results().to_csv(paths["grid_results"], index=False)

    if config["output"]["save_figures"]:
        paths.update(
            generate_figures(
                list(report.families.values()),
                X_test,
                y_test,
                features,
                config["preprocessing"]["correlation_threshold"],
                output_dir,
            )
        )

    logger.info(f"Results saved to: {output_dir}")
    return paths


def _json_default(value):
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def log_to_mlflow(report: AnalysisReport, config: dict, artifacts: Dict[str, Path]):
    """Log parameters, metrics and result files of the run to MLflow."""
    mlflow.set_tracking_uri(config["mlflow"]["tracking_uri"])
    mlflow.set_experiment(config["mlflow"]["experiment_name"])

    with mlflow.start_run():
        mlflow.log_param("random_seed", config["random_seed"])
        mlflow.log_params({f"imputation_{k}": v for k, v in config["imputation"].items()})
        mlflow.log_params({f"cv_{k}": v for k, v in config["cross_validation"].items()})
        mlflow.log_param("train_fraction", config["split"]["train_fraction"])
        mlflow.log_param("decision_threshold", config["evaluation"]["threshold"])
        mlflow.log_param("best_family", report.best_family)

        mlflow.log_metric("baseline_accuracy", report.baseline_accuracy)
        for family, result in report.families.items():
            mlflow.log_params({f"{family}_{k}": v for k, v in result.params.items()})
            mlflow.log_param(f"{family}_variant", result.variant)
            mlflow.log_metrics(
                {
                    f"{family}_cv_auc": result.cv_auc,
                    f"{family}_test_accuracy": report.evaluations[family].accuracy,
                    f"{family}_failed_grid_points": result.n_failed,
                }
            )

        for path in artifacts.values():
            mlflow.log_artifact(str(path))

        logger.info(f"MLflow run ID: {mlflow.active_run().info.run_id}")


def main():
    """CLI entry point for the analysis pipeline."""
    parser = argparse.ArgumentParser(description="Compare diabetes classifiers on the Pima dataset")
    parser.add_argument(
        "--config", type=Path, default=Path("configs/pipeline_config.yaml"), help="Config file path"
    )
    parser.add_argument("--data", type=Path, default=None, help="Input CSV (overrides config)")
    parser.add_argument("--output-dir", type=Path, default=None, help="Output directory")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_config(args.config)
    except PipelineError as e:
        logger.error(f"{e.stage} stage failed: {e}")
        return 1

    log_level = config.get("logging", {}).get("log_level", "INFO")
    logging.getLogger().setLevel(getattr(logging, log_level.upper(), logging.INFO))
    if not config["logging"].get("optuna_verbose", False):
        optuna.logging.set_verbosity(optuna.logging.WARNING)

    try:
        report = run_pipeline(config, data_path=args.data, output_dir=args.output_dir)
    except PipelineError as e:
        logger.error(f"{e.stage} stage failed: {e}")
        return 1

    logger.info(f"\n{'=' * 60}")
    logger.info("MODEL COMPARISON")
    logger.info(f"{'=' * 60}")
    for family, evaluation in report.evaluations.items():
        flag = "" if evaluation.viable else "  (not better than baseline)"
        logger.info(
            f"  {family:16s} {report.families[family].variant:8s} "
            f"CV AUC {evaluation.cv_auc:.4f}  test accuracy {evaluation.accuracy:.4f}{flag}"
        )
    logger.info(f"  {'baseline':16s} {'majority':8s} test accuracy {report.baseline_accuracy:.4f}")
    for family, error in report.failed_families.items():
        logger.info(f"  {family:16s} FAILED: {error}")
    logger.info(f"Best family: {report.best_family}")

    return 0


if __name__ == "__main__":
    exit(main())
