"""Held-out evaluation of the selected models and diagnostic figures."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import accuracy_score, auc, confusion_matrix, roc_auc_score, roc_curve

from src.errors import ConfigurationError

logger = logging.getLogger(__name__)

DECISIONS = ("label", "probability")


@dataclass(frozen=True)
class EvaluationResult:
    """Test-set performance of one family's final model."""

    family: str
    variant: str
    accuracy: float
    baseline_accuracy: float
    viable: bool
    cv_auc: float
    test_auc: float
    true_positives: int
    false_positives: int
    true_negatives: int
    false_negatives: int
    n_test: int


def positive_scores(model, X):
    """Continuous score for the positive class (probability or decision value)."""
    if hasattr(model, "predict_proba"):
        return model.predict_proba(X)[:, list(model.classes_).index(1)]
    return model.decision_function(X)


def predict_labels(model, X, decision: str = "label", threshold: float = 0.5) -> np.ndarray:
    """Predict binary labels.

    Args:
        model: Fitted classifier trained on 0/1 labels
        X: Features
        decision: ``"label"`` uses ``model.predict``; ``"probability"``
            thresholds the positive-class probability
        threshold: Probability cut-off for ``"probability"`` decisions

    Returns:
        Array of 0/1 predictions
    """
    if decision not in DECISIONS:
        raise ConfigurationError(f"Unknown decision rule '{decision}', expected one of {DECISIONS}")

    if decision == "probability":
        if not 0 < threshold < 1:
            raise ConfigurationError(f"Decision threshold must be in (0, 1), got {threshold}")
        y_proba = model.predict_proba(X)[:, list(model.classes_).index(1)]
        return (y_proba >= threshold).astype(int)

    return np.asarray(model.predict(X)).astype(int)


def majority_baseline_accuracy(y_train, y_test) -> float:
    """Accuracy of always predicting the most frequent training class.

    Ties between classes go to the negative class (0).
    """
    y_train = np.asarray(y_train)
    majority = int(np.mean(y_train) > 0.5)
    return float(np.mean(np.asarray(y_test) == majority))


def evaluate_family(result, X_test, y_test, baseline_accuracy: float, threshold: float = 0.5) -> EvaluationResult:
    """Score a family's final model on the held-out test set.

    Args:
        result: FamilyResult from training
        X_test: Standardized test features
        y_test: Binary test labels
        baseline_accuracy: Majority-class accuracy on the same test set
        threshold: Cut-off for probability decisions

    Returns:
        EvaluationResult; ``viable`` is False at or below the baseline
    """
    y_test = np.asarray(y_test).astype(int)
    y_pred = predict_labels(result.model, X_test, result.decision, threshold)

    accuracy = accuracy_score(y_test, y_pred)

    try:
        test_auc = roc_auc_score(y_test, positive_scores(result.model, X_test))
    except ValueError:
        # single-class test set
        test_auc = float("nan")

    tn, fp, fn, tp = confusion_matrix(y_test, y_pred, labels=[0, 1]).ravel()
    viable = accuracy > baseline_accuracy

    if not viable:
        logger.warning(
            f"{result.family}: test accuracy {accuracy:.4f} does not beat "
            f"the majority-class baseline {baseline_accuracy:.4f}"
        )

    return EvaluationResult(
        family=result.family,
        variant=result.variant,
        accuracy=float(accuracy),
        baseline_accuracy=float(baseline_accuracy),
        viable=bool(viable),
        cv_auc=float(result.cv_auc),
        test_auc=float(test_auc),
        true_positives=int(tp),
        false_positives=int(fp),
        true_negatives=int(tn),
        false_negatives=int(fn),
        n_test=int(len(y_test)),
    )


def select_best_family(evaluations: List[EvaluationResult]) -> EvaluationResult:
    """Family with the highest test accuracy.

    Ties go to the higher cross-validated AUC, then to the family evaluated
    first.
    """
    if not evaluations:
        raise ConfigurationError("No evaluated model families to compare")
    return min(
        enumerate(evaluations),
        key=lambda item: (-item[1].accuracy, -item[1].cv_auc, item[0]),
    )[1]


def generate_roc_curve(families, X_test, y_test, output_path):
    """Generate ROC curves of every family's final model.

    Args:
        families: List of FamilyResult
        X_test: Standardized test features
        y_test: Binary test labels
        output_path: Path to save plot
    """
    fig, ax = plt.subplots(figsize=(8, 7))

    for result in families:
        fpr, tpr, _ = roc_curve(y_test, positive_scores(result.model, X_test))
        roc_auc = auc(fpr, tpr)
        ax.plot(fpr, tpr, linewidth=2, label=f"{result.family} (AUC = {roc_auc:.3f})")

    ax.plot([0, 1], [0, 1], "k--", linewidth=1, label="Random Classifier")

    ax.set_xlabel("False Positive Rate", fontsize=12)
    ax.set_ylabel("True Positive Rate", fontsize=12)
    ax.set_title("ROC Curves (test set)", fontsize=14, fontweight="bold")
    ax.legend(loc="lower right", fontsize=10)
    ax.grid(alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"ROC curves saved to: {output_path}")


def generate_correlation_heatmap(df: pd.DataFrame, threshold: float, output_path):
    """Generate the predictor correlation heatmap."""
    corr = df.corr(method="pearson")

    fig, ax = plt.subplots(figsize=(9, 7))
    sns.heatmap(corr, annot=True, fmt=".2f", cmap="RdBu_r", vmin=-1, vmax=1, ax=ax)
    ax.set_title(f"Pearson Correlation (flag |r| > {threshold})", fontsize=14, fontweight="bold")

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Correlation heatmap saved to: {output_path}")


def generate_grid_search_profile(result, output_path):
    """Plot cross-validated AUC of every evaluated grid point of a family."""
    rows = []
    for search in result.searches.values():
        for point in search.points:
            if point.failed:
                continue
            label = ", ".join(f"{k}={v}" for k, v in point.params.items())
            rows.append(
                {
                    "config": f"{search.variant}: {label}",
                    "auc": point.mean_auc,
                    "std": point.std_auc,
                    "stage": f"stage {point.stage + 1}",
                }
            )
    if not rows:
        return

    profile = pd.DataFrame(rows).drop_duplicates("config").sort_values("auc")

    fig, ax = plt.subplots(figsize=(9, max(3, 0.3 * len(profile))))
    sns.barplot(data=profile, x="auc", y="config", hue="stage", dodge=False, ax=ax)
    ax.errorbar(profile["auc"], np.arange(len(profile)), xerr=profile["std"], fmt="none", ecolor="black")
    ax.set_xlim(max(0.0, profile["auc"].min() - 0.05), min(1.0, profile["auc"].max() + 0.05))
    ax.set_xlabel("Cross-validated ROC AUC", fontsize=12)
    ax.set_ylabel("")
    ax.set_title(f"{result.family}: grid search profile", fontsize=14, fontweight="bold")

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Grid search profile saved to: {output_path}")


def generate_figures(families, X_test, y_test, features, threshold, output_dir: Path) -> Dict[str, Path]:
    """Write every diagnostic figure and return their paths."""
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "roc_curves": output_dir / "roc_curves.png",
        "correlation": output_dir / "correlation_heatmap.png",
    }

    generate_roc_curve(families, X_test, y_test, paths["roc_curves"])
    generate_correlation_heatmap(features, threshold, paths["correlation"])

    for result in families:
        path = output_dir / f"grid_search_{result.family}.png"
        generate_grid_search_profile(result, path)
        if path.exists():
            paths[f"grid_search_{result.family}"] = path

    return paths
