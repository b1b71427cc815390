"""Model families compared in the analysis and their hyperparameter searches."""

import logging
from dataclasses import dataclass, field
from typing import Dict

from sklearn.ensemble import RandomForestClassifier
from sklearn.neural_network import MLPClassifier
from sklearn.svm import SVC

from src.errors import ConfigurationError, SearchFailedError
from src.models.grid_search import SearchResult, coarse_to_fine_search

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FamilyResult:
    """Final model selected for one family."""

    family: str
    variant: str
    params: Dict
    cv_auc: float
    cv_auc_std: float
    model: object
    decision: str = "label"
    searches: Dict[str, SearchResult] = field(default_factory=dict)

    @property
    def n_failed(self) -> int:
        return sum(search.n_failed for search in self.searches.values())


def build_random_forest(family_config: dict, variant_config: dict, seed: int = None):
    """Random forest; ``mtry`` is the number of predictors sampled at each split."""
    n_estimators = family_config.get("n_estimators", 500)

    def factory(params):
        return RandomForestClassifier(
            n_estimators=n_estimators,
            max_features=int(params["mtry"]),
            random_state=seed,
        )

    return factory


def build_svm(family_config: dict, variant_config: dict, seed: int = None):
    """Support vector machine with a linear or radial basis kernel.

    The radial kernel is exp(-sigma * ||x - x'||^2), so ``sigma`` maps to
    scikit-learn's ``gamma``.
    """
    kernel = variant_config.get("kernel")
    if kernel not in ("linear", "rbf"):
        raise ConfigurationError(f"Unsupported SVM kernel: {kernel}")

    def factory(params):
        if kernel == "linear":
            return SVC(kernel="linear", C=float(params["C"]), random_state=seed)
        return SVC(
            kernel="rbf",
            gamma=float(params["sigma"]),
            C=float(params["C"]),
            random_state=seed,
        )

    return factory


def build_neural_network(family_config: dict, variant_config: dict, seed: int = None):
    """Feed-forward network with ``hidden_layers`` layers of ``hidden_units`` units."""
    max_iter = family_config.get("max_iter", 2000)
    solver = family_config.get("solver", "lbfgs")

    def factory(params):
        layers = int(params.get("hidden_layers", 1))
        units = int(params["hidden_units"])
        return MLPClassifier(
            hidden_layer_sizes=(units,) * layers,
            alpha=float(params.get("alpha", 0.0001)),
            solver=solver,
            max_iter=max_iter,
            random_state=seed,
        )

    return factory


FAMILY_BUILDERS = {
    "random_forest": build_random_forest,
    "svm": build_svm,
    "neural_network": build_neural_network,
}


def train_family(family: str, family_config: dict, X, y, cv, seed: int = None, n_jobs: int = None) -> FamilyResult:
    """Search every variant of a family and keep the one with the best CV AUC.

    A variant whose whole search fails is logged and skipped; ties between
    variants go to the one listed first.

    Args:
        family: Family name (key of ``FAMILY_BUILDERS``)
        family_config: Family section of the ``models`` configuration
        X, y: Standardized training features and binary labels
        cv: Cross-validation splitter
        seed: Seed for model fitting and grid enumeration
        n_jobs: Parallel jobs for cross-validation

    Returns:
        FamilyResult for the winning variant

    Raises:
        SearchFailedError: Every variant failed
    """
    if family not in FAMILY_BUILDERS:
        raise ConfigurationError(
            f"Unknown model family '{family}', expected one of {list(FAMILY_BUILDERS)}"
        )

    variants = family_config.get("variants") or {}
    if not variants:
        raise ConfigurationError(f"Model family '{family}' has no variants configured")

    builder = FAMILY_BUILDERS[family]
    searches = {}
    for variant, variant_config in variants.items():
        variant_config = dict(variant_config)
        if family == "svm":
            variant_config.setdefault("kernel", variant)

        factory = builder(family_config, variant_config, seed=seed)
        logger.info(f"Searching {family}/{variant} over {variant_config['grid']}")
        try:
            searches[variant] = coarse_to_fine_search(
                variant,
                factory,
                variant_config["grid"],
                X,
                y,
                cv,
                stages=variant_config.get("stages", 1),
                refine=variant_config.get("refine"),
                refine_points=variant_config.get("refine_points", 5),
                seed=seed,
                n_jobs=n_jobs,
            )
        except SearchFailedError as e:
            logger.error(f"{family}/{variant} search failed: {e}")

    if not searches:
        raise SearchFailedError(f"Every variant of '{family}' failed", stage=f"training ({family})")

    order = list(variants)
    winner = min(searches.values(), key=lambda s: (-s.best.mean_auc, order.index(s.variant)))

    logger.info(
        f"{family}: selected {winner.variant} {winner.best.params} "
        f"(CV AUC {winner.best.mean_auc:.4f} +/- {winner.best.std_auc:.4f})"
    )

    return FamilyResult(
        family=family,
        variant=winner.variant,
        params=dict(winner.best.params),
        cv_auc=winner.best.mean_auc,
        cv_auc_std=winner.best.std_auc,
        model=winner.model,
        decision=family_config.get("decision", "label"),
        searches=searches,
    )
