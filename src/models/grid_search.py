"""Cross-validated grid search scored by ROC AUC.

Grid points are enumerated with optuna's ``GridSampler`` so that every
combination is tried exactly once and a point that fails to fit is
recorded as a failed trial instead of stopping the search.
"""

import itertools
import logging
import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np
import optuna
from optuna.trial import TrialState
from sklearn.exceptions import ConvergenceWarning
from sklearn.model_selection import RepeatedStratifiedKFold, cross_val_score

from src.errors import ConfigurationError, FitFailureError, SearchFailedError

logger = logging.getLogger(__name__)

FIT_ERRORS = (ValueError, ArithmeticError, np.linalg.LinAlgError, ConvergenceWarning)


@dataclass(frozen=True)
class GridPointResult:
    """Cross-validated score of one hyperparameter combination."""

    variant: str
    stage: int
    position: int
    params: Dict
    mean_auc: float = float("nan")
    std_auc: float = float("nan")
    failed: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class SearchResult:
    """Outcome of a (possibly multi-stage) search for one model variant."""

    variant: str
    best: GridPointResult
    model: object
    points: List[GridPointResult] = field(default_factory=list)

    @property
    def n_failed(self) -> int:
        return sum(point.failed for point in self.points)


def expand_grid(grid: Dict[str, list]) -> List[Dict]:
    """Cartesian product of a parameter grid, in key order then value order.

    Raises:
        ConfigurationError: Empty grid or a parameter without values
    """
    if not grid:
        raise ConfigurationError("Hyperparameter grid is empty")
    empty = [name for name, values in grid.items() if not values]
    if empty:
        raise ConfigurationError(f"Hyperparameter(s) without candidate values: {empty}")

    names = list(grid)
    return [dict(zip(names, values)) for values in itertools.product(*(grid[n] for n in names))]


def _grid_key(params: Dict):
    return tuple(sorted(params.items()))


def make_cv(cv_config: dict, seed: int = None) -> RepeatedStratifiedKFold:
    """Build the repeated stratified k-fold splitter from configuration."""
    return RepeatedStratifiedKFold(
        n_splits=cv_config["n_splits"],
        n_repeats=cv_config["n_repeats"],
        random_state=seed,
    )


class CrossValidatedAUCObjective:
    """Optuna objective: mean ROC AUC over cross-validation folds."""

    def __init__(self, variant, estimator_factory, grid, X, y, cv, n_jobs=None):
        """Initialize objective.

        Args:
            variant: Name used in log messages
            estimator_factory: Callable mapping a params dict to an unfitted estimator
            grid: Parameter grid being enumerated
            X, y: Training data (binary ``y``, 1 = positive class)
            cv: Cross-validation splitter
            n_jobs: Parallel jobs for ``cross_val_score``
        """
        self.variant = variant
        self.estimator_factory = estimator_factory
        self.grid = grid
        self.X = X
        self.y = y
        self.cv = cv
        self.n_jobs = n_jobs
        self.positions = {_grid_key(p): i for i, p in enumerate(expand_grid(grid))}

    def __call__(self, trial):
        """Score one grid point.

        Args:
            trial: Optuna trial

        Returns:
            Mean cross-validated AUC

        Raises:
            FitFailureError: The estimator could not be fit or scored
        """
        params = {
            name: trial.suggest_categorical(name, values) for name, values in self.grid.items()
        }
        trial.set_user_attr("position", self.positions[_grid_key(params)])

        try:
            estimator = self.estimator_factory(params)
            _check_max_features(estimator, np.shape(self.X)[1])
            with warnings.catch_warnings():
                warnings.simplefilter("error", ConvergenceWarning)
                scores = cross_val_score(
                    estimator,
                    self.X,
                    self.y,
                    scoring="roc_auc",
                    cv=self.cv,
                    n_jobs=self.n_jobs,
                    error_score="raise",
                )
        except FIT_ERRORS as e:
            trial.set_user_attr("error", str(e))
            logger.warning(f"[{self.variant}] grid point {params} failed: {e}")
            raise FitFailureError(f"{self.variant} {params}: {e}") from e

        if not np.all(np.isfinite(scores)):
            message = "non-finite AUC on at least one fold"
            trial.set_user_attr("error", message)
            logger.warning(f"[{self.variant}] grid point {params} failed: {message}")
            raise FitFailureError(f"{self.variant} {params}: {message}")

        trial.set_user_attr("std_auc", float(np.std(scores)))
        logger.debug(f"[{self.variant}] {params}: AUC {scores.mean():.4f} +/- {scores.std():.4f}")
        return float(np.mean(scores))


def _check_max_features(estimator, n_features):
    """Reject an integer ``max_features`` larger than the number of predictors."""
    max_features = getattr(estimator, "max_features", None)
    if isinstance(max_features, (int, np.integer)) and not 1 <= max_features <= n_features:
        raise ValueError(f"max_features={max_features} must be in [1, {n_features}]")


def run_grid_stage(variant, estimator_factory, grid, X, y, cv, stage=0, seed=None, n_jobs=None):
    """Evaluate every point of ``grid`` once.

    Returns:
        List of GridPointResult in grid order, failed points included
    """
    points = expand_grid(grid)
    objective = CrossValidatedAUCObjective(variant, estimator_factory, grid, X, y, cv, n_jobs)

    study = optuna.create_study(
        direction="maximize",
        sampler=optuna.samplers.GridSampler(grid, seed=seed),
    )
    study.optimize(objective, n_trials=len(points), catch=(FitFailureError,))

    results = []
    for trial in study.trials:
        if trial.state == TrialState.COMPLETE:
            results.append(
                GridPointResult(
                    variant=variant,
                    stage=stage,
                    position=trial.user_attrs["position"],
                    params=dict(trial.params),
                    mean_auc=float(trial.value),
                    std_auc=trial.user_attrs["std_auc"],
                )
            )
        elif trial.state == TrialState.FAIL:
            results.append(
                GridPointResult(
                    variant=variant,
                    stage=stage,
                    position=trial.user_attrs.get("position", -1),
                    params=dict(trial.params),
                    failed=True,
                    error=trial.user_attrs.get("error"),
                )
            )

    results.sort(key=lambda point: point.position)
    return results


def select_best_point(points: List[GridPointResult]) -> GridPointResult:
    """Pick the grid point with the highest mean AUC.

    Ties are broken by the lower fold standard deviation, then the earlier
    search stage, then the earlier position in the enumerated grid.

    Raises:
        SearchFailedError: Every point failed
    """
    candidates = [point for point in points if not point.failed]
    if not candidates:
        raise SearchFailedError(f"All {len(points)} grid point(s) failed")
    return min(candidates, key=lambda p: (-p.mean_auc, p.std_auc, p.stage, p.position))


def _round_value(value):
    return float(f"{value:.6g}")


def refine_grid(grid: Dict[str, list], best_params: Dict, refine: Dict[str, dict], n_points: int = 5) -> Dict[str, list]:
    """Build a narrower grid around the best point of a coarse search.

    Each parameter in ``refine`` is replaced by ``n_points`` values spanning
    the coarse values on either side of its best value (geometric spacing
    for ``scale: log``, arithmetic otherwise; ``integer: true`` rounds and
    deduplicates). Every other parameter is fixed at its best value.

    Args:
        grid: Grid of the previous stage
        best_params: Best parameters found on ``grid``
        refine: Per-parameter refinement settings
        n_points: Number of values per refined parameter

    Returns:
        New parameter grid
    """
    unknown = [name for name in refine if name not in grid]
    if unknown:
        raise ConfigurationError(f"Cannot refine parameter(s) not in grid: {unknown}")

    refined = {}
    for name, values in grid.items():
        best = best_params[name]
        if name not in refine:
            refined[name] = [best]
            continue

        ordered = sorted(values)
        i = ordered.index(best)
        low = ordered[max(i - 1, 0)]
        high = ordered[min(i + 1, len(ordered) - 1)]
        if low == high:
            refined[name] = [best]
            continue

        settings = refine[name] or {}
        if settings.get("scale", "linear") == "log":
            candidates = np.geomspace(low, high, n_points)
        else:
            candidates = np.linspace(low, high, n_points)

        if settings.get("integer", False):
            new_values = {int(round(v)) for v in candidates}
        else:
            new_values = {_round_value(v) for v in candidates}
        new_values.add(best)
        refined[name] = sorted(new_values)

    return refined


def coarse_to_fine_search(
    variant: str,
    estimator_factory: Callable,
    grid: Dict[str, list],
    X,
    y,
    cv,
    stages: int = 1,
    refine: Dict[str, dict] = None,
    refine_points: int = 5,
    seed: int = None,
    n_jobs: int = None,
) -> SearchResult:
    """Search ``grid``, then repeatedly re-search a narrower grid around the best point.

    The best point over all stages is refit on the full training data.

    Args:
        variant: Model variant name
        estimator_factory: Callable mapping a params dict to an unfitted estimator
        grid: Initial (coarse) parameter grid
        X, y: Training data
        cv: Cross-validation splitter
        stages: Number of search rounds (1 disables refinement)
        refine: Per-parameter refinement settings, see ``refine_grid``
        refine_points: Values per refined parameter
        seed: Seed for grid enumeration order
        n_jobs: Parallel jobs for cross-validation

    Returns:
        SearchResult with the refit model and every evaluated point
    """
    if stages < 1:
        raise ConfigurationError(f"stages must be >= 1, got {stages}")
    if stages > 1 and not refine:
        raise ConfigurationError(f"{variant}: multi-stage search needs 'refine' parameters")

    all_points = []
    stage_grid = grid
    for stage in range(stages):
        points = run_grid_stage(
            variant, estimator_factory, stage_grid, X, y, cv, stage=stage, seed=seed, n_jobs=n_jobs
        )
        all_points.extend(points)

        n_failed = sum(point.failed for point in points)
        stage_best = select_best_point(all_points)
        logger.info(
            f"[{variant}] stage {stage + 1}/{stages}: {len(points)} point(s), "
            f"{n_failed} failed, best {stage_best.params} AUC {stage_best.mean_auc:.4f}"
        )

        if stage + 1 < stages:
            stage_grid = refine_grid(stage_grid, stage_best.params, refine, refine_points)

    best = select_best_point(all_points)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            model = estimator_factory(best.params).fit(X, y)
    except FIT_ERRORS as e:
        raise SearchFailedError(f"{variant}: refit of {best.params} failed: {e}") from e

    return SearchResult(variant=variant, best=best, model=model, points=all_points)
