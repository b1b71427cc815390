"""Tests for cross-validated grid search."""

import pytest
from sklearn.datasets import make_classification
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import RepeatedStratifiedKFold

from src.errors import ConfigurationError, SearchFailedError
from src.models.grid_search import (
    GridPointResult,
    coarse_to_fine_search,
    expand_grid,
    make_cv,
    refine_grid,
    run_grid_stage,
    select_best_point,
)


@pytest.fixture
def classification_data():
    X, y = make_classification(n_samples=150, n_features=5, n_informative=3, random_state=0)
    return X, y


@pytest.fixture
def cv():
    return RepeatedStratifiedKFold(n_splits=3, n_repeats=1, random_state=0)


def logistic_factory(params):
    return LogisticRegression(C=params["C"], max_iter=params.get("max_iter", 500))


def point(position, auc, std=0.01, stage=0, failed=False):
    return GridPointResult(
        variant="v", stage=stage, position=position, params={"p": position},
        mean_auc=auc, std_auc=std, failed=failed,
    )


class TestExpandGrid:
    def test_cartesian_product_in_key_order(self):
        points = expand_grid({"a": [1, 2], "b": ["x", "y"]})

        assert points == [
            {"a": 1, "b": "x"},
            {"a": 1, "b": "y"},
            {"a": 2, "b": "x"},
            {"a": 2, "b": "y"},
        ]

    def test_empty_grid(self):
        with pytest.raises(ConfigurationError):
            expand_grid({})

    def test_parameter_without_values(self):
        with pytest.raises(ConfigurationError, match="b"):
            expand_grid({"a": [1], "b": []})


class TestSelectBestPoint:
    def test_highest_auc_wins(self):
        best = select_best_point([point(0, 0.80), point(1, 0.85), point(2, 0.82)])

        assert best.position == 1

    def test_tie_broken_by_lower_std(self):
        best = select_best_point([point(0, 0.85, std=0.05), point(1, 0.85, std=0.02)])

        assert best.position == 1

    def test_tie_broken_by_stage_then_position(self):
        best = select_best_point(
            [point(3, 0.85, stage=1), point(2, 0.85, stage=0), point(1, 0.85, stage=0)]
        )

        assert (best.stage, best.position) == (0, 1)

    def test_failed_points_ignored(self):
        best = select_best_point([point(0, float("nan"), failed=True), point(1, 0.6)])

        assert best.position == 1

    def test_all_failed(self):
        with pytest.raises(SearchFailedError):
            select_best_point([point(0, float("nan"), failed=True)])


class TestRefineGrid:
    def test_log_scale_around_best(self):
        refined = refine_grid({"C": [0.01, 0.1, 1.0, 10.0]}, {"C": 0.1}, {"C": {"scale": "log"}}, 3)

        assert refined["C"] == [0.01, 0.1, 1.0]

    def test_linear_scale_includes_best(self):
        refined = refine_grid({"C": [1.0, 2.0, 4.0]}, {"C": 2.0}, {"C": {}}, 5)

        assert refined["C"] == [1.0, 1.75, 2.0, 2.5, 3.25, 4.0]

    def test_other_parameters_fixed_at_best(self):
        refined = refine_grid(
            {"C": [1.0, 10.0], "sigma": [0.1, 0.2]},
            {"C": 1.0, "sigma": 0.2},
            {"C": {"scale": "log"}},
            3,
        )

        assert refined["sigma"] == [0.2]
        assert refined["C"][0] == 1.0 and refined["C"][-1] == 10.0

    def test_integer_values_deduplicated(self):
        refined = refine_grid({"k": [2, 4, 6]}, {"k": 4}, {"k": {"integer": True}}, 9)

        assert refined["k"] == [2, 3, 4, 5, 6]

    def test_edge_best_value(self):
        refined = refine_grid({"C": [1.0, 10.0, 100.0]}, {"C": 100.0}, {"C": {"scale": "log"}}, 3)

        assert refined["C"][0] == 10.0
        assert refined["C"][-1] == 100.0

    def test_unknown_parameter(self):
        with pytest.raises(ConfigurationError):
            refine_grid({"C": [1.0]}, {"C": 1.0}, {"gamma": {}}, 3)


class TestRunGridStage:
    def test_scores_every_point(self, classification_data, cv):
        X, y = classification_data

        points = run_grid_stage("logreg", logistic_factory, {"C": [0.01, 1.0, 100.0]}, X, y, cv, seed=0)

        assert [p.params["C"] for p in points] == [0.01, 1.0, 100.0]
        assert all(not p.failed for p in points)
        assert all(0.5 < p.mean_auc <= 1.0 for p in points)

    def test_failed_point_is_excluded_not_fatal(self, classification_data, cv):
        X, y = classification_data

        points = run_grid_stage("logreg", logistic_factory, {"C": [-1.0, 1.0]}, X, y, cv, seed=0)

        failed = [p for p in points if p.failed]
        assert len(failed) == 1
        assert failed[0].params == {"C": -1.0}
        assert failed[0].error
        assert select_best_point(points).params == {"C": 1.0}

    def test_unconverged_point_is_excluded(self, classification_data, cv):
        X, y = classification_data

        points = run_grid_stage(
            "logreg", logistic_factory, {"C": [1.0], "max_iter": [1, 500]}, X, y, cv, seed=0
        )

        assert [p.failed for p in points] == [True, False]
        assert select_best_point(points).params["max_iter"] == 500

    def test_cv_from_config(self):
        cv = make_cv({"n_splits": 10, "n_repeats": 10}, seed=1)

        assert cv.get_n_splits() == 100


class TestCoarseToFineSearch:
    def test_two_stage_search_refits_best(self, classification_data, cv):
        X, y = classification_data

        result = coarse_to_fine_search(
            "logreg",
            logistic_factory,
            {"C": [0.001, 1.0, 1000.0]},
            X,
            y,
            cv,
            stages=2,
            refine={"C": {"scale": "log"}},
            refine_points=3,
            seed=0,
        )

        assert {p.stage for p in result.points} == {0, 1}
        assert result.best.mean_auc == max(p.mean_auc for p in result.points if not p.failed)
        assert result.model.C == result.best.params["C"]
        assert hasattr(result.model, "coef_")

    def test_deterministic(self, classification_data, cv):
        X, y = classification_data

        first = coarse_to_fine_search("logreg", logistic_factory, {"C": [0.01, 1.0]}, X, y, cv, seed=4)
        second = coarse_to_fine_search("logreg", logistic_factory, {"C": [0.01, 1.0]}, X, y, cv, seed=4)

        assert first.best == second.best

    def test_every_point_failing(self, classification_data, cv):
        X, y = classification_data

        with pytest.raises(SearchFailedError):
            coarse_to_fine_search("logreg", logistic_factory, {"C": [-1.0, -2.0]}, X, y, cv)

    def test_multi_stage_requires_refine(self, classification_data, cv):
        X, y = classification_data

        with pytest.raises(ConfigurationError):
            coarse_to_fine_search("logreg", logistic_factory, {"C": [1.0]}, X, y, cv, stages=2)
