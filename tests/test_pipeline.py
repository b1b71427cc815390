"""End-to-end tests of the analysis pipeline on synthetic data."""

import json
import math
import sys

import numpy as np
import pytest

from src.config.settings import merge_config
from src.errors import ConfigurationError, SearchFailedError
from src.features.preprocess import find_correlated_pairs
from src.models import train
from src.models.train import prepare_features, run_pipeline


class TestRunPipeline:
    def test_full_run(self, pima_csv, fast_config, raw_pima_frame):
        report = run_pipeline(fast_config, data_path=pima_csv)

        n_rows = len(raw_pima_frame)
        assert report.n_rows == n_rows
        assert report.n_train == math.floor(0.7 * n_rows)
        assert report.n_train + report.n_test == n_rows
        assert set(report.families) == {"random_forest", "svm", "neural_network"}
        assert set(report.evaluations) == set(report.families)
        assert report.best_family in report.families
        assert 0.0 < report.baseline_accuracy < 1.0

        for family, evaluation in report.evaluations.items():
            assert 0.0 <= evaluation.accuracy <= 1.0
            assert evaluation.viable == (evaluation.accuracy > report.baseline_accuracy)
            assert evaluation.n_test == report.n_test

        best = report.evaluations[report.best_family]
        assert best.accuracy == max(e.accuracy for e in report.evaluations.values())

    def test_reproducible(self, pima_csv, fast_config):
        first = run_pipeline(fast_config, data_path=pima_csv)
        second = run_pipeline(fast_config, data_path=pima_csv)

        for family in first.families:
            assert first.families[family].params == second.families[family].params
            assert first.families[family].cv_auc == second.families[family].cv_auc
            assert first.evaluations[family].accuracy == second.evaluations[family].accuracy
        assert first.grid_results().equals(second.grid_results())

    def test_grid_results_cover_every_point(self, pima_csv, fast_config):
        report = run_pipeline(fast_config, data_path=pima_csv)
        grid = report.grid_results()

        rf = grid[grid["family"] == "random_forest"]
        assert len(rf) == 2
        svm_linear = grid[(grid["family"] == "svm") & (grid["variant"] == "linear")]
        assert set(svm_linear["stage"]) == {1, 2}

    def test_writes_summary_and_figures(self, pima_csv, fast_config, temp_directory):
        config = merge_config(fast_config, {"output": {"save_figures": True}})
        output_dir = temp_directory / "out"

        report = run_pipeline(config, data_path=pima_csv, output_dir=output_dir)

        with open(output_dir / "analysis_summary.json") as f:
            summary = json.load(f)
        assert summary["best_family"] == report.best_family
        assert set(summary["families"]) == set(report.families)
        assert (output_dir / "grid_results.csv").exists()
        assert (output_dir / "roc_curves.png").exists()
        assert (output_dir / "correlation_heatmap.png").exists()

    def test_failed_family_is_reported_not_fatal(self, pima_csv, fast_config):
        config = merge_config(
            fast_config,
            {"models": {"svm": {"variants": {"linear": {"grid": {"C": [-1.0]}}}}}},
        )

        report = run_pipeline(config, data_path=pima_csv)

        assert "svm" in report.failed_families
        assert "svm" not in report.families
        assert report.best_family in ("random_forest", "neural_network")

    def test_every_family_failing(self, pima_csv, fast_config):
        config = merge_config(
            fast_config,
            {
                "models": {
                    "random_forest": {"enabled": False},
                    "neural_network": {"enabled": False},
                    "svm": {"variants": {"linear": {"grid": {"C": [-1.0]}}}},
                }
            },
        )

        with pytest.raises(SearchFailedError):
            run_pipeline(config, data_path=pima_csv)

    def test_empty_grid_is_fatal(self, pima_csv, fast_config):
        config = merge_config(
            fast_config, {"models": {"random_forest": {"variants": {"rf": {"grid": {}}}}}}
        )

        with pytest.raises(ConfigurationError):
            run_pipeline(config, data_path=pima_csv)


    def test_disabled_output_dir_writes_nothing(self, pima_csv, fast_config, temp_directory, monkeypatch):
        monkeypatch.chdir(temp_directory)
        before = set(temp_directory.iterdir())

        run_pipeline(merge_config(fast_config, {"output": {"dir": None}}), data_path=pima_csv)

        assert set(temp_directory.iterdir()) == before


class TestPrepareFeatures:
    def test_standardized_and_complete(self, raw_pima_frame, fast_config, pima_csv):
        from src.data.load_data import load_observations

        observations = load_observations(pima_csv)
        features, zero_summary, missingness, pairs, dropped = prepare_features(observations, fast_config)

        assert not features.isnull().values.any()
        np.testing.assert_allclose(features.mean().values, 0.0, atol=1e-10)
        np.testing.assert_allclose(features.std(ddof=1).values, 1.0, atol=1e-10)
        assert pairs == [] and dropped == []
        assert find_correlated_pairs(features, threshold=0.7) == []
        assert int(zero_summary["zero_count"].sum()) == sum(missingness["missing_counts"].values())


class TestMain:
    def test_missing_data_file_returns_error(self, monkeypatch, temp_directory):
        monkeypatch.setattr(
            sys,
            "argv",
            ["train", "--config", "configs/pipeline_config.yaml", "--data", str(temp_directory / "absent.csv")],
        )

        assert train.main() == 1

    def test_successful_run(self, monkeypatch, pima_csv, fast_config, temp_directory):
        import yaml

        config_path = temp_directory / "fast.yaml"
        config_path.write_text(yaml.safe_dump(fast_config))
        output_dir = temp_directory / "cli_out"
        monkeypatch.setattr(
            sys,
            "argv",
            ["train", "--config", str(config_path), "--data", str(pima_csv), "--output-dir", str(output_dir)],
        )

        assert train.main() == 0
        assert (output_dir / "analysis_summary.json").exists()
