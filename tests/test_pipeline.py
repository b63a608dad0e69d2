"""
End-to-End Pipeline Tests

Runs the full analysis on the synthetic housing CSV with a small number of
bootstrap resamples.
"""

import json
from pathlib import Path

import pytest

from housing_selection.diagnostics import boxcox_analysis
from housing_selection.pipeline import (
    REPORT_FILENAME,
    RESULTS_FILENAME,
    main,
    parse_args,
    run_analysis,
    settings_from_args,
)


@pytest.fixture
def result(settings):
    return run_analysis(settings)


class TestRunAnalysis:
    def test_selection_and_models(self, result):
        assert "sqft_living" in result.selected
        assert {"ols", "ols_log"} <= set(result.models)
        assert result.models["ols_log"].log_response
        assert result.refinement.base is result.models["ols_log"]
        assert result.selection.n_resamples == 8

    def test_test_metrics_on_price_scale(self, result):
        metrics = result.test_metrics
        assert {"ols", "ols_log", "ols_log_smeared"} <= set(metrics.index)
        assert result.rmse("ols_log") < result.rmse("ols")

    def test_outputs_written(self, result, settings):
        output_dir = Path(settings.output_dir)
        results = json.loads((output_dir / RESULTS_FILENAME).read_text())
        report = (output_dir / REPORT_FILENAME).read_text()

        assert results["selection"]["selected"] == result.selected
        assert results["settings"]["n_bootstrap"] == 8
        assert "ols_log" in results["test_metrics"][1]["model"]
        assert "Bootstrap lasso selection" in report
        assert "partial F-tests" in report

    def test_boxcox_and_diagnostics_recorded(self, result):
        assert "lambda" in result.boxcox
        assert result.boxcox["lambda"] == pytest.approx(
            boxcox_analysis(result.models["ols"])["lambda"]
        )
        assert "ols" in result.diagnostics
        assert "ols_log" in result.diagnostics
        assert set(result.vif.index) == set(result.selected)

    def test_fixed_seed_is_reproducible(self, settings):
        first = run_analysis(settings)
        second = run_analysis(settings)

        assert first.selected == second.selected
        assert first.refinement.significant == second.refinement.significant
        assert first.rmse("ols_log") == pytest.approx(second.rmse("ols_log"))

    @pytest.mark.slow
    def test_plots_linked_from_report(self, settings):
        settings = settings.model_copy(update={"make_plots": True})
        result = run_analysis(settings)

        assert {"selection", "boxcox", "residuals_ols", "residuals_ols_log"} <= set(result.plots)
        assert all(Path(p).exists() for p in result.plots.values())
        report = (Path(settings.output_dir) / REPORT_FILENAME).read_text()
        assert "plots/selection_frequencies.png" in report


class TestCLI:
    def test_overrides(self, tmp_path):
        args = parse_args([
            "--data", "x.csv", "--n-bootstrap", "12", "--threshold", "0.8",
            "--output-dir", str(tmp_path), "--no-plots",
        ])
        settings = settings_from_args(args)

        assert settings.data_path == "x.csv"
        assert settings.n_bootstrap == 12
        assert settings.survival_threshold == 0.8
        assert settings.make_plots is False
        assert settings.track_with_mlflow is False

    def test_invalid_setting_exits_nonzero(self, tmp_path):
        code = main([
            "--threshold", "1.5",
            "--output-dir", str(tmp_path / "out"),
            "--no-plots",
        ])
        assert code == 1
        assert not (tmp_path / "out").exists()

    def test_missing_data_exits_nonzero(self, tmp_path):
        code = main([
            "--data", str(tmp_path / "missing.csv"),
            "--output-dir", str(tmp_path / "out"),
            "--no-plots",
        ])
        assert code == 1

    def test_successful_run(self, housing_csv, tmp_path, monkeypatch):
        monkeypatch.setenv("HOUSING_CATEGORICAL_COLUMNS", '["grade", "waterfront"]')
        monkeypatch.setenv("HOUSING_DROP_COLUMNS", '["id", "date"]')
        monkeypatch.setenv("HOUSING_CV_FOLDS", "3")
        monkeypatch.setenv("HOUSING_LASSO_N_ALPHAS", "20")

        code = main([
            "--data", str(housing_csv),
            "--n-bootstrap", "5",
            "--threshold", "0.8",
            "--n-jobs", "1",
            "--output-dir", str(tmp_path / "out"),
            "--no-plots",
        ])

        assert code == 0
        assert (tmp_path / "out" / REPORT_FILENAME).exists()
