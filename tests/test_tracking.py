"""
MLflow Tracking Tests

Uses a throwaway SQLite store under tmp_path.
"""

import mlflow
import pytest

from housing_selection.pipeline import run_analysis
from housing_selection.tracking import log_analysis_run, setup_mlflow, tracking_uri


class TestTrackingUri:
    def test_defaults_to_sqlite_under_output_dir(self, settings, tmp_path):
        uri = tracking_uri(settings)
        assert uri.startswith("sqlite:///")
        assert uri.endswith("output/mlflow/mlflow.db")
        assert (tmp_path / "output" / "mlflow").is_dir()

    def test_configured_uri_wins(self, settings):
        settings = settings.model_copy(update={"mlflow_tracking_uri": "http://mlflow:5000"})
        assert tracking_uri(settings) == "http://mlflow:5000"


@pytest.mark.slow
class TestLogging:
    def test_setup_is_idempotent(self, settings):
        first = setup_mlflow(settings)
        second = setup_mlflow(settings)
        assert first == second

    def test_logs_params_and_metrics(self, settings):
        result = run_analysis(settings)

        run_id = log_analysis_run(result, settings, run_name="test")
        run = mlflow.get_run(run_id)

        assert run.data.params["n_bootstrap"] == "8"
        assert run.data.params["n_selected"] == str(len(result.selected))
        assert run.data.metrics["test_rmse_ols_log"] == pytest.approx(result.rmse("ols_log"))
        assert "sqft_living" in run.data.tags["selected_predictors"]
