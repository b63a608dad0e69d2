"""
MLflow tracking for analysis runs.

MLflow Concepts:
----------------
1. TRACKING URI: Where MLflow stores run data
   - "sqlite:///output/mlflow/mlflow.db" = Local SQLite database (default)
   - "http://server:5000" = Remote MLflow server

2. EXPERIMENT: A logical grouping of runs ("housing-bootstrap-lasso")

3. RUN: One execution of the analysis
   - Params: B, threshold, alpha, split settings
   - Metrics: test RMSE per model, number of selected predictors
   - Artifacts: HTML report, JSON results, plots
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import mlflow

from housing_selection.config import AnalysisSettings

logger = logging.getLogger(__name__)

TRACKED_PARAMS = [
    "data_path",
    "response",
    "test_size",
    "random_state",
    "n_bootstrap",
    "cv_folds",
    "survival_threshold",
    "interaction_alpha",
]


def tracking_uri(settings: AnalysisSettings) -> str:
    """Configured tracking URI, or a SQLite store under the output directory."""
    if settings.mlflow_tracking_uri:
        return settings.mlflow_tracking_uri
    mlflow_dir = Path(settings.output_dir).resolve() / "mlflow"
    mlflow_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{(mlflow_dir / 'mlflow.db').as_posix()}"


def setup_mlflow(settings: AnalysisSettings) -> str:
    """
    Configure MLflow for this analysis.

    Returns:
        experiment_id: The ID of the configured experiment
    """
    uri = tracking_uri(settings)
    mlflow.set_tracking_uri(uri)

    name = settings.mlflow_experiment_name
    experiment = mlflow.get_experiment_by_name(name)
    if experiment is None:
        experiment_id = mlflow.create_experiment(name)
        logger.info(f"Created MLflow experiment {name} (id: {experiment_id})")
    else:
        experiment_id = experiment.experiment_id
        logger.info(f"Using MLflow experiment {name} (id: {experiment_id})")

    mlflow.set_experiment(name)
    return experiment_id


def log_analysis_run(
    result,
    settings: AnalysisSettings,
    artifacts: Iterable = (),
    run_name: Optional[str] = None,
) -> str:
    """Log an AnalysisResult to MLflow.

    Returns:
        run_id: The MLflow run ID
    """
    setup_mlflow(settings)

    with mlflow.start_run(run_name=run_name) as run:
        mlflow.log_params({key: getattr(settings, key) for key in TRACKED_PARAMS})
        mlflow.log_param("n_selected", len(result.selection.selected))
        mlflow.set_tag("selected_predictors", ",".join(result.selection.selected))
        mlflow.set_tag(
            "interactions",
            ",".join(f"{a}:{b}" for a, b in result.refinement.significant) or "none",
        )

        for model_name, row in result.test_metrics.iterrows():
            for metric, value in row.items():
                mlflow.log_metric(f"test_{metric}_{model_name}", float(value))
        mlflow.log_metric("boxcox_lambda", result.boxcox["lambda"])

        for artifact in artifacts:
            if artifact and Path(artifact).exists():
                mlflow.log_artifact(str(artifact))

        run_id = run.info.run_id

    logger.info(f"Logged analysis to MLflow run {run_id}")
    return run_id
