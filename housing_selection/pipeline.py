"""
End-to-end bootstrap lasso analysis of housing prices.

Steps:
1. Split the data into train/test
2. Draw B bootstrap resamples of the training data
3. Fit a cross-validated lasso on each resample
4. Tally how often each predictor's coefficient survives shrinkage
5. Keep predictors at or above the survival threshold
6. Fit OLS on the selected predictors, diagnose it, refit on log(price),
   and add significant interaction terms (partial F-tests)
7. Score every model on the held-out test set (RMSE on the price scale)

Usage:
    housing-selection --data data/kc_house_data.csv
    housing-selection --n-bootstrap 200 --threshold 0.95 --n-jobs 4
    python -m housing_selection --no-plots --mlflow
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from pydantic import ValidationError

from housing_selection.bootstrap import BootstrapSelection, bootstrap_lasso_selection
from housing_selection.config import AnalysisSettings, get_settings
from housing_selection.data import (
    DatasetSplit,
    build_design_matrix,
    load_housing_data,
    split_train_test,
)
from housing_selection.diagnostics import (
    boxcox_analysis,
    influence_summary,
    plot_boxcox_profile,
    plot_residual_diagnostics,
    plot_selection_frequencies,
    residual_summary,
    variance_inflation,
)
from housing_selection.evaluate import evaluate_models
from housing_selection.exceptions import AnalysisError
from housing_selection.interactions import InteractionRefinement, refine_with_interactions
from housing_selection.modeling import FittedModel, fit_ols
from housing_selection.report import render_report, save_results, summarize_result, timestamp

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "analysis_results.json"
REPORT_FILENAME = "report.html"


@dataclass
class AnalysisResult:
    """Everything produced by one analysis run."""

    settings: AnalysisSettings
    split: DatasetSplit
    selection: BootstrapSelection
    models: Dict[str, FittedModel]
    diagnostics: Dict[str, Dict]
    boxcox: Dict
    vif: pd.Series
    influence: Dict
    refinement: InteractionRefinement
    test_metrics: pd.DataFrame
    plots: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(default_factory=timestamp)

    @property
    def selected(self) -> List[str]:
        return self.selection.selected

    def rmse(self, model_name: str) -> float:
        return float(self.test_metrics.loc[model_name, "rmse"])


def prepare_data(settings: AnalysisSettings) -> DatasetSplit:
    """Load the housing data and split it."""
    df = load_housing_data(settings.data_path, settings.response)
    X, y, groups = build_design_matrix(
        df,
        settings.response,
        categorical_columns=settings.categorical_columns,
        drop_columns=settings.drop_columns,
    )
    return split_train_test(
        X, y,
        test_size=settings.test_size,
        random_state=settings.random_state,
        groups=groups,
    )


def run_analysis(
    settings: Optional[AnalysisSettings] = None,
    split: Optional[DatasetSplit] = None,
) -> AnalysisResult:
    """Run the full analysis and write its outputs.

    Args:
        settings: Analysis settings (defaults to the environment-backed singleton)
        split: Pre-built train/test split; loaded from settings.data_path if omitted

    Returns:
        AnalysisResult with the selection, models, diagnostics and test metrics
    """
    settings = settings or get_settings()
    output_dir = Path(settings.output_dir)
    plot_dir = output_dir / "plots"

    if split is None:
        split = prepare_data(settings)
    response = split.response
    train = split.train_data

    # Steps 2-5: bootstrap lasso selection on the training partition only
    selection = bootstrap_lasso_selection(
        split.X_train,
        split.y_train,
        n_resamples=settings.n_bootstrap,
        threshold=settings.survival_threshold,
        cv_folds=settings.cv_folds,
        n_alphas=settings.lasso_n_alphas,
        max_iter=settings.lasso_max_iter,
        tol=settings.coef_tolerance,
        random_state=settings.random_state,
        n_jobs=settings.n_jobs,
    )
    predictors = selection.selected

    # Step 6: OLS, diagnostics, log transform, interactions
    logger.info("=" * 60)
    logger.info(f"OLS ON {len(predictors)} SELECTED PREDICTORS")
    logger.info("=" * 60)
    raw_model = fit_ols(train, response, predictors, name="ols")
    diagnostics = {"ols": residual_summary(raw_model)}

    boxcox = boxcox_analysis(raw_model)

    log_model = fit_ols(train, response, predictors, log_response=True, name="ols_log")
    diagnostics["ols_log"] = residual_summary(log_model)

    vif = variance_inflation(train, predictors)
    influence = influence_summary(log_model)

    refinement = refine_with_interactions(
        train,
        response,
        predictors,
        groups=split.groups,
        alpha=settings.interaction_alpha,
        log_response=True,
        max_terms=settings.max_interaction_terms,
        base=log_model,
    )

    models = {"ols": raw_model, "ols_log": log_model}
    if refinement.significant:
        refinement.refined.name = "ols_log_interactions"
        models["ols_log_interactions"] = refinement.refined
        diagnostics["ols_log_interactions"] = residual_summary(refinement.refined)

    # Step 7: held-out RMSE on the price scale
    test_metrics = evaluate_models(list(models.values()), split.test_data, response, smearing=True)

    plots: Dict[str, str] = {}
    if settings.make_plots:
        plots["selection"] = str(plot_selection_frequencies(
            selection.tally, selection.threshold, plot_dir / "selection_frequencies.png"
        ))
        plots["boxcox"] = str(plot_boxcox_profile(
            raw_model, boxcox["lambda"], plot_dir / "boxcox_profile.png"
        ))
        for name, model in models.items():
            plots[f"residuals_{name}"] = str(plot_residual_diagnostics(
                model, plot_dir / f"residuals_{name}.png"
            ))

    result = AnalysisResult(
        settings=settings,
        split=split,
        selection=selection,
        models=models,
        diagnostics=diagnostics,
        boxcox=boxcox,
        vif=vif,
        influence=influence,
        refinement=refinement,
        test_metrics=test_metrics,
        plots=plots,
    )

    results_path = save_results(summarize_result(result), output_dir / RESULTS_FILENAME)
    report_path = render_report(result, output_dir / REPORT_FILENAME)

    if settings.track_with_mlflow:
        from housing_selection.tracking import log_analysis_run

        log_analysis_run(
            result,
            settings,
            artifacts=[results_path, report_path, *plots.values()],
        )

    return result


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Bootstrap lasso selection and OLS refinement for housing prices",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--data", "-d", type=str, default=None, help="Housing records CSV")
    parser.add_argument("--response", type=str, default=None, help="Response column")
    parser.add_argument("--n-bootstrap", "-b", type=int, default=None, help="Bootstrap resamples (B)")
    parser.add_argument("--threshold", "-t", type=float, default=None,
                        help="Survival frequency needed to keep a predictor")
    parser.add_argument("--alpha", "-a", type=float, default=None,
                        help="Significance cutoff for interaction partial F-tests")
    parser.add_argument("--max-interactions", type=int, default=None,
                        help="Cap on candidate pairwise interactions")
    parser.add_argument("--n-jobs", "-j", type=int, default=None, help="Parallel bootstrap workers")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--output-dir", "-o", type=str, default=None, help="Output directory")
    parser.add_argument("--no-plots", action="store_true", help="Skip diagnostic plots")
    parser.add_argument("--mlflow", action="store_true", help="Log the run to MLflow")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level")
    return parser.parse_args(argv)


def settings_from_args(args) -> AnalysisSettings:
    """Environment-backed settings with CLI overrides applied."""
    overrides = {
        "data_path": args.data,
        "response": args.response,
        "n_bootstrap": args.n_bootstrap,
        "survival_threshold": args.threshold,
        "interaction_alpha": args.alpha,
        "max_interaction_terms": args.max_interactions,
        "n_jobs": args.n_jobs,
        "random_state": args.seed,
        "output_dir": args.output_dir,
        "log_level": args.log_level,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.no_plots:
        overrides["make_plots"] = False
    if args.mlflow:
        overrides["track_with_mlflow"] = True
    return AnalysisSettings(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        configure_logging("INFO")
        logger.error(f"Invalid settings: {e}")
        return 1
    configure_logging(settings.log_level)

    try:
        result = run_analysis(settings)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except AnalysisError as e:
        logger.error(f"Analysis failed: {e}")
        return 1

    logger.info("=" * 60)
    logger.info("SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Selected predictors: {', '.join(result.selected)}")
    interactions = ", ".join(f"{a}:{b}" for a, b in result.refinement.significant) or "none"
    logger.info(f"Significant interactions: {interactions}")
    for name in result.test_metrics.index:
        logger.info(f"  Test RMSE {name:28s} ${result.rmse(name):,.0f}")
    logger.info(f"Report: {Path(settings.output_dir) / REPORT_FILENAME}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
