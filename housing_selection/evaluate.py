"""
Held-out evaluation of the fitted models.

Log-response models are scored on the original response scale: their
predictions are exponentiated, optionally with Duan's smearing correction
for retransformation bias.
"""

import logging
from typing import Dict, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from housing_selection.modeling import FittedModel

logger = logging.getLogger(__name__)


def rmse(y_true, y_pred) -> float:
    """Root mean squared error."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def calculate_metrics(y_true, y_pred) -> Dict[str, float]:
    """Calculate evaluation metrics.

    Args:
        y_true: Actual response values
        y_pred: Predicted values on the response scale

    Returns:
        Dictionary with r2, mae, rmse and mape (percent, zeros excluded)
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    mask = y_true != 0
    mape = (
        float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100)
        if mask.any() else float("nan")
    )
    return {
        "r2": float(r2_score(y_true, y_pred)),
        "mae": float(mean_absolute_error(y_true, y_pred)),
        "rmse": rmse(y_true, y_pred),
        "mape": mape,
    }


def smearing_factor(model: FittedModel) -> float:
    """Duan's smearing estimate: mean of exp(residual) on the log scale."""
    return float(np.mean(np.exp(model.residuals)))


def predict_response(model: FittedModel, data: pd.DataFrame, smearing: bool = False) -> np.ndarray:
    """Predict on the original response scale."""
    pred = np.asarray(model.results.predict(data), dtype=float)
    if not model.log_response:
        return pred
    pred = np.exp(pred)
    if smearing:
        pred = pred * smearing_factor(model)
    return pred


def evaluate_models(
    models: Sequence[FittedModel],
    test_data: pd.DataFrame,
    response: str,
    smearing: bool = False,
) -> pd.DataFrame:
    """Test-set metrics for each model, indexed by model name.

    When `smearing` is set, log-response models get an extra row scored with
    the smearing correction.
    """
    logger.info("=" * 60)
    logger.info(f"HELD-OUT EVALUATION ({len(test_data)} test rows)")
    logger.info("=" * 60)

    y_true = test_data[response].to_numpy(dtype=float)
    rows = {}
    for model in models:
        rows[model.name] = calculate_metrics(y_true, predict_response(model, test_data))
        if smearing and model.log_response:
            rows[f"{model.name}_smeared"] = calculate_metrics(
                y_true, predict_response(model, test_data, smearing=True)
            )

    metrics = pd.DataFrame.from_dict(rows, orient="index")
    metrics.index.name = "model"
    for name, row in metrics.iterrows():
        logger.info(
            f"  {name:28s} RMSE={row['rmse']:,.0f}  MAE={row['mae']:,.0f}  R²={row['r2']:.4f}"
        )
    return metrics
