"""
Ordinary least squares models on the selected predictors.

Models are fit with the statsmodels formula API so interaction terms can be
written as `a:b`. A log-response model regresses log(response) on the same
terms; predictions are mapped back to the response scale in `evaluate`.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf

from housing_selection.exceptions import DataValidationError

logger = logging.getLogger(__name__)

Interaction = Tuple[str, str]


@dataclass
class FittedModel:
    """A fitted OLS model and the terms it was built from."""

    name: str
    results: object
    response: str
    predictors: List[str]
    interactions: List[Interaction] = field(default_factory=list)
    log_response: bool = False

    @property
    def formula(self) -> str:
        return build_formula(self.response, self.predictors, self.interactions, self.log_response)

    @property
    def residuals(self) -> np.ndarray:
        return np.asarray(self.results.resid)

    @property
    def fitted_values(self) -> np.ndarray:
        return np.asarray(self.results.fittedvalues)


def log_column(response: str) -> str:
    return f"log_{response}"


def interaction_term(pair: Interaction) -> str:
    return f"{pair[0]}:{pair[1]}"


def build_formula(
    response: str,
    predictors: Sequence[str],
    interactions: Sequence[Interaction] = (),
    log_response: bool = False,
) -> str:
    """Build a formula like `log_price ~ sqft_living + grade_9 + sqft_living:grade_9`."""
    if not predictors:
        raise ValueError("At least one predictor is required")
    lhs = log_column(response) if log_response else response
    terms = list(predictors) + [interaction_term(p) for p in interactions]
    return f"{lhs} ~ " + " + ".join(terms)


def add_log_response(data: pd.DataFrame, response: str) -> pd.DataFrame:
    """Return a copy of data with a log-response column.

    Raises:
        DataValidationError: If the response has non-positive values
    """
    if (data[response] <= 0).any():
        raise DataValidationError(
            f"Log response needs strictly positive '{response}' values"
        )
    return data.assign(**{log_column(response): np.log(data[response])})


def fit_ols(
    data: pd.DataFrame,
    response: str,
    predictors: Sequence[str],
    interactions: Sequence[Interaction] = (),
    log_response: bool = False,
    name: str = "ols",
) -> FittedModel:
    """Fit an OLS model.

    Args:
        data: Frame holding the predictors and the response
        response: Response column
        predictors: Main-effect terms
        interactions: Pairs of predictors to add as product terms
        log_response: Regress log(response) instead of the response
        name: Label used in logs and reports

    Returns:
        FittedModel wrapping the statsmodels results
    """
    missing = [c for c in list(predictors) + [response] if c not in data.columns]
    if missing:
        raise DataValidationError(f"Columns missing from model data: {missing}")

    if log_response:
        data = add_log_response(data, response)

    formula = build_formula(response, predictors, interactions, log_response)
    logger.info(f"Fitting {name}: {formula}")
    results = smf.ols(formula, data=data).fit()
    logger.info(
        f"{name}: n={int(results.nobs)}, R²={results.rsquared:.4f}, "
        f"adj R²={results.rsquared_adj:.4f}, AIC={results.aic:.1f}"
    )
    return FittedModel(
        name=name,
        results=results,
        response=response,
        predictors=list(predictors),
        interactions=[tuple(p) for p in interactions],
        log_response=log_response,
    )


def coefficient_table(model: FittedModel, alpha: float = 0.05) -> pd.DataFrame:
    """Coefficients with standard errors, t statistics, p-values and CIs."""
    res = model.results
    ci = res.conf_int(alpha=alpha)
    return pd.DataFrame({
        "coef": res.params,
        "std_err": res.bse,
        "t": res.tvalues,
        "p_value": res.pvalues,
        "ci_lower": ci[0],
        "ci_upper": ci[1],
    })


def model_summary(model: FittedModel) -> Dict:
    """Goodness-of-fit summary."""
    res = model.results
    return {
        "name": model.name,
        "formula": model.formula,
        "log_response": model.log_response,
        "n_obs": int(res.nobs),
        "n_terms": int(res.df_model),
        "r2": float(res.rsquared),
        "adj_r2": float(res.rsquared_adj),
        "aic": float(res.aic),
        "bic": float(res.bic),
        "f_statistic": float(res.fvalue),
        "f_pvalue": float(res.f_pvalue),
    }
