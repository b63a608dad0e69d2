"""
Regression diagnostics: residual checks, Box-Cox, collinearity, influence.

Also renders the diagnostic plots that go into the report.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import statsmodels.api as sm  # noqa: E402
from scipy import optimize, stats  # noqa: E402
from statsmodels.stats.diagnostic import het_breuschpagan  # noqa: E402
from statsmodels.stats.outliers_influence import variance_inflation_factor  # noqa: E402

from housing_selection.exceptions import DataValidationError  # noqa: E402
from housing_selection.modeling import FittedModel  # noqa: E402

logger = logging.getLogger(__name__)

# |lambda| below this is treated as a log transform
LOG_LAMBDA_TOLERANCE = 0.1

# Search range for the Box-Cox lambda
BOXCOX_BOUNDS = (-2.0, 2.0)

# D'Agostino-Pearson needs at least this many observations
MIN_NORMALTEST_SAMPLES = 8


# =============================================================================
# RESIDUALS
# =============================================================================


def residual_summary(model: FittedModel, alpha: float = 0.05) -> Dict:
    """Residual statistics, normality and heteroscedasticity tests."""
    residuals = model.residuals
    fitted = model.fitted_values

    result = {
        "mean_residual": float(np.mean(residuals)),
        "median_residual": float(np.median(residuals)),
        "std_residual": float(np.std(residuals)),
        "skewness": float(stats.skew(residuals)),
        "kurtosis": float(stats.kurtosis(residuals)),
    }

    if len(residuals) >= MIN_NORMALTEST_SAMPLES:
        _, normality_p = stats.normaltest(residuals)
        result["normality_p_value"] = float(normality_p)
        result["is_normal"] = bool(normality_p > alpha)
    else:
        result["normality_p_value"] = float("nan")
        result["is_normal"] = None

    lm_stat, lm_p, _, _ = het_breuschpagan(residuals, model.results.model.exog)
    result["breusch_pagan_stat"] = float(lm_stat)
    result["breusch_pagan_p_value"] = float(lm_p)
    result["is_heteroscedastic"] = bool(lm_p < alpha)

    # Variance of residuals across quartiles of the fitted values
    quartile = pd.qcut(fitted, q=4, labels=False, duplicates="drop")
    variances = [
        float(np.var(residuals[quartile == q]))
        for q in np.unique(quartile)
    ]
    positive = [v for v in variances if v > 0]
    result["variance_ratio"] = (
        max(positive) / min(positive) if len(positive) > 1 else float("nan")
    )

    logger.info(
        f"{model.name} residuals: skew={result['skewness']:.2f}, "
        f"kurtosis={result['kurtosis']:.2f}, "
        f"normality p={result['normality_p_value']:.4f}, "
        f"Breusch-Pagan p={result['breusch_pagan_p_value']:.4f}"
    )
    return result


# =============================================================================
# BOX-COX
# =============================================================================


def _boxcox_inputs(model: FittedModel):
    """Response (on its original scale) and design matrix of a fitted model."""
    y = np.asarray(model.results.model.endog, dtype=float)
    if model.log_response:
        y = np.exp(y)
    exog = np.asarray(model.results.model.exog, dtype=float)

    if len(y) <= exog.shape[1]:
        raise DataValidationError("Box-Cox needs more observations than model terms")
    if (y <= 0).any():
        raise DataValidationError("Box-Cox needs strictly positive response values")

    # lambda is invariant to rescaling y when the model has an intercept;
    # dividing by the geometric mean keeps y**lambda well conditioned
    y = y / np.exp(np.mean(np.log(y)))
    return y, exog


def _profile_llf(y: np.ndarray, exog: np.ndarray, lmbda: float) -> float:
    """OLS log-likelihood of the transformed response plus the Jacobian term."""
    z = stats.boxcox(y, lmbda=lmbda)
    llf = sm.OLS(z, exog).fit().llf
    return float(llf + (lmbda - 1) * np.sum(np.log(y)))


def boxcox_profile(model: FittedModel, lambdas: Sequence[float]) -> np.ndarray:
    """Box-Cox profile log-likelihood of the model at each lambda."""
    y, exog = _boxcox_inputs(model)
    return np.array([_profile_llf(y, exog, lm) for lm in lambdas])


def boxcox_analysis(model: FittedModel, alpha: float = 0.05) -> Dict:
    """Estimate the Box-Cox lambda for the model's response.

    The response is transformed and refit on the model's own design matrix
    for each candidate lambda, so lambda is chosen for the regression
    residuals rather than for the marginal distribution of the response.
    The confidence interval is the set of lambdas whose profile
    log-likelihood is within chi2(1 - alpha, 1) / 2 of the maximum.

    The suggested transform is `log` when the confidence interval covers 0
    (or lambda is near 0), `none` when it covers 1, otherwise `power`.

    Raises:
        DataValidationError: If any response value is not strictly positive
    """
    y, exog = _boxcox_inputs(model)
    lower, upper = BOXCOX_BOUNDS

    best = optimize.minimize_scalar(
        lambda lm: -_profile_llf(y, exog, lm),
        bounds=BOXCOX_BOUNDS,
        method="bounded",
    )
    lmbda = float(best.x)
    cutoff = -best.fun - stats.chi2.ppf(1 - alpha, 1) / 2

    def excess(lm):
        return _profile_llf(y, exog, lm) - cutoff

    ci_lower = optimize.brentq(excess, lower, lmbda) if excess(lower) < 0 else lower
    ci_upper = optimize.brentq(excess, lmbda, upper) if excess(upper) < 0 else upper

    if ci_lower <= 0 <= ci_upper or abs(lmbda) < LOG_LAMBDA_TOLERANCE:
        suggestion = "log"
    elif ci_lower <= 1 <= ci_upper:
        suggestion = "none"
    else:
        suggestion = "power"

    logger.info(
        f"Box-Cox lambda ({model.name}): {lmbda:.3f} [{ci_lower:.3f}, {ci_upper:.3f}] "
        f"-> suggested transform: {suggestion}"
    )
    return {
        "lambda": lmbda,
        "ci_lower": float(ci_lower),
        "ci_upper": float(ci_upper),
        "confidence": 1 - alpha,
        "suggested_transform": suggestion,
    }


# =============================================================================
# COLLINEARITY AND INFLUENCE
# =============================================================================


def variance_inflation(data: pd.DataFrame, predictors: Sequence[str]) -> pd.Series:
    """Variance inflation factor per predictor."""
    exog = sm.add_constant(data[list(predictors)].astype(float), has_constant="add")
    values = exog.values
    vif = {
        name: float(variance_inflation_factor(values, i))
        for i, name in enumerate(exog.columns)
        if name != "const"
    }
    return pd.Series(vif, name="vif").sort_values(ascending=False)


def influence_summary(model: FittedModel) -> Dict:
    """Cook's distance summary; 4/n is the usual cutoff for influential points."""
    cooks = model.results.get_influence().cooks_distance[0]
    n = len(cooks)
    cutoff = 4.0 / n
    return {
        "max_cooks_distance": float(np.max(cooks)),
        "cooks_cutoff": cutoff,
        "n_influential": int(np.sum(cooks > cutoff)),
        "pct_influential": float(np.mean(cooks > cutoff) * 100),
    }


# =============================================================================
# PLOTS
# =============================================================================


def plot_residual_diagnostics(model: FittedModel, path, title: Optional[str] = None) -> Path:
    """Residuals vs fitted, normal Q-Q, scale-location and histogram."""
    residuals = model.residuals
    fitted = model.fitted_values
    std_resid = model.results.get_influence().resid_studentized_internal

    fig, axes = plt.subplots(2, 2, figsize=(11, 8))

    ax = axes[0, 0]
    ax.scatter(fitted, residuals, s=8, alpha=0.5)
    ax.axhline(0, color="red", linestyle="--", linewidth=1)
    ax.set_xlabel("Fitted values")
    ax.set_ylabel("Residuals")
    ax.set_title("Residuals vs Fitted")

    ax = axes[0, 1]
    stats.probplot(residuals, dist="norm", plot=ax)
    ax.set_title("Normal Q-Q")

    ax = axes[1, 0]
    ax.scatter(fitted, np.sqrt(np.abs(std_resid)), s=8, alpha=0.5)
    ax.set_xlabel("Fitted values")
    ax.set_ylabel("sqrt(|standardized residual|)")
    ax.set_title("Scale-Location")

    ax = axes[1, 1]
    ax.hist(residuals, bins=40, edgecolor="black", alpha=0.7)
    ax.set_xlabel("Residual")
    ax.set_title("Residual distribution")

    fig.suptitle(title or f"Residual diagnostics: {model.name}")
    fig.tight_layout()
    return _save(fig, path)


def plot_boxcox_profile(
    model: FittedModel,
    lmbda: float,
    path,
    lambdas: Optional[np.ndarray] = None,
) -> Path:
    """Box-Cox profile log-likelihood of the model with the MLE marked."""
    if lambdas is None:
        lambdas = np.linspace(*BOXCOX_BOUNDS, 81)
    llf = boxcox_profile(model, lambdas)

    fig, ax = plt.subplots(figsize=(7, 4.5))
    ax.plot(lambdas, llf)
    ax.axvline(lmbda, color="red", linestyle="--", label=f"MLE lambda = {lmbda:.3f}")
    ax.axvline(0, color="grey", linestyle=":", label="log (lambda = 0)")
    ax.set_xlabel("lambda")
    ax.set_ylabel("log-likelihood")
    ax.set_title(f"Box-Cox profile likelihood: {model.name}")
    ax.legend()
    fig.tight_layout()
    return _save(fig, path)


def plot_selection_frequencies(tally: pd.DataFrame, threshold: float, path) -> Path:
    """Horizontal bar chart of survival frequency per predictor."""
    ordered = tally.sort_values("frequency")
    colors = ["tab:blue" if f >= threshold else "lightgrey" for f in ordered["frequency"]]

    fig, ax = plt.subplots(figsize=(8, max(3, 0.25 * len(ordered))))
    ax.barh(ordered.index, ordered["frequency"], color=colors)
    ax.axvline(threshold, color="red", linestyle="--", label=f"threshold = {threshold:.2f}")
    ax.set_xlim(0, 1.05)
    ax.set_xlabel("Fraction of bootstrap resamples with nonzero coefficient")
    ax.set_title("Bootstrap lasso survival")
    ax.legend(loc="lower right")
    fig.tight_layout()
    return _save(fig, path)


def _save(fig, path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out, dpi=110)
    plt.close(fig)
    logger.info(f"Saved plot {out}")
    return out
