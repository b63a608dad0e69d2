"""
Bootstrap lasso variable selection.

For each of B bootstrap resamples of the training data:
1. Standardise the predictors
2. Pick the lasso penalty by k-fold cross-validation (LassoCV)
3. Record which coefficients survive shrinkage (|coef| > tolerance)

Predictors whose coefficients survive in at least `threshold` of the
resamples are selected. The resamples are independent, so the fits are
mapped over joblib workers and tallied once all of them are back.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LassoCV
from sklearn.model_selection import KFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from housing_selection.exceptions import SelectionError

logger = logging.getLogger(__name__)


@dataclass
class ResampleFit:
    """Lasso fit on one bootstrap resample."""

    resample_id: int
    alpha: float
    coefficients: np.ndarray
    survived: np.ndarray
    n_convergence_warnings: int = 0


@dataclass
class BootstrapSelection:
    """Outcome of bootstrap lasso selection.

    Attributes:
        fits: Per-resample lasso fits, ordered by resample id
        tally: Survival count and frequency per predictor
        threshold: Minimum survival frequency used for selection
        selected: Selected predictors, most frequently surviving first
    """

    fits: List[ResampleFit]
    tally: pd.DataFrame
    threshold: float
    selected: List[str] = field(default_factory=list)

    @property
    def n_resamples(self) -> int:
        return len(self.fits)

    @property
    def alphas(self) -> np.ndarray:
        return np.array([f.alpha for f in self.fits])


def draw_bootstrap_indices(
    n_rows: int,
    n_resamples: int,
    random_state: int = 42,
) -> List[np.ndarray]:
    """Draw row indices for each bootstrap resample.

    Every resample has exactly `n_rows` indices drawn with replacement.
    Each resample gets its own child seed, so resample i is the same no
    matter how many resamples are drawn.
    """
    if n_rows < 1:
        raise ValueError("Cannot resample an empty training set")
    if n_resamples < 1:
        raise ValueError("n_resamples must be at least 1")

    children = np.random.SeedSequence(random_state).spawn(n_resamples)
    return [
        np.random.default_rng(child).integers(0, n_rows, size=n_rows)
        for child in children
    ]


def make_lasso_pipeline(
    cv_folds: int = 5,
    n_alphas: int = 100,
    max_iter: int = 10000,
    random_state: int = 42,
) -> Pipeline:
    """Scaler + cross-validated lasso."""
    return Pipeline([
        ("scaler", StandardScaler()),
        ("model", LassoCV(
            alphas=n_alphas,
            cv=KFold(n_splits=cv_folds, shuffle=True, random_state=random_state),
            max_iter=max_iter,
            random_state=random_state,
        )),
    ])


def fit_lasso_resample(
    X: np.ndarray,
    y: np.ndarray,
    indices: np.ndarray,
    resample_id: int = 0,
    cv_folds: int = 5,
    n_alphas: int = 100,
    max_iter: int = 10000,
    tol: float = 1e-8,
    random_state: int = 42,
) -> ResampleFit:
    """Fit a cross-validated lasso on one resample.

    Args:
        X: Predictor matrix of the training set
        y: Response of the training set
        indices: Rows making up the resample
        resample_id: Position of this resample in the run
        cv_folds: Folds for choosing the penalty
        n_alphas: Size of the penalty grid
        max_iter: Coordinate descent iteration cap
        tol: Coefficients at or below this magnitude count as zero
        random_state: Seed for the CV fold assignment

    Returns:
        ResampleFit with the chosen alpha and surviving coefficients
    """
    X_boot = X[indices]
    y_boot = y[indices]

    pipeline = make_lasso_pipeline(
        cv_folds=cv_folds,
        n_alphas=n_alphas,
        max_iter=max_iter,
        random_state=random_state + resample_id,
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        pipeline.fit(X_boot, y_boot)
    n_warn = sum(issubclass(w.category, ConvergenceWarning) for w in caught)

    lasso = pipeline.named_steps["model"]
    coefs = np.asarray(lasso.coef_, dtype=float)
    return ResampleFit(
        resample_id=resample_id,
        alpha=float(lasso.alpha_),
        coefficients=coefs,
        survived=np.abs(coefs) > tol,
        n_convergence_warnings=n_warn,
    )


def run_bootstrap_lasso(
    X: pd.DataFrame,
    y: pd.Series,
    n_resamples: int = 100,
    cv_folds: int = 5,
    n_alphas: int = 100,
    max_iter: int = 10000,
    tol: float = 1e-8,
    random_state: int = 42,
    n_jobs: int = -1,
) -> List[ResampleFit]:
    """Fit the lasso on B bootstrap resamples in parallel.

    Returns:
        Fits ordered by resample id
    """
    X_values = np.asarray(X, dtype=float)
    y_values = np.asarray(y, dtype=float)
    indices = draw_bootstrap_indices(len(X_values), n_resamples, random_state)

    logger.info(
        f"Fitting lasso on {n_resamples} bootstrap resamples "
        f"({len(X_values)} rows each, n_jobs={n_jobs})"
    )
    fits = Parallel(n_jobs=n_jobs)(
        delayed(fit_lasso_resample)(
            X_values,
            y_values,
            idx,
            resample_id=i,
            cv_folds=cv_folds,
            n_alphas=n_alphas,
            max_iter=max_iter,
            tol=tol,
            random_state=random_state,
        )
        for i, idx in enumerate(indices)
    )
    fits = sorted(fits, key=lambda f: f.resample_id)

    n_warn = sum(f.n_convergence_warnings for f in fits)
    if n_warn:
        logger.warning(
            f"Lasso did not converge {n_warn} times across {n_resamples} resamples; "
            f"consider raising lasso_max_iter"
        )
    return fits


def tally_survival(fits: Sequence[ResampleFit], predictors: Sequence[str]) -> pd.DataFrame:
    """Count how often each predictor's coefficient survives shrinkage.

    Returns:
        DataFrame indexed by predictor with columns count, frequency and
        mean_coef (standardised scale), sorted by frequency then name
    """
    if not fits:
        raise ValueError("No resample fits to tally")

    survived = np.vstack([f.survived for f in fits])
    coefs = np.vstack([f.coefficients for f in fits])
    if survived.shape[1] != len(predictors):
        raise ValueError(
            f"Fits have {survived.shape[1]} coefficients but {len(predictors)} predictors given"
        )

    counts = survived.sum(axis=0)
    tally = pd.DataFrame(
        {
            "count": counts.astype(int),
            "frequency": counts / len(fits),
            "mean_coef": coefs.mean(axis=0),
        },
        index=pd.Index(list(predictors), name="predictor"),
    )
    tally = tally.sort_index().sort_values("frequency", ascending=False, kind="mergesort")
    return tally


def select_predictors(tally: pd.DataFrame, threshold: float) -> List[str]:
    """Predictors whose survival frequency reaches the threshold."""
    if not 0 <= threshold <= 1:
        raise ValueError(f"threshold must be in [0, 1], got {threshold}")
    return list(tally.index[tally["frequency"] >= threshold])


def bootstrap_lasso_selection(
    X: pd.DataFrame,
    y: pd.Series,
    n_resamples: int = 100,
    threshold: float = 0.9,
    cv_folds: int = 5,
    n_alphas: int = 100,
    max_iter: int = 10000,
    tol: float = 1e-8,
    random_state: int = 42,
    n_jobs: int = -1,
) -> BootstrapSelection:
    """Run bootstrap lasso selection end to end.

    Raises:
        SelectionError: If no predictor survives in enough resamples
    """
    logger.info("=" * 60)
    logger.info(f"BOOTSTRAP LASSO SELECTION (B={n_resamples}, threshold={threshold:.2f})")
    logger.info("=" * 60)

    fits = run_bootstrap_lasso(
        X, y,
        n_resamples=n_resamples,
        cv_folds=cv_folds,
        n_alphas=n_alphas,
        max_iter=max_iter,
        tol=tol,
        random_state=random_state,
        n_jobs=n_jobs,
    )
    tally = tally_survival(fits, list(X.columns))
    selected = select_predictors(tally, threshold)
    tally["selected"] = tally.index.isin(selected)

    for name, row in tally.iterrows():
        logger.debug(f"  {name:25s} {int(row['count']):4d}/{n_resamples} ({row['frequency']:.2f})")
    logger.info(f"Selected {len(selected)} of {len(tally)} predictors: {selected}")

    if not selected:
        raise SelectionError(
            f"No predictor survived in at least {threshold:.0%} of {n_resamples} resamples"
        )
    return BootstrapSelection(fits=fits, tally=tally, threshold=threshold, selected=selected)
