"""
Shared fixtures for the housing analysis tests.

The synthetic housing table mimics the King County layout: an id and a sale
date (dropped), numeric structure features, two categoricals, two pure-noise
columns, and a price that is log-linear in living area, grade, waterfront
and bathrooms.
"""

import numpy as np
import pandas as pd
import pytest

from housing_selection.config import AnalysisSettings
from housing_selection.data import build_design_matrix, split_train_test

N_HOMES = 400
SEED = 7


def make_housing_frame(n: int = N_HOMES, seed: int = SEED) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    sqft_living = rng.uniform(800, 4000, n).round()
    bathrooms = rng.choice([1.0, 1.5, 2.0, 2.5, 3.0], n)
    bedrooms = rng.integers(1, 6, n)
    grade = rng.choice([6, 7, 8, 9], n)
    waterfront = (rng.uniform(size=n) < 0.15).astype(int)
    yr_built = rng.integers(1920, 2015, n)

    log_price = (
        11.5
        + 0.0005 * sqft_living
        + 0.15 * (grade - 6)
        + 0.35 * waterfront
        + 0.05 * bathrooms
        + rng.normal(0, 0.12, n)
    )
    return pd.DataFrame({
        "id": np.arange(n),
        "date": pd.date_range("2014-05-01", periods=n, freq="D").strftime("%Y%m%dT000000"),
        "price": np.exp(log_price).round(),
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
        "sqft_living": sqft_living,
        "yr_built": yr_built,
        "grade": grade,
        "waterfront": waterfront,
        "noise_a": rng.normal(size=n),
        "noise_b": rng.normal(size=n),
    })


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def housing_frame():
    """Synthetic housing records."""
    return make_housing_frame()


@pytest.fixture
def housing_csv(tmp_path, housing_frame):
    """Synthetic housing records written to CSV."""
    path = tmp_path / "housing.csv"
    housing_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def design(housing_frame):
    """(X, y, groups) built from the synthetic records."""
    return build_design_matrix(
        housing_frame,
        "price",
        categorical_columns=["grade", "waterfront"],
        drop_columns=["id", "date"],
    )


@pytest.fixture
def split(design):
    X, y, groups = design
    return split_train_test(X, y, test_size=0.2, random_state=42, groups=groups)


@pytest.fixture
def settings(tmp_path, housing_csv):
    """Small, single-process settings pointed at the synthetic CSV."""
    return AnalysisSettings(
        data_path=str(housing_csv),
        categorical_columns=["grade", "waterfront"],
        drop_columns=["id", "date"],
        n_bootstrap=8,
        cv_folds=3,
        lasso_n_alphas=20,
        survival_threshold=0.9,
        n_jobs=1,
        output_dir=str(tmp_path / "output"),
        make_plots=False,
    )
