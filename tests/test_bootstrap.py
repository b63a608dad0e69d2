"""
Bootstrap Lasso Selection Tests

Resampling invariants, survival tallying, threshold selection and
reproducibility under a fixed seed.
"""

import numpy as np
import pandas as pd
import pytest

from housing_selection import bootstrap
from housing_selection.bootstrap import (
    ResampleFit,
    bootstrap_lasso_selection,
    draw_bootstrap_indices,
    fit_lasso_resample,
    run_bootstrap_lasso,
    select_predictors,
    tally_survival,
)
from housing_selection.exceptions import SelectionError


def _fit(resample_id, survived, coefs=None):
    survived = np.asarray(survived, dtype=bool)
    if coefs is None:
        coefs = survived.astype(float)
    return ResampleFit(
        resample_id=resample_id,
        alpha=0.1,
        coefficients=np.asarray(coefs, dtype=float),
        survived=survived,
    )


# =============================================================================
# RESAMPLING
# =============================================================================


class TestDrawIndices:
    def test_each_resample_matches_training_size(self):
        indices = draw_bootstrap_indices(57, 12, random_state=1)
        assert len(indices) == 12
        assert all(len(idx) == 57 for idx in indices)
        assert all(idx.min() >= 0 and idx.max() < 57 for idx in indices)

    def test_draws_with_replacement(self):
        indices = draw_bootstrap_indices(200, 5, random_state=1)
        assert any(len(np.unique(idx)) < 200 for idx in indices)

    def test_fixed_seed_is_reproducible(self):
        a = draw_bootstrap_indices(100, 4, random_state=3)
        b = draw_bootstrap_indices(100, 4, random_state=3)
        assert all(np.array_equal(x, y) for x, y in zip(a, b))

    def test_different_seeds_differ(self):
        a = draw_bootstrap_indices(100, 1, random_state=3)
        b = draw_bootstrap_indices(100, 1, random_state=4)
        assert not np.array_equal(a[0], b[0])

    def test_resample_independent_of_count(self):
        short = draw_bootstrap_indices(50, 3, random_state=9)
        long = draw_bootstrap_indices(50, 10, random_state=9)
        assert all(np.array_equal(x, y) for x, y in zip(short, long))

    @pytest.mark.parametrize("n_rows, n_resamples", [(0, 5), (10, 0)])
    def test_rejects_empty(self, n_rows, n_resamples):
        with pytest.raises(ValueError):
            draw_bootstrap_indices(n_rows, n_resamples)


# =============================================================================
# LASSO FITS
# =============================================================================


class TestLassoFits:
    def test_single_resample_fit(self, split):
        X = split.X_train.to_numpy()
        y = split.y_train.to_numpy()
        idx = draw_bootstrap_indices(len(X), 1, random_state=0)[0]

        fit = fit_lasso_resample(X, y, idx, cv_folds=3, n_alphas=20)

        assert fit.alpha > 0
        assert fit.coefficients.shape == (X.shape[1],)
        assert fit.survived.dtype == bool
        np.testing.assert_array_equal(fit.survived, np.abs(fit.coefficients) > 1e-8)

    def test_strong_predictor_survives(self, split):
        X = split.X_train.to_numpy()
        y = split.y_train.to_numpy()
        idx = draw_bootstrap_indices(len(X), 1, random_state=0)[0]

        fit = fit_lasso_resample(X, y, idx, cv_folds=3, n_alphas=20)

        assert fit.survived[split.predictors.index("sqft_living")]

    def test_results_do_not_depend_on_n_jobs(self, split):
        kwargs = dict(n_resamples=4, cv_folds=3, n_alphas=15, random_state=5)
        serial = run_bootstrap_lasso(split.X_train, split.y_train, n_jobs=1, **kwargs)
        parallel = run_bootstrap_lasso(split.X_train, split.y_train, n_jobs=2, **kwargs)

        assert [f.resample_id for f in parallel] == [0, 1, 2, 3]
        for a, b in zip(serial, parallel):
            assert a.alpha == pytest.approx(b.alpha)
            np.testing.assert_allclose(a.coefficients, b.coefficients)


# =============================================================================
# TALLY AND SELECTION
# =============================================================================


class TestTally:
    def test_counts_and_frequencies(self):
        fits = [
            _fit(0, [True, False, True]),
            _fit(1, [True, False, False]),
            _fit(2, [True, True, False]),
            _fit(3, [True, False, True]),
        ]
        tally = tally_survival(fits, ["a", "b", "c"])

        assert tally.loc["a", "count"] == 4
        assert tally.loc["b", "count"] == 1
        assert tally.loc["c", "count"] == 2
        assert tally.loc["c", "frequency"] == pytest.approx(0.5)
        assert tally["frequency"].between(0, 1).all()

    def test_sorted_by_frequency_then_name(self):
        fits = [_fit(0, [False, True, True, True]), _fit(1, [False, True, True, False])]
        tally = tally_survival(fits, ["d", "c", "b", "a"])
        assert list(tally.index) == ["b", "c", "a", "d"]

    def test_mean_coef(self):
        fits = [_fit(0, [True], [2.0]), _fit(1, [True], [4.0])]
        tally = tally_survival(fits, ["x"])
        assert tally.loc["x", "mean_coef"] == pytest.approx(3.0)

    def test_mismatched_predictors_raise(self):
        with pytest.raises(ValueError):
            tally_survival([_fit(0, [True, False])], ["only_one"])

    def test_empty_fits_raise(self):
        with pytest.raises(ValueError):
            tally_survival([], ["a"])


class TestSelectPredictors:
    @pytest.fixture
    def tally(self):
        return pd.DataFrame(
            {"count": [10, 9, 5, 0], "frequency": [1.0, 0.9, 0.5, 0.0]},
            index=pd.Index(["a", "b", "c", "d"], name="predictor"),
        )

    def test_threshold_is_inclusive(self, tally):
        assert select_predictors(tally, 0.9) == ["a", "b"]

    def test_zero_threshold_keeps_everything(self, tally):
        assert select_predictors(tally, 0.0) == ["a", "b", "c", "d"]

    def test_full_threshold(self, tally):
        assert select_predictors(tally, 1.0) == ["a"]

    def test_invalid_threshold(self, tally):
        with pytest.raises(ValueError):
            select_predictors(tally, 1.5)


class TestBootstrapSelection:
    def test_selects_strong_predictors(self, split):
        selection = bootstrap_lasso_selection(
            split.X_train, split.y_train,
            n_resamples=6, threshold=0.8, cv_folds=3, n_alphas=20, n_jobs=1,
        )
        assert selection.n_resamples == 6
        assert "sqft_living" in selection.selected
        assert selection.tally["selected"].sum() == len(selection.selected)
        assert len(selection.alphas) == 6

    def test_noise_columns_rejected(self, split):
        threshold = 0.9
        selection = bootstrap_lasso_selection(
            split.X_train, split.y_train,
            n_resamples=30, threshold=threshold, cv_folds=5, random_state=42, n_jobs=1,
        )
        tally = selection.tally

        assert "sqft_living" in selection.selected
        for column in ["noise_a", "noise_b"]:
            assert column not in selection.selected
            assert tally.loc[column, "frequency"] < threshold
        assert len(selection.selected) < len(tally)

    def test_tolerance_decides_survival(self, split):
        indices = np.arange(len(split.X_train))
        fit = fit_lasso_resample(
            split.X_train.values, split.y_train.values, indices,
            cv_folds=3, n_alphas=15, tol=1e12,
        )
        assert not fit.survived.any()
        assert np.abs(fit.coefficients).max() > 0

    def test_fixed_seed_gives_same_selection(self, split):
        kwargs = dict(n_resamples=4, threshold=0.75, cv_folds=3, n_alphas=15, n_jobs=1, random_state=11)
        a = bootstrap_lasso_selection(split.X_train, split.y_train, **kwargs)
        b = bootstrap_lasso_selection(split.X_train, split.y_train, **kwargs)
        assert a.selected == b.selected
        pd.testing.assert_frame_equal(a.tally, b.tally)

    def test_nothing_selected_raises(self, split, monkeypatch):
        n_pred = split.X_train.shape[1]

        def no_survivors(X, y, n_resamples, **kwargs):
            return [_fit(i, np.zeros(n_pred, dtype=bool)) for i in range(n_resamples)]

        monkeypatch.setattr(bootstrap, "run_bootstrap_lasso", no_survivors)
        with pytest.raises(SelectionError):
            bootstrap_lasso_selection(split.X_train, split.y_train, n_resamples=3)
