"""Tests for rsindex.index — adaptive residual selection index."""

import numpy as np
import pytest

from rsindex.errors import DegenerateIndexError, DegenerateRegressionError, InvalidParameterError
from rsindex.index import (
    IndexWeights,
    ReferenceScale,
    choose_priority,
    compute_index,
    regression_residuals,
    residual_index,
)
from rsindex.types import Priority


def _observations(n=100, seed=0):
    rng = np.random.default_rng(seed)
    cov = [[20.0, -4.0], [-4.0, 28.0]]
    return rng.multivariate_normal([100.0, 100.0], cov, size=n)


# ── Weights & reference ──────────────────────────────────────────────

class TestIndexWeights:
    def test_defaults(self):
        assert IndexWeights().as_tuple() == (2.0, 1.0, 1.0)

    def test_from_sequence(self):
        w = IndexWeights.from_sequence([3, 0, 1])
        assert (w.residual, w.trait_1, w.trait_2) == (3.0, 0.0, 1.0)

    def test_wrong_length(self):
        with pytest.raises(InvalidParameterError):
            IndexWeights.from_sequence([1.0, 1.0])

    def test_non_finite(self):
        with pytest.raises(InvalidParameterError):
            IndexWeights(residual=np.nan)


class TestReferenceScale:
    def test_from_observations(self):
        y = _observations()
        ref = ReferenceScale.from_observations(y)
        np.testing.assert_allclose(ref.mean, y.mean(axis=0))
        np.testing.assert_allclose(ref.sd, y.std(axis=0))

    def test_zero_sd_rejected(self):
        with pytest.raises(DegenerateIndexError, match="trait 2"):
            ReferenceScale(mean=[0.0, 0.0], sd=[1.0, 0.0])

    def test_standardize(self):
        ref = ReferenceScale(mean=[10.0, 20.0], sd=[2.0, 4.0])
        np.testing.assert_allclose(ref.standardize([[12.0, 16.0]]), [[1.0, -1.0]])


# ── Priority ─────────────────────────────────────────────────────────

class TestChoosePriority:
    def test_own_scale_is_a_tie(self):
        """Against its own mean/sd every cohort has zero standardized means."""
        assert choose_priority(_observations()) is Priority.TRAIT_2

    def test_trait_1_above_reference(self):
        y = _observations()
        ref = ReferenceScale(mean=[90.0, 100.0], sd=[5.0, 5.0])
        assert choose_priority(y, ref) is Priority.TRAIT_1

    def test_trait_2_above_reference(self):
        y = _observations()
        ref = ReferenceScale(mean=[100.0, 90.0], sd=[5.0, 5.0])
        assert choose_priority(y, ref) is Priority.TRAIT_2


# ── Regression ───────────────────────────────────────────────────────

class TestRegressionResiduals:
    def test_matches_least_squares(self):
        y = _observations()
        residuals, slope, intercept = regression_residuals(y[:, 1], y[:, 0])
        b, a = np.polyfit(y[:, 0], y[:, 1], 1)
        assert slope == pytest.approx(b)
        assert intercept == pytest.approx(a)
        np.testing.assert_allclose(residuals, y[:, 1] - (a + b * y[:, 0]), atol=1e-8)

    def test_residuals_orthogonal_to_predictor(self):
        y = _observations()
        residuals, _, _ = regression_residuals(y[:, 1], y[:, 0])
        assert abs(residuals.sum()) < 1e-8
        assert abs(np.dot(residuals, y[:, 0] - y[:, 0].mean())) < 1e-6

    def test_constant_predictor(self):
        with pytest.raises(DegenerateRegressionError):
            regression_residuals(np.arange(5.0), np.full(5, 3.0))

    def test_shape_mismatch(self):
        with pytest.raises(InvalidParameterError):
            regression_residuals(np.arange(5.0), np.arange(4.0))

    def test_constant_response_still_regresses(self):
        """A constant response on a varying predictor has an exact fit."""
        y = _observations()
        residuals, slope, intercept = regression_residuals(np.full(len(y), 5.0), y[:, 0])
        assert slope == pytest.approx(0.0, abs=1e-12)
        assert intercept == pytest.approx(5.0)
        np.testing.assert_allclose(residuals, 0.0, atol=1e-10)


# ── Index ────────────────────────────────────────────────────────────

class TestResidualIndex:
    def test_formula(self):
        y = _observations()
        result = residual_index(y)
        z = (y - y.mean(axis=0)) / y.std(axis=0)
        r = result.residuals
        zr = (r - r.mean()) / r.std()
        expected = 2.0 * zr + z[:, 0] + z[:, 1]
        np.testing.assert_allclose(result.scores, expected, atol=1e-10)

    def test_residual_of_prioritized_trait(self):
        y = _observations()
        result = residual_index(y)
        assert result.priority is Priority.TRAIT_2
        expected, _, _ = regression_residuals(y[:, 1], y[:, 0])
        np.testing.assert_allclose(result.residuals, expected)

    def test_founder_reference_switches_response(self):
        y = _observations()
        ref = ReferenceScale(mean=[90.0, 100.0], sd=[5.0, 5.0])
        result = residual_index(y, reference=ref)
        assert result.priority is Priority.TRAIT_1
        expected, _, _ = regression_residuals(y[:, 0], y[:, 1])
        np.testing.assert_allclose(result.residuals, expected)

    def test_weights_select_components(self):
        y = _observations()
        scores = compute_index(y, IndexWeights(residual=0.0, trait_1=1.0, trait_2=0.0))
        np.testing.assert_allclose(scores, (y[:, 0] - y[:, 0].mean()) / y[:, 0].std())

    def test_deterministic(self):
        y = _observations()
        np.testing.assert_array_equal(compute_index(y), compute_index(y))

    def test_row_permutation_permutes_scores(self):
        y = _observations(n=150, seed=3)
        perm = np.random.default_rng(11).permutation(len(y))
        base = residual_index(y)
        permuted = residual_index(y[perm])
        assert permuted.priority is base.priority
        np.testing.assert_allclose(permuted.scores, base.scores[perm], atol=1e-10)

    def test_scores_aligned_with_rows(self):
        y = _observations(n=7)
        assert compute_index(y).shape == (7,)

    def test_constant_trait_column(self):
        y = _observations()
        y[:, 1] = 5.0
        with pytest.raises(DegenerateIndexError, match="cannot standardize") as excinfo:
            compute_index(y)
        assert not isinstance(excinfo.value, DegenerateRegressionError)

    def test_collinear_traits(self):
        y = _observations()
        y[:, 1] = 5.0 - 2.0 * y[:, 0]
        with pytest.raises(DegenerateIndexError) as excinfo:
            compute_index(y)
        assert not isinstance(excinfo.value, DegenerateRegressionError)

    def test_single_observation(self):
        with pytest.raises(DegenerateRegressionError):
            compute_index([[1.0, 2.0]])

    def test_non_finite(self):
        y = _observations()
        y[3, 0] = np.nan
        with pytest.raises(InvalidParameterError):
            compute_index(y)

    def test_wrong_width(self):
        with pytest.raises(InvalidParameterError):
            compute_index(np.zeros((5, 3)))
