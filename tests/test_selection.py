"""Tests for rsindex.selection — truncation selection."""

import numpy as np
import pytest

from rsindex.errors import InsufficientPopulationError, InvalidParameterError
from rsindex.population import Population
from rsindex.selection import select_top, truncation_select
from rsindex.traits import TraitModel


def _pop(n, generation=0, first_id=0):
    model = TraitModel(means=[0.0, 0.0], additive_covariance=np.eye(2),
                       environmental_covariance=np.eye(2))
    return Population(ids=np.arange(first_id, first_id + n),
                      genetic_values=np.arange(2 * n, dtype=float).reshape(n, 2),
                      trait_model=model, generation=generation)


class TestTruncationSelect:
    def test_top_scores_best_first(self):
        idx = truncation_select(np.array([0.5, 3.0, -1.0, 2.0]), 2)
        np.testing.assert_array_equal(idx, [1, 3])

    def test_select_all(self):
        idx = truncation_select(np.array([1.0, 3.0, 2.0]), 3)
        np.testing.assert_array_equal(idx, [1, 2, 0])

    def test_ties_keep_input_order(self):
        idx = truncation_select(np.array([1.0, 3.0, 3.0, 2.0, 3.0]), 2)
        np.testing.assert_array_equal(idx, [1, 2])

    def test_selected_dominate_rest(self):
        scores = np.random.default_rng(0).normal(size=200)
        idx = truncation_select(scores, 50)
        rest = np.setdiff1d(np.arange(200), idx)
        assert scores[idx].min() >= scores[rest].max()
        assert len(np.unique(idx)) == 50

    def test_too_many(self):
        with pytest.raises(InsufficientPopulationError):
            truncation_select(np.zeros(3), 4)

    def test_zero(self):
        with pytest.raises(InsufficientPopulationError):
            truncation_select(np.zeros(3), 0)

    def test_nan_scores(self):
        with pytest.raises(InvalidParameterError):
            truncation_select(np.array([1.0, np.nan]), 1)


class TestSelectTop:
    def test_returns_population_of_k(self):
        pop = _pop(6, generation=2, first_id=20)
        scores = np.array([0.1, 0.9, 0.5, 0.7, 0.2, 0.3])
        sel = select_top(pop, scores, 3)
        assert isinstance(sel, Population)
        assert len(sel) == 3
        np.testing.assert_array_equal(sel.ids, [21, 23, 22])
        assert sel.generation == 2

    def test_selected_are_members(self):
        pop = _pop(30)
        sel = select_top(pop, np.random.default_rng(1).normal(size=30), 10)
        assert set(sel.ids).issubset(set(pop.ids))
        np.testing.assert_array_equal(sel.genetic_values, pop.genetic_values[np.searchsorted(pop.ids, sel.ids)])

    def test_misaligned_scores(self):
        with pytest.raises(InvalidParameterError):
            select_top(_pop(5), np.zeros(4), 2)

    def test_error_carries_generation(self):
        with pytest.raises(InsufficientPopulationError) as excinfo:
            select_top(_pop(5, generation=7), np.zeros(5), 6)
        assert excinfo.value.generation == 7
        assert "generation=7" in str(excinfo.value)
