"""Tests for rsindex.population — Population values and founder sampling."""

import numpy as np
import pytest

from rsindex.errors import EmptyPopulationError, InvalidParameterError
from rsindex.population import Population, found_population
from rsindex.traits import TraitModel
from rsindex.types import Individual, Priority


def _model(env=True):
    e = np.diag([10.0, 8.0]) if env else np.zeros((2, 2))
    return TraitModel(means=[100.0, 100.0],
                      additive_covariance=[[10.0, -4.0], [-4.0, 20.0]],
                      environmental_covariance=e)


def _pop(values, model=None, generation=0, first_id=0):
    values = np.asarray(values, dtype=np.float64)
    return Population(ids=np.arange(first_id, first_id + len(values)),
                      genetic_values=values,
                      trait_model=model or _model(),
                      generation=generation)


class TestConstruction:
    def test_duplicate_ids(self):
        with pytest.raises(InvalidParameterError, match="unique"):
            Population(ids=[1, 1], genetic_values=np.zeros((2, 2)), trait_model=_model())

    def test_shape_mismatch(self):
        with pytest.raises(InvalidParameterError, match="genetic_values"):
            Population(ids=[0, 1, 2], genetic_values=np.zeros((2, 2)), trait_model=_model())

    def test_negative_generation(self):
        with pytest.raises(InvalidParameterError, match="generation"):
            _pop(np.zeros((2, 2)), generation=-1)

    def test_arrays_read_only(self):
        pop = _pop([[1.0, 2.0], [3.0, 4.0]])
        with pytest.raises(ValueError):
            pop.genetic_values[0, 0] = 0.0
        with pytest.raises(ValueError):
            pop.ids[0] = 7

    def test_empty_population_allowed(self):
        pop = _pop(np.empty((0, 2)))
        assert len(pop) == 0
        assert pop.max_id == -1


class TestContainer:
    def test_getitem_returns_individual(self):
        pop = _pop([[1.0, 2.0], [3.0, 4.0]], first_id=10)
        ind = pop[1]
        assert isinstance(ind, Individual)
        assert ind.id == 11
        assert ind.genetic_value == (3.0, 4.0)
        assert ind.phenotype is None
        assert ind.parents is None

    def test_iteration(self):
        pop = _pop(np.zeros((4, 2)), first_id=5)
        assert [ind.id for ind in pop] == [5, 6, 7, 8]
        assert pop.max_id == 8


class TestPhenotype:
    def test_returns_new_population(self):
        pop = _pop(np.zeros((10, 2)))
        phenotyped = pop.phenotype(np.random.default_rng(0))
        assert phenotyped is not pop
        assert not pop.is_phenotyped
        assert phenotyped.is_phenotyped
        np.testing.assert_array_equal(phenotyped.genetic_values, pop.genetic_values)
        np.testing.assert_array_equal(phenotyped.ids, pop.ids)

    def test_noise_added(self):
        pop = _pop(np.zeros((10, 2)))
        phenotyped = pop.phenotype(np.random.default_rng(0))
        assert not np.allclose(phenotyped.phenotypes, 0.0)

    def test_zero_environment_phenotype_equals_genotype(self):
        pop = _pop(np.random.default_rng(1).normal(size=(20, 2)), model=_model(env=False))
        phenotyped = pop.phenotype(np.random.default_rng(2))
        np.testing.assert_array_equal(phenotyped.phenotypes, pop.genetic_values)

    def test_individual_view_has_phenotype(self):
        phenotyped = _pop([[1.0, 1.0], [2.0, 2.0]]).phenotype(np.random.default_rng(3))
        assert phenotyped[0].is_phenotyped


class TestStatistics:
    def test_mean_and_covariance(self):
        values = np.random.default_rng(4).normal(size=(30, 2))
        pop = _pop(values)
        np.testing.assert_allclose(pop.mean_genetic_value(), values.mean(axis=0))
        np.testing.assert_allclose(pop.genetic_covariance(), np.cov(values.T, ddof=1))

    def test_covariance_needs_two(self):
        with pytest.raises(EmptyPopulationError):
            _pop([[1.0, 2.0]]).genetic_covariance()

    def test_mean_of_empty(self):
        with pytest.raises(EmptyPopulationError):
            _pop(np.empty((0, 2))).mean_genetic_value()

    def test_phenotypic_covariance_requires_phenotypes(self):
        with pytest.raises(InvalidParameterError, match="phenotyped"):
            _pop(np.zeros((3, 2))).phenotypic_covariance()

    def test_summarize(self):
        values = np.random.default_rng(5).normal(size=(8, 2))
        summary = _pop(values, generation=4).summarize(priority=Priority.TRAIT_1)
        assert summary.generation == 4
        assert summary.n_individuals == 8
        assert summary.priority is Priority.TRAIT_1
        np.testing.assert_allclose(summary.mean, values.mean(axis=0))


class TestSubset:
    def test_keeps_rows_and_generation(self):
        pop = _pop([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]], generation=2, first_id=100)
        pop = pop.phenotype(np.random.default_rng(6))
        sub = pop.subset([2, 0])
        assert sub.generation == 2
        np.testing.assert_array_equal(sub.ids, [102, 100])
        np.testing.assert_array_equal(sub.genetic_values, [[2.0, 2.0], [0.0, 0.0]])
        np.testing.assert_array_equal(sub.phenotypes, pop.phenotypes[[2, 0]])


class TestFoundPopulation:
    def test_generation_zero(self):
        pop = found_population(_model(), 50, np.random.default_rng(7))
        assert len(pop) == 50
        assert pop.generation == 0
        assert not pop.is_phenotyped
        assert pop.parent_ids is None
        np.testing.assert_array_equal(pop.ids, np.arange(50))

    def test_first_id(self):
        pop = found_population(_model(), 5, np.random.default_rng(7), first_id=1000)
        np.testing.assert_array_equal(pop.ids, np.arange(1000, 1005))

    def test_reproducible(self):
        a = found_population(_model(), 20, np.random.default_rng(8))
        b = found_population(_model(), 20, np.random.default_rng(8))
        np.testing.assert_array_equal(a.genetic_values, b.genetic_values)

    def test_needs_one_founder(self):
        with pytest.raises(InvalidParameterError):
            found_population(_model(), 0, np.random.default_rng(7))
