"""Population of individuals with two-trait additive genetic values.

A Population is a value: ids, genetic values, optional phenotypes and
optional parent ids held in read-only arrays, plus the generation index
and the shared TraitModel. Phenotyping, selection (``subset``) and
crossing all return new Population instances; nothing is mutated in
place, so a generation can always be traced back through parent ids.

Row i of every array describes the same individual. Column 0 is trait 1,
column 1 is trait 2.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterator, Optional, Sequence

import numpy as np

from rsindex.errors import EmptyPopulationError, InvalidParameterError
from rsindex.traits import TraitModel
from rsindex.types import (
    N_TRAITS,
    GenerationSummary,
    Individual,
    Priority,
    frozen_array,
)


@dataclass(frozen=True)
class Population:
    """One generation of individuals sharing a TraitModel."""
    ids: np.ndarray                        # (n,) int64, unique
    genetic_values: np.ndarray             # (n, 2) float64
    trait_model: TraitModel
    generation: int = 0
    phenotypes: Optional[np.ndarray] = None   # (n, 2) float64, set by phenotype()
    parent_ids: Optional[np.ndarray] = None   # (n, 2) int64, None for founders

    def __post_init__(self):
        ids = np.asarray(self.ids, dtype=np.int64)
        gv = np.asarray(self.genetic_values, dtype=np.float64)
        if ids.ndim != 1:
            raise InvalidParameterError(f"ids must be 1-D, got shape {ids.shape}")
        n = len(ids)
        if gv.shape != (n, N_TRAITS):
            raise InvalidParameterError(
                f"genetic_values must have shape ({n}, {N_TRAITS}), got {gv.shape}"
            )
        if len(np.unique(ids)) != n:
            raise InvalidParameterError("individual ids must be unique")
        if self.generation < 0:
            raise InvalidParameterError(
                f"generation must be non-negative, got {self.generation}"
            )
        object.__setattr__(self, 'ids', frozen_array(ids, dtype=np.int64))
        object.__setattr__(self, 'genetic_values', frozen_array(gv))

        if self.phenotypes is not None:
            ph = np.asarray(self.phenotypes, dtype=np.float64)
            if ph.shape != (n, N_TRAITS):
                raise InvalidParameterError(
                    f"phenotypes must have shape ({n}, {N_TRAITS}), got {ph.shape}"
                )
            object.__setattr__(self, 'phenotypes', frozen_array(ph))

        if self.parent_ids is not None:
            pid = np.asarray(self.parent_ids, dtype=np.int64)
            if pid.shape != (n, 2):
                raise InvalidParameterError(
                    f"parent_ids must have shape ({n}, 2), got {pid.shape}"
                )
            object.__setattr__(self, 'parent_ids', frozen_array(pid, dtype=np.int64))

    # ── Container protocol ──────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.ids)

    def __getitem__(self, i: int) -> Individual:
        gv = self.genetic_values[i]
        ph = None if self.phenotypes is None else self.phenotypes[i]
        par = None if self.parent_ids is None else self.parent_ids[i]
        return Individual(
            id=int(self.ids[i]),
            genetic_value=(float(gv[0]), float(gv[1])),
            phenotype=None if ph is None else (float(ph[0]), float(ph[1])),
            parents=None if par is None else (int(par[0]), int(par[1])),
        )

    def __iter__(self) -> Iterator[Individual]:
        for i in range(len(self)):
            yield self[i]

    @property
    def is_phenotyped(self) -> bool:
        return self.phenotypes is not None

    @property
    def max_id(self) -> int:
        """Largest id in use (-1 when empty)."""
        return int(self.ids.max()) if len(self) else -1

    # ── Transitions ─────────────────────────────────────────────────

    def phenotype(self, rng: np.random.Generator) -> "Population":
        """Return a phenotyped copy: y = g + e, one noise draw per individual.

        Genetic values are carried over unchanged. Calling this on an
        already phenotyped population draws fresh phenotypes.
        """
        noise = self.trait_model.sample_environmental_noise(len(self), rng)
        return replace(self, phenotypes=self.genetic_values + noise)

    def subset(self, indices: Sequence[int]) -> "Population":
        """New Population of the rows at ``indices`` (same generation)."""
        idx = np.asarray(indices, dtype=np.intp)
        return Population(
            ids=self.ids[idx],
            genetic_values=self.genetic_values[idx],
            trait_model=self.trait_model,
            generation=self.generation,
            phenotypes=None if self.phenotypes is None else self.phenotypes[idx],
            parent_ids=None if self.parent_ids is None else self.parent_ids[idx],
        )

    # ── Statistics ──────────────────────────────────────────────────

    def mean_genetic_value(self) -> np.ndarray:
        """(2,) arithmetic mean of genetic values per trait.

        Raises:
            EmptyPopulationError: If the population has no individuals.
        """
        if len(self) == 0:
            raise EmptyPopulationError(
                "mean genetic value undefined for an empty population",
                generation=self.generation,
            )
        return self.genetic_values.mean(axis=0)

    def genetic_covariance(self) -> np.ndarray:
        """(2, 2) unbiased (n−1) covariance of genetic values.

        Raises:
            EmptyPopulationError: If fewer than 2 individuals.
        """
        if len(self) < 2:
            raise EmptyPopulationError(
                f"genetic covariance needs at least 2 individuals, got {len(self)}",
                generation=self.generation,
            )
        return np.cov(self.genetic_values, rowvar=False, ddof=1)

    def phenotypic_covariance(self) -> np.ndarray:
        """(2, 2) unbiased covariance of phenotypes."""
        if self.phenotypes is None:
            raise InvalidParameterError("population has not been phenotyped")
        if len(self) < 2:
            raise EmptyPopulationError(
                f"phenotypic covariance needs at least 2 individuals, got {len(self)}",
                generation=self.generation,
            )
        return np.cov(self.phenotypes, rowvar=False, ddof=1)

    def summarize(self, priority: Optional[Priority] = None) -> GenerationSummary:
        """GenerationSummary of this population's genetic values."""
        return GenerationSummary(
            generation=self.generation,
            mean=self.mean_genetic_value(),
            covariance=self.genetic_covariance(),
            n_individuals=len(self),
            priority=priority,
        )


# ═══════════════════════════════════════════════════════════════════════
# FOUNDERS
# ═══════════════════════════════════════════════════════════════════════

def found_population(
    trait_model: TraitModel,
    n_individuals: int,
    rng: np.random.Generator,
    first_id: int = 0,
) -> Population:
    """Sample a generation-0 population with genetic values from N(μ, G).

    Stand-in for a marker/QTL founder simulator: only the resulting
    genetic values and the trait model are consumed by the engine.

    Args:
        trait_model: Validated TraitModel.
        n_individuals: Founder count (≥ 1).
        rng: Random generator.
        first_id: Id given to the first founder; ids are sequential.

    Returns:
        Unphenotyped Population with generation 0.
    """
    if n_individuals < 1:
        raise InvalidParameterError(
            f"founder population needs at least 1 individual, got {n_individuals}"
        )
    gv = trait_model.sample_genetic_values(n_individuals, rng)
    return Population(
        ids=np.arange(first_id, first_id + n_individuals, dtype=np.int64),
        genetic_values=gv,
        trait_model=trait_model,
        generation=0,
    )
