"""Random mating with a midparent + Mendelian segregation offspring model.

Each cross draws two distinct parents uniformly at random from the
selected set (parents may reappear in other crosses). Every offspring of
a cross gets

    g_offspring = (g_p1 + g_p2) / 2 + s,   s ~ N(0, f·G)

where f is the segregation variance fraction. Under the infinitesimal
model with non-inbred parents f = 0.5; it is kept as configuration
because the engine does not simulate loci.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from rsindex.errors import InsufficientPopulationError, InvalidParameterError
from rsindex.population import Population


def draw_parent_pairs(
    n_parents: int,
    n_crosses: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw ``n_crosses`` pairs of distinct parent row indices.

    Uniform over unordered pairs of distinct parents; independent across
    crosses.

    Returns:
        (n_crosses, 2) intp.
    """
    if n_parents < 2:
        raise InsufficientPopulationError(
            f"crossing needs at least 2 parents, got {n_parents}"
        )
    first = rng.integers(0, n_parents, size=n_crosses)
    # Draw from the n-1 remaining parents and skip over `first`
    second = rng.integers(0, n_parents - 1, size=n_crosses)
    second = second + (second >= first)
    return np.column_stack([first, second]).astype(np.intp)


def midparent_values(genetic_values: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    """(n_pairs, 2) average genetic value of each parent pair."""
    return 0.5 * (genetic_values[pairs[:, 0]] + genetic_values[pairs[:, 1]])


def cross(
    parents: Population,
    n_crosses: int,
    progeny_per_cross: int,
    segregation_fraction: float,
    rng: np.random.Generator,
    first_id: Optional[int] = None,
) -> Population:
    """Produce the next generation from selected parents.

    Args:
        parents: Selected parents (≥ 2 individuals).
        n_crosses: Number of independent parent pairs drawn.
        progeny_per_cross: Offspring per pair.
        segregation_fraction: Segregation variance as a fraction of G, in [0, 1].
        rng: Random generator.
        first_id: Id of the first offspring; defaults to one past the
            largest parent id. Offspring ids are sequential.

    Returns:
        Population of n_crosses × progeny_per_cross offspring with
        generation = parents.generation + 1 and parent ids recorded.
        Offspring of one cross occupy consecutive rows.

    Raises:
        InsufficientPopulationError: Fewer than 2 parents.
        InvalidParameterError: Non-positive counts or fraction outside [0, 1].
    """
    if len(parents) < 2:
        raise InsufficientPopulationError(
            f"crossing needs at least 2 parents, got {len(parents)}",
            generation=parents.generation,
        )
    if n_crosses < 1 or progeny_per_cross < 1:
        raise InvalidParameterError(
            f"n_crosses and progeny_per_cross must be ≥ 1, "
            f"got {n_crosses} and {progeny_per_cross}"
        )
    if not 0.0 <= segregation_fraction <= 1.0:
        raise InvalidParameterError(
            f"segregation_fraction must be in [0, 1], got {segregation_fraction}"
        )

    pairs = draw_parent_pairs(len(parents), n_crosses, rng)
    midparent = midparent_values(parents.genetic_values, pairs)

    n_offspring = n_crosses * progeny_per_cross
    family_mean = np.repeat(midparent, progeny_per_cross, axis=0)
    segregation = parents.trait_model.sample_segregation_noise(
        n_offspring, segregation_fraction, rng,
    )

    if first_id is None:
        first_id = parents.max_id + 1
    parent_ids = np.repeat(parents.ids[pairs], progeny_per_cross, axis=0)

    return Population(
        ids=np.arange(first_id, first_id + n_offspring, dtype=np.int64),
        genetic_values=family_mean + segregation,
        trait_model=parents.trait_model,
        generation=parents.generation + 1,
        parent_ids=parent_ids,
    )


def family_sizes(offspring: Population) -> Tuple[np.ndarray, np.ndarray]:
    """Count offspring per parent id.

    Returns:
        (parent_ids, counts), each parent counted once per offspring per
        role in the cross.
    """
    if offspring.parent_ids is None:
        raise InvalidParameterError("population has no recorded parents")
    return np.unique(offspring.parent_ids.ravel(), return_counts=True)
