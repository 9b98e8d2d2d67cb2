"""Truncation selection on index scores."""

from __future__ import annotations

import numpy as np

from rsindex.errors import InsufficientPopulationError, InvalidParameterError
from rsindex.population import Population


def truncation_select(scores: np.ndarray, n_select: int) -> np.ndarray:
    """Indices of the top ``n_select`` scores, best first.

    Sorting is stable: among equal scores the earlier row wins.

    Args:
        scores: (N,) selection index values.
        n_select: Number to select (1 ≤ n_select ≤ N).

    Returns:
        (n_select,) row indices.
    """
    scores = np.asarray(scores, dtype=np.float64)
    if scores.ndim != 1:
        raise InvalidParameterError(f"scores must be 1-D, got shape {scores.shape}")
    if n_select < 1:
        raise InsufficientPopulationError(
            f"must select at least 1 individual, got {n_select}"
        )
    if n_select > len(scores):
        raise InsufficientPopulationError(
            f"cannot select {n_select} from {len(scores)} individuals"
        )
    if np.any(np.isnan(scores)):
        raise InvalidParameterError("scores contain NaN")
    # Stable sort on the negated scores keeps ties in input order
    order = np.argsort(-scores, kind='stable')
    return order[:n_select]


def select_top(population: Population, scores: np.ndarray, k: int) -> Population:
    """Return the k highest-scoring individuals as a new Population.

    The generation index is unchanged; selection does not advance it.

    Raises:
        InsufficientPopulationError: If k exceeds the population size.
        InvalidParameterError: If scores do not align with the population.
    """
    scores = np.asarray(scores, dtype=np.float64)
    if scores.shape != (len(population),):
        raise InvalidParameterError(
            f"expected {len(population)} scores, got shape {scores.shape}"
        )
    try:
        chosen = truncation_select(scores, k)
    except InsufficientPopulationError as exc:
        exc.annotate(generation=population.generation)
        raise
    return population.subset(chosen)
