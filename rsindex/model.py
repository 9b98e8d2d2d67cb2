"""Generation loop: one replicate of recurrent index selection.

Per generation g = 1..G:
  PHENOTYPING  y = g + e for every individual
  SELECTING    adaptive residual index on y, keep the top n_selected
  MATING       random pairs of selected parents → next generation
  SUMMARIZING  mean and covariance of the new generation's genetic values

Generation 0 (FOUNDING) is summarized from the founders before any
selection, so a finished replicate has G + 1 summaries.

Any SimulationError aborts the replicate. It is annotated with the
replicate index, generation and loop state, then re-raised; the loop
never retries. Cancellation is cooperative and checked only at
generation boundaries.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from rsindex.config import SimulationConfig
from rsindex.errors import InvalidParameterError, ReplicateCancelled, SimulationError
from rsindex.index import ANCHOR_FOUNDER, IndexWeights, ReferenceScale, residual_index
from rsindex.mating import cross
from rsindex.population import Population
from rsindex.selection import select_top
from rsindex.types import LoopState, ReplicateResult

logger = logging.getLogger(__name__)

# progress_callback(replicate, generation, n_generations)
ProgressCallback = Callable[[int, int, int], None]


@dataclass(frozen=True)
class LoopSettings:
    """Resolved per-generation parameters of a replicate."""
    n_generations: int
    n_selected: int
    n_crosses: int
    progeny_per_cross: int
    segregation_fraction: float
    weights: IndexWeights
    anchor: str

    @classmethod
    def from_config(cls, config: SimulationConfig,
                    founder_size: Optional[int] = None) -> "LoopSettings":
        """Resolve settings; ``founder_size`` is the actual founder count."""
        return cls(
            n_generations=config.simulation.n_generations,
            n_selected=config.population.n_selected,
            n_crosses=config.population.crosses(founder_size),
            progeny_per_cross=config.population.progeny_per_cross,
            segregation_fraction=config.mating.segregation_fraction,
            weights=config.index.index_weights(),
            anchor=config.index.anchor,
        )


def run_replicate(
    founders: Population,
    config: SimulationConfig,
    rng: np.random.Generator,
    replicate: int = 0,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
    record_populations: bool = False,
) -> ReplicateResult:
    """Run one replicate from ``founders`` for config.simulation.n_generations.

    Unless population.n_crosses is set, each generation is as large as
    ``founders``.

    Args:
        founders: Generation-0 population (unphenotyped).
        config: Validated SimulationConfig.
        rng: This replicate's own random stream.
        replicate: Replicate index, used for error context and logging.
        cancel_event: Checked before each generation; when set the
            replicate stops with ReplicateCancelled.
        progress_callback: Called after each completed generation.
        record_populations: Keep every generation's Population on the
            result (lineage tracing; memory grows with G).

    Returns:
        ReplicateResult with G + 1 summaries.

    Raises:
        SimulationError: Any engine failure, annotated with context.
        ReplicateCancelled: If cancel_event was set.
    """
    settings = LoopSettings.from_config(config, founder_size=len(founders))
    if founders.generation != 0:
        raise InvalidParameterError(
            f"founders must be generation 0, got {founders.generation}",
            replicate=replicate,
        )

    result = ReplicateResult(replicate=replicate)
    state = LoopState.FOUNDING
    generation = 0
    try:
        result.summaries.append(founders.summarize())
        if record_populations:
            result.populations.append(founders)

        reference: Optional[ReferenceScale] = None
        current = founders
        for generation in range(1, settings.n_generations + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise ReplicateCancelled(
                    f"cancelled before generation {generation}"
                )

            state = LoopState.PHENOTYPING
            phenotyped = current.phenotype(rng)

            state = LoopState.SELECTING
            if settings.anchor == ANCHOR_FOUNDER and reference is None:
                reference = ReferenceScale.from_observations(phenotyped.phenotypes)
            index = residual_index(phenotyped.phenotypes, settings.weights, reference)
            selected = select_top(phenotyped, index.scores, settings.n_selected)

            state = LoopState.MATING
            current = cross(
                selected,
                n_crosses=settings.n_crosses,
                progeny_per_cross=settings.progeny_per_cross,
                segregation_fraction=settings.segregation_fraction,
                rng=rng,
                first_id=current.max_id + 1,
            )

            state = LoopState.SUMMARIZING
            summary = current.summarize(priority=index.priority)
            result.summaries.append(summary)
            if record_populations:
                result.populations.append(current)

            logger.debug(
                "replicate %d generation %d: priority=%s mean=(%.3f, %.3f)",
                replicate, generation, index.priority.name,
                summary.mean_1, summary.mean_2,
            )
            if progress_callback is not None:
                progress_callback(replicate, generation, settings.n_generations)

        state = LoopState.TERMINAL
    except SimulationError as exc:
        exc.annotate(replicate=replicate, generation=generation, state=state.name)
        raise

    final = result.summaries[-1]
    logger.info(
        "replicate %d finished %d generations: mean=(%.3f, %.3f)",
        replicate, settings.n_generations, final.mean_1, final.mean_2,
    )
    return result
