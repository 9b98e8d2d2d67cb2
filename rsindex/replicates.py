"""Replicate runner and cross-replicate aggregation.

Runs the generation loop ``n_replicates`` times, each replicate with its
own Generator spawned from the base seed (replicate i always receives
child i of SeedSequence(seed)), then reduces the per-generation trait
means to mean ± sd trajectories.

Replicates share only read-only inputs (config, trait model, optional
founders), so with ``workers > 1`` they run on a ThreadPoolExecutor
without locks. Results are identical for any worker count.

Failure policy: the first SimulationError aborts the experiment (other
replicates are asked to stop at their next generation boundary) unless
``simulation.tolerate_failures`` is set, in which case the failure is
logged and recorded and the remaining replicates continue.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from rsindex.config import (
    SimulationConfig,
    build_trait_model,
    validate_config,
    validate_founder_count,
)
from rsindex.errors import InvalidParameterError, ReplicateCancelled, SimulationError
from rsindex.model import ProgressCallback, run_replicate
from rsindex.population import Population, found_population
from rsindex.rng import spawn_replicate_seeds
from rsindex.traits import TraitModel
from rsindex.types import N_TRAITS, AggregatedTrajectory, ReplicateResult

logger = logging.getLogger(__name__)


@dataclass
class ExperimentResult:
    """Completed replicates and their aggregate."""
    replicates: List[ReplicateResult] = field(default_factory=list)   # replicate order
    trajectory: Optional[AggregatedTrajectory] = None                 # None if nothing completed
    cancelled: bool = False
    failures: Dict[int, SimulationError] = field(default_factory=dict)
    n_requested: int = 0

    @property
    def n_completed(self) -> int:
        return len(self.replicates)

    @property
    def complete(self) -> bool:
        return self.n_completed == self.n_requested


class _CancelFlag:
    """Caller's cancel event OR'd with an internal stop-on-failure event."""

    def __init__(self, external: Optional[threading.Event] = None):
        self.external = external
        self.internal = threading.Event()

    def is_set(self) -> bool:
        if self.internal.is_set():
            return True
        return self.external is not None and self.external.is_set()

    @property
    def requested_by_caller(self) -> bool:
        return self.external is not None and self.external.is_set()


# ═══════════════════════════════════════════════════════════════════════
# AGGREGATION
# ═══════════════════════════════════════════════════════════════════════

def aggregate_replicates(results: Sequence[ReplicateResult]) -> AggregatedTrajectory:
    """Per-generation mean and sd (n−1) of trait means across replicates.

    Args:
        results: Completed replicates, all with the same number of summaries.

    Returns:
        AggregatedTrajectory; sd is NaN when len(results) == 1.

    Raises:
        InvalidParameterError: If results is empty or lengths differ.
    """
    if len(results) == 0:
        raise InvalidParameterError("no replicate results to aggregate")
    lengths = {len(r) for r in results}
    if len(lengths) != 1:
        raise InvalidParameterError(
            f"replicates have different trajectory lengths: {sorted(lengths)}"
        )

    means = np.stack([r.mean_trajectory() for r in results])        # (R, G+1, 2)
    covs = np.stack([r.covariance_trajectory() for r in results])   # (R, G+1, 2, 2)
    n_rep = len(results)

    if n_rep >= 2:
        sd = means.std(axis=0, ddof=1)
    else:
        sd = np.full(means.shape[1:], np.nan)

    return AggregatedTrajectory(
        generations=np.array([s.generation for s in results[0].summaries]),
        mean=means.mean(axis=0),
        sd=sd,
        mean_covariance=covs.mean(axis=0),
        n_replicates=n_rep,
    )


# ═══════════════════════════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════════════════════════

def _run_one(
    replicate: int,
    seed_seq: np.random.SeedSequence,
    config: SimulationConfig,
    trait_model: TraitModel,
    founders: Optional[Population],
    cancel: _CancelFlag,
    progress_callback: Optional[ProgressCallback],
) -> ReplicateResult:
    rng = np.random.Generator(np.random.PCG64(seed_seq))
    if founders is None:
        founders = found_population(trait_model, config.population.founder_size, rng)
    result = run_replicate(
        founders, config, rng,
        replicate=replicate,
        cancel_event=cancel,
        progress_callback=progress_callback,
    )
    result.seed_entropy = seed_seq.entropy
    result.spawn_key = tuple(seed_seq.spawn_key)
    return result


def run_replicates(
    config: SimulationConfig,
    founders: Optional[Population] = None,
    workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> ExperimentResult:
    """Run config.simulation.n_replicates independent replicates.

    Args:
        config: SimulationConfig (validated here).
        founders: Shared founder population; None samples a fresh one
            per replicate from that replicate's stream. Its size sets
            the generation size unless population.n_crosses is set.
        workers: Thread count; defaults to config.simulation.workers.
        cancel_event: Set it to stop in-flight replicates at their next
            generation boundary. Completed replicates are kept.
        progress_callback: (replicate, generation, n_generations); called
            from worker threads when workers > 1.

    Returns:
        ExperimentResult.

    Raises:
        InvalidParameterError: Invalid config, or founders that do not fit it.
        SimulationError: First replicate failure, unless
            simulation.tolerate_failures is set.
    """
    validate_config(config)
    sim = config.simulation
    trait_model = founders.trait_model if founders is not None else build_trait_model(config)
    if founders is not None:
        validate_founder_count(config, len(founders))
    n_workers = sim.workers if workers is None else workers
    if n_workers < 1:
        raise InvalidParameterError(f"workers must be ≥ 1, got {n_workers}")

    seeds = spawn_replicate_seeds(sim.seed, sim.n_replicates)
    cancel = _CancelFlag(cancel_event)
    completed: Dict[int, ReplicateResult] = {}
    failures: Dict[int, SimulationError] = {}
    cancelled = False

    logger.info(
        "running %d replicates × %d generations (seed=%d, workers=%d, anchor=%s)",
        sim.n_replicates, sim.n_generations, sim.seed, n_workers, config.index.anchor,
    )

    def handle_failure(i: int, exc: SimulationError) -> None:
        if not sim.tolerate_failures:
            cancel.internal.set()
            raise exc
        logger.warning("replicate %d failed: %s", i, exc)
        failures[i] = exc

    if n_workers == 1:
        for i, ss in enumerate(seeds):
            if cancel.is_set():
                cancelled = True
                break
            try:
                completed[i] = _run_one(
                    i, ss, config, trait_model, founders, cancel, progress_callback,
                )
            except ReplicateCancelled:
                cancelled = True
                break
            except SimulationError as exc:
                handle_failure(i, exc)
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            futures = {
                pool.submit(
                    _run_one, i, ss, config, trait_model, founders,
                    cancel, progress_callback,
                ): i
                for i, ss in enumerate(seeds)
            }
            try:
                for fut in as_completed(futures):
                    i = futures[fut]
                    try:
                        completed[i] = fut.result()
                    except ReplicateCancelled:
                        cancelled = True
                    except SimulationError as exc:
                        handle_failure(i, exc)
            except SimulationError:
                for fut in futures:
                    fut.cancel()
                raise

    cancelled = cancelled or cancel.requested_by_caller
    replicates = [completed[i] for i in sorted(completed)]
    trajectory = aggregate_replicates(replicates) if replicates else None

    if cancelled:
        logger.warning(
            "experiment cancelled: %d of %d replicates completed",
            len(replicates), sim.n_replicates,
        )
    else:
        logger.info(
            "experiment finished: %d completed, %d failed",
            len(replicates), len(failures),
        )

    return ExperimentResult(
        replicates=replicates,
        trajectory=trajectory,
        cancelled=cancelled,
        failures=failures,
        n_requested=sim.n_replicates,
    )


def replicate_final_means(result: ExperimentResult) -> np.ndarray:
    """(R, 2) last-generation trait means of each completed replicate."""
    if not result.replicates:
        return np.empty((0, N_TRAITS))
    return np.array([r.summaries[-1].mean for r in result.replicates])
