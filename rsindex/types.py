"""Core data types for rsindex.

This module is the SINGLE SOURCE OF TRUTH for:
  - N_TRAITS and the trait column convention (column 0 = trait 1, column 1 = trait 2)
  - Priority and LoopState enumerations
  - Record types passed between modules and out to callers
    (Individual, GenerationSummary, ReplicateResult, AggregatedTrajectory)

Records are plain data. Arrays stored on them are flagged read-only so a
recorded summary cannot drift after it has been appended to a trajectory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

N_TRAITS = 2  # Fixed. Trait model, index and summaries assume exactly two.

TRAIT_1 = 0   # column index of trait 1
TRAIT_2 = 1   # column index of trait 2


def frozen_array(values, dtype=np.float64) -> np.ndarray:
    """Copy ``values`` into a new array and mark it read-only."""
    arr = np.array(values, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Priority(IntEnum):
    """Trait chosen as regression response by the adaptive index.

    The value is the column index of the prioritized trait; the other
    trait is the predictor.
    """
    TRAIT_1 = 0
    TRAIT_2 = 1

    @property
    def column(self) -> int:
        return int(self.value)

    @property
    def other(self) -> int:
        return 1 - int(self.value)


class LoopState(IntEnum):
    """States of one replicate's generation loop.

    FOUNDING → (PHENOTYPING → SELECTING → MATING → SUMMARIZING)×G → TERMINAL
    """
    FOUNDING    = 0   # founder population received, generation 0 summarized
    PHENOTYPING = 1   # environmental noise added to genetic values
    SELECTING   = 2   # index computed, top-k retained
    MATING      = 3   # selected parents crossed into the next generation
    SUMMARIZING = 4   # summary recorded for the new generation
    TERMINAL    = 5   # all generations done


# ═══════════════════════════════════════════════════════════════════════
# RECORDS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Individual:
    """Read-only view of one member of a Population."""
    id: int
    genetic_value: Tuple[float, float]
    phenotype: Optional[Tuple[float, float]] = None
    parents: Optional[Tuple[int, int]] = None   # None for founders

    @property
    def is_phenotyped(self) -> bool:
        return self.phenotype is not None


@dataclass(frozen=True)
class GenerationSummary:
    """Genetic summary of one generation in one replicate."""
    generation: int
    mean: np.ndarray                     # (2,) mean genetic value per trait
    covariance: np.ndarray               # (2, 2) unbiased genetic covariance
    n_individuals: int = 0
    priority: Optional[Priority] = None  # index priority in the round that produced this generation

    def __post_init__(self):
        object.__setattr__(self, 'mean', frozen_array(self.mean))
        object.__setattr__(self, 'covariance', frozen_array(self.covariance))

    @property
    def mean_1(self) -> float:
        return float(self.mean[TRAIT_1])

    @property
    def mean_2(self) -> float:
        return float(self.mean[TRAIT_2])

    @property
    def genetic_correlation(self) -> float:
        """Correlation implied by the covariance (NaN if a variance is zero)."""
        v1, v2 = self.covariance[0, 0], self.covariance[1, 1]
        if v1 <= 0 or v2 <= 0:
            return float('nan')
        return float(self.covariance[0, 1] / np.sqrt(v1 * v2))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.mean))
                    and np.all(np.isfinite(self.covariance)))


@dataclass
class ReplicateResult:
    """Ordered summaries of one replicate: generation 0 through G."""
    replicate: int
    summaries: List[GenerationSummary] = field(default_factory=list)
    seed_entropy: Optional[int] = None
    spawn_key: Tuple[int, ...] = ()
    populations: list = field(default_factory=list)   # per-generation Populations, when recorded

    def __len__(self) -> int:
        return len(self.summaries)

    @property
    def n_generations(self) -> int:
        """Number of selection rounds (summaries minus the founder entry)."""
        return len(self.summaries) - 1

    def mean_trajectory(self) -> np.ndarray:
        """(G+1, 2) mean genetic value per generation."""
        return np.array([s.mean for s in self.summaries], dtype=np.float64)

    def covariance_trajectory(self) -> np.ndarray:
        """(G+1, 2, 2) genetic covariance per generation."""
        return np.array([s.covariance for s in self.summaries], dtype=np.float64)


@dataclass(frozen=True)
class AggregatedTrajectory:
    """Cross-replicate statistics of per-generation mean genetic values.

    ``sd`` uses the n−1 denominator; it is NaN when only one replicate
    contributed.
    """
    generations: np.ndarray       # (G+1,) int
    mean: np.ndarray              # (G+1, 2) mean over replicates of the trait means
    sd: np.ndarray                # (G+1, 2) sd over replicates of the trait means
    mean_covariance: np.ndarray   # (G+1, 2, 2) mean over replicates of the genetic covariance
    n_replicates: int

    def __post_init__(self):
        object.__setattr__(self, 'generations', frozen_array(self.generations, dtype=np.int64))
        object.__setattr__(self, 'mean', frozen_array(self.mean))
        object.__setattr__(self, 'sd', frozen_array(self.sd))
        object.__setattr__(self, 'mean_covariance', frozen_array(self.mean_covariance))

    def __len__(self) -> int:
        return len(self.generations)

    def gain(self) -> np.ndarray:
        """(2,) mean change in trait means from generation 0 to the last."""
        return self.mean[-1] - self.mean[0]
