"""Adaptive residual selection index.

Scores each individual from an (n, 2) matrix of observations Y in three
steps:

  1. Priority: z-score both trait columns against a reference scale and
     compare their means. The trait with the larger standardized mean is
     prioritized (ties, within PRIORITY_TOL, go to trait 2).
  2. Residuals: OLS regression of the prioritized trait on the other;
     the residual is the part of the prioritized trait not predicted by
     the other trait.
  3. Index: I = w_res·z(residual) + w_1·z(y_1) + w_2·z(y_2)

The reference scale (the "anchor") is either the current cohort's own
mean/sd ("generation") or a fixed founder-cohort mean/sd ("founder").
Residuals always use their own sd; they are centred by construction.
All standard deviations are population sd (ddof=0).

No randomness: for fixed Y, weights and reference the scores are
reproducible, and permuting the rows of Y permutes the scores.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy import stats

from rsindex.errors import (
    DegenerateIndexError,
    DegenerateRegressionError,
    InvalidParameterError,
)
from rsindex.types import N_TRAITS, TRAIT_1, TRAIT_2, Priority, frozen_array


ANCHOR_GENERATION = "generation"
ANCHOR_FOUNDER = "founder"
ANCHORS = (ANCHOR_GENERATION, ANCHOR_FOUNDER)

# Standardized-mean differences at or below this are a tie (→ trait 2)
PRIORITY_TOL = 1e-9

# Residual sd below this fraction of the response sd counts as zero
RESIDUAL_REL_TOL = 1e-12


# ═══════════════════════════════════════════════════════════════════════
# WEIGHTS & REFERENCE SCALE
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class IndexWeights:
    """Weights of the residual, trait-1 and trait-2 z-scores."""
    residual: float = 2.0
    trait_1: float = 1.0
    trait_2: float = 1.0

    def __post_init__(self):
        for name in ('residual', 'trait_1', 'trait_2'):
            if not np.isfinite(getattr(self, name)):
                raise InvalidParameterError(f"index weight '{name}' must be finite")

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "IndexWeights":
        """Build from (w_residual, w_trait1, w_trait2)."""
        values = list(values)
        if len(values) != 3:
            raise InvalidParameterError(
                f"index weights need 3 values (residual, trait 1, trait 2), "
                f"got {len(values)}"
            )
        return cls(*(float(v) for v in values))

    def as_tuple(self):
        return (self.residual, self.trait_1, self.trait_2)


@dataclass(frozen=True)
class ReferenceScale:
    """Per-trait mean and population sd used to z-score observations."""
    mean: np.ndarray   # (2,)
    sd: np.ndarray     # (2,)

    def __post_init__(self):
        mean = np.asarray(self.mean, dtype=np.float64)
        sd = np.asarray(self.sd, dtype=np.float64)
        if mean.shape != (N_TRAITS,) or sd.shape != (N_TRAITS,):
            raise InvalidParameterError("reference mean and sd need one value per trait")
        for k in range(N_TRAITS):
            if not sd[k] > 0:
                raise DegenerateIndexError(
                    f"trait {k + 1} has zero variance; cannot standardize"
                )
        object.__setattr__(self, 'mean', frozen_array(mean))
        object.__setattr__(self, 'sd', frozen_array(sd))

    @classmethod
    def from_observations(cls, observations: np.ndarray) -> "ReferenceScale":
        """Column means and population sd of an (n, 2) matrix."""
        y = _check_observations(observations)
        return cls(mean=y.mean(axis=0), sd=y.std(axis=0))

    def standardize(self, observations: np.ndarray) -> np.ndarray:
        """(n, 2) z-scores of ``observations`` on this scale."""
        return (np.asarray(observations, dtype=np.float64) - self.mean) / self.sd


@dataclass(frozen=True)
class IndexResult:
    """Scores plus the intermediate quantities that produced them."""
    scores: np.ndarray      # (n,)
    priority: Priority
    residuals: np.ndarray   # (n,) prioritized trait minus its prediction
    slope: float
    intercept: float


def _check_observations(observations) -> np.ndarray:
    y = np.asarray(observations, dtype=np.float64)
    if y.ndim != 2 or y.shape[1] != N_TRAITS:
        raise InvalidParameterError(
            f"observations must have shape (n, {N_TRAITS}), got {y.shape}"
        )
    if len(y) < 2:
        raise DegenerateRegressionError(
            f"selection index needs at least 2 observations, got {len(y)}"
        )
    if not np.all(np.isfinite(y)):
        raise InvalidParameterError("observations contain non-finite values")
    return y


# ═══════════════════════════════════════════════════════════════════════
# STEPS
# ═══════════════════════════════════════════════════════════════════════

def choose_priority(
    observations: np.ndarray,
    reference: Optional[ReferenceScale] = None,
) -> Priority:
    """Pick the trait whose standardized mean is larger.

    Args:
        observations: (n, 2) phenotypes.
        reference: Scale to standardize against; None uses the
            observations' own mean/sd.

    Returns:
        Priority.TRAIT_1 if trait 1's standardized mean exceeds trait 2's
        by more than PRIORITY_TOL, otherwise Priority.TRAIT_2.
    """
    y = _check_observations(observations)
    if reference is None:
        reference = ReferenceScale.from_observations(y)
    z_means = reference.standardize(y).mean(axis=0)
    if z_means[TRAIT_1] - z_means[TRAIT_2] > PRIORITY_TOL:
        return Priority.TRAIT_1
    return Priority.TRAIT_2


def regression_residuals(response: np.ndarray, predictor: np.ndarray):
    """OLS residuals of ``response`` regressed on ``predictor``.

    Returns:
        (residuals, slope, intercept)

    Raises:
        DegenerateRegressionError: If the predictor has zero variance.
    """
    x = np.asarray(predictor, dtype=np.float64)
    y = np.asarray(response, dtype=np.float64)
    if x.shape != y.shape or x.ndim != 1:
        raise InvalidParameterError(
            f"response and predictor must be 1-D of equal length, "
            f"got {y.shape} and {x.shape}"
        )
    if len(x) < 2 or np.ptp(x) == 0.0:
        raise DegenerateRegressionError(
            "predictor trait has zero variance; regression undefined"
        )
    fit = stats.linregress(x, y)
    predicted = fit.intercept + fit.slope * x
    return y - predicted, float(fit.slope), float(fit.intercept)


def _zscore_residuals(residuals: np.ndarray, response_sd: float) -> np.ndarray:
    sd = float(residuals.std())
    if not sd > RESIDUAL_REL_TOL * max(response_sd, 1.0):
        raise DegenerateIndexError(
            "regression residuals have zero variance "
            "(traits are perfectly collinear in this cohort)"
        )
    return (residuals - residuals.mean()) / sd


# ═══════════════════════════════════════════════════════════════════════
# INDEX
# ═══════════════════════════════════════════════════════════════════════

def residual_index(
    observations: np.ndarray,
    weights: IndexWeights = IndexWeights(),
    reference: Optional[ReferenceScale] = None,
) -> IndexResult:
    """Compute the adaptive residual index with its intermediates.

    Args:
        observations: (n, 2) phenotypes, rows aligned with individuals.
        weights: Residual / trait-1 / trait-2 weights.
        reference: Fixed reference scale (founder anchor); None z-scores
            against the observations themselves (generation anchor).

    Returns:
        IndexResult with (n,) scores aligned to the input rows.

    Raises:
        DegenerateIndexError: Zero-variance trait column or residuals.
        DegenerateRegressionError: Fewer than 2 observations.
    """
    y = _check_observations(observations)
    own_scale = ReferenceScale.from_observations(y)
    if reference is None:
        reference = own_scale

    priority = choose_priority(y, reference)
    residuals, slope, intercept = regression_residuals(
        y[:, priority.column], y[:, priority.other],
    )

    z_res = _zscore_residuals(residuals, float(own_scale.sd[priority.column]))
    z_traits = reference.standardize(y)

    scores = (
        weights.residual * z_res
        + weights.trait_1 * z_traits[:, TRAIT_1]
        + weights.trait_2 * z_traits[:, TRAIT_2]
    )
    return IndexResult(
        scores=scores,
        priority=priority,
        residuals=residuals,
        slope=slope,
        intercept=intercept,
    )


def compute_index(
    observations: np.ndarray,
    weights: IndexWeights = IndexWeights(),
    reference: Optional[ReferenceScale] = None,
) -> np.ndarray:
    """(n,) index scores; see residual_index()."""
    return residual_index(observations, weights, reference).scores
