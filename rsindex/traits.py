"""Two-trait additive genetic model.

Holds the trait means, the additive genetic (co)variance G and the
environmental (residual) (co)variance E:

    y = g + e,   g ~ N(μ, G),   e ~ N(0, E)

so the phenotypic covariance is P = G + E and the heritability of trait
i is h²_i = G_ii / P_ii.

The model is validated once at construction and is read-only afterwards;
every replicate shares the same instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from rsindex.errors import InvalidParameterError
from rsindex.types import N_TRAITS, frozen_array


# Relative eigenvalue tolerance for the PSD check
PSD_TOL = 1e-10


def cor2cov(correlation: float, var1: float, var2: float) -> np.ndarray:
    """Build a 2×2 covariance matrix from a correlation and two variances.

    Raises:
        InvalidParameterError: If a variance is negative or the
            correlation lies outside [-1, 1].
    """
    if var1 < 0 or var2 < 0:
        raise InvalidParameterError(
            f"variances must be non-negative, got ({var1}, {var2})"
        )
    if not -1.0 <= correlation <= 1.0:
        raise InvalidParameterError(
            f"correlation must be in [-1, 1], got {correlation}"
        )
    cov = correlation * np.sqrt(var1 * var2)
    return np.array([[var1, cov], [cov, var2]], dtype=np.float64)


def _correlation(cov: np.ndarray) -> float:
    v1, v2 = cov[0, 0], cov[1, 1]
    if v1 <= 0 or v2 <= 0:
        return 0.0
    return float(cov[0, 1] / np.sqrt(v1 * v2))


def _check_covariance(name: str, matrix) -> np.ndarray:
    """Validate a 2×2 symmetric PSD matrix and return a read-only copy."""
    cov = np.asarray(matrix, dtype=np.float64)
    if cov.shape != (N_TRAITS, N_TRAITS):
        raise InvalidParameterError(
            f"{name} must have shape ({N_TRAITS}, {N_TRAITS}), got {cov.shape}"
        )
    if not np.all(np.isfinite(cov)):
        raise InvalidParameterError(f"{name} contains non-finite values")
    if not np.allclose(cov, cov.T):
        raise InvalidParameterError(f"{name} must be symmetric, got {cov.tolist()}")

    scale = max(float(np.max(np.abs(cov))), 1.0)
    eigenvalues = np.linalg.eigvalsh(cov)
    if eigenvalues.min() < -PSD_TOL * scale:
        raise InvalidParameterError(
            f"{name} is not positive semi-definite "
            f"(eigenvalues {eigenvalues.tolist()})"
        )

    v1, v2 = cov[0, 0], cov[1, 1]
    if v1 > 0 and v2 > 0:
        r = cov[0, 1] / np.sqrt(v1 * v2)
        if abs(r) > 1.0 + 1e-9:
            raise InvalidParameterError(
                f"{name} implies correlation {r:.6f} outside [-1, 1]"
            )
    elif cov[0, 1] != 0.0:
        raise InvalidParameterError(
            f"{name} has a zero variance but non-zero covariance"
        )
    return frozen_array(cov)


@dataclass(frozen=True)
class TraitModel:
    """Trait means, additive covariance G and environmental covariance E.

    Raises InvalidParameterError at construction on wrong shapes,
    non-finite entries, asymmetric or non-PSD matrices.
    """
    means: np.ndarray
    additive_covariance: np.ndarray
    environmental_covariance: np.ndarray

    def __post_init__(self):
        means = np.asarray(self.means, dtype=np.float64)
        if means.shape != (N_TRAITS,):
            raise InvalidParameterError(
                f"means must have shape ({N_TRAITS},), got {means.shape}"
            )
        if not np.all(np.isfinite(means)):
            raise InvalidParameterError("means contains non-finite values")
        object.__setattr__(self, 'means', frozen_array(means))
        object.__setattr__(
            self, 'additive_covariance',
            _check_covariance('additive_covariance', self.additive_covariance),
        )
        object.__setattr__(
            self, 'environmental_covariance',
            _check_covariance('environmental_covariance', self.environmental_covariance),
        )

    # ── Constructors ────────────────────────────────────────────────

    @classmethod
    def from_heritability(
        cls,
        means: Sequence[float],
        additive_variances: Sequence[float],
        genetic_correlation: float,
        heritabilities: Sequence[float],
        environmental_correlation: float = 0.0,
    ) -> "TraitModel":
        """Build a model from variances, correlations and heritabilities.

        Environmental variance per trait: V_E = V_A / h² − V_A.

        Args:
            means: (2,) trait means.
            additive_variances: (2,) additive genetic variances V_A.
            genetic_correlation: r_g between the traits.
            heritabilities: (2,) narrow-sense heritabilities in (0, 1].
            environmental_correlation: r_e between the residuals.

        Example:
            >>> model = TraitModel.from_heritability(
            ...     [100, 100], [10, 20], -0.3, [0.5, 0.7])
            >>> model.environmental_covariance[0, 0]
            10.0
        """
        va = np.asarray(additive_variances, dtype=np.float64)
        h2 = np.asarray(heritabilities, dtype=np.float64)
        if va.shape != (N_TRAITS,) or h2.shape != (N_TRAITS,):
            raise InvalidParameterError(
                "additive_variances and heritabilities need one value per trait"
            )
        if np.any(h2 <= 0) or np.any(h2 > 1):
            raise InvalidParameterError(
                f"heritabilities must be in (0, 1], got {h2.tolist()}"
            )
        ve = va / h2 - va
        return cls(
            means=np.asarray(means, dtype=np.float64),
            additive_covariance=cor2cov(genetic_correlation, va[0], va[1]),
            environmental_covariance=cor2cov(environmental_correlation, ve[0], ve[1]),
        )

    # ── Derived quantities ──────────────────────────────────────────

    @property
    def phenotypic_covariance(self) -> np.ndarray:
        """P = G + E."""
        return self.additive_covariance + self.environmental_covariance

    @property
    def heritabilities(self) -> np.ndarray:
        """(2,) h² = G_ii / P_ii (NaN where P_ii is zero)."""
        p = np.diag(self.phenotypic_covariance)
        g = np.diag(self.additive_covariance)
        h2 = np.full(N_TRAITS, np.nan)
        mask = p > 0
        h2[mask] = g[mask] / p[mask]
        return h2

    @property
    def genetic_correlation(self) -> float:
        return _correlation(self.additive_covariance)

    @property
    def environmental_correlation(self) -> float:
        return _correlation(self.environmental_covariance)

    @property
    def has_environmental_noise(self) -> bool:
        return bool(np.any(self.environmental_covariance != 0.0))

    # ── Sampling ────────────────────────────────────────────────────

    def sample_environmental_noise(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Draw n environmental deviations from N(0, E).

        Returns exact zeros when E is the zero matrix.

        Returns:
            (n, 2) float64.
        """
        if n < 0:
            raise InvalidParameterError(f"n must be non-negative, got {n}")
        if not self.has_environmental_noise:
            return np.zeros((n, N_TRAITS), dtype=np.float64)
        return rng.multivariate_normal(
            np.zeros(N_TRAITS), self.environmental_covariance,
            size=n, method='eigh',
        )

    def sample_genetic_values(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Draw n true additive genetic value vectors from N(μ, G).

        Used to bootstrap founder populations.

        Returns:
            (n, 2) float64.
        """
        if n < 0:
            raise InvalidParameterError(f"n must be non-negative, got {n}")
        return rng.multivariate_normal(
            self.means, self.additive_covariance, size=n, method='eigh',
        )

    def sample_segregation_noise(
        self,
        n: int,
        fraction: float,
        rng: np.random.Generator,
    ) -> np.ndarray:
        """Draw n within-family segregation deviations from N(0, fraction·G)."""
        if not 0.0 <= fraction <= 1.0:
            raise InvalidParameterError(
                f"segregation fraction must be in [0, 1], got {fraction}"
            )
        cov = fraction * self.additive_covariance
        if not np.any(cov != 0.0):
            return np.zeros((n, N_TRAITS), dtype=np.float64)
        return rng.multivariate_normal(
            np.zeros(N_TRAITS), cov, size=n, method='eigh',
        )
