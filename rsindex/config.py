"""Configuration system for rsindex.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → override dict

Each YAML top-level key maps onto one dataclass section. Unknown keys are
ignored; every loaded config is checked by ``validate_config`` before it
is returned, so a run never starts from an invalid parameter set.

Design decisions:
  - Trait model given either as variances + correlations + heritabilities
    or as explicit 2×2 matrices (matrices win when both are present)
  - Segregation variance fraction is explicit configuration (default 0.5)
  - Index standardization anchor: "generation" (default) or "founder"
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import yaml

from rsindex.errors import InvalidParameterError
from rsindex.index import ANCHORS, IndexWeights
from rsindex.traits import TraitModel, cor2cov


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Experiment size, seeding and execution."""
    seed: int = 42                  # base seed; replicate streams spawn from it
    n_generations: int = 50         # selection rounds per replicate
    n_replicates: int = 10
    workers: int = 1                # 1 = serial; >1 = thread pool
    tolerate_failures: bool = False # record failed replicates instead of aborting


@dataclass
class TraitSection:
    """Two-trait genetic model."""
    means: List[float] = field(default_factory=lambda: [100.0, 100.0])
    additive_variances: List[float] = field(default_factory=lambda: [10.0, 20.0])
    genetic_correlation: float = -0.3
    heritabilities: List[float] = field(default_factory=lambda: [0.5, 0.7])
    environmental_correlation: float = 0.0
    # Explicit matrices; when set they replace the derived ones
    additive_covariance: Optional[List[List[float]]] = None
    environmental_covariance: Optional[List[List[float]]] = None


@dataclass
class PopulationSection:
    """Population sizes per generation."""
    founder_size: int = 200
    n_selected: int = 50            # parents kept by truncation on the index
    n_crosses: Optional[int] = None # None → founders // progeny_per_cross
    progeny_per_cross: int = 1

    def crosses(self, founder_size: Optional[int] = None) -> int:
        """Crosses per generation, resolving the default.

        ``founder_size`` is the actual founder count when the caller
        supplies its own founders; it defaults to ``self.founder_size``.
        """
        if self.n_crosses is not None:
            return int(self.n_crosses)
        n = self.founder_size if founder_size is None else founder_size
        return n // self.progeny_per_cross

    def offspring_per_generation(self, founder_size: Optional[int] = None) -> int:
        return self.crosses(founder_size) * self.progeny_per_cross


@dataclass
class IndexSection:
    """Selection index parameters."""
    weights: List[float] = field(default_factory=lambda: [2.0, 1.0, 1.0])  # residual, trait 1, trait 2
    anchor: str = "generation"      # "generation" | "founder"

    def index_weights(self) -> IndexWeights:
        return IndexWeights.from_sequence(self.weights)


@dataclass
class MatingSection:
    """Offspring value model."""
    segregation_fraction: float = 0.5   # Mendelian sampling variance / V_A


@dataclass
class SimulationConfig:
    """Complete experiment configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    traits: TraitSection = field(default_factory=TraitSection)
    population: PopulationSection = field(default_factory=PopulationSection)
    index: IndexSection = field(default_factory=IndexSection)
    mating: MatingSection = field(default_factory=MatingSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Layer ``override`` onto ``base`` and return ``base``.

    Nested mappings present on both sides are merged key by key, so a
    scenario file only needs the fields it changes. Any other value in
    ``override`` replaces the one in ``base``, lists included. ``base`` is
    mutated.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Build one config section from its YAML mapping; unknown keys are dropped."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'traits': TraitSection,
    'population': PopulationSection,
    'index': IndexSection,
    'mating': MatingSection,
}


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict:
    """Plain nested dict of a config (YAML-serializable)."""
    return dataclasses.asdict(config)


# ═══════════════════════════════════════════════════════════════════════
# TRAIT MODEL
# ═══════════════════════════════════════════════════════════════════════

def build_trait_model(config: SimulationConfig) -> TraitModel:
    """Construct the validated TraitModel described by ``config.traits``."""
    t = config.traits
    if t.additive_covariance is None and t.environmental_covariance is None:
        return TraitModel.from_heritability(
            means=t.means,
            additive_variances=t.additive_variances,
            genetic_correlation=t.genetic_correlation,
            heritabilities=t.heritabilities,
            environmental_correlation=t.environmental_correlation,
        )

    va = np.asarray(t.additive_variances, dtype=np.float64)
    if t.additive_covariance is not None:
        g = np.asarray(t.additive_covariance, dtype=np.float64)
    else:
        g = cor2cov(t.genetic_correlation, va[0], va[1])

    if t.environmental_covariance is not None:
        e = np.asarray(t.environmental_covariance, dtype=np.float64)
    else:
        h2 = np.asarray(t.heritabilities, dtype=np.float64)
        if np.any(h2 <= 0) or np.any(h2 > 1):
            raise InvalidParameterError(
                f"traits.heritabilities must be in (0, 1], got {h2.tolist()}"
            )
        g_diag = np.diag(g)
        ve = g_diag / h2 - g_diag
        e = cor2cov(t.environmental_correlation, ve[0], ve[1])

    return TraitModel(means=np.asarray(t.means, dtype=np.float64),
                      additive_covariance=g,
                      environmental_covariance=e)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints.

    Checks:
      - Experiment sizes are positive
      - Selection and crossing sizes are consistent
      - Index weights and anchor are valid
      - Segregation fraction is in [0, 1]
      - The trait model builds (shapes, PSD, correlations)

    Raises:
        InvalidParameterError: On the first violated constraint.
    """
    sim = config.simulation
    if sim.seed < 0:
        raise InvalidParameterError("simulation.seed must be non-negative")
    if sim.n_generations < 1:
        raise InvalidParameterError(
            f"simulation.n_generations must be ≥ 1, got {sim.n_generations}"
        )
    if sim.n_replicates < 1:
        raise InvalidParameterError(
            f"simulation.n_replicates must be ≥ 1, got {sim.n_replicates}"
        )
    if sim.workers < 1:
        raise InvalidParameterError(
            f"simulation.workers must be ≥ 1, got {sim.workers}"
        )

    pop = config.population
    if pop.founder_size < 2:
        raise InvalidParameterError(
            f"population.founder_size must be ≥ 2, got {pop.founder_size}"
        )
    if pop.progeny_per_cross < 1:
        raise InvalidParameterError(
            f"population.progeny_per_cross must be ≥ 1, got {pop.progeny_per_cross}"
        )
    if pop.n_crosses is None and pop.founder_size % pop.progeny_per_cross != 0:
        raise InvalidParameterError(
            f"population.founder_size ({pop.founder_size}) must be divisible by "
            f"progeny_per_cross ({pop.progeny_per_cross}) when n_crosses is not set"
        )
    if pop.crosses() < 1:
        raise InvalidParameterError(
            f"population.n_crosses must be ≥ 1, got {pop.crosses()}"
        )
    if pop.n_selected < 2:
        raise InvalidParameterError(
            f"population.n_selected must be ≥ 2 (two parents per cross), "
            f"got {pop.n_selected}"
        )
    if pop.n_selected > pop.founder_size:
        raise InvalidParameterError(
            f"population.n_selected ({pop.n_selected}) exceeds "
            f"founder_size ({pop.founder_size})"
        )
    if pop.n_selected > pop.offspring_per_generation():
        raise InvalidParameterError(
            f"population.n_selected ({pop.n_selected}) exceeds offspring per "
            f"generation ({pop.offspring_per_generation()})"
        )

    idx = config.index
    if idx.anchor not in ANCHORS:
        raise InvalidParameterError(
            f"index.anchor must be one of {ANCHORS}, got '{idx.anchor}'"
        )
    idx.index_weights()

    frac = config.mating.segregation_fraction
    if not 0.0 <= frac <= 1.0:
        raise InvalidParameterError(
            f"mating.segregation_fraction must be in [0, 1], got {frac}"
        )

    build_trait_model(config)


def validate_founder_count(config: SimulationConfig, n_founders: int) -> None:
    """Check a caller-supplied founder population against ``config.population``.

    Without an explicit ``n_crosses`` every generation has as many
    individuals as the founders, so the founder count replaces
    ``founder_size`` in the crossing and selection checks.

    Raises:
        InvalidParameterError: On the first violated constraint.
    """
    pop = config.population
    if n_founders < pop.n_selected:
        raise InvalidParameterError(
            f"founder population ({n_founders}) smaller than "
            f"population.n_selected ({pop.n_selected})"
        )
    if pop.n_crosses is None and n_founders % pop.progeny_per_cross != 0:
        raise InvalidParameterError(
            f"founder population ({n_founders}) must be divisible by "
            f"progeny_per_cross ({pop.progeny_per_cross}) when n_crosses is not set"
        )
    if pop.n_selected > pop.offspring_per_generation(n_founders):
        raise InvalidParameterError(
            f"population.n_selected ({pop.n_selected}) exceeds offspring per "
            f"generation ({pop.offspring_per_generation(n_founders)})"
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Raises:
        FileNotFoundError: If base_path (or a given scenario_path) doesn't exist.
        InvalidParameterError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
