"""Error hierarchy for rsindex.

Every failure raised by the engine derives from SimulationError. The
generation loop annotates errors with the replicate, generation and loop
state in which they occurred before re-raising, so a caller can decide
whether to re-seed a replicate. The engine itself never retries.
"""

from __future__ import annotations

from typing import Optional


class SimulationError(Exception):
    """Base for all rsindex errors."""

    def __init__(
        self,
        message: str,
        replicate: Optional[int] = None,
        generation: Optional[int] = None,
        state: Optional[str] = None,
    ):
        self.message = message
        self.replicate = replicate
        self.generation = generation
        self.state = state
        super().__init__(message)

    def annotate(
        self,
        replicate: Optional[int] = None,
        generation: Optional[int] = None,
        state: Optional[str] = None,
    ) -> "SimulationError":
        """Fill in run context that is not already set. Returns self."""
        if self.replicate is None:
            self.replicate = replicate
        if self.generation is None:
            self.generation = generation
        if self.state is None:
            self.state = state
        return self

    def __str__(self) -> str:
        context = []
        if self.replicate is not None:
            context.append(f"replicate={self.replicate}")
        if self.generation is not None:
            context.append(f"generation={self.generation}")
        if self.state is not None:
            context.append(f"state={self.state}")
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"


class InvalidParameterError(SimulationError, ValueError):
    """Malformed trait model or configuration."""


class EmptyPopulationError(SimulationError):
    """Statistic requested on a population that is too small to define it."""


class InsufficientPopulationError(SimulationError):
    """More individuals requested than a population can provide."""


class DegenerateIndexError(SimulationError):
    """A column fed to the selection index has zero variance."""


class DegenerateRegressionError(DegenerateIndexError):
    """Predictor trait has zero variance; the regression is undefined."""


class ReplicateCancelled(SimulationError):
    """Replicate stopped at a generation boundary by a cancel request."""
