"""Temporal discretisation schemes.

Classes
-------
TimeScheme
    Abstract base for θ-schemes.
Implicit
    Backward Euler (fully implicit, θ = 1).
Explicit
    Forward Euler (fully explicit, θ = 0).
CrankNicolson
    Crank-Nicolson (θ = 0.5).
Theta
    Arbitrary θ ∈ [0, 1].
IntegrationScheme
    How a time step is solved: one linear solve or a Newton loop.

Functions
---------
theta_scheme
    Scheme object for a given θ.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod

import numpy as np

from pyfsi.errors import ConfigurationError


class TimeScheme(ABC):
    """Abstract time-integration scheme.

    The θ-method discretises the generic ODE M du/dt = F(u) as:

        M (u^{n+1} - u^n) / dt = θ F(u^{n+1}) + (1 - θ) F(u^n)

    Subclasses set the value of θ.
    """

    @property
    @abstractmethod
    def theta(self) -> float:
        """Implicit weighting parameter θ ∈ [0, 1]."""

    def blend(
        self,
        f_new: np.ndarray,
        f_old: np.ndarray,
    ) -> np.ndarray:
        """Weighted blend of new and old right-hand sides.

        Returns θ·f_new + (1-θ)·f_old.
        """
        return self.theta * f_new + (1.0 - self.theta) * f_old

    def __repr__(self) -> str:
        return f"{type(self).__name__}(theta={self.theta})"


class Implicit(TimeScheme):
    """Backward Euler (θ = 1).  Unconditionally stable."""

    @property
    def theta(self) -> float:
        return 1.0


class Explicit(TimeScheme):
    """Forward Euler (θ = 0).  Conditionally stable."""

    @property
    def theta(self) -> float:
        return 0.0


class CrankNicolson(TimeScheme):
    """Crank-Nicolson (θ = 0.5).  Second-order accurate."""

    @property
    def theta(self) -> float:
        return 0.5


class Theta(TimeScheme):
    """General θ-scheme.

    Args:
        theta: Implicit weight in ``[0, 1]``.
    """

    def __init__(self, theta: float) -> None:
        if not 0.0 <= theta <= 1.0:
            raise ConfigurationError(f"theta must lie in [0, 1], got {theta}.")
        self._theta = float(theta)

    @property
    def theta(self) -> float:
        return self._theta


def theta_scheme(theta: float) -> TimeScheme:
    """Return the named scheme for θ ∈ {0, 0.5, 1}, else a :class:`Theta`."""
    if theta == 1.0:
        return Implicit()
    if theta == 0.0:
        return Explicit()
    if theta == 0.5:
        return CrankNicolson()
    return Theta(theta)


class IntegrationScheme(enum.Enum):
    """Solution strategy of one time step.

    ``IMPLICIT_LINEAR``: one assembly and one linear solve per step.
    ``IMPLICIT_NONLINEAR``: Newton iteration per step.
    """

    IMPLICIT_LINEAR = "implicit_linear"
    IMPLICIT_NONLINEAR = "implicit_nonlinear"
