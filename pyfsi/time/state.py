"""Solution state owned by a time integrator.

Classes
-------
FieldState
    Free/fixed DOFs of a field plus the history needed for extrapolation.
Checkpoint
    Immutable snapshot used to roll an integrator back by one step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from scipy import sparse

from pyfsi.boundaries.base import FixedDofs
from pyfsi.errors import ConfigurationError


@dataclass
class FieldState:
    """Mutable state of one field.

    Attributes:
        free_dofs: Current unknowns.
        fixed_dofs: Boundary data the current solution satisfies.
        previous_free_dofs: Unknowns at the previous step.
        previous_step_size: Size of the step that produced *free_dofs*.
    """

    free_dofs: np.ndarray
    fixed_dofs: FixedDofs
    previous_free_dofs: np.ndarray | None = None
    previous_step_size: float = 1.0

    def __post_init__(self) -> None:
        self.free_dofs = np.array(self.free_dofs, dtype=float, copy=True)
        if self.previous_free_dofs is None:
            self.previous_free_dofs = self.free_dofs.copy()
        else:
            self.previous_free_dofs = np.array(self.previous_free_dofs, dtype=float, copy=True)
        if self.previous_free_dofs.shape != self.free_dofs.shape:
            raise ConfigurationError("Current and previous free DOFs differ in size.")
        if self.previous_step_size <= 0:
            raise ConfigurationError("previous_step_size must be positive.")

    @property
    def size(self) -> int:
        return len(self.free_dofs)

    def extrapolate(self, step_size: float) -> np.ndarray:
        """Linear extrapolation of the last increment to the next step.

        Returns ``u + step_size / previous_step_size * (u − u_prev)``.
        """
        ratio = step_size / self.previous_step_size
        return self.free_dofs + ratio * (self.free_dofs - self.previous_free_dofs)

    def advance(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs, step_size: float) -> None:
        """Accept a completed step."""
        new = np.array(free_dofs, dtype=float, copy=True)
        if new.shape != self.free_dofs.shape:
            raise ConfigurationError(
                f"New free DOFs have shape {new.shape}, expected {self.free_dofs.shape}."
            )
        self.previous_free_dofs = self.free_dofs
        self.free_dofs = new
        self.fixed_dofs = fixed_dofs.copy()
        self.previous_step_size = float(step_size)


@dataclass(frozen=True)
class Checkpoint:
    """Snapshot of an integrator, restored by ``recover_state``.

    Attributes:
        free_dofs: Unknowns at save time.
        previous_free_dofs: Previous-step unknowns.
        previous_step_size: Previous step size.
        fixed_dofs: Committed boundary data.
        pending_fixed_dofs: Boundary data staged for the next step.
        stiffness_matrix: Cached stiffness matrix (IMEX old-step term).
        stiffness_rhs: Cached stiffness right-hand side.
        extra: Additional state vectors (e.g. velocity).
        time_steps: Number of completed steps.
    """

    free_dofs: np.ndarray
    previous_free_dofs: np.ndarray
    previous_step_size: float
    fixed_dofs: FixedDofs
    pending_fixed_dofs: FixedDofs
    stiffness_matrix: sparse.csr_matrix | None = None
    stiffness_rhs: np.ndarray | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    time_steps: int = 0

    @classmethod
    def capture(
        cls,
        state: FieldState,
        pending_fixed_dofs: FixedDofs,
        stiffness_matrix: sparse.csr_matrix | None = None,
        stiffness_rhs: np.ndarray | None = None,
        extra: dict[str, np.ndarray] | None = None,
        time_steps: int = 0,
    ) -> "Checkpoint":
        """Deep-copy the given state into a new checkpoint."""
        return cls(
            free_dofs=state.free_dofs.copy(),
            previous_free_dofs=state.previous_free_dofs.copy(),
            previous_step_size=state.previous_step_size,
            fixed_dofs=state.fixed_dofs.copy(),
            pending_fixed_dofs=pending_fixed_dofs.copy(),
            stiffness_matrix=None if stiffness_matrix is None else stiffness_matrix.copy(),
            stiffness_rhs=None if stiffness_rhs is None else stiffness_rhs.copy(),
            extra={k: np.array(v, copy=True) for k, v in (extra or {}).items()},
            time_steps=time_steps,
        )

    def to_state(self) -> FieldState:
        """Rebuild an independent :class:`FieldState`."""
        return FieldState(
            free_dofs=self.free_dofs.copy(),
            fixed_dofs=self.fixed_dofs.copy(),
            previous_free_dofs=self.previous_free_dofs.copy(),
            previous_step_size=self.previous_step_size,
        )
