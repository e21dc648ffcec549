"""Shared machinery of the field time integrators.

Classes
-------
IntegratorStatus
    Life-cycle states of an integrator.
IntegratorOptions
    Immutable per-integrator configuration.
TimeIntegrator
    Base class: state ownership, boundary data staging, checkpoints,
    and the assembler capability used by the Newton solver.
"""

from __future__ import annotations

import enum
import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import sparse

from pyfsi.boundaries.base import BoundaryKey, FixedDofs
from pyfsi.discretization.base import AssembledSystem, FieldAssembler
from pyfsi.errors import ConfigurationError
from pyfsi.solvers.newton import ConvergenceReport, IterationType, NewtonOptions, NewtonSolver
from pyfsi.time.schemes import IntegrationScheme, theta_scheme
from pyfsi.time.state import Checkpoint, FieldState

logger = logging.getLogger(__name__)


class IntegratorStatus(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ASSEMBLING = "assembling"
    SOLVING = "solving"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class IntegratorOptions:
    """Configuration of a time integrator.

    Args:
        scheme: :class:`IntegrationScheme` (or its string value).
        theta: θ ∈ [0, 1]; 0 explicit, 0.5 Crank–Nicolson, 1 implicit.
        abs_tol: Newton absolute tolerance.
        rel_tol: Newton relative tolerance.
        max_iters: Newton iteration limit.
        iteration_type: :class:`IterationType` used by the Newton solver.
        linear_solver: Direct solver method.
    """

    scheme: IntegrationScheme = IntegrationScheme.IMPLICIT_NONLINEAR
    theta: float = 0.5
    abs_tol: float = 1e-10
    rel_tol: float = 1e-7
    max_iters: int = 50
    iteration_type: IterationType = IterationType.UPDATE
    linear_solver: str = "lu"

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "scheme", IntegrationScheme(self.scheme))
            object.__setattr__(self, "iteration_type", IterationType(self.iteration_type))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if not 0.0 <= self.theta <= 1.0:
            raise ConfigurationError(f"theta must lie in [0, 1], got {self.theta}.")
        if self.max_iters < 1:
            raise ConfigurationError("max_iters must be at least 1.")

    def newton_options(self) -> NewtonOptions:
        return NewtonOptions(
            abs_tol=self.abs_tol,
            rel_tol=self.rel_tol,
            max_iters=self.max_iters,
            iteration_type=self.iteration_type,
            linear_solver=self.linear_solver,
        )


class TimeIntegrator(FieldAssembler):
    """Base class of the structural and fluid integrators.

    The integrator owns the :class:`FieldState` of its field.  Boundary
    data set through :meth:`set_fixed_dofs` is staged and becomes part of
    the state when the next step completes.  During a step the integrator
    itself is the assembler handed to the Newton solver.

    Args:
        stiffness: Spatial operator (an :class:`Assembler`).
        mass: :class:`~pyfsi.discretization.mass.MassAssembler` sharing the
            DOF numbering of *stiffness*.
        options: Integrator options.
    """

    field_name = "u"

    def __init__(
        self,
        stiffness: Any,
        mass: Any,
        options: IntegratorOptions | None = None,
    ) -> None:
        self.stiffness = stiffness
        self.mass = mass
        self.options = options or IntegratorOptions()
        self.time_scheme = theta_scheme(self.options.theta)
        self.newton = NewtonSolver(self.options.newton_options())
        self.linear_solver = self.newton.linear_solver

        self.status = IntegratorStatus.UNINITIALIZED
        self._state = FieldState(np.zeros(stiffness.num_free_dofs), stiffness.fixed_dofs())
        self._pending: FixedDofs = self._state.fixed_dofs.copy()
        self._checkpoint: Checkpoint | None = None
        self._checkpoint_progress: tuple | None = None
        self._mass_system: AssembledSystem | None = None
        self._stiffness_cache: AssembledSystem | None = None
        self._step_size: float | None = None

        self.number_iterations = 0
        self.last_report: ConvergenceReport | None = None
        self.time_steps = 0

    # ------------------------------------------------------------------
    # FieldAssembler capability
    # ------------------------------------------------------------------

    @property
    def num_free_dofs(self) -> int:
        return self.stiffness.num_free_dofs

    @property
    def num_fixed_dofs(self) -> int:
        return self.stiffness.num_fixed_dofs

    def assemble(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> AssembledSystem:
        """Time-discrete system at a trial solution of the current step."""
        if self._step_size is None:
            raise ConfigurationError("assemble() is only available during a time step.")
        self.status = IntegratorStatus.ASSEMBLING
        system = self._assemble_step(np.asarray(free_dofs, dtype=float), fixed_dofs)
        self.status = IntegratorStatus.SOLVING
        return system

    @abstractmethod
    def _assemble_step(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> AssembledSystem:
        """Scheme-specific system for the step in progress."""

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> FieldState:
        return self._state

    @property
    def solution_vector(self) -> np.ndarray:
        return self._state.free_dofs.copy()

    def set_solution_vector(self, free_dofs: np.ndarray) -> None:
        """Set the initial (or current) unknowns, resetting the history."""
        free = np.array(free_dofs, dtype=float, copy=True)
        if free.shape != (self.num_free_dofs,):
            raise ConfigurationError(
                f"Solution vector has shape {free.shape}, expected ({self.num_free_dofs},)."
            )
        self._state = FieldState(free, self._state.fixed_dofs)

    def fixed_dofs(self) -> FixedDofs:
        """Boundary data satisfied by the current solution."""
        return self._state.fixed_dofs.copy()

    def all_fixed_dofs(self) -> FixedDofs:
        """Boundary data staged for the next step."""
        return self._pending.copy()

    def set_fixed_dofs(
        self,
        patch: int,
        side: str,
        values: np.ndarray,
        component: int | None = None,
    ) -> None:
        """Replace the staged boundary values of one patch side.

        Args:
            patch: Patch index.
            side: Side name.
            values: ``(n_side,)`` for a single *component*, or
                ``(n_side, n_components)`` when *component* is ``None``.
            component: Field component, or ``None`` for all.
        """
        vals = np.asarray(values, dtype=float)
        n_comp = self.stiffness.dofs.n_components
        comps = range(n_comp) if component is None else [component]
        if component is None and (vals.ndim != 2 or vals.shape[1] != n_comp):
            raise ConfigurationError(
                f"Expected values of shape (n_side, {n_comp}), got {vals.shape}."
            )
        for comp in comps:
            key = BoundaryKey(patch, side, comp)
            if key not in self.stiffness.dofs.key_nodes:
                raise ConfigurationError(f"{key} is not a declared Dirichlet boundary.")
            col = vals[:, comp] if component is None else vals
            expected = len(self.stiffness.dofs.key_nodes[key])
            if col.shape != (expected,):
                raise ConfigurationError(
                    f"Values for {key} have shape {col.shape}, expected ({expected},)."
                )
            self._pending[key] = col

    def set_all_fixed_dofs(self, fixed_dofs: FixedDofs) -> None:
        """Replace all staged boundary data at once."""
        self.stiffness.dofs.fixed_vector(fixed_dofs)  # validates keys and lengths
        self._pending = fixed_dofs.copy()

    def set_initial_fixed_dofs(self, fixed_dofs: FixedDofs) -> None:
        """Set the boundary data of the initial state (before stepping)."""
        if self.status is not IntegratorStatus.UNINITIALIZED:
            raise ConfigurationError("Initial boundary data can only be set before initialize().")
        self.stiffness.dofs.fixed_vector(fixed_dofs)
        self._state.fixed_dofs = fixed_dofs.copy()
        self._pending = fixed_dofs.copy()

    def construct_solution(self) -> np.ndarray:
        """Nodal field of the current solution."""
        return self.stiffness.construct_solution(self._state.free_dofs, self._state.fixed_dofs)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Assemble the constant mass form; called once before stepping."""
        if self.num_free_dofs == 0:
            raise ConfigurationError("Cannot integrate a field without free DOFs.")
        self._mass_system = self.mass.assemble_constant()
        self._check_mass()
        self._initialize_field()
        self.status = IntegratorStatus.INITIALIZED
        logger.debug("%s initialized with %d free DOFs", type(self).__name__, self.num_free_dofs)

    def _check_mass(self) -> None:
        if self._mass_system.matrix.shape[0] != self.num_free_dofs:
            raise ConfigurationError("Mass and stiffness assemblers disagree on the free DOFs.")

    def _initialize_field(self) -> None:
        """Field-specific initialisation hook."""

    @property
    def mass_matrix(self) -> sparse.csr_matrix:
        if self._mass_system is None:
            raise ConfigurationError("Integrator not initialized.")
        return self._mass_system.matrix

    def make_time_step(self, dt: float) -> None:
        """Advance the field by *dt* with the configured scheme."""
        if not np.isfinite(dt) or dt <= 0:
            raise ConfigurationError(f"Time-step size must be positive, got {dt}.")
        if self.status is IntegratorStatus.UNINITIALIZED:
            self.initialize()
        self._step_size = float(dt)
        try:
            if self.options.scheme is IntegrationScheme.IMPLICIT_LINEAR:
                new_free = self._implicit_linear(dt)
            else:
                new_free = self._implicit_nonlinear(dt)
            self._finish_step(new_free, dt)
        finally:
            self._step_size = None
        self._state.advance(new_free, self._pending, dt)
        self.time_steps += 1
        self.status = IntegratorStatus.ADVANCED
        logger.debug(
            "%s step %d: dt=%g, %d iteration(s)",
            type(self).__name__, self.time_steps, dt, self.number_iterations,
        )

    @abstractmethod
    def _implicit_linear(self, dt: float) -> np.ndarray:
        """Return the new free DOFs after one linear solve."""

    @abstractmethod
    def _implicit_nonlinear(self, dt: float) -> np.ndarray:
        """Return the new free DOFs after a Newton solve."""

    def _finish_step(self, new_free: np.ndarray, dt: float) -> None:
        """Hook run before the state is advanced (e.g. velocity update)."""

    def _solve_linear(self, system: AssembledSystem) -> np.ndarray:
        self.status = IntegratorStatus.SOLVING
        self.number_iterations = 1
        self.last_report = None
        return self.linear_solver.solve(system.matrix, system.rhs)

    def _solve_newton(self, seed: np.ndarray) -> np.ndarray:
        solution, report = self.newton.solve(self, seed, self._pending)
        self.number_iterations = report.iterations
        self.last_report = report
        if not report.converged:
            logger.warning("%s: %s", type(self).__name__, report)
        return solution

    @property
    def converged(self) -> bool:
        """Whether the last step's nonlinear solve converged."""
        return self.last_report is None or self.last_report.converged

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def _extra_state(self) -> dict[str, np.ndarray]:
        return {}

    def _restore_extra(self, extra: dict[str, np.ndarray]) -> None:
        pass

    def save_state(self) -> None:
        """Snapshot the current state (overwrites any previous snapshot).

        An integrator that has not stepped yet is initialized first, so the
        snapshot holds the stiffness of the initial state.
        """
        if self.status is IntegratorStatus.UNINITIALIZED:
            self.initialize()
        cache = self._stiffness_cache
        self._checkpoint = Checkpoint.capture(
            self._state,
            self._pending,
            stiffness_matrix=None if cache is None else cache.matrix,
            stiffness_rhs=None if cache is None else cache.rhs,
            extra=self._extra_state(),
            time_steps=self.time_steps,
        )
        self._checkpoint_progress = (self.status, self.number_iterations, self.last_report)

    def recover_state(self) -> None:
        """Restore and discard the saved snapshot.

        Iteration counts, the last convergence report and the status are
        restored to their values at save time.

        Raises:
            ConfigurationError: If no snapshot is stored.
        """
        cp = self._checkpoint
        if cp is None:
            raise ConfigurationError("No saved state to recover.")
        self._state = cp.to_state()
        self._pending = cp.pending_fixed_dofs.copy()
        if cp.stiffness_matrix is not None:
            self._stiffness_cache = AssembledSystem(
                cp.stiffness_matrix.copy(), cp.stiffness_rhs.copy()
            )
        else:
            self._stiffness_cache = None
        self._restore_extra(cp.extra)
        self.time_steps = cp.time_steps
        self.status, self.number_iterations, self.last_report = self._checkpoint_progress
        self._checkpoint = None
        self._checkpoint_progress = None
        logger.debug("%s recovered state at step %d", type(self).__name__, self.time_steps)

    @property
    def stiffness_cache(self) -> AssembledSystem | None:
        """Spatial system of the most recent stiffness assembly."""
        return self._stiffness_cache

    @property
    def has_checkpoint(self) -> bool:
        return self._checkpoint is not None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(scheme={self.options.scheme.value!r}, "
            f"theta={self.options.theta}, status={self.status.value!r})"
        )
