"""Newton-type nonlinear solver over free DOFs.

Classes
-------
IterationType
    Whether the assembled system yields an increment or the next iterate.
NewtonOptions
    Immutable tolerances and limits.
ConvergenceReport
    Outcome of one nonlinear solve.
NewtonSolver
    Iterates assemble → linear solve → update until converged.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from pyfsi.boundaries.base import FixedDofs
from pyfsi.discretization.base import FieldAssembler
from pyfsi.errors import ConfigurationError
from pyfsi.solvers.linear import LinearSolver

logger = logging.getLogger(__name__)


class IterationType(enum.Enum):
    """Interpretation of the assembled linear system.

    ``UPDATE``: the system ``K Δx = r`` gives an increment (full Newton);
    the residual is the assembled right-hand side.
    ``NEXT``: the system ``A x = b`` gives the next iterate directly
    (fixed-point / Oseen); the residual is ``b − A x``.
    """

    UPDATE = "update"
    NEXT = "next"


@dataclass(frozen=True)
class NewtonOptions:
    """Tolerances and limits of :class:`NewtonSolver`.

    Args:
        abs_tol: Absolute residual tolerance.
        rel_tol: Tolerance relative to the initial residual.
        max_iters: Maximum number of linear solves.
        iteration_type: :class:`IterationType`.
        linear_solver: Direct solver method name.
    """

    abs_tol: float = 1e-10
    rel_tol: float = 1e-7
    max_iters: int = 50
    iteration_type: IterationType = IterationType.UPDATE
    linear_solver: str = "lu"

    def __post_init__(self) -> None:
        if self.abs_tol < 0 or self.rel_tol < 0:
            raise ConfigurationError("Tolerances must be non-negative.")
        if self.max_iters < 1:
            raise ConfigurationError("max_iters must be at least 1.")
        if not isinstance(self.iteration_type, IterationType):
            object.__setattr__(self, "iteration_type", IterationType(self.iteration_type))


@dataclass
class ConvergenceReport:
    """Result of a nonlinear solve.

    Attributes:
        converged: Whether a tolerance was met.
        iterations: Number of linear solves performed.
        last_residual_norm: Residual norm at the returned solution.
        last_update_norm: Norm of the last change of the iterate.
        residual_history: Residual norms, starting with the initial one.
    """

    converged: bool
    iterations: int
    last_residual_norm: float
    last_update_norm: float = 0.0
    residual_history: list[float] = field(default_factory=list)

    def __str__(self) -> str:
        status = "converged" if self.converged else "NOT converged"
        return (
            f"{status} after {self.iterations} iteration(s), "
            f"residual {self.last_residual_norm:.3e}"
        )


class NewtonSolver:
    """Nonlinear solver driving a :class:`FieldAssembler`.

    Each iteration assembles at the current iterate, solves the linear
    system, updates the iterate and re-assembles to measure the new
    residual.  A linear problem therefore converges after exactly one
    iteration.  A guess whose initial residual is already below
    ``abs_tol`` is returned unchanged with zero iterations.

    Args:
        options: Solver options.
        linear_solver: Custom linear solver; built from
            ``options.linear_solver`` when omitted.

    Example::

        solver = NewtonSolver(NewtonOptions(max_iters=20))
        u, report = solver.solve(assembler, u0, assembler.fixed_dofs())
    """

    def __init__(
        self,
        options: NewtonOptions | None = None,
        linear_solver: LinearSolver | None = None,
    ) -> None:
        self.options = options or NewtonOptions()
        self.linear_solver = linear_solver or LinearSolver(self.options.linear_solver)

    def _residual_norm(self, system, x: np.ndarray) -> float:
        if self.options.iteration_type is IterationType.NEXT:
            return float(np.linalg.norm(system.residual(x)))
        return float(np.linalg.norm(system.rhs))

    def _converged(self, r: float, r0: float, upd: float, upd0: float, iteration: int) -> bool:
        opts = self.options
        if r < opts.abs_tol or r < opts.rel_tol * r0:
            return True
        # the first update has nothing to compare against
        if iteration > 1 and (upd < opts.abs_tol or upd < opts.rel_tol * upd0):
            return True
        return False

    def solve(
        self,
        assembler: FieldAssembler,
        initial_guess: np.ndarray,
        fixed_dofs: FixedDofs,
    ) -> tuple[np.ndarray, ConvergenceReport]:
        """Solve ``R(x) = 0`` starting from *initial_guess*.

        Args:
            assembler: Object exposing the field-assembler capability.
            initial_guess: Starting free-DOF vector.
            fixed_dofs: Boundary data held fixed during the solve.

        Returns:
            Tuple ``(solution, report)``.  Non-convergence is reported,
            not raised.

        Raises:
            ConfigurationError: If the guess has the wrong length.
            LinearSolveFailed: If a linear solve fails.
        """
        x = np.array(initial_guess, dtype=float, copy=True)
        if x.shape != (assembler.num_free_dofs,):
            raise ConfigurationError(
                f"Initial guess has shape {x.shape}, expected ({assembler.num_free_dofs},)."
            )
        opts = self.options

        system = assembler.assemble(x, fixed_dofs)
        r0 = self._residual_norm(system, x)
        history = [r0]
        logger.debug("Newton start: residual %.3e", r0)
        if r0 < opts.abs_tol:
            return x, ConvergenceReport(True, 0, r0, 0.0, history)
        if not np.isfinite(r0):
            logger.warning("Newton: non-finite initial residual")
            return x, ConvergenceReport(False, 0, r0, 0.0, history)

        r, upd, upd0 = r0, 0.0, 0.0
        iterations = 0
        while iterations < opts.max_iters:
            sol = self.linear_solver.solve(system.matrix, system.rhs)
            if opts.iteration_type is IterationType.NEXT:
                upd = float(np.linalg.norm(sol - x))
                x = sol
            else:
                upd = float(np.linalg.norm(sol))
                x = x + sol
            iterations += 1
            if iterations == 1:
                upd0 = upd

            system = assembler.assemble(x, fixed_dofs)
            r = self._residual_norm(system, x)
            history.append(r)
            logger.debug("Iteration %d: residual %.3e, update %.3e", iterations, r, upd)

            if not np.isfinite(r):
                logger.warning("Newton: non-finite residual at iteration %d", iterations)
                return x, ConvergenceReport(False, iterations, r, upd, history)
            if self._converged(r, r0, upd, upd0, iterations):
                return x, ConvergenceReport(True, iterations, r, upd, history)

        logger.warning(
            "Newton did not converge in %d iterations (residual %.3e)", iterations, r
        )
        return x, ConvergenceReport(False, iterations, r, upd, history)

    def __repr__(self) -> str:
        return f"NewtonSolver({self.options})"
