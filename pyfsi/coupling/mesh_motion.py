"""Mesh-motion field driven by interface displacements.

The fluid mesh displacement is the solution of a (stiffened) linear
elasticity problem on the reference fluid mesh.  Each macro step adds the
structural displacement increment to the interface boundary data and
performs a single Newton iteration from the previous total.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from pyfsi.boundaries.base import BoundaryKey, FixedDofs
from pyfsi.errors import ConfigurationError
from pyfsi.solvers.newton import ConvergenceReport, IterationType, NewtonOptions, NewtonSolver

logger = logging.getLogger(__name__)


class MeshMotion:
    """Total mesh displacement with trial/commit semantics.

    Args:
        assembler: :class:`~pyfsi.discretization.elasticity.ElasticityAssembler`
            on the reference fluid mesh, with Dirichlet conditions on
            every boundary that is either fixed or an interface.
        options: Newton options; one UPDATE iteration by default.
    """

    def __init__(self, assembler: Any, options: NewtonOptions | None = None) -> None:
        self.assembler = assembler
        self.options = options or NewtonOptions(max_iters=1, iteration_type=IterationType.UPDATE)
        self.newton = NewtonSolver(self.options)
        self._free = np.zeros(assembler.num_free_dofs)
        self._fixed: FixedDofs = assembler.fixed_dofs()
        self._trial: tuple[np.ndarray, FixedDofs] | None = None
        self._previous: tuple[np.ndarray, FixedDofs] | None = None
        self.last_report: ConvergenceReport | None = None

    @property
    def mesh(self) -> Any:
        return self.assembler.mesh

    @property
    def num_free_dofs(self) -> int:
        return self.assembler.num_free_dofs

    # ------------------------------------------------------------------
    # Committed state
    # ------------------------------------------------------------------

    @property
    def free_dofs(self) -> np.ndarray:
        return self._free.copy()

    def fixed_dofs(self) -> FixedDofs:
        return self._fixed.copy()

    def displacement(self) -> np.ndarray:
        """Committed nodal mesh displacement ``(n_nodes, 2)``."""
        return self.assembler.construct_solution(self._free, self._fixed)

    def l2_norm(self) -> float:
        return self.mesh.l2_norm(self.displacement())

    # ------------------------------------------------------------------
    # Trial step
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Start a trial from the committed state."""
        self._trial = (self._free.copy(), self._fixed.copy())

    def _require_trial(self) -> tuple[np.ndarray, FixedDofs]:
        if self._trial is None:
            raise ConfigurationError("No mesh-motion trial in progress; call begin().")
        return self._trial

    def add_boundary_increment(self, patch: int, side: str, increment: np.ndarray) -> None:
        """Add a nodal displacement increment ``(n_side, 2)`` to one side."""
        _, fixed = self._require_trial()
        inc = np.asarray(increment, dtype=float)
        for comp in range(2):
            key = BoundaryKey(patch, side, comp)
            if key not in fixed:
                raise ConfigurationError(f"{key} is not a Dirichlet boundary of the mesh motion.")
            fixed[key] = fixed[key] + inc[:, comp]

    def solve(self) -> ConvergenceReport:
        """Solve for the trial displacement from the committed total."""
        free, fixed = self._require_trial()
        solution, report = self.newton.solve(self.assembler, free, fixed)
        self._trial = (solution, fixed)
        self.last_report = report
        return report

    def trial_displacement(self) -> np.ndarray:
        free, fixed = self._require_trial()
        return self.assembler.construct_solution(free, fixed)

    def min_jacobian(self) -> float:
        """Smallest cell Jacobian ratio of the trial mesh."""
        free, fixed = self._require_trial()
        return self.assembler.check_solution(free, fixed)

    def commit(self) -> None:
        """Accept the trial; the previous total is kept for :meth:`revert`."""
        free, fixed = self._require_trial()
        self._previous = (self._free, self._fixed)
        self._free, self._fixed = free, fixed
        self._trial = None

    def rollback(self) -> None:
        """Discard the trial."""
        self._trial = None

    def revert(self) -> None:
        """Undo the last :meth:`commit`."""
        if self._previous is None:
            raise ConfigurationError("Nothing to revert.")
        self._free, self._fixed = self._previous
        self._previous = None

    def __repr__(self) -> str:
        return f"MeshMotion(free={len(self._free)}, max_iters={self.options.max_iters})"
