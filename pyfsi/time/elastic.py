"""Structural dynamics integrator.

Solves ``M ü = F(u)`` with ``F(u) = f_ext − f_int(u)`` using the
θ-scheme for second-order systems::

    M (u⁺ − u − Δt v) = θ Δt² (θ F(u⁺) + (1 − θ) F(u))
    v⁺ = (u⁺ − u) / (θ Δt) − (1 − θ) / θ · v

The terms that depend only on the old state are gathered once per step.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from pyfsi.boundaries.base import FixedDofs
from pyfsi.discretization.base import AssembledSystem
from pyfsi.time.integrator import IntegratorOptions, TimeIntegrator

logger = logging.getLogger(__name__)


class ElasticTimeIntegrator(TimeIntegrator):
    """Time integrator for elastodynamics.

    Args:
        stiffness: :class:`~pyfsi.discretization.elasticity.ElasticityAssembler`.
        mass: Mass assembler with the same Dirichlet conditions.
        options: Integrator options; the Newton solver works on
            increments (``IterationType.UPDATE``).

    Example::

        integrator = ElasticTimeIntegrator(elasticity, mass, options)
        for t, dt in Stepper.from_steps(100, 10.0):
            integrator.make_time_step(dt)
    """

    field_name = "displacement"

    def __init__(
        self,
        stiffness: Any,
        mass: Any,
        options: IntegratorOptions | None = None,
    ) -> None:
        super().__init__(stiffness, mass, options)
        self._velocity = np.zeros(self.num_free_dofs)
        self._const_rhs: np.ndarray | None = None
        self._present: np.ndarray | None = None
        self.constant_assemblies = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def displacement_vector(self) -> np.ndarray:
        return self.solution_vector

    @property
    def velocity_vector(self) -> np.ndarray:
        return self._velocity.copy()

    def _extra_state(self) -> dict[str, np.ndarray]:
        return {"velocity": self._velocity}

    def _restore_extra(self, extra: dict[str, np.ndarray]) -> None:
        self._velocity = extra["velocity"].copy()

    # ------------------------------------------------------------------
    # Time step
    # ------------------------------------------------------------------

    def _present_force(self) -> np.ndarray:
        state = self.state
        system = self.stiffness.assemble(state.free_dofs, state.fixed_dofs)
        self._stiffness_cache = system
        return system.rhs

    def _build_constant_rhs(self, dt: float) -> None:
        """Inertia part of the step right-hand side, fixed during the step."""
        state = self.state
        M = self.mass_matrix
        # prescribed DOFs are taken at rest in the inertia term
        boundary_change = (
            self.mass.eliminate_fixed_dofs(self._pending)
            - self.mass.eliminate_fixed_dofs(state.fixed_dofs)
        )
        self._const_rhs = (
            M @ (state.free_dofs + dt * self._velocity)
            + boundary_change
        )
        self.constant_assemblies += 1

    def _assemble_step(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> AssembledSystem:
        dt = self._step_size
        theta = self.time_scheme.theta
        factor = (theta * dt) ** 2
        system = self.stiffness.assemble(free_dofs, fixed_dofs)
        self._stiffness_cache = system
        M = self.mass_matrix
        matrix = (M + factor * system.matrix).tocsr()
        force = self.time_scheme.blend(system.rhs, self._present)
        rhs = self._const_rhs + theta * dt ** 2 * force - M @ free_dofs
        return AssembledSystem(matrix, rhs)

    def _implicit_linear(self, dt: float) -> np.ndarray:
        self._present = self._present_force()
        self._build_constant_rhs(dt)
        u = self.state.free_dofs
        system = self.assemble(u, self._pending)
        return u + self._solve_linear(system)

    def _implicit_nonlinear(self, dt: float) -> np.ndarray:
        self._present = self._present_force()
        self._build_constant_rhs(dt)
        return self._solve_newton(self.state.extrapolate(dt))

    def _finish_step(self, new_free: np.ndarray, dt: float) -> None:
        theta = self.time_scheme.theta
        u = self.state.free_dofs
        if theta > 0.0:
            self._velocity = (new_free - u) / (theta * dt) - (1.0 - theta) / theta * self._velocity
        else:
            accel = self.linear_solver.solve(self.mass_matrix, self._present)
            self._velocity = self._velocity + dt * accel
        self._const_rhs = None
