"""Incompressible Navier–Stokes operator on P1–P1 triangles.

Weak form (velocity u, pressure p, test functions v, q)::

    μ ∫ ∇u:∇v + ρ ∫ (a·∇)u·v − ∫ p ∇·v = ∫ ρ f·v
                                − ∫ q ∇·u − ε ∫ ∇p·∇q = 0

with the Brezzi–Pitkäranta stabilisation ``ε = β h² / μ`` and the
transport velocity ``a`` (the ALE-corrected velocity when the mesh
moves).  The unknown vector is ordered ``[free velocity | pressure]``;
the pressure has no Dirichlet DOFs.
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from scipy import sparse

from pyfsi.boundaries.base import Dirichlet, FixedDofs
from pyfsi.discretization.base import AssembledSystem, Assembler, DofMapper, p1_gradients
from pyfsi.errors import ConfigurationError

LINEARIZATIONS = ("oseen", "newton_next")

_P1_MASS = (np.ones((3, 3)) + np.eye(3)) / 12.0


class NavierStokesAssembler(Assembler):
    """Stabilised P1–P1 Navier–Stokes assembler.

    Args:
        mesh: Fluid mesh; node coordinates may be moved between
            assemblies (ALE).
        conditions: Velocity Dirichlet conditions.
        viscosity: Kinematic viscosity ν.
        density: Density ρ.
        body_force: Body force per unit mass ``(fx, fy)``.
        linearization: Default convection linearization, ``"oseen"`` or
            ``"newton_next"``.
        stabilization: Pressure stabilisation factor β.
    """

    def __init__(
        self,
        mesh: Any,
        conditions: Sequence[Dirichlet] = (),
        viscosity: float = 1.0,
        density: float = 1.0,
        body_force: tuple[float, float] = (0.0, 0.0),
        linearization: str = "oseen",
        stabilization: float = 0.1,
    ) -> None:
        super().__init__(mesh, conditions, n_components=2)
        if viscosity <= 0 or density <= 0:
            raise ConfigurationError("Viscosity and density must be positive.")
        if linearization not in LINEARIZATIONS:
            raise ConfigurationError(
                f"Unknown linearization {linearization!r}; expected one of {LINEARIZATIONS}."
            )
        self.viscosity = float(viscosity)
        self.density = float(density)
        self.body_force = np.asarray(body_force, dtype=float)
        self.linearization = linearization
        self.stabilization = float(stabilization)

    # ------------------------------------------------------------------
    # DOF layout
    # ------------------------------------------------------------------

    @property
    def dynamic_viscosity(self) -> float:
        return self.viscosity * self.density

    @property
    def num_velocity_dofs(self) -> int:
        """Number of free velocity DOFs (the leading block)."""
        return self.dofs.n_free

    @property
    def num_free_dofs(self) -> int:
        return self.dofs.n_free + self.mesh.n_nodes

    @property
    def velocity_dofs(self) -> DofMapper:
        return self.dofs

    def _free_full(self) -> np.ndarray:
        n = self.mesh.n_nodes
        return np.concatenate([self.dofs.free_full, 2 * n + np.arange(n)])

    def _check(self, free_dofs: np.ndarray) -> np.ndarray:
        free = np.asarray(free_dofs, dtype=float)
        if free.shape != (self.num_free_dofs,):
            raise ConfigurationError(
                f"Free-DOF vector has shape {free.shape}, expected ({self.num_free_dofs},)."
            )
        return free

    def construct_solution(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> np.ndarray:
        """Nodal velocity ``(n_nodes, 2)``."""
        free = self._check(free_dofs)
        return self.dofs.to_nodal(free[: self.num_velocity_dofs], fixed_dofs)

    def construct_pressure(self, free_dofs: np.ndarray) -> np.ndarray:
        """Nodal pressure ``(n_nodes,)``."""
        return self._check(free_dofs)[self.num_velocity_dofs:].copy()

    def free_vector(self, velocity: np.ndarray, pressure: np.ndarray | None = None) -> np.ndarray:
        """Pack nodal velocity (and pressure) into a free-DOF vector."""
        p = np.zeros(self.mesh.n_nodes) if pressure is None else np.asarray(pressure, dtype=float)
        return np.concatenate([self.dofs.free_part(velocity), p])

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(
        self,
        free_dofs: np.ndarray,
        fixed_dofs: FixedDofs,
        *,
        linearization: str | None = None,
        transport_velocity: np.ndarray | None = None,
    ) -> AssembledSystem:
        """Assemble the linearized system at the state ``(free_dofs, fixed_dofs)``.

        The solution of the returned system is the next iterate (not an
        increment).

        Args:
            free_dofs: Current iterate ``[velocity | pressure]``.
            fixed_dofs: Velocity boundary data.
            linearization: Overrides the default linearization.
            transport_velocity: Nodal convecting velocity ``(n_nodes, 2)``;
                defaults to the current velocity.
        """
        mode = linearization or self.linearization
        if mode not in LINEARIZATIONS:
            raise ConfigurationError(f"Unknown linearization {mode!r}.")
        d = self.dofs.fixed_vector(fixed_dofs)
        u_k = self.construct_solution(free_dofs, fixed_dofs)
        a = u_k if transport_velocity is None else np.asarray(transport_velocity, dtype=float)
        if a.shape != u_k.shape:
            raise ConfigurationError(
                f"Transport velocity has shape {a.shape}, expected {u_k.shape}."
            )

        A_full, f_full = self._full_operator(a, u_k if mode == "newton_next" else None)
        if mode == "newton_next":
            f_full = f_full + self._newton_rhs(u_k)

        free = self._free_full()
        fixed = self.dofs.fixed_full
        rows = A_full[free]
        rhs = f_full[free].copy()
        if len(fixed):
            rhs -= rows[:, fixed] @ d
        return self._store(rows[:, free].tocsr(), rhs)

    def assemble_constant(self) -> AssembledSystem:
        """Stokes system (no convection) with the declared boundary data."""
        fixed = self.fixed_dofs()
        zero = np.zeros((self.mesh.n_nodes, 2))
        A_full, f_full = self._full_operator(zero, None)
        d = self.dofs.fixed_vector(fixed)
        free = self._free_full()
        rows = A_full[free]
        rhs = f_full[free].copy()
        if len(self.dofs.fixed_full):
            rhs -= rows[:, self.dofs.fixed_full] @ d
        return self._store(rows[:, free].tocsr(), rhs)

    def _geometry(self) -> tuple[np.ndarray, np.ndarray]:
        areas, dNdx, dNdy = p1_gradients(self.mesh.nodes, self.mesh.cells)
        return areas, np.stack([dNdx, dNdy], axis=-1)  # (c, 3, 2)

    def _full_operator(
        self, transport: np.ndarray, newton_velocity: np.ndarray | None
    ) -> tuple[sparse.csr_matrix, np.ndarray]:
        """Full ``(3 n, 3 n)`` operator and load vector."""
        n = self.mesh.n_nodes
        cells = self.mesh.cells
        areas, grads = self._geometry()
        mu, rho = self.dynamic_viscosity, self.density
        n_cells = len(cells)

        local = np.zeros((n_cells, 9, 9))
        lap = np.einsum("cak,cbk->cab", grads, grads) * areas[:, None, None]

        # convection: ∫ N_a (a_h·∇N_b) = A/12 (Σ_k a_k + a_a)·∇N_b
        a_nodes = transport[cells]  # (c, 3, 2)
        s_plus = a_nodes.sum(axis=1)[:, None, :] + a_nodes
        conv = rho * (areas / 12.0)[:, None, None] * np.einsum("cak,cbk->cab", s_plus, grads)

        for i in range(2):
            blk = slice(3 * i, 3 * i + 3)
            local[:, blk, blk] += mu * lap + conv

        if newton_velocity is not None:
            G = np.einsum("cai,caj->cij", newton_velocity[cells], grads)  # ∂u_i/∂x_j
            mass = areas[:, None, None] * _P1_MASS[None]
            for i in range(2):
                for j in range(2):
                    local[:, 3 * i:3 * i + 3, 3 * j:3 * j + 3] += rho * mass * G[:, i, j][:, None, None]

        # pressure coupling: −∫ q ∇·u and −∫ p ∇·v
        for j in range(2):
            div = -(areas / 3.0)[:, None, None] * np.broadcast_to(
                grads[:, None, :, j], (n_cells, 3, 3)
            )
            local[:, 6:9, 3 * j:3 * j + 3] += div
            local[:, 3 * j:3 * j + 3, 6:9] += np.transpose(div, (0, 2, 1))

        eps = self.stabilization * areas / mu  # h² ~ cell area
        local[:, 6:9, 6:9] -= (eps * areas)[:, None, None] * np.einsum("cak,cbk->cab", grads, grads)

        gidx = np.concatenate([cells, n + cells, 2 * n + cells], axis=1)  # (c, 9)
        rows = np.broadcast_to(gidx[:, :, None], local.shape).ravel()
        cols = np.broadcast_to(gidx[:, None, :], local.shape).ravel()
        A_full = sparse.csr_matrix((local.ravel(), (rows, cols)), shape=(3 * n, 3 * n))

        f_full = np.zeros(3 * n)
        for i in range(2):
            if self.body_force[i]:
                np.add.at(f_full, i * n + cells, (rho * self.body_force[i] * areas / 3.0)[:, None])
        return A_full, f_full

    def _newton_rhs(self, u_k: np.ndarray) -> np.ndarray:
        """``ρ ∫ (u_k·∇)u_k · v`` over all DOFs."""
        n = self.mesh.n_nodes
        cells = self.mesh.cells
        areas, grads = self._geometry()
        G = np.einsum("cai,caj->cij", u_k[cells], grads)
        Gu = np.einsum("cij,caj->cai", G, u_k[cells])  # (c, 3, 2)
        contrib = self.density * (areas / 12.0)[:, None, None] * (Gu.sum(axis=1)[:, None, :] + Gu)
        out = np.zeros(3 * n)
        for i in range(2):
            np.add.at(out, i * n + cells, contrib[:, :, i])
        return out

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    def compute_force(
        self,
        free_dofs: np.ndarray,
        fixed_dofs: FixedDofs,
        sides: Sequence[tuple[int, str]],
    ) -> np.ndarray:
        """Force exerted by the fluid on the boundary *sides*.

        ``F = −∫ σ n ds`` with ``σ = −p I + μ (∇u + ∇uᵀ)`` and ``n`` the
        outward fluid normal.

        Returns:
            Array ``(drag, lift)``.
        """
        velocity = self.construct_solution(free_dofs, fixed_dofs)
        pressure = self.construct_pressure(free_dofs)
        _, grads = self._geometry()
        mu = self.dynamic_viscosity
        nodes = self.mesh.nodes
        force = np.zeros(2)
        for patch, side in sides:
            edges, cells = self.mesh.side_edges(patch, side)
            for (a, b), ic in zip(edges, cells):
                cell = self.mesh.cells[ic]
                third = [c for c in cell if c != a and c != b][0]
                t = nodes[b] - nodes[a]
                length = np.linalg.norm(t)
                normal = np.array([t[1], -t[0]]) / length
                if np.dot(normal, nodes[third] - nodes[a]) > 0:
                    normal = -normal
                G = velocity[cell].T @ grads[ic]
                p_mean = 0.5 * (pressure[a] + pressure[b])
                sigma = -p_mean * np.eye(2) + mu * (G + G.T)
                force -= length * sigma @ normal
        return force

    def __repr__(self) -> str:
        return (
            f"NavierStokesAssembler(nu={self.viscosity}, rho={self.density}, "
            f"linearization={self.linearization!r}, free={self.num_free_dofs})"
        )
