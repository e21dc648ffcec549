"""Plane-strain elasticity on linear triangles.

Governing equation (total Lagrangian)::

    ∇·(F S) + b = 0
    S = λ tr(E) I + 2 μ E,    E = (FᵀF − I) / 2

For ``material_law="linear"`` the small-strain limit σ = C : ε is used.
The same assembler, with local stiffening, drives ALE mesh motion.

Uses CST (constant-strain triangle) elements with 2 DOFs per node
(u_x, u_y).
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from scipy import sparse

from pyfsi.boundaries.base import Dirichlet, FixedDofs, Neumann
from pyfsi.discretization.base import AssembledSystem, Assembler, p1_gradients
from pyfsi.errors import ConfigurationError

MATERIAL_LAWS = ("linear", "saint_venant_kirchhoff")


def elastic_stiffness_2d(E: float, nu: float, plane_strain: bool = True) -> np.ndarray:
    """2-D elastic constitutive matrix (plane strain or plane stress).

    Args:
        E: Young's modulus.
        nu: Poisson's ratio.
        plane_strain: If True, plane-strain; else plane-stress.

    Returns:
        3×3 constitutive matrix (Voigt notation: σ_xx, σ_yy, τ_xy).
    """
    if plane_strain:
        factor = E / ((1 + nu) * (1 - 2 * nu))
        C = factor * np.array([
            [1 - nu, nu, 0],
            [nu, 1 - nu, 0],
            [0, 0, 0.5 * (1 - 2 * nu)],
        ])
    else:
        factor = E / (1 - nu ** 2)
        C = factor * np.array([
            [1, nu, 0],
            [nu, 1, 0],
            [0, 0, 0.5 * (1 - nu)],
        ])
    return C


class ElasticityAssembler(Assembler):
    """Static elasticity operator: tangent stiffness and out-of-balance force.

    ``assemble(u, d)`` returns ``K_T(u)`` and ``f_ext − f_int(u)`` on the
    free DOFs, i.e. the Newton right-hand side.

    Args:
        mesh: Reference mesh.
        materials: Material map providing ``youngs_modulus`` and
            ``poissons_ratio``.
        conditions: Dirichlet conditions.
        body_force: Body force per unit volume ``(bx, by)``.
        tractions: Neumann conditions (surface tractions).
        material_law: ``"linear"`` or ``"saint_venant_kirchhoff"``.
        local_stiffening: Exponent χ; cells are stiffened by
            ``(area / mean_area) ** -χ`` (mesh motion).
        plane_strain: Plane-strain (default) or plane-stress.
    """

    def __init__(
        self,
        mesh: Any,
        materials: Any,
        conditions: Sequence[Dirichlet] = (),
        body_force: tuple[float, float] = (0.0, 0.0),
        tractions: Sequence[Neumann] = (),
        material_law: str = "linear",
        local_stiffening: float = 0.0,
        plane_strain: bool = True,
    ) -> None:
        super().__init__(mesh, conditions, n_components=2)
        if material_law not in MATERIAL_LAWS:
            raise ConfigurationError(
                f"Unknown material law {material_law!r}; expected one of {MATERIAL_LAWS}."
            )
        self.materials = materials
        self.body_force = np.asarray(body_force, dtype=float)
        self.tractions = list(tractions)
        self.material_law = material_law
        self.local_stiffening = float(local_stiffening)
        self.plane_strain = plane_strain

        self._areas, self._dNdx, self._dNdy = p1_gradients(mesh.nodes, mesh.cells)
        E = self.materials.cell_property("youngs_modulus")
        nu = self.materials.cell_property("poissons_ratio")
        if self.local_stiffening:
            E = E * (self._areas / self._areas.mean()) ** (-self.local_stiffening)
        self._D = np.array([
            elastic_stiffness_2d(float(E[ic]), float(nu[ic]), plane_strain)
            for ic in range(mesh.n_cells)
        ])
        self._f_ext = self._external_force()
        self._K_lin: sparse.csr_matrix | None = None

    @property
    def is_linear(self) -> bool:
        return self.material_law == "linear"

    # ------------------------------------------------------------------
    # FieldAssembler interface
    # ------------------------------------------------------------------

    def assemble(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> AssembledSystem:
        d = self.dofs.fixed_vector(fixed_dofs)
        u_full = self.dofs.full_vector(free_dofs, d)
        free = self.dofs.free_full
        if self.is_linear:
            K = self.linear_stiffness()
            rhs_full = self._f_ext - K @ u_full
        else:
            K, f_int = self._nonlinear_terms(u_full)
            rhs_full = self._f_ext - f_int
        return self._store(K[free][:, free], rhs_full[free])

    def assemble_constant(self) -> AssembledSystem:
        """Linear (small-strain) system ``K_ff u = f_f − K_fd d``."""
        d = self.dofs.fixed_vector(self.fixed_dofs())
        matrix, rhs = self._eliminate(self.linear_stiffness(), self._f_ext, d)
        return self._store(matrix, rhs)

    def jacobian_ratios(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> np.ndarray:
        """Deformed-to-reference area ratio per cell."""
        return self.mesh.jacobian_ratios(self.construct_solution(free_dofs, fixed_dofs))

    def check_solution(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> float:
        """Smallest cell Jacobian ratio; non-positive means a folded mesh."""
        return float(self.jacobian_ratios(free_dofs, fixed_dofs).min())

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def _dof_indices(self, cell: np.ndarray) -> list[int]:
        # local ordering [ux_0, uy_0, ux_1, uy_1, ux_2, uy_2]
        n = self.mesh.n_nodes
        return [c * n + node for node in cell for c in range(2)]

    def _B_matrix(self, ic: int) -> np.ndarray:
        b = self._dNdx[ic]
        c = self._dNdy[ic]
        B = np.zeros((3, 6))
        for n_local in range(3):
            B[0, 2 * n_local] = b[n_local]
            B[1, 2 * n_local + 1] = c[n_local]
            B[2, 2 * n_local] = c[n_local]
            B[2, 2 * n_local + 1] = b[n_local]
        return B

    def linear_stiffness(self) -> sparse.csr_matrix:
        """Small-strain stiffness over all DOFs, shape ``(2 n, 2 n)``."""
        if self._K_lin is None:
            rows, cols, vals = [], [], []
            for ic, cell in enumerate(self.mesh.cells):
                B = self._B_matrix(ic)
                k_local = (B.T @ self._D[ic] @ B) * self._areas[ic]
                idx = self._dof_indices(cell)
                for a in range(6):
                    for bb in range(6):
                        rows.append(idx[a])
                        cols.append(idx[bb])
                        vals.append(k_local[a, bb])
            n_dof = self.dofs.n_full
            self._K_lin = sparse.csr_matrix((vals, (rows, cols)), shape=(n_dof, n_dof))
        return self._K_lin

    def _nonlinear_terms(self, u_full: np.ndarray) -> tuple[sparse.csr_matrix, np.ndarray]:
        """Saint-Venant–Kirchhoff tangent stiffness and internal force."""
        n = self.mesh.n_nodes
        n_dof = self.dofs.n_full
        u = u_full.reshape(2, n).T
        f_int = np.zeros(n_dof)
        rows, cols, vals = [], [], []

        for ic, cell in enumerate(self.mesh.cells):
            grads = np.column_stack([self._dNdx[ic], self._dNdy[ic]])  # (3, 2)
            F = np.eye(2) + u[cell].T @ grads
            E_gl = 0.5 * (F.T @ F - np.eye(2))
            D = self._D[ic]
            S_voigt = D @ np.array([E_gl[0, 0], E_gl[1, 1], 2.0 * E_gl[0, 1]])
            S = np.array([[S_voigt[0], S_voigt[2]], [S_voigt[2], S_voigt[1]]])

            B = np.zeros((3, 6))
            for a in range(3):
                nx, ny = grads[a]
                for i in range(2):
                    B[0, 2 * a + i] = F[i, 0] * nx
                    B[1, 2 * a + i] = F[i, 1] * ny
                    B[2, 2 * a + i] = F[i, 0] * ny + F[i, 1] * nx

            area = self._areas[ic]
            k_local = (B.T @ D @ B) * area
            geo = grads @ S @ grads.T * area
            for a in range(3):
                for b in range(3):
                    k_local[2 * a, 2 * b] += geo[a, b]
                    k_local[2 * a + 1, 2 * b + 1] += geo[a, b]

            idx = self._dof_indices(cell)
            f_int[idx] += B.T @ S_voigt * area
            for a in range(6):
                for bb in range(6):
                    rows.append(idx[a])
                    cols.append(idx[bb])
                    vals.append(k_local[a, bb])

        K = sparse.csr_matrix((vals, (rows, cols)), shape=(n_dof, n_dof))
        return K, f_int

    def _external_force(self) -> np.ndarray:
        """Body force (``b · area / 3`` per node) plus surface tractions."""
        n = self.mesh.n_nodes
        f = np.zeros(self.dofs.n_full)
        for ic, cell in enumerate(self.mesh.cells):
            for comp in range(2):
                f[comp * n + cell] += self.body_force[comp] * self._areas[ic] / 3.0

        for cond in self.tractions:
            edges, _ = self.mesh.side_edges(cond.patch, cond.side)
            coords = self.mesh.nodes[self.mesh.side_nodes(cond.patch, cond.side)]
            for comp in range(2):
                t = cond.evaluate(coords, comp)
                for e, (a, b) in enumerate(edges):
                    length = np.linalg.norm(self.mesh.nodes[b] - self.mesh.nodes[a])
                    # consistent load of a linearly varying traction
                    f[comp * n + a] += length / 6.0 * (2.0 * t[e] + t[e + 1])
                    f[comp * n + b] += length / 6.0 * (t[e] + 2.0 * t[e + 1])
        return f

    def external_force(self) -> np.ndarray:
        """Assembled external load over all DOFs."""
        return self._f_ext.copy()

    def __repr__(self) -> str:
        return (
            f"ElasticityAssembler(law={self.material_law!r}, "
            f"free={self.num_free_dofs}, fixed={self.num_fixed_dofs})"
        )
