"""Consistent mass matrix for vector-valued P1 fields.

The element mass of a linear triangle is::

    M_e = ρ A / 12 · [[2, 1, 1], [1, 2, 1], [1, 1, 2]]

applied to each component separately.
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from scipy import sparse

from pyfsi.boundaries.base import Dirichlet, FixedDofs
from pyfsi.discretization.base import AssembledSystem, Assembler, p1_gradients

_ELEMENT_MASS = np.array([[2.0, 1.0, 1.0], [1.0, 2.0, 1.0], [1.0, 1.0, 2.0]]) / 12.0


class MassAssembler(Assembler):
    """Consistent mass form over the free DOFs.

    The form does not depend on the state; :meth:`assemble` only
    refreshes the elimination term for new boundary data.

    Args:
        mesh: Mesh (reference configuration).
        conditions: Dirichlet conditions, identical to those of the
            stiffness assembler so that the DOF numbering matches.
        density: Scalar density, per-cell array, or a material map
            providing ``density``.
        n_components: Number of field components.
    """

    def __init__(
        self,
        mesh: Any,
        conditions: Sequence[Dirichlet] = (),
        density: Any = 1.0,
        n_components: int = 2,
    ) -> None:
        super().__init__(mesh, conditions, n_components)
        if hasattr(density, "cell_property"):
            rho = density.cell_property("density")
        else:
            rho = np.broadcast_to(np.asarray(density, dtype=float), (mesh.n_cells,))
        self.density = np.array(rho, dtype=float)
        self._M_full = self._full_mass()

    def _full_mass(self) -> sparse.csr_matrix:
        areas, _, _ = p1_gradients(self.mesh.nodes, self.mesh.cells)
        n = self.mesh.n_nodes
        rows, cols, vals = [], [], []
        for ic, cell in enumerate(self.mesh.cells):
            m_local = self.density[ic] * areas[ic] * _ELEMENT_MASS
            for comp in range(self.dofs.n_components):
                for a in range(3):
                    for b in range(3):
                        rows.append(comp * n + cell[a])
                        cols.append(comp * n + cell[b])
                        vals.append(m_local[a, b])
        n_dof = self.dofs.n_full
        return sparse.csr_matrix((vals, (rows, cols)), shape=(n_dof, n_dof))

    def full_matrix(self) -> sparse.csr_matrix:
        """Mass matrix over all DOFs (free and fixed)."""
        return self._M_full

    def eliminate_fixed_dofs(self, fixed_dofs: FixedDofs) -> np.ndarray:
        """Elimination right-hand side ``−M_fd @ d`` for the given boundary data."""
        d = self.dofs.fixed_vector(fixed_dofs)
        _, rhs = self._eliminate(self._M_full, np.zeros(self.dofs.n_full), d)
        return rhs

    def assemble(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> AssembledSystem:
        self.dofs.check_free(free_dofs)
        d = self.dofs.fixed_vector(fixed_dofs)
        matrix, rhs = self._eliminate(self._M_full, np.zeros(self.dofs.n_full), d)
        return self._store(matrix, rhs)

    def assemble_constant(self) -> AssembledSystem:
        """``M_ff`` and ``−M_fd @ d`` for the declared boundary data."""
        d = self.dofs.fixed_vector(self.fixed_dofs())
        matrix, rhs = self._eliminate(self._M_full, np.zeros(self.dofs.n_full), d)
        return self._store(matrix, rhs)

    def __repr__(self) -> str:
        return f"MassAssembler(free={self.num_free_dofs}, fixed={self.num_fixed_dofs})"
