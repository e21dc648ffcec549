"""Common assembler interface and DOF bookkeeping.

Classes
-------
AssembledSystem
    Sparse matrix and right-hand side produced by one assembly.
FieldAssembler
    Abstract capability used by the Newton solver and the integrators.
DofMapper
    Numbering of free and fixed DOFs for a vector-valued P1 field.
Assembler
    Base class for the concrete finite-element assemblers.

Functions
---------
p1_gradients
    Shape-function gradients and areas of linear triangles.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from scipy import sparse

from pyfsi.boundaries.base import BoundaryKey, Dirichlet, FixedDofs
from pyfsi.errors import ConfigurationError, MissingBoundaryData


@dataclass(frozen=True)
class AssembledSystem:
    """Linear system ``matrix @ x = rhs`` over the free DOFs.

    Attributes:
        matrix: Sparse CSR matrix, shape ``(n_free, n_free)``.
        rhs: Right-hand side, shape ``(n_free,)``.
    """

    matrix: sparse.csr_matrix
    rhs: np.ndarray

    def residual(self, x: np.ndarray) -> np.ndarray:
        """Return ``rhs - matrix @ x``."""
        return self.rhs - self.matrix @ x


class FieldAssembler(ABC):
    """Capability shared by assemblers and time integrators.

    Anything exposing these members can be driven by
    :class:`~pyfsi.solvers.newton.NewtonSolver`.
    """

    @property
    @abstractmethod
    def num_free_dofs(self) -> int:
        """Number of unknowns."""

    @property
    @abstractmethod
    def num_fixed_dofs(self) -> int:
        """Number of prescribed (Dirichlet) DOFs."""

    @abstractmethod
    def assemble(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> AssembledSystem:
        """Assemble the state-dependent system at ``(free_dofs, fixed_dofs)``.

        Returns:
            Tangent matrix and Newton right-hand side (negative residual).
        """


def p1_gradients(
    nodes: np.ndarray, cells: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Shape-function gradients of linear triangles.

    Args:
        nodes: Node coordinates, shape ``(n_nodes, 2)``.
        cells: Connectivity, shape ``(n_cells, 3)``.

    Returns:
        Tuple ``(areas, dNdx, dNdy)``; ``areas`` are unsigned, gradients
        have shape ``(n_cells, 3)``.
    """
    p = nodes[cells]
    x, y = p[:, :, 0], p[:, :, 1]
    area2 = (x[:, 1] - x[:, 0]) * (y[:, 2] - y[:, 0]) - (x[:, 2] - x[:, 0]) * (y[:, 1] - y[:, 0])
    if np.any(np.abs(area2) < 1e-300):
        raise ConfigurationError("Mesh contains degenerate (zero-area) cells.")
    dNdx = np.column_stack([y[:, 1] - y[:, 2], y[:, 2] - y[:, 0], y[:, 0] - y[:, 1]]) / area2[:, None]
    dNdy = np.column_stack([x[:, 2] - x[:, 1], x[:, 0] - x[:, 2], x[:, 1] - x[:, 0]]) / area2[:, None]
    return 0.5 * np.abs(area2), dNdx, dNdy


class DofMapper:
    """Component-major DOF numbering with Dirichlet elimination.

    The full index of component ``c`` at node ``n`` is
    ``c * n_nodes + n``.  Nodes touched by a Dirichlet condition are
    fixed for that component; the rest are free.  When several
    conditions share a node (patch corners), the condition declared
    last provides the value.

    Args:
        mesh: Multi-patch mesh.
        conditions: Dirichlet conditions in declaration order.
        n_components: Number of field components.
    """

    def __init__(
        self,
        mesh: Any,
        conditions: Sequence[Dirichlet],
        n_components: int,
    ) -> None:
        self.mesh = mesh
        self.n_nodes = mesh.n_nodes
        self.n_components = int(n_components)
        self.conditions: dict[BoundaryKey, Dirichlet] = {}
        self.key_nodes: dict[BoundaryKey, np.ndarray] = {}

        mask = np.zeros((self.n_components, self.n_nodes), dtype=bool)
        for cond in conditions:
            for key in cond.keys(self.n_components):
                nodes = mesh.side_nodes(key.patch, key.side)
                # re-declaring a key moves it to the end of the order
                self.conditions.pop(key, None)
                self.key_nodes.pop(key, None)
                self.conditions[key] = cond
                self.key_nodes[key] = nodes
                mask[key.component, nodes] = True

        flat = mask.ravel()
        self.free_full = np.flatnonzero(~flat)
        self.fixed_full = np.flatnonzero(flat)
        self._fixed_pos = np.full(flat.size, -1, dtype=int)
        self._fixed_pos[self.fixed_full] = np.arange(len(self.fixed_full))

    @property
    def n_free(self) -> int:
        return len(self.free_full)

    @property
    def n_fixed(self) -> int:
        return len(self.fixed_full)

    @property
    def n_full(self) -> int:
        return self.n_components * self.n_nodes

    @property
    def keys(self) -> list[BoundaryKey]:
        """Declared boundary keys in declaration order."""
        return list(self.key_nodes)

    def default_fixed_dofs(self) -> FixedDofs:
        """Evaluate the declared conditions at their side nodes."""
        fixed = FixedDofs()
        for key, cond in self.conditions.items():
            coords = self.mesh.nodes[self.key_nodes[key]]
            fixed[key] = cond.evaluate(coords, key.component)
        return fixed

    def fixed_vector(self, fixed_dofs: FixedDofs) -> np.ndarray:
        """Flatten keyed boundary data into the fixed-DOF vector.

        Raises:
            MissingBoundaryData: If a declared key has no entry.
            ConfigurationError: If an entry has the wrong length.
        """
        vec = np.zeros(self.n_fixed)
        for key, nodes in self.key_nodes.items():
            if key not in fixed_dofs:
                raise MissingBoundaryData(f"No fixed values supplied for {key}.")
            vals = fixed_dofs[key]
            if len(vals) != len(nodes):
                raise ConfigurationError(
                    f"Fixed values for {key} have length {len(vals)}, "
                    f"side has {len(nodes)} nodes."
                )
            vec[self._fixed_pos[key.component * self.n_nodes + nodes]] = vals
        return vec

    def check_free(self, free_dofs: np.ndarray) -> np.ndarray:
        """Validate the length of a free-DOF vector."""
        free = np.asarray(free_dofs, dtype=float)
        if free.shape != (self.n_free,):
            raise ConfigurationError(
                f"Free-DOF vector has shape {free.shape}, expected ({self.n_free},)."
            )
        return free

    def full_vector(self, free_dofs: np.ndarray, fixed_vector: np.ndarray) -> np.ndarray:
        """Merge free and fixed values into the full component-major vector."""
        full = np.zeros(self.n_full)
        full[self.free_full] = self.check_free(free_dofs)
        full[self.fixed_full] = fixed_vector
        return full

    def to_nodal(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> np.ndarray:
        """Nodal field of shape ``(n_nodes, n_components)``."""
        full = self.full_vector(free_dofs, self.fixed_vector(fixed_dofs))
        return full.reshape(self.n_components, self.n_nodes).T.copy()

    def free_part(self, nodal: np.ndarray) -> np.ndarray:
        """Restrict a nodal field ``(n_nodes, n_components)`` to the free DOFs."""
        nodal = np.asarray(nodal, dtype=float).reshape(self.n_nodes, self.n_components)
        return nodal.T.ravel()[self.free_full].copy()


class Assembler(FieldAssembler):
    """Base class for P1 finite-element assemblers.

    Subclasses assemble full (unconstrained) operators and use
    :meth:`_eliminate` to move the fixed DOFs to the right-hand side.
    The result of the most recent assembly is cached.

    Args:
        mesh: Multi-patch mesh.
        conditions: Dirichlet conditions in declaration order.
        n_components: Number of field components per node.
    """

    def __init__(
        self,
        mesh: Any,
        conditions: Sequence[Dirichlet],
        n_components: int,
    ) -> None:
        self.mesh = mesh
        self.conditions = list(conditions)
        self.dofs = DofMapper(mesh, self.conditions, n_components)
        self._last: AssembledSystem | None = None

    @property
    def num_free_dofs(self) -> int:
        return self.dofs.n_free

    @property
    def num_fixed_dofs(self) -> int:
        return self.dofs.n_fixed

    def fixed_dofs(self) -> FixedDofs:
        """Boundary data declared at setup, as a fresh mapping."""
        return self.dofs.default_fixed_dofs()

    @abstractmethod
    def assemble_constant(self) -> AssembledSystem:
        """Assemble the state-independent form with the declared boundary data."""

    def last_matrix(self) -> sparse.csr_matrix:
        """Matrix of the most recent assembly."""
        if self._last is None:
            raise ConfigurationError("Nothing has been assembled yet.")
        return self._last.matrix

    def last_rhs(self) -> np.ndarray:
        """Right-hand side of the most recent assembly."""
        if self._last is None:
            raise ConfigurationError("Nothing has been assembled yet.")
        return self._last.rhs

    def construct_solution(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs) -> np.ndarray:
        """Nodal solution ``(n_nodes, n_components)`` including boundary values."""
        return self.dofs.to_nodal(free_dofs, fixed_dofs)

    def construct_field(self, free_dofs: np.ndarray, fixed_dofs: FixedDofs, name: str = "u") -> Any:
        """Wrap :meth:`construct_solution` in a :class:`PhysicalField`."""
        from pyfsi.postprocess.fields import PhysicalField

        return PhysicalField(self.mesh, self.construct_solution(free_dofs, fixed_dofs), name)

    # ------------------------------------------------------------------
    # helpers for subclasses
    # ------------------------------------------------------------------

    def _store(self, matrix: sparse.spmatrix, rhs: np.ndarray) -> AssembledSystem:
        system = AssembledSystem(sparse.csr_matrix(matrix), np.asarray(rhs, dtype=float))
        self._last = system
        return system

    def _eliminate(
        self,
        matrix_full: sparse.spmatrix,
        rhs_full: np.ndarray,
        fixed_vector: np.ndarray,
    ) -> tuple[sparse.csr_matrix, np.ndarray]:
        """Restrict a full operator to the free DOFs.

        Returns:
            ``(A_ff, rhs_f - A_fd @ d)``.
        """
        free, fixed = self.dofs.free_full, self.dofs.fixed_full
        rows = sparse.csr_matrix(matrix_full)[free]
        rhs = rhs_full[free].copy()
        if len(fixed):
            rhs -= rows[:, fixed] @ fixed_vector
        return rows[:, free].tocsr(), rhs
