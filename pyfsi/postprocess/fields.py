"""Nodal fields and derived quantities.

Classes
-------
PhysicalField
    Nodal values bound to the mesh they live on.

Functions
---------
compute_gradient
    Per-cell gradient of a scalar or vector nodal field.
compute_vorticity
    Per-cell vorticity of a 2-D velocity field.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import ArrayLike

from pyfsi.discretization.base import p1_gradients


@dataclass
class PhysicalField:
    """A nodal field on a mesh (displacement, velocity, pressure, ...).

    Attributes:
        mesh: The :class:`~pyfsi.geometry.mesh.Mesh` the values live on.
        values: ``(n_nodes,)`` or ``(n_nodes, n_components)``.
        name: Field name used for export.
    """

    mesh: Any
    values: np.ndarray
    name: str = "field"

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=float)
        if self.values.shape[0] != self.mesh.n_nodes:
            raise ValueError(
                f"Field {self.name!r} has {self.values.shape[0]} values "
                f"for {self.mesh.n_nodes} nodes."
            )

    @property
    def n_components(self) -> int:
        return 1 if self.values.ndim == 1 else self.values.shape[1]

    def value_at(self, point: ArrayLike) -> Any:
        """Linear interpolation at *point*."""
        return self.mesh.interpolate(point, self.values)

    def magnitude(self) -> np.ndarray:
        if self.values.ndim == 1:
            return np.abs(self.values)
        return np.linalg.norm(self.values, axis=1)

    def l2_norm(self) -> float:
        return self.mesh.l2_norm(self.values)

    def gradient(self) -> np.ndarray:
        return compute_gradient(self.mesh, self.values)


def compute_gradient(mesh: Any, nodal_field: np.ndarray) -> np.ndarray:
    """Compute per-cell gradient of a nodal field.

    Uses linear interpolation within triangular elements.

    Args:
        mesh: A :class:`~pyfsi.geometry.mesh.Mesh`.
        nodal_field: ``(n_nodes,)`` or ``(n_nodes, n_components)``.

    Returns:
        ``(n_cells, 2)`` for a scalar field, ``(n_cells, n_components, 2)``
        for a vector field (``[..., c, j] = ∂u_c/∂x_j``).
    """
    _, dNdx, dNdy = p1_gradients(mesh.nodes, mesh.cells)
    vals = np.asarray(nodal_field, dtype=float)[mesh.cells]
    gx = np.einsum("ck,ck...->c...", dNdx, vals)
    gy = np.einsum("ck,ck...->c...", dNdy, vals)
    return np.stack([gx, gy], axis=-1)


def compute_vorticity(mesh: Any, velocity: np.ndarray) -> np.ndarray:
    """ω = ∂v/∂x − ∂u/∂y per cell."""
    grad = compute_gradient(mesh, velocity)
    return grad[:, 1, 0] - grad[:, 0, 1]
