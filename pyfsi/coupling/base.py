"""Base classes for partitioned multi-field coupling.

Classes
-------
CouplingLink
    Correspondence between a boundary (or patch) of one mesh and a
    boundary (or patch) of another.
AleCoupling
    Mesh velocity handed to the fluid for the ALE correction.
CoupledProblem
    Container for the field integrators that exchange data.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from pyfsi.errors import ConfigurationError


@dataclass(frozen=True)
class CouplingLink:
    """Static trace correspondence between two meshes.

    With sides given, the link maps the ordered nodes of
    ``source_side`` of ``source_patch`` onto those of ``target_side``
    of ``target_patch``.  With both sides ``None`` whole patches are
    matched node by node (the meshes must share the patch layout).

    Attributes:
        source_patch: Patch index in the source mesh.
        source_side: Side name, or ``None`` for the whole patch.
        target_patch: Patch index in the target mesh.
        target_side: Side name, or ``None`` for the whole patch.
    """

    source_patch: int
    source_side: str | None
    target_patch: int
    target_side: str | None

    def __post_init__(self) -> None:
        if (self.source_side is None) != (self.target_side is None):
            raise ConfigurationError("A link joins two sides or two whole patches.")

    @staticmethod
    def _nodes(mesh: Any, patch: int, side: str | None) -> np.ndarray:
        if side is None:
            return mesh.patch(patch).node_ids()
        return mesh.side_nodes(patch, side)

    def source_nodes(self, mesh: Any) -> np.ndarray:
        return self._nodes(mesh, self.source_patch, self.source_side)

    def target_nodes(self, mesh: Any) -> np.ndarray:
        return self._nodes(mesh, self.target_patch, self.target_side)

    def check(self, source_mesh: Any, target_mesh: Any, tol: float = 1e-8) -> None:
        """Verify that both traces have the same nodes at the same places.

        Raises:
            ConfigurationError: On a node-count or position mismatch.
        """
        src = self.source_nodes(source_mesh)
        tgt = self.target_nodes(target_mesh)
        if len(src) != len(tgt):
            raise ConfigurationError(
                f"{self}: source has {len(src)} nodes, target has {len(tgt)}."
            )
        gap = np.abs(source_mesh.nodes[src] - target_mesh.nodes[tgt]).max()
        if gap > tol:
            raise ConfigurationError(f"{self}: traces do not coincide (gap {gap:.3e}).")

    def transfer(self, source_mesh: Any, target_mesh: Any, values: np.ndarray) -> np.ndarray:
        """Trace of nodal *values* on the source, ordered like the target."""
        src = self.source_nodes(source_mesh)
        if len(src) != len(self.target_nodes(target_mesh)):
            raise ConfigurationError(f"{self}: node counts differ.")
        return np.asarray(values)[src].copy()

    def __str__(self) -> str:
        return (
            f"link ({self.source_patch}, {self.source_side}) -> "
            f"({self.target_patch}, {self.target_side})"
        )


class AleCoupling:
    """Mesh-motion data consumed by the fluid integrator.

    Args:
        ale_mesh: Mesh on which the mesh motion is solved.
        links: Whole-patch links from ALE patches to fluid patches.
        mesh_velocity: Initial nodal mesh velocity on *ale_mesh*.
    """

    def __init__(
        self,
        ale_mesh: Any,
        links: Sequence[CouplingLink],
        mesh_velocity: np.ndarray | None = None,
    ) -> None:
        self.ale_mesh = ale_mesh
        self.links = list(links)
        if any(link.source_side is not None for link in self.links):
            raise ConfigurationError("ALE links must map whole patches.")
        self._velocity = np.zeros((ale_mesh.n_nodes, 2))
        if mesh_velocity is not None:
            self.set_mesh_velocity(mesh_velocity)

    @property
    def mesh_velocity(self) -> np.ndarray:
        return self._velocity.copy()

    def set_mesh_velocity(self, velocity: np.ndarray) -> None:
        """Replace the nodal mesh velocity ``(n_ale_nodes, 2)``."""
        vel = np.array(velocity, dtype=float, copy=True)
        if vel.shape != (self.ale_mesh.n_nodes, 2):
            raise ConfigurationError(
                f"Mesh velocity has shape {vel.shape}, expected ({self.ale_mesh.n_nodes}, 2)."
            )
        self._velocity = vel

    def map_to(self, fluid_mesh: Any, values: np.ndarray) -> np.ndarray:
        """Carry nodal ALE *values* onto the linked fluid patches (zero elsewhere)."""
        vals = np.asarray(values, dtype=float)
        out = np.zeros((fluid_mesh.n_nodes,) + vals.shape[1:])
        for link in self.links:
            out[link.target_nodes(fluid_mesh)] = vals[link.source_nodes(self.ale_mesh)]
        return out

    def mesh_velocity_on(self, fluid_mesh: Any) -> np.ndarray:
        """Mesh velocity at the fluid nodes."""
        return self.map_to(fluid_mesh, self._velocity)

    def __repr__(self) -> str:
        return f"AleCoupling(n_links={len(self.links)})"


class CoupledProblem(ABC):
    """Abstract base class for multi-field coupling.

    A coupled problem wraps the time integrators of several fields and
    defines how they exchange information within a time step.

    Attributes:
        fields: Integrators keyed by field name, in solution order.
        coupling_strategy: Name of the coupling approach.
        sim_time: Simulated time reached so far.
    """

    coupling_strategy: str

    def __init__(self, fields: dict[str, Any]) -> None:
        self.fields = dict(fields)
        self.sim_time = 0.0

    @abstractmethod
    def step(self) -> Any:
        """Advance the coupled system by one macro step."""

    def validate(self) -> list[str]:
        """Consistency checks; returns a list of problems (empty if OK)."""
        issues: list[str] = []
        for name, integrator in self.fields.items():
            if integrator.num_free_dofs == 0:
                issues.append(f"Field {name!r} has no free DOFs.")
        return issues

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fields={list(self.fields)})"
