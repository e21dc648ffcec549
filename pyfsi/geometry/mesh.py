"""Multi-patch structured triangle meshes.

Classes
-------
Patch
    Node grid of one structured patch, with its named sides.
Mesh
    Container for nodes, cells, patches and subdomain tags, with the
    geometric queries needed by the assemblers and the coupling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numpy.typing import ArrayLike

SIDES = ("west", "east", "south", "north")


@dataclass
class Patch:
    """One structured patch of a :class:`Mesh`.

    Attributes:
        index: Patch number inside the mesh.
        node_grid: Global node ids, shape ``(ny + 1, nx + 1)``; row ``j``
            runs along the patch's first parametric direction.
        cells: Global ids of the cells belonging to the patch.
        name: Optional subdomain name.
    """

    index: int
    node_grid: np.ndarray
    cells: np.ndarray
    name: str = ""

    @property
    def divisions(self) -> tuple[int, int]:
        """Number of cells ``(nx, ny)`` along each parametric direction."""
        ny, nx = self.node_grid.shape
        return nx - 1, ny - 1

    def side_nodes(self, side: str) -> np.ndarray:
        """Ordered node ids along *side*.

        West and east sides run from south to north; south and north
        sides run from west to east.
        """
        if side == "west":
            return self.node_grid[:, 0].copy()
        if side == "east":
            return self.node_grid[:, -1].copy()
        if side == "south":
            return self.node_grid[0, :].copy()
        if side == "north":
            return self.node_grid[-1, :].copy()
        raise ValueError(f"Unknown side {side!r}; expected one of {SIDES}.")

    def node_ids(self) -> np.ndarray:
        """All node ids of the patch in grid (row-major) order."""
        return self.node_grid.ravel().copy()


class Mesh:
    """Triangle mesh assembled from one or more structured patches.

    Attributes:
        nodes: Node coordinates, shape ``(n_nodes, 2)``.
        cells: Cell connectivity, shape ``(n_cells, 3)``, counter-clockwise
            in the reference configuration.
        cell_tags: Integer tag per cell (the patch index for generated
            meshes).
        dim: Spatial dimension.
        subdomain_map: Mapping from subdomain name to integer tag.
        patches: Structured patches, empty for meshes built from raw
            arrays.
    """

    def __init__(
        self,
        nodes: np.ndarray,
        cells: np.ndarray,
        cell_tags: np.ndarray | None = None,
        subdomain_map: dict[str, int] | None = None,
        patches: Sequence[Patch] | None = None,
    ) -> None:
        self.nodes = np.asarray(nodes, dtype=float)
        self.cells = np.asarray(cells, dtype=int)
        self.dim = self.nodes.shape[1]
        self.cell_tags = (
            np.asarray(cell_tags, dtype=int)
            if cell_tags is not None
            else np.zeros(len(self.cells), dtype=int)
        )
        self.subdomain_map: dict[str, int] = subdomain_map or {}
        self.patches: list[Patch] = list(patches or [])
        self._edge_cells: dict[tuple[int, int], int] | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def n_nodes(self) -> int:
        """Number of nodes."""
        return len(self.nodes)

    @property
    def n_cells(self) -> int:
        """Number of cells."""
        return len(self.cells)

    @property
    def n_patches(self) -> int:
        """Number of structured patches."""
        return len(self.patches)

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def patch(self, index: int) -> Patch:
        """Return patch *index*, raising ``IndexError`` if absent."""
        if not 0 <= index < len(self.patches):
            raise IndexError(
                f"Patch {index} out of range (mesh has {len(self.patches)})."
            )
        return self.patches[index]

    def side_nodes(self, patch: int, side: str) -> np.ndarray:
        """Ordered global node ids on *side* of *patch*."""
        return self.patch(patch).side_nodes(side)

    def side_edges(self, patch: int, side: str) -> tuple[np.ndarray, np.ndarray]:
        """Boundary edges along a patch side and their adjacent cells.

        Returns:
            Tuple ``(edges, cells)`` with ``edges`` of shape ``(m, 2)``
            (consecutive side nodes) and ``cells`` of shape ``(m,)``.
        """
        if self._edge_cells is None:
            self._edge_cells = {}
            for ic, tri in enumerate(self.cells):
                for i in range(3):
                    a, b = int(tri[i]), int(tri[(i + 1) % 3])
                    self._edge_cells[(min(a, b), max(a, b))] = ic
        ids = self.side_nodes(patch, side)
        edges = np.column_stack([ids[:-1], ids[1:]])
        cells = np.array(
            [self._edge_cells[(min(a, b), max(a, b))] for a, b in edges],
            dtype=int,
        )
        return edges, cells

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    def cell_centers(self) -> np.ndarray:
        """Compute centroids of all cells.

        Returns:
            Array of shape ``(n_cells, dim)``.
        """
        return self.nodes[self.cells].mean(axis=1)

    def signed_areas(self, nodes: np.ndarray | None = None) -> np.ndarray:
        """Signed cell areas (positive for counter-clockwise cells).

        Args:
            nodes: Alternative node coordinates with the same topology.
        """
        pts = self.nodes if nodes is None else np.asarray(nodes, dtype=float)
        p = pts[self.cells]
        d1 = p[:, 1] - p[:, 0]
        d2 = p[:, 2] - p[:, 0]
        return 0.5 * (d1[:, 0] * d2[:, 1] - d1[:, 1] * d2[:, 0])

    def cell_areas(self) -> np.ndarray:
        """Unsigned cell areas."""
        return np.abs(self.signed_areas())

    def jacobian_ratios(self, displacement: ArrayLike) -> np.ndarray:
        """Deformed-to-reference area ratio per cell.

        A non-positive value means the cell has collapsed or folded.

        Args:
            displacement: Nodal displacement, shape ``(n_nodes, 2)``.
        """
        disp = np.asarray(displacement, dtype=float)
        return self.signed_areas(self.nodes + disp) / self.signed_areas()

    def l2_norm(self, values: ArrayLike) -> float:
        """L2 norm of a P1 nodal field (scalar or vector valued)."""
        vals = np.asarray(values, dtype=float)
        if vals.ndim == 1:
            vals = vals[:, np.newaxis]
        areas = self.cell_areas()
        total = 0.0
        for comp in range(vals.shape[1]):
            u = vals[self.cells, comp]
            # exact integral of the squared linear interpolant
            total += float(np.sum(areas / 12.0 * (np.sum(u * u, axis=1) + u.sum(axis=1) ** 2)))
        return float(np.sqrt(total))

    # ------------------------------------------------------------------
    # Point queries
    # ------------------------------------------------------------------

    def locate(self, point: ArrayLike, tol: float = 1e-10) -> tuple[int, np.ndarray] | None:
        """Find the cell containing *point*.

        Returns:
            ``(cell, barycentric)`` or ``None`` when the point lies
            outside the mesh.
        """
        pt = np.asarray(point, dtype=float)
        p = self.nodes[self.cells]
        area2 = 2.0 * self.signed_areas()
        v0 = p[:, 0] - pt
        v1 = p[:, 1] - pt
        v2 = p[:, 2] - pt
        l0 = (v1[:, 0] * v2[:, 1] - v1[:, 1] * v2[:, 0]) / area2
        l1 = (v2[:, 0] * v0[:, 1] - v2[:, 1] * v0[:, 0]) / area2
        l2 = 1.0 - l0 - l1
        inside = (l0 >= -tol) & (l1 >= -tol) & (l2 >= -tol)
        hits = np.flatnonzero(inside)
        if len(hits) == 0:
            return None
        ic = int(hits[0])
        return ic, np.array([l0[ic], l1[ic], l2[ic]])

    def interpolate(self, point: ArrayLike, values: ArrayLike) -> Any:
        """Evaluate a nodal field at *point*.

        Uses linear interpolation inside the containing cell and falls
        back to the nearest node outside the mesh.
        """
        vals = np.asarray(values, dtype=float)
        found = self.locate(point)
        if found is None:
            dist = np.linalg.norm(self.nodes - np.asarray(point, dtype=float), axis=1)
            return vals[np.argmin(dist)]
        ic, bary = found
        return np.tensordot(bary, vals[self.cells[ic]], axes=1)

    # ------------------------------------------------------------------
    # Geometry updates
    # ------------------------------------------------------------------

    def move_nodes(self, delta: ArrayLike) -> None:
        """Displace all nodes in place by *delta* ``(n_nodes, 2)``."""
        delta = np.asarray(delta, dtype=float)
        if delta.shape != self.nodes.shape:
            raise ValueError(
                f"Node displacement has shape {delta.shape}, expected {self.nodes.shape}."
            )
        self.nodes = self.nodes + delta

    def copy(self) -> "Mesh":
        """Independent copy sharing no arrays with this mesh."""
        patches = [
            Patch(p.index, p.node_grid.copy(), p.cells.copy(), p.name)
            for p in self.patches
        ]
        return Mesh(
            nodes=self.nodes.copy(),
            cells=self.cells.copy(),
            cell_tags=self.cell_tags.copy(),
            subdomain_map=dict(self.subdomain_map),
            patches=patches,
        )

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_geometry(
        cls,
        geometry: Any,
        resolution: float = 1.0,
        divisions: tuple[int, int] | None = None,
    ) -> "Mesh":
        """Build a single-patch mesh from a geometry primitive."""
        return cls.from_patches(
            [geometry],
            resolution=resolution,
            divisions=None if divisions is None else [divisions],
        )

    @classmethod
    def from_patches(
        cls,
        geometries: Sequence[Any],
        resolution: float = 1.0,
        divisions: Sequence[tuple[int, int]] | None = None,
        names: Sequence[str] | None = None,
        decimals: int = 9,
    ) -> "Mesh":
        """Create a conforming triangle mesh from several patches.

        Each patch is meshed with a mapped structured grid; nodes that
        coincide (after rounding to *decimals*) are merged so that
        neighbouring patches share their common side.

        Args:
            geometries: Four-cornered geometries (Rectangle, Quadrilateral).
            resolution: Target element size when *divisions* is omitted.
            divisions: Number of cells ``(nx, ny)`` per patch.
            names: Subdomain name per patch.
            decimals: Rounding used to detect coincident nodes.

        Returns:
            Mesh instance with one :class:`Patch` per geometry.
        """
        if divisions is not None and len(divisions) != len(geometries):
            raise ValueError("Need one (nx, ny) pair per patch.")
        if names is not None and len(names) != len(geometries):
            raise ValueError("Need one name per patch.")

        coords: list[np.ndarray] = []
        lookup: dict[tuple[float, float], int] = {}
        cells: list[list[int]] = []
        tags: list[int] = []
        patches: list[Patch] = []
        subdomain_map: dict[str, int] = {}

        for ip, geom in enumerate(geometries):
            corners = geom.corners()
            if divisions is not None:
                nx, ny = (int(n) for n in divisions[ip])
            else:
                nx = max(1, int(np.ceil(np.linalg.norm(corners[1] - corners[0]) / resolution)))
                ny = max(1, int(np.ceil(np.linalg.norm(corners[3] - corners[0]) / resolution)))
            if nx < 1 or ny < 1:
                raise ValueError("Each patch needs at least one cell per direction.")

            grid = np.empty((ny + 1, nx + 1), dtype=int)
            for j, t in enumerate(np.linspace(0.0, 1.0, ny + 1)):
                for i, s in enumerate(np.linspace(0.0, 1.0, nx + 1)):
                    # bilinear map of the unit square onto the corners
                    x = (
                        (1 - s) * (1 - t) * corners[0]
                        + s * (1 - t) * corners[1]
                        + s * t * corners[2]
                        + (1 - s) * t * corners[3]
                    )
                    key = (round(float(x[0]), decimals), round(float(x[1]), decimals))
                    if key not in lookup:
                        lookup[key] = len(coords)
                        coords.append(x)
                    grid[j, i] = lookup[key]

            first = len(cells)
            for j in range(ny):
                for i in range(nx):
                    n0 = grid[j, i]
                    n1 = grid[j, i + 1]
                    n2 = grid[j + 1, i]
                    n3 = grid[j + 1, i + 1]
                    cells.append([n0, n1, n2])
                    cells.append([n1, n3, n2])
                    tags.extend([ip, ip])

            name = names[ip] if names is not None else f"patch{ip}"
            subdomain_map[name] = ip
            patches.append(
                Patch(ip, grid, np.arange(first, len(cells), dtype=int), name)
            )

        return cls(
            nodes=np.array(coords),
            cells=np.array(cells, dtype=int),
            cell_tags=np.array(tags, dtype=int),
            subdomain_map=subdomain_map,
            patches=patches,
        )

    # ------------------------------------------------------------------
    # repr
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"Mesh(n_nodes={self.n_nodes}, n_cells={self.n_cells}, "
            f"n_patches={self.n_patches}, subdomains={list(self.subdomain_map.keys())})"
        )
