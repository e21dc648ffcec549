"""Four-cornered patch primitives for 2-D multi-patch meshes.

Classes
-------
Geometry
    Abstract base class for patch geometries.
Rectangle
    Axis-aligned rectangle.
Polygon
    Arbitrary simple polygon (point queries only).
Quadrilateral
    Four-cornered polygon that can be meshed with a mapped grid.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np
from numpy.typing import ArrayLike


class Geometry(ABC):
    """Abstract base class for patch geometries."""

    @abstractmethod
    def contains(self, points: ArrayLike) -> np.ndarray:
        """Test whether each point lies inside the geometry.

        Args:
            points: Array of shape ``(N, 2)``.

        Returns:
            Boolean array of shape ``(N,)``.
        """

    @abstractmethod
    def area(self) -> float:
        """Area of the geometry."""

    @abstractmethod
    def corners(self) -> np.ndarray:
        """Patch corners ``(SW, SE, NE, NW)`` used for mapped meshing.

        Returns:
            Array of shape ``(4, 2)``.
        """

    def generate_mesh(
        self,
        resolution: float = 1.0,
        divisions: tuple[int, int] | None = None,
    ) -> "Mesh":
        """Generate a single-patch mesh for this geometry.

        Args:
            resolution: Target element size (ignored when *divisions*
                is given).
            divisions: Number of cells ``(nx, ny)``.

        Returns:
            A :class:`~pyfsi.geometry.mesh.Mesh` instance.
        """
        from pyfsi.geometry.mesh import Mesh

        return Mesh.from_geometry(self, resolution=resolution, divisions=divisions)


class Rectangle(Geometry):
    """Axis-aligned rectangle.

    Args:
        Lx: Width (x-extent).
        Ly: Height (y-extent).
        origin: Bottom-left corner ``(x0, y0)``.
    """

    def __init__(self, Lx: float, Ly: float, origin: tuple[float, float] = (0.0, 0.0)) -> None:
        if Lx <= 0 or Ly <= 0:
            raise ValueError("Rectangle extents must be positive.")
        self.origin = np.asarray(origin, dtype=float)
        self.Lx = float(Lx)
        self.Ly = float(Ly)

    @classmethod
    def from_bounds(
        cls, x_min: float, x_max: float, y_min: float, y_max: float
    ) -> "Rectangle":
        """Build a rectangle from its coordinate bounds."""
        return cls(Lx=x_max - x_min, Ly=y_max - y_min, origin=(x_min, y_min))

    @property
    def x_min(self) -> float:
        return float(self.origin[0])

    @property
    def x_max(self) -> float:
        return float(self.origin[0] + self.Lx)

    @property
    def y_min(self) -> float:
        return float(self.origin[1])

    @property
    def y_max(self) -> float:
        return float(self.origin[1] + self.Ly)

    def contains(self, points: ArrayLike) -> np.ndarray:
        pts = np.atleast_2d(np.asarray(points, dtype=float))
        x, y = pts[:, 0], pts[:, 1]
        return (
            (x >= self.x_min) & (x <= self.x_max)
            & (y >= self.y_min) & (y <= self.y_max)
        )

    def area(self) -> float:
        return self.Lx * self.Ly

    def corners(self) -> np.ndarray:
        return np.array([
            [self.x_min, self.y_min],
            [self.x_max, self.y_min],
            [self.x_max, self.y_max],
            [self.x_min, self.y_max],
        ])

    def __repr__(self) -> str:
        return (
            f"Rectangle(Lx={self.Lx}, Ly={self.Ly}, "
            f"origin=({self.origin[0]}, {self.origin[1]}))"
        )


class Polygon(Geometry):
    """Simple 2-D polygon defined by its vertices.

    Args:
        vertices: Sequence of ``(x, y)`` pairs; the polygon is closed
            implicitly.
    """

    def __init__(self, vertices: Sequence[tuple[float, float]]) -> None:
        self.vertices = np.asarray(vertices, dtype=float)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 2:
            raise ValueError("vertices must have shape (N, 2).")
        if len(self.vertices) < 3:
            raise ValueError("A polygon requires at least 3 vertices.")

    def contains(self, points: ArrayLike) -> np.ndarray:
        """Even-odd ray casting."""
        pts = np.atleast_2d(np.asarray(points, dtype=float))
        vx, vy = self.vertices[:, 0], self.vertices[:, 1]
        wx, wy = np.roll(vx, -1), np.roll(vy, -1)
        inside = np.zeros(len(pts), dtype=bool)
        for xi, yi, xj, yj in zip(vx, vy, wx, wy):
            crosses = (yi > pts[:, 1]) != (yj > pts[:, 1])
            x_cross = (xj - xi) * (pts[:, 1] - yi) / (yj - yi + 1e-300) + xi
            inside ^= crosses & (pts[:, 0] < x_cross)
        return inside

    def signed_area(self) -> float:
        """Shoelace formula; positive for counter-clockwise vertices."""
        x, y = self.vertices[:, 0], self.vertices[:, 1]
        return float(0.5 * (np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))

    def area(self) -> float:
        return abs(self.signed_area())

    def corners(self) -> np.ndarray:
        raise NotImplementedError(
            "Only four-sided polygons can be meshed; use Quadrilateral."
        )

    def __repr__(self) -> str:
        return f"Polygon(n_vertices={len(self.vertices)})"


class Quadrilateral(Polygon):
    """Convex quadrilateral patch, meshed with a bilinear map.

    Args:
        vertices: Corners in counter-clockwise order starting at the
            corner that becomes the patch's south-west corner.

    Example::

        # Cook's membrane
        cook = Quadrilateral([(0, 0), (48, 44), (48, 60), (0, 44)])
    """

    def __init__(self, vertices: Sequence[tuple[float, float]]) -> None:
        super().__init__(vertices)
        if len(self.vertices) != 4:
            raise ValueError("A quadrilateral requires exactly 4 vertices.")
        if self.signed_area() <= 0:
            raise ValueError("Quadrilateral vertices must be counter-clockwise.")

    def corners(self) -> np.ndarray:
        return self.vertices.copy()

    def __repr__(self) -> str:
        return f"Quadrilateral(vertices={self.vertices.tolist()})"
