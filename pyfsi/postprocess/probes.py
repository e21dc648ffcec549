"""Point and line probes for extracting time series.

Classes
-------
PointProbe
    Sample field values at a single point.
LineProbe
    Sample field values along a line.
PressureDifference
    Pressure jump between two points (e.g. across a body).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass
class PointProbe:
    """Extract field values at a specific location.

    Args:
        location: Coordinates ``(x, y)``.
    """

    location: tuple[float, ...]

    def sample(self, mesh: Any, field: np.ndarray) -> Any:
        """Sample the field at this probe location.

        Uses linear interpolation in the containing cell (nearest node
        outside the mesh).  The mesh may be deformed; the probe stays at
        its spatial location.

        Args:
            mesh: Computational mesh.
            field: Nodal field values, scalar or vector.

        Returns:
            Float for a scalar field, array for a vector field.
        """
        value = mesh.interpolate(self.location, field)
        if np.ndim(value) == 0:
            return float(value)
        return np.asarray(value, dtype=float)


@dataclass
class LineProbe:
    """Sample field values along a line.

    Args:
        start: Start point.
        end: End point.
        n_points: Number of sample points.
    """

    start: tuple[float, ...]
    end: tuple[float, ...]
    n_points: int = 100

    def sample(self, mesh: Any, field: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Sample the field along this line.

        Returns:
            Tuple ``(distances, values)`` where *distances* is the
            arc-length coordinate along the line.
        """
        s = np.asarray(self.start, dtype=float)
        e = np.asarray(self.end, dtype=float)
        t = np.linspace(0.0, 1.0, self.n_points)
        points = s + np.outer(t, e - s)
        distances = t * np.linalg.norm(e - s)
        values = np.array([mesh.interpolate(pt, field) for pt in points], dtype=float)
        return distances, values


@dataclass
class PressureDifference:
    """``p(front) − p(back)``."""

    front: tuple[float, float]
    back: tuple[float, float]

    def sample(self, mesh: Any, pressure: np.ndarray) -> float:
        return PointProbe(self.front).sample(mesh, pressure) - PointProbe(self.back).sample(
            mesh, pressure
        )
