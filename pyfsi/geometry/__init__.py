"""Geometry: patch definition and multi-patch meshing."""

from pyfsi.geometry.primitives import (
    Geometry,
    Rectangle,
    Polygon,
    Quadrilateral,
)
from pyfsi.geometry.mesh import Mesh, Patch, SIDES

__all__ = [
    "Geometry",
    "Rectangle",
    "Polygon",
    "Quadrilateral",
    "Mesh",
    "Patch",
    "SIDES",
]
