"""Boundaries: keyed boundary data and time-dependent ramps."""

from pyfsi.boundaries.base import (
    BoundaryKey,
    BoundaryCondition,
    Dirichlet,
    Neumann,
    FixedDofs,
)
from pyfsi.boundaries.time_varying import CosineRamp, Hydrograph, cosine_ramp

__all__ = [
    "BoundaryKey",
    "BoundaryCondition",
    "Dirichlet",
    "Neumann",
    "FixedDofs",
    "CosineRamp",
    "Hydrograph",
    "cosine_ramp",
]
