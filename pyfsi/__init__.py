"""
pyfsi: Nonlinear time integration and staggered fluid–structure
interaction on multi-patch triangle meshes.

Subpackages
-----------
geometry
    Patch geometries and conforming multi-patch meshes.
materials
    Material properties and their assignment to cells.
boundaries
    Dirichlet/Neumann data, fixed-DOF containers, ramps.
discretization
    Field assemblers: elasticity, mass, Navier–Stokes.
solvers
    Direct linear solvers and the Newton iteration.
time
    Steppers, solution state, structural and fluid time integrators.
coupling
    Mesh motion, ALE data and the staggered FSI coupler.
postprocess
    Derived fields, probes, diagnostics log, Paraview export.
visualization
    2-D plotting utilities.
"""

from pyfsi import (
    geometry,
    materials,
    boundaries,
    discretization,
    solvers,
    time,
    coupling,
    postprocess,
    visualization,
)

__version__ = "0.1.0"

__all__ = [
    "geometry",
    "materials",
    "boundaries",
    "discretization",
    "solvers",
    "time",
    "coupling",
    "postprocess",
    "visualization",
]
