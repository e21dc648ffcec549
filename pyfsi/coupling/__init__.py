"""Partitioned coupling of structure, mesh motion and fluid."""

from pyfsi.coupling.base import AleCoupling, CoupledProblem, CouplingLink
from pyfsi.coupling.mesh_motion import MeshMotion
from pyfsi.coupling.staggered import Monitor, SimulationResult, StaggeredFSI, StepPolicy

__all__ = [
    "AleCoupling",
    "CoupledProblem",
    "CouplingLink",
    "MeshMotion",
    "Monitor",
    "SimulationResult",
    "StaggeredFSI",
    "StepPolicy",
]
