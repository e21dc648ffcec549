"""Solvers: sparse direct linear solves and the Newton iteration."""

from pyfsi.solvers.linear import LinearSolver
from pyfsi.solvers.newton import (
    IterationType,
    NewtonOptions,
    ConvergenceReport,
    NewtonSolver,
)

__all__ = [
    "LinearSolver",
    "IterationType",
    "NewtonOptions",
    "ConvergenceReport",
    "NewtonSolver",
]
