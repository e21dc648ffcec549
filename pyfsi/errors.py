"""Exception hierarchy.

Classes
-------
PyFSIError
    Base class for all package errors.
ConfigurationError
    Invalid setup, wrong vector sizes, missing state.
MissingBoundaryData
    A declared Dirichlet boundary has no values.
ConvergenceFailure
    A nonlinear sub-solve did not converge where convergence is required.
MeshBreakdownError
    The moved mesh has folded (non-positive Jacobian).
LinearSolveFailed
    The linear solver could not factor or solve the system.
"""

from __future__ import annotations


class PyFSIError(Exception):
    """Base class for pyfsi errors."""


class ConfigurationError(PyFSIError, ValueError):
    """Raised for inconsistent setup or wrongly sized input."""


class MissingBoundaryData(ConfigurationError, KeyError):
    """Raised when fixed-DOF data lacks an entry for a declared boundary."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep the plain text.
        return str(self.args[0]) if self.args else ""


class ConvergenceFailure(PyFSIError, RuntimeError):
    """Raised when a required nonlinear solve did not converge.

    Attributes:
        report: The :class:`~pyfsi.solvers.newton.ConvergenceReport` of
            the failed solve, if available.
    """

    def __init__(self, message: str, report: object | None = None) -> None:
        super().__init__(message)
        self.report = report


class MeshBreakdownError(PyFSIError, RuntimeError):
    """Raised when mesh motion produces an invalid (folded) mesh.

    Attributes:
        min_jacobian: Smallest cell Jacobian ratio found.
    """

    def __init__(self, message: str, min_jacobian: float | None = None) -> None:
        super().__init__(message)
        self.min_jacobian = min_jacobian


class LinearSolveFailed(PyFSIError, RuntimeError):
    """Raised when a sparse linear solve fails."""
