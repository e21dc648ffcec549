"""Sparse direct linear solves.

Classes
-------
LinearSolver
    Thin wrapper around SciPy's direct solvers with uniform failure
    reporting.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import MatrixRankWarning, splu, spsolve

from pyfsi.errors import ConfigurationError, LinearSolveFailed

logger = logging.getLogger(__name__)

METHODS = ("lu", "spsolve", "dense")


class LinearSolver:
    """Direct solver for ``A x = b``.

    Args:
        method: ``"lu"`` (SuperLU factorisation), ``"spsolve"`` or
            ``"dense"`` (LAPACK, for small systems).

    Raises:
        ConfigurationError: For an unknown method.
    """

    def __init__(self, method: str = "lu") -> None:
        if method not in METHODS:
            raise ConfigurationError(
                f"Unknown linear solver {method!r}; expected one of {METHODS}."
            )
        self.method = method

    def solve(self, matrix: sparse.spmatrix, rhs: np.ndarray) -> np.ndarray:
        """Solve the system.

        Raises:
            LinearSolveFailed: If the matrix is singular or the result is
                not finite.
        """
        rhs = np.asarray(rhs, dtype=float)
        if matrix.shape[0] != matrix.shape[1] or matrix.shape[0] != rhs.shape[0]:
            raise ConfigurationError(
                f"Incompatible system: matrix {matrix.shape}, rhs {rhs.shape}."
            )
        if rhs.shape[0] == 0:
            return np.zeros(0)

        try:
            if self.method == "lu":
                x = splu(sparse.csc_matrix(matrix)).solve(rhs)
            elif self.method == "spsolve":
                with warnings.catch_warnings():
                    warnings.simplefilter("error", MatrixRankWarning)
                    x = spsolve(sparse.csr_matrix(matrix), rhs)
            else:
                dense = matrix.toarray() if sparse.issparse(matrix) else np.asarray(matrix)
                x = np.linalg.solve(dense, rhs)
        except (RuntimeError, MatrixRankWarning, np.linalg.LinAlgError) as exc:
            raise LinearSolveFailed(f"{self.method} solve failed: {exc}") from exc

        x = np.asarray(x, dtype=float)
        if not np.all(np.isfinite(x)):
            raise LinearSolveFailed(f"{self.method} solve produced non-finite values.")
        logger.debug("Solved %d x %d system (%s)", rhs.shape[0], rhs.shape[0], self.method)
        return x

    def __repr__(self) -> str:
        return f"LinearSolver(method={self.method!r})"
