"""
MashCad Sketcher - Damped Normal Equations

Solves (J^T J + lambda I) delta = -J^T r via Cholesky factorization.
A failed factorization is a normal event: the LM driver raises the damping
and retries, so failures are reported as None, never raised.
"""

from typing import Optional, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve


def build_normal_equations(
    jacobian: np.ndarray,
    residuals: np.ndarray,
    damping: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Assembles the damped normal equations.

    Returns:
        (A, b) with A = J^T J + damping * I and b = -J^T r
    """
    assert jacobian.shape[0] == residuals.shape[0], (
        f"Jacobian has {jacobian.shape[0]} rows, residual vector {residuals.shape[0]} entries"
    )
    a = jacobian.T @ jacobian
    a[np.diag_indices_from(a)] += damping
    b = -(jacobian.T @ residuals)
    return a, b


def solve_cholesky(a: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
    """
    Solves A x = b for symmetric positive definite A.

    Factors A = L L^T, then forward and back substitution.

    Returns:
        Solution vector, or None if A is not positive definite
        (a non-positive pivot) or the result is not finite.
    """
    n = a.shape[0]
    assert a.shape == (n, n), f"matrix must be square, got {a.shape}"
    assert b.shape == (n,), f"right-hand side has shape {b.shape}, expected ({n},)"
    if n == 0:
        return np.zeros(0, dtype=np.float64)

    try:
        factor = cho_factor(a, lower=True, check_finite=True)
    except (LinAlgError, ValueError):
        return None

    x = cho_solve(factor, b, check_finite=False)
    if not np.all(np.isfinite(x)):
        return None
    return x


def solve_damped_step(
    jacobian: np.ndarray,
    residuals: np.ndarray,
    damping: float,
) -> Optional[np.ndarray]:
    """Levenberg-Marquardt step for the given damping, or None on factorization failure."""
    a, b = build_normal_equations(jacobian, residuals, damping)
    return solve_cholesky(a, b)
