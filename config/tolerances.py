"""
MashCad - Centralized Tolerance Configuration
=============================================

All sketch solver tolerances in one place.

Tolerance philosophy:
- Solver convergence: 1e-6 on the residual L2 norm
- Finite differences: 1e-8 step (too large biases, too small cancels)
- Degenerate geometry: 1e-10 on squared lengths

Usage:
    from config.tolerances import Tolerances

    # Directly as class variables
    tol = Tolerances.SOLVER_TOLERANCE

    # Or via convenience functions
    from config.tolerances import solver_tolerance
    tol = solver_tolerance()
"""


class Tolerances:
    """
    Central tolerance constants for the MashCad sketcher.

    Categories:
    - SOLVER_*: Levenberg-Marquardt driver
    - SKETCH_*: 2D geometry guards
    - COMPARE_*: equality checks in diagnostics
    """

    # =========================================================================
    # Levenberg-Marquardt Solver
    # =========================================================================

    # Convergence threshold on the L2 norm of the residual vector
    SOLVER_TOLERANCE = 1e-6

    # Outer iteration budget
    SOLVER_MAX_ITERATIONS = 100

    # Initial damping and multiplicative up/down factor
    SOLVER_LAMBDA_INITIAL = 0.01
    SOLVER_LAMBDA_FACTOR = 10.0

    # Damping is clamped to this range
    SOLVER_LAMBDA_MIN = 1e-12
    SOLVER_LAMBDA_MAX = 1e12

    # Damping retries per outer iteration before NumericalError
    SOLVER_MAX_DAMPING_RETRIES = 10

    # Central finite difference step
    SOLVER_FD_EPSILON = 1e-8

    # =========================================================================
    # Sketch / 2D geometry
    # =========================================================================

    # Squared length below which a line direction is treated as degenerate
    SKETCH_DEGENERATE_LENGTH_SQ = 1e-10

    # =========================================================================
    # Comparison tolerances
    # =========================================================================

    # Residual magnitude below which a single constraint counts as satisfied
    COMPARE_RESIDUAL = 1e-6


# =============================================================================
# Convenience functions
# =============================================================================

def solver_tolerance() -> float:
    """Returns the default convergence tolerance."""
    return Tolerances.SOLVER_TOLERANCE


def finite_difference_epsilon() -> float:
    """Returns the default finite difference step."""
    return Tolerances.SOLVER_FD_EPSILON


def degenerate_length_sq() -> float:
    """Returns the squared-length guard for degenerate directions."""
    return Tolerances.SKETCH_DEGENERATE_LENGTH_SQ


# =============================================================================
# Tolerance validation (debugging)
# =============================================================================

def validate_tolerances():
    """
    Validates that all tolerances have sensible values.
    Useful for tests and debugging.
    """
    issues = []

    if not (1e-14 <= Tolerances.SOLVER_TOLERANCE <= 1e-2):
        issues.append(f"SOLVER_TOLERANCE out of range: {Tolerances.SOLVER_TOLERANCE}")

    if not (1e-12 <= Tolerances.SOLVER_FD_EPSILON <= 1e-4):
        issues.append(f"SOLVER_FD_EPSILON out of range: {Tolerances.SOLVER_FD_EPSILON}")

    if Tolerances.SOLVER_LAMBDA_FACTOR <= 1.0:
        issues.append(f"SOLVER_LAMBDA_FACTOR must be > 1: {Tolerances.SOLVER_LAMBDA_FACTOR}")

    if not (Tolerances.SOLVER_LAMBDA_MIN <= Tolerances.SOLVER_LAMBDA_INITIAL <= Tolerances.SOLVER_LAMBDA_MAX):
        issues.append(
            f"SOLVER_LAMBDA_INITIAL ({Tolerances.SOLVER_LAMBDA_INITIAL}) outside "
            f"[{Tolerances.SOLVER_LAMBDA_MIN}, {Tolerances.SOLVER_LAMBDA_MAX}]"
        )

    if Tolerances.SOLVER_MAX_ITERATIONS < 1:
        issues.append(f"SOLVER_MAX_ITERATIONS must be positive: {Tolerances.SOLVER_MAX_ITERATIONS}")

    return issues
