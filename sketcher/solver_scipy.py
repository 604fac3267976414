"""
MashCad Sketcher - SciPy Reference Backend

Cross-check backend built on scipy.optimize.least_squares (trust region
reflective). It shares the residual evaluator, the variable layout and the
finite-difference Jacobian with the Levenberg-Marquardt driver, so both
backends minimize exactly the same function.
"""

import time
from typing import Optional

import numpy as np
from loguru import logger
from scipy.linalg import LinAlgError
from scipy.optimize import least_squares

from .dof import DOFStatus, compute_dof
from .jacobian import VariableLayout, build_jacobian
from .residuals import evaluate
from .solver import SolverConfig, SolverResult, SolverStatus, unsupported_constraint_types


class SciPyTRFBackend:
    """least_squares(method='trf') on the sketch residuals"""

    name = "scipy_trf"

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()

    def solve(self, sketch) -> SolverResult:
        start_time = time.perf_counter()
        cfg = self.config
        dof_info = compute_dof(sketch)
        unsupported = unsupported_constraint_types(sketch)

        def finish(status, iterations, residual, message):
            return SolverResult(
                status=status,
                iterations=iterations,
                final_residual=float(residual),
                message=message,
                dof=dof_info,
                solve_time_ms=(time.perf_counter() - start_time) * 1000,
                unsupported=list(unsupported),
                backend_used=self.name,
            )

        r0 = evaluate(sketch)
        norm0 = float(np.linalg.norm(r0)) if r0.size else 0.0

        if dof_info.status == DOFStatus.OVERCONSTRAINED:
            return finish(SolverStatus.OVERCONSTRAINED, 0, norm0,
                          f"Overconstrained: {dof_info.num_constraints} equations > "
                          f"{dof_info.total_variables} variables (DOF {dof_info.dof})")
        if cfg.require_well_constrained and dof_info.status == DOFStatus.UNDERCONSTRAINED:
            return finish(SolverStatus.UNDERCONSTRAINED, 0, norm0,
                          f"Underconstrained: {dof_info.dof} degrees of freedom left")
        if r0.size == 0 or norm0 < cfg.tolerance:
            return finish(SolverStatus.SUCCESS, 0, norm0, f"Already satisfied (residual {norm0:.3e})")

        layout = VariableLayout.from_sketch(sketch)
        if layout.size == 0:
            return finish(SolverStatus.NUMERICAL_ERROR, 0, norm0,
                          f"No free variables, residual {norm0:.3e} cannot be reduced")

        x0 = layout.pack(sketch)
        m = r0.size

        def residual_func(x):
            layout.apply(sketch, x)
            return evaluate(sketch)

        def jacobian_func(x):
            layout.apply(sketch, x)
            return build_jacobian(sketch, cfg.epsilon, layout, m)

        try:
            result = least_squares(
                residual_func,
                x0,
                jac=jacobian_func,
                method='trf',
                ftol=1e-15,
                xtol=1e-15,
                gtol=1e-15,
                max_nfev=max(1, cfg.max_iterations),
            )
        except (ValueError, LinAlgError) as e:
            layout.apply(sketch, x0)
            logger.warning(f"[Solver] SciPy backend failed: {e}")
            return finish(SolverStatus.NUMERICAL_ERROR, 0, norm0, f"SciPy solver error: {e}")

        layout.apply(sketch, result.x)
        final = evaluate(sketch)
        norm = float(np.linalg.norm(final)) if final.size else 0.0
        iterations = int(result.nfev)

        if norm < cfg.tolerance:
            status = SolverStatus.SUCCESS
            message = f"Converged after {iterations} evaluations (residual {norm:.3e}, DOF {dof_info.dof})"
        elif result.status == 0:
            status = SolverStatus.MAX_ITERATIONS
            message = f"Not converged after {iterations} evaluations (residual {norm:.3e})"
        else:
            status = SolverStatus.NUMERICAL_ERROR
            message = f"Stalled at residual {norm:.3e}: {result.message}"

        if status != SolverStatus.SUCCESS:
            logger.warning(f"[Solver] {message}")
        return finish(status, iterations, norm, message)
