"""
MashCad Sketcher - Constraint Solver
Levenberg-Marquardt driver with finite-difference Jacobian and
Cholesky-solved damped normal equations.

Per solve:
1. DOF check once up front; overconstrained sketches are rejected
   before any numeric work.
2. Evaluate residuals; converged when empty or below tolerance.
3. Build the Jacobian at the current positions.
4. Damping retries: solve, trial-apply the step, keep it if the residual
   norm improved (lambda shrinks), otherwise restore the snapshot
   (lambda grows). Factorization failures also grow lambda.
5. No accepted step after all retries -> NUMERICAL_ERROR.
6. Iteration budget exhausted -> MAX_ITERATIONS, geometry stays at the
   best position found.

Underconstrained sketches solve partially: the step lands on some solution
of the continuum, which is what live dragging needs.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional
import time

import numpy as np
from loguru import logger

from config.feature_flags import is_enabled
from config.tolerances import Tolerances

from .constraints import UNSUPPORTED_RESIDUAL_TYPES
from .dof import DOFInfo, DOFStatus, compute_dof
from .jacobian import VariableLayout, build_jacobian
from .linear_solver import solve_damped_step
from .residuals import evaluate


class SolverStatus(Enum):
    """Outcome reported to the caller"""
    SUCCESS = auto()
    MAX_ITERATIONS = auto()
    OVERCONSTRAINED = auto()
    UNDERCONSTRAINED = auto()   # Only with SolverConfig.require_well_constrained
    NUMERICAL_ERROR = auto()


class SolverState(Enum):
    """Driver state machine"""
    EVALUATING = auto()
    CONVERGED = auto()
    OVERCONSTRAINED = auto()
    UNDERCONSTRAINED = auto()
    NUMERICAL_ERROR = auto()
    MAX_ITERATIONS_REACHED = auto()


_STATE_TO_STATUS = {
    SolverState.CONVERGED: SolverStatus.SUCCESS,
    SolverState.OVERCONSTRAINED: SolverStatus.OVERCONSTRAINED,
    SolverState.UNDERCONSTRAINED: SolverStatus.UNDERCONSTRAINED,
    SolverState.NUMERICAL_ERROR: SolverStatus.NUMERICAL_ERROR,
    SolverState.MAX_ITERATIONS_REACHED: SolverStatus.MAX_ITERATIONS,
}


@dataclass
class SolverConfig:
    """Configuration of the Levenberg-Marquardt driver"""
    max_iterations: int = Tolerances.SOLVER_MAX_ITERATIONS
    tolerance: float = Tolerances.SOLVER_TOLERANCE
    lambda_initial: float = Tolerances.SOLVER_LAMBDA_INITIAL
    lambda_factor: float = Tolerances.SOLVER_LAMBDA_FACTOR
    epsilon: float = Tolerances.SOLVER_FD_EPSILON
    max_damping_retries: int = Tolerances.SOLVER_MAX_DAMPING_RETRIES
    lambda_min: float = Tolerances.SOLVER_LAMBDA_MIN
    lambda_max: float = Tolerances.SOLVER_LAMBDA_MAX
    require_well_constrained: bool = False

    def __post_init__(self):
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must not be negative: {self.max_iterations}")
        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive: {self.tolerance}")
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be positive: {self.epsilon}")
        if self.lambda_factor <= 1.0:
            raise ValueError(f"lambda_factor must be > 1: {self.lambda_factor}")
        if self.lambda_initial <= 0:
            raise ValueError(f"lambda_initial must be positive: {self.lambda_initial}")
        if self.max_damping_retries < 1:
            raise ValueError(f"max_damping_retries must be >= 1: {self.max_damping_retries}")


@dataclass
class SolverResult:
    """Result of a solve call"""
    status: SolverStatus
    iterations: int
    final_residual: float
    message: str = ""
    dof: Optional[DOFInfo] = None
    solve_time_ms: float = 0.0
    unsupported: List[str] = field(default_factory=list)
    backend_used: str = ""
    requested_backend: str = ""
    selection_detail: str = ""

    @property
    def success(self) -> bool:
        return self.status == SolverStatus.SUCCESS


def unsupported_constraint_types(sketch) -> List[str]:
    """Names of enabled constraint types that are counted but have no residual."""
    return sorted({
        c.type.name for c in sketch.constraints
        if c.enabled and c.type in UNSUPPORTED_RESIDUAL_TYPES
    })


def _norm(residuals: np.ndarray) -> float:
    if residuals.size == 0:
        return 0.0
    return float(np.linalg.norm(residuals))


class ConstraintSolver:
    """
    Levenberg-Marquardt constraint solver.

    Moves the free points of a sketch in place. Single-threaded and
    non-reentrant: the sketch must not be mutated while solve() runs.

    Usage::

        solver = ConstraintSolver(SolverConfig(tolerance=1e-8))
        result = solver.solve(sketch)
        if result.success:
            ...
    """

    name = "lm"

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()

    def solve(self, sketch) -> SolverResult:
        start_time = time.perf_counter()
        cfg = self.config
        debug = is_enabled("solver_debug")

        dof_info = compute_dof(sketch)
        unsupported = unsupported_constraint_types(sketch)
        if unsupported:
            logger.debug(f"[Solver] Constraint types without residual (counted in DOF only): {unsupported}")

        if dof_info.status == DOFStatus.OVERCONSTRAINED:
            message = (
                f"Overconstrained: {dof_info.num_constraints} equations > "
                f"{dof_info.total_variables} variables (DOF {dof_info.dof})"
            )
            logger.info(f"[Solver] {message}")
            return self._result(SolverState.OVERCONSTRAINED, 0, _norm(evaluate(sketch)),
                                message, dof_info, unsupported, start_time)

        if cfg.require_well_constrained and dof_info.status == DOFStatus.UNDERCONSTRAINED:
            message = f"Underconstrained: {dof_info.dof} degrees of freedom left"
            return self._result(SolverState.UNDERCONSTRAINED, 0, _norm(evaluate(sketch)),
                                message, dof_info, unsupported, start_time)

        layout = VariableLayout.from_sketch(sketch)
        revision = getattr(sketch, "revision", None)
        damping = cfg.lambda_initial
        iterations = 0

        residuals = evaluate(sketch)
        norm = _norm(residuals)
        state = SolverState.EVALUATING
        message = ""

        while state == SolverState.EVALUATING:
            if residuals.size == 0 or norm < cfg.tolerance:
                state = SolverState.CONVERGED
                break
            if iterations >= cfg.max_iterations:
                state = SolverState.MAX_ITERATIONS_REACHED
                break
            if layout.size == 0:
                state = SolverState.NUMERICAL_ERROR
                message = f"No free variables, residual {norm:.3e} cannot be reduced"
                break

            iterations += 1
            jacobian = build_jacobian(sketch, cfg.epsilon, layout, residuals.size)

            accepted = False
            for attempt in range(cfg.max_damping_retries):
                delta = solve_damped_step(jacobian, residuals, damping)
                if delta is None:
                    if debug:
                        logger.debug(f"[Solver] it={iterations} try={attempt} factorization failed, lambda={damping:.1e}")
                    damping = min(damping * cfg.lambda_factor, cfg.lambda_max)
                    continue

                snapshot = layout.pack(sketch)
                layout.apply(sketch, snapshot + delta)
                trial = evaluate(sketch)
                trial_norm = _norm(trial)

                if trial_norm < norm:
                    if debug:
                        logger.debug(f"[Solver] it={iterations} try={attempt} accepted: "
                                     f"{norm:.3e} -> {trial_norm:.3e}, lambda={damping:.1e}")
                    residuals, norm = trial, trial_norm
                    damping = max(damping / cfg.lambda_factor, cfg.lambda_min)
                    accepted = True
                    break

                if debug:
                    logger.debug(f"[Solver] it={iterations} try={attempt} rejected: "
                                 f"{norm:.3e} -> {trial_norm:.3e}, lambda={damping:.1e}")
                layout.apply(sketch, snapshot)
                damping = min(damping * cfg.lambda_factor, cfg.lambda_max)

            assert revision is None or sketch.revision == revision, "sketch mutated during solve"
            assert layout.matches(sketch), "free point set changed during solve"

            if not accepted:
                state = SolverState.NUMERICAL_ERROR
                message = (
                    f"No usable step after {cfg.max_damping_retries} damping retries "
                    f"(residual {norm:.3e}, lambda {damping:.1e})"
                )

        if state == SolverState.CONVERGED:
            message = f"Converged after {iterations} iterations (residual {norm:.3e}, DOF {dof_info.dof})"
        elif state == SolverState.MAX_ITERATIONS_REACHED:
            message = f"Not converged after {iterations} iterations (residual {norm:.3e})"

        if state == SolverState.CONVERGED:
            logger.debug(f"[Solver] {message}")
        else:
            logger.warning(f"[Solver] {message}")

        return self._result(state, iterations, norm, message, dof_info, unsupported, start_time)

    def _result(self, state, iterations, final_residual, message, dof_info, unsupported, start_time) -> SolverResult:
        return SolverResult(
            status=_STATE_TO_STATUS[state],
            iterations=iterations,
            final_residual=float(final_residual),
            message=message,
            dof=dof_info,
            solve_time_ms=(time.perf_counter() - start_time) * 1000,
            unsupported=list(unsupported),
            backend_used=self.name,
        )


def solve(sketch, config: Optional[SolverConfig] = None) -> SolverResult:
    """Solves the sketch with the Levenberg-Marquardt driver."""
    return ConstraintSolver(config).solve(sketch)
