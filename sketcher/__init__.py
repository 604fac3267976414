"""
MashCad Sketcher Module
"""

from .geometry import (
    Point2D, Line2D, Circle2D, Arc2D, Entity,
    GeometryType,
)

from .constraints import (
    Constraint, ConstraintType, ConstraintData,
    CoincidentData, DistanceData, DistanceXData, DistanceYData, AngleData,
    PerpendicularData, ParallelData, HorizontalData, VerticalData, TangentData,
    EqualData, PointOnLineData, PointOnCircleData, FixedPointData,
    FixedDistanceData, FixedAngleData,
    EQUATION_COUNTS, equation_count,
)

from .dof import DOFInfo, DOFStatus, compute_dof
from .residuals import evaluate, constraint_residuals, residual_norm, angular_rows
from .jacobian import VariableLayout, build_jacobian
from .linear_solver import build_normal_equations, solve_cholesky, solve_damped_step

from .solver import ConstraintSolver, SolverConfig, SolverResult, SolverStatus, solve
from .solver_interface import UnifiedConstraintSolver, SolverBackendRegistry, SolverBackendType

from .sketch import Sketch

from .constraint_diagnostics import (
    ConstraintState, ConstraintReport, SketchDiagnosis,
    diagnose_sketch, find_dangling_constraints, worst_constraints,
)
