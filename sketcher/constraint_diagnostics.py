"""
MashCad Sketcher - Constraint Diagnostics
==========================================

Read-only per-constraint analysis of a sketch:
- residual error of every constraint against the current geometry
- dangling references (constraints on deleted points/entities)
- types counted in the DOF balance that the solver cannot enforce
- DOF summary and a user-facing report

Usage:
    from sketcher.constraint_diagnostics import diagnose_sketch

    diagnosis = diagnose_sketch(sketch)
    if diagnosis.has_issues:
        print(diagnosis.to_user_report())
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from enum import Enum, auto
import math

from loguru import logger

from config.tolerances import Tolerances

from .constraints import Constraint, ConstraintType, UNSUPPORTED_RESIDUAL_TYPES, PIN_TYPES, FLAG_ONLY_TYPES
from .dof import DOFInfo, DOFStatus, compute_dof
from .residuals import constraint_residuals


class ConstraintState(Enum):
    """State of a single constraint."""
    SATISFIED = auto()      # Residual below tolerance
    VIOLATED = auto()       # Residual above tolerance
    DANGLING = auto()       # References a missing point/entity
    UNSUPPORTED = auto()    # Counted in DOF, not enforced by the solver
    DISABLED = auto()
    PIN = auto()            # No equations (parameter pin or fixed flag)


@dataclass
class ConstraintReport:
    """
    Diagnosis of one constraint.

    Attributes:
        constraint_id: Id of the constraint
        type: Constraint type
        state: Evaluated state
        residuals: Residual values (empty if nothing was evaluated)
        error: L2 norm of the residuals, inf for dangling constraints
    """
    constraint_id: int
    type: ConstraintType
    state: ConstraintState
    residuals: List[float] = field(default_factory=list)
    error: float = 0.0

    @property
    def is_problem(self) -> bool:
        return self.state in (ConstraintState.VIOLATED, ConstraintState.DANGLING)

    def describe(self) -> str:
        if self.state == ConstraintState.SATISFIED:
            return "✓ Satisfied"
        if self.state == ConstraintState.VIOLATED:
            if self.error < 0.01:
                return f"⚠ Slight deviation ({self.error:.4f})"
            if self.error < 0.1:
                return f"⚠ Medium deviation ({self.error:.4f})"
            return f"✗ Large deviation ({self.error:.4f})"
        if self.state == ConstraintState.DANGLING:
            return "✗ References deleted geometry"
        if self.state == ConstraintState.UNSUPPORTED:
            return "? Not enforced by the solver"
        if self.state == ConstraintState.DISABLED:
            return "- Disabled"
        return "- Reference only"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'constraint_id': self.constraint_id,
            'constraint_type': self.type.name,
            'state': self.state.name,
            'residuals': list(self.residuals),
            'error': self.error,
        }


@dataclass
class SketchDiagnosis:
    """
    Result of diagnose_sketch().

    Attributes:
        dof: DOF balance of the sketch
        reports: One report per constraint, in constraint order
        dangling: Ids of constraints with missing references
        unsupported: Ids of enabled constraints the solver does not enforce
        violated: Ids of constraints above tolerance
        tolerance: Tolerance used to classify residuals
    """
    dof: DOFInfo
    reports: List[ConstraintReport] = field(default_factory=list)
    dangling: List[int] = field(default_factory=list)
    unsupported: List[int] = field(default_factory=list)
    violated: List[int] = field(default_factory=list)
    tolerance: float = Tolerances.COMPARE_RESIDUAL

    @property
    def is_satisfied(self) -> bool:
        return not self.violated and not self.dangling

    @property
    def has_issues(self) -> bool:
        return bool(self.violated or self.dangling or self.unsupported) or \
            self.dof.status == DOFStatus.OVERCONSTRAINED

    def report_for(self, constraint_id: int) -> Optional[ConstraintReport]:
        for r in self.reports:
            if r.constraint_id == constraint_id:
                return r
        return None

    def to_user_report(self) -> str:
        """Readable multi-line report."""
        status_names = {
            DOFStatus.WELLCONSTRAINED: "✓ Fully constrained",
            DOFStatus.UNDERCONSTRAINED: "⚠ Underconstrained",
            DOFStatus.OVERCONSTRAINED: "✗ Overconstrained",
        }
        lines = ["Constraint diagnosis", "=" * 40, ""]
        lines.append(f"Status: {status_names[self.dof.status]}")
        lines.append(f"Degrees of freedom: {self.dof.dof}")
        lines.append(f"Variables: {self.dof.total_variables}, Equations: {self.dof.num_constraints}")
        lines.append("")

        if self.violated:
            lines.append(f"Violated constraints: {len(self.violated)}")
            for r in sorted((self.report_for(cid) for cid in self.violated),
                            key=lambda r: r.error, reverse=True)[:5]:
                lines.append(f"  - C{r.constraint_id} {r.type.name}: {r.describe()}")
            lines.append("")

        if self.dangling:
            lines.append(f"Dangling constraints: {len(self.dangling)}")
            for cid in self.dangling[:5]:
                r = self.report_for(cid)
                lines.append(f"  - C{cid} {r.type.name}")
            lines.append("")

        if self.unsupported:
            lines.append(f"Not enforced by the solver: {len(self.unsupported)}")
            for cid in self.unsupported[:5]:
                r = self.report_for(cid)
                lines.append(f"  - C{cid} {r.type.name}")
            lines.append("")

        if not self.has_issues:
            lines.append("✓ All constraints satisfied")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dof': self.dof.to_dict(),
            'reports': [r.to_dict() for r in self.reports],
            'dangling': list(self.dangling),
            'unsupported': list(self.unsupported),
            'violated': list(self.violated),
            'tolerance': self.tolerance,
        }


# =============================================================================
# Analysis
# =============================================================================

def _is_dangling(sketch, constraint: Constraint) -> bool:
    if any(pid not in sketch.points for pid in constraint.point_ids()):
        return True
    return any(eid not in sketch.entities for eid in constraint.entity_ids())


def diagnose_constraint(sketch, constraint: Constraint,
                        tolerance: float = Tolerances.COMPARE_RESIDUAL) -> ConstraintReport:
    """Classifies one constraint against the current geometry."""
    ctype = constraint.type

    def report(state, residuals=None, error=0.0):
        return ConstraintReport(constraint.id, ctype, state, list(residuals or []), error)

    if not constraint.enabled:
        return report(ConstraintState.DISABLED)
    if _is_dangling(sketch, constraint):
        return report(ConstraintState.DANGLING, error=math.inf)
    if ctype in UNSUPPORTED_RESIDUAL_TYPES:
        return report(ConstraintState.UNSUPPORTED)
    if ctype in PIN_TYPES or ctype in FLAG_ONLY_TYPES:
        return report(ConstraintState.PIN)

    values = constraint_residuals(sketch, constraint)
    if values is None:
        # References exist but have the wrong kind (e.g. EQUAL on line + circle)
        return report(ConstraintState.DANGLING, error=math.inf)

    error = math.sqrt(sum(v * v for v in values))
    state = ConstraintState.SATISFIED if error < tolerance else ConstraintState.VIOLATED
    return report(state, values, error)


def find_dangling_constraints(sketch) -> List[Constraint]:
    """Constraints referencing points or entities missing from the sketch."""
    return [c for c in sketch.constraints if _is_dangling(sketch, c)]


def diagnose_sketch(sketch, tolerance: float = Tolerances.COMPARE_RESIDUAL) -> SketchDiagnosis:
    """
    Diagnoses every constraint of the sketch. Does not modify the sketch.

    Args:
        sketch: Sketch to analyze
        tolerance: Residual norm below which a constraint counts as satisfied

    Returns:
        SketchDiagnosis
    """
    diagnosis = SketchDiagnosis(dof=compute_dof(sketch), tolerance=tolerance)
    for c in sketch.constraints:
        r = diagnose_constraint(sketch, c, tolerance)
        diagnosis.reports.append(r)
        if r.state == ConstraintState.DANGLING:
            diagnosis.dangling.append(c.id)
        elif r.state == ConstraintState.UNSUPPORTED:
            diagnosis.unsupported.append(c.id)
        elif r.state == ConstraintState.VIOLATED:
            diagnosis.violated.append(c.id)

    if diagnosis.dangling or diagnosis.violated:
        logger.debug(
            f"[Diagnostics] {len(diagnosis.violated)} violated, "
            f"{len(diagnosis.dangling)} dangling, DOF {diagnosis.dof.dof}"
        )
    return diagnosis


def worst_constraints(sketch, n: int = 5,
                      tolerance: float = Tolerances.COMPARE_RESIDUAL) -> List[ConstraintReport]:
    """
    The n enabled constraints with the largest error, worst first.

    Dangling constraints sort first (error inf). Disabled constraints,
    pins and unsupported types are left out.
    """
    evaluated = [
        r for r in (diagnose_constraint(sketch, c, tolerance) for c in sketch.constraints)
        if r.state in (ConstraintState.SATISFIED, ConstraintState.VIOLATED, ConstraintState.DANGLING)
    ]
    evaluated.sort(key=lambda r: r.error, reverse=True)
    return evaluated[:max(0, n)]


def get_constraint_report(sketch) -> str:
    """Shortcut for diagnose_sketch(sketch).to_user_report()."""
    return diagnose_sketch(sketch).to_user_report()
