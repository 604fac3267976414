"""
MashCad Sketcher - Degrees of Freedom
Structural DOF count: free coordinates minus constraint equations.

No geometry is evaluated here, so the count is O(points + constraints)
and cheap enough to run before every solve.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict

from .constraints import equation_count


class DOFStatus(Enum):
    """Structural classification of a sketch"""
    UNDERCONSTRAINED = auto()   # dof > 0
    WELLCONSTRAINED = auto()    # dof == 0
    OVERCONSTRAINED = auto()    # dof < 0


@dataclass(frozen=True)
class DOFInfo:
    """Result of the DOF analysis"""
    total_variables: int
    num_constraints: int
    dof: int
    status: DOFStatus

    @property
    def is_overconstrained(self) -> bool:
        return self.status == DOFStatus.OVERCONSTRAINED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_variables': self.total_variables,
            'num_constraints': self.num_constraints,
            'dof': self.dof,
            'status': self.status.name,
        }


def classify_dof(dof: int) -> DOFStatus:
    if dof > 0:
        return DOFStatus.UNDERCONSTRAINED
    if dof == 0:
        return DOFStatus.WELLCONSTRAINED
    return DOFStatus.OVERCONSTRAINED


def compute_dof(sketch) -> DOFInfo:
    """
    Computes the degrees of freedom of a sketch.

    DOF = 2 * (non-fixed points) - sum(equation counts of enabled constraints)

    Disabled constraints are ignored. Constraints with dangling references
    still count, the count depends on the type only.
    """
    total_variables = 2 * sum(1 for p in sketch.points.values() if not p.fixed)
    num_constraints = sum(equation_count(c) for c in sketch.constraints if c.enabled)
    dof = total_variables - num_constraints
    return DOFInfo(
        total_variables=total_variables,
        num_constraints=num_constraints,
        dof=dof,
        status=classify_dof(dof),
    )
