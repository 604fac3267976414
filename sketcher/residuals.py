"""
MashCad Sketcher - Residual Evaluator

One scalar residual per constraint equation, zero when satisfied.

Rules shared by all residual functions:
- Disabled constraints contribute nothing.
- Dangling references (unknown point/entity id, wrong entity kind) omit the
  constraint's residuals instead of raising; sketches are evaluated mid-edit.
- Degenerate geometry (squared length below the guard) yields 0.0 so the
  residual vector keeps its length under finite-difference perturbation.
- TANGENT is counted in the DOF balance but has no residual here.
"""

import math
from typing import Callable, Dict, List, Optional

import numpy as np
from loguru import logger

from config.tolerances import Tolerances

from .constraints import (
    Constraint, ConstraintType, ConstraintData,
    CoincidentData, DistanceData, DistanceXData, DistanceYData, AngleData,
    PerpendicularData, ParallelData, HorizontalData, VerticalData, TangentData,
    EqualData, PointOnLineData, PointOnCircleData,
)
from .geometry import Line2D, CircleLike, cross, dot, wrap_angle, signed_angle

ResidualFunction = Callable[[object, ConstraintData], Optional[List[float]]]

_DEGENERATE_SQ = Tolerances.SKETCH_DEGENERATE_LENGTH_SQ

# Constraint types whose residual is an angle wrapped into (-pi, pi]
ANGULAR_TYPES = frozenset({ConstraintType.ANGLE})


# === Lookup helpers ===

def _points(sketch, *point_ids):
    """Returns the points for the ids, or None if any is missing."""
    points = []
    for pid in point_ids:
        p = sketch.points.get(pid)
        if p is None:
            return None
        points.append(p)
    return points


def _line_vector(sketch, line_id):
    """(start point, dx, dy) of a line, or None for dangling/non-line ids."""
    line = sketch.entities.get(line_id)
    if not isinstance(line, Line2D):
        return None
    pts = _points(sketch, line.start, line.end)
    if pts is None:
        return None
    start, end = pts
    return start, end.x - start.x, end.y - start.y


def _line_length(sketch, line: Line2D) -> Optional[float]:
    pts = _points(sketch, line.start, line.end)
    if pts is None:
        return None
    return pts[0].distance_to(pts[1])


# === Residual functions ===

def _residual_coincident(sketch, data: CoincidentData):
    pts = _points(sketch, data.point1, data.point2)
    if pts is None:
        return None
    p1, p2 = pts
    return [p1.x - p2.x, p1.y - p2.y]


def _residual_distance(sketch, data: DistanceData):
    pts = _points(sketch, data.point1, data.point2)
    if pts is None:
        return None
    p1, p2 = pts
    return [math.hypot(p1.x - p2.x, p1.y - p2.y) - data.value]


def _residual_distance_x(sketch, data: DistanceXData):
    pts = _points(sketch, data.point1, data.point2)
    if pts is None:
        return None
    p1, p2 = pts
    return [(p2.x - p1.x) - data.value]


def _residual_distance_y(sketch, data: DistanceYData):
    pts = _points(sketch, data.point1, data.point2)
    if pts is None:
        return None
    p1, p2 = pts
    return [(p2.y - p1.y) - data.value]


def _residual_angle(sketch, data: AngleData):
    v1 = _line_vector(sketch, data.line1)
    v2 = _line_vector(sketch, data.line2)
    if v1 is None or v2 is None:
        return None
    _, dx1, dy1 = v1
    _, dx2, dy2 = v2
    if dx1 * dx1 + dy1 * dy1 < _DEGENERATE_SQ or dx2 * dx2 + dy2 * dy2 < _DEGENERATE_SQ:
        return [0.0]
    current = signed_angle(dx1, dy1, dx2, dy2)
    return [wrap_angle(current - math.radians(data.value))]


def _residual_perpendicular(sketch, data: PerpendicularData):
    v1 = _line_vector(sketch, data.line1)
    v2 = _line_vector(sketch, data.line2)
    if v1 is None or v2 is None:
        return None
    return [dot(v1[1], v1[2], v2[1], v2[2])]


def _residual_parallel(sketch, data: ParallelData):
    v1 = _line_vector(sketch, data.line1)
    v2 = _line_vector(sketch, data.line2)
    if v1 is None or v2 is None:
        return None
    return [cross(v1[1], v1[2], v2[1], v2[2])]


def _residual_horizontal(sketch, data: HorizontalData):
    v = _line_vector(sketch, data.line)
    if v is None:
        return None
    return [v[2]]


def _residual_vertical(sketch, data: VerticalData):
    v = _line_vector(sketch, data.line)
    if v is None:
        return None
    return [v[1]]


def _residual_tangent(sketch, data: TangentData):
    # Counted in the DOF balance, no residual in the LM solver
    return None


def _residual_equal(sketch, data: EqualData):
    e1 = sketch.entities.get(data.entity1)
    e2 = sketch.entities.get(data.entity2)
    if isinstance(e1, Line2D) and isinstance(e2, Line2D):
        len1 = _line_length(sketch, e1)
        len2 = _line_length(sketch, e2)
        if len1 is None or len2 is None:
            return None
        return [len1 - len2]
    if isinstance(e1, CircleLike) and isinstance(e2, CircleLike):
        return [e1.radius - e2.radius]
    # Dangling or mixed line/circle pair
    return None


def _residual_point_on_line(sketch, data: PointOnLineData):
    pts = _points(sketch, data.point)
    v = _line_vector(sketch, data.line)
    if pts is None or v is None:
        return None
    p = pts[0]
    start, dx, dy = v
    len_sq = dx * dx + dy * dy
    if len_sq < _DEGENERATE_SQ:
        return [0.0]
    return [cross(dx, dy, p.x - start.x, p.y - start.y) / math.sqrt(len_sq)]


def _residual_point_on_circle(sketch, data: PointOnCircleData):
    circle = sketch.entities.get(data.circle)
    if not isinstance(circle, CircleLike):
        return None
    pts = _points(sketch, data.point, circle.center)
    if pts is None:
        return None
    p, center = pts
    return [p.distance_to(center) - circle.radius]


def _no_residual(sketch, data):
    return None


_RESIDUAL_FUNCTIONS: Dict[ConstraintType, ResidualFunction] = {
    ConstraintType.COINCIDENT: _residual_coincident,
    ConstraintType.DISTANCE: _residual_distance,
    ConstraintType.DISTANCE_X: _residual_distance_x,
    ConstraintType.DISTANCE_Y: _residual_distance_y,
    ConstraintType.ANGLE: _residual_angle,
    ConstraintType.PERPENDICULAR: _residual_perpendicular,
    ConstraintType.PARALLEL: _residual_parallel,
    ConstraintType.HORIZONTAL: _residual_horizontal,
    ConstraintType.VERTICAL: _residual_vertical,
    ConstraintType.TANGENT: _residual_tangent,
    ConstraintType.EQUAL: _residual_equal,
    ConstraintType.POINT_ON_LINE: _residual_point_on_line,
    ConstraintType.POINT_ON_CIRCLE: _residual_point_on_circle,
    # Flag-only and parameter pins
    ConstraintType.FIXED_POINT: _no_residual,
    ConstraintType.FIXED_DISTANCE: _no_residual,
    ConstraintType.FIXED_ANGLE: _no_residual,
}

_missing = set(ConstraintType) - set(_RESIDUAL_FUNCTIONS)
if _missing:
    raise TypeError(f"No residual function for: {sorted(t.name for t in _missing)}")
del _missing


def constraint_residuals(sketch, constraint: Constraint) -> Optional[List[float]]:
    """
    Residuals of a single constraint, ignoring its enabled flag.

    Returns:
        List of residuals, or None if the constraint contributes nothing
        (dangling reference, unsupported or equation-free type).
    """
    return _RESIDUAL_FUNCTIONS[constraint.type](sketch, constraint.data)


def evaluate(sketch) -> np.ndarray:
    """
    Evaluates all enabled constraints in insertion order.

    Returns:
        1D float64 array, one entry per equation.
    """
    residuals: List[float] = []
    for c in sketch.constraints:
        if not c.enabled:
            continue
        values = constraint_residuals(sketch, c)
        if values is None:
            continue
        residuals.extend(values)
    return np.asarray(residuals, dtype=np.float64)


def angular_rows(sketch) -> np.ndarray:
    """
    Boolean mask over the rows of evaluate() that hold wrapped angles.

    Differences of these rows must be wrapped again, otherwise a step
    across the +-pi seam reads as a jump of 2*pi.
    """
    mask: List[bool] = []
    for c in sketch.constraints:
        if not c.enabled:
            continue
        values = constraint_residuals(sketch, c)
        if values is None:
            continue
        mask.extend([c.type in ANGULAR_TYPES] * len(values))
    return np.asarray(mask, dtype=bool)


def residual_norm(sketch) -> float:
    """L2 norm of the residual vector (0.0 when there are no residuals)."""
    r = evaluate(sketch)
    if r.size == 0:
        return 0.0
    return float(np.linalg.norm(r))


def omitted_constraints(sketch) -> List[Constraint]:
    """Enabled constraints with equations that currently produce no residual."""
    omitted = []
    for c in sketch.constraints:
        if not c.enabled or c.equation_count == 0:
            continue
        if constraint_residuals(sketch, c) is None:
            omitted.append(c)
    if omitted:
        logger.debug(f"[Residuals] {len(omitted)} constraint(s) without residual: {omitted}")
    return omitted
