"""
MashCad Sketcher - Sketch Object
Holds geometry and constraints together.

Points, entities and constraints are addressed by integer ids taken from one
monotonically increasing counter; ids are never reused after deletion and
lookups return None for unknown ids.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import math

from loguru import logger

from config.feature_flags import is_enabled

from .geometry import Point2D, Line2D, Circle2D, Arc2D, Entity, CircleLike
from .constraints import (
    Constraint, ConstraintType, ConstraintData,
    CoincidentData, DistanceData, DistanceXData, DistanceYData, AngleData,
    PerpendicularData, ParallelData, HorizontalData, VerticalData, TangentData,
    EqualData, PointOnLineData, PointOnCircleData, FixedPointData,
    FixedDistanceData, FixedAngleData,
)
from .dof import DOFInfo, compute_dof


@dataclass
class Sketch:
    """
    2D sketch with geometry and constraints.

    The sketch exclusively owns its state. A solve borrows write access to the
    coordinates of the free points for the duration of the call; every
    structural mutation bumps ``revision`` so the solver can detect edits made
    while it runs.
    """

    name: str = "Sketch"

    # Geometry (insertion ordered)
    points: Dict[int, Point2D] = field(default_factory=dict)
    entities: Dict[int, Entity] = field(default_factory=dict)

    # Constraints (insertion order = residual order)
    constraints: List[Constraint] = field(default_factory=list)

    revision: int = 0
    _next_id: int = field(default=1, repr=False)

    # === Internal helpers ===

    def _allocate_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def _touch(self):
        self.revision += 1

    def _trace(self, message: str):
        if is_enabled("sketch_debug"):
            logger.debug(f"[Sketch] {message}")

    def _require_point(self, point_id: int) -> Point2D:
        point = self.points.get(point_id)
        if point is None:
            raise ValueError(f"Unknown point id: {point_id}")
        return point

    def _require_entity(self, entity_id: int) -> Entity:
        entity = self.entities.get(entity_id)
        if entity is None:
            raise ValueError(f"Unknown entity id: {entity_id}")
        return entity

    def _require_line(self, line_id: int) -> Line2D:
        entity = self._require_entity(line_id)
        if not isinstance(entity, Line2D):
            raise ValueError(f"Entity {line_id} is not a line: {entity.kind.name}")
        return entity

    def _require_circle_like(self, entity_id: int) -> Entity:
        entity = self._require_entity(entity_id)
        if not isinstance(entity, CircleLike):
            raise ValueError(f"Entity {entity_id} is not a circle or arc: {entity.kind.name}")
        return entity

    def _require_constraint(self, constraint_id: int) -> Constraint:
        constraint = self.get_constraint(constraint_id)
        if constraint is None:
            raise ValueError(f"Unknown constraint id: {constraint_id}")
        return constraint

    def _new_point(self, x: float, y: float, fixed: bool = False, standalone: bool = False) -> Point2D:
        point = Point2D(self._allocate_id(), x, y, fixed=fixed, standalone=standalone)
        self.points[point.id] = point
        return point

    def _add_entity(self, entity: Entity) -> Entity:
        self.entities[entity.id] = entity
        self._touch()
        self._trace(f"Added {entity!r}")
        return entity

    # === Lookups ===

    def get_point(self, point_id: int) -> Optional[Point2D]:
        return self.points.get(point_id)

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        return self.entities.get(entity_id)

    def get_line(self, line_id: int) -> Optional[Line2D]:
        entity = self.entities.get(line_id)
        return entity if isinstance(entity, Line2D) else None

    def get_circle_like(self, entity_id: int) -> Optional[Entity]:
        """Circle or arc with that id, None otherwise."""
        entity = self.entities.get(entity_id)
        return entity if isinstance(entity, CircleLike) else None

    def get_constraint(self, constraint_id: int) -> Optional[Constraint]:
        for c in self.constraints:
            if c.id == constraint_id:
                return c
        return None

    @property
    def lines(self) -> List[Line2D]:
        return [e for e in self.entities.values() if isinstance(e, Line2D)]

    @property
    def circles(self) -> List[Circle2D]:
        return [e for e in self.entities.values() if isinstance(e, Circle2D)]

    @property
    def arcs(self) -> List[Arc2D]:
        return [e for e in self.entities.values() if isinstance(e, Arc2D)]

    # === Geometry creation ===

    def add_point(self, x: float, y: float, fixed: bool = False) -> Point2D:
        """Adds a standalone point (kept by orphan cleanup)."""
        point = self._new_point(x, y, fixed=fixed, standalone=True)
        self._touch()
        self._trace(f"Added {point!r}")
        return point

    def add_line(self, x1: float, y1: float, x2: float, y2: float) -> Line2D:
        """Adds a line with two new endpoints."""
        start = self._new_point(x1, y1)
        end = self._new_point(x2, y2)
        return self._add_entity(Line2D(self._allocate_id(), start.id, end.id))

    def add_line_between(self, p1_id: int, p2_id: int) -> Line2D:
        """Adds a line between two existing points."""
        self._require_point(p1_id)
        self._require_point(p2_id)
        if p1_id == p2_id:
            raise ValueError(f"Line needs two distinct points, got P{p1_id} twice")
        return self._add_entity(Line2D(self._allocate_id(), p1_id, p2_id))

    def add_circle(self, cx: float, cy: float, radius: float) -> Circle2D:
        if radius < 0:
            raise ValueError(f"Circle radius must not be negative: {radius}")
        center = self._new_point(cx, cy)
        return self._add_entity(Circle2D(self._allocate_id(), center.id, radius))

    def add_arc(self, cx: float, cy: float, sx: float, sy: float, ex: float, ey: float,
                radius: Optional[float] = None) -> Arc2D:
        """
        Adds an arc from center, start and end positions.

        Without an explicit radius the distance center -> start is used.
        """
        if radius is None:
            radius = math.hypot(sx - cx, sy - cy)
        if radius < 0:
            raise ValueError(f"Arc radius must not be negative: {radius}")
        center = self._new_point(cx, cy)
        start = self._new_point(sx, sy)
        end = self._new_point(ex, ey)
        return self._add_entity(Arc2D(self._allocate_id(), center.id, start.id, end.id, radius))

    # === Constraint creation ===

    def add_constraint(self, data: ConstraintData, enabled: bool = True) -> Constraint:
        """
        Adds a constraint for any payload.

        All referenced points and entities must exist.
        """
        for pid in data.point_ids():
            self._require_point(pid)
        for eid in data.entity_ids():
            self._require_entity(eid)
        constraint = Constraint(self._allocate_id(), data, enabled=enabled)
        self.constraints.append(constraint)
        self._touch()
        self._trace(f"Added {constraint!r}")
        return constraint

    def add_coincident(self, p1_id: int, p2_id: int) -> Constraint:
        return self.add_constraint(CoincidentData(p1_id, p2_id))

    def add_distance(self, p1_id: int, p2_id: int, distance: float) -> Constraint:
        if distance < 0:
            raise ValueError(f"Distance must not be negative: {distance}")
        return self.add_constraint(DistanceData(p1_id, p2_id, float(distance)))

    def add_distance_x(self, p1_id: int, p2_id: int, distance: float) -> Constraint:
        """Signed: p2.x - p1.x == distance"""
        return self.add_constraint(DistanceXData(p1_id, p2_id, float(distance)))

    def add_distance_y(self, p1_id: int, p2_id: int, distance: float) -> Constraint:
        """Signed: p2.y - p1.y == distance"""
        return self.add_constraint(DistanceYData(p1_id, p2_id, float(distance)))

    def add_angle(self, line1_id: int, line2_id: int, angle: float) -> Constraint:
        """Signed angle from line1 to line2 in degrees."""
        self._require_line(line1_id)
        self._require_line(line2_id)
        return self.add_constraint(AngleData(line1_id, line2_id, float(angle)))

    def add_perpendicular(self, line1_id: int, line2_id: int) -> Constraint:
        self._require_line(line1_id)
        self._require_line(line2_id)
        return self.add_constraint(PerpendicularData(line1_id, line2_id))

    def add_parallel(self, line1_id: int, line2_id: int) -> Constraint:
        self._require_line(line1_id)
        self._require_line(line2_id)
        return self.add_constraint(ParallelData(line1_id, line2_id))

    def add_horizontal(self, line_id: int) -> Constraint:
        self._require_line(line_id)
        return self.add_constraint(HorizontalData(line_id))

    def add_vertical(self, line_id: int) -> Constraint:
        self._require_line(line_id)
        return self.add_constraint(VerticalData(line_id))

    def add_tangent(self, entity1_id: int, entity2_id: int) -> Constraint:
        """Counted in the DOF balance; the LM solver does not enforce it."""
        return self.add_constraint(TangentData(entity1_id, entity2_id))

    def add_equal(self, entity1_id: int, entity2_id: int) -> Constraint:
        """Equal length for two lines, equal radius for two circles/arcs."""
        e1 = self._require_entity(entity1_id)
        e2 = self._require_entity(entity2_id)
        both_lines = isinstance(e1, Line2D) and isinstance(e2, Line2D)
        both_round = isinstance(e1, CircleLike) and isinstance(e2, CircleLike)
        if not (both_lines or both_round):
            raise ValueError(f"EQUAL needs two lines or two circles/arcs: {e1!r}, {e2!r}")
        return self.add_constraint(EqualData(entity1_id, entity2_id))

    def add_point_on_line(self, point_id: int, line_id: int) -> Constraint:
        self._require_line(line_id)
        return self.add_constraint(PointOnLineData(point_id, line_id))

    def add_point_on_circle(self, point_id: int, circle_id: int) -> Constraint:
        self._require_circle_like(circle_id)
        return self.add_constraint(PointOnCircleData(point_id, circle_id))

    def add_fixed_point(self, point_id: int) -> Constraint:
        """
        Pins a point: sets its fixed flag and records a FIXED_POINT constraint.

        The constraint still counts two equations in the DOF balance. Use
        fix_point() to pin without the extra count.
        """
        self._require_point(point_id).fixed = True
        return self.add_constraint(FixedPointData(point_id))

    def add_fixed_distance(self, p1_id: int, p2_id: int, distance: float) -> Constraint:
        """Reference dimension between two points (no equations)."""
        return self.add_constraint(FixedDistanceData(p1_id, p2_id, float(distance)))

    def add_fixed_angle(self, line1_id: int, line2_id: int, angle: float) -> Constraint:
        """Reference angle between two lines in degrees (no equations)."""
        self._require_line(line1_id)
        self._require_line(line2_id)
        return self.add_constraint(FixedAngleData(line1_id, line2_id, float(angle)))

    # === Editing ===

    def remove_constraint(self, constraint_id: int) -> bool:
        """Removes a constraint. Returns False for unknown ids."""
        constraint = self.get_constraint(constraint_id)
        if constraint is None:
            return False
        self.constraints.remove(constraint)
        if constraint.type == ConstraintType.FIXED_POINT:
            self._release_fixed_flag(constraint.data.point)
        self._touch()
        self._trace(f"Removed {constraint!r}")
        return True

    def _release_fixed_flag(self, point_id: int):
        """Clears the fixed flag once no enabled FIXED_POINT constraint pins the point anymore."""
        point = self.points.get(point_id)
        if point is None:
            return
        still_pinned = any(
            c.type == ConstraintType.FIXED_POINT and c.enabled and c.data.point == point_id
            for c in self.constraints
        )
        if not still_pinned:
            point.fixed = False

    def set_constraint_enabled(self, constraint_id: int, enabled: bool):
        """Toggles a constraint; a FIXED_POINT pin sets or releases the point's fixed flag with it."""
        constraint = self._require_constraint(constraint_id)
        if constraint.enabled != enabled:
            constraint.enabled = enabled
            if constraint.type == ConstraintType.FIXED_POINT:
                if enabled:
                    self._require_point(constraint.data.point).fixed = True
                else:
                    self._release_fixed_flag(constraint.data.point)
            self._touch()

    def set_constraint_value(self, constraint_id: int, value: float):
        """Edits the target of a dimensional constraint."""
        constraint = self._require_constraint(constraint_id)
        if not constraint.is_dimensional:
            raise ValueError(f"{constraint!r} has no editable value")
        if constraint.type == ConstraintType.DISTANCE and value < 0:
            raise ValueError(f"Distance must not be negative: {value}")
        constraint.data.value = float(value)
        self._touch()
        self._trace(f"Edited {constraint!r}")

    def fix_point(self, point_id: int):
        point = self._require_point(point_id)
        if not point.fixed:
            point.fixed = True
            self._touch()

    def unfix_point(self, point_id: int):
        point = self._require_point(point_id)
        if point.fixed:
            point.fixed = False
            self._touch()

    def move_point(self, point_id: int, x: float, y: float):
        """Moves a point (drag). Fixed points move too; only the solver respects the flag."""
        point = self._require_point(point_id)
        point.x = float(x)
        point.y = float(y)

    def clear_constraints(self):
        """Removes all constraints and releases pinned points."""
        for c in self.constraints:
            if c.type == ConstraintType.FIXED_POINT:
                point = self.points.get(c.data.point)
                if point is not None:
                    point.fixed = False
        self.constraints.clear()
        self._touch()

    # === Geometry deletion ===

    def delete_point(self, point_id: int) -> bool:
        """
        Deletes a point, every entity using it and every constraint
        referencing either. Returns False for unknown ids.
        """
        if point_id not in self.points:
            return False

        doomed = [eid for eid, e in self.entities.items() if point_id in e.point_ids()]
        for eid in doomed:
            del self.entities[eid]
        del self.points[point_id]

        self._cleanup_orphan_points()
        self._cleanup_orphan_constraints()
        self._touch()
        self._trace(f"Deleted P{point_id} (+{len(doomed)} entities)")
        return True

    def delete_entity(self, entity_id: int) -> bool:
        """
        Deletes an entity and the constraints on it, then removes endpoints
        no other entity uses (standalone points stay). Returns False for
        unknown ids.
        """
        entity = self.entities.pop(entity_id, None)
        if entity is None:
            return False

        self._cleanup_orphan_points()
        self._cleanup_orphan_constraints()
        self._touch()
        self._trace(f"Deleted {entity!r}")
        return True

    def _cleanup_orphan_points(self):
        """Removes non-standalone points no longer used by any entity."""
        used = set()
        for entity in self.entities.values():
            used.update(entity.point_ids())
        orphans = [pid for pid, p in self.points.items() if pid not in used and not p.standalone]
        for pid in orphans:
            del self.points[pid]

    def _cleanup_orphan_constraints(self):
        """Removes constraints referencing points or entities that no longer exist."""
        kept = []
        for c in self.constraints:
            points_ok = all(pid in self.points for pid in c.point_ids())
            entities_ok = all(eid in self.entities for eid in c.entity_ids())
            if points_ok and entities_ok:
                kept.append(c)
        removed = len(self.constraints) - len(kept)
        self.constraints = kept
        if removed:
            self._trace(f"Removed {removed} orphan constraints")

    # === Constraint solver ===

    def calculate_dof(self) -> DOFInfo:
        return compute_dof(self)

    def solve(self, config=None):
        """Solves all enabled constraints with the configured backend."""
        from .solver_interface import UnifiedConstraintSolver

        result = UnifiedConstraintSolver().solve(self, config)
        if result.success:
            logger.debug(f"[Sketch] {self.name}: {result.message}")
        else:
            logger.info(f"[Sketch] {self.name}: {result.status.name} - {result.message}")
        return result

    def diagnose_constraints(self, top_n: int = 5):
        """The top_n constraints with the largest residual error."""
        from .constraint_diagnostics import worst_constraints

        return worst_constraints(self, top_n)

    def get_constraint_summary(self) -> Dict[str, Any]:
        """
        Summary of the constraint state without solving.

        Returns:
            Dictionary with total/enabled counts, the DOF numbers and the
            DOF status name.
        """
        info = compute_dof(self)
        by_type: Dict[str, int] = {}
        for c in self.constraints:
            by_type[c.type.name] = by_type.get(c.type.name, 0) + 1
        return {
            'total_constraints': len(self.constraints),
            'enabled_constraints': sum(1 for c in self.constraints if c.enabled),
            'by_type': by_type,
            'variables': info.total_variables,
            'equations': info.num_constraints,
            'dof': info.dof,
            'status': info.status.name,
        }

    def __repr__(self):
        return (f"Sketch('{self.name}': {len(self.points)} points, {len(self.entities)} entities, "
                f"{len(self.constraints)} constraints)")
