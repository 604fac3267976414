"""
MashCad Sketcher - Constraint System
Geometric constraints for parametric design.

A constraint is an id, an enabled flag and a typed payload. The payload
classes form a closed set (one per ConstraintType); every table keyed by
ConstraintType is checked for completeness at import time.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type, Union
from enum import Enum, auto


class ConstraintType(Enum):
    """Available constraint types"""
    # Point constraints
    COINCIDENT = auto()         # Two points coincide
    POINT_ON_LINE = auto()      # Point on infinite line
    POINT_ON_CIRCLE = auto()    # Point on circle/arc
    FIXED_POINT = auto()        # Point pinned (via its fixed flag)

    # Line constraints
    HORIZONTAL = auto()
    VERTICAL = auto()
    PARALLEL = auto()
    PERPENDICULAR = auto()

    # Entity pair constraints
    TANGENT = auto()
    EQUAL = auto()              # Equal length (lines) or equal radius (circles/arcs)

    # Dimensions
    DISTANCE = auto()
    DISTANCE_X = auto()
    DISTANCE_Y = auto()
    ANGLE = auto()              # Degrees

    # Parameter pins (reference dimensions, no equations)
    FIXED_DISTANCE = auto()
    FIXED_ANGLE = auto()


# === Payloads ===

@dataclass
class CoincidentData:
    point1: int
    point2: int

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point1, self.point2)

    def entity_ids(self) -> Tuple[int, ...]:
        return ()


@dataclass
class DistanceData:
    """Euclidean distance between two points"""
    point1: int
    point2: int
    value: float

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point1, self.point2)

    def entity_ids(self) -> Tuple[int, ...]:
        return ()


@dataclass
class DistanceXData:
    """Signed horizontal offset: p2.x - p1.x == value"""
    point1: int
    point2: int
    value: float

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point1, self.point2)

    def entity_ids(self) -> Tuple[int, ...]:
        return ()


@dataclass
class DistanceYData:
    """Signed vertical offset: p2.y - p1.y == value"""
    point1: int
    point2: int
    value: float

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point1, self.point2)

    def entity_ids(self) -> Tuple[int, ...]:
        return ()


@dataclass
class AngleData:
    """Signed angle from line1 to line2, in degrees"""
    line1: int
    line2: int
    value: float

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line1, self.line2)


@dataclass
class PerpendicularData:
    line1: int
    line2: int

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line1, self.line2)


@dataclass
class ParallelData:
    line1: int
    line2: int

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line1, self.line2)


@dataclass
class HorizontalData:
    line: int

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line,)


@dataclass
class VerticalData:
    line: int

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line,)


@dataclass
class TangentData:
    entity1: int
    entity2: int

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.entity1, self.entity2)


@dataclass
class EqualData:
    entity1: int
    entity2: int

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.entity1, self.entity2)


@dataclass
class PointOnLineData:
    point: int
    line: int

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point,)

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line,)


@dataclass
class PointOnCircleData:
    point: int
    circle: int

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point,)

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.circle,)


@dataclass
class FixedPointData:
    point: int

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point,)

    def entity_ids(self) -> Tuple[int, ...]:
        return ()


@dataclass
class FixedDistanceData:
    point1: int
    point2: int
    value: float

    def point_ids(self) -> Tuple[int, ...]:
        return (self.point1, self.point2)

    def entity_ids(self) -> Tuple[int, ...]:
        return ()


@dataclass
class FixedAngleData:
    line1: int
    line2: int
    value: float

    def point_ids(self) -> Tuple[int, ...]:
        return ()

    def entity_ids(self) -> Tuple[int, ...]:
        return (self.line1, self.line2)


ConstraintData = Union[
    CoincidentData, DistanceData, DistanceXData, DistanceYData, AngleData,
    PerpendicularData, ParallelData, HorizontalData, VerticalData, TangentData,
    EqualData, PointOnLineData, PointOnCircleData, FixedPointData,
    FixedDistanceData, FixedAngleData,
]

_PAYLOAD_TYPES: Dict[Type, ConstraintType] = {
    CoincidentData: ConstraintType.COINCIDENT,
    DistanceData: ConstraintType.DISTANCE,
    DistanceXData: ConstraintType.DISTANCE_X,
    DistanceYData: ConstraintType.DISTANCE_Y,
    AngleData: ConstraintType.ANGLE,
    PerpendicularData: ConstraintType.PERPENDICULAR,
    ParallelData: ConstraintType.PARALLEL,
    HorizontalData: ConstraintType.HORIZONTAL,
    VerticalData: ConstraintType.VERTICAL,
    TangentData: ConstraintType.TANGENT,
    EqualData: ConstraintType.EQUAL,
    PointOnLineData: ConstraintType.POINT_ON_LINE,
    PointOnCircleData: ConstraintType.POINT_ON_CIRCLE,
    FixedPointData: ConstraintType.FIXED_POINT,
    FixedDistanceData: ConstraintType.FIXED_DISTANCE,
    FixedAngleData: ConstraintType.FIXED_ANGLE,
}

# Residual equations per type, independent of geometry
EQUATION_COUNTS: Dict[ConstraintType, int] = {
    ConstraintType.COINCIDENT: 2,
    ConstraintType.DISTANCE: 1,
    ConstraintType.DISTANCE_X: 1,
    ConstraintType.DISTANCE_Y: 1,
    ConstraintType.ANGLE: 1,
    ConstraintType.PERPENDICULAR: 1,
    ConstraintType.PARALLEL: 1,
    ConstraintType.HORIZONTAL: 1,
    ConstraintType.VERTICAL: 1,
    ConstraintType.TANGENT: 1,
    ConstraintType.EQUAL: 1,
    ConstraintType.POINT_ON_LINE: 1,
    ConstraintType.POINT_ON_CIRCLE: 1,
    ConstraintType.FIXED_POINT: 2,
    ConstraintType.FIXED_DISTANCE: 0,
    ConstraintType.FIXED_ANGLE: 0,
}

# Types counted in the DOF balance that have no residual in the LM solver
UNSUPPORTED_RESIDUAL_TYPES = frozenset({ConstraintType.TANGENT})
FLAG_ONLY_TYPES = frozenset({ConstraintType.FIXED_POINT})
PIN_TYPES = frozenset({ConstraintType.FIXED_DISTANCE, ConstraintType.FIXED_ANGLE})

DIMENSIONAL_TYPES = frozenset({
    ConstraintType.DISTANCE,
    ConstraintType.DISTANCE_X,
    ConstraintType.DISTANCE_Y,
    ConstraintType.ANGLE,
    ConstraintType.FIXED_DISTANCE,
    ConstraintType.FIXED_ANGLE,
})


def _check_tables():
    missing_payload = set(ConstraintType) - set(_PAYLOAD_TYPES.values())
    missing_counts = set(ConstraintType) - set(EQUATION_COUNTS)
    if missing_payload or missing_counts:
        raise TypeError(
            f"Constraint tables incomplete: payload={sorted(t.name for t in missing_payload)}, "
            f"counts={sorted(t.name for t in missing_counts)}"
        )


_check_tables()


def constraint_type_of(data: ConstraintData) -> ConstraintType:
    """Returns the type tag for a payload instance."""
    try:
        return _PAYLOAD_TYPES[type(data)]
    except KeyError:
        raise TypeError(f"Unknown constraint payload: {type(data).__name__}") from None


@dataclass
class Constraint:
    """A sketch constraint: id, typed payload and enabled flag"""
    id: int
    data: ConstraintData
    enabled: bool = True

    def __post_init__(self):
        # Validates the payload class eagerly
        constraint_type_of(self.data)

    @property
    def type(self) -> ConstraintType:
        return constraint_type_of(self.data)

    @property
    def equation_count(self) -> int:
        return EQUATION_COUNTS[self.type]

    @property
    def is_dimensional(self) -> bool:
        return self.type in DIMENSIONAL_TYPES

    @property
    def value(self) -> Optional[float]:
        """Target value of dimensional constraints, None otherwise."""
        return getattr(self.data, "value", None)

    def point_ids(self) -> Tuple[int, ...]:
        return self.data.point_ids()

    def entity_ids(self) -> Tuple[int, ...]:
        return self.data.entity_ids()

    def references_point(self, point_id: int) -> bool:
        return point_id in self.data.point_ids()

    def references_entity(self, entity_id: int) -> bool:
        return entity_id in self.data.entity_ids()

    def __repr__(self):
        val_str = f"={self.value}" if self.value is not None else ""
        off = "" if self.enabled else " (disabled)"
        return f"C{self.id}:{self.type.name}{val_str}{off}"


def equation_count(constraint: Constraint) -> int:
    """Number of residual equations the constraint contributes to the DOF balance."""
    return EQUATION_COUNTS[constraint.type]
