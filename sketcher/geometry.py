"""
MashCad Sketcher - Geometry Primitives
Points, lines, circles and arcs of the 2D sketch data model.

Points carry coordinates; entities only reference points by id (plus a
radius for circles and arcs). The solver moves point coordinates only.
"""

from dataclasses import dataclass
from typing import Tuple, Union
from enum import Enum, auto
import math


class GeometryType(Enum):
    """Geometry types"""
    POINT = auto()
    LINE = auto()
    CIRCLE = auto()
    ARC = auto()


@dataclass
class Point2D:
    """2D point - the only solver-movable piece of geometry"""
    id: int
    x: float = 0.0
    y: float = 0.0
    fixed: bool = False
    standalone: bool = False

    def __post_init__(self):
        """
        FIREWALL: converts coordinates to native Python floats right away.
        Protects against NumPy scalars leaking in from solver vectors.
        """
        self.x = float(self.x)
        self.y = float(self.y)

    @property
    def kind(self) -> GeometryType:
        return GeometryType.POINT

    def distance_to(self, other: 'Point2D') -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def __repr__(self):
        flag = "*" if self.fixed else ""
        return f"P{self.id}{flag}({self.x:.4f}, {self.y:.4f})"


@dataclass
class Line2D:
    """2D line between two points (referenced by id)"""
    id: int
    start: int
    end: int

    @property
    def kind(self) -> GeometryType:
        return GeometryType.LINE

    def point_ids(self) -> Tuple[int, ...]:
        return (self.start, self.end)

    def __repr__(self):
        return f"Line{self.id}(P{self.start} -> P{self.end})"


@dataclass
class Circle2D:
    """2D circle: center point reference plus radius (entity state, not a solver variable)"""
    id: int
    center: int
    radius: float = 10.0

    def __post_init__(self):
        self.radius = float(self.radius)
        if self.radius < 0:
            raise ValueError(f"Circle radius must not be negative: {self.radius}")

    @property
    def kind(self) -> GeometryType:
        return GeometryType.CIRCLE

    @property
    def diameter(self) -> float:
        return self.radius * 2

    def point_ids(self) -> Tuple[int, ...]:
        return (self.center,)

    def __repr__(self):
        return f"Circle{self.id}(P{self.center}, r={self.radius:.4f})"


@dataclass
class Arc2D:
    """2D arc: center, start and end point references plus radius"""
    id: int
    center: int
    start: int
    end: int
    radius: float = 10.0

    def __post_init__(self):
        self.radius = float(self.radius)
        if self.radius < 0:
            raise ValueError(f"Arc radius must not be negative: {self.radius}")

    @property
    def kind(self) -> GeometryType:
        return GeometryType.ARC

    def point_ids(self) -> Tuple[int, ...]:
        return (self.center, self.start, self.end)

    def __repr__(self):
        return f"Arc{self.id}(P{self.center}, P{self.start} -> P{self.end}, r={self.radius:.4f})"


# Tagged variant over all entity kinds
Entity = Union[Line2D, Circle2D, Arc2D]

CircleLike = (Circle2D, Arc2D)


# === Helper functions ===

def cross(ax: float, ay: float, bx: float, by: float) -> float:
    """2D cross product (z component)"""
    return ax * by - ay * bx


def dot(ax: float, ay: float, bx: float, by: float) -> float:
    return ax * bx + ay * by


def wrap_angle(angle: float) -> float:
    """Wraps an angle in radians into (-pi, pi]"""
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped <= 0.0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


def signed_angle(ax: float, ay: float, bx: float, by: float) -> float:
    """Signed angle in radians from vector a to vector b (atan2 based)"""
    return math.atan2(cross(ax, ay, bx, by), dot(ax, ay, bx, by))
