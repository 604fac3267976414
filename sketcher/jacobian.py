"""
MashCad Sketcher - Variable Layout and Finite-Difference Jacobian

The variable vector is the concatenated (x, y) of every non-fixed point in
point iteration order. The same VariableLayout instance must be used for
pack/apply/restore and Jacobian columns within one solve.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from config.tolerances import Tolerances

from .geometry import wrap_angle
from .residuals import angular_rows, evaluate


@dataclass(frozen=True)
class VariableLayout:
    """Ordered ids of the free points; variable 2*i is x, 2*i+1 is y of point_ids[i]"""
    point_ids: Tuple[int, ...]

    @classmethod
    def from_sketch(cls, sketch) -> 'VariableLayout':
        return cls(tuple(pid for pid, p in sketch.points.items() if not p.fixed))

    @property
    def size(self) -> int:
        return 2 * len(self.point_ids)

    def matches(self, sketch) -> bool:
        """True if the sketch still has exactly this set and order of free points."""
        return self.point_ids == VariableLayout.from_sketch(sketch).point_ids

    def pack(self, sketch) -> np.ndarray:
        x = np.empty(self.size, dtype=np.float64)
        for i, pid in enumerate(self.point_ids):
            p = sketch.points[pid]
            x[2 * i] = p.x
            x[2 * i + 1] = p.y
        return x

    def apply(self, sketch, x: np.ndarray) -> None:
        """Writes the variable vector back into the free points."""
        assert len(x) == self.size, f"variable vector has {len(x)} entries, layout expects {self.size}"
        for i, pid in enumerate(self.point_ids):
            p = sketch.points[pid]
            assert not p.fixed, f"point {pid} became fixed during solve"
            # float() keeps numpy scalars out of the data model
            p.x = float(x[2 * i])
            p.y = float(x[2 * i + 1])

    def _get(self, sketch, index: int) -> float:
        p = sketch.points[self.point_ids[index // 2]]
        return p.x if index % 2 == 0 else p.y

    def _set(self, sketch, index: int, value: float) -> None:
        p = sketch.points[self.point_ids[index // 2]]
        if index % 2 == 0:
            p.x = value
        else:
            p.y = value


def build_jacobian(
    sketch,
    epsilon: float = Tolerances.SOLVER_FD_EPSILON,
    layout: Optional[VariableLayout] = None,
    num_residuals: Optional[int] = None,
) -> np.ndarray:
    """
    Builds d(residual)/d(variable) by central finite differences.

    Each free coordinate is perturbed by +epsilon and -epsilon, the full
    residual vector is evaluated both times and the column is
    (r_plus - r_minus) / (2 * epsilon), with the difference of angle rows
    wrapped into (-pi, pi]. The coordinate is restored from its
    saved value afterwards, so the sketch is unchanged on return.

    Costs 2 * n_variables residual evaluations.

    Args:
        sketch: Sketch to differentiate
        epsilon: Perturbation step
        layout: Variable layout of the running solve (computed if None)
        num_residuals: Known residual count (evaluated if None)

    Returns:
        Dense array of shape (num_residuals, layout.size)
    """
    if epsilon <= 0:
        raise ValueError(f"epsilon must be positive: {epsilon}")

    if layout is None:
        layout = VariableLayout.from_sketch(sketch)
    if num_residuals is None:
        num_residuals = evaluate(sketch).size

    jacobian = np.zeros((num_residuals, layout.size), dtype=np.float64)
    inv_two_eps = 1.0 / (2.0 * epsilon)
    mask = angular_rows(sketch)
    assert mask.size == num_residuals, f"angle mask has {mask.size} rows, expected {num_residuals}"
    angular = np.flatnonzero(mask)

    for j in range(layout.size):
        original = layout._get(sketch, j)
        try:
            layout._set(sketch, j, original + epsilon)
            r_plus = evaluate(sketch)
            layout._set(sketch, j, original - epsilon)
            r_minus = evaluate(sketch)
        finally:
            layout._set(sketch, j, original)

        assert r_plus.size == num_residuals and r_minus.size == num_residuals, (
            f"residual count changed under perturbation of variable {j}: "
            f"{r_plus.size}/{r_minus.size} vs {num_residuals}"
        )
        diff = r_plus - r_minus
        for i in angular:
            # Angle rows jump by 2*pi across the wrap seam
            diff[i] = wrap_angle(diff[i])
        jacobian[:, j] = diff * inv_two_eps

    return jacobian
