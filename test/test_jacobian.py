"""
Variable layout and the central finite-difference Jacobian.
"""

import math

import numpy as np
import pytest

from sketcher.jacobian import VariableLayout, build_jacobian
from sketcher.residuals import evaluate
from sketcher.sketch import Sketch

pytestmark = [pytest.mark.solver, pytest.mark.fast]


# ============================================================================
# Variable layout
# ============================================================================

class TestVariableLayout:

    def test_layout_skips_fixed_points_in_iteration_order(self):
        sketch = Sketch("layout")
        a = sketch.add_point(1.0, 2.0)
        b = sketch.add_point(3.0, 4.0, fixed=True)
        c = sketch.add_point(5.0, 6.0)

        layout = VariableLayout.from_sketch(sketch)

        assert layout.point_ids == (a.id, c.id)
        assert layout.size == 4
        np.testing.assert_array_equal(layout.pack(sketch), [1.0, 2.0, 5.0, 6.0])
        assert b.id not in layout.point_ids

    def test_apply_writes_native_floats(self):
        sketch = Sketch("apply")
        a = sketch.add_point(0.0, 0.0)
        layout = VariableLayout.from_sketch(sketch)

        layout.apply(sketch, np.array([1.25, -3.5]))

        assert a.as_tuple() == (1.25, -3.5)
        assert type(a.x) is float

    def test_pack_apply_round_trip_is_exact(self):
        sketch = Sketch("round_trip")
        sketch.add_line(0.1, 0.2, 0.3, 0.7)
        layout = VariableLayout.from_sketch(sketch)
        snapshot = layout.pack(sketch)

        layout.apply(sketch, snapshot + 0.123456789)
        layout.apply(sketch, snapshot)

        np.testing.assert_array_equal(layout.pack(sketch), snapshot)

    def test_apply_rejects_wrong_size(self):
        sketch = Sketch("size")
        sketch.add_point(0.0, 0.0)
        layout = VariableLayout.from_sketch(sketch)

        with pytest.raises(AssertionError):
            layout.apply(sketch, np.zeros(3))

    def test_matches_detects_structural_change(self):
        sketch = Sketch("matches")
        a = sketch.add_point(0.0, 0.0)
        layout = VariableLayout.from_sketch(sketch)
        assert layout.matches(sketch)

        sketch.fix_point(a.id)
        assert not layout.matches(sketch)


# ============================================================================
# Jacobian
# ============================================================================

class TestJacobian:

    def test_shape(self):
        sketch = Sketch("shape")
        line = sketch.add_line(0.0, 0.0, 3.0, 1.0)
        p = sketch.add_point(1.0, 5.0)
        sketch.add_coincident(line.end, p.id)
        sketch.add_horizontal(line.id)

        jac = build_jacobian(sketch)

        assert jac.shape == (3, 6)

    def test_no_free_variables(self):
        sketch = Sketch("no_free")
        a = sketch.add_point(0.0, 0.0, fixed=True)
        b = sketch.add_point(1.0, 0.0, fixed=True)
        sketch.add_distance(a.id, b.id, 2.0)

        assert build_jacobian(sketch).shape == (1, 0)

    def test_distance_column_matches_analytic_gradient(self):
        sketch = Sketch("analytic_distance")
        a = sketch.add_point(1.0, -2.0)
        b = sketch.add_point(4.0, 2.0)
        sketch.add_distance(a.id, b.id, 3.0)

        jac = build_jacobian(sketch)

        d = math.hypot(3.0, 4.0)
        expected = [[-3.0 / d, -4.0 / d, 3.0 / d, 4.0 / d]]
        np.testing.assert_allclose(jac, expected, atol=1e-6)

    def test_linear_constraints_have_exact_unit_entries(self):
        sketch = Sketch("analytic_linear")
        line = sketch.add_line(0.0, 0.0, 2.0, 1.0)
        sketch.add_horizontal(line.id)
        sketch.add_vertical(line.id)

        jac = build_jacobian(sketch)

        expected = [
            [0.0, -1.0, 0.0, 1.0],
            [-1.0, 0.0, 1.0, 0.0],
        ]
        np.testing.assert_allclose(jac, expected, atol=1e-6)

    def test_angle_column_matches_analytic_gradient(self):
        sketch = Sketch("analytic_angle")
        base = sketch.add_line(0.0, 0.0, 5.0, 0.0)
        sketch.fix_point(base.start)
        sketch.fix_point(base.end)
        arm = sketch.add_line(0.0, 0.0, 3.0, 4.0)
        sketch.fix_point(arm.start)
        sketch.add_angle(base.id, arm.id, 30.0)

        jac = build_jacobian(sketch)

        # d/d(end) atan2(y, x) = (-y, x) / (x^2 + y^2)
        np.testing.assert_allclose(jac, [[-4.0 / 25.0, 3.0 / 25.0]], atol=1e-6)

    @pytest.mark.parametrize("end_y", [0.0, -1e-9, 1e-9])
    def test_angle_column_is_smooth_across_wrap_seam(self, end_y):
        sketch = Sketch("angle_seam")
        base = sketch.add_line(0.0, 0.0, 10.0, 0.0)
        sketch.fix_point(base.start)
        sketch.fix_point(base.end)
        arm = sketch.add_line(0.0, 0.0, -6.0, end_y)
        sketch.fix_point(arm.start)
        sketch.add_angle(base.id, arm.id, 0.0)

        jac = build_jacobian(sketch)

        # Arm points backwards: residual sits on +-pi, gradient stays finite
        assert abs(evaluate(sketch)[0]) == pytest.approx(math.pi, abs=1e-8)
        np.testing.assert_allclose(jac, [[0.0, -1.0 / 6.0]], atol=1e-6)

    def test_unrelated_points_get_exact_zero_columns(self):
        sketch = Sketch("stale_columns")
        a = sketch.add_point(0.0, 0.0)
        b = sketch.add_point(2.0, 1.0)
        bystander = sketch.add_point(7.0, 7.0)
        c = sketch.add_point(-3.0, 4.0)
        sketch.add_distance(a.id, b.id, 1.0)
        sketch.add_distance_y(bystander.id, c.id, 2.0)

        layout = VariableLayout.from_sketch(sketch)
        jac = build_jacobian(sketch, layout=layout)

        # Row 0 depends on a and b only, row 1 on the y of bystander and c only
        np.testing.assert_array_equal(jac[0, 4:], 0.0)
        np.testing.assert_array_equal(jac[1, :4], 0.0)
        assert jac[1, 4] == 0.0 and jac[1, 6] == 0.0
        assert jac[1, 5] == pytest.approx(-1.0, abs=1e-6)
        assert jac[1, 7] == pytest.approx(1.0, abs=1e-6)

    def test_repeated_builds_are_identical(self):
        sketch = Sketch("repeat")
        line = sketch.add_line(0.5, 0.25, 3.0, 2.0)
        sketch.add_distance(line.start, line.end, 1.0)
        sketch.add_horizontal(line.id)

        first = build_jacobian(sketch)
        second = build_jacobian(sketch)

        np.testing.assert_array_equal(first, second)

    def test_coordinates_are_restored_exactly(self):
        sketch = Sketch("restore")
        line = sketch.add_line(0.1, 0.7, 3.3, 2.9)
        sketch.add_distance(line.start, line.end, 1.0)
        before = [p.as_tuple() for p in sketch.points.values()]
        residual_before = evaluate(sketch)

        build_jacobian(sketch, epsilon=1e-3)

        assert [p.as_tuple() for p in sketch.points.values()] == before
        np.testing.assert_array_equal(evaluate(sketch), residual_before)

    def test_fixed_points_are_never_perturbed(self, anchored_pair):
        sketch, anchor, free = anchored_pair
        sketch.add_distance(anchor.id, free.id, 5.0)

        jac = build_jacobian(sketch)

        assert jac.shape == (1, 2)
        assert anchor.as_tuple() == (0.0, 0.0)

    @pytest.mark.parametrize("epsilon", [0.0, -1e-8])
    def test_rejects_non_positive_epsilon(self, anchored_pair, epsilon):
        sketch, _, _ = anchored_pair
        with pytest.raises(ValueError):
            build_jacobian(sketch, epsilon=epsilon)
