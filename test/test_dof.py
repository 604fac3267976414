"""
DOF analysis: 2 * free points - sum of equation counts of enabled constraints.
"""

import random

import pytest

from sketcher.constraints import EQUATION_COUNTS, ConstraintType
from sketcher.dof import DOFStatus, classify_dof, compute_dof
from sketcher.sketch import Sketch

pytestmark = [pytest.mark.solver, pytest.mark.fast]


def _expected_dof(sketch):
    free = sum(1 for p in sketch.points.values() if not p.fixed)
    equations = sum(EQUATION_COUNTS[c.type] for c in sketch.constraints if c.enabled)
    return 2 * free - equations


def test_empty_sketch_is_wellconstrained(empty_sketch):
    info = compute_dof(empty_sketch)
    assert info.total_variables == 0
    assert info.num_constraints == 0
    assert info.dof == 0
    assert info.status == DOFStatus.WELLCONSTRAINED


def test_fixed_points_are_not_variables(anchored_pair):
    sketch, _, _ = anchored_pair
    info = compute_dof(sketch)
    assert info.total_variables == 2
    assert info.dof == 2
    assert info.status == DOFStatus.UNDERCONSTRAINED


def test_disabled_constraints_are_ignored():
    sketch = Sketch("dof_disabled")
    line = sketch.add_line(0.0, 0.0, 10.0, 0.0)
    horizontal = sketch.add_horizontal(line.id)

    sketch.set_constraint_enabled(horizontal.id, False)
    info = sketch.calculate_dof()

    assert info.num_constraints == 0
    assert info.dof == info.total_variables == 4


def test_dof_is_not_clamped():
    sketch = Sketch("dof_negative")
    a = sketch.add_point(0.0, 0.0, fixed=True)
    b = sketch.add_point(1.0, 0.0)
    sketch.add_distance(a.id, b.id, 5.0)
    sketch.add_distance(a.id, b.id, 7.0)
    sketch.add_distance_y(a.id, b.id, 0.0)

    info = compute_dof(sketch)

    assert info.dof == -1
    assert info.is_overconstrained
    assert info.to_dict()['status'] == 'OVERCONSTRAINED'


def test_pins_count_zero_and_fixed_point_counts_two():
    sketch = Sketch("dof_pins")
    l1 = sketch.add_line(0.0, 0.0, 10.0, 0.0)
    l2 = sketch.add_line(0.0, 0.0, 0.0, 10.0)
    sketch.add_fixed_distance(l1.start, l1.end, 10.0)
    sketch.add_fixed_angle(l1.id, l2.id, 90.0)
    assert compute_dof(sketch).num_constraints == 0

    sketch.add_fixed_point(l1.start)
    info = compute_dof(sketch)
    # The point leaves the variable vector and the constraint still counts two
    assert info.total_variables == 6
    assert info.num_constraints == 2
    assert info.dof == 4


def test_tangent_counts_one_equation():
    sketch = Sketch("dof_tangent")
    line = sketch.add_line(0.0, 0.0, 10.0, 0.0)
    circle = sketch.add_circle(5.0, 5.0, 5.0)
    sketch.add_tangent(line.id, circle.id)

    assert compute_dof(sketch).num_constraints == EQUATION_COUNTS[ConstraintType.TANGENT] == 1


def test_dangling_constraints_still_count():
    sketch = Sketch("dof_dangling")
    a = sketch.add_point(0.0, 0.0)
    b = sketch.add_point(1.0, 0.0)
    sketch.add_coincident(a.id, b.id)
    del sketch.points[b.id]

    info = compute_dof(sketch)

    assert info.total_variables == 2
    assert info.num_constraints == 2
    assert info.dof == 0


@pytest.mark.parametrize("dof,status", [
    (3, DOFStatus.UNDERCONSTRAINED),
    (0, DOFStatus.WELLCONSTRAINED),
    (-2, DOFStatus.OVERCONSTRAINED),
])
def test_classify_dof(dof, status):
    assert classify_dof(dof) == status


def test_formula_holds_for_random_mutation_sequences():
    rng = random.Random(1234)
    sketch = Sketch("dof_random")

    for step in range(120):
        action = rng.randrange(8)
        point_ids = list(sketch.points)
        line_ids = [l.id for l in sketch.lines]

        if action == 0 or len(point_ids) < 2:
            sketch.add_point(rng.uniform(-10, 10), rng.uniform(-10, 10), fixed=rng.random() < 0.2)
        elif action == 1:
            sketch.add_line(rng.uniform(-10, 10), rng.uniform(-10, 10),
                            rng.uniform(-10, 10), rng.uniform(-10, 10))
        elif action == 2:
            a, b = rng.sample(point_ids, 2)
            sketch.add_distance(a, b, rng.uniform(1, 5))
        elif action == 3 and line_ids:
            sketch.add_horizontal(rng.choice(line_ids))
        elif action == 4 and sketch.constraints:
            c = rng.choice(sketch.constraints)
            sketch.set_constraint_enabled(c.id, not c.enabled)
        elif action == 5:
            pid = rng.choice(point_ids)
            if sketch.points[pid].fixed:
                sketch.unfix_point(pid)
            else:
                sketch.fix_point(pid)
        elif action == 6:
            sketch.delete_point(rng.choice(point_ids))
        elif action == 7 and sketch.entities:
            sketch.delete_entity(rng.choice(list(sketch.entities)))

        info = compute_dof(sketch)
        assert info.dof == _expected_dof(sketch), f"step {step}"
        assert info.status == classify_dof(info.dof)
