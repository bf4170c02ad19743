import math

import numpy as np
import pytest

from tessgraph.entities import surface_from_json
from tessgraph.nurbs import (
    NurbsCurve,
    NurbsSurface,
    basis_functions,
    evaluate_curve_point,
    evaluate_curve_tangent,
    find_span,
    homogeneous,
)

QUAD_KNOTS = [0, 0, 0, 1, 1, 1]


def test_find_span_clamps():
    assert find_span(2, 0.5, QUAD_KNOTS) == 2
    assert find_span(2, 1.0, QUAD_KNOTS) == 2
    assert find_span(2, -3.0, QUAD_KNOTS) == 2
    knots = [0, 0, 0, 0, 1, 2, 2, 2, 2]
    assert find_span(3, 0.5, knots) == 3
    assert find_span(3, 1.5, knots) == 4
    assert find_span(3, 5.0, knots) == 4


def test_basis_partition_of_unity():
    knots = [0, 0, 0, 0, 1, 2, 2, 2, 2]
    for u in (0.0, 0.3, 1.0, 1.7, 2.0):
        span = find_span(3, u, knots)
        assert sum(basis_functions(span, u, 3, knots)) == pytest.approx(1.0)


def test_quadratic_curve_points():
    cps = homogeneous([(0, 0, 0), (1, 1, 0), (2, 0, 0)])
    curve = NurbsCurve(2, QUAD_KNOTS, cps)
    assert not curve.is_closed()
    assert curve.get_point(0.0) == pytest.approx((0, 0, 0))
    assert curve.get_point(0.5) == pytest.approx((1, 0.5, 0))
    assert curve.get_point(1.0) == pytest.approx((2, 0, 0))
    assert len(curve.get_points(4)) == 5


def test_rational_quarter_circle():
    w = math.sqrt(2) / 2
    cps = homogeneous([(1, 0), (1, 1), (0, 1)], [1, w, 1])
    for u in (0.0, 0.25, 0.5, 0.9, 1.0):
        point = evaluate_curve_point(2, QUAD_KNOTS, cps, u)
        assert math.hypot(point[0], point[1]) == pytest.approx(1.0)


def test_tangent_is_unit():
    cps = homogeneous([(0, 0, 0), (1, 1, 0), (2, 0, 0)])
    tangent = evaluate_curve_tangent(2, QUAD_KNOTS, cps, 0.0)
    assert tangent == pytest.approx((math.sqrt(0.5), math.sqrt(0.5), 0.0))
    assert NurbsCurve(2, QUAD_KNOTS, cps).get_tangent(0.5) == pytest.approx((1.0, 0.0, 0.0))


def test_zero_weight_is_fatal():
    cps = homogeneous([(0, 0, 0), (1, 1, 0), (2, 0, 0)], [0, 0, 0])
    with pytest.raises(ZeroDivisionError):
        evaluate_curve_point(2, QUAD_KNOTS, cps, 0.5)


def _tube():
    ring = [(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)]
    return surface_from_json({
        "primitive": "surface",
        "uDegree": 1,
        "vDegree": 1,
        "uKnots": [0, 0, 1, 2, 3, 4, 4],
        "vKnots": [0, 0, 1, 1],
        "controlPoints": [[(x, y, z) for x, y in ring] for z in (0, 1)],
    })


def test_closed_surface_boundaries_meet():
    surface = _tube()
    nurbs = NurbsSurface(surface.v_degree, surface.u_degree, surface.v_knots,
                         surface.u_knots, surface.homogeneous_grid())
    assert nurbs.is_closed(1)
    assert not nurbs.is_closed(0)
    for t in (0.0, 0.5, 1.0):
        assert np.allclose(nurbs.get_point(t, 0.0), nurbs.get_point(t, 1.0), atol=1e-6)


def test_closed_curve_pulls_domain_inward():
    cps = homogeneous([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 0, 0)])
    curve = NurbsCurve(1, [0, 0, 1, 2, 3, 3], cps)
    assert curve.is_closed()
    assert (curve.i_min, curve.i_max) == (1, 4)
    assert np.allclose(curve.get_point(0.0), curve.get_point(1.0))
