import math

import numpy as np
import pytest

from tessgraph.config import PipelineConfig
from tessgraph.entities import curve_from_json, surface_from_json
from tessgraph.errors import InvalidNurbsDefinition
from tessgraph.tessellate import (
    control_points_are_linear,
    max_curvature,
    parametric_grid,
    tessellate_arc,
    tessellate_curve,
    tessellate_surface,
)

EXAMPLE_CURVE = {
    "primitive": "curve",
    "degree": 3,
    "knots": [0, 0, 0, 1, 2, 3, 3, 3],
    "controlPoints": [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]],
}


def _grid_surface(heights):
    """3 x 3 biquadratic surface with per-column heights."""
    return surface_from_json({
        "primitive": "surface",
        "uDegree": 2,
        "vDegree": 2,
        "uKnots": [0, 0, 0, 1, 1, 1],
        "vKnots": [0, 0, 0, 1, 1, 1],
        "controlPoints": [[[x, y, heights[x]] for x in range(3)] for y in range(3)],
    })


def test_example_curve_tessellates():
    points = tessellate_curve(curve_from_json(EXAMPLE_CURVE))
    assert len(points) >= 3
    assert np.all(np.isfinite(points))


def test_truncated_knots_rejected():
    data = dict(EXAMPLE_CURVE, knots=EXAMPLE_CURVE["knots"][:7])
    with pytest.raises(InvalidNurbsDefinition) as info:
        curve_from_json(data)
    assert info.value.entity == "curve"


def test_missing_knots_rejected():
    with pytest.raises(InvalidNurbsDefinition):
        curve_from_json({"primitive": "curve", "degree": 2, "controlPoints": [[0, 0, 0]]})


def test_linear_curve_uses_control_points():
    curve = curve_from_json({
        "primitive": "curve",
        "degree": 1,
        "knots": [0, 0, 1, 2, 2],
        "controlPoints": [[0, 0, 0], [1, 0, 0], [1, 1, 0]],
    })
    assert np.allclose(tessellate_curve(curve), [[0, 0, 0], [1, 0, 0], [1, 1, 0]])


def test_curve_resolution_follows_quality():
    curve = curve_from_json(EXAMPLE_CURVE)
    coarse = tessellate_curve(curve, PipelineConfig(curve_quality=1.0))
    fine = tessellate_curve(curve, PipelineConfig(curve_quality=4.0))
    assert len(coarse) == 13
    assert len(fine) == 49


@pytest.mark.parametrize("quality", [0.01, 1.0, 2.5, 1000.0])
def test_flat_surface_is_one_quad(quality):
    surface = _grid_surface([0, 0, 0])
    mesh = tessellate_surface(surface, PipelineConfig(surface_quality=quality))
    assert mesh.face_count == 2
    assert np.allclose(np.abs(mesh.normals[:, 2]), 1.0)
    assert mesh.uvs is not None


def test_curved_surface_is_refined():
    surface = _grid_surface([0, 1, 0])
    mesh = tessellate_surface(surface)
    assert mesh.face_count > 8
    assert np.all(np.isfinite(mesh.normals))


def test_surface_knot_mismatch():
    data = {
        "primitive": "surface",
        "uDegree": 2,
        "vDegree": 2,
        "uKnots": [0, 0, 0, 1, 1],
        "vKnots": [0, 0, 0, 1, 1, 1],
        "controlPoints": [[[x, y, 0] for x in range(3)] for y in range(3)],
    }
    with pytest.raises(InvalidNurbsDefinition, match="uKnots"):
        surface_from_json(data)


def test_control_points_are_linear():
    flat = [[[x, y, 0] for x in range(3)] for y in range(3)]
    bent = [[[x, y, x * x] for x in range(3)] for y in range(3)]
    assert control_points_are_linear(flat)
    assert not control_points_are_linear(bent)


def test_parametric_grid_layout():
    mesh = parametric_grid(lambda u, v: (u, v, 0.0), 3, 2)
    assert mesh.vertex_count == 12
    assert mesh.face_count == 12
    assert np.allclose(mesh.uvs[-1], (1.0, 1.0))
    assert max_curvature(mesh) == pytest.approx(0.0)


def test_max_curvature_of_fold():
    mesh = parametric_grid(lambda u, v: (u, v, 0.0 if u <= 0.5 else u - 0.5), 2, 1)
    assert max_curvature(mesh) == pytest.approx(0.25)


@pytest.mark.parametrize("points", [
    ((0, 0, 0), (1, 0, 0), (2, 0, 0)),
    ((0, 0, 0), (0, 0, 0), (2, 0, 0)),
    ((0, 0, 0), (1, 1, 1), (1, 1, 1)),
])
def test_degenerate_arc_is_polyline(points):
    result = tessellate_arc(*points)
    assert result.shape == (3, 3)
    assert np.allclose(result, points)


def test_three_quarter_arc():
    points = tessellate_arc((1, 0, 0), (0, 1, 0), (0, -1, 0))
    assert len(points) == 33
    assert np.allclose(np.linalg.norm(points, axis=1), 1.0)
    assert np.allclose(points[0], (1, 0, 0))
    assert np.allclose(points[-1], (0, -1, 0), atol=1e-9)


def test_short_arc_sections():
    s = math.sqrt(0.5)
    points = tessellate_arc((1, 0, 0), (s, s, 0), (0, 1, 0))
    # a quarter turn at 42 sections per turn
    assert len(points) == 12
    assert np.allclose(points[-1], (0, 1, 0), atol=1e-9)
