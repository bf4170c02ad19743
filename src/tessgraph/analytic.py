"""Closed-form primitives.

These are the default constructors behind
``Collaborators.build_analytic_primitive``. Each takes the entity
dictionary and returns a :class:`~tessgraph.mesh.Mesh` centred at the
origin; placement (``origin``/``axis``/``reference``) is applied later by
the geometry builder.

Surface kinds:

- sphere: ``radius``
- block: ``dimensions`` ``[x, y, z]``
- plane: fixed size square in the XY plane

Line kinds:

- circle: ``radius``
- rectangle: ``dimensions`` ``[x, y]``
- ellipse: ``majorRadius``, ``minorRadius``
"""

from __future__ import annotations

from math import cos, pi, sin
from typing import Any, Callable, Dict, Mapping

import numpy as np

from tessgraph.errors import DegenerateGeometry, UnknownPrimitiveType
from tessgraph.mesh import Mesh, MeshKind, line_mesh
from tessgraph.normals import synthesize_normals
from tessgraph.tessellate import circle_points, parametric_grid

CIRCLE_RES = 32
SPHERE_SEGMENTS = (32, 16)
PLANE_SIZE = 10000.0
PLANE_SEGMENTS = 100


def _positive(data: Mapping[str, Any], key: str) -> float:
    try:
        value = float(data[key])
    except (KeyError, TypeError, ValueError):
        raise DegenerateGeometry(f"{data.get('primitive')} requires a numeric {key}.") from None
    if value <= 0:
        raise DegenerateGeometry(f"{data.get('primitive')} {key} must be positive.")
    return value


def _dimensions(data: Mapping[str, Any], count: int):
    dims = data.get("dimensions")
    if not dims or len(dims) < count:
        raise DegenerateGeometry(f"{data.get('primitive')} requires {count} dimensions.")
    return [float(d) for d in dims[:count]]


def sphere(data: Mapping[str, Any]) -> Mesh:
    """Latitude/longitude sphere.

    Parameters
    ----------
    data : dict
        Entity with a positive ``radius``.

    Returns
    -------
    Mesh
        Indexed triangle mesh with smooth normals and UVs.
    """

    r = _positive(data, "radius")

    def evaluate(u: float, v: float):
        lon = u * 2.0 * pi
        lat = (v - 0.5) * pi
        cos_v = cos(lat)
        return (r * cos_v * cos(lon), r * cos_v * sin(lon), r * sin(lat))

    mesh = parametric_grid(evaluate, *SPHERE_SEGMENTS)
    # vertex normals of a sphere are its unit positions
    mesh.normals = mesh.positions / r
    return mesh


def block(data: Mapping[str, Any]) -> Mesh:
    """Axis aligned box centred at the origin with flat faces."""

    dx, dy, dz = (d * 0.5 for d in _dimensions(data, 3))
    corners = np.array([
        (-dx, -dy, -dz), (dx, -dy, -dz), (dx, dy, -dz), (-dx, dy, -dz),
        (-dx, -dy, dz), (dx, -dy, dz), (dx, dy, dz), (-dx, dy, dz),
    ])
    # counter-clockwise seen from outside
    faces = [
        (0, 3, 2), (0, 2, 1),
        (4, 5, 6), (4, 6, 7),
        (0, 1, 5), (0, 5, 4),
        (1, 2, 6), (1, 6, 5),
        (2, 3, 7), (2, 7, 6),
        (3, 0, 4), (3, 4, 7),
    ]
    mesh = Mesh(MeshKind.TRIANGLES, corners, index=np.asarray(faces))
    return synthesize_normals(mesh)


def plane(data: Mapping[str, Any]) -> Mesh:
    def evaluate(u: float, v: float):
        return ((u - 0.5) * PLANE_SIZE, (v - 0.5) * PLANE_SIZE, 0.0)

    mesh = parametric_grid(evaluate, PLANE_SEGMENTS, PLANE_SEGMENTS)
    mesh.normals = np.tile((0.0, 0.0, 1.0), (mesh.vertex_count, 1))
    return mesh


def circle(data: Mapping[str, Any]) -> Mesh:
    return line_mesh(circle_points(_positive(data, "radius"), CIRCLE_RES - 1))


def rectangle(data: Mapping[str, Any]) -> Mesh:
    dx, dy = (d * 0.5 for d in _dimensions(data, 2))
    return line_mesh([(-dx, dy, 0.0), (dx, dy, 0.0), (dx, -dy, 0.0), (-dx, -dy, 0.0), (-dx, dy, 0.0)])


def ellipse(data: Mapping[str, Any]) -> Mesh:
    major = _positive(data, "majorRadius")
    minor = _positive(data, "minorRadius")
    points = circle_points(1.0, CIRCLE_RES)
    points[:, 0] *= major
    points[:, 1] *= minor
    return line_mesh(points)


ANALYTIC_BUILDERS: Dict[str, Callable[[Mapping[str, Any]], Mesh]] = {
    "sphere": sphere,
    "block": block,
    "plane": plane,
    "circle": circle,
    "rectangle": rectangle,
    "ellipse": ellipse,
}


def build_analytic_primitive(kind: str, params: Mapping[str, Any]) -> Mesh:
    """Dispatch ``kind`` to its constructor."""

    builder = ANALYTIC_BUILDERS.get(kind)
    if builder is None:
        raise UnknownPrimitiveType(entity=kind)
    return builder(params)


__all__ = [
    "ANALYTIC_BUILDERS",
    "block",
    "build_analytic_primitive",
    "circle",
    "ellipse",
    "plane",
    "rectangle",
    "sphere",
]
