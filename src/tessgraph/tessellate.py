"""Curvature driven tessellation of NURBS curves, surfaces and arcs.

Sampling density follows the shape of the control hull: a surface is first
evaluated on its coarsest grid (one cell per pair of neighbouring control
points), the largest angle between adjacent hull faces picks the final
resolution, and planar patches with a parallelogram control grid collapse
to a single quad.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Optional, Sequence

import numpy as np

from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.entities import Curve, Surface
from tessgraph.geometry_utils import Vec3, angle_between, is_parallel, normalize
from tessgraph.mesh import Mesh, MeshKind
from tessgraph.normals import build_adjacency, face_normals, synthesize_normals
from tessgraph.nurbs import NurbsCurve, NurbsSurface

LOG = logging.getLogger(__name__)

ParametricFunction = Callable[[float, float], Vec3]


def curve_resolution(curve: Curve, quality: float) -> int:
    count = len(curve.control_points)
    return max(int(math.floor(count * curve.degree * quality)), count - 1)


def tessellate_curve(curve: Curve, config: PipelineConfig = DEFAULT_CONFIG) -> np.ndarray:
    """Sample a validated curve into an N x 3 polyline."""

    curve.validate()
    cps = curve.homogeneous_points()
    if curve.degree == 1:
        return cps[:, :3] / cps[:, 3:4]
    divisions = curve_resolution(curve, config.curve_quality)
    nurbs = NurbsCurve(curve.degree, curve.knots, cps)
    points = np.asarray(nurbs.get_points(divisions), dtype=float)
    LOG.debug("curve %s sampled with %d divisions", curve.name, divisions)
    return points


def parametric_grid(fn: ParametricFunction, slices: int, stacks: int) -> Mesh:
    """Evaluate ``fn(u, v)`` on a regular grid and triangulate it.

    ``u`` steps over ``slices`` cells and ``v`` over ``stacks`` cells; the
    resulting indexed mesh has ``(slices + 1) * (stacks + 1)`` vertices and
    two triangles per cell.
    """

    slices = max(int(slices), 1)
    stacks = max(int(stacks), 1)
    row = slices + 1
    positions = np.zeros(((stacks + 1) * row, 3))
    uvs = np.zeros(((stacks + 1) * row, 2))
    for i in range(stacks + 1):
        v = i / stacks
        for j in range(slices + 1):
            u = j / slices
            positions[i * row + j] = fn(u, v)
            uvs[i * row + j] = (u, v)

    faces = []
    for i in range(stacks):
        for j in range(slices):
            a = i * row + j
            b = i * row + j + 1
            c = (i + 1) * row + j + 1
            d = (i + 1) * row + j
            faces.append((a, b, d))
            faces.append((b, c, d))
    return Mesh(MeshKind.TRIANGLES, positions, index=np.asarray(faces, dtype=np.int64), uvs=uvs)


def max_curvature(mesh: Mesh) -> float:
    """Largest angle between faces that share a vertex, divided by pi."""

    positions = mesh.to_non_indexed().positions
    if positions is None or len(positions) == 0:
        return 0.0
    normals = face_normals(positions)
    adjacency = build_adjacency(positions)
    result = 0.0
    for corners in adjacency.values():
        faces = sorted({face for face, _ in corners})
        for a in faces:
            for b in faces:
                if b <= a:
                    continue
                curvature = angle_between(normals[a], normals[b]) / math.pi
                if curvature > result:
                    result = curvature
    return result


def control_points_are_linear(grid: Sequence[Sequence[Sequence[float]]], tol: float = 1e-6) -> bool:
    """Whether consecutive control-grid edges are parallel in both directions."""

    cps = np.asarray(grid, dtype=float)
    rows, cols = cps.shape[0], cps.shape[1]
    for i in range(rows - 2):
        for j in range(cols):
            if not is_parallel(cps[i + 1, j] - cps[i, j], cps[i + 2, j] - cps[i + 1, j], tol):
                return False
    for i in range(rows):
        for j in range(cols - 2):
            if not is_parallel(cps[i, j + 1] - cps[i, j], cps[i, j + 2] - cps[i, j + 1], tol):
                return False
    return True


def surface_resolution(surface: Surface, curvature: float, quality: float):
    rows, cols = surface.rows, surface.columns
    factor = curvature * quality
    slices = max(int(math.floor(surface.v_degree * rows * factor)), rows - 1)
    stacks = max(int(math.floor(surface.u_degree * cols * factor)), cols - 1)
    return slices, stacks


def tessellate_surface(surface: Surface, config: PipelineConfig = DEFAULT_CONFIG) -> Mesh:
    """Triangulate a validated surface with normals and UVs."""

    surface.validate()
    nurbs = NurbsSurface(surface.v_degree, surface.u_degree, surface.v_knots,
                         surface.u_knots, surface.homogeneous_grid())
    min_slices = surface.rows - 1
    min_stacks = surface.columns - 1
    hull = parametric_grid(nurbs.get_point, min_slices, min_stacks)

    curvature = max_curvature(hull)
    slices, stacks = surface_resolution(surface, curvature, config.surface_quality)
    if curvature < config.flat_limit and control_points_are_linear(surface.positions(), config.tolerance):
        slices = stacks = 1

    if (slices, stacks) != (max(min_slices, 1), max(min_stacks, 1)):
        mesh = parametric_grid(nurbs.get_point, slices, stacks)
    else:
        mesh = hull
    LOG.debug("surface %s: curvature %.4f, %d x %d cells", surface.name, curvature, slices, stacks)
    return synthesize_normals(mesh, config.smooth_limit_degrees)


def tessellate_arc(start: Sequence[float], middle: Sequence[float], end: Sequence[float],
                   config: PipelineConfig = DEFAULT_CONFIG) -> np.ndarray:
    """Sample the circle through three points from ``start`` to ``end``.

    Coincident or collinear input yields the polyline through the three
    points.
    """

    a = np.asarray(start, dtype=float)
    b = np.asarray(middle, dtype=float)
    c = np.asarray(end, dtype=float)
    ab = b - a
    bc = c - b
    tol = config.tolerance
    if (np.linalg.norm(ab) < tol or np.linalg.norm(bc) < tol
            or 1.0 - abs(float(np.dot(normalize(ab), normalize(bc)))) < tol):
        return np.vstack([a, b, c])

    center = _circumcenter(a, b, c)
    up = normalize(np.cross(ab, bc))
    rel_a = a - center
    angle = angle_between(rel_a, c - center)
    # inscribed angle at the middle point decides which way round the arc goes
    if math.pi - angle_between(ab, bc) < math.pi * 0.5:
        angle = 2.0 * math.pi - angle

    sections = int(math.ceil(angle * config.arc_sections_per_turn / (2.0 * math.pi)))
    sections = max(sections, 1)
    step = angle / sections
    return np.vstack([center + _rotate(rel_a, up, step * i) for i in range(sections + 1)])


def _circumcenter(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    u = b - a
    v = c - a
    w = np.cross(u, v)
    return a + (np.dot(u, u) * np.cross(v, w) + np.dot(v, v) * np.cross(w, u)) / (2.0 * np.dot(w, w))


def _rotate(vec: np.ndarray, axis: np.ndarray, theta: float) -> np.ndarray:
    # Rodrigues rotation about a unit axis
    cos = math.cos(theta)
    sin = math.sin(theta)
    return vec * cos + np.cross(axis, vec) * sin + axis * np.dot(axis, vec) * (1.0 - cos)


def circle_points(radius: float, resolution: int, start: float = 0.0,
                  end: Optional[float] = None) -> np.ndarray:
    """Closed polyline of a circle (or arc) in the XY plane."""

    end = 2.0 * math.pi if end is None else end
    angles = np.linspace(start, end, resolution + 1)
    return np.column_stack([radius * np.cos(angles), radius * np.sin(angles), np.zeros_like(angles)])


__all__ = [
    "circle_points",
    "control_points_are_linear",
    "curve_resolution",
    "max_curvature",
    "parametric_grid",
    "surface_resolution",
    "tessellate_arc",
    "tessellate_curve",
    "tessellate_surface",
]
