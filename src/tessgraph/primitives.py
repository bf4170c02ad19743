"""Entity dictionaries to meshes.

:func:`build_primitive` dispatches on ``primitive``: wire kinds become line
meshes, sheet and solid kinds become triangle meshes, and anything listed
in the collaborators' analytic kinds is delegated to them.
:func:`build_point_cloud` gathers every ``point`` entity into one mesh.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Sequence

import numpy as np

from tessgraph.collaborators import DEFAULT_COLLABORATORS, Collaborators
from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.entities import curve_from_json, surface_from_json
from tessgraph.errors import DegenerateGeometry, UnknownPrimitiveType
from tessgraph.geometry_utils import look_at_matrix, normalize, to_vec3, translation
from tessgraph.materials import (
    DEFAULT_MATERIAL_PROPERTIES,
    MaterialKind,
    entity_attribute,
    find_material_properties,
    material_kind_for,
    parse_color,
)
from tessgraph.mesh import Mesh, MeshKind, line_mesh
from tessgraph.normals import synthesize_normals
from tessgraph.stl import stl_to_mesh
from tessgraph.tessellate import tessellate_arc, tessellate_curve, tessellate_surface

LOG = logging.getLogger(__name__)

UP = np.array((0.0, 0.0, 1.0))
RIGHT = np.array((1.0, 0.0, 0.0))
IN = np.array((0.0, 1.0, 0.0))

Builder = Callable[[Mapping[str, Any], PipelineConfig], Mesh]


def _points(values: Sequence[Sequence[float]]) -> np.ndarray:
    return np.array([to_vec3(p) for p in values], dtype=float).reshape(-1, 3)


def line(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    return line_mesh(_points([data["start"], data["end"]]))


def polyline(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    points = _points(data["points"])
    if len(points) < 2:
        raise DegenerateGeometry("Polyline needs at least two points.", entity="polyline")
    return line_mesh(points)


def arc(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    if not data.get("start") or not data.get("middle") or not data.get("end"):
        raise DegenerateGeometry("Can not create arc due to incomplete definition.", entity="arc")
    return line_mesh(tessellate_arc(to_vec3(data["start"]), to_vec3(data["middle"]),
                                    to_vec3(data["end"]), config))


def curve(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    return line_mesh(tessellate_curve(curve_from_json(data), config))


def surface(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    return tessellate_surface(surface_from_json(data), config)


def polygon_mesh(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    """Triangle mesh from ``vertices`` and polygon ``faces``.

    Polygons with more than three corners are fanned from their first
    corner, so they must be convex, planar and counter-clockwise.
    """

    vertices = _points(data["vertices"])
    triangles: List[Sequence[int]] = []
    for face in data["faces"]:
        if len(face) < 3:
            continue
        for j in range(len(face) - 2):
            triangles.append((face[0], face[j + 1], face[j + 2]))
    if not triangles:
        raise DegenerateGeometry("Mesh has no faces.", entity=data.get("primitive"))
    index = np.asarray(triangles, dtype=np.int64)
    if index.min() < 0 or index.max() >= len(vertices):
        raise DegenerateGeometry("Mesh face refers to a missing vertex.", entity=data.get("primitive"))
    mesh = Mesh(MeshKind.TRIANGLES, vertices, index=index)
    return synthesize_normals(mesh, config.smooth_limit_degrees)


def stl(data: Mapping[str, Any], config: PipelineConfig) -> Mesh:
    return stl_to_mesh(data["data"])


PRIMITIVE_BUILDERS: Dict[str, Builder] = {
    "line": line,
    "polyline": polyline,
    "arc": arc,
    "curve": curve,
    "surface": surface,
    "mesh": polygon_mesh,
    "brep": polygon_mesh,
    "stl": stl,
}


def build_point_cloud(entities: Sequence[Mapping[str, Any]],
                      collaborators: Collaborators = DEFAULT_COLLABORATORS) -> Mesh:
    """One point mesh with per-point colors for all ``point`` entities.

    The point size comes from the first entity, since it cannot vary per
    point.
    """

    default_color = DEFAULT_MATERIAL_PROPERTIES[MaterialKind.POINT]["color"]
    positions = np.zeros((len(entities), 3))
    colors = np.zeros((len(entities), 3))
    for i, entity in enumerate(entities):
        positions[i] = to_vec3(entity["point"])
        colors[i] = parse_color(entity_attribute(entity, "color"), default_color)
    material = collaborators.resolve_material(
        find_material_properties(entities[0]) if entities else {}, MaterialKind.POINT)
    return Mesh(MeshKind.POINTS, positions, colors=colors,
                material=material.with_color((1.0, 1.0, 1.0)),
                user_data={"primitive": "point"}, name="points")


def placement_matrix(data: Mapping[str, Any]) -> np.ndarray:
    """Local transform from ``origin``, ``axis`` and ``reference``.

    The axis becomes local +Z; the reference direction picks the rotation
    about it.
    """

    matrix = np.eye(4)
    origin = data.get("origin")
    axis = data.get("axis") or data.get("direction") or data.get("normal")
    reference = data.get("reference")
    if reference is not None or axis is not None:
        axis_vec = UP if axis is None else normalize(np.asarray(to_vec3(axis)))
        if reference is not None:
            ref_vec = normalize(np.asarray(to_vec3(reference)))
        elif float(np.sum((RIGHT - axis_vec) ** 2)) < 1e-6:
            ref_vec = IN
        else:
            ref_vec = RIGHT
        matrix = look_at_matrix(axis_vec, np.cross(ref_vec, axis_vec))
    if origin is not None:
        matrix = translation(*to_vec3(origin)) @ matrix
    return matrix


def build_primitive(data: Mapping[str, Any], config: PipelineConfig = DEFAULT_CONFIG,
                    collaborators: Collaborators = DEFAULT_COLLABORATORS) -> Mesh:
    """Build, color and place the mesh for one non-point entity.

    The material color is moved into a per-vertex color buffer so meshes
    that differ only in color can still be merged.
    """

    primitive = data.get("primitive")
    if primitive in collaborators.analytic_kinds:
        mesh = collaborators.build_analytic_primitive(primitive, data)
    else:
        builder = PRIMITIVE_BUILDERS.get(primitive)
        if builder is None:
            raise UnknownPrimitiveType(entity=primitive)
        mesh = builder(data, config)
    LOG.debug("built %s with %d vertices", primitive, mesh.vertex_count)
    return finish_mesh(mesh, data, collaborators)


def finish_mesh(mesh: Mesh, data: Mapping[str, Any],
                collaborators: Collaborators = DEFAULT_COLLABORATORS) -> Mesh:
    """Apply material, color, placement and identity of ``data`` to ``mesh``."""

    primitive = data.get("primitive")
    kind = material_kind_for(primitive)
    if mesh.kind is MeshKind.TRIANGLES:
        kind = MaterialKind.SURFACE
    material = collaborators.resolve_material(find_material_properties(data), kind)
    color = parse_color(entity_attribute(data, "color"), material.color)
    mesh.set_color(color)
    # material color multiplies the vertex colors, so it is reset to white
    mesh.material = material.with_color((1.0, 1.0, 1.0))
    mesh.matrix = placement_matrix(data) @ mesh.matrix
    mesh.name = str(primitive)
    mesh.user_data["primitive"] = primitive
    if data.get("id") is not None:
        mesh.user_data["id"] = data["id"]
    attributes = data.get("attributes") or {}
    if attributes.get("tag") is not None:
        mesh.user_data["tag"] = attributes["tag"]
    return mesh


__all__ = [
    "PRIMITIVE_BUILDERS",
    "build_point_cloud",
    "build_primitive",
    "finish_mesh",
    "placement_matrix",
]
