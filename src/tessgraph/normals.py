"""Crease-preserving vertex normals.

Triangles are split so that every face owns its three corners. Corners at
the same position are welded only to find which faces meet at a vertex;
the output keeps one normal per face corner. A corner's normal blends the
flat normals of neighbouring faces whose orientation is within the smoothing
angle of the corner's own face, so low-curvature regions shade smoothly and
sharp edges stay creased.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Tuple

import numpy as np

from tessgraph.geometry_utils import normalize
from tessgraph.mesh import Mesh, MeshKind

LOG = logging.getLogger(__name__)

DEFAULT_SMOOTH_THRESHOLD = 45.0
# squared distance under which three corner normals count as one
FLAT_TOLERANCE = 1e-6
# weld distance as a fraction of the largest bounding box side
WELD_TOLERANCE = 1e-4


def face_normals(positions: np.ndarray) -> np.ndarray:
    """Unit normal per implicit triangle; degenerate faces get zeros."""

    tri = np.asarray(positions, dtype=float).reshape(-1, 3, 3)
    cross = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
    return normalize(cross)


def build_adjacency(positions: np.ndarray) -> Dict[int, List[Tuple[int, int]]]:
    """Map welded vertex id to the ``(face, corner)`` pairs that touch it.

    The returned dictionary is keyed by welded id; :func:`weld_ids` gives the
    id of each face corner.
    """

    ids = weld_ids(positions)
    adjacency: Dict[int, List[Tuple[int, int]]] = {}
    for corner_index, vertex_id in enumerate(ids):
        adjacency.setdefault(int(vertex_id), []).append(divmod(corner_index, 3))
    return adjacency


def weld_ids(positions: np.ndarray) -> np.ndarray:
    """Shared id for every corner whose quantized position coincides.

    The quantization step scales with the size of the model, so tiny and
    huge meshes weld alike.
    """

    points = np.asarray(positions, dtype=float).reshape(-1, 3)
    size = float(np.ptp(points, axis=0).max()) if len(points) else 0.0
    step = WELD_TOLERANCE * size if size > 0.0 else WELD_TOLERANCE
    rounded = np.round(points / step)
    # -0.0 and 0.0 must weld together
    rounded = rounded + 0.0
    _, inverse = np.unique(rounded, axis=0, return_inverse=True)
    return inverse.reshape(-1)


def _cusp_normals(positions: np.ndarray, threshold: float) -> np.ndarray:
    flat = face_normals(positions)
    face_count = len(flat)
    ids = weld_ids(positions)
    adjacency = build_adjacency(positions)

    accum = np.zeros((face_count, 3, 3))
    for f in range(face_count):
        normal = flat[f]
        for corner in range(3):
            for neighbor, neighbor_corner in adjacency[int(ids[f * 3 + corner])]:
                if float(np.dot(normal, flat[neighbor])) > threshold:
                    accum[neighbor, neighbor_corner] += normal

    corners = normalize(accum)
    out = np.empty_like(corners)
    for f in range(face_count):
        c = corners[f]
        curved = (np.sum((c[0] - c[1]) ** 2) > FLAT_TOLERANCE
                  or np.sum((c[1] - c[2]) ** 2) > FLAT_TOLERANCE)
        out[f] = c if curved else flat[f]
    return out.reshape(-1, 3)


def synthesize_normals(mesh: Mesh, smooth_threshold: float = DEFAULT_SMOOTH_THRESHOLD) -> Mesh:
    """Return ``mesh`` split to face corners with synthesized normals.

    ``smooth_threshold`` is the largest angle in degrees between two faces
    that are still shaded as one surface. Non-triangle meshes are returned
    unchanged.
    """

    if mesh.kind is not MeshKind.TRIANGLES or mesh.positions is None:
        return mesh

    out = mesh.to_non_indexed()
    if out.vertex_count == 0:
        out.normals = np.zeros((0, 3))
        return out
    threshold = math.cos(math.radians(smooth_threshold))
    normals = _cusp_normals(out.positions, threshold)
    # guard against anything non-finite slipping through
    normals[~np.isfinite(normals)] = 0.0
    out.normals = normals
    LOG.debug("synthesized normals for %d faces", out.face_count)
    return out


__all__ = [
    "DEFAULT_SMOOTH_THRESHOLD",
    "build_adjacency",
    "face_normals",
    "synthesize_normals",
    "weld_ids",
]
