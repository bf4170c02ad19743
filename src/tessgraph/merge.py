"""Concatenate meshes that can share one draw call.

Triangle meshes merge when they share a material signature. Line meshes
are strips, so concatenating two would draw a segment between them; they
and point clouds are never merged. Each source's transform is baked into
its vertices relative to the first mesh of the group, and the sources are
released afterwards.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from tessgraph.errors import MismatchedAttributes
from tessgraph.geometry_utils import transform_normals, transform_points
from tessgraph.mesh import Mesh, MeshKind
from tessgraph.normals import synthesize_normals

LOG = logging.getLogger(__name__)


def _prepare(mesh: Mesh) -> Mesh:
    if mesh.index is not None:
        mesh = mesh.to_non_indexed()
    if mesh.kind is MeshKind.TRIANGLES and mesh.normals is None:
        mesh = synthesize_normals(mesh)
    return mesh


def merge_compatible(meshes: Sequence[Mesh]) -> Mesh:
    """Merge meshes already known to share one material signature.

    The result takes its placement, material and metadata from the first
    mesh. All meshes must carry the same set of attributes, otherwise
    :class:`MismatchedAttributes` is raised and the inputs are left
    untouched.
    """

    if not meshes:
        raise ValueError("merge_compatible needs at least one mesh")
    prepared = [_prepare(m) for m in meshes]
    base = prepared[0]
    names = base.attribute_names()
    for mesh in prepared[1:]:
        mismatched = sorted(set(names) ^ set(mesh.attribute_names()))
        if mismatched:
            raise MismatchedAttributes(f"Mismatched geometry attributes: {', '.join(mismatched)}")

    inverse_base = np.linalg.inv(base.matrix)
    buffers: Dict[str, List[np.ndarray]] = {name: [] for name in names}
    for mesh in prepared:
        relative = inverse_base @ mesh.matrix
        identity = np.allclose(relative, np.eye(4))
        for name in names:
            data = mesh.attribute(name)
            if not identity and name == "position":
                data = transform_points(relative, data)
            elif not identity and name == "normal":
                data = transform_normals(relative, data)
            buffers[name].append(data)

    merged = Mesh(
        kind=base.kind,
        positions=np.concatenate(buffers["position"]),
        matrix=base.matrix.copy(),
        material=base.material,
        user_data=dict(base.user_data),
        name=base.name,
    )
    for name in names:
        if name != "position":
            merged.set_attribute(name, np.concatenate(buffers[name]))
    merged.user_data["merged_ids"] = [m.user_data.get("id") for m in meshes]

    for mesh in list(meshes) + prepared:
        mesh.release()
    return merged


def _group_key(mesh: Mesh) -> Tuple[str, str]:
    return (mesh.kind.value, mesh.signature)


def merge_meshes(meshes: Sequence[Mesh], allow_merge: bool = True) -> List[Mesh]:
    """Reduce ``meshes`` to one mesh per (kind, material signature).

    Groups come out ordered by signature, each group keeping the position
    of its first member within that order. Line and point meshes follow
    in input order, unchanged, and disabled merging passes every input
    through. A group whose attribute layouts disagree is kept as separate
    meshes.
    """

    if not allow_merge:
        return list(meshes)

    groups: Dict[Tuple[str, str], List[Mesh]] = {}
    passthrough: List[Mesh] = []
    for mesh in meshes:
        if mesh.kind is not MeshKind.TRIANGLES:
            passthrough.append(mesh)
            continue
        groups.setdefault(_group_key(mesh), []).append(mesh)

    result: List[Mesh] = []
    for key in sorted(groups, key=lambda k: (k[1], k[0])):
        group = groups[key]
        if len(group) == 1:
            result.append(group[0])
            continue
        try:
            result.append(merge_compatible(group))
        except MismatchedAttributes as exc:
            LOG.warning("not merging %d meshes with signature %s: %s", len(group), key[1], exc)
            result.extend(group)
    return result + passthrough


__all__ = ["merge_compatible", "merge_meshes"]
