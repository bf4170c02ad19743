"""Geometry leaves for one list of entities.

The builder turns plain geometry entities into a container node whose
children are mesh leaves. Errors are caught per entity and recorded under
the entity's primitive name, so one broken curve never hides its siblings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

from tessgraph.collaborators import DEFAULT_COLLABORATORS, Collaborators
from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.context import ConversionContext, PendingRemote
from tessgraph.errors import GeometryError
from tessgraph.flatten import bucket_entities
from tessgraph.gateway import result_label
from tessgraph.merge import merge_meshes
from tessgraph.mesh import Mesh
from tessgraph.primitives import build_point_cloud, build_primitive, finish_mesh
from tessgraph.scene import NodeKind, SceneNode

LOG = logging.getLogger(__name__)


def leaf_node(mesh: Mesh) -> SceneNode:
    node_id = None if "merged_ids" in mesh.user_data else mesh.user_data.get("id")
    return SceneNode(NodeKind.LEAF, id=node_id, mesh=mesh)


def _with_result_attributes(entity: Mapping[str, Any], mesh: Mesh) -> Mapping[str, Any]:
    """``entity`` with the attributes returned by the server laid over its own."""

    returned = mesh.user_data.pop("attributes", None)
    if not returned:
        return entity
    attributes = dict(entity.get("attributes") or {})
    attributes.update(returned)
    return dict(entity, attributes=attributes)


class GeometryBuilder:
    """Builds, merges and places the meshes of plain geometry entities."""

    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG,
                 collaborators: Collaborators = DEFAULT_COLLABORATORS) -> None:
        self.config = config
        self.collaborators = collaborators

    def build_meshes(self, entities: Sequence[Mapping[str, Any]], status) -> List[Mesh]:
        meshes: List[Mesh] = []
        for data in entities:
            primitive = str(data.get("primitive"))
            try:
                meshes.append(build_primitive(data, self.config, self.collaborators))
            except GeometryError as exc:
                LOG.debug("could not build %s: %s", primitive, exc.message)
                status.append_error(primitive, exc.message)
                continue
            status.append_valid(primitive)
        return meshes

    def build(self, entities: Any, context: ConversionContext,
              allow_merge: bool = True) -> SceneNode:
        """Container node holding one leaf per (merged) mesh.

        Solids that need remote tessellation get an empty placeholder leaf
        and are queued on ``context`` for the gateway.
        """

        buckets = bucket_entities(entities, self.config.primitive_aliases)
        root = SceneNode(NodeKind.GEOMETRY)

        meshes = self.build_meshes(buckets.lines, context.status)
        meshes.extend(self.build_meshes(buckets.surfaces, context.status))
        if buckets.points:
            try:
                meshes.append(build_point_cloud(buckets.points, self.collaborators))
            except GeometryError as exc:
                context.status.append_error("point", exc.message)
            else:
                context.status.append_valid("point")

        for mesh in merge_meshes(meshes, allow_merge):
            root.add(leaf_node(mesh))

        for entity in buckets.remote:
            placeholder = root.add(SceneNode(NodeKind.LEAF, id=entity.get("id")))
            context.register_remote(entity, placeholder)

        LOG.debug("built %d geometry leaves from %d entities", len(root.children), len(buckets))
        return root

    def fill_remote(self, pending: Sequence[PendingRemote],
                    results: Dict[str, List[Mesh]]) -> None:
        """Splice gateway results into their placeholder leaves."""

        for i, item in enumerate(pending):
            meshes = results.get(result_label(i))
            if not meshes:
                continue
            finished = [finish_mesh(mesh, _with_result_attributes(item.entity, mesh), self.collaborators)
                        for mesh in meshes]
            item.placeholder.mesh = finished[0]
            for mesh in finished[1:]:
                item.placeholder.add(leaf_node(mesh))


__all__ = ["GeometryBuilder", "leaf_node"]
