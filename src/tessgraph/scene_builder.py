"""Conversion of entity lists and scenes into a :class:`SceneNode` tree.

A conversion runs in four phases:

* Flatten: nested input is flattened, aliased, unit converted and
  validated. Invalid entities are dropped and reported.
* BuildLeaves: every scene element with an id is built exactly once, all
  of them concurrently. Plain geometry entities become geometry containers.
* Gateway: solids waiting for remote tessellation are sent in one batch
  and their placeholder leaves are filled in.
* Link and Finalize: layers, groups and instances are wired together in
  dependency order, layer colors are applied and scene materials are
  assigned so that the nearest ancestor wins.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

import numpy as np

from tessgraph.collaborators import DEFAULT_COLLABORATORS, SCENE_PRIMITIVES, Collaborators
from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.context import ConversionContext
from tessgraph.errors import StatusMap
from tessgraph.flatten import apply_aliases, flatten_entities
from tessgraph.gateway import TessellationGateway
from tessgraph.geometry_builder import GeometryBuilder
from tessgraph.geometry_utils import matrix_from_list
from tessgraph.materials import MaterialHandle, MaterialKind, parse_color
from tessgraph.mesh import MeshKind
from tessgraph.scene import Camera, NodeKind, SceneNode

LOG = logging.getLogger(__name__)

SCENE_KEY = "scene"
WHITE = (1.0, 1.0, 1.0)

_NODE_KINDS = {
    "layer": NodeKind.LAYER,
    "group": NodeKind.GROUP,
    "instance": NodeKind.INSTANCE,
}

_MESH_MATERIAL_KINDS = {
    MeshKind.TRIANGLES: MaterialKind.SURFACE,
    MeshKind.LINES: MaterialKind.LINE,
    MeshKind.POINTS: MaterialKind.POINT,
}


def is_scene(entities: Sequence[Any]) -> bool:
    """A list is rendered as a scene when it holds at least one layer."""

    return any(isinstance(e, Mapping) and e.get("primitive") == "layer" for e in entities)


def _references(entity: Mapping[str, Any]) -> List[str]:
    primitive = entity.get("primitive")
    if primitive == "layer":
        return list(entity.get("elements") or [])
    if primitive == "group":
        return list(entity.get("children") or [])
    if primitive == "instance":
        return [entity["entity"]] if isinstance(entity.get("entity"), str) else []
    return []


def check_scene(entities: Sequence[Mapping[str, Any]]) -> List[str]:
    """Messages describing broken references and cycles; empty when valid."""

    by_id = {e["id"]: e for e in entities if isinstance(e, Mapping) and e.get("id")}
    messages: List[str] = []
    for entity in entities:
        primitive = entity.get("primitive")
        if primitive not in SCENE_PRIMITIVES:
            continue
        for ref in _references(entity):
            if ref not in by_id:
                messages.append(f"{primitive} {entity.get('id')} references missing element {ref}")
        material = entity.get("material")
        if material is not None and by_id.get(material, {}).get("primitive") != "material":
            messages.append(f"{primitive} {entity.get('id')} references missing material {material}")
        color_map = entity.get("colorMap") if primitive == "material" else None
        if color_map is not None and color_map not in by_id:
            messages.append(f"material {entity.get('id')} references missing texture {color_map}")

    # depth first search over layer, group and instance references
    state: Dict[str, int] = {}

    def visit(node_id: str) -> bool:
        state[node_id] = 1
        entity = by_id[node_id]
        if entity.get("primitive") in ("layer", "group", "instance"):
            for ref in _references(entity):
                if ref not in by_id:
                    continue
                if state.get(ref) == 1:
                    messages.append(f"cyclic reference between {node_id} and {ref}")
                    return False
                if ref not in state and not visit(ref):
                    return False
        state[node_id] = 2
        return True

    for node_id in by_id:
        if node_id not in state:
            visit(node_id)
    return messages


def _paint(node: SceneNode, color: Any) -> None:
    """Reset vertex colors to white and move ``color`` onto the materials."""

    rgb = parse_color(color)
    for leaf in node.leaves():
        mesh = leaf.mesh
        mesh.set_color(WHITE)
        if isinstance(mesh.material, MaterialHandle):
            mesh.material = mesh.material.with_color(rgb)


class SceneResults:
    """Outcome of one conversion: the tree, its status and its id map."""

    def __init__(self, root: SceneNode, context: ConversionContext) -> None:
        self.root = root
        self.status = context.status
        self.nodes = context.nodes
        self.build_counts = context.build_counts

    def is_empty(self) -> bool:
        return not self.root.children

    def get_object(self) -> Optional[SceneNode]:
        """The root node, or ``None`` when nothing would render."""
        return None if self.is_empty() else self.root

    def get_object_by_id(self, node_id: str) -> Optional[SceneNode]:
        return self.nodes.get(node_id)

    def set_element_visible(self, node_id: str, visible: bool) -> bool:
        node = self.get_object_by_id(node_id)
        if node is None:
            return False
        node.visible = bool(visible)
        return True

    def set_element_color(self, node_id: str, color: Any) -> bool:
        """Override the color of every mesh under ``node_id``.

        Per-vertex colors are discarded.
        """

        node = self.get_object_by_id(node_id)
        if node is None or not color:
            return False
        _paint(node, color)
        return True

    def error_summary(self) -> str:
        return self.status.invalid_key_summary()


class SceneBuilder:
    """Converts entity json into scene trees.

    Parameters
    ----------
    config : PipelineConfig
        Tessellation and transport settings.
    collaborators : Collaborators
        Analytic shapes, material resolution, validation and units.
    gateway : TessellationGateway, optional
        Remote solid tessellation; built from ``config`` when omitted.
    """

    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG,
                 collaborators: Collaborators = DEFAULT_COLLABORATORS,
                 gateway: Optional[TessellationGateway] = None) -> None:
        self.config = config
        self.collaborators = collaborators
        self.gateway = gateway or TessellationGateway(config)
        self.geometry = GeometryBuilder(config, collaborators)
        self.allow_merge = config.allow_merge

    def set_allow_merge(self, allow_merge: bool) -> None:
        """Merging reduces draw calls but selection then applies to whole merged meshes."""
        self.allow_merge = bool(allow_merge)

    def convert(self, entities: Any) -> SceneResults:
        return asyncio.run(self.convert_async(entities))

    async def convert_async(self, entities: Any) -> SceneResults:
        context = ConversionContext(self.config)
        root = SceneNode(NodeKind.ROOT)
        if not isinstance(entities, (list, tuple)) and not (
                isinstance(entities, Mapping) and entities.get("primitive")):
            return SceneResults(root, context)

        data = self.prepare(entities, context.status)
        if is_scene(data):
            problems = check_scene(data)
            if not problems:
                await self._convert_scene(data, context, root)
                return SceneResults(root, context)
            LOG.debug("scene is invalid, rendering bare geometry: %s", problems)
            prepared = StatusMap()
            prepared.merge(context.status)
            await self._convert_entities(data, context, root)
            # scene errors replace the geometry ones; validation errors stay
            context.status.clear()
            context.status.merge(prepared)
            for message in problems:
                context.status.append_error(SCENE_KEY, message)
            return SceneResults(root, context)

        await self._convert_entities(data, context, root)
        return SceneResults(root, context)

    def prepare(self, entities: Any, status: StatusMap) -> List[Mapping[str, Any]]:
        """Flatten, alias, convert units and validate the input entities."""

        prepared: List[Mapping[str, Any]] = []
        for entity in flatten_entities(entities):
            entity = apply_aliases(entity, self.config.primitive_aliases)
            result = self.collaborators.validate_entity(entity)
            if not result.valid:
                key = entity.get("primitive") if isinstance(entity, Mapping) else None
                status.append_error(str(key or "entity"), result.message)
                continue
            prepared.append(self.collaborators.convert_units(entity))
        return prepared

    async def _tessellate_remote(self, context: ConversionContext) -> None:
        pending = context.take_pending_remote()
        if not pending:
            return
        results = await self.gateway.tessellate([p.entity for p in pending], context.status)
        self.geometry.fill_remote(pending, results)

    async def _convert_entities(self, entities: Sequence[Mapping[str, Any]],
                                context: ConversionContext, root: SceneNode) -> None:
        node = self.geometry.build(entities, context, self.allow_merge)
        await self._tessellate_remote(context)
        for child in list(node.children):
            root.add(child)
        for leaf in root.traverse():
            if leaf.id is not None:
                context.cache_node(leaf.id, leaf)

    # BuildLeaves

    async def _build_element(self, element: Mapping[str, Any], context: ConversionContext) -> SceneNode:
        primitive = element.get("primitive")
        if primitive == "texture":
            node = SceneNode(NodeKind.TEXTURE)
            node.texture = element.get("image")
        elif primitive == "camera":
            node = SceneNode(NodeKind.CAMERA)
            node.camera = Camera.from_entity(element)
        elif primitive == "geometry":
            node = self.geometry.build(element.get("entities"), context, self.allow_merge)
        elif primitive in _NODE_KINDS:
            node = SceneNode(_NODE_KINDS[primitive])
        else:
            node = self.geometry.build([element], context, self.allow_merge)
        node.id = element["id"]
        node.user_data.update(id=element["id"], primitive=primitive, data=element,
                              name=f"{primitive}:{element['id']}")
        return node

    async def _convert_scene(self, entities: Sequence[Mapping[str, Any]],
                             context: ConversionContext, root: SceneNode) -> None:
        builds = []
        for element in entities:
            context.set_entity_data(element)
            if element.get("primitive") == "layer":
                context.layers.append(element)
            # materials are created on demand during Finalize
            if not element.get("id") or element.get("primitive") == "material":
                continue
            builds.append(context.build_once(
                element["id"], lambda element=element: self._build_element(element, context)))
        await asyncio.gather(*builds)
        await self._tessellate_remote(context)

        linked: Set[str] = set()
        for element in entities:
            if element.get("id"):
                self._link(element["id"], context, linked)
        for layer in context.layers:
            node = context.get_node(layer["id"])
            if node is not None:
                root.add(node)
        self._apply_layer_colors(context)
        self._apply_materials(root, context)

    # Link

    def _link(self, node_id: str, context: ConversionContext, linked: Set[str]) -> None:
        """Wire ``node_id`` after everything it references."""

        if node_id in linked:
            return
        linked.add(node_id)
        entity = context.get_entity_data(node_id)
        node = context.get_node(node_id)
        if entity is None or node is None:
            return
        for ref in _references(entity):
            self._link(ref, context, linked)

        primitive = entity.get("primitive")
        if primitive == "layer":
            for ref in entity["elements"]:
                child = context.get_node(ref)
                if child is not None:
                    node.add(child)
            if entity.get("visible") is not None:
                node.visible = bool(entity["visible"])
        elif primitive == "group":
            node.matrix = matrix_from_list(entity.get("matrix"))
            for ref in entity["children"]:
                child = context.get_node(ref)
                if child is not None:
                    node.add(child)
        elif primitive == "instance":
            node.matrix = matrix_from_list(entity.get("matrix"))
            self._instantiate(entity, node, context)

    def _instantiate(self, entity: Mapping[str, Any], node: SceneNode,
                     context: ConversionContext) -> None:
        """Give ``node`` its own copies of the referenced element's leaves."""

        ref = context.get_entity_data(entity["entity"])
        source = context.get_node(ref["id"]) if ref and ref.get("id") else None
        if ref is None or source is None or ref.get("primitive") == "texture":
            return
        if ref.get("primitive") == "camera":
            node.add(source)
            return
        for leaf in source.leaves():
            mesh = leaf.mesh.copy()
            mesh.matrix = leaf.matrix_relative_to(source) @ mesh.matrix
            copy = SceneNode(NodeKind.LEAF, id=leaf.id, mesh=mesh)
            copy.user_data = dict(leaf.user_data)
            node.add(copy)

    # Finalize

    def _apply_layer_colors(self, context: ConversionContext) -> None:
        for layer in context.layers:
            node = context.get_node(layer["id"])
            if node is not None and layer.get("color"):
                _paint(node, layer["color"])

    def _material(self, material_id: str, kind: MaterialKind,
                  context: ConversionContext) -> Optional[MaterialHandle]:
        """Scene material ``material_id`` for meshes of ``kind``, cached per conversion."""

        key = f"{material_id}:{kind.value}"
        if key in context.materials:
            return context.materials[key]
        data = context.get_entity_data(material_id)
        if data is None:
            return None
        material = self.collaborators.resolve_material(data, kind)
        color_map = data.get("colorMap")
        if color_map is not None and kind is MaterialKind.SURFACE:
            child = context.get_entity_data(color_map)
            texture = child
            offset, repeat = (0.0, 0.0), (1.0, 1.0)
            if child is not None and child.get("primitive") == "instance":
                texture = context.get_entity_data(child.get("entity"))
                matrix = matrix_from_list(child.get("matrix"))
                offset = (float(matrix[0, 3]), float(matrix[1, 3]))
                repeat = (float(np.linalg.norm(matrix[:3, 0])), float(np.linalg.norm(matrix[:3, 1])))
            if texture is not None and texture.get("image"):
                material = material.with_texture(texture["image"], offset, repeat)
        context.materials[key] = material
        return material

    def _apply_materials(self, root: SceneNode, context: ConversionContext) -> None:
        """Pre-order assignment, so materials on deeper nodes override their ancestors."""

        for node in root.traverse():
            data = node.user_data.get("data") or {}
            material_id = data.get("material")
            if material_id is None:
                continue
            node.material = material_id
            for leaf in node.leaves():
                material = self._material(material_id, _MESH_MATERIAL_KINDS[leaf.mesh.kind], context)
                if material is None:
                    continue
                leaf.mesh.material = material
                # scene materials ignore per-vertex colors
                leaf.mesh.set_color(WHITE)


__all__ = [
    "SCENE_KEY",
    "SceneBuilder",
    "SceneResults",
    "check_scene",
    "is_scene",
]
