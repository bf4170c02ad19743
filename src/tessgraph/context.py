"""Per-conversion state.

A :class:`ConversionContext` lives for exactly one ``convert()`` call. It
owns every cache of that call, so results of a slow remote tessellation can
only ever land in the conversion that asked for them.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.errors import GeometryError, StatusMap
from tessgraph.materials import MaterialHandle
from tessgraph.scene import SceneNode

LOG = logging.getLogger(__name__)


@dataclass
class PendingRemote:
    """A solid waiting for remote tessellation and the node it will fill."""

    entity: Mapping[str, Any]
    placeholder: SceneNode


class ConversionContext:
    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.status = StatusMap()
        self.nodes: Dict[str, SceneNode] = {}
        self.entities: Dict[str, Mapping[str, Any]] = {}
        self.tasks: Dict[str, "asyncio.Future[SceneNode]"] = {}
        self.materials: Dict[str, MaterialHandle] = {}
        self.build_counts: Counter = Counter()
        self.pending_remote: List[PendingRemote] = []
        self.layers: List[Mapping[str, Any]] = []

    def set_entity_data(self, element: Mapping[str, Any]) -> None:
        if element.get("id"):
            self.entities[element["id"]] = element

    def get_entity_data(self, ref: Any) -> Optional[Mapping[str, Any]]:
        """Entity json for an id; inline entities are returned as given.

        Unknown ids yield ``None`` so partially valid scenes still render.
        """

        if isinstance(ref, str):
            return self.entities.get(ref)
        if ref is None:
            raise GeometryError("No entity or referenced id specified")
        return ref

    def cache_node(self, node_id: str, node: SceneNode) -> None:
        self.nodes[node_id] = node

    def get_node(self, node_id: str) -> Optional[SceneNode]:
        return self.nodes.get(node_id)

    async def build_once(self, node_id: str,
                         factory: Callable[[], Awaitable[SceneNode]]) -> SceneNode:
        """Build the node for ``node_id`` at most once.

        Concurrent callers for the same id await the single in-flight
        build instead of starting their own.
        """

        if node_id in self.nodes:
            return self.nodes[node_id]
        task = self.tasks.get(node_id)
        if task is None:
            self.build_counts[node_id] += 1
            LOG.debug("building %s", node_id)
            task = asyncio.ensure_future(factory())
            self.tasks[node_id] = task
        node = await task
        self.nodes.setdefault(node_id, node)
        return self.nodes[node_id]

    def register_remote(self, entity: Mapping[str, Any], placeholder: SceneNode) -> None:
        self.pending_remote.append(PendingRemote(entity, placeholder))

    def take_pending_remote(self) -> List[PendingRemote]:
        pending, self.pending_remote = self.pending_remote, []
        return pending


__all__ = ["ConversionContext", "PendingRemote"]
