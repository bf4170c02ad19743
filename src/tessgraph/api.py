"""One-call entry points.

>>> root, status = convert([{"primitive": "line", "start": [0, 0, 0], "end": [1, 0, 0]}])
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

from tessgraph.collaborators import DEFAULT_COLLABORATORS, Collaborators
from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.errors import StatusMap
from tessgraph.gateway import TessellationGateway
from tessgraph.scene import SceneNode
from tessgraph.scene_builder import SceneBuilder, SceneResults


def _builder(config: Optional[PipelineConfig], collaborators: Optional[Collaborators],
             gateway: Optional[TessellationGateway]) -> SceneBuilder:
    return SceneBuilder(config or DEFAULT_CONFIG, collaborators or DEFAULT_COLLABORATORS, gateway)


async def convert_async(entities: Any, config: Optional[PipelineConfig] = None,
                        collaborators: Optional[Collaborators] = None,
                        gateway: Optional[TessellationGateway] = None) -> SceneResults:
    return await _builder(config, collaborators, gateway).convert_async(entities)


def convert(entities: Any, config: Optional[PipelineConfig] = None,
            collaborators: Optional[Collaborators] = None,
            gateway: Optional[TessellationGateway] = None) -> Tuple[SceneNode, StatusMap]:
    """Convert ``entities`` and return the scene root and its status map.

    The root is always returned, even when it has no children.
    """

    results = _builder(config, collaborators, gateway).convert(entities)
    return results.root, results.status


__all__ = ["convert", "convert_async"]
