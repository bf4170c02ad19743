# -*- coding: utf-8 -*-
from importlib.metadata import PackageNotFoundError, version

from tessgraph.api import convert, convert_async
from tessgraph.collaborators import Collaborators
from tessgraph.config import PipelineConfig, load_config
from tessgraph.errors import GeometryError, StatusMap
from tessgraph.scene_builder import SceneBuilder, SceneResults

try:
    __version__ = version("tessgraph")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

__all__ = [
    "Collaborators",
    "GeometryError",
    "PipelineConfig",
    "SceneBuilder",
    "SceneResults",
    "StatusMap",
    "convert",
    "convert_async",
    "load_config",
]
