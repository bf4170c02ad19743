"""Scene tree produced by a conversion."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import numpy as np

from tessgraph.mesh import Mesh

SENSOR_DIAGONAL = 43.0
PERSPECTIVE_FOV = 30.0
PERSPECTIVE_NEAR = 0.1
PERSPECTIVE_FAR = 100000.0
ORTHOGRAPHIC_NEAR = -1000.0
ORTHOGRAPHIC_FAR = 1000.0


class NodeKind(Enum):
    ROOT = "root"
    LAYER = "layer"
    GROUP = "group"
    INSTANCE = "instance"
    GEOMETRY = "geometry"
    MATERIAL = "material"
    TEXTURE = "texture"
    CAMERA = "camera"
    LEAF = "leaf"


@dataclass
class Camera:
    projection: str = "perspective"
    fov: float = PERSPECTIVE_FOV
    near: float = PERSPECTIVE_NEAR
    far: float = PERSPECTIVE_FAR

    @classmethod
    def from_entity(cls, data: Dict[str, Any]) -> "Camera":
        """Camera settings from a ``camera`` entity.

        Perspective cameras derive their vertical field of view from the
        focal length of a 35mm-equivalent sensor.
        """

        if data.get("type") != "perspective":
            return cls(
                projection="orthographic",
                fov=0.0,
                near=float(data.get("nearClip") or ORTHOGRAPHIC_NEAR),
                far=float(data.get("farClip") or ORTHOGRAPHIC_FAR),
            )
        fov = PERSPECTIVE_FOV
        focal = data.get("focalLength")
        if focal:
            fov = math.degrees(2.0 * math.atan(SENSOR_DIAGONAL / (2.0 * float(focal))))
        return cls(
            projection="perspective",
            fov=fov,
            near=float(data.get("nearClip") or PERSPECTIVE_NEAR),
            far=float(data.get("farClip") or PERSPECTIVE_FAR),
        )


class SceneNode:
    """Node of the output tree.

    A node has at most one parent: :meth:`add` detaches the child from its
    previous parent first.
    """

    def __init__(self, kind: NodeKind, id: Optional[str] = None,
                 matrix: Optional[np.ndarray] = None, mesh: Optional[Mesh] = None) -> None:
        self.kind = kind
        self.id = id
        self.matrix = np.eye(4) if matrix is None else np.asarray(matrix, dtype=float)
        self.mesh = mesh
        self.children: List["SceneNode"] = []
        self.parent: Optional["SceneNode"] = None
        self.visible = True
        self.camera: Optional[Camera] = None
        self.texture: Optional[str] = None
        self.material: Any = None
        self.user_data: Dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"SceneNode({self.kind.value!r}, id={self.id!r}, children={len(self.children)})"

    def add(self, child: "SceneNode") -> "SceneNode":
        if child is self:
            raise ValueError("a scene node cannot be its own child")
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def remove(self, child: "SceneNode") -> None:
        self.children.remove(child)
        child.parent = None

    def traverse(self) -> Iterator["SceneNode"]:
        """Pre-order walk including ``self``."""

        yield self
        for child in list(self.children):
            yield from child.traverse()

    def leaves(self) -> List["SceneNode"]:
        return [node for node in self.traverse() if node.mesh is not None]

    def meshes(self) -> List[Mesh]:
        return [node.mesh for node in self.leaves()]

    def world_matrix(self) -> np.ndarray:
        matrix = self.matrix
        node = self.parent
        while node is not None:
            matrix = node.matrix @ matrix
            node = node.parent
        return matrix

    def matrix_relative_to(self, ancestor: "SceneNode") -> np.ndarray:
        """Transform from this node's frame to ``ancestor``'s frame."""

        matrix = np.eye(4)
        node: Optional[SceneNode] = self
        while node is not None and node is not ancestor:
            matrix = node.matrix @ matrix
            node = node.parent
        if node is None:
            raise ValueError(f"{ancestor!r} is not an ancestor of {self!r}")
        return matrix


__all__ = [
    "Camera",
    "NodeKind",
    "SceneNode",
]
