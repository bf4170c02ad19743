"""Mesh buffers.

A :class:`Mesh` is a tagged variant: ``kind`` says whether the positions
are drawn as points, a line strip or triangles. Attribute buffers are
numpy arrays with one row per vertex. Buffers are treated as immutable:
edits replace an array, so :meth:`Mesh.copy` can share them safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from tessgraph.geometry_utils import Triangle

ATTRIBUTE_NAMES = ("position", "normal", "color", "uv")


class MeshKind(Enum):
    POINTS = "points"
    LINES = "lines"
    TRIANGLES = "triangles"


@dataclass(eq=False)
class Mesh:
    """Vertex buffers plus placement and material for one drawable."""

    kind: MeshKind
    positions: Optional[np.ndarray]
    index: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None
    uvs: Optional[np.ndarray] = None
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4))
    material: Any = None
    user_data: Dict[str, Any] = field(default_factory=dict)
    name: str = ""

    def __post_init__(self) -> None:
        if self.positions is not None:
            self.positions = np.asarray(self.positions, dtype=float).reshape(-1, 3)
        if self.index is not None:
            self.index = np.asarray(self.index, dtype=np.int64).reshape(-1, 3)

    @property
    def released(self) -> bool:
        return self.positions is None

    @property
    def vertex_count(self) -> int:
        return 0 if self.positions is None else len(self.positions)

    @property
    def face_count(self) -> int:
        if self.kind is not MeshKind.TRIANGLES or self.positions is None:
            return 0
        if self.index is not None:
            return len(self.index)
        return len(self.positions) // 3

    @property
    def signature(self) -> str:
        return getattr(self.material, "signature", "")

    def attribute(self, name: str) -> Optional[np.ndarray]:
        return {
            "position": self.positions,
            "normal": self.normals,
            "color": self.colors,
            "uv": self.uvs,
        }[name]

    def set_attribute(self, name: str, value: Optional[np.ndarray]) -> None:
        if name == "position":
            self.positions = value
        elif name == "normal":
            self.normals = value
        elif name == "color":
            self.colors = value
        elif name == "uv":
            self.uvs = value
        else:
            raise KeyError(name)

    def attribute_names(self) -> List[str]:
        return [name for name in ATTRIBUTE_NAMES if self.attribute(name) is not None]

    def faces(self) -> np.ndarray:
        """Face index triples, implicit ones included."""

        if self.index is not None:
            return self.index
        return np.arange(self.face_count * 3, dtype=np.int64).reshape(-1, 3)

    def to_non_indexed(self) -> "Mesh":
        """Return a copy with one vertex per face corner and no index."""

        if self.index is None:
            return self.copy()
        flat = self.index.reshape(-1)
        out = self.copy()
        out.index = None
        for name in self.attribute_names():
            out.set_attribute(name, self.attribute(name)[flat])
        return out

    def copy(self) -> "Mesh":
        """Shallow copy: buffers are shared, placement and metadata are not."""

        return Mesh(
            kind=self.kind,
            positions=self.positions,
            index=self.index,
            normals=self.normals,
            colors=self.colors,
            uvs=self.uvs,
            matrix=self.matrix.copy(),
            material=self.material,
            user_data=dict(self.user_data),
            name=self.name,
        )

    def set_color(self, rgb) -> None:
        """Replace the per-vertex color buffer with a single color."""

        if self.positions is None:
            return
        self.colors = np.tile(np.asarray(rgb, dtype=float).reshape(1, 3), (len(self.positions), 1))

    def release(self) -> None:
        """Drop all buffers; the mesh must not be used afterwards."""

        self.positions = None
        self.index = None
        self.normals = None
        self.colors = None
        self.uvs = None


def triangle_mesh_from_triangles(triangles: List[Triangle], **kwargs: Any) -> Mesh:
    """Build a non-indexed triangle mesh with flat normals."""

    positions = np.zeros((len(triangles) * 3, 3))
    normals = np.zeros((len(triangles) * 3, 3))
    for i, tri in enumerate(triangles):
        positions[i * 3:i * 3 + 3] = (tri.v0, tri.v1, tri.v2)
        normals[i * 3:i * 3 + 3] = tri.normal
    return Mesh(MeshKind.TRIANGLES, positions, normals=normals, **kwargs)


def line_mesh(points, **kwargs: Any) -> Mesh:
    return Mesh(MeshKind.LINES, np.asarray(points, dtype=float).reshape(-1, 3), **kwargs)


__all__ = [
    "ATTRIBUTE_NAMES",
    "Mesh",
    "MeshKind",
    "line_mesh",
    "triangle_mesh_from_triangles",
]
