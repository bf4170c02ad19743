"""Common vector and matrix helpers shared across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]

epsilon = 1e-10


@dataclass(frozen=True)
class Triangle:
    """Immutable triangle representation in XYZ space."""

    normal: Vec3
    v0: Vec3
    v1: Vec3
    v2: Vec3


def to_vec3(point_like: Sequence[float]) -> Vec3:
    """Return the XYZ components of a 2D or 3D coordinate list as a tuple."""

    if len(point_like) < 2:
        raise ValueError("value must have at least two components")
    z = float(point_like[2]) if len(point_like) > 2 else 0.0
    return float(point_like[0]), float(point_like[1]), z


def normalize(vec: np.ndarray) -> np.ndarray:
    """Normalize rows of ``vec``; zero-length rows stay zero."""

    vec = np.asarray(vec, dtype=float)
    length = np.linalg.norm(vec, axis=-1, keepdims=True)
    safe = np.where(length > epsilon, length, 1.0)
    return np.where(length > epsilon, vec / safe, 0.0)


def angle_between(a: Sequence[float], b: Sequence[float]) -> float:
    """Angle in radians between two vectors, 0 if either is degenerate."""

    na = np.linalg.norm(a)
    nb = np.linalg.norm(b)
    if na <= epsilon or nb <= epsilon:
        return 0.0
    cos = float(np.dot(a, b) / (na * nb))
    return float(np.arccos(min(1.0, max(-1.0, cos))))


def is_parallel(a: Sequence[float], b: Sequence[float], tol: float = 1e-6) -> bool:
    """``True`` when ``a`` and ``b`` point the same way within ``tol``."""

    na = np.linalg.norm(a)
    nb = np.linalg.norm(b)
    if na <= epsilon or nb <= epsilon:
        return False
    return abs(float(np.dot(a, b) / (na * nb)) - 1.0) <= tol


def matrix_from_list(values: Optional[Sequence[float]]) -> np.ndarray:
    """Build a 4x4 matrix from 16 row-major values (``None`` is identity)."""

    if values is None:
        return np.eye(4)
    arr = np.asarray(values, dtype=float)
    if arr.size != 16:
        raise ValueError(f"transform must have 16 values, got {arr.size}")
    return arr.reshape(4, 4)


def translation(x: float, y: float, z: float) -> np.ndarray:
    mat = np.eye(4)
    mat[:3, 3] = (x, y, z)
    return mat


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 4x4 matrix to an N x 3 array of positions."""

    points = np.asarray(points, dtype=float).reshape(-1, 3)
    homo = np.hstack([points, np.ones((len(points), 1))])
    out = homo @ matrix.T
    w = out[:, 3:4]
    if np.allclose(w, 1.0):
        return out[:, :3]
    return out[:, :3] / w


def transform_normals(matrix: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Apply the inverse transpose of ``matrix`` to unit normals."""

    normals = np.asarray(normals, dtype=float).reshape(-1, 3)
    normal_matrix = np.linalg.inv(matrix[:3, :3]).T
    return normalize(normals @ normal_matrix.T)


def look_at_matrix(axis: Sequence[float], up: Sequence[float]) -> np.ndarray:
    """Rotation taking +Z to ``axis`` with ``up`` as the local +Y."""

    z = normalize(np.asarray(axis, dtype=float))
    x = np.cross(up, z)
    if np.linalg.norm(x) <= epsilon:
        x = np.cross((0.0, 1.0, 0.0) if abs(z[1]) < 0.9 else (1.0, 0.0, 0.0), z)
    x = normalize(x)
    y = np.cross(z, x)
    mat = np.eye(4)
    mat[:3, 0] = x
    mat[:3, 1] = y
    mat[:3, 2] = z
    return mat


__all__ = [
    "Triangle",
    "Vec3",
    "angle_between",
    "is_parallel",
    "look_at_matrix",
    "matrix_from_list",
    "normalize",
    "to_vec3",
    "transform_normals",
    "transform_points",
    "translation",
]
