"""STL decoding for tessellation results and ``stl`` entities."""

from __future__ import annotations

import re
import struct
from typing import List, Union

from tessgraph.errors import DegenerateGeometry
from tessgraph.geometry_utils import Triangle
from tessgraph.mesh import Mesh, triangle_mesh_from_triangles
from tessgraph.normals import synthesize_normals

_HEADER_SIZE = 80
_STRUCT_TRIANGLE = struct.Struct('<12fH')

_NUMBER = r'([eE\d.+-]+)'
_FACET_PATTERN = re.compile(
    r'facet\s+normal\s+' + r'\s+'.join([_NUMBER] * 3) + r'\s+'
    r'outer\s+loop\s+'
    r'vertex\s+' + r'\s+'.join([_NUMBER] * 3) + r'\s+'
    r'vertex\s+' + r'\s+'.join([_NUMBER] * 3) + r'\s+'
    r'vertex\s+' + r'\s+'.join([_NUMBER] * 3) + r'\s+'
    r'endloop\s+endfacet',
    re.IGNORECASE
)


def is_binary_stl(data: bytes) -> bool:
    """Determine if STL data is binary format.

    Binary STL has 80-byte header + 4-byte count, then 50 bytes per triangle.
    ASCII STL starts with 'solid' keyword.
    """
    if len(data) < 84:
        return False

    header = data[:_HEADER_SIZE].decode('ascii', errors='ignore').strip().lower()
    if not header.startswith('solid'):
        return True
    # 'solid' may still open a binary header; trust the size
    tri_count = struct.unpack('<I', data[80:84])[0]
    if len(data) != 84 + tri_count * 50:
        return False
    rest = data[84:min(200, len(data))]
    return not (b'facet' in rest or b'vertex' in rest)


def parse_binary_stl(data: bytes) -> List[Triangle]:
    """Parse binary STL data into triangles."""
    if len(data) < 84:
        raise DegenerateGeometry("Invalid binary STL: data too small")

    tri_count = struct.unpack('<I', data[80:84])[0]
    triangles = []
    offset = 84

    for _ in range(tri_count):
        if offset + 50 > len(data):
            break
        values = _STRUCT_TRIANGLE.unpack(data[offset:offset + 50])
        triangles.append(Triangle(normal=values[0:3], v0=values[3:6], v1=values[6:9], v2=values[9:12]))
        offset += 50

    return triangles


def parse_ascii_stl(text: str) -> List[Triangle]:
    """Parse ASCII STL text into triangles."""
    triangles = []
    for match in _FACET_PATTERN.finditer(text):
        values = [float(g) for g in match.groups()]
        triangles.append(Triangle(normal=tuple(values[0:3]), v0=tuple(values[3:6]),
                                  v1=tuple(values[6:9]), v2=tuple(values[9:12])))
    return triangles


def parse_stl(data: Union[str, bytes]) -> List[Triangle]:
    if isinstance(data, str):
        return parse_ascii_stl(data)
    if is_binary_stl(data):
        return parse_binary_stl(data)
    return parse_ascii_stl(data.decode('ascii', errors='ignore'))


def stl_to_mesh(data: Union[str, bytes], name: str = "stl") -> Mesh:
    """Triangle mesh with crease-aware normals from STL content."""

    triangles = parse_stl(data)
    if not triangles:
        raise DegenerateGeometry("STL data contains no triangles.", entity=name)
    mesh = triangle_mesh_from_triangles(triangles, name=name)
    return synthesize_normals(mesh)


__all__ = [
    "is_binary_stl",
    "parse_ascii_stl",
    "parse_binary_stl",
    "parse_stl",
    "stl_to_mesh",
]
