import struct

import numpy as np
import pytest

from tessgraph.errors import DegenerateGeometry
from tessgraph.stl import is_binary_stl, parse_stl, stl_to_mesh

ASCII_STL = """solid test
facet normal 0 0 1
  outer loop
    vertex 0 0 0
    vertex 1 0 0
    vertex 0 1 0
  endloop
endfacet
facet normal 0 0 1
  outer loop
    vertex 1 0 0
    vertex 1 1 0
    vertex 0 1 0
  endloop
endfacet
endsolid test
"""


def _binary_stl(triangles):
    data = bytearray(b"binary".ljust(80, b" "))
    data += struct.pack("<I", len(triangles))
    for tri in triangles:
        data += struct.pack("<12fH", 0, 0, 1, *tri[0], *tri[1], *tri[2], 0)
    return bytes(data)


def test_parse_ascii():
    triangles = parse_stl(ASCII_STL)
    assert len(triangles) == 2
    assert triangles[1].v1 == (1.0, 1.0, 0.0)


def test_parse_binary():
    data = _binary_stl([((0, 0, 0), (1, 0, 0), (0, 1, 0))])
    assert is_binary_stl(data)
    triangles = parse_stl(data)
    assert len(triangles) == 1
    assert triangles[0].v2 == (0.0, 1.0, 0.0)


def test_ascii_bytes_are_not_binary():
    assert not is_binary_stl(ASCII_STL.encode("ascii"))
    assert len(parse_stl(ASCII_STL.encode("ascii"))) == 2


def test_stl_to_mesh_synthesizes_normals():
    mesh = stl_to_mesh(ASCII_STL, name="brep")
    assert mesh.face_count == 2
    assert mesh.name == "brep"
    assert np.allclose(mesh.normals, (0.0, 0.0, 1.0))


def test_empty_stl_rejected():
    with pytest.raises(DegenerateGeometry):
        stl_to_mesh("solid empty\nendsolid empty\n")
