import numpy as np
import pytest

from tessgraph.errors import MismatchedAttributes
from tessgraph.geometry_utils import translation
from tessgraph.materials import MaterialKind, resolve_material
from tessgraph.merge import merge_compatible, merge_meshes
from tessgraph.mesh import Mesh, MeshKind, line_mesh


def _triangle(offset=(0.0, 0.0, 0.0), opacity=1.0, uvs=False):
    mesh = Mesh(
        MeshKind.TRIANGLES,
        [(0, 0, 0), (1, 0, 0), (0, 1, 0)],
        colors=np.ones((3, 3)),
        uvs=np.zeros((3, 2)) if uvs else None,
        material=resolve_material({"opacity": opacity}),
    )
    mesh.matrix = translation(*offset)
    return mesh


def _contains(points, target):
    return bool(np.any(np.all(np.isclose(points, target), axis=1)))


def test_merge_composes_transforms():
    a = _triangle()
    b = _triangle(offset=(5.0, 0.0, 0.0))
    merged = merge_meshes([a, b])
    assert len(merged) == 1
    mesh = merged[0]
    assert mesh.vertex_count == 6
    assert _contains(mesh.positions, (5.0, 0.0, 0.0))
    assert np.allclose(mesh.matrix, np.eye(4))
    assert mesh.normals.shape == (6, 3)


def test_merge_releases_sources():
    a = _triangle()
    b = _triangle(offset=(0.0, 2.0, 0.0))
    merge_meshes([a, b])
    assert a.released
    assert b.released


def test_merge_into_translated_base():
    a = _triangle(offset=(1.0, 0.0, 0.0))
    b = _triangle(offset=(3.0, 0.0, 0.0))
    mesh = merge_compatible([a, b])
    # b's origin lands at (2, 0, 0) in a's frame
    assert _contains(mesh.positions, (2.0, 0.0, 0.0))
    assert np.allclose(mesh.matrix, translation(1.0, 0.0, 0.0))


def test_opacity_prevents_merge():
    merged = merge_meshes([_triangle(opacity=1.0), _triangle(opacity=0.5)])
    assert len(merged) == 2
    assert {m.material.opacity for m in merged} == {1.0, 0.5}


def test_color_does_not_prevent_merge():
    a = _triangle()
    b = _triangle()
    b.material = b.material.with_color((1.0, 0.0, 0.0))
    b.set_color((1.0, 0.0, 0.0))
    merged = merge_meshes([a, b])
    assert len(merged) == 1
    assert _contains(merged[0].colors, (1.0, 0.0, 0.0))


def test_merge_disabled():
    meshes = [_triangle(), _triangle()]
    result = merge_meshes(meshes, allow_merge=False)
    assert [id(m) for m in result] == [id(m) for m in meshes]
    assert not meshes[0].released


def test_mismatched_attributes_raise():
    with pytest.raises(MismatchedAttributes, match="uv"):
        merge_compatible([_triangle(uvs=True), _triangle()])


def test_base_without_uvs_raises():
    with pytest.raises(MismatchedAttributes, match="uv"):
        merge_compatible([_triangle(), _triangle(uvs=True)])


def test_uvs_never_dropped_by_input_order():
    plain = _triangle()
    textured = _triangle(uvs=True)
    merged = merge_meshes([plain, textured])
    assert len(merged) == 2
    assert merged[1] is textured
    assert textured.uvs is not None


def test_mismatched_group_kept_separate():
    a = _triangle(uvs=True)
    b = _triangle()
    merged = merge_meshes([a, b])
    assert merged[0] is a and merged[1] is b
    assert not a.released


def test_lines_and_points():
    material = resolve_material({}, MaterialKind.LINE)
    first = line_mesh([(0, 0, 0), (1, 0, 0)], material=material)
    second = line_mesh([(0, 1, 0), (1, 1, 0)], material=material)
    first.set_color((1, 1, 1))
    second.set_color((1, 1, 1))
    points = Mesh(MeshKind.POINTS, [(0, 0, 0)], material=resolve_material({}, MaterialKind.POINT))
    triangle = _triangle()
    merged = merge_meshes([points, first, second, triangle])
    assert merged == [triangle, points, first, second]
    # separate strips, so no segment joins (1, 0, 0) to (0, 1, 0)
    assert first.vertex_count == 2 and second.vertex_count == 2
    assert not first.released and not second.released


def test_groups_sorted_by_signature():
    opaque = _triangle()
    clear = _triangle(opacity=0.5)
    merged = merge_meshes([opaque, clear])
    signatures = [m.signature for m in merged]
    assert signatures == sorted(signatures)
