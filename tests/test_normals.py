import numpy as np

from tessgraph.analytic import block
from tessgraph.mesh import Mesh, MeshKind, line_mesh
from tessgraph.normals import build_adjacency, face_normals, synthesize_normals, weld_ids
from tessgraph.tessellate import parametric_grid


def test_cube_keeps_flat_normals():
    mesh = block({"primitive": "block", "dimensions": [2, 2, 2]})
    flat = np.repeat(face_normals(mesh.positions), 3, axis=0)
    assert mesh.index is None
    assert mesh.face_count == 12
    assert np.allclose(mesh.normals, flat)
    # every normal is axis aligned and points outwards
    assert np.allclose(np.abs(mesh.normals).sum(axis=1), 1.0)
    centroids = mesh.positions.reshape(-1, 3, 3).mean(axis=1)
    assert np.all(np.einsum("ij,ij->i", centroids, mesh.normals[::3]) > 0)


def test_near_planar_patch_is_blended():
    patch = parametric_grid(lambda u, v: (u, v, 0.1 * np.sin(np.pi * u)), 4, 1)
    mesh = synthesize_normals(patch)
    ids = weld_ids(mesh.positions)
    for vertex in np.unique(ids):
        corners = mesh.normals[ids == vertex]
        assert np.allclose(corners, corners[0])
    flat = np.repeat(face_normals(mesh.positions), 3, axis=0)
    assert not np.allclose(mesh.normals, flat)


def test_threshold_controls_blending():
    patch = parametric_grid(lambda u, v: (u, v, 0.1 * np.sin(np.pi * u)), 4, 1)
    mesh = synthesize_normals(patch, smooth_threshold=1.0)
    flat = np.repeat(face_normals(mesh.positions), 3, axis=0)
    assert np.allclose(mesh.normals, flat)


def test_degenerate_face_gets_zero_normal():
    mesh = Mesh(MeshKind.TRIANGLES, [(0, 0, 0), (1, 0, 0), (2, 0, 0)])
    out = synthesize_normals(mesh)
    assert np.all(np.isfinite(out.normals))
    assert np.allclose(out.normals, 0.0)


def test_welding_ignores_signed_zero_and_noise():
    positions = np.array([(0.0, 0.0, 0.0), (-0.0, 0.0, 0.00001), (1.0, 0.0, 0.0)])
    ids = weld_ids(positions)
    assert ids[0] == ids[1]
    assert ids[0] != ids[2]


def test_welding_scales_with_model_size():
    tiny = np.array([(0.0, 0.0, 0.0), (2e-6, 0.0, 0.0), (0.0, 2e-6, 0.0), (2e-6, 2e-6, 0.0)])
    assert len(np.unique(weld_ids(tiny))) == 4
    huge = tiny * 1e12
    assert len(np.unique(weld_ids(huge))) == 4
    shifted = np.vstack([tiny, tiny[1:2] + (0.0, 1e-12, 0.0)])
    ids = weld_ids(shifted)
    assert ids[1] == ids[4]


def test_tiny_strip_adjacency():
    a, b, c, d = (0.0, 0.0, 0.0), (1e-5, 0.0, 0.0), (1e-5, 1e-5, 0.0), (0.0, 1e-5, 0.0)
    adjacency = build_adjacency(np.array([a, b, c, a, c, d]))
    assert sorted(len(corners) for corners in adjacency.values()) == [1, 1, 2, 2]


def test_lines_pass_through():
    mesh = line_mesh([(0, 0, 0), (1, 0, 0)])
    assert synthesize_normals(mesh) is mesh


def test_output_is_not_welded():
    patch = parametric_grid(lambda u, v: (u, v, 0.0), 2, 2)
    mesh = synthesize_normals(patch)
    assert mesh.vertex_count == patch.face_count * 3
