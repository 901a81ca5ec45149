"""
Unit tests for mesh welding and graph construction.

These tests exercise ``backend/geodesic_path/services/mesh_graph.py`` on
small synthetic meshes: buffer validation, welding of seam duplicates
and near-coincident vertices, node numbering and edge extraction.
"""

from __future__ import annotations

import math
import sys
import warnings
from pathlib import Path

import numpy as np
import pytest

# Make the backend package importable when running tests directly via pytest
sys.path.append(str(Path(__file__).resolve().parents[1]))

from geodesic_path.services.errors import MalformedMeshError
from geodesic_path.services.mesh_graph import (
    build_mesh_graph,
    coerce_index_buffer,
    coerce_vertex_buffer,
    weld_vertices,
)
from geodesic_path.services.primitives import (
    CUBE_FACES,
    grid_mesh,
    merge_meshes,
    offset_mesh,
    seam_cube_mesh,
    seam_cube_vertex,
    unit_cube_mesh,
)


TRIANGLE = ([0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0], [0, 1, 2])


def test_unit_cube_graph_counts() -> None:
    """A closed cube has 8 nodes, 12 triangles and 18 unique edges."""
    vertices, indices = unit_cube_mesh()
    graph = build_mesh_graph(vertices, indices)
    assert graph.node_count == 8
    assert graph.triangle_count == 12
    assert graph.edge_count == 18


def test_seam_cube_welds_to_eight_corners() -> None:
    """The 24 seam duplicates of a cube collapse onto its 8 corners."""
    vertices, indices = seam_cube_mesh()
    graph = build_mesh_graph(vertices, indices)
    assert graph.vertex_count == 24
    assert graph.node_count == 8
    assert graph.triangle_count == 12
    assert graph.edge_count == 18
    for corner in range(8):
        copies = [
            seam_cube_vertex(corner, face_number)
            for face_number, face in enumerate(CUBE_FACES)
            if corner in face
        ]
        assert len(copies) == 3
        nodes = {graph.node_of(v) for v in copies}
        assert len(nodes) == 1
        assert sorted(graph.members(nodes.pop()).tolist()) == sorted(copies)


def test_exact_seam_duplicates_weld_with_zero_tolerance() -> None:
    """With a zero tolerance only exact duplicates weld, which still closes the cube."""
    vertices, indices = seam_cube_mesh()
    graph = build_mesh_graph(vertices, indices, weld_tolerance=0.0)
    assert graph.node_count == 8
    labels = graph.connected_components()
    assert set(labels.tolist()) == {0}


def test_node_ids_follow_first_seen_order() -> None:
    """Node ids are assigned in order of the first input vertex of each node."""
    vertices = np.array([[1.0, 1.0, 1.0], [0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 0.0, 0.0]])
    vertex_to_node, positions, _ = weld_vertices(vertices, 1e-6)
    assert vertex_to_node.tolist() == [0, 1, 0, 2]
    assert positions.tolist() == [[1.0, 1.0, 1.0], [0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]


def test_near_duplicates_weld_to_first_seen_position() -> None:
    """Vertices closer than the tolerance merge; the first one gives the position."""
    vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1e-9, 0.0, 0.0]])
    vertex_to_node, positions, epsilon = weld_vertices(vertices, 1e-6)
    assert epsilon == pytest.approx(1e-6)
    assert vertex_to_node.tolist() == [0, 1, 0]
    assert positions[0].tolist() == [0.0, 0.0, 0.0]


def test_zero_tolerance_keeps_near_duplicates_apart() -> None:
    vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1e-9, 0.0, 0.0]])
    vertex_to_node, positions, epsilon = weld_vertices(vertices, 0.0)
    assert epsilon == 0.0
    assert vertex_to_node.tolist() == [0, 1, 2]
    assert positions.shape == (3, 3)


def test_welding_is_transitive() -> None:
    """A chain of pairwise-close vertices collapses into a single node."""
    vertices = np.array(
        [[0.0, 0.0, 0.0], [0.6e-6, 0.0, 0.0], [1.2e-6, 0.0, 0.0], [1.0, 0.0, 0.0]]
    )
    vertex_to_node, positions, _ = weld_vertices(vertices, 1e-6)
    assert vertex_to_node.tolist() == [0, 0, 0, 1]
    assert positions.shape == (2, 3)


@pytest.mark.parametrize("tolerance", [-1.0, float("nan"), float("inf")])
def test_weld_rejects_invalid_tolerance(tolerance) -> None:
    with pytest.raises(MalformedMeshError):
        weld_vertices(np.zeros((2, 3)), tolerance)


@pytest.mark.parametrize("scale", [1e-6, 1.0, 1e6])
def test_weld_tolerance_follows_mesh_size(scale) -> None:
    """Jittered seam copies weld the same way whatever unit the mesh is in."""
    vertices, indices = seam_cube_mesh()
    rng = np.random.default_rng(7)
    points = np.asarray(vertices).reshape(-1, 3) * scale
    points += rng.uniform(-1e-9, 1e-9, size=points.shape) * scale
    graph = build_mesh_graph(points.reshape(-1), indices)
    assert graph.node_count == 8
    assert graph.edge_count == 18

    # Jitter well above the relative tolerance keeps the copies apart.
    points += rng.uniform(-1e-2, 1e-2, size=points.shape) * scale
    assert build_mesh_graph(points.reshape(-1), indices).node_count == 24


def test_weld_far_from_origin() -> None:
    """A small mesh placed far from the origin welds without grid key overflow."""
    vertices, indices = offset_mesh(grid_mesh(2, 2, spacing=1e-3), dx=1e12)
    points = np.asarray(vertices).reshape(-1, 3)
    doubled = np.vstack([points, points])
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        vertex_to_node, positions, epsilon = weld_vertices(doubled, 1e-6)
    assert epsilon > 0.0
    assert positions.shape == (9, 3)
    assert vertex_to_node.tolist() == list(range(9)) * 2


@pytest.mark.parametrize(
    "vertices",
    [
        [0.0, 0.0, 0.0, 1.0],
        [0.0, 0.0, float("nan")],
        [0.0, 0.0, float("inf")],
        ["a", "b", "c"],
    ],
)
def test_malformed_vertex_buffers(vertices) -> None:
    """Bad vertex buffers are rejected with MalformedMeshError."""
    with pytest.raises(MalformedMeshError):
        coerce_vertex_buffer(vertices)


@pytest.mark.parametrize(
    "indices",
    [
        [0, 1],
        [0, 1, 3],
        [0, -1, 2],
        [0.0, 0.5, 2.0],
        ["0", "1", "2"],
    ],
)
def test_malformed_index_buffers(indices) -> None:
    """Bad index buffers are rejected with MalformedMeshError."""
    with pytest.raises(MalformedMeshError):
        coerce_index_buffer(indices, 3)


def test_integral_float_indices_are_accepted() -> None:
    triangles = coerce_index_buffer([0.0, 1.0, 2.0], 3)
    assert triangles.dtype == np.int64
    assert triangles.tolist() == [[0, 1, 2]]


def test_empty_index_buffer_gives_isolated_nodes() -> None:
    graph = build_mesh_graph(TRIANGLE[0], [])
    assert graph.node_count == 3
    assert graph.edge_count == 0
    assert list(graph.neighbors(0)) == []


def test_degenerate_and_duplicate_triangles_are_ignored() -> None:
    """Collapsed triangles add no edges and repeated triangles count once."""
    vertices = TRIANGLE[0] + [1.0, 0.0, 0.0]
    # Vertex 3 duplicates vertex 1, so (1, 3, 2) welds to (1, 1, 2).
    indices = [0, 1, 2, 2, 1, 0, 1, 3, 2]
    graph = build_mesh_graph(vertices, indices)
    assert graph.node_count == 3
    assert graph.triangle_count == 1
    assert graph.edges.tolist() == [[0, 1], [0, 2], [1, 2]]


def test_edge_weights_and_adjacency() -> None:
    """Weights are Euclidean lengths and adjacency is symmetric and sorted."""
    graph = build_mesh_graph(*TRIANGLE)
    assert graph.edge_weight(0, 1) == pytest.approx(1.0)
    assert graph.edge_weight(2, 0) == pytest.approx(1.0)
    assert graph.edge_weight(1, 2) == pytest.approx(math.sqrt(2.0))
    for node in range(graph.node_count):
        neighbours = [other for other, _ in graph.neighbors(node)]
        assert neighbours == sorted(neighbours)
        for other, weight in graph.neighbors(node):
            assert graph.edge_weight(other, node) == pytest.approx(weight)


def test_connected_components_of_separate_pieces() -> None:
    mesh = merge_meshes(TRIANGLE, offset_mesh(TRIANGLE, dx=10.0))
    graph = build_mesh_graph(*mesh)
    assert graph.connected_components().tolist() == [0, 0, 0, 1, 1, 1]


def test_grid_mesh_graph_counts() -> None:
    """An nx x ny grid has (nx+1)(ny+1) nodes and 3nxny + nx + ny edges."""
    graph = build_mesh_graph(*grid_mesh(4, 3))
    assert graph.node_count == 20
    assert graph.triangle_count == 24
    assert graph.edge_count == 3 * 4 * 3 + 4 + 3
