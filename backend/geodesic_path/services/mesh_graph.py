"""
Mesh graph construction for geodesic path queries.

Rendering oriented meshes duplicate vertices along UV and normal seams,
so two triangles that touch geometrically frequently reference different
vertex indices.  This module reconciles such a mesh into a traversable
graph in two steps:

1. **Welding.**  Vertices whose positions differ by less than a tolerance
   ``epsilon`` in every coordinate are merged into a single graph node.
   ``epsilon`` is a fraction of the mesh's bounding box diagonal so the
   result does not depend on the model's units.  Exact duplicates are
   collapsed with ``numpy.unique``; the remaining distinct positions are
   bucketed in a hash grid keyed by ``floor((p - bbox_min) / epsilon)``
   and only the 27 neighbouring cells are compared.  Merging is
   transitive (union–find), so a chain of nearly coincident vertices
   collapses to one node.
2. **Edges.**  Each triangle is mapped onto welded nodes.  Triangles that
   collapse to fewer than three distinct nodes are skipped; every other
   triangle contributes its three bounding edges once.  Edge weights are
   Euclidean lengths computed in float64.

Node identifiers are dense integers assigned in order of the first input
vertex belonging to each node.  The shortest path search breaks ties on
this id, which keeps results reproducible for a fixed input.  A node's
representative position is the position of that first-seen vertex.

Functions defined here:

- ``coerce_vertex_buffer(vertex_positions)`` – validate and reshape a
  flat position buffer to ``(V, 3)`` float64.
- ``coerce_index_buffer(triangle_indices, vertex_count)`` – validate and
  reshape a flat index buffer to ``(T, 3)`` int64.
- ``weld_vertices(vertices, weld_tolerance)`` – map input vertices onto
  welded nodes.
- ``build_mesh_graph(vertex_positions, triangle_indices, weld_tolerance)``
  – build the complete ``MeshGraph``.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .errors import InternalInvariantError, MalformedMeshError

logger = logging.getLogger(__name__)

# Default relative weld tolerance.  The effective distance is this value
# multiplied by the bounding box diagonal of the mesh being welded.
DEFAULT_WELD_TOLERANCE: float = float(os.getenv("GEODESIC_WELD_TOLERANCE", "1e-6"))

_NEIGHBOUR_CELLS: List[Tuple[int, int, int]] = [
    (dx, dy, dz) for dx in (-1, 0, 1) for dy in (-1, 0, 1) for dz in (-1, 0, 1)
]


@dataclass(frozen=True, eq=False)
class MeshGraph:
    """Undirected weighted graph derived from one triangle mesh.

    Attributes:
        positions: ``(N, 3)`` float64 array of node positions.
        vertex_to_node: ``(V,)`` int64 array mapping each input vertex
            index to its welded node id.
        triangles: ``(T, 3)`` int64 array of welded, non-degenerate
            triangles.  Orientation follows the input.
        edges: ``(E, 2)`` int64 array of node pairs with ``a < b``.
        weights: ``(E,)`` float64 edge lengths.
        adjacency_offsets: CSR offsets; the neighbours of node ``n`` are
            entries ``adjacency_offsets[n]`` to ``adjacency_offsets[n + 1]``.
        adjacency_nodes: CSR neighbour ids, sorted per node.
        adjacency_weights: CSR edge weights aligned with ``adjacency_nodes``.
        weld_epsilon: Absolute weld distance used for this mesh.
    """

    positions: np.ndarray
    vertex_to_node: np.ndarray
    triangles: np.ndarray
    edges: np.ndarray
    weights: np.ndarray
    adjacency_offsets: List[int]
    adjacency_nodes: List[int]
    adjacency_weights: List[float]
    weld_epsilon: float

    @property
    def node_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def vertex_count(self) -> int:
        return int(self.vertex_to_node.shape[0])

    @property
    def edge_count(self) -> int:
        return int(self.edges.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.triangles.shape[0])

    def node_of(self, vertex_index: int) -> int:
        """Return the welded node that input vertex ``vertex_index`` belongs to."""
        return int(self.vertex_to_node[vertex_index])

    def position(self, node: int) -> np.ndarray:
        return self.positions[node]

    def members(self, node: int) -> np.ndarray:
        """Return the input vertex indices merged into ``node`` (ascending)."""
        return np.flatnonzero(self.vertex_to_node == node)

    def neighbors(self, node: int) -> Iterator[Tuple[int, float]]:
        """Yield ``(neighbour, weight)`` pairs for ``node`` in ascending id order."""
        start = self.adjacency_offsets[node]
        end = self.adjacency_offsets[node + 1]
        for k in range(start, end):
            yield self.adjacency_nodes[k], self.adjacency_weights[k]

    def edge_weight(self, a: int, b: int) -> Optional[float]:
        """Return the weight of edge ``(a, b)`` or ``None`` if it does not exist."""
        for other, weight in self.neighbors(a):
            if other == b:
                return weight
        return None

    def connected_components(self) -> np.ndarray:
        """Label every node with the id of its connected component.

        Components are numbered from zero in order of their lowest node id.
        """
        labels = np.full(self.node_count, -1, dtype=np.int64)
        offsets = self.adjacency_offsets
        targets = self.adjacency_nodes
        label = 0
        for seed in range(self.node_count):
            if labels[seed] >= 0:
                continue
            labels[seed] = label
            stack = [seed]
            while stack:
                node = stack.pop()
                for k in range(offsets[node], offsets[node + 1]):
                    other = targets[k]
                    if labels[other] < 0:
                        labels[other] = label
                        stack.append(other)
            label += 1
        return labels


def coerce_vertex_buffer(vertex_positions) -> np.ndarray:
    """Return the vertex buffer as a ``(V, 3)`` float64 array.

    Raises:
        MalformedMeshError: If the buffer is not numeric, its length is
            not a multiple of three, or it contains non-finite values.
    """
    try:
        flat = np.asarray(vertex_positions, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise MalformedMeshError(f"Vertex buffer is not a numeric sequence: {exc}") from exc
    if flat.size % 3 != 0:
        raise MalformedMeshError(
            f"Vertex buffer length {flat.size} is not a multiple of 3"
        )
    if not np.all(np.isfinite(flat)):
        raise MalformedMeshError("Vertex buffer contains non-finite coordinates")
    return flat.reshape(-1, 3)


def coerce_index_buffer(triangle_indices, vertex_count: int) -> np.ndarray:
    """Return the triangle buffer as a ``(T, 3)`` int64 array.

    Float buffers are accepted when every entry is integral, which is how
    indices arrive from JSON decoders that do not distinguish the two.

    Raises:
        MalformedMeshError: If the buffer is not an integer sequence, its
            length is not a multiple of three, or an index is negative or
            not below ``vertex_count``.
    """
    try:
        raw = np.asarray(triangle_indices).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise MalformedMeshError(f"Index buffer is not a numeric sequence: {exc}") from exc
    if raw.size == 0:
        return np.empty((0, 3), dtype=np.int64)
    if raw.dtype.kind in "iu":
        flat = raw.astype(np.int64)
    elif raw.dtype.kind == "f":
        if not np.all(np.isfinite(raw)) or np.any(raw != np.floor(raw)):
            raise MalformedMeshError("Index buffer contains non-integral values")
        flat = raw.astype(np.int64)
    else:
        raise MalformedMeshError(
            f"Index buffer must contain unsigned integers, got dtype {raw.dtype}"
        )
    if flat.size % 3 != 0:
        raise MalformedMeshError(
            f"Index buffer length {flat.size} is not a multiple of 3"
        )
    if np.any(flat < 0):
        raise MalformedMeshError("Index buffer contains negative indices")
    max_index = int(flat.max())
    if max_index >= vertex_count:
        raise MalformedMeshError(
            f"Index buffer references vertex {max_index} but the mesh has {vertex_count} vertices"
        )
    return flat.reshape(-1, 3)


def _find(parent: List[int], item: int) -> int:
    while parent[item] != item:
        parent[item] = parent[parent[item]]
        item = parent[item]
    return item


def _union(parent: List[int], a: int, b: int) -> None:
    root_a = _find(parent, a)
    root_b = _find(parent, b)
    if root_a == root_b:
        return
    # Keep the smaller id as root so the merge order does not matter.
    if root_a < root_b:
        parent[root_b] = root_a
    else:
        parent[root_a] = root_b


def _union_close_positions(points: np.ndarray, epsilon: float, parent: List[int]) -> int:
    """Union every pair of ``points`` closer than ``epsilon`` on all axes.

    Uses a hash grid with cell size ``epsilon``: two points within
    ``epsilon`` of each other on every axis always fall in the same or an
    adjacent cell.  Returns the number of successful pair tests.
    """
    # Cell keys are taken relative to the lower bbox corner so they stay
    # small for meshes placed far from the origin.
    keys = np.floor((points - points.min(axis=0)) / epsilon).astype(np.int64).tolist()
    coords = points.tolist()
    cells: Dict[Tuple[int, int, int], List[int]] = {}
    merged = 0
    for u, (kx, ky, kz) in enumerate(keys):
        px, py, pz = coords[u]
        for dx, dy, dz in _NEIGHBOUR_CELLS:
            bucket = cells.get((kx + dx, ky + dy, kz + dz))
            if not bucket:
                continue
            for v in bucket:
                qx, qy, qz = coords[v]
                if abs(px - qx) < epsilon and abs(py - qy) < epsilon and abs(pz - qz) < epsilon:
                    _union(parent, u, v)
                    merged += 1
        cells.setdefault((kx, ky, kz), []).append(u)
    return merged


def weld_vertices(
    vertices: np.ndarray, weld_tolerance: float = DEFAULT_WELD_TOLERANCE
) -> Tuple[np.ndarray, np.ndarray, float]:
    """Merge positionally equivalent vertices into nodes.

    Args:
        vertices: ``(V, 3)`` float64 positions.
        weld_tolerance: Weld distance relative to the bounding box
            diagonal.  ``0`` merges exact duplicates only.

    Returns:
        A tuple ``(vertex_to_node, node_positions, epsilon)`` where
        ``vertex_to_node`` has one node id per input vertex,
        ``node_positions`` holds the first-seen position of every node and
        ``epsilon`` is the absolute weld distance that was applied.

    Raises:
        MalformedMeshError: If ``weld_tolerance`` is negative or not finite.
    """
    if weld_tolerance < 0 or not np.isfinite(weld_tolerance):
        raise MalformedMeshError(
            f"weld_tolerance must be a non-negative number, got {weld_tolerance}"
        )
    vertex_count = vertices.shape[0]
    if vertex_count == 0:
        return np.empty(0, dtype=np.int64), np.empty((0, 3), dtype=np.float64), 0.0

    unique_points, inverse = np.unique(vertices, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    diagonal = float(np.linalg.norm(vertices.max(axis=0) - vertices.min(axis=0)))
    epsilon = weld_tolerance * diagonal

    parent = list(range(unique_points.shape[0]))
    if epsilon > 0.0 and unique_points.shape[0] > 1:
        _union_close_positions(unique_points, epsilon, parent)
    roots = np.asarray([_find(parent, u) for u in range(len(parent))], dtype=np.int64)
    root_of_vertex = roots[inverse]

    # Number nodes by the first input vertex that belongs to them.
    _, first_seen, root_inverse = np.unique(
        root_of_vertex, return_index=True, return_inverse=True
    )
    order = np.argsort(first_seen, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(order.shape[0])
    vertex_to_node = rank[root_inverse.reshape(-1)].astype(np.int64)
    node_positions = vertices[first_seen[order]].astype(np.float64)
    return vertex_to_node, node_positions, epsilon


def _build_edges(triangles: np.ndarray, vertex_to_node: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Map triangles onto nodes and extract their unique edges."""
    if triangles.shape[0] == 0:
        return np.empty((0, 3), dtype=np.int64), np.empty((0, 2), dtype=np.int64)
    welded = vertex_to_node[triangles]
    a, b, c = welded[:, 0], welded[:, 1], welded[:, 2]
    welded = welded[(a != b) & (b != c) & (a != c)]
    if welded.shape[0] == 0:
        return np.empty((0, 3), dtype=np.int64), np.empty((0, 2), dtype=np.int64)
    # Keep the first occurrence of every triangle that welding duplicated.
    _, first = np.unique(np.sort(welded, axis=1), axis=0, return_index=True)
    welded = welded[np.sort(first)]
    pairs = np.concatenate([welded[:, [0, 1]], welded[:, [1, 2]], welded[:, [2, 0]]])
    pairs.sort(axis=1)
    edges = np.unique(pairs, axis=0)
    return welded.astype(np.int64), edges.astype(np.int64)


def build_mesh_graph(
    vertex_positions,
    triangle_indices,
    weld_tolerance: float = DEFAULT_WELD_TOLERANCE,
) -> MeshGraph:
    """Build the welded adjacency graph of a triangle mesh.

    Args:
        vertex_positions: Flat sequence of ``x, y, z`` coordinates.
        triangle_indices: Flat sequence of vertex indices, three per
            triangle.
        weld_tolerance: Weld distance relative to the bounding box
            diagonal.

    Returns:
        MeshGraph: A fresh graph owned by the caller.

    Raises:
        MalformedMeshError: If either buffer violates its invariants or the
            weld tolerance is negative or not finite.
        InternalInvariantError: If an edge weight comes out negative or
            non-finite.
    """
    t_start = time.perf_counter()
    vertices = coerce_vertex_buffer(vertex_positions)
    triangles = coerce_index_buffer(triangle_indices, vertices.shape[0])

    vertex_to_node, positions, epsilon = weld_vertices(vertices, weld_tolerance)
    t_weld = time.perf_counter()

    welded_triangles, edges = _build_edges(triangles, vertex_to_node)
    if edges.shape[0]:
        deltas = positions[edges[:, 0]] - positions[edges[:, 1]]
        weights = np.sqrt(np.einsum("ij,ij->i", deltas, deltas))
    else:
        weights = np.empty(0, dtype=np.float64)
    if not np.all(np.isfinite(weights)) or np.any(weights < 0.0):
        raise InternalInvariantError("Edge weights must be finite and non-negative")

    node_count = positions.shape[0]
    src = np.concatenate([edges[:, 0], edges[:, 1]])
    dst = np.concatenate([edges[:, 1], edges[:, 0]])
    both_weights = np.concatenate([weights, weights])
    order = np.lexsort((dst, src))
    src = src[order]
    counts = np.bincount(src, minlength=node_count) if node_count else np.zeros(0, dtype=np.int64)
    offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)

    graph = MeshGraph(
        positions=positions,
        vertex_to_node=vertex_to_node,
        triangles=welded_triangles,
        edges=edges,
        weights=weights,
        adjacency_offsets=offsets.tolist(),
        adjacency_nodes=dst[order].tolist(),
        adjacency_weights=both_weights[order].tolist(),
        weld_epsilon=epsilon,
    )
    t_end = time.perf_counter()
    logger.debug(
        "[MeshGraph] welded %d vertices into %d nodes (eps=%.3g) in %.4fs; "
        "%d/%d triangles, %d edges in %.4fs",
        vertices.shape[0],
        node_count,
        epsilon,
        t_weld - t_start,
        welded_triangles.shape[0],
        triangles.shape[0],
        edges.shape[0],
        t_end - t_weld,
    )
    return graph
