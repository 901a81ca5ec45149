"""
Turn a shortest path tree into concrete path geometry.

``reconstruct_path`` walks predecessor links from the target back to the
source, reverses them and resolves every node to its representative
position.  The result is a ``PathResult``, which also knows how to emit
the flat float32 buffer consumed by line renderers.

Path points are modelled as ``SurfacePoint`` objects so that the optional
straightening pass (``path_straighten.py``) can place points in the
interior of mesh edges as well as on nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from .errors import InternalInvariantError
from .mesh_graph import MeshGraph


@dataclass(frozen=True)
class SurfacePoint:
    """A location on the mesh surface.

    A point either sits on node ``a`` (``b == -1``) or on the edge
    ``(a, b)`` at fraction ``t`` of the way from ``a`` to ``b``.
    """

    a: int
    b: int = -1
    t: float = 0.0

    @property
    def is_node(self) -> bool:
        return self.b < 0

    def resolve(self, graph: MeshGraph) -> np.ndarray:
        if self.is_node:
            return graph.positions[self.a]
        pa = graph.positions[self.a]
        pb = graph.positions[self.b]
        return pa + (pb - pa) * self.t


def polyline_length(points: np.ndarray) -> float:
    """Sum of segment lengths of an ``(K, 3)`` polyline."""
    if points.shape[0] < 2:
        return 0.0
    deltas = np.diff(points, axis=0)
    return float(np.sqrt(np.einsum("ij,ij->i", deltas, deltas)).sum())


@dataclass
class PathResult:
    """Geometry of one computed path.

    Attributes:
        nodes: Graph nodes of the edge path, start to end.
        surface_points: Surface location of every output point.  Equal to
            ``nodes`` unless the path was straightened.
        points: ``(K, 3)`` float64 positions of the output points.
        length: Total polyline length.
        straightened: Whether the straightening pass changed the path.
    """

    nodes: List[int]
    surface_points: List[SurfacePoint]
    points: np.ndarray
    length: float
    straightened: bool = False
    metadata: dict = field(default_factory=dict)

    @property
    def point_count(self) -> int:
        return int(self.points.shape[0])

    def flat(self) -> np.ndarray:
        """Return the path as a flat float32 ``x, y, z, x, y, z …`` buffer."""
        return self.points.astype(np.float32).reshape(-1)


def build_path_result(
    graph: MeshGraph,
    nodes: List[int],
    surface_points: Sequence[SurfacePoint],
    straightened: bool = False,
) -> PathResult:
    """Resolve ``surface_points`` against ``graph`` into a ``PathResult``."""
    points = np.array([sp.resolve(graph) for sp in surface_points], dtype=np.float64).reshape(-1, 3)
    return PathResult(
        nodes=list(nodes),
        surface_points=list(surface_points),
        points=points,
        length=polyline_length(points),
        straightened=straightened,
    )


def reconstruct_path(
    graph: MeshGraph,
    predecessors: Sequence[int],
    start_node: int,
    end_node: int,
) -> PathResult:
    """Walk ``predecessors`` from ``end_node`` back to ``start_node``.

    Args:
        graph: Graph the predecessors refer to.
        predecessors: Predecessor of every node, ``-1`` where undefined.
        start_node: Source of the search.
        end_node: Target of the search.

    Returns:
        PathResult: Points ordered from start to end.  A path from a node
        to itself has a single point and zero length.

    Raises:
        InternalInvariantError: If the chain does not lead back to
            ``start_node`` within ``graph.node_count`` steps.
    """
    nodes = [end_node]
    node = end_node
    while node != start_node:
        node = predecessors[node]
        if node < 0:
            raise InternalInvariantError(
                f"Predecessor chain from {end_node} ends before reaching {start_node}"
            )
        nodes.append(node)
        if len(nodes) > graph.node_count:
            raise InternalInvariantError(
                f"Predecessor chain from {end_node} contains a cycle"
            )
    nodes.reverse()
    return build_path_result(graph, nodes, [SurfacePoint(n) for n in nodes])
