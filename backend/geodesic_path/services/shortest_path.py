"""
Single-source shortest path search over a ``MeshGraph``.

The search is classic Dijkstra with a binary heap frontier.  Frontier
entries are ``(distance, node)`` tuples, so entries with equal tentative
distance pop in ascending node id order; node ids follow the first-seen
order of the input vertices, which makes every result reproducible for a
fixed mesh.  Stale heap entries are skipped lazily instead of being
decreased in place.

The search stops as soon as the target node is popped with its final
distance, which keeps localized queries on large meshes cheap.  A
deadline and a ``threading.Event`` can be supplied to bound the runtime
of the frontier loop when the service is used for very large meshes.
"""

from __future__ import annotations

import heapq
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from .errors import IndexOutOfRangeError, InternalInvariantError, SearchCancelledError
from .mesh_graph import MeshGraph

logger = logging.getLogger(__name__)

# Number of frontier pops between two deadline / cancellation checks.
CANCEL_CHECK_INTERVAL: int = 256


@dataclass
class ShortestPathTree:
    """Outcome of a successful search.

    Attributes:
        start: Source node.
        end: Target node.
        distance: Length of the shortest path from ``start`` to ``end``.
        predecessors: Predecessor of every node on its tentative shortest
            path, ``-1`` for the source and for nodes never reached.
        distances: Tentative distance of every node (``inf`` if never
            reached).  Only finalized nodes hold their exact distance.
        settled: Number of nodes finalized before the search stopped.
    """

    start: int
    end: int
    distance: float
    predecessors: List[int]
    distances: List[float]
    settled: int


def _check_cancelled(deadline: Optional[float], cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SearchCancelledError("Shortest path search was cancelled")
    if deadline is not None and time.perf_counter() > deadline:
        raise SearchCancelledError("Shortest path search exceeded its deadline")


def solve_shortest_path(
    graph: MeshGraph,
    start_node: int,
    end_node: int,
    deadline: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[ShortestPathTree]:
    """Find the shortest edge path from ``start_node`` to ``end_node``.

    Args:
        graph: Graph to search.
        start_node: Source node id.
        end_node: Target node id.
        deadline: Optional absolute ``time.perf_counter()`` value after
            which the search is abandoned.
        cancel_event: Optional event; setting it abandons the search.

    Returns:
        A ``ShortestPathTree`` when the target is reachable, otherwise
        ``None``.

    Raises:
        IndexOutOfRangeError: If either node id is not in the graph.
        SearchCancelledError: If the deadline passes or the event is set.
        InternalInvariantError: If a negative weight is met or the
            frontier pops distances out of order.
    """
    node_count = graph.node_count
    for node in (start_node, end_node):
        if not 0 <= node < node_count:
            raise IndexOutOfRangeError(f"Node {node} is not in a graph of {node_count} nodes")

    t_start = time.perf_counter()
    offsets = graph.adjacency_offsets
    targets = graph.adjacency_nodes
    weights = graph.adjacency_weights

    distances = [math.inf] * node_count
    predecessors = [-1] * node_count
    finalized = [False] * node_count
    distances[start_node] = 0.0
    frontier: list[tuple[float, int]] = [(0.0, start_node)]
    last_distance = 0.0
    settled = 0
    pops = 0

    while frontier:
        pops += 1
        if pops % CANCEL_CHECK_INTERVAL == 0:
            _check_cancelled(deadline, cancel_event)
        cur_dist, node = heapq.heappop(frontier)
        if finalized[node] or cur_dist > distances[node]:
            continue
        if cur_dist < last_distance:
            raise InternalInvariantError(
                f"Frontier popped distance {cur_dist} after {last_distance}"
            )
        last_distance = cur_dist
        finalized[node] = True
        settled += 1
        if node == end_node:
            logger.debug(
                "[ShortestPath] %d -> %d: distance=%.6g settled=%d/%d in %.4fs",
                start_node,
                end_node,
                cur_dist,
                settled,
                node_count,
                time.perf_counter() - t_start,
            )
            return ShortestPathTree(
                start=start_node,
                end=end_node,
                distance=cur_dist,
                predecessors=predecessors,
                distances=distances,
                settled=settled,
            )
        for k in range(offsets[node], offsets[node + 1]):
            other = targets[k]
            if finalized[other]:
                continue
            weight = weights[k]
            if weight < 0.0:
                raise InternalInvariantError(
                    f"Negative edge weight {weight} between nodes {node} and {other}"
                )
            candidate = cur_dist + weight
            if candidate < distances[other]:
                distances[other] = candidate
                predecessors[other] = node
                heapq.heappush(frontier, (candidate, other))

    logger.debug(
        "[ShortestPath] %d -> %d: unreachable after settling %d/%d nodes in %.4fs",
        start_node,
        end_node,
        settled,
        node_count,
        time.perf_counter() - t_start,
    )
    return None
