"""
Public entry point for geodesic path queries.

``PathService`` validates the caller's input, builds the welded mesh
graph, runs the shortest path search and reconstructs the path geometry.
Every run goes through the states of ``PathServiceState``::

    IDLE -> BUILDING -> SOLVING -> RECONSTRUCTING -> DONE
                 \\            \\
                  -> FAILED     -> FAILED

Start and end indices are validated while still ``IDLE`` so that an
out-of-range index fails before any graph work.  Failures are raised as
the typed errors of ``errors.py``; each one records the state it was
raised in.  ``get_path`` wraps the service with the flat-buffer contract
used by viewers: it returns the path as a float32 ``x, y, z …`` array, or
an empty array when no path could be produced.

The service object only holds immutable options.  Each call runs in its
own ``PathComputation`` that owns the graph and buffers for its lifetime,
so a single service can be used from several threads at once.  The only
state shared between calls is the optional graph cache of
``graph_cache.py``, which is lock protected.
"""

from __future__ import annotations

import logging
import operator
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .errors import (
    GeodesicPathError,
    IndexOutOfRangeError,
    InternalInvariantError,
    MalformedMeshError,
    SearchCancelledError,
    UnreachableTargetError,
)
from .graph_cache import get_or_build_graph
from .mesh_graph import (
    DEFAULT_WELD_TOLERANCE,
    MeshGraph,
    build_mesh_graph,
    coerce_index_buffer,
    coerce_vertex_buffer,
)
from .path_reconstruct import PathResult, reconstruct_path
from .path_straighten import DEFAULT_MAX_PASSES, straighten_path
from .shortest_path import solve_shortest_path

logger = logging.getLogger(__name__)


class PathServiceState(str, Enum):
    """Lifecycle of a single path computation."""

    IDLE = "idle"
    BUILDING = "building"
    SOLVING = "solving"
    RECONSTRUCTING = "reconstructing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PathOptions:
    """Tuning parameters of a path computation.

    Attributes:
        weld_tolerance: Weld distance relative to the mesh's bounding box
            diagonal.
        straighten: Run the string-pulling pass after the edge search.
        max_straighten_passes: Upper bound on string-pulling sweeps.
        timeout: Optional limit in seconds on the shortest path search.
    """

    weld_tolerance: float = DEFAULT_WELD_TOLERANCE
    straighten: bool = False
    max_straighten_passes: int = DEFAULT_MAX_PASSES
    timeout: Optional[float] = None


def _check_index(value, vertex_count: int, name: str) -> int:
    if isinstance(value, bool):
        raise IndexOutOfRangeError(f"{name} must be an integer, got {value!r}")
    try:
        index = operator.index(value)
    except TypeError as exc:
        raise IndexOutOfRangeError(f"{name} must be an integer, got {value!r}") from exc
    if not 0 <= index < vertex_count:
        raise IndexOutOfRangeError(
            f"{name} {index} is outside [0, {vertex_count}) for this mesh"
        )
    return index


class PathComputation:
    """One run of the path service, from raw buffers to a ``PathResult``.

    Attributes:
        state: Current ``PathServiceState``.
        history: Every state the run has passed through, in order.
        graph: The mesh graph once built.
        result: The path once the run reached ``DONE``.
    """

    def __init__(
        self,
        options: PathOptions,
        use_cache: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.options = options
        self.use_cache = use_cache
        self.cancel_event = cancel_event
        self.state = PathServiceState.IDLE
        self.history: List[PathServiceState] = [PathServiceState.IDLE]
        self.graph: Optional[MeshGraph] = None
        self.result: Optional[PathResult] = None

    def _transition(self, state: PathServiceState) -> None:
        logger.debug("[PathService] %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _fail(self, exc: GeodesicPathError, stage: PathServiceState) -> GeodesicPathError:
        if self.state != stage:
            self._transition(stage)
        exc.state = stage
        self._transition(PathServiceState.FAILED)
        return exc

    def _load_graph(self, vertices: np.ndarray, triangles: np.ndarray) -> Tuple[MeshGraph, bool]:
        if not self.use_cache:
            return build_mesh_graph(vertices, triangles, self.options.weld_tolerance), False
        return get_or_build_graph(vertices, triangles, self.options.weld_tolerance)

    def run(self, start_index, end_index, vertex_positions, triangle_indices) -> PathResult:
        """Compute the path between two input vertex indices.

        Raises:
            MalformedMeshError: If a buffer violates its invariants.
            IndexOutOfRangeError: If an endpoint index is invalid.
            UnreachableTargetError: If the endpoints are not connected.
            SearchCancelledError: If the search timed out or was cancelled.
            InternalInvariantError: If a consistency check failed.
        """
        if self.state != PathServiceState.IDLE:
            raise RuntimeError("A PathComputation can only be run once")
        t_start = time.perf_counter()

        try:
            vertices = coerce_vertex_buffer(vertex_positions)
        except MalformedMeshError as exc:
            raise self._fail(exc, PathServiceState.BUILDING) from None
        vertex_count = vertices.shape[0]
        try:
            start = _check_index(start_index, vertex_count, "startIndex")
            end = _check_index(end_index, vertex_count, "endIndex")
        except IndexOutOfRangeError as exc:
            raise self._fail(exc, PathServiceState.IDLE) from None

        self._transition(PathServiceState.BUILDING)
        try:
            triangles = coerce_index_buffer(triangle_indices, vertex_count)
            graph, cache_hit = self._load_graph(vertices, triangles)
        except (MalformedMeshError, InternalInvariantError) as exc:
            raise self._fail(exc, PathServiceState.BUILDING) from None
        self.graph = graph
        t_built = time.perf_counter()

        self._transition(PathServiceState.SOLVING)
        start_node = graph.node_of(start)
        end_node = graph.node_of(end)
        deadline = None
        if self.options.timeout is not None:
            deadline = time.perf_counter() + self.options.timeout
        try:
            tree = solve_shortest_path(graph, start_node, end_node, deadline, self.cancel_event)
        except (SearchCancelledError, InternalInvariantError) as exc:
            raise self._fail(exc, PathServiceState.SOLVING) from None
        if tree is None:
            raise self._fail(
                UnreachableTargetError(
                    f"Vertex {end} is not reachable from vertex {start} over the mesh surface"
                ),
                PathServiceState.SOLVING,
            )
        t_solved = time.perf_counter()

        self._transition(PathServiceState.RECONSTRUCTING)
        try:
            result = reconstruct_path(graph, tree.predecessors, start_node, end_node)
        except InternalInvariantError as exc:
            raise self._fail(exc, PathServiceState.RECONSTRUCTING) from None
        if self.options.straighten:
            result = straighten_path(graph, result, self.options.max_straighten_passes)
        t_end = time.perf_counter()

        result.metadata.update(
            {
                "startIndex": start,
                "endIndex": end,
                "startNode": start_node,
                "endNode": end_node,
                "vertexCount": vertex_count,
                "nodeCount": graph.node_count,
                "edgeCount": graph.edge_count,
                "edgeDistance": tree.distance,
                "settledNodes": tree.settled,
                "cacheHit": cache_hit,
                "straightened": result.straightened,
                "buildSeconds": t_built - t_start,
                "solveSeconds": t_solved - t_built,
                "reconstructSeconds": t_end - t_solved,
            }
        )
        self.result = result
        self._transition(PathServiceState.DONE)
        logger.info(
            "[GeodesicPath] %d -> %d: points=%d length=%.6g nodes=%d build=%.4fs solve=%.4fs total=%.4fs",
            start,
            end,
            result.point_count,
            result.length,
            graph.node_count,
            t_built - t_start,
            t_solved - t_built,
            t_end - t_start,
        )
        return result


class PathService:
    """Stateless, re-entrant front end for path computations."""

    def __init__(self, options: Optional[PathOptions] = None, use_cache: bool = False) -> None:
        self.options = options or PathOptions()
        self.use_cache = use_cache

    def computation(self, cancel_event: Optional[threading.Event] = None) -> PathComputation:
        """Return a fresh, not yet started computation using this service's options."""
        return PathComputation(self.options, self.use_cache, cancel_event)

    def find_path(
        self,
        start_index,
        end_index,
        vertex_positions,
        triangle_indices,
        cancel_event: Optional[threading.Event] = None,
    ) -> PathResult:
        """Compute the path from ``start_index`` to ``end_index``.

        See ``PathComputation.run`` for the raised errors.
        """
        return self.computation(cancel_event).run(
            start_index, end_index, vertex_positions, triangle_indices
        )


def get_path(
    start_index,
    end_index,
    vertex_positions,
    triangle_indices,
    straighten: bool = False,
    weld_tolerance: float = DEFAULT_WELD_TOLERANCE,
) -> np.ndarray:
    """Return the path between two vertices as a flat float32 buffer.

    The buffer holds ``x, y, z`` triples; the first triple is the welded
    position of ``start_index`` and the last that of ``end_index``.  When
    no path can be produced the failure is logged and an empty array is
    returned, which a renderer must treat as "nothing to draw".
    """
    service = PathService(PathOptions(weld_tolerance=weld_tolerance, straighten=straighten))
    try:
        result = service.find_path(start_index, end_index, vertex_positions, triangle_indices)
    except InternalInvariantError:
        logger.exception("[GeodesicPath] %s -> %s: internal error", start_index, end_index)
        return np.empty(0, dtype=np.float32)
    except GeodesicPathError as exc:
        logger.warning(
            "[GeodesicPath] %s -> %s: no path (%s: %s)",
            start_index,
            end_index,
            type(exc).__name__,
            exc,
        )
        return np.empty(0, dtype=np.float32)
    return result.flat()
