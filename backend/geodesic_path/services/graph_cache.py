"""
Simple in‑memory caching layer for mesh graphs.

Welding and edge extraction dominate the cost of a path query on large
meshes, and a viewer typically asks for many paths on the same mesh.
This module caches built ``MeshGraph`` objects keyed by a content
fingerprint of the mesh buffers plus the weld tolerance, so repeated
queries skip the build step without changing any observable result.

The cache is implemented as an ``OrderedDict`` to provide
least‑recently‑used (LRU) eviction.  When the number of cached
entries exceeds ``MAX_CACHE_ENTRIES`` the oldest entry is dropped.
Cached graphs are never mutated after construction, so they can be
shared freely between concurrent requests.

Usage::

    from .graph_cache import GraphCacheKey, get_graph_from_cache, put_graph_in_cache
    key = GraphCacheKey(fingerprint=mesh_fingerprint(vertices, triangles), weld_tolerance=1e-6)
    graph = get_graph_from_cache(key)
    if graph is None:
        graph = build_mesh_graph(vertices, triangles, 1e-6)
        put_graph_in_cache(key, graph)

``get_or_build_graph`` wraps exactly this sequence.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import Optional, Tuple

import numpy as np

from .mesh_graph import MeshGraph, build_mesh_graph


@dataclass(frozen=True)
class GraphCacheKey:
    """Unique identifier for a cached graph.

    Attributes:
        fingerprint: SHA‑256 hex digest of the canonical mesh buffers.
        weld_tolerance: Relative weld tolerance the graph was built with.
    """

    fingerprint: str
    weld_tolerance: float


# Underlying storage for the graph cache.  A reentrant lock protects the
# dictionary to allow safe concurrent access from the server's worker
# threads.
_cache: "OrderedDict[GraphCacheKey, MeshGraph]" = OrderedDict()
_lock = RLock()
# Maximum number of graphs retained in the cache.
MAX_CACHE_ENTRIES: int = 16


def mesh_fingerprint(vertices: np.ndarray, triangles: np.ndarray) -> str:
    """Return a content hash of coerced ``(V, 3)`` / ``(T, 3)`` mesh arrays."""
    sha256 = hashlib.sha256()
    verts = np.ascontiguousarray(vertices, dtype=np.float64)
    tris = np.ascontiguousarray(triangles, dtype=np.int64)
    sha256.update(f"{verts.shape}:{tris.shape}".encode("ascii"))
    sha256.update(verts.tobytes())
    sha256.update(tris.tobytes())
    return sha256.hexdigest()


def get_graph_from_cache(key: GraphCacheKey) -> Optional[MeshGraph]:
    """Retrieve a cached graph if available.

    Args:
        key: Cache key identifying the mesh.

    Returns:
        The cached ``MeshGraph`` or ``None``.
    """
    with _lock:
        graph = _cache.get(key)
        if graph is not None:
            # Move the key to the end to mark it as recently used
            _cache.move_to_end(key)
        return graph


def put_graph_in_cache(key: GraphCacheKey, graph: MeshGraph) -> None:
    """Store a graph in the cache.

    If the cache exceeds its configured capacity after insertion the
    least recently used entry is removed.
    """
    with _lock:
        _cache[key] = graph
        _cache.move_to_end(key)
        if len(_cache) > MAX_CACHE_ENTRIES:
            _cache.popitem(last=False)


def clear_graph_cache() -> None:
    """Drop every cached graph."""
    with _lock:
        _cache.clear()


def graph_cache_size() -> int:
    with _lock:
        return len(_cache)


def get_or_build_graph(
    vertices: np.ndarray,
    triangles: np.ndarray,
    weld_tolerance: float,
) -> Tuple[MeshGraph, bool]:
    """Return the graph of a coerced mesh, building and caching it on a miss.

    Returns:
        ``(graph, cache_hit)``.
    """
    key = GraphCacheKey(
        fingerprint=mesh_fingerprint(vertices, triangles),
        weld_tolerance=float(weld_tolerance),
    )
    graph = get_graph_from_cache(key)
    if graph is not None:
        return graph, True
    graph = build_mesh_graph(vertices, triangles, weld_tolerance)
    put_graph_in_cache(key, graph)
    return graph, False
