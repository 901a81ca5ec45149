"""
Tests for the in-memory mesh graph cache.
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).resolve().parents[1]))

from geodesic_path.services import graph_cache
from geodesic_path.services.graph_cache import (
    GraphCacheKey,
    clear_graph_cache,
    get_graph_from_cache,
    get_or_build_graph,
    graph_cache_size,
    mesh_fingerprint,
    put_graph_in_cache,
)
from geodesic_path.services.mesh_graph import build_mesh_graph, coerce_index_buffer, coerce_vertex_buffer
from geodesic_path.services.primitives import grid_mesh, unit_cube_mesh


def _coerced(mesh):
    vertices = coerce_vertex_buffer(mesh[0])
    return vertices, coerce_index_buffer(mesh[1], vertices.shape[0])


def test_fingerprint_depends_on_content() -> None:
    vertices, triangles = _coerced(unit_cube_mesh())
    assert mesh_fingerprint(vertices, triangles) == mesh_fingerprint(vertices.copy(), triangles.copy())
    moved = vertices.copy()
    moved[0, 0] += 0.5
    assert mesh_fingerprint(moved, triangles) != mesh_fingerprint(vertices, triangles)
    flipped = triangles[:, ::-1]
    assert mesh_fingerprint(vertices, flipped) != mesh_fingerprint(vertices, triangles)


def test_get_or_build_graph_hits_on_second_call() -> None:
    clear_graph_cache()
    vertices, triangles = _coerced(grid_mesh(2, 2))
    graph, hit = get_or_build_graph(vertices, triangles, 1e-6)
    assert hit is False
    again, hit = get_or_build_graph(vertices, triangles, 1e-6)
    assert hit is True
    assert again is graph
    clear_graph_cache()


def test_least_recently_used_entry_is_evicted(monkeypatch) -> None:
    clear_graph_cache()
    monkeypatch.setattr(graph_cache, "MAX_CACHE_ENTRIES", 2)
    graph = build_mesh_graph(*unit_cube_mesh())
    keys = [GraphCacheKey(fingerprint=f"mesh-{n}", weld_tolerance=1e-6) for n in range(3)]
    put_graph_in_cache(keys[0], graph)
    put_graph_in_cache(keys[1], graph)
    # Touch the first key so the second becomes the oldest.
    assert get_graph_from_cache(keys[0]) is graph
    put_graph_in_cache(keys[2], graph)
    assert graph_cache_size() == 2
    assert get_graph_from_cache(keys[1]) is None
    assert get_graph_from_cache(keys[0]) is graph
    assert get_graph_from_cache(keys[2]) is graph
    clear_graph_cache()
    assert graph_cache_size() == 0


def test_fingerprint_of_integral_float_indices_matches_int_indices() -> None:
    vertices = coerce_vertex_buffer(unit_cube_mesh()[0])
    as_int = coerce_index_buffer(np.asarray(unit_cube_mesh()[1]), 8)
    as_float = coerce_index_buffer(np.asarray(unit_cube_mesh()[1], dtype=np.float64), 8)
    assert mesh_fingerprint(vertices, as_int) == mesh_fingerprint(vertices, as_float)
