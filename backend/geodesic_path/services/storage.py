"""
Local storage service for registered meshes.

Mesh buffers are validated, archived on disk as compressed ``.npz`` files
and recorded in the database.  Archives are deduplicated by the SHA‑256
fingerprint of their canonical buffers: registering the same mesh twice
creates a second ``MeshRecord`` pointing at the existing archive.
"""

from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from typing import List, Tuple

import numpy as np
from fastapi import HTTPException

from .db import STORAGE_DIR
from .graph_cache import get_or_build_graph, mesh_fingerprint
from .mesh_archive import load_mesh_archive, save_mesh_archive
from .mesh_graph import DEFAULT_WELD_TOLERANCE, coerce_index_buffer, coerce_vertex_buffer
from .mesh_store import (
    MeshRecord,
    count_meshes_with_hash,
    delete_mesh_record,
    get_mesh_record,
    insert_mesh_record,
)

logger = logging.getLogger(__name__)

# Archives are stored as storage/meshes/{content_hash}.npz.
STORAGE_MESHES_DIR = STORAGE_DIR / "meshes"
STORAGE_MESHES_DIR.mkdir(parents=True, exist_ok=True)


def _archive_path(content_hash: str) -> Path:
    return STORAGE_MESHES_DIR / f"{content_hash}.npz"


def save_mesh_buffers(
    name: str,
    vertex_positions,
    triangle_indices,
    weld_tolerance: float = DEFAULT_WELD_TOLERANCE,
) -> MeshRecord:
    """Validate, archive and record a mesh.

    The welded graph is built once here, which both validates the mesh
    and warms the graph cache for the first path query.

    Raises:
        MalformedMeshError: If the buffers are not a valid mesh.
    """
    t0 = time.perf_counter()
    vertices = coerce_vertex_buffer(vertex_positions)
    triangles = coerce_index_buffer(triangle_indices, vertices.shape[0])
    graph, _ = get_or_build_graph(vertices, triangles, weld_tolerance)
    labels = graph.connected_components()
    component_count = int(labels.max()) + 1 if labels.size else 0

    content_hash = mesh_fingerprint(vertices, triangles)
    archive_path = _archive_path(content_hash)
    if archive_path.exists():
        logger.info("Reusing mesh archive %s for %r", archive_path.name, name)
    else:
        save_mesh_archive(archive_path, vertices, triangles)

    record = MeshRecord(
        mesh_id=uuid.uuid4().hex,
        name=name,
        content_hash=content_hash,
        mesh_path=str(archive_path),
        vertex_count=int(vertices.shape[0]),
        triangle_count=int(triangles.shape[0]),
        node_count=graph.node_count,
        edge_count=graph.edge_count,
        component_count=component_count,
    )
    record = insert_mesh_record(record)
    logger.info(
        "Registered mesh %s (%r): vertices=%d nodes=%d edges=%d components=%d in %.3fs",
        record.mesh_id,
        name,
        record.vertex_count,
        record.node_count,
        record.edge_count,
        component_count,
        time.perf_counter() - t0,
    )
    return record


def get_mesh_or_404(mesh_id: str) -> MeshRecord:
    record = get_mesh_record(mesh_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Mesh not found")
    return record


def load_mesh_buffers(mesh_id: str) -> Tuple[np.ndarray, np.ndarray, List[float], List[float]]:
    """Return ``(vertices, triangles, bbox_min, bbox_max)`` of a registered mesh.

    Raises:
        HTTPException: 404 if the mesh or its archive cannot be found.
    """
    record = get_mesh_or_404(mesh_id)
    try:
        return load_mesh_archive(Path(record.mesh_path))
    except FileNotFoundError:
        logger.error("Archive for mesh %s is missing: %s", mesh_id, record.mesh_path)
        raise HTTPException(status_code=404, detail="Mesh archive not found")


def delete_mesh(mesh_id: str) -> None:
    """Delete a registered mesh and its archive once no record uses it.

    Raises:
        HTTPException: 404 if the mesh does not exist.
    """
    content_hash = delete_mesh_record(mesh_id)
    if content_hash is None:
        raise HTTPException(status_code=404, detail="Mesh not found")
    if count_meshes_with_hash(content_hash) == 0:
        _archive_path(content_hash).unlink(missing_ok=True)
        logger.info("Removed orphaned mesh archive %s", content_hash)
