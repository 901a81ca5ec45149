"""
Mesh archive serialization utilities.

Registered meshes are kept on disk as compressed NumPy archives
(``.npz``) holding the raw vertex and index buffers together with the
bounding box.  Vertices are stored as float64 so that a reloaded mesh
welds and measures exactly like the buffers that were registered.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import numpy as np

REQUIRED_FIELDS = {"vertices", "indices", "bbox_min", "bbox_max"}


def mesh_bounds(vertices: np.ndarray) -> Tuple[List[float], List[float]]:
    """Return ``(bbox_min, bbox_max)`` of an ``(N, 3)`` vertex array."""
    if vertices.shape[0] == 0:
        return [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]
    return vertices.min(axis=0).tolist(), vertices.max(axis=0).tolist()


def save_mesh_archive(path: Path, vertices: np.ndarray, indices: np.ndarray) -> None:
    """Write mesh buffers to a compressed ``.npz`` file.

    Args:
        path: Destination file path.  Parent directories will not be
            created; callers should ensure the directory exists.
        vertices: ``(N, 3)`` vertex positions.
        indices: ``(T, 3)`` triangle vertex indices.
    """
    vertices_arr = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    # uint32 indices, as meshes rarely exceed 4 billion vertices.
    indices_arr = np.asarray(indices, dtype=np.uint32).reshape(-1, 3)
    bbox_min, bbox_max = mesh_bounds(vertices_arr)
    np.savez_compressed(
        path,
        vertices=vertices_arr,
        indices=indices_arr,
        bbox_min=np.array(bbox_min, dtype=np.float64),
        bbox_max=np.array(bbox_max, dtype=np.float64),
    )


def load_mesh_archive(path: Path) -> Tuple[np.ndarray, np.ndarray, List[float], List[float]]:
    """Load mesh buffers from a compressed ``.npz`` file.

    Returns:
        A tuple ``(vertices, indices, bbox_min, bbox_max)`` where
        ``vertices`` is ``(N, 3)`` float64 and ``indices`` is ``(T, 3)``
        int64.

    Raises:
        FileNotFoundError: If the specified path does not exist.
        ValueError: If the archive does not contain the expected fields.
    """
    if not path.exists():
        raise FileNotFoundError(f"Mesh archive not found: {path}")
    with np.load(path, allow_pickle=False) as data:
        if not REQUIRED_FIELDS.issubset(data.files):
            missing = REQUIRED_FIELDS - set(data.files)
            raise ValueError(f"Mesh archive is missing fields: {missing}")
        vertices = data["vertices"].astype(np.float64).reshape(-1, 3)
        indices = data["indices"].astype(np.int64).reshape(-1, 3)
        bbox_min = data["bbox_min"].astype(np.float64).tolist()
        bbox_max = data["bbox_max"].astype(np.float64).tolist()
    return vertices, indices, bbox_min, bbox_max
