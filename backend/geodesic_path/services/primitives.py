"""
Small synthetic meshes.

These are used by the demo endpoint and by the tests.  Every builder
returns ``(vertices, indices)`` as flat Python lists in the same layout the
path service and the HTTP API accept: ``x, y, z`` triples for vertices and
three vertex indices per triangle.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

FlatMesh = Tuple[List[float], List[int]]

# Cube corners are numbered by their coordinate bits: x = i & 1,
# y = (i >> 1) & 1, z = (i >> 2) & 1.  Each face is listed as a cycle
# (a, b, c, d) and split along the b-d diagonal, which keeps corners 0
# and 7 off every diagonal.
CUBE_FACES: Tuple[Tuple[int, int, int, int], ...] = (
    (0, 1, 3, 2),  # z = 0
    (4, 5, 7, 6),  # z = 1
    (0, 1, 5, 4),  # y = 0
    (2, 3, 7, 6),  # y = 1
    (0, 2, 6, 4),  # x = 0
    (1, 3, 7, 5),  # x = 1
)


def cube_corner(index: int, size: float = 1.0) -> List[float]:
    """Position of cube corner ``index`` (0-7) for an axis aligned cube."""
    return [
        float(index & 1) * size,
        float((index >> 1) & 1) * size,
        float((index >> 2) & 1) * size,
    ]


def _split_quad(a: int, b: int, c: int, d: int) -> List[int]:
    return [a, b, d, b, c, d]


def unit_cube_mesh(size: float = 1.0) -> FlatMesh:
    """Closed cube with 8 shared corner vertices and 12 triangles."""
    vertices: List[float] = []
    for corner in range(8):
        vertices.extend(cube_corner(corner, size))
    indices: List[int] = []
    for face in CUBE_FACES:
        indices.extend(_split_quad(*face))
    return vertices, indices


def seam_cube_mesh(size: float = 1.0) -> FlatMesh:
    """Cube with unshared vertices per face, as exported for flat shading.

    Vertex ``4 * f + k`` duplicates corner ``CUBE_FACES[f][k]``, giving 24
    input vertices that weld back to the 8 corners.  Without welding every
    face would be its own disconnected component.
    """
    vertices: List[float] = []
    indices: List[int] = []
    for face_number, face in enumerate(CUBE_FACES):
        base = 4 * face_number
        for corner in face:
            vertices.extend(cube_corner(corner, size))
        indices.extend(_split_quad(base, base + 1, base + 2, base + 3))
    return vertices, indices


def seam_cube_vertex(corner: int, face_number: Optional[int] = None) -> int:
    """Index of a seam cube vertex sitting on ``corner``.

    With ``face_number`` the copy on that face is returned, otherwise the
    first copy in buffer order.
    """
    for number, face in enumerate(CUBE_FACES):
        if face_number is not None and number != face_number:
            continue
        if corner in face:
            return 4 * number + face.index(corner)
    raise ValueError(f"Corner {corner} does not lie on face {face_number}")


def grid_mesh(nx: int, ny: int, spacing: float = 1.0, z: float = 0.0) -> FlatMesh:
    """Flat ``nx`` x ``ny`` cell grid in the plane ``z``.

    Vertex ``(i, j)`` has index ``j * (nx + 1) + i``.  Each cell is split
    along its ``(i, j)``-``(i + 1, j + 1)`` diagonal.
    """
    if nx < 1 or ny < 1:
        raise ValueError("grid_mesh needs at least one cell in each direction")
    vertices: List[float] = []
    for j in range(ny + 1):
        for i in range(nx + 1):
            vertices.extend([i * spacing, j * spacing, z])
    indices: List[int] = []
    row = nx + 1
    for j in range(ny):
        for i in range(nx):
            v00 = j * row + i
            v10 = v00 + 1
            v01 = v00 + row
            v11 = v01 + 1
            indices.extend([v00, v10, v11, v00, v11, v01])
    return vertices, indices


def offset_mesh(mesh: FlatMesh, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> FlatMesh:
    """Return a translated copy of ``mesh``."""
    vertices, indices = mesh
    moved: List[float] = []
    for k in range(0, len(vertices), 3):
        moved.extend([vertices[k] + dx, vertices[k + 1] + dy, vertices[k + 2] + dz])
    return moved, list(indices)


def merge_meshes(*meshes: FlatMesh) -> FlatMesh:
    """Concatenate meshes into one buffer pair without sharing vertices."""
    vertices: List[float] = []
    indices: List[int] = []
    for mesh_vertices, mesh_indices in meshes:
        base = len(vertices) // 3
        vertices.extend(mesh_vertices)
        indices.extend(i + base for i in mesh_indices)
    return vertices, indices


DEMO_MESHES = {
    "cube": unit_cube_mesh,
    "seam-cube": seam_cube_mesh,
    "grid": lambda: grid_mesh(8, 8),
}
