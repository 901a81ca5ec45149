"""
Routes for registering, listing and deleting meshes.

A registered mesh is validated by building its welded graph, archived
on disk and recorded in the database.  Paths are then computed against
it by id (see ``routes_paths.py``) without resending the buffers.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Response

from ..services.errors import MalformedMeshError
from ..services.mesh_store import MeshRecord, list_mesh_records
from ..services.primitives import DEMO_MESHES
from ..services.storage import delete_mesh, get_mesh_or_404, load_mesh_buffers, save_mesh_buffers
from .models import MeshBBox, MeshBuffersResponse, MeshCreateRequest, MeshInfo
from .routes_paths import forget_mesh_paths, raise_http_error

router = APIRouter()


def _mesh_info(record: MeshRecord) -> MeshInfo:
    return MeshInfo(
        meshId=record.mesh_id,
        name=record.name,
        createdAt=record.created_at,
        status=record.status,
        contentHash=record.content_hash,
        vertexCount=record.vertex_count,
        triangleCount=record.triangle_count,
        nodeCount=record.node_count,
        edgeCount=record.edge_count,
        componentCount=record.component_count,
    )


@router.post("/meshes", response_model=MeshInfo, status_code=201)
def create_mesh(body: MeshCreateRequest) -> MeshInfo:
    """Register a mesh from flat vertex and index buffers."""
    try:
        record = save_mesh_buffers(body.name, body.vertices, body.indices)
    except MalformedMeshError as exc:
        raise_http_error(exc)
    return _mesh_info(record)


@router.post("/meshes/demo/{kind}", response_model=MeshInfo, status_code=201)
def create_demo_mesh(kind: str) -> MeshInfo:
    """Register one of the built-in demo meshes (``cube``, ``seam-cube``, ``grid``)."""
    builder = DEMO_MESHES.get(kind)
    if builder is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown demo mesh '{kind}'. Expected one of {sorted(DEMO_MESHES)}",
        )
    vertices, indices = builder()
    return _mesh_info(save_mesh_buffers(kind, vertices, indices))


@router.get("/meshes", response_model=List[MeshInfo])
def list_meshes() -> List[MeshInfo]:
    """Return all registered meshes."""
    return [_mesh_info(record) for record in list_mesh_records()]


@router.get("/meshes/{mesh_id}", response_model=MeshInfo)
def get_mesh(mesh_id: str) -> MeshInfo:
    return _mesh_info(get_mesh_or_404(mesh_id))


@router.delete("/meshes/{mesh_id}", status_code=204)
def remove_mesh(mesh_id: str) -> Response:
    """Delete a mesh, its stored paths and, when unshared, its archive."""
    delete_mesh(mesh_id)
    forget_mesh_paths(mesh_id)
    return Response(status_code=204)


@router.get("/meshes/{mesh_id}/buffers", response_model=MeshBuffersResponse)
def get_mesh_buffers(mesh_id: str) -> MeshBuffersResponse:
    """Return the stored vertex and index buffers of a mesh."""
    vertices, triangles, bbox_min, bbox_max = load_mesh_buffers(mesh_id)
    return MeshBuffersResponse(
        meshId=mesh_id,
        vertices=vertices.reshape(-1).tolist(),
        indices=triangles.reshape(-1).tolist(),
        bbox=MeshBBox(min=bbox_min, max=bbox_max),
    )
