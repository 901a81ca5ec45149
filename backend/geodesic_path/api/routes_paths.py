"""
Routes for geodesic path queries and export.

``POST /geodesic-path`` is stateless: the request carries the mesh
buffers and the response carries the flat path buffer.  Paths computed
on a registered mesh are kept in an in-memory registry so they can be
fetched again or exported as CSV.

Handlers are plain ``def`` functions; FastAPI runs them in its worker
thread pool so a long search does not block the event loop.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import uuid
from typing import Dict, NoReturn, Optional

from fastapi import APIRouter, HTTPException, Response

from ..services.errors import (
    GeodesicPathError,
    IndexOutOfRangeError,
    MalformedMeshError,
    SearchCancelledError,
    UnreachableTargetError,
)
from ..services.mesh_graph import DEFAULT_WELD_TOLERANCE
from ..services.path_service import PathOptions, PathService, PathServiceState
from ..services.storage import get_mesh_or_404, load_mesh_buffers
from .models import (
    GeodesicPathRequest,
    GeodesicPathResponse,
    MeshPathRequest,
    PathPoint,
    PathResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# In‑memory registry of paths keyed by pathId.  Each entry maps to a
# dictionary containing the associated meshId, list of PathPoint
# objects and metadata.
path_registry: Dict[str, Dict] = {}

# Optional limit in seconds on a single shortest path search.
_timeout_env = os.getenv("GEODESIC_SOLVER_TIMEOUT")
SOLVER_TIMEOUT: Optional[float] = float(_timeout_env) if _timeout_env else None


def raise_http_error(exc: GeodesicPathError) -> NoReturn:
    """Translate a path service error into an ``HTTPException``."""
    if isinstance(exc, (MalformedMeshError, IndexOutOfRangeError)):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, SearchCancelledError):
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    logger.error("Path computation failed in state %s: %s", exc.state, exc)
    raise HTTPException(status_code=500, detail="Internal error while computing the path") from exc


def _not_found_metadata(exc: UnreachableTargetError) -> Dict:
    return {"reason": str(exc), "length": 0.0, "pointCount": 0}


@router.post("/geodesic-path", response_model=GeodesicPathResponse)
def compute_geodesic_path(body: GeodesicPathRequest) -> GeodesicPathResponse:
    """Compute the path between two vertices of the mesh in the request body."""
    weld_tolerance = DEFAULT_WELD_TOLERANCE if body.weldTolerance is None else body.weldTolerance
    service = PathService(
        PathOptions(
            weld_tolerance=weld_tolerance,
            straighten=body.straighten,
            timeout=SOLVER_TIMEOUT,
        ),
        use_cache=True,
    )
    try:
        result = service.find_path(body.startIndex, body.endIndex, body.vertices, body.indices)
    except UnreachableTargetError as exc:
        return GeodesicPathResponse(
            found=False,
            status=PathServiceState.FAILED.value,
            points=[],
            pointCount=0,
            length=0.0,
            metadata=_not_found_metadata(exc),
        )
    except GeodesicPathError as exc:
        raise_http_error(exc)
    return GeodesicPathResponse(
        found=True,
        status=PathServiceState.DONE.value,
        points=result.points.reshape(-1).tolist(),
        pointCount=result.point_count,
        length=result.length,
        metadata=result.metadata,
    )


@router.post(
    "/meshes/{mesh_id}/paths",
    response_model=PathResponse,
    status_code=201,
)
def create_mesh_path(mesh_id: str, body: MeshPathRequest, response: Response) -> PathResponse:
    """Compute and store a path on a registered mesh.

    When the endpoints are not connected nothing is stored and the
    response has status 200 with ``found`` set to false.
    """
    vertices, triangles, _, _ = load_mesh_buffers(mesh_id)
    service = PathService(
        PathOptions(straighten=body.straighten, timeout=SOLVER_TIMEOUT),
        use_cache=True,
    )
    try:
        result = service.find_path(body.startIndex, body.endIndex, vertices, triangles)
    except UnreachableTargetError as exc:
        response.status_code = 200
        return PathResponse(
            meshId=mesh_id,
            found=False,
            points=[],
            metadata=_not_found_metadata(exc),
        )
    except GeodesicPathError as exc:
        raise_http_error(exc)

    points = [PathPoint(x=x, y=y, z=z) for x, y, z in result.points.tolist()]
    metadata = dict(result.metadata)
    metadata["length"] = result.length
    metadata["pointCount"] = result.point_count
    path_id = uuid.uuid4().hex
    path_registry[path_id] = {
        "meshId": mesh_id,
        "points": points,
        "metadata": metadata,
    }
    logger.info(
        "[create_mesh_path] mesh=%s path=%s points=%d length=%.6g",
        mesh_id,
        path_id,
        result.point_count,
        result.length,
    )
    return PathResponse(
        pathId=path_id,
        meshId=mesh_id,
        found=True,
        points=points,
        metadata=metadata,
    )


def _get_path_entry(mesh_id: str, path_id: str) -> Dict:
    entry = path_registry.get(path_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Path not found")
    if entry["meshId"] != mesh_id:
        raise HTTPException(status_code=400, detail="Mesh mismatch for path")
    return entry


@router.get("/meshes/{mesh_id}/paths/{path_id}", response_model=PathResponse)
def get_mesh_path(mesh_id: str, path_id: str) -> PathResponse:
    """Return a previously computed path."""
    get_mesh_or_404(mesh_id)
    entry = _get_path_entry(mesh_id, path_id)
    return PathResponse(
        pathId=path_id,
        meshId=mesh_id,
        found=True,
        points=entry["points"],
        metadata=entry["metadata"],
    )


@router.get("/meshes/{mesh_id}/paths/{path_id}/export")
def export_path(mesh_id: str, path_id: str) -> Response:
    """Export the stored path as CSV.

    Args:
        mesh_id: Identifier of the mesh.
        path_id: Identifier of the path to export.

    Returns:
        A Response containing CSV data for the points.
    """
    entry = _get_path_entry(mesh_id, path_id)
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(["x", "y", "z"])
    for p in entry["points"]:
        writer.writerow([p.x, p.y, p.z])
    return Response(content=output.getvalue(), media_type="text/csv")


def forget_mesh_paths(mesh_id: str) -> int:
    """Drop every stored path of a mesh and return how many were removed."""
    stale = [path_id for path_id, entry in path_registry.items() if entry["meshId"] == mesh_id]
    for path_id in stale:
        del path_registry[path_id]
    return len(stale)
