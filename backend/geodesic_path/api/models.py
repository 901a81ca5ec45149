"""
Pydantic data models for the geodesic path API.

These models define the shapes of requests and responses used by the
backend.  Field names are camelCase to match the JSON the viewer sends
and expects.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class GeodesicPathRequest(BaseModel):
    """Stateless path query carrying its own mesh buffers."""

    startIndex: int = Field(..., description="Input vertex index where the path starts")
    endIndex: int = Field(..., description="Input vertex index where the path ends")
    vertices: List[float] = Field(..., description="Flat list of vertex positions (x, y, z …)")
    indices: List[int] = Field(..., description="Index buffer defining the mesh triangles")
    straighten: bool = Field(
        default=False,
        description="Pull the edge path tight across faces after the graph search",
    )
    weldTolerance: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Weld distance relative to the bounding box diagonal (server default when omitted)",
    )


class GeodesicPathResponse(BaseModel):
    """Path returned by the stateless query.

    ``found`` is false when the endpoints lie on disconnected parts of
    the mesh; ``points`` is then empty.
    """

    found: bool = Field(..., description="Whether a path connects the two vertices")
    status: str = Field(..., description="Final state of the path computation")
    points: List[float] = Field(..., description="Flat list of path positions (x, y, z …)")
    pointCount: int = Field(..., description="Number of points in the path")
    length: float = Field(..., description="Total length of the path polyline")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Graph statistics and timings"
    )


class MeshCreateRequest(BaseModel):
    """Request body for registering a mesh."""

    name: str = Field(default="mesh", description="Display name of the mesh")
    vertices: List[float] = Field(..., description="Flat list of vertex positions (x, y, z …)")
    indices: List[int] = Field(..., description="Index buffer defining the mesh triangles")


class MeshInfo(BaseModel):
    """Summary of a registered mesh and its welded graph."""

    meshId: str = Field(..., description="Unique identifier for the mesh")
    name: str = Field(..., description="Display name of the mesh")
    createdAt: Any = Field(..., description="Timestamp of when the mesh was registered")
    status: str = Field(..., description="Status of the mesh")
    contentHash: str = Field(..., description="SHA‑256 fingerprint of the mesh buffers")
    vertexCount: int = Field(..., description="Number of input vertices")
    triangleCount: int = Field(..., description="Number of input triangles")
    nodeCount: int = Field(..., description="Number of vertices after welding")
    edgeCount: int = Field(..., description="Number of unique edges after welding")
    componentCount: int = Field(..., description="Number of connected components")


class MeshBBox(BaseModel):
    """Axis‑aligned bounding box for a mesh."""

    min: List[float] = Field(..., description="Minimum x, y, z coordinates of the mesh")
    max: List[float] = Field(..., description="Maximum x, y, z coordinates of the mesh")


class MeshBuffersResponse(BaseModel):
    """Stored buffers of a registered mesh."""

    meshId: str = Field(..., description="Identifier of the mesh")
    vertices: List[float] = Field(..., description="Flat list of vertex positions (x, y, z …)")
    indices: List[int] = Field(..., description="Index buffer defining the mesh triangles")
    bbox: MeshBBox = Field(..., description="Bounding box around the mesh")


class MeshPathRequest(BaseModel):
    """Request body for computing a path on a registered mesh."""

    startIndex: int = Field(..., description="Input vertex index where the path starts")
    endIndex: int = Field(..., description="Input vertex index where the path ends")
    straighten: bool = Field(
        default=False,
        description="Pull the edge path tight across faces after the graph search",
    )


class PathPoint(BaseModel):
    """Single 3D point along a path."""

    x: float
    y: float
    z: float


class PathResponse(BaseModel):
    """Response returned after a path is computed on a registered mesh."""

    pathId: Optional[str] = Field(
        default=None, description="Identifier of the stored path (absent when no path was found)"
    )
    meshId: str = Field(..., description="Identifier of the associated mesh")
    found: bool = Field(..., description="Whether a path connects the two vertices")
    points: List[PathPoint] = Field(..., description="Ordered list of points along the path")
    metadata: Dict[str, Any] = Field(
        ..., description="Additional metadata such as length and graph statistics"
    )
