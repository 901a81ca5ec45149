"""
Tests for the stateless geodesic path endpoint.

``POST /api/geodesic-path`` receives the mesh buffers in the request
body and answers with the flat path buffer.  These tests check the happy
path, the ``found: false`` answer for disconnected endpoints and the
mapping of invalid input onto HTTP errors.
"""

import math
import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("GEODESIC_STORAGE_DIR", tempfile.mkdtemp(prefix="geodesic-tests-"))
sys.path.append(str(Path(__file__).resolve().parents[1]))
from geodesic_path.main import app  # type: ignore
from geodesic_path.services.primitives import grid_mesh, merge_meshes, offset_mesh, unit_cube_mesh  # type: ignore


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _request(start: int, end: int, mesh, **extra) -> dict:
    vertices, indices = mesh
    body = {"startIndex": start, "endIndex": end, "vertices": vertices, "indices": indices}
    body.update(extra)
    return body


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_cube_diagonal(client: TestClient) -> None:
    """The path between opposite cube corners has four points and length 3."""
    response = client.post("/api/geodesic-path", json=_request(0, 7, unit_cube_mesh()))
    assert response.status_code == 200
    data = response.json()
    assert data["found"] is True
    assert data["status"] == "done"
    assert data["pointCount"] == 4
    assert len(data["points"]) == 12
    assert data["points"][:3] == [0.0, 0.0, 0.0]
    assert data["points"][-3:] == [1.0, 1.0, 1.0]
    assert math.isclose(data["length"], 3.0)
    assert data["metadata"]["nodeCount"] == 8


def test_disconnected_endpoints_are_not_found(client: TestClient) -> None:
    triangle = ([0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0], [0, 1, 2])
    mesh = merge_meshes(triangle, offset_mesh(triangle, dx=4.0))
    response = client.post("/api/geodesic-path", json=_request(0, 3, mesh))
    assert response.status_code == 200
    data = response.json()
    assert data["found"] is False
    assert data["points"] == []
    assert data["pointCount"] == 0


def test_out_of_range_index_is_rejected(client: TestClient) -> None:
    response = client.post("/api/geodesic-path", json=_request(0, 8, unit_cube_mesh()))
    assert response.status_code == 400
    response = client.post("/api/geodesic-path", json=_request(-1, 3, unit_cube_mesh()))
    assert response.status_code == 400


def test_malformed_mesh_is_rejected(client: TestClient) -> None:
    vertices, indices = unit_cube_mesh()
    response = client.post("/api/geodesic-path", json=_request(0, 1, (vertices[:-1], indices)))
    assert response.status_code == 400
    response = client.post("/api/geodesic-path", json=_request(0, 1, (vertices, indices + [99, 0, 1])))
    assert response.status_code == 400


def test_negative_weld_tolerance_fails_validation(client: TestClient) -> None:
    response = client.post(
        "/api/geodesic-path", json=_request(0, 7, unit_cube_mesh(), weldTolerance=-1.0)
    )
    assert response.status_code == 422


def test_straighten_flag(client: TestClient) -> None:
    """Straightening a path across a flat strip yields the straight-line length."""
    response = client.post(
        "/api/geodesic-path", json=_request(0, 7, grid_mesh(3, 1), straighten=True)
    )
    assert response.status_code == 200
    data = response.json()
    assert data["found"] is True
    assert data["metadata"]["straightened"] is True
    assert data["length"] == pytest.approx(math.sqrt(10.0), abs=1e-6)
    assert len(data["points"]) == 3 * data["pointCount"]
