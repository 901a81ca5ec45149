"""
Tests for the mesh registry endpoints and paths on registered meshes.

These tests register meshes through ``POST /api/meshes`` and the demo
endpoint, compute and export paths on them, and check that deleting a
mesh removes its stored paths.  Storage goes to a temporary directory.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("GEODESIC_STORAGE_DIR", tempfile.mkdtemp(prefix="geodesic-tests-"))
sys.path.append(str(Path(__file__).resolve().parents[1]))
from geodesic_path.main import app  # type: ignore
from geodesic_path.services.primitives import merge_meshes, offset_mesh, unit_cube_mesh  # type: ignore


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _register_cube(client: TestClient, name: str = "cube") -> dict:
    vertices, indices = unit_cube_mesh()
    response = client.post(
        "/api/meshes", json={"name": name, "vertices": vertices, "indices": indices}
    )
    assert response.status_code == 201
    return response.json()


def test_register_and_fetch_mesh(client: TestClient) -> None:
    info = _register_cube(client)
    assert info["vertexCount"] == 8
    assert info["triangleCount"] == 12
    assert info["nodeCount"] == 8
    assert info["edgeCount"] == 18
    assert info["componentCount"] == 1
    assert info["status"] == "ready"

    response = client.get(f"/api/meshes/{info['meshId']}")
    assert response.status_code == 200
    assert response.json()["contentHash"] == info["contentHash"]

    listing = client.get("/api/meshes")
    assert listing.status_code == 200
    assert info["meshId"] in [m["meshId"] for m in listing.json()]


def test_mesh_buffers_round_trip(client: TestClient) -> None:
    info = _register_cube(client)
    response = client.get(f"/api/meshes/{info['meshId']}/buffers")
    assert response.status_code == 200
    data = response.json()
    vertices, indices = unit_cube_mesh()
    assert data["vertices"] == vertices
    assert data["indices"] == indices
    assert data["bbox"] == {"min": [0.0, 0.0, 0.0], "max": [1.0, 1.0, 1.0]}


def test_malformed_mesh_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/meshes", json={"name": "broken", "vertices": [0.0, 1.0], "indices": [0, 0, 0]}
    )
    assert response.status_code == 400


def test_unknown_mesh_returns_404(client: TestClient) -> None:
    assert client.get("/api/meshes/does-not-exist").status_code == 404
    assert client.delete("/api/meshes/does-not-exist").status_code == 404
    response = client.post(
        "/api/meshes/does-not-exist/paths", json={"startIndex": 0, "endIndex": 1}
    )
    assert response.status_code == 404


def test_demo_meshes(client: TestClient) -> None:
    response = client.post("/api/meshes/demo/seam-cube")
    assert response.status_code == 201
    info = response.json()
    assert info["vertexCount"] == 24
    assert info["nodeCount"] == 8
    assert info["componentCount"] == 1
    assert client.post("/api/meshes/demo/teapot").status_code == 404


def test_path_on_registered_mesh_and_export(client: TestClient) -> None:
    info = _register_cube(client)
    mesh_id = info["meshId"]
    response = client.post(
        f"/api/meshes/{mesh_id}/paths", json={"startIndex": 0, "endIndex": 7}
    )
    assert response.status_code == 201
    data = response.json()
    assert data["found"] is True
    assert data["meshId"] == mesh_id
    assert len(data["points"]) == 4
    assert data["points"][0] == {"x": 0.0, "y": 0.0, "z": 0.0}
    assert data["points"][-1] == {"x": 1.0, "y": 1.0, "z": 1.0}
    assert data["metadata"]["length"] == pytest.approx(3.0)
    path_id = data["pathId"]

    fetched = client.get(f"/api/meshes/{mesh_id}/paths/{path_id}")
    assert fetched.status_code == 200
    assert fetched.json()["points"] == data["points"]

    export = client.get(f"/api/meshes/{mesh_id}/paths/{path_id}/export")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    lines = export.text.strip().split("\n")
    assert lines[0] == "x,y,z"
    assert len(lines) == 5

    assert client.delete(f"/api/meshes/{mesh_id}").status_code == 204
    assert client.get(f"/api/meshes/{mesh_id}").status_code == 404
    assert client.get(f"/api/meshes/{mesh_id}/paths/{path_id}/export").status_code == 404


def test_unreachable_path_on_registered_mesh(client: TestClient) -> None:
    triangle = ([0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0], [0, 1, 2])
    vertices, indices = merge_meshes(triangle, offset_mesh(triangle, dy=3.0))
    response = client.post(
        "/api/meshes", json={"name": "pieces", "vertices": vertices, "indices": indices}
    )
    assert response.status_code == 201
    info = response.json()
    assert info["componentCount"] == 2
    response = client.post(
        f"/api/meshes/{info['meshId']}/paths", json={"startIndex": 0, "endIndex": 4}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["found"] is False
    assert data["pathId"] is None
    assert data["points"] == []


def test_bad_index_on_registered_mesh(client: TestClient) -> None:
    info = _register_cube(client)
    response = client.post(
        f"/api/meshes/{info['meshId']}/paths", json={"startIndex": 0, "endIndex": 8}
    )
    assert response.status_code == 400


def test_identical_meshes_share_an_archive(client: TestClient) -> None:
    """Deleting one of two identical meshes keeps the other's buffers loadable."""
    first = _register_cube(client, "first")
    second = _register_cube(client, "second")
    assert first["meshId"] != second["meshId"]
    assert first["contentHash"] == second["contentHash"]
    assert client.delete(f"/api/meshes/{first['meshId']}").status_code == 204
    response = client.get(f"/api/meshes/{second['meshId']}/buffers")
    assert response.status_code == 200
