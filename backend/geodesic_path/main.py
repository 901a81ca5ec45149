"""
Main application module for the geodesic path backend.

This file sets up the FastAPI application, configures CORS so a viewer
served from another origin can call the API, mounts the static frontend
files when they exist, and exposes a simple health check endpoint.

Routers for the mesh and path APIs are included under the `/api`
namespace.
"""

from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .api.routes_meshes import router as meshes_router
from .api.routes_paths import router as paths_router
from .services.mesh_store import init_db


def create_app() -> FastAPI:
    """Factory to create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    app = FastAPI(title="Geodesic Path Service")

    # The schema must exist before the first request touches the mesh
    # registry.  init_db is idempotent.
    @app.on_event("startup")  # type: ignore[misc]
    async def startup_event() -> None:
        init_db()

    # Allow all origins by default.  In production you should restrict
    # this to the domains that are allowed to access your API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(meshes_router, prefix="/api", tags=["meshes"])
    app.include_router(paths_router, prefix="/api", tags=["paths"])

    # Serve the viewer from the repository's frontend directory when present.
    frontend_dir = Path(__file__).resolve().parents[2] / "frontend"
    if frontend_dir.exists():
        app.mount(
            "/",
            StaticFiles(directory=str(frontend_dir), html=True),
            name="frontend",
        )

    return app


# Uvicorn imports this when running `uvicorn geodesic_path.main:app`
# from within the backend directory.
app = create_app()
