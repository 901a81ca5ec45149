"""
Entry point for the geodesic path service.

Running this script with ``python run.py`` will start the FastAPI
server.  The application defined in ``backend/geodesic_path/main.py`` is
imported after adjusting the Python path to include the repository root.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import uvicorn

logging.basicConfig(
    level=logging.DEBUG if os.getenv("GEODESIC_DEBUG") else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """Run the Uvicorn server hosting the geodesic path service."""
    # Make ``backend`` importable as a package from the repository root.
    repo_root = Path(__file__).resolve().parent
    if str(repo_root) not in sys.path:
        sys.path.append(str(repo_root))

    from backend.geodesic_path.main import app  # type: ignore

    host = os.getenv("GEODESIC_HOST", "0.0.0.0")
    port = int(os.getenv("GEODESIC_PORT", "8000"))
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
