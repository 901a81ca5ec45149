"""
SQLite engine for the mesh registry.

The registry keeps one ``MeshRecord`` row per registered mesh (name,
content hash, archive path and graph statistics) in ``geodesic.db``.
The database and the ``meshes/`` archive directory live together under
``GEODESIC_STORAGE_DIR``, which defaults to ``storage/`` at the project
root, so pointing that variable at a temporary directory isolates a
test run or a second server instance.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlmodel import Session, SQLModel, create_engine

STORAGE_DIR = Path(
    os.getenv("GEODESIC_STORAGE_DIR", str(Path(__file__).resolve().parents[3] / "storage"))
)
STORAGE_DIR.mkdir(parents=True, exist_ok=True)

# Sync route handlers share the engine across the server's worker
# threads.
engine = create_engine(
    f"sqlite:///{(STORAGE_DIR / 'geodesic.db').as_posix()}",
    echo=False,
    connect_args={"check_same_thread": False},
)


def create_db_and_tables() -> None:
    """Create the ``MeshRecord`` table if it does not exist yet."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Return a new session; use it as ``with get_session() as session:``."""
    return Session(engine)
