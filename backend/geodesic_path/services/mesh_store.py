"""
High‑level operations over registered mesh metadata.

This module defines the ``MeshRecord`` SQLModel class and helper
functions to initialise the database and to insert, list and delete
registered meshes.  A ``MeshRecord`` stores the identifier assigned to a
mesh along with the content hash of its buffers, the location of the
``.npz`` archive on disk and summary statistics of its welded graph.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, SQLModel, select

from .db import create_db_and_tables, get_session


class MeshRecord(SQLModel, table=True):
    """Database model representing a registered mesh.

    Several records may point at the same archive when identical
    buffers are registered more than once.
    """

    mesh_id: str = Field(primary_key=True)
    name: str
    content_hash: str = Field(index=True)
    mesh_path: str
    vertex_count: int
    triangle_count: int
    node_count: int
    edge_count: int
    component_count: int
    created_at: datetime = Field(default_factory=datetime.utcnow)
    # Status of the mesh: ready, failed
    status: str = Field(default="ready")


def init_db() -> None:
    """Initialise the database and create tables if they do not exist."""
    create_db_and_tables()


def insert_mesh_record(record: MeshRecord) -> MeshRecord:
    """Insert a new ``MeshRecord`` and return the refreshed instance."""
    with get_session() as session:
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def get_mesh_record(mesh_id: str) -> Optional[MeshRecord]:
    """Retrieve a ``MeshRecord`` by its identifier, or ``None``."""
    with get_session() as session:
        return session.get(MeshRecord, mesh_id)


def list_mesh_records() -> List[MeshRecord]:
    """Return all mesh records, oldest first."""
    with get_session() as session:
        statement = select(MeshRecord).order_by(MeshRecord.created_at)
        return list(session.exec(statement))


def count_meshes_with_hash(content_hash: str) -> int:
    with get_session() as session:
        statement = select(MeshRecord).where(MeshRecord.content_hash == content_hash)
        return len(session.exec(statement).all())


def delete_mesh_record(mesh_id: str) -> Optional[str]:
    """Delete a mesh record.

    Returns:
        The content hash of the deleted record, or ``None`` if no record
        had that id.  The archive on disk is left to the caller, since
        other records may share it.
    """
    with get_session() as session:
        record = session.get(MeshRecord, mesh_id)
        if record is None:
            return None
        content_hash = record.content_hash
        session.delete(record)
        session.commit()
        return content_hash
