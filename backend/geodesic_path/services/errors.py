"""
Typed failures raised by the geodesic path services.

Every failure of a path computation is reported through one of the
exception classes below rather than as a partial or truncated path.
All of them derive from ``GeodesicPathError`` so callers that only care
about "no path could be produced" can catch a single type, while the
API layer maps each concrete class onto its own HTTP status.

Each error records the ``PathServiceState`` in which it was raised (see
``path_service.py``).  Errors raised outside a ``PathService`` run, for
example by calling ``build_mesh_graph`` directly, carry ``None``.
"""

from __future__ import annotations

from typing import Any, Optional


class GeodesicPathError(Exception):
    """Base class for all path computation failures."""

    def __init__(self, message: str, state: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state


class MalformedMeshError(GeodesicPathError):
    """The vertex or triangle buffer violates its structural invariants.

    Raised when a buffer length is not a multiple of three, when the data
    cannot be read as numbers, when positions are not finite, or when a
    triangle references a vertex that does not exist.  A negative or
    non-finite weld tolerance is reported the same way.  Not retried; the
    caller must fix the input.
    """


class IndexOutOfRangeError(GeodesicPathError):
    """A caller supplied start or end index lies outside ``[0, vertexCount)``."""


class UnreachableTargetError(GeodesicPathError):
    """The mesh is valid but the endpoints lie in disconnected components.

    This is a reportable outcome rather than a crash: the viewer is
    expected to show "no path" and carry on.
    """


class SearchCancelledError(GeodesicPathError):
    """The shortest path search passed its deadline or was cancelled."""


class InternalInvariantError(GeodesicPathError):
    """An internal consistency check failed.

    Seeing this error means the computation detected a state that valid
    input can never produce (a negative edge weight, a broken predecessor
    chain).  The computation stops instead of returning a wrong path.
    """
