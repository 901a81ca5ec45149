"""
Bounded string-pulling for edge-graph paths.

A shortest path through the edge graph is constrained to mesh edges, so
it zig-zags even across flat regions.  This module shortens such a path
locally while keeping every point on the mesh surface.  Two moves are
applied in sweeps along the path:

* **Fan pull at a node.**  For an interior point sitting on node ``c``
  the triangles around ``c`` between the previous point ``p`` and the
  next point ``q`` (the "fan") are unfolded isometrically into the plane,
  both rotational directions being tried.  When the fan turns by less
  than π at ``c`` the straight segment ``p'q'`` is intersected with the
  fan's interior spokes.  If every intersection lies on its spoke, ``c``
  is replaced by those intersection points.
* **Hinge relaxation of an edge point.**  An interior point on edge
  ``(a, b)`` is slid along that edge to where the straight line between
  its neighbours crosses it once the two triangles sharing the edge are
  unfolded about the hinge.  A point that reaches an end of its edge
  snaps to the node and becomes eligible for a fan pull.

A move is only kept if it strictly shortens the path.  Consecutive points
of every new run lie in a common triangle, so the path never leaves the
surface, and the first and last points are never touched.  Sweeps repeat
until nothing changes or ``max_passes`` is reached.

Without this pass the service returns the exact edge-graph shortest
path.  With it the path converges towards a locally shortest surface
path; it is not a full exact geodesic solver (no global face unfolding).

Debug logging of every sweep can be enabled via the ``GEODESIC_DEBUG``
environment variable.
"""

from __future__ import annotations

import logging
import math
import os
import time
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .mesh_graph import MeshGraph
from .path_reconstruct import PathResult, SurfacePoint, build_path_result

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES: int = 32

# A fan must turn by less than ``pi - FAN_ANGLE_MARGIN`` at its centre.
FAN_ANGLE_MARGIN: float = 1e-4

# Edge fractions closer than this to 0 or 1 snap to the node.
SNAP_FRACTION: float = 1e-9

# Relative length improvement required to accept a move.
LENGTH_EPS: float = 1e-12

_DEBUG = bool(os.getenv("GEODESIC_DEBUG"))

Point2 = Tuple[float, float]


class _Anchor(NamedTuple):
    """Where a neighbouring path point sits inside the star of a centre node.

    ``kind == "spoke"``: on the edge from the centre to ``x`` at fraction
    ``frac`` from the centre.  ``kind == "edge"``: on the outer edge
    ``(x, y)`` of triangle ``tri`` at fraction ``frac`` from ``x``.
    """

    kind: str
    x: int
    y: int = -1
    frac: float = 1.0
    tri: int = -1


def make_edge_point(a: int, b: int, t: float) -> SurfacePoint:
    """Return the point at fraction ``t`` from ``a`` to ``b`` in canonical form."""
    if t <= SNAP_FRACTION:
        return SurfacePoint(a)
    if t >= 1.0 - SNAP_FRACTION:
        return SurfacePoint(b)
    if a > b:
        return SurfacePoint(b, a, 1.0 - t)
    return SurfacePoint(a, b, t)


def _support(pt: SurfacePoint) -> Tuple[int, ...]:
    return (pt.a,) if pt.is_node else (pt.a, pt.b)


class _SurfaceIndex:
    """Triangle incidence lookups for one straightening run."""

    def __init__(self, graph: MeshGraph) -> None:
        self.graph = graph
        self.triangles: List[Tuple[int, int, int]] = [tuple(t) for t in graph.triangles.tolist()]
        self.incident: List[List[int]] = [[] for _ in range(graph.node_count)]
        for ti, tri in enumerate(self.triangles):
            for node in tri:
                self.incident[node].append(ti)
        self._rings: Dict[int, Dict[int, List[Tuple[int, int]]]] = {}

    def triangles_containing(self, nodes: Sequence[int]) -> List[int]:
        if len(nodes) > 3:
            return []
        return [
            ti
            for ti in self.incident[nodes[0]]
            if all(n in self.triangles[ti] for n in nodes)
        ]

    def ring(self, center: int) -> Dict[int, List[Tuple[int, int]]]:
        """Map each spoke of ``center`` to its ``(neighbouring spoke, triangle)`` pairs."""
        ring = self._rings.get(center)
        if ring is None:
            ring = {}
            for ti in self.incident[center]:
                x, y = [n for n in self.triangles[ti] if n != center]
                ring.setdefault(x, []).append((y, ti))
                ring.setdefault(y, []).append((x, ti))
            self._rings[center] = ring
        return ring


def _cross2(u: Point2, v: Point2) -> float:
    return u[0] * v[1] - u[1] * v[0]


def _lerp2(u: Point2, v: Point2, t: float) -> Point2:
    return (u[0] + (v[0] - u[0]) * t, u[1] + (v[1] - u[1]) * t)


def _angle2(u: Point2, v: Point2) -> float:
    return math.atan2(abs(_cross2(u, v)), u[0] * v[0] + u[1] * v[1])


def _run_length(graph: MeshGraph, run: Sequence[SurfacePoint]) -> float:
    total = 0.0
    prev = run[0].resolve(graph)
    for pt in run[1:]:
        cur = pt.resolve(graph)
        total += float(np.linalg.norm(cur - prev))
        prev = cur
    return total


# ---------------------------------------------------------------------------
# Fan pull


def _fan_anchor(index: _SurfaceIndex, center: int, pt: SurfacePoint) -> Optional[_Anchor]:
    ring = index.ring(center)
    if pt.is_node:
        if pt.a in ring:
            return _Anchor("spoke", pt.a, frac=1.0)
        return None
    a, b, t = pt.a, pt.b, pt.t
    if a == center:
        return _Anchor("spoke", b, frac=t) if b in ring else None
    if b == center:
        return _Anchor("spoke", a, frac=1.0 - t) if a in ring else None
    for other, ti in ring.get(a, ()):
        if other == b:
            return _Anchor("edge", a, b, frac=t, tri=ti)
    return None


def _walk_reaches(spokes: List[int], tris: List[int], end: _Anchor) -> bool:
    if end.kind == "spoke":
        return spokes[-1] == end.x
    return bool(tris) and tris[-1] == end.tri


def _fan_walks(
    index: _SurfaceIndex, center: int, start: _Anchor, end: _Anchor
) -> List[Tuple[List[int], List[int]]]:
    """Enumerate spoke sequences around ``center`` leading from ``start`` to ``end``."""
    ring = index.ring(center)
    if start.kind == "spoke":
        if end.kind == "spoke" and end.x == start.x:
            return [([start.x], [])]
        seeds = [([start.x, nxt], [ti]) for nxt, ti in ring[start.x]]
    else:
        seeds = [([start.x, start.y], [start.tri]), ([start.y, start.x], [start.tri])]

    limit = len(ring) + 1
    walks: List[Tuple[List[int], List[int]]] = []
    for spokes, tris in seeds:
        while True:
            if _walk_reaches(spokes, tris, end):
                walks.append((spokes, tris))
                break
            if len(tris) >= limit:
                break
            step = next(((o, ti) for o, ti in ring[spokes[-1]] if ti not in tris), None)
            if step is None:
                break
            spokes = spokes + [step[0]]
            tris = tris + [step[1]]
    return walks


def _unfold_fan(graph: MeshGraph, center: int, spokes: List[int]) -> Tuple[List[Point2], List[float]]:
    """Lay the fan flat: centre at the origin, first spoke along +x."""
    c = graph.positions[center]
    vectors = [graph.positions[s] - c for s in spokes]
    thetas = [0.0]
    for u, v in zip(vectors, vectors[1:]):
        thetas.append(thetas[-1] + math.atan2(float(np.linalg.norm(np.cross(u, v))), float(np.dot(u, v))))
    tips = []
    for vec, theta in zip(vectors, thetas):
        length = float(np.linalg.norm(vec))
        tips.append((length * math.cos(theta), length * math.sin(theta)))
    return tips, thetas


def _pull_through_fan(
    graph: MeshGraph,
    center: int,
    spokes: List[int],
    start: _Anchor,
    end: _Anchor,
) -> Optional[List[SurfacePoint]]:
    """Replace ``center`` by the points where the straight unfolded segment crosses the fan."""
    tips, thetas = _unfold_fan(graph, center, spokes)

    if start.kind == "spoke":
        p2 = (tips[0][0] * start.frac, tips[0][1] * start.frac)
        phi_p = thetas[0]
    else:
        frac = start.frac if spokes[0] == start.x else 1.0 - start.frac
        p2 = _lerp2(tips[0], tips[1], frac)
        phi_p = thetas[0] + _angle2(tips[0], p2)

    if end.kind == "spoke":
        q2 = (tips[-1][0] * end.frac, tips[-1][1] * end.frac)
        phi_q = thetas[-1]
    else:
        if spokes[-2] == end.x:
            q2 = _lerp2(tips[-2], tips[-1], end.frac)
        else:
            q2 = _lerp2(tips[-1], tips[-2], end.frac)
        phi_q = thetas[-2] + _angle2(tips[-2], q2)

    if phi_q - phi_p >= math.pi - FAN_ANGLE_MARGIN:
        return None

    seg = (q2[0] - p2[0], q2[1] - p2[1])
    seg_len = math.hypot(*seg)
    run: List[SurfacePoint] = []
    last_lambda = 0.0
    for i in range(1, len(spokes) - 1):
        tip = tips[i]
        denom = _cross2(seg, tip)
        if abs(denom) <= 1e-15 * seg_len * math.hypot(*tip):
            return None
        lam = _cross2(tip, p2) / denom
        s = _cross2(p2, seg) / -denom
        if lam < last_lambda - 1e-9 or lam > 1.0 + 1e-9:
            return None
        if s <= SNAP_FRACTION or s > 1.0 + 1e-9:
            return None
        last_lambda = lam
        run.append(make_edge_point(center, spokes[i], min(s, 1.0)))
    return run


def _straighten_at_node(
    index: _SurfaceIndex, p: SurfacePoint, r: SurfacePoint, q: SurfacePoint
) -> Optional[List[SurfacePoint]]:
    center = r.a
    start = _fan_anchor(index, center, p)
    end = _fan_anchor(index, center, q)
    if start is None or end is None:
        return None
    best: Optional[List[SurfacePoint]] = None
    best_len = math.inf
    for spokes, _tris in _fan_walks(index, center, start, end):
        run = _pull_through_fan(index.graph, center, spokes, start, end)
        if run is None:
            continue
        length = _run_length(index.graph, [p] + run + [q])
        if length < best_len:
            best, best_len = run, length
    return best


# ---------------------------------------------------------------------------
# Hinge relaxation


def _relax_edge_point(
    index: _SurfaceIndex, p: SurfacePoint, r: SurfacePoint, q: SurfacePoint
) -> Optional[List[SurfacePoint]]:
    graph = index.graph
    sp, sq = _support(p), _support(q)
    joined = tuple(sorted(set(sp) | set(sq)))
    if index.triangles_containing(joined):
        # p and q already share a triangle: the direct segment stays on it.
        return []

    a, b = r.a, r.b
    hinge = index.triangles_containing((a, b))
    t1 = next((ti for ti in hinge if all(n in index.triangles[ti] for n in sp)), None)
    t2 = next(
        (ti for ti in hinge if ti != t1 and all(n in index.triangles[ti] for n in sq)),
        None,
    )
    if t1 is None or t2 is None:
        return None

    pa = graph.positions[a]
    pb = graph.positions[b]
    base = float(np.linalg.norm(pb - pa))
    if base == 0.0:
        return None
    coords: Dict[int, Point2] = {a: (0.0, 0.0), b: (base, 0.0)}
    for ti, sign in ((t1, -1.0), (t2, 1.0)):
        apex = next(n for n in index.triangles[ti] if n != a and n != b)
        w = graph.positions[apex]
        da2 = float(np.dot(w - pa, w - pa))
        db2 = float(np.dot(w - pb, w - pb))
        x = (da2 - db2 + base * base) / (2.0 * base)
        coords[apex] = (x, sign * math.sqrt(max(da2 - x * x, 0.0)))

    def planar(pt: SurfacePoint) -> Point2:
        if pt.is_node:
            return coords[pt.a]
        return _lerp2(coords[pt.a], coords[pt.b], pt.t)

    p2 = planar(p)
    q2 = planar(q)
    tiny = 1e-12 * base
    if p2[1] > -tiny or q2[1] < tiny:
        return None
    lam = p2[1] / (p2[1] - q2[1])
    crossing = p2[0] + lam * (q2[0] - p2[0])
    t = min(max(crossing / base, 0.0), 1.0)
    return [make_edge_point(a, b, t)]


# ---------------------------------------------------------------------------


def straighten_path(
    graph: MeshGraph, result: PathResult, max_passes: int = DEFAULT_MAX_PASSES
) -> PathResult:
    """Shorten an edge-graph path by bounded string-pulling.

    Args:
        graph: Graph the path was computed on.
        result: Path to straighten.  It is not modified.
        max_passes: Upper bound on the number of sweeps.

    Returns:
        PathResult: A new result with ``straightened`` set when at least
        one move was applied.  Paths with fewer than three points are
        returned unchanged.
    """
    points = list(result.surface_points)
    if len(points) < 3 or max_passes <= 0:
        return result

    t_start = time.perf_counter()
    index = _SurfaceIndex(graph)
    changed_any = False
    passes = 0
    for passes in range(1, max_passes + 1):
        changed = False
        i = 1
        while i < len(points) - 1:
            p, r, q = points[i - 1], points[i], points[i + 1]
            if r.is_node:
                candidate = _straighten_at_node(index, p, r, q)
            else:
                candidate = _relax_edge_point(index, p, r, q)
            if candidate is not None:
                candidate = [pt for pt in candidate if pt != p and pt != q]
                if candidate != [r]:
                    old_len = _run_length(graph, [p, r, q])
                    new_len = _run_length(graph, [p] + candidate + [q])
                    if new_len < old_len - LENGTH_EPS * old_len:
                        points[i : i + 1] = candidate
                        changed = True
                        i += len(candidate)
                        continue
            i += 1
        if _DEBUG:
            logger.debug(
                "[Straighten] pass %d: %d points, changed=%s", passes, len(points), changed
            )
        if not changed:
            break
        changed_any = True

    straightened = build_path_result(graph, result.nodes, points, straightened=changed_any)
    straightened.metadata = dict(result.metadata)
    straightened.metadata["straightenPasses"] = passes
    logger.debug(
        "[Straighten] length %.6g -> %.6g (%d -> %d points) in %d passes, %.4fs",
        result.length,
        straightened.length,
        result.point_count,
        straightened.point_count,
        passes,
        time.perf_counter() - t_start,
    )
    return straightened
