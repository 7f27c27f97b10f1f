from __future__ import annotations

import json
import logging
import math
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import shapely
from shapely.geometry import LineString, Polygon
from shapely.geometry import Point as ShapelyPoint
from shapely.prepared import prep

from .models import (
    BrushGeometry,
    EllipseGeometry,
    FogOperation,
    FogShape,
    Geometry,
    Point,
    PolygonGeometry,
    RectGeometry,
    geometry_coords,
)

log = logging.getLogger("battlemap.fog")

Containment = Callable[[float, float], bool]


def degenerate_reason(geometry: Geometry) -> Optional[str]:
    """Why `geometry` encloses no area, or None when it is usable."""
    if not all(math.isfinite(c) for c in geometry_coords(geometry)):
        return "geometry has non-finite coordinates"
    if isinstance(geometry, (RectGeometry, EllipseGeometry)):
        if geometry.w == 0 or geometry.h == 0:
            return f"{geometry.kind} has zero width or height"
        return None
    if isinstance(geometry, PolygonGeometry):
        if len(geometry.points) < 3:
            return "polygon needs at least 3 points"
        if polygon_shape(geometry.points).area == 0:
            return "polygon has zero area"
        return None
    if isinstance(geometry, BrushGeometry):
        if len(geometry.points) < 2:
            return "brush stroke needs at least 2 points"
        if geometry.width <= 0:
            return "brush width must be positive"
        return None
    raise TypeError(f"unhandled geometry: {type(geometry).__name__}")


def polygon_shape(points: Sequence[Point]):
    """Shapely geometry of a polygon outline (at least 3 points).

    Self-intersecting outlines are split into valid parts, so the lobes of a
    figure-8 each count with their own area instead of cancelling out.
    """
    poly = Polygon(points)
    if not poly.is_valid:
        poly = shapely.make_valid(poly)
    return poly


def compile_containment(geometry: Geometry) -> Containment:
    """Point-in-geometry predicate for one shape (boundary counts as inside)."""
    if isinstance(geometry, RectGeometry):
        x0, y0, x1, y1 = geometry.normalized()
        return lambda x, y: x0 <= x <= x1 and y0 <= y <= y1

    if isinstance(geometry, EllipseGeometry):
        cx, cy = geometry.center
        rx, ry = geometry.radii
        return lambda x, y: ((x - cx) / rx) ** 2 + ((y - cy) / ry) ** 2 <= 1.0

    if isinstance(geometry, PolygonGeometry):
        prepared = prep(polygon_shape(geometry.points))
        return lambda x, y: prepared.covers(ShapelyPoint(x, y))

    if isinstance(geometry, BrushGeometry):
        pts = _dedupe(geometry.points)
        stroke = ShapelyPoint(pts[0]) if len(pts) == 1 else LineString(pts)
        half = geometry.width / 2
        return lambda x, y: stroke.distance(ShapelyPoint(x, y)) <= half

    raise TypeError(f"unhandled geometry: {type(geometry).__name__}")


def _dedupe(points: Sequence[Point]) -> List[Point]:
    out: List[Point] = []
    for p in points:
        if not out or out[-1] != tuple(p):
            out.append(tuple(p))
    return out


class FogMask:
    """Ordered log of hide/reveal shapes.

    The log is an append-only, deletable sequence; shapes themselves are
    immutable, so an edit is a delete followed by an append. Whether a point
    is hidden depends only on the current ordered snapshot, which makes the
    mask safe to rebuild from a replicated shape list at any time.

    Initial policy: every point starts *visible* (the editor's base mask is
    transparent) unless `initially_hidden` is set.
    """

    def __init__(self, shapes: Iterable[FogShape] = (), *, initially_hidden: bool = False) -> None:
        self.initially_hidden = initially_hidden
        self._order: List[str] = []
        self._shapes: Dict[str, FogShape] = {}
        # Derived per-shape predicates, rebuilt on demand after a load.
        self._compiled: Dict[str, Containment] = {}
        for shape in shapes:
            self.append(shape)

    # --- log edits ---
    def append(self, shape: FogShape) -> Optional[str]:
        """Append `shape`; returns None, or the reason it was rejected."""
        reason = degenerate_reason(shape.geometry)
        if reason is None and shape.id in self._shapes:
            reason = f"duplicate shape id {shape.id!r}"
        if reason is not None:
            log.debug("Rejected fog shape %s (%s): %s", shape.id, shape.kind, reason)
            return reason
        self._order.append(shape.id)
        self._shapes[shape.id] = shape
        return None

    def delete(self, shape_id: str) -> bool:
        if shape_id not in self._shapes:
            return False
        del self._shapes[shape_id]
        self._compiled.pop(shape_id, None)
        self._order.remove(shape_id)
        return True

    def clear(self) -> None:
        self._order.clear()
        self._shapes.clear()
        self._compiled.clear()

    def replace(self, shapes: Iterable[FogShape]) -> List[Tuple[str, str]]:
        """Swap in a new ordered snapshot; returns (id, reason) for rejects."""
        self.clear()
        rejected = []
        for shape in shapes:
            reason = self.append(shape)
            if reason is not None:
                rejected.append((shape.id, reason))
        return rejected

    # --- queries ---
    def is_hidden(self, point: Point) -> bool:
        x, y = point
        # Replaying in order, the last shape that contains the point decides:
        # add -> hidden, subtract -> visible. Scan from the end for it.
        for shape_id in reversed(self._order):
            if self._contains(shape_id, x, y):
                return self._shapes[shape_id].operation == FogOperation.ADD
        return self.initially_hidden

    def hidden_points(self, points: Iterable[Point]) -> List[bool]:
        return [self.is_hidden(p) for p in points]

    def _contains(self, shape_id: str, x: float, y: float) -> bool:
        test = self._compiled.get(shape_id)
        if test is None:
            test = compile_containment(self._shapes[shape_id].geometry)
            self._compiled[shape_id] = test
        return test(x, y)

    def shapes(self) -> Tuple[FogShape, ...]:
        return tuple(self._shapes[i] for i in self._order)

    def get(self, shape_id: str) -> Optional[FogShape]:
        return self._shapes.get(shape_id)

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[FogShape]:
        return iter(self.shapes())

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._shapes

    # --- persistence ---
    def to_records(self) -> List[dict]:
        return [s.model_dump(mode="json") for s in self.shapes()]

    @classmethod
    def from_records(cls, records: Iterable[dict], *, initially_hidden: bool = False) -> "FogMask":
        return cls((FogShape.model_validate(r) for r in records), initially_hidden=initially_hidden)

    def to_json(self) -> str:
        return json.dumps(self.to_records())

    @classmethod
    def from_json(cls, text: str, *, initially_hidden: bool = False) -> "FogMask":
        return cls.from_records(json.loads(text), initially_hidden=initially_hidden)
