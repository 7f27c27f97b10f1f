"""Small plane-geometry helpers shared by the fog and room modules."""

from __future__ import annotations

from typing import Iterator, List, Sequence, Tuple

from shapely.geometry import LineString

Point = Tuple[float, float]
Cell = Tuple[int, int]


def bresenham_line(a: Cell, b: Cell) -> Iterator[Cell]:
    """Cells from a to b inclusive (all octants)."""
    x0, y0 = a
    x1, y1 = b
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    while True:
        yield (x0, y0)
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 > dy:
            err += dy
            x0 += sx
        if e2 < dx:
            err += dx
            y0 += sy


def simplify_ring(points: Sequence[Point], tolerance: float) -> List[Point]:
    """Douglas-Peucker simplification of a closed outline.

    `points` is an open vertex list; the ring is closed before simplifying so
    the closing edge is treated like every other edge, and the duplicated
    closing vertex is dropped again from the result. Rings with fewer than
    3 vertices come back unchanged.
    """
    if len(points) < 3:
        return list(points)
    ring = list(points) + [points[0]]
    simplified = LineString(ring).simplify(tolerance, preserve_topology=False)
    coords = [(x, y) for x, y in simplified.coords]
    if len(coords) > 1 and coords[0] == coords[-1]:
        coords.pop()
    return coords
