from __future__ import annotations

import math
from typing import Iterator, List, Optional, Union

from .models import (
    Bounds,
    Cell,
    GridConfig,
    GridKind,
    LineSegment,
    Point,
    PolygonGeometry,
    RectGeometry,
)

SQRT3 = math.sqrt(3.0)


def _round(v: float) -> int:
    # Half-up; the builtin round() is banker's rounding.
    return math.floor(v + 0.5)


class GridSystem:
    """World <-> cell transforms for one grid configuration.

    Every method is pure. Cells are (col, row) for square and hex grids and
    (iso_x, iso_y) lattice indices for isometric grids. A `none` grid has no
    cells: snapping is the identity and there is nothing to draw.
    """

    def __init__(self, config: Optional[GridConfig] = None) -> None:
        self.config = config or GridConfig()

    @property
    def kind(self) -> GridKind:
        return self.config.kind

    # --- derived dimensions ---
    @property
    def hex_width(self) -> float:
        s = self.config.cell_size
        return s * SQRT3 / 2 if self.kind == GridKind.HEX_POINTY else s

    @property
    def hex_height(self) -> float:
        s = self.config.cell_size
        return s * SQRT3 / 2 if self.kind == GridKind.HEX_FLAT else s

    @property
    def row_pitch(self) -> float:
        """Distance between hex row centers (pointy) or column centers (flat)."""
        return self.config.cell_size * 0.75

    @property
    def tile_size(self) -> tuple[float, float]:
        """Isometric diamond (width, height)."""
        s = self.config.cell_size
        return s, s / 2

    # --- transforms ---
    def to_cell(self, point: Point) -> Optional[Cell]:
        kind = self.kind
        if kind == GridKind.NONE:
            return None
        x = point[0] - self.config.offset_x
        y = point[1] - self.config.offset_y
        if kind == GridKind.SQUARE:
            s = self.config.cell_size
            return math.floor(x / s), math.floor(y / s)
        if kind == GridKind.HEX_POINTY:
            return self._nearest_hex(x, y)
        if kind == GridKind.HEX_FLAT:
            row, col = self._nearest_hex(y, x)
            return col, row
        if kind == GridKind.ISOMETRIC:
            tw, th = self.tile_size
            return _round(x / tw + y / th), _round(y / th - x / tw)
        raise ValueError(f"unhandled grid kind: {kind}")

    def to_world(self, cell: Cell) -> Point:
        kind = self.kind
        ox, oy = self.config.offset_x, self.config.offset_y
        a, b = cell
        if kind == GridKind.NONE:
            return float(a), float(b)
        if kind == GridKind.SQUARE:
            s = self.config.cell_size
            return a * s + s / 2 + ox, b * s + s / 2 + oy
        if kind == GridKind.HEX_POINTY:
            x, y = self._hex_center(a, b)
            return x + ox, y + oy
        if kind == GridKind.HEX_FLAT:
            y, x = self._hex_center(b, a)
            return x + ox, y + oy
        if kind == GridKind.ISOMETRIC:
            tw, th = self.tile_size
            return (a - b) * tw / 2 + ox, (a + b) * th / 2 + oy
        raise ValueError(f"unhandled grid kind: {kind}")

    def snap(self, point: Point) -> Point:
        cell = self.to_cell(point)
        if cell is None:
            return point
        return self.to_world(cell)

    def cell_shape(self, point: Point) -> Optional[Union[RectGeometry, PolygonGeometry]]:
        """Outline of the cell containing `point`, ready to use as fog geometry."""
        kind = self.kind
        cell = self.to_cell(point)
        if cell is None:
            return None
        if kind == GridKind.SQUARE:
            s = self.config.cell_size
            col, row = cell
            return RectGeometry(
                x=col * s + self.config.offset_x,
                y=row * s + self.config.offset_y,
                w=s,
                h=s,
            )
        cx, cy = self.to_world(cell)
        if kind in (GridKind.HEX_POINTY, GridKind.HEX_FLAT):
            return PolygonGeometry(points=self._hexagon(cx, cy))
        if kind == GridKind.ISOMETRIC:
            return PolygonGeometry(points=self._diamond(cx, cy))
        raise ValueError(f"unhandled grid kind: {kind}")

    # --- line geometry ---
    def enumerate_lines(self, bounds: Bounds) -> Iterator[LineSegment]:
        """Lazily yield the grid's line segments covering `bounds`.

        Each call returns a fresh generator with the same output.
        """
        kind = self.kind
        if kind == GridKind.NONE:
            return iter(())
        if kind == GridKind.SQUARE:
            return self._square_lines(bounds)
        if kind in (GridKind.HEX_POINTY, GridKind.HEX_FLAT):
            return self._hex_lines(bounds)
        if kind == GridKind.ISOMETRIC:
            return self._iso_lines(bounds)
        raise ValueError(f"unhandled grid kind: {kind}")

    # --- hex helpers (pointy-top frame; flat-top swaps the axes) ---
    def _hex_center(self, col: int, row: int) -> Point:
        w = self.config.cell_size * SQRT3 / 2
        shift = w / 2 if row % 2 else 0.0
        return col * w + shift, row * self.row_pitch

    def _nearest_hex(self, x: float, y: float) -> Cell:
        # Only the two rows around y can own the point; in each row the
        # nearest center by x wins, and the closer of the two is the hexagon
        # that contains the point.
        w = self.config.cell_size * SQRT3 / 2
        lower = math.floor(y / self.row_pitch)
        best: Optional[tuple[float, int, int]] = None
        for row in (lower, lower + 1):
            shift = w / 2 if row % 2 else 0.0
            col = _round((x - shift) / w)
            cx, cy = self._hex_center(col, row)
            d = (x - cx) ** 2 + (y - cy) ** 2
            if best is None or d < best[0]:
                best = (d, col, row)
        assert best is not None
        return best[1], best[2]

    def _hexagon(self, cx: float, cy: float) -> List[Point]:
        radius = self.config.cell_size / 2
        offset = math.pi / 6 if self.kind == GridKind.HEX_POINTY else 0.0
        pts = []
        for i in range(6):
            angle = math.pi / 3 * i + offset
            pts.append((cx + radius * math.cos(angle), cy + radius * math.sin(angle)))
        return pts

    def _diamond(self, cx: float, cy: float) -> List[Point]:
        tw, th = self.tile_size
        return [
            (cx, cy - th / 2),
            (cx + tw / 2, cy),
            (cx, cy + th / 2),
            (cx - tw / 2, cy),
        ]

    def _square_lines(self, b: Bounds) -> Iterator[LineSegment]:
        s = self.config.cell_size
        ox, oy = self.config.offset_x, self.config.offset_y
        for c in range(math.ceil((b.x - ox) / s), math.floor((b.right - ox) / s) + 1):
            x = ox + c * s
            yield LineSegment(x, b.y, x, b.bottom)
        for r in range(math.ceil((b.y - oy) / s), math.floor((b.bottom - oy) / s) + 1):
            y = oy + r * s
            yield LineSegment(b.x, y, b.right, y)

    def _hex_lines(self, b: Bounds) -> Iterator[LineSegment]:
        ox, oy = self.config.offset_x, self.config.offset_y
        pointy = self.kind == GridKind.HEX_POINTY
        # (major, minor) = (row, col) for pointy-top, (col, row) for flat-top
        if pointy:
            major_lo, major_hi, major_origin = b.y, b.bottom, oy
            minor_lo, minor_hi, minor_origin = b.x, b.right, ox
        else:
            major_lo, major_hi, major_origin = b.x, b.right, ox
            minor_lo, minor_hi, minor_origin = b.y, b.bottom, oy
        pitch = self.row_pitch
        step = self.config.cell_size * SQRT3 / 2
        majors = range(
            math.floor((major_lo - major_origin) / pitch) - 1,
            math.ceil((major_hi - major_origin) / pitch) + 2,
        )
        minors = range(
            math.floor((minor_lo - minor_origin) / step) - 1,
            math.ceil((minor_hi - minor_origin) / step) + 2,
        )
        for major in majors:
            for minor in minors:
                cell = (minor, major) if pointy else (major, minor)
                pts = self._hexagon(*self.to_world(cell))
                for i in range(6):
                    (x1, y1), (x2, y2) = pts[i], pts[(i + 1) % 6]
                    yield LineSegment(x1, y1, x2, y2)

    def _iso_lines(self, b: Bounds) -> Iterator[LineSegment]:
        ox, oy = self.config.offset_x, self.config.offset_y
        tw, th = self.tile_size
        n = 2 * math.ceil((b.width + b.height) / tw)
        run = b.height * (tw / th)
        # Diamond edges cross y == b.y at x == ox + tw * (phase + k).
        t = (b.y - oy) / th
        for phase, sign in (((t - 0.5) % 1.0, 1.0), ((0.5 - t) % 1.0, -1.0)):
            base = math.floor((b.x - ox) / tw - phase)
            for i in range(-n, n + 1):
                x = ox + tw * (phase + base + i)
                yield LineSegment(x, b.y, x + sign * run, b.bottom)


def enumerate_lines(bounds: Bounds, config: GridConfig) -> Iterator[LineSegment]:
    return GridSystem(config).enumerate_lines(bounds)
