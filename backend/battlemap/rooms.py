"""Automatic room detection.

A click inside an area enclosed by walls is turned into the outline of that
area:

1. the walls are rasterized (Bresenham) onto a coarse auxiliary grid,
2. the grid is flood filled (4-connected BFS) from the clicked cell,
3. the outer contour of the filled cells is traced (Moore neighborhood),
4. the traced cell centers are simplified as a closed ring (Douglas-Peucker).

Every failure is reported as ``None`` ("no region"), never as an exception,
so a caller can simply tell the user that no enclosed room was found.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional

from .geometry import bresenham_line, simplify_ring
from .models import Bounds, Cell, Point, RoomBoundary, WallSegment

log = logging.getLogger("battlemap.rooms")

DEFAULT_RESOLUTION = 20.0
TOLERANCE_FACTOR = 1.5
_CANCEL_CHECK_EVERY = 256

# Clockwise from north; the tracer walks these around the current cell.
#   7 0 1
#   6 P 2
#   5 4 3
MOORE = (
    (0, -1),
    (1, -1),
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
)
WEST = 6

# 4-connected flood directions: N, S, W, E
FLOOD = ((0, -1), (0, 1), (-1, 0), (1, 0))


class CellState(IntEnum):
    EMPTY = 0
    WALL = 1
    FILLED = 2


class Cancelled(Exception):
    pass


@dataclass
class RoomRaster:
    """Auxiliary grid of `cols x rows` cells covering the detection bounds."""

    origin_x: float
    origin_y: float
    resolution: float
    cols: int
    rows: int
    cells: bytearray

    @classmethod
    def for_bounds(cls, bounds: Bounds, resolution: float) -> "RoomRaster":
        cols = max(0, math.ceil(bounds.width / resolution))
        rows = max(0, math.ceil(bounds.height / resolution))
        return cls(bounds.x, bounds.y, resolution, cols, rows, bytearray(cols * rows))

    def in_bounds(self, col: int, row: int) -> bool:
        return 0 <= col < self.cols and 0 <= row < self.rows

    def get(self, col: int, row: int) -> CellState:
        return CellState(self.cells[row * self.cols + col])

    def is_filled(self, col: int, row: int) -> bool:
        return self.in_bounds(col, row) and self.cells[row * self.cols + col] == CellState.FILLED

    def to_cell(self, point: Point) -> Cell:
        return (
            math.floor((point[0] - self.origin_x) / self.resolution),
            math.floor((point[1] - self.origin_y) / self.resolution),
        )

    def center(self, cell: Cell) -> Point:
        half = self.resolution / 2
        return (
            self.origin_x + cell[0] * self.resolution + half,
            self.origin_y + cell[1] * self.resolution + half,
        )

    def filled_count(self) -> int:
        return self.cells.count(CellState.FILLED)

    # --- 1. walls ---
    def draw_wall(self, wall: WallSegment) -> bool:
        """Mark the cells under the wall's chord; False if the wall was skipped."""
        (x1, y1), (x2, y2) = wall.chord
        if not all(math.isfinite(v) for v in (x1, y1, x2, y2)):
            log.debug("Skipping wall %s with non-finite endpoints", wall.id)
            return False
        a = self.to_cell((x1, y1))
        b = self.to_cell((x2, y2))
        if (
            max(a[0], b[0]) < 0
            or min(a[0], b[0]) >= self.cols
            or max(a[1], b[1]) < 0
            or min(a[1], b[1]) >= self.rows
        ):
            return False
        for col, row in bresenham_line(a, b):
            if self.in_bounds(col, row):
                idx = row * self.cols + col
                if self.cells[idx] == CellState.EMPTY:
                    self.cells[idx] = CellState.WALL
        return True

    # --- 2. flood ---
    def flood(self, start: Cell, cancel: Optional[threading.Event] = None) -> int:
        """4-connected BFS over empty cells; returns the number of cells filled."""
        cols = self.cols
        cells = self.cells
        sc, sr = start
        cells[sr * cols + sc] = CellState.FILLED
        queue = deque([start])
        filled = 0
        while queue:
            cx, cy = queue.popleft()
            filled += 1
            if cancel is not None and filled % _CANCEL_CHECK_EVERY == 0 and cancel.is_set():
                raise Cancelled()
            for dx, dy in FLOOD:
                nx, ny = cx + dx, cy + dy
                if 0 <= nx < cols and 0 <= ny < self.rows:
                    idx = ny * cols + nx
                    if cells[idx] == CellState.EMPTY:
                        cells[idx] = CellState.FILLED
                        queue.append((nx, ny))
        return filled

    # --- 3. contour ---
    def first_filled(self) -> Optional[Cell]:
        idx = self.cells.find(CellState.FILLED)
        if idx < 0:
            return None
        return idx % self.cols, idx // self.cols

    def trace(self, start: Cell, cancel: Optional[threading.Event] = None) -> Optional[List[Cell]]:
        """Moore-neighbor trace of the outer boundary, clockwise.

        `start` must be the row-major first filled cell, so its west
        neighbor is outside the region and serves as the initial backtrack.
        Stops when the (current, backtrack) pair comes back to the initial
        pair. Returns None when the walk does not close within
        4 * cols * rows steps.
        """
        current = start
        back = (start[0] - 1, start[1])
        initial = (current, back)
        max_iters = 4 * self.cols * self.rows
        boundary: List[Cell] = []

        for iters in range(max_iters):
            if cancel is not None and iters % _CANCEL_CHECK_EVERY == 0 and cancel.is_set():
                raise Cancelled()
            boundary.append(current)
            cx, cy = current
            offset = (back[0] - cx, back[1] - cy)
            b_idx = MOORE.index(offset) if offset in MOORE else WEST

            for k in range(8):
                idx = (b_idx + k) % 8
                dx, dy = MOORE[idx]
                if self.is_filled(cx + dx, cy + dy):
                    pdx, pdy = MOORE[(idx + 7) % 8]
                    back = (cx + pdx, cy + pdy)
                    current = (cx + dx, cy + dy)
                    break
            else:
                # Lone cell: nothing to walk around.
                return boundary

            if (current, back) == initial:
                return boundary

        return None


class RoomDetector:
    """Flood-fill room detection over wall segments.

    Stateless: the detector holds only its tuning, so one instance can serve
    any number of (possibly concurrent) requests.
    """

    def __init__(self, resolution: float = DEFAULT_RESOLUTION, tolerance_factor: float = TOLERANCE_FACTOR) -> None:
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        self.resolution = resolution
        self.tolerance_factor = tolerance_factor

    def detect(
        self,
        start: Point,
        walls: Iterable[WallSegment],
        bounds: Bounds,
        resolution: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[RoomBoundary]:
        res = self.resolution if resolution is None else resolution
        if res <= 0:
            raise ValueError("resolution must be positive")
        try:
            return self._detect(start, walls, bounds, res, cancel)
        except Cancelled:
            log.debug("Room detection at %s cancelled", start)
            return None

    def _detect(
        self,
        start: Point,
        walls: Iterable[WallSegment],
        bounds: Bounds,
        res: float,
        cancel: Optional[threading.Event],
    ) -> Optional[RoomBoundary]:
        raster = RoomRaster.for_bounds(bounds, res)
        log.debug("Room raster %dx%d at resolution %s", raster.cols, raster.rows, res)

        drawn = sum(1 for wall in walls if raster.draw_wall(wall))
        log.debug("Rasterized %d walls", drawn)

        if not (math.isfinite(start[0]) and math.isfinite(start[1])):
            return _no_region("start point is not finite", start)
        seed = raster.to_cell(start)
        if not raster.in_bounds(*seed):
            return _no_region("start point outside bounds", start)
        if raster.get(*seed) == CellState.WALL:
            return _no_region("start point is on a wall", start)

        filled = raster.flood(seed, cancel)
        log.debug("Flood fill reached %d cells", filled)
        if filled == 0:
            return _no_region("no reachable cells", start)

        first = raster.first_filled()
        if first is None:
            return _no_region("no filled cell to trace", start)
        contour = raster.trace(first, cancel)
        if contour is None:
            return _no_region("contour did not close", start)
        log.debug("Traced %d boundary cells", len(contour))

        path = [raster.center(c) for c in contour]
        simplified = simplify_ring(path, res * self.tolerance_factor)
        if len(simplified) < 3:
            return _no_region("boundary collapsed below 3 vertices", start)
        return RoomBoundary(points=simplified)


def _no_region(reason: str, start: Point) -> None:
    log.debug("No room at %s: %s", start, reason)
    return None


def detect_room(
    start: Point,
    walls: Iterable[WallSegment],
    bounds: Bounds,
    resolution: float = DEFAULT_RESOLUTION,
) -> Optional[RoomBoundary]:
    return RoomDetector(resolution).detect(start, walls, bounds)
