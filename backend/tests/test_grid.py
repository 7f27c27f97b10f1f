from __future__ import annotations

import math
import random

import pytest
from pydantic import ValidationError
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon, box

from battlemap.grid import GridSystem, enumerate_lines
from battlemap.models import Bounds, GridConfig, GridKind, PolygonGeometry, RectGeometry


def _grid(kind: GridKind, cell_size: float = 50.0, ox: float = 0.0, oy: float = 0.0) -> GridSystem:
    return GridSystem(GridConfig(kind=kind, cell_size=cell_size, offset_x=ox, offset_y=oy))


def _sample_points(n: int = 200):
    rng = random.Random(1234)
    return [(rng.uniform(-400, 400), rng.uniform(-400, 400)) for _ in range(n)]


def _as_shapely(shape):
    if isinstance(shape, RectGeometry):
        x0, y0, x1, y1 = shape.normalized()
        return box(x0, y0, x1, y1)
    assert isinstance(shape, PolygonGeometry)
    return Polygon(shape.points)


def test_square_grid_example() -> None:
    grid = _grid(GridKind.SQUARE, 50)
    assert grid.to_cell((12, 77)) == (0, 1)
    assert grid.cell_shape((12, 77)) == RectGeometry(x=0, y=50, w=50, h=50)
    assert grid.snap((12, 77)) == (25.0, 75.0)


def test_square_grid_offset() -> None:
    grid = _grid(GridKind.SQUARE, 50, ox=10, oy=-5)
    assert grid.to_cell((12, 77)) == (0, 1)
    assert grid.snap((12, 77)) == (35.0, 70.0)
    assert grid.cell_shape((12, 77)) == RectGeometry(x=10, y=45, w=50, h=50)


def test_square_negative_coordinates_floor() -> None:
    grid = _grid(GridKind.SQUARE, 50)
    assert grid.to_cell((-1, -51)) == (-1, -2)
    assert grid.snap((-1, -51)) == (-25.0, -75.0)


def test_hex_pointy_dimensions_and_round_trip() -> None:
    grid = _grid(GridKind.HEX_POINTY, 60)
    assert grid.hex_width == pytest.approx(51.9615, abs=1e-3)
    assert grid.hex_height == 60
    assert grid.row_pitch == 45

    center = grid.to_world((3, 5))
    assert center[1] == pytest.approx(225.0)
    # odd row is shifted by half a cell width
    assert center[0] == pytest.approx(3.5 * grid.hex_width)
    assert grid.to_cell(center) == (3, 5)
    assert grid.to_world(grid.to_cell(center)) == pytest.approx(center)


def test_hex_flat_is_transposed() -> None:
    grid = _grid(GridKind.HEX_FLAT, 60)
    assert grid.hex_width == 60
    assert grid.hex_height == pytest.approx(60 * math.sqrt(3) / 2)

    center = grid.to_world((5, 3))
    assert center[0] == pytest.approx(225.0)
    assert center[1] == pytest.approx(3.5 * grid.hex_height)


@pytest.mark.parametrize(
    "kind", [GridKind.SQUARE, GridKind.HEX_POINTY, GridKind.HEX_FLAT, GridKind.ISOMETRIC]
)
@pytest.mark.parametrize("cell", [(0, 0), (3, 5), (-2, 7), (-4, -3)])
def test_cell_round_trip(kind: GridKind, cell) -> None:
    grid = _grid(kind, 40, ox=7.5, oy=-3.25)
    assert grid.to_cell(grid.to_world(cell)) == cell


@pytest.mark.parametrize("kind", list(GridKind))
def test_snap_is_idempotent(kind: GridKind) -> None:
    grid = _grid(kind, 37, ox=4, oy=-9)
    for p in _sample_points():
        once = grid.snap(p)
        assert grid.snap(once) == pytest.approx(once)


@pytest.mark.parametrize(
    "kind", [GridKind.SQUARE, GridKind.HEX_POINTY, GridKind.HEX_FLAT, GridKind.ISOMETRIC]
)
def test_cell_shape_contains_point(kind: GridKind) -> None:
    grid = _grid(kind, 50, ox=12, oy=3)
    for p in _sample_points():
        shape = _as_shapely(grid.cell_shape(p))
        assert shape.buffer(1e-9).covers(ShapelyPoint(p)), (kind, p)


def test_hex_corner_point_lands_in_containing_hexagon() -> None:
    # Near the top corner region of a row: plain row rounding would pick the
    # wrong row here.
    grid = _grid(GridKind.HEX_POINTY, 60)
    p = (0.45 * grid.hex_width, 0.35 * 60)
    shape = Polygon(grid.cell_shape(p).points)
    assert shape.covers(ShapelyPoint(p))
    assert grid.to_cell(p) != (0, 0)


def test_hexagon_and_diamond_vertices() -> None:
    pointy = _grid(GridKind.HEX_POINTY, 60).cell_shape((0, 0))
    assert len(pointy.points) == 6
    # pointy-top: a vertex straight below the center
    assert any(x == pytest.approx(0) and y == pytest.approx(30) for x, y in pointy.points)

    flat = _grid(GridKind.HEX_FLAT, 60).cell_shape((0, 0))
    assert flat.points[0] == pytest.approx((30, 0))

    diamond = _grid(GridKind.ISOMETRIC, 60).cell_shape((0, 0))
    assert diamond.points == [(0, -15), (30, 0), (0, 15), (-30, 0)]


def test_none_grid_is_degenerate() -> None:
    grid = _grid(GridKind.NONE)
    assert grid.snap((12.3, 45.6)) == (12.3, 45.6)
    assert grid.to_cell((12.3, 45.6)) is None
    assert grid.cell_shape((12.3, 45.6)) is None
    assert list(grid.enumerate_lines(Bounds(width=100, height=100))) == []


def test_square_lines_cover_bounds() -> None:
    grid = _grid(GridKind.SQUARE, 50)
    segs = list(grid.enumerate_lines(Bounds(width=100, height=50)))
    verticals = [s for s in segs if s.x1 == s.x2]
    horizontals = [s for s in segs if s.y1 == s.y2]
    assert [s.x1 for s in verticals] == [0, 50, 100]
    assert [s.y1 for s in horizontals] == [0, 50]
    assert len(segs) == 5


def test_lines_are_restartable() -> None:
    config = GridConfig(kind=GridKind.HEX_POINTY, cell_size=40)
    bounds = Bounds(x=-20, y=10, width=200, height=120)
    first = list(enumerate_lines(bounds, config))
    second = list(enumerate_lines(bounds, config))
    assert first and first == second
    assert first == list(GridSystem(config).enumerate_lines(bounds))


def test_isometric_line_families() -> None:
    grid = _grid(GridKind.ISOMETRIC, 50)
    segs = list(grid.enumerate_lines(Bounds(width=100, height=100)))
    n = 2 * math.ceil((100 + 100) / 50)
    assert len(segs) == 2 * (2 * n + 1)

    down_right = [s for s in segs if s.x2 > s.x1]
    down_left = [s for s in segs if s.x2 < s.x1]
    assert len(down_right) == len(down_left) == 2 * n + 1
    for s in segs:
        assert s.y1 == 0 and s.y2 == 100
        assert abs((s.y2 - s.y1) / (s.x2 - s.x1)) == pytest.approx(0.5)


def test_isometric_lines_follow_cell_edges() -> None:
    grid = _grid(GridKind.ISOMETRIC, 50)
    segs = list(grid.enumerate_lines(Bounds(width=100, height=100)))
    starts = {round(s.x1, 6) for s in segs}
    # diamond corners of the cell at the origin sit on y == 0 at x == +-25
    assert 25.0 in starts and -25.0 in starts


def test_hex_lines_emit_cell_outlines() -> None:
    grid = _grid(GridKind.HEX_POINTY, 60)
    segs = list(grid.enumerate_lines(Bounds(width=300, height=200)))
    assert len(segs) % 6 == 0
    for s in segs:
        assert math.hypot(s.x2 - s.x1, s.y2 - s.y1) == pytest.approx(30)

    edges = {tuple(round(v, 6) for v in s) for s in segs}
    pts = grid.cell_shape((150, 100)).points
    first_edge = tuple(round(v, 6) for v in (*pts[0], *pts[1]))
    assert first_edge in edges


def test_grid_config_rejects_non_positive_cell_size() -> None:
    with pytest.raises(ValidationError):
        GridConfig(kind=GridKind.SQUARE, cell_size=0)
