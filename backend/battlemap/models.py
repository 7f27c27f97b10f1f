from __future__ import annotations

import math
import uuid
from enum import Enum
from typing import Annotated, List, Literal, NamedTuple, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from shapely.geometry import Polygon


Point = Tuple[float, float]
Cell = Tuple[int, int]


def _new_id() -> str:
    return uuid.uuid4().hex


class GridKind(str, Enum):
    NONE = "none"
    SQUARE = "square"
    HEX_POINTY = "hex-pointy"
    HEX_FLAT = "hex-flat"
    ISOMETRIC = "isometric"


class GridConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: GridKind = Field(GridKind.SQUARE, description="Grid layout")
    cell_size: float = Field(50.0, gt=0, description="World units per cell")
    offset_x: float = 0.0
    offset_y: float = 0.0


class Bounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


class LineSegment(NamedTuple):
    x1: float
    y1: float
    x2: float
    y2: float


# --- fog geometry: closed union discriminated on `kind` ---


class RectGeometry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["rect"] = "rect"
    x: float
    y: float
    w: float
    h: float

    def normalized(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) regardless of the sign of w/h."""
        x0, x1 = sorted((self.x, self.x + self.w))
        y0, y1 = sorted((self.y, self.y + self.h))
        return x0, y0, x1, y1


class EllipseGeometry(BaseModel):
    """Ellipse inscribed in the (x, y, w, h) box."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ellipse"] = "ellipse"
    x: float
    y: float
    w: float
    h: float

    @property
    def center(self) -> Point:
        return self.x + self.w / 2, self.y + self.h / 2

    @property
    def radii(self) -> Tuple[float, float]:
        return abs(self.w / 2), abs(self.h / 2)


class PolygonGeometry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["polygon"] = "polygon"
    points: List[Point]


class BrushGeometry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["brush"] = "brush"
    points: List[Point]
    width: float = 50.0  # stroke width, thickened with round caps


Geometry = Annotated[
    Union[RectGeometry, EllipseGeometry, PolygonGeometry, BrushGeometry],
    Field(discriminator="kind"),
]


def geometry_coords(geometry: Geometry) -> List[float]:
    if isinstance(geometry, (RectGeometry, EllipseGeometry)):
        return [geometry.x, geometry.y, geometry.w, geometry.h]
    if isinstance(geometry, BrushGeometry):
        return [c for p in geometry.points for c in p] + [geometry.width]
    if isinstance(geometry, PolygonGeometry):
        return [c for p in geometry.points for c in p]
    raise TypeError(f"unhandled geometry: {type(geometry).__name__}")


def pairs(flat: Sequence[float]) -> List[Point]:
    """[x0, y0, x1, y1, ...] -> [(x0, y0), (x1, y1), ...]"""
    if len(flat) % 2:
        raise ValueError("flat coordinate list must have an even length")
    return [(float(flat[i]), float(flat[i + 1])) for i in range(0, len(flat), 2)]


class FogOperation(str, Enum):
    ADD = "add"  # hide
    SUBTRACT = "subtract"  # reveal


class FogShape(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    operation: FogOperation
    geometry: Geometry

    @property
    def kind(self) -> str:
        return self.geometry.kind

    @classmethod
    def from_flat(
        cls,
        kind: str,
        data: Sequence[float],
        operation: str,
        *,
        width: Optional[float] = None,
        id: Optional[str] = None,
    ) -> "FogShape":
        """Build a shape from the editor's flat record layout.

        `kind` is rect/ellipse/poly/polygon/brush, `data` is [x, y, w, h] for
        boxes and [x0, y0, x1, y1, ...] otherwise, `operation` is add/sub.
        """
        op = FogOperation.SUBTRACT if operation in ("sub", "subtract") else FogOperation(operation)
        geometry: Union[RectGeometry, EllipseGeometry, PolygonGeometry, BrushGeometry]
        if kind in ("rect", "ellipse"):
            if len(data) != 4:
                raise ValueError(f"{kind} expects [x, y, w, h], got {len(data)} values")
            x, y, w, h = (float(v) for v in data)
            box = RectGeometry if kind == "rect" else EllipseGeometry
            geometry = box(x=x, y=y, w=w, h=h)
        elif kind in ("poly", "polygon"):
            geometry = PolygonGeometry(points=pairs(data))
        elif kind == "brush":
            geometry = BrushGeometry(points=pairs(data), width=width if width is not None else 50.0)
        else:
            raise ValueError(f"unknown fog shape kind: {kind!r}")
        if id is None:
            return cls(operation=op, geometry=geometry)
        return cls(id=id, operation=op, geometry=geometry)


class WallCurve(str, Enum):
    LINEAR = "linear"
    QUADRATIC = "quadratic"
    CUBIC = "cubic"


class WallSegment(BaseModel):
    """One wall piece as exported by the wall editor (camelCase accepted)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    x1: float
    y1: float
    x2: float
    y2: float
    # Curve control points; room detection only uses the chord.
    cp1x: Optional[float] = None
    cp1y: Optional[float] = None
    cp2x: Optional[float] = None
    cp2y: Optional[float] = None
    curve_type: WallCurve = Field(WallCurve.LINEAR, alias="curveType")
    is_door: bool = Field(False, alias="isDoor")
    allows_movement: bool = Field(False, alias="allowsMovement")
    allows_vision: bool = Field(False, alias="allowsVision")
    allows_sound: bool = Field(False, alias="allowsSound")

    @property
    def chord(self) -> Tuple[Point, Point]:
        return (self.x1, self.y1), (self.x2, self.y2)


class RoomBoundary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    points: List[Point]

    @field_validator("points")
    @classmethod
    def _finite(cls, v: List[Point]) -> List[Point]:
        for x, y in v:
            if not (math.isfinite(x) and math.isfinite(y)):
                raise ValueError("room boundary points must be finite")
        return v

    def flat(self) -> List[float]:
        return [c for p in self.points for c in p]

    @property
    def area(self) -> float:
        if len(self.points) < 3:
            return 0.0
        return Polygon(self.points).area

    def to_fog_shape(self, operation: FogOperation = FogOperation.SUBTRACT) -> FogShape:
        """Polygon fog shape covering this room; subtract reveals it."""
        return FogShape(operation=operation, geometry=PolygonGeometry(points=list(self.points)))
