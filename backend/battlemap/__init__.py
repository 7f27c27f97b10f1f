"""Grid, fog-of-war and room-detection engine for battlemap editors."""

from .fog import FogMask
from .grid import GridSystem, enumerate_lines
from .models import (
    Bounds,
    BrushGeometry,
    EllipseGeometry,
    FogOperation,
    FogShape,
    GridConfig,
    GridKind,
    LineSegment,
    PolygonGeometry,
    RectGeometry,
    RoomBoundary,
    WallSegment,
)
from .rooms import RoomDetector, detect_room
from .worker import LatestRoomDetection

__version__ = "0.1.0"

__all__ = [
    "Bounds",
    "BrushGeometry",
    "EllipseGeometry",
    "FogMask",
    "FogOperation",
    "FogShape",
    "GridConfig",
    "GridKind",
    "GridSystem",
    "LatestRoomDetection",
    "LineSegment",
    "PolygonGeometry",
    "RectGeometry",
    "RoomBoundary",
    "RoomDetector",
    "WallSegment",
    "detect_room",
    "enumerate_lines",
]
