from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .models import GridConfig, GridKind
from .rooms import DEFAULT_RESOLUTION


DEFAULT_CONFIG_PATHS = (
    Path("battlemap.yaml"),
    Path("backend/battlemap.yaml"),
    Path("backend/config/battlemap.yaml"),
)

# Matches the editor's fog texture when a map has no explicit size.
DEFAULT_MAP_SIZE = 2048.0


@dataclass(frozen=True)
class RoomsConfig:
    resolution: float = DEFAULT_RESOLUTION
    map_width: float = DEFAULT_MAP_SIZE
    map_height: float = DEFAULT_MAP_SIZE


@dataclass(frozen=True)
class FogConfig:
    initially_hidden: bool = False


@dataclass(frozen=True)
class AppConfig:
    grid: GridConfig = field(default_factory=GridConfig)
    rooms: RoomsConfig = field(default_factory=RoomsConfig)
    fog: FogConfig = field(default_factory=FogConfig)

    @staticmethod
    def load(path: Optional[Path] = None) -> "AppConfig":
        data: Dict[str, Any] = {}
        cfg_path: Optional[Path] = None
        if path and path.exists():
            cfg_path = path
        else:
            for p in DEFAULT_CONFIG_PATHS:
                if p.exists():
                    cfg_path = p
                    break

        if cfg_path:
            data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}

        # Env overrides
        grid_section = data.get("grid", {}) or {}
        rooms_section = data.get("rooms", {}) or {}
        fog_section = data.get("fog", {}) or {}

        kind = os.getenv("BMAP_GRID_KIND") or grid_section.get("kind") or GridKind.SQUARE.value
        cell_size = _float(os.getenv("BMAP_CELL_SIZE"), grid_section.get("cell_size"), 50.0)
        offset_x = _float(os.getenv("BMAP_OFFSET_X"), grid_section.get("offset_x"), 0.0)
        offset_y = _float(os.getenv("BMAP_OFFSET_Y"), grid_section.get("offset_y"), 0.0)

        resolution = _float(
            os.getenv("BMAP_ROOM_RESOLUTION"), rooms_section.get("resolution"), DEFAULT_RESOLUTION
        )
        map_width = _float(os.getenv("BMAP_MAP_WIDTH"), rooms_section.get("map_width"), DEFAULT_MAP_SIZE)
        map_height = _float(os.getenv("BMAP_MAP_HEIGHT"), rooms_section.get("map_height"), DEFAULT_MAP_SIZE)
        if resolution <= 0:
            raise ValueError(f"rooms.resolution must be positive, got {resolution}")

        hidden_env = os.getenv("BMAP_FOG_INITIALLY_HIDDEN")
        if hidden_env is not None:
            initially_hidden = hidden_env.strip().lower() in ("1", "true", "yes", "on")
        else:
            initially_hidden = bool(fog_section.get("initially_hidden", False))

        return AppConfig(
            grid=GridConfig(
                kind=GridKind(kind),
                cell_size=cell_size,
                offset_x=offset_x,
                offset_y=offset_y,
            ),
            rooms=RoomsConfig(resolution=resolution, map_width=map_width, map_height=map_height),
            fog=FogConfig(initially_hidden=initially_hidden),
        )


def _float(env_value: Optional[str], file_value: Any, default: float) -> float:
    if env_value not in (None, ""):
        return float(env_value)  # type: ignore[arg-type]
    if file_value is not None:
        return float(file_value)
    return default
