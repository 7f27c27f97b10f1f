from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler

from battlemap import __version__
from battlemap.config import AppConfig
from battlemap.fog import FogMask
from battlemap.grid import GridSystem
from battlemap.models import Bounds, FogOperation, FogShape, GridConfig, GridKind, WallSegment
from battlemap.rooms import RoomDetector


app = typer.Typer(help="bmap CLI - grid snapping, fog-of-war queries and room detection")
console = Console()


@dataclass(frozen=True)
class XY:
    x: float
    y: float

    @staticmethod
    def parse(text: str) -> "XY":
        try:
            parts = [float(p.strip()) for p in text.split(",")]
            if len(parts) != 2:
                raise ValueError
            return XY(parts[0], parts[1])
        except Exception as e:  # noqa: BLE001
            raise typer.BadParameter("Expected '<x,y>'") from e

    def as_point(self) -> Tuple[float, float]:
        return self.x, self.y


def parse_bounds(text: str) -> Bounds:
    try:
        parts = [float(p.strip()) for p in text.split(",")]
        if len(parts) != 4:
            raise ValueError
        x, y, w, h = parts
        if w < 0 or h < 0:
            raise ValueError("width and height must be >= 0")
        return Bounds(x=x, y=y, width=w, height=h)
    except Exception as e:  # noqa: BLE001
        raise typer.BadParameter("Expected '<x,y,width,height>'") from e


def _grid(
    kind: Optional[GridKind],
    cell_size: Optional[float],
    offset_x: Optional[float],
    offset_y: Optional[float],
) -> GridSystem:
    base = AppConfig.load().grid
    try:
        config = GridConfig(
            kind=kind or base.kind,
            cell_size=cell_size if cell_size is not None else base.cell_size,
            offset_x=offset_x if offset_x is not None else base.offset_x,
            offset_y=offset_y if offset_y is not None else base.offset_y,
        )
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e
    return GridSystem(config)


def _emit(payload: Any, out: Optional[Path]) -> None:
    text = json.dumps(payload, indent=2)
    if out is None:
        typer.echo(text)
        return
    out = Path(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    console.print("[green]Written[/green] ->", out)


KindOpt = typer.Option(None, "--kind", help="Grid kind (defaults to config)")
CellSizeOpt = typer.Option(None, "--cell-size", help="Cell size in world units")
OffsetXOpt = typer.Option(None, "--offset-x", help="Grid origin x offset")
OffsetYOpt = typer.Option(None, "--offset-y", help="Grid origin y offset")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


@app.command()
def version() -> None:
    """Show CLI version."""
    rprint(f"bmap {__version__}")


@app.command()
def snap(
    point: str = typer.Argument(..., help="<x,y> in world coordinates"),
    kind: Optional[GridKind] = KindOpt,
    cell_size: Optional[float] = CellSizeOpt,
    offset_x: Optional[float] = OffsetXOpt,
    offset_y: Optional[float] = OffsetYOpt,
) -> None:
    """Print the cell containing a point and its snapped center."""
    p = XY.parse(point)
    grid = _grid(kind, cell_size, offset_x, offset_y)
    cell = grid.to_cell(p.as_point())
    _emit(
        {
            "kind": grid.kind.value,
            "cell": list(cell) if cell is not None else None,
            "snapped": list(grid.snap(p.as_point())),
        },
        None,
    )


@app.command()
def cell(
    point: str = typer.Argument(..., help="<x,y> in world coordinates"),
    kind: Optional[GridKind] = KindOpt,
    cell_size: Optional[float] = CellSizeOpt,
    offset_x: Optional[float] = OffsetXOpt,
    offset_y: Optional[float] = OffsetYOpt,
    operation: Optional[FogOperation] = typer.Option(
        None, help="Wrap the cell outline in a fog shape with this operation"
    ),
) -> None:
    """Print the outline of the cell containing a point."""
    p = XY.parse(point)
    grid = _grid(kind, cell_size, offset_x, offset_y)
    shape = grid.cell_shape(p.as_point())
    if shape is None:
        _emit(None, None)
        return
    if operation is not None:
        _emit(FogShape(operation=operation, geometry=shape).model_dump(mode="json"), None)
        return
    _emit(shape.model_dump(mode="json"), None)


@app.command()
def lines(
    bounds: str = typer.Option(..., help="<x,y,width,height> area to cover"),
    kind: Optional[GridKind] = KindOpt,
    cell_size: Optional[float] = CellSizeOpt,
    offset_x: Optional[float] = OffsetXOpt,
    offset_y: Optional[float] = OffsetYOpt,
    out: Optional[Path] = typer.Option(None, help="Write JSON here instead of stdout"),
) -> None:
    """Print the grid's line segments covering an area."""
    area = parse_bounds(bounds)
    grid = _grid(kind, cell_size, offset_x, offset_y)
    _emit([list(seg) for seg in grid.enumerate_lines(area)], out)


def load_walls(path: Path) -> List[WallSegment]:
    """Walls file: a list of segments, or the editor's list of walls each
    carrying a `segments` list."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("walls", [])
    segments: List[WallSegment] = []
    for item in raw:
        if "segments" in item:
            segments.extend(WallSegment.model_validate(s) for s in item["segments"])
        else:
            segments.append(WallSegment.model_validate(item))
    return segments


def load_fog_log(path: Path) -> List[FogShape]:
    """Fog log file: ordered records, either {id, operation, geometry} or the
    editor's flat {id, type, data, operation, width} layout."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("shapes", [])
    shapes: List[FogShape] = []
    for rec in raw:
        if "geometry" in rec:
            shapes.append(FogShape.model_validate(rec))
        else:
            shapes.append(
                FogShape.from_flat(
                    rec["type"],
                    rec["data"],
                    rec["operation"],
                    width=rec.get("width"),
                    id=rec.get("id"),
                )
            )
    return shapes


@app.command()
def detect(
    point: str = typer.Argument(..., help="<x,y> seed point inside the room"),
    walls: Path = typer.Option(..., help="JSON file with wall segments"),
    bounds: Optional[str] = typer.Option(
        None, help="<x,y,width,height> search area (defaults to the configured map size)"
    ),
    resolution: Optional[float] = typer.Option(None, help="Raster cell size in world units"),
    hide: bool = typer.Option(False, help="Emit a hiding (add) fog shape instead of a reveal"),
    out: Optional[Path] = typer.Option(None, help="Write JSON here instead of stdout"),
) -> None:
    """Detect the room enclosing a point and print its outline."""
    p = XY.parse(point)
    cfg = AppConfig.load()
    area = (
        parse_bounds(bounds)
        if bounds
        else Bounds(x=0, y=0, width=cfg.rooms.map_width, height=cfg.rooms.map_height)
    )
    res = resolution if resolution is not None else cfg.rooms.resolution
    if res <= 0:
        raise typer.BadParameter("--resolution must be positive")

    try:
        segments = load_walls(walls)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        console.print("[red]Could not read walls[/red]:", str(exc))
        raise typer.Exit(code=1)

    room = RoomDetector(res).detect(p.as_point(), segments, area)
    if room is None:
        console.print("[yellow]Could not detect an enclosed room[/yellow] at", f"({p.x}, {p.y})")
        raise typer.Exit(code=1)

    op = FogOperation.ADD if hide else FogOperation.SUBTRACT
    _emit(
        {
            "room": room.model_dump(mode="json"),
            "shape": room.to_fog_shape(op).model_dump(mode="json"),
        },
        out,
    )


@app.command()
def fog(
    log_path: Path = typer.Argument(..., help="JSON fog log (ordered shapes)"),
    at: List[str] = typer.Option(..., "--at", help="<x,y> point to query (repeatable)"),
    initially_hidden: Optional[bool] = typer.Option(
        None, "--initially-hidden/--initially-visible", help="Starting state of every point"
    ),
) -> None:
    """Replay a fog log and report whether points are hidden."""
    points = [XY.parse(a) for a in at]
    cfg = AppConfig.load()
    try:
        shapes = load_fog_log(log_path)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        console.print("[red]Could not read fog log[/red]:", str(exc))
        raise typer.Exit(code=1)

    hidden_start = cfg.fog.initially_hidden if initially_hidden is None else initially_hidden
    mask = FogMask(initially_hidden=hidden_start)
    rejected = mask.replace(shapes)
    _emit(
        {
            "shapes": len(mask),
            "rejected": [{"id": sid, "reason": reason} for sid, reason in rejected],
            "points": [
                {"x": p.x, "y": p.y, "hidden": mask.is_hidden(p.as_point())} for p in points
            ],
        },
        None,
    )


def _main(argv: list[str] | None = None) -> int:
    try:
        app(args=argv, prog_name="bmap")
        return 0
    except Exception as exc:  # noqa: BLE001
        console.print(f"[red]Error:[/red] {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(_main(sys.argv[1:]))
