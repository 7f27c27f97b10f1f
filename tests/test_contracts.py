import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from battlemap import __version__
from battlemap.cli.main import app as cli_app


runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in (
        "BMAP_GRID_KIND",
        "BMAP_CELL_SIZE",
        "BMAP_OFFSET_X",
        "BMAP_OFFSET_Y",
        "BMAP_ROOM_RESOLUTION",
        "BMAP_FOG_INITIALLY_HIDDEN",
        "BMAP_MAP_WIDTH",
        "BMAP_MAP_HEIGHT",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def _walls_file(path: Path) -> Path:
    # Editor export: walls grouping camelCase segments
    walls = [
        {
            "id": "room-1",
            "segments": [
                {"x1": 0, "y1": 0, "x2": 200, "y2": 0, "curveType": "linear", "isDoor": False},
                {"x1": 200, "y1": 0, "x2": 200, "y2": 200, "allowsVision": False},
                {"x1": 200, "y1": 200, "x2": 0, "y2": 200},
                {"x1": 0, "y1": 200, "x2": 0, "y2": 0},
            ],
        }
    ]
    path.write_text(json.dumps({"walls": walls}), encoding="utf-8")
    return path


def test_version():
    r = runner.invoke(cli_app, ["version"])
    assert r.exit_code == 0
    assert f"bmap {__version__}" in r.output


def test_snap_contract():
    r = runner.invoke(cli_app, ["snap", "12,77", "--kind", "square", "--cell-size", "50"])
    assert r.exit_code == 0, r.output
    body = json.loads(r.output)
    assert body == {"kind": "square", "cell": [0, 1], "snapped": [25.0, 75.0]}


def test_snap_uses_config_file(isolated: Path):
    (isolated / "battlemap.yaml").write_text("grid:\n  cell_size: 100\n", encoding="utf-8")
    r = runner.invoke(cli_app, ["snap", "12,77"])
    assert r.exit_code == 0, r.output
    assert json.loads(r.output)["snapped"] == [50.0, 50.0]


def test_snap_rejects_bad_point():
    r = runner.invoke(cli_app, ["snap", "12"])
    assert r.exit_code != 0


def test_cell_contract():
    r = runner.invoke(cli_app, ["cell", "12,77", "--kind", "square"])
    assert r.exit_code == 0, r.output
    assert json.loads(r.output) == {"kind": "rect", "x": 0.0, "y": 50.0, "w": 50.0, "h": 50.0}

    r = runner.invoke(cli_app, ["cell", "12,77", "--kind", "square", "--operation", "subtract"])
    assert r.exit_code == 0, r.output
    shape = json.loads(r.output)
    assert shape["operation"] == "subtract"
    assert shape["geometry"]["kind"] == "rect"
    assert shape["id"]

    r = runner.invoke(cli_app, ["cell", "12,77", "--kind", "hex-pointy"])
    assert len(json.loads(r.output)["points"]) == 6

    r = runner.invoke(cli_app, ["cell", "12,77", "--kind", "none"])
    assert r.exit_code == 0
    assert json.loads(r.output) is None


def test_lines_contract(isolated: Path):
    r = runner.invoke(cli_app, ["lines", "--bounds", "0,0,100,50", "--kind", "square"])
    assert r.exit_code == 0, r.output
    segs = json.loads(r.output)
    assert len(segs) == 5
    assert [0.0, 0.0, 0.0, 50.0] in segs

    out = isolated / "out" / "lines.json"
    r = runner.invoke(
        cli_app, ["lines", "--bounds", "0,0,100,50", "--kind", "square", "--out", str(out)]
    )
    assert r.exit_code == 0, r.output
    assert json.loads(out.read_text(encoding="utf-8")) == segs


def test_detect_contract(isolated: Path):
    walls = _walls_file(isolated / "walls.json")
    r = runner.invoke(
        cli_app,
        ["detect", "100,100", "--walls", str(walls), "--bounds", "0,0,400,400", "--resolution", "20"],
    )
    assert r.exit_code == 0, r.output
    body = json.loads(r.output)
    assert set(body.keys()) == {"room", "shape"}
    assert body["room"]["points"][0] == [30.0, 30.0]
    assert body["shape"]["operation"] == "subtract"
    assert body["shape"]["geometry"]["kind"] == "polygon"
    assert body["shape"]["geometry"]["points"] == body["room"]["points"]

    r = runner.invoke(
        cli_app,
        ["detect", "100,100", "--walls", str(walls), "--bounds", "0,0,400,400", "--hide"],
    )
    assert r.exit_code == 0, r.output
    assert json.loads(r.output)["shape"]["operation"] == "add"


def test_detect_reports_no_room(isolated: Path):
    walls = _walls_file(isolated / "walls.json")
    r = runner.invoke(
        cli_app, ["detect", "0,100", "--walls", str(walls), "--bounds", "0,0,400,400"]
    )
    assert r.exit_code == 1
    assert "Could not detect" in r.output


def test_detect_missing_walls_file(isolated: Path):
    r = runner.invoke(cli_app, ["detect", "10,10", "--walls", str(isolated / "nope.json")])
    assert r.exit_code == 1
    assert "Could not read walls" in r.output


def test_fog_contract(isolated: Path):
    log = isolated / "fog.json"
    log.write_text(
        json.dumps(
            [
                {"id": "a", "type": "rect", "data": [0, 0, 100, 100], "operation": "add"},
                {"id": "b", "type": "ellipse", "data": [25, 25, 50, 50], "operation": "sub"},
                {"id": "bad", "type": "rect", "data": [0, 0, 0, 10], "operation": "sub"},
            ]
        ),
        encoding="utf-8",
    )
    args = ["fog", str(log), "--at", "50,50", "--at", "10,10", "--at", "500,500"]

    r = runner.invoke(cli_app, args)
    assert r.exit_code == 0, r.output
    body = json.loads(r.output)
    assert body["shapes"] == 2
    assert [rej["id"] for rej in body["rejected"]] == ["bad"]
    assert [p["hidden"] for p in body["points"]] == [False, True, False]

    r = runner.invoke(cli_app, args + ["--initially-hidden"])
    assert r.exit_code == 0, r.output
    assert [p["hidden"] for p in json.loads(r.output)["points"]] == [False, True, True]
