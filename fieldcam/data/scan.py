# fieldcam/data/scan.py

# Utilities For Parsing Persisted Scan Records
# Accepts Raw Scan Payloads Or Stored Rows Wrapping Them Under "scan_data"
# Provides Helper To Collect Scan JSON Files Deterministically

from __future__ import annotations

# Standard Library
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Local
from fieldcam.constants.analysis import DEFAULT_CELL_SIZE
from fieldcam.xai.core.errors import EncodingError

Point = Tuple[float, float]


@dataclass(frozen=True)
class ScanRecord:
    scan_id: str
    trails: Tuple[Tuple[Point, ...], ...]
    width: float
    height: float
    cell_size: float
    grid_data: Optional[Tuple[Tuple[bool, ...], ...]] = None


def _number(val: Any, what: str) -> float:
    # Reject Booleans And Non-Numeric Values Explicitly
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        raise EncodingError(f"{what} must be a number, got {val!r}")
    return float(val)


def _parse_point(p: Any) -> Point:
    if isinstance(p, dict):
        if "x" not in p or "y" not in p:
            raise EncodingError(f"Trail point missing x/y: {p!r}")
        return _number(p["x"], "x"), _number(p["y"], "y")
    if isinstance(p, (list, tuple)) and len(p) == 2:
        return _number(p[0], "x"), _number(p[1], "y")
    raise EncodingError(f"Unsupported trail point: {p!r}")


def parse_trails(trails: Any) -> Tuple[Tuple[Point, ...], ...]:
    if trails is None:
        return ()
    if not isinstance(trails, (list, tuple)):
        raise EncodingError("trails must be a list of point lists")
    out = []
    for trail in trails:
        if not isinstance(trail, (list, tuple)):
            raise EncodingError("Each trail must be a list of points")
        out.append(tuple(_parse_point(p) for p in trail))
    return tuple(out)


def _parse_grid_data(grid: Any) -> Optional[Tuple[Tuple[bool, ...], ...]]:
    # Precomputed Boolean Grid; Empty Or Missing Means "Encode From Trails"
    if not grid:
        return None
    if not isinstance(grid, (list, tuple)) or not all(isinstance(r, (list, tuple)) for r in grid):
        raise EncodingError("gridData must be a list of rows")
    return tuple(tuple(bool(v) for v in row) for row in grid)


def parse_scan_record(obj: Dict[str, Any], scan_id: Optional[str] = None,
                      default_cell_size: float = DEFAULT_CELL_SIZE) -> ScanRecord:
    if not isinstance(obj, dict):
        raise EncodingError("Scan record must be a JSON object")

    # Unwrap Stored Rows
    payload = obj.get("scan_data", obj)
    if not isinstance(payload, dict):
        raise EncodingError("scan_data must be a JSON object")
    sid = str(scan_id or obj.get("id") or payload.get("id") or "scan")

    dims = payload.get("screenDimensions")
    if not isinstance(dims, dict) or "width" not in dims or "height" not in dims:
        raise EncodingError(f"Scan {sid} has no screenDimensions")
    width = _number(dims["width"], "screen width")
    height = _number(dims["height"], "screen height")
    if width <= 0 or height <= 0:
        raise EncodingError(f"Scan {sid} has non-positive screen dimensions {width}x{height}")

    settings = payload.get("settings") or {}
    raw_cell = settings.get("cellSize", settings.get("gridSize", default_cell_size))
    cell_size = _number(raw_cell, "cell size")
    if cell_size <= 0:
        raise EncodingError(f"Scan {sid} has non-positive cell size {cell_size}")

    return ScanRecord(
        scan_id=sid,
        trails=parse_trails(payload.get("trails")),
        width=width,
        height=height,
        cell_size=cell_size,
        grid_data=_parse_grid_data(payload.get("gridData")),
    )


def _rows_from_json(path: Path) -> List[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise EncodingError(f"Invalid JSON in {path}: {e}") from e
    if isinstance(data, list):
        return data
    return [data]


# Return (Scan Id, Raw Row) Pairs From A JSON File Or A Directory Of JSON Files
def collect_scan_rows(src: str | Path, limit: Optional[int] = None) -> List[Tuple[str, Dict[str, Any]]]:
    src = Path(src)
    if not src.exists():
        raise FileNotFoundError(f"Scan Source Not Found: {src}")

    files: Sequence[Path] = sorted(src.rglob("*.json")) if src.is_dir() else [src]
    rows: List[Tuple[str, Dict[str, Any]]] = []
    for fp in files:
        for k, row in enumerate(_rows_from_json(fp)):
            default_id = fp.stem if k == 0 else f"{fp.stem}_{k}"
            sid = str(row.get("id") or default_id) if isinstance(row, dict) else default_id
            rows.append((sid, row))

    # Apply Optional Limit
    if limit is not None:
        rows = rows[:limit]
    return rows
