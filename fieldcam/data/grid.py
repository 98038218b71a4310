# fieldcam/data/grid.py

# Occupancy Grid Encoding For Visual-Field Scans
# Maps Pointer Trail Pixels Onto A Fixed rows x cols Grid Of {0,1} Cells

from __future__ import annotations

# Standard Library
import math
from typing import Iterable, Optional, Sequence, Tuple

# Third-Party
import numpy as np

# Local
from fieldcam.data.scan import ScanRecord, parse_trails
from fieldcam.xai.core.errors import EncodingError


def grid_shape(width: float, height: float, cell_size: float) -> Tuple[int, int]:
    if cell_size <= 0:
        raise EncodingError(f"cell size must be > 0, got {cell_size}")
    return int(math.floor(height / cell_size)), int(math.floor(width / cell_size))


def _freeze(grid: np.ndarray) -> np.ndarray:
    grid.flags.writeable = False
    return grid


def encode_trails(
    trails: Iterable[Sequence],
    width: float,
    height: float,
    cell_size: float,
) -> np.ndarray:
    """Occupancy grid [rows, cols] float32, 1.0 where any trail point lands.

    Points outside [0, width) x [0, height) are dropped, never clamped.
    """
    rows, cols = grid_shape(width, height, cell_size)
    grid = np.zeros((rows, cols), dtype=np.float32)

    pts = [p for trail in parse_trails(list(trails)) for p in trail]
    if not pts or rows == 0 or cols == 0:
        return _freeze(grid)

    xy = np.asarray(pts, dtype=np.float64)
    x, y = xy[:, 0], xy[:, 1]
    inside = (x >= 0) & (x < width) & (y >= 0) & (y < height)
    gx = np.floor(x[inside] / cell_size).astype(np.int64)
    gy = np.floor(y[inside] / cell_size).astype(np.int64)

    # Partial Cells Past The Last Full Row/Column Have No Grid Slot
    keep = (gx < cols) & (gy < rows)
    grid[gy[keep], gx[keep]] = 1.0
    return _freeze(grid)


def grid_from_boolean(grid_data: Sequence[Sequence[bool]], rows: int, cols: int) -> np.ndarray:
    # Crop Or Zero-Pad A Precomputed Boolean Grid To rows x cols
    grid = np.zeros((rows, cols), dtype=np.float32)
    for i, row in enumerate(grid_data[:rows]):
        vals = [1.0 if v else 0.0 for v in row[:cols]]
        grid[i, :len(vals)] = vals
    return _freeze(grid)


def encode_scan(record: ScanRecord, cell_size: Optional[float] = None) -> np.ndarray:
    cs = record.cell_size if cell_size is None else cell_size
    if record.grid_data:
        rows, cols = grid_shape(record.width, record.height, cs)
        return grid_from_boolean(record.grid_data, rows, cols)
    return encode_trails(record.trails, record.width, record.height, cs)
