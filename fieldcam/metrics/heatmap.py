# fieldcam/metrics/heatmap.py

# Computes Shape Metrics Of A Normalized Activation Heatmap
# Percent Affected, Intensity Centroid, Largest 4-Connected Component, Mirror Symmetry

from __future__ import annotations

# Standard Library
from collections import deque
from typing import Dict

# Third-Party
import numpy as np

# Local
from fieldcam.constants.analysis import AFFECTED_THRESHOLD
from fieldcam.xai.core.types import Centroid, Metrics

_NEIGHBOURS = ((1, 0), (-1, 0), (0, 1), (0, -1))


def _as_heatmap(heatmap) -> np.ndarray:
    hm = np.asarray(heatmap, dtype=np.float64)
    if hm.ndim != 2 or hm.size == 0:
        raise ValueError(f"heatmap must be a non-empty 2D array, got shape {hm.shape}")
    return hm


def percent_affected(heatmap, threshold: float = AFFECTED_THRESHOLD) -> float:
    hm = _as_heatmap(heatmap)
    return 100.0 * float(np.count_nonzero(hm > threshold)) / float(hm.size)


def centroid(heatmap) -> Centroid:
    hm = _as_heatmap(heatmap)
    rows, cols = hm.shape
    total = float(hm.sum())
    # Empty Map Falls Back To The Geometric Center
    if total == 0:
        return Centroid(x=cols / 2.0, y=rows / 2.0)
    ii, jj = np.indices(hm.shape)
    return Centroid(x=float((jj * hm).sum()) / total, y=float((ii * hm).sum()) / total)


def component_sizes(mask: np.ndarray) -> list:
    # Iterative Flood Fill Over A Boolean Mask, 4-Connectivity
    rows, cols = mask.shape
    seen = np.zeros_like(mask, dtype=bool)
    sizes = []
    for r0, c0 in zip(*np.nonzero(mask)):
        if seen[r0, c0]:
            continue
        seen[r0, c0] = True
        queue = deque([(int(r0), int(c0))])
        size = 0
        while queue:
            r, c = queue.popleft()
            size += 1
            for dr, dc in _NEIGHBOURS:
                nr, nc = r + dr, c + dc
                if 0 <= nr < rows and 0 <= nc < cols and mask[nr, nc] and not seen[nr, nc]:
                    seen[nr, nc] = True
                    queue.append((nr, nc))
        sizes.append(size)
    return sizes


def lcc_size(heatmap, threshold: float = AFFECTED_THRESHOLD) -> int:
    sizes = component_sizes(_as_heatmap(heatmap) > threshold)
    return max(sizes) if sizes else 0


def _mirror_score(a: np.ndarray, b: np.ndarray) -> float:
    total_diff = float(np.abs(a - b).sum())
    total_max = float(np.maximum(a, b).sum())
    if total_max == 0:
        return 1.0  # Trivially Symmetric
    return max(0.0, 1.0 - total_diff / total_max)


def symmetry_lr(heatmap) -> float:
    # Column j Against Column cols-1-j, j < floor(cols/2); Odd Middle Column Skipped
    hm = _as_heatmap(heatmap)
    half = hm.shape[1] // 2
    return _mirror_score(hm[:, :half], hm[:, ::-1][:, :half])


def symmetry_tb(heatmap) -> float:
    hm = _as_heatmap(heatmap)
    half = hm.shape[0] // 2
    return _mirror_score(hm[:half, :], hm[::-1, :][:half, :])


def extract(heatmap, threshold: float = AFFECTED_THRESHOLD) -> Metrics:
    hm = _as_heatmap(heatmap)
    return Metrics(
        percent_affected=percent_affected(hm, threshold),
        centroid=centroid(hm),
        lcc_size=lcc_size(hm, threshold),
        sym_lr=symmetry_lr(hm),
        sym_tb=symmetry_tb(hm),
    )


def metrics_to_dict(m: Metrics) -> Dict[str, object]:
    return {
        "percent_affected": m.percent_affected,
        "centroid_x": m.centroid.x,
        "centroid_y": m.centroid.y,
        "lcc_size": m.lcc_size,
        "sym_lr": m.sym_lr,
        "sym_tb": m.sym_tb,
    }
