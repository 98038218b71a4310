# fieldcam/xai/core/normalize.py

import numpy as np


def _as_map(raw) -> np.ndarray:
    m = np.asarray(raw, dtype=np.float64)
    if m.ndim != 2:
        raise ValueError(f"expected a 2D map, got shape {m.shape}")
    return _finite(m)


def _finite(m: np.ndarray) -> np.ndarray:
    # NaN -> 0, +/-inf -> Finite Max/Min (Overflowed Cells Count As Strongest)
    ok = np.isfinite(m)
    if ok.all():
        return m
    lo, hi = (float(m[ok].min()), float(m[ok].max())) if ok.any() else (0.0, 0.0)
    return np.nan_to_num(m, nan=0.0, posinf=hi, neginf=lo)


def is_degenerate(raw) -> bool:
    # Flat Map (Including All-Zero): Nothing To Rescale
    m = _as_map(raw)
    return m.size == 0 or float(m.max()) == float(m.min())


def normalize(raw) -> np.ndarray:
    """Min-max rescale to [0, 1]; a flat map becomes all zeros.

    Non-finite cells are replaced before rescaling, so the output is always finite.
    """
    m = _as_map(raw)
    if is_degenerate(m):
        out = np.zeros_like(m)
    else:
        lo, hi = float(m.min()), float(m.max())
        out = np.clip((m - lo) / (hi - lo), 0.0, 1.0)
    out.flags.writeable = False
    return out
