from __future__ import annotations

import io
from pathlib import Path
from typing import Optional

import numpy as np
import matplotlib
from PIL import Image

from fieldcam.constants.render import get_rgba_scales
from fieldcam.xai.core.types import HeatmapImage

OVERLAY_COLORMAP = "jet"


def _get_cmap(name: str):
    try:
        return matplotlib.colormaps[name]
    except KeyError as e:
        raise ValueError(f"Unknown colormap: {name}") from e


def resize_heatmap(hm: np.ndarray, width: int, height: int) -> np.ndarray:
    # Bilinear Resize On A Float Image, Values Kept In [0,1]
    img = Image.fromarray(np.asarray(hm, dtype=np.float32))
    out = np.asarray(img.resize((int(width), int(height)), resample=Image.BILINEAR), dtype=np.float64)
    return np.clip(out, 0.0, 1.0)


def heatmap_to_rgba(heatmap, width: Optional[int] = None, height: Optional[int] = None,
                    colormap: Optional[str] = None) -> HeatmapImage:
    """heatmap: [h,w] float(0..1)
       returns an RGBA pixel buffer, optionally resized to width x height.
       Default ramp is red-yellow; alpha always scales with intensity.
    """
    hm = np.clip(np.asarray(heatmap, dtype=np.float64), 0.0, 1.0)
    if hm.ndim != 2:
        raise ValueError(f"heatmap must be 2D, got shape {hm.shape}")
    h, w = hm.shape
    if (width and width != w) or (height and height != h):
        hm = resize_heatmap(hm, width or w, height or h)

    r_s, g_s, b_s, a_s = get_rgba_scales()
    rgba = np.empty(hm.shape + (4,), dtype=np.uint8)
    if colormap:
        rgba[..., :3] = np.floor(_get_cmap(colormap)(hm)[..., :3] * 255.0).astype(np.uint8)
    else:
        rgba[..., 0] = np.floor(r_s * hm).astype(np.uint8)
        rgba[..., 1] = np.floor(g_s * hm).astype(np.uint8)
        rgba[..., 2] = np.floor(b_s * hm).astype(np.uint8)
    rgba[..., 3] = np.floor(a_s * hm).astype(np.uint8)
    return HeatmapImage(rgba=rgba, width=int(hm.shape[1]), height=int(hm.shape[0]))


def encode_png(image: HeatmapImage) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(image.rgba).save(buf, format="PNG")
    return buf.getvalue()


def save_grid_overlay(grid, heatmap, out_path: Path, alpha: float = 0.5, scale: int = 8) -> Path:
    # Occupancy Grid As Grayscale Background (Seen Cells White)
    g = np.asarray(grid, dtype=np.float32)
    bg = (np.clip(g, 0, 1) * 255).astype(np.uint8)
    rows, cols = g.shape
    size = (cols * scale, rows * scale)
    bg_pil = Image.fromarray(bg).convert("RGB").resize(size, resample=Image.NEAREST)

    # Heatmap Is Usually Coarser Than The Grid; Upsample Before Coloring
    hm = resize_heatmap(np.asarray(heatmap, dtype=np.float64), size[0], size[1])
    cmap = _get_cmap(OVERLAY_COLORMAP)
    hm_pil = Image.fromarray((cmap(hm)[:, :, :3] * 255).astype(np.uint8))

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    Image.blend(bg_pil, hm_pil, alpha=alpha).save(out_path)
    return out_path
