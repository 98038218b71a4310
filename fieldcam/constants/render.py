# fieldcam/constants/render.py

# Red-Yellow Heatmap Ramp For RGBA Pixel Buffers
# Each Channel Is floor(scale * intensity)

from __future__ import annotations

# Standard Library
from typing import Tuple

RED_SCALE: float = 255.0
GREEN_SCALE: float = 127.5   # Half Of Red Gives The Yellow Tint At Full Intensity
BLUE_SCALE: float = 0.0
ALPHA_SCALE: float = 180.0


def get_rgba_scales() -> Tuple[float, float, float, float]:
    return RED_SCALE, GREEN_SCALE, BLUE_SCALE, ALPHA_SCALE
