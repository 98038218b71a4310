# fieldcam/models/loader.py

# Loads The Grid Classifier From A Local Checkpoint Once Per Process
# Failed Loads Are Never Cached, So No Half-Built Classifier Is Ever Shared
# Logs Loading Status

from __future__ import annotations

# Standard Library
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

# Third-Party
import torch

# Local
from fieldcam.models.grid_cnn import build_grid_classifier
from fieldcam.utils.echo import echo_line
from fieldcam.utils.runtime import RuntimeContext
from fieldcam.xai.core.classifier import TorchGridClassifier
from fieldcam.xai.core.errors import ModelLoadError


def _load_state_dict(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ModelLoadError(f"Classifier checkpoint not found: {path}")
    try:
        state = torch.load(str(path), map_location="cpu", weights_only=True)
    except Exception as e:
        raise ModelLoadError(f"Failed to read classifier checkpoint {path}: {e}") from e
    # Accept Raw State Dicts Or {"model": state_dict, ...} Training Checkpoints
    sd = state.get("model", state) if isinstance(state, dict) else None
    if not isinstance(sd, dict):
        raise ModelLoadError(f"Checkpoint {path} does not hold a state dict")
    return sd


@lru_cache(maxsize=None)
def _load_cached(path: str, device: str, in_channels: int, num_classes: int,
                 channels: Tuple[int, ...], pool: bool, p_drop: float,
                 output_activation: str, class_names: Tuple[str, ...]) -> TorchGridClassifier:
    sd = _load_state_dict(Path(path))
    model = build_grid_classifier(in_channels=in_channels, num_classes=num_classes,
                                  channels=channels, pool=pool, p_drop=p_drop)
    try:
        model.load_state_dict(sd, strict=True)
    except RuntimeError as e:
        raise ModelLoadError(f"Checkpoint {path} does not match the configured architecture") from e
    model.to(torch.device(device))
    model.eval()

    # Log Loading Status
    echo_line("CLS_MODEL", {
        "checkpoint": path,
        "device": device,
        "num_classes": num_classes,
        "channels": list(channels),
    }, order=["checkpoint", "device"])

    return TorchGridClassifier(model, in_channels=in_channels,
                               output_activation=output_activation,
                               class_names=class_names)


def load_classifier(checkpoint: str | Path, model_cfg: Optional[Dict[str, Any]] = None,
                    ctx: Optional[RuntimeContext] = None) -> TorchGridClassifier:
    mcfg = model_cfg or {}
    channels: Sequence[int] = mcfg.get("channels") or (16, 32)
    device = str(ctx.device) if ctx is not None else "cpu"
    return _load_cached(
        str(Path(checkpoint).expanduser().resolve()),
        device,
        int(mcfg.get("in_channels", 1)),
        int(mcfg.get("num_classes", 2)),
        tuple(int(c) for c in channels),
        bool(mcfg.get("pool", True)),
        float(mcfg.get("p_drop", 0.0)),
        str(mcfg.get("output_activation", "softmax")),
        tuple(str(n) for n in (mcfg.get("class_names") or [])),
    )


def clear_classifier_cache():
    _load_cached.cache_clear()
