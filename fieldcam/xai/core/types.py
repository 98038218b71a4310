from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple

import numpy as np
import torch


@dataclass(frozen=True)
class LayerDescriptor:
    name: str
    index: int
    shape: Tuple[int, ...]          # (h, w, c) of one sample
    has_spatial_extent: bool        # h * w > 1


@dataclass
class ForwardPass:
    """Activations and scores of one forward call; owned by a single request."""
    layer: LayerDescriptor
    activations: Optional[torch.Tensor]     # [h, w, c], still attached to the graph
    scores: Optional[torch.Tensor]          # [num_classes]
    source: Optional[torch.Tensor] = field(default=None, repr=False)  # raw [1, c, h, w] layer output

    def release(self):
        self.activations = None
        self.scores = None
        self.source = None


@dataclass(frozen=True)
class Centroid:
    x: float; y: float


@dataclass(frozen=True)
class Metrics:
    percent_affected: float
    centroid: Centroid
    lcc_size: int
    sym_lr: float
    sym_tb: float


@dataclass(frozen=True)
class HeatmapImage:
    rgba: np.ndarray                # [H, W, 4] uint8
    width: int
    height: int


@dataclass(frozen=True)
class AnalysisResult:
    predicted_label: str
    confidence: float
    metrics: Metrics
    heatmap_image_ref: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    predicted_index: int = 0

    def to_record(self) -> Dict[str, Any]:
        # Output Record Shape Consumed By Storage And Trend Views
        m = self.metrics
        return {
            "predicted_label": self.predicted_label,
            "confidence": float(self.confidence),
            "percent_affected": float(m.percent_affected),
            "centroid": asdict(m.centroid),
            "lcc_size": int(m.lcc_size),
            "sym_lr": float(m.sym_lr),
            "sym_tb": float(m.sym_tb),
            "grad_cam_map_url": self.heatmap_image_ref,
        }
