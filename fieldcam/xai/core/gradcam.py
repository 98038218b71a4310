# fieldcam/xai/core/gradcam.py
from typing import Optional, Tuple

import numpy as np
import torch
import torch.nn.functional as F

from fieldcam.utils.runtime import RuntimeContext
from fieldcam.xai.core.classifier import Classifier, designated_layer
from fieldcam.xai.core.types import ForwardPass, LayerDescriptor


def combine(activations: torch.Tensor, gradients: torch.Tensor) -> torch.Tensor:
    """Rectified gradient-weighted channel sum.

    activations, gradients: [h, w, c]; returns [h, w].
    """
    if activations.shape != gradients.shape:
        raise ValueError(f"activation/gradient shape mismatch: {tuple(activations.shape)} vs {tuple(gradients.shape)}")
    w = gradients.mean(dim=(0, 1))                    # [c]
    cam = (activations * w).sum(dim=-1)               # [h, w]
    return F.relu(cam)


class CAMComputer:
    """Grad-CAM over a Classifier.
    Owns the activation/gradient tensors for the duration of one call only.
    No plotting or file I/O here.
    """
    def __init__(self, classifier: Classifier):
        self.classifier = classifier

    def layer_for(self, grid_shape: Tuple[int, int]) -> LayerDescriptor:
        return designated_layer(self.classifier.feature_layers(grid_shape))

    def infer(self, grid: np.ndarray, ctx: RuntimeContext) -> ForwardPass:
        layer = self.layer_for(np.asarray(grid).shape)
        return self.classifier.forward(grid, ctx, layer=layer.name)

    def from_forward(self, fwd: ForwardPass, target_class: Optional[int] = None):
        # Consumes The Forward Pass: Released Before Returning, Even On Error
        try:
            scores = fwd.scores.detach().cpu().numpy().astype(np.float64)
            if target_class is None:
                target_class = int(scores.argmax())
            grads = self.classifier.gradient(fwd, target_class)
            with torch.no_grad():
                raw = combine(fwd.activations.detach(), grads.detach())
            del grads
        finally:
            fwd.release()
        return raw.cpu().numpy().astype(np.float64), target_class, scores

    def __call__(self, grid: np.ndarray, ctx: RuntimeContext, target_class: Optional[int] = None):
        return self.from_forward(self.infer(grid, ctx), target_class)
