# fieldcam/xai/core/classifier.py
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import torch
import torch.nn as nn

from fieldcam.utils.runtime import RuntimeContext
from fieldcam.xai.core.errors import ModelIncompatible
from fieldcam.xai.core.types import ForwardPass, LayerDescriptor

# Distinct Grid Shapes Whose Layer Descriptors Are Kept Per Classifier
LAYER_CACHE_SIZE = 16


class Classifier(ABC):
    """Inference/gradient contract consumed by the activation-map engine.

    Implementations are shared read-only across requests; everything that
    belongs to one request lives in the returned ForwardPass.
    """

    @abstractmethod
    def feature_layers(self, grid_shape: Tuple[int, int]) -> List[LayerDescriptor]:
        ...

    @abstractmethod
    def forward(self, grid: np.ndarray, ctx: RuntimeContext, layer: Optional[str] = None) -> ForwardPass:
        ...

    @abstractmethod
    def gradient(self, fwd: ForwardPass, target_class: int) -> torch.Tensor:
        ...

    def label_for(self, index: int) -> Optional[str]:
        return None


def designated_layer(layers: Sequence[LayerDescriptor]) -> LayerDescriptor:
    # Deepest Layer That Still Has Spatial Extent
    spatial = [d for d in layers if d.has_spatial_extent]
    if not spatial:
        raise ModelIncompatible("Classifier exposes no feature layer with spatial extent > 1x1")
    return spatial[-1]


def _describe(name: str, index: int, out) -> LayerDescriptor:
    if isinstance(out, torch.Tensor) and out.dim() == 4:
        _, c, h, w = out.shape
        return LayerDescriptor(name, index, (int(h), int(w), int(c)), h * w > 1)
    shape = tuple(int(s) for s in out.shape[1:]) if isinstance(out, torch.Tensor) else ()
    return LayerDescriptor(name, index, shape, False)


class TorchGridClassifier(Classifier):
    """Adapter over an nn.Module that takes [1, C, rows, cols] grids.

    Candidate feature layers come from the model's ``feature_layer_names``
    when it defines them, otherwise from every leaf module.
    """

    def __init__(self, model: nn.Module, in_channels: int = 1,
                 output_activation: str = "softmax",
                 class_names: Optional[Sequence[str]] = None,
                 candidate_layers: Optional[Sequence[str]] = None):
        self.model = model.eval()
        self.in_channels = int(in_channels)
        self.output_activation = (output_activation or "none").lower()
        if self.output_activation not in ("softmax", "sigmoid", "none"):
            raise ValueError(f"Unknown output_activation: {output_activation}")
        self.class_names = list(class_names or [])

        modules = dict(model.named_modules())
        names = candidate_layers or getattr(model, "feature_layer_names", None)
        if names is None:
            names = [n for n, m in modules.items() if n and not any(True for _ in m.children())]
        missing = [n for n in names if n not in modules]
        if missing:
            raise ModelIncompatible(f"Unknown feature layers: {missing}")
        self._candidates: List[Tuple[str, nn.Module]] = [(n, modules[n]) for n in names]
        # lru_cache Bookkeeping Is Thread-Safe; A Concurrent Miss Just Probes Twice
        self._probe_layers = lru_cache(maxsize=LAYER_CACHE_SIZE)(self._probe)

    @property
    def device(self) -> torch.device:
        p = next(self.model.parameters(), None)
        return p.device if p is not None else torch.device("cpu")

    def _input(self, grid: np.ndarray, ctx: RuntimeContext) -> torch.Tensor:
        g = np.asarray(grid, dtype=np.float32)
        if g.ndim != 2:
            raise ValueError(f"grid must be 2D, got shape {g.shape}")
        x = ctx.tensor(g).to(self.device)[None, None]
        if self.in_channels > 1:
            x = x.repeat(1, self.in_channels, 1, 1)
        return x

    def _scores(self, out: torch.Tensor) -> torch.Tensor:
        s = out.reshape(out.shape[0], -1)[0] if out.dim() > 1 else out
        if self.output_activation == "softmax":
            return s.softmax(dim=0)
        if self.output_activation == "sigmoid":
            return s.sigmoid()
        return s

    def _run(self, x: torch.Tensor, wanted: Sequence[Tuple[str, nn.Module]]):
        # Hooks Only Record Outputs Produced On The Calling Thread
        tid = threading.get_ident()
        captured: Dict[str, torch.Tensor] = {}

        def make_hook(name):
            def hook(_, __, out):
                if threading.get_ident() == tid:
                    captured.pop(name, None)
                    captured[name] = out
            return hook

        handles = [m.register_forward_hook(make_hook(n)) for n, m in wanted]
        try:
            out = self.model(x)
        finally:
            for h in handles:
                h.remove()
        return captured, out

    def label_for(self, index: int) -> Optional[str]:
        return self.class_names[index] if 0 <= index < len(self.class_names) else None

    def _probe(self, rows: int, cols: int) -> Tuple[LayerDescriptor, ...]:
        probe = np.zeros((rows, cols), dtype=np.float32)
        ctx = RuntimeContext(device=self.device)
        with torch.no_grad():
            captured, _ = self._run(self._input(probe, ctx), self._candidates)
        # Forward Execution Order
        return tuple(_describe(n, i, t) for i, (n, t) in enumerate(captured.items()))

    def feature_layers(self, grid_shape: Tuple[int, int]) -> List[LayerDescriptor]:
        return list(self._probe_layers(int(grid_shape[0]), int(grid_shape[1])))

    def forward(self, grid: np.ndarray, ctx: RuntimeContext, layer: Optional[str] = None) -> ForwardPass:
        g = np.asarray(grid)
        desc = next((d for d in self.feature_layers(g.shape) if d.name == layer), None) if layer \
            else designated_layer(self.feature_layers(g.shape))
        if desc is None:
            raise ModelIncompatible(f"Layer '{layer}' did not produce an output")

        module = dict(self._candidates)[desc.name]
        x = self._input(g, ctx).clone().requires_grad_(True)
        with torch.enable_grad():
            captured, out = self._run(x, [(desc.name, module)])
            scores = self._scores(out)
        feat = captured[desc.name]
        if feat.dim() != 4:
            raise ModelIncompatible(f"Layer '{desc.name}' output is not a feature map")
        return ForwardPass(layer=desc, activations=feat[0].permute(1, 2, 0), scores=scores, source=feat)

    def gradient(self, fwd: ForwardPass, target_class: int) -> torch.Tensor:
        if fwd.scores is None or fwd.source is None:
            raise RuntimeError("Forward pass already released")
        n = int(fwd.scores.numel())
        if not 0 <= target_class < n:
            raise ValueError(f"target_class {target_class} out of range for {n} classes")
        with torch.enable_grad():
            (g,) = torch.autograd.grad(fwd.scores[target_class], fwd.source, allow_unused=True)
        if g is None:
            return torch.zeros_like(fwd.activations)
        return g[0].permute(1, 2, 0)
