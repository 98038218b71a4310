# fieldcam/utils/runtime.py

# Explicit Numeric Runtime Context
# Carries Device, Dtype And Seed Through One Analysis Scope Instead Of Global State

from __future__ import annotations

# Standard Library
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

# Third-Party
import torch

# Local
from fieldcam.utils.determinism import set_seed
from fieldcam.utils.device_utils import select_device


@dataclass(frozen=True)
class RuntimeContext:
    device: torch.device
    dtype: torch.dtype = torch.float32
    seed: Optional[int] = None

    def tensor(self, data) -> torch.Tensor:
        # Move Host Data Onto This Context's Device/Dtype
        return torch.as_tensor(data, dtype=self.dtype, device=self.device)


def make_context(device: str = "cpu", seed: Optional[int] = None) -> RuntimeContext:
    return RuntimeContext(device=select_device(device), seed=seed)


@contextmanager
def runtime_context(device: str = "auto", seed: Optional[int] = None) -> Iterator[RuntimeContext]:
    # Scoped Runtime: Seeds On Entry, Frees Cached GPU Memory On Exit
    ctx = make_context(device, seed)
    set_seed(seed)
    try:
        yield ctx
    finally:
        if ctx.device.type == "cuda":
            torch.cuda.empty_cache()
