# fieldcam/utils/determinism.py

# Utilities For Reproducible Analysis Runs
# Provides Global Seed Setup For Python, NumPy And Torch

# Standard Library
import os
import random
from typing import Optional

# Third-Party
import numpy as np
import torch


def set_seed(seed: Optional[int], deterministic_cudnn: bool = True):
    # Set Global Random Seed For Python, NumPy, And PyTorch (CPU + GPU)
    if seed is None:
        return  # Skip If No Seed Provided

    os.environ["PYTHONHASHSEED"] = str(seed)        # Fix Hash-Based Operations
    random.seed(seed)                               # Python RNG
    np.random.seed(seed & 0xFFFFFFFF)               # Ensure 32-Bit NumPy Seed
    torch.manual_seed(seed)                         # PyTorch CPU RNG
    torch.cuda.manual_seed_all(seed)                # PyTorch GPU RNG

    if deterministic_cudnn:
        # Enforce Deterministic CuDNN Paths
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False
        torch.use_deterministic_algorithms(True, warn_only=True)  # Warn Only If Non-Deterministic
