# File: fieldcam/utils/device_utils.py

import torch
import warnings


def select_device(user_device: str = "auto") -> torch.device:
    """
    Selects the best available device (CUDA > CPU) based on user configuration.

    Args:
        user_device: String specifying the desired device ('auto', 'cpu', or 'cuda').

    Returns:
        A torch.device object.
    """
    device_name = str(user_device or "auto").lower()

    if device_name in ("auto", "cuda") and torch.cuda.is_available():
        device = torch.device("cuda")
    elif device_name == "cuda":
        # CUDA requested but not available
        warnings.warn("CUDA device explicitly requested but not available. Using CPU.", UserWarning)
        device = torch.device("cpu")
    elif device_name in ("auto", "cpu"):
        device = torch.device("cpu")
    else:
        warnings.warn(f"Unknown device '{user_device}'. Using CPU.", UserWarning)
        device = torch.device("cpu")

    return device
