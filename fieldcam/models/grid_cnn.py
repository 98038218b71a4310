# fieldcam/models/grid_cnn.py

# Small Convolutional Classifier Over Occupancy Grids
# Conv Blocks Keep Spatial Structure For Activation Mapping; Head Classifies Pooled Features
# Head Allows Optional Dropout

from typing import List, Sequence

import torch
import torch.nn as nn


class ConvBlock(nn.Module):
    def __init__(self, in_ch: int, out_ch: int, pool: bool = True):
        super().__init__()
        layers: List[nn.Module] = [
            nn.Conv2d(in_ch, out_ch, kernel_size=3, padding=1),
            nn.ReLU(),
        ]
        if pool:
            layers.append(nn.MaxPool2d(2, ceil_mode=True))
        self.net = nn.Sequential(*layers)

    def forward(self, x):
        return self.net(x)


# Linear Head With Optional Dropout
class Head(nn.Module):
    def __init__(self, in_features: int, num_classes: int, p_drop: float = 0.0):
        super().__init__()
        layers: List[nn.Module] = []
        if p_drop and p_drop > 0:
            layers.append(nn.Dropout(p_drop))
        layers.append(nn.Linear(in_features, num_classes))
        self.net = nn.Sequential(*layers)

    def forward(self, x):
        return self.net(x)


class GridCNN(nn.Module):
    def __init__(self, in_channels: int = 1, num_classes: int = 2,
                 channels: Sequence[int] = (16, 32), pool: bool = True, p_drop: float = 0.0):
        super().__init__()
        if not channels:
            raise ValueError("GridCNN needs at least one conv block")
        blocks = []
        prev = in_channels
        for ch in channels:
            blocks.append(ConvBlock(prev, int(ch), pool=pool))
            prev = int(ch)
        self.features = nn.Sequential(*blocks)
        self.gap = nn.AdaptiveAvgPool2d(1)
        self.head = Head(prev, num_classes, p_drop=p_drop)

    # Modules Eligible As Activation-Map Sources, In Forward Order
    @property
    def feature_layer_names(self) -> List[str]:
        return [f"features.{i}" for i in range(len(self.features))]

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        f = self.features(x)
        return self.head(torch.flatten(self.gap(f), 1))


def build_grid_classifier(in_channels: int = 1,
                          num_classes: int = 2,
                          channels: Sequence[int] = (16, 32),
                          pool: bool = True,
                          p_drop: float = 0.0) -> nn.Module:
    return GridCNN(in_channels=in_channels, num_classes=num_classes,
                   channels=tuple(channels), pool=pool, p_drop=p_drop)
