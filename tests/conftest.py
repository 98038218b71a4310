import numpy as np
import pytest
import torch

from fieldcam.models.grid_cnn import build_grid_classifier
from fieldcam.models.loader import clear_classifier_cache
from fieldcam.storage.local import Storage
from fieldcam.utils.runtime import make_context
from fieldcam.xai.core.classifier import Classifier, TorchGridClassifier
from fieldcam.xai.core.types import ForwardPass, LayerDescriptor


class MemoryStorage(Storage):
    """Keeps saved images and results in memory."""

    def __init__(self):
        self.images = []
        self.results = {}

    def save_heatmap_image(self, image, scan_id=None):
        self.images.append(image)
        return f"mem://{scan_id}/{len(self.images)}"

    def save_analysis_result(self, scan_id, result):
        self.results[scan_id] = result


class FixedClassifier(Classifier):
    """Returns preset activations, gradients and scores for any grid."""

    def __init__(self, activations, gradients=None, scores=(0.2, 0.8), class_names=None):
        self.A = torch.as_tensor(np.asarray(activations, dtype=np.float32))
        self.G = torch.ones_like(self.A) if gradients is None else torch.as_tensor(
            np.asarray(gradients, dtype=np.float32))
        self.scores = torch.tensor(scores, dtype=torch.float32)
        self.class_names = list(class_names or [])
        h, w, c = self.A.shape
        self.layer = LayerDescriptor("fixed", 0, (h, w, c), h * w > 1)

    def feature_layers(self, grid_shape):
        return [self.layer]

    def forward(self, grid, ctx, layer=None):
        return ForwardPass(layer=self.layer, activations=self.A.clone(), scores=self.scores.clone())

    def gradient(self, fwd, target_class):
        return self.G.clone()

    def label_for(self, index):
        return self.class_names[index] if index < len(self.class_names) else None


def block_activations():
    # 4x4 map, 0.5 in the top-left 2x2 block, single channel
    a = np.zeros((4, 4, 1), dtype=np.float32)
    a[:2, :2, 0] = 0.5
    return a


def scan_row(width=80, height=80, cell=20, trails=None, scan_id="scan-1"):
    return {
        "id": scan_id,
        "scan_data": {
            "trails": trails if trails is not None else [[{"x": 5, "y": 5}, {"x": 25, "y": 5}]],
            "screenDimensions": {"width": width, "height": height},
            "settings": {"cellSize": cell},
        },
    }


@pytest.fixture
def ctx():
    return make_context("cpu")


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def tiny_cnn():
    torch.manual_seed(0)
    return build_grid_classifier(in_channels=1, num_classes=3, channels=(4, 6), pool=False)


@pytest.fixture
def tiny_classifier(tiny_cnn):
    return TorchGridClassifier(tiny_cnn, class_names=["normal", "left", "right"])


@pytest.fixture(autouse=True)
def _fresh_classifier_cache():
    clear_classifier_cache()
    yield
    clear_classifier_cache()
