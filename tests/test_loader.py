import pytest
import torch

from fieldcam.models.grid_cnn import build_grid_classifier
from fieldcam.models.loader import load_classifier
from fieldcam.xai.core.classifier import TorchGridClassifier
from fieldcam.xai.core.errors import ModelLoadError

MODEL_CFG = {"num_classes": 2, "channels": [4, 8], "class_names": ["normal", "affected"]}


@pytest.fixture
def checkpoint(tmp_path):
    torch.manual_seed(0)
    model = build_grid_classifier(num_classes=2, channels=(4, 8))
    path = tmp_path / "grid_cnn.pt"
    torch.save(model.state_dict(), path)
    return path, model


def test_loads_state_dict_and_wraps_classifier(checkpoint):
    path, model = checkpoint
    clf = load_classifier(path, MODEL_CFG)
    assert isinstance(clf, TorchGridClassifier)
    assert clf.label_for(1) == "affected"
    assert clf.label_for(5) is None
    assert not clf.model.training
    for k, v in model.state_dict().items():
        assert torch.equal(clf.model.state_dict()[k], v)


def test_classifier_is_loaded_once_per_process(checkpoint):
    path, _ = checkpoint
    assert load_classifier(path, MODEL_CFG) is load_classifier(str(path), dict(MODEL_CFG))


def test_training_checkpoint_with_model_key(tmp_path, checkpoint):
    _, model = checkpoint
    path = tmp_path / "train_ckpt.pt"
    torch.save({"model": model.state_dict(), "epoch": 3}, path)
    assert isinstance(load_classifier(path, MODEL_CFG), TorchGridClassifier)


def test_missing_checkpoint_raises_model_load_error(tmp_path):
    with pytest.raises(ModelLoadError) as exc:
        load_classifier(tmp_path / "absent.pt", MODEL_CFG)
    assert exc.value.reason == "model_load"
    assert exc.value.retryable


def test_unreadable_checkpoint_raises_model_load_error(tmp_path):
    path = tmp_path / "garbage.pt"
    path.write_bytes(b"not a checkpoint")
    with pytest.raises(ModelLoadError):
        load_classifier(path, MODEL_CFG)


def test_architecture_mismatch_raises_and_is_not_cached(checkpoint):
    path, _ = checkpoint
    bad = dict(MODEL_CFG, channels=[8])
    with pytest.raises(ModelLoadError):
        load_classifier(path, bad)
    # A failed load leaves nothing behind; the right config still loads
    assert isinstance(load_classifier(path, MODEL_CFG), TorchGridClassifier)
