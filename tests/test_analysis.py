import numpy as np
import pytest

from fieldcam.xai.core.errors import EncodingError, ModelIncompatible, ModelLoadError
from fieldcam.xai.pipelines.analysis import AnalysisRun, AnalysisState, run_analysis, run_gradcam_pipeline

from conftest import FixedClassifier, block_activations, scan_row

FULL_SEQUENCE = [
    AnalysisState.IDLE,
    AnalysisState.LOADING_CLASSIFIER,
    AnalysisState.ENCODING,
    AnalysisState.INFERRING,
    AnalysisState.COMPUTING_CAM,
    AnalysisState.NORMALIZING,
    AnalysisState.EXTRACTING_METRICS,
    AnalysisState.ASSEMBLING,
    AnalysisState.READY,
]


def test_block_scenario_end_to_end(storage, ctx):
    clf = FixedClassifier(block_activations(), class_names=["normal", "affected"])
    run = AnalysisRun(clf, storage, ctx)
    result = run.execute(scan_row())

    assert run.state is AnalysisState.READY
    assert run.history == FULL_SEQUENCE
    np.testing.assert_allclose(run.heatmap[:2, :2], 1.0)
    assert run.heatmap.sum() == pytest.approx(4.0)

    m = result.metrics
    assert m.percent_affected == pytest.approx(25.0)
    assert (m.centroid.x, m.centroid.y) == (pytest.approx(0.5), pytest.approx(0.5))
    assert m.lcc_size == 4
    assert m.sym_lr < 1.0 and m.sym_tb < 1.0

    assert result.predicted_label == "affected"
    assert result.confidence == pytest.approx(0.8)
    assert storage.results["scan-1"] is result
    assert result.heatmap_image_ref == "mem://scan-1/1"


def test_grid_is_encoded_from_trails(storage, ctx):
    run = AnalysisRun(FixedClassifier(block_activations()), storage, ctx)
    run.execute(scan_row(width=80, height=40, cell=20))
    assert run.grid.shape == (2, 4)
    assert run.grid[0, 0] == 1.0 and run.grid[0, 1] == 1.0


def test_flat_activation_map_is_not_an_error(storage, ctx):
    clf = FixedClassifier(np.zeros((4, 4, 2)))
    result = run_analysis(scan_row(), clf, storage, ctx)
    m = result.metrics
    assert m.percent_affected == 0.0
    assert (m.centroid.x, m.centroid.y) == (2.0, 2.0)
    assert m.lcc_size == 0
    assert m.sym_lr == 1.0 and m.sym_tb == 1.0


def test_classifier_loaded_lazily_through_provider(storage, ctx):
    calls = []

    def provider():
        calls.append(1)
        return FixedClassifier(block_activations())

    run_analysis(scan_row(), provider, storage, ctx)
    assert calls == [1]


def test_encoding_failure_is_typed_and_persists_nothing(storage, ctx):
    row = {"id": "bad", "scan_data": {"trails": []}}
    run = AnalysisRun(FixedClassifier(block_activations()), storage, ctx)
    with pytest.raises(EncodingError):
        run.execute(row)
    assert run.state is AnalysisState.FAILED
    assert run.failure["reason"] == "encoding"
    assert run.failure["at"] == "encoding"
    assert run.result is None
    assert storage.images == [] and storage.results == {}


def test_screen_smaller_than_a_cell_is_an_encoding_error(storage, ctx):
    run = AnalysisRun(FixedClassifier(block_activations()), storage, ctx)
    with pytest.raises(EncodingError):
        run.execute(scan_row(width=10, height=10, cell=20))
    assert run.failure["reason"] == "encoding"


def test_model_load_failure(storage, ctx):
    def provider():
        raise ModelLoadError("checkpoint missing")

    run = AnalysisRun(provider, storage, ctx)
    with pytest.raises(ModelLoadError):
        run.execute(scan_row())
    assert run.history == [AnalysisState.IDLE, AnalysisState.LOADING_CLASSIFIER, AnalysisState.FAILED]
    assert run.failure == {"reason": "model_load", "message": "checkpoint missing", "at": "loading_classifier"}


def test_incompatible_model_fails_while_inferring(storage, ctx):
    clf = FixedClassifier(np.ones((1, 1, 3)))
    run = AnalysisRun(clf, storage, ctx)
    with pytest.raises(ModelIncompatible):
        run.execute(scan_row())
    assert run.failure["at"] == "inferring"
    assert storage.results == {}


def test_unexpected_errors_fail_as_internal(storage, ctx):
    class Broken(FixedClassifier):
        def gradient(self, fwd, target_class):
            raise RuntimeError("backend exploded")

    run = AnalysisRun(Broken(block_activations()), storage, ctx)
    with pytest.raises(RuntimeError):
        run.execute(scan_row())
    assert run.failure["reason"] == "internal"
    assert run.failure["at"] == "computing_cam"


def test_runs_are_single_use(storage, ctx):
    run = AnalysisRun(FixedClassifier(block_activations()), storage, ctx)
    run.execute(scan_row())
    with pytest.raises(RuntimeError):
        run.execute(scan_row())


def test_persist_can_be_disabled(storage, ctx):
    run_analysis(scan_row(), FixedClassifier(block_activations()), storage, ctx, persist=False)
    assert storage.results == {}
    assert len(storage.images) == 1


def test_target_class_override(storage, ctx):
    grads = -np.ones((4, 4, 1))
    clf = FixedClassifier(block_activations(), gradients=grads)
    out = run_gradcam_pipeline(clf, np.zeros((4, 4)), ctx, target_class=0)
    assert out["target"] == 0
    # Negative weights rectify to an all-zero map
    assert not out["raw"].any()
    assert not out["heatmap"].any()


def test_real_cnn_pipeline(tiny_classifier, storage, ctx):
    row = scan_row(width=200, height=160, cell=20,
                   trails=[[{"x": x, "y": 30} for x in range(0, 200, 7)]])
    result = run_analysis(row, tiny_classifier, storage, ctx, threshold=0.3)
    assert result.predicted_label in ("normal", "left", "right")
    assert 0.0 <= result.confidence <= 1.0
    assert 0.0 <= result.metrics.percent_affected <= 100.0
    assert 0.0 <= result.metrics.centroid.x < 10
    assert 0.0 <= result.metrics.centroid.y < 8
