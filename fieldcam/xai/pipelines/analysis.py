# fieldcam/xai/pipelines/analysis.py

# Runs One Visual-Field Analysis Request End To End
# Scan Record -> Grid -> Grad-CAM -> Normalized Heatmap -> Metrics -> Stored AnalysisResult
# Tracks Request State; Any Failure Is Terminal And Nothing Is Persisted

from __future__ import annotations

# Standard Library
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

# Third-Party
import numpy as np

# Local
from fieldcam.constants.analysis import AFFECTED_THRESHOLD
from fieldcam.data.grid import encode_scan
from fieldcam.data.scan import parse_scan_record
from fieldcam.metrics.heatmap import extract, metrics_to_dict
from fieldcam.utils.echo import echo_line
from fieldcam.utils.runtime import RuntimeContext
from fieldcam.xai.core.classifier import Classifier
from fieldcam.xai.core.errors import AnalysisError, EncodingError
from fieldcam.xai.core.gradcam import CAMComputer
from fieldcam.xai.core.normalize import is_degenerate, normalize
from fieldcam.xai.core.types import AnalysisResult
from fieldcam.xai.pipelines.assemble import ResultAssembler


class AnalysisState(str, Enum):
    IDLE = "idle"
    LOADING_CLASSIFIER = "loading_classifier"
    ENCODING = "encoding"
    INFERRING = "inferring"
    COMPUTING_CAM = "computing_cam"
    NORMALIZING = "normalizing"
    EXTRACTING_METRICS = "extracting_metrics"
    ASSEMBLING = "assembling"
    READY = "ready"
    FAILED = "failed"


_SEQUENCE = [
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
TERMINAL = (AnalysisState.READY, AnalysisState.FAILED)

ClassifierSource = Union[Classifier, Callable[[], Classifier]]


# Grad-CAM + Normalization + Metrics For An Already-Encoded Grid
def run_gradcam_pipeline(classifier: Classifier, grid: np.ndarray, ctx: RuntimeContext,
                         target_class: Optional[int] = None,
                         threshold: float = AFFECTED_THRESHOLD) -> Dict[str, Any]:
    raw, target, scores = CAMComputer(classifier)(grid, ctx, target_class=target_class)
    heatmap = normalize(raw)
    return {"raw": raw, "heatmap": heatmap, "target": int(target),
            "scores": scores, "metrics": extract(heatmap, threshold)}


class AnalysisRun:
    """State machine for one analysis request.

    A run is single-use: once it reaches READY or FAILED it cannot be re-executed;
    callers re-submit a new run with the same or corrected input.
    """

    def __init__(self, classifier: ClassifierSource, storage, ctx: RuntimeContext,
                 threshold: float = AFFECTED_THRESHOLD,
                 target_class: Optional[int] = None,
                 cell_size: Optional[float] = None,
                 render: Optional[Dict[str, Any]] = None,
                 persist: bool = True):
        self._classifier_source = classifier
        self.storage = storage
        self.ctx = ctx
        self.threshold = float(threshold)
        self.target_class = target_class
        self.cell_size = cell_size
        self.render = render or {}
        self.persist = persist

        self.scan_id: Optional[str] = None
        self.state = AnalysisState.IDLE
        self.history: List[AnalysisState] = [AnalysisState.IDLE]
        self.failure: Optional[Dict[str, Any]] = None
        self.grid: Optional[np.ndarray] = None
        self.heatmap: Optional[np.ndarray] = None
        self.result: Optional[AnalysisResult] = None

    def _advance(self, state: AnalysisState):
        if self.state in TERMINAL:
            raise RuntimeError(f"Run already finished in state {self.state.value}")
        if state is not AnalysisState.FAILED:
            expected = _SEQUENCE[_SEQUENCE.index(self.state) + 1]
            if state is not expected:
                raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        echo_line("ANALYSIS_STATE", {"scan_id": self.scan_id, "state": state.value},
                  order=["scan_id", "state"])

    def _fail(self, reason: str, message: str):
        if self.state in TERMINAL:
            return
        self.failure = {"reason": reason, "message": message, "at": self.state.value}
        self._advance(AnalysisState.FAILED)
        echo_line("ANALYSIS_FAIL", {"scan_id": self.scan_id, **self.failure},
                  order=["scan_id", "reason", "at"])

    def _load_classifier(self) -> Classifier:
        src = self._classifier_source
        return src if isinstance(src, Classifier) else src()

    def execute(self, row: Dict[str, Any], scan_id: Optional[str] = None) -> AnalysisResult:
        if self.state is not AnalysisState.IDLE:
            raise RuntimeError("AnalysisRun is single-use; create a new run to re-submit")
        self.scan_id = str(scan_id or (row.get("id") if isinstance(row, dict) else None) or "scan")
        try:
            return self._execute(row)
        except AnalysisError as e:
            self._fail(e.reason, e.message)
            raise
        except Exception as e:
            self._fail("internal", repr(e))
            raise

    def _execute(self, row: Dict[str, Any]) -> AnalysisResult:
        self._advance(AnalysisState.LOADING_CLASSIFIER)
        classifier = self._load_classifier()

        self._advance(AnalysisState.ENCODING)
        record = parse_scan_record(row, scan_id=self.scan_id)
        grid = encode_scan(record, self.cell_size)
        if grid.size == 0:
            raise EncodingError(f"Screen {record.width}x{record.height} is smaller than one "
                                f"{record.cell_size}px cell")
        self.grid = grid

        self._advance(AnalysisState.INFERRING)
        cam = CAMComputer(classifier)
        fwd = cam.infer(grid, self.ctx)

        self._advance(AnalysisState.COMPUTING_CAM)
        raw, target, scores = cam.from_forward(fwd, self.target_class)

        self._advance(AnalysisState.NORMALIZING)
        degenerate = is_degenerate(raw)
        self.heatmap = normalize(raw)
        echo_line("CAM", {"scan_id": self.scan_id, "target": target, "map": f"{raw.shape[0]}x{raw.shape[1]}",
                          "raw_max": float(raw.max()), "degenerate": degenerate},
                  order=["scan_id", "target", "map"])

        self._advance(AnalysisState.EXTRACTING_METRICS)
        metrics = extract(self.heatmap, self.threshold)

        self._advance(AnalysisState.ASSEMBLING)
        assembler = ResultAssembler(self.storage,
                                    width=self.render.get("width"),
                                    height=self.render.get("height"),
                                    colormap=self.render.get("colormap"))
        result = assembler.assemble(scores, metrics, self.heatmap,
                                    labeler=classifier.label_for, scan_id=self.scan_id)
        if self.persist:
            self.storage.save_analysis_result(self.scan_id, result)

        self.result = result
        self._advance(AnalysisState.READY)
        echo_line("ANALYSIS_DONE", {"scan_id": self.scan_id, "label": result.predicted_label,
                                    "confidence": result.confidence, **metrics_to_dict(metrics)},
                  order=["scan_id", "label", "confidence"])
        return result


def run_analysis(row: Dict[str, Any], classifier: ClassifierSource, storage, ctx: RuntimeContext,
                 scan_id: Optional[str] = None, **kwargs) -> AnalysisResult:
    return AnalysisRun(classifier, storage, ctx, **kwargs).execute(row, scan_id=scan_id)
