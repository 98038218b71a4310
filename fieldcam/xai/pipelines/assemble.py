from typing import Callable, Optional

import numpy as np

from fieldcam.constants.analysis import DEFAULT_LABEL_FMT
from fieldcam.xai.core.overlays import heatmap_to_rgba
from fieldcam.xai.core.types import AnalysisResult, Metrics


class ResultAssembler:
    """Packages prediction, metrics and a heatmap image ref into an AnalysisResult.
    Image persistence is delegated to the storage collaborator.
    """
    def __init__(self, storage, width: Optional[int] = None, height: Optional[int] = None,
                 colormap: Optional[str] = None):
        self.storage = storage
        self.width = width
        self.height = height
        self.colormap = colormap

    def assemble(self, scores, metrics: Metrics, heatmap: np.ndarray,
                 labeler: Optional[Callable[[int], Optional[str]]] = None,
                 scan_id: Optional[str] = None) -> AnalysisResult:
        s = np.asarray(scores, dtype=np.float64).reshape(-1)
        if s.size == 0:
            raise ValueError("empty score vector")
        idx = int(s.argmax())
        confidence = float(np.clip(s[idx], 0.0, 1.0))

        image = heatmap_to_rgba(heatmap, self.width, self.height, self.colormap)
        url = self.storage.save_heatmap_image(image, scan_id=scan_id)
        return AnalysisResult(
            predicted_label=(labeler(idx) if labeler else None) or DEFAULT_LABEL_FMT.format(index=idx),
            confidence=confidence,
            metrics=metrics,
            heatmap_image_ref=url,
            predicted_index=idx,
        )
