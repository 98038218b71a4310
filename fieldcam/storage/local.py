# fieldcam/storage/local.py

# Storage Collaborator For Analysis Artifacts
# Defines The Storage Contract And A Local-Filesystem Implementation
# Heatmap Images Are Written As PNG, Results As One JSON Row Per Scan

from __future__ import annotations

# Standard Library
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

# Local
from fieldcam.utils.echo import echo_line
from fieldcam.xai.core.overlays import encode_png
from fieldcam.xai.core.types import AnalysisResult, HeatmapImage


class Storage(ABC):
    @abstractmethod
    def save_heatmap_image(self, image: HeatmapImage, scan_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    def save_analysis_result(self, scan_id: str, result: AnalysisResult) -> None:
        ...


def result_row(scan_id: str, result: AnalysisResult) -> Dict[str, Any]:
    return {
        "scan_id": scan_id,
        "analysis_status": "processed",
        "analysis_date": result.timestamp.isoformat(),
        "analysis_results": result.to_record(),
    }


class LocalStorage(Storage):
    def __init__(self, out_dir: str | Path):
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def save_heatmap_image(self, image: HeatmapImage, scan_id: Optional[str] = None) -> str:
        stamp = int(time.time() * 1000)
        path = self.out_dir / f"gradcam_{scan_id or 'scan'}_{stamp}.png"
        path.write_bytes(encode_png(image))
        echo_line("STORAGE", {"kind": "heatmap", "path": str(path), "size": f"{image.width}x{image.height}"},
                  order=["kind", "path"])
        return path.resolve().as_uri()

    def result_path(self, scan_id: str) -> Path:
        return self.out_dir / f"{scan_id}_analysis.json"

    def save_analysis_result(self, scan_id: str, result: AnalysisResult) -> None:
        # Re-Runs Overwrite The Previous Row For The Same Scan
        path = self.result_path(scan_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(result_row(scan_id, result), f, indent=2)
        echo_line("STORAGE", {"kind": "result", "path": str(path)}, order=["kind", "path"])

    def load_analysis_result(self, scan_id: str) -> Optional[Dict[str, Any]]:
        path = self.result_path(scan_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
