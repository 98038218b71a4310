# scripts/analyze.py

# Runs Grad-CAM Visual-Field Analysis Over One Or Many Stored Scan Records
# Loads The Classifier Once, Writes Heatmap PNGs, Result JSON Rows And An Index
# Optional Worker Pool And Grid Overlay Export

from __future__ import annotations

# Standard Library
import argparse
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

# Third-Party
from tqdm import tqdm

# Local Modules
from fieldcam.constants.analysis import AFFECTED_THRESHOLD
from fieldcam.data.scan import collect_scan_rows
from fieldcam.models.loader import load_classifier
from fieldcam.storage.local import LocalStorage
from fieldcam.utils.config import dump_config, load_config, section
from fieldcam.utils.echo import echo_line
from fieldcam.utils.runtime import RuntimeContext, runtime_context
from fieldcam.xai.core.errors import AnalysisError
from fieldcam.xai.core.overlays import save_grid_overlay
from fieldcam.xai.pipelines.analysis import AnalysisRun
from fieldcam.xai.reports.pack_index import pack_analysis_index


# Analyze One Row; Per-Request Failures Are Reported, Not Raised
def _analyze_one(sid: str, row: Dict[str, Any], cfg: Dict[str, Any], ctx: RuntimeContext,
                 storage: LocalStorage, overlay: bool) -> Tuple[str, Optional[str]]:
    mcfg = section(cfg, "model")
    acfg = section(cfg, "analysis")
    run = AnalysisRun(
        classifier=lambda: load_classifier(mcfg.get("checkpoint", ""), mcfg, ctx),
        storage=storage,
        ctx=ctx,
        threshold=float(acfg.get("threshold", AFFECTED_THRESHOLD)),
        target_class=acfg.get("target_class"),
        cell_size=acfg.get("cell_size"),
        render=section(cfg, "render"),
    )
    try:
        run.execute(row, scan_id=sid)
        if overlay:
            save_grid_overlay(run.grid, run.heatmap, storage.out_dir / f"{sid}_overlay.png")
    except AnalysisError as e:
        return sid, e.reason
    except Exception as e:
        # Unexpected Errors Fail This Scan Only; The Batch Keeps Going
        echo_line("ANALYZE_ERROR", {"scan_id": sid, "error": repr(e)}, order=["scan_id"])
        return sid, "internal"
    return sid, None


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--cfg", type=str, default="configs/analysis.yaml", help="YAML Config File Path")
    parser.add_argument("--scans", type=str, default=None, help="Scan JSON File Or Directory (Overrides Config)")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--overlay", action="store_true", help="Also Save Heatmap-Over-Grid PNGs")
    args = parser.parse_args()

    # Load Configuration
    cfg = load_config(args.cfg)
    scans = args.scans or section(cfg, "data").get("scans")
    if not scans:
        parser.error("No scan source: pass --scans or set data.scans in the config")

    storage = LocalStorage(section(cfg, "storage").get("out_dir", "outputs/analysis"))
    dump_config(cfg, storage.out_dir / "config.used.yaml")
    overlay = args.overlay or bool(section(cfg, "render").get("overlay", False))

    rows = collect_scan_rows(scans, limit=args.limit)
    echo_line("ANALYZE", {"scans": str(scans), "count": len(rows), "workers": args.workers})

    failures: Dict[str, str] = {}
    with runtime_context(cfg.get("device", "auto"), cfg.get("seed")) as ctx:
        def job(item):
            sid, row = item
            return _analyze_one(sid, row, cfg, ctx, storage, overlay)

        if args.workers > 1:
            with ThreadPoolExecutor(max_workers=args.workers) as pool:
                outcomes = list(tqdm(pool.map(job, rows), total=len(rows), desc="Analyzing"))
        else:
            outcomes = [job(item) for item in tqdm(rows, desc="Analyzing")]

    for sid, reason in outcomes:
        if reason is not None:
            failures[sid] = reason

    index = pack_analysis_index(str(storage.out_dir))
    echo_line("ANALYZE_SUMMARY", {
        "ok": len(rows) - len(failures),
        "failed": len(failures),
        "index": index,
    }, order=["ok", "failed"])
    for sid, reason in sorted(failures.items()):
        echo_line("ANALYZE_FAILED", {"scan_id": sid, "reason": reason}, order=["scan_id"])

    if failures:
        sys.exit(1)


# Entry Point
if __name__ == "__main__":
    main()
