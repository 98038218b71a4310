import os, json, glob
from pathlib import Path


def pack_analysis_index(results_dir: str) -> str:
    report = os.path.join(results_dir, "ANALYSIS_INDEX.json")
    entries = []
    rows = sorted(glob.glob(os.path.join(results_dir, "*_analysis.json")))
    for rpath in rows:
        with open(rpath, "r", encoding="utf-8") as f:
            row = json.load(f)
        res = row.get("analysis_results") or {}
        entries.append({
            "scan_id": row.get("scan_id", Path(rpath).stem.replace("_analysis", "")),
            "result_file": os.path.basename(rpath),
            "analysis_date": row.get("analysis_date"),
            "predicted_label": res.get("predicted_label"),
            "confidence": res.get("confidence"),
            "percent_affected": res.get("percent_affected"),
            "lcc_size": res.get("lcc_size"),
            "sym_lr": res.get("sym_lr"),
            "sym_tb": res.get("sym_tb"),
            "grad_cam_map_url": res.get("grad_cam_map_url"),
        })
    # Oldest First, For Trend Views
    entries.sort(key=lambda e: e["analysis_date"] or "")
    os.makedirs(results_dir, exist_ok=True)
    with open(report, "w") as f:
        json.dump({"entries": entries}, f, indent=2)
    return report
