# scripts/check_scans.py

# Quick Sanity Check For Stored Scan Records
# Verifies Records Parse And Encode To A Non-Empty Occupancy Grid

import argparse
import random
import sys
from typing import Optional

from fieldcam.data.grid import encode_scan
from fieldcam.data.scan import collect_scan_rows, parse_scan_record
from fieldcam.xai.core.errors import EncodingError


# Parse, Encode And Report A Random Sample Of Scan Records
def check_scans(src: str, num: int, cell_size: Optional[float] = None) -> int:
    rows = collect_scan_rows(src)
    if not rows:
        print("[SCAN] No scan records found. Check your path.")
        return 0

    print(f"[SCAN] records: {len(rows)}")
    bad = 0
    k = min(num, len(rows))
    for sid, row in random.sample(rows, k):
        try:
            rec = parse_scan_record(row, scan_id=sid)
            grid = encode_scan(rec, cell_size)
        except EncodingError as e:
            bad += 1
            print(f"  scan {sid}: INVALID ({e})")
            continue
        n_pts = sum(len(t) for t in rec.trails)
        src_kind = "gridData" if rec.grid_data else "trails"
        print(f"  scan {sid}: grid={grid.shape} occupied={int(grid.sum())} points={n_pts} from={src_kind}")
        if grid.size == 0:
            bad += 1
            print(f"  scan {sid}: EMPTY grid (screen smaller than one cell)")
    return bad


# Main
def main():
    ap = argparse.ArgumentParser(description="Minimal Scan Record Sanity Check")
    ap.add_argument("--scans", required=True, help="Scan JSON File Or Directory")
    ap.add_argument("--num", type=int, default=5)
    ap.add_argument("--cell-size", type=float, default=None, help="Override The Records' Cell Size")
    ap.add_argument("--seed", type=int, default=0)
    args = ap.parse_args()

    random.seed(args.seed)
    if check_scans(args.scans, num=args.num, cell_size=args.cell_size):
        sys.exit(1)


if __name__ == "__main__":
    main()
