# fieldcam/utils/echo.py

# Grep-Friendly Tagged Log Lines For Analysis Runs
# One Line Per Event: TAG | key=value | key=value

# Standard Library
from typing import Callable, Dict, Iterable, Optional

# Third-Party
import numpy as np
from tqdm import tqdm

# Keys Whose Floats Are Scores Or Ratios In [0, 1]
_FOUR_PLACES = ("confidence", "threshold", "sym", "raw")


def _fmt_val(key: str, val) -> str:
    if val is None:
        return "-"
    if isinstance(val, (bool, np.bool_)):
        return "yes" if val else "no"
    if isinstance(val, np.generic):
        val = val.item()                             # Numpy Scalars Log Like Python Numbers
    if isinstance(val, float):
        if key.startswith(_FOUR_PLACES):
            return format(val, ".4f")
        if key.startswith("percent"):
            return format(val, ".2f")
        return format(val, ".3f")
    if isinstance(val, (list, tuple)):
        return ",".join(_fmt_val(key, v) for v in val)
    return str(val)


def echo_line(
    tag: str,
    kv_pairs: Dict[str, object],
    order: Optional[Iterable[str]] = None,
    writer: Optional[Callable[[str], None]] = None
) -> None:
    # Selected Keys First, The Rest Sorted
    order = list(order or [])
    keys = order + sorted(k for k in kv_pairs if k not in order)
    fields = [f"{k}={_fmt_val(k, kv_pairs[k])}" for k in keys if k in kv_pairs]
    (writer or tqdm.write)(f"{tag} | " + " | ".join(fields))
