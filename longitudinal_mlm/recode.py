from __future__ import annotations

from typing import Dict, Iterable, Mapping

import pandas as pd

from .config import LABEL_COL, OCCASION_COLS, TIME_CODES, TIME_COL
from .errors import UnmappedCategory
from .logger import get_logger

log = get_logger(__name__)


def occasion_time_codes(occasion_cols: Iterable[str] = OCCASION_COLS) -> Dict[str, int]:
    """Map occasion labels, in measurement order, onto 0, 1, 2, ..."""
    codes: Dict[str, int] = {}
    for label in occasion_cols:
        if label in codes:
            raise ValueError(f"Occasion label '{label}' listed twice")
        codes[label] = len(codes)
    return codes


def recode_time(
    long_df: pd.DataFrame,
    mapping: Mapping[str, int] = TIME_CODES,
    *,
    label_col: str = LABEL_COL,
    time_col: str = TIME_COL,
    on_unmapped: str = "raise",
) -> pd.DataFrame:
    """Return a copy of *long_df* with an integer time index column added.

    Labels missing from *mapping* raise :class:`UnmappedCategory`, or, with
    ``on_unmapped="null"``, get ``<NA>`` in a nullable ``Int64`` column.
    """
    if on_unmapped not in ("raise", "null"):
        raise ValueError("on_unmapped must be 'raise' or 'null'")

    labels = long_df[label_col].astype("object")
    codes = labels.map(dict(mapping))
    unmapped = codes.isna()

    out = long_df.copy()
    if unmapped.any():
        bad = sorted({str(v) for v in labels[unmapped]})
        if on_unmapped == "raise":
            raise UnmappedCategory(bad)
        log.warning("Null-filling %s for %d rows with labels %s", time_col, int(unmapped.sum()), bad)
        out[time_col] = codes.astype("Int64")
    else:
        out[time_col] = codes.astype("int64")
    return out
