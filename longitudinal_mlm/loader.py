from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from .config import CLUSTER_COL, COVARIATE_SOURCES, OCCASION_COLS, SUBJECT_COL
from .errors import ParseError, SchemaMismatch
from .logger import get_logger

log = get_logger(__name__)


def load_wide_table(
    path: str | Path,
    *,
    subject_col: str = SUBJECT_COL,
    cluster_col: str = CLUSTER_COL,
    covariate_sources: Optional[Dict[str, str]] = None,
    occasion_cols: Iterable[str] = OCCASION_COLS,
) -> pd.DataFrame:
    """Read the person-level CSV (one row per subject).

    Covariates are renamed from their source names to the canonical ones in
    *covariate_sources*; column dtypes are left to ``read_csv`` to infer.
    """
    path = Path(path)
    if covariate_sources is None:
        covariate_sources = COVARIATE_SOURCES
    if not path.is_file():
        raise FileNotFoundError(f"No such data file: {path}")

    try:
        df = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise ParseError(f"Error reading {path}: {exc}") from exc

    required = [subject_col, cluster_col, *covariate_sources.values(), *occasion_cols]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaMismatch(
            f"{path} is missing required columns: {', '.join(missing)}", missing
        )

    dupes = df.loc[df[subject_col].duplicated(), subject_col].unique()
    if len(dupes):
        shown = ", ".join(map(str, dupes[:5]))
        raise SchemaMismatch(
            f"{path}: subject ids must be unique, repeated: {shown}", [subject_col]
        )

    renames = {src: dst for dst, src in covariate_sources.items() if src != dst}
    df = df.rename(columns=renames)

    log.info("Loaded %s: %d subjects, %d columns", path, len(df), df.shape[1])
    return df
