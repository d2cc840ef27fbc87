"""
Person-level (wide) -> person-period (long) restructuring.

Time-invariant columns are copied onto every occasion row and the occasion
columns are stacked into a label column and a single outcome column. Output
rows are subject-major: all occasions of the first subject in column order,
then all occasions of the second subject, and so on.
"""
from __future__ import annotations

from typing import Iterable, List

import numpy as np
import pandas as pd

from .config import CLUSTER_COL, COVARIATES, LABEL_COL, OCCASION_COLS, OUTCOME_COL, SUBJECT_COL
from .errors import SchemaMismatch
from .logger import get_logger

log = get_logger(__name__)


def to_person_period(
    wide: pd.DataFrame,
    invariant_cols: Iterable[str] = COVARIATES,
    occasion_cols: Iterable[str] = OCCASION_COLS,
    *,
    subject_col: str = SUBJECT_COL,
    cluster_col: str = CLUSTER_COL,
    label_col: str = LABEL_COL,
    outcome_col: str = OUTCOME_COL,
) -> pd.DataFrame:
    occasion_cols = list(occasion_cols)
    if not occasion_cols:
        raise ValueError("At least one occasion column is needed to reshape")

    id_cols: List[str] = [subject_col, cluster_col, *invariant_cols]
    missing = [c for c in (*id_cols, *occasion_cols) if c not in wide.columns]
    if missing:
        raise SchemaMismatch(
            f"Wide table is missing columns: {', '.join(missing)}", missing
        )

    # melt stacks occasion-major; reorder rows to subject-major
    long_df = wide.melt(
        id_vars=id_cols,
        value_vars=occasion_cols,
        var_name=label_col,
        value_name=outcome_col,
    )
    n_subjects, n_occasions = len(wide), len(occasion_cols)
    order = np.arange(n_subjects * n_occasions).reshape(n_occasions, n_subjects).T.ravel()
    long_df = long_df.iloc[order].reset_index(drop=True)

    long_df[label_col] = pd.Categorical(
        long_df[label_col], categories=occasion_cols, ordered=True
    )

    log.info(
        "Reshaped %d subjects x %d occasions -> %d rows (%d missing %s)",
        n_subjects,
        n_occasions,
        len(long_df),
        int(long_df[outcome_col].isna().sum()),
        outcome_col,
    )
    return long_df
