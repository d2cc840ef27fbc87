from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .config import OUTCOME_COL, TIME_COL
from .logger import get_logger

log = get_logger(__name__)


def describe_table(df: pd.DataFrame, label: str) -> str:
    """Shape plus one line per column (dtype, first values)."""
    lines = [f"{label}: Rows: {len(df)}  Columns: {df.shape[1]}"]
    for col in df.columns:
        head = ", ".join(map(str, df[col].head(5).tolist()))
        lines.append(f"$ {col:<14}<{df[col].dtype}> {head}")
    text = "\n".join(lines)
    log.info("%s: %d rows x %d columns", label, len(df), df.shape[1])
    return text


def occasion_summary(
    long_df: pd.DataFrame,
    *,
    outcome_col: str = OUTCOME_COL,
    time_col: str = TIME_COL,
) -> pd.DataFrame:
    """Per-occasion N, mean, SD, median and missing count of the outcome.

    Rows without a time index are summarised under a missing Time.
    """
    # NaN-ignoring reducers
    nanmean = lambda x: np.nanmean(x.values) if x.notna().any() else np.nan
    nanstd = lambda x: np.nanstd(x.values, ddof=1) if x.notna().sum() > 1 else np.nan
    nanmed = lambda x: np.nanmedian(x.values) if x.notna().any() else np.nan

    df = long_df.assign(Missing=long_df[outcome_col].isna())
    agg = (
        df.groupby(time_col, dropna=False)
          .agg(
              N=(outcome_col, "count"),
              Mean=(outcome_col, nanmean),
              SD=(outcome_col, nanstd),
              Median=(outcome_col, nanmed),
              Missing=("Missing", "sum"),
          )
          .reset_index()
          .sort_values(time_col)
    )
    agg["Missing"] = agg["Missing"].astype(int)
    return agg


def plot_trajectory(summary: pd.DataFrame, path: str | Path, *, time_col: str = TIME_COL) -> Path:
    """Mean outcome per occasion with +/- 1 SD band, written as an image."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    summary = summary.dropna(subset=[time_col])

    fig, ax = plt.subplots(figsize=(8, 6))
    x = summary[time_col].astype(float)
    ax.plot(x, summary["Mean"], marker="o", linewidth=2, label="Mean")
    ax.fill_between(x, summary["Mean"] - summary["SD"], summary["Mean"] + summary["SD"], alpha=0.2, label="±1 SD")
    ax.set_title("Language achievement across occasions")
    ax.set_xlabel(time_col)
    ax.set_ylabel("Mean score")
    ax.legend()
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)

    log.info("Trajectory plot written to %s", path)
    return path
