"""
Load -> reshape -> recode -> fit -> compare, as one batch run.

The wide table is passed along explicitly; nothing is kept between runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import pandas as pd

from .compare import compare_models, format_comparison
from .config import COVARIATES, OCCASION_COLS, TIME_CODES, AnalysisConfig
from .describe import describe_table, occasion_summary, plot_trajectory
from .loader import load_wide_table
from .logger import get_logger
from .models import FittedModel, fit_models, format_fit
from .recode import recode_time
from .reshape import to_person_period

log = get_logger(__name__)


@dataclass
class AnalysisResult:
    wide: pd.DataFrame
    long: pd.DataFrame
    occasions: pd.DataFrame
    fits: Dict[str, FittedModel]
    comparison: Optional[pd.DataFrame] = None


def build_long_table(
    wide: pd.DataFrame,
    *,
    occasion_cols: Iterable[str] = OCCASION_COLS,
    time_codes: Mapping[str, int] = TIME_CODES,
    on_unmapped: str = "raise",
) -> pd.DataFrame:
    """Stack *occasion_cols* and attach Time from *time_codes*.

    A stacked column with no entry in *time_codes* fails the recode, or gets
    a missing Time with ``on_unmapped="null"``.
    """
    long_df = to_person_period(wide, COVARIATES, occasion_cols)
    return recode_time(long_df, time_codes, on_unmapped=on_unmapped)


def run_analysis(config: AnalysisConfig) -> AnalysisResult:
    get_logger()
    log.info("Starting analysis of %s", config.data_path)
    wide = load_wide_table(config.data_path, occasion_cols=config.occasion_cols)
    print(describe_table(wide, "Person-level data"))

    long_df = build_long_table(
        wide,
        occasion_cols=config.occasion_cols,
        time_codes=config.time_codes,
        on_unmapped=config.on_unmapped,
    )
    print(describe_table(long_df, "Person-period data"))

    occasions = occasion_summary(long_df)
    with pd.option_context("display.max_columns", None, "display.float_format", "{:.3f}".format):
        print("\n=== Language score by occasion ===")
        print(occasions.to_string(index=False))

    specs = config.model_specs()
    fits = fit_models(long_df, specs, method=config.method)
    for fitted in fits.values():
        print()
        print(format_fit(fitted))

    comparison = None
    if config.comparison:
        by_name = {spec.name: spec for spec in specs}
        reduced, full = (by_name[name] for name in config.comparison)
        comparison = compare_models(long_df, reduced, full, method=config.method)
        print("\n=== Model comparison (ML refit) ===")
        print(format_comparison(comparison))

    result = AnalysisResult(wide=wide, long=long_df, occasions=occasions, fits=fits, comparison=comparison)
    if config.out_dir is not None:
        write_outputs(result, config.out_dir, plot=config.plot)
    return result


def write_outputs(result: AnalysisResult, out_dir: Path, *, plot: bool = False) -> None:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    result.long.to_csv(out_dir / "person_period.csv", index=False)
    result.occasions.to_csv(out_dir / "occasion_summary.csv", index=False)
    for name, fitted in result.fits.items():
        fitted.fixed_effects.to_csv(out_dir / f"{name}_fixed_effects.csv", index_label="term")
        fitted.random_effects.to_csv(out_dir / f"{name}_random_effects.csv", index=False)
    if result.comparison is not None:
        result.comparison.to_csv(out_dir / "model_comparison.csv", index_label="model")
    if plot:
        plot_trajectory(result.occasions, out_dir / "trajectory.png")

    print(f"[OK] Results written to {out_dir}")
