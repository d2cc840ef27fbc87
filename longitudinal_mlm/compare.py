"""
Likelihood-ratio comparison of two nested mixed models.

Both models are refitted by maximum likelihood before comparing, since REML
likelihoods of models with different fixed parts are not comparable and
statsmodels leaves AIC/BIC undefined for REML fits.
"""
from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd
from scipy.stats import chi2

from .config import OPTIMIZER, ModelSpec
from .logger import get_logger
from .models import FittedModel, fit_model

log = get_logger(__name__)

COLUMNS: List[str] = ["npar", "AIC", "BIC", "logLik", "deviance", "Chisq", "Df", "Pr(>Chisq)"]


def lrt_table(first: FittedModel, second: FittedModel) -> pd.DataFrame:
    """Tabulate two ML fits, smaller model first, with the chi-square test."""
    if first.reml or second.reml:
        raise ValueError("Likelihood-ratio tests need ML fits, refit with reml=False")
    if first.nobs != second.nobs:
        raise ValueError(
            f"Models were fitted to different data ({first.name}: {first.nobs} obs, "
            f"{second.name}: {second.nobs} obs)"
        )

    small, large = sorted((first, second), key=lambda m: m.npar)
    chisq = small.criterion - large.criterion
    df_diff = large.npar - small.npar
    p_value = float(chi2.sf(chisq, df_diff)) if df_diff > 0 else float("nan")

    rows = []
    for fitted in (small, large):
        res = fitted.result
        rows.append(
            {
                "npar": fitted.npar,
                "AIC": float(res.aic),
                "BIC": float(res.bic),
                "logLik": fitted.llf,
                "deviance": fitted.criterion,
                "Chisq": np.nan,
                "Df": np.nan,
                "Pr(>Chisq)": np.nan,
            }
        )
    rows[1].update({"Chisq": max(chisq, 0.0), "Df": df_diff, "Pr(>Chisq)": p_value})
    table = pd.DataFrame(rows, index=[small.name, large.name], columns=COLUMNS)
    table.attrs["formulas"] = {small.name: str(small.spec), large.name: str(large.spec)}
    return table


def compare_models(
    long_df: pd.DataFrame,
    reduced: ModelSpec,
    full: ModelSpec,
    *,
    method: str = OPTIMIZER,
) -> pd.DataFrame:
    """Refit *reduced* and *full* by ML and return the comparison table."""
    log.info("Refitting %s and %s with ML for comparison", reduced.name, full.name)
    first = fit_model(long_df, reduced, reml=False, method=method)
    second = fit_model(long_df, full, reml=False, method=method)
    table = lrt_table(first, second)
    log.info(
        "LRT %s vs %s: Chisq=%.2f, Df=%s, p=%.3g",
        table.index[0],
        table.index[1],
        table["Chisq"].iloc[1],
        table["Df"].iloc[1],
        table["Pr(>Chisq)"].iloc[1],
    )
    return table


def format_comparison(table: pd.DataFrame) -> str:
    def _fmt_p(p: float) -> str:
        if pd.isna(p):
            return ""
        return "< 2.2e-16" if p < 2.2e-16 else f"{p:.4g}"

    shown = table.copy().astype(object)
    for col in ("AIC", "BIC", "logLik", "deviance"):
        shown[col] = table[col].map(lambda v: f"{v:.0f}")
    shown["Chisq"] = table["Chisq"].map(lambda v: "" if pd.isna(v) else f"{v:.2f}")
    shown["Df"] = table["Df"].map(lambda v: "" if pd.isna(v) else f"{int(v)}")
    shown["Pr(>Chisq)"] = table["Pr(>Chisq)"].map(_fmt_p)
    formulas = table.attrs.get("formulas", {})
    header = [f"{name}: {formula}" for name, formula in formulas.items()]
    return "\n".join([*header, shown.to_string()])
