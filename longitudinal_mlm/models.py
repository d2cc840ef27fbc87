"""
Linear mixed-effects models for the person-period table.

Estimation is delegated to ``statsmodels.formula.api.mixedlm``:

* ``(1 | ID)``          -> ``groups=ID``, random intercept
* ``(1 | school/ID)``   -> ``groups=school``, random intercept, plus the
  variance component ``0 + C(ID)`` for subjects within each school

Rows with a missing value in any column the model uses are dropped before
fitting, and the count is logged.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from .config import OPTIMIZER, ModelSpec
from .errors import ModelFitFailure, SchemaMismatch
from .logger import get_logger

log = get_logger(__name__)


@dataclass
class FittedModel:
    spec: ModelSpec
    result: Any
    reml: bool
    nobs: int
    groups: Dict[str, int]
    fixed_effects: pd.DataFrame
    random_effects: pd.DataFrame
    warnings: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def llf(self) -> float:
        return float(self.result.llf)

    @property
    def criterion(self) -> float:
        """REML (or ML) criterion at convergence, i.e. -2 log-likelihood."""
        return -2.0 * self.llf

    @property
    def residual_variance(self) -> float:
        return float(self.result.scale)

    @property
    def npar(self) -> int:
        # fixed effects + variance parameters + residual variance
        return int(len(self.result.params)) + 1


###############################################################################
# Helpers                                                                     #
###############################################################################

def _model_frame(long_df: pd.DataFrame, spec: ModelSpec) -> pd.DataFrame:
    needed = list(dict.fromkeys(spec.columns()))
    missing = [c for c in needed if c not in long_df.columns]
    if missing:
        raise SchemaMismatch(
            f"{spec.name} needs columns absent from the data: {', '.join(missing)}", missing
        )

    data = long_df.loc[:, needed].dropna().reset_index(drop=True)
    dropped = len(long_df) - len(data)
    if dropped:
        log.info("%s: dropped %d rows with missing values", spec.name, dropped)

    # nullable integers (e.g. a null-filled Time) confuse patsy
    for col in data.columns:
        dtype = data[col].dtype
        if isinstance(dtype, pd.api.extensions.ExtensionDtype) and pd.api.types.is_integer_dtype(dtype):
            data[col] = data[col].astype("int64")
    return data


def _fixed_effects_table(result: Any) -> pd.DataFrame:
    names = result.fe_params.index
    return pd.DataFrame(
        {
            "Estimate": result.fe_params,
            "Std. Error": result.bse_fe,
            "t value": result.tvalues[names],
            "Pr(>|z|)": result.pvalues[names],
        },
        index=names,
    )


def _random_effects_table(result: Any, spec: ModelSpec) -> pd.DataFrame:
    rows = []
    if spec.nested_in:
        rows.append((f"{spec.group}:{spec.nested_in}", "(Intercept)", float(result.vcomp[0])))
        rows.append((spec.nested_in, "(Intercept)", float(result.cov_re.iloc[0, 0])))
    else:
        rows.append((spec.group, "(Intercept)", float(result.cov_re.iloc[0, 0])))
    rows.append(("Residual", "", float(result.scale)))

    table = pd.DataFrame(rows, columns=["Groups", "Name", "Variance"])
    table["Std.Dev."] = np.sqrt(table["Variance"].clip(lower=0))
    return table


def _group_counts(data: pd.DataFrame, spec: ModelSpec) -> Dict[str, int]:
    if spec.nested_in:
        return {
            f"{spec.group}:{spec.nested_in}": int(data.groupby([spec.nested_in, spec.group]).ngroups),
            spec.nested_in: int(data[spec.nested_in].nunique()),
        }
    return {spec.group: int(data[spec.group].nunique())}


###############################################################################
# Fitting                                                                     #
###############################################################################

def fit_model(
    long_df: pd.DataFrame,
    spec: ModelSpec,
    *,
    reml: bool = True,
    method: str = OPTIMIZER,
) -> FittedModel:
    """Fit *spec* on the long table; raise :class:`ModelFitFailure` on failure.

    Convergence failures are reported, never retried. Convergence warnings
    from a fit that did converge are kept on the returned model and logged.
    """
    data = _model_frame(long_df, spec)
    if data.empty:
        raise ModelFitFailure(spec.name, "no complete rows after dropping missing values")

    if spec.nested_in:
        groups = data[spec.nested_in]
        vc_formula = {spec.group: f"0 + C({spec.group})"}
    else:
        groups = data[spec.group]
        vc_formula = None

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        try:
            md = smf.mixedlm(
                formula=spec.formula(),
                data=data,
                groups=groups,
                re_formula="~1",
                vc_formula=vc_formula,
            )
            mdf = md.fit(reml=reml, method=method)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise ModelFitFailure(spec.name, str(exc)) from exc

    messages = []
    for w in caught:
        if issubclass(w.category, ConvergenceWarning):
            messages.append(str(w.message))
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    if not mdf.converged:
        raise ModelFitFailure(spec.name, "optimizer did not converge", messages)
    for msg in messages:
        log.warning("%s: %s", spec.name, msg)

    fitted = FittedModel(
        spec=spec,
        result=mdf,
        reml=reml,
        nobs=len(data),
        groups=_group_counts(data, spec),
        fixed_effects=_fixed_effects_table(mdf),
        random_effects=_random_effects_table(mdf, spec),
        warnings=messages,
    )
    log.info(
        "Fitted %s by %s: nobs=%d, criterion=%.1f",
        spec.name,
        "REML" if reml else "ML",
        fitted.nobs,
        fitted.criterion,
    )
    return fitted


def fit_models(
    long_df: pd.DataFrame,
    specs: Iterable[ModelSpec],
    *,
    reml: bool = True,
    method: str = OPTIMIZER,
) -> Dict[str, FittedModel]:
    return {spec.name: fit_model(long_df, spec, reml=reml, method=method) for spec in specs}


###############################################################################
# Reporting                                                                   #
###############################################################################

def scaled_residuals(fitted: FittedModel) -> pd.Series:
    """Five-number summary of the residuals divided by the residual SD."""
    resid = np.asarray(fitted.result.resid, dtype=float) / np.sqrt(fitted.residual_variance)
    return pd.Series(
        np.quantile(resid, [0.0, 0.25, 0.5, 0.75, 1.0]),
        index=["Min", "1Q", "Median", "3Q", "Max"],
    )


def fixed_effects_correlation(fitted: FittedModel) -> pd.DataFrame:
    """Correlation matrix of the fixed-effect estimates."""
    names = fitted.result.fe_params.index
    k = len(names)
    # fixed effects lead the parameter vector
    cov = np.asarray(fitted.result.cov_params())[:k, :k]
    sd = np.sqrt(np.diag(cov))
    return pd.DataFrame(cov / np.outer(sd, sd), index=names, columns=names)


def _lower_triangle(corr: pd.DataFrame) -> pd.DataFrame:
    shown = corr.iloc[1:, :-1].copy().astype(object)
    for i in range(shown.shape[0]):
        for j in range(shown.shape[1]):
            shown.iat[i, j] = f"{corr.iat[i + 1, j]:.3f}" if j <= i else ""
    return shown


def format_fit(fitted: FittedModel) -> str:
    """Text summary in the layout of an lme4 ``summary()``."""
    criterion = "REML" if fitted.reml else "ML"
    groups = "; ".join(f"{name}, {n}" for name, n in fitted.groups.items())
    with pd.option_context("display.max_columns", None, "display.width", 120):
        resid_txt = scaled_residuals(fitted).to_frame().T.to_string(
            index=False, float_format=lambda v: f"{v:.4f}"
        )
        random_txt = fitted.random_effects.to_string(
            index=False, float_format=lambda v: f"{v:.3f}"
        )
        fixed_txt = fitted.fixed_effects.to_string(float_format=lambda v: f"{v:.4f}")
        corr = fixed_effects_correlation(fitted)
        corr_txt = _lower_triangle(corr).to_string() if len(corr) > 1 else ""
    lines = [
        f"=== {fitted.name} ===",
        f"Linear mixed model fit by {criterion}",
        f"Formula: {fitted.spec}",
        f"{criterion} criterion at convergence: {fitted.criterion:.1f}",
        "",
        "Scaled residuals:",
        resid_txt,
        "",
        "Random effects:",
        random_txt,
        f"Number of obs: {fitted.nobs}, groups:  {groups}",
        "",
        "Fixed effects:",
        fixed_txt,
    ]
    if corr_txt:
        lines += ["", "Correlation of Fixed Effects:", corr_txt]
    if fitted.warnings:
        lines += ["", "Convergence warnings:", *(f"  {w}" for w in fitted.warnings)]
    return "\n".join(lines)
