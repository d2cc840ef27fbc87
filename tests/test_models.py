from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

import longitudinal_mlm.models as models
from longitudinal_mlm.config import MODEL_SPECS, ModelSpec
from longitudinal_mlm.errors import ModelFitFailure, SchemaMismatch
from longitudinal_mlm.models import (
    fit_model,
    fixed_effects_correlation,
    format_fit,
    scaled_residuals,
)

SPECS = {spec.name: spec for spec in MODEL_SPECS}


def test_formulas():
    assert SPECS["Model1.0"].formula() == "Language ~ C(Time)"
    assert SPECS["Model1.1"].formula() == "Language ~ C(Time) + Grammar"
    assert str(SPECS["Model1.3"]) == "Language ~ C(Time) + (1 | school/ID)"
    assert SPECS["Model1.0"].with_linear_time().formula() == "Language ~ Time"
    assert ModelSpec("null", fixed=()).formula() == "Language ~ 1"


def test_two_level_random_intercept(long_table):
    fitted = fit_model(long_table, SPECS["Model1.0"])

    assert fitted.reml
    assert fitted.nobs == 360
    assert fitted.groups == {"ID": 60}
    # intercept + five occasion contrasts
    assert len(fitted.fixed_effects) == 6
    assert list(fitted.fixed_effects.columns) == ["Estimate", "Std. Error", "t value", "Pr(>|z|)"]
    assert fitted.random_effects["Groups"].tolist() == ["ID", "Residual"]
    assert fitted.random_effects["Variance"].iloc[1] == pytest.approx(fitted.residual_variance)
    assert fitted.criterion == pytest.approx(-2 * fitted.result.llf)
    assert fitted.npar == 8

    # the last occasion sits well above the first in the simulated data
    last = fitted.fixed_effects.loc["C(Time)[T.5]", "Estimate"]
    assert 12 < last < 24


def test_time_varying_covariate(long_table):
    fitted = fit_model(long_table, SPECS["Model1.1"])

    assert "Grammar" in fitted.fixed_effects.index
    assert fitted.fixed_effects.loc["Grammar", "Estimate"] > 0


def test_nested_random_intercepts(long_table):
    fitted = fit_model(long_table, SPECS["Model1.3"])

    assert fitted.groups == {"ID:school": 60, "school": 6}
    assert fitted.random_effects["Groups"].tolist() == ["ID:school", "school", "Residual"]
    assert (fitted.random_effects["Variance"] >= 0).all()
    assert fitted.npar == 9


def test_linear_time(long_table):
    fitted = fit_model(long_table, SPECS["Model1.0"].with_linear_time())

    assert fitted.fixed_effects.index.tolist() == ["Intercept", "Time"]
    assert fitted.fixed_effects.loc["Time", "Estimate"] > 0


def test_missing_rows_dropped(long_table):
    holes = long_table.copy()
    holes.loc[[0, 7, 20], "Language"] = np.nan

    fitted = fit_model(holes, SPECS["Model1.0"])

    assert fitted.nobs == len(long_table) - 3


def test_missing_model_column(long_table):
    with pytest.raises(SchemaMismatch):
        fit_model(long_table.drop(columns=["Grammar"]), SPECS["Model1.1"])


def test_no_complete_rows(long_table):
    empty = long_table.assign(Language=np.nan)
    with pytest.raises(ModelFitFailure, match="no complete rows"):
        fit_model(empty, SPECS["Model1.0"])


def test_nonconvergence_is_reported(long_table, monkeypatch):
    def fake_mixedlm(**kwargs):
        def fit(**fit_kwargs):
            import warnings
            from statsmodels.tools.sm_exceptions import ConvergenceWarning

            warnings.warn("Gradient optimization failed", ConvergenceWarning)
            return SimpleNamespace(converged=False)

        return SimpleNamespace(fit=fit)

    monkeypatch.setattr(models.smf, "mixedlm", fake_mixedlm)

    with pytest.raises(ModelFitFailure) as exc:
        fit_model(long_table, SPECS["Model1.0"])

    assert exc.value.model == "Model1.0"
    assert exc.value.warnings == ("Gradient optimization failed",)
    assert "did not converge" in str(exc.value)


def test_statsmodels_error_is_wrapped(long_table, monkeypatch):
    def broken_mixedlm(**kwargs):
        raise np.linalg.LinAlgError("Singular matrix")

    monkeypatch.setattr(models.smf, "mixedlm", broken_mixedlm)

    with pytest.raises(ModelFitFailure, match="Singular matrix") as exc:
        fit_model(long_table, SPECS["Model1.3"])
    assert isinstance(exc.value.__cause__, np.linalg.LinAlgError)


def test_format_fit(long_table):
    fitted = fit_model(long_table, SPECS["Model1.3"])
    text = format_fit(fitted)

    assert text.startswith("=== Model1.3 ===")
    assert "Linear mixed model fit by REML" in text
    assert "Number of obs: 360, groups:  ID:school, 60; school, 6" in text
    assert "Residual" in text


def test_null_filled_time_is_fittable(long_table):
    nullable = long_table.assign(Time=long_table["Time"].astype("Int64"))
    nullable.loc[0, "Time"] = pd.NA

    fitted = fit_model(nullable, SPECS["Model1.0"])

    assert fitted.nobs == len(long_table) - 1


def test_format_fit_has_residual_and_correlation_blocks(long_table):
    fitted = fit_model(long_table, SPECS["Model1.0"])
    text = format_fit(fitted)

    assert "Scaled residuals:" in text
    assert "Correlation of Fixed Effects:" in text
    assert text.index("Scaled residuals:") < text.index("Random effects:")
    assert text.index("Fixed effects:") < text.index("Correlation of Fixed Effects:")


def test_scaled_residuals_summary(long_table):
    fitted = fit_model(long_table, SPECS["Model1.0"])
    summary = scaled_residuals(fitted)

    assert summary.index.tolist() == ["Min", "1Q", "Median", "3Q", "Max"]
    assert summary.is_monotonic_increasing
    assert abs(summary["Median"]) < 0.5


def test_fixed_effects_correlation(long_table):
    fitted = fit_model(long_table, SPECS["Model1.1"])
    corr = fixed_effects_correlation(fitted)

    assert corr.index.tolist() == fitted.fixed_effects.index.tolist()
    assert np.allclose(np.diag(corr), 1.0)
    assert np.allclose(corr.values, corr.values.T)
    assert (corr.abs() <= 1.0 + 1e-9).all().all()
    # balanced occasions: each contrast shares the intercept's variance equally
    assert corr.loc["C(Time)[T.2]", "C(Time)[T.1]"] == pytest.approx(0.5, abs=0.01)


def test_other_warnings_are_passed_through(long_table, monkeypatch):
    def fake_mixedlm(**kwargs):
        def fit(**fit_kwargs):
            import warnings

            warnings.warn("argument will change", FutureWarning)
            return SimpleNamespace(converged=False)

        return SimpleNamespace(fit=fit)

    monkeypatch.setattr(models.smf, "mixedlm", fake_mixedlm)

    with pytest.warns(FutureWarning, match="argument will change"):
        with pytest.raises(ModelFitFailure) as exc:
            fit_model(long_table, SPECS["Model1.0"])

    # only convergence warnings end up on the failure
    assert exc.value.warnings == ()
