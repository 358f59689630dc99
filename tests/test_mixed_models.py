"""
Test suite for lingstat mixed-effects models.

This module contains tests for formula parsing, predictor centering,
model fitting and comparison, and the reporting helpers.
"""

import logging
import warnings

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
from statsmodels.regression.mixed_linear_model import MixedLM
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from lingstat.core.mixed_models import (
    MixedModelFitter,
    center_predictors,
    compare_models,
    parse_formula,
)
from lingstat.core.reporting import plot_fixed_effects, plot_group_effects, tabulate_models
from lingstat.models.regression import INTERCEPT
from lingstat.utils.exceptions import ModelFitError, ValidationError


@pytest.fixture
def fitter(sample_config):
    return MixedModelFitter(sample_config)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestParseFormula:
    """Test cases for lme4-style formula parsing."""

    def test_random_intercept(self):
        spec = parse_formula("rt ~ frequency + (1 | subject)")
        assert spec.response == "rt"
        assert spec.fixed == "rt ~ frequency"
        assert spec.group == "subject"
        assert spec.re_formula == "~1"

    def test_random_slope_anywhere_in_formula(self):
        spec = parse_formula("rt ~ (1 + frequency | subject) + condition")
        assert spec.fixed == "rt ~ condition"
        assert spec.re_formula == "~1 + frequency"

    def test_random_term_between_predictors(self):
        spec = parse_formula("rt ~ frequency + (0 + frequency | subject) + condition")
        assert spec.fixed == "rt ~ frequency + condition"
        assert spec.re_formula == "~0 + frequency"

    def test_intercept_only(self):
        assert parse_formula("rt ~ (1 | subject)").fixed == "rt ~ 1"

    def test_variables(self):
        spec = parse_formula("rt ~ frequency * condition + (1 + frequency | subject)")
        assert spec.variables == ["rt", "frequency", "condition", "subject"]

    @pytest.mark.parametrize("formula,message", [
        ("rt ~ frequency", "random-effects term"),
        ("rt ~ (1 | subject) + (1 | item)", "Only one"),
        ("rt ~ frequency + (1 | subject:item)", "Grouping factor"),
        ("rt ~ frequency + ( | subject)", "no left-hand side"),
        ("rt frequency (1 | subject)", "exactly one"),
        ("rt ~ frequency + (1 + frequency || subject)", "not supported"),
        ("rt ~ frequency + (1 + log(frequency) | subject)", "not supported"),
    ])
    def test_invalid_formulas(self, formula, message):
        with pytest.raises(ValidationError, match=message):
            parse_formula(formula)


class TestCenterPredictors:
    """Test cases for predictor centering."""

    def test_center(self, mixed_data):
        centered = center_predictors(mixed_data, ["frequency"])
        assert centered["frequency"].mean() == pytest.approx(0.0, abs=1e-10)
        assert centered["frequency"].std() == pytest.approx(mixed_data["frequency"].std())
        # the input is left untouched
        assert mixed_data["frequency"].mean() > 1.0

    def test_center_and_scale(self, mixed_data):
        scaled = center_predictors(mixed_data, ["frequency", "rt"], scale=True)
        assert scaled["frequency"].std() == pytest.approx(1.0)
        assert scaled["rt"].mean() == pytest.approx(0.0, abs=1e-10)

    def test_constant_column(self, mixed_data, caplog):
        data = mixed_data.assign(constant=2.0)
        with caplog.at_level(logging.WARNING):
            result = center_predictors(data, ["constant"], scale=True)
        assert (result["constant"] == 0.0).all()
        assert "no variance" in caplog.text

    def test_invalid_columns(self, mixed_data):
        with pytest.raises(ValidationError, match="not found"):
            center_predictors(mixed_data, ["missing"])
        with pytest.raises(ValidationError, match="numeric"):
            center_predictors(mixed_data, ["condition"])


class TestMixedModelFitter:
    """Test cases for fitting with statsmodels."""

    def test_random_intercept_fit(self, fitter, mixed_data):
        result = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")

        assert result.method == "REML"
        assert result.group == "subject"
        assert result.n_obs == 300
        assert result.n_groups == 20
        assert result.n_params == 4
        assert list(result.fixed_effects.index) == [INTERCEPT, "frequency"]
        assert result.coefficient("frequency") == pytest.approx(1.5, abs=0.35)
        assert result.fixed_effects.loc["frequency", "p_value"] < 0.001
        assert set(result.random_effects) == {INTERCEPT}
        assert 0.0 < result.icc < 1.0
        assert np.isnan(result.aic)

        assert list(result.group_effects.columns) == [INTERCEPT]
        assert result.group_effects.index.name == "subject"
        assert len(result.group_effects) == 20

    def test_random_slope_fit(self, fitter, mixed_data):
        result = fitter.fit(mixed_data, "rt ~ frequency + (1 + frequency | subject)", reml=False)

        assert result.method == "ML"
        assert set(result.random_effects) == {INTERCEPT, "frequency"}
        assert list(result.group_effects.columns) == [INTERCEPT, "frequency"]
        assert result.n_params == 6
        assert np.isfinite(result.aic)

    def test_categorical_predictor(self, fitter, mixed_data):
        result = fitter.fit(mixed_data, "rt ~ frequency + condition + (1 | subject)")
        assert "condition[T.b]" in result.fixed_effects.index
        assert "condition[T.c]" in result.fixed_effects.index

    def test_missing_values_are_dropped(self, fitter, mixed_data):
        data = mixed_data.copy()
        data.loc[0, "rt"] = np.nan
        result = fitter.fit(data, "rt ~ frequency + (1 | subject)")
        assert result.n_obs == 299

    def test_invalid_data(self, fitter, mixed_data):
        with pytest.raises(ValidationError, match="Column not found"):
            fitter.fit(mixed_data, "latency ~ frequency + (1 | subject)")
        with pytest.raises(ValidationError, match="at least two levels"):
            fitter.fit(mixed_data.assign(subject="s00"), "rt ~ frequency + (1 | subject)")
        with pytest.raises(ValidationError, match="Cannot build model design"):
            fitter.fit(mixed_data, "rt ~ familiarity + (1 | subject)")
        with pytest.raises(ValidationError, match="non-empty DataFrame"):
            fitter.fit(mixed_data.iloc[0:0], "rt ~ frequency + (1 | subject)")

    def test_fit_failure(self, fitter, mixed_data, monkeypatch):
        def broken_fit(self, *args, **kwargs):
            raise np.linalg.LinAlgError("Singular matrix")

        monkeypatch.setattr(MixedLM, "fit", broken_fit)
        with pytest.raises(ModelFitError, match="Failed to fit mixed model") as excinfo:
            fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")
        assert excinfo.value.formula == "rt ~ frequency + (1 | subject)"

    def test_convergence_warning_is_captured(self, fitter, mixed_data, monkeypatch, caplog):
        original_fit = MixedLM.fit

        def noisy_fit(self, *args, **kwargs):
            warnings.warn("Gradient optimization failed; the model did not converge", ConvergenceWarning)
            return original_fit(self, *args, **kwargs)

        monkeypatch.setattr(MixedLM, "fit", noisy_fit)
        with caplog.at_level(logging.WARNING):
            result = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")

        assert not result.converged
        assert any("did not converge" in m for m in result.warnings)
        assert "consider centering" in caplog.text

    def test_boundary_warning_keeps_convergence(self, fitter, mixed_data, monkeypatch):
        original_fit = MixedLM.fit

        def boundary_fit(self, *args, **kwargs):
            warnings.warn("The MLE may be on the boundary of the parameter space.", ConvergenceWarning)
            return original_fit(self, *args, **kwargs)

        monkeypatch.setattr(MixedLM, "fit", boundary_fit)
        result = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")
        assert result.converged
        assert any("boundary" in m for m in result.warnings)

    def test_identical_groups_give_boundary_fit(self, fitter):
        rng = np.random.default_rng(7)
        data = pd.DataFrame({
            "y": np.tile(rng.normal(size=15), 20),
            "subject": np.repeat([f"s{i:02d}" for i in range(20)], 15),
        })

        result = fitter.fit(data, "y ~ 1 + (1 | subject)", reml=False)

        assert result.random_effects[INTERCEPT] < 1e-3
        assert any("boundary" in m.lower() or "singular" in m.lower() for m in result.warnings)
        assert len(result.group_effects) == 20
        assert (result.group_effects[INTERCEPT].abs() < 1e-4).all()

    def test_singular_covariance_gives_zero_group_effects(self, fitter, mixed_data, monkeypatch, caplog):
        original_fit = MixedLM.fit

        def singular_fit(self, *args, **kwargs):
            fitted = original_fit(self, *args, **kwargs)
            fitted.cov_re = fitted.cov_re * 0.0
            return fitted

        monkeypatch.setattr(MixedLM, "fit", singular_fit)
        with caplog.at_level(logging.WARNING):
            result = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")

        assert result.random_effects[INTERCEPT] == 0.0
        assert list(result.group_effects.columns) == [INTERCEPT]
        assert result.group_effects.index.name == "subject"
        assert len(result.group_effects) == 20
        assert (result.group_effects[INTERCEPT] == 0.0).all()
        assert any("singular" in m for m in result.warnings)
        assert "consider centering" in caplog.text

    def test_fit_null_model(self, fitter, mixed_data):
        result = fitter.fit_null_model(mixed_data, "rt ~ frequency + (1 + frequency | subject)")
        assert result.formula == "rt ~ 1 + (1 | subject)"
        assert list(result.fixed_effects.index) == [INTERCEPT]
        assert result.n_params == 3


class TestCompareModels:
    """Test cases for likelihood-ratio comparison."""

    def test_nested_ml_models(self, fitter, mixed_data):
        null = fitter.fit_null_model(mixed_data, "rt ~ frequency + (1 | subject)", reml=False)
        full = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)", reml=False)

        table = compare_models(full, null)
        assert list(table.index) == [null.formula, full.formula]
        assert np.isnan(table.loc[null.formula, "p_value"])
        assert table.loc[full.formula, "df"] == 1
        assert table.loc[full.formula, "chisq"] > 0
        assert table.loc[full.formula, "p_value"] < 0.001
        assert full.aic < null.aic

    def test_reml_comparison_warns(self, fitter, mixed_data, caplog):
        null = fitter.fit_null_model(mixed_data, "rt ~ frequency + (1 | subject)")
        full = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")
        with caplog.at_level(logging.WARNING):
            compare_models(null, full)
        assert "REML" in caplog.text

    def test_invalid_comparisons(self, fitter, mixed_data):
        full = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)", reml=False)
        with pytest.raises(ValidationError, match="At least two"):
            compare_models(full)

        subset = fitter.fit(mixed_data.iloc[:150], "rt ~ frequency + (1 | subject)", reml=False)
        with pytest.raises(ValidationError, match="same observations"):
            compare_models(full, subset)


class TestReporting:
    """Test cases for regression tables and plots."""

    @pytest.fixture
    def results(self, fitter, mixed_data):
        null = fitter.fit_null_model(mixed_data, "rt ~ frequency + (1 | subject)")
        full = fitter.fit(mixed_data, "rt ~ frequency + (1 | subject)")
        return null, full

    def test_tabulate_models(self, results):
        table = tabulate_models(results)

        assert list(table.columns) == ["Model 1", "Model 1 p", "Model 2", "Model 2 p"]
        assert list(table.index[:2]) == [INTERCEPT, "frequency"]
        assert "tau (subject: (Intercept))" in table.index
        assert table.loc["frequency", "Model 1"] == ""
        assert table.loc["frequency", "Model 2"].count("[") == 1
        assert table.loc["frequency", "Model 2 p"] == "<0.001"
        assert table.loc["Observations", "Model 2"] == "300"
        assert table.loc["N groups", "Model 1"] == "20"
        # AIC is undefined for REML fits
        assert table.loc["AIC", "Model 2"] == ""

    def test_tabulate_models_labels(self, results):
        table = tabulate_models(results, labels=["null", "frequency"], digits=3)
        assert "frequency p" in table.columns
        estimate = table.loc["frequency", "frequency"].split(" ")[0]
        assert len(estimate.split(".")[1]) == 3

        with pytest.raises(ValidationError, match="one label per model"):
            tabulate_models(results, labels=["only one"])
        with pytest.raises(ValidationError, match="No models"):
            tabulate_models([])

    def test_plot_fixed_effects(self, results):
        _, full = results
        ax = plot_fixed_effects(full)
        assert [t.get_text() for t in ax.get_yticklabels()] == ["frequency"]
        assert ax.get_title() == full.formula

        ax = plot_fixed_effects(full, intercept=True)
        assert len(ax.get_yticks()) == 2

    def test_plot_fixed_effects_intercept_only(self, results):
        null, _ = results
        with pytest.raises(ValidationError, match="No fixed effects"):
            plot_fixed_effects(null)

    def test_plot_group_effects(self, results):
        _, full = results
        fig, ax = plt.subplots()
        returned = plot_group_effects(full, ax=ax)
        assert returned is ax
        assert len(ax.get_yticks()) == 20
        assert ax.get_ylabel() == "subject"

        with pytest.raises(ValidationError, match="No random effect"):
            plot_group_effects(full, term="frequency")
