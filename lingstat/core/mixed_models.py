"""
Mixed-effects regression for lingstat.

This module accepts lme4-style model formulas such as
``rt ~ frequency + (1 + frequency | subject)``, fits them with statsmodels'
``MixedLM`` and returns detached :class:`MixedModelResult` objects.
Convergence problems are captured rather than lost in the console.
"""

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy.stats import chi2
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from ..models.regression import FIXED_EFFECT_COLUMNS, INTERCEPT, MixedModelResult
from ..utils.config import Config
from ..utils.exceptions import ModelFitError, ValidationError
from ..utils.validators import InputValidator


log = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")

CENTERING_ADVICE = (
    "inspect the predictors and consider centering them "
    "(center_predictors) before refitting"
)


@dataclass
class FormulaSpec:
    """
    An lme4-style formula split into its statsmodels parts.

    Attributes:
        formula: The original formula
        response: Response variable
        fixed: Fixed-effects formula for patsy
        group: Grouping column of the random-effects term
        re_formula: Random-effects design formula for ``MixedLM``
    """
    formula: str
    response: str
    fixed: str
    group: str
    re_formula: str

    @property
    def variables(self) -> List[str]:
        """Identifiers mentioned anywhere in the formula."""
        return list(dict.fromkeys(IDENTIFIER.findall(self.formula)))


def _strip_plus(rhs: str) -> str:
    rhs = re.sub(r"\+\s*\+", "+", rhs)
    rhs = re.sub(r"^\s*\+|\+\s*$", "", rhs.strip())
    return rhs.strip()


def parse_formula(formula: str) -> FormulaSpec:
    """
    Split an lme4-style formula into fixed and random parts.

    Exactly one random-effects term ``(terms | group)`` is supported.
    ``(1 | g)`` gives a random intercept, ``(1 + x | g)`` or ``(x | g)`` a
    random intercept and slope, ``(0 + x | g)`` a random slope only.

    Raises:
        ValidationError: If the formula is malformed or has no, or several,
            random-effects terms
    """
    formula = InputValidator.validate_formula(formula)
    if "||" in formula:
        raise ValidationError(f"Uncorrelated random effects (||) are not supported: {formula}")

    matches = list(InputValidator.RANDOM_TERM_PATTERN.finditer(formula))
    if formula.count("|") > len(matches):
        raise ValidationError(
            f"Random-effects terms must list plain column names; "
            f"function calls such as log(x) are not supported there: {formula}"
        )
    if not matches:
        raise ValidationError(f"Formula needs a random-effects term such as (1 | group): {formula}")
    if len(matches) > 1:
        raise ValidationError(f"Only one random-effects term is supported: {formula}")

    match = matches[0]
    re_terms = match.group(1).strip()
    group = match.group(2).strip()
    if not IDENTIFIER.fullmatch(group):
        raise ValidationError(f"Grouping factor must be a single column name: {group}")
    if not re_terms:
        raise ValidationError(f"Random-effects term has no left-hand side: {match.group(0)}")

    response, _, rhs = formula.partition("~")
    rhs = _strip_plus(rhs.replace(match.group(0), ""))
    if not rhs:
        rhs = "1"

    fixed = f"{response.strip()} ~ {rhs}"
    return FormulaSpec(formula, response.strip(), fixed, group, f"~{re_terms}")


def center_predictors(data: pd.DataFrame, columns: Iterable[str], scale: bool = False) -> pd.DataFrame:
    """
    Mean-center (and optionally standardize) numeric columns.

    Args:
        data: Input table
        columns: Columns to transform
        scale: Also divide by the sample standard deviation

    Returns:
        A copy of ``data`` with the columns replaced
    """
    result = data.copy()
    for column in columns:
        if column not in result.columns:
            raise ValidationError(f"Column not found: {column}", field=column)
        if not pd.api.types.is_numeric_dtype(result[column]):
            raise ValidationError(f"Column must be numeric to be centered: {column}", field=column)

        centered = result[column] - result[column].mean()
        if scale:
            sd = result[column].std(ddof=1)
            if not sd or np.isnan(sd):
                log.warning(f"Column {column} has no variance; centering without scaling")
            else:
                centered = centered / sd
        result[column] = centered

    return result


class MixedModelFitter:
    """
    Fits linear mixed-effects models with statsmodels.

    Attributes:
        config: Toolkit configuration
        reml: Default estimation criterion
        method: Optimizer passed to ``MixedLM.fit``
        maxiter: Maximum optimizer iterations
        alpha: Significance level for confidence intervals
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or Config()
        model_config = self.config.get_mixed_model_config()
        self.reml = bool(model_config.get("reml", True))
        self.method = model_config.get("method", "lbfgs")
        self.maxiter = int(model_config.get("maxiter", 200))
        self.alpha = float(model_config.get("alpha", 0.05))

    def fit(self, data: pd.DataFrame, formula: str, reml: Optional[bool] = None) -> MixedModelResult:
        """
        Fit a linear mixed-effects model.

        Args:
            data: Observations, one row each
            formula: lme4-style formula with one random-effects term
            reml: Use REML (default from configuration); pass False for
                likelihood-ratio comparisons of fixed effects

        Returns:
            MixedModelResult

        Raises:
            ValidationError: If the data or formula do not fit together
            ModelFitError: If statsmodels fails to fit the model
        """
        spec = parse_formula(formula)
        reml = self.reml if reml is None else reml

        if not isinstance(data, pd.DataFrame) or data.empty:
            raise ValidationError("Model data must be a non-empty DataFrame")
        for column in (spec.response, spec.group):
            if column not in data.columns:
                raise ValidationError(f"Column not found in data: {column}", field=column)

        used = [c for c in spec.variables if c in data.columns]
        frame = data.dropna(subset=used)
        dropped = len(data) - len(frame)
        if dropped:
            log.info(f"Dropped {dropped} rows with missing values")
        if frame[spec.group].nunique() < 2:
            raise ValidationError(f"Grouping factor {spec.group} needs at least two levels")

        try:
            model = smf.mixedlm(spec.fixed, frame, groups=spec.group, re_formula=spec.re_formula)
        except Exception as e:
            raise ValidationError(f"Cannot build model design for {formula}: {e}")

        log.info(f"Fitting {'REML' if reml else 'ML'} mixed model {formula} "
                 f"on {len(frame)} rows, {frame[spec.group].nunique()} groups")

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                fitted = model.fit(reml=reml, method=self.method, maxiter=self.maxiter)
            except Exception as e:
                raise ModelFitError("Failed to fit mixed model", formula, str(e))

        messages = [str(w.message) for w in caught]
        convergence = [str(w.message) for w in caught if issubclass(w.category, ConvergenceWarning)]
        converged = bool(getattr(fitted, "converged", True))
        if any("converge" in m.lower() for m in convergence):
            converged = False
        for message in convergence:
            log.warning(f"Convergence warning for {formula}: {message}; {CENTERING_ADVICE}")

        return self._to_result(fitted, spec, reml, converged, messages)

    def fit_null_model(self, data: pd.DataFrame, formula: str, reml: Optional[bool] = None) -> MixedModelResult:
        """
        Fit the intercept-only model with a random intercept for the same
        response and grouping factor as ``formula``.
        """
        spec = parse_formula(formula)
        return self.fit(data, f"{spec.response} ~ 1 + (1 | {spec.group})", reml=reml)

    def _to_result(self, fitted, spec: FormulaSpec, reml: bool, converged: bool,
                   messages: List[str]) -> MixedModelResult:
        model = fitted.model
        k_fe = int(model.k_fe)
        fe_names = [INTERCEPT if n == "Intercept" else n for n in model.exog_names[:k_fe]]

        ci = np.asarray(fitted.conf_int(alpha=self.alpha))[:k_fe]
        fixed_effects = pd.DataFrame(
            {
                "estimate": np.asarray(fitted.fe_params)[:k_fe],
                "std_error": np.asarray(fitted.bse_fe)[:k_fe],
                "z": np.asarray(fitted.tvalues)[:k_fe],
                "p_value": np.asarray(fitted.pvalues)[:k_fe],
                "ci_low": ci[:, 0],
                "ci_high": ci[:, 1],
            },
            index=pd.Index(fe_names, name="term"),
        )[FIXED_EFFECT_COLUMNS]

        def _re_name(name: str) -> str:
            return INTERCEPT if name in (spec.group, "Group", "Intercept") else name

        if isinstance(fitted.cov_re, pd.DataFrame):
            raw_names = list(fitted.cov_re.index)
        else:
            raw_names = list(getattr(model, "exog_re_names", None) or [INTERCEPT])
        re_names = [_re_name(str(n)) for n in raw_names]
        cov_re = np.atleast_2d(np.asarray(fitted.cov_re, dtype=float))
        random_effects = {name: float(cov_re[i, i]) for i, name in enumerate(re_names)}

        group_effects = self._group_effects(fitted, spec, re_names, messages)

        n_params = k_fe + int(model.k_re2) + int(model.k_vc) + 1

        return MixedModelResult(
            formula=spec.formula,
            group=spec.group,
            method="REML" if reml else "ML",
            fixed_effects=fixed_effects,
            random_effects=random_effects,
            group_effects=group_effects,
            residual_variance=float(fitted.scale),
            log_likelihood=float(fitted.llf),
            aic=float(fitted.aic),
            bic=float(fitted.bic),
            n_obs=len(model.endog),
            n_groups=int(model.n_groups),
            n_params=n_params,
            converged=converged,
            warnings=messages,
        )

    def _group_effects(self, fitted, spec: FormulaSpec, re_names: List[str],
                       messages: List[str]) -> pd.DataFrame:
        """
        Predicted random effects per group.

        A singular random-effects covariance (a boundary fit) has no
        predictions; every group then gets zeros, as lme4 reports for a
        singular fit, and the problem is recorded in ``messages``.
        """
        try:
            predicted = fitted.random_effects
        except ValueError as e:
            message = f"Boundary (singular) fit: {e}"
            messages.append(message)
            log.warning(f"{message} for {spec.formula}; {CENTERING_ADVICE}")
            group_effects = pd.DataFrame(0.0, index=list(fitted.model.group_labels), columns=re_names)
        else:
            group_effects = pd.DataFrame.from_dict(
                {group: np.asarray(values, dtype=float) for group, values in predicted.items()},
                orient="index",
            )
            group_effects.columns = re_names[:group_effects.shape[1]]

        group_effects.index.name = spec.group
        return group_effects


def compare_models(*results: MixedModelResult) -> pd.DataFrame:
    """
    Likelihood-ratio tests between nested models.

    Models are ordered by number of parameters; each row is tested against
    the previous one.

    Returns:
        DataFrame indexed by formula with ``n_params``, ``log_likelihood``,
        ``aic``, ``bic``, ``chisq``, ``df`` and ``p_value``
    """
    if len(results) < 2:
        raise ValidationError("At least two models are needed for a comparison")
    if len({r.n_obs for r in results}) != 1:
        raise ValidationError("Models must be fitted to the same observations")
    if any(r.method == "REML" for r in results):
        log.warning("Comparing REML fits; refit with reml=False when the fixed effects differ")

    ordered = sorted(results, key=lambda r: r.n_params)
    rows = []
    previous: Optional[MixedModelResult] = None
    for result in ordered:
        row = {
            "formula": result.formula,
            "n_params": result.n_params,
            "log_likelihood": result.log_likelihood,
            "aic": result.aic,
            "bic": result.bic,
            "chisq": np.nan,
            "df": np.nan,
            "p_value": np.nan,
        }
        if previous is not None:
            df = result.n_params - previous.n_params
            stat = max(0.0, 2.0 * (result.log_likelihood - previous.log_likelihood))
            row["chisq"] = stat
            row["df"] = df
            row["p_value"] = float(chi2.sf(stat, df)) if df > 0 else np.nan
        rows.append(row)
        previous = result

    return pd.DataFrame(rows).set_index("formula")
