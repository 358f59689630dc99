"""
Regression result models for lingstat.

This module defines the data structure returned by the mixed-effects
fitting layer, detached from the statsmodels result object so it can be
tabulated, plotted and serialized without the fitted model.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd


FIXED_EFFECT_COLUMNS = ["estimate", "std_error", "z", "p_value", "ci_low", "ci_high"]
INTERCEPT = "(Intercept)"


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


@dataclass
class MixedModelResult:
    """
    Summary of a fitted linear mixed-effects model.

    Attributes:
        formula: Formula as given by the user
        group: Name of the grouping column
        method: ``REML`` or ``ML``
        fixed_effects: One row per fixed term with estimate, standard error,
            z statistic, p-value and confidence bounds
        random_effects: Variance of each random term, keyed by term name
        group_effects: Predicted random effects, one row per group
        residual_variance: Variance of the residual error
        log_likelihood: Log-likelihood at the optimum
        aic: Akaike information criterion (NaN for REML fits)
        bic: Bayesian information criterion (NaN for REML fits)
        n_obs: Number of observations used
        n_groups: Number of groups
        n_params: Number of estimated parameters including the residual variance
        converged: Whether the optimizer reported convergence
        warnings: Warning messages captured while fitting
    """
    formula: str
    group: str
    method: str
    fixed_effects: pd.DataFrame
    random_effects: Dict[str, float]
    group_effects: pd.DataFrame
    residual_variance: float
    log_likelihood: float
    aic: float
    bic: float
    n_obs: int
    n_groups: int
    n_params: int
    converged: bool = True
    warnings: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate result data."""
        if self.method not in ("REML", "ML"):
            raise ValueError("method must be 'REML' or 'ML'")
        missing = [c for c in FIXED_EFFECT_COLUMNS if c not in self.fixed_effects.columns]
        if missing:
            raise ValueError(f"fixed_effects is missing columns: {missing}")
        if self.n_obs < 1 or self.n_groups < 1:
            raise ValueError("A fitted model needs at least one observation and one group")

    @property
    def icc(self) -> Optional[float]:
        """
        Intraclass correlation: share of variance due to the grouping factor.

        Only defined for models with a random intercept.
        """
        intercept_var = self.random_effects.get(INTERCEPT)
        if intercept_var is None:
            return None
        total = intercept_var + self.residual_variance
        if total <= 0:
            return None
        return intercept_var / total

    def coefficient(self, term: str) -> float:
        """Estimated fixed-effect coefficient for ``term``."""
        if term not in self.fixed_effects.index:
            raise KeyError(f"No fixed effect named {term!r}")
        return float(self.fixed_effects.loc[term, "estimate"])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        fixed = {}
        for term, row in self.fixed_effects.iterrows():
            fixed[str(term)] = {column: _finite_or_none(row[column]) for column in FIXED_EFFECT_COLUMNS}

        return {
            "formula": self.formula,
            "group": self.group,
            "method": self.method,
            "fixed_effects": fixed,
            "random_effects": {k: _finite_or_none(v) for k, v in self.random_effects.items()},
            "residual_variance": _finite_or_none(self.residual_variance),
            "icc": _finite_or_none(self.icc),
            "log_likelihood": _finite_or_none(self.log_likelihood),
            "aic": _finite_or_none(self.aic),
            "bic": _finite_or_none(self.bic),
            "n_obs": self.n_obs,
            "n_groups": self.n_groups,
            "n_params": self.n_params,
            "converged": self.converged,
            "warnings": self.warnings.copy(),
        }
