"""
Tabulation and plotting of mixed-model results.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ..models.regression import INTERCEPT, MixedModelResult
from ..utils.exceptions import ValidationError


log = logging.getLogger(__name__)


def _format_p(p: float) -> str:
    if p is None or np.isnan(p):
        return ""
    if p < 0.001:
        return "<0.001"
    return f"{p:.3f}"


def tabulate_models(results: Sequence[MixedModelResult], labels: Optional[Sequence[str]] = None,
                    digits: int = 2) -> pd.DataFrame:
    """
    Side-by-side regression table.

    Each model contributes an estimate column (``estimate [ci_low, ci_high]``)
    and a p-value column. Fixed terms come first, followed by the random
    effect variances, ICC, group count, observation count, log-likelihood
    and AIC.

    Args:
        results: Fitted models
        labels: Column labels, ``Model 1``, ``Model 2``, ... by default
        digits: Decimal places for estimates

    Returns:
        DataFrame indexed by row label
    """
    if not results:
        raise ValidationError("No models to tabulate")
    if labels is None:
        labels = [f"Model {i}" for i in range(1, len(results) + 1)]
    if len(labels) != len(results):
        raise ValidationError("Need one label per model")

    terms: List[str] = []
    for result in results:
        for term in result.fixed_effects.index:
            if term not in terms:
                terms.append(term)

    random_rows: List[str] = []
    for result in results:
        for name in result.random_effects:
            row = f"tau ({result.group}: {name})"
            if row not in random_rows:
                random_rows.append(row)

    stat_rows = ["sigma^2"] + random_rows + ["ICC", "N groups", "Observations", "Log-Likelihood", "AIC"]
    table = pd.DataFrame("", index=terms + stat_rows, dtype=object,
                         columns=[c for label in labels for c in (label, f"{label} p")])

    fmt = f"{{:.{digits}f}}"
    for label, result in zip(labels, results):
        fe = result.fixed_effects
        for term, row in fe.iterrows():
            table.loc[term, label] = (
                f"{fmt.format(row['estimate'])} "
                f"[{fmt.format(row['ci_low'])}, {fmt.format(row['ci_high'])}]"
            )
            table.loc[term, f"{label} p"] = _format_p(row["p_value"])

        table.loc["sigma^2", label] = fmt.format(result.residual_variance)
        for name, variance in result.random_effects.items():
            table.loc[f"tau ({result.group}: {name})", label] = fmt.format(variance)
        icc = result.icc
        table.loc["ICC", label] = fmt.format(icc) if icc is not None else ""
        table.loc["N groups", label] = str(result.n_groups)
        table.loc["Observations", label] = str(result.n_obs)
        table.loc["Log-Likelihood", label] = fmt.format(result.log_likelihood)
        table.loc["AIC", label] = "" if np.isnan(result.aic) else fmt.format(result.aic)

    return table


def plot_fixed_effects(result: MixedModelResult, ax=None, intercept: bool = False):
    """
    Coefficient plot: estimates with confidence intervals.

    Args:
        result: Fitted model
        ax: Matplotlib axes to draw on; a new figure is created when None
        intercept: Include the intercept

    Returns:
        The matplotlib axes
    """
    import matplotlib.pyplot as plt

    fe = result.fixed_effects
    if not intercept:
        fe = fe.drop(index=INTERCEPT, errors="ignore")
    if fe.empty:
        raise ValidationError("No fixed effects to plot")

    if ax is None:
        _, ax = plt.subplots(figsize=(6, 0.6 * len(fe) + 1.5))

    positions = np.arange(len(fe))[::-1]
    errors = np.vstack([fe["estimate"] - fe["ci_low"], fe["ci_high"] - fe["estimate"]])
    colors = ["tab:blue" if est >= 0 else "tab:red" for est in fe["estimate"]]

    ax.errorbar(fe["estimate"], positions, xerr=errors, fmt="none", ecolor="grey", capsize=3)
    ax.scatter(fe["estimate"], positions, c=colors, zorder=3)
    ax.axvline(0.0, color="grey", linestyle="--", linewidth=1)
    ax.set_yticks(positions)
    ax.set_yticklabels(list(fe.index))
    ax.set_xlabel("Estimate")
    ax.set_title(result.formula)
    return ax


def plot_group_effects(result: MixedModelResult, term: str = INTERCEPT, ax=None):
    """
    Caterpillar plot of the predicted random effects of one term, sorted.
    """
    import matplotlib.pyplot as plt

    if term not in result.group_effects.columns:
        raise ValidationError(f"No random effect named {term!r}", value=term)

    effects = result.group_effects[term].sort_values(kind="mergesort")
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 0.25 * len(effects) + 1.5))

    positions = np.arange(len(effects))
    ax.scatter(effects.values, positions, color="tab:blue")
    ax.axvline(0.0, color="grey", linestyle="--", linewidth=1)
    ax.set_yticks(positions)
    ax.set_yticklabels([str(g) for g in effects.index])
    ax.set_xlabel(f"Random effect: {term}")
    ax.set_ylabel(result.group)
    return ax
