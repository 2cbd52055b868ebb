"""Classical least-squares fit used as a contrast to the robust posterior."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Tuple

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from scipy import stats

from .data_prep import Dataset

if TYPE_CHECKING:
    from .summary import PosteriorSummary


@dataclass(frozen=True)
class ClassicalFit:
    intercept: float
    slope: float
    correlation: float
    p_value: float


def least_squares(x: ArrayLike, y: ArrayLike) -> Tuple[float, float]:
    """Ordinary least squares ``(intercept, slope)`` for ``y = a + b * x``."""

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    design = np.column_stack([np.ones_like(x), x])
    coef, *_ = np.linalg.lstsq(design, y, rcond=None)
    return float(coef[0]), float(coef[1])


def classical_fit(dataset: Dataset) -> ClassicalFit:
    intercept, slope = least_squares(dataset.x, dataset.y)
    if np.ptp(dataset.x) == 0 or np.ptp(dataset.y) == 0:
        correlation, p_value = float("nan"), float("nan")
    else:
        result = stats.pearsonr(dataset.x, dataset.y)
        correlation, p_value = float(result[0]), float(result[1])
    return ClassicalFit(intercept=intercept, slope=slope, correlation=correlation, p_value=p_value)


def compare_fits(classical: ClassicalFit, summary: "PosteriorSummary") -> pd.DataFrame:
    """Two-row table of intercept and slope: least squares against posterior means."""

    alpha = summary["alpha"]
    beta = summary["beta"]
    rows = [
        {
            "method": "least squares",
            "intercept": classical.intercept,
            "slope": classical.slope,
            "slope_lower": np.nan,
            "slope_upper": np.nan,
        },
        {
            "method": "robust Bayesian",
            "intercept": alpha.mean,
            "slope": beta.mean,
            "slope_lower": beta.hpd[0],
            "slope_upper": beta.hpd[1],
        },
    ]
    return pd.DataFrame(rows).set_index("method")


def format_report(classical: ClassicalFit, summary: "PosteriorSummary") -> str:
    table = compare_fits(classical, summary)
    beta = summary["beta"]
    lines = [
        "Least squares versus robust Student-t regression",
        table.to_string(float_format=lambda v: f"{v:.4f}"),
        "",
        f"Pearson correlation: {classical.correlation:.4f} (p = {classical.p_value:.3g})",
        f"Slope {summary.prob:.0%} HPD interval: [{beta.hpd[0]:.4f}, {beta.hpd[1]:.4f}]",
    ]
    if "nu" in summary:
        lines.append(f"Posterior mean of nu: {summary['nu'].mean:.2f}")
    return "\n".join(lines)
