"""Convergence diagnostics and plotting helpers for posterior draws."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Sequence

import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt
import numpy as np

from .comparison import ClassicalFit
from .data_prep import Dataset
from .sampler import PosteriorSampleSet
from .summary import PosteriorSummary


def autocorr(x: np.ndarray, max_lag: int) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    x = x - x.mean()
    n = x.size
    if n < 2:
        return np.array([1.0])
    var = np.dot(x, x) / n
    if var == 0:
        return np.ones(min(max_lag, max(n - 1, 1)) + 1)
    K = min(max_lag, n - 1)
    acf = np.empty(K + 1)
    acf[0] = 1.0
    for k in range(1, K + 1):
        acf[k] = np.dot(x[: n - k], x[k:]) / (n * var)
    return acf


def effective_sample_size(x: np.ndarray, max_lag: Optional[int] = None) -> float:
    """ESS from the initial positive sequence of autocorrelations."""

    x = np.asarray(x, dtype=float)
    n = x.size
    if n < 2:
        return float(n)
    acf = autocorr(x, max_lag=max_lag if max_lag is not None else n - 1)
    if np.all(acf == 1.0):
        return float(n)
    tau = 1.0
    for k in range(1, acf.size):
        if acf[k] <= 0:
            break
        tau += 2.0 * acf[k]
    return float(n / tau)


def split_rhat(chains: np.ndarray) -> float:
    """Split R-hat for draws shaped ``(chains, draws_per_chain)``."""

    chains = np.atleast_2d(np.asarray(chains, dtype=float))
    half = chains.shape[1] // 2
    if half < 2:
        return float("nan")
    split = np.concatenate([chains[:, :half], chains[:, half : 2 * half]], axis=0)
    n = split.shape[1]
    chain_means = split.mean(axis=1)
    within = split.var(axis=1, ddof=1).mean()
    between = n * chain_means.var(ddof=1)
    if within == 0:
        return 1.0 if between == 0 else float("inf")
    var_plus = (n - 1) / n * within + between / n
    return float(np.sqrt(var_plus / within))


def convergence_table(posterior: PosteriorSampleSet) -> Dict[str, Dict[str, float]]:
    table = {}
    for name in posterior.parameter_names:
        by_chain = posterior.by_chain(name)
        table[name] = {
            "ess": float(sum(effective_sample_size(c) for c in by_chain)),
            "rhat": split_rhat(by_chain),
        }
    return table


def ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def plot_traces(posterior: PosteriorSampleSet, out_path: Path) -> None:
    ensure_parent(out_path)
    names = posterior.parameter_names
    fig, axes = plt.subplots(len(names), 1, figsize=(9, 2.3 * len(names)), constrained_layout=True, squeeze=False)
    for ax, name in zip(axes[:, 0], names):
        for chain, draws in enumerate(posterior.by_chain(name)):
            ax.plot(draws, lw=0.6, alpha=0.8, label=f"chain {chain}")
        ax.set_title(f"Trace: {name}")
        ax.grid(True, alpha=0.3)
    if posterior.chains > 1:
        axes[0, 0].legend(loc="upper right", fontsize=8)
    fig.suptitle("MCMC Trace Plots (warmup removed)")
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def plot_acf(
    posterior: PosteriorSampleSet,
    max_lag: int,
    out_path: Path,
    thin: int = 1,
    only_nu: bool = False,
) -> None:
    ensure_parent(out_path)
    thin = max(1, int(thin))
    names = ("nu",) if only_nu else posterior.parameter_names

    fig, axes = plt.subplots(len(names), 1, figsize=(9.5, 2.3 * len(names) + 1), constrained_layout=True, squeeze=False)
    for ax, name in zip(axes[:, 0], names):
        # First chain only; pooling would splice unrelated chains together.
        acf = autocorr(posterior.by_chain(name)[0][::thin], max_lag=max_lag)
        lags = np.arange(acf.size)
        ax.stem(lags, acf)
        ax.set_xlim(0, lags.max() if lags.size else 0)
        ax.set_title(f"ACF: {name} (thinning={thin})")
        ax.grid(True, alpha=0.3)
    fig.suptitle("Sample Autocorrelation (warmup removed)")
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def plot_posterior_hist(posterior: PosteriorSampleSet, summary: PosteriorSummary, out_path: Path) -> None:
    ensure_parent(out_path)
    names = [name for name in posterior.parameter_names if name in summary]
    colors = ["#a7c8e5", "#f7b7a3", "#b5d99c", "#d7b5e5"]
    fig, axes = plt.subplots(1, len(names), figsize=(4.2 * len(names), 4.5), constrained_layout=True, squeeze=False)
    for i, (ax, name) in enumerate(zip(axes[0], names)):
        summ = summary[name]
        ax.hist(posterior[name], bins=40, density=True, color=colors[i % len(colors)], alpha=0.85, edgecolor="white")
        ax.axvline(summ.mean, color="#1f77b4", lw=1.8, label="Mean")
        ax.axvline(summ.hpd[0], color="#c80000", ls="--", lw=1.4, label=f"{summary.prob:.0%} HPD")
        ax.axvline(summ.hpd[1], color="#c80000", ls="--", lw=1.4)
        ax.set_title(f"Posterior: {name}")
        ax.text(
            0.5,
            0.95,
            f"Mean: {summ.mean:.4f}\nHPD: [{summ.hpd[0]:.4f}, {summ.hpd[1]:.4f}]",
            transform=ax.transAxes,
            ha="center",
            va="top",
            fontsize=9,
            bbox=dict(boxstyle="round,pad=0.2", facecolor="white", alpha=0.8, edgecolor="lightgray"),
        )
        ax.grid(True, alpha=0.3)
        ax.legend(loc="upper right", fontsize=8)
    fig.suptitle(f"Posterior Histograms with {summary.prob:.0%} HPD Intervals")
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def plot_regression(
    dataset: Dataset,
    posterior: PosteriorSampleSet,
    out_path: Path,
    classical: Optional[ClassicalFit] = None,
    n_lines: int = 50,
    seed: int = 0,
) -> None:
    """Scatter the data with regression lines from random posterior draws."""

    ensure_parent(out_path)
    rng = np.random.default_rng(seed)
    idx = rng.choice(posterior.draws, size=min(n_lines, posterior.draws), replace=False)
    grid = np.linspace(dataset.x.min(), dataset.x.max(), 100)

    fig, ax = plt.subplots(1, 1, figsize=(7, 5.5), constrained_layout=True)
    for i in idx:
        ax.plot(grid, posterior["alpha"][i] + posterior["beta"][i] * grid, color="#2c7fb8", alpha=0.08, lw=1)
    ax.plot(
        grid,
        posterior["alpha"].mean() + posterior["beta"].mean() * grid,
        color="#2c7fb8",
        lw=2,
        label="Robust posterior mean",
    )
    if classical is not None:
        ax.plot(grid, classical.intercept + classical.slope * grid, color="#d95f0e", ls="--", lw=2, label="Least squares")
    ax.scatter(dataset.x, dataset.y, s=18, color="black", zorder=3)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.suptitle("Robust Student-t Regression")
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def plot_posterior_predictive(
    dataset: Dataset,
    y_rand: np.ndarray,
    out_path: Path,
    prob: float = 0.95,
) -> None:
    """Observed responses against the central interval of replicated ones."""

    ensure_parent(out_path)
    tail = (1.0 - prob) / 2.0 * 100.0
    lower, median, upper = np.percentile(y_rand, [tail, 50.0, 100.0 - tail], axis=0)
    order = np.argsort(dataset.x)
    fig, ax = plt.subplots(1, 1, figsize=(7, 5.5), constrained_layout=True)
    ax.fill_between(dataset.x[order], lower[order], upper[order], color="#a7c8e5", alpha=0.6, label=f"{prob:.0%} predictive")
    ax.plot(dataset.x[order], median[order], color="#2c7fb8", lw=1.5, label="Predictive median")
    ax.scatter(dataset.x, dataset.y, s=18, color="black", zorder=3, label="Observed")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.suptitle("Posterior Predictive Check")
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def summarize_acceptance(posterior: PosteriorSampleSet) -> Sequence[str]:
    return [
        f"chain {chain}: nu acceptance {rate * 100:.1f}% | final step size {sd:.3f}"
        for chain, (rate, sd) in enumerate(zip(posterior.accept_rates, posterior.final_prop_sds))
    ]
