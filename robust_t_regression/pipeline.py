"""Driver that fits the robust regression and summarizes the posterior."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .comparison import ClassicalFit, classical_fit, format_report
from .data_prep import Dataset
from .model import PriorConfig, RobustRegressionModel
from .sampler import GibbsSampler, PosteriorSampleSet, SamplerBackend, SamplerConfig
from .summary import PosteriorSummary, summarize

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 6_000
DEFAULT_CHAINS = 1
DEFAULT_SEED = 210191


@dataclass
class RegressionResult:
    posterior: PosteriorSampleSet
    summary: PosteriorSummary
    classical: ClassicalFit

    def report(self) -> str:
        return "\n\n".join([self.summary.format(), format_report(self.classical, self.summary)])


def run_robust_regression(
    dataset: Dataset,
    iterations: int = DEFAULT_ITERATIONS,
    warmup: Optional[int] = None,
    chains: int = DEFAULT_CHAINS,
    seed: int = DEFAULT_SEED,
    hpd_prob: float = 0.95,
    thresholds: Optional[Mapping[str, Sequence[float]]] = None,
    priors: Optional[PriorConfig] = None,
    backend: Optional[SamplerBackend] = None,
    posterior_predictive: bool = False,
    initial_values: Optional[Mapping[str, float]] = None,
    n_jobs: int = 1,
) -> RegressionResult:
    """Fit the Student-t regression to ``dataset`` and summarize the draws.

    ``dataset`` may also be an ``(x, y)`` pair of sequences.
    ``warmup`` defaults to half of ``iterations``. Chains are pooled without
    any convergence check; inspect the traces (or
    :func:`robust_t_regression.diagnostics.convergence_table`) before
    trusting the pooled summary. Errors from the sampler propagate unchanged, and
    a backend that returns non-finite draws raises ``SamplerDivergenceError``.
    """

    if not isinstance(dataset, Dataset):
        dataset = Dataset(*dataset)
    model = RobustRegressionModel(priors=priors or PriorConfig(), posterior_predictive=posterior_predictive)
    config = SamplerConfig(
        iterations=iterations,
        warmup=warmup,
        chains=chains,
        seed=seed,
        initial_values=initial_values,
        n_jobs=n_jobs,
    )
    backend = backend if backend is not None else GibbsSampler()

    logger.info("Fitting robust regression to %d observations", dataset.n)
    posterior = backend.sample(model, dataset, config)
    posterior.check_finite()
    summary = summarize(posterior, prob=hpd_prob, thresholds=thresholds)
    return RegressionResult(posterior=posterior, summary=summary, classical=classical_fit(dataset))
