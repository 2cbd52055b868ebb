"""Posterior sampler adapter and the default Metropolis-within-Gibbs backend."""
from __future__ import annotations

import abc
import logging
import multiprocessing
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from scipy.linalg import cho_solve, solve_triangular
from scipy.special import gammaincc, gammainccinv, gammaln

from .comparison import least_squares
from .data_prep import Dataset
from .exceptions import SamplerDivergenceError
from .model import RobustRegressionModel

logger = logging.getLogger(__name__)

# Lower clamp for the latent precision weights before taking logs.
_TINY = np.finfo(float).tiny


@dataclass
class SamplerConfig:
    iterations: int = 6_000
    warmup: Optional[int] = None
    chains: int = 1
    seed: int = 210191
    initial_values: Optional[Mapping[str, float]] = None
    prop_sd: float = 0.3
    target_accept: float = 0.30
    adapt: bool = True
    adapt_start: int = 200
    adapt_interval: int = 50
    n_jobs: int = 1

    def __post_init__(self):
        if self.iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {self.iterations}.")
        if self.warmup is not None and not 0 <= self.warmup < self.iterations:
            raise ValueError(f"warmup must lie in [0, iterations), got {self.warmup} for {self.iterations} iterations.")
        if self.effective_warmup() >= self.iterations:
            raise ValueError("iterations must leave at least one draw after warmup.")
        if self.chains < 1:
            raise ValueError(f"chains must be >= 1, got {self.chains}.")
        if self.prop_sd <= 0:
            raise ValueError("prop_sd must be positive.")
        if not 0.0 < self.target_accept < 1.0:
            raise ValueError("target_accept must lie in (0, 1).")
        if self.adapt_interval < 1:
            raise ValueError("adapt_interval must be >= 1.")

    def effective_warmup(self) -> int:
        return self.warmup if self.warmup is not None else self.iterations // 2

    @property
    def draws_per_chain(self) -> int:
        return self.iterations - self.effective_warmup()


# ================================
#   Posterior sample set
# ================================
class PosteriorSampleSet:
    """Pooled, index-aligned posterior draws keyed by parameter name.

    Draws are stored chain-major: the first ``draws_per_chain`` entries of
    every parameter belong to chain 0, the next block to chain 1, and so on.
    All arrays are read-only.
    """

    def __init__(
        self,
        samples: Mapping[str, ArrayLike],
        chains: int = 1,
        generated: Optional[Mapping[str, ArrayLike]] = None,
        accept_rates: Sequence[float] = (),
        final_prop_sds: Sequence[float] = (),
    ):
        if not samples:
            raise ValueError("A posterior sample set needs at least one parameter.")
        arrays: Dict[str, np.ndarray] = {}
        for name, values in samples.items():
            arr = np.array(values, dtype=float).ravel()
            arr.setflags(write=False)
            arrays[name] = arr
        lengths = {arr.size for arr in arrays.values()}
        if len(lengths) != 1:
            raise ValueError(f"All parameters must have the same number of draws, got lengths {sorted(lengths)}.")
        n_draws = lengths.pop()
        if chains < 1 or n_draws % chains != 0:
            raise ValueError(f"{n_draws} draws cannot be split evenly across {chains} chains.")

        gen: Dict[str, np.ndarray] = {}
        for name, values in (generated or {}).items():
            arr = np.array(values, dtype=float)
            if arr.shape[0] != n_draws:
                raise ValueError(f"Generated quantity {name!r} has {arr.shape[0]} draws, expected {n_draws}.")
            arr.setflags(write=False)
            gen[name] = arr

        self._samples = arrays
        self._generated = gen
        self.chains = int(chains)
        self.accept_rates: Tuple[float, ...] = tuple(float(a) for a in accept_rates)
        self.final_prop_sds: Tuple[float, ...] = tuple(float(s) for s in final_prop_sds)

    @property
    def draws(self) -> int:
        return next(iter(self._samples.values())).size

    @property
    def draws_per_chain(self) -> int:
        return self.draws // self.chains

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(self._samples)

    @property
    def generated(self) -> Mapping[str, np.ndarray]:
        return dict(self._generated)

    def __getitem__(self, name: str) -> np.ndarray:
        return self._samples[name]

    def __contains__(self, name: object) -> bool:
        return name in self._samples

    def __iter__(self) -> Iterator[str]:
        return iter(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def items(self):
        return self._samples.items()

    def by_chain(self, name: str) -> np.ndarray:
        """Draws of ``name`` reshaped to ``(chains, draws_per_chain)``."""

        return self._samples[name].reshape(self.chains, self.draws_per_chain)

    def check_finite(self) -> None:
        """Raise :class:`SamplerDivergenceError` if any draw is NaN or infinite."""

        for name, arr in self._samples.items():
            bad = np.flatnonzero(~np.isfinite(arr))
            if bad.size:
                chain, index = divmod(int(bad[0]), self.draws_per_chain)
                raise SamplerDivergenceError(
                    f"{bad.size} non-finite draw(s) of {name!r}, first at chain {chain}, draw {index}."
                )

    def joint_draw(self, index: int) -> Dict[str, float]:
        return {name: float(arr[index]) for name, arr in self._samples.items()}

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({name: arr for name, arr in self._samples.items()})
        df.insert(0, "chain", np.repeat(np.arange(self.chains), self.draws_per_chain))
        return df

    def __repr__(self) -> str:
        return f"PosteriorSampleSet(parameters={list(self._samples)}, chains={self.chains}, draws={self.draws})"


# ================================
#   Adapter interface
# ================================
class SamplerBackend(abc.ABC):
    """Anything that turns a model and a dataset into posterior draws."""

    @abc.abstractmethod
    def sample(
        self,
        model: RobustRegressionModel,
        dataset: Dataset,
        config: SamplerConfig,
    ) -> PosteriorSampleSet:
        """Run every chain to completion and return the pooled draws.

        Implementations raise :class:`SamplerDivergenceError` instead of
        returning draws from a chain that failed or diverged.
        """


def sample(
    model: RobustRegressionModel,
    dataset: Dataset,
    seed: int = 210191,
    iterations: int = 6_000,
    warmup: Optional[int] = None,
    chains: int = 1,
    initial_values: Optional[Mapping[str, float]] = None,
    backend: Optional[SamplerBackend] = None,
    **options,
) -> PosteriorSampleSet:
    config = SamplerConfig(
        iterations=iterations,
        warmup=warmup,
        chains=chains,
        seed=seed,
        initial_values=initial_values,
        **options,
    )
    backend = backend if backend is not None else GibbsSampler()
    return backend.sample(model, dataset, config)


# ================================
#   Gibbs backend
# ================================
@dataclass
class ChainResult:
    chain: int
    draws: Dict[str, np.ndarray]
    y_rand: Optional[np.ndarray]
    accept_rate: float
    final_prop_sd: float


def log_p_nu(nu: float, lambdas: np.ndarray, nu_rate: float) -> float:
    """log p(nu | lambda) up to a constant, with an Exponential(nu_rate) prior."""

    if nu <= 0:
        return -np.inf
    n = lambdas.size
    sum_log_lambda = np.sum(np.log(lambdas))
    sum_lambda = np.sum(lambdas)
    log_prior = -nu_rate * nu
    half_nu = nu / 2.0
    log_lik = (
        n * (half_nu * np.log(half_nu) - gammaln(half_nu))
        + (half_nu - 1.0) * sum_log_lambda
        - half_nu * sum_lambda
    )
    return log_prior + log_lik


def default_initial_values(dataset: Dataset, model: RobustRegressionModel) -> Dict[str, float]:
    intercept, slope = least_squares(dataset.x, dataset.y)
    resid = dataset.y - (intercept + slope * dataset.x)
    sigma = float(np.std(resid))
    if not sigma > 0:
        sigma = float(np.std(dataset.y)) or 1.0
    sigma = min(sigma, 0.5 * model.priors.sigma_upper)
    return {"alpha": intercept, "beta": slope, "sigma": sigma, "nu": 5.0}


def initial_state(model: RobustRegressionModel, dataset: Dataset, config: SamplerConfig) -> Dict[str, float]:
    init = default_initial_values(dataset, model)
    if config.initial_values:
        unknown = set(config.initial_values) - set(model.parameter_names)
        if unknown:
            raise ValueError(f"Initial values given for unknown parameters {sorted(unknown)}.")
        init.update({name: float(value) for name, value in config.initial_values.items()})
    if not model.in_support(init):
        raise SamplerDivergenceError(
            f"Chain initialization failed: {init} lies outside the parameter support "
            "(sigma and nu must be positive, sigma below its prior upper bound)."
        )
    if not np.isfinite(model.log_posterior(init, dataset.as_model_data())):
        raise SamplerDivergenceError(f"Chain initialization failed: log posterior is not finite at {init}.")
    return init


def _draw_sigma(rng: np.random.Generator, n: int, sum_sq: float, upper: float) -> float:
    """Draw sigma given the weighted residual sum of squares ``sum_sq``.

    A Uniform(0, upper) prior on sigma makes 1/sigma^2 a Gamma((n - 1) / 2,
    rate sum_sq / 2) variable truncated below at 1/upper^2. The draw inverts
    the upper tail of that Gamma, so it never has to reject.
    """

    if not (np.isfinite(sum_sq) and sum_sq > 0):
        raise SamplerDivergenceError(f"Weighted residual sum of squares is {sum_sq}; cannot update sigma.")
    shape = (n - 1) / 2.0
    # Mass of the untruncated precision above 1 / upper^2.
    tail = gammaincc(shape, sum_sq / (2.0 * upper**2))
    if not tail > 0:
        raise SamplerDivergenceError(
            f"sigma cannot be drawn below its prior upper bound {upper} (residual sum of squares {sum_sq})."
        )
    precision = 2.0 / sum_sq * gammainccinv(shape, tail * (1.0 - rng.uniform()))
    if not (np.isfinite(precision) and precision > 0):
        raise SamplerDivergenceError(f"sigma update produced precision {precision} from residual sum of squares {sum_sq}.")
    return float(min(1.0 / np.sqrt(precision), np.nextafter(upper, 0.0)))


def _draw_coefficients(
    rng: np.random.Generator,
    design: np.ndarray,
    y: np.ndarray,
    lambdas: np.ndarray,
    sigma2: float,
    prior_prec: np.ndarray,
) -> Tuple[float, float]:
    """Joint draw of (alpha, beta) from their bivariate normal full conditional."""

    weighted = design * lambdas[:, None]
    precision = design.T @ weighted / sigma2 + prior_prec
    try:
        chol = np.linalg.cholesky(precision)
        coef_mean = cho_solve((chol, True), weighted.T @ y / sigma2)
    except (np.linalg.LinAlgError, ValueError) as exc:
        # ValueError: cho_solve rejects non-finite input.
        raise SamplerDivergenceError("coefficient precision is not positive definite.") from exc
    coef = coef_mean + solve_triangular(chol, rng.standard_normal(2), lower=True, trans="T")
    return float(coef[0]), float(coef[1])


def _check_state(chain: int, iteration: int, state: Mapping[str, float]) -> None:
    if not np.all(np.isfinite(list(state.values()))):
        detail = ", ".join(f"{name}={value}" for name, value in state.items())
        raise SamplerDivergenceError(f"Chain {chain} diverged at iteration {iteration}: {detail}.")


def run_chain(
    model: RobustRegressionModel,
    dataset: Dataset,
    config: SamplerConfig,
    chain: int,
) -> ChainResult:
    priors = model.priors
    x, y = dataset.x, dataset.y
    n = dataset.n
    design = np.column_stack([np.ones(n), x])
    prior_prec = np.diag([1.0 / priors.alpha_sd**2, 1.0 / priors.beta_sd**2])
    rng = np.random.default_rng([config.seed, chain])

    init = initial_state(model, dataset, config)
    alpha, beta, sigma, nu = init["alpha"], init["beta"], init["sigma"], init["nu"]

    n_iter = config.iterations
    warmup = config.effective_warmup()
    keep = n_iter - warmup
    draws = {name: np.empty(keep) for name in model.parameter_names}
    y_rand = np.empty((keep, n)) if model.posterior_predictive else None

    accept_count = 0
    accept_count_window = 0
    curr_prop_sd = float(config.prop_sd)
    log_prop_sd = np.log(curr_prop_sd)
    logger.debug("Chain %d starting from %s", chain, init)

    for it in range(n_iter):
        resid = y - (alpha + beta * x)
        shape_lam = (nu + 1.0) / 2.0
        rate_lam = (nu + resid**2 / sigma**2) / 2.0
        lambdas = np.maximum(rng.gamma(shape_lam, 1.0 / rate_lam), _TINY)

        try:
            alpha, beta = _draw_coefficients(rng, design, y, lambdas, sigma**2, prior_prec)
            resid = y - (alpha + beta * x)
            sigma = _draw_sigma(rng, n, float(np.sum(lambdas * resid**2)), priors.sigma_upper)
        except SamplerDivergenceError as exc:
            raise SamplerDivergenceError(f"Chain {chain}, iteration {it + 1}: {exc}") from exc

        eta_prop = np.log(nu) + rng.normal(0.0, curr_prop_sd)
        nu_prop = np.exp(eta_prop)
        logpost_curr = log_p_nu(nu, lambdas, priors.nu_rate) + np.log(nu)
        logpost_prop = log_p_nu(nu_prop, lambdas, priors.nu_rate) + np.log(nu_prop)
        if np.log(rng.uniform()) < logpost_prop - logpost_curr:
            nu = float(nu_prop)
            accept_count += 1
            accept_count_window += 1

        if config.adapt and (config.adapt_start <= it + 1 <= warmup) and ((it + 1) % config.adapt_interval == 0):
            # Recent-window acceptance over the last `adapt_interval` proposals.
            acc_rate = accept_count_window / float(config.adapt_interval)
            log_prop_sd += 0.1 * (acc_rate - config.target_accept)
            log_prop_sd = np.clip(log_prop_sd, np.log(1e-3), np.log(5.0))
            curr_prop_sd = float(np.exp(log_prop_sd))
            accept_count_window = 0
        elif (it + 1) % config.adapt_interval == 0:
            accept_count_window = 0

        _check_state(chain, it + 1, {"alpha": alpha, "beta": beta, "sigma": sigma, "nu": nu})

        if it >= warmup:
            idx = it - warmup
            draws["alpha"][idx] = alpha
            draws["beta"][idx] = beta
            draws["sigma"][idx] = sigma
            draws["nu"][idx] = nu
            if y_rand is not None:
                y_rand[idx] = model.simulate_response({"alpha": alpha, "beta": beta, "sigma": sigma, "nu": nu}, x, rng)

    accept_rate = accept_count / float(n_iter)
    logger.info(
        "Chain %d finished: %d draws kept, nu acceptance %.1f%%, final step size %.3f",
        chain,
        keep,
        accept_rate * 100,
        curr_prop_sd,
    )
    return ChainResult(chain=chain, draws=draws, y_rand=y_rand, accept_rate=accept_rate, final_prop_sd=curr_prop_sd)


def _run_chain_task(task: Tuple[RobustRegressionModel, Dataset, SamplerConfig, int]) -> ChainResult:
    return run_chain(*task)


def pool_chains(model: RobustRegressionModel, results: List[ChainResult]) -> PosteriorSampleSet:
    results = sorted(results, key=lambda r: r.chain)
    samples = {name: np.concatenate([r.draws[name] for r in results]) for name in model.parameter_names}
    generated = {}
    if model.posterior_predictive:
        generated["y_rand"] = np.concatenate([r.y_rand for r in results], axis=0)
    return PosteriorSampleSet(
        samples,
        chains=len(results),
        generated=generated,
        accept_rates=[r.accept_rate for r in results],
        final_prop_sds=[r.final_prop_sd for r in results],
    )


class GibbsSampler(SamplerBackend):
    """Metropolis-within-Gibbs sampler for the Student-t regression model.

    Uses the scale-mixture form of the Student-t likelihood: each observation
    gets a latent Gamma(nu/2, nu/2) precision weight, which makes the
    intercept/slope and sigma updates conjugate. nu is updated by a
    random-walk Metropolis step on log(nu) whose step size adapts during
    warmup. Chains are independent and run in a process pool when
    ``config.n_jobs > 1``.
    """

    def sample(
        self,
        model: RobustRegressionModel,
        dataset: Dataset,
        config: SamplerConfig,
    ) -> PosteriorSampleSet:
        logger.info(
            "Sampling %d chain(s): %d iterations, %d warmup, seed %d",
            config.chains,
            config.iterations,
            config.effective_warmup(),
            config.seed,
        )
        tasks = [(model, dataset, config, chain) for chain in range(config.chains)]
        if config.n_jobs > 1 and config.chains > 1:
            with multiprocessing.Pool(min(config.n_jobs, config.chains)) as pool:
                results = pool.map(_run_chain_task, tasks)
        else:
            results = [_run_chain_task(task) for task in tasks]
        return pool_chains(model, results)
