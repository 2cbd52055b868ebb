"""Declarative definition of the robust simple linear regression model.

The model is

    y_i   ~ StudentT(nu, alpha + beta * x_i, sigma)
    alpha ~ Normal(0, alpha_sd)
    beta  ~ Normal(0, beta_sd)
    sigma ~ Uniform(0, sigma_upper)
    nu    ~ Exponential(rate=nu_rate)

with an optional replicated response ``y_rand`` drawn from the same
likelihood for posterior-predictive checks. The objects here only describe
the model and evaluate its densities; drawing from the posterior is the job
of a sampler backend (see :mod:`robust_t_regression.sampler`).

The model does not check that the dataset has at least two rows. Callers
that build data by hand are responsible for that precondition;
:class:`~robust_t_regression.data_prep.Dataset` enforces it on construction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike
from scipy import stats

PARAMETER_NAMES: Tuple[str, ...] = ("alpha", "beta", "sigma", "nu")


# ================================
#   Prior distributions
# ================================
@dataclass(frozen=True)
class Normal:
    mu: float
    sd: float

    def logpdf(self, value: float) -> float:
        return float(stats.norm.logpdf(value, loc=self.mu, scale=self.sd))

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mu, self.sd))


@dataclass(frozen=True)
class Uniform:
    lower: float
    upper: float

    def logpdf(self, value: float) -> float:
        return float(stats.uniform.logpdf(value, loc=self.lower, scale=self.upper - self.lower))

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.uniform(self.lower, self.upper))


@dataclass(frozen=True)
class Exponential:
    rate: float

    @property
    def mean(self) -> float:
        return 1.0 / self.rate

    def logpdf(self, value: float) -> float:
        return float(stats.expon.logpdf(value, scale=1.0 / self.rate))

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.exponential(1.0 / self.rate))


@dataclass
class PriorConfig:
    alpha_sd: float = 1e5
    beta_sd: float = 1e5
    sigma_upper: float = 1e5
    nu_rate: float = 1.0 / 30.0

    def __post_init__(self):
        for name in ("alpha_sd", "beta_sd", "sigma_upper", "nu_rate"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}.")


@dataclass(frozen=True)
class ParameterSpec:
    """A declared model parameter with its support and prior."""

    name: str
    prior: object
    lower: Optional[float] = None

    def in_support(self, value: float) -> bool:
        if not np.isfinite(value):
            return False
        return self.lower is None or value > self.lower


# ================================
#   Model
# ================================
@dataclass
class RobustRegressionModel:
    priors: PriorConfig = field(default_factory=PriorConfig)
    posterior_predictive: bool = False

    @property
    def parameters(self) -> Tuple[ParameterSpec, ...]:
        p = self.priors
        return (
            ParameterSpec("alpha", Normal(0.0, p.alpha_sd)),
            ParameterSpec("beta", Normal(0.0, p.beta_sd)),
            ParameterSpec("sigma", Uniform(0.0, p.sigma_upper), lower=0.0),
            ParameterSpec("nu", Exponential(p.nu_rate), lower=0.0),
        )

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.parameters)

    @property
    def generated_quantities(self) -> Tuple[str, ...]:
        return ("y_rand",) if self.posterior_predictive else ()

    def parameter(self, name: str) -> ParameterSpec:
        for spec in self.parameters:
            if spec.name == name:
                return spec
        raise KeyError(f"Unknown parameter {name!r}; expected one of {self.parameter_names}.")

    def describe(self) -> dict:
        """Inspectable summary of the data block, parameters and model block."""

        return {
            "data": {"N": "int >= 1", "x": "real[N]", "y": "real[N]"},
            "parameters": {
                spec.name: {"lower": spec.lower, "prior": spec.prior}
                for spec in self.parameters
            },
            "likelihood": "y[i] ~ student_t(nu, alpha + beta * x[i], sigma)",
            "generated_quantities": list(self.generated_quantities),
        }

    @staticmethod
    def linear_predictor(alpha: float, beta: float, x: ArrayLike) -> np.ndarray:
        return alpha + beta * np.asarray(x, dtype=float)

    def in_support(self, params: Mapping[str, float]) -> bool:
        return all(spec.in_support(params[spec.name]) for spec in self.parameters)

    def log_prior(self, params: Mapping[str, float]) -> float:
        if not self.in_support(params):
            return -np.inf
        return float(sum(spec.prior.logpdf(params[spec.name]) for spec in self.parameters))

    def log_likelihood(self, params: Mapping[str, float], data: Mapping[str, ArrayLike]) -> float:
        mu = self.linear_predictor(params["alpha"], params["beta"], data["x"])
        return float(np.sum(stats.t.logpdf(data["y"], df=params["nu"], loc=mu, scale=params["sigma"])))

    def log_posterior(self, params: Mapping[str, float], data: Mapping[str, ArrayLike]) -> float:
        """Unnormalized log posterior density; ``-inf`` outside the support."""

        lp = self.log_prior(params)
        if not np.isfinite(lp):
            return lp
        return lp + self.log_likelihood(params, data)

    def simulate_response(
        self,
        params: Mapping[str, float],
        x: ArrayLike,
        rng: np.random.Generator,
    ) -> np.ndarray:
        """Draw ``y_rand`` for every ``x`` given one joint parameter draw."""

        mu = self.linear_predictor(params["alpha"], params["beta"], x)
        return mu + params["sigma"] * rng.standard_t(params["nu"], size=mu.shape)

    def prior_draw(self, rng: np.random.Generator) -> Dict[str, float]:
        return {spec.name: spec.prior.sample(rng) for spec in self.parameters}
