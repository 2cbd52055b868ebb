"""Bayesian robust simple linear regression with a Student-t likelihood."""
from .comparison import ClassicalFit, classical_fit, compare_fits, format_report, least_squares
from .data_prep import (
    DataConfig,
    Dataset,
    Observation,
    SimulationConfig,
    covariance_from_correlation,
    inject_outliers,
    load_dataset,
    save_dataset,
    simulate,
    simulate_from_config,
)
from .exceptions import InsufficientSamplesError, InvalidDatasetError, RobustRegressionError, SamplerDivergenceError
from .model import PriorConfig, RobustRegressionModel
from .pipeline import RegressionResult, run_robust_regression
from .sampler import GibbsSampler, PosteriorSampleSet, SamplerBackend, SamplerConfig, sample
from .summary import (
    PosteriorSummary,
    at_least,
    at_most,
    between,
    equal_tailed_interval,
    hpd_interval,
    mean,
    summarize,
    tail_probability,
)

__version__ = "0.1.0"

__all__ = [
    "ClassicalFit",
    "DataConfig",
    "Dataset",
    "GibbsSampler",
    "InsufficientSamplesError",
    "InvalidDatasetError",
    "Observation",
    "PosteriorSampleSet",
    "PosteriorSummary",
    "PriorConfig",
    "RegressionResult",
    "RobustRegressionError",
    "RobustRegressionModel",
    "SamplerBackend",
    "SamplerConfig",
    "SamplerDivergenceError",
    "SimulationConfig",
    "at_least",
    "at_most",
    "between",
    "classical_fit",
    "compare_fits",
    "covariance_from_correlation",
    "equal_tailed_interval",
    "format_report",
    "hpd_interval",
    "inject_outliers",
    "least_squares",
    "load_dataset",
    "mean",
    "run_robust_regression",
    "sample",
    "save_dataset",
    "simulate",
    "simulate_from_config",
    "summarize",
    "tail_probability",
]
