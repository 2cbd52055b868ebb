"""
Shared pytest fixtures.

Sampling is the slow part of the suite, so the datasets and the short
posterior run used by several modules are built once per session.
"""

import pytest

from robust_t_regression.data_prep import (
    SimulationConfig,
    covariance_from_correlation,
    simulate,
    simulate_from_config,
)
from robust_t_regression.model import RobustRegressionModel
from robust_t_regression.sampler import sample


@pytest.fixture(scope="session")
def clean_dataset():
    """100 draws with sd (1, 2) and correlation 0.8, so the true slope is 1.6."""
    return simulate(100, covariance_from_correlation((1.0, 2.0), 0.8), seed=7)


@pytest.fixture(scope="session")
def demo_dataset():
    """The 40-row, rho = -0.95 demonstration dataset."""
    return simulate_from_config(SimulationConfig())


@pytest.fixture(scope="session")
def short_posterior(clean_dataset):
    """Two short chains with posterior-predictive draws."""
    model = RobustRegressionModel(posterior_predictive=True)
    return sample(model, clean_dataset, seed=3, iterations=400, warmup=100, chains=2)
