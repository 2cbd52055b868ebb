"""
test_sampler.py
---------------

Tests for the sampler adapter, the Gibbs backend and the posterior sample set.
"""

import numpy as np
import pytest
from scipy import stats

from robust_t_regression.data_prep import Dataset
from robust_t_regression.exceptions import SamplerDivergenceError
from robust_t_regression.model import RobustRegressionModel
from robust_t_regression.sampler import (
    GibbsSampler,
    PosteriorSampleSet,
    SamplerBackend,
    SamplerConfig,
    _check_state,
    _draw_coefficients,
    _draw_sigma,
    default_initial_values,
    log_p_nu,
    sample,
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
def test_default_warmup_is_half_of_iterations():
    cfg = SamplerConfig(iterations=6000)
    assert cfg.effective_warmup() == 3000
    assert cfg.draws_per_chain == 3000


@pytest.mark.parametrize(
    "kwargs",
    [
        {"iterations": 0},
        {"iterations": 100, "warmup": 100},
        {"iterations": 100, "warmup": -1},
        {"chains": 0},
        {"prop_sd": 0.0},
        {"target_accept": 1.0},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(ValueError):
        SamplerConfig(**kwargs)


# ---------------------------------------------------------------------------
# PosteriorSampleSet
# ---------------------------------------------------------------------------
def test_sample_set_requires_aligned_lengths():
    with pytest.raises(ValueError):
        PosteriorSampleSet({"a": [1.0, 2.0], "b": [1.0]})
    with pytest.raises(ValueError):
        PosteriorSampleSet({"a": [1.0, 2.0, 3.0]}, chains=2)
    with pytest.raises(ValueError):
        PosteriorSampleSet({})


def test_sample_set_is_read_only_and_copies_input():
    source = np.array([1.0, 2.0, 3.0, 4.0])
    posterior = PosteriorSampleSet({"a": source, "b": source * 2}, chains=2)
    source[0] = 100.0
    assert posterior["a"][0] == 1.0
    with pytest.raises(ValueError):
        posterior["a"][0] = 5.0


def test_sample_set_views():
    posterior = PosteriorSampleSet({"a": [1.0, 2.0, 3.0, 4.0], "b": [5.0, 6.0, 7.0, 8.0]}, chains=2)
    assert posterior.draws == 4
    assert posterior.draws_per_chain == 2
    np.testing.assert_array_equal(posterior.by_chain("a"), [[1.0, 2.0], [3.0, 4.0]])
    assert posterior.joint_draw(2) == {"a": 3.0, "b": 7.0}
    df = posterior.to_frame()
    assert list(df.columns) == ["chain", "a", "b"]
    assert list(df["chain"]) == [0, 0, 1, 1]
    assert "a" in posterior and "c" not in posterior


# ---------------------------------------------------------------------------
# Gibbs backend
# ---------------------------------------------------------------------------
def test_log_p_nu_matches_gamma_mixing_density():
    lambdas = np.array([0.3, 1.1, 0.8, 2.4, 0.05])
    rate = 1.0 / 30.0

    def reference(nu):
        return stats.gamma.logpdf(lambdas, a=nu / 2.0, scale=2.0 / nu).sum() - rate * nu

    diff = log_p_nu(3.0, lambdas, rate) - log_p_nu(12.0, lambdas, rate)
    assert diff == pytest.approx(reference(3.0) - reference(12.0))
    assert log_p_nu(0.0, lambdas, rate) == -np.inf


def test_output_shapes_and_support(short_posterior, clean_dataset):
    assert short_posterior.parameter_names == ("alpha", "beta", "sigma", "nu")
    assert short_posterior.chains == 2
    for name in short_posterior:
        assert short_posterior[name].shape == (2 * (400 - 100),)
    assert np.all(short_posterior["sigma"] > 0)
    assert np.all(short_posterior["nu"] > 0)
    assert short_posterior.generated["y_rand"].shape == (600, clean_dataset.n)
    assert len(short_posterior.accept_rates) == 2


def test_chains_use_distinct_streams(short_posterior):
    by_chain = short_posterior.by_chain("beta")
    assert not np.array_equal(by_chain[0], by_chain[1])


def test_same_seed_reproduces_draws(clean_dataset):
    model = RobustRegressionModel()
    a = sample(model, clean_dataset, seed=5, iterations=150, warmup=50)
    b = sample(model, clean_dataset, seed=5, iterations=150, warmup=50)
    c = sample(model, clean_dataset, seed=6, iterations=150, warmup=50)
    for name in model.parameter_names:
        np.testing.assert_array_equal(a[name], b[name])
    assert not np.array_equal(a["beta"], c["beta"])


def test_process_pool_matches_sequential(clean_dataset):
    model = RobustRegressionModel()
    seq = sample(model, clean_dataset, seed=9, iterations=120, warmup=20, chains=2)
    par = sample(model, clean_dataset, seed=9, iterations=120, warmup=20, chains=2, n_jobs=2)
    for name in model.parameter_names:
        np.testing.assert_array_equal(seq[name], par[name])


def test_posterior_is_near_least_squares(short_posterior):
    # Slope of the clean fixture is 1.6 in the population.
    assert short_posterior["beta"].mean() == pytest.approx(1.6, abs=0.4)


@pytest.mark.parametrize("init", [{"sigma": -1.0}, {"nu": 0.0}, {"sigma": 2e5}])
def test_invalid_initial_values_fail_initialization(clean_dataset, init):
    with pytest.raises(SamplerDivergenceError):
        sample(RobustRegressionModel(), clean_dataset, iterations=20, warmup=10, initial_values=init)


def test_unknown_initial_value(clean_dataset):
    with pytest.raises(ValueError):
        sample(RobustRegressionModel(), clean_dataset, iterations=20, warmup=10, initial_values={"rho": 0.1})


def test_user_initial_values_are_used(clean_dataset):
    posterior = sample(
        RobustRegressionModel(),
        clean_dataset,
        iterations=5,
        warmup=0,
        initial_values={"alpha": 0.0, "beta": 0.0, "sigma": 1.0, "nu": 2.0},
    )
    assert posterior.draws == 5


def test_default_initial_values_use_least_squares():
    ds = Dataset([0.0, 1.0, 2.0, 3.0], [1.0, 3.1, 4.9, 7.0])
    init = default_initial_values(ds, RobustRegressionModel())
    assert init["beta"] == pytest.approx(1.98, abs=0.01)
    assert init["sigma"] > 0
    assert init["nu"] == 5.0


def test_backend_is_pluggable(clean_dataset):
    class FixedBackend(SamplerBackend):
        def sample(self, model, dataset, config):
            return PosteriorSampleSet({name: np.ones(config.draws_per_chain) for name in model.parameter_names})

    posterior = sample(RobustRegressionModel(), clean_dataset, iterations=10, warmup=4, backend=FixedBackend())
    assert posterior.draws == 6
    assert isinstance(GibbsSampler(), SamplerBackend)


# ---------------------------------------------------------------------------
# Small and degenerate data
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("seed", [0, 1, 2])
def test_two_observations_sample(seed):
    posterior = sample(RobustRegressionModel(), Dataset([0.0, 1.0], [1.0, 3.5]), seed=seed, iterations=3000)
    assert posterior.draws == 1500
    posterior.check_finite()
    assert np.all(posterior["sigma"] > 0)
    assert np.all(posterior["sigma"] < 1e5)


def test_sigma_draw_respects_upper_bound():
    rng = np.random.default_rng(5)
    # Untruncated, almost every draw would land above the bound.
    draws = np.array([_draw_sigma(rng, 2, 20.0, upper=1.0) for _ in range(200)])
    assert np.all((draws > 0) & (draws < 1.0))


def test_sigma_draw_matches_inverse_gamma_when_bound_is_loose():
    rng = np.random.default_rng(6)
    draws = np.array([_draw_sigma(rng, 12, 22.0, upper=1e5) for _ in range(4000)])
    # 1 / sigma^2 ~ Gamma(5.5, rate 11) has mean 0.5.
    assert np.mean(1.0 / draws**2) == pytest.approx(0.5, rel=0.05)


@pytest.mark.parametrize("sum_sq", [0.0, np.nan, np.inf])
def test_sigma_draw_rejects_degenerate_residuals(sum_sq):
    with pytest.raises(SamplerDivergenceError, match="residual sum of squares"):
        _draw_sigma(np.random.default_rng(0), 10, sum_sq, upper=1e5)


def test_sigma_draw_fails_when_bound_is_unreachable():
    with pytest.raises(SamplerDivergenceError, match="upper bound"):
        _draw_sigma(np.random.default_rng(0), 10, 1e300, upper=1.0)


def test_coefficient_precision_must_be_positive_definite():
    design = np.column_stack([np.ones(4), np.arange(4.0)])
    y = np.arange(4.0)
    rng = np.random.default_rng(0)
    alpha, beta = _draw_coefficients(rng, design, y, np.ones(4), 1.0, np.zeros((2, 2)))
    assert np.isfinite([alpha, beta]).all()
    with pytest.raises(SamplerDivergenceError, match="positive definite"):
        _draw_coefficients(rng, design, y, -np.ones(4), 1.0, np.zeros((2, 2)))
    with pytest.raises(SamplerDivergenceError, match="positive definite"):
        _draw_coefficients(rng, design, y, np.ones(4), np.nan, np.zeros((2, 2)))


def test_non_finite_state_is_a_divergence():
    _check_state(0, 1, {"alpha": 0.0, "beta": 1.0, "sigma": 1.0, "nu": 4.0})
    with pytest.raises(SamplerDivergenceError, match="Chain 1 diverged at iteration 7"):
        _check_state(1, 7, {"alpha": 0.0, "beta": np.nan, "sigma": 1.0, "nu": 4.0})


def test_exact_line_diverges():
    x = np.arange(10.0)
    # Residuals vanish once sigma collapses onto the line.
    with pytest.raises(SamplerDivergenceError, match="Chain 0"):
        sample(RobustRegressionModel(), Dataset(x, 1.0 + 2.0 * x))


def test_check_finite_reports_first_bad_draw():
    values = np.ones(10)
    values[7] = np.inf
    posterior = PosteriorSampleSet({"alpha": np.ones(10), "nu": values}, chains=2)
    with pytest.raises(SamplerDivergenceError, match="'nu', first at chain 1, draw 2"):
        posterior.check_finite()
