"""
test_summary.py
---------------

Tests for posterior means, HPD and equal-tailed intervals, tail probabilities
and the summary report.
"""

import json

import numpy as np
import pytest
from scipy import stats

from robust_t_regression.exceptions import InsufficientSamplesError
from robust_t_regression.sampler import PosteriorSampleSet
from robust_t_regression.summary import (
    at_least,
    at_most,
    between,
    equal_tailed_interval,
    format_probability,
    hpd_interval,
    mean,
    probability_resolution,
    summarize,
    summarize_parameter,
    tail_probability,
)


@pytest.fixture
def normal_grid():
    """Evenly spaced standard normal quantiles: a noiseless unimodal sample."""
    return stats.norm.ppf((np.arange(2001) + 0.5) / 2001)


@pytest.fixture
def random_draws():
    return np.random.default_rng(0).normal(1.0, 2.0, size=5000)


def test_mean():
    assert mean([1.0, 2.0, 6.0]) == pytest.approx(3.0)
    with pytest.raises(InsufficientSamplesError):
        mean([])


def test_hpd_uses_window_of_ceil_p_times_m():
    lower, upper = hpd_interval(np.arange(100.0), 0.5)
    # All windows of 50 draws are equally wide; the lowest wins.
    assert (lower, upper) == (0.0, 49.0)


def test_hpd_full_mass_is_sample_range(random_draws):
    assert hpd_interval(random_draws, 1.0) == (random_draws.min(), random_draws.max())


def test_hpd_of_symmetric_sample_is_centered(normal_grid):
    lower, upper = hpd_interval(normal_grid, 0.95)
    assert lower == pytest.approx(-1.96, abs=0.01)
    assert upper == pytest.approx(1.96, abs=0.01)


def test_hpd_of_skewed_sample_starts_at_minimum():
    draws = stats.expon.ppf((np.arange(1000) + 0.5) / 1000)
    lower, upper = hpd_interval(draws, 0.9)
    eti_lower, eti_upper = equal_tailed_interval(draws, 0.9)
    assert lower == draws.min()
    assert upper - lower < eti_upper - eti_lower


@pytest.mark.parametrize("p1, p2", [(0.1, 0.2), (0.5, 0.8), (0.8, 0.95), (0.95, 0.99), (0.99, 1.0)])
def test_hpd_intervals_are_nested(normal_grid, p1, p2):
    inner = hpd_interval(normal_grid, p1)
    outer = hpd_interval(normal_grid, p2)
    assert outer[0] <= inner[0] <= inner[1] <= outer[1]


def test_hpd_small_probability_collapses_near_mode(normal_grid):
    lower, upper = hpd_interval(normal_grid, 0.001)
    assert upper - lower < 0.01
    assert abs(lower) < 0.01


def test_hpd_single_draw_window_sits_in_densest_region(normal_grid, random_draws):
    # 0.0001 * 2001 rounds up to a one-draw window.
    lower, upper = hpd_interval(normal_grid, 0.0001)
    assert lower == upper
    assert abs(lower) < 0.01

    lower, upper = hpd_interval(random_draws, 1e-5)
    assert lower == upper
    assert lower > random_draws.min()
    assert lower == pytest.approx(1.0, abs=4.5)


def test_hpd_single_draw_window_takes_lowest_tie():
    assert hpd_interval([0.0, 1.0, 2.0, 3.0], 0.1) == (0.0, 0.0)
    assert hpd_interval([0.0, 5.0, 5.5, 9.0], 0.1) == (5.0, 5.0)


def test_hpd_intervals_need_not_nest_for_bimodal_draws():
    # A tight mode of 24 draws and a wide mode of 40 draws.
    draws = np.concatenate([np.arange(24) * 0.01, 10.0 + np.arange(40) * 0.1])
    inner = hpd_interval(draws, 0.375)
    outer = hpd_interval(draws, 0.625)
    assert inner == (0.0, pytest.approx(0.23))
    assert outer == (10.0, pytest.approx(13.9))
    assert inner[1] < outer[0]


def test_hpd_needs_two_draws():
    with pytest.raises(InsufficientSamplesError):
        hpd_interval([1.0], 0.9)
    with pytest.raises(InsufficientSamplesError):
        hpd_interval([], 0.9)


@pytest.mark.parametrize("prob", [0.0, -0.1, 1.5])
def test_interval_probability_must_be_valid(random_draws, prob):
    with pytest.raises(ValueError):
        hpd_interval(random_draws, prob)
    with pytest.raises(ValueError):
        equal_tailed_interval(random_draws, prob)


def test_equal_tailed_interval():
    assert equal_tailed_interval(np.arange(101.0), 0.9) == pytest.approx((5.0, 95.0))


def test_tail_probability_is_monotone_in_threshold(random_draws):
    thresholds = np.linspace(-15, 17, 60)
    probs = [tail_probability(random_draws, at_most(t)) for t in thresholds]
    assert all(a <= b for a, b in zip(probs, probs[1:]))
    assert probs[0] == 0.0
    assert probs[-1] == 1.0


def test_tail_probability_predicates():
    draws = np.array([-2.0, -1.0, 0.0, 1.0, 2.0])
    assert tail_probability(draws, at_most(0.0)) == pytest.approx(0.6)
    assert tail_probability(draws, at_least(1.0)) == pytest.approx(0.4)
    assert tail_probability(draws, between(-1.0, 1.0)) == pytest.approx(0.6)
    assert tail_probability(draws, lambda d: d > 5) == 0.0
    with pytest.raises(ValueError):
        between(1.0, -1.0)


def test_tail_probability_rejects_scalar_predicate():
    with pytest.raises(ValueError):
        tail_probability(np.arange(3.0), lambda d: d.sum() > 0)


def test_extreme_probabilities_are_reported_as_bounds():
    draws = np.zeros(1000)
    assert probability_resolution(draws) == pytest.approx(0.001)
    assert format_probability(0.0, 1000) == "< 0.001"
    assert format_probability(1.0, 1000) == "> 0.999"
    assert format_probability(0.25, 1000) == "0.2500"


def test_summarizer_is_pure_and_idempotent(random_draws):
    before = random_draws.copy()
    first = summarize_parameter("beta", random_draws, 0.9, thresholds=[0.0, 1.0])
    second = summarize_parameter("beta", random_draws, 0.9, thresholds=[0.0, 1.0])
    assert first == second
    np.testing.assert_array_equal(random_draws, before)


def test_summarize_sample_set():
    rng = np.random.default_rng(4)
    posterior = PosteriorSampleSet(
        {"alpha": rng.normal(2.0, 0.1, 1000), "beta": rng.normal(-1.0, 0.1, 1000)},
        chains=2,
    )
    summary = summarize(posterior, prob=0.9, thresholds={"beta": [0.0]})

    assert summary.draws == 1000
    assert summary["alpha"].mean == pytest.approx(2.0, abs=0.02)
    assert summary["beta"].tail_probabilities == {0.0: 1.0}
    assert summary["alpha"].tail_probabilities == {}

    df = summary.to_frame()
    assert list(df.index) == ["alpha", "beta"]
    assert "P(<= 0)" in df.columns
    json.dumps(summary.to_dict())
    text = summary.format()
    assert "P(beta <= 0) > 0.999" in text


def test_summarize_subset_of_parameters():
    posterior = PosteriorSampleSet({"a": np.arange(10.0), "b": np.arange(10.0)})
    summary = summarize(posterior, parameters=["b"])
    assert "b" in summary and "a" not in summary
