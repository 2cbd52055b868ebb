"""Point estimates, credible intervals and tail probabilities from posterior draws.

Every function here is pure: it reads the draws it is given and never
modifies them. All probabilities are Monte Carlo estimates whose error is of
order ``1 / sqrt(M)`` for ``M`` draws.

A tail probability of exactly 0 or 1 only says that none (or all) of the
``M`` draws satisfied the predicate. The true probability is then only known
to be below ``1 / M`` (or above ``1 - 1 / M``); :func:`format_probability`
prints it that way.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike

from .exceptions import InsufficientSamplesError

Predicate = Callable[[np.ndarray], np.ndarray]


def _as_draws(samples: ArrayLike) -> np.ndarray:
    draws = np.asarray(samples, dtype=float).ravel()
    if draws.size == 0:
        raise InsufficientSamplesError("No posterior draws were given.")
    return draws


def _check_prob(prob: float) -> None:
    if not 0.0 < prob <= 1.0:
        raise ValueError(f"Probability must lie in (0, 1], got {prob}.")


def mean(samples: ArrayLike) -> float:
    return float(np.mean(_as_draws(samples)))


def hpd_interval(samples: ArrayLike, prob: float = 0.95) -> Tuple[float, float]:
    """Shortest interval holding ``prob`` of the empirical posterior mass.

    Draws are sorted and every window of ``ceil(prob * M)`` consecutive draws
    is scanned; the narrowest wins, the lowest one on ties. ``prob = 1``
    returns the full sample range. When ``prob`` is so small that the window
    holds a single draw, the interval collapses onto the draw with the
    closest neighbour, which sits in the densest part of the sample.

    Intervals for increasing ``prob`` are nested only when the draws are
    unimodal. With several modes a small ``prob`` can pick a narrow mode that
    a larger ``prob`` leaves out in favour of a wider one.
    """

    _check_prob(prob)
    draws = np.asarray(samples, dtype=float).ravel()
    if draws.size < 2:
        raise InsufficientSamplesError(f"An HPD interval needs at least 2 draws, got {draws.size}.")
    sorted_draws = np.sort(draws)
    n = sorted_draws.size
    window = min(n, max(1, math.ceil(prob * n)))
    if window == 1:
        # Every one-draw window has zero width; use the gaps to the next draw.
        point = float(sorted_draws[int(np.argmin(np.diff(sorted_draws)))])
        return point, point
    widths = sorted_draws[window - 1 :] - sorted_draws[: n - window + 1]
    start = int(np.argmin(widths))
    return float(sorted_draws[start]), float(sorted_draws[start + window - 1])


def equal_tailed_interval(samples: ArrayLike, prob: float = 0.95) -> Tuple[float, float]:
    _check_prob(prob)
    draws = np.asarray(samples, dtype=float).ravel()
    if draws.size < 2:
        raise InsufficientSamplesError(f"An interval needs at least 2 draws, got {draws.size}.")
    tail = (1.0 - prob) / 2.0 * 100.0
    lower, upper = np.percentile(draws, [tail, 100.0 - tail])
    return float(lower), float(upper)


def tail_probability(samples: ArrayLike, predicate: Predicate) -> float:
    """Fraction of draws for which ``predicate`` holds.

    ``predicate`` receives the whole array of draws and returns a boolean
    array of the same shape, e.g. ``at_most(0.0)`` or ``lambda d: d > 1``.
    """

    draws = _as_draws(samples)
    hits = np.asarray(predicate(draws), dtype=bool)
    if hits.shape != draws.shape:
        raise ValueError(f"Predicate returned shape {hits.shape}, expected {draws.shape}.")
    return float(np.count_nonzero(hits) / draws.size)


def at_most(threshold: float) -> Predicate:
    return lambda draws: draws <= threshold


def at_least(threshold: float) -> Predicate:
    return lambda draws: draws >= threshold


def between(lower: float, upper: float) -> Predicate:
    if lower > upper:
        raise ValueError(f"Empty interval [{lower}, {upper}].")
    return lambda draws: (draws >= lower) & (draws <= upper)


def probability_resolution(samples: ArrayLike) -> float:
    return 1.0 / _as_draws(samples).size


def format_probability(prob: float, n_draws: int) -> str:
    if prob <= 0.0:
        return f"< {1.0 / n_draws:.2g}"
    if prob >= 1.0:
        return f"> {1.0 - 1.0 / n_draws:.6g}"
    return f"{prob:.4f}"


# ================================
#   Summary report
# ================================
@dataclass(frozen=True)
class ParameterSummary:
    name: str
    mean: float
    sd: float
    hpd: Tuple[float, float]
    equal_tailed: Tuple[float, float]
    tail_probabilities: Mapping[float, float] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "mean": self.mean,
            "sd": self.sd,
            "hpd": list(self.hpd),
            "equal_tailed": list(self.equal_tailed),
            "p_at_most": {str(t): p for t, p in self.tail_probabilities.items()},
        }


@dataclass(frozen=True)
class PosteriorSummary:
    prob: float
    draws: int
    parameters: Mapping[str, ParameterSummary]

    def __getitem__(self, name: str) -> ParameterSummary:
        return self.parameters[name]

    def __contains__(self, name: object) -> bool:
        return name in self.parameters

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for name, summ in self.parameters.items():
            row = {
                "parameter": name,
                "mean": summ.mean,
                "sd": summ.sd,
                "hpd_lower": summ.hpd[0],
                "hpd_upper": summ.hpd[1],
                "eti_lower": summ.equal_tailed[0],
                "eti_upper": summ.equal_tailed[1],
            }
            for threshold, p in summ.tail_probabilities.items():
                row[f"P(<= {threshold:g})"] = p
            rows.append(row)
        return pd.DataFrame(rows).set_index("parameter")

    def to_dict(self) -> dict:
        return {
            "prob": self.prob,
            "draws": self.draws,
            "parameters": {name: summ.as_dict() for name, summ in self.parameters.items()},
        }

    def format(self) -> str:
        lines = [f"Posterior summary ({self.draws} draws, {self.prob:.0%} HPD)"]
        for name, summ in self.parameters.items():
            lines.append(
                f"{name:<6} mean {summ.mean: .4f}  sd {summ.sd:.4f}  "
                f"HPD [{summ.hpd[0]: .4f}, {summ.hpd[1]: .4f}]"
            )
            for threshold, p in summ.tail_probabilities.items():
                lines.append(f"       P({name} <= {threshold:g}) {format_probability(p, self.draws)}")
        return "\n".join(lines)


def summarize_parameter(
    name: str,
    samples: ArrayLike,
    prob: float = 0.95,
    thresholds: Iterable[float] = (),
) -> ParameterSummary:
    draws = _as_draws(samples)
    return ParameterSummary(
        name=name,
        mean=mean(draws),
        sd=float(np.std(draws, ddof=1)) if draws.size > 1 else 0.0,
        hpd=hpd_interval(draws, prob),
        equal_tailed=equal_tailed_interval(draws, prob),
        tail_probabilities={float(t): tail_probability(draws, at_most(t)) for t in thresholds},
    )


def summarize(
    posterior,
    prob: float = 0.95,
    thresholds: Optional[Mapping[str, Sequence[float]]] = None,
    parameters: Optional[Sequence[str]] = None,
) -> PosteriorSummary:
    """Summarize every parameter of a :class:`PosteriorSampleSet`.

    ``thresholds`` maps a parameter name to the values ``t`` for which
    ``P(parameter <= t)`` is reported.
    """

    thresholds = thresholds or {}
    names = list(parameters) if parameters is not None else list(posterior.parameter_names)
    summaries: Dict[str, ParameterSummary] = {
        name: summarize_parameter(name, posterior[name], prob, thresholds.get(name, ()))
        for name in names
    }
    return PosteriorSummary(prob=prob, draws=posterior.draws, parameters=summaries)
