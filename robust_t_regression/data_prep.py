"""Dataset handling and the demonstration data simulator."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike

from .exceptions import InvalidDatasetError


@dataclass(frozen=True)
class Observation:
    x: float
    y: float


class Dataset:
    """Ordered sequence of (x, y) observations backed by read-only arrays."""

    def __init__(self, x: ArrayLike, y: ArrayLike):
        x = np.array(x, dtype=float).ravel()
        y = np.array(y, dtype=float).ravel()
        if x.size != y.size:
            raise InvalidDatasetError(f"x and y must have the same length, got {x.size} and {y.size}.")
        if x.size < 2:
            raise InvalidDatasetError(f"Need at least two observations to identify the slope, got {x.size}.")
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
            raise InvalidDatasetError("x and y must only contain finite values.")
        x.setflags(write=False)
        y.setflags(write=False)
        self._x = x
        self._y = y

    @classmethod
    def from_observations(cls, observations: Iterable[Observation]) -> "Dataset":
        rows = list(observations)
        return cls([obs.x for obs in rows], [obs.y for obs in rows])

    @classmethod
    def from_frame(cls, df: pd.DataFrame, x_col: str = "x", y_col: str = "y") -> "Dataset":
        return cls(df[x_col].to_numpy(), df[y_col].to_numpy())

    @property
    def x(self) -> np.ndarray:
        return self._x

    @property
    def y(self) -> np.ndarray:
        return self._y

    @property
    def n(self) -> int:
        return int(self._x.size)

    def __len__(self) -> int:
        return self.n

    def __iter__(self):
        for xi, yi in zip(self._x, self._y):
            yield Observation(float(xi), float(yi))

    def __getitem__(self, index: int) -> Observation:
        return Observation(float(self._x[index]), float(self._y[index]))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dataset):
            return NotImplemented
        return np.array_equal(self._x, other._x) and np.array_equal(self._y, other._y)

    def __repr__(self) -> str:
        return f"Dataset(n={self.n})"

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"x": self._x, "y": self._y})

    def as_model_data(self) -> dict:
        """Data block consumed by the model: N plus the x and y vectors."""

        return {"N": self.n, "x": self._x, "y": self._y}


@dataclass
class DataConfig:
    """Configuration describing how to load and clean a CSV dataset."""

    csv_path: Path
    x_col: str = "x"
    y_col: str = "y"
    output_clean_path: Optional[Path] = None


def load_observations(config: DataConfig) -> pd.DataFrame:
    """Read the CSV, coerce both columns to numbers and drop incomplete rows."""

    df = pd.read_csv(config.csv_path)
    missing = [col for col in (config.x_col, config.y_col) if col not in df.columns]
    if missing:
        raise InvalidDatasetError(f"Columns {missing} not found in {config.csv_path}.")
    for col in (config.x_col, config.y_col):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df = df.dropna(subset=[config.x_col, config.y_col])
    df = df[[config.x_col, config.y_col]].rename(columns={config.x_col: "x", config.y_col: "y"})
    return df.reset_index(drop=True)


def load_dataset(config: DataConfig) -> Dataset:
    df = load_observations(config)
    if config.output_clean_path is not None:
        save_dataset(Dataset.from_frame(df), config.output_clean_path)
    return Dataset.from_frame(df)


def save_dataset(dataset: Dataset, output_path: Path) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    dataset.to_frame().to_csv(output_path, index=False)


# ================================
#   Simulation
# ================================
@dataclass
class SimulationConfig:
    n: int = 40
    mean: Tuple[float, float] = (10.0, 30.0)
    sd: Tuple[float, float] = (20.0, 40.0)
    rho: float = -0.95
    seed: int = 210191

    def __post_init__(self):
        if self.n < 2:
            raise ValueError("Simulation needs n >= 2.")
        if not -1.0 <= self.rho <= 1.0:
            raise ValueError(f"rho must lie in [-1, 1], got {self.rho}.")
        if min(self.sd) <= 0:
            raise ValueError("Standard deviations must be positive.")

    def covariance(self) -> np.ndarray:
        return covariance_from_correlation(self.sd, self.rho)


# Rows written over the first three simulated observations in the demo.
DEMO_OUTLIERS = {0: (-20.0, -80.0), 1: (20.0, 100.0), 2: (40.0, 40.0)}


def covariance_from_correlation(sd: Sequence[float], rho: float) -> np.ndarray:
    sd_x, sd_y = sd
    return np.array(
        [
            [sd_x**2, rho * sd_x * sd_y],
            [rho * sd_x * sd_y, sd_y**2],
        ]
    )


def simulate(
    n: int,
    covariance: ArrayLike,
    seed: int,
    mean: Sequence[float] = (0.0, 0.0),
) -> Dataset:
    """Draw ``n`` bivariate normal observations with the given covariance."""

    covariance = np.asarray(covariance, dtype=float)
    if covariance.shape != (2, 2):
        raise ValueError(f"Covariance must be 2x2, got shape {covariance.shape}.")
    if not np.allclose(covariance, covariance.T):
        raise ValueError("Covariance must be symmetric.")
    rng = np.random.default_rng(seed)
    draws = rng.multivariate_normal(np.asarray(mean, dtype=float), covariance, size=n)
    return Dataset(draws[:, 0], draws[:, 1])


def simulate_from_config(config: SimulationConfig) -> Dataset:
    return simulate(config.n, config.covariance(), config.seed, mean=config.mean)


def inject_outliers(dataset: Dataset, replacements: Mapping[int, Tuple[float, float]]) -> Dataset:
    """Return a copy of ``dataset`` with the given rows overwritten.

    ``replacements`` maps a row index to the ``(x, y)`` pair written there.
    The input dataset is left untouched.
    """

    x = dataset.x.copy()
    y = dataset.y.copy()
    for index, (new_x, new_y) in replacements.items():
        if not -dataset.n <= index < dataset.n:
            raise IndexError(f"Row {index} is out of range for a dataset of {dataset.n} rows.")
        x[index] = new_x
        y[index] = new_y
    return Dataset(x, y)
