"""
Configuration constants for the daily forecasting core.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

# Preprocessing
DAY_MS = 24 * 60 * 60 * 1000

# Numeric guards
VARIANCE_FLOOR = 1e-9
EPS = 1e-9

# ARIMA estimation
MIN_ESTIMATION_POINTS = 3
MA_INITIAL_CLAMP = 0.9
MA_DEFAULT_GUESS = -0.3
MAX_DIFFERENCING = 2
MAX_ORDER = 5  # p and q above this are clamped
DEFAULT_ORDER = (1, 1, 1)
DEFAULT_FORECAST_PERIODS = 12
FEW_OBSERVATIONS = 10  # warn below this many points
AUTO_ORDER_CANDIDATES = [
    (1, 1, 1),
    (2, 1, 1),
    (1, 1, 2),
    (0, 1, 1),
    (1, 0, 1),
]

# Confidence intervals
DEFAULT_CONFIDENCE = 0.95
Z_SCORES = {
    0.99: 2.58,
    0.95: 1.96,
    0.90: 1.645,
}

# Holt smoothing
MIN_HOLT_POINTS = 2
HOLDOUT_FRACTION = 0.2
HOLDOUT_MIN = 6
HOLDOUT_MAX = 24
MIN_TRAIN_POINTS = 2

# Residual diagnostics
LJUNG_BOX_LAGS = 10


@dataclass(frozen=True)
class MAGridConfig:
    """Candidate MA(1) coefficients searched by AIC.

    The grid is inclusive on both ends; the default yields the 199 values
    -0.99, -0.98, ..., 0.99.
    """

    start: float = -0.99
    stop: float = 0.99
    step: float = 0.01

    def values(self) -> np.ndarray:
        if self.step <= 0 or self.stop < self.start:
            return np.array([self.start], dtype=float)
        # last value never exceeds stop, even when step does not divide the span
        count = int(np.floor((self.stop - self.start) / self.step + 1e-9)) + 1
        return np.round(self.start + self.step * np.arange(count), 10)


@dataclass(frozen=True)
class HoltGridConfig:
    """Smoothing parameters tried by the Holt tuner, alpha-major."""

    alphas: Tuple[float, ...] = (0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9)
    betas: Tuple[float, ...] = (0.05, 0.1, 0.2, 0.3, 0.4)
    # Used only when every candidate scores non-finite
    fallback_alpha: float = 0.5
    fallback_beta: float = 0.2

    def as_param_grid(self) -> dict:
        return {"alpha": list(self.alphas), "beta": list(self.betas)}
