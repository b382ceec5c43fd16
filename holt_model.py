"""
Holt (additive trend) double exponential smoothing with a grid-searched
(alpha, beta) chosen on a trailing hold-out.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import ParameterGrid

from ts_config import (
    DEFAULT_CONFIDENCE,
    HOLDOUT_FRACTION,
    HOLDOUT_MAX,
    HOLDOUT_MIN,
    MIN_HOLT_POINTS,
    MIN_TRAIN_POINTS,
    HoltGridConfig,
)
from ts_core import coerce_horizon, naive_forecast
from ts_metrics import HoltMetrics, accuracy, residual_std, rmse, z_for
from ts_series import series_from_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HoltState:
    level: float
    trend: float


@dataclass(frozen=True, eq=False)
class HoltFit:
    alpha: float
    beta: float
    fitted: np.ndarray  # fitted[0] is the initial level
    state: HoltState
    actual: np.ndarray

    @property
    def residuals(self) -> np.ndarray:
        return self.actual[1:] - self.fitted[1:]


@dataclass(frozen=True)
class ForecastInterval:
    point: float
    lower: float
    upper: float


@dataclass(frozen=True, eq=False)
class HoltForecastResult:
    alpha: float
    beta: float
    horizon: int
    point_forecasts: np.ndarray
    intervals: List[ForecastInterval]
    metrics: HoltMetrics
    validation_metrics: Optional[HoltMetrics]
    fitted_train: np.ndarray
    level: float
    trend: float
    train_length: int
    test_length: int
    holdout_size: Optional[int]
    confidence: float = DEFAULT_CONFIDENCE
    phi: float = 1.0
    scores: Optional[pd.DataFrame] = None
    warning: Optional[str] = None
    insufficient_data: bool = False

    @property
    def model(self) -> str:
        return "Holt(add)" if self.phi == 1.0 else "Holt(damped)"

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "alpha": self.alpha,
            "beta": self.beta,
            "horizon": self.horizon,
            "pointForecasts": self.point_forecasts.tolist(),
            "intervals": [{"point": i.point, "lower": i.lower, "upper": i.upper} for i in self.intervals],
            "metrics": self.metrics.to_dict(),
            "validationMetrics": self.validation_metrics.to_dict() if self.validation_metrics else None,
            "fittedTrain": self.fitted_train.tolist(),
            "level": self.level,
            "trend": self.trend,
            "trainLength": self.train_length,
            "testLength": self.test_length,
            "holdoutSize": self.holdout_size,
            "warning": self.warning,
            "insufficientData": self.insufficient_data,
        }


def holt_fit(series: Iterable[float], alpha: float, beta: float) -> HoltFit:
    """Run the level/trend recursion over `series`.

    The state is seeded from the first two points; fitted[t] is the one-step-ahead
    value level + trend before y[t] is seen.
    """
    y = np.asarray(list(series), dtype=float)
    if y.size < 2:
        level = float(y[0]) if y.size else 0.0
        return HoltFit(alpha, beta, np.full(y.size, level), HoltState(level, 0.0), y)

    level = float(y[0])
    trend = float(y[1] - y[0])
    fitted = [level]
    for t in range(1, y.size):
        prev_level = level
        fitted.append(level + trend)
        level = alpha * y[t] + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend

    return HoltFit(alpha, beta, np.asarray(fitted, dtype=float), HoltState(float(level), float(trend)), y)


def holt_forecast_from(state: HoltState, horizon: int, phi: float = 1.0) -> np.ndarray:
    """Extrapolate the final state; phi < 1 damps the trend."""
    k = np.arange(1, max(0, int(horizon)) + 1, dtype=float)
    if phi == 1.0:
        return state.level + k * state.trend
    damped = (1 - np.power(phi, k)) / (1 - phi)
    return state.level + damped * state.trend


def infer_holdout(n: int) -> int:
    return max(HOLDOUT_MIN, min(HOLDOUT_MAX, int(round(n * HOLDOUT_FRACTION))))


def split_train_test(series: Iterable[float], holdout: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Trailing hold-out split; the training part keeps at least two points."""
    y = np.asarray(list(series), dtype=float)
    h = infer_holdout(y.size) if holdout is None else max(0, int(holdout))
    cut = max(MIN_TRAIN_POINTS, y.size - h)
    return y[:cut], y[cut:]


def intervals_for(points: np.ndarray, sigma: float, confidence: float) -> List[ForecastInterval]:
    margin = z_for(confidence) * sigma
    return [ForecastInterval(float(v), float(v - margin), float(v + margin)) for v in points]


def _score(fit: HoltFit, test: np.ndarray, phi: float) -> float:
    if test.size:
        pred = holt_forecast_from(fit.state, test.size, phi)
        return float(np.sqrt(mean_squared_error(test, pred)))
    return rmse(fit.residuals)


def grid_search_holt(
    series: Iterable[Any],
    horizon: int,
    grid: Optional[HoltGridConfig] = None,
    holdout: Optional[int] = None,
    confidence: float = DEFAULT_CONFIDENCE,
    phi: float = 1.0,
) -> HoltForecastResult:
    """Try every (alpha, beta) of `grid` and refit the winner on the full series.

    Candidates are scored by RMSE on the hold-out when there is one, else by
    in-sample RMSE. Ties go to the first candidate in alpha-major order.
    """
    grid = grid or HoltGridConfig()
    y = series_from_values(series)
    horizon = coerce_horizon(horizon)

    if y.size < MIN_HOLT_POINTS:
        logger.warning("Holt needs at least %d points, got %d", MIN_HOLT_POINTS, y.size)
        return _insufficient_result(y, horizon, holdout, confidence, phi, grid)

    train, test = split_train_test(y, holdout)

    rows = []
    best_params, best_score = None, math.inf
    for params in ParameterGrid(grid.as_param_grid()):
        fit = holt_fit(train, params["alpha"], params["beta"])
        score = _score(fit, test, phi)
        rows.append({"alpha": params["alpha"], "beta": params["beta"], "score": score})
        if math.isfinite(score) and score < best_score:
            best_params, best_score = params, score

    if best_params is None:
        logger.warning("No finite Holt score, falling back to alpha=%s beta=%s", grid.fallback_alpha, grid.fallback_beta)
        best_params = {"alpha": grid.fallback_alpha, "beta": grid.fallback_beta}
    alpha, beta = best_params["alpha"], best_params["beta"]

    train_fit = holt_fit(train, alpha, beta)
    validation = accuracy(test, holt_forecast_from(train_fit.state, test.size, phi)) if test.size else None
    sigma = residual_std(train_fit.residuals)

    final = holt_fit(y, alpha, beta)
    points = holt_forecast_from(final.state, horizon, phi)
    logger.debug("Holt grid winner alpha=%s beta=%s score=%s (train=%d, test=%d)",
                 alpha, beta, best_score, train.size, test.size)

    return HoltForecastResult(
        alpha=alpha,
        beta=beta,
        horizon=horizon,
        point_forecasts=points,
        intervals=intervals_for(points, sigma, confidence),
        metrics=accuracy(y[1:], final.fitted[1:]),
        validation_metrics=validation,
        fitted_train=final.fitted,
        level=final.state.level,
        trend=final.state.trend,
        train_length=int(train.size),
        test_length=int(test.size),
        holdout_size=holdout,
        confidence=confidence,
        phi=phi,
        scores=pd.DataFrame(rows, columns=["alpha", "beta", "score"]),
    )


def _insufficient_result(y: np.ndarray, horizon: int, holdout: Optional[int], confidence: float,
                         phi: float, grid: HoltGridConfig) -> HoltForecastResult:
    last = float(y[-1]) if y.size else None
    points = naive_forecast(last, horizon)
    return HoltForecastResult(
        alpha=grid.fallback_alpha,
        beta=grid.fallback_beta,
        horizon=horizon,
        point_forecasts=points,
        intervals=intervals_for(points, 0.0, confidence),
        metrics=accuracy([], []),
        validation_metrics=None,
        fitted_train=y.copy(),
        level=0.0 if last is None else last,
        trend=0.0,
        train_length=int(y.size),
        test_length=0,
        holdout_size=holdout,
        confidence=confidence,
        phi=phi,
        warning=f"Need at least {MIN_HOLT_POINTS} points for Holt smoothing, got {y.size}.",
        insufficient_data=True,
    )


def best_holt_forecast(
    series: Iterable[Any],
    horizon: int = 12,
    holdout_size: Optional[int] = None,
    confidence: float = DEFAULT_CONFIDENCE,
    phi: float = 1.0,
    grid: Optional[HoltGridConfig] = None,
) -> HoltForecastResult:
    """Holt forecast with (alpha, beta) tuned over the default grid."""
    return grid_search_holt(series, horizon, grid=grid, holdout=holdout_size, confidence=confidence, phi=phi)
