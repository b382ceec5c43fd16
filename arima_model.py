"""
Lightweight ARIMA(p, d, q) analysis.

This is not a maximum-likelihood ARIMA: AR is estimated for order 1 from the
lag-1 autocovariance, MA for order 1 by an AIC grid search, and higher orders
are zero-padded. The recursions are kept simple so fitting and forecasting use
exactly the same arithmetic.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from statsmodels.tsa.stattools import acovf

from ts_config import (
    AUTO_ORDER_CANDIDATES,
    DEFAULT_CONFIDENCE,
    DEFAULT_FORECAST_PERIODS,
    DEFAULT_ORDER,
    FEW_OBSERVATIONS,
    MA_DEFAULT_GUESS,
    MA_INITIAL_CLAMP,
    MAX_DIFFERENCING,
    MAX_ORDER,
    MIN_ESTIMATION_POINTS,
    VARIANCE_FLOOR,
    MAGridConfig,
)
from ts_core import DataError, coerce_horizon, naive_forecast
from ts_metrics import ArimaMetrics, arima_metrics, info_criteria, ljung_box, z_for
from ts_series import prepare_daily_series, series_from_values
from ts_transforms import difference, difference_anchors, integrate, log1p_forward, log1p_inverse

logger = logging.getLogger(__name__)

FEW_OBSERVATIONS_WARNING = f"Very few observations (<{FEW_OBSERVATIONS}). Results may be unstable."
INSUFFICIENT_DATA_WARNING = "Insufficient data to estimate the model; returning a naive forecast."


@dataclass(frozen=True)
class ArimaOrder:
    p: int = DEFAULT_ORDER[0]
    d: int = DEFAULT_ORDER[1]
    q: int = DEFAULT_ORDER[2]

    @classmethod
    def coerce(cls, order: Any = None) -> "ArimaOrder":
        """Build an order from a mapping, a (p, d, q) tuple or an ArimaOrder.

        Out-of-range values degrade instead of failing: p and q are clamped to
        [0, MAX_ORDER] and d to [0, 2]. Non-integer or infinite values raise
        DataError.
        """
        if order is None:
            p, d, q = DEFAULT_ORDER
        elif isinstance(order, ArimaOrder):
            p, d, q = order.p, order.d, order.q
        elif isinstance(order, Mapping):
            p = order.get("p", DEFAULT_ORDER[0])
            d = order.get("d", DEFAULT_ORDER[1])
            q = order.get("q", DEFAULT_ORDER[2])
        else:
            try:
                p, d, q = order
            except (TypeError, ValueError):
                raise DataError(f"Order must be (p, d, q), got {order!r}")

        try:
            raw = (int(p), int(d), int(q))
        except (TypeError, ValueError, OverflowError):
            raise DataError(f"Order values must be finite integers, got {(p, d, q)!r}")

        clamped = (
            min(max(0, raw[0]), MAX_ORDER),
            min(max(0, raw[1]), MAX_DIFFERENCING),
            min(max(0, raw[2]), MAX_ORDER),
        )
        if clamped != raw:
            logger.warning("ARIMA order %s out of range, using %s", raw, clamped)
        return cls(*clamped)


@dataclass(frozen=True)
class ArimaParameters:
    ar: Tuple[float, ...]
    ma: Tuple[float, ...]


@dataclass(frozen=True, eq=False)
class FitResult:
    start: int
    fitted: np.ndarray
    residuals: np.ndarray


@dataclass(frozen=True, eq=False)
class ArimaResult:
    order: ArimaOrder
    parameters: ArimaParameters
    original_length: int
    fitted_values: np.ndarray
    residuals: np.ndarray
    forecast: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    metrics: ArimaMetrics
    confidence: float = DEFAULT_CONFIDENCE
    ljung_box_stat: float = float("nan")
    ljung_box_pvalue: float = float("nan")
    warning: Optional[str] = None
    insufficient_data: bool = False
    mean: float = 0.0

    def to_dict(self) -> dict:
        return {
            "parameters": {
                "ar": list(self.parameters.ar),
                "ma": list(self.parameters.ma),
                "p": self.order.p,
                "d": self.order.d,
                "q": self.order.q,
            },
            "originalLength": self.original_length,
            "fittedValues": self.fitted_values.tolist(),
            "residuals": self.residuals.tolist(),
            "forecast": self.forecast.tolist(),
            "forecastIntervals": {"lower": self.lower.tolist(), "upper": self.upper.tolist()},
            "metrics": self.metrics.to_dict(),
            "diagnostics": {"ljungBox": self.ljung_box_stat, "ljungBoxPValue": self.ljung_box_pvalue},
            "warning": self.warning,
            "insufficientData": self.insufficient_data,
        }


# -----------------------------
# Fit / forecast recursions
# -----------------------------

def fit_series(series: Sequence[float], ar: Sequence[float], ma: Sequence[float]) -> FitResult:
    """One-step-ahead fitted values and residuals from index max(p, q) on.

    MA terms only use residuals already computed; `history` holds them most
    recent first.
    """
    y = np.asarray(series, dtype=float)
    ar = [float(a) for a in ar]
    ma = [float(m) for m in ma]
    start = max(len(ar), len(ma))

    history: deque = deque(maxlen=len(ma))
    fitted: List[float] = []
    residuals: List[float] = []
    for i in range(start, y.size):
        yhat = sum(a * y[i - j - 1] for j, a in enumerate(ar))
        yhat += sum(m * r for m, r in zip(ma, history))
        resid = y[i] - yhat
        fitted.append(yhat)
        residuals.append(resid)
        history.appendleft(resid)

    return FitResult(start=start, fitted=np.asarray(fitted, dtype=float), residuals=np.asarray(residuals, dtype=float))


def forecast(series: Sequence[float], ar: Sequence[float], ma: Sequence[float], steps: int) -> np.ndarray:
    """Extend `series` by `steps` values.

    Future residuals are unobservable and taken as zero, so each step appends
    0.0 to the residual history.
    """
    work = [float(v) for v in np.asarray(series, dtype=float)]
    ar = [float(a) for a in ar]
    ma = [float(m) for m in ma]

    history: deque = deque(maxlen=len(ma))
    out: List[float] = []
    for _ in range(max(0, int(steps))):
        yhat = sum(a * v for a, v in zip(ar, reversed(work)))
        yhat += sum(m * r for m, r in zip(ma, history))
        out.append(yhat)
        work.append(yhat)
        history.appendleft(0.0)
    return np.asarray(out, dtype=float)


# -----------------------------
# Parameter estimation
# -----------------------------

def _refine_ma(series: np.ndarray, ar: Sequence[float], initial: float, grid: MAGridConfig) -> float:
    best_theta, best_aic = initial, math.inf
    with np.errstate(over="ignore", invalid="ignore"):
        for theta in grid.values():
            fit = fit_series(series, ar, [theta])
            aic, _ = info_criteria(fit.residuals, len(ar) + 1)
            if math.isfinite(aic) and aic < best_aic:
                best_aic = aic
                best_theta = float(theta)
    return best_theta


def estimate_params(
    series: Sequence[float],
    p: int,
    q: int,
    d: int = 0,
    ma_grid: Optional[MAGridConfig] = None,
    demean: bool = False,
) -> ArimaParameters:
    """Estimate AR/MA coefficients on the `d`-times differenced series.

    Only AR(1) and MA(1) are estimated; orders above 1 are zero-padded.
    With `demean`, the MA grid search runs on the mean-centred series.
    """
    p, q = max(0, int(p)), max(0, int(q))
    s = difference(series, d)
    n = s.size
    if n < MIN_ESTIMATION_POINTS:
        logger.debug("Only %d point(s) after differencing, returning zero coefficients", n)
        return ArimaParameters(ar=(0.0,) * p, ma=(0.0,) * q)

    # acovf divides every lag by n, which cancels in the ratios below
    gamma = acovf(s, adjusted=False, demean=True, fft=False, nlag=2)
    var0 = max(float(gamma[0]), VARIANCE_FLOOR)

    ar: List[float] = []
    if p >= 1:
        ar.append(float(gamma[1]) / var0)
    ar += [0.0] * (p - len(ar))

    ma: List[float] = []
    if q >= 1:
        if n >= 3:
            initial = float(np.clip(float(gamma[2]) / var0, -MA_INITIAL_CLAMP, MA_INITIAL_CLAMP))
        else:
            initial = MA_DEFAULT_GUESS
        target = s - s.mean() if demean else s
        ma.append(_refine_ma(target, ar, initial, ma_grid or MAGridConfig()))
    ma += [0.0] * (q - len(ma))

    logger.debug("Estimated ar=%s ma=%s on %d differenced points", ar, ma, n)
    return ArimaParameters(ar=tuple(ar), ma=tuple(ma))


# -----------------------------
# Analysis pipeline
# -----------------------------

def _resolve_options(options: Optional[Mapping], **defaults: Any) -> dict:
    resolved = dict(defaults)
    if options:
        resolved.update({k: options[k] for k in defaults if k in options})
    return resolved


def _insufficient_result(prepared: np.ndarray, order: ArimaOrder, horizon: int, confidence: float) -> ArimaResult:
    last = float(prepared[-1]) if prepared.size else None
    fc = naive_forecast(last, horizon)
    empty = np.array([], dtype=float)
    return ArimaResult(
        order=order,
        parameters=ArimaParameters(ar=(0.0,) * order.p, ma=(0.0,) * order.q),
        original_length=int(prepared.size),
        fitted_values=empty,
        residuals=empty,
        forecast=fc,
        lower=fc.copy(),
        upper=fc.copy(),
        metrics=arima_metrics(empty, order.p + order.q),
        confidence=confidence,
        warning=INSUFFICIENT_DATA_WARNING,
        insufficient_data=True,
    )


def _analyze_series(
    prepared: np.ndarray,
    order: Any,
    forecast_periods: int,
    log1p: bool,
    include_mean: bool,
    confidence: float,
    ma_grid: Optional[MAGridConfig],
) -> ArimaResult:
    order = ArimaOrder.coerce(order)
    horizon = coerce_horizon(forecast_periods, "forecast_periods")
    d = order.d

    scaled = log1p_forward(prepared) if log1p else prepared.copy()
    s = difference(scaled, d)
    if s.size < MIN_ESTIMATION_POINTS:
        logger.warning("Insufficient data for ARIMA%s: %d point(s)", (order.p, order.d, order.q), prepared.size)
        return _insufficient_result(prepared, order, horizon, confidence)

    mean = float(s.mean()) if include_mean else 0.0
    params = estimate_params(scaled, order.p, order.q, d, ma_grid=ma_grid, demean=include_mean)

    centred = s - mean
    fit = fit_series(centred, params.ar, params.ma)
    fitted_diff = fit.fitted + mean
    forecast_diff = forecast(centred, params.ar, params.ma, horizon) + mean

    if d > 0:
        # The first fitted point maps to scaled[start + d]; rebuild it from the values before it
        if fitted_diff.size:
            fitted_scaled = integrate(fitted_diff, difference_anchors(scaled, d, fit.start + d - 1))
        else:
            fitted_scaled = fitted_diff
        forecast_scaled = integrate(forecast_diff, difference_anchors(scaled, d, scaled.size - 1))
    else:
        fitted_scaled, forecast_scaled = fitted_diff, forecast_diff

    if log1p:
        fitted_values, forecast_values = log1p_inverse(fitted_scaled), log1p_inverse(forecast_scaled)
    else:
        fitted_values, forecast_values = fitted_scaled, forecast_scaled

    residuals = prepared[prepared.size - fitted_values.size:] - fitted_values
    metrics = arima_metrics(residuals, len(params.ar) + len(params.ma))
    margin = z_for(confidence) * metrics.rmse
    lower = forecast_values - margin
    if log1p:
        lower = np.maximum(0.0, lower)
    lb_stat, lb_pvalue = ljung_box(residuals)

    return ArimaResult(
        order=order,
        parameters=params,
        original_length=int(prepared.size),
        fitted_values=fitted_values,
        residuals=residuals,
        forecast=forecast_values,
        lower=lower,
        upper=forecast_values + margin,
        metrics=metrics,
        confidence=confidence,
        ljung_box_stat=lb_stat,
        ljung_box_pvalue=lb_pvalue,
        warning=FEW_OBSERVATIONS_WARNING if prepared.size < FEW_OBSERVATIONS else None,
        mean=mean,
    )


def analyze(
    observations: Iterable[Any],
    order: Any = None,
    forecast_periods: int = DEFAULT_FORECAST_PERIODS,
    options: Optional[Mapping] = None,
    *,
    log1p: bool = False,
    include_mean: bool = True,
    confidence: float = DEFAULT_CONFIDENCE,
    ma_grid: Optional[MAGridConfig] = None,
) -> ArimaResult:
    """ARIMA analysis of timestamped observations (bucketed into daily totals first).

    `options` may carry `log1p`, `include_mean` and `confidence`, overriding the
    keyword arguments.
    """
    opts = _resolve_options(options, log1p=log1p, include_mean=include_mean, confidence=confidence)
    prepared = prepare_daily_series(observations)
    return _analyze_series(prepared, order, forecast_periods, bool(opts["log1p"]),
                           bool(opts["include_mean"]), float(opts["confidence"]), ma_grid)


def analyze_values(
    values: Iterable[Any],
    order: Any = None,
    forecast_periods: int = DEFAULT_FORECAST_PERIODS,
    options: Optional[Mapping] = None,
    *,
    log1p: bool = False,
    include_mean: bool = True,
    confidence: float = DEFAULT_CONFIDENCE,
    ma_grid: Optional[MAGridConfig] = None,
) -> ArimaResult:
    """ARIMA analysis of an evenly spaced numeric sequence (non-finite entries dropped)."""
    opts = _resolve_options(options, log1p=log1p, include_mean=include_mean, confidence=confidence)
    prepared = series_from_values(values)
    return _analyze_series(prepared, order, forecast_periods, bool(opts["log1p"]),
                           bool(opts["include_mean"]), float(opts["confidence"]), ma_grid)


def auto_detect_parameters(
    values: Iterable[Any],
    candidates: Optional[Sequence[Any]] = None,
    log1p: bool = False,
) -> ArimaOrder:
    """Pick the candidate order with the lowest finite AIC; the default order if none qualifies.

    `values` is a plain numeric sequence; use `auto_detect_from_observations`
    for timestamped data.
    """
    return _best_order(series_from_values(values), candidates, log1p)


def auto_detect_from_observations(
    observations: Iterable[Any],
    candidates: Optional[Sequence[Any]] = None,
    log1p: bool = False,
) -> ArimaOrder:
    """Order selection on timestamped observations, bucketed into daily totals first."""
    return _best_order(prepare_daily_series(observations), candidates, log1p)


def _best_order(series: np.ndarray, candidates: Optional[Sequence[Any]], log1p: bool) -> ArimaOrder:
    best, best_aic = ArimaOrder.coerce(DEFAULT_ORDER), math.inf
    for candidate in candidates or AUTO_ORDER_CANDIDATES:
        result = _analyze_series(series, candidate, 1, log1p, True, DEFAULT_CONFIDENCE, None)
        if result.insufficient_data:
            continue
        aic = result.metrics.aic
        if math.isfinite(aic) and aic < best_aic:
            best, best_aic = result.order, aic
    logger.debug("Auto-detected ARIMA%s (AIC=%s)", (best.p, best.d, best.q), best_aic)
    return best
