from __future__ import annotations

import math
import warnings
from dataclasses import asdict, dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error
from statsmodels.stats.diagnostic import acorr_ljungbox

from ts_config import DEFAULT_CONFIDENCE, EPS, LJUNG_BOX_LAGS, VARIANCE_FLOOR, Z_SCORES


@dataclass(frozen=True)
class ArimaMetrics:
    mae: float
    rmse: float
    aic: float
    bic: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HoltMetrics:
    MAE: float
    RMSE: float
    MAPE: Optional[float]
    sMAPE: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


def mae(residuals: Sequence[float]) -> float:
    r = np.asarray(residuals, dtype=float)
    return float(np.abs(r).sum() / max(r.size, 1))


def rmse(residuals: Sequence[float]) -> float:
    r = np.asarray(residuals, dtype=float)
    return float(math.sqrt((r ** 2).sum() / max(r.size, 1)))


def info_criteria(residuals: Sequence[float], k: int) -> Tuple[float, float]:
    """AIC and BIC treating residuals as i.i.d. Gaussian with variance mean(r^2)."""
    r = np.asarray(residuals, dtype=float)
    n = max(r.size, 1)
    variance = max(float((r ** 2).sum()) / n, VARIANCE_FLOOR)
    log_l = -0.5 * n * math.log(2 * math.pi * variance) - 0.5 * n
    aic = -2 * log_l + 2 * k
    bic = -2 * log_l + k * math.log(n)
    return aic, bic


def arima_metrics(residuals: Sequence[float], k: int) -> ArimaMetrics:
    aic, bic = info_criteria(residuals, k)
    return ArimaMetrics(mae=mae(residuals), rmse=rmse(residuals), aic=aic, bic=bic)


def accuracy(actual: Sequence[float], predicted: Sequence[float]) -> HoltMetrics:
    """MAE, RMSE, MAPE and sMAPE (percent) over the overlapping prefix of both sequences."""
    n = min(len(actual), len(predicted))
    y = np.asarray(actual, dtype=float)[:n]
    yhat = np.asarray(predicted, dtype=float)[:n]
    if n == 0:
        return HoltMetrics(MAE=float("nan"), RMSE=float("nan"), MAPE=None, sMAPE=None)

    abs_err = np.abs(y - yhat)
    mask = np.abs(y) > EPS
    mape = float(np.mean(abs_err[mask] / np.abs(y[mask])) * 100) if mask.any() else None

    denom = np.abs(y) + np.abs(yhat)
    mask2 = denom > EPS
    smape = float(np.mean(2.0 * abs_err[mask2] / denom[mask2]) * 100) if mask2.any() else None

    return HoltMetrics(
        MAE=float(mean_absolute_error(y, yhat)),
        RMSE=float(np.sqrt(mean_squared_error(y, yhat))),
        MAPE=mape,
        sMAPE=smape,
    )


def z_for(confidence: float = DEFAULT_CONFIDENCE) -> float:
    """Two-sided normal quantile for the supported confidence levels; 1.96 otherwise."""
    for level, z in Z_SCORES.items():
        if math.isclose(confidence, level, abs_tol=1e-9):
            return z
    return Z_SCORES[DEFAULT_CONFIDENCE]


def residual_std(residuals: Sequence[float]) -> float:
    """Sample standard deviation about zero, denominator max(1, n - 1)."""
    r = np.asarray(residuals, dtype=float)
    return float(math.sqrt((r ** 2).sum() / max(1, r.size - 1)))


def ljung_box(residuals: Sequence[float], lags: int = LJUNG_BOX_LAGS) -> Tuple[float, float]:
    """Ljung-Box statistic and p-value at min(lags, n // 2); NaN when there is too little to test."""
    r = np.asarray(residuals, dtype=float)
    r = r[np.isfinite(r)]
    lag = min(int(lags), r.size // 2)
    if r.size < 3 or lag < 1 or np.allclose(r, r.mean()):
        return float("nan"), float("nan")

    with warnings.catch_warnings(), np.errstate(divide="ignore", invalid="ignore"):
        warnings.simplefilter("ignore", RuntimeWarning)
        result = acorr_ljungbox(r, lags=[lag], return_df=True)
    return float(result["lb_stat"].iloc[-1]), float(result["lb_pvalue"].iloc[-1])
