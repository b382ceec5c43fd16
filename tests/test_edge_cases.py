import os, sys
import math
import numpy as np
import pytest
from concurrent.futures import ThreadPoolExecutor

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from arima_model import analyze, analyze_values
from holt_model import best_holt_forecast
from ts_core import DataError
from ts_series import prepare_daily_series

pytestmark = pytest.mark.edge_case

DAY = 86_400_000
START = 1_672_531_200_000


def _daily_obs(values, skip=()):
    return [
        {"timestamp": START + i * DAY + 3_600_000, "value": v}
        for i, v in enumerate(values) if i not in skip
    ]


def test_empty_pipeline_does_not_crash():
    """Empty input flows through preprocessing and analysis without raising."""
    assert prepare_daily_series([]).size == 0
    result = analyze([], {"p": 1, "d": 1, "q": 0}, 3)
    assert result.insufficient_data
    assert len(result.forecast) == 3


def test_single_day_pipeline():
    obs = [{"timestamp": START + k * 60_000, "value": 2.0} for k in range(5)]
    assert prepare_daily_series(obs).tolist() == [10.0]
    result = analyze(obs, (1, 0, 1), 2)
    assert result.insufficient_data
    assert result.forecast.tolist() == [10.0, 10.0]


def test_gappy_observations_analyze():
    values = [float(10 + i) for i in range(30)]
    obs = _daily_obs(values, skip={5, 6, 7, 20})
    result = analyze(obs, (1, 1, 1), 5)
    assert result.original_length == 30
    assert len(result.forecast) == 5
    assert all(math.isfinite(v) for v in result.forecast)


def test_zero_variance_series():
    result = analyze_values([5.0] * 20, (1, 0, 1), 4)
    assert all(math.isfinite(v) for v in result.parameters.ar + result.parameters.ma)
    assert np.allclose(result.forecast, 5.0)
    assert math.isfinite(result.metrics.aic)


@pytest.mark.parametrize("d", [0, 1, 2])
@pytest.mark.parametrize("log1p", [False, True])
def test_every_differencing_order(d, log1p):
    rng = np.random.default_rng(d)
    y = 20 + np.cumsum(rng.uniform(0, 2, size=25))
    result = analyze_values(y, (1, d, 1), 7, log1p=log1p)
    assert len(result.forecast) == 7
    assert len(result.fitted_values) == len(result.residuals)
    assert all(math.isfinite(v) for v in result.forecast)


def test_high_orders_are_zero_padded():
    result = analyze_values(np.linspace(1, 40, 40) + np.sin(np.arange(40)), (5, 1, 5), 3)
    assert len(result.parameters.ar) == 5
    assert len(result.parameters.ma) == 5
    assert result.parameters.ar[1:] == (0.0,) * 4


def test_negative_values_with_log1p_clamp_to_zero():
    result = analyze_values([-5.0, -3.0, -4.0, -6.0, -2.0, -1.0], (1, 1, 0), 3, log1p=True)
    assert (result.forecast >= 0).all()


def test_holt_ignores_non_finite_points():
    clean = best_holt_forecast([1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0], 2)
    noisy = best_holt_forecast([1.0, 2.0, float("nan"), 3.0, 4.0, float("inf"), 5.0, 6.0, 7.0, 8.0], 2)
    assert np.allclose(clean.point_forecasts, noisy.point_forecasts)


def test_invalid_container_raises():
    with pytest.raises(DataError):
        analyze(None)
    with pytest.raises(DataError):
        analyze_values("1,2,3")
    with pytest.raises(DataError):
        best_holt_forecast(42, 3)


def test_concurrent_requests_are_independent():
    rng = np.random.default_rng(7)
    series = [50 + np.cumsum(rng.normal(0, 1, size=40)) for _ in range(4)]
    expected = [analyze_values(s, (1, 1, 1), 5).forecast for s in series]

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda s: analyze_values(s, (1, 1, 1), 5).forecast, series))

    for got, want in zip(results, expected):
        assert np.allclose(got, want)


@pytest.mark.parametrize("order", [
    {"p": float("inf"), "d": 1, "q": 1},
    {"p": 1, "d": float("-inf"), "q": 1},
    (1, 1, float("nan")),
])
def test_non_finite_order_raises_data_error(order):
    with pytest.raises(DataError):
        analyze_values(range(1, 20), order, 3)


def test_huge_orders_are_clamped():
    result = analyze_values(np.linspace(1, 30, 30), {"p": 10**9, "d": 1, "q": 10**9}, 2)
    assert (result.order.p, result.order.q) == (5, 5)
    assert len(result.parameters.ar) == 5
    assert len(result.parameters.ma) == 5


@pytest.mark.parametrize("horizon", [float("inf"), float("nan"), "soon", None])
def test_non_finite_horizon_raises_data_error(horizon):
    with pytest.raises(DataError):
        analyze_values(range(1, 20), (1, 1, 0), horizon)
    with pytest.raises(DataError):
        best_holt_forecast(range(1, 20), horizon)
