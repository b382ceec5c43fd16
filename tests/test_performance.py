import os, sys, time
import numpy as np
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from arima_model import analyze
from holt_model import best_holt_forecast

pytestmark = pytest.mark.performance

DAY = 86_400_000
START = 1_672_531_200_000


def _year_of_observations(seed=11):
    rng = np.random.default_rng(seed)
    values = 200 + 0.3 * np.arange(365) + 15 * np.sin(np.arange(365) * 2 * np.pi / 7) + rng.normal(0, 5, 365)
    return [{"timestamp": START + i * DAY, "value": float(v)} for i, v in enumerate(values)]


def test_arima_year_of_daily_data():
    obs = _year_of_observations()
    t0 = time.time()
    result = analyze(obs, (1, 1, 1), 30)
    elapsed = time.time() - t0
    assert len(result.forecast) == 30
    assert elapsed < 10.0


def test_holt_year_of_daily_data():
    values = [o["value"] for o in _year_of_observations()]
    t0 = time.time()
    result = best_holt_forecast(values, 30)
    elapsed = time.time() - t0
    assert len(result.point_forecasts) == 30
    assert result.test_length == 24
    assert elapsed < 10.0
