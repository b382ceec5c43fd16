import os, sys, math
import numpy as np
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from ts_metrics import accuracy, arima_metrics, info_criteria, ljung_box, mae, residual_std, rmse, z_for


def test_mae_rmse_values():
    assert mae([1.0, -3.0]) == pytest.approx(2.0)
    assert rmse([3.0, -4.0]) == pytest.approx(math.sqrt(12.5))


def test_mae_rmse_empty_is_zero():
    assert mae([]) == 0.0
    assert rmse([]) == 0.0


def test_info_criteria_formula():
    r = [1.0, -1.0, 1.0, -1.0]
    n, k = 4, 2
    log_l = -0.5 * n * math.log(2 * math.pi * 1.0) - 0.5 * n
    aic, bic = info_criteria(r, k)
    assert aic == pytest.approx(-2 * log_l + 2 * k)
    assert bic == pytest.approx(-2 * log_l + k * math.log(n))


def test_info_criteria_zero_residuals_are_finite():
    aic, bic = info_criteria([0.0, 0.0, 0.0], 1)
    assert math.isfinite(aic) and math.isfinite(bic)
    aic, bic = info_criteria([], 1)
    assert math.isfinite(aic) and math.isfinite(bic)


def test_arima_metrics_bundle():
    m = arima_metrics([1.0, -1.0], 1)
    assert m.mae == pytest.approx(1.0)
    assert m.rmse == pytest.approx(1.0)
    assert set(m.to_dict()) == {"mae", "rmse", "aic", "bic"}


def test_accuracy_values():
    m = accuracy([100.0, 200.0], [110.0, 190.0])
    assert m.MAE == pytest.approx(10.0)
    assert m.RMSE == pytest.approx(10.0)
    assert m.MAPE == pytest.approx(7.5)
    assert m.sMAPE == pytest.approx((20 / 210 + 20 / 390) / 2 * 100)


def test_accuracy_skips_zero_actuals_in_mape():
    m = accuracy([0.0, 10.0], [1.0, 12.0])
    assert m.MAPE == pytest.approx(20.0)
    assert m.sMAPE == pytest.approx((2.0 + 4.0 / 22.0) / 2 * 100)


def test_accuracy_all_zero():
    m = accuracy([0.0, 0.0], [0.0, 0.0])
    assert m.MAE == 0.0
    assert m.MAPE is None
    assert m.sMAPE is None


def test_accuracy_empty():
    m = accuracy([], [])
    assert math.isnan(m.MAE) and math.isnan(m.RMSE)
    assert m.MAPE is None and m.sMAPE is None


@pytest.mark.parametrize("level,z", [(0.95, 1.96), (0.99, 2.58), (0.90, 1.645), (0.8, 1.96)])
def test_z_for(level, z):
    assert z_for(level) == z


def test_residual_std_uses_n_minus_one():
    assert residual_std([1.0, -1.0, 1.0]) == pytest.approx(math.sqrt(3 / 2))
    assert residual_std([2.0]) == pytest.approx(2.0)


def test_ljung_box_too_short_is_nan():
    stat, p = ljung_box([1.0, 2.0])
    assert math.isnan(stat) and math.isnan(p)


def test_ljung_box_constant_is_nan():
    stat, p = ljung_box([0.0] * 20)
    assert math.isnan(stat) and math.isnan(p)


def test_ljung_box_white_noise():
    r = np.random.default_rng(0).normal(size=60)
    stat, p = ljung_box(r)
    assert stat >= 0
    assert 0.0 <= p <= 1.0
