# tests/test_metrics.py

import numpy as np
import pytest

from spEnviroDistrPy.metrics import adjusted_r2, regression_metrics, rmse


def test_perfect_match():
    """A perfect prediction has zero error and R2 of one."""
    y = [1.0, 2.0, 3.0, 4.0]
    m = regression_metrics(y, y)
    assert m["n"] == 4
    assert m["MAE"] == pytest.approx(0.0)
    assert m["RMSE"] == pytest.approx(0.0)
    assert m["R2"] == pytest.approx(1.0)


def test_rmse_known_value():
    """RMSE of a constant offset equals the offset."""
    assert rmse([1.0, 2.0, 3.0], [2.0, 3.0, 4.0]) == pytest.approx(1.0)


def test_non_finite_pairs_are_dropped():
    """Pairs with NaN on either side are ignored."""
    m = regression_metrics([1.0, np.nan, 3.0, 4.0], [1.0, 2.0, np.nan, 4.0])
    assert m["n"] == 2
    assert m["MAE"] == pytest.approx(0.0)


def test_zero_variance_returns_nan_r2():
    """R2 is undefined when the observed values are constant."""
    m = regression_metrics([5.0, 5.0, 5.0], [5.0, 5.0, 5.0])
    assert np.isnan(m["R2"])


def test_empty_input():
    m = regression_metrics([], [])
    assert m["n"] == 0
    assert np.isnan(m["RMSE"])


def test_shape_mismatch_raises():
    with pytest.raises(ValueError):
        regression_metrics([1.0, 2.0], [1.0, 2.0, 3.0])


def test_adjusted_r2():
    """Adjusted R2 follows 1 - (1 - R2)(n - 1)/(n - p - 1)."""
    assert adjusted_r2(0.8, 11, 2) == pytest.approx(1 - 0.2 * 10 / 8)
    assert np.isnan(adjusted_r2(0.8, 3, 2))
    m = regression_metrics([1.0, 2.0, 3.0, 4.0, 6.0], [1.1, 1.9, 3.2, 4.1, 5.7], n_params=1)
    assert m["adj_R2"] < m["R2"]
