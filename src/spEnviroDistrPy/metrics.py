# SPDX-License-Identifier: MIT
"""
Goodness-of-fit metrics for the downscaling regressions.

This module provides a small, focused set of metrics reported alongside
every fitted model:

- :func:`rmse`: root mean squared error.
- :func:`adjusted_r2`: coefficient of determination penalised by the
  number of predictors.
- :func:`regression_metrics`: n, MAE, RMSE, R² and adjusted R² in a
  single dict.

Key design choices
------------------
* Inputs are accepted as any iterable (lists, NumPy arrays, pandas Series).
* Pairs where either value is not finite are dropped before scoring, since
  grids mark missing cells with ``NaN``.
* Outputs are plain ``float`` or ``numpy.nan`` when the metric is undefined
  (for instance, zero variance in the observed values).
* R² is ``sklearn.metrics.r2_score``, i.e. the share of variance explained
  by an in-sample fit, not a squared correlation.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------


def _as_arrays(
    y_true: Iterable[float],
    y_pred: Iterable[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert *y_true* and *y_pred* to flat float arrays, check that they
    share the same shape and drop the non-finite pairs.

    Raises
    ------
    ValueError
        If the shapes of *y_true* and *y_pred* do not match.
    """
    yt = np.asarray(y_true, dtype=float)
    yp = np.asarray(y_pred, dtype=float)

    if yt.shape != yp.shape:
        raise ValueError(
            f"Shapes of y_true {yt.shape} and y_pred {yp.shape} do not match."
        )
    yt = yt.ravel()
    yp = yp.ravel()
    ok = np.isfinite(yt) & np.isfinite(yp)
    return yt[ok], yp[ok]


# ---------------------------------------------------------------------
# Single metrics
# ---------------------------------------------------------------------


def rmse(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """Root mean squared error; ``np.nan`` for empty input."""
    yt, yp = _as_arrays(y_true, y_pred)
    if yt.size == 0:
        return np.nan
    return float(np.sqrt(mean_squared_error(yt, yp)))


def adjusted_r2(r2: float, n: int, n_params: int) -> float:
    """
    Adjusted coefficient of determination.

    .. math::

        \\bar{R}^2 = 1 - (1 - R^2) \\frac{n - 1}{n - p - 1}

    where *p* is the number of predictors (intercept excluded). Returns
    ``np.nan`` when ``n - p - 1 <= 0`` or *r2* is undefined.
    """
    dof = n - n_params - 1
    if dof <= 0 or not np.isfinite(r2):
        return np.nan
    return float(1.0 - (1.0 - r2) * (n - 1) / dof)


# ---------------------------------------------------------------------
# Combined regression metrics
# ---------------------------------------------------------------------


def regression_metrics(
    y_true: Iterable[float],
    y_pred: Iterable[float],
    n_params: Optional[int] = None,
) -> Dict[str, float]:
    """
    Compute the standard fit summary of a regression:

    - ``n``: number of scored (finite) pairs
    - Mean Absolute Error (``MAE``)
    - Root Mean Squared Error (``RMSE``)
    - Coefficient of determination (``R2``)
    - Adjusted R² (``adj_R2``), only when *n_params* is given

    Degenerate cases
    ----------------
    Empty input gives ``NaN`` everywhere (and ``n = 0``). ``R2`` is ``NaN``
    with fewer than two pairs or when the observed values are constant.
    """
    yt, yp = _as_arrays(y_true, y_pred)
    n = int(yt.size)

    if n == 0:
        return {"n": 0, "MAE": np.nan, "RMSE": np.nan, "R2": np.nan, "adj_R2": np.nan}

    mae = float(mean_absolute_error(yt, yp))
    rmse_val = float(np.sqrt(mean_squared_error(yt, yp)))

    if n < 2 or float(np.var(yt)) == 0.0:
        r2 = np.nan
    else:
        r2 = float(r2_score(yt, yp))

    adj = adjusted_r2(r2, n, int(n_params)) if n_params is not None else np.nan

    return {"n": n, "MAE": mae, "RMSE": rmse_val, "R2": r2, "adj_R2": adj}


__all__ = [
    "rmse",
    "adjusted_r2",
    "regression_metrics",
]
