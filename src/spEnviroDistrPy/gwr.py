# SPDX-License-Identifier: MIT
"""
Geographically Weighted Regression (GWR)
========================================

GWR fits one weighted least-squares model per location, weighting nearby
observations more heavily, so coefficients may vary across space
(Brunsdon, Fotheringham & Charlton, 1996). This module wraps the
:mod:`mgwr` solver in the workflow used for downscaling:

1. select a fixed kernel bandwidth by cross-validation,
2. select an adaptive (nearest-neighbour) bandwidth by cross-validation,
3. fit the local models with the adaptive bandwidth at the observation
   locations, keeping the hat matrix for diagnostics,
4. optionally predict at new locations (*fit points*) with the same
   bandwidth.

Main entry points
-----------------
- :func:`apply_gwr`
- :class:`GWRStrategy` (used by :func:`spEnviroDistrPy.downscaling.downscale`)
- :class:`GWRModel`

Runtime dependencies
--------------------
- joblib
- mgwr
- numpy
- pandas
- tqdm

References
----------
Fotheringham, A. S., Brunsdon, C., & Charlton, M. (2002). Geographically
Weighted Regression: The Analysis of Spatially Varying Relationships. Wiley.
"""

from __future__ import annotations

import warnings
from contextlib import nullcontext
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import parallel_config
from mgwr.gwr import GWR
from mgwr.sel_bw import Sel_BW
from tqdm.auto import tqdm

from .cluster import Cluster
from .errors import InvalidArgument, ModelFitFailure
from .metrics import regression_metrics
from .regression import (
    SOLVER_ERRORS,
    Formula,
    LinearModel,
    OLSStrategy,
    RegressionMethod,
    RegressionStrategy,
    _check_columns,
)

__all__ = ["GWRModel", "GWRStrategy", "apply_gwr", "set_warning_policy"]


GWR_KERNELS = ("gaussian", "bisquare", "exponential")
GWR_CRITERIA = ("CV", "AICc", "AIC", "BIC")


# ---------------------------------------------------------------------
# Warning policy (silence harmless solver warnings by default)
# ---------------------------------------------------------------------


def set_warning_policy(silence: bool = True) -> None:
    """
    Control warnings coming from the GWR solver stack.

    Parameters
    ----------
    silence : bool
        If True, ignore Future/Deprecation warnings raised inside ``mgwr``
        and ``spglm`` and the ``RuntimeWarning`` of near-singular local fits
        during the bandwidth search. If False, show them again.
    """
    action = "ignore" if silence else "default"
    for module in (r"mgwr(\..*)?", r"spglm(\..*)?"):
        warnings.filterwarnings(action, category=FutureWarning, module=module)
        warnings.filterwarnings(action, category=DeprecationWarning, module=module)
        warnings.filterwarnings(action, category=RuntimeWarning, module=module)


set_warning_policy(True)


# ---------------------------------------------------------------------
# Fitted model
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class GWRModel:
    """Result of the GWR workflow.

    Attributes
    ----------
    formula :
        Formula the local models were fitted with.
    fixed_bandwidth :
        Distance bandwidth selected by cross-validation (diagnostic only).
    adaptive_bandwidth :
        Number of nearest neighbours selected by cross-validation; this is
        the bandwidth the local models use.
    kernel, criterion, spherical :
        Settings of the search and of the fits.
    results :
        ``mgwr`` ``GWRResults`` at the observation locations.
    hat_matrix :
        Hat (Leung et al. *L*) matrix of the diagnostic fit, or ``None``.
    ols :
        Global OLS model on the same formula and data.
    metrics :
        In-sample summary (n, MAE, RMSE, R2, adj_R2) plus ``AICc`` and ``ENP``.
    data :
        Complete-case point table the local models were fitted on.
    local :
        Per-observation table: ``x``, ``y``, local coefficients,
        ``localR2`` and fitted ``pred``.
    prediction :
        List of ``GWRResults`` of the prediction pass (one per batch of fit
        points), when fit points were given.
    points :
        Per-fit-point table: ``x``, ``y``, local coefficients and ``pred``.
    """

    formula: Formula
    fixed_bandwidth: float
    adaptive_bandwidth: float
    kernel: str
    criterion: str
    spherical: bool
    results: Any
    hat_matrix: Optional[np.ndarray]
    ols: LinearModel
    metrics: Dict[str, float]
    data: pd.DataFrame
    local: pd.DataFrame
    prediction: Any = None
    points: Optional[pd.DataFrame] = None

    method = RegressionMethod.GWR

    @property
    def bandwidth(self) -> float:
        return self.adaptive_bandwidth

    @property
    def term_names(self) -> Tuple[str, ...]:
        return ("Intercept",) + self.formula.predictors


def _complete_cases(data: pd.DataFrame, formula: Formula) -> pd.DataFrame:
    _check_columns(data, ("x", "y") + formula.columns)
    return data[["x", "y"] + list(formula.columns)].dropna().reset_index(drop=True)


def _arrays(d: pd.DataFrame, formula: Formula) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    coords = d[["x", "y"]].to_numpy(dtype=float)
    y = d[[formula.response]].to_numpy(dtype=float)
    X = d[list(formula.predictors)].to_numpy(dtype=float)
    return coords, y, X


def _coefficient_table(coords: np.ndarray, params: np.ndarray, names) -> pd.DataFrame:
    table = pd.DataFrame({"x": coords[:, 0], "y": coords[:, 1]})
    for k, name in enumerate(names):
        table[name] = params[:, k]
    return table


# ---------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------


class GWRStrategy(RegressionStrategy):
    """
    GWR behind the common fit/predict interface.

    Parameters
    ----------
    kernel : {"gaussian", "bisquare", "exponential"}
        Weighting kernel for both the bandwidth search and the fits.
    criterion : {"CV", "AICc", "AIC", "BIC"}
        Bandwidth selection criterion.
    spherical : bool
        Treat ``x``/``y`` as longitude/latitude and use great-circle
        distances.
    cluster : Cluster, optional
        Worker pool. ``mgwr`` starts its own joblib workers for every fit
        and bandwidth evaluation; the cluster sets their number
        (``n_jobs``) and backend.
    show_progress_steps : bool
        Print each step of the workflow.
    """

    method = RegressionMethod.GWR

    def __init__(
        self,
        kernel: str = "gaussian",
        criterion: str = "CV",
        spherical: bool = False,
        cluster: Optional[Cluster] = None,
        show_progress_steps: bool = False,
    ) -> None:
        if kernel not in GWR_KERNELS:
            raise InvalidArgument(f"kernel must be one of {GWR_KERNELS}, got {kernel!r}.")
        if criterion not in GWR_CRITERIA:
            raise InvalidArgument(f"criterion must be one of {GWR_CRITERIA}, got {criterion!r}.")
        if cluster is not None and cluster.closed:
            raise InvalidArgument("The cluster passed to GWR has been closed.")
        self.kernel = kernel
        self.criterion = criterion
        self.spherical = bool(spherical)
        self.n_jobs = cluster.n_jobs if cluster is not None else 1
        self.backend = cluster.backend if cluster is not None else None
        self.show_progress_steps = show_progress_steps

    def _step(self, msg: str) -> None:
        if self.show_progress_steps:
            tqdm.write(f"[gwr] {msg}")

    def _workers(self):
        """joblib backend scope of the mgwr calls."""
        if self.backend is None:
            return nullcontext()
        return parallel_config(backend=self.backend)

    def _search(self, coords, y, X, fixed: bool) -> float:
        selector = Sel_BW(
            coords,
            y,
            X,
            kernel=self.kernel,
            fixed=fixed,
            spherical=self.spherical,
            n_jobs=self.n_jobs,
        )
        if fixed:
            return float(selector.search(criterion=self.criterion))
        # neighbour counts between the smallest solvable window and all points
        n, k = X.shape[0], X.shape[1] + 1
        return float(
            selector.search(criterion=self.criterion, bw_min=min(k + 2, n), bw_max=n)
        )

    def _model(self, coords, y, X, bw: float, hat_matrix: bool = False) -> GWR:
        return GWR(
            coords,
            y,
            X,
            bw,
            kernel=self.kernel,
            fixed=False,
            spherical=self.spherical,
            hat_matrix=hat_matrix,
            n_jobs=self.n_jobs,
        )

    def fit(self, data: pd.DataFrame, formula: Formula) -> GWRModel:
        train = _complete_cases(data, formula)
        coords, y, X = _arrays(train, formula)
        if len(y) <= len(formula.predictors) + 1:
            raise ModelFitFailure(
                f"GWR needs more than {len(formula.predictors) + 1} complete observations, got {len(y)}."
            )
        try:
            with self._workers():
                self._step("Obtaining bandwidth")
                bw_fixed = self._search(coords, y, X, fixed=True)

                self._step("Obtaining adaptive bandwidth")
                bw_adapt = self._search(coords, y, X, fixed=False)

                self._step("Estimating parameters")
                results = self._model(coords, y, X, bw_adapt, hat_matrix=True).fit()
        except SOLVER_ERRORS as exc:
            raise ModelFitFailure(str(exc)) from exc

        names = ("Intercept",) + formula.predictors
        predy = np.asarray(results.predy, dtype=float).ravel()
        local = _coefficient_table(coords, np.asarray(results.params), names)
        local["localR2"] = np.asarray(results.localR2, dtype=float).ravel()
        local["pred"] = predy

        metrics = regression_metrics(y.ravel(), predy)
        metrics["AICc"] = float(results.aicc)
        metrics["ENP"] = float(results.ENP)

        return GWRModel(
            formula=formula,
            fixed_bandwidth=bw_fixed,
            adaptive_bandwidth=bw_adapt,
            kernel=self.kernel,
            criterion=self.criterion,
            spherical=self.spherical,
            results=results,
            hat_matrix=getattr(results, "S", None),
            ols=OLSStrategy().fit(train, formula),
            metrics=metrics,
            data=train,
            local=local,
        )

    def _predict_pass(self, model: GWRModel, data: pd.DataFrame):
        """Run the prediction pass; returns ``(results, mask, points table)``.

        ``mgwr`` fits a prediction location at the position of the training
        row with the same index, so locations are sent in batches of at most
        as many points as the model was trained on. ``results`` holds one
        ``GWRResults`` per batch.
        """
        _check_columns(data, ("x", "y") + model.formula.predictors)
        preds = list(model.formula.predictors)
        ok = np.isfinite(data[preds].to_numpy(dtype=float)).all(axis=1)
        ok &= np.isfinite(data[["x", "y"]].to_numpy(dtype=float)).all(axis=1)
        if not ok.any():
            return None, ok, None

        train, y, X = _arrays(model.data, model.formula)
        points = data.loc[ok, ["x", "y"]].to_numpy(dtype=float)
        P = data.loc[ok, preds].to_numpy(dtype=float)

        self._step("Predicting on the grid")
        batch = len(y)
        results = []
        try:
            with self._workers():
                for start in range(0, len(points), batch):
                    stop = start + batch
                    results.append(
                        self._model(train, y, X, model.adaptive_bandwidth).predict(
                            points[start:stop],
                            P[start:stop],
                            exog_scale=model.results.scale,
                            exog_resid=model.results.resid_response,
                        )
                    )
        except SOLVER_ERRORS as exc:
            raise ModelFitFailure(str(exc)) from exc

        params = np.concatenate([np.asarray(r.params) for r in results], axis=0)
        table = _coefficient_table(points, params, model.term_names)
        table["pred"] = np.concatenate(
            [np.asarray(r.predictions, dtype=float).ravel() for r in results]
        )
        return results, ok, table

    def predict(self, model: GWRModel, data: pd.DataFrame) -> np.ndarray:
        """Predictions at the rows of *data*; ``NaN`` where a predictor is missing."""
        _, ok, table = self._predict_pass(model, data)
        out = np.full(len(data), np.nan)
        if table is not None:
            out[ok] = table["pred"].to_numpy()
        return out

    def fit_predict(self, data: pd.DataFrame, formula: Formula, new_data: pd.DataFrame):
        """Fit, predict at *new_data* and attach the prediction pass to the model."""
        model = self.fit(data, formula)
        results, ok, table = self._predict_pass(model, new_data)
        out = np.full(len(new_data), np.nan)
        if table is not None:
            out[ok] = table["pred"].to_numpy()
        return replace(model, prediction=results, points=table), out


# ---------------------------------------------------------------------
# Functional entry point
# ---------------------------------------------------------------------


def apply_gwr(
    formula: Formula,
    data: pd.DataFrame,
    *,
    spherical: bool = True,
    cluster: Optional[Cluster] = None,
    fit_points: Optional[pd.DataFrame] = None,
    show_progress_steps: bool = False,
    kernel: str = "gaussian",
    criterion: str = "CV",
) -> GWRModel:
    """
    Apply Geographically Weighted Regression to a point table.

    Parameters
    ----------
    formula : Formula
        Model to fit, e.g. ``build_formula(["copper"], ["alt", "dist"])``.
    data : DataFrame
        Point table with ``x``, ``y`` and the formula columns (see
        :func:`~spEnviroDistrPy.conversion.to_spat_data`).
    spherical : bool, default True
        Treat coordinates as longitude/latitude.
    cluster : Cluster, optional
        Worker pool for the local fits.
    fit_points : DataFrame, optional
        Locations (``x``, ``y`` and predictor columns) to predict at. When
        omitted no prediction pass is made.
    show_progress_steps : bool, default False
        Print progress messages during the analysis.
    kernel, criterion :
        See :class:`GWRStrategy`.

    Returns
    -------
    GWRModel
        Diagnostic fit with bandwidths, hat matrix and OLS baseline, plus the
        prediction pass in ``prediction`` / ``points`` when *fit_points* is
        given.

    Examples
    --------
    >>> data = to_spat_data(meuse)
    >>> model = apply_gwr(build_formula(["copper"], ["alt", "dist"]), data, spherical=False)
    >>> model.adaptive_bandwidth
    """
    strategy = GWRStrategy(
        kernel=kernel,
        criterion=criterion,
        spherical=spherical,
        cluster=cluster,
        show_progress_steps=show_progress_steps,
    )
    if fit_points is None:
        return strategy.fit(data, formula)
    model, _ = strategy.fit_predict(data, formula, fit_points)
    return model
