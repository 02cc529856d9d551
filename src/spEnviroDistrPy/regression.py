# SPDX-License-Identifier: MIT
"""
Regression methods used by the downscaling workflow.

Every supported method is a member of :class:`RegressionMethod` and maps to
a strategy object exposing the same small interface:

- ``fit(data, formula)`` returns an immutable fitted model,
- ``predict(model, data)`` returns one value per row of a point table,
- ``fit_predict(data, formula, new_data)`` chains both.

The global strategies (:class:`OLSStrategy`, :class:`GLMStrategy`) live
here; the geographically weighted one is in :mod:`spEnviroDistrPy.gwr`.

Runtime dependencies
--------------------
- numpy
- pandas
- scikit-learn
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.linear_model import (
    GammaRegressor,
    LinearRegression,
    PoissonRegressor,
    TweedieRegressor,
)

from .errors import InvalidArgument, ModelFitFailure, UnknownMethod
from .metrics import regression_metrics

__all__ = [
    "RegressionMethod",
    "Formula",
    "build_formula",
    "LinearModel",
    "RegressionStrategy",
    "OLSStrategy",
    "GLMStrategy",
    "SOLVER_ERRORS",
]


# Exceptions raised by numerical solvers that are surfaced as ModelFitFailure
SOLVER_ERRORS = (ValueError, ArithmeticError, np.linalg.LinAlgError)

GLM_FAMILIES = ("gaussian", "poisson", "gamma")


# ---------------------------------------------------------------------
# Method and formula
# ---------------------------------------------------------------------


class RegressionMethod(str, Enum):
    """Supported regression kinds."""

    LM = "lm"
    GLM = "glm"
    GWR = "gwr"

    @classmethod
    def parse(cls, method: Union[str, "RegressionMethod"]) -> "RegressionMethod":
        """Accept a member or a case-insensitive name (``"ols"`` aliases ``"lm"``)."""
        if isinstance(method, cls):
            return method
        key = method.strip().lower() if isinstance(method, str) else None
        if key == "ols":
            key = "lm"
        for member in cls:
            if member.value == key:
                return member
        raise UnknownMethod(f"method must be 'lm', 'glm' or 'gwr'; got {method!r}.")


@dataclass(frozen=True)
class Formula:
    """``response ~ predictor1 + predictor2 + ...``"""

    response: str
    predictors: Tuple[str, ...]

    def __str__(self) -> str:
        return f"{self.response} ~ {' + '.join(self.predictors)}"

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.response,) + self.predictors


def build_formula(response_names: Sequence[str], predictor_names: Sequence[str]) -> Formula:
    """
    Build the downscaling formula from layer names.

    The single response layer is the dependent variable and every predictor
    layer becomes an additive term.

    Raises
    ------
    InvalidArgument
        If there is not exactly one response layer, no predictor layer,
        repeated predictor names, or a predictor named like the response.
    """
    response_names = list(response_names)
    predictor_names = [str(p) for p in predictor_names]
    if len(response_names) != 1:
        raise InvalidArgument(
            f"The response must have exactly one layer, got {len(response_names)}."
        )
    response = str(response_names[0])
    if not predictor_names:
        raise InvalidArgument("At least one predictor layer is required.")
    if len(set(predictor_names)) != len(predictor_names):
        raise InvalidArgument(f"Predictor layer names repeat: {predictor_names}.")
    if response in predictor_names:
        raise InvalidArgument(
            f"Predictor layer {response!r} has the same name as the response; rename one of them."
        )
    return Formula(response=response, predictors=tuple(predictor_names))


def _check_columns(data: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise InvalidArgument(f"Data is missing the formula columns {missing}.")


def _design(data: pd.DataFrame, formula: Formula) -> Tuple[np.ndarray, np.ndarray]:
    """Complete-case design matrix and response vector for *formula*."""
    _check_columns(data, formula.columns)
    d = data[list(formula.columns)].dropna()
    X = d[list(formula.predictors)].to_numpy(dtype=float)
    y = d[formula.response].to_numpy(dtype=float)
    return X, y


# ---------------------------------------------------------------------
# Fitted global model
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class LinearModel:
    """A fitted OLS or GLM model.

    Attributes
    ----------
    method :
        :attr:`RegressionMethod.LM` or :attr:`RegressionMethod.GLM`.
    formula :
        Formula the model was fitted with.
    estimator :
        Fitted scikit-learn estimator.
    intercept, coefficients :
        Fitted parameters; coefficients keyed by predictor name.
    metrics :
        In-sample fit summary from :func:`~spEnviroDistrPy.metrics.regression_metrics`.
    family :
        GLM family (``"gaussian"`` for OLS).
    """

    method: RegressionMethod
    formula: Formula
    estimator: Any
    intercept: float
    coefficients: Dict[str, float]
    metrics: Dict[str, float]
    family: str = "gaussian"

    @property
    def n_obs(self) -> int:
        return int(self.metrics["n"])

    def predict(self, data: pd.DataFrame) -> np.ndarray:
        """Predictions for every row; ``NaN`` where a predictor is missing."""
        _check_columns(data, self.formula.predictors)
        X = data[list(self.formula.predictors)].to_numpy(dtype=float)
        out = np.full(X.shape[0], np.nan)
        ok = np.isfinite(X).all(axis=1)
        if ok.any():
            out[ok] = self.estimator.predict(X[ok])
        return out

    def summary(self) -> pd.DataFrame:
        """One-row-per-term table of the fitted parameters."""
        terms = ["(Intercept)"] + list(self.formula.predictors)
        est = [self.intercept] + [self.coefficients[p] for p in self.formula.predictors]
        return pd.DataFrame({"term": terms, "estimate": est})


# ---------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------


class RegressionStrategy:
    """Common fit/predict interface of every regression method."""

    method: RegressionMethod

    def fit(self, data: pd.DataFrame, formula: Formula):
        raise NotImplementedError

    def predict(self, model, data: pd.DataFrame) -> np.ndarray:
        raise NotImplementedError

    def fit_predict(self, data: pd.DataFrame, formula: Formula, new_data: pd.DataFrame):
        """Fit on *data* and predict *new_data*; returns ``(model, predictions)``."""
        model = self.fit(data, formula)
        return model, self.predict(model, new_data)


class OLSStrategy(RegressionStrategy):
    """Ordinary least squares through :class:`sklearn.linear_model.LinearRegression`."""

    method = RegressionMethod.LM
    family = "gaussian"

    def _estimator(self):
        return LinearRegression()

    def fit(self, data: pd.DataFrame, formula: Formula) -> LinearModel:
        X, y = _design(data, formula)
        est = self._estimator()
        try:
            est.fit(X, y)
        except SOLVER_ERRORS as exc:
            raise ModelFitFailure(str(exc)) from exc

        fitted = est.predict(X)
        coef = np.atleast_1d(np.asarray(est.coef_, dtype=float))
        return LinearModel(
            method=self.method,
            formula=formula,
            estimator=est,
            intercept=float(est.intercept_),
            coefficients={p: float(c) for p, c in zip(formula.predictors, coef)},
            metrics=regression_metrics(y, fitted, n_params=len(formula.predictors)),
            family=self.family,
        )

    def predict(self, model: LinearModel, data: pd.DataFrame) -> np.ndarray:
        return model.predict(data)


class GLMStrategy(OLSStrategy):
    """
    Generalised linear model with a canonical-ish link per family.

    ``"gaussian"`` (identity link, the default) reproduces OLS estimates;
    ``"poisson"`` and ``"gamma"`` use a log link and need a positive
    response. Fits are unpenalised (``alpha=0``) and use the Newton-Cholesky
    solver, which handles unscaled covariates such as elevation in metres.
    """

    method = RegressionMethod.GLM

    def __init__(
        self,
        family: str = "gaussian",
        max_iter: int = 1000,
        tol: float = 1e-8,
        solver: str = "newton-cholesky",
    ) -> None:
        family = str(family).lower()
        if family not in GLM_FAMILIES:
            raise InvalidArgument(f"GLM family must be one of {GLM_FAMILIES}, got {family!r}.")
        self.family = family
        self.solver = solver
        self.max_iter = int(max_iter)
        self.tol = float(tol)

    def _estimator(self):
        if self.family == "poisson":
            return PoissonRegressor(
                alpha=0.0, solver=self.solver, max_iter=self.max_iter, tol=self.tol
            )
        if self.family == "gamma":
            return GammaRegressor(
                alpha=0.0, solver=self.solver, max_iter=self.max_iter, tol=self.tol
            )
        return TweedieRegressor(
            power=0.0,
            link="identity",
            alpha=0.0,
            solver=self.solver,
            max_iter=self.max_iter,
            tol=self.tol,
        )
