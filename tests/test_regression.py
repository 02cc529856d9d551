# tests/test_regression.py

import numpy as np
import pandas as pd
import pytest

from spEnviroDistrPy.errors import InvalidArgument, UnknownMethod
from spEnviroDistrPy.regression import (
    GLMStrategy,
    OLSStrategy,
    RegressionMethod,
    build_formula,
)


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------


@pytest.fixture
def linear_table():
    """t = 30 - 0.006 * elev + 0.5 * slope, no noise."""
    rng = np.random.default_rng(0)
    elev = rng.uniform(0, 3000, size=60)
    slope = rng.uniform(0, 20, size=60)
    return pd.DataFrame(
        {
            "x": np.arange(60, dtype=float),
            "y": np.zeros(60),
            "elev": elev,
            "slope": slope,
            "t": 30.0 - 0.006 * elev + 0.5 * slope,
        }
    )


# ---------------------------------------------------------------------
# Method and formula
# ---------------------------------------------------------------------


def test_parse_method():
    assert RegressionMethod.parse("GWR") is RegressionMethod.GWR
    assert RegressionMethod.parse("ols") is RegressionMethod.LM
    assert RegressionMethod.parse(RegressionMethod.GLM) is RegressionMethod.GLM
    with pytest.raises(UnknownMethod):
        RegressionMethod.parse("kriging")


def test_build_formula():
    f = build_formula(["t"], ["elev", "slope"])
    assert str(f) == "t ~ elev + slope"
    assert f.columns == ("t", "elev", "slope")


@pytest.mark.parametrize(
    "response, predictors",
    [
        (["t", "p"], ["elev"]),
        (["t"], []),
        (["t"], ["elev", "elev"]),
        (["elev"], ["elev"]),
    ],
)
def test_build_formula_rejects_bad_layouts(response, predictors):
    with pytest.raises(InvalidArgument):
        build_formula(response, predictors)


# ---------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------


def test_ols_recovers_coefficients(linear_table):
    f = build_formula(["t"], ["elev", "slope"])
    model = OLSStrategy().fit(linear_table, f)
    assert model.intercept == pytest.approx(30.0, abs=1e-8)
    assert model.coefficients["elev"] == pytest.approx(-0.006, abs=1e-10)
    assert model.coefficients["slope"] == pytest.approx(0.5, abs=1e-8)
    assert model.metrics["R2"] == pytest.approx(1.0)
    assert model.n_obs == 60
    assert list(model.summary()["term"]) == ["(Intercept)", "elev", "slope"]


def test_gaussian_glm_matches_ols(linear_table):
    f = build_formula(["t"], ["elev", "slope"])
    ols = OLSStrategy().fit(linear_table, f)
    glm = GLMStrategy().fit(linear_table, f)
    assert glm.method is RegressionMethod.GLM
    assert glm.coefficients["slope"] == pytest.approx(ols.coefficients["slope"], rel=1e-3)
    assert glm.intercept == pytest.approx(ols.intercept, rel=1e-3)


def test_predict_marks_missing_predictors(linear_table):
    f = build_formula(["t"], ["elev", "slope"])
    strategy = OLSStrategy()
    new = pd.DataFrame({"elev": [1000.0, np.nan], "slope": [10.0, 1.0]})
    model, pred = strategy.fit_predict(linear_table, f, new)
    assert pred[0] == pytest.approx(30.0 - 6.0 + 5.0)
    assert np.isnan(pred[1])


def test_fit_drops_incomplete_rows(linear_table):
    f = build_formula(["t"], ["elev", "slope"])
    table = linear_table.copy()
    table.loc[:4, "t"] = np.nan
    assert OLSStrategy().fit(table, f).n_obs == 55


def test_missing_columns(linear_table):
    f = build_formula(["t"], ["rain"])
    with pytest.raises(InvalidArgument):
        OLSStrategy().fit(linear_table, f)


def test_glm_family_validation():
    with pytest.raises(InvalidArgument):
        GLMStrategy(family="binomial")
