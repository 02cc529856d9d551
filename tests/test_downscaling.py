# tests/test_downscaling.py

import numpy as np
import pytest

import spEnviroDistrPy.downscaling as ds
from spEnviroDistrPy.downscaling import DownscaleSettings, check_overlap, downscale
from spEnviroDistrPy.errors import (
    CrsMismatch,
    InsufficientOverlap,
    InvalidArgument,
    UnknownMethod,
)
from spEnviroDistrPy.gwr import GWRModel
from spEnviroDistrPy.raster import Grid
from spEnviroDistrPy.regression import LinearModel, RegressionMethod

CRS = "EPSG:28992"


# ---------------------------------------------------------------------
# Synthetic rasters
# ---------------------------------------------------------------------


def _elevation(grid_shape, extent):
    """Smooth elevation surface evaluated at the cell centres."""
    probe = Grid(np.zeros(grid_shape), extent)
    xx, yy = probe.cell_centers()
    return 200.0 + 40.0 * xx + 25.0 * yy + 30.0 * np.sin(xx / 2.0)


def _temperature(elev):
    return 25.0 - 0.006 * elev


@pytest.fixture
def rasters():
    """Coarse temperature/elevation (5x5) and fine elevation (10x10) on [0, 10]^2."""
    extent = (0, 10, 0, 10)
    elev_lr = _elevation((5, 5), extent)
    elev_hr = _elevation((10, 10), extent)
    response = Grid(_temperature(elev_lr), extent, CRS, ["t"])
    pred_lr = Grid(elev_lr, extent, CRS, ["elev"])
    pred_hr = Grid(elev_hr, extent, CRS, ["elev"])
    return response, pred_lr, pred_hr


def _fine(width, ncols=6):
    extent = (0, width, 0, 10)
    return Grid(_elevation((10, ncols), extent), extent, CRS, ["elev"])


# ---------------------------------------------------------------------
# LM / GLM
# ---------------------------------------------------------------------


def test_lm_downscale_recovers_relationship(rasters, capsys):
    response, pred_lr, pred_hr = rasters
    out = downscale(response, pred_lr, pred_hr, method="lm", show_progress=True)

    assert isinstance(out.model, LinearModel)
    assert out.model.coefficients["elev"] == pytest.approx(-0.006, abs=1e-9)
    assert out.result.names == ["t"]
    assert out.result.same_geometry(pred_hr)
    assert out.result.crs == CRS
    np.testing.assert_allclose(out.result.values[0], _temperature(pred_hr.values[0]), atol=1e-8)
    assert "[downscale] Fitting lm: t ~ elev" in capsys.readouterr().out


def test_glm_matches_lm(rasters):
    lm = downscale(*rasters, method="lm")
    glm = downscale(*rasters, method="glm")
    assert glm.model.method is RegressionMethod.GLM
    np.testing.assert_allclose(glm.result.values, lm.result.values, rtol=1e-4)


def test_missing_fine_cells_stay_missing(rasters):
    response, pred_lr, pred_hr = rasters
    v = pred_hr.values[0].copy()
    v[0, 0] = np.nan
    out = downscale(response, pred_lr, pred_hr.with_values(v), method="lm")
    assert np.isnan(out.result.values[0, 0, 0])
    assert out.result.n_missing == 1


def test_response_is_resampled_when_geometry_differs(rasters, monkeypatch):
    _, pred_lr, pred_hr = rasters
    response = Grid(np.full((10, 10), 15.0), (0, 10, 0, 10), CRS, ["t"])
    calls = []
    original = ds.resample

    def spy(grid, reference, method="bilinear"):
        calls.append(method)
        return original(grid, reference, method=method)

    monkeypatch.setattr(ds, "resample", spy)
    out = downscale(response, pred_lr, pred_hr, method="lm")
    assert calls == ["bilinear"]
    np.testing.assert_allclose(out.result.values, 15.0, atol=1e-8)


# ---------------------------------------------------------------------
# Validation order and failures
# ---------------------------------------------------------------------


def test_unknown_method(rasters):
    with pytest.raises(UnknownMethod):
        downscale(*rasters, method="kriging")


def test_crs_mismatch_stops_before_any_work(rasters, monkeypatch):
    response, pred_lr, pred_hr = rasters
    moved = Grid(np.zeros((3, 3)), (0, 9, 0, 9), "EPSG:4326", ["t"])

    def fail(*args, **kwargs):
        raise AssertionError("should not be reached")

    monkeypatch.setattr(ds, "resample", fail)
    monkeypatch.setattr(ds, "_strategy_for", fail)
    with pytest.raises(CrsMismatch):
        downscale(moved, pred_lr, pred_hr, method="lm")


def test_overlap_exactly_at_threshold_passes(rasters):
    response, pred_lr, _ = rasters
    out = downscale(response, pred_lr, _fine(6.0), method="lm")
    assert out.result.shape == (10, 6)


def test_overlap_just_above_threshold_passes(rasters):
    response, pred_lr, _ = rasters
    assert check_overlap(_fine(6.001), pred_lr) > 0.6
    downscale(response, pred_lr, _fine(6.001), method="lm")


def test_overlap_just_below_threshold_fails(rasters):
    response, pred_lr, _ = rasters
    with pytest.raises(InsufficientOverlap):
        downscale(response, pred_lr, _fine(5.999), method="lm")


def test_overlap_threshold_is_configurable(rasters):
    response, pred_lr, _ = rasters
    settings = DownscaleSettings(min_overlap=0.5)
    out = downscale(response, pred_lr, _fine(5.5), method="lm", settings=settings)
    assert out.result.names == ["t"]


def test_predictor_named_like_response(rasters):
    response, pred_lr, pred_hr = rasters
    with pytest.raises(InvalidArgument):
        downscale(response.rename("elev"), pred_lr, pred_hr, method="lm")


def test_fine_predictors_must_match_names(rasters):
    response, pred_lr, pred_hr = rasters
    with pytest.raises(InvalidArgument, match="missing the predictor"):
        downscale(response, pred_lr, pred_hr.rename("dem"), method="lm")


# ---------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------


def test_settings_round_trip_and_validation():
    s = DownscaleSettings(min_overlap=0.7, glm_family="poisson")
    assert DownscaleSettings.from_dict(s.to_dict()) == s
    with pytest.raises(InvalidArgument):
        DownscaleSettings.from_dict({"overlap": 0.5})
    with pytest.raises(InvalidArgument):
        DownscaleSettings(min_overlap=1.5)
    with pytest.raises(InvalidArgument):
        DownscaleSettings(gwr_kernel="triangular")


# ---------------------------------------------------------------------
# GWR
# ---------------------------------------------------------------------


def test_gwr_downscale(rasters):
    """GWR on 25 coarse cells predicting 100 fine cells, projected CRS, one worker."""
    response, pred_lr, pred_hr = rasters
    rng = np.random.default_rng(42)
    noisy = response.with_values(response.values + rng.normal(0.0, 0.05, response.shape))

    out = downscale(noisy, pred_lr, pred_hr, method="gwr")

    model = out.model
    assert isinstance(model, GWRModel)
    assert model.spherical is False
    assert model.adaptive_bandwidth > 0
    assert model.fixed_bandwidth > 0
    assert {"AICc", "ENP", "RMSE"} <= set(model.metrics)
    assert len(model.local) == 25
    assert len(model.points) == 100
    assert out.result.same_geometry(pred_hr)
    assert not out.result.has_missing

    truth = _temperature(pred_hr.values[0]).ravel()
    pred = out.result.values[0].ravel()
    assert np.corrcoef(truth, pred)[0, 1] > 0.9
