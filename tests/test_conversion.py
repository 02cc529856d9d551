# tests/test_conversion.py

import numpy as np
import pandas as pd
import pytest

from spEnviroDistrPy.cluster import Cluster
from spEnviroDistrPy.conversion import as_grid, to_grid, to_predictors, to_spat_data
from spEnviroDistrPy.errors import CrsMismatch, InvalidArgument
from spEnviroDistrPy.raster import Grid


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------


@pytest.fixture
def points():
    """3x2 regular point table with one gap and a text column."""
    df = pd.DataFrame(
        {
            "lon": [0.5, 1.5, 2.5, 0.5, 1.5],
            "lat": [1.5, 1.5, 1.5, 0.5, 0.5],
            "elev": [10.0, 20.0, 30.0, 40.0, 50.0],
            "soil": ["a", "b", "a", "b", "a"],
        }
    )
    return df


# ---------------------------------------------------------------------
# to_grid
# ---------------------------------------------------------------------


def test_to_grid_layout(points):
    with pytest.warns(UserWarning, match="Non-numeric"):
        g = to_grid(points, ("lon", "lat"), 4326)
    assert g.crs == "EPSG:4326"
    assert g.names == ["elev"]
    assert g.shape == (2, 3)
    assert g.extent.as_tuple() == (0.0, 3.0, 0.0, 2.0)
    np.testing.assert_array_equal(g.values[0, 0], [10.0, 20.0, 30.0])
    assert g.values[0, 1, 0] == 40.0
    assert np.isnan(g.values[0, 1, 2])


def test_to_grid_warns_without_crs(points):
    with pytest.warns(UserWarning, match="CRS is None"):
        g = to_grid(points[["lon", "lat", "elev"]], ("lon", "lat"), None)
    assert g.crs is None


def test_to_grid_input_checks(points):
    with pytest.raises(InvalidArgument, match="data frame"):
        to_grid(points.to_numpy(), ("lon", "lat"), 4326)
    with pytest.raises(InvalidArgument):
        to_grid(points, ("lon", "height"), 4326)
    with pytest.raises(InvalidArgument):
        to_grid(points, "lon", 4326)


def test_to_grid_duplicated_cells(points):
    df = pd.concat([points, points.iloc[[0]]])[["lon", "lat", "elev"]]
    with pytest.raises(InvalidArgument, match="Duplicated"):
        to_grid(df, ("lon", "lat"), 4326)


# ---------------------------------------------------------------------
# to_spat_data / as_grid
# ---------------------------------------------------------------------


def test_to_spat_data_drops_missing():
    v = np.array([[1.0, np.nan], [3.0, 4.0]])
    g = Grid(v, (0, 2, 0, 2), "EPSG:28992", ["t"])
    full = to_spat_data(g, na_rm=False)
    kept = to_spat_data(g)
    assert list(full.columns) == ["x", "y", "t"]
    assert len(full) == 4
    assert len(kept) == 3
    assert kept.attrs["crs"] == "EPSG:28992"
    assert kept.iloc[0].tolist() == [0.5, 1.5, 1.0]


def test_round_trip_through_point_table():
    v = np.arange(6, dtype=float).reshape(2, 3)
    g = Grid(v, (0, 3, 0, 2), "EPSG:28992", ["t"])
    back = as_grid(to_spat_data(g))
    assert back.equals(g)


def test_as_grid_rejects_other_types():
    with pytest.raises(TypeError, match="must be a Grid"):
        as_grid([1, 2, 3])


# ---------------------------------------------------------------------
# to_predictors
# ---------------------------------------------------------------------


@pytest.fixture
def layers():
    coarse = Grid(np.full((2, 2), 5.0), (0, 4, 0, 4), "EPSG:28992", ["elev"])
    fine = Grid(np.ones((4, 4)), (0, 4, 0, 4), "EPSG:28992", ["slope"])
    return coarse, fine


def test_to_predictors_uses_first_layer_as_reference(layers, capsys):
    out = to_predictors(list(layers), show_progress=False)
    assert out.names == ["elev", "slope"]
    assert out.shape == (2, 2)
    assert "First layer will be used as reference" in capsys.readouterr().out


def test_to_predictors_with_reference_and_cluster(layers):
    coarse, fine = layers
    with Cluster(2, backend="threading") as cl:
        out = to_predictors(
            {"e": coarse, "s": fine}, reference=fine, cluster=cl, show_progress=False
        )
    assert out.names == ["e", "s"]
    assert out.shape == (4, 4)
    assert np.allclose(out.values[0], 5.0)


def test_to_predictors_length_mismatch(layers):
    with pytest.raises(InvalidArgument, match="not equal"):
        to_predictors(list(layers), ["only_one"], reference=layers[0], show_progress=False)


def test_to_predictors_crs_mismatch(layers):
    coarse, fine = layers
    other = Grid(fine.values, fine.extent, "EPSG:4326", ["slope"])
    with pytest.raises(CrsMismatch):
        to_predictors([coarse, other], reference=coarse, show_progress=False)
