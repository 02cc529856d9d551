# tests/test_plotting.py

import matplotlib

matplotlib.use("Agg", force=True)

import matplotlib.pyplot as plt
import numpy as np
import pytest

from spEnviroDistrPy.downscaling import DownscaleResult
from spEnviroDistrPy.errors import InvalidArgument
from spEnviroDistrPy.plotting import plot_downscale, plot_grid
from spEnviroDistrPy.raster import Grid


@pytest.fixture
def grids():
    coarse = Grid(np.arange(4, dtype=float).reshape(2, 2), (0, 2, 0, 2), "EPSG:28992", ["t"])
    v = np.linspace(0, 3, 16).reshape(4, 4)
    v[0, 0] = np.nan
    fine = Grid(v, (0, 2, 0, 2), "EPSG:28992", ["t"])
    return coarse, fine


def test_plot_grid_returns_fig_and_ax(grids, tmp_path):
    coarse, _ = grids
    out = tmp_path / "grid.png"
    fig, ax = plot_grid(coarse, save_to=str(out))
    assert ax.get_title() == "t"
    assert out.exists()
    plt.close(fig)


def test_plot_grid_into_existing_axes(grids):
    _, fine = grids
    fig, ax = plt.subplots()
    fig2, ax2 = plot_grid(fine, 0, ax=ax, title="fine", colorbar=False)
    assert fig2 is fig and ax2 is ax
    assert ax.get_title() == "fine"
    with pytest.raises(InvalidArgument):
        plot_grid(fine, 3, ax=ax)
    plt.close(fig)


def test_plot_downscale_two_panels(grids):
    coarse, fine = grids
    fig, axes = plot_downscale(coarse, DownscaleResult(model=None, result=fine))
    assert len(axes) == 2
    assert axes[1].get_title() == "Downscaled"
    plt.close(fig)
