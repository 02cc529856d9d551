# SPDX-License-Identifier: MIT
"""
Quick-look maps of grids and downscaling results.

- :func:`plot_grid` draws one layer of a grid in map coordinates.
- :func:`plot_downscale` shows the coarse response next to its
  high-resolution prediction, on a shared colour scale.

Both functions return the matplotlib figure and axes and can save the
figure with ``save_to``.

Runtime dependencies
--------------------
- matplotlib
- numpy
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import matplotlib
import matplotlib.pyplot as plt
import numpy as np

from .downscaling import DownscaleResult
from .errors import InvalidArgument
from .raster import Grid

__all__ = ["plot_grid", "plot_downscale"]


def _imshow(ax, grid: Grid, idx: int, cmap: str, vmin=None, vmax=None):
    e = grid.extent
    return ax.imshow(
        np.ma.masked_invalid(grid.values[idx]),
        extent=(e.xmin, e.xmax, e.ymin, e.ymax),
        origin="upper",
        cmap=cmap,
        vmin=vmin,
        vmax=vmax,
        interpolation="nearest",
    )


def _layer_position(grid: Grid, layer: Union[str, int, None]) -> int:
    if layer is None:
        return 0
    if isinstance(layer, (int, np.integer)):
        if not 0 <= layer < grid.nlayers:
            raise InvalidArgument(f"Layer index {layer} out of range.")
        return int(layer)
    return grid._layer_index(layer)


def plot_grid(
    grid: Grid,
    layer: Union[str, int, None] = None,
    *,
    ax: Optional[matplotlib.axes.Axes] = None,
    title: Optional[str] = None,
    cmap: str = "viridis",
    figsize: Tuple[float, float] = (6, 5),
    colorbar: bool = True,
    save_to: Optional[str] = None,
) -> Tuple[matplotlib.figure.Figure, matplotlib.axes.Axes]:
    """
    Plot one layer of a grid; missing cells are left blank.

    Parameters
    ----------
    grid : Grid
        Raster to draw.
    layer : str or int, optional
        Layer name or position (default: the first layer).
    ax : matplotlib Axes, optional
        Axes to draw into; a new figure is created when omitted.
    title : str, optional
        Axes title (default: the layer name).
    cmap : str, default "viridis"
        Colormap.
    figsize : tuple, default (6, 5)
        Size of a newly created figure.
    colorbar : bool, default True
        Add a colour bar.
    save_to : str, optional
        Path to save the figure (300 dpi).

    Returns
    -------
    (fig, ax)
    """
    idx = _layer_position(grid, layer)
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    im = _imshow(ax, grid, idx, cmap)
    if colorbar:
        fig.colorbar(im, ax=ax, shrink=0.85)
    ax.set_title(title if title is not None else grid.names[idx])
    ax.set_xlabel("x")
    ax.set_ylabel("y")

    if save_to:
        fig.savefig(save_to, dpi=300, bbox_inches="tight")
    return fig, ax


def plot_downscale(
    response: Grid,
    result: Union[DownscaleResult, Grid],
    *,
    figsize: Tuple[float, float] = (11, 4.5),
    titles: Optional[Sequence[str]] = None,
    cmap: str = "viridis",
    save_to: Optional[str] = None,
) -> Tuple[matplotlib.figure.Figure, np.ndarray]:
    """
    Side-by-side maps of the coarse response and the downscaled grid.

    Parameters
    ----------
    response : Grid
        Low-resolution response passed to :func:`~spEnviroDistrPy.downscaling.downscale`.
    result : DownscaleResult or Grid
        Output of ``downscale`` (or its ``result`` grid).
    figsize : tuple, default (11, 4.5)
        Figure size.
    titles : sequence of two str, optional
        Panel titles (default: "Low resolution" / "Downscaled").
    cmap : str, default "viridis"
        Colormap shared by both panels.
    save_to : str, optional
        Path to save the figure (300 dpi).

    Returns
    -------
    (fig, axes)
        ``axes`` holds the two panels.
    """
    fine = result.result if isinstance(result, DownscaleResult) else result
    if titles is None:
        titles = ("Low resolution", "Downscaled")
    if len(titles) != 2:
        raise InvalidArgument("titles must contain exactly two labels.")

    both = np.concatenate([response.values[0].ravel(), fine.values[0].ravel()])
    both = both[np.isfinite(both)]
    vmin, vmax = (float(both.min()), float(both.max())) if both.size else (None, None)

    fig, axes = plt.subplots(1, 2, figsize=figsize, sharex=True, sharey=True)
    im = None
    for ax, g, t in zip(axes, (response, fine), titles):
        im = _imshow(ax, g, 0, cmap, vmin=vmin, vmax=vmax)
        ax.set_title(t)
        ax.set_xlabel("x")
    axes[0].set_ylabel("y")
    fig.colorbar(im, ax=list(axes), shrink=0.85, label=fine.names[0])

    if save_to:
        fig.savefig(save_to, dpi=300, bbox_inches="tight")
    return fig, axes
