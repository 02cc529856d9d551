# SPDX-License-Identifier: MIT
"""
Gap filling with an iterated focal median.

:func:`fill_na` replaces missing cells of one grid layer with the median of
their neighbours, repeating the pass a fixed number of times so that larger
holes are closed progressively from their rim inwards.

Runtime dependencies
--------------------
- numpy
- tqdm
"""

from __future__ import annotations

import warnings
from numbers import Integral
from typing import Optional, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from tqdm.auto import tqdm

from .errors import InvalidArgument
from .raster import Grid

__all__ = ["fill_na", "focal_window"]


def focal_window(size: int = 3) -> np.ndarray:
    """Square all-ones window of odd *size* (``3`` gives the 3×3 queen case)."""
    if isinstance(size, bool) or not isinstance(size, Integral) or size < 1 or size % 2 == 0:
        raise InvalidArgument(f"Window size must be a positive odd integer, got {size!r}.")
    return np.ones((int(size), int(size)), dtype=float)


def _check_window(w) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(footprint, weights)`` for a focal window matrix."""
    arr = np.asarray(w, dtype=float)
    if arr.ndim != 2:
        raise InvalidArgument(f"Focal window must be a 2-D matrix, got {arr.ndim}-D.")
    nr, nc = arr.shape
    if nr < 1 or nc < 1 or nr % 2 == 0 or nc % 2 == 0:
        raise InvalidArgument(f"Focal window needs odd dimensions, got {nr}x{nc}.")
    footprint = np.isfinite(arr) & (arr != 0)
    if not footprint.any():
        raise InvalidArgument("Focal window has no cell with a usable weight.")
    return footprint, arr[footprint]


def _focal_median_only(layer: np.ndarray, footprint: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """One pass: missing cells get the median of their weighted neighbours.

    Only the currently missing cells are evaluated; cells beyond the edge
    count as missing.
    """
    rows, cols = np.nonzero(np.isnan(layer))
    out = layer.copy()
    if rows.size == 0:
        return out

    pr, pc = footprint.shape[0] // 2, footprint.shape[1] // 2
    padded = np.pad(layer, ((pr, pr), (pc, pc)), mode="constant", constant_values=np.nan)
    windows = sliding_window_view(padded, footprint.shape)
    # (n_missing, n_footprint) in row-major footprint order, like the weights
    vals = windows[rows, cols][:, footprint] * weights
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", "All-NaN slice", RuntimeWarning)
        out[rows, cols] = np.nanmedian(vals, axis=1)
    return out


def fill_na(
    grid: Grid,
    w,
    rounds: int,
    *,
    layer: Optional[str] = None,
    verbose: bool = False,
) -> Grid:
    """
    Fill missing values of a grid layer with a focal median filter.

    Parameters
    ----------
    grid : Grid
        Raster whose missing cells should be filled.
    w : array-like
        Focal window, a 2-D matrix with odd dimensions such as
        ``np.ones((3, 3))``. Cells with weight ``0`` or ``NaN`` are left out
        of the neighbourhood; other neighbour values are multiplied by their
        weight before taking the median.
    rounds : int
        Number of passes (``>= 0``). Exactly this many passes are run; a hole
        wider than ``rounds`` window radii keeps missing cells in its middle.
    layer : str, optional
        Name of the layer to fill (default: the first layer).
    verbose : bool, default False
        Report each pass and the number of cells still missing.

    Returns
    -------
    Grid
        New single-layer grid with the same geometry, CRS and layer name.
        Present cells are untouched. Check :attr:`Grid.n_missing` on the
        result to see whether gaps remain.

    Examples
    --------
    >>> filled = fill_na(dem, np.ones((3, 3)), 3, verbose=True)
    >>> filled.has_missing
    False
    """
    if isinstance(rounds, bool) or not isinstance(rounds, Integral):
        raise InvalidArgument(f"rounds must be an integer, got {rounds!r}.")
    if rounds < 0:
        raise InvalidArgument(f"rounds must be >= 0, got {rounds}.")
    footprint, weights = _check_window(w)

    target = grid.layer(layer if layer is not None else 0)
    values = target.values[0]

    for i in range(1, int(rounds) + 1):
        if np.isnan(values).any():
            values = _focal_median_only(values, footprint, weights)
        if verbose:
            n_left = int(np.isnan(values).sum())
            tqdm.write(f"[fill-na] round {i}/{rounds}: {n_left} missing cell(s) left")

    return target.with_values(values)
