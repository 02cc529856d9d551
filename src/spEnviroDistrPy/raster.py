# src/spEnviroDistrPy/raster.py
# =============================================================================
# MIT License
#
# (c) 2025 The spEnviroDistrPy authors.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.
# =============================================================================
"""
Regular raster grids and the geometric primitives used by the workflows.

This module provides:

1) :class:`Extent`
   An axis-aligned bounding box with area, intersection and (bounding)
   union helpers backed by :mod:`shapely`.

2) :class:`Grid`
   A stack of named 2-D layers (``NaN`` marks a missing cell) sharing one
   extent and one coordinate reference system. Row 0 is the northern-most
   row (``ymax``), as in every common raster format.

On top of these, the module includes the raster operations the rest of the
package builds on:

- :func:`resample` bilinear / nearest resampling onto another geometry,
- :func:`stack` combining the layers of several aligned grids,
- :func:`points_to_grid` rasterizing a point table back onto a template.

Runtime dependencies
--------------------
- numpy
- pandas
- scipy
- shapely
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.interpolate import RegularGridInterpolator
from shapely.geometry import box

from .errors import CrsMismatch, InvalidArgument


__all__ = [
    "Extent",
    "Grid",
    "resample",
    "stack",
    "points_to_grid",
]


_RESAMPLE_METHODS = {"bilinear": "linear", "near": "nearest", "nearest": "nearest"}


# ---------------------------------------------------------------------
# Extent
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Extent:
    """Bounding box of a grid in map units.

    Attributes
    ----------
    xmin, xmax, ymin, ymax :
        Edges of the box. ``xmax > xmin`` and ``ymax > ymin`` are required.
    """

    xmin: float
    xmax: float
    ymin: float
    ymax: float

    def __post_init__(self) -> None:
        for f in fields(self):
            v = float(getattr(self, f.name))
            if not np.isfinite(v):
                raise InvalidArgument(f"Extent.{f.name} must be finite, got {v}.")
            object.__setattr__(self, f.name, v)
        if self.xmax <= self.xmin or self.ymax <= self.ymin:
            raise InvalidArgument(
                "Extent needs xmax > xmin and ymax > ymin; "
                f"got ({self.xmin}, {self.xmax}, {self.ymin}, {self.ymax})."
            )

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "Extent":
        """Build from ``(xmin, xmax, ymin, ymax)``."""
        if isinstance(bounds, Extent):
            return bounds
        if len(bounds) != 4:
            raise InvalidArgument("Extent bounds must be (xmin, xmax, ymin, ymax).")
        return cls(*bounds)

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def area(self) -> float:
        return self.as_polygon().area

    def as_polygon(self):
        """Extent as a :class:`shapely.geometry.Polygon`."""
        return box(self.xmin, self.ymin, self.xmax, self.ymax)

    def intersection_area(self, other: "Extent") -> float:
        """Area shared by both boxes (``0.0`` when they are disjoint)."""
        return float(self.as_polygon().intersection(other.as_polygon()).area)

    def union(self, other: "Extent") -> "Extent":
        """Smallest extent enclosing both boxes."""
        xmin, ymin, xmax, ymax = self.as_polygon().union(other.as_polygon()).bounds
        return Extent(xmin, xmax, ymin, ymax)

    def overlap_ratio(self, other: "Extent") -> float:
        """Intersection area divided by the area of the enclosing union extent."""
        return self.intersection_area(other) / self.union(other).area

    def contains(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Boolean mask of the points lying inside the box (edges included)."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        return (x >= self.xmin) & (x <= self.xmax) & (y >= self.ymin) & (y <= self.ymax)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.xmin, self.xmax, self.ymin, self.ymax)


# ---------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------


@dataclass(eq=False)
class Grid:
    """A regular raster with one or more named layers.

    Attributes
    ----------
    values :
        Array of shape ``(nlayers, nrows, ncols)``; a 2-D array is read as a
        single layer. Values are copied to ``float64`` on construction, so the
        grid never aliases the caller's array. ``NaN`` marks missing cells.
    extent :
        :class:`Extent` or ``(xmin, xmax, ymin, ymax)``.
    crs :
        Canonical CRS string (see :mod:`spEnviroDistrPy.crs`) or ``None``.
    names :
        One unique name per layer; defaults to ``lyr1, lyr2, ...``.
    """

    values: np.ndarray
    extent: Union[Extent, Sequence[float]]
    crs: Optional[str] = None
    names: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        arr = np.array(self.values, dtype=float)
        if arr.ndim == 2:
            arr = arr[np.newaxis, :, :]
        if arr.ndim != 3 or min(arr.shape) == 0:
            raise InvalidArgument(
                f"Grid values must be a non-empty 2-D or 3-D array, got shape {arr.shape}."
            )
        self.values = arr
        self.extent = Extent.from_bounds(self.extent)

        if self.names is None:
            names = [f"lyr{i + 1}" for i in range(arr.shape[0])]
        elif isinstance(self.names, str):
            names = [self.names]
        else:
            names = [str(n) for n in self.names]
        if len(names) != arr.shape[0]:
            raise InvalidArgument(
                f"Got {len(names)} layer names for {arr.shape[0]} layers."
            )
        if len(set(names)) != len(names):
            raise InvalidArgument(f"Layer names must be unique, got {names}.")
        self.names = names

    def __repr__(self) -> str:
        return (
            f"Grid(names={self.names}, shape={self.shape}, res={self.res}, "
            f"extent={self.extent.as_tuple()}, crs={self.crs!r})"
        )

    # --- geometry -----------------------------------------------------

    @property
    def nlayers(self) -> int:
        return int(self.values.shape[0])

    @property
    def nrows(self) -> int:
        return int(self.values.shape[1])

    @property
    def ncols(self) -> int:
        return int(self.values.shape[2])

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.nrows, self.ncols)

    @property
    def res(self) -> Tuple[float, float]:
        """Cell (width, height) in map units."""
        return (self.extent.width / self.ncols, self.extent.height / self.nrows)

    def x_centers(self) -> np.ndarray:
        """Cell-centre x coordinates, west to east."""
        return self.extent.xmin + (np.arange(self.ncols) + 0.5) * self.res[0]

    def y_centers(self) -> np.ndarray:
        """Cell-centre y coordinates, north to south."""
        return self.extent.ymax - (np.arange(self.nrows) + 0.5) * self.res[1]

    def cell_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """Two ``(nrows, ncols)`` arrays with the x and y of every cell centre."""
        return np.meshgrid(self.x_centers(), self.y_centers())

    def cell_index(self, x, y) -> Tuple[np.ndarray, np.ndarray]:
        """Row/column of the cells holding points ``(x, y)``; ``-1`` outside."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        col = np.floor((x - self.extent.xmin) / self.res[0]).astype(int)
        row = np.floor((self.extent.ymax - y) / self.res[1]).astype(int)
        # points on the east/south edge belong to the last column/row
        col = np.where(x == self.extent.xmax, self.ncols - 1, col)
        row = np.where(y == self.extent.ymin, self.nrows - 1, row)
        inside = self.extent.contains(x, y)
        return np.where(inside, row, -1), np.where(inside, col, -1)

    def same_geometry(self, other: "Grid") -> bool:
        """``True`` when both grids share extent and cell layout."""
        return self.extent == other.extent and self.shape == other.shape

    # --- missing cells ------------------------------------------------

    @property
    def n_missing(self) -> int:
        """Number of missing cells over all layers."""
        return int(np.isnan(self.values).sum())

    @property
    def has_missing(self) -> bool:
        return self.n_missing > 0

    # --- layer access / derived grids --------------------------------

    def _layer_index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise InvalidArgument(
                f"Layer {name!r} not found; available layers: {self.names}."
            ) from None

    def layer(self, name: Union[str, int]) -> "Grid":
        """Single-layer grid for *name* (or positional index)."""
        idx = name if isinstance(name, (int, np.integer)) else self._layer_index(name)
        if not 0 <= idx < self.nlayers:
            raise InvalidArgument(f"Layer index {idx} out of range.")
        return self.with_values(self.values[idx], names=[self.names[idx]])

    def subset(self, names: Iterable[str]) -> "Grid":
        idx = [self._layer_index(n) for n in names]
        return self.with_values(self.values[idx], names=[self.names[i] for i in idx])

    def rename(self, names: Union[str, Sequence[str]]) -> "Grid":
        return self.with_values(self.values, names=names)

    def with_values(self, values: np.ndarray, names: Optional[Sequence[str]] = None) -> "Grid":
        """New grid with this geometry and CRS but other cell values."""
        return Grid(
            values=values,
            extent=self.extent,
            crs=self.crs,
            names=self.names if names is None else names,
        )

    def copy(self) -> "Grid":
        return self.with_values(self.values)

    def equals(self, other: "Grid") -> bool:
        """Exact equality of geometry, CRS, names and values (``NaN == NaN``)."""
        return (
            isinstance(other, Grid)
            and self.same_geometry(other)
            and self.crs == other.crs
            and self.names == other.names
            and np.array_equal(self.values, other.values, equal_nan=True)
        )


# ---------------------------------------------------------------------
# Raster operations
# ---------------------------------------------------------------------


def resample(grid: Grid, reference: Grid, method: str = "bilinear") -> Grid:
    """
    Resample every layer of *grid* onto the geometry of *reference*.

    Parameters
    ----------
    grid :
        Source grid.
    reference :
        Grid whose extent and cell layout the output takes. Its values are
        not used.
    method : {"bilinear", "near"}
        Interpolation between source cell centres. Bilinear falls back to
        nearest when the source has a single row or column.

    Returns
    -------
    Grid
        Grid with *reference*'s geometry and *grid*'s CRS and layer names.
        Target cells outside the source extent are missing; cells inside the
        extent but beyond the outer ring of cell centres take the edge value.
    """
    key = str(method).lower()
    if key not in _RESAMPLE_METHODS:
        raise InvalidArgument(f"method must be 'bilinear' or 'near', got {method!r}.")
    interp = _RESAMPLE_METHODS[key]
    if grid.nrows < 2 or grid.ncols < 2:
        interp = "nearest"

    src_x = grid.x_centers()
    src_y = grid.y_centers()[::-1]  # ascending for the interpolator

    tx, ty = reference.cell_centers()
    tx = tx.ravel()
    ty = ty.ravel()
    inside = grid.extent.contains(tx, ty)
    pts = np.column_stack(
        [np.clip(ty, src_y[0], src_y[-1]), np.clip(tx, src_x[0], src_x[-1])]
    )

    out = np.full((grid.nlayers, reference.nrows, reference.ncols), np.nan)
    for k in range(grid.nlayers):
        f = RegularGridInterpolator(
            (src_y, src_x),
            grid.values[k][::-1, :],
            method=interp,
            bounds_error=False,
            fill_value=np.nan,
        )
        vals = f(pts)
        vals[~inside] = np.nan
        out[k] = vals.reshape(reference.shape)

    return Grid(values=out, extent=reference.extent, crs=grid.crs, names=grid.names)


def stack(*grids: Grid) -> Grid:
    """Combine the layers of aligned grids into one multi-layer grid.

    Raises
    ------
    InvalidArgument
        If no grid is given, geometries differ or layer names repeat.
    CrsMismatch
        If the grids carry different CRS.
    """
    if not grids:
        raise InvalidArgument("stack() needs at least one grid.")
    first = grids[0]
    names: List[str] = []
    arrays = []
    for g in grids:
        if not first.same_geometry(g):
            raise InvalidArgument(
                "All grids must share extent and resolution to be stacked."
            )
        if g.crs != first.crs:
            raise CrsMismatch(f"Cannot stack grids with CRS {first.crs!r} and {g.crs!r}.")
        names.extend(g.names)
        arrays.append(g.values)
    if len(set(names)) != len(names):
        raise InvalidArgument(f"Duplicated layer names when stacking: {names}.")
    return Grid(np.concatenate(arrays, axis=0), first.extent, first.crs, names)


def points_to_grid(
    points: pd.DataFrame,
    template: Grid,
    columns: Optional[Sequence[str]] = None,
    *,
    x_col: str = "x",
    y_col: str = "y",
) -> Grid:
    """
    Rasterize a point table onto the geometry of *template*.

    Each point writes its values into the cell containing it; points outside
    the template extent are ignored and cells without a point stay missing.

    Parameters
    ----------
    points :
        DataFrame with coordinate columns and one column per output layer.
    template :
        Grid providing extent, cell layout and CRS.
    columns :
        Columns to rasterize (default: every column except the coordinates).
    x_col, y_col :
        Coordinate column names.
    """
    missing = [c for c in (x_col, y_col) if c not in points.columns]
    if missing:
        raise InvalidArgument(f"Point table is missing coordinate columns: {missing}")
    if columns is None:
        columns = [c for c in points.columns if c not in (x_col, y_col)]
    columns = list(columns)
    absent = [c for c in columns if c not in points.columns]
    if absent:
        raise InvalidArgument(f"Point table is missing columns: {absent}")

    row, col = template.cell_index(points[x_col].to_numpy(), points[y_col].to_numpy())
    ok = row >= 0
    out = np.full((len(columns), template.nrows, template.ncols), np.nan)
    for k, c in enumerate(columns):
        vals = points[c].to_numpy(dtype=float)
        out[k, row[ok], col[ok]] = vals[ok]
    return Grid(out, template.extent, template.crs, columns)
