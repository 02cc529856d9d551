# SPDX-License-Identifier: MIT
"""
Conversions between point tables and grids.

- :func:`to_grid` turns a data frame of regularly spaced points into a
  :class:`~spEnviroDistrPy.raster.Grid`.
- :func:`to_spat_data` flattens a grid into a point table (``x``, ``y`` and
  one column per layer), the tabular input of every regression.
- :func:`to_predictors` resamples a list of single-layer grids onto a common
  reference and stacks them as named predictors.
- :func:`as_grid` accepts a grid or a point table and always returns a grid.

Runtime dependencies
--------------------
- numpy
- pandas
- tqdm
"""

from __future__ import annotations

import warnings
from functools import partial
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from .cluster import Cluster
from .crs import DEFAULT_REGISTRY, CrsLike, CrsRegistry
from .errors import CrsMismatch, InvalidArgument
from .raster import Grid, resample

__all__ = ["to_grid", "to_spat_data", "to_predictors", "as_grid"]


# ---------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------


def _infer_spacing(centers: np.ndarray, axis: str) -> Optional[float]:
    """Regular spacing of sorted unique cell centres (``None`` for one value)."""
    if centers.size < 2:
        return None
    steps = np.diff(centers)
    step = float(steps.min())
    ratio = steps / step
    if not np.allclose(ratio, np.round(ratio), rtol=0.0, atol=1e-6):
        raise InvalidArgument(f"{axis} coordinates are not regularly spaced.")
    return step


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------


def to_grid(
    x: pd.DataFrame,
    coords: Sequence[str],
    crs_str: CrsLike,
    *,
    registry: Optional[CrsRegistry] = None,
) -> Grid:
    """
    Convert a data frame into a spatial grid.

    The columns named in *coords* hold the cell-centre coordinates; the grid
    spacing is inferred from them and cells without a row stay missing.
    Every other numeric column becomes a layer.

    Parameters
    ----------
    x : DataFrame
        Point table, one row per cell.
    coords : sequence of two str
        Names of the x and y coordinate columns, in that order.
    crs_str : int, str, pyproj.CRS or None
        Coordinate reference system of the coordinates. ``None`` assigns no
        CRS and emits a warning.
    registry : CrsRegistry, optional
        Registry used to canonicalise *crs_str*.

    Returns
    -------
    Grid

    Examples
    --------
    >>> grid = to_grid(meuse_grid, coords=("x", "y"), crs_str=28992)
    >>> grid.names
    ['part.a', 'part.b', 'dist', 'soil', 'ffreq', 'elev', 'alt']
    """
    if not isinstance(x, pd.DataFrame):
        raise InvalidArgument("x must be a data frame.")
    if (
        isinstance(coords, str)
        or len(coords) != 2
        or not all(isinstance(c, str) for c in coords)
    ):
        raise InvalidArgument("coords must be a sequence of two column names.")
    if crs_str is None:
        warnings.warn("CRS is None. No CRS is assigned.", UserWarning, stacklevel=2)
    cx, cy = coords
    missing = [c for c in (cx, cy) if c not in x.columns]
    if missing:
        raise InvalidArgument(
            f"The coordinates in 'coords' must be present in the data frame; missing {missing}."
        )
    if x.empty:
        raise InvalidArgument("Cannot build a grid from an empty data frame.")

    reg = registry if registry is not None else DEFAULT_REGISTRY
    crs = reg.normalize(crs_str)

    xs = pd.to_numeric(x[cx], errors="coerce").to_numpy(dtype=float)
    ys = pd.to_numeric(x[cy], errors="coerce").to_numpy(dtype=float)
    if np.isnan(xs).any() or np.isnan(ys).any():
        raise InvalidArgument("Coordinate columns contain missing or non-numeric values.")

    ux = np.unique(xs)
    uy = np.unique(ys)
    resx = _infer_spacing(ux, "x")
    resy = _infer_spacing(uy, "y")
    if resx is None and resy is None:
        raise InvalidArgument("A grid needs at least two distinct x or y coordinates.")
    # square cells when one axis has a single coordinate
    resx = resx if resx is not None else resy
    resy = resy if resy is not None else resx

    ncols = int(round((ux[-1] - ux[0]) / resx)) + 1
    nrows = int(round((uy[-1] - uy[0]) / resy)) + 1
    col = np.round((xs - ux[0]) / resx).astype(int)
    row = np.round((uy[-1] - ys) / resy).astype(int)
    if pd.Series(row * ncols + col).duplicated().any():
        raise InvalidArgument("Duplicated coordinates: several rows map to one cell.")

    data = x.drop(columns=[cx, cy])
    numeric = data.select_dtypes(include=["number", "bool"])
    dropped = [c for c in data.columns if c not in numeric.columns]
    if dropped:
        warnings.warn(
            f"Non-numeric columns {dropped} cannot be stored as grid layers and were dropped.",
            UserWarning,
            stacklevel=2,
        )
    if numeric.shape[1] == 0:
        raise InvalidArgument("The data frame has no numeric column to store as a layer.")

    values = np.full((numeric.shape[1], nrows, ncols), np.nan)
    for k, c in enumerate(numeric.columns):
        values[k, row, col] = numeric[c].to_numpy(dtype=float)

    extent = (
        ux[0] - resx / 2.0,
        ux[-1] + resx / 2.0,
        uy[0] - resy / 2.0,
        uy[-1] + resy / 2.0,
    )
    return Grid(values, extent, crs, [str(c) for c in numeric.columns])


def to_spat_data(grid: Grid, na_rm: bool = True) -> pd.DataFrame:
    """
    Convert a grid into a point table.

    Parameters
    ----------
    grid : Grid
        Raster to flatten.
    na_rm : bool, default True
        Drop the cells that are missing in at least one layer.

    Returns
    -------
    DataFrame
        Columns ``x``, ``y`` (cell centres) followed by one column per layer,
        rows in row-major order from the north-west corner. The CRS of the
        grid is kept in ``df.attrs["crs"]``.
    """
    clash = [n for n in grid.names if n in ("x", "y")]
    if clash:
        raise InvalidArgument(f"Layer names {clash} clash with the coordinate columns.")

    xx, yy = grid.cell_centers()
    data: Dict[str, np.ndarray] = {"x": xx.ravel(), "y": yy.ravel()}
    for k, name in enumerate(grid.names):
        data[name] = grid.values[k].ravel()
    df = pd.DataFrame(data)
    if na_rm:
        df = df.dropna(subset=grid.names, how="any").reset_index(drop=True)
    df.attrs["crs"] = grid.crs
    return df


def as_grid(x: Union[Grid, pd.DataFrame]) -> Grid:
    """Return *x* as a :class:`Grid`.

    Grids pass through unchanged; a point table with ``x``/``y`` columns (as
    produced by :func:`to_spat_data`) is gridded again using
    ``x.attrs["crs"]``.
    """
    if isinstance(x, Grid):
        return x
    if isinstance(x, pd.DataFrame) and {"x", "y"}.issubset(x.columns):
        return to_grid(x, ("x", "y"), x.attrs.get("crs"))
    raise TypeError(
        f"Object is '{type(x).__name__}', must be a Grid or a DataFrame with x/y columns."
    )


def to_predictors(
    layer_list: Union[Sequence[Grid], Mapping[str, Grid]],
    layer_names: Optional[Sequence[str]] = None,
    reference: Optional[Grid] = None,
    *,
    cluster: Optional[Cluster] = None,
    method: str = "bilinear",
    show_progress: bool = True,
) -> Grid:
    """
    Resample single-layer grids onto one reference and stack them.

    Parameters
    ----------
    layer_list : sequence of Grid or mapping name -> Grid
        Predictor layers, possibly at different resolutions and extents.
    layer_names : sequence of str, optional
        Names of the output layers. Defaults to the mapping keys, or else to
        the name of each input layer.
    reference : Grid, optional
        Geometry to resample onto. When omitted the first layer is used and a
        notice is printed.
    cluster : Cluster, optional
        Worker pool from :func:`~spEnviroDistrPy.cluster.create_cluster`;
        layers are resampled in parallel when given.
    method : {"bilinear", "near"}
        Resampling method.
    show_progress : bool, default True
        Wrap the layers with a :func:`tqdm` progress bar.

    Returns
    -------
    Grid
        Multi-layer grid with the reference geometry and CRS.
    """
    keys: Optional[List[str]] = None
    if isinstance(layer_list, Mapping):
        keys = [str(k) for k in layer_list.keys()]
        grids = [as_grid(g) for g in layer_list.values()]
    else:
        grids = [as_grid(g) for g in layer_list]
    if not grids:
        raise InvalidArgument("layer_list is empty.")
    multi = [i for i, g in enumerate(grids) if g.nlayers != 1]
    if multi:
        raise InvalidArgument(f"Every predictor must be a single-layer grid; check items {multi}.")

    if layer_names is None:
        layer_names = keys if keys is not None else [g.names[0] for g in grids]
    layer_names = [str(n) for n in layer_names]
    if len(layer_names) != len(grids):
        raise InvalidArgument("layer_names length and layer_list length are not equal.")

    if reference is None:
        tqdm.write("[predictors] IMPORTANT! First layer will be used as reference for resampling")
        reference = grids[0]
    other = [g.crs for g in grids if g.crs != reference.crs]
    if other:
        raise CrsMismatch(
            f"All layers must share the reference CRS {reference.crs!r}; got {sorted(set(map(str, other)))}."
        )

    work = partial(resample, reference=reference, method=method)
    items = tqdm(grids, desc="Resampling layers", unit="layer") if show_progress else grids
    if cluster is not None:
        resampled = cluster.map(work, items)
    else:
        resampled = [work(g) for g in items]

    values = np.concatenate([g.values for g in resampled], axis=0)
    return Grid(values, reference.extent, reference.crs, layer_names)
