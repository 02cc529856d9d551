"""
spEnviroDistrPy
===============

Spatial downscaling of environmental rasters.

This package provides two complementary groups of tools:

1. Downscaling workflow
   --------------------
   Relate a coarse response grid (e.g. mean temperature) to coarse
   predictors (e.g. elevation) with a regression, then apply the fitted
   model to the same predictors at high resolution.

   Main entry points
   -----------------
   - :func:`downscale` (``"lm"``, ``"glm"`` or ``"gwr"``)
   - :class:`DownscaleSettings`
   - :func:`apply_gwr`
   - :func:`fill_na`
   - :func:`create_cluster`

2. Raster and table helpers
   ------------------------
   Convert between point tables and grids, align predictor layers on a
   common geometry and resolve coordinate reference systems.

   Main entry points
   -----------------
   - :class:`Grid`, :class:`Extent`
   - :func:`to_grid`, :func:`to_spat_data`, :func:`as_grid`
   - :func:`to_predictors`, :func:`resample`, :func:`stack`
   - :func:`epsg`, :class:`CrsRegistry`
   - :func:`regression_metrics`
   - :func:`plot_grid`, :func:`plot_downscale`

Example
-------
    >>> import numpy as np
    >>> from spEnviroDistrPy import Grid, downscale, fill_na, epsg

    # (1) Coarse temperature and elevation, fine elevation
    >>> crs = epsg(4326)
    >>> tavg = Grid(t_coarse, (-100, -98, 18, 20), crs, ["tavg"])
    >>> elev = Grid(z_coarse, (-100, -98, 18, 20), crs, ["elev"])
    >>> dem = Grid(z_fine, (-100, -98, 18, 20), crs, ["elev"])

    # (2) Downscale with a linear model
    >>> out = downscale(tavg, elev, dem, method="lm")
    >>> out.result.names
    ['tavg']

    # (3) Close the remaining gaps
    >>> filled = fill_na(out.result, np.ones((3, 3)), rounds=2)
"""

from __future__ import annotations

# Public version (update in sync with pyproject.toml)
__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Errors, CRS and raster primitives
# ---------------------------------------------------------------------------

from .errors import (
    SpEnviroDistrError,
    InvalidArgument,
    CrsMismatch,
    InsufficientOverlap,
    UnknownMethod,
    UnknownCrsCode,
    ModelFitFailure,
)
from .crs import CrsRegistry, DEFAULT_REGISTRY, epsg
from .raster import Extent, Grid, resample, stack, points_to_grid
from .conversion import to_grid, to_spat_data, to_predictors, as_grid
from .cluster import Cluster, create_cluster

# ---------------------------------------------------------------------------
# Gap filling, regression and downscaling
# ---------------------------------------------------------------------------

from .fill import fill_na, focal_window
from .metrics import regression_metrics
from .regression import (
    RegressionMethod,
    Formula,
    build_formula,
    LinearModel,
    OLSStrategy,
    GLMStrategy,
)
from .gwr import GWRModel, GWRStrategy, apply_gwr, set_warning_policy
from .downscaling import DownscaleSettings, DownscaleResult, check_overlap, downscale
from .plotting import plot_grid, plot_downscale

__all__ = [
    "__version__",
    # errors
    "SpEnviroDistrError",
    "InvalidArgument",
    "CrsMismatch",
    "InsufficientOverlap",
    "UnknownMethod",
    "UnknownCrsCode",
    "ModelFitFailure",
    # CRS and rasters
    "CrsRegistry",
    "DEFAULT_REGISTRY",
    "epsg",
    "Extent",
    "Grid",
    "resample",
    "stack",
    "points_to_grid",
    "to_grid",
    "to_spat_data",
    "to_predictors",
    "as_grid",
    "Cluster",
    "create_cluster",
    # workflow
    "fill_na",
    "focal_window",
    "regression_metrics",
    "RegressionMethod",
    "Formula",
    "build_formula",
    "LinearModel",
    "OLSStrategy",
    "GLMStrategy",
    "GWRModel",
    "GWRStrategy",
    "apply_gwr",
    "set_warning_policy",
    "DownscaleSettings",
    "DownscaleResult",
    "check_overlap",
    "downscale",
    "plot_grid",
    "plot_downscale",
]
