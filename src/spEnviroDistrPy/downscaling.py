# src/spEnviroDistrPy/downscaling.py
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
Statistical downscaling of a coarse raster with a fine covariate.

The single entry point, :func:`downscale`, relates a low-resolution response
(e.g. mean temperature) to one or more low-resolution predictors (e.g.
elevation) and applies the fitted model to the same predictors at high
resolution. Three regression kinds are supported: ordinary least squares
(``"lm"``), a generalised linear model (``"glm"``) and geographically
weighted regression (``"gwr"``).

Before any fitting, the inputs are checked:

- all three grids must share the same CRS,
- the response is resampled (bilinear) onto the low-resolution predictor
  geometry when the two differ,
- the high-resolution extent must overlap the low-resolution one by at
  least :attr:`DownscaleSettings.min_overlap` (60 % by default) of their
  combined extent.

Runtime dependencies
--------------------
- numpy
- pandas
- scikit-learn
- mgwr
- tqdm
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional, Union

import numpy as np
from tqdm.auto import tqdm

from .cluster import Cluster
from .conversion import to_spat_data
from .crs import DEFAULT_REGISTRY, CrsRegistry
from .errors import CrsMismatch, InsufficientOverlap, InvalidArgument
from .gwr import GWR_CRITERIA, GWR_KERNELS, GWRStrategy
from .raster import Grid, points_to_grid, resample, stack
from .regression import (
    GLM_FAMILIES,
    GLMStrategy,
    OLSStrategy,
    RegressionMethod,
    RegressionStrategy,
    build_formula,
)


__all__ = [
    "DownscaleSettings",
    "DownscaleResult",
    "check_overlap",
    "downscale",
]


# ---------------------------------------------------------------------
# Settings and result containers
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class DownscaleSettings:
    """Tunable parameters of :func:`downscale`.

    Attributes
    ----------
    min_overlap :
        Minimum ratio between the intersection and the combined extent of
        the high- and low-resolution predictors (inclusive).
    resample_method :
        Method used to align the response with the low-resolution predictor.
    glm_family :
        Family of the ``"glm"`` method: ``gaussian``, ``poisson`` or ``gamma``.
    gwr_kernel, gwr_criterion :
        Kernel and bandwidth selection criterion of the ``"gwr"`` method.
    spherical :
        Use great-circle distances in GWR. ``None`` decides from the CRS
        (geographic CRS -> ``True``).
    """

    min_overlap: float = 0.6
    resample_method: str = "bilinear"
    glm_family: str = "gaussian"
    gwr_kernel: str = "gaussian"
    gwr_criterion: str = "CV"
    spherical: Optional[bool] = None

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.min_overlap) <= 1.0:
            raise InvalidArgument(f"min_overlap must be within [0, 1], got {self.min_overlap}.")
        if self.resample_method not in ("bilinear", "near"):
            raise InvalidArgument("resample_method must be 'bilinear' or 'near'.")
        if self.glm_family not in GLM_FAMILIES:
            raise InvalidArgument(f"glm_family must be one of {GLM_FAMILIES}.")
        if self.gwr_kernel not in GWR_KERNELS:
            raise InvalidArgument(f"gwr_kernel must be one of {GWR_KERNELS}.")
        if self.gwr_criterion not in GWR_CRITERIA:
            raise InvalidArgument(f"gwr_criterion must be one of {GWR_CRITERIA}.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DownscaleSettings":
        """Build from a mapping; unknown keys raise :class:`InvalidArgument`."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise InvalidArgument(f"Unknown downscale settings: {unknown}")
        return cls(**d)


@dataclass(frozen=True, eq=False)
class DownscaleResult:
    """Fitted model and high-resolution prediction returned by :func:`downscale`."""

    model: Any
    result: Grid


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------


def check_overlap(pred_hr: Grid, pred_lr: Grid, min_overlap: float = 0.6) -> float:
    """
    Overlap ratio between the high- and low-resolution extents.

    The ratio is the intersection area divided by the area of the smallest
    extent enclosing both.

    Raises
    ------
    InsufficientOverlap
        If the ratio is below *min_overlap*.
    """
    ratio = pred_hr.extent.overlap_ratio(pred_lr.extent)
    if ratio < min_overlap:
        raise InsufficientOverlap(
            f"The extent of pred_hr overlaps {ratio:.2%} with pred_lr; "
            f"at least {min_overlap:.0%} is required."
        )
    return ratio


def _strategy_for(
    method: RegressionMethod,
    settings: DownscaleSettings,
    *,
    spherical: bool,
    cluster: Optional[Cluster],
    show_progress: bool,
) -> RegressionStrategy:
    if method is RegressionMethod.LM:
        return OLSStrategy()
    if method is RegressionMethod.GLM:
        return GLMStrategy(family=settings.glm_family)
    return GWRStrategy(
        kernel=settings.gwr_kernel,
        criterion=settings.gwr_criterion,
        spherical=spherical,
        cluster=cluster,
        show_progress_steps=show_progress,
    )


# ---------------------------------------------------------------------
# Downscaling
# ---------------------------------------------------------------------


def downscale(
    response: Grid,
    pred_lr: Grid,
    pred_hr: Grid,
    method: Union[str, RegressionMethod] = "gwr",
    *,
    cluster: Optional[Cluster] = None,
    settings: Optional[DownscaleSettings] = None,
    registry: Optional[CrsRegistry] = None,
    show_progress: bool = False,
) -> DownscaleResult:
    """
    Downscale a coarse response grid with a regression on fine predictors.

    Parameters
    ----------
    response : Grid
        Single-layer response at low resolution (e.g. temperature).
    pred_lr : Grid
        Predictor layer(s) at low resolution (e.g. elevation).
    pred_hr : Grid
        The same predictor layer(s), by name, at high resolution.
    method : {"gwr", "lm", "glm"}, default "gwr"
        Regression kind (``"ols"`` is accepted for ``"lm"``).
    cluster : Cluster, optional
        Worker pool for the GWR local fits.
    settings : DownscaleSettings, optional
        Overlap threshold, resampling, GLM family and GWR options.
    registry : CrsRegistry, optional
        Registry used to decide whether the CRS is geographic.
    show_progress : bool, default False
        Print the workflow steps.

    Returns
    -------
    DownscaleResult
        ``model``: the fitted :class:`~spEnviroDistrPy.regression.LinearModel`
        or :class:`~spEnviroDistrPy.gwr.GWRModel`; ``result``: single-layer
        grid on ``pred_hr``'s geometry, named after the response layer.

    Raises
    ------
    UnknownMethod
        Unsupported *method*.
    CrsMismatch
        The grids do not share one CRS.
    InsufficientOverlap
        ``pred_hr`` overlaps ``pred_lr`` too little.
    InvalidArgument
        Layer layout problems (see :func:`~spEnviroDistrPy.regression.build_formula`).
    ModelFitFailure
        The regression solver failed.

    Examples
    --------
    >>> out = downscale(tavg, elev, dem, method="lm")
    >>> out.model.coefficients
    >>> out.result.names
    ['tavg']
    """
    kind = RegressionMethod.parse(method)
    settings = settings if settings is not None else DownscaleSettings()
    reg = registry if registry is not None else DEFAULT_REGISTRY

    if not (response.crs == pred_lr.crs == pred_hr.crs):
        raise CrsMismatch(
            "All rasters must have the same CRS; got "
            f"response={response.crs!r}, pred_lr={pred_lr.crs!r}, pred_hr={pred_hr.crs!r}."
        )

    if not response.same_geometry(pred_lr):
        if show_progress:
            tqdm.write("[downscale] Resampling response onto pred_lr")
        response = resample(response, pred_lr, method=settings.resample_method)

    ratio = check_overlap(pred_hr, pred_lr, settings.min_overlap)
    if show_progress:
        tqdm.write(f"[downscale] Overlap between pred_hr and pred_lr: {ratio:.1%}")

    formula = build_formula(response.names, pred_lr.names)
    absent = [p for p in formula.predictors if p not in pred_hr.names]
    if absent:
        raise InvalidArgument(f"pred_hr is missing the predictor layers {absent}.")

    model_data = to_spat_data(stack(response, pred_lr), na_rm=True)
    if kind is RegressionMethod.GWR:
        new_data = to_spat_data(pred_hr.subset(formula.predictors), na_rm=True)
    else:
        new_data = to_spat_data(pred_hr.subset(formula.predictors), na_rm=False)

    spherical = settings.spherical
    if spherical is None:
        spherical = reg.is_geographic(pred_lr.crs)

    strategy = _strategy_for(
        kind, settings, spherical=spherical, cluster=cluster, show_progress=show_progress
    )
    if show_progress:
        tqdm.write(f"[downscale] Fitting {kind.value}: {formula}")
    model, predicted = strategy.fit_predict(model_data, formula, new_data)

    table = new_data[["x", "y"]].copy()
    table[formula.response] = np.asarray(predicted, dtype=float)
    result = points_to_grid(table, pred_hr, [formula.response])
    return DownscaleResult(model=model, result=result)
