# SPDX-License-Identifier: MIT
"""
Coordinate reference system registry.

Grids carry their CRS as a plain canonical string (``"EPSG:28992"``) so two
grids can be compared with ``==``. This module turns user input (EPSG codes,
PROJ/WKT strings, :class:`pyproj.CRS` objects) into that canonical form.

The registry is an explicit object rather than module-level state: pass a
:class:`CrsRegistry` to the functions that need one, or rely on
:data:`DEFAULT_REGISTRY`.

Runtime dependencies
--------------------
- pyproj
"""

from __future__ import annotations

from numbers import Integral
from typing import Dict, Optional, Union

from pyproj import CRS
from pyproj.exceptions import CRSError

from .errors import InvalidArgument, UnknownCrsCode

__all__ = ["CrsRegistry", "DEFAULT_REGISTRY", "epsg"]


CrsLike = Union[None, int, str, CRS]


class CrsRegistry:
    """Resolve registry codes and CRS definitions to canonical strings.

    Parameters
    ----------
    authority : str, default "EPSG"
        Authority whose numeric codes :meth:`resolve` understands.
    """

    def __init__(self, authority: str = "EPSG") -> None:
        self.authority = str(authority).upper()
        self._resolved: Dict[int, str] = {}

    def __repr__(self) -> str:
        return f"CrsRegistry(authority={self.authority!r})"

    def resolve(self, code: Union[int, str, float]) -> str:
        """Return the canonical CRS string for a numeric registry *code*.

        Raises
        ------
        UnknownCrsCode
            If *code* is not numeric or the registry does not know it.
        """
        try:
            key = int(float(code))
        except (TypeError, ValueError, OverflowError) as exc:
            raise UnknownCrsCode(f"CRS code must be numeric, got {code!r}.") from exc
        if key != float(code):
            raise UnknownCrsCode(f"CRS code must be an integer, got {code!r}.")

        if key not in self._resolved:
            try:
                crs = CRS.from_authority(self.authority, key)
            except CRSError as exc:
                raise UnknownCrsCode(
                    f"Invalid {self.authority} code {key}: unable to convert it to a CRS."
                ) from exc
            self._resolved[key] = crs.to_string()
        return self._resolved[key]

    def normalize(self, crs: CrsLike) -> Optional[str]:
        """Canonical string for any supported CRS input (``None`` passes through)."""
        if crs is None:
            return None
        if isinstance(crs, bool):
            raise InvalidArgument("CRS must be a code, a string or a pyproj.CRS.")
        if isinstance(crs, Integral):
            return self.resolve(int(crs))
        if isinstance(crs, CRS):
            return crs.to_string()
        if isinstance(crs, str):
            try:
                return CRS.from_user_input(crs).to_string()
            except CRSError as exc:
                raise InvalidArgument(f"Unable to interpret CRS {crs!r}: {exc}") from exc
        raise InvalidArgument(
            f"Unsupported CRS type {type(crs).__name__}; "
            "use an EPSG code, a CRS string or a pyproj.CRS."
        )

    def is_geographic(self, crs: CrsLike) -> bool:
        """``True`` when *crs* uses angular (longitude/latitude) coordinates."""
        if crs is None:
            return False
        if isinstance(crs, Integral) and not isinstance(crs, bool):
            crs = self.resolve(int(crs))
        try:
            return bool(CRS.from_user_input(crs).is_geographic)
        except CRSError as exc:
            raise InvalidArgument(f"Unable to interpret CRS {crs!r}: {exc}") from exc


DEFAULT_REGISTRY = CrsRegistry()


def epsg(x: Union[int, str, float], registry: Optional[CrsRegistry] = None) -> str:
    """
    Convert an EPSG code into the corresponding canonical CRS string.

    Parameters
    ----------
    x : int or str
        EPSG code, e.g. ``4326`` for WGS 84 or ``28992`` for RD New.
    registry : CrsRegistry, optional
        Registry used for the lookup (default :data:`DEFAULT_REGISTRY`).

    Returns
    -------
    str
        Canonical CRS string such as ``"EPSG:4326"``.

    Raises
    ------
    UnknownCrsCode
        If the code is invalid or unsupported.

    Examples
    --------
    >>> epsg(4326)
    'EPSG:4326'
    """
    reg = registry if registry is not None else DEFAULT_REGISTRY
    return reg.resolve(x)
