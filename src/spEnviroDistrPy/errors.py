# SPDX-License-Identifier: MIT
"""Exception types raised by spEnviroDistrPy.

Validation problems derive from :class:`ValueError` so callers that only
catch the built-in type keep working; solver failures derive from
:class:`RuntimeError`.
"""

from __future__ import annotations

__all__ = [
    "SpEnviroDistrError",
    "InvalidArgument",
    "CrsMismatch",
    "InsufficientOverlap",
    "UnknownMethod",
    "UnknownCrsCode",
    "ModelFitFailure",
]


class SpEnviroDistrError(Exception):
    """Base class for every error raised by this package."""


class InvalidArgument(SpEnviroDistrError, ValueError):
    """Malformed window, negative iteration count, mismatched lengths, etc."""


class CrsMismatch(SpEnviroDistrError, ValueError):
    """Grids that must share a coordinate reference system do not."""


class InsufficientOverlap(SpEnviroDistrError, ValueError):
    """Fine and coarse predictor extents overlap too little."""


class UnknownMethod(SpEnviroDistrError, ValueError):
    """Regression method name is not one of the supported kinds."""


class UnknownCrsCode(SpEnviroDistrError, ValueError):
    """Numeric CRS code could not be resolved by the registry."""


class ModelFitFailure(SpEnviroDistrError, RuntimeError):
    """The underlying regression solver failed; carries its message."""
