"""
Exception types raised by mlx-gabor.

All exceptions derive from GaborError and from the closest builtin, so
callers that only catch ValueError or IndexError keep working.
"""

from __future__ import annotations


class GaborError(Exception):
    """Base class for all mlx-gabor errors."""


class InvalidParameter(GaborError, ValueError):
    """Filterbank parameters are malformed; the analyzer cannot be built."""


class BandIndexOutOfRange(GaborError, IndexError):
    """A band index lies outside ``[0, n_bands)``."""


class BoundMismatch(GaborError, ValueError):
    """A coefficient store was used with an analyzer it was not created for."""


__all__ = [
    "GaborError",
    "InvalidParameter",
    "BandIndexOutOfRange",
    "BoundMismatch",
]
