"""
Shared validation utilities for parameter checking.

These utilities provide consistent error messages across the library.
"""

from __future__ import annotations

from numbers import Integral, Real

from .errors import BandIndexOutOfRange, InvalidParameter


def validate_integer(value: object, name: str) -> None:
    """
    Validate that a value is an integer (bool is rejected).

    Raises
    ------
    InvalidParameter
        If value is not an integer.
    """
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise InvalidParameter(
            f"{name} must be an integer, got {type(value).__name__}"
        )


def validate_positive(value: float, name: str) -> None:
    """
    Validate that a value is positive.

    Parameters
    ----------
    value : float
        Value to validate.
    name : str
        Parameter name for error message.

    Raises
    ------
    InvalidParameter
        If value is not positive.
    """
    if not isinstance(value, Real) or not value > 0:
        raise InvalidParameter(f"{name} must be positive, got {value}")


def validate_range(
    value: float,
    name: str,
    min_val: float | None = None,
    max_val: float | None = None,
    min_inclusive: bool = True,
    max_inclusive: bool = True,
) -> None:
    """
    Validate that a value is within a specified range.

    Parameters
    ----------
    value : float
        Value to validate.
    name : str
        Parameter name for error message.
    min_val : float, optional
        Minimum allowed value.
    max_val : float, optional
        Maximum allowed value.
    min_inclusive : bool, default=True
        Whether min_val is inclusive.
    max_inclusive : bool, default=True
        Whether max_val is inclusive.

    Raises
    ------
    InvalidParameter
        If value is outside the specified range (NaN is always outside).
    """
    if not isinstance(value, Real) or value != value:
        raise InvalidParameter(f"{name} must be a real number, got {value}")

    if min_val is not None:
        if min_inclusive and value < min_val:
            raise InvalidParameter(f"{name} must be >= {min_val}, got {value}")
        elif not min_inclusive and value <= min_val:
            raise InvalidParameter(f"{name} must be > {min_val}, got {value}")

    if max_val is not None:
        if max_inclusive and value > max_val:
            raise InvalidParameter(f"{name} must be <= {max_val}, got {value}")
        elif not max_inclusive and value >= max_val:
            raise InvalidParameter(f"{name} must be < {max_val}, got {value}")


def validate_band(band: int, n_bands: int) -> None:
    """
    Validate that a band index lies in ``[0, n_bands)``.

    Raises
    ------
    BandIndexOutOfRange
        If the index is outside the filterbank.
    """
    if isinstance(band, bool) or not isinstance(band, Integral):
        raise TypeError(f"band must be an integer, got {type(band).__name__}")
    if not 0 <= band < n_bands:
        raise BandIndexOutOfRange(
            f"band must be in [0, {n_bands}), got {band}"
        )
