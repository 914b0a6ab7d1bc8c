"""
Coefficient conversion utilities.

Polar helpers for editing coefficients (magnitude, phase, rebuilding from
polar form) and decibel scaling for display. Functions accept NumPy arrays
or mx.arrays and return the same kind they were given.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import mlx.core as mx
import numpy as np


def _to_mx(values: Any, dtype: mx.Dtype) -> tuple[mx.array, bool]:
    """Return (array, was_mlx)."""
    if isinstance(values, mx.array):
        return values.astype(dtype), True
    np_dtype = np.complex64 if dtype == mx.complex64 else np.float32
    return mx.array(np.asarray(values, dtype=np_dtype)), False


def _like_input(result: mx.array, was_mlx: bool) -> Any:
    return result if was_mlx else np.array(result)


def magnitude(coefs: Any) -> Any:
    """
    Compute the magnitude of complex coefficients.

    Parameters
    ----------
    coefs : array_like or mx.array
        Complex coefficients, e.g. the output of Coefs.read().

    Returns
    -------
    np.ndarray or mx.array
        Magnitudes (same shape, float32).
    """
    values, was_mlx = _to_mx(coefs, mx.complex64)
    return _like_input(mx.abs(values), was_mlx)


def phase(coefs: Any) -> Any:
    """
    Compute the phase of complex coefficients in radians.

    Returns
    -------
    np.ndarray or mx.array
        Phase angles in ``[-pi, pi]`` (same shape, float32).
    """
    values, was_mlx = _to_mx(coefs, mx.complex64)
    return _like_input(mx.arctan2(values.imag, values.real), was_mlx)


def from_polar(magnitudes: Any, phases: Any) -> Any:
    """
    Build complex coefficients from magnitude and phase.

    Examples
    --------
    >>> values = coefs.read(0, analyzer.n_bands, t0, t1)
    >>> scrambled = from_polar(magnitude(values), rng.uniform(-np.pi, np.pi, len(values)))
    >>> coefs.write(0, analyzer.n_bands, t0, t1, scrambled, WriteCoefficientsMode.ONLY_OVERWRITE)
    """
    mags, was_mlx = _to_mx(magnitudes, mx.float32)
    angles, _ = _to_mx(phases, mx.float32)
    real = np.array(mags * mx.cos(angles))
    imag = np.array(mags * mx.sin(angles))
    result = (real + 1j * imag).astype(np.complex64)
    return mx.array(result) if was_mlx else result


def amplitude_to_db(
    S: Any,
    ref: float | Callable[[mx.array], mx.array] = 1.0,
    amin: float = 1e-5,
    top_db: float | None = 80.0,
) -> Any:
    """
    Convert coefficient magnitudes to decibel (dB) units.

    This computes: 20 * log10(S / ref)

    Parameters
    ----------
    S : array_like or mx.array
        Non-negative magnitudes. Complex input is converted with magnitude().
    ref : float or callable, default=1.0
        Reference amplitude. If callable, computed as ref(S).
        Common choice: ref=mx.max for normalization.
    amin : float, default=1e-5
        Minimum threshold for S. Values below this are clipped.
    top_db : float or None, default=80.0
        Maximum dynamic range in dB. If not None, the output is clipped to
        (max(S_db) - top_db, max(S_db)).

    Returns
    -------
    np.ndarray or mx.array
        Magnitudes in decibels.
    """
    if top_db is not None and top_db <= 0:
        raise ValueError(f"top_db must be positive, got {top_db}")

    if isinstance(S, mx.array):
        if S.dtype == mx.complex64:
            S = magnitude(S)
    elif np.iscomplexobj(S):
        S = magnitude(S)
    values, was_mlx = _to_mx(S, mx.float32)

    if callable(ref):
        ref_value = ref(values)
    else:
        ref_value = mx.array(ref, dtype=values.dtype)

    values = mx.maximum(values, amin)
    ref_value = mx.maximum(ref_value, amin)
    S_db = 20.0 * mx.log10(values / ref_value)

    if top_db is not None:
        S_db = mx.maximum(S_db, mx.max(S_db) - top_db)

    return _like_input(S_db, was_mlx)
