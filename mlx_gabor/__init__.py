"""
mlx-gabor: Streaming constant-Q Gabor analysis and synthesis for MLX.

A Gaussian filterbank with logarithmically spaced bands, per-band sample
rates and near-perfect reconstruction, with a sparse coefficient store
suited to unbounded streaming.

Filterbank
----------
Params : Filterbank parameters (bands per octave, frequency range, overlap)
Analyzer : Immutable filterbank with analyze() and synthesize()
BandKind : Band classification (bandpass, lowpass, reference)

Coefficients
------------
Coefs : Sparse coefficient store bound to an Analyzer
CoefMeta : (band, sample_time) coordinate of one coefficient
COEF_META_DTYPE : Structured dtype for bulk coordinates
WriteCoefficientsMode : FILL or ONLY_OVERWRITE

Functional Interface
--------------------
new_analyzer, create_coefs, analyze, synthesize, forget_before,
read_coefficients, read_coefficients_with_meta, write_coefficients,
write_coefficients_with_meta, process, fill, band_ff, band_lowpass,
band_ref, bandpass_bands_begin, bandpass_bands_end,
get_analysis_support_len, get_synthesis_support_len

Conversions
-----------
magnitude : Magnitude of complex coefficients
phase : Phase of complex coefficients
from_polar : Complex coefficients from magnitude and phase
amplitude_to_db : Convert magnitudes to decibels

Errors
------
GaborError, InvalidParameter, BandIndexOutOfRange, BoundMismatch
"""

# Get version from installed package metadata (declared in setup.py)
try:
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as _get_version

    __version__ = _get_version("mlx-gabor")
except (ImportError, PackageNotFoundError):
    __version__ = "0.1.0"  # Fallback for source checkouts

from .analyzer import Analyzer, BandKind
from .api import (
    analyze,
    band_ff,
    band_lowpass,
    band_ref,
    bandpass_bands_begin,
    bandpass_bands_end,
    create_coefs,
    fill,
    forget_before,
    get_analysis_support_len,
    get_synthesis_support_len,
    new_analyzer,
    process,
    read_coefficients,
    read_coefficients_with_meta,
    synthesize,
    write_coefficients,
    write_coefficients_with_meta,
)
from .coefs import COEF_META_DTYPE, CoefMeta, Coefs, WriteCoefficientsMode
from .convert import amplitude_to_db, from_polar, magnitude, phase
from .errors import BandIndexOutOfRange, BoundMismatch, GaborError, InvalidParameter
from .filterbanks import Params

__all__ = [
    # Version
    "__version__",
    # Filterbank
    "Params",
    "Analyzer",
    "BandKind",
    # Coefficients
    "Coefs",
    "CoefMeta",
    "COEF_META_DTYPE",
    "WriteCoefficientsMode",
    # Functional interface
    "new_analyzer",
    "get_analysis_support_len",
    "get_synthesis_support_len",
    "bandpass_bands_begin",
    "bandpass_bands_end",
    "band_lowpass",
    "band_ref",
    "band_ff",
    "create_coefs",
    "forget_before",
    "read_coefficients",
    "read_coefficients_with_meta",
    "write_coefficients",
    "write_coefficients_with_meta",
    "process",
    "fill",
    "analyze",
    "synthesize",
    # Conversions
    "magnitude",
    "phase",
    "from_polar",
    "amplitude_to_db",
    # Errors
    "GaborError",
    "InvalidParameter",
    "BandIndexOutOfRange",
    "BoundMismatch",
]
