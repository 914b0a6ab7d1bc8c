"""
Flat functional interface.

Thin wrappers over Analyzer and Coefs for callers that prefer free
functions, mirroring the boundary surface of a host-language binding.
Range functions take the store first, then
``(from_band, to_band, from_sample_time, to_sample_time)``.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from .analyzer import Analyzer
from .coefs import Coefs, Visitor, WriteCoefficientsMode
from .filterbanks import Params


def new_analyzer(params: Params) -> Analyzer:
    """Build an analyzer from params. Raises InvalidParameter."""
    return Analyzer(params)


def get_analysis_support_len(analyzer: Analyzer) -> int:
    return analyzer.analysis_support_len


def get_synthesis_support_len(analyzer: Analyzer) -> int:
    return analyzer.synthesis_support_len


def bandpass_bands_begin(analyzer: Analyzer) -> int:
    return analyzer.bandpass_bands_begin


def bandpass_bands_end(analyzer: Analyzer) -> int:
    return analyzer.bandpass_bands_end


def band_lowpass(analyzer: Analyzer) -> int:
    return analyzer.band_lowpass


def band_ref(analyzer: Analyzer) -> int:
    return analyzer.band_ref


def band_ff(analyzer: Analyzer, band: int) -> float:
    """Center frequency of band. Raises BandIndexOutOfRange."""
    return analyzer.band_ff(band)


def create_coefs(analyzer: Analyzer) -> Coefs:
    """Create an empty coefficient store bound to analyzer."""
    return Coefs(analyzer)


def forget_before(analyzer: Analyzer, coefs: Coefs, limit: int, clean_cut: bool) -> None:
    """
    Discard coefficients before sample time limit.

    Raises
    ------
    BoundMismatch
        If coefs was created for a different filterbank.
    """
    coefs.require_bound(analyzer)
    coefs.forget_before(limit, clean_cut)


def read_coefficients(
    coefs: Coefs, from_band: int, to_band: int, from_sample_time: int, to_sample_time: int
) -> np.ndarray:
    return coefs.read(from_band, to_band, from_sample_time, to_sample_time)


def read_coefficients_with_meta(
    coefs: Coefs, from_band: int, to_band: int, from_sample_time: int, to_sample_time: int
) -> tuple[np.ndarray, np.ndarray]:
    return coefs.read_with_meta(from_band, to_band, from_sample_time, to_sample_time)


def write_coefficients(
    coefs: Coefs,
    from_band: int,
    to_band: int,
    from_sample_time: int,
    to_sample_time: int,
    values: Any,
    mode: WriteCoefficientsMode = WriteCoefficientsMode.FILL,
) -> None:
    coefs.write(from_band, to_band, from_sample_time, to_sample_time, values, mode)


def write_coefficients_with_meta(
    coefs: Coefs,
    from_band: int,
    to_band: int,
    from_sample_time: int,
    to_sample_time: int,
    values: Any,
    meta: Any,
    mode: WriteCoefficientsMode = WriteCoefficientsMode.FILL,
) -> bool:
    """Write values after checking meta; False if any position mismatched."""
    return coefs.write_with_meta(
        from_band, to_band, from_sample_time, to_sample_time, values, meta, mode
    )


def process(
    coefs: Coefs,
    from_band: int,
    to_band: int,
    from_sample_time: int,
    to_sample_time: int,
    visit: Visitor,
) -> None:
    coefs.process(from_band, to_band, from_sample_time, to_sample_time, visit)


def fill(
    coefs: Coefs,
    from_band: int,
    to_band: int,
    from_sample_time: int,
    to_sample_time: int,
    visit: Visitor,
) -> None:
    coefs.fill(from_band, to_band, from_sample_time, to_sample_time, visit)


def analyze(
    analyzer: Analyzer, signal: Any, signal_begin_sample_number: int, coefs: Coefs
) -> None:
    analyzer.analyze(signal, signal_begin_sample_number, coefs)


def synthesize(
    analyzer: Analyzer,
    coefs: Coefs,
    signal_begin_sample_number: int,
    signal: np.ndarray | int,
) -> np.ndarray:
    return analyzer.synthesize(coefs, signal_begin_sample_number, signal)
