"""
Constant-Q Gabor filterbank design.

Derives the band ladder, Gaussian analysis responses, dual synthesis
responses, support lengths and per-band decimation from a Params set.

The analysis filters are Gaussians in frequency, one per bandpass band on a
logarithmic ladder plus a zero-centered lowpass band. Synthesis uses the
canonical dual frame: each analysis response divided by the total power

    Q(f) = sum_k (G_k(f)^2 + G_k(-f)^2) + G_lp(f)^2

so that analysis followed by synthesis is the identity for real signals, up
to the truncation threshold used for impulse responses and band supports.
All design math runs in float64 NumPy; results are cached per Params.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache

import numpy as np

from ._validation import validate_integer, validate_positive, validate_range
from .errors import InvalidParameter

logger = logging.getLogger(__name__)

# Taps and spectral bins below this fraction of a response's peak are treated as zero.
_SUPPORT_EPSILON = 1e-7

# Frequency grid bounds for impulse response design (powers of two)
_MIN_GRID_SIZE = 4096
_MAX_GRID_SIZE = 1 << 24

# Slack for float error when locating ladder frequencies on exact powers
_LADDER_TOLERANCE = 1e-9

# Responses wider than this (cycles/sample) are periodized explicitly
_WIDE_RESPONSE_STD = 0.05

# Below this overlap the dual frame is poorly conditioned
_MIN_RECONSTRUCTION_OVERLAP = 0.4

# Real-signal synthesis weights: analytic bandpass bands see half the spectrum
_BANDPASS_WEIGHT = 2.0
_LOWPASS_WEIGHT = 1.0


@dataclass(frozen=True)
class Params:
    """
    Filterbank parameters.

    Parameters
    ----------
    bands_per_octave : int
        Number of bandpass bands per octave. Values from 6 to 384 are
        typical; more bands means longer filters.
    ff_min : float
        Lower limit of the analysis range, as a fraction of the sample rate.
        The ladder extends down until ff_min falls between the two lowest
        bandpass bands.
    ff_ref : float
        Reference frequency, as a fraction of the sample rate. One bandpass
        band is centered exactly on it.
    overlap : float, default=0.7
        Gaussian width relative to the band spacing. Values of 0.4 and
        above give well-conditioned reconstruction.
    """

    bands_per_octave: int
    ff_min: float
    ff_ref: float
    overlap: float = 0.7

    @classmethod
    def for_sample_rate(
        cls,
        sample_rate: float,
        bands_per_octave: int,
        f_min: float = 200.0,
        f_ref: float = 440.0,
        overlap: float = 0.7,
    ) -> Params:
        """
        Build parameters from frequencies in Hz.

        Examples
        --------
        >>> Params.for_sample_rate(48000, 24).ff_ref
        0.009166666666666667
        """
        validate_positive(sample_rate, "sample_rate")
        return cls(
            bands_per_octave=bands_per_octave,
            ff_min=f_min / sample_rate,
            ff_ref=f_ref / sample_rate,
            overlap=overlap,
        )


def validate_params(params: Params) -> None:
    """
    Check a Params set.

    Raises
    ------
    TypeError
        If params is not a Params instance.
    InvalidParameter
        If any field is out of range.
    """
    if not isinstance(params, Params):
        raise TypeError(f"params must be Params, got {type(params).__name__}")
    validate_integer(params.bands_per_octave, "bands_per_octave")
    validate_positive(params.bands_per_octave, "bands_per_octave")
    validate_range(params.ff_min, "ff_min", 0.0, 0.5, False, False)
    validate_range(params.ff_ref, "ff_ref", 0.0, 0.5, False, False)
    validate_range(params.overlap, "overlap", 0.0, None, False)


@dataclass(frozen=True)
class FilterbankDesign:
    """
    Immutable result of designing a filterbank.

    Band 0 is the highest-frequency bandpass band, the last band is the
    lowpass band. Kernels are tap arrays of odd length ``2 * L + 1`` with
    offset 0 at index ``L``.
    """

    ff: np.ndarray
    decimation: np.ndarray
    analysis_kernels: tuple[np.ndarray, ...]
    synthesis_kernels: tuple[np.ndarray, ...]
    band_ref: int
    grid_size: int

    @property
    def n_bands(self) -> int:
        return len(self.ff)

    @property
    def band_lowpass(self) -> int:
        return len(self.ff) - 1

    @property
    def analysis_half_len(self) -> np.ndarray:
        return np.array([(len(k) - 1) // 2 for k in self.analysis_kernels])

    @property
    def synthesis_half_len(self) -> np.ndarray:
        return np.array([(len(k) - 1) // 2 for k in self.synthesis_kernels])

    @property
    def analysis_support(self) -> int:
        return int(self.analysis_half_len.max())

    @property
    def synthesis_support(self) -> int:
        return int(self.synthesis_half_len.max())


def next_pow2(n: float) -> int:
    """Smallest power of two >= n (and >= 1)."""
    return 1 << max(0, math.ceil(math.log2(max(n, 1))))


def band_ladder(
    bands_per_octave: int, ff_min: float, ff_ref: float
) -> tuple[np.ndarray, int]:
    """
    Compute bandpass center frequencies.

    Returns
    -------
    ff : np.ndarray
        Center frequencies in descending order (band 0 first).
    band_ref : int
        Index of the band centered on ff_ref.
    """
    log_ratio = math.log(2.0) / bands_per_octave

    # Highest ladder step strictly below Nyquist
    j_top = math.ceil(math.log(0.5 / ff_ref) / log_ratio - _LADDER_TOLERANCE) - 1
    # ff_min falls between the two lowest steps; never stop above ff_ref
    j_bottom = math.ceil(math.log(ff_min / ff_ref) / log_ratio - _LADDER_TOLERANCE) - 1
    j_bottom = min(j_bottom, 0)

    steps = np.arange(j_top, j_bottom - 1, -1, dtype=np.float64)
    ff = ff_ref * np.exp2(steps / bands_per_octave)
    return ff, j_top


def _gaussian(freqs: np.ndarray, center: float, std: float) -> np.ndarray:
    """Gaussian bump on the unit frequency circle."""
    if std < _WIDE_RESPONSE_STD:
        distance = (freqs - center + 0.5) % 1.0 - 0.5
        return np.exp(-0.5 * (distance / std) ** 2)

    response = np.zeros_like(freqs)
    for image in range(-2, 3):
        response += np.exp(-0.5 * ((freqs - center + image) / std) ** 2)
    return response


def _support_half_len(taps: np.ndarray) -> int:
    """Largest |offset| whose tap magnitude reaches the support threshold."""
    grid_size = len(taps)
    magnitude = np.abs(taps)
    significant = np.nonzero(magnitude >= _SUPPORT_EPSILON * magnitude.max())[0]
    offsets = np.where(significant >= grid_size // 2, significant - grid_size, significant)
    return int(np.abs(offsets).max())


def _centered_taps(taps: np.ndarray, half_len: int) -> np.ndarray:
    offsets = np.arange(-half_len, half_len + 1) % len(taps)
    kernel = taps[offsets].copy()
    kernel.flags.writeable = False
    return kernel


def _decimation(*responses: np.ndarray) -> int:
    """
    Largest power of two D such that the responses' common frequency
    support fits in an arc of width 1/D.
    """
    grid_size = len(responses[0])
    mask = np.zeros(grid_size, dtype=bool)
    for response in responses:
        mask |= response >= _SUPPORT_EPSILON * response.max()
    occupied = int(mask.sum())

    decimation = 1
    while 2 * decimation * occupied <= grid_size:
        decimation *= 2
    return decimation


def _design_on_grid(
    ff: np.ndarray,
    sigma: np.ndarray,
    sigma_lowpass: float,
    lowpass_gain: float,
    grid_size: int,
) -> tuple[list, list, list] | None:
    """
    Design all kernels on one frequency grid.

    Returns None when some impulse response has not decayed well before
    half the grid, in which case the caller retries on a larger grid.
    """
    freqs = np.fft.fftfreq(grid_size)
    mirror = (-np.arange(grid_size)) % grid_size

    # Pass 1: total power, responses recomputed in pass 2 to bound memory
    power = np.zeros(grid_size)
    for center, std in zip(ff, sigma):
        power += _gaussian(freqs, center, std) ** 2
    lowpass = lowpass_gain * _gaussian(freqs, 0.0, sigma_lowpass)
    total_power = power + power[mirror] + lowpass**2

    specs = [(c, s, _BANDPASS_WEIGHT) for c, s in zip(ff, sigma)]
    analysis, synthesis, decimation = [], [], []
    for index, (center, std, weight) in enumerate(specs + [(0.0, sigma_lowpass, _LOWPASS_WEIGHT)]):
        if index < len(specs):
            response = _gaussian(freqs, center, std)
        else:
            response = lowpass
        dual = response / total_power
        band_decimation = _decimation(response, dual)

        analysis_taps = np.fft.ifft(response)
        synthesis_taps = np.fft.ifft(weight * band_decimation * dual)

        analysis_half = _support_half_len(analysis_taps)
        synthesis_half = _support_half_len(synthesis_taps)
        if max(analysis_half, synthesis_half) >= grid_size // 4:
            return None

        analysis.append(_centered_taps(analysis_taps, analysis_half))
        synthesis.append(_centered_taps(synthesis_taps, synthesis_half))
        decimation.append(band_decimation)

    return analysis, synthesis, decimation


@lru_cache(maxsize=16)
def design_filterbank(params: Params) -> FilterbankDesign:
    """
    Design the filterbank described by params.

    Results are cached for repeated calls with identical parameters.

    Parameters
    ----------
    params : Params
        Filterbank parameters (validated).

    Returns
    -------
    FilterbankDesign
        Band frequencies, decimation factors and kernels.

    Raises
    ------
    InvalidParameter
        If params are invalid or the filters would be impractically long.
    """
    validate_params(params)
    bands_per_octave = int(params.bands_per_octave)
    overlap = float(params.overlap)

    if overlap < _MIN_RECONSTRUCTION_OVERLAP:
        logger.warning(
            "overlap=%s is below %s; reconstruction accuracy is not guaranteed",
            overlap,
            _MIN_RECONSTRUCTION_OVERLAP,
        )

    ff, band_ref = band_ladder(bands_per_octave, float(params.ff_min), float(params.ff_ref))
    sigma = overlap * ff * (1.0 - 2.0 ** (-1.0 / bands_per_octave))
    sigma_lowpass = float(ff[-1])
    # Matches the plateau of the bandpass power sum, overlap * sqrt(pi)
    lowpass_gain = math.sqrt(overlap * math.sqrt(math.pi))

    # Start from the reach of the narrowest Gaussian in time
    sigma_t = 1.0 / (2.0 * math.pi * float(sigma.min()))
    reach = math.sqrt(2.0 * math.log(1.0 / _SUPPORT_EPSILON)) * sigma_t
    grid_size = next_pow2(max(_MIN_GRID_SIZE, 8 * reach))

    while True:
        if grid_size > _MAX_GRID_SIZE:
            raise InvalidParameter(
                f"filters for {params} exceed {_MAX_GRID_SIZE} samples; "
                f"raise ff_min or lower bands_per_octave"
            )
        kernels = _design_on_grid(ff, sigma, sigma_lowpass, lowpass_gain, grid_size)
        if kernels is not None:
            break
        grid_size *= 2

    analysis, synthesis, decimation = kernels
    band_ff = np.append(ff, 0.0)
    band_ff.flags.writeable = False
    band_decimation = np.array(decimation, dtype=np.int64)
    band_decimation.flags.writeable = False

    design = FilterbankDesign(
        ff=band_ff,
        decimation=band_decimation,
        analysis_kernels=tuple(analysis),
        synthesis_kernels=tuple(synthesis),
        band_ref=band_ref,
        grid_size=grid_size,
    )
    logger.debug(
        "designed %d bands on a %d-point grid: analysis support %d, synthesis support %d",
        design.n_bands,
        grid_size,
        design.analysis_support,
        design.synthesis_support,
    )
    return design
