"""
Gabor filterbank analyzer: forward and inverse transforms.

The analyzer wraps an immutable FilterbankDesign and runs both transforms
as FFT block convolutions on MLX. Analysis convolves the signal with every
band's analysis kernel and samples each band at its own decimated rate;
synthesis places the coefficients back on the sample grid, convolves them
with the dual kernels and sums the real parts.
"""

from __future__ import annotations

import enum
import logging
import threading
from numbers import Integral
from typing import Any

import mlx.core as mx
import numpy as np

from ._profiler import log_cache_access, profile, to_mlx, to_numpy
from ._validation import validate_band
from .coefs import Coefs, as_sample_time, ceil_div
from .filterbanks import FilterbankDesign, Params, design_filterbank, next_pow2, validate_params

logger = logging.getLogger(__name__)

# Longest signal block handled by one FFT convolution
_MAX_BLOCK_SAMPLES = 65536

# Bands convolved together in one batched FFT
_BAND_BATCH = 16

# Cache settings: one entry holds every band of one kind at one FFT size,
# so a streaming analyze + synthesize pass needs two entries per block size
_SPECTRUM_CACHE_MAXSIZE = 8


class BandKind(enum.Enum):
    """Classification of a band."""

    BANDPASS = "bandpass"
    LOWPASS = "lowpass"
    REFERENCE = "reference"


class _KernelSpectrumCache:
    """
    LRU cache of kernel spectra for a whole filterbank.

    Keys are (params, kind, fft_size); values are tuples of complex64
    mx.arrays, one per batch of ``_BAND_BATCH`` bands, each of shape
    (bands in batch, fft_size). Params are hashed by value, so analyzers
    built from equal parameters share entries.
    """

    def __init__(self, maxsize: int = _SPECTRUM_CACHE_MAXSIZE):
        self._cache: dict[tuple, tuple[mx.array, ...]] = {}
        self._access_order: list[tuple] = []
        self._maxsize = maxsize
        self._lock = threading.Lock()

    def get(self, key: tuple) -> tuple[mx.array, ...] | None:
        """Get spectra from cache, returning None on miss."""
        with self._lock:
            value = self._cache.get(key)
            if value is not None:
                self._access_order.remove(key)
                self._access_order.append(key)
        log_cache_access("kernel_spectra", value is not None)
        return value

    def put(self, key: tuple, value: tuple[mx.array, ...]) -> None:
        """Store spectra, evicting the least recently used if at capacity."""
        with self._lock:
            if key in self._cache:
                return
            while len(self._cache) >= self._maxsize and self._access_order:
                oldest = self._access_order.pop(0)
                self._cache.pop(oldest, None)
            self._cache[key] = value
            self._access_order.append(key)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._access_order.clear()


_kernel_spectrum_cache = _KernelSpectrumCache()


def _kernel_spectra(
    params: Params,
    design: FilterbankDesign,
    kind: str,
    fft_size: int,
) -> tuple[mx.array, ...]:
    """
    Spectra of every band's kernel of one kind at fft_size.

    Entry ``i`` of the result holds bands ``[i * _BAND_BATCH, (i + 1) *
    _BAND_BATCH)``. Each kernel is placed with offset 0 at index ``support``
    (the maximum half length of its kind) so that linear convolution output
    needs no wraparound handling.
    """
    key = (params, kind, fft_size)
    cached = _kernel_spectrum_cache.get(key)
    if cached is not None:
        return cached

    if kind == "analysis":
        kernels, support = design.analysis_kernels, design.analysis_support
    else:
        kernels, support = design.synthesis_kernels, design.synthesis_support

    batches = []
    for band_lo in range(0, design.n_bands, _BAND_BATCH):
        band_hi = min(band_lo + _BAND_BATCH, design.n_bands)
        taps = np.zeros((band_hi - band_lo, fft_size), dtype=np.complex128)
        for row, kernel in zip(taps, kernels[band_lo:band_hi]):
            half = (len(kernel) - 1) // 2
            row[support - half : support + half + 1] = kernel
        batches.append(mx.array(np.fft.fft(taps, axis=-1).astype(np.complex64)))
    spectra = tuple(batches)

    logger.debug(
        "cached %s spectra for %d bands at fft size %d", kind, design.n_bands, fft_size
    )
    _kernel_spectrum_cache.put(key, spectra)
    return spectra


def _as_signal(signal: Any) -> np.ndarray:
    """Convert an input signal to a 1D float32 array."""
    if isinstance(signal, mx.array):
        signal = to_numpy(signal.astype(mx.float32), "input signal")
    signal = np.asarray(signal, dtype=np.float32)
    if signal.ndim != 1:
        raise ValueError(f"signal must be 1D, got {signal.ndim}D")
    return signal


class Analyzer:
    """
    Immutable Gabor filterbank.

    Parameters
    ----------
    params : Params
        Filterbank parameters.

    Raises
    ------
    InvalidParameter
        If params are out of range.

    Notes
    -----
    Band 0 is the highest-frequency bandpass band. Band numbers increase as
    frequency decreases; the last band is the lowpass band. Attributes
    cannot be set or deleted after construction, so stores bound to an
    Analyzer always see the same band layout and it can be shared freely
    between threads.

    Examples
    --------
    >>> analyzer = Analyzer(Params.for_sample_rate(48000, 24))
    >>> coefs = Coefs(analyzer)
    >>> analyzer.analyze(signal, 0, coefs)
    >>> out = analyzer.synthesize(coefs, 0, len(signal))
    """

    __slots__ = ("_params", "_design")

    def __init__(self, params: Params):
        validate_params(params)
        object.__setattr__(self, "_params", params)
        object.__setattr__(self, "_design", design_filterbank(params))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"Analyzer is immutable, cannot set {name!r}")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Analyzer is immutable, cannot delete {name!r}")

    def __repr__(self) -> str:
        return f"Analyzer({self._params!r})"

    @property
    def params(self) -> Params:
        return self._params

    @property
    def n_bands(self) -> int:
        """Total band count, bandpass bands plus the lowpass band."""
        return self._design.n_bands

    @property
    def bandpass_bands_begin(self) -> int:
        return 0

    @property
    def bandpass_bands_end(self) -> int:
        return self._design.band_lowpass

    @property
    def band_lowpass(self) -> int:
        return self._design.band_lowpass

    @property
    def band_ref(self) -> int:
        """Band centered on ff_ref."""
        return self._design.band_ref

    @property
    def analysis_support_len(self) -> int:
        """Samples of context needed on each side to compute a coefficient."""
        return self._design.analysis_support

    @property
    def synthesis_support_len(self) -> int:
        """Samples of context needed on each side to reconstruct a sample."""
        return self._design.synthesis_support

    def band_ff(self, band: int) -> float:
        """Center frequency of band as a fraction of the sample rate."""
        validate_band(band, self.n_bands)
        return float(self._design.ff[band])

    def band_decimation(self, band: int) -> int:
        """Sample-time spacing of band's coefficients."""
        validate_band(band, self.n_bands)
        return int(self._design.decimation[band])

    def band_kind(self, band: int) -> BandKind:
        validate_band(band, self.n_bands)
        if band == self._design.band_lowpass:
            return BandKind.LOWPASS
        if band == self._design.band_ref:
            return BandKind.REFERENCE
        return BandKind.BANDPASS

    def analysis_kernel(self, band: int) -> np.ndarray:
        """
        Analysis taps of band, offset 0 at the center.

        Coefficient ``n`` of a band with decimation ``D`` equals
        ``sum_t x[t] * kernel[n * D - t + L]`` where ``L`` is the kernel's
        half length.
        """
        validate_band(band, self.n_bands)
        return self._design.analysis_kernels[band]

    def synthesis_kernel(self, band: int) -> np.ndarray:
        """Synthesis (dual) taps of band, offset 0 at the center."""
        validate_band(band, self.n_bands)
        return self._design.synthesis_kernels[band]

    def _require_coefs(self, coefs: Coefs) -> None:
        if not isinstance(coefs, Coefs):
            raise TypeError(f"coefs must be Coefs, got {type(coefs).__name__}")
        coefs.require_bound(self)

    @profile(samples_arg=1)
    def analyze(self, signal: Any, signal_begin_sample_number: int, coefs: Coefs) -> None:
        """
        Add the coefficients of a signal chunk to coefs.

        Parameters
        ----------
        signal : array_like
            Samples ``[t0, t0 + len(signal))`` of a signal that is zero
            outside the chunks passed to analyze.
        signal_begin_sample_number : int
            Global sample time ``t0`` of ``signal[0]``.
        coefs : Coefs
            Store to accumulate into.

        Notes
        -----
        Every coefficient whose analysis support overlaps the chunk receives
        the chunk's contribution. Feeding contiguous, non-overlapping chunks
        gives the same coefficients as one call over the concatenation;
        overlapping chunks are counted twice.
        """
        self._require_coefs(coefs)
        x = _as_signal(signal)
        t0 = as_sample_time(signal_begin_sample_number, "signal_begin_sample_number")

        for start in range(0, len(x), _MAX_BLOCK_SAMPLES):
            self._analyze_block(x[start : start + _MAX_BLOCK_SAMPLES], t0 + start, coefs)

    def _analyze_block(self, x: np.ndarray, t0: int, coefs: Coefs) -> None:
        design = self._design
        n = len(x)
        support = design.analysis_support
        half_len = design.analysis_half_len
        fft_size = next_pow2(n + 2 * support)

        padded = np.zeros(fft_size, dtype=np.float32)
        padded[:n] = x
        spectrum = mx.fft.fft(to_mlx(padded, "analyze signal"))
        spectra = _kernel_spectra(self._params, design, "analysis", fft_size)

        for batch, kernels in enumerate(spectra):
            band_lo = batch * _BAND_BATCH
            band_hi = min(band_lo + _BAND_BATCH, design.n_bands)
            filtered = mx.fft.ifft(spectrum[None, :] * kernels, axis=-1)
            rows = to_numpy(filtered, "analyze bands")

            for band, row in zip(range(band_lo, band_hi), rows):
                decimation = int(design.decimation[band])
                half = int(half_len[band])
                first = ceil_div(t0 - half, decimation)
                last = (t0 + n - 1 + half) // decimation
                if last < first:
                    continue
                # Row index of global time t is t - t0 + support
                offset = first * decimation - t0 + support
                values = row[offset : offset + (last - first) * decimation + 1 : decimation]
                coefs._accumulate(band, first, values)

    @profile
    def synthesize(
        self, coefs: Coefs, signal_begin_sample_number: int, signal: np.ndarray | int
    ) -> np.ndarray:
        """
        Reconstruct samples from the coefficients in coefs.

        Parameters
        ----------
        coefs : Coefs
            Coefficient store. Missing coefficients count as zero.
        signal_begin_sample_number : int
            Global sample time of the first output sample.
        signal : np.ndarray or int
            Writeable 1D float array to overwrite, or the number of samples
            to reconstruct into a new float32 array.

        Returns
        -------
        np.ndarray
            The reconstructed samples (``signal`` itself when an array was
            given).
        """
        self._require_coefs(coefs)
        t0 = as_sample_time(signal_begin_sample_number, "signal_begin_sample_number")

        if isinstance(signal, Integral) and not isinstance(signal, bool):
            if signal < 0:
                raise ValueError(f"signal length must be non-negative, got {signal}")
            out = np.zeros(int(signal), dtype=np.float32)
        elif isinstance(signal, np.ndarray):
            if signal.ndim != 1:
                raise ValueError(f"signal must be 1D, got {signal.ndim}D")
            if not signal.flags.writeable:
                raise ValueError("signal must be writeable")
            out = signal
        else:
            raise TypeError(
                f"signal must be a numpy array or a length, got {type(signal).__name__}"
            )

        for start in range(0, len(out), _MAX_BLOCK_SAMPLES):
            stop = min(start + _MAX_BLOCK_SAMPLES, len(out))
            out[start:stop] = self._synthesize_block(coefs, t0 + start, stop - start)
        return out

    def _synthesize_block(self, coefs: Coefs, t0: int, n: int) -> np.ndarray:
        design = self._design
        support = design.synthesis_support
        half_len = design.synthesis_half_len
        fft_size = next_pow2(n + 4 * support)

        total = np.zeros(fft_size, dtype=np.complex64)
        spectra = None
        for band_lo in range(0, design.n_bands, _BAND_BATCH):
            band_hi = min(band_lo + _BAND_BATCH, design.n_bands)
            upsampled = np.zeros((band_hi - band_lo, fft_size), dtype=np.complex64)
            present = False

            for band, row in zip(range(band_lo, band_hi), upsampled):
                decimation = int(design.decimation[band])
                half = int(half_len[band])
                first = ceil_div(t0 - half, decimation)
                last = (t0 + n - 1 + half) // decimation
                if last < first:
                    continue
                values = coefs._gather(band, first, last + 1)
                if not values.any():
                    continue
                offset = first * decimation - t0 + support
                row[offset : offset + (last - first) * decimation + 1 : decimation] = values
                present = True

            if not present:
                continue
            if spectra is None:
                spectra = _kernel_spectra(self._params, design, "synthesis", fft_size)
            kernels = spectra[band_lo // _BAND_BATCH]
            band_spectra = mx.fft.fft(to_mlx(upsampled, "synthesize bands"), axis=-1) * kernels
            total += to_numpy(band_spectra, "synthesize bands").sum(axis=0)

        if spectra is None:
            return np.zeros(n, dtype=np.float32)

        # Output index of global time t is t - t0 + 2 * support
        y = mx.fft.ifft(to_mlx(total, "synthesize output")).real
        return to_numpy(y[2 * support : 2 * support + n], "synthesize output")
