"""
Filterbank design test suite.

Tests cover:
- Params validation and Hz-based construction
- Band ladder placement (Nyquist limit, ff_min coverage, reference band)
- Kernel shape, support lengths and decimation factors
- Frequency response of the designed kernels
- Design caching and low-overlap warning

Tolerance: 1e-6 on kernel responses (float64 design, 1e-7 truncation)
"""

import logging
import math

import numpy as np
import pytest

from mlx_gabor import InvalidParameter, Params
from mlx_gabor.filterbanks import band_ladder, design_filterbank, next_pow2, validate_params

TEST_PARAMS = Params(bands_per_octave=12, ff_min=0.02, ff_ref=0.05, overlap=0.7)

_RESPONSE_TOL = 1e-6


def _response(kernel, freq):
    """DTFT of a centered kernel at freq (cycles/sample)."""
    half = (len(kernel) - 1) // 2
    offsets = np.arange(-half, half + 1)
    return np.sum(kernel * np.exp(-2j * np.pi * freq * offsets))


class TestParams:
    """Tests for Params and validate_params()."""

    def test_for_sample_rate(self):
        """Test Hz values are converted to fractions of the sample rate."""
        params = Params.for_sample_rate(48000, 24, f_min=100.0, f_ref=440.0)
        assert params.bands_per_octave == 24
        assert math.isclose(params.ff_min, 100.0 / 48000)
        assert math.isclose(params.ff_ref, 440.0 / 48000)
        assert params.overlap == 0.7

    def test_for_sample_rate_rejects_zero_rate(self):
        """Test that a non-positive sample rate is rejected."""
        with pytest.raises(InvalidParameter, match="sample_rate"):
            Params.for_sample_rate(0, 12)

    def test_params_hashable(self):
        """Test equal Params hash equal (used as cache key)."""
        assert hash(Params(12, 0.02, 0.05)) == hash(Params(12, 0.02, 0.05, 0.7))

    @pytest.mark.parametrize(
        "kwargs, name",
        [
            ({"bands_per_octave": 0}, "bands_per_octave"),
            ({"bands_per_octave": -3}, "bands_per_octave"),
            ({"bands_per_octave": 12.0}, "bands_per_octave"),
            ({"bands_per_octave": True}, "bands_per_octave"),
            ({"ff_min": 0.0}, "ff_min"),
            ({"ff_min": 0.5}, "ff_min"),
            ({"ff_ref": -0.1}, "ff_ref"),
            ({"ff_ref": 0.7}, "ff_ref"),
            ({"ff_ref": float("nan")}, "ff_ref"),
            ({"overlap": 0.0}, "overlap"),
            ({"overlap": -1.0}, "overlap"),
        ],
    )
    def test_invalid_fields(self, kwargs, name):
        """Test each out-of-range field raises InvalidParameter naming it."""
        fields = {"bands_per_octave": 12, "ff_min": 0.02, "ff_ref": 0.05, "overlap": 0.7}
        fields.update(kwargs)
        with pytest.raises(InvalidParameter, match=name):
            validate_params(Params(**fields))

    def test_invalid_parameter_is_value_error(self):
        """Test InvalidParameter can be caught as ValueError."""
        with pytest.raises(ValueError):
            validate_params(Params(0, 0.02, 0.05))

    def test_rejects_non_params(self):
        """Test that other objects are a TypeError."""
        with pytest.raises(TypeError):
            validate_params((12, 0.02, 0.05, 0.7))


class TestBandLadder:
    """Tests for band_ladder()."""

    def test_descending_below_nyquist(self):
        """Test frequencies are strictly descending and below 0.5."""
        ff, _ = band_ladder(12, 0.02, 0.05)
        assert np.all(np.diff(ff) < 0)
        assert ff[0] < 0.5
        # The next ladder step up would reach Nyquist
        assert ff[0] * 2 ** (1 / 12) >= 0.5

    def test_reference_band_exact(self):
        """Test the reference band is centered exactly on ff_ref."""
        ff, band_ref = band_ladder(12, 0.02, 0.05)
        assert ff[band_ref] == pytest.approx(0.05, rel=1e-12)

    def test_ff_min_between_lowest_bands(self):
        """Test ff_min falls between the two lowest bandpass bands."""
        ff, _ = band_ladder(12, 0.02, 0.05)
        assert ff[-1] < 0.02 <= ff[-2]

    def test_known_layout(self):
        """Test band count and reference index for the shared test params."""
        ff, band_ref = band_ladder(12, 0.02, 0.05)
        assert len(ff) == 56
        assert band_ref == 39

    def test_exact_octave_ladder(self):
        """Test a ladder landing exactly on powers of two excludes Nyquist."""
        ff, band_ref = band_ladder(1, 0.0625, 0.125)
        np.testing.assert_allclose(ff, [0.25, 0.125, 0.0625, 0.03125])
        assert band_ref == 1

    def test_ref_below_ff_min(self):
        """Test the ladder still reaches ff_ref when it is below ff_min."""
        ff, band_ref = band_ladder(12, 0.1, 0.05)
        assert band_ref == len(ff) - 1
        assert ff[-1] == pytest.approx(0.05)


class TestDesign:
    """Tests for design_filterbank()."""

    def test_band_count_includes_lowpass(self):
        """Test the lowpass band follows the bandpass bands."""
        design = design_filterbank(TEST_PARAMS)
        assert design.n_bands == 57
        assert design.band_lowpass == 56
        assert design.ff[design.band_lowpass] == 0.0

    def test_kernels_odd_and_centered(self):
        """Test kernels have odd length 2L+1 with the peak near the center."""
        design = design_filterbank(TEST_PARAMS)
        for kernel in design.analysis_kernels + design.synthesis_kernels:
            assert len(kernel) % 2 == 1
            half = (len(kernel) - 1) // 2
            assert np.argmax(np.abs(kernel)) == half

    def test_supports_are_maxima(self):
        """Test support lengths are the largest per-band half lengths."""
        design = design_filterbank(TEST_PARAMS)
        assert design.analysis_support == max(
            (len(k) - 1) // 2 for k in design.analysis_kernels
        )
        assert design.synthesis_support == max(
            (len(k) - 1) // 2 for k in design.synthesis_kernels
        )
        assert design.analysis_support < design.grid_size // 4

    def test_lower_bands_have_longer_kernels(self):
        """Test constant-Q scaling: narrower bands need longer kernels."""
        design = design_filterbank(TEST_PARAMS)
        top = len(design.analysis_kernels[0])
        bottom = len(design.analysis_kernels[design.band_lowpass - 1])
        assert bottom > 10 * top

    def test_decimation_powers_of_two(self):
        """Test every decimation factor is a power of two."""
        design = design_filterbank(TEST_PARAMS)
        for d in design.decimation:
            assert d >= 1
            assert d & (d - 1) == 0

    def test_decimation_grows_toward_low_bands(self):
        """Test the lowest bandpass band is decimated more than the top."""
        design = design_filterbank(TEST_PARAMS)
        assert design.decimation[design.band_lowpass - 1] > design.decimation[0]

    def test_analysis_peak_gain(self):
        """Test each bandpass kernel has unit gain at its center frequency."""
        design = design_filterbank(TEST_PARAMS)
        for band in (0, design.band_ref, design.band_lowpass - 1):
            gain = _response(design.analysis_kernels[band], design.ff[band])
            assert abs(gain - 1.0) < _RESPONSE_TOL

    def test_bandpass_rejects_negative_frequencies(self):
        """Test bandpass kernels are analytic (no response at -f)."""
        design = design_filterbank(TEST_PARAMS)
        band = design.band_ref
        assert abs(_response(design.analysis_kernels[band], -design.ff[band])) < _RESPONSE_TOL

    def test_lowpass_kernel_real(self):
        """Test the zero-centered lowpass kernel is real."""
        design = design_filterbank(TEST_PARAMS)
        kernel = design.analysis_kernels[design.band_lowpass]
        assert np.max(np.abs(kernel.imag)) < 1e-9 * np.max(np.abs(kernel.real))

    def test_design_read_only(self):
        """Test designed arrays cannot be modified."""
        design = design_filterbank(TEST_PARAMS)
        with pytest.raises(ValueError):
            design.ff[0] = 0.1
        with pytest.raises(ValueError):
            design.analysis_kernels[0][0] = 0

    def test_design_cached(self):
        """Test equal Params return the cached design."""
        first = design_filterbank(Params(12, 0.02, 0.05, 0.7))
        second = design_filterbank(Params(12, 0.02, 0.05, 0.7))
        assert first is second

    def test_low_overlap_warns(self, caplog):
        """Test overlap below the reconstruction bound logs a warning."""
        design_filterbank.cache_clear()
        with caplog.at_level(logging.WARNING, logger="mlx_gabor.filterbanks"):
            design_filterbank(Params(6, 0.05, 0.1, overlap=0.3))
        assert any("overlap" in record.message for record in caplog.records)

    def test_impractical_filters_rejected(self):
        """Test extremely low ff_min with many bands is rejected."""
        with pytest.raises(InvalidParameter, match="exceed"):
            design_filterbank(Params(384, 1e-6, 0.25))


class TestNextPow2:
    """Tests for next_pow2()."""

    @pytest.mark.parametrize(
        "n, expected", [(0, 1), (1, 1), (2, 2), (3, 4), (4096, 4096), (4097, 8192)]
    )
    def test_values(self, n, expected):
        """Test next_pow2 on boundaries."""
        assert next_pow2(n) == expected
