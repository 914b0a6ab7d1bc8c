"""
Pytest configuration and shared fixtures for mlx-gabor tests.
"""
import numpy as np
import pytest

from mlx_gabor import Analyzer, Coefs, Params


# Use np.random.Generator for better test isolation instead of global seed
_TEST_SEED = 42

# 12 bands per octave from 0.02 to just below Nyquist, reference at 0.05
TEST_PARAMS = Params(bands_per_octave=12, ff_min=0.02, ff_ref=0.05, overlap=0.7)


@pytest.fixture(scope="session")
def analyzer():
    """Shared analyzer (immutable, safe to reuse across tests)."""
    return Analyzer(TEST_PARAMS)


@pytest.fixture
def coefs(analyzer):
    """Empty coefficient store bound to the shared analyzer."""
    return Coefs(analyzer)


@pytest.fixture
def random_signal():
    """Generate a random signal for testing."""
    rng = np.random.default_rng(_TEST_SEED)
    return rng.standard_normal(22050).astype(np.float32)


@pytest.fixture
def short_signal():
    """Generate a short signal for edge case testing."""
    rng = np.random.default_rng(_TEST_SEED)
    return rng.standard_normal(1024).astype(np.float32)


@pytest.fixture
def sine_signal():
    """Pure sine at the reference frequency (0.05 cycles/sample)."""
    t = np.arange(16384)
    return np.sin(2 * np.pi * TEST_PARAMS.ff_ref * t).astype(np.float32)


@pytest.fixture
def analyzed(analyzer, random_signal):
    """Store holding the coefficients of random_signal analyzed at t=0."""
    coefs = Coefs(analyzer)
    analyzer.analyze(random_signal, 0, coefs)
    return coefs
