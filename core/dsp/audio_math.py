"""
Small numeric helpers shared by the spectral analyzer and the renderer.

All functions accept Python floats or numpy arrays.
"""
from __future__ import annotations

import math
from functools import lru_cache

import numpy as np

# Seven-term Blackman-Harris window coefficients.
BLACKMAN_HARRIS_COEFFICIENTS = (
    0.27105140069342,
    -0.43329793923448,
    0.21812299954311,
    -0.06592544638803,
    0.01081174209837,
    -0.00077658482522,
    0.00001388721735,
)


def hz_to_mel(hz):
    """Convert a frequency in Hz to the mel scale."""
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    """Convert a mel value back to Hz."""
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


def lerp(a, b, t):
    return a + t * (b - a)


def inverse_lerp(a, b, n):
    """Position of ``n`` between ``a`` and ``b`` (0 at a, 1 at b)."""
    return (a - n) / (a - b)


def clamp(x, lo, hi):
    return max(min(x, hi), lo)


def peak_frequency_hz(sample_rate: float, window_size: int) -> float:
    """Highest frequency the analyzer maps by default for a window size.

    Sits just below Nyquist so the upper interpolation neighbour of the last
    bin is still inside the spectrum.
    """
    return (sample_rate * (window_size - 2)) / (2 * window_size)


@lru_cache(maxsize=16)
def _blackman_harris_cached(size: int) -> np.ndarray:
    n = np.arange(size, dtype=np.float64)
    window = np.zeros(size, dtype=np.float64)
    for i, coeff in enumerate(BLACKMAN_HARRIS_COEFFICIENTS):
        window += coeff * np.cos((2.0 * math.pi * i * n) / size)
    window = window.astype(np.float32)
    window.flags.writeable = False
    return window


def blackman_harris(size: int) -> np.ndarray:
    """Return the 7-term Blackman-Harris window of ``size`` samples (read-only, cached)."""
    if size <= 0:
        raise ValueError(f"window size must be positive, got {size}")
    return _blackman_harris_cached(int(size))
