"""
Tests for the numeric helpers in core.dsp.audio_math.
"""
import numpy as np
import pytest

from core.dsp.audio_math import (
    blackman_harris,
    clamp,
    hz_to_mel,
    inverse_lerp,
    lerp,
    mel_to_hz,
    peak_frequency_hz,
)


class TestMelConversion:
    """Tests for hz_to_mel / mel_to_hz."""

    def test_zero_hz_is_zero_mel(self):
        assert float(hz_to_mel(0.0)) == pytest.approx(0.0)

    def test_known_value(self):
        """1000 Hz is close to 1000 mel with the 2595/700 formula."""
        assert float(hz_to_mel(1000.0)) == pytest.approx(999.99, abs=0.05)

    def test_inverse(self):
        hz = np.array([20.0, 440.0, 12000.0])
        assert np.allclose(mel_to_hz(hz_to_mel(hz)), hz)

    def test_monotonic(self):
        hz = np.linspace(0, 24000, 100)
        assert np.all(np.diff(hz_to_mel(hz)) > 0)


class TestInterpolation:
    """Tests for lerp, inverse_lerp and clamp."""

    def test_lerp_endpoints(self):
        assert lerp(2.0, 6.0, 0.0) == 2.0
        assert lerp(2.0, 6.0, 1.0) == 6.0
        assert lerp(2.0, 6.0, 0.25) == 3.0

    def test_inverse_lerp(self):
        assert inverse_lerp(0.3, 0.65, 0.3) == pytest.approx(0.0)
        assert inverse_lerp(0.3, 0.65, 0.65) == pytest.approx(1.0)
        assert inverse_lerp(2.0, 6.0, 3.0) == pytest.approx(0.25)

    def test_clamp(self):
        assert clamp(-1, 0, 255) == 0
        assert clamp(300, 0, 255) == 255
        assert clamp(12, 0, 255) == 12


class TestPeakFrequency:
    def test_just_below_nyquist(self):
        peak = peak_frequency_hz(48000, 4096)
        assert peak == pytest.approx(48000 * 4094 / 8192)
        assert peak < 24000


class TestBlackmanHarris:
    """Tests for the cached 7-term window."""

    def test_shape_and_dtype(self):
        w = blackman_harris(1024)
        assert w.shape == (1024,)
        assert w.dtype == np.float32

    def test_edges_near_zero_centre_one(self):
        w = blackman_harris(4096)
        assert abs(w[0]) < 1e-3
        assert w[2048] == pytest.approx(1.0, abs=1e-3)

    def test_cached_and_read_only(self):
        a = blackman_harris(512)
        b = blackman_harris(512)
        assert a is b
        assert not a.flags.writeable

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            blackman_harris(0)
