"""
Tests for the spectral analyzer.

Tests cover:
- Window count arithmetic including stream start/end padding
- Peak location for a bin-centred sine
- Out-of-range samples reading as zero
- Option validation and serialization
"""
import numpy as np
import pytest

from core.dsp.spectral import (
    Scale,
    SpectrogramConfigError,
    SpectrogramOptions,
    fft_positions,
    generate_spectrogram,
    generate_spectrogram_frame,
    validate_options,
    window_count_for,
)

SAMPLE_RATE = 48000
WINDOW = 4096
STEP = 1024


def _sine(frequency_hz, count, amplitude=1.0):
    t = np.arange(count) / float(SAMPLE_RATE)
    return (amplitude * np.sin(2.0 * np.pi * frequency_hz * t)).astype(np.float32)


def _options(**overrides):
    values = dict(sample_rate=SAMPLE_RATE, window_size=WINDOW, window_step_size=STEP)
    values.update(overrides)
    return SpectrogramOptions(**values)


class TestWindowCount:
    """Tests for window_count_for."""

    def test_single_window(self):
        assert window_count_for(WINDOW, _options()) == 1

    def test_steps_after_first_window(self):
        assert window_count_for(WINDOW + 3 * STEP, _options()) == 4

    def test_partial_step_rounds_up(self):
        assert window_count_for(WINDOW + 1, _options()) == 2

    def test_start_and_end_padding(self):
        assert window_count_for(WINDOW, _options(is_start=True)) == 4
        assert window_count_for(WINDOW, _options(is_end=True)) == 4
        assert window_count_for(WINDOW, _options(is_start=True, is_end=True)) == 7

    def test_short_input_yields_nothing(self):
        assert window_count_for(1000, _options()) == 0

    def test_empty_result_for_short_input(self):
        result = generate_spectrogram(np.zeros(1000, dtype=np.float32), 0, 1000, _options())
        assert result.window_count == 0
        assert result.spectrogram.shape == (0, WINDOW // 2)


class TestGenerateSpectrogram:
    """Tests for generate_spectrogram output."""

    def test_shape_and_dtype(self):
        samples = _sine(1000.0, WINDOW + 4 * STEP)
        result = generate_spectrogram(samples, 0, samples.shape[0], _options())
        assert result.window_count == 5
        assert result.spectrogram.shape == (5, WINDOW // 2)
        assert result.spectrogram.dtype == np.float32
        assert result.options.scale_size == WINDOW // 2

    def test_peak_at_bin_centred_sine(self):
        """Linear default axis maps row i onto FFT bin i."""
        bin_index = 100
        freq = bin_index * SAMPLE_RATE / WINDOW
        samples = _sine(freq, WINDOW)
        result = generate_spectrogram(samples, 0, WINDOW, _options(scale=Scale.LINEAR))
        column = result.spectrogram[0]
        assert int(np.argmax(column)) == bin_index
        assert column[bin_index] > 1.0
        assert column[bin_index + 50] < column[bin_index] * 1e-3

    def test_silence_is_zero(self):
        samples = np.zeros(WINDOW * 2, dtype=np.float32)
        result = generate_spectrogram(samples, 0, samples.shape[0], _options())
        assert np.all(result.spectrogram == 0.0)

    def test_samples_outside_range_read_as_zero(self):
        rng = np.random.default_rng(1)
        samples = np.concatenate([
            rng.standard_normal(WINDOW).astype(np.float32),
            np.zeros(WINDOW, dtype=np.float32),
        ])
        result = generate_spectrogram(samples, WINDOW, WINDOW, _options(is_start=True))
        assert result.window_count == 4
        assert np.all(result.spectrogram == 0.0)

    def test_matches_single_frame(self):
        samples = _sine(440.0, WINDOW, amplitude=0.5)
        batch = generate_spectrogram(samples, 0, WINDOW, _options())
        frame = generate_spectrogram_frame(samples, _options())
        assert np.allclose(batch.spectrogram[0], frame, rtol=1e-5, atol=1e-6)

    def test_start_padding_fades_in(self):
        """Padded windows at the stream start see progressively more signal."""
        samples = _sine(2000.0, WINDOW)
        result = generate_spectrogram(samples, 0, WINDOW, _options(is_start=True))
        peaks = result.spectrogram.max(axis=1)
        assert result.window_count == 4
        assert np.all(np.diff(peaks) > 0)

    def test_custom_scale_size(self):
        samples = _sine(1000.0, WINDOW)
        result = generate_spectrogram(samples, 0, WINDOW, _options(scale=Scale.MEL, scale_size=256))
        assert result.spectrogram.shape == (1, 256)

    def test_frame_rejects_wrong_length(self):
        with pytest.raises(SpectrogramConfigError):
            generate_spectrogram_frame(np.zeros(100, dtype=np.float32), _options())


class TestFftPositions:
    """Tests for the frequency axis mapping."""

    def test_linear_endpoints(self):
        resolved = validate_options(_options(min_frequency_hz=100.0, max_frequency_hz=10000.0, scale_size=64))
        positions = fft_positions(resolved)
        assert positions[0] == pytest.approx(100.0 * WINDOW / SAMPLE_RATE)
        assert positions[-1] == pytest.approx(10000.0 * WINDOW / SAMPLE_RATE)
        assert np.allclose(np.diff(positions), np.diff(positions)[0])

    def test_mel_spacing_widens(self):
        resolved = validate_options(_options(scale=Scale.MEL, scale_size=64))
        steps = np.diff(fft_positions(resolved))
        assert np.all(steps > 0)
        assert steps[-1] > steps[0]


class TestOptions:
    """Tests for validation and dict conversion."""

    def test_resolved_defaults(self):
        resolved = _options().resolved()
        assert resolved.min_frequency_hz == 0.0
        assert resolved.max_frequency_hz == pytest.approx(SAMPLE_RATE * (WINDOW - 2) / (2 * WINDOW))
        assert resolved.scale_size == WINDOW // 2

    def test_step_must_divide_window(self):
        with pytest.raises(SpectrogramConfigError):
            validate_options(_options(window_step_size=1000))

    def test_sample_rate_must_be_positive(self):
        with pytest.raises(SpectrogramConfigError):
            validate_options(_options(sample_rate=0))

    def test_unknown_scale(self):
        with pytest.raises(SpectrogramConfigError):
            validate_options(_options(scale="bark"))

    def test_scale_parse_accepts_strings(self):
        assert Scale.parse("MEL") is Scale.MEL
        assert Scale.parse(" linear ") is Scale.LINEAR

    def test_dict_conversion(self):
        options = _options(is_start=True, scale=Scale.MEL, scale_size=128)
        data = options.to_dict()
        assert data["scale"] == "mel"
        assert SpectrogramOptions.from_dict(data) == options

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(SpectrogramConfigError):
            SpectrogramOptions.from_dict({"sample_rate": 44100, "hop": 512})

    def test_from_dict_requires_sample_rate(self):
        with pytest.raises(SpectrogramConfigError):
            SpectrogramOptions.from_dict({"window_size": 1024})
