"""
Signal processing for the live spectrogram.

- spectral: window + FFT + frequency-axis resampling
- circular_buffer: rolling window of analysed columns
- audio_math: mel conversion, interpolation, window function
"""
from .circular_buffer import CircularColumnBuffer
from .spectral import (
    Scale,
    SpectrogramConfigError,
    SpectrogramOptions,
    SpectrogramResult,
    generate_spectrogram,
    generate_spectrogram_frame,
    window_count_for,
)

__all__ = [
    "CircularColumnBuffer",
    "Scale",
    "SpectrogramConfigError",
    "SpectrogramOptions",
    "SpectrogramResult",
    "generate_spectrogram",
    "generate_spectrogram_frame",
    "window_count_for",
]
