"""
Spectral analyzer: waveform samples -> spectrogram intensity columns.

Each analysis window is multiplied by a 7-term Blackman-Harris window,
transformed with numpy's FFT and its magnitude spectrum resampled onto
``scale_size`` target bins spaced linearly in Hz or in mel.

Pure functions only; safe to call from worker processes.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

from core.dsp.audio_math import (
    blackman_harris,
    hz_to_mel,
    mel_to_hz,
    peak_frequency_hz,
)

# Upper bound on windows transformed in one numpy batch (bounds temp memory).
_MAX_BATCH_WINDOWS = 64


class SpectrogramConfigError(ValueError):
    """Raised synchronously for unsupported analysis options."""


class Scale(str, Enum):
    """Frequency axis of the output columns."""
    LINEAR = "linear"
    MEL = "mel"

    @classmethod
    def parse(cls, value: Any) -> "Scale":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise SpectrogramConfigError(f"Unknown scale: {value!r}") from None


@dataclass(frozen=True)
class SpectrogramOptions:
    """Options for one analysis call. ``None`` fields are resolved from defaults."""
    sample_rate: float
    is_start: bool = False      # chunk is the start of the stream
    is_end: bool = False        # chunk is the end of the stream
    window_size: int = 4096     # FFT window size in samples
    window_step_size: int = 1024  # samples between consecutive windows
    min_frequency_hz: Optional[float] = None
    max_frequency_hz: Optional[float] = None
    scale: Scale = Scale.LINEAR
    scale_size: Optional[int] = None  # rows per output column

    def resolved(self) -> "SpectrogramOptions":
        """Return a copy with every optional field filled in."""
        min_hz = 0.0 if self.min_frequency_hz is None else float(self.min_frequency_hz)
        max_hz = self.max_frequency_hz
        if max_hz is None:
            max_hz = peak_frequency_hz(self.sample_rate, self.window_size)
        scale_size = self.scale_size
        if scale_size is None:
            scale_size = self.window_size // 2
        return replace(
            self,
            min_frequency_hz=min_hz,
            max_frequency_hz=float(max_hz),
            scale=Scale.parse(self.scale),
            scale_size=int(scale_size),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["scale"] = Scale.parse(self.scale).value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpectrogramOptions":
        if "sample_rate" not in data:
            raise SpectrogramConfigError("sample_rate is required")
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        unknown = set(data) - set(known)
        if unknown:
            raise SpectrogramConfigError(f"Unknown spectrogram options: {sorted(unknown)}")
        if "scale" in known:
            known["scale"] = Scale.parse(known["scale"])
        return cls(**known)


@dataclass
class SpectrogramResult:
    """Output of one analysis call.

    ``spectrogram`` has shape ``(window_count, options.scale_size)``; row i is
    the column for the i-th window in chronological order.
    """
    window_count: int
    options: SpectrogramOptions
    spectrogram: np.ndarray


def validate_options(options: SpectrogramOptions) -> SpectrogramOptions:
    """Resolve defaults and reject unsupported combinations."""
    if options.window_size <= 0 or options.window_step_size <= 0:
        raise SpectrogramConfigError(
            f"Window size and step size must be positive "
            f"(window_size={options.window_size}, window_step_size={options.window_step_size})"
        )
    if options.window_size % options.window_step_size != 0:
        raise SpectrogramConfigError(
            f"Window step size ({options.window_step_size}) must evenly divide "
            f"the window size ({options.window_size})"
        )
    if options.sample_rate is None or options.sample_rate <= 0:
        raise SpectrogramConfigError(f"Invalid sample rate: {options.sample_rate}")
    resolved = options.resolved()
    if resolved.scale_size <= 0:
        raise SpectrogramConfigError(f"scale_size must be positive, got {resolved.scale_size}")
    return resolved


def window_count_for(samples_length: int, options: SpectrogramOptions) -> int:
    """Number of columns an analysis call over ``samples_length`` samples yields."""
    step = options.window_step_size
    windows_per_frame = options.window_size // step
    count = math.ceil(samples_length / step) - windows_per_frame + 1
    additional = windows_per_frame - 1
    if options.is_start:
        count += additional
    if options.is_end:
        count += additional
    return max(0, count)


def fft_positions(options: SpectrogramOptions) -> np.ndarray:
    """Fractional FFT bin index for every output row of a resolved option set."""
    scale_size = options.scale_size
    if scale_size > 1:
        t = np.arange(scale_size, dtype=np.float64) / (scale_size - 1)
    else:
        t = np.zeros(1, dtype=np.float64)

    lo = float(options.min_frequency_hz)
    hi = float(options.max_frequency_hz)
    if options.scale is Scale.LINEAR:
        hz = lo + t * (hi - lo)
    elif options.scale is Scale.MEL:
        mel_lo = hz_to_mel(lo)
        mel_hi = hz_to_mel(hi)
        hz = mel_to_hz(mel_lo + t * (mel_hi - mel_lo))
    else:
        raise SpectrogramConfigError(f"Unknown scale: {options.scale!r}")

    return hz * options.window_size / float(options.sample_rate)


def _magnitudes(frames: np.ndarray) -> np.ndarray:
    """Full-length magnitude spectrum of each row (mirrored rfft)."""
    size = frames.shape[1]
    half = np.abs(np.fft.rfft(frames, axis=1))
    # Mirror the real-input spectrum so indices past Nyquist read like a full FFT.
    tail = half[:, 1:size - half.shape[1] + 1][:, ::-1]
    return np.concatenate([half, tail], axis=1)


def _resample(mags: np.ndarray, positions: np.ndarray, window_size: int) -> np.ndarray:
    last = mags.shape[1] - 1
    pos = np.clip(positions, 0.0, float(last))
    lower = np.floor(pos).astype(np.intp)
    upper = np.ceil(pos).astype(np.intp)
    frac = pos - lower
    low_vals = mags[:, lower]
    high_vals = mags[:, upper]
    return (low_vals + frac * (high_vals - low_vals)) / math.sqrt(window_size)


def generate_spectrogram_frame(window_samples: np.ndarray, options: SpectrogramOptions) -> np.ndarray:
    """Analyze exactly one window of ``options.window_size`` samples.

    Returns a float32 column of ``scale_size`` intensities.
    """
    resolved = validate_options(options)
    samples = np.asarray(window_samples, dtype=np.float64)
    if samples.shape != (resolved.window_size,):
        raise SpectrogramConfigError(
            f"Expected {resolved.window_size} samples, got {samples.shape}"
        )
    frames = samples[np.newaxis, :] * blackman_harris(resolved.window_size)
    column = _resample(_magnitudes(frames), fft_positions(resolved), resolved.window_size)
    return column[0].astype(np.float32)


def generate_spectrogram(
    samples: np.ndarray,
    samples_start: int,
    samples_length: int,
    options: SpectrogramOptions,
) -> SpectrogramResult:
    """Analyze ``samples[samples_start:samples_start + samples_length]``.

    Windows are ``window_step_size`` apart; samples outside the range read as
    zero. ``is_start``/``is_end`` extend the range backward/forward by
    ``window_size // window_step_size - 1`` windows so stream edges fade in
    and out instead of starting on a full window.
    """
    resolved = validate_options(options)
    samples = np.asarray(samples, dtype=np.float32).reshape(-1)

    window_size = resolved.window_size
    step = resolved.window_step_size
    num_windows = window_count_for(samples_length, resolved)

    first = int(samples_start)
    if resolved.is_start:
        first -= (window_size // step - 1) * step

    result = np.zeros((num_windows, resolved.scale_size), dtype=np.float32)
    if num_windows == 0:
        return SpectrogramResult(window_count=0, options=resolved, spectrogram=result)

    valid_lo = max(int(samples_start), 0)
    valid_hi = min(int(samples_start) + int(samples_length), samples.shape[0])
    window = blackman_harris(window_size)
    positions = fft_positions(resolved)
    offsets = np.arange(window_size, dtype=np.int64)

    for batch_start in range(0, num_windows, _MAX_BATCH_WINDOWS):
        batch_end = min(batch_start + _MAX_BATCH_WINDOWS, num_windows)
        starts = first + step * np.arange(batch_start, batch_end, dtype=np.int64)
        idx = starts[:, np.newaxis] + offsets[np.newaxis, :]
        in_range = (idx >= valid_lo) & (idx < valid_hi)
        frames = np.zeros(idx.shape, dtype=np.float64)
        frames[in_range] = samples[idx[in_range]]
        frames *= window
        result[batch_start:batch_end] = _resample(_magnitudes(frames), positions, window_size)

    return SpectrogramResult(window_count=num_windows, options=resolved, spectrogram=result)
