"""Render parameters for the spectrogram view.

Parameters change by partial updates: every field not named in an update keeps
its previous value, and fields that were never set use the defaults below.
``merge_render_parameters`` is the pure reducer behind
``SpectrogramRenderer.update_parameters``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Tuple

import numpy as np

from core.dsp.audio_math import peak_frequency_hz
from core.dsp.spectral import Scale, SpectrogramConfigError
from rendering.gradients import HEATED_METAL, Gradient, gradient_by_name


@dataclass(frozen=True)
class RenderParameters:
    contrast: float = 25.0
    sensitivity: float = 25.0
    zoom: float = 4.0
    min_frequency_hz: float = 10.0
    max_frequency_hz: float = 12000.0
    sample_rate: float = 48000.0
    window_size: int = 4096
    scale: Scale = Scale.MEL
    gradient: Gradient = HEATED_METAL


_FIELD_NAMES = tuple(f.name for f in fields(RenderParameters))


def _coerce(name: str, value: Any) -> Any:
    if name == "scale":
        return Scale.parse(value)
    if name == "gradient":
        if isinstance(value, str):
            return gradient_by_name(value)
        return tuple((float(stop), tuple(int(c) for c in color)) for stop, color in value)
    if name == "window_size":
        return int(value)
    return float(value)


def merge_render_parameters(
    previous: Optional[RenderParameters],
    partial: Mapping[str, Any],
) -> RenderParameters:
    """Merge a partial update into ``previous``.

    A field takes the update's value if present and not None, else the previous
    value, else the default. ``scale`` accepts strings; ``gradient`` accepts a
    preset name.
    """
    unknown = sorted(set(partial) - set(_FIELD_NAMES))
    if unknown:
        raise SpectrogramConfigError(f"Unknown render parameters: {unknown}")

    base = previous if previous is not None else RenderParameters()
    changes = {
        name: _coerce(name, value)
        for name, value in partial.items()
        if value is not None
    }
    return replace(base, **changes) if changes else base


def gradient_changed(old: Optional[RenderParameters], new: RenderParameters) -> bool:
    return old is None or old.gradient != new.gradient


def range_changed(old: Optional[RenderParameters], new: RenderParameters) -> bool:
    """Whether the displayed frequency range needs recomputing."""
    return (
        old is None
        or old.scale != new.scale
        or old.min_frequency_hz != new.min_frequency_hz
        or old.max_frequency_hz != new.max_frequency_hz
        or old.sample_rate != new.sample_rate
        or old.window_size != new.window_size
    )


def axis_changed(old: Optional[RenderParameters], new: RenderParameters) -> bool:
    """Whether the frequency lookup image needs rebuilding."""
    return (
        old is None
        or old.scale != new.scale
        or old.sample_rate != new.sample_rate
        or old.window_size != new.window_size
    )


def scale_range(params: RenderParameters) -> Tuple[float, float]:
    """Displayed range as fractions of the analyzer's peak frequency axis."""
    peak_hz = peak_frequency_hz(params.sample_rate, params.window_size)
    if params.scale == Scale.LINEAR:
        return params.min_frequency_hz / peak_hz, params.max_frequency_hz / peak_hz
    if params.scale == Scale.MEL:
        denom = math.log(1 + peak_hz / 700)
        return (
            math.log(1 + params.min_frequency_hz / 700) / denom,
            math.log(1 + params.max_frequency_hz / 700) / denom,
        )
    raise SpectrogramConfigError(f"Unknown scale: {params.scale!r}")


def build_scale_lookup(scale: Scale, sample_rate: float, window_size: int, height: int) -> np.ndarray:
    """Map each display row to a fractional row of the analyzer's output column.

    Linear output rows are already evenly spaced in Hz. Mel rows are warped
    back so that evenly spaced display rows land on evenly spaced mels.
    """
    scale = Scale.parse(scale)
    if height < 2:
        return np.zeros(max(height, 0), dtype=np.float32)
    t = np.arange(height, dtype=np.float64) / (height - 1)
    if scale == Scale.LINEAR:
        return t.astype(np.float32)
    peak_hz = peak_frequency_hz(sample_rate, window_size)
    lookup = 700.0 * ((1.0 + peak_hz / 700.0) ** t - 1.0) / peak_hz
    return lookup.astype(np.float32)


@dataclass
class SpectrogramFrameState:
    """Uniform values for one frame."""
    offset: float = 0.0            # ring start / width
    length_fraction: float = 0.0   # -0.5/width + length/width
    scale_range: Tuple[float, float] = (0.0, 1.0)
    contrast: float = 25.0
    sensitivity: float = 25.0
    zoom: float = 4.0              # already multiplied by the resize override
