"""Colour gradients for the spectrogram colour lookup.

A gradient is a tuple of ``(stop, (r, g, b))`` pairs with stops ascending from
0.0 to 1.0. Colours between stops are interpolated in CIELAB space with an
ease-in-out curve, which keeps perceived brightness changing smoothly across
stops that differ mostly in hue.
"""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

from core.dsp.audio_math import clamp, inverse_lerp, lerp
from core.dsp.spectral import SpectrogramConfigError

RGB = Tuple[int, int, int]
Gradient = Tuple[Tuple[float, RGB], ...]

GRADIENT_LOOKUP_SIZE = 128

HEATED_METAL: Gradient = (
    (0.0, (0, 0, 0)),
    (0.3, (128, 0, 128)),
    (0.65, (255, 0, 0)),
    (0.9, (255, 255, 0)),
    (1.0, (255, 255, 255)),
)

# Audacity's default spectrogram colours.
AUDACITY: Gradient = (
    (0.0, (191, 191, 191)),
    (0.25, (76, 153, 255)),
    (0.5, (229, 25, 229)),
    (0.75, (255, 0, 0)),
    (1.0, (255, 255, 255)),
)

SPECTRUM: Gradient = (
    (0.0, (0, 0, 128)),
    (0.25, (0, 160, 160)),
    (0.5, (0, 190, 0)),
    (0.75, (225, 225, 0)),
    (1.0, (255, 0, 0)),
)

BLACK_WHITE: Gradient = (
    (0.0, (0, 0, 0)),
    (0.5, (119, 119, 119)),
    (1.0, (255, 255, 255)),
)

WHITE_BLACK: Gradient = (
    (0.0, (255, 255, 255)),
    (0.5, (119, 119, 119)),
    (1.0, (0, 0, 0)),
)

GRADIENTS: Dict[str, Gradient] = {
    "HEATED_METAL": HEATED_METAL,
    "AUDACITY": AUDACITY,
    "SPECTRUM": SPECTRUM,
    "BLACK_WHITE": BLACK_WHITE,
    "WHITE_BLACK": WHITE_BLACK,
}

# D65 reference white, Y normalised to 100
_WHITE_X = 95.0489
_WHITE_Y = 100.0
_WHITE_Z = 108.884

_LAB_DELTA = 6.0 / 29.0


def gradient_by_name(name: str) -> Gradient:
    """Look up a preset by name (case-insensitive, spaces or underscores)."""
    key = str(name).strip().upper().replace(" ", "_")
    try:
        return GRADIENTS[key]
    except KeyError:
        raise SpectrogramConfigError(f"Unknown gradient: {name!r}") from None


def _add_gamma(u: float) -> float:
    if u <= 0.0031308:
        return 12.92 * u
    return 1.055 * u ** (1.0 / 2.4) - 0.055


def _remove_gamma(u: float) -> float:
    if u <= 0.04045:
        return u / 12.92
    return ((u + 0.055) / 1.055) ** 2.4


def _f_lab(t: float) -> float:
    if t > _LAB_DELTA ** 3:
        return t ** (1.0 / 3.0)
    return t / (3 * _LAB_DELTA * _LAB_DELTA) + 4.0 / 29.0


def _f_lab_inverse(t: float) -> float:
    if t > _LAB_DELTA:
        return t ** 3
    return 3 * _LAB_DELTA * _LAB_DELTA * (t - 4.0 / 29.0)


def rgb_to_lab(r: float, g: float, b: float) -> Tuple[float, float, float]:
    lr, lg, lb = (_remove_gamma(u / 255.0) for u in (r, g, b))
    x = 0.4124 * lr + 0.3576 * lg + 0.1805 * lb
    y = 0.2126 * lr + 0.7152 * lg + 0.0722 * lb
    z = 0.0193 * lr + 0.1192 * lg + 0.9505 * lb
    fy = _f_lab(y / _WHITE_Y)
    return (
        116 * fy - 16,
        500 * (_f_lab(x / _WHITE_X) - fy),
        200 * (fy - _f_lab(z / _WHITE_Z)),
    )


def lab_to_rgb(l: float, a: float, b: float) -> RGB:
    base = (l + 16) / 116
    x = _WHITE_X * _f_lab_inverse(base + a / 500)
    y = _WHITE_Y * _f_lab_inverse(base)
    z = _WHITE_Z * _f_lab_inverse(base - b / 200)
    linear = (
        3.2406 * x - 1.5372 * y - 0.4986 * z,
        -0.9689 * x + 1.8758 * y + 0.0415 * z,
        0.0557 * x - 0.204 * y + 1.057 * z,
    )
    r, g, bl = (int(np.floor(clamp(256 * _add_gamma(u), 0, 255))) for u in linear)
    return r, g, bl


def _ease(u: float) -> float:
    if u < 0.5:
        return 2 * u * u
    return -1 + (4 - 2 * u) * u


def color_ramp(x: float, gradient: Gradient) -> RGB:
    """Colour of ``gradient`` at position ``x`` (clamped to [0, 1])."""
    x = clamp(x, 0.0, 1.0)
    start_idx = end_idx = 0
    for i, (stop, _color) in enumerate(gradient):
        if stop >= x:
            end_idx = i
            start_idx = i - 1 if i > 0 else i
            break

    if start_idx == end_idx:
        t = 0.0
    else:
        t = inverse_lerp(gradient[start_idx][0], gradient[end_idx][0], x)

    start = rgb_to_lab(*gradient[start_idx][1])
    end = rgb_to_lab(*gradient[end_idx][1])
    eased = _ease(t)
    return lab_to_rgb(
        lerp(start[0], end[0], eased),
        lerp(start[1], end[1], eased),
        lerp(start[2], end[2], eased),
    )


def build_gradient_lookup(gradient: Gradient, size: int = GRADIENT_LOOKUP_SIZE) -> np.ndarray:
    """Sample ``gradient`` at ``size`` evenly spaced points as uint8 RGB rows."""
    if size < 2:
        raise ValueError(f"Gradient lookup needs at least 2 entries, got {size}")
    lookup = np.empty((size, 3), dtype=np.uint8)
    for i in range(size):
        lookup[i] = color_ramp(i / (size - 1), gradient)
    return lookup
