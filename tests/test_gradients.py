"""
Tests for gradient presets and the colour lookup image.
"""
import numpy as np
import pytest

from core.dsp.spectral import SpectrogramConfigError
from rendering.gradients import (
    BLACK_WHITE,
    GRADIENTS,
    HEATED_METAL,
    WHITE_BLACK,
    build_gradient_lookup,
    color_ramp,
    gradient_by_name,
    lab_to_rgb,
    rgb_to_lab,
)


class TestPresets:
    def test_stops_are_sorted_and_span_unit_range(self):
        for name, gradient in GRADIENTS.items():
            stops = [stop for stop, _ in gradient]
            assert stops == sorted(stops), name
            assert stops[0] == 0.0 and stops[-1] == 1.0, name

    def test_lookup_by_name(self):
        assert gradient_by_name("heated metal") is HEATED_METAL
        assert gradient_by_name("Black_White") is BLACK_WHITE

    def test_unknown_name(self):
        with pytest.raises(SpectrogramConfigError):
            gradient_by_name("rainbow")


class TestLabConversion:
    def test_lightness_ordering(self):
        assert rgb_to_lab(0, 0, 0)[0] == pytest.approx(0.0, abs=1e-6)
        assert rgb_to_lab(255, 255, 255)[0] > rgb_to_lab(119, 119, 119)[0] > 0.0

    def test_round_trip_is_close(self):
        for colour in [(128, 0, 128), (255, 0, 0), (0, 190, 0), (76, 153, 255)]:
            back = lab_to_rgb(*rgb_to_lab(*colour))
            assert all(abs(a - b) <= 1 for a, b in zip(back, colour)), (colour, back)


class TestColorRamp:
    def test_endpoints(self):
        assert color_ramp(0.0, HEATED_METAL) == (0, 0, 0)
        assert color_ramp(1.0, HEATED_METAL) == (255, 255, 255)

    def test_clamped_outside_unit_range(self):
        assert color_ramp(-1.0, WHITE_BLACK) == color_ramp(0.0, WHITE_BLACK)
        assert color_ramp(2.0, WHITE_BLACK) == color_ramp(1.0, WHITE_BLACK)

    def test_black_white_is_monotonic(self):
        values = [color_ramp(i / 20, BLACK_WHITE)[0] for i in range(21)]
        assert values == sorted(values)


class TestLookupImage:
    def test_shape_and_dtype(self):
        lookup = build_gradient_lookup(HEATED_METAL)
        assert lookup.shape == (128, 3)
        assert lookup.dtype == np.uint8

    def test_lookup_endpoints(self):
        lookup = build_gradient_lookup(HEATED_METAL, size=16)
        assert tuple(lookup[0]) == (0, 0, 0)
        assert tuple(lookup[-1]) == (255, 255, 255)

    def test_size_too_small(self):
        with pytest.raises(ValueError):
            build_gradient_lookup(HEATED_METAL, size=1)
