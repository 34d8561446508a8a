"""
Tests for SettingsManager.

Tests cover:
- Defaults written on first use
- Typed getters tolerating string-typed QSettings values
- Change notifications
- Render parameter and pool size views
"""
from unittest.mock import MagicMock

from core.settings.settings_manager import DEFAULTS
from rendering.render_parameters import merge_render_parameters
from core.dsp.spectral import Scale


class TestDefaults:
    def test_defaults_present(self, settings_manager):
        for key in DEFAULTS:
            assert settings_manager.contains(key)

    def test_analysis_defaults(self, settings_manager):
        assert settings_manager.get_int('spectrogram.window_size') == 4096
        assert settings_manager.get_int('spectrogram.window_step_size') == 1024
        assert settings_manager.get_int('spectrogram.channels') == 2
        assert settings_manager.get_bool('display.refresh_sync') is True

    def test_reset_to_defaults(self, settings_manager):
        settings_manager.set('render.zoom', 9.0)
        settings_manager.reset_to_defaults()
        assert settings_manager.get_float('render.zoom') == 4.0


class TestTypedGetters:
    def test_string_numbers(self, settings_manager):
        settings_manager.set('spectrogram.buffer_width', '512')
        settings_manager.set('render.contrast', '2.5')
        assert settings_manager.get_int('spectrogram.buffer_width') == 512
        assert settings_manager.get_float('render.contrast') == 2.5

    def test_garbage_falls_back_to_default(self, settings_manager):
        settings_manager.set('spectrogram.window_size', 'large')
        assert settings_manager.get_int('spectrogram.window_size') == 4096

    def test_to_bool(self, settings_manager):
        assert settings_manager.to_bool("true") is True
        assert settings_manager.to_bool("off") is False
        assert settings_manager.to_bool("maybe", default=True) is True
        assert settings_manager.to_bool(None) is False
        assert settings_manager.to_bool(0) is False


class TestNotifications:
    def test_handler_receives_new_and_old(self, settings_manager):
        handler = MagicMock()
        settings_manager.on_changed('render.zoom', handler)
        settings_manager.set('render.zoom', 2.0)
        handler.assert_called_once()
        new_value, old_value = handler.call_args[0]
        assert new_value == 2.0
        assert float(old_value) == 4.0

    def test_signal_emitted(self, qt_app, settings_manager):
        received = []
        settings_manager.settings_changed.connect(lambda key, value: received.append((key, value)))
        settings_manager.set('render.gradient', 'SPECTRUM')
        assert received == [('render.gradient', 'SPECTRUM')]

    def test_failing_handler_does_not_stop_set(self, settings_manager):
        settings_manager.on_changed('render.zoom', MagicMock(side_effect=RuntimeError("bad handler")))
        settings_manager.set('render.zoom', 3.0)
        assert settings_manager.get_float('render.zoom') == 3.0


class TestStructuredViews:
    def test_render_overrides_merge_cleanly(self, settings_manager):
        overrides = settings_manager.render_parameter_overrides()
        assert overrides['scale'] == 'mel'
        assert overrides['gradient'] == 'HEATED_METAL'
        params = merge_render_parameters(None, overrides)
        assert params.scale is Scale.MEL
        assert params.min_frequency_hz == 10.0

    def test_worker_pool_size(self, settings_manager):
        assert settings_manager.worker_pool_size() is None
        settings_manager.set('workers.pool_size', 3)
        assert settings_manager.worker_pool_size() == 3
