"""
Tests for SpectrogramGLWidget.

The pre-initialisation behaviour needs no GL context. The frame capture test
skips when the platform cannot provide an OpenGL 3.3 core context.
"""
import numpy as np
import pytest

pytest.importorskip("OpenGL.GL")

from core.dsp.circular_buffer import CircularColumnBuffer
from core.dsp.spectral import SpectrogramConfigError
from widgets.spectrogram_gl_widget import SpectrogramGLWidget
from tests._gl_test_utils import fraction_dark_pixels


@pytest.fixture
def widget(qtbot):
    buffer = CircularColumnBuffer(64, 32)
    w = SpectrogramGLWidget(buffer)
    qtbot.addWidget(w)
    return w


class TestBeforeInit:
    """Calls made before initializeGL."""

    def test_no_renderer_yet(self, widget):
        assert widget.renderer is None
        assert not widget.gl_failed

    def test_parameters_validated_and_deferred(self, widget):
        widget.update_parameters(zoom=2.0, scale="linear")
        widget.update_parameters(zoom=1.0)
        assert widget._pending_parameters == {"zoom": 1.0, "scale": "linear"}

    def test_invalid_parameters_raise(self, widget):
        with pytest.raises(SpectrogramConfigError):
            widget.update_parameters(gradient="plasma")
        assert widget._pending_parameters == {}

    def test_refresh_sync_setting_reaches_surface_format(self, qtbot, settings_manager):
        settings_manager.set('display.refresh_sync', False)
        w = SpectrogramGLWidget(CircularColumnBuffer(64, 32), settings=settings_manager)
        qtbot.addWidget(w)
        assert w.surface_preferences.refresh_sync is False
        assert w.format().swapInterval() == 0

    def test_refresh_sync_defaults_on(self, widget):
        assert widget.surface_preferences.refresh_sync is True
        assert widget.format().swapInterval() == 1

    def test_mark_dirty_without_renderer(self, widget):
        widget.mark_dirty()
        widget.request_full_upload()
        assert widget._dirty and widget._force_full


class TestRendering:
    def test_filled_buffer_is_not_black(self, qtbot, widget):
        widget.buffer.enqueue(np.full((64, 32), 0.5, dtype=np.float32))
        widget.resize(64, 64)
        widget.show()
        qtbot.waitExposed(widget)

        image = widget.grabFramebuffer()
        if widget.renderer is None:
            pytest.skip("no OpenGL 3.3 core context available")
        assert fraction_dark_pixels(image) < 0.5
