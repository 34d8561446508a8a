"""
QOpenGLWidget hosting one SpectrogramRenderer.

The renderer and its GL objects are created in initializeGL and released with
the context. Renderer init failures are logged and reported through
``renderer_failed``; the view then paints black instead of raising out of a
Qt callback.
"""
from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from PySide6.QtCore import QTimer, Signal
from PySide6.QtOpenGLWidgets import QOpenGLWidget

from core.dsp.circular_buffer import CircularColumnBuffer
from core.logging.logger import get_logger, is_perf_metrics_enabled
from core.logging.tags import TAG_GL, TAG_PERF, TAG_RENDER
from rendering.gl_format import apply_widget_surface_format
from rendering.gl_errors import RendererInitError
from rendering.render_parameters import merge_render_parameters
from rendering.spectrogram_renderer import RendererState, SpectrogramRenderer
from OpenGL import GL as gl

if TYPE_CHECKING:  # pragma: no cover
    from core.settings.settings_manager import SettingsManager

logger = get_logger(__name__)


class SpectrogramGLWidget(QOpenGLWidget):
    """GL surface showing one channel's CircularColumnBuffer.

    The widget repaints after every buffer swap, so the frame rate follows
    the display refresh and nothing ever waits on analysis work. Each paint
    uploads whatever columns arrived since the last one, eases the render
    parameters one step, and draws.

    Resizing is two-phase: the canvas is stretched immediately (zoom is
    corrected so columns keep their on-screen width), and once the size has
    been stable for ``RESIZE_SETTLE_MS`` the buffer is resized to the new
    width and re-uploaded in full.
    """

    RESIZE_SETTLE_MS = 250
    PERF_LOG_INTERVAL_FRAMES = 300

    # Emitted once if the renderer cannot be created; the view then stays black.
    renderer_failed = Signal(str)

    def __init__(
        self,
        buffer: CircularColumnBuffer,
        parent=None,
        *,
        settings: Optional["SettingsManager"] = None,
        follow_width: bool = True,
    ) -> None:
        super().__init__(parent)

        self.surface_preferences = apply_widget_surface_format(self, settings, reason="spectrogram_view")
        self.setUpdateBehavior(QOpenGLWidget.UpdateBehavior.NoPartialUpdate)

        self._buffer = buffer
        self._follow_width = follow_width
        self._renderer: Optional[SpectrogramRenderer] = None
        self._gl_failed: bool = False
        self._dirty: bool = False
        self._force_full: bool = False
        self._pending_parameters: Dict[str, Any] = {}
        self._pending_size = (0, 0)

        self._resize_timer = QTimer(self)
        self._resize_timer.setSingleShot(True)
        self._resize_timer.setInterval(self.RESIZE_SETTLE_MS)
        self._resize_timer.timeout.connect(self._settle_resize)

        self._frame_count = 0
        self._perf_window_start = time.perf_counter()

        # Continuous frame loop driven by buffer swaps.
        self.frameSwapped.connect(self.update)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def buffer(self) -> CircularColumnBuffer:
        return self._buffer

    @property
    def renderer(self) -> Optional[SpectrogramRenderer]:
        return self._renderer

    @property
    def gl_failed(self) -> bool:
        return self._gl_failed

    def mark_dirty(self) -> None:
        """New columns were enqueued into the buffer."""
        self._dirty = True
        if self._renderer is not None:
            self._renderer.mark_dirty()
        self.update()

    def request_full_upload(self) -> None:
        """Re-upload the whole buffer on the next frame (after a clear)."""
        self._force_full = True
        self.mark_dirty()

    def update_parameters(self, **partial: Any) -> None:
        """Forward a partial parameter update to the renderer.

        Updates made before GL is initialised are merged and applied in
        initializeGL. Invalid fields raise SpectrogramConfigError right away.
        """
        if self._renderer is None:
            merged = dict(self._pending_parameters)
            merged.update({k: v for k, v in partial.items() if v is not None})
            merge_render_parameters(None, merged)
            self._pending_parameters = merged
            return
        self.makeCurrent()
        try:
            self._renderer.update_parameters(**partial)
        finally:
            self.doneCurrent()

    # ------------------------------------------------------------------
    # QOpenGLWidget hooks
    # ------------------------------------------------------------------

    def initializeGL(self) -> None:  # type: ignore[override]
        try:
            self._renderer = SpectrogramRenderer(self._buffer.width, self._buffer.height)
            if self._pending_parameters:
                self._renderer.update_parameters(**self._pending_parameters)
                self._pending_parameters = {}
        except RendererInitError as e:
            self._renderer = None
            self._gl_failed = True
            logger.error("%s Spectrogram renderer unavailable: %s", TAG_GL, e)
            self.renderer_failed.emit(str(e))
            return

        ctx = self.context()
        if ctx is not None:
            ctx.aboutToBeDestroyed.connect(self._release_gl)
        self._dirty = True
        self._force_full = True
        logger.debug("%s Spectrogram view initialised (%dx%d buffer)", TAG_GL, self._buffer.width, self._buffer.height)

    def paintGL(self) -> None:  # type: ignore[override]
        if self._renderer is None:
            gl.glClearColor(0.0, 0.0, 0.0, 1.0)
            gl.glClear(gl.GL_COLOR_BUFFER_BIT)
            return

        if self._dirty or self._force_full or self._renderer.state == RendererState.DIRTY:
            self._renderer.update_spectrogram(self._buffer, force_full=self._force_full)
            self._dirty = False
            self._force_full = False

        self._renderer.render()
        self._log_frame_rate()

    def resizeGL(self, w: int, h: int) -> None:  # type: ignore[override]
        if self._renderer is None:
            return
        dpr = self.devicePixelRatioF()
        self._renderer.fast_resize_canvas(int(w * dpr), int(h * dpr))
        self._pending_size = (w, h)
        self._resize_timer.start()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _settle_resize(self) -> None:
        if self._renderer is None:
            return
        w, h = self._pending_size
        if w <= 0 or h <= 0:
            return
        if self._follow_width:
            self._buffer.resize_width(w)
        dpr = self.devicePixelRatioF()
        self._renderer.resize_canvas(int(w * dpr), int(h * dpr))
        logger.debug("%s Resize settled at %dx%d (buffer width %d)", TAG_RENDER, w, h, self._buffer.width)
        self.request_full_upload()

    def _log_frame_rate(self) -> None:
        if not is_perf_metrics_enabled():
            return
        self._frame_count += 1
        if self._frame_count < self.PERF_LOG_INTERVAL_FRAMES:
            return
        now = time.perf_counter()
        elapsed = now - self._perf_window_start
        if elapsed > 0:
            logger.debug("%s %s %.1f fps", TAG_PERF, TAG_RENDER, self._frame_count / elapsed)
        self._frame_count = 0
        self._perf_window_start = now

    def _release_gl(self) -> None:
        if self._renderer is None:
            return
        self.makeCurrent()
        try:
            self._renderer.release()
        finally:
            self._renderer = None
            self.doneCurrent()
