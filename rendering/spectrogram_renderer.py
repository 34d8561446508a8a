"""Streaming spectrogram renderer.

Keeps a GPU copy of one CircularColumnBuffer and draws it. Each update uploads
only the ring positions written since the previous update; render parameter
changes are eased in over a few frames instead of jumping.

The renderer does no GL context management of its own: every method expects
the owning context to be current (the widget calls in from initializeGL,
paintGL and resizeGL).
"""

from __future__ import annotations

import time
from enum import Enum, auto
from typing import Any, Optional, Tuple

from core.dsp.audio_math import lerp
from core.dsp.circular_buffer import CircularColumnBuffer
from core.logging.logger import get_logger, is_perf_metrics_enabled
from core.logging.tags import TAG_PERF, TAG_RENDER
from rendering.gl_errors import RendererInitError
from rendering.gradients import build_gradient_lookup
from rendering.render_parameters import (
    RenderParameters,
    SpectrogramFrameState,
    axis_changed,
    build_scale_lookup,
    gradient_changed,
    merge_render_parameters,
    range_changed,
    scale_range,
)
from rendering.upload_plan import UploadPlan, plan_spectrogram_upload

logger = get_logger(__name__)

# Fraction of the remaining distance covered per frame when easing parameters
LERP_AMOUNT = 0.5
SNAP_EPSILON = 1e-9
# Below this the contrast curve is numerically unstable in the shader
MIN_CONTRAST = 0.05


def step_towards(current: float, target: float, amount: float = LERP_AMOUNT) -> float:
    if abs(current - target) < SNAP_EPSILON:
        return target
    return lerp(current, target, amount)


class RendererState(Enum):
    """IDLE: GPU copy matches the buffer. DIRTY: columns were enqueued since."""
    IDLE = auto()
    DIRTY = auto()
    RENDERING = auto()


class SpectrogramRenderer:
    """Draws one channel's ring buffer.

    ``textures`` and ``program`` default to the GL implementations
    (SpectrogramTextureSet and SpectrogramPass); anything with the same
    methods can stand in for them.
    """

    def __init__(self, width: int, height: int, textures: Any = None, program: Any = None):
        if textures is None or program is None:
            from rendering.gl_programs.spectrogram_program import SpectrogramPass
            from rendering.gl_programs.texture_set import SpectrogramTextureSet
            textures = textures if textures is not None else SpectrogramTextureSet()
            program = program if program is not None else SpectrogramPass()

        self._textures = textures
        self._program = program

        try:
            self._program.initialize()
            self._textures.allocate(width, height)
        except RendererInitError:
            self.release()
            raise
        except Exception as e:
            self.release()
            raise RendererInitError(f"Failed to create spectrogram renderer: {e}") from e

        self._state = RendererState.IDLE
        self._viewport: Tuple[int, int] = (1, 1)

        # Ring-buffer tracking for partial uploads
        self._last_written: Optional[int] = None
        self._last_generation: Optional[int] = None
        self._offset: float = 0.0
        self._length_fraction: float = 0.0

        # Targets and eased values
        self._parameters: Optional[RenderParameters] = None
        self._scale_range: Tuple[float, float] = (0.0, 0.0)
        self._current_scale_range: Tuple[float, float] = (0.0, 0.0)
        self._current_contrast: float = 25.0
        self._current_sensitivity: float = 25.0
        self._current_zoom: float = 4.0

        # Fast-resize stretch correction
        self._last_real_width: int = 0
        self._zoom_override: float = 1.0

        self.update_parameters()
        logger.debug("%s Renderer created for %dx%d buffer", TAG_RENDER, width, height)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RendererState:
        return self._state

    @property
    def parameters(self) -> RenderParameters:
        return self._parameters

    @property
    def scale_range(self) -> Tuple[float, float]:
        """Target scale range (the eased value follows it)."""
        return self._scale_range

    @property
    def current_scale_range(self) -> Tuple[float, float]:
        return self._current_scale_range

    @property
    def current_contrast(self) -> float:
        return self._current_contrast

    @property
    def current_sensitivity(self) -> float:
        return self._current_sensitivity

    @property
    def current_zoom(self) -> float:
        return self._current_zoom

    @property
    def zoom_override(self) -> float:
        return self._zoom_override

    @property
    def offset(self) -> float:
        return self._offset

    @property
    def length_fraction(self) -> float:
        return self._length_fraction

    @property
    def viewport(self) -> Tuple[int, int]:
        return self._viewport

    def mark_dirty(self) -> None:
        """Columns were enqueued; the next update must upload them."""
        self._state = RendererState.DIRTY

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def update_parameters(self, **partial: Any) -> RenderParameters:
        """Merge a partial update; None or missing fields keep their value.

        Raises SpectrogramConfigError for unknown fields or values.
        """
        previous = self._parameters
        params = merge_render_parameters(previous, partial)

        if gradient_changed(previous, params):
            self._textures.upload_gradient_lookup(build_gradient_lookup(params.gradient))

        if range_changed(previous, params):
            self._scale_range = scale_range(params)

        if axis_changed(previous, params):
            self._upload_scale_lookup(params)
            # Old and new ranges are on different axes; snap instead of easing.
            self._current_scale_range = self._scale_range

        self._parameters = params
        return params

    def _upload_scale_lookup(self, params: RenderParameters) -> None:
        self._textures.upload_scale_lookup(
            build_scale_lookup(params.scale, params.sample_rate, params.window_size, self._textures.height)
        )

    # ------------------------------------------------------------------
    # Streaming upload
    # ------------------------------------------------------------------

    def update_spectrogram(self, buffer: CircularColumnBuffer, force_full: bool = False) -> UploadPlan:
        """Bring the GPU copy up to date with ``buffer``.

        Reallocates the texture (and uploads everything) when the buffer's
        dimensions no longer match it.
        """
        if buffer.width != self._textures.width or buffer.height != self._textures.height:
            height_changed = buffer.height != self._textures.height
            self._textures.allocate(buffer.width, buffer.height)
            if height_changed and self._parameters is not None:
                self._upload_scale_lookup(self._parameters)
            force_full = True
        if buffer.generation != self._last_generation:
            force_full = True

        plan = plan_spectrogram_upload(
            self._last_written,
            buffer.columns_written,
            buffer.start,
            buffer.length,
            buffer.width,
            force=force_full,
        )

        t0 = time.perf_counter()
        if plan.full:
            self._textures.upload_full(buffer.data)
        else:
            for region in plan.regions:
                self._textures.upload_columns(buffer.data, region.first_column, region.column_count)
        if is_perf_metrics_enabled() and not plan.is_empty:
            logger.debug(
                "%s %s upload full=%s columns=%d in %.2fms",
                TAG_PERF,
                TAG_RENDER,
                plan.full,
                buffer.width if plan.full else plan.column_count,
                (time.perf_counter() - t0) * 1000.0,
            )

        self._last_written = buffer.columns_written
        self._last_generation = buffer.generation
        self._offset = buffer.start / buffer.width
        self._length_fraction = -0.5 / buffer.width + buffer.length / buffer.width
        self._state = RendererState.IDLE
        return plan

    # ------------------------------------------------------------------
    # Frame
    # ------------------------------------------------------------------

    def advance_smoothing(self) -> None:
        """Move every eased value one step towards its target."""
        params = self._parameters
        self._current_scale_range = (
            step_towards(self._current_scale_range[0], self._scale_range[0]),
            step_towards(self._current_scale_range[1], self._scale_range[1]),
        )
        self._current_contrast = step_towards(self._current_contrast, params.contrast)
        if self._current_contrast < MIN_CONTRAST:
            self._current_contrast = 0.0
        self._current_sensitivity = step_towards(self._current_sensitivity, params.sensitivity)
        self._current_zoom = step_towards(self._current_zoom, params.zoom)

    def frame_state(self) -> SpectrogramFrameState:
        return SpectrogramFrameState(
            offset=self._offset,
            length_fraction=self._length_fraction,
            scale_range=self._current_scale_range,
            contrast=self._current_contrast,
            sensitivity=self._current_sensitivity,
            zoom=self._zoom_override * self._current_zoom,
        )

    def render(self) -> SpectrogramFrameState:
        """Ease parameters one step and draw a frame. Returns the frame state drawn."""
        previous = self._state
        self._state = RendererState.RENDERING
        try:
            self.advance_smoothing()
            state = self.frame_state()
            self._program.draw(self._viewport, state, self._textures)
        finally:
            self._state = previous
        return state

    # ------------------------------------------------------------------
    # Canvas
    # ------------------------------------------------------------------

    def resize_canvas(self, width: int, height: int) -> None:
        """Settled resize: buffer width now matches the canvas again."""
        self._last_written = None
        self._zoom_override = 1.0
        self._last_real_width = int(width)
        self._viewport = (int(width), int(height))

    def fast_resize_canvas(self, width: int, height: int) -> None:
        """Immediate resize while the buffer still has its old width.

        Scales zoom so existing columns keep roughly their on-screen width
        until the settled resize catches up.
        """
        width = max(int(width), 1)
        if self._last_real_width > 0:
            self._zoom_override = self._last_real_width / width
        else:
            self._zoom_override = 1.0
        self._viewport = (width, int(height))

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def release(self) -> None:
        """Delete GL objects. Requires the owning context to be current."""
        try:
            self._textures.release()
        finally:
            self._program.release()
