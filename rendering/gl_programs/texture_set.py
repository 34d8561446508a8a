"""SpectrogramTextureSet - the three textures behind one spectrogram view.

- spectrogram: R32F, ``height`` texels wide and ``width`` texels tall, so each
  texture row is one ring-buffer column and a run of columns uploads with a
  single glTexSubImage2D
- scale lookup: R32F, 1 x height, display row -> analyzer row
- gradient lookup: RGB8, 1 x 128, intensity -> colour

Thread Safety:
- All methods must be called from UI thread with valid GL context
"""

from __future__ import annotations

import ctypes
import logging
from typing import List

import numpy as np
from OpenGL import GL as gl

from core.logging.logger import is_perf_metrics_enabled
from core.logging.tags import TAG_GL_TEXTURE
from rendering.gl_errors import RendererInitError

logger = logging.getLogger(__name__)


def _set_sampling(target: int = gl.GL_TEXTURE_2D) -> None:
    gl.glTexParameteri(target, gl.GL_TEXTURE_MIN_FILTER, gl.GL_LINEAR)
    gl.glTexParameteri(target, gl.GL_TEXTURE_MAG_FILTER, gl.GL_LINEAR)
    gl.glTexParameteri(target, gl.GL_TEXTURE_WRAP_S, gl.GL_CLAMP_TO_EDGE)
    gl.glTexParameteri(target, gl.GL_TEXTURE_WRAP_T, gl.GL_CLAMP_TO_EDGE)


class SpectrogramTextureSet:
    """Owns and uploads the spectrogram, scale and gradient textures."""

    def __init__(self):
        self._spectrogram_tex: int = 0
        self._scale_tex: int = 0
        self._gradient_tex: int = 0
        self.width: int = 0    # ring-buffer columns
        self.height: int = 0   # values per column

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def _gen_texture(self) -> int:
        tex = int(gl.glGenTextures(1))
        if not tex:
            raise RendererInitError("Could not create texture")
        return tex

    def allocate(self, width: int, height: int) -> None:
        """(Re)allocate the spectrogram texture for a ``width x height`` buffer, zero-filled.

        Raises RendererInitError if a texture cannot be created.
        """
        if not self._spectrogram_tex:
            self._spectrogram_tex = self._gen_texture()
        if not self._scale_tex:
            self._scale_tex = self._gen_texture()
        if not self._gradient_tex:
            self._gradient_tex = self._gen_texture()

        self.width = int(width)
        self.height = int(height)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self._spectrogram_tex)
        try:
            _set_sampling()
            gl.glTexImage2D(
                gl.GL_TEXTURE_2D, 0, gl.GL_R32F, self.height, self.width, 0,
                gl.GL_RED, gl.GL_FLOAT, np.zeros((self.width, self.height), dtype=np.float32),
            )
        finally:
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        logger.debug("%s Spectrogram texture allocated: %dx%d", TAG_GL_TEXTURE, self.width, self.height)

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    def upload_full(self, data: np.ndarray) -> None:
        """Replace the whole spectrogram texture with ``data`` shaped (width, height)."""
        block = np.ascontiguousarray(data, dtype=np.float32)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self._spectrogram_tex)
        try:
            gl.glTexSubImage2D(
                gl.GL_TEXTURE_2D, 0, 0, 0, self.height, self.width,
                gl.GL_RED, gl.GL_FLOAT, block,
            )
        finally:
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        if is_perf_metrics_enabled():
            logger.debug("[PERF] [GL TEXTURE] full upload %d columns", self.width)

    def upload_columns(self, data: np.ndarray, first_column: int, column_count: int) -> None:
        """Upload ring positions ``[first_column, first_column + column_count)``."""
        if column_count <= 0:
            return
        end = first_column + column_count
        block = np.ascontiguousarray(data[first_column:end], dtype=np.float32)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self._spectrogram_tex)
        try:
            gl.glTexSubImage2D(
                gl.GL_TEXTURE_2D, 0, 0, int(first_column), self.height, int(column_count),
                gl.GL_RED, gl.GL_FLOAT, block,
            )
        finally:
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)

    def upload_scale_lookup(self, lookup: np.ndarray) -> None:
        values = np.ascontiguousarray(lookup, dtype=np.float32)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self._scale_tex)
        try:
            _set_sampling()
            gl.glTexImage2D(
                gl.GL_TEXTURE_2D, 0, gl.GL_R32F, 1, values.shape[0], 0,
                gl.GL_RED, gl.GL_FLOAT, values,
            )
        finally:
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)

    def upload_gradient_lookup(self, lookup: np.ndarray) -> None:
        values = np.ascontiguousarray(lookup, dtype=np.uint8)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self._gradient_tex)
        try:
            _set_sampling()
            gl.glTexImage2D(
                gl.GL_TEXTURE_2D, 0, gl.GL_RGB8, 1, values.shape[0], 0,
                gl.GL_RGB, gl.GL_UNSIGNED_BYTE, values,
            )
        finally:
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    def bind(self, spectrogram_unit: int, scale_unit: int, gradient_unit: int) -> None:
        for unit, tex in (
            (spectrogram_unit, self._spectrogram_tex),
            (scale_unit, self._scale_tex),
            (gradient_unit, self._gradient_tex),
        ):
            gl.glActiveTexture(gl.GL_TEXTURE0 + unit)
            gl.glBindTexture(gl.GL_TEXTURE_2D, tex)

    def unbind(self, *units: int) -> None:
        for unit in units:
            gl.glActiveTexture(gl.GL_TEXTURE0 + unit)
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        gl.glActiveTexture(gl.GL_TEXTURE0)

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def release(self) -> None:
        """Delete all textures."""
        ids: List[int] = [t for t in (self._spectrogram_tex, self._scale_tex, self._gradient_tex) if t]
        if ids:
            try:
                arr = (ctypes.c_uint * len(ids))(*ids)
                gl.glDeleteTextures(len(ids), arr)
            except Exception:
                logger.debug("%s Failed to delete textures", TAG_GL_TEXTURE, exc_info=True)
        self._spectrogram_tex = self._scale_tex = self._gradient_tex = 0
        self.width = self.height = 0
