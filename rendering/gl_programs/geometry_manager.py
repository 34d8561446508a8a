"""Fullscreen quad geometry (VAO/VBO/EBO) for the spectrogram pass."""

from __future__ import annotations

import ctypes
import logging

import numpy as np
from OpenGL import GL as gl

from rendering.gl_errors import RendererInitError

logger = logging.getLogger(__name__)

# (x, y, u, v) per vertex. v grows downwards: v=0 is the top edge.
QUAD_VERTICES = np.array(
    [
        -1.0, 1.0, 0.0, 0.0,   # v0 top-left
        -1.0, -1.0, 0.0, 1.0,  # v1 bottom-left
        1.0, -1.0, 1.0, 1.0,   # v2 bottom-right
        1.0, 1.0, 1.0, 0.0,    # v3 top-right
    ],
    dtype=np.float32,
)
QUAD_INDICES = np.array([0, 1, 3, 2, 3, 1], dtype=np.uint16)


class GLGeometryManager:
    """Owns the indexed fullscreen quad.

    Usage:
        manager = GLGeometryManager()
        manager.initialize()
        manager.draw_quad()
    """

    def __init__(self):
        self._quad_vao: int = 0
        self._quad_vbo: int = 0
        self._quad_ebo: int = 0
        self._initialized: bool = False

    @property
    def quad_vao(self) -> int:
        """Get quad VAO ID."""
        return self._quad_vao

    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Create the quad. Must be called with a current GL context.

        Raises RendererInitError if a buffer cannot be created.
        """
        if self._initialized:
            return

        vao = gl.glGenVertexArrays(1)
        vbo, ebo = gl.glGenBuffers(2)
        if not vao or not vbo or not ebo:
            raise RendererInitError("Could not create quad buffers")
        self._quad_vao = int(vao)
        self._quad_vbo = int(vbo)
        self._quad_ebo = int(ebo)

        gl.glBindVertexArray(self._quad_vao)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._quad_vbo)
        gl.glBufferData(gl.GL_ARRAY_BUFFER, QUAD_VERTICES.nbytes, QUAD_VERTICES, gl.GL_STATIC_DRAW)
        gl.glBindBuffer(gl.GL_ELEMENT_ARRAY_BUFFER, self._quad_ebo)
        gl.glBufferData(gl.GL_ELEMENT_ARRAY_BUFFER, QUAD_INDICES.nbytes, QUAD_INDICES, gl.GL_STATIC_DRAW)

        stride = 4 * 4  # 4 floats per vertex (x, y, u, v)
        gl.glEnableVertexAttribArray(0)
        gl.glVertexAttribPointer(0, 2, gl.GL_FLOAT, gl.GL_FALSE, stride, ctypes.c_void_p(0))
        gl.glEnableVertexAttribArray(1)
        gl.glVertexAttribPointer(1, 2, gl.GL_FLOAT, gl.GL_FALSE, stride, ctypes.c_void_p(8))

        # The EBO binding is VAO state; unbind the VAO first.
        gl.glBindVertexArray(0)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)
        gl.glBindBuffer(gl.GL_ELEMENT_ARRAY_BUFFER, 0)

        self._initialized = True
        logger.debug(
            "[GL GEOMETRY] Quad created: VAO=%d, VBO=%d, EBO=%d",
            self._quad_vao, self._quad_vbo, self._quad_ebo,
        )

    def draw_quad(self) -> None:
        gl.glBindVertexArray(self._quad_vao)
        gl.glDrawElements(gl.GL_TRIANGLES, len(QUAD_INDICES), gl.GL_UNSIGNED_SHORT, ctypes.c_void_p(0))
        gl.glBindVertexArray(0)

    def cleanup(self) -> None:
        """Delete GL objects. Requires the owning context to be current."""
        if not self._initialized:
            return
        try:
            gl.glDeleteBuffers(2, [self._quad_vbo, self._quad_ebo])
            gl.glDeleteVertexArrays(1, [self._quad_vao])
        except Exception as e:
            logger.debug("[GL GEOMETRY] Cleanup failed: %s", e)
        self._quad_vao = self._quad_vbo = self._quad_ebo = 0
        self._initialized = False
