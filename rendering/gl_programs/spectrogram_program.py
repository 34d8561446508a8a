"""Spectrogram shader program.

Draws the ring buffer as a scrolling image: newest column at the right edge,
low frequencies at the bottom. Per fragment:

1. the frequency lookup maps the display row (within the smoothed scale range)
   to a row of the analyzer's output column
2. the display column maps to a ring position, wrapping around the texture
3. intensity = clamp(raw * sensitivity, 0, 1), log-compressed by contrast
4. columns older than the logical start of the data read as zero
5. the gradient lookup turns intensity into colour
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from OpenGL import GL as gl

from rendering.gl_errors import RendererInitError
from rendering.gl_programs.base_program import BaseGLProgram
from rendering.gl_programs.geometry_manager import GLGeometryManager
from rendering.render_parameters import SpectrogramFrameState

logger = logging.getLogger(__name__)

SPECTROGRAM_UNIT = 0
SCALE_UNIT = 1
GRADIENT_UNIT = 2


class SpectrogramProgram(BaseGLProgram):
    """Shader program for the scrolling spectrogram."""

    @property
    def name(self) -> str:
        return "Spectrogram"

    @property
    def fragment_source(self) -> str:
        return """
#version 330 core
in vec2 vUV;
out vec4 FragColor;

uniform sampler2D uSpectrogramSampler;  // x = frequency row, y = ring position
uniform sampler2D uScaleSampler;        // 1 x height frequency lookup
uniform sampler2D uGradientSampler;     // 1 x 128 colour lookup
uniform float uSpectrogramOffset;
uniform float uSpectrogramLength;
uniform vec2 uScaleRange;
uniform float uContrast;
uniform float uSensitivity;
uniform float uZoom;

void main() {
    // Age of this display column as a fraction of the ring width.
    float age = (1.0 - vUV.x) / uZoom;
    float ringPos = mod(uSpectrogramOffset + uSpectrogramLength - age, 1.0);

    float displayRow = mix(uScaleRange.x, uScaleRange.y, 1.0 - vUV.y);
    float row = texture(uScaleSampler, vec2(0.5, displayRow)).r;

    float intensity = texture(uSpectrogramSampler, vec2(row, ringPos)).r;
    intensity = clamp(intensity * uSensitivity, 0.0, 1.0);
    if (uContrast > 0.0) {
        intensity = log(1.0 + intensity * uContrast) / log(1.0 + uContrast);
    }
    // Nothing before the oldest valid column.
    intensity *= step(age, uSpectrogramLength);

    FragColor = vec4(texture(uGradientSampler, vec2(0.5, intensity)).rgb, 1.0);
}
"""

    UNIFORMS = (
        "uSpectrogramSampler",
        "uScaleSampler",
        "uGradientSampler",
        "uSpectrogramOffset",
        "uSpectrogramLength",
        "uScaleRange",
        "uContrast",
        "uSensitivity",
        "uZoom",
    )

    def set_uniforms(self, uniforms: Dict[str, int], state: SpectrogramFrameState) -> None:
        gl.glUniform1i(uniforms["uSpectrogramSampler"], SPECTROGRAM_UNIT)
        gl.glUniform1i(uniforms["uScaleSampler"], SCALE_UNIT)
        gl.glUniform1i(uniforms["uGradientSampler"], GRADIENT_UNIT)
        gl.glUniform1f(uniforms["uSpectrogramOffset"], float(state.offset))
        gl.glUniform1f(uniforms["uSpectrogramLength"], float(state.length_fraction))
        gl.glUniform2f(uniforms["uScaleRange"], float(state.scale_range[0]), float(state.scale_range[1]))
        gl.glUniform1f(uniforms["uContrast"], float(state.contrast))
        gl.glUniform1f(uniforms["uSensitivity"], float(state.sensitivity))
        gl.glUniform1f(uniforms["uZoom"], float(state.zoom))


class SpectrogramPass:
    """Compiled spectrogram program plus its quad; draws one frame per call.

    Thread Safety:
    - All methods must be called from the UI thread with the GL context current
    """

    def __init__(self, program: Optional[SpectrogramProgram] = None):
        self._helper = program or SpectrogramProgram()
        self._program_id: int = 0
        self._uniforms: Dict[str, int] = {}
        self._geometry = GLGeometryManager()

    def initialize(self) -> None:
        """Compile the program and create the quad. Raises RendererInitError."""
        self._program_id = self._helper.create_program()
        try:
            self._uniforms = self._helper.cache_uniforms(self._program_id)
            self._geometry.initialize()
        except RendererInitError:
            self.release()
            raise

    def draw(self, viewport: Tuple[int, int], state: SpectrogramFrameState, textures: Any) -> None:
        vp_w, vp_h = viewport
        gl.glViewport(0, 0, vp_w, vp_h)
        gl.glDisable(gl.GL_DEPTH_TEST)
        gl.glClearColor(0.0, 0.0, 0.0, 1.0)
        gl.glClear(gl.GL_COLOR_BUFFER_BIT)

        gl.glUseProgram(self._program_id)
        self._helper.set_uniforms(self._uniforms, state)
        textures.bind(SPECTROGRAM_UNIT, SCALE_UNIT, GRADIENT_UNIT)
        try:
            self._geometry.draw_quad()
        finally:
            textures.unbind(SPECTROGRAM_UNIT, SCALE_UNIT, GRADIENT_UNIT)
            gl.glUseProgram(0)

    def release(self) -> None:
        self._geometry.cleanup()
        if self._program_id:
            try:
                gl.glDeleteProgram(self._program_id)
            except Exception as e:
                logger.debug("[GL PROGRAM] Failed to delete program: %s", e)
            self._program_id = 0
        self._uniforms = {}
