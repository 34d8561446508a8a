"""GL shader program helpers for the spectrogram view.

Each helper encapsulates GLSL source, compilation, uniform caching and draw
logic. The renderer owns the GL context lifetime and the smoothing state.
"""

from rendering.gl_errors import RendererInitError
from rendering.gl_programs.base_program import BaseGLProgram
from rendering.gl_programs.geometry_manager import GLGeometryManager
from rendering.gl_programs.spectrogram_program import SpectrogramPass, SpectrogramProgram
from rendering.gl_programs.texture_set import SpectrogramTextureSet

__all__ = [
    "BaseGLProgram",
    "RendererInitError",
    "GLGeometryManager",
    "SpectrogramPass",
    "SpectrogramProgram",
    "SpectrogramTextureSet",
]
