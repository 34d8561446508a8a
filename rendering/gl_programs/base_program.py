"""Shader compile/link helpers and the base class for fullscreen-quad programs.

A program subclass declares its fragment source and the uniforms it needs.
``create_program()`` builds it and ``cache_uniforms()`` resolves every
declared uniform, so a shader that optimised one away fails at init instead
of drawing garbage. Nothing here owns textures or the GL context.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Tuple

from OpenGL import GL as gl

from rendering.gl_errors import RendererInitError

logger = logging.getLogger(__name__)

_SHADER_KINDS = {
    gl.GL_VERTEX_SHADER: "vertex",
    gl.GL_FRAGMENT_SHADER: "fragment",
}


def compile_shader(source: str, shader_type: int, label: str) -> int:
    """Compile one shader stage. Raises RendererInitError with the info log."""
    kind = _SHADER_KINDS.get(shader_type, str(shader_type))
    shader = gl.glCreateShader(shader_type)
    if not shader:
        raise RendererInitError(f"{label}: glCreateShader({kind}) returned 0")
    gl.glShaderSource(shader, source)
    gl.glCompileShader(shader)
    if not gl.glGetShaderiv(shader, gl.GL_COMPILE_STATUS):
        info_log = gl.glGetShaderInfoLog(shader)
        gl.glDeleteShader(shader)
        raise RendererInitError(f"{label} {kind} shader did not compile: {info_log}")
    return int(shader)


def link_program(shaders: Iterable[int], label: str) -> int:
    """Link compiled stages into a program; the stages are deleted either way."""
    stages = list(shaders)
    program = gl.glCreateProgram()
    try:
        if not program:
            raise RendererInitError(f"{label}: glCreateProgram returned 0")
        for shader in stages:
            gl.glAttachShader(program, shader)
        gl.glLinkProgram(program)
        if not gl.glGetProgramiv(program, gl.GL_LINK_STATUS):
            info_log = gl.glGetProgramInfoLog(program)
            gl.glDeleteProgram(program)
            raise RendererInitError(f"{label} program did not link: {info_log}")
        for shader in stages:
            gl.glDetachShader(program, shader)
    finally:
        for shader in stages:
            gl.glDeleteShader(shader)
    return int(program)


class BaseGLProgram(ABC):
    """A fragment shader drawn over the fullscreen quad."""

    # Quad vertices carry clip-space position and a 0..1 UV.
    FULLSCREEN_VERTEX_SHADER = """
#version 330 core
layout(location = 0) in vec2 aPos;
layout(location = 1) in vec2 aUV;
out vec2 vUV;
void main() {
    gl_Position = vec4(aPos, 0.0, 1.0);
    vUV = aUV;
}
"""

    # Uniform names resolved by cache_uniforms().
    UNIFORMS: Tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Label used in logs and error messages."""

    @property
    def vertex_source(self) -> str:
        return self.FULLSCREEN_VERTEX_SHADER

    @property
    @abstractmethod
    def fragment_source(self) -> str:
        """GLSL 330 fragment shader source."""

    def create_program(self) -> int:
        """Compile and link; returns the program id or raises RendererInitError."""
        vs = compile_shader(self.vertex_source, gl.GL_VERTEX_SHADER, self.name)
        try:
            fs = compile_shader(self.fragment_source, gl.GL_FRAGMENT_SHADER, self.name)
        except RendererInitError:
            gl.glDeleteShader(vs)
            raise
        program = link_program((vs, fs), self.name)
        logger.debug("[GL PROGRAM] %s program linked: %d", self.name, program)
        return program

    def cache_uniforms(self, program: int) -> Dict[str, int]:
        uniforms = {name: int(gl.glGetUniformLocation(program, name)) for name in self.UNIFORMS}
        missing = sorted(name for name, loc in uniforms.items() if loc == -1)
        if missing:
            raise RendererInitError(f"{self.name}: uniforms not found: {', '.join(missing)}")
        return uniforms

    @abstractmethod
    def set_uniforms(self, uniforms: Dict[str, int], state: Any) -> None:
        """Upload one frame's uniforms; the program is already in use."""
