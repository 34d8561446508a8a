"""Qt widgets for the spectrogram viewer."""

from .spectrogram_gl_widget import SpectrogramGLWidget

__all__ = ['SpectrogramGLWidget']
