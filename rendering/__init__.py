"""Rendering modules.

Only the GL-free helpers are exported here; the renderer, GL programs and
surface format live in their own modules and pull in OpenGL/Qt on import.
"""

from .gradients import GRADIENTS, build_gradient_lookup, gradient_by_name
from .render_parameters import RenderParameters, SpectrogramFrameState, merge_render_parameters
from .upload_plan import UploadPlan, UploadRegion, plan_spectrogram_upload

__all__ = [
    'GRADIENTS',
    'build_gradient_lookup',
    'gradient_by_name',
    'RenderParameters',
    'SpectrogramFrameState',
    'merge_render_parameters',
    'UploadPlan',
    'UploadRegion',
    'plan_spectrogram_upload',
]
