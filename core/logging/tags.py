"""Standard logging tags for consistent log filtering.

Usage:
    from core.logging.tags import TAG_PERF, TAG_WORKER
    logger.info("%s Upload took %.2fms", TAG_PERF, elapsed)
"""

# =============================================================================
# Performance and Metrics
# =============================================================================

TAG_PERF = "[PERF]"
"""Performance metrics (only emitted when perf metrics are enabled)."""

TAG_ENGINE = "[ENGINE]"
"""Channel pipeline and engine lifecycle."""

TAG_RENDER = "[RENDER]"
"""Renderer state, parameter updates and upload plans."""

TAG_DSP = "[DSP]"
"""Spectral analysis."""

TAG_WORKER = "[WORKER]"
"""Worker pool and worker process operations."""

# =============================================================================
# GL-Specific Tags
# =============================================================================

TAG_GL = "[GL]"
"""GL context, program and draw operations."""

TAG_GL_TEXTURE = "[GL TEXTURE]"
"""GL texture allocation and uploads."""

__all__ = [
    "TAG_PERF",
    "TAG_ENGINE",
    "TAG_RENDER",
    "TAG_DSP",
    "TAG_WORKER",
    "TAG_GL",
    "TAG_GL_TEXTURE",
]
