"""
Construction of the QSurfaceFormat used by spectrogram views.

Requests an OpenGL 3.3 core profile (the shaders are GLSL 330) and honours
the refresh-sync preference, since the frame loop is driven by buffer swaps.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, TYPE_CHECKING

import threading

from PySide6.QtGui import QSurfaceFormat

from core.logging.logger import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from core.settings.settings_manager import SettingsManager

logger = get_logger(__name__)

GL_VERSION = (3, 3)

_log_lock = threading.Lock()
_logged_reasons: set[str] = set()


@dataclass(frozen=True)
class SurfacePreferences:
    refresh_sync: bool = True


def read_surface_preferences(settings_manager: Optional["SettingsManager"] = None) -> SurfacePreferences:
    """Resolve GL surface preferences from settings."""
    if settings_manager is None:
        return SurfacePreferences()
    return SurfacePreferences(
        refresh_sync=settings_manager.get_bool("display.refresh_sync", True),
    )


def build_surface_format(
    settings_manager: Optional["SettingsManager"] = None,
    *,
    reason: str = "",
) -> Tuple[QSurfaceFormat, SurfacePreferences]:
    """Build a QSurfaceFormat according to the user's GL preferences."""
    prefs = read_surface_preferences(settings_manager)

    fmt = QSurfaceFormat()
    fmt.setVersion(*GL_VERSION)
    fmt.setProfile(QSurfaceFormat.OpenGLContextProfile.CoreProfile)
    fmt.setSwapBehavior(QSurfaceFormat.SwapBehavior.DoubleBuffer)
    swap_interval = 1 if prefs.refresh_sync else 0
    fmt.setSwapInterval(swap_interval)

    log_key = reason or "__default__"
    should_log = False
    with _log_lock:
        if log_key not in _logged_reasons:
            _logged_reasons.add(log_key)
            should_log = True

    if should_log:
        logger.debug(
            "[GL FORMAT] Requested GL %d.%d core, interval=%s%s",
            GL_VERSION[0],
            GL_VERSION[1],
            swap_interval,
            f" reason={reason}" if reason else "",
        )

    return fmt, prefs


def apply_default_surface_format(settings_manager: Optional["SettingsManager"] = None) -> SurfacePreferences:
    """Install the format as the application default. Call before QApplication exists."""
    fmt, prefs = build_surface_format(settings_manager, reason="default")
    QSurfaceFormat.setDefaultFormat(fmt)
    return prefs


def apply_widget_surface_format(
    widget,
    settings_manager: Optional["SettingsManager"] = None,
    *,
    reason: str = "",
) -> SurfacePreferences:
    """Apply a surface format to the given QOpenGLWidget-derived widget."""
    fmt, prefs = build_surface_format(settings_manager, reason=reason)
    try:
        widget.setFormat(fmt)
    except Exception as exc:
        logger.warning("[GL FORMAT] Failed to apply format (%s): %s", reason or "", exc)
    return prefs
