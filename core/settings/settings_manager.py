"""
Settings manager implementation for the spectrogram viewer.

Uses QSettings for persistent storage with dotted keys.
"""
from typing import Any, Callable, Dict, List, Optional
import threading
from PySide6.QtCore import QSettings, QObject, Signal
from core.logging.logger import get_logger, is_verbose_logging

logger = get_logger('SettingsManager')


DEFAULTS: Dict[str, Any] = {
    # Analysis
    'spectrogram.window_size': 4096,
    'spectrogram.window_step_size': 1024,
    'spectrogram.channels': 2,
    # Number of columns kept per channel (circular buffer width).
    'spectrogram.buffer_width': 1024,
    'spectrogram.sample_rate': 48000,

    # Display
    'display.refresh_sync': True,

    # Rendering
    'render.contrast': 25.0,
    'render.sensitivity': 25.0,
    'render.zoom': 4.0,
    'render.min_frequency_hz': 10.0,
    'render.max_frequency_hz': 12000.0,
    'render.scale': 'mel',  # 'linear' | 'mel'
    'render.gradient': 'HEATED_METAL',

    # Worker pool
    'workers.pool_size': 0,  # 0 = one worker per CPU
    'workers.backend': 'process',  # 'process' | 'thread'
}

_FLOAT_RENDER_KEYS = (
    'contrast',
    'sensitivity',
    'zoom',
    'min_frequency_hz',
    'max_frequency_hz',
)


class SettingsManager(QObject):
    """
    Centralized settings management.

    Uses QSettings for persistent storage with organization/application name.
    Thread-safe with change notifications.
    """

    # Signal emitted when settings change
    settings_changed = Signal(str, object)  # key, new_value

    def __init__(self, organization: str = "LiveSpectrogram",
                 application: str = "Spectrogram"):
        """
        Initialize the settings manager.

        Args:
            organization: Organization name for QSettings
            application: Application name for QSettings
        """
        super().__init__()
        self._settings = QSettings(organization, application)
        self._organization = organization
        self._application = application
        self._lock = threading.RLock()
        self._change_handlers: Dict[str, List[Callable]] = {}

        # Initialize defaults
        self._set_defaults()
        logger.info("SettingsManager initialized")

    def _set_defaults(self) -> None:
        """Set default values if not already present."""
        for key, value in DEFAULTS.items():
            if not self._settings.contains(key):
                self._settings.setValue(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key in dot notation (e.g., 'render.zoom')
            default: Default value if key not found

        Returns:
            Setting value or default
        """
        with self._lock:
            return self._settings.value(key, default)

    @staticmethod
    def to_bool(value: Any, default: bool = False) -> bool:
        """Normalize a stored setting value to bool.

        Accepts common string forms ("true", "1", "yes", "on") as True and
        ("false", "0", "no", "off") as False.
        """
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            v = value.strip().lower()
            if v in ("true", "1", "yes", "on"):
                return True
            if v in ("false", "0", "no", "off"):
                return False
            return default
        if value is None:
            return default
        return bool(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Convenience wrapper around get() that normalizes to bool."""
        return self.to_bool(self.get(key, default), default)

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        """get() coerced to int; QSettings backends may hand back strings."""
        fallback = DEFAULTS.get(key, 0) if default is None else default
        raw = self.get(key, fallback)
        try:
            return int(float(raw))
        except (TypeError, ValueError):
            logger.warning("Setting %s=%r is not an integer, using %r", key, raw, fallback)
            return int(fallback)

    def get_float(self, key: str, default: Optional[float] = None) -> float:
        """get() coerced to float."""
        fallback = DEFAULTS.get(key, 0.0) if default is None else default
        raw = self.get(key, fallback)
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning("Setting %s=%r is not a number, using %r", key, raw, fallback)
            return float(fallback)

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting value.

        Args:
            key: Setting key in dot notation
            value: Value to set
        """
        with self._lock:
            old_value = self._settings.value(key)
            self._settings.setValue(key, value)

            # Emit change signal
            self.settings_changed.emit(key, value)

            # Call registered handlers
            for handler in self._change_handlers.get(key, []):
                try:
                    handler(value, old_value)
                except Exception as e:
                    logger.error("Error in change handler for %s: %s", key, e)

        if is_verbose_logging():
            logger.debug("Setting changed: %s: %r -> %r", key, old_value, value)
        else:
            logger.debug("Setting changed: %s", key)

    def save(self) -> None:
        """Force save settings to persistent storage."""
        with self._lock:
            self._settings.sync()
        logger.debug("Settings saved")

    def on_changed(self, key: str, handler: Callable[[Any, Any], None]) -> None:
        """
        Register a handler for when a specific setting changes.

        Args:
            key: Setting key to watch
            handler: Callback function(new_value, old_value)
        """
        with self._lock:
            self._change_handlers.setdefault(key, []).append(handler)
        logger.debug("Registered change handler for %s", key)

    def reset_to_defaults(self) -> None:
        """Reset all settings to default values."""
        with self._lock:
            self._settings.clear()
            for key, value in DEFAULTS.items():
                self._settings.setValue(key, value)
            self._settings.sync()
        logger.info("Settings reset to defaults")
        self.settings_changed.emit('*', None)  # Signal that all changed

    def contains(self, key: str) -> bool:
        """Check if a setting key exists."""
        with self._lock:
            return self._settings.contains(key)

    def clear(self) -> None:
        """Clear all settings (use with caution)."""
        with self._lock:
            self._settings.clear()
        logger.warning("All settings cleared")

    # ------------------------------------------------------------------
    # Structured views
    # ------------------------------------------------------------------

    def render_parameter_overrides(self) -> Dict[str, Any]:
        """Return the render.* keys as a partial for update_parameters()."""
        partial: Dict[str, Any] = {
            name: self.get_float(f'render.{name}') for name in _FLOAT_RENDER_KEYS
        }
        partial['scale'] = str(self.get('render.scale', DEFAULTS['render.scale']))
        partial['gradient'] = str(self.get('render.gradient', DEFAULTS['render.gradient']))
        return partial

    def worker_pool_size(self) -> Optional[int]:
        """Configured pool size, or None to size the pool from the CPU count."""
        size = self.get_int('workers.pool_size')
        return size if size > 0 else None
