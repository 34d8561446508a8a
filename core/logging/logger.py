"""
Centralized logging configuration for the live spectrogram.

Uses a rotating file handler with logs stored in the logs/ directory and an
optional colored console stream in debug mode. Worker processes use their
own file loggers (see core.process.workers.base).
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from core.logging.tags import TAG_PERF


_VERBOSE: bool = False
_PERF_METRICS_ENABLED: bool = False
# Logs live under <project root>/logs unless setup_logging() is given a
# different base directory.
_BASE_DIR: Path = Path(__file__).parent.parent.parent

_env_perf = os.getenv("LSPEC_PERF_METRICS")
if _env_perf is not None:
    if _env_perf.strip().lower() in ("1", "true", "on", "yes"):
        _PERF_METRICS_ENABLED = True
    elif _env_perf.strip().lower() in ("0", "false", "off", "no"):
        _PERF_METRICS_ENABLED = False

_LOG_FORMAT = '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s'


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    COLORS = {
        'DEBUG': '\033[36m',       # Cyan
        'INFO': '\033[32m',        # Green
        'WARNING': '\033[33m',     # Yellow
        'ERROR': '\033[31m',       # Red
        'CRITICAL': '\033[35m',    # Magenta
    }
    PERF_COLOR = '\033[38;5;135m'
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        original_levelname = record.levelname

        if TAG_PERF in str(record.msg):
            color = self.PERF_COLOR
        else:
            color = self.COLORS.get(record.levelname)

        if color is None:
            return super().format(record)

        record.levelname = f"{self.BOLD}{color}{record.levelname}{self.RESET}"
        try:
            message = super().format(record)
        finally:
            record.levelname = original_levelname
        return f"{color}{message}{self.RESET}"


class SuppressingStreamHandler(logging.StreamHandler):
    """Stream handler that collapses consecutive lines from the same source.

    The render loop and the worker listeners can emit the same DEBUG line
    every frame. Repeats from one logger/level are replaced on the console by
    a single "[N Suppressed: CHECK LOG]" line; file logs keep everything.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_name: str | None = None
        self._last_level: int | None = None
        self._suppress_count: int = 0
        self._last_record: logging.LogRecord | None = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._emit_with_suppression(record)
        except Exception:
            self.handleError(record)

    def _emit_with_suppression(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.WARNING:
            self._flush_summary()
            super().emit(record)
            self._last_name = None
            self._last_level = None
            return

        if record.name == self._last_name and record.levelno == self._last_level:
            self._suppress_count += 1
            self._last_record = record
            return

        self._flush_summary()
        super().emit(record)
        self._last_name = record.name
        self._last_level = record.levelno
        self._last_record = record

    def _flush_summary(self) -> None:
        if self._suppress_count <= 0 or self._last_record is None:
            self._suppress_count = 0
            return

        last = self._last_record
        summary = logging.LogRecord(
            last.name,
            last.levelno,
            last.pathname,
            last.lineno,
            f"[{self._suppress_count} Suppressed: CHECK LOG]",
            args=None,
            exc_info=None,
        )
        summary.created = last.created
        summary.msecs = last.msecs
        summary.relativeCreated = last.relativeCreated
        super().emit(summary)
        self._suppress_count = 0

    def close(self) -> None:
        try:
            self._flush_summary()
        finally:
            super().close()


def get_log_dir() -> Path:
    """Return the directory used for log files."""
    return _BASE_DIR / "logs"


def setup_logging(debug: bool = False, verbose: bool = False, base_dir: Path | None = None) -> None:
    """
    Configure application logging with file rotation.

    Args:
        debug: If True, set log level to DEBUG and enable console output.
        verbose: Enables high-volume per-frame debug logs (upload plans,
            parameter smoothing). Implies debug.
        base_dir: Optional directory under which logs/ is created.
    """
    global _VERBOSE, _BASE_DIR

    debug_enabled = debug or verbose
    if base_dir is not None:
        _BASE_DIR = Path(base_dir)

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "spectrogram.log"

    level = logging.DEBUG if debug_enabled else logging.INFO

    formatter = logging.Formatter(_LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    # File handler with rotation (1MB max, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)

    if debug_enabled:
        console_handler = SuppressingStreamHandler(sys.stdout)
        if sys.stdout.isatty():
            console_handler.setFormatter(ColoredFormatter(_LOG_FORMAT, datefmt='%H:%M:%S'))
        else:
            console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt='%H:%M:%S'))
        console_handler.setLevel(level)
        root_logger.addHandler(console_handler)

    # PyOpenGL logs every failed call at INFO when error checking is on.
    noisy_level = logging.DEBUG if verbose else logging.WARNING
    for name in ("OpenGL", "OpenGL.acceleratesupport"):
        logging.getLogger(name).setLevel(noisy_level)

    _VERBOSE = bool(verbose)

    root_logger.info("=" * 60)
    root_logger.info(
        "Spectrogram logging initialized (debug=%s, verbose=%s, perf=%s)",
        debug_enabled,
        _VERBOSE,
        _PERF_METRICS_ENABLED,
    )
    root_logger.info("=" * 60)


_SHORT_NAME_OVERRIDES = {
    "core.process.dispatcher": "process.dispatcher",
    "core.dsp.spectral": "dsp.spectral",
    "rendering.spectrogram_renderer": "rendering.renderer",
    "widgets.spectrogram_gl_widget": "widgets.spectrogram",
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with optional short-name overrides for noisy modules."""
    actual = _SHORT_NAME_OVERRIDES.get(name, name)
    return logging.getLogger(actual)


def is_verbose_logging() -> bool:
    """Return True when verbose debug logging is enabled globally."""
    return _VERBOSE


def is_perf_metrics_enabled() -> bool:
    """Return True when PERF metrics/telemetry are enabled globally."""
    return _PERF_METRICS_ENABLED


def set_perf_metrics_enabled(enabled: bool) -> None:
    """Toggle PERF metrics at runtime (used by the --perf CLI flag)."""
    global _PERF_METRICS_ENABLED
    _PERF_METRICS_ENABLED = bool(enabled)
