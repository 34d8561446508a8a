"""
Live Spectrogram - Main Entry Point

Shows a scrolling spectrogram per channel of a generated test signal.

Flags:
- --debug, -d    Enable debug logging (console + file)
- --verbose, -v  Enable high-volume per-frame debug logs
- --perf         Enable [PERF] metrics
- --threads      Run analysis workers as threads instead of processes
"""
import sys

from PySide6.QtCore import QCoreApplication, Qt, QTimer
from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWidgets import QApplication, QLabel, QMainWindow, QVBoxLayout, QWidget

from core.dsp.spectral import SpectrogramConfigError
from core.logging.logger import get_logger, set_perf_metrics_enabled, setup_logging
from core.process.dispatcher import BACKEND_THREAD, TaskDispatcher
from core.settings.settings_manager import SettingsManager
from core.threading.ui_invoker import UiInvoker
from engine.spectrogram_engine import SineSweepSource, SpectrogramEngine
from rendering.gl_format import apply_default_surface_format
from widgets.spectrogram_gl_widget import SpectrogramGLWidget

logger = get_logger(__name__)

APP_NAME = "Live Spectrogram"


class SpectrogramWindow(QMainWindow):
    """One SpectrogramGLWidget per channel, stacked vertically."""

    def __init__(self, engine: SpectrogramEngine, settings: SettingsManager):
        super().__init__()
        self.setWindowTitle(APP_NAME)
        self.resize(1024, 600)
        self._engine = engine

        central = QWidget(self)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(2)

        overrides = settings.render_parameter_overrides()
        self.views = []
        for pipeline in engine.pipelines:
            view = SpectrogramGLWidget(pipeline.buffer, central, settings=settings)
            view.renderer_failed.connect(self._on_renderer_failed)
            view.update_parameters(**overrides)
            engine.attach_view(pipeline.index, view)
            layout.addWidget(view, 1)
            self.views.append(view)

        self.setCentralWidget(central)
        self._status = QLabel("", self)
        self.statusBar().addWidget(self._status)
        engine.error_occurred.connect(self._on_engine_error)

        QShortcut(QKeySequence("C"), self, activated=self._engine.clear)
        settings.settings_changed.connect(self._on_setting_changed)
        self._settings = settings

    def _on_renderer_failed(self, message: str) -> None:
        self._status.setText(f"OpenGL unavailable: {message}")

    def _on_engine_error(self, message: str) -> None:
        self._status.setText(f"Analysis error: {message}")

    def _on_setting_changed(self, key: str, _value) -> None:
        if key.startswith('render.') or key == '*':
            try:
                self._engine.update_render_parameters(**self._settings.render_parameter_overrides())
            except SpectrogramConfigError as e:
                logger.warning("Ignoring invalid render setting %s: %s", key, e)


def run_viewer(app: QApplication, settings: SettingsManager, use_threads: bool) -> int:
    backend = BACKEND_THREAD if use_threads else settings.get('workers.backend', 'process')
    dispatcher = TaskDispatcher(pool_size=settings.worker_pool_size(), backend=str(backend))
    dispatcher.start()

    invoker = UiInvoker()
    engine = SpectrogramEngine(dispatcher, settings, invoker=invoker)
    window = SpectrogramWindow(engine, settings)

    source = SineSweepSource(
        sample_rate=settings.get_float('spectrogram.sample_rate'),
        block_size=engine.window_step_size,
        channels=engine.channel_count,
    )

    def _feed() -> None:
        engine.feed(source.next_blocks(), source.sample_rate)

    feed_timer = QTimer(window)
    feed_timer.setTimerType(Qt.TimerType.PreciseTimer)
    feed_timer.setInterval(max(1, int(source.block_interval_ms)))
    feed_timer.timeout.connect(_feed)

    def _on_about_to_quit() -> None:
        logger.info("Shutting down viewer")
        feed_timer.stop()
        engine.shutdown()
        dispatcher.shutdown()
        settings.save()

    app.aboutToQuit.connect(_on_about_to_quit)

    window.show()
    feed_timer.start()
    logger.info(
        "Viewer running: %d channels, %s backend, block interval %.1fms",
        engine.channel_count,
        dispatcher.backend,
        source.block_interval_ms,
    )
    return app.exec()


def main():
    """Main entry point for the spectrogram viewer."""
    debug_mode = '--debug' in sys.argv or '-d' in sys.argv
    verbose_mode = '--verbose' in sys.argv or '-v' in sys.argv
    setup_logging(debug=debug_mode, verbose=verbose_mode)
    if '--perf' in sys.argv:
        set_perf_metrics_enabled(True)
    use_threads = '--threads' in sys.argv

    logger.info("=" * 60)
    logger.info("%s Starting", APP_NAME)
    logger.info("=" * 60)

    settings = SettingsManager()

    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )

    # Must be configured before QApplication exists
    QCoreApplication.setAttribute(Qt.ApplicationAttribute.AA_UseDesktopOpenGL, True)
    QCoreApplication.setAttribute(Qt.ApplicationAttribute.AA_ShareOpenGLContexts, True)
    apply_default_surface_format(settings)

    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    app.setOrganizationName("LiveSpectrogram")
    logger.info("Qt Application created: %s", app.applicationName())

    exit_code = 0
    try:
        exit_code = run_viewer(app, settings, use_threads)
    except SpectrogramConfigError as e:
        logger.error("Invalid configuration: %s", e)
        exit_code = 2
    except Exception as e:
        logger.exception("Fatal error in main: %s", e)
        exit_code = 1

    logger.info("=" * 60)
    logger.info("%s Exiting (code=%d)", APP_NAME, exit_code)
    logger.info("=" * 60)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
