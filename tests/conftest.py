"""
Shared pytest fixtures for spectrogram tests.
"""
import os
import pytest
import sys

# Run Qt headless when no display is available.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication


@pytest.fixture(scope='session')
def qt_app():
    """Create QApplication instance for tests."""
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    yield app
    # Don't quit - causes issues with pytest


@pytest.fixture
def settings_manager():
    """Create SettingsManager instance for testing."""
    from core.settings import SettingsManager
    manager = SettingsManager(organization="Test", application="SpectrogramTest")
    manager.reset_to_defaults()
    yield manager
    # Clear test settings
    manager.clear()


@pytest.fixture
def thread_dispatcher():
    """Two-slot dispatcher running workers as threads."""
    from core.process.dispatcher import BACKEND_THREAD, TaskDispatcher
    dispatcher = TaskDispatcher(pool_size=2, backend=BACKEND_THREAD)
    dispatcher.start()
    yield dispatcher
    dispatcher.shutdown()

