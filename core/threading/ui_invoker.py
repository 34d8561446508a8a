"""
UI-thread dispatch for callbacks that fire on worker listener threads.

Futures from the task dispatcher complete on background threads, but buffers
and views may only be touched from the Qt UI thread. ``UiInvoker`` re-posts a
callable through a queued signal so it runs in the UI thread's event loop.
"""
from typing import Any, Callable

from PySide6.QtCore import QCoreApplication, QObject, QThread, Signal

from core.logging.logger import get_logger

logger = get_logger(__name__)


class UiInvoker(QObject):
    """Callable that runs ``func(*args)`` on the UI thread."""

    invoke = Signal(object, object)

    def __init__(self):
        super().__init__()
        app = QCoreApplication.instance()
        if app is None:
            raise RuntimeError("UiInvoker requires a QCoreApplication instance")
        self.moveToThread(app.thread())
        self.invoke.connect(self._on_invoke)

    def __call__(self, func: Callable[..., Any], *args: Any) -> None:
        if QThread.currentThread() is self.thread():
            self._on_invoke(func, args)
            return
        self.invoke.emit(func, args)

    def _on_invoke(self, func, args):
        try:
            func(*args)
        except Exception as e:
            logger.exception("UI invoker callable raised: %s", e)


def call_directly(func: Callable[..., Any], *args: Any) -> None:
    """Invoker for code that already runs everything on one thread (tests, tools)."""
    func(*args)
