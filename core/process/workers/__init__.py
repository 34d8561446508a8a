"""
Worker implementations for the worker pool.

Each worker runs in its own process (or thread, for the in-process backend)
and communicates with the dispatcher through a dedicated pair of queues.
"""
from .base import BaseWorker
from .spectrogram_worker import SpectrogramWorker, spectrogram_worker_main

__all__ = [
    "BaseWorker",
    "SpectrogramWorker",
    "spectrogram_worker_main",
]
