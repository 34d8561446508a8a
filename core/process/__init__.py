"""
Worker pool for off-thread spectrogram analysis.

Provides:
- TaskDispatcher: fixed pool of workers, one request in flight per worker
- SpectrogramWorker: window + FFT + axis resampling

Workers communicate via per-worker queues with plain-dict messages.
No Qt objects cross process boundaries.
"""
from .types import (
    WorkerType,
    WorkerState,
    MessageType,
    WorkerMessage,
    WorkerResponse,
)
from .dispatcher import (
    SpectrogramTaskResult,
    TaskDispatcher,
    WorkerSlot,
    WorkerTaskError,
    default_pool_size,
)

__all__ = [
    "WorkerType",
    "WorkerState",
    "MessageType",
    "WorkerMessage",
    "WorkerResponse",
    "SpectrogramTaskResult",
    "TaskDispatcher",
    "WorkerSlot",
    "WorkerTaskError",
    "default_pool_size",
]
