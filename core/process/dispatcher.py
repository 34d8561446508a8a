"""
Task dispatcher: a fixed pool of worker processes behind Futures.

Each WorkerSlot owns one worker plus a dedicated request/response queue pair,
so every request has exactly one reply on a point-to-point channel. A slot
runs one request at a time. Requests that arrive while every slot is busy wait
in a FIFO and are handed to the next slot that frees up.

Lifetime: create, start(), submit work, shutdown(). The dispatcher is an
ordinary object owned by the application; nothing here is module-global.

Thread Safety:
- Slot and queue bookkeeping is protected by _lock
- Futures are settled from the per-slot listener threads, outside the lock
"""
from __future__ import annotations

import multiprocessing as mp
import multiprocessing.dummy as mp_dummy
import os
import queue
import threading
import uuid
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np

from core.dsp.spectral import SpectrogramOptions, validate_options
from core.logging.logger import get_logger, is_perf_metrics_enabled
from core.process.types import (
    MessageType,
    WorkerMessage,
    WorkerResponse,
    WorkerState,
    WorkerType,
)
from core.process.workers.spectrogram_worker import spectrogram_worker_main

logger = get_logger(__name__)

DEFAULT_POOL_SIZE = 4

BACKEND_PROCESS = "process"
BACKEND_THREAD = "thread"


class WorkerTaskError(RuntimeError):
    """A worker reported a failure for one task (or died while running it)."""

    def __init__(self, message: str, correlation_id: str = "", error_type: Optional[str] = None):
        super().__init__(message)
        self.correlation_id = correlation_id
        self.error_type = error_type


@dataclass
class SpectrogramTaskResult:
    """Result of one off-thread spectrogram computation."""
    window_count: int
    options: SpectrogramOptions
    spectrogram: np.ndarray      # (window_count, scale_size), float32
    input_buffer: np.ndarray     # samples handed back to the caller


@dataclass
class _PendingRequest:
    message: WorkerMessage
    future: Future


@dataclass
class WorkerSlot:
    """One pool member: a worker, its channel, and whether it is busy."""
    index: int
    process: Any = None
    request_queue: Any = None
    response_queue: Any = None
    busy: bool = False
    state: WorkerState = WorkerState.STOPPED
    in_flight: Optional[_PendingRequest] = None
    listener: Optional[threading.Thread] = None
    completed: int = 0
    restarts: int = 0


def default_pool_size() -> int:
    """Pool size from the host's CPU count, falling back to 4."""
    return os.cpu_count() or DEFAULT_POOL_SIZE


class TaskDispatcher:
    """
    Routes worker requests to a fixed pool of workers.

    Ordering: when every slot is busy, requests start in submission order as
    slots free up. Completion order among in-flight requests is unspecified.
    There is no priority, cancellation, timeout or retry; every submitted
    Future eventually resolves or fails.
    """

    POLL_TIMEOUT_S = 0.1
    JOIN_TIMEOUT_S = 5.0

    def __init__(
        self,
        pool_size: Optional[int] = None,
        worker_target: Callable[[Any, Any], None] = spectrogram_worker_main,
        backend: str = BACKEND_PROCESS,
        mp_context: Optional[Any] = None,
    ):
        """
        Args:
            pool_size: Number of workers; defaults to the host CPU count (or 4)
            worker_target: Callable run in each worker with (request_queue, response_queue)
            backend: "process" for worker processes, "thread" for in-process threads
            mp_context: multiprocessing context for the process backend (default: spawn)
        """
        if backend not in (BACKEND_PROCESS, BACKEND_THREAD):
            raise ValueError(f"Unknown worker backend: {backend!r}")
        size = default_pool_size() if not pool_size else int(pool_size)
        if size <= 0:
            raise ValueError(f"Pool size must be positive, got {pool_size}")

        self._pool_size = size
        self._worker_target = worker_target
        self._backend = backend
        self._ctx = mp_context if mp_context is not None else mp.get_context("spawn")

        self._lock = threading.RLock()
        self._slots: List[WorkerSlot] = []
        self._pending: Deque[_PendingRequest] = deque()
        self._seq_no = 0
        self._started = False
        self._shutdown = False
        self._stats: Dict[str, int] = {"submitted": 0, "completed": 0, "failed": 0}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "TaskDispatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def start(self) -> "TaskDispatcher":
        """Spawn every worker and its listener thread."""
        with self._lock:
            if self._shutdown:
                raise RuntimeError("dispatcher shut down")
            if self._started:
                return self
            for index in range(self._pool_size):
                slot = WorkerSlot(index=index)
                self._spawn_worker(slot)
                slot.listener = threading.Thread(
                    target=self._listen,
                    args=(slot,),
                    name=f"LSPEC_dispatch_{index}",
                    daemon=True,
                )
                self._slots.append(slot)
            self._started = True

        for slot in self._slots:
            slot.listener.start()
        logger.info(
            "[WORKER] TaskDispatcher started: %d %s workers",
            self._pool_size,
            self._backend,
        )
        return self

    def shutdown(self, timeout: float = JOIN_TIMEOUT_S) -> None:
        """
        Stop every worker.

        Requests still waiting for a slot fail with RuntimeError; in-flight
        requests are allowed to finish before the worker exits.
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            abandoned = list(self._pending)
            self._pending.clear()
            slots = list(self._slots)

        logger.info("[WORKER] TaskDispatcher shutting down (%d pending dropped)", len(abandoned))
        for request in abandoned:
            self._settle_error(request, RuntimeError("dispatcher shut down"))

        for slot in slots:
            slot.state = WorkerState.STOPPING
            shutdown_msg = WorkerMessage(
                msg_type=MessageType.SHUTDOWN,
                seq_no=self._next_seq(),
                correlation_id=str(uuid.uuid4()),
                worker_type=WorkerType.SPECTROGRAM,
            )
            try:
                slot.request_queue.put(shutdown_msg.to_dict())
            except (OSError, ValueError):
                logger.debug("[WORKER] slot %d request queue already closed", slot.index)

        per_slot = timeout / max(len(slots), 1)
        for slot in slots:
            self._stop_worker(slot, per_slot)
            if slot.listener is not None and slot.listener is not threading.current_thread():
                slot.listener.join(timeout=per_slot)
            with self._lock:
                stranded = slot.in_flight
                slot.in_flight = None
                slot.busy = False
                slot.state = WorkerState.STOPPED
            self._close_queues(slot)
            if stranded is not None:
                self._settle_error(stranded, RuntimeError("dispatcher shut down"))

        logger.info("[WORKER] TaskDispatcher shutdown complete (%s)", self._stats)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pool_size(self) -> int:
        return self._pool_size

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def busy_count(self) -> int:
        with self._lock:
            return sum(1 for slot in self._slots if slot.busy)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def submit(self, action: Any, payload: Dict[str, Any]) -> Future:
        """
        Queue one request and return a Future for its response payload.

        Objects referenced by ``payload`` belong to the pool from this point;
        the caller must not modify them afterwards.
        """
        msg_type = action if isinstance(action, MessageType) else MessageType(action)
        future: Future = Future()
        # RUNNING futures cannot be cancelled.
        future.set_running_or_notify_cancel()

        with self._lock:
            if self._shutdown:
                raise RuntimeError("dispatcher shut down")
            if not self._started:
                raise RuntimeError("dispatcher not started")
            request = _PendingRequest(
                message=WorkerMessage(
                    msg_type=msg_type,
                    seq_no=self._next_seq(),
                    correlation_id=str(uuid.uuid4()),
                    payload=payload,
                    worker_type=WorkerType.SPECTROGRAM,
                ),
                future=future,
            )
            self._stats["submitted"] += 1
            slot = self._free_slot()
            if slot is None:
                self._pending.append(request)
                if is_perf_metrics_enabled():
                    logger.debug("[PERF] [WORKER] pool saturated, %d pending", len(self._pending))
            else:
                self._dispatch(slot, request)
        return future

    def compute_spectrogram(
        self,
        samples: np.ndarray,
        samples_start: int,
        samples_length: int,
        options: SpectrogramOptions,
    ) -> Future:
        """
        Run generate_spectrogram on a worker.

        ``samples`` is handed over to the pool and marked read-only; use the
        ``input_buffer`` of the result if the samples are needed again.
        Resolves to a SpectrogramTaskResult.
        Raises SpectrogramConfigError before submitting if ``options`` cannot
        be analysed; the worker validates again.
        """
        validate_options(options)
        if isinstance(samples, np.ndarray):
            samples.flags.writeable = False
        raw = self.submit(
            MessageType.COMPUTE_SPECTROGRAM,
            {
                "sample_buffer": samples,
                "samples_start": int(samples_start),
                "samples_length": int(samples_length),
                "options": options.to_dict(),
            },
        )
        return _chain_future(raw, _to_spectrogram_result)

    # ------------------------------------------------------------------
    # Internal Methods
    # ------------------------------------------------------------------

    def _next_seq(self) -> int:
        with self._lock:
            self._seq_no += 1
            return self._seq_no

    def _free_slot(self) -> Optional[WorkerSlot]:
        """First idle running slot (must hold lock)."""
        for slot in self._slots:
            if not slot.busy and slot.state == WorkerState.RUNNING:
                return slot
        return None

    def _dispatch(self, slot: WorkerSlot, request: _PendingRequest) -> None:
        """Hand a request to an idle slot (must hold lock)."""
        slot.busy = True
        slot.in_flight = request
        slot.request_queue.put(request.message.to_dict())

    def _spawn_worker(self, slot: WorkerSlot) -> None:
        """Create the slot's queues and start its worker (must hold lock)."""
        slot.state = WorkerState.STARTING
        if self._backend == BACKEND_THREAD:
            slot.request_queue = queue.Queue()
            slot.response_queue = queue.Queue()
            process = mp_dummy.Process(
                target=self._worker_target,
                args=(slot.request_queue, slot.response_queue),
                name=f"LSPEC_spectrogram_worker_{slot.index}",
            )
            process.daemon = True
        else:
            slot.request_queue = self._ctx.Queue()
            slot.response_queue = self._ctx.Queue()
            process = self._ctx.Process(
                target=self._worker_target,
                args=(slot.request_queue, slot.response_queue),
                name=f"LSPEC_spectrogram_worker_{slot.index}",
                daemon=True,  # Die with parent
            )
        process.start()
        slot.process = process
        slot.state = WorkerState.RUNNING
        logger.debug(
            "[WORKER] slot %d started (%s)",
            slot.index,
            getattr(process, "pid", None) or process.name,
        )

    def _stop_worker(self, slot: WorkerSlot, timeout: float) -> None:
        process = slot.process
        if process is None:
            return
        process.join(timeout=timeout)
        if process.is_alive() and self._backend == BACKEND_PROCESS:
            logger.warning("[WORKER] slot %d did not stop gracefully, terminating", slot.index)
            process.terminate()
            process.join(timeout=1.0)

    def _close_queues(self, slot: WorkerSlot) -> None:
        if self._backend != BACKEND_PROCESS:
            return
        for q in (slot.request_queue, slot.response_queue):
            q.cancel_join_thread()
            q.close()

    def _listen(self, slot: WorkerSlot) -> None:
        """Per-slot listener: settle the in-flight Future for each response."""
        while True:
            try:
                data = slot.response_queue.get(timeout=self.POLL_TIMEOUT_S)
            except queue.Empty:
                if self._shutdown and (not slot.busy or not slot.process.is_alive()):
                    return
                if not slot.process.is_alive() and slot.state == WorkerState.RUNNING:
                    self._handle_worker_death(slot)
                continue
            except (OSError, ValueError, EOFError):
                # Queue closed underneath us during shutdown.
                return

            response = WorkerResponse.from_dict(data)
            if response.msg_type == MessageType.SHUTDOWN:
                return
            self._complete(slot, response)

    def _complete(self, slot: WorkerSlot, response: WorkerResponse) -> None:
        with self._lock:
            request = slot.in_flight
            slot.in_flight = None
            slot.completed += 1
            if request is not None and request.message.correlation_id != response.correlation_id:
                logger.warning(
                    "[WORKER] slot %d response %s does not match in-flight %s",
                    slot.index,
                    response.correlation_id[:8],
                    request.message.correlation_id[:8],
                )
            self._release(slot)

        if request is None:
            logger.warning("[WORKER] slot %d sent an unsolicited response", slot.index)
            return

        if is_perf_metrics_enabled():
            logger.debug(
                "[PERF] [WORKER] slot %d seq=%d processed in %.2fms",
                slot.index,
                response.seq_no,
                response.processing_time_ms,
            )

        if response.success:
            with self._lock:
                self._stats["completed"] += 1
            request.future.set_result(response.payload)
        else:
            error_type = None
            message = response.error or "worker failed"
            if ": " in message:
                error_type = message.split(": ", 1)[0]
            self._settle_error(
                request,
                WorkerTaskError(message, response.correlation_id, error_type),
            )

    def _release(self, slot: WorkerSlot) -> None:
        """Free a slot or hand it the oldest waiting request (must hold lock)."""
        if self._pending and not self._shutdown and slot.state == WorkerState.RUNNING:
            self._dispatch(slot, self._pending.popleft())
        else:
            slot.busy = False

    def _handle_worker_death(self, slot: WorkerSlot) -> None:
        exitcode = getattr(slot.process, "exitcode", None)
        logger.error("[WORKER] slot %d worker died (exitcode=%s), restarting", slot.index, exitcode)
        with self._lock:
            stranded = slot.in_flight
            slot.in_flight = None
            slot.busy = False
            slot.state = WorkerState.RESTARTING
            slot.restarts += 1
            if self._shutdown:
                slot.state = WorkerState.STOPPED
            else:
                try:
                    self._spawn_worker(slot)
                except Exception as e:
                    logger.exception("[WORKER] failed to restart slot %d: %s", slot.index, e)
                    slot.state = WorkerState.ERROR
                if slot.state == WorkerState.RUNNING:
                    self._release(slot)
            orphaned: List[_PendingRequest] = []
            if not any(s.state in (WorkerState.RUNNING, WorkerState.STARTING) for s in self._slots):
                # No worker left to ever run the queue.
                orphaned = list(self._pending)
                self._pending.clear()

        if stranded is not None:
            self._settle_error(
                stranded,
                WorkerTaskError(
                    f"worker exited with code {exitcode} while running the task",
                    stranded.message.correlation_id,
                ),
            )
        for request in orphaned:
            self._settle_error(request, RuntimeError("no workers available"))

    def _settle_error(self, request: _PendingRequest, error: BaseException) -> None:
        with self._lock:
            self._stats["failed"] += 1
        logger.debug("[WORKER] task %s failed: %s", request.message.correlation_id[:8], error)
        request.future.set_exception(error)


def _chain_future(source: Future, transform: Callable[[Any], Any]) -> Future:
    """Future resolving with ``transform(source.result())``."""
    chained: Future = Future()
    chained.set_running_or_notify_cancel()

    def _on_done(done: Future) -> None:
        error = done.exception()
        if error is not None:
            chained.set_exception(error)
            return
        try:
            chained.set_result(transform(done.result()))
        except Exception as e:
            chained.set_exception(e)

    source.add_done_callback(_on_done)
    return chained


def _to_spectrogram_result(payload: Dict[str, Any]) -> SpectrogramTaskResult:
    options = SpectrogramOptions.from_dict(payload["resolved_options"])
    spectrogram = np.asarray(payload["spectrogram_buffer"], dtype=np.float32)
    spectrogram = spectrogram.reshape(int(payload["window_count"]), options.scale_size)
    echo = np.asarray(payload["input_buffer_echo"], dtype=np.float32)
    if not echo.flags.writeable:
        # In-process workers echo the very array that was handed over.
        echo = echo.copy()
    return SpectrogramTaskResult(
        window_count=int(payload["window_count"]),
        options=options,
        spectrogram=spectrogram,
        input_buffer=echo,
    )
