"""
Base worker class for the worker pool.

Provides common functionality for all workers:
- Message loop on a dedicated request queue
- Graceful shutdown
- Exactly one response per request, errors included
- Logging setup for worker processes
"""
from __future__ import annotations

import logging
import os
import time
from queue import Empty as QueueEmpty
from typing import Any, Optional

from core.process.types import (
    MessageType,
    WorkerMessage,
    WorkerResponse,
    WorkerType,
)
from core.logging.logger import get_log_dir, is_perf_metrics_enabled


def setup_worker_logging(worker_type: WorkerType) -> logging.Logger:
    """
    Set up logging for a worker process.

    Workers can't use the main process handlers, so they log to their own
    file when perf metrics are enabled and stay silent otherwise.
    """
    logger = logging.getLogger(f"worker.{worker_type.value}")
    logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers if run() is invoked multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if not is_perf_metrics_enabled():
        logger.addHandler(logging.NullHandler())
        logger.propagate = False
        return logger

    log_dir = get_log_dir()
    os.makedirs(log_dir, exist_ok=True)

    log_file = log_dir / f"worker_{worker_type.value}.log"
    handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(process)d - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)
    logger.propagate = False

    return logger


class BaseWorker:
    """
    Base class for worker processes.

    Subclasses must implement:
    - worker_type: WorkerType property
    - handle_message(msg): Process a message and return its response
    """

    POLL_TIMEOUT_S = 0.1  # 100ms poll timeout

    def __init__(self, request_queue: Any, response_queue: Any):
        """
        Initialize the base worker.

        Args:
            request_queue: Queue for receiving requests from the dispatcher
            response_queue: Queue for sending responses back
        """
        self._request_queue = request_queue
        self._response_queue = response_queue
        self._shutdown = False
        self._logger: Optional[logging.Logger] = None
        self._start_time = time.time()
        self._messages_processed = 0

    @property
    def worker_type(self) -> WorkerType:
        """Override in subclass to return worker type."""
        raise NotImplementedError("Subclass must define worker_type")

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = setup_worker_logging(self.worker_type)
        return self._logger

    def handle_message(self, msg: WorkerMessage) -> WorkerResponse:
        """
        Handle a message and return a response.

        Exceptions raised here are turned into ERROR responses by run().
        """
        raise NotImplementedError("Subclass must implement handle_message")

    def run(self) -> None:
        """
        Main worker loop.

        Blocks on the request queue, handles messages and sends one response
        per request. Continues until a SHUTDOWN message arrives.
        """
        self.logger.info(
            "Worker %s started (PID: %d)",
            self.worker_type.value,
            os.getpid(),
        )

        try:
            while not self._shutdown:
                try:
                    msg_data = self._request_queue.get(timeout=self.POLL_TIMEOUT_S)
                except QueueEmpty:
                    continue
                self.process(msg_data)
        except KeyboardInterrupt:
            self.logger.info("Worker interrupted")
        finally:
            self._cleanup()
            self.logger.info(
                "Worker %s stopped (processed %d messages in %.1fs)",
                self.worker_type.value,
                self._messages_processed,
                time.time() - self._start_time,
            )

    def process(self, msg_data: dict) -> None:
        """Handle one raw request dict and send its response."""
        try:
            msg = WorkerMessage.from_dict(msg_data)
        except (KeyError, ValueError, TypeError) as e:
            self.logger.error("Failed to parse message: %s", e)
            self._send_response(WorkerResponse(
                msg_type=MessageType.ERROR,
                seq_no=int(msg_data.get("seq_no", -1)) if isinstance(msg_data, dict) else -1,
                correlation_id=str(msg_data.get("correlation_id", "")) if isinstance(msg_data, dict) else "",
                success=False,
                error=f"Unknown action: {msg_data.get('action') if isinstance(msg_data, dict) else msg_data!r}",
            ))
            return

        if msg.msg_type == MessageType.SHUTDOWN:
            self.logger.info("Received shutdown message")
            self._shutdown = True
            self._send_response(WorkerResponse(
                msg_type=MessageType.SHUTDOWN,
                seq_no=msg.seq_no,
                correlation_id=msg.correlation_id,
                success=True,
            ))
            return

        start_time = time.time()
        try:
            response = self.handle_message(msg)
        except Exception as e:
            self.logger.exception("Error handling message: %s", e)
            response = WorkerResponse(
                msg_type=MessageType.ERROR,
                seq_no=msg.seq_no,
                correlation_id=msg.correlation_id,
                success=False,
                error=f"{type(e).__name__}: {e}",
            )
        response.processing_time_ms = (time.time() - start_time) * 1000
        self._messages_processed += 1
        self._send_response(response)

    def _send_response(self, response: WorkerResponse) -> None:
        """Send a response to the dispatcher."""
        self._response_queue.put(response.to_dict())

    def _cleanup(self) -> None:
        """
        Clean up resources before shutdown.

        Override in subclass for worker-specific cleanup.
        """
        pass
