"""
Spectrogram worker: runs the spectral analyzer off the render loop.

Handles COMPUTE_SPECTROGRAM requests:

    payload = {sample_buffer, samples_start, samples_length, options}

and answers with

    payload = {window_count, resolved_options, spectrogram_buffer, input_buffer_echo}

The spectrogram array is allocated by the analyzer for every request, and the
input samples are echoed back so the caller gets a buffer it owns again.
"""
from __future__ import annotations

import sys
import time
from typing import Any

import numpy as np

from core.dsp.spectral import SpectrogramOptions, generate_spectrogram
from core.logging.tags import TAG_DSP, TAG_WORKER
from core.process.types import (
    MessageType,
    WorkerMessage,
    WorkerResponse,
    WorkerType,
)
from core.process.workers.base import BaseWorker


class SpectrogramWorker(BaseWorker):
    """Worker for spectrogram analysis requests."""

    def __init__(self, request_queue: Any, response_queue: Any):
        super().__init__(request_queue, response_queue)
        self._windows_computed = 0

    @property
    def worker_type(self) -> WorkerType:
        return WorkerType.SPECTROGRAM

    def handle_message(self, msg: WorkerMessage) -> WorkerResponse:
        if msg.msg_type == MessageType.COMPUTE_SPECTROGRAM:
            return self._handle_compute(msg)
        return WorkerResponse(
            msg_type=MessageType.ERROR,
            seq_no=msg.seq_no,
            correlation_id=msg.correlation_id,
            success=False,
            error=f"Unknown action: {msg.action}",
        )

    def _handle_compute(self, msg: WorkerMessage) -> WorkerResponse:
        payload = msg.payload
        samples = payload.get("sample_buffer")
        if samples is None:
            raise ValueError("compute-spectrogram request has no sample_buffer")

        samples = np.asarray(samples, dtype=np.float32)
        options = payload.get("options")
        if not isinstance(options, SpectrogramOptions):
            options = SpectrogramOptions.from_dict(dict(options or {}))

        start = time.time()
        result = generate_spectrogram(
            samples,
            int(payload.get("samples_start", 0)),
            int(payload.get("samples_length", samples.shape[0])),
            options,
        )
        self._windows_computed += result.window_count

        self.logger.debug(
            "%s %s seq=%d windows=%d scale=%s in %.2fms",
            TAG_WORKER,
            TAG_DSP,
            msg.seq_no,
            result.window_count,
            result.options.scale.value,
            (time.time() - start) * 1000.0,
        )

        return WorkerResponse(
            msg_type=MessageType.SPECTROGRAM_RESULT,
            seq_no=msg.seq_no,
            correlation_id=msg.correlation_id,
            success=True,
            payload={
                "window_count": result.window_count,
                "resolved_options": result.options.to_dict(),
                "spectrogram_buffer": result.spectrogram,
                "input_buffer_echo": samples,
            },
        )

    def _cleanup(self) -> None:
        self.logger.info("Spectrogram stats: %d windows computed", self._windows_computed)


def spectrogram_worker_main(request_queue: Any, response_queue: Any) -> None:
    """Entry point for spectrogram worker processes."""
    try:
        worker = SpectrogramWorker(request_queue, response_queue)
        worker.run()
    except Exception as e:
        sys.stderr.write(f"Spectrogram worker crashed: {e}\n")
        sys.stderr.flush()
        raise
