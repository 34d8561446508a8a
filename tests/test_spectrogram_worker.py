"""
Tests for the worker message types and SpectrogramWorker.

Tests cover:
- Message schema serialization
- compute-spectrogram requests handled in-process
- Error responses for unknown actions and failing requests
- Shutdown handling
"""
import numpy as np
import pytest

from core.dsp.spectral import Scale, SpectrogramOptions
from core.process.types import (
    MessageType,
    WorkerMessage,
    WorkerResponse,
    WorkerState,
    WorkerType,
)
from core.process.workers.spectrogram_worker import SpectrogramWorker


class MockQueue:
    """Mock queue for testing without multiprocessing."""

    def __init__(self):
        self._items = []

    def put(self, item):
        self._items.append(item)

    def get(self, timeout=None):
        return self._items.pop(0)

    def drain(self):
        items, self._items = self._items, []
        return items


@pytest.fixture
def worker():
    """Create a SpectrogramWorker with mock queues."""
    req_queue = MockQueue()
    resp_queue = MockQueue()
    w = SpectrogramWorker(req_queue, resp_queue)
    return w, req_queue, resp_queue


def _request(action, payload=None, seq_no=1):
    return WorkerMessage(
        msg_type=action,
        seq_no=seq_no,
        correlation_id=f"req-{seq_no}",
        payload=payload or {},
        worker_type=WorkerType.SPECTROGRAM,
    ).to_dict()


def _compute_payload(samples, **options):
    opts = dict(sample_rate=48000, window_size=1024, window_step_size=256)
    opts.update(options)
    return {
        "sample_buffer": samples,
        "samples_start": 0,
        "samples_length": samples.shape[0],
        "options": SpectrogramOptions(**opts).to_dict(),
    }


class TestMessageTypes:
    """Tests for the message enums and dataclasses."""

    def test_worker_states_exist(self):
        states = [s.name for s in WorkerState]
        for name in ("STOPPED", "STARTING", "RUNNING", "STOPPING", "ERROR", "RESTARTING"):
            assert name in states

    def test_action_names(self):
        assert MessageType.COMPUTE_SPECTROGRAM.value == "compute-spectrogram"
        assert MessageType.SHUTDOWN.value == "shutdown"

    def test_message_serialization(self):
        msg = WorkerMessage(
            msg_type=MessageType.COMPUTE_SPECTROGRAM,
            seq_no=7,
            correlation_id="abc",
            payload={"samples_start": 3},
            worker_type=WorkerType.SPECTROGRAM,
        )
        data = msg.to_dict()
        assert data["action"] == "compute-spectrogram"
        restored = WorkerMessage.from_dict(data)
        assert restored.msg_type == MessageType.COMPUTE_SPECTROGRAM
        assert restored.seq_no == 7
        assert restored.payload == {"samples_start": 3}
        assert restored.worker_type == WorkerType.SPECTROGRAM

    def test_response_serialization(self):
        response = WorkerResponse(
            msg_type=MessageType.ERROR,
            seq_no=2,
            correlation_id="xyz",
            success=False,
            error="ValueError: boom",
        )
        restored = WorkerResponse.from_dict(response.to_dict())
        assert restored.success is False
        assert restored.error == "ValueError: boom"
        assert restored.payload == {}


class TestSpectrogramWorker:
    """Tests for request handling."""

    def test_compute_response(self, worker):
        w, _, resp_queue = worker
        samples = np.ones(2048, dtype=np.float32)
        w.process(_request(MessageType.COMPUTE_SPECTROGRAM, _compute_payload(samples)))

        [data] = resp_queue.drain()
        response = WorkerResponse.from_dict(data)
        assert response.success
        assert response.msg_type == MessageType.SPECTROGRAM_RESULT
        assert response.correlation_id == "req-1"
        payload = response.payload
        assert payload["window_count"] == 5
        assert payload["spectrogram_buffer"].shape == (5, 512)
        assert payload["resolved_options"]["scale_size"] == 512
        assert payload["input_buffer_echo"] is not None
        assert np.array_equal(payload["input_buffer_echo"], samples)

    def test_resolved_options_echoed(self, worker):
        w, _, resp_queue = worker
        samples = np.zeros(1024, dtype=np.float32)
        payload = _compute_payload(samples, scale=Scale.MEL, scale_size=64)
        w.process(_request(MessageType.COMPUTE_SPECTROGRAM, payload))
        response = WorkerResponse.from_dict(resp_queue.drain()[0])
        assert response.payload["resolved_options"]["scale"] == "mel"
        assert response.payload["spectrogram_buffer"].shape == (1, 64)

    def test_invalid_options_become_error_response(self, worker):
        w, _, resp_queue = worker
        samples = np.zeros(1024, dtype=np.float32)
        w.process(_request(MessageType.COMPUTE_SPECTROGRAM, _compute_payload(samples, window_step_size=300)))
        response = WorkerResponse.from_dict(resp_queue.drain()[0])
        assert response.success is False
        assert response.error.startswith("SpectrogramConfigError")
        assert response.correlation_id == "req-1"

    def test_missing_samples_become_error_response(self, worker):
        w, _, resp_queue = worker
        w.process(_request(MessageType.COMPUTE_SPECTROGRAM, {"options": {"sample_rate": 48000}}))
        response = WorkerResponse.from_dict(resp_queue.drain()[0])
        assert response.success is False
        assert "sample_buffer" in response.error

    def test_unknown_action(self, worker):
        w, _, resp_queue = worker
        w.process({"action": "transcode", "seq_no": 4, "correlation_id": "req-4"})
        response = WorkerResponse.from_dict(resp_queue.drain()[0])
        assert response.success is False
        assert "Unknown action" in response.error
        assert response.correlation_id == "req-4"

    def test_one_response_per_request(self, worker):
        w, _, resp_queue = worker
        samples = np.zeros(1024, dtype=np.float32)
        for seq in range(1, 4):
            w.process(_request(MessageType.COMPUTE_SPECTROGRAM, _compute_payload(samples), seq_no=seq))
        responses = [WorkerResponse.from_dict(d) for d in resp_queue.drain()]
        assert [r.seq_no for r in responses] == [1, 2, 3]

    def test_run_stops_on_shutdown(self, worker):
        w, req_queue, resp_queue = worker
        req_queue.put(_request(MessageType.SHUTDOWN))
        w.run()
        [data] = resp_queue.drain()
        assert WorkerResponse.from_dict(data).msg_type == MessageType.SHUTDOWN
