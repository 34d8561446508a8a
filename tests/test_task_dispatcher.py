"""
Tests for TaskDispatcher.

Most tests use the thread backend with a scripted worker so ordering and
failure cases can be controlled; one smoke test runs a real worker process.

Tests cover:
- Spectrogram requests resolved through the pool
- FIFO start order when every slot is busy
- Per-request error isolation
- Shutdown failing queued requests and letting in-flight ones finish
- Restart of a slot whose worker exits mid-request
"""
import threading

import numpy as np
import pytest

from core.dsp.spectral import Scale, SpectrogramConfigError, SpectrogramOptions
from core.process.dispatcher import (
    BACKEND_THREAD,
    SpectrogramTaskResult,
    TaskDispatcher,
    WorkerTaskError,
    default_pool_size,
)
from core.process.types import MessageType, WorkerResponse, WorkerType
from core.process.workers.base import BaseWorker

TIMEOUT = 10.0


class ScriptedWorker(BaseWorker):
    """Worker whose behaviour is driven by the request payload."""

    @property
    def worker_type(self):
        return WorkerType.SPECTROGRAM

    def process(self, msg_data):
        if msg_data.get("payload", {}).get("die"):
            # Exit without answering, like a crashed process.
            self._shutdown = True
            return
        super().process(msg_data)

    def handle_message(self, msg):
        payload = msg.payload
        log = payload.get("log")
        if log is not None:
            log.append(payload["tag"])
        gate = payload.get("gate")
        if gate is not None:
            gate.wait(TIMEOUT)
        if payload.get("fail"):
            raise RuntimeError(f"request {payload['tag']} failed")
        return WorkerResponse(
            msg_type=MessageType.SPECTROGRAM_RESULT,
            seq_no=msg.seq_no,
            correlation_id=msg.correlation_id,
            success=True,
            payload={"tag": payload["tag"]},
        )


def scripted_worker_main(request_queue, response_queue):
    ScriptedWorker(request_queue, response_queue).run()


@pytest.fixture
def scripted():
    """Single-slot thread dispatcher running ScriptedWorker."""
    dispatcher = TaskDispatcher(pool_size=1, worker_target=scripted_worker_main, backend=BACKEND_THREAD)
    dispatcher.start()
    yield dispatcher
    dispatcher.shutdown()


def _submit(dispatcher, tag, **extra):
    payload = {"tag": tag}
    payload.update(extra)
    return dispatcher.submit(MessageType.COMPUTE_SPECTROGRAM, payload)


class TestConstruction:
    """Pool sizing and lifecycle guards."""

    def test_default_pool_size(self):
        assert default_pool_size() >= 1
        assert TaskDispatcher(backend=BACKEND_THREAD).pool_size == default_pool_size()

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValueError):
            TaskDispatcher(pool_size=1, backend="fibers")

    def test_rejects_negative_pool_size(self):
        with pytest.raises(ValueError):
            TaskDispatcher(pool_size=-2, backend=BACKEND_THREAD)

    def test_submit_before_start(self):
        dispatcher = TaskDispatcher(pool_size=1, backend=BACKEND_THREAD)
        with pytest.raises(RuntimeError):
            _submit(dispatcher, 0)

    def test_submit_after_shutdown(self):
        dispatcher = TaskDispatcher(pool_size=1, backend=BACKEND_THREAD)
        dispatcher.start()
        dispatcher.shutdown()
        with pytest.raises(RuntimeError):
            _submit(dispatcher, 0)

    def test_unknown_action_rejected_synchronously(self, scripted):
        with pytest.raises(ValueError):
            scripted.submit("transcode", {})

    def test_context_manager(self):
        with TaskDispatcher(pool_size=1, worker_target=scripted_worker_main, backend=BACKEND_THREAD) as dispatcher:
            assert _submit(dispatcher, "x").result(TIMEOUT) == {"tag": "x"}


class TestScheduling:
    """FIFO behaviour and error isolation."""

    def test_queued_requests_start_in_submission_order(self, scripted):
        gate = threading.Event()
        log = []
        first = _submit(scripted, 0, gate=gate, log=log)
        rest = [_submit(scripted, i, log=log) for i in range(1, 5)]

        assert scripted.busy_count == 1
        assert scripted.pending_count == 4
        gate.set()

        assert [f.result(TIMEOUT)["tag"] for f in [first] + rest] == [0, 1, 2, 3, 4]
        assert log == [0, 1, 2, 3, 4]
        assert scripted.pending_count == 0

    def test_futures_cannot_be_cancelled(self, scripted):
        gate = threading.Event()
        _submit(scripted, 0, gate=gate)
        queued = _submit(scripted, 1)
        assert queued.cancel() is False
        gate.set()
        assert queued.result(TIMEOUT) == {"tag": 1}

    def test_failure_does_not_affect_other_requests(self, scripted):
        ok_before = _submit(scripted, "a")
        failing = _submit(scripted, "b", fail=True)
        ok_after = _submit(scripted, "c")

        assert ok_before.result(TIMEOUT) == {"tag": "a"}
        with pytest.raises(WorkerTaskError) as excinfo:
            failing.result(TIMEOUT)
        assert excinfo.value.error_type == "RuntimeError"
        assert "request b failed" in str(excinfo.value)
        assert ok_after.result(TIMEOUT) == {"tag": "c"}

        stats = scripted.stats()
        assert stats["submitted"] == 3
        assert stats["completed"] == 2
        assert stats["failed"] == 1

    def test_slots_run_in_parallel(self):
        gate = threading.Event()
        log = []
        with TaskDispatcher(pool_size=2, worker_target=scripted_worker_main, backend=BACKEND_THREAD) as dispatcher:
            a = _submit(dispatcher, "a", gate=gate, log=log)
            b = _submit(dispatcher, "b", gate=gate, log=log)
            assert dispatcher.busy_count == 2
            assert dispatcher.pending_count == 0
            gate.set()
            assert a.result(TIMEOUT)["tag"] == "a"
            assert b.result(TIMEOUT)["tag"] == "b"


class TestShutdown:
    """Shutdown semantics."""

    def test_pending_fail_in_flight_finish(self):
        dispatcher = TaskDispatcher(pool_size=1, worker_target=scripted_worker_main, backend=BACKEND_THREAD)
        dispatcher.start()
        gate = threading.Event()
        running = _submit(dispatcher, "running", gate=gate)
        queued = _submit(dispatcher, "queued")

        stopper = threading.Thread(target=dispatcher.shutdown)
        stopper.start()

        with pytest.raises(RuntimeError, match="shut down"):
            queued.result(TIMEOUT)

        gate.set()
        stopper.join(TIMEOUT)
        assert not stopper.is_alive()
        assert running.result(TIMEOUT) == {"tag": "running"}

    def test_shutdown_is_idempotent(self):
        dispatcher = TaskDispatcher(pool_size=1, backend=BACKEND_THREAD)
        dispatcher.start()
        dispatcher.shutdown()
        dispatcher.shutdown()


class TestWorkerDeath:
    """A worker exiting mid-request."""

    def test_in_flight_rejected_and_slot_restarted(self, scripted):
        dying = _submit(scripted, "dying", die=True)
        with pytest.raises(WorkerTaskError, match="exited"):
            dying.result(TIMEOUT)

        assert _submit(scripted, "after").result(TIMEOUT) == {"tag": "after"}


class TestComputeSpectrogram:
    """compute_spectrogram through real spectrogram workers."""

    def test_thread_backend(self, thread_dispatcher):
        samples = np.zeros(2048, dtype=np.float32)
        samples[1000] = 1.0
        options = SpectrogramOptions(sample_rate=48000, window_size=1024, window_step_size=256, scale=Scale.LINEAR)
        future = thread_dispatcher.compute_spectrogram(samples, 0, 2048, options)

        assert not samples.flags.writeable
        result = future.result(TIMEOUT)
        assert isinstance(result, SpectrogramTaskResult)
        assert result.window_count == 5
        assert result.spectrogram.shape == (5, 512)
        assert result.options.max_frequency_hz == pytest.approx(48000 * 1022 / 2048)
        assert result.input_buffer.flags.writeable
        assert np.array_equal(result.input_buffer, samples)

    def test_invalid_options_raise_before_submitting(self, thread_dispatcher):
        samples = np.zeros(1024, dtype=np.float32)
        options = SpectrogramOptions(sample_rate=48000, window_size=1024, window_step_size=300)
        with pytest.raises(SpectrogramConfigError, match="evenly divide"):
            thread_dispatcher.compute_spectrogram(samples, 0, 1024, options)
        assert samples.flags.writeable
        assert thread_dispatcher.stats()["submitted"] == 0

    def test_bad_sample_rate_raises(self, thread_dispatcher):
        options = SpectrogramOptions(sample_rate=0)
        with pytest.raises(SpectrogramConfigError):
            thread_dispatcher.compute_spectrogram(np.zeros(4096, dtype=np.float32), 0, 4096, options)

    def test_worker_rejects_invalid_options(self, thread_dispatcher):
        options = SpectrogramOptions(sample_rate=48000, window_size=1024, window_step_size=300)
        future = thread_dispatcher.submit(
            MessageType.COMPUTE_SPECTROGRAM,
            {
                "sample_buffer": np.zeros(1024, dtype=np.float32),
                "samples_start": 0,
                "samples_length": 1024,
                "options": options.to_dict(),
            },
        )
        with pytest.raises(WorkerTaskError) as excinfo:
            future.result(TIMEOUT)
        assert excinfo.value.error_type == "SpectrogramConfigError"


    def test_process_backend_smoke(self):
        samples = np.random.default_rng(3).standard_normal(4096).astype(np.float32)
        options = SpectrogramOptions(sample_rate=44100, window_size=1024, window_step_size=512, scale=Scale.MEL, scale_size=128)
        with TaskDispatcher(pool_size=1) as dispatcher:
            result = dispatcher.compute_spectrogram(samples, 0, 4096, options).result(60.0)
        assert result.window_count == 7
        assert result.spectrogram.shape == (7, 128)
        assert np.array_equal(result.input_buffer, samples)
