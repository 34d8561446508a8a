"""
Spectrogram engine - connects audio chunks, the worker pool and the views.

Per channel, a ChannelPipeline owns the CircularColumnBuffer and forwards
chunks to the TaskDispatcher. Results are applied to the buffer on the UI
thread, strictly in the order the chunks were submitted for that channel;
different channels run independently.

The engine also reproduces the capture-side batching a live input needs:
fixed-size sample blocks are accumulated until a whole analysis window is
available, then merged into one chunk per channel. While a batch is being
analysed new blocks keep accumulating, so a slow pool lowers the update rate
instead of building a backlog.
"""
from __future__ import annotations

import math
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import numpy as np
from PySide6.QtCore import QObject, Signal

from core.dsp.circular_buffer import CircularColumnBuffer
from core.dsp.spectral import Scale, SpectrogramConfigError, SpectrogramOptions
from core.logging.logger import get_logger, is_perf_metrics_enabled
from core.logging.tags import TAG_ENGINE, TAG_PERF
from core.process.dispatcher import TaskDispatcher
from core.settings.settings_manager import SettingsManager
from core.threading.ui_invoker import call_directly

logger = get_logger(__name__)

Invoker = Callable[..., None]


@dataclass
class StreamChunk:
    """Samples for one channel; ownership of ``samples`` passes to the pipeline."""
    samples: np.ndarray
    start: int
    length: int
    sample_rate: float
    is_start: bool = False
    is_end: bool = False


def _resolved_future(value: Any = None) -> Future:
    future: Future = Future()
    future.set_running_or_notify_cancel()
    future.set_result(value)
    return future


class ChannelPipeline:
    """One channel: buffer, optional view, and ordered result application.

    ``view`` is anything with ``mark_dirty()``, ``request_full_upload()`` and
    ``update_parameters(**partial)`` (normally a SpectrogramGLWidget).
    """

    def __init__(
        self,
        index: int,
        dispatcher: TaskDispatcher,
        buffer: CircularColumnBuffer,
        window_size: int,
        window_step_size: int,
        invoker: Invoker = call_directly,
        view: Any = None,
    ):
        self.index = index
        self.buffer = buffer
        self.view = view
        self._dispatcher = dispatcher
        self._window_size = int(window_size)
        self._window_step_size = int(window_step_size)
        self._invoke = invoker
        self._lock = threading.Lock()
        self._tail: Future = _resolved_future()
        self._view_sample_rate: Optional[float] = None
        self._chunks_applied = 0

    @property
    def chunks_applied(self) -> int:
        return self._chunks_applied

    def attach_view(self, view: Any) -> None:
        self.view = view
        self._view_sample_rate = None

    def submit(self, chunk: StreamChunk) -> Future:
        """Analyse ``chunk`` and append its columns to the buffer.

        Returns a Future resolving to the echoed sample buffer once the
        columns are in the buffer. A step that does not divide the window
        raises SpectrogramConfigError right away; other unusable options fail
        the returned Future with it.
        """
        options = SpectrogramOptions(
            sample_rate=chunk.sample_rate,
            is_start=chunk.is_start,
            is_end=chunk.is_end,
            window_size=self._window_size,
            window_step_size=self._window_step_size,
            scale=Scale.LINEAR,
            scale_size=self.buffer.height,
        )
        if self._window_size % self._window_step_size != 0:
            raise SpectrogramConfigError(
                f"window_size {self._window_size} is not a multiple of window_step_size {self._window_step_size}"
            )
        self._sync_view_parameters(chunk.sample_rate)

        result: Future = Future()
        result.set_running_or_notify_cancel()
        with self._lock:
            previous = self._tail
            self._tail = result

        def _dispatch(_previous: Future) -> None:
            try:
                task = self._dispatcher.compute_spectrogram(chunk.samples, chunk.start, chunk.length, options)
            except Exception as e:
                logger.error(f"{TAG_ENGINE} channel %d dispatch failed: %s", self.index, e)
                result.set_exception(e)
                return
            task.add_done_callback(_on_task_done)

        def _on_task_done(task: Future) -> None:
            error = task.exception()
            if error is not None:
                logger.warning(f"{TAG_ENGINE} channel %d analysis failed: %s", self.index, error)
                result.set_exception(error)
                return
            self._invoke(self._apply, task.result(), result)

        # Chained on the previous chunk so results land in submission order.
        previous.add_done_callback(_dispatch)
        return result

    def _apply(self, task_result: Any, result: Future) -> None:
        try:
            if task_result.window_count > 0:
                self.buffer.enqueue(task_result.spectrogram)
                if self.view is not None:
                    self.view.mark_dirty()
            self._chunks_applied += 1
        except Exception as e:
            logger.exception(f"{TAG_ENGINE} channel %d failed to apply result: %s", self.index, e)
            result.set_exception(e)
            return
        result.set_result(task_result.input_buffer)

    def _sync_view_parameters(self, sample_rate: float) -> None:
        if self.view is None or self._view_sample_rate == sample_rate:
            return
        self.view.update_parameters(window_size=self._window_size, sample_rate=sample_rate)
        self._view_sample_rate = sample_rate

    def clear(self) -> None:
        """Drop every column and force the view to re-upload."""
        self.buffer.clear()
        if self.view is not None:
            self.view.request_full_upload()

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted chunk has settled (tests, shutdown)."""
        with self._lock:
            tail = self._tail
        try:
            tail.result(timeout=timeout)
        except Exception:
            logger.debug(f"{TAG_ENGINE} channel %d last chunk failed", self.index, exc_info=True)


class BlockAccumulator:
    """Merges step-sized sample blocks into analysis chunks, per channel.

    A chunk is produced once ``window_size / window_step_size`` blocks are
    available. Afterwards the newest ``window_size / window_step_size - 1``
    blocks are kept so the next chunk's first window overlaps this one's last.
    """

    def __init__(self, channels: int, window_size: int, window_step_size: int):
        if window_size % window_step_size != 0:
            raise SpectrogramConfigError(
                f"window_size {window_size} is not a multiple of window_step_size {window_step_size}"
            )
        self.channels = int(channels)
        self.window_size = int(window_size)
        self.window_step_size = int(window_step_size)
        self._blocks_per_window = self.window_size // self.window_step_size
        self._blocks: List[List[np.ndarray]] = [[] for _ in range(self.channels)]
        self._sample_rate: Optional[float] = None
        self._is_start = True

    def add_blocks(self, blocks: Sequence[np.ndarray], sample_rate: float) -> None:
        """Append one block per channel. Missing channels get silence."""
        for i in range(self.channels):
            if i < len(blocks):
                block = np.asarray(blocks[i], dtype=np.float32)
                if block.shape[0] != self.window_step_size:
                    raise ValueError(
                        f"Expected blocks of {self.window_step_size} samples, got {block.shape[0]}"
                    )
                self._blocks[i].append(block.copy())
            else:
                self._blocks[i].append(np.zeros(self.window_step_size, dtype=np.float32))
        self._sample_rate = float(sample_rate)

    @property
    def ready(self) -> bool:
        return all(len(blocks) >= self._blocks_per_window for blocks in self._blocks)

    def take_chunks(self) -> List[StreamChunk]:
        """Merge the pending blocks into one chunk per channel ([] if not ready)."""
        if not self.ready:
            return []
        chunks = []
        for i, blocks in enumerate(self._blocks):
            merged = np.concatenate(blocks)
            chunks.append(StreamChunk(
                samples=merged,
                start=0,
                length=merged.shape[0],
                sample_rate=self._sample_rate,
                is_start=self._is_start,
            ))
            del blocks[: len(blocks) - self._blocks_per_window + 1]
        self._is_start = False
        return chunks

    def reset(self) -> None:
        self._blocks = [[] for _ in range(self.channels)]
        self._is_start = True


class SpectrogramEngine(QObject):
    """
    Owns one ChannelPipeline per channel and routes chunks to them.

    Signals:
    - error_occurred: analysis of a batch failed (message)
    """

    error_occurred = Signal(str)

    def __init__(
        self,
        dispatcher: TaskDispatcher,
        settings: SettingsManager,
        invoker: Invoker = call_directly,
    ):
        super().__init__()
        self._dispatcher = dispatcher
        self._invoke = invoker

        self.window_size = settings.get_int('spectrogram.window_size')
        self.window_step_size = settings.get_int('spectrogram.window_step_size')
        channels = settings.get_int('spectrogram.channels')
        buffer_width = settings.get_int('spectrogram.buffer_width')
        if channels <= 0:
            raise SpectrogramConfigError(f"Channel count must be positive, got {channels}")
        if self.window_size <= 0 or self.window_step_size <= 0:
            raise SpectrogramConfigError(
                f"Window sizes must be positive, got {self.window_size}/{self.window_step_size}"
            )

        self.pipelines: List[ChannelPipeline] = [
            ChannelPipeline(
                index=i,
                dispatcher=dispatcher,
                buffer=CircularColumnBuffer(buffer_width, self.window_size // 2),
                window_size=self.window_size,
                window_step_size=self.window_step_size,
                invoker=invoker,
            )
            for i in range(channels)
        ]
        self._accumulator = BlockAccumulator(channels, self.window_size, self.window_step_size)
        self._batch_in_flight = False
        self._batches = 0

        logger.info(
            f"{TAG_ENGINE} %d channels, window=%d step=%d, buffer %dx%d",
            channels,
            self.window_size,
            self.window_step_size,
            buffer_width,
            self.window_size // 2,
        )

    @property
    def channel_count(self) -> int:
        return len(self.pipelines)

    @property
    def batch_in_flight(self) -> bool:
        return self._batch_in_flight

    def attach_view(self, channel: int, view: Any) -> None:
        self.pipelines[channel].attach_view(view)

    def push(self, chunks: Sequence[StreamChunk]) -> List[Future]:
        """Submit one chunk per channel (extra chunks are an error)."""
        if len(chunks) > len(self.pipelines):
            raise ValueError(f"Got {len(chunks)} chunks for {len(self.pipelines)} channels")
        return [pipeline.submit(chunk) for pipeline, chunk in zip(self.pipelines, chunks)]

    def feed(self, blocks: Sequence[np.ndarray], sample_rate: float) -> bool:
        """Accumulate one block per channel; start a batch when possible.

        Returns True if a batch was started.
        """
        self._accumulator.add_blocks(blocks, sample_rate)
        if self._batch_in_flight or not self._accumulator.ready:
            return False

        futures = self.push(self._accumulator.take_chunks())
        self._batch_in_flight = True
        self._batches += 1
        remaining = [len(futures)]
        lock = threading.Lock()

        def _on_done(future: Future) -> None:
            error = future.exception()
            if error is not None:
                self._invoke(self.error_occurred.emit, str(error))
            with lock:
                remaining[0] -= 1
                last = remaining[0] == 0
            if last:
                self._invoke(self._finish_batch)

        for future in futures:
            future.add_done_callback(_on_done)
        return True

    def _finish_batch(self) -> None:
        self._batch_in_flight = False
        if is_perf_metrics_enabled() and self._batches % 100 == 0:
            logger.debug(f"{TAG_PERF} {TAG_ENGINE} %d batches, pool pending=%d", self._batches, self._dispatcher.pending_count)

    def clear(self) -> None:
        """Reset every channel's buffer and force a full re-upload."""
        for pipeline in self.pipelines:
            pipeline.clear()
        logger.info(f"{TAG_ENGINE} Spectrogram cleared")

    def update_render_parameters(self, **partial: Any) -> None:
        for pipeline in self.pipelines:
            if pipeline.view is not None:
                pipeline.view.update_parameters(**partial)

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        for pipeline in self.pipelines:
            pipeline.wait_idle(timeout)

    def shutdown(self) -> None:
        """Stop feeding; the dispatcher's owner shuts the pool down."""
        self._accumulator.reset()
        logger.info(f"{TAG_ENGINE} Engine stopped after %d batches", self._batches)


class SineSweepSource:
    """Demo signal: logarithmic sine sweeps delivered in fixed-size blocks.

    Channel 0 sweeps up, channel 1 sweeps down; a little noise keeps the
    background from being perfectly black.
    """

    def __init__(
        self,
        sample_rate: float = 48000.0,
        block_size: int = 1024,
        channels: int = 2,
        low_hz: float = 50.0,
        high_hz: float = 12000.0,
        sweep_seconds: float = 8.0,
        noise_level: float = 0.01,
        seed: Optional[int] = None,
    ):
        self.sample_rate = float(sample_rate)
        self.block_size = int(block_size)
        self.channels = int(channels)
        self.low_hz = float(low_hz)
        self.high_hz = float(high_hz)
        self.sweep_seconds = float(sweep_seconds)
        self.noise_level = float(noise_level)
        self._rng = np.random.default_rng(seed)
        self._position = 0
        self._phases = np.zeros(self.channels, dtype=np.float64)

    @property
    def block_interval_ms(self) -> float:
        return 1000.0 * self.block_size / self.sample_rate

    def _frequencies(self, t: np.ndarray, channel: int) -> np.ndarray:
        u = (t % self.sweep_seconds) / self.sweep_seconds
        if channel % 2 == 1:
            u = 1.0 - u
        return self.low_hz * (self.high_hz / self.low_hz) ** u

    def next_blocks(self) -> List[np.ndarray]:
        """The next ``block_size`` samples for every channel."""
        t = (self._position + np.arange(self.block_size)) / self.sample_rate
        blocks = []
        for ch in range(self.channels):
            freq = self._frequencies(t, ch)
            phase = self._phases[ch] + 2.0 * math.pi * np.cumsum(freq) / self.sample_rate
            self._phases[ch] = phase[-1] % (2.0 * math.pi)
            signal = 0.5 * np.sin(phase) + self.noise_level * self._rng.standard_normal(self.block_size)
            blocks.append(signal.astype(np.float32))
        self._position += self.block_size
        return blocks
