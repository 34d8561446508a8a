"""Engine module: routes audio chunks through the worker pool into the views."""

from .spectrogram_engine import (
    BlockAccumulator,
    ChannelPipeline,
    SineSweepSource,
    SpectrogramEngine,
    StreamChunk,
)

__all__ = ['BlockAccumulator', 'ChannelPipeline', 'SineSweepSource', 'SpectrogramEngine', 'StreamChunk']
