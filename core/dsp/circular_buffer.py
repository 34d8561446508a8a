"""
Fixed-capacity ring buffer of spectrogram columns.

Storage is a numpy array shaped ``(width, height)``: row ``x`` holds the column
at ring position ``x``. The renderer mirrors this array into a texture with the
same layout, so a contiguous span of ring positions is a contiguous block of
memory and can be uploaded with a single sub-image call.

Concurrency: the buffer has exactly one writer (the consumer applying analysis
results) and one reader (the renderer). Both run on the UI thread; nothing
here takes a lock. ``resize_width()`` and ``clear()`` must not interleave with
a renderer read.
"""
from __future__ import annotations

import numpy as np


class CircularColumnBuffer:
    """Rolling window of the newest ``width`` columns of ``height`` values.

    Valid ring positions are exactly ``[start, start + length) mod width``;
    everything else is stale and must not be displayed.

    ``columns_written`` counts every column ever enqueued and ``generation``
    changes whenever the storage is replaced (clear, resize), so a reader can
    tell exactly what was written since it last looked.
    """

    def __init__(self, width: int, height: int, dtype=np.float32):
        if width <= 0 or height <= 0:
            raise ValueError(f"Buffer dimensions must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.dtype = np.dtype(dtype)
        self.start = 0
        self.length = 0
        self.data = np.zeros((self.width, self.height), dtype=self.dtype)
        self.columns_written = 0
        self.generation = 0

    def __repr__(self) -> str:
        return (
            f"CircularColumnBuffer(width={self.width}, height={self.height}, "
            f"start={self.start}, length={self.length})"
        )

    @property
    def is_empty(self) -> bool:
        return self.length == 0

    def valid_indices(self) -> np.ndarray:
        """Ring positions holding valid columns, oldest first."""
        return (self.start + np.arange(self.length)) % self.width

    def columns(self) -> np.ndarray:
        """Copy of the valid columns in chronological order, shape ``(length, height)``."""
        return self.data[self.valid_indices()].copy()

    def enqueue(self, columns) -> int:
        """Append columns after the newest one, evicting the oldest on overflow.

        ``columns`` is either ``(k, height)`` or a flat array of ``k * height``
        values. Returns ``k``.
        """
        block = np.asarray(columns, dtype=self.dtype)
        if block.ndim == 1:
            if block.size % self.height != 0:
                raise ValueError(
                    f"Flat column data of size {block.size} is not a multiple of height {self.height}"
                )
            block = block.reshape(-1, self.height)
        elif block.ndim != 2 or block.shape[1] != self.height:
            raise ValueError(f"Expected columns shaped (k, {self.height}), got {block.shape}")

        count = block.shape[0]
        if count == 0:
            return 0

        # Columns older than the newest `width` would be overwritten anyway.
        skipped = max(0, count - self.width)
        positions = (self.start + self.length + skipped + np.arange(count - skipped)) % self.width
        self.data[positions] = block[skipped:]
        self.columns_written += count

        self.length += count
        if self.length > self.width:
            self.start = (self.start + self.length - self.width) % self.width
            self.length = self.width
        return count

    def resize_width(self, width: int) -> None:
        """Change capacity, keeping the newest ``min(length, width)`` columns.

        Kept columns are moved to positions ``0..n-1`` in chronological order
        and ``start`` resets to 0.
        """
        width = int(width)
        if width <= 0:
            raise ValueError(f"Buffer width must be positive, got {width}")
        if width == self.width:
            return

        kept = min(self.length, width)
        new_data = np.zeros((width, self.height), dtype=self.dtype)
        if kept:
            newest = (self.start + self.length - kept + np.arange(kept)) % self.width
            new_data[:kept] = self.data[newest]

        self.data = new_data
        self.width = width
        self.length = kept
        self.start = 0
        self.generation += 1

    def clear(self) -> None:
        """Drop every column."""
        self.data = np.zeros((self.width, self.height), dtype=self.dtype)
        self.start = 0
        self.length = 0
        self.generation += 1
