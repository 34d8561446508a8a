"""Partial texture upload planning for the spectrogram ring buffer.

The texture mirrors the buffer's ``(width, height)`` storage, so a run of ring
positions is a contiguous block of texture rows. The buffer counts every column
it has been given; the difference from the count seen at the previous upload
is how many of the newest ring positions need refreshing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class UploadRegion:
    first_column: int
    column_count: int


@dataclass(frozen=True)
class UploadPlan:
    full: bool = False
    regions: Tuple[UploadRegion, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.full and not self.regions

    @property
    def column_count(self) -> int:
        return sum(region.column_count for region in self.regions)


FULL_UPLOAD = UploadPlan(full=True)


def plan_spectrogram_upload(
    last_written: Optional[int],
    written: int,
    start: int,
    length: int,
    width: int,
    force: bool = False,
) -> UploadPlan:
    """Work out which ring positions changed since the previous upload.

    ``last_written`` and ``written`` are the buffer's ``columns_written`` at
    the previous and the current upload. Columns are only ever appended after
    the newest one, so the ``k = written - last_written`` changed positions end
    at the newest column ``(start + length) mod width``. In the common cases:

    - start moved forward: ``[last_start, start)``
    - start wrapped past the end: ``[0, start)`` and ``[last_start, width)``
    - start unchanged but length grew: ``[last_length, length)``

    Forced and first-time uploads are full, and so is ``k >= width``: every
    position was overwritten, possibly landing back on the same start.
    """
    if force or last_written is None:
        return FULL_UPLOAD

    count = written - last_written
    if count == 0:
        return UploadPlan()
    if count < 0 or count >= width:
        return FULL_UPLOAD

    first = (start + length - count) % width
    end = first + count
    if end <= width:
        return UploadPlan(regions=(UploadRegion(first, count),))
    return UploadPlan(regions=(
        UploadRegion(0, end - width),
        UploadRegion(first, width - first),
    ))



def apply_upload_plan(plan: UploadPlan, source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Apply ``plan`` to a CPU mirror of the texture and return it.

    A full plan copies ``source`` into a fresh array (shapes may differ, as
    with a texture reallocation).
    """
    if plan.full:
        return np.array(source, copy=True)
    for region in plan.regions:
        end = region.first_column + region.column_count
        target[region.first_column:end] = source[region.first_column:end]
    return target
