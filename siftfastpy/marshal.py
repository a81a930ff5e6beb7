"""Conversion between keypoint lists and dense numpy tables.

Forward: a linked ``KeypointSt`` list becomes a frame table plus, for full
detections, a ``(N, 128)`` descriptor table.  Rows follow link order.

Reverse: a 6-column frame table becomes a list of records allocated with
:func:`~siftfastpy.allocator.aligned_malloc`.  Each record is prepended, so
the list runs from the last table row to the first.  Those records belong to
a :class:`LocalKeypointPool` and must never be handed to the engine's
``release_list``.
"""

from __future__ import annotations

import ctypes
import logging
from typing import List

import numpy as np

from ._bindings import (
    DESCRIPTOR_LENGTH,
    RECORD_ALIGNMENT,
    Keypoint,
    KeypointSt,
    address_of,
    iter_nodes,
    null_keypoint,
)
from .allocator import aligned_free, aligned_malloc
from .coercion import to_float32, to_int
from .errors import ShapeError, check

logger = logging.getLogger(__name__)

FRAME_COLUMNS = 4  # col, row, ori, scale
FULL_FRAME_COLUMNS = 6  # ... imageindex, fpyramidscale


def empty_tables() -> tuple[np.ndarray, np.ndarray]:
    return (
        np.zeros((0, FRAME_COLUMNS), np.float32),
        np.zeros((0, DESCRIPTOR_LENGTH), np.float32),
    )


def count_keypoints(head: Keypoint) -> int:
    n = 0
    for _ in iter_nodes(head):
        n += 1
    return n


def keypoints_to_tables(head: Keypoint) -> tuple[np.ndarray, np.ndarray]:
    """``(frames[N, 4], descriptors[N, 128])`` from a list with descriptors."""
    n = count_keypoints(head)
    frames = np.empty((n, FRAME_COLUMNS), np.float32)
    desc = np.empty((n, DESCRIPTOR_LENGTH), np.float32)
    index = 0
    for rec in iter_nodes(head):
        check(index < n, "index < numkeys")
        desc[index] = np.ctypeslib.as_array(rec.descrip)
        frames[index] = (rec.col, rec.row, rec.ori, rec.scale)
        index += 1
    check(index == n, "index == numkeys")
    return frames, desc


def keypoints_to_frames(head: Keypoint) -> np.ndarray:
    """``frames[N, 6]`` including pyramid index and pyramid-relative scale."""
    n = count_keypoints(head)
    frames = np.empty((n, FULL_FRAME_COLUMNS), np.float32)
    index = 0
    for rec in iter_nodes(head):
        check(index < n, "index < numkeys")
        frames[index] = (
            rec.col,
            rec.row,
            rec.ori,
            rec.scale,
            rec.imageindex,
            rec.fpyramidscale,
        )
        index += 1
    check(index == n, "index == numkeys")
    return frames


class LocalKeypointPool:
    """Keypoint records allocated on this side of the boundary.

    Every record is freed with :func:`aligned_free` when the pool closes.
    """

    def __init__(self, alignment: int = RECORD_ALIGNMENT):
        self.alignment = alignment
        self._addresses: List[int] = []

    def __len__(self) -> int:
        return len(self._addresses)

    @property
    def addresses(self) -> tuple[int, ...]:
        return tuple(self._addresses)

    def allocate(self) -> KeypointSt:
        size = ctypes.sizeof(KeypointSt)
        addr = aligned_malloc(size, self.alignment)
        self._addresses.append(addr)
        ctypes.memset(addr, 0, size)
        return KeypointSt.from_address(addr)

    def owns(self, head: Keypoint) -> bool:
        return address_of(head) in self._addresses

    def close(self) -> None:
        addresses, self._addresses = self._addresses, []
        for addr in addresses:
            aligned_free(addr)
        if addresses:
            logger.debug("freed %d local keypoint records", len(addresses))

    def __enter__(self) -> "LocalKeypointPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _frame_rows(frames):
    if isinstance(frames, np.ndarray):
        if frames.ndim != 2 or frames.shape[1] != FULL_FRAME_COLUMNS:
            raise ShapeError(
                f"frames must have shape (N, {FULL_FRAME_COLUMNS}), got {frames.shape}"
            )
        return frames
    rows = list(frames)
    for i, row in enumerate(rows):
        try:
            width = len(row)
        except TypeError:
            raise ShapeError(f"frame {i} is not a sequence") from None
        if width != FULL_FRAME_COLUMNS:
            raise ShapeError(
                f"frame {i} has {width} entries, expected {FULL_FRAME_COLUMNS}"
            )
    return rows


def frames_to_keypoints(frames, pool: LocalKeypointPool) -> Keypoint:
    """Build a linked list from a 6-column frame table.

    Returns the head, i.e. the record of the last row; a null pointer when
    the table is empty.
    """
    head = null_keypoint()
    for row in _frame_rows(frames):
        rec = pool.allocate()
        rec.col = to_float32(row[0])
        rec.row = to_float32(row[1])
        rec.ori = to_float32(row[2])
        rec.scale = to_float32(row[3])
        rec.imageindex = to_int(row[4])
        rec.fpyramidscale = to_float32(row[5])
        rec.next = head
        head = ctypes.pointer(rec)
    return head
