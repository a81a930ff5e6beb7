"""Aligned allocation for keypoint records and pixel buffers.

Records built on the Python side must sit at the byte alignment the engine's
SSE code assumes.  ``aligned_malloc`` over-allocates from the C heap and keeps
the applied offset in the four bytes just before the returned address, so
``aligned_free`` can recover the original block.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import sys

import numpy as np

from .errors import AllocationError, check

logger = logging.getLogger(__name__)

MAX_ALIGNMENT = 0xFFFFFFFF
_HEADER = ctypes.sizeof(ctypes.c_uint32)


def _load_libc() -> ctypes.CDLL:
    if sys.platform == "win32":
        libc = ctypes.cdll.msvcrt
    else:
        name = ctypes.util.find_library("c")
        libc = ctypes.CDLL(name) if name else ctypes.CDLL(None)
    libc.malloc.restype = ctypes.c_void_p
    libc.malloc.argtypes = [ctypes.c_size_t]
    libc.free.restype = None
    libc.free.argtypes = [ctypes.c_void_p]
    return libc


_libc = _load_libc()


def aligned_malloc(size: int, alignment: int) -> int:
    """Allocate *size* bytes whose address is a multiple of *alignment*.

    Returns the address as an int.  Raises :class:`AllocationError` when the
    C heap is exhausted.
    """
    check(0 < alignment <= MAX_ALIGNMENT, "0 < alignment <= 0xffffffff")
    check(size >= 0, "size >= 0")
    total = size + alignment + _HEADER
    raw = _libc.malloc(total)
    if not raw:
        raise AllocationError(f"aligned_malloc out of memory allocating {total} bytes")
    # smallest offset >= header that lands on the boundary
    offset = _HEADER + (-(raw + _HEADER) % alignment)
    addr = raw + offset
    ctypes.c_uint32.from_address(addr - _HEADER).value = offset
    return addr


def aligned_free(addr: int | None) -> None:
    if not addr:
        return
    offset = ctypes.c_uint32.from_address(addr - _HEADER).value
    _libc.free(addr - offset)


def aligned_zeros(count: int, dtype=np.float32, alignment: int = 16) -> np.ndarray:
    """Zeroed 1-D array of *count* elements whose data pointer is *alignment*-aligned."""
    dtype = np.dtype(dtype)
    nbytes = count * dtype.itemsize
    raw = np.zeros(nbytes + alignment, dtype=np.uint8)
    off = -raw.ctypes.data % alignment
    return raw[off : off + nbytes].view(dtype)
