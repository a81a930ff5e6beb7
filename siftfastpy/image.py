from __future__ import annotations

import enum
import logging
from ctypes import POINTER, c_float

import numba
import numpy as np

from ._bindings import ImageSt
from .allocator import aligned_zeros
from .coercion import to_int
from .errors import FormatError, ShapeError, check, check_pointer

logger = logging.getLogger(__name__)

STRIDE_MULTIPLE = 4
BUFFER_ALIGNMENT = 16
# integer pixels are taken to be 8-bit, whatever their dtype
INT_PIXEL_SCALE = np.float32(1.0 / 255.0)


class PixelKind(enum.Enum):
    INTEGER = "integer"
    FLOAT32 = "float32"
    FLOAT64 = "float64"


def padded_stride(width: int) -> int:
    return (width + STRIDE_MULTIPLE - 1) & ~(STRIDE_MULTIPLE - 1)


def pixel_kind(dtype: np.dtype) -> PixelKind:
    dtype = np.dtype(dtype)
    if np.issubdtype(dtype, np.integer):
        return PixelKind.INTEGER
    if dtype.kind == "f" and dtype.itemsize == 4:
        return PixelKind.FLOAT32
    if dtype.kind == "f" and dtype.itemsize == 8:
        return PixelKind.FLOAT64
    raise FormatError(f"array not in correct format (dtype {dtype.name})")


@numba.njit(cache=True)
def _scatter_rows(src, dst, stride, scale):
    height, width = src.shape
    for i in range(height):
        base = i * stride
        for j in range(width):
            dst[base + j] = src[i, j] * scale


def _as_array(source) -> np.ndarray:
    if isinstance(source, np.ndarray):
        return source
    return np.asarray(source)


class Image:
    """Padded single-precision pixel buffer in the layout the engine reads.

    Rows are ``stride`` floats apart, ``stride`` being ``width`` rounded up to
    a multiple of 4.  Columns past ``width`` are padding and stay zero.
    """

    def __init__(self, width, height):
        width = to_int(width)
        height = to_int(height)
        check(width > 0 and height > 0, "width>0&&height>0")
        self._width = width
        self._height = height
        self._stride = padded_stride(width)
        self._buffer = aligned_zeros(height * self._stride, np.float32, BUFFER_ALIGNMENT)

    @classmethod
    def from_array(cls, source) -> "Image":
        arr = _as_array(source)
        if arr.ndim != 2:
            raise ShapeError("array needs 2 dimensions")
        height, width = arr.shape
        if height == 0 or width == 0:
            raise ShapeError(f"array must not be empty, got shape {arr.shape}")
        im = cls(width, height)
        im.set_data(arr)
        return im

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def stride(self) -> int:
        return self._stride

    @property
    def buffer(self) -> np.ndarray:
        """Flat ``height * stride`` float32 buffer, padding included."""
        return self._buffer

    @property
    def pixels(self) -> np.ndarray:
        """``(height, width)`` view of the buffer without padding."""
        return self._buffer.reshape(self._height, self._stride)[:, : self._width]

    def set_data(self, source) -> None:
        """Normalize *source* into the buffer.

        Integer arrays are scaled by 1/255, float32 is copied and float64 is
        narrowed.  Padding columns are left untouched.
        """
        arr = _as_array(source)
        if arr.ndim != 2:
            raise ShapeError("array needs 2 dimensions")
        if arr.shape[0] != self._height:
            raise ShapeError("array rows do not match height")
        if arr.shape[1] != self._width:
            raise ShapeError("array columns do not match width")

        kind = pixel_kind(arr.dtype)
        if not arr.dtype.isnative:
            arr = arr.astype(arr.dtype.newbyteorder("="))
        scale = INT_PIXEL_SCALE if kind is PixelKind.INTEGER else np.float32(1.0)
        _scatter_rows(arr, self._buffer, self._stride, scale)
        logger.debug(
            "normalized %s array %dx%d into stride %d",
            kind.value,
            self._width,
            self._height,
            self._stride,
        )

    SetData = set_data

    def as_struct(self) -> ImageSt:
        """``ImageSt`` pointing at this buffer; valid while ``self`` is alive."""
        check_pointer(self._buffer.ctypes.data, "image buffer")
        return ImageSt(
            rows=self._height,
            cols=self._width,
            pixels=self._buffer.ctypes.data_as(POINTER(c_float)),
            stride=self._stride,
        )

    def __getstate__(self) -> dict:
        return {
            "width": self._width,
            "height": self._height,
            "stride": self._stride,
            "buffer": np.array(self._buffer, copy=True),
        }

    def __setstate__(self, state: dict) -> None:
        width, height = to_int(state["width"]), to_int(state["height"])
        stride = to_int(state["stride"])
        buffer = np.asarray(state["buffer"], dtype=np.float32).ravel()
        check(width > 0 and height > 0, "width>0&&height>0")
        if stride != padded_stride(width):
            raise ShapeError(f"stride {stride} does not match width {width}")
        if buffer.size != height * stride:
            raise ShapeError(
                f"buffer holds {buffer.size} floats, expected {height * stride}"
            )
        self._width, self._height, self._stride = width, height, stride
        self._buffer = aligned_zeros(height * stride, np.float32, BUFFER_ALIGNMENT)
        self._buffer[:] = buffer

    def __repr__(self) -> str:
        return f"Image(width={self._width}, height={self._height}, stride={self._stride})"


def as_image(image_or_array) -> Image:
    if isinstance(image_or_array, Image):
        return image_or_array
    return Image.from_array(image_or_array)
