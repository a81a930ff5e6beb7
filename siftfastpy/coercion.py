from __future__ import annotations

import numpy as np

from .errors import CoercionError

_TEXT = (str, bytes, bytearray)

# range of the C int fields the values end up in
INT_MIN, INT_MAX = -(2**31), 2**31 - 1


def _as_number(value, convert):
    if isinstance(value, _TEXT):
        return None
    try:
        return convert(value)
    except (TypeError, ValueError, OverflowError):
        return None


def is_int_convertible(value) -> bool:
    return _as_number(value, int) is not None


def is_float_convertible(value) -> bool:
    return _as_number(value, float) is not None


def to_int(value) -> int:
    """Truncating conversion, like ``int()`` on any numeric scalar.

    The result must fit a C ``int``.
    """
    out = _as_number(value, int)
    if out is None:
        raise CoercionError(f"cannot convert {type(value).__name__} {value!r} to int")
    if not INT_MIN <= out <= INT_MAX:
        raise CoercionError(f"{value!r} does not fit a C int")
    return out


def to_float64(value) -> np.float64:
    out = _as_number(value, float)
    if out is None:
        raise CoercionError(f"cannot convert {type(value).__name__} {value!r} to float")
    return np.float64(out)


def to_float32(value) -> np.float32:
    return np.float32(to_float64(value))
