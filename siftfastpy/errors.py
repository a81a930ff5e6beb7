"""Failure taxonomy for the binding layer.

Every failure reaches the caller as a :class:`SiftFastError` (a
``RuntimeError``), distinguishable by subclass and by message.
"""

from __future__ import annotations

import ctypes
import functools
import logging
import sys
import traceback

logger = logging.getLogger(__name__)

_PREFIX = "siftfast: "


class SiftFastError(RuntimeError):
    """Base class for all errors raised by siftfastpy."""

    def __init__(self, message: str = "unknown exception"):
        self.message = message
        super().__init__(_PREFIX + message)


class ShapeError(SiftFastError):
    """Wrong dimensionality or mismatched width/height."""


class FormatError(SiftFastError):
    """Unsupported element type."""


class AllocationError(SiftFastError, MemoryError):
    """Aligned allocation failure."""


class NullPointerError(SiftFastError):
    """The engine returned, or was handed, an unexpected null."""


class CoercionError(SiftFastError, TypeError):
    """A scalar could not be converted to the numeric type the engine needs."""


class InvariantViolation(SiftFastError):
    """Internal assertion failure, reported with its origin."""

    def __init__(
        self,
        expr: str,
        filename: str = "",
        line: int = 0,
        function: str = "",
    ):
        self.expr = expr
        self.filename = filename
        self.line = line
        self.function = function
        super().__init__(f"[{filename}:{line}] -> {function}, expr: {expr}")


def check(condition: object, expr: str) -> None:
    """Raise :class:`InvariantViolation` at the caller's location if *condition* is false."""
    if condition:
        return
    frame = sys._getframe(1)
    raise InvariantViolation(
        expr,
        filename=frame.f_code.co_filename,
        line=frame.f_lineno,
        function=frame.f_code.co_name,
    )


def check_pointer(ptr, what: str = "pointer") -> None:
    if not ptr:
        raise NullPointerError(f"invalid {what}")


def _origin(exc: BaseException) -> tuple[str, int, str]:
    tb = traceback.extract_tb(exc.__traceback__)
    if not tb:
        return "", 0, ""
    last = tb[-1]
    return last.filename, last.lineno or 0, last.name


def translate(exc: BaseException) -> SiftFastError | None:
    """Map a stray exception onto the taxonomy, or return None to let it through."""
    if isinstance(exc, SiftFastError):
        return None
    if isinstance(exc, AssertionError):
        filename, line, function = _origin(exc)
        return InvariantViolation(str(exc) or "assertion failed", filename, line, function)
    if isinstance(exc, MemoryError):
        return AllocationError(str(exc) or "out of memory")
    if isinstance(exc, ctypes.ArgumentError):
        return CoercionError(str(exc))
    return None


def translate_failures(func):
    """Decorator applied at the public boundary."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            translated = translate(exc)
            if translated is None:
                raise
            logger.debug("%s failed: %r -> %r", func.__qualname__, exc, translated)
            raise translated from exc

    return wrapper
