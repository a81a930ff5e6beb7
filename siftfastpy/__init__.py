"""
siftfastpy - numpy bindings for the siftfast keypoint detector.

Example
-------
>>> import siftfastpy
>>> frames, descriptors = siftfastpy.detect_keypoints(gray)   # (N, 4), (N, 128)
>>> frames6 = siftfastpy.detect_keypoint_frames(gray)          # (N, 6)
>>> frames, descriptors = siftfastpy.compute_descriptors(gray, frames6)
"""

from __future__ import annotations

import threading
from typing import Optional

from siftfastpy.config import SiftFastConfig
from siftfastpy.engine import Engine, NativeEngine, OpenCVEngine, create_engine
from siftfastpy.errors import (
    AllocationError,
    CoercionError,
    FormatError,
    InvariantViolation,
    NullPointerError,
    ShapeError,
    SiftFastError,
)
from siftfastpy.image import Image
from siftfastpy.params import SiftParameters
from siftfastpy.sift import SiftFast

_default: Optional[SiftFast] = None
_default_lock = threading.Lock()


def get_default() -> SiftFast:
    """The shared :class:`SiftFast` behind the module-level functions."""
    global _default
    with _default_lock:
        if _default is None:
            _default = SiftFast()
        return _default


def set_default_engine(engine: Engine) -> SiftFast:
    global _default
    with _default_lock:
        _default = SiftFast(engine=engine)
        return _default


def detect_keypoints(image):
    return get_default().detect_keypoints(image)


def detect_keypoint_frames(image):
    return get_default().detect_keypoint_frames(image)


def compute_descriptors(image, frames):
    return get_default().compute_descriptors(image, frames)


def get_parameters() -> SiftParameters:
    return get_default().get_parameters()


def set_parameters(params: SiftParameters) -> None:
    get_default().set_parameters(params)


def release_all_resources() -> None:
    get_default().release_all_resources()


# legacy CamelCase API
GetKeypoints = detect_keypoints
GetKeypointFrames = detect_keypoint_frames
GetKeypointDescriptors = compute_descriptors
GetSiftParameters = get_parameters
SetSiftParameters = set_parameters
DestroyAllResources = release_all_resources

__all__ = [
    "AllocationError",
    "CoercionError",
    "DestroyAllResources",
    "Engine",
    "FormatError",
    "GetKeypointDescriptors",
    "GetKeypointFrames",
    "GetKeypoints",
    "GetSiftParameters",
    "Image",
    "InvariantViolation",
    "NativeEngine",
    "NullPointerError",
    "OpenCVEngine",
    "SetSiftParameters",
    "ShapeError",
    "SiftFast",
    "SiftFastConfig",
    "SiftFastError",
    "SiftParameters",
    "compute_descriptors",
    "create_engine",
    "detect_keypoint_frames",
    "detect_keypoints",
    "get_default",
    "get_parameters",
    "release_all_resources",
    "set_default_engine",
    "set_parameters",
]
