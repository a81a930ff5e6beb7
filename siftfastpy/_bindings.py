"""
Low-level ctypes bindings for the libsiftfast shared library.

This module mirrors the structs and function signatures of ``siftfast.h``.
Users should prefer the high-level API in :mod:`siftfastpy.sift`.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import os
from ctypes import POINTER, Structure, c_float, c_int
from pathlib import Path

DESCRIPTOR_LENGTH = 128
RECORD_ALIGNMENT = 16

# -- ctypes struct mirrors of siftfast.h --------------------------------------


class KeypointSt(Structure):
    """Mirror of the C ``KeypointSt`` struct (one node of the keypoint list)."""


KeypointSt._fields_ = [
    ("row", c_float),
    ("col", c_float),
    ("scale", c_float),
    ("ori", c_float),
    ("descrip", c_float * DESCRIPTOR_LENGTH),
    ("next", POINTER(KeypointSt)),
    ("imageindex", c_int),
    ("fpyramidscale", c_float),
]

Keypoint = POINTER(KeypointSt)


class ImageSt(Structure):
    """Mirror of the C ``ImageSt`` struct."""

    _fields_ = [
        ("rows", c_int),
        ("cols", c_int),
        ("pixels", POINTER(c_float)),
        ("stride", c_int),
    ]


class SiftParametersSt(Structure):
    """Mirror of the C ``SiftParameters`` struct."""

    _fields_ = [
        ("DoubleImSize", c_int),
        ("Scales", c_int),
        ("InitSigma", c_float),
        ("PeakThresh", c_float),
    ]


def null_keypoint() -> Keypoint:
    return Keypoint()


def address_of(node: Keypoint) -> int:
    return ctypes.cast(node, ctypes.c_void_p).value or 0


def iter_nodes(head: Keypoint):
    """Yield every ``KeypointSt`` reachable from *head*, in link order."""
    node = head
    while node:
        rec = node.contents
        yield rec
        node = rec.next


# -- Library loading ----------------------------------------------------------

LIBRARY_ENV = "SIFTFAST_LIBRARY"


def find_library(path: str | Path | None = None) -> Path | None:
    """Locate libsiftfast without loading it."""
    if path is None:
        path = os.environ.get(LIBRARY_ENV)
    if path:
        p = Path(path)
        return p if p.exists() else None
    name = ctypes.util.find_library("siftfast")
    return Path(name) if name else None


def load_library(dll_path: str | Path | None = None) -> ctypes.CDLL:
    """Load libsiftfast and declare all function signatures.

    Parameters
    ----------
    dll_path : str | Path | None
        Explicit path to ``libsiftfast.so``.  When *None*, ``$SIFTFAST_LIBRARY``
        and then the system library search path are used.

    Returns
    -------
    ctypes.CDLL
        The loaded library handle with all argtypes/restypes configured.
    """
    found = find_library(dll_path)
    if found is None:
        raise FileNotFoundError(
            "Could not locate the siftfast shared library.  "
            f"Set {LIBRARY_ENV} or pass the path explicitly."
        )
    lib = ctypes.CDLL(str(found))

    # Detection
    lib.GetKeypoints.restype = Keypoint
    lib.GetKeypoints.argtypes = [POINTER(ImageSt)]

    lib.GetKeypointFrames.restype = Keypoint
    lib.GetKeypointFrames.argtypes = [POINTER(ImageSt)]

    lib.GetKeypointDescriptors.restype = None
    lib.GetKeypointDescriptors.argtypes = [POINTER(ImageSt), Keypoint]

    # Cleanup
    lib.FreeKeypoints.restype = None
    lib.FreeKeypoints.argtypes = [Keypoint]

    lib.DestroyAllImages.restype = None
    lib.DestroyAllImages.argtypes = []

    lib.DestroyAllResources.restype = None
    lib.DestroyAllResources.argtypes = []

    # Parameters
    lib.GetSiftParameters.restype = SiftParametersSt
    lib.GetSiftParameters.argtypes = []

    lib.SetSiftParameters.restype = None
    lib.SetSiftParameters.argtypes = [SiftParametersSt]

    return lib
