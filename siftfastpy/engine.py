"""Adapters for the keypoint detection engine.

An engine works on ``ImageSt`` buffers and hands back null-terminated,
prepend-ordered lists of ``KeypointSt`` records that only the same engine may
release.  It keeps working images between calls until
:meth:`Engine.release_internal_state` is called, and it is not reentrant.
"""

from __future__ import annotations

import ctypes
import dataclasses
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

import cv2
import numpy as np

from ._bindings import (
    ImageSt,
    Keypoint,
    KeypointSt,
    find_library,
    iter_nodes,
    load_library,
    null_keypoint,
)
from .errors import check, check_pointer
from .params import SiftParameters

logger = logging.getLogger(__name__)

# cv2 scales descriptor entries by 512 before saturating to bytes
OPENCV_DESCRIPTOR_SCALE = 512.0


class Engine(ABC):
    @abstractmethod
    def detect(self, image: ImageSt) -> Keypoint:
        """Detect keypoints and compute their descriptors."""

    @abstractmethod
    def detect_frames_only(self, image: ImageSt) -> Keypoint:
        """Detect keypoints without descriptors."""

    @abstractmethod
    def compute_descriptors(self, image: ImageSt, keypoints: Keypoint) -> None:
        """Fill ``descrip`` of every record reachable from *keypoints*, in place."""

    @abstractmethod
    def release_list(self, keypoints: Keypoint) -> None:
        """Free a list returned by :meth:`detect` or :meth:`detect_frames_only`."""

    @abstractmethod
    def release_internal_state(self) -> None:
        """Drop the working images kept from the last call."""

    @abstractmethod
    def release_all_resources(self) -> None: ...

    @abstractmethod
    def get_parameters(self) -> SiftParameters: ...

    @abstractmethod
    def set_parameters(self, params: SiftParameters) -> None: ...


class NativeEngine(Engine):
    """libsiftfast through ctypes."""

    def __init__(self, dll_path: Optional[Union[str, Path]] = None):
        self._lib = load_library(dll_path)

    def detect(self, image: ImageSt) -> Keypoint:
        return self._lib.GetKeypoints(ctypes.byref(image))

    def detect_frames_only(self, image: ImageSt) -> Keypoint:
        return self._lib.GetKeypointFrames(ctypes.byref(image))

    def compute_descriptors(self, image: ImageSt, keypoints: Keypoint) -> None:
        check_pointer(keypoints, "keypoint list")
        self._lib.GetKeypointDescriptors(ctypes.byref(image), keypoints)

    def release_list(self, keypoints: Keypoint) -> None:
        self._lib.FreeKeypoints(keypoints)

    def release_internal_state(self) -> None:
        self._lib.DestroyAllImages()

    def release_all_resources(self) -> None:
        self._lib.DestroyAllResources()

    def get_parameters(self) -> SiftParameters:
        return SiftParameters._from_ctypes(self._lib.GetSiftParameters())

    def set_parameters(self, params: SiftParameters) -> None:
        self._lib.SetSiftParameters(params._to_ctypes())


def _ori_from_angle(angle_deg: float) -> float:
    ori = math.radians(angle_deg)
    if ori > math.pi:
        ori -= 2.0 * math.pi
    return ori


def _angle_from_ori(ori: float) -> float:
    return math.degrees(ori) % 360.0


def _unpack_octave(packed: int) -> tuple[int, float]:
    octave = packed & 255
    if octave >= 128:
        octave -= 256
    scale = 1.0 / (1 << octave) if octave >= 0 else float(1 << -octave)
    return octave, scale


class OpenCVEngine(Engine):
    """Engine stand-in built on ``cv2.SIFT``.

    Records are ctypes structs owned by this object; ``release_list`` is the
    only way they leave its registry.  ``double_image_size`` is kept but has
    no effect, OpenCV always starts from the upsampled octave.
    """

    def __init__(self, params: Optional[SiftParameters] = None):
        if not hasattr(cv2, "SIFT_create"):
            raise ValueError("SIFT not available in this OpenCV build.")
        self._params = dataclasses.replace(params) if params else SiftParameters()
        self._detector = None
        self._gray: Optional[np.ndarray] = None
        self._records: Dict[int, KeypointSt] = {}

    @property
    def live_records(self) -> int:
        return len(self._records)

    def _sift(self):
        if self._detector is None:
            p = self._params
            self._detector = cv2.SIFT_create(
                nOctaveLayers=p.scales,
                contrastThreshold=p.peak_thresh,
                sigma=p.init_sigma,
            )
        return self._detector

    def _load(self, image: ImageSt) -> np.ndarray:
        check_pointer(image.pixels, "image pixels")
        check(image.stride >= image.cols, "stride >= cols")
        flat = np.ctypeslib.as_array(image.pixels, shape=(image.rows * image.stride,))
        view = flat.reshape(image.rows, image.stride)[:, : image.cols]
        self._gray = np.clip(np.rint(view * 255.0), 0, 255).astype(np.uint8)
        return self._gray

    def _new_record(self) -> KeypointSt:
        rec = KeypointSt()
        self._records[ctypes.addressof(rec)] = rec
        return rec

    def _build_list(self, keypoints, descriptors=None) -> Keypoint:
        head = null_keypoint()
        for i, kp in enumerate(keypoints):
            rec = self._new_record()
            rec.col, rec.row = kp.pt
            rec.ori = _ori_from_angle(kp.angle)
            rec.scale = kp.size / 2.0
            rec.imageindex = kp.octave
            rec.fpyramidscale = _unpack_octave(kp.octave)[1]
            if descriptors is not None:
                np.ctypeslib.as_array(rec.descrip)[:] = (
                    descriptors[i] / OPENCV_DESCRIPTOR_SCALE
                )
            rec.next = head
            head = ctypes.pointer(rec)
        return head

    def detect(self, image: ImageSt) -> Keypoint:
        gray = self._load(image)
        kps, desc = self._sift().detectAndCompute(gray, None)
        return self._build_list(kps or (), desc)

    def detect_frames_only(self, image: ImageSt) -> Keypoint:
        gray = self._load(image)
        return self._build_list(self._sift().detect(gray, None) or ())

    def compute_descriptors(self, image: ImageSt, keypoints: Keypoint) -> None:
        check_pointer(keypoints, "keypoint list")
        gray = self._load(image)
        nodes: List[KeypointSt] = list(iter_nodes(keypoints))
        cv_kps = [
            cv2.KeyPoint(
                float(rec.col),
                float(rec.row),
                float(rec.scale) * 2.0,
                _angle_from_ori(rec.ori),
                0.0,
                int(rec.imageindex),
                i,
            )
            for i, rec in enumerate(nodes)
        ]
        out_kps, desc = self._sift().compute(gray, cv_kps)
        out_kps = out_kps or ()
        if desc is None:
            desc = np.zeros((0, 128), np.float32)
        for kp, d in zip(out_kps, desc):
            np.ctypeslib.as_array(nodes[kp.class_id].descrip)[:] = (
                d / OPENCV_DESCRIPTOR_SCALE
            )
        if len(out_kps) < len(nodes):
            logger.warning(
                "descriptors computed for %d of %d keypoints", len(out_kps), len(nodes)
            )

    def release_list(self, keypoints: Keypoint) -> None:
        addrs = [ctypes.addressof(rec) for rec in iter_nodes(keypoints)]
        for addr in addrs:
            check(addr in self._records, "record allocated by this engine")
        for addr in addrs:
            del self._records[addr]

    def release_internal_state(self) -> None:
        self._gray = None

    def release_all_resources(self) -> None:
        self.release_internal_state()
        self._records.clear()
        self._detector = None

    def get_parameters(self) -> SiftParameters:
        return dataclasses.replace(self._params)

    def set_parameters(self, params: SiftParameters) -> None:
        self._params = dataclasses.replace(params)
        self._detector = None


ENGINE_NAMES = ("auto", "native", "opencv")


def create_engine(name: str = "auto", library_path=None) -> Engine:
    if name not in ENGINE_NAMES:
        raise ValueError(f"Unknown engine {name!r}; expected one of {ENGINE_NAMES}")
    if name == "native":
        return NativeEngine(library_path)
    if name == "auto":
        found = find_library(library_path)
        if found is not None:
            logger.info("Using native siftfast engine: %s", found)
            return NativeEngine(found)
        logger.info("siftfast library not found; falling back to the OpenCV engine")
    return OpenCVEngine()
