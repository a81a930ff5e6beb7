from __future__ import annotations

import collections
import ctypes
import dataclasses

import numpy as np
import pytest

from siftfastpy._bindings import KeypointSt, iter_nodes, null_keypoint
from siftfastpy.config import SiftFastConfig
from siftfastpy.engine import Engine
from siftfastpy.params import SiftParameters
from siftfastpy.sift import SiftFast


class FakeEngine(Engine):
    """Recording engine double.

    ``keypoints`` holds 6-tuples (col, row, ori, scale, imageindex,
    fpyramidscale) in detection order; the returned list is prepend-ordered
    like the real engine's, so the last tuple comes out first.
    """

    def __init__(self, keypoints=()):
        self.keypoints = [tuple(k) for k in keypoints]
        self.params = SiftParameters()
        self.records: dict[int, KeypointSt] = {}
        self.calls = collections.Counter()
        self.events: list[str] = []
        self.seen_pixels: list[np.ndarray] = []
        self.described: list[tuple[int, ...]] = []

    def _record(self, name: str) -> None:
        self.calls[name] += 1
        self.events.append(name)

    def _read(self, image) -> None:
        flat = np.ctypeslib.as_array(image.pixels, shape=(image.rows * image.stride,))
        self.seen_pixels.append(
            flat.reshape(image.rows, image.stride)[:, : image.cols].copy()
        )

    def _emit(self, with_descriptors: bool):
        head = null_keypoint()
        for i, (col, row, ori, scale, index, pscale) in enumerate(self.keypoints):
            rec = KeypointSt()
            self.records[ctypes.addressof(rec)] = rec
            rec.col, rec.row, rec.ori, rec.scale = col, row, ori, scale
            rec.imageindex, rec.fpyramidscale = index, pscale
            if with_descriptors:
                np.ctypeslib.as_array(rec.descrip)[:] = i + np.arange(128) / 1000.0
            rec.next = head
            head = ctypes.pointer(rec)
        return head

    def detect(self, image):
        self._record("detect")
        self._read(image)
        return self._emit(True)

    def detect_frames_only(self, image):
        self._record("detect_frames_only")
        self._read(image)
        return self._emit(False)

    def compute_descriptors(self, image, keypoints):
        self._record("compute_descriptors")
        self._read(image)
        addrs = []
        for rec in iter_nodes(keypoints):
            addrs.append(ctypes.addressof(rec))
            np.ctypeslib.as_array(rec.descrip)[:] = rec.col + np.arange(128) / 1000.0
        self.described.append(tuple(addrs))

    def release_list(self, keypoints):
        self._record("release_list")
        for rec in list(iter_nodes(keypoints)):
            del self.records[ctypes.addressof(rec)]

    def release_internal_state(self):
        self._record("release_internal_state")

    def release_all_resources(self):
        self._record("release_all_resources")
        self.records.clear()

    def get_parameters(self):
        self._record("get_parameters")
        return dataclasses.replace(self.params)

    def set_parameters(self, params):
        self._record("set_parameters")
        self.params = dataclasses.replace(params)


KEYPOINTS = [
    (1.5, 2.5, 0.25, 1.6, 0, 1.0),
    (10.0, 3.0, -1.0, 2.0, 1, 0.5),
    (4.25, 7.75, 3.0, 3.2, 2, 0.25),
]


@pytest.fixture
def fake_engine():
    return FakeEngine(KEYPOINTS)


@pytest.fixture
def empty_engine():
    return FakeEngine()


@pytest.fixture
def sift(fake_engine):
    return SiftFast(engine=fake_engine, config=SiftFastConfig())


@pytest.fixture
def opencv_engine():
    cv2 = pytest.importorskip("cv2")
    if not hasattr(cv2, "SIFT_create"):
        pytest.skip("SIFT not available in this OpenCV build")
    from siftfastpy.engine import OpenCVEngine

    return OpenCVEngine()


@pytest.fixture
def blob_image():
    """float64 image with a few Gaussian blobs, enough for SIFT to fire on."""
    h, w = 128, 160
    yy, xx = np.mgrid[0:h, 0:w]
    img = np.zeros((h, w), np.float64)
    for cy, cx, s in [(40, 50, 4.0), (90, 110, 6.0), (30, 120, 3.0), (100, 40, 5.0)]:
        img += np.exp(-((yy - cy) ** 2 + (xx - cx) ** 2) / (2 * s * s))
    return img / img.max()
