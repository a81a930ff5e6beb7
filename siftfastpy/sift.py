"""
High-level interface: numpy arrays in, keypoint tables out.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .config import SiftFastConfig
from .engine import Engine, create_engine
from .errors import CoercionError, translate_failures
from .image import as_image
from .lifecycle import ENGINE_LOCK, engine_request
from .marshal import (
    empty_tables,
    frames_to_keypoints,
    keypoints_to_frames,
    keypoints_to_tables,
)
from .params import SiftParameters

logger = logging.getLogger(__name__)


class SiftFast:
    """Keypoint detection through an :class:`~siftfastpy.engine.Engine`.

    Parameters
    ----------
    engine : Engine, optional
        Engine to drive.  Built from *config* when omitted.
    config : SiftFastConfig, optional
        Defaults to :meth:`SiftFastConfig.from_env`.

    Every ``image`` argument is either an :class:`~siftfastpy.image.Image`
    or a 2-D integer, float32 or float64 array.

    Example
    -------
    >>> sift = SiftFast()
    >>> frames, descriptors = sift.detect_keypoints(gray)
    >>> frames.shape[1], descriptors.shape[1]
    (4, 128)
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        config: Optional[SiftFastConfig] = None,
    ):
        self.config = config if config is not None else SiftFastConfig.from_env()
        if engine is None:
            engine = create_engine(self.config.engine, self.config.library_path)
        self.engine = engine

    @translate_failures
    def detect_keypoints(self, image) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(frames[N, 4], descriptors[N, 128])``.

        Frame columns are ``col, row, orientation, scale``.
        """
        with engine_request(self.engine) as request:
            im = as_image(image)
            st = im.as_struct()
            head = request.engine_list(self.engine.detect(st))
            frames, desc = keypoints_to_tables(head)
        logger.debug("detect_keypoints: %d keypoints", len(frames))
        return frames, desc

    @translate_failures
    def detect_keypoint_frames(self, image) -> np.ndarray:
        """Return ``frames[N, 6]``: ``col, row, orientation, scale, pyramid
        index, pyramid-relative scale``.  Pass these to
        :meth:`compute_descriptors`.
        """
        with engine_request(self.engine) as request:
            im = as_image(image)
            st = im.as_struct()
            head = request.engine_list(self.engine.detect_frames_only(st))
            frames = keypoints_to_frames(head)
        logger.debug("detect_keypoint_frames: %d keypoints", len(frames))
        return frames

    @translate_failures
    def compute_descriptors(self, image, frames) -> tuple[np.ndarray, np.ndarray]:
        """Describe caller-supplied frames.

        *frames* is a ``(K, 6)`` table as returned by
        :meth:`detect_keypoint_frames`.  The result rows come back in reverse
        order: row ``i`` of the input is row ``K - 1 - i`` of the output.
        """
        with engine_request(self.engine) as request:
            im = as_image(image)
            pool = request.local_pool(self.config.record_alignment)
            head = frames_to_keypoints(frames, pool)
            if not head:
                return empty_tables()
            st = im.as_struct()
            self.engine.compute_descriptors(st, head)
            frames_out, desc = keypoints_to_tables(head)
        logger.debug("compute_descriptors: %d keypoints", len(frames_out))
        return frames_out, desc

    @translate_failures
    def get_parameters(self) -> SiftParameters:
        with ENGINE_LOCK:
            return self.engine.get_parameters()

    @translate_failures
    def set_parameters(self, params: SiftParameters) -> None:
        if not isinstance(params, SiftParameters):
            raise CoercionError(
                f"expected SiftParameters, got {type(params).__name__}"
            )
        with ENGINE_LOCK:
            self.engine.set_parameters(params)

    @translate_failures
    def release_all_resources(self) -> None:
        with ENGINE_LOCK:
            self.engine.release_all_resources()
