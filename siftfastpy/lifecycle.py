"""Sequencing of engine calls.

Each public call runs inside :func:`engine_request`, which holds the global
engine lock and, on the way out, releases engine-allocated lists through the
engine, frees locally allocated records, and finally releases the engine's
internal images, exactly once, whether or not the call failed.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import Iterator, List

from ._bindings import RECORD_ALIGNMENT, Keypoint
from .engine import Engine
from .errors import check
from .marshal import LocalKeypointPool

logger = logging.getLogger(__name__)

# the engine keeps process-wide working buffers and is not reentrant
ENGINE_LOCK = threading.RLock()


class EngineRequest:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._engine_lists: List[Keypoint] = []
        self._pools: List[LocalKeypointPool] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def local_pool(self, alignment: int = RECORD_ALIGNMENT) -> LocalKeypointPool:
        pool = LocalKeypointPool(alignment)
        self._pools.append(pool)
        return pool

    def engine_list(self, head: Keypoint) -> Keypoint:
        """Register a list the engine allocated; it is released on close."""
        check(
            not any(pool.owns(head) for pool in self._pools),
            "engine list is not locally allocated",
        )
        if head:
            self._engine_lists.append(head)
        return head

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with contextlib.ExitStack() as stack:
            # callbacks run in reverse: lists, then pools, then engine images
            stack.callback(self.engine.release_internal_state)
            for pool in self._pools:
                stack.callback(pool.close)
            for head in self._engine_lists:
                stack.callback(self.engine.release_list, head)
        logger.debug(
            "request closed: %d engine lists, %d local pools released",
            len(self._engine_lists),
            len(self._pools),
        )


@contextlib.contextmanager
def engine_request(engine: Engine) -> Iterator[EngineRequest]:
    with ENGINE_LOCK:
        request = EngineRequest(engine)
        try:
            yield request
        finally:
            request.close()
