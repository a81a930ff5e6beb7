from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ._bindings import LIBRARY_ENV, RECORD_ALIGNMENT
from .allocator import MAX_ALIGNMENT
from .engine import ENGINE_NAMES

ENGINE_ENV = "SIFTFASTPY_ENGINE"
ALIGNMENT_ENV = "SIFTFASTPY_RECORD_ALIGNMENT"


@dataclass
class SiftFastConfig:
    engine: str = "auto"  # auto | native | opencv
    library_path: Optional[str] = None
    record_alignment: int = RECORD_ALIGNMENT

    def __post_init__(self) -> None:
        if self.engine not in ENGINE_NAMES:
            raise ValueError(
                f"engine must be one of {ENGINE_NAMES}, got {self.engine!r}"
            )
        a = self.record_alignment
        if not (0 < a <= MAX_ALIGNMENT) or a & (a - 1):
            raise ValueError(f"record_alignment must be a power of two, got {a}")

    @classmethod
    def from_env(cls, environ=None) -> "SiftFastConfig":
        env = os.environ if environ is None else environ
        return cls(
            engine=env.get(ENGINE_ENV, "auto").strip().lower(),
            library_path=env.get(LIBRARY_ENV) or None,
            record_alignment=int(env.get(ALIGNMENT_ENV, RECORD_ALIGNMENT)),
        )
