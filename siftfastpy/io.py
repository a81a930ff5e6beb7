from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

W709_RGB = np.array(
    [0.212639005871510, 0.715168678767756, 0.072192315360734], dtype=np.float32
)


def read_gray_bt709(path: str | Path) -> np.ndarray:
    """Read *path* as float32 luminance in [0, 1]."""
    with Image.open(path) as im:
        img = np.asarray(im.convert("RGB")).astype(np.float32) / 255.0
    return img @ W709_RGB
