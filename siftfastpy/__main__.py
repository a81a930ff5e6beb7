"""Detect keypoints in image files.

    python -m siftfastpy data/oxford_affine/graf/img1.png --save-npz out/
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from .config import SiftFastConfig
from .engine import ENGINE_NAMES
from .errors import SiftFastError
from .io import read_gray_bt709
from .sift import SiftFast


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="siftfastpy", description="Detect SIFT keypoints in images."
    )
    parser.add_argument("images", nargs="+", help="Image files to process")
    parser.add_argument(
        "--frames-only",
        action="store_true",
        help="Skip descriptors and print 6-column frames counts",
    )
    parser.add_argument(
        "--engine",
        choices=ENGINE_NAMES,
        default=None,
        help="Engine to use (default: $SIFTFASTPY_ENGINE or auto)",
    )
    parser.add_argument(
        "--save-npz", default=None, help="Directory for <image>.npz outputs"
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )

    config = SiftFastConfig.from_env()
    if args.engine is not None:
        config = SiftFastConfig(
            engine=args.engine,
            library_path=config.library_path,
            record_alignment=config.record_alignment,
        )
    sift = SiftFast(config=config)

    out_dir = Path(args.save_npz) if args.save_npz else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)

    status = 0
    for name in args.images:
        path = Path(name)
        try:
            gray = read_gray_bt709(path)
            if args.frames_only:
                arrays = {"frames": sift.detect_keypoint_frames(gray)}
            else:
                frames, desc = sift.detect_keypoints(gray)
                arrays = {"frames": frames, "descriptors": desc}
        except (OSError, SiftFastError) as exc:
            logging.error("%s: %s", path, exc)
            status = 1
            continue
        print(f"{path.name}: {len(arrays['frames'])} keypoints")
        if out_dir is not None:
            np.savez(out_dir / f"{path.stem}.npz", **arrays)

    sift.release_all_resources()
    return status


if __name__ == "__main__":
    sys.exit(main())
