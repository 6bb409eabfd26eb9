"""
Command-Line Encoder
====================

Encode a sequence of still images into an animated GIF.

Images are decoded with OpenCV and must all share one size. The shared
palette is learned from every input frame by default, so colors that only
appear late in the animation keep their own entries. --palette-frames K
limits training to K evenly spaced frames (1 = first frame only).

Usage:
    gifcodec-encode frames/*.png -o out.gif --delay 100
    gifcodec-encode a.png b.png c.png -o out.gif --sample-factor 5 --palette-frames 3
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np

from gifcodec.config import settings, setup_logging
from gifcodec.errors import CallerContractError, GifCodecError
from gifcodec.models.state import Progress
from gifcodec.pipeline.session import EncoderSession


logger = logging.getLogger(__name__)


class ImageLoadError(Exception):
    """Raised when an input image cannot be decoded."""
    pass


def load_rgba(path: Path) -> np.ndarray:
    """
    Read an image file as an (H, W, 4) RGBA uint8 array.

    Raises:
        ImageLoadError: If OpenCV cannot decode the file
    """
    bgr = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if bgr is None:
        raise ImageLoadError(f"Failed to decode image: {path}")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)


def palette_frame_positions(frame_count: int, palette_frames: int) -> List[int]:
    """Evenly spaced frame positions used to learn the palette."""
    palette_frames = max(1, min(palette_frames, frame_count))
    if palette_frames == 1:
        return [0]
    return sorted({
        round(i * (frame_count - 1) / (palette_frames - 1))
        for i in range(palette_frames)
    })


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gifcodec-encode",
        description="Encode still images into an animated GIF",
    )
    parser.add_argument("images", nargs="+", type=Path, help="Input frames, in order")
    parser.add_argument("-o", "--output", type=Path, required=True, help="Output GIF path")
    parser.add_argument("--delay", type=float, default=100.0, help="Frame delay in ms (default: 100)")
    parser.add_argument(
        "--loop",
        type=int,
        default=settings.encoder.loop_count,
        help="Repeat count, 0 = forever (default: %(default)s)",
    )
    parser.add_argument(
        "--sample-factor",
        type=int,
        default=settings.encoder.sample_factor,
        help="Quantizer sampling factor 1..30 (default: %(default)s)",
    )
    parser.add_argument(
        "--palette-frames",
        type=int,
        default=None,
        help="Evenly spaced frames to learn the shared palette from (default: all)",
    )
    return parser


def encode_files(
    images: Sequence[Path],
    output: Path,
    delay_ms: float = 100.0,
    loop_count: int = 0,
    sample_factor: int = 10,
    palette_frames: Optional[int] = None,
) -> int:
    """
    Encode image files into a GIF on disk.

    The palette is trained on `palette_frames` evenly spaced inputs, or on
    all of them when None.

    Returns:
        Size of the written file in bytes
    """
    first = load_rgba(images[0])
    height, width = first.shape[:2]

    if palette_frames is None:
        palette_frames = len(images)

    palette_sample = None
    if palette_frames > 1:
        positions = palette_frame_positions(len(images), palette_frames)
        samples = [first if i == 0 else load_rgba(images[i]) for i in positions]
        palette_sample = np.concatenate([s.reshape(-1, 4) for s in samples])
        logger.info(f"Learning palette from frames {positions}")

    def report(progress: Progress) -> None:
        logger.info(f"Encoded {progress.frames_done}/{progress.frame_count} ({progress.percent}%)")

    session = EncoderSession(
        sample_factor=sample_factor,
        loop_count=loop_count,
        on_progress=report,
    )
    session.init(width, height, len(images), delay_ms, palette_sample=palette_sample)

    for index, path in enumerate(images):
        rgba = first if index == 0 else load_rgba(path)
        if rgba.shape[:2] != (height, width):
            session.abort()
            raise CallerContractError(
                f"{path} is {rgba.shape[1]}x{rgba.shape[0]}, expected {width}x{height}",
                index,
            )
        session.submit_frame(index, rgba)
        first = None

    data = session.finish()
    output.write_bytes(data)
    return len(data)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings)

    try:
        size = encode_files(
            args.images,
            args.output,
            delay_ms=args.delay,
            loop_count=args.loop,
            sample_factor=args.sample_factor,
            palette_frames=args.palette_frames,
        )
    except (GifCodecError, ImageLoadError) as e:
        logger.error(f"Encoding failed: {e}")
        return 1

    logger.info(f"Wrote {args.output} ({size} bytes)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
