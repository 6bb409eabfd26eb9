"""
Frame Data Model
=================

Internal frame representation for the encoding pipeline.

Design Rules:
    - This is the ONLY frame format passed to the codec
    - Pixel data is RGBA, row-major, 4 bytes per pixel
    - Frames are immutable once built; the pipeline releases a frame
      as soon as it has been indexed
"""

from dataclasses import dataclass
from typing import Union

import numpy as np

from gifcodec.errors import CallerContractError


PixelData = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Validated RGBA frame.

    Attributes:
        frame_index: Position of the frame in the animation
        width: Frame width in pixels
        height: Frame height in pixels
        pixels: RGBA bytes, len == width * height * 4
    """

    frame_index: int
    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        if len(self.pixels) == 0:
            raise CallerContractError("Frame has no pixels", self.frame_index)
        if self.width <= 0 or self.height <= 0:
            raise CallerContractError(
                f"Frame dimensions must be positive, got {self.width}x{self.height}",
                self.frame_index,
            )
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise CallerContractError(
                f"Expected {expected} RGBA bytes for {self.width}x{self.height}, "
                f"got {len(self.pixels)}",
                self.frame_index,
            )

    @classmethod
    def from_pixels(
        cls,
        frame_index: int,
        width: int,
        height: int,
        pixels: PixelData,
    ) -> "Frame":
        """Build a frame from any RGBA buffer (bytes or uint8 array)."""
        if isinstance(pixels, np.ndarray):
            pixels = np.ascontiguousarray(pixels, dtype=np.uint8).tobytes()
        return cls(frame_index=frame_index, width=width, height=height, pixels=bytes(pixels))

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def rgb(self) -> np.ndarray:
        """(N, 3) read-only view of the color channels, alpha dropped."""
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(-1, 4)[:, :3]

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return (
            f"Frame(frame_index={self.frame_index}, "
            f"width={self.width}, height={self.height})"
        )
