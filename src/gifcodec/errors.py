"""
Error Taxonomy
==============

Exceptions raised by the codec and the encoding pipeline.

Categories:
    - CallerContractError: the caller broke the API contract (bad dimensions,
      wrong frame count, mis-sized buffers, calls in the wrong state).
    - CodecInvariantError: an internal codec invariant was violated. This is
      a bug, never a recoverable condition.
    - ContainerError: a write would produce a malformed file.

Every terminal error carries the index of the frame that triggered it,
when there is one.
"""

from typing import Optional


class GifCodecError(Exception):
    """Base class for all encoder errors."""

    def __init__(self, message: str, frame_index: Optional[int] = None) -> None:
        self.message = message
        self.frame_index = frame_index
        if frame_index is not None:
            message = f"{message} (frame {frame_index})"
        super().__init__(message)


class CallerContractError(GifCodecError, ValueError):
    """Raised when arguments or call order violate the encoder contract."""
    pass


class CodecInvariantError(GifCodecError):
    """Raised when the compressor or quantizer reaches an impossible state."""
    pass


class ContainerError(GifCodecError):
    """Raised when a container write is out of order or malformed."""
    pass
