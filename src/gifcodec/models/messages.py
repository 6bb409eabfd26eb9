"""
Message Protocol
================

Request and response records exchanged with the encoder worker.

Requests (caller -> worker):
    {"type": "init", "width": 320, "height": 240, "frame_count": 24,
     "frame_delay_ms": 83.3, "palette_sample": "<base64 RGBA>" | null}
    {"type": "frame", "frame_index": 0, "pixels": "<base64 RGBA>"}
    {"type": "finish"}
    {"type": "abort"}

Responses (worker -> caller):
    {"type": "progress", "percent": 4, "frames_done": 1, "frame_count": 24}
    {"type": "complete", "url": "/gifs/<id>" | null, "size": 12345}
    {"type": "error", "message": "...", "frame_index": 3 | null}

Binary payloads are raw bytes in Python and base64 strings on the wire.
`error` is terminal: nothing follows it.

Example:
    from gifcodec.models.messages import parse_request

    request = parse_request('{"type": "finish"}')
"""

import base64
import binascii
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


def _decode_payload(value: object) -> object:
    """Accept base64 text for binary fields, pass bytes through."""
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}")
    return value


# =============================================================================
# Requests
# =============================================================================

class InitRequest(BaseModel):
    """Start a session with fixed canvas dimensions and timing."""

    type: Literal["init"] = "init"
    width: int = Field(..., ge=1, le=65535, description="Canvas width in pixels")
    height: int = Field(..., ge=1, le=65535, description="Canvas height in pixels")
    frame_count: int = Field(..., ge=1, description="Number of frames that will follow")
    frame_delay_ms: float = Field(..., ge=0, description="Delay between frames (ms)")
    palette_sample: Optional[bytes] = Field(
        default=None,
        description=(
            "RGBA pixels to learn the shared palette from. Defaults to the "
            "first frame; colors absent from the sample map to the nearest "
            "learned color"
        ),
    )

    @field_validator("palette_sample", mode="before")
    @classmethod
    def decode_sample(cls, value: object) -> object:
        return _decode_payload(value)


class FrameRequest(BaseModel):
    """One RGBA frame; frames must arrive in index order."""

    type: Literal["frame"] = "frame"
    frame_index: int = Field(..., ge=0, description="Position of the frame")
    pixels: bytes = Field(..., description="RGBA bytes, width * height * 4")

    @field_validator("pixels", mode="before")
    @classmethod
    def decode_pixels(cls, value: object) -> object:
        return _decode_payload(value)

    def __repr__(self) -> str:
        return f"FrameRequest(frame_index={self.frame_index}, bytes={len(self.pixels)})"


class FinishRequest(BaseModel):
    """Close the animation and produce the file."""

    type: Literal["finish"] = "finish"


class AbortRequest(BaseModel):
    """Cancel the session; no further writes happen."""

    type: Literal["abort"] = "abort"


Request = Annotated[
    Union[InitRequest, FrameRequest, FinishRequest, AbortRequest],
    Field(discriminator="type"),
]


# =============================================================================
# Responses
# =============================================================================

class ProgressResponse(BaseModel):
    """Sent after every encoded frame."""

    type: Literal["progress"] = "progress"
    percent: int = Field(..., ge=0, le=100)
    frames_done: int = Field(..., ge=0)
    frame_count: int = Field(..., ge=1)


class CompleteResponse(BaseModel):
    """
    Sent once the trailer is written.

    The in-process worker fills `data`; the service stores the file and
    replaces it with a download `url` before sending.
    """

    type: Literal["complete"] = "complete"
    url: Optional[str] = Field(default=None, description="Download location")
    size: int = Field(..., ge=0, description="File size in bytes")
    data: Optional[bytes] = Field(default=None, exclude=True)


class ErrorResponse(BaseModel):
    """Terminal failure for the whole session."""

    type: Literal["error"] = "error"
    message: str
    frame_index: Optional[int] = None


Response = Annotated[
    Union[ProgressResponse, CompleteResponse, ErrorResponse],
    Field(discriminator="type"),
]


_request_adapter: TypeAdapter = TypeAdapter(Request)


def parse_request(raw: Union[str, bytes, dict]) -> Union[InitRequest, FrameRequest, FinishRequest, AbortRequest]:
    """
    Validate a raw request (JSON text or dict).

    Raises:
        pydantic.ValidationError: If the message does not match any request
    """
    if isinstance(raw, dict):
        return _request_adapter.validate_python(raw)
    return _request_adapter.validate_json(raw)
