"""
Models
======

Pydantic records for the encoder message protocol and session lifecycle.
"""

from gifcodec.models.messages import (
    AbortRequest,
    CompleteResponse,
    ErrorResponse,
    FinishRequest,
    FrameRequest,
    InitRequest,
    ProgressResponse,
    parse_request,
)
from gifcodec.models.state import Progress, SessionState


__all__ = [
    "AbortRequest",
    "CompleteResponse",
    "ErrorResponse",
    "FinishRequest",
    "FrameRequest",
    "InitRequest",
    "Progress",
    "ProgressResponse",
    "SessionState",
    "parse_request",
]
