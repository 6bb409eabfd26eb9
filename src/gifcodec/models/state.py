"""
Session State Models
====================

Lifecycle of one encoding session.

Transitions:
    UNINITIALIZED -> READY      init()
    READY -> ENCODING           first frame
    ENCODING -> FINISHED        finish() after the last frame
    any non-terminal -> ABORTED abort() or a terminal error

FINISHED and ABORTED are terminal.
"""

from enum import Enum

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """
    Encoding session states.

    Attributes:
        UNINITIALIZED: Created, no dimensions yet
        READY: Initialized, waiting for the first frame
        ENCODING: Accepting frames in order
        FINISHED: Trailer written, output available
        ABORTED: Cancelled or failed, output discarded
    """

    UNINITIALIZED = "UNINITIALIZED"
    READY = "READY"
    ENCODING = "ENCODING"
    FINISHED = "FINISHED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.FINISHED, SessionState.ABORTED)


class Progress(BaseModel):
    """
    Encoding progress after a frame completes.

    Attributes:
        frames_done: Frames written so far
        frame_count: Frames expected in total
        percent: round(frames_done / frame_count * 100), half up
    """

    frames_done: int = Field(..., ge=0, description="Frames written so far")
    frame_count: int = Field(..., ge=1, description="Frames expected in total")
    percent: int = Field(..., ge=0, le=100, description="Completion percentage")

    @classmethod
    def of(cls, frames_done: int, frame_count: int) -> "Progress":
        percent = (200 * frames_done + frame_count) // (2 * frame_count)
        return cls(frames_done=frames_done, frame_count=frame_count, percent=percent)
