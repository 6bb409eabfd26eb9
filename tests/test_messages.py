"""
Message Protocol Tests
======================

Tests for request parsing and response serialization.
"""

import base64
import json

import pytest
from pydantic import ValidationError

from gifcodec.models.messages import (
    AbortRequest,
    CompleteResponse,
    ErrorResponse,
    FinishRequest,
    FrameRequest,
    InitRequest,
    parse_request,
)
from gifcodec.models.state import Progress


class TestRequests:
    """Tests for parse_request."""

    def test_init_from_json(self):
        raw = json.dumps({
            "type": "init",
            "width": 320,
            "height": 240,
            "frame_count": 24,
            "frame_delay_ms": 83.3,
        })
        request = parse_request(raw)

        assert isinstance(request, InitRequest)
        assert request.width == 320
        assert request.palette_sample is None

    def test_frame_pixels_are_base64(self):
        pixels = bytes([255, 0, 0, 255] * 4)
        request = parse_request({
            "type": "frame",
            "frame_index": 0,
            "pixels": base64.b64encode(pixels).decode("ascii"),
        })

        assert isinstance(request, FrameRequest)
        assert request.pixels == pixels
        assert "bytes=16" in repr(request)

    def test_palette_sample_is_base64(self):
        sample = bytes(range(8))
        request = parse_request({
            "type": "init",
            "width": 1,
            "height": 1,
            "frame_count": 1,
            "frame_delay_ms": 0,
            "palette_sample": base64.b64encode(sample).decode("ascii"),
        })

        assert request.palette_sample == sample

    def test_control_requests(self):
        assert isinstance(parse_request('{"type": "finish"}'), FinishRequest)
        assert isinstance(parse_request(b'{"type": "abort"}'), AbortRequest)

    @pytest.mark.parametrize(
        "raw",
        [
            '{"type": "resize"}',
            '{"type": "init", "width": 0, "height": 1, "frame_count": 1, "frame_delay_ms": 0}',
            '{"type": "init", "width": 1, "height": 1, "frame_count": 0, "frame_delay_ms": 0}',
            '{"type": "frame", "frame_index": -1, "pixels": ""}',
            '{"type": "frame", "frame_index": 0, "pixels": "not base64!"}',
            "not json",
        ],
    )
    def test_invalid_requests(self, raw):
        with pytest.raises(ValidationError):
            parse_request(raw)


class TestResponses:
    """Tests for response serialization."""

    def test_complete_excludes_data(self):
        response = CompleteResponse(size=3, data=b"GIF")
        payload = response.model_dump(mode="json")

        assert payload == {"type": "complete", "url": None, "size": 3}

    def test_error_payload(self):
        payload = ErrorResponse(message="boom", frame_index=4).model_dump(mode="json")

        assert payload == {"type": "error", "message": "boom", "frame_index": 4}


class TestProgress:
    """Tests for progress rounding."""

    @pytest.mark.parametrize(
        "done,total,percent",
        [(1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13), (0, 5, 0)],
    )
    def test_percent(self, done, total, percent):
        assert Progress.of(done, total).percent == percent
