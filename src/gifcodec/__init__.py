"""
gifcodec
========

Animated GIF encoder with neural-network palette quantization.

This package turns a sequence of RGBA frames into a GIF89a byte stream:
a 256-color palette is learned once per animation, every frame is mapped
onto it and LZW-compressed, and the result is framed into the container
format.

Components:
    - codec.quantizer: Neural-network palette learning and nearest-color lookup
    - codec.lzw: Variable-width LZW compression with sub-block framing
    - codec.container: Ordered GIF89a section writer
    - pipeline: Encoding session state machine and async worker
    - main: FastAPI/WebSocket service
    - cli: Command-line encoder

Example:
    from gifcodec.pipeline import EncoderSession

    session = EncoderSession(sample_factor=10)
    session.init(width=2, height=2, frame_count=1, delay_ms=100)
    session.submit_frame(0, bytes([255, 0, 0, 255] * 4))
    data = session.finish()
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
