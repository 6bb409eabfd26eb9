"""
Pipeline Module
===============

Encoding orchestration:
    - Frame: Validated RGBA frame
    - EncoderSession: Synchronous init/submit_frame/finish/abort state machine
    - EncoderWorker: Async actor running a session behind a message queue

Example:
    from gifcodec.pipeline import EncoderWorker

    worker = EncoderWorker(sample_factor=10)
    task = asyncio.create_task(worker.run())
"""

from gifcodec.pipeline.frame import Frame
from gifcodec.pipeline.session import EncoderSession
from gifcodec.pipeline.worker import EncoderWorker


__all__ = [
    "EncoderSession",
    "EncoderWorker",
    "Frame",
]
