"""
Encoder Worker
==============

Single-threaded actor that owns one EncoderSession.

Callers talk to the worker only through messages:
    - send() queues a request (init, frame, finish) in arrival order
    - receive() returns the next response (progress, complete, error)
    - abort() cancels out of band, without waiting behind queued frames

The codec runs on a dedicated one-thread executor, so the event loop never
blocks on quantization or compression, and frames are processed strictly
in the order they were sent.

Design Rules:
    - While the worker runs, requests are never dropped or reordered;
      send() waits when the queue is full
    - Abort is checked at the top of every loop iteration. A frame already
      being encoded finishes; no frame is ever half-written
    - The first error is terminal: one `error` response, then the worker stops
    - After abort there is no `complete` response
    - Once the worker has stopped, send() drops requests instead of queueing

Palette:
    The shared palette comes from the init request's `palette_sample`, or
    from the first frame when none is sent. Colors absent from those pixels
    collapse onto the nearest learned color in every later frame.

Example:
    worker = EncoderWorker(sample_factor=10)
    task = asyncio.create_task(worker.run())

    await worker.send(InitRequest(width=64, height=64, frame_count=2, frame_delay_ms=100))
    await worker.send(FrameRequest(frame_index=0, pixels=frame0))
    await worker.send(FrameRequest(frame_index=1, pixels=frame1))
    await worker.send(FinishRequest())

    while True:
        response = await worker.receive()
        if response.type != "progress":
            break
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

from gifcodec.errors import GifCodecError
from gifcodec.models.messages import (
    AbortRequest,
    CompleteResponse,
    ErrorResponse,
    FinishRequest,
    FrameRequest,
    InitRequest,
    ProgressResponse,
)
from gifcodec.models.state import SessionState
from gifcodec.pipeline.session import EncoderSession


logger = logging.getLogger(__name__)


WorkerRequest = Union[InitRequest, FrameRequest, FinishRequest, AbortRequest]
WorkerResponse = Union[ProgressResponse, CompleteResponse, ErrorResponse]


class EncoderWorker:
    """
    Message-driven wrapper around an EncoderSession.

    Attributes:
        session: The owned session (read it only after run() returns)
        requests_handled: Requests processed so far
    """

    def __init__(
        self,
        sample_factor: int = 10,
        loop_count: int = 0,
        max_queue_size: int = 64,
    ) -> None:
        """
        Initialize the worker.

        Args:
            sample_factor: Quantizer sampling factor
            loop_count: Animation repeat count (0 = forever)
            max_queue_size: Requests allowed to wait before send() blocks
        """
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")

        self.session = EncoderSession(sample_factor=sample_factor, loop_count=loop_count)
        self.requests_handled = 0

        self._requests: asyncio.Queue[WorkerRequest] = asyncio.Queue(maxsize=max_queue_size)
        self._responses: asyncio.Queue[WorkerResponse] = asyncio.Queue()
        self._abort_requested = False
        self._running = False
        self._stopped = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gif-encoder")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def abort_requested(self) -> bool:
        return self._abort_requested

    async def send(self, request: WorkerRequest) -> None:
        """
        Queue a request for the worker.

        An AbortRequest is handled immediately via abort(). Requests sent
        after the worker stopped are dropped, so a caller that keeps
        streaming after an error never blocks on a full queue.
        """
        if isinstance(request, AbortRequest):
            self.abort()
            return
        if self._stopped:
            logger.debug(f"Worker stopped, dropping {type(request).__name__}")
            return
        await self._requests.put(request)

    def abort(self) -> None:
        """Request cancellation; observed before the next request is handled."""
        if self._abort_requested:
            return
        self._abort_requested = True
        logger.info("Abort requested")

        # Wake the loop if it is idle
        try:
            self._requests.put_nowait(AbortRequest())
        except asyncio.QueueFull:
            pass

    async def receive(self, timeout: Optional[float] = None) -> Optional[WorkerResponse]:
        """
        Get the next response.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next response, or None if timeout occurred.
        """
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._responses.get(), timeout=timeout)
            return await self._responses.get()
        except asyncio.TimeoutError:
            return None

    async def run(self) -> SessionState:
        """
        Process requests until finish, abort or a terminal error.

        Returns:
            Final session state
        """
        self._running = True
        loop = asyncio.get_running_loop()
        logger.info("Encoder worker started")

        try:
            while True:
                request = await self._requests.get()

                if self._abort_requested or isinstance(request, AbortRequest):
                    self._stop_for_abort()
                    break

                try:
                    done = await self._handle(loop, request)
                except GifCodecError as e:
                    await self._report_error(e.message, e.frame_index)
                    break
                except MemoryError as e:
                    await self._report_error(f"Out of memory: {e}", getattr(request, "frame_index", None))
                    break
                except Exception as e:
                    logger.exception(f"Unexpected error handling {type(request).__name__}")
                    await self._report_error(f"Internal error: {e}", getattr(request, "frame_index", None))
                    break

                self.requests_handled += 1
                if done:
                    break
        finally:
            self._running = False
            self._stopped = True
            self._executor.shutdown(wait=False)
            dropped = self._drain_requests()
            if dropped:
                logger.info(f"Discarded {dropped} queued requests")
            logger.info(f"Encoder worker stopped in state {self.session.state.value}")

        return self.session.state

    async def _handle(self, loop: asyncio.AbstractEventLoop, request: WorkerRequest) -> bool:
        """Run one request on the codec thread. Returns True when finished."""
        session = self.session

        if isinstance(request, InitRequest):
            await loop.run_in_executor(
                self._executor,
                lambda: session.init(
                    width=request.width,
                    height=request.height,
                    frame_count=request.frame_count,
                    delay_ms=request.frame_delay_ms,
                    palette_sample=request.palette_sample,
                ),
            )
            return False

        if isinstance(request, FrameRequest):
            progress = await loop.run_in_executor(
                self._executor,
                session.submit_frame,
                request.frame_index,
                request.pixels,
            )
            await self._responses.put(
                ProgressResponse(
                    percent=progress.percent,
                    frames_done=progress.frames_done,
                    frame_count=progress.frame_count,
                )
            )
            return False

        if isinstance(request, FinishRequest):
            data = await loop.run_in_executor(self._executor, session.finish)
            await self._responses.put(CompleteResponse(size=len(data), data=data))
            return True

        raise TypeError(f"Unsupported request: {type(request).__name__}")

    def _stop_for_abort(self) -> None:
        if not self.session.state.is_terminal:
            self.session.abort()

    def _drain_requests(self) -> int:
        dropped = 0
        while not self._requests.empty():
            self._requests.get_nowait()
            dropped += 1
        return dropped

    async def _report_error(self, message: str, frame_index: Optional[int]) -> None:
        if not self.session.state.is_terminal:
            self.session.abort()
        logger.error(f"Encoding failed: {message} (frame={frame_index})")
        await self._responses.put(ErrorResponse(message=message, frame_index=frame_index))
