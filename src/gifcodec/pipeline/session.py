"""
Encoding Session
================

Synchronous orchestration of quantizer, compressor and container writer.

Protocol:
    session = EncoderSession(sample_factor=10)
    session.init(width, height, frame_count, delay_ms)
    for i, pixels in enumerate(frames):
        session.submit_frame(i, pixels)
    data = session.finish()

Palette Policy:
    One palette is learned per session and shared by every frame. It is
    trained on `palette_sample` when one is passed to init(), otherwise on
    the first submitted frame. The header (signature, screen descriptor,
    global color table, loop extension) is written as soon as the palette
    exists.

    Colors that never appear in the training pixels have no entry of their
    own: they map to the nearest learned color. Without a sample, an
    animation whose later frames introduce new colors loses them. Pass a
    sample drawn from several frames when the color content changes.

Ordering:
    Frames must be submitted with frame_index 0, 1, 2, ... Anything else is
    rejected; frames are never buffered or reordered.

Failure:
    Caller-contract violations detected before any work starts are raised
    and leave the session as it was. Any error raised while a frame is being
    quantized, compressed or written aborts the session.
"""

import logging
from typing import Callable, NoReturn, Optional

import numpy as np

from gifcodec.codec.container import GifWriter, delay_to_centiseconds
from gifcodec.codec.quantizer import (
    MAX_SAMPLE_FACTOR,
    MIN_SAMPLE_FACTOR,
    Palette,
    train,
)
from gifcodec.errors import CallerContractError, GifCodecError
from gifcodec.models.state import Progress, SessionState
from gifcodec.pipeline.frame import Frame, PixelData


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[Progress], None]


class EncoderSession:
    """
    One animated GIF being encoded.

    Attributes:
        sample_factor: Quantizer sampling factor (1 = best, 30 = fastest)
        loop_count: Animation repeat count (0 = forever)
        state: Current SessionState
        frames_done: Frames written so far
        frame_count: Frames expected (set by init)

    Example:
        session = EncoderSession(sample_factor=5)
        session.init(width=2, height=2, frame_count=1, delay_ms=100)
        session.submit_frame(0, bytes([255, 0, 0, 255] * 4))
        gif_bytes = session.finish()
    """

    def __init__(
        self,
        sample_factor: int = 10,
        loop_count: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Initialize an encoding session.

        Args:
            sample_factor: Quantizer sampling factor in [1, 30]
            loop_count: Repeat count written to the loop extension (0 = forever)
            on_progress: Called with a Progress after every frame
        """
        if not MIN_SAMPLE_FACTOR <= sample_factor <= MAX_SAMPLE_FACTOR:
            raise CallerContractError(
                f"sample_factor must be in [{MIN_SAMPLE_FACTOR}, {MAX_SAMPLE_FACTOR}], "
                f"got {sample_factor}"
            )
        if not 0 <= loop_count <= 0xFFFF:
            raise CallerContractError(f"loop_count must be in [0, 65535], got {loop_count}")

        self.sample_factor = sample_factor
        self.loop_count = loop_count
        self.on_progress = on_progress

        self.state = SessionState.UNINITIALIZED
        self.frames_done = 0
        self.frame_count = 0
        self.width = 0
        self.height = 0
        self.delay_cs = 0

        self._writer: Optional[GifWriter] = None
        self._palette: Optional[Palette] = None

    @property
    def palette(self) -> Optional[Palette]:
        """Shared palette, once learned."""
        return self._palette

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    def init(
        self,
        width: int,
        height: int,
        frame_count: int,
        delay_ms: float,
        palette_sample: Optional[PixelData] = None,
    ) -> None:
        """
        Fix canvas size, frame count and timing.

        Args:
            width: Canvas width (1..65535)
            height: Canvas height (1..65535)
            frame_count: Frames that will be submitted (>= 1)
            delay_ms: Delay between frames in milliseconds
            palette_sample: Optional RGBA pixels to learn the palette from.
                Without one the first frame is used, and colors missing
                from it collapse onto their nearest learned entry.

        Raises:
            CallerContractError: On invalid arguments or a repeated init
        """
        if self.state is not SessionState.UNINITIALIZED:
            raise CallerContractError(f"init() called in state {self.state.value}")
        if frame_count < 1:
            raise CallerContractError(f"frame_count must be >= 1, got {frame_count}")

        writer = GifWriter(width, height)
        delay_cs = delay_to_centiseconds(delay_ms)

        sample_rgb = None
        if palette_sample is not None:
            if isinstance(palette_sample, np.ndarray):
                sample = np.ascontiguousarray(palette_sample, dtype=np.uint8).reshape(-1)
            else:
                sample = np.frombuffer(bytes(palette_sample), dtype=np.uint8)
            if sample.size == 0 or sample.size % 4 != 0:
                raise CallerContractError(
                    f"palette_sample must be a non-empty RGBA buffer, got {sample.size} bytes"
                )
            sample_rgb = sample.reshape(-1, 4)[:, :3]

        self._writer = writer
        self.width = width
        self.height = height
        self.frame_count = frame_count
        self.delay_cs = delay_cs
        self.state = SessionState.READY

        logger.info(
            f"Session initialized: {width}x{height}, frames={frame_count}, "
            f"delay={delay_cs}cs, sample_factor={self.sample_factor}"
        )

        if sample_rgb is not None:
            try:
                self._learn_palette(sample_rgb)
            except (GifCodecError, MemoryError) as e:
                self._fail(e, None)

    def submit_frame(self, frame_index: int, pixels: PixelData) -> Progress:
        """
        Quantize, compress and append one frame.

        Args:
            frame_index: Must equal the number of frames already submitted
            pixels: RGBA buffer of width * height * 4 bytes

        Returns:
            Progress after this frame

        Raises:
            CallerContractError: Wrong state, wrong index or mis-sized buffer
            GifCodecError: Codec failure; the session is aborted
        """
        if self.state not in (SessionState.READY, SessionState.ENCODING):
            raise CallerContractError(
                f"submit_frame() called in state {self.state.value}", frame_index
            )
        if self.frames_done >= self.frame_count:
            raise CallerContractError(
                f"All {self.frame_count} frames already submitted", frame_index
            )
        if frame_index != self.frames_done:
            raise CallerContractError(
                f"Frames must be submitted in order, expected index {self.frames_done}",
                frame_index,
            )

        frame = Frame.from_pixels(frame_index, self.width, self.height, pixels)
        self.state = SessionState.ENCODING

        try:
            rgb = frame.rgb()
            if self._palette is None:
                self._learn_palette(rgb)
            indices = self._palette.index_pixels(rgb)
            del frame, rgb
            encoder = self._writer.write_frame(indices, self.delay_cs)
        except (GifCodecError, MemoryError) as e:
            self._fail(e, frame_index)

        self.frames_done += 1
        progress = Progress.of(self.frames_done, self.frame_count)

        logger.debug(
            f"Frame {frame_index} encoded: codes={encoder.codes_written}, "
            f"resets={encoder.resets}, progress={progress.percent}%"
        )

        if self.on_progress is not None:
            self.on_progress(progress)
        return progress

    def finish(self) -> bytes:
        """
        Write the trailer and return the finished file.

        Raises:
            CallerContractError: Wrong state or frames still missing
        """
        if self.state is not SessionState.ENCODING:
            raise CallerContractError(f"finish() called in state {self.state.value}")
        if self.frames_done != self.frame_count:
            raise CallerContractError(
                f"finish() after {self.frames_done} of {self.frame_count} frames"
            )

        try:
            self._writer.write_trailer()
        except GifCodecError as e:
            self._fail(e, None)

        self.state = SessionState.FINISHED
        data = self._writer.getvalue()
        logger.info(f"Session finished: {self.frames_done} frames, {len(data)} bytes")
        return data

    def abort(self) -> None:
        """
        Cancel the session. No further writes happen.

        Raises:
            CallerContractError: If the session already finished
        """
        if self.state is SessionState.FINISHED:
            raise CallerContractError("abort() after finish()")
        if self.state is SessionState.ABORTED:
            return

        self.state = SessionState.ABORTED
        logger.info(f"Session aborted after {self.frames_done} of {self.frame_count} frames")

    def getvalue(self) -> bytes:
        """Copy of the bytes written so far (partial until finished)."""
        if self._writer is None:
            return b""
        return self._writer.getvalue()

    def metrics(self) -> dict:
        """Session metrics for observability."""
        return {
            "state": self.state.value,
            "frames_done": self.frames_done,
            "frame_count": self.frame_count,
            "bytes_written": len(self._writer) if self._writer is not None else 0,
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _learn_palette(self, rgb: np.ndarray) -> None:
        """Train the shared palette and write the header block."""
        try:
            palette = train(rgb, sample_factor=self.sample_factor)
        except ValueError as e:
            raise CallerContractError(str(e))

        self._writer.write_header(palette, loop_count=self.loop_count)
        self._palette = palette
        logger.info(f"Shared palette learned from {rgb.shape[0]} pixels")

    def _fail(self, error: BaseException, frame_index: Optional[int]) -> NoReturn:
        """Abort the session and raise the terminal error with its frame index."""
        self.state = SessionState.ABORTED

        if isinstance(error, GifCodecError):
            if error.frame_index is not None or frame_index is None:
                logger.error(f"Session aborted by error: {error}")
                raise error
            failure = type(error)(error.message, frame_index)
        else:
            failure = GifCodecError(f"Out of memory: {error}", frame_index)

        logger.error(f"Session aborted by error: {failure}")
        raise failure from error
