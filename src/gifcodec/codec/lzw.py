"""
LZW Compressor
==============

Variable-code-width LZW compression of palette indices, GIF flavor.

Output Layout (per frame):
    1 byte   minimum code size
    N blocks sub-blocks: 1 length byte (1..255) + that many data bytes
    1 byte   block terminator (0)

Code Table:
    (prefix code, next index) pairs are stored in fixed-size open-addressed
    arrays probed linearly. The arrays are sized once for the 4096-code
    ceiling and never grow. When every code is assigned, a clear code is
    emitted and the table restarts from the reserved codes.

Code Width:
    Codes start at (minimum code size + 1) bits and widen by one bit when
    the next code to assign no longer fits, up to 12 bits. After a clear
    code the width drops back to its starting value.

Bit Packing:
    Codes are packed least-significant-bit first.
"""

import logging
from typing import Union

import numpy as np

from gifcodec.errors import CallerContractError, CodecInvariantError


logger = logging.getLogger(__name__)


MAX_BITS = 12
MAX_CODES = 1 << MAX_BITS

# Prime above MAX_CODES so the table never fills up
HASH_SIZE = 5003
HASH_SHIFT = 4

SUB_BLOCK_SIZE = 255
BLOCK_TERMINATOR = 0x00

IndexData = Union[bytes, bytearray, memoryview, np.ndarray]


class _SubBlockWriter:
    """Packs codes LSB-first and frames the bytes into sub-blocks."""

    __slots__ = ("_out", "_block", "_accumulator", "_bits", "bytes_written")

    def __init__(self, out: bytearray) -> None:
        self._out = out
        self._block = bytearray()
        self._accumulator = 0
        self._bits = 0
        self.bytes_written = 0

    def write(self, code: int, width: int) -> None:
        self._accumulator |= code << self._bits
        self._bits += width

        while self._bits >= 8:
            self._append(self._accumulator & 0xFF)
            self._accumulator >>= 8
            self._bits -= 8

    def flush(self) -> None:
        """Pad the final partial byte and emit the remaining sub-block."""
        if self._bits > 0:
            self._append(self._accumulator & 0xFF)
            self._accumulator = 0
            self._bits = 0
        self._flush_block()

    def _append(self, byte: int) -> None:
        self._block.append(byte)
        self.bytes_written += 1
        if len(self._block) == SUB_BLOCK_SIZE:
            self._flush_block()

    def _flush_block(self) -> None:
        if self._block:
            self._out.append(len(self._block))
            self._out.extend(self._block)
            self._block = bytearray()


class LZWEncoder:
    """
    LZW encoder for one frame of palette indices.

    Attributes:
        init_code_size: Minimum code size written ahead of the data
        codes_written: Codes emitted by the last `encode` call
        resets: Clear codes emitted because the table filled up
            (the leading clear code is not counted)
        peak_table_size: Highest number of assigned codes seen

    Example:
        out = bytearray()
        encoder = LZWEncoder(indices, color_depth=8)
        encoder.encode(out)
    """

    def __init__(self, indices: IndexData, color_depth: int = 8) -> None:
        """
        Initialize the encoder.

        Args:
            indices: One palette index per pixel
            color_depth: Bits per index (2..8)
        """
        if not 1 <= color_depth <= 8:
            raise CallerContractError(f"color_depth must be in [1, 8], got {color_depth}")

        if isinstance(indices, np.ndarray):
            indices = np.ascontiguousarray(indices, dtype=np.uint8).tobytes()
        self.indices = bytes(indices)
        if not self.indices:
            raise CallerContractError("Cannot compress an empty frame")

        self.init_code_size = max(2, color_depth)
        if max(self.indices) >= 1 << self.init_code_size:
            raise CallerContractError(
                f"Index {max(self.indices)} does not fit in {self.init_code_size} bits"
            )

        self.codes_written = 0
        self.resets = 0
        self.peak_table_size = 0

    def encode(self, out: bytearray) -> None:
        """
        Compress the indices and append the framed result to `out`.

        Args:
            out: Buffer receiving the code size byte, sub-blocks and terminator
        """
        out.append(self.init_code_size)

        writer = _SubBlockWriter(out)
        clear_code = 1 << self.init_code_size
        end_code = clear_code + 1
        first_free = clear_code + 2

        width = self.init_code_size + 1
        max_code = (1 << width) - 1
        next_code = first_free
        clear_pending = False

        hash_keys = [-1] * HASH_SIZE
        hash_codes = [0] * HASH_SIZE

        self.codes_written = 0
        self.resets = 0
        self.peak_table_size = next_code

        def output(code: int) -> None:
            nonlocal width, max_code, clear_pending

            if code >= MAX_CODES or code >= 1 << width:
                raise CodecInvariantError(f"Code {code} does not fit in {width} bits")

            writer.write(code, width)
            self.codes_written += 1

            if clear_pending:
                width = self.init_code_size + 1
                max_code = (1 << width) - 1
                clear_pending = False
            elif next_code > max_code:
                width += 1
                max_code = MAX_CODES if width == MAX_BITS else (1 << width) - 1

        output(clear_code)

        pixels = iter(self.indices)
        prefix = next(pixels)

        for pixel in pixels:
            key = (pixel << MAX_BITS) + prefix
            slot = ((pixel << HASH_SHIFT) ^ prefix) % HASH_SIZE

            found = False
            while hash_keys[slot] >= 0:
                if hash_keys[slot] == key:
                    found = True
                    break
                slot += 1
                if slot == HASH_SIZE:
                    slot = 0

            if found:
                prefix = hash_codes[slot]
                continue

            output(prefix)
            prefix = pixel

            if next_code < MAX_CODES:
                hash_codes[slot] = next_code
                hash_keys[slot] = key
                next_code += 1
                if next_code > self.peak_table_size:
                    self.peak_table_size = next_code
            else:
                hash_keys = [-1] * HASH_SIZE
                next_code = first_free
                clear_pending = True
                self.resets += 1
                output(clear_code)

            if next_code > MAX_CODES:
                raise CodecInvariantError(f"Code table overflow: {next_code} codes assigned")

        output(prefix)
        output(end_code)
        writer.flush()
        out.append(BLOCK_TERMINATOR)

        logger.debug(
            f"LZW encoded {len(self.indices)} indices into {writer.bytes_written} bytes, "
            f"codes={self.codes_written}, resets={self.resets}"
        )


def compress(indices: IndexData, out: bytearray, color_depth: int = 8) -> LZWEncoder:
    """
    Compress palette indices into `out` as GIF image data.

    Args:
        indices: One palette index per pixel
        out: Buffer to append to
        color_depth: Bits per index

    Returns:
        The encoder, for its statistics
    """
    encoder = LZWEncoder(indices, color_depth=color_depth)
    encoder.encode(out)
    return encoder
