"""
GIF Block Reader
================

Minimal GIF89a parser and LZW decoder used by the tests to inspect
encoder output: block framing, sub-block lengths and raw code streams.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class ImageBlock:
    delay_cs: Optional[int]
    control_flags: Optional[int]
    left: int
    top: int
    width: int
    height: int
    flags: int
    min_code_size: int
    sub_block_lengths: List[int]
    data: bytes


@dataclass
class ParsedGif:
    signature: bytes
    width: int
    height: int
    flags: int
    background: int
    aspect: int
    color_table: bytes
    loop_count: Optional[int] = None
    images: List[ImageBlock] = field(default_factory=list)
    has_trailer: bool = False


@dataclass
class DecodedStream:
    indices: List[int]
    codes: List[int]
    clear_count: int
    max_table_size: int


def read_sub_blocks(data: bytes, pos: int) -> Tuple[bytes, List[int], int]:
    """Read sub-blocks up to and including the terminator."""
    payload = bytearray()
    lengths = []
    while True:
        length = data[pos]
        lengths.append(length)
        pos += 1
        if length == 0:
            return bytes(payload), lengths, pos
        payload.extend(data[pos:pos + length])
        if len(data) < pos + length:
            raise ValueError("Truncated sub-block")
        pos += length


def parse_gif(data: bytes) -> ParsedGif:
    """Walk the blocks of a (possibly partial) GIF."""
    width, height, flags, background, aspect = struct.unpack_from("<HHBBB", data, 6)
    table_size = 3 * (1 << ((flags & 0x07) + 1)) if flags & 0x80 else 0
    pos = 13
    parsed = ParsedGif(
        signature=data[:6],
        width=width,
        height=height,
        flags=flags,
        background=background,
        aspect=aspect,
        color_table=data[pos:pos + table_size],
    )
    pos += table_size

    delay = None
    control_flags = None
    while pos < len(data):
        marker = data[pos]
        if marker == 0x21:
            label = data[pos + 1]
            pos += 2
            if label == 0xF9:
                size = data[pos]
                block = data[pos + 1:pos + 1 + size]
                control_flags = block[0]
                delay = block[1] | (block[2] << 8)
                pos += 1 + size
                if data[pos] != 0:
                    raise ValueError("Missing graphic control terminator")
                pos += 1
            elif label == 0xFF:
                size = data[pos]
                identifier = data[pos + 1:pos + 1 + size]
                payload, _, pos = read_sub_blocks(data, pos + 1 + size)
                if identifier == b"NETSCAPE2.0":
                    parsed.loop_count = payload[1] | (payload[2] << 8)
            else:
                _, _, pos = read_sub_blocks(data, pos)
        elif marker == 0x2C:
            left, top, w, h, image_flags = struct.unpack_from("<HHHHB", data, pos + 1)
            pos += 10
            min_code_size = data[pos]
            payload, lengths, pos = read_sub_blocks(data, pos + 1)
            parsed.images.append(
                ImageBlock(
                    delay_cs=delay,
                    control_flags=control_flags,
                    left=left,
                    top=top,
                    width=w,
                    height=h,
                    flags=image_flags,
                    min_code_size=min_code_size,
                    sub_block_lengths=lengths,
                    data=payload,
                )
            )
            delay = None
            control_flags = None
        elif marker == 0x3B:
            parsed.has_trailer = True
            pos += 1
            if pos != len(data):
                raise ValueError("Data after trailer")
        else:
            raise ValueError(f"Unexpected block marker 0x{marker:02x} at {pos}")

    return parsed


def decode_lzw(min_code_size: int, payload: bytes) -> DecodedStream:
    """Decode a GIF LZW code stream, recording every code read."""
    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    width = min_code_size + 1

    bit_pos = 0
    total_bits = len(payload) * 8
    value = int.from_bytes(payload, "little")

    table: List[List[int]] = []
    previous: Optional[int] = None
    indices: List[int] = []
    codes: List[int] = []
    clear_count = 0
    max_table_size = 0

    while True:
        if bit_pos + width > total_bits:
            raise ValueError("Code stream ended without end-of-information code")
        code = (value >> bit_pos) & ((1 << width) - 1)
        bit_pos += width
        codes.append(code)

        if code == clear_code:
            clear_count += 1
            table = [[i] for i in range(clear_code)] + [[], []]
            width = min_code_size + 1
            previous = None
            continue
        if code == end_code:
            break

        if previous is None:
            entry = table[code]
        else:
            if code < len(table):
                entry = table[code]
                added = table[previous] + [entry[0]]
            elif code == len(table):
                added = table[previous] + [table[previous][0]]
                entry = added
            else:
                raise ValueError(f"Invalid code {code} with table size {len(table)}")
            if len(table) < 4096:
                table.append(added)
            if len(table) == (1 << width) and width < 12:
                width += 1

        max_table_size = max(max_table_size, len(table))
        indices.extend(entry)
        previous = code

    return DecodedStream(
        indices=indices,
        codes=codes,
        clear_count=clear_count,
        max_table_size=max_table_size,
    )
