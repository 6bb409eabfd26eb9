"""
Container Writer
================

Writes the GIF89a byte layout section by section.

Section Order:
    signature -> screen descriptor -> global color table -> loop extension
    -> (graphic control -> image descriptor -> image data)+ -> trailer

Design Rules:
    - Sections are appended once, in order, and never rewritten
    - Every argument is validated before the first byte of a section
      is appended, so a rejected write leaves the buffer untouched
    - Image data is compressed into a scratch buffer and appended whole
    - Any ordering violation raises ContainerError
"""

import logging
import struct
from enum import IntEnum
from typing import Optional, Tuple

from gifcodec.codec.lzw import IndexData, LZWEncoder
from gifcodec.codec.quantizer import Palette
from gifcodec.errors import CallerContractError, ContainerError


logger = logging.getLogger(__name__)


SIGNATURE = b"GIF89a"
EXTENSION_INTRODUCER = 0x21
APPLICATION_LABEL = 0xFF
GRAPHIC_CONTROL_LABEL = 0xF9
IMAGE_SEPARATOR = 0x2C
TRAILER = 0x3B
APPLICATION_IDENTIFIER = b"NETSCAPE2.0"

# Global table present, 8 bits per primary, 2^(7+1) entries
SCREEN_FLAGS = 0x80 | 0x70 | 0x07
# No local table, not interlaced
IMAGE_FLAGS = 0x00
# Disposal unspecified (replace), no user input, no transparency
CONTROL_FLAGS = 0x00

MAX_DIMENSION = 0xFFFF


class Section(IntEnum):
    """Container sections in file order."""

    SIGNATURE = 0
    SCREEN_DESCRIPTOR = 1
    COLOR_TABLE = 2
    LOOP_EXTENSION = 3
    GRAPHIC_CONTROL = 4
    IMAGE_DESCRIPTOR = 5
    IMAGE_DATA = 6
    TRAILER = 7


_ALLOWED_AFTER = {
    None: (Section.SIGNATURE,),
    Section.SIGNATURE: (Section.SCREEN_DESCRIPTOR,),
    Section.SCREEN_DESCRIPTOR: (Section.COLOR_TABLE,),
    Section.COLOR_TABLE: (Section.LOOP_EXTENSION,),
    Section.LOOP_EXTENSION: (Section.GRAPHIC_CONTROL,),
    Section.GRAPHIC_CONTROL: (Section.IMAGE_DESCRIPTOR,),
    Section.IMAGE_DESCRIPTOR: (Section.IMAGE_DATA,),
    Section.IMAGE_DATA: (Section.GRAPHIC_CONTROL, Section.TRAILER),
    Section.TRAILER: (),
}


def delay_to_centiseconds(delay_ms: float) -> int:
    """Convert a millisecond delay to GIF hundredths, rounding half up."""
    if delay_ms < 0:
        raise CallerContractError(f"Frame delay must be >= 0, got {delay_ms}")
    return min(int(delay_ms / 10 + 0.5), 0xFFFF)


class GifWriter:
    """
    Append-only GIF89a writer.

    Attributes:
        width: Logical screen width
        height: Logical screen height
        image_count: Image blocks written so far
        last_section: Most recently written section, or None

    Example:
        writer = GifWriter(width=2, height=2)
        writer.write_header(palette, loop_count=0)
        writer.write_frame(indices, delay_cs=10)
        writer.write_trailer()
        data = writer.getvalue()
    """

    def __init__(self, width: int, height: int) -> None:
        for name, value in (("width", width), ("height", height)):
            if not 1 <= value <= MAX_DIMENSION:
                raise CallerContractError(
                    f"{name} must be in [1, {MAX_DIMENSION}], got {value}"
                )

        self.width = width
        self.height = height
        self.image_count = 0
        self.last_section: Optional[Section] = None
        self._buffer = bytearray()

    # -------------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------------

    def _begin(self, section: Section) -> None:
        allowed = _ALLOWED_AFTER[self.last_section]
        if section not in allowed:
            previous = self.last_section.name if self.last_section is not None else "nothing"
            raise ContainerError(f"Cannot write {section.name} after {previous}")

    def _commit(self, section: Section, data: bytes) -> None:
        self._buffer.extend(data)
        self.last_section = section

    @property
    def finished(self) -> bool:
        return self.last_section is Section.TRAILER

    def getvalue(self) -> bytes:
        """Copy of everything written so far."""
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    # -------------------------------------------------------------------------
    # Header sections
    # -------------------------------------------------------------------------

    def write_signature(self) -> None:
        self._begin(Section.SIGNATURE)
        self._commit(Section.SIGNATURE, SIGNATURE)

    def write_screen_descriptor(self) -> None:
        self._begin(Section.SCREEN_DESCRIPTOR)
        data = struct.pack("<HHBBB", self.width, self.height, SCREEN_FLAGS, 0, 0)
        self._commit(Section.SCREEN_DESCRIPTOR, data)

    def write_color_table(self, palette: Optional[Palette] = None) -> None:
        """Write the 256-entry global color table (gray ramp without a palette)."""
        self._begin(Section.COLOR_TABLE)
        if palette is None:
            palette = Palette.grayscale()
        self._commit(Section.COLOR_TABLE, palette.to_bytes())

    def write_loop_extension(self, loop_count: int = 0) -> None:
        """Write the looping application extension (0 = loop forever)."""
        if not 0 <= loop_count <= 0xFFFF:
            raise CallerContractError(f"loop_count must be in [0, 65535], got {loop_count}")
        self._begin(Section.LOOP_EXTENSION)
        data = (
            bytes((EXTENSION_INTRODUCER, APPLICATION_LABEL, len(APPLICATION_IDENTIFIER)))
            + APPLICATION_IDENTIFIER
            + struct.pack("<BBHB", 3, 1, loop_count, 0)
        )
        self._commit(Section.LOOP_EXTENSION, data)

    def write_header(self, palette: Optional[Palette] = None, loop_count: int = 0) -> None:
        """Write signature, screen descriptor, color table and loop extension."""
        if not 0 <= loop_count <= 0xFFFF:
            raise CallerContractError(f"loop_count must be in [0, 65535], got {loop_count}")
        self.write_signature()
        self.write_screen_descriptor()
        self.write_color_table(palette)
        self.write_loop_extension(loop_count)

    # -------------------------------------------------------------------------
    # Frame sections
    # -------------------------------------------------------------------------

    @staticmethod
    def _graphic_control(delay_cs: int) -> bytes:
        if not 0 <= delay_cs <= 0xFFFF:
            raise CallerContractError(f"delay_cs must be in [0, 65535], got {delay_cs}")
        return struct.pack(
            "<BBBBHBB",
            EXTENSION_INTRODUCER,
            GRAPHIC_CONTROL_LABEL,
            4,
            CONTROL_FLAGS,
            delay_cs,
            0,
            0,
        )

    def _image_descriptor(self) -> bytes:
        return struct.pack(
            "<BHHHHB", IMAGE_SEPARATOR, 0, 0, self.width, self.height, IMAGE_FLAGS
        )

    def _image_data(self, indices: IndexData) -> Tuple[bytearray, LZWEncoder]:
        if len(indices) != self.width * self.height:
            raise CallerContractError(
                f"Expected {self.width * self.height} indices, got {len(indices)}"
            )
        scratch = bytearray()
        encoder = LZWEncoder(indices, color_depth=8)
        encoder.encode(scratch)
        return scratch, encoder

    def write_graphic_control(self, delay_cs: int) -> None:
        data = self._graphic_control(delay_cs)
        self._begin(Section.GRAPHIC_CONTROL)
        self._commit(Section.GRAPHIC_CONTROL, data)

    def write_image_descriptor(self) -> None:
        self._begin(Section.IMAGE_DESCRIPTOR)
        self._commit(Section.IMAGE_DESCRIPTOR, self._image_descriptor())

    def write_image_data(self, indices: IndexData) -> LZWEncoder:
        """
        Compress one full-screen frame of palette indices.

        Returns:
            The LZW encoder used, for its statistics
        """
        self._begin(Section.IMAGE_DATA)
        data, encoder = self._image_data(indices)
        self._append_image(data)
        return encoder

    def _append_image(self, data: bytes) -> None:
        self._commit(Section.IMAGE_DATA, data)
        self.image_count += 1

    def write_frame(self, indices: IndexData, delay_cs: int) -> LZWEncoder:
        """
        Write graphic control, image descriptor and image data for one frame.

        The order and delay are checked and the frame is compressed before
        anything is appended, so a failure leaves no partial frame in the
        buffer.
        """
        self._begin(Section.GRAPHIC_CONTROL)
        self._graphic_control(delay_cs)
        data, encoder = self._image_data(indices)

        self.write_graphic_control(delay_cs)
        self.write_image_descriptor()
        self._begin(Section.IMAGE_DATA)
        self._append_image(data)
        return encoder

    def write_trailer(self) -> None:
        self._begin(Section.TRAILER)
        self._commit(Section.TRAILER, bytes((TRAILER,)))
        logger.debug(f"GIF closed: {self.image_count} images, {len(self._buffer)} bytes")
