"""
Codec Module
============

The three codec stages, leaves first:
    - quantizer: learns a Palette and maps pixels to indices
    - lzw: compresses indices into framed LZW image data
    - container: writes the GIF89a sections in order
"""

from gifcodec.codec.container import GifWriter, Section, delay_to_centiseconds
from gifcodec.codec.lzw import LZWEncoder, compress
from gifcodec.codec.quantizer import Palette, nearest_index, train


__all__ = [
    "GifWriter",
    "LZWEncoder",
    "Palette",
    "Section",
    "compress",
    "delay_to_centiseconds",
    "nearest_index",
    "train",
]
