from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterator, NamedTuple, Optional, Tuple

from pngtag.services.errors import CorruptImageDataError, InvalidEncodingError, KeyTooLongError


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

IHDR = b"IHDR"
PLTE = b"PLTE"
TRNS = b"tRNS"
TEXT = b"tEXt"
IDAT = b"IDAT"
IEND = b"IEND"

MAX_KEYWORD_LENGTH = 79
TEXT_ENCODING = "latin-1"


class ColorType(IntEnum):
	GRAYSCALE = 0
	RGB = 2
	PALETTE = 3
	GRAYSCALE_ALPHA = 4
	RGBA = 6


CHANNELS: Dict[ColorType, int] = {
	ColorType.GRAYSCALE: 1,
	ColorType.RGB: 3,
	ColorType.PALETTE: 1,
	ColorType.GRAYSCALE_ALPHA: 2,
	ColorType.RGBA: 4,
}

ALLOWED_BIT_DEPTHS: Dict[ColorType, Tuple[int, ...]] = {
	ColorType.GRAYSCALE: (1, 2, 4, 8, 16),
	ColorType.RGB: (8, 16),
	ColorType.PALETTE: (1, 2, 4, 8),
	ColorType.GRAYSCALE_ALPHA: (8, 16),
	ColorType.RGBA: (8, 16),
}


def is_valid_combination(color_type: int, bit_depth: int) -> bool:
	try:
		ct = ColorType(color_type)
	except ValueError:
		return False
	return bit_depth in ALLOWED_BIT_DEPTHS[ct]


@dataclass(frozen=True)
class ImageRaster:
	"""Decoded pixel payload plus the header parameters needed to rebuild it.

	`pixels` holds unfiltered scanlines back to back; every scanline is padded
	to a whole byte, exactly as PNG lays out samples before filtering.
	"""
	width: int
	height: int
	color_type: ColorType
	bit_depth: int
	pixels: bytes
	palette: Optional[bytes] = None
	transparency: Optional[bytes] = None

	@property
	def channels(self) -> int:
		return CHANNELS[ColorType(self.color_type)]

	@property
	def bits_per_pixel(self) -> int:
		return self.channels * self.bit_depth

	@property
	def row_bytes(self) -> int:
		return scanline_bytes(self.width, self.bits_per_pixel)

	@property
	def filter_unit(self) -> int:
		# filters compare a byte with the matching byte of the previous pixel
		return max(1, self.bits_per_pixel // 8)

	@property
	def expected_size(self) -> int:
		return self.row_bytes * self.height


class MetadataEntry(NamedTuple):
	key: str
	value: str


class Chunk(NamedTuple):
	type: bytes
	data: bytes
	crc_ok: bool

	@property
	def is_critical(self) -> bool:
		# bit 5 of the first type byte clear -> uppercase -> critical
		return not (self.type[0] & 0x20)


def scanline_bytes(width: int, bits_per_pixel: int) -> int:
	return (width * bits_per_pixel + 7) // 8


def pack_chunk(chunk_type: bytes, data: bytes) -> bytes:
	crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
	return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def iter_chunks(data: bytes, offset: int = len(PNG_SIGNATURE)) -> Iterator[Chunk]:
	"""Yield the chunks following the signature, stopping after IEND or at end of data."""
	end = len(data)
	while offset < end:
		if offset + 8 > end:
			raise CorruptImageDataError(f"truncated chunk header at byte {offset}")
		length, chunk_type = struct.unpack_from(">I4s", data, offset)
		start = offset + 8
		stop = start + length
		if stop + 4 > end:
			raise CorruptImageDataError(f"truncated {chunk_type!r} chunk at byte {offset}")
		payload = data[start:stop]
		(crc,) = struct.unpack_from(">I", data, stop)
		yield Chunk(chunk_type, payload, crc == zlib.crc32(chunk_type + payload) & 0xFFFFFFFF)
		offset = stop + 4
		if chunk_type == IEND:
			return


def pack_header(width: int, height: int, bit_depth: int, color_type: int, interlace: int = 0) -> bytes:
	return struct.pack(">IIBBBBB", width, height, bit_depth, int(color_type), 0, 0, interlace)


def unpack_header(data: bytes) -> Tuple[int, int, int, int, int, int, int]:
	"""Return (width, height, bit_depth, color_type, compression, filter, interlace)."""
	return struct.unpack(">IIBBBBB", data)


def encode_text(entry: MetadataEntry) -> bytes:
	"""Serialize one entry as a tEXt payload, validating the keyword and text."""
	key, value = entry
	if not key:
		raise InvalidEncodingError("metadata key must not be empty")
	try:
		raw_key = key.encode(TEXT_ENCODING)
	except UnicodeEncodeError as exc:
		raise InvalidEncodingError(f"metadata key {key!r} contains characters outside Latin-1") from exc
	try:
		raw_value = value.encode(TEXT_ENCODING)
	except UnicodeEncodeError as exc:
		raise InvalidEncodingError(f"value for key {key!r} contains characters outside Latin-1") from exc
	if len(raw_key) > MAX_KEYWORD_LENGTH:
		raise KeyTooLongError(
			f"metadata key is {len(raw_key)} characters long, PNG allows at most {MAX_KEYWORD_LENGTH}"
		)
	if b"\x00" in raw_key:
		raise InvalidEncodingError(f"metadata key {key!r} contains a NUL character")
	if b"\x00" in raw_value:
		raise InvalidEncodingError(f"value for key {key!r} contains a NUL character")
	return raw_key + b"\x00" + raw_value


def decode_text(data: bytes) -> Optional[MetadataEntry]:
	"""Parse a tEXt payload; None when it has no keyword separator or an empty keyword."""
	keyword, sep, text = data.partition(b"\x00")
	if not sep or not keyword:
		return None
	return MetadataEntry(keyword.decode(TEXT_ENCODING), text.decode(TEXT_ENCODING))
