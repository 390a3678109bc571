from __future__ import annotations

import zlib
from typing import Iterable, List

import numpy as np

from pngtag.services.errors import CorruptImageDataError, UnsupportedColorTypeError
from pngtag.services.png_format import (
	ALLOWED_BIT_DEPTHS,
	IDAT,
	IEND,
	IHDR,
	PLTE,
	PNG_SIGNATURE,
	TEXT,
	TRNS,
	ColorType,
	ImageRaster,
	MetadataEntry,
	encode_text,
	pack_chunk,
	pack_header,
)

IDAT_CHUNK_SIZE = 1 << 16


def encode(raster: ImageRaster, entries: Iterable[MetadataEntry], level: int = 9) -> bytes:
	"""Serialize `raster` as a non-interlaced PNG carrying one tEXt chunk per entry.

	Everything is validated before any output is produced, so a failure never
	yields a partial stream.
	"""
	_check_color(raster)
	if len(raster.pixels) != raster.expected_size:
		raise CorruptImageDataError(
			f"pixel buffer is {len(raster.pixels)} bytes, "
			f"{raster.width}x{raster.height} image needs {raster.expected_size}"
		)
	texts = [encode_text(MetadataEntry(*e)) for e in entries]

	rows = np.frombuffer(raster.pixels, dtype=np.uint8).reshape(raster.height, raster.row_bytes)
	# filter type 0 on every scanline: the stored bytes are the samples themselves
	filtered = np.hstack((np.zeros((raster.height, 1), dtype=np.uint8), rows))
	compressed = zlib.compress(filtered.tobytes(), level)

	parts: List[bytes] = [
		PNG_SIGNATURE,
		pack_chunk(IHDR, pack_header(raster.width, raster.height, raster.bit_depth, raster.color_type)),
	]
	if raster.palette is not None:
		parts.append(pack_chunk(PLTE, raster.palette))
	if raster.transparency is not None:
		parts.append(pack_chunk(TRNS, raster.transparency))
	parts.extend(pack_chunk(TEXT, t) for t in texts)
	for start in range(0, len(compressed), IDAT_CHUNK_SIZE):
		parts.append(pack_chunk(IDAT, compressed[start:start + IDAT_CHUNK_SIZE]))
	parts.append(pack_chunk(IEND, b""))
	return b"".join(parts)


def _check_color(raster: ImageRaster) -> None:
	try:
		color_type = ColorType(raster.color_type)
	except ValueError:
		raise UnsupportedColorTypeError(f"unknown PNG color type {raster.color_type!r}") from None
	if raster.bit_depth not in ALLOWED_BIT_DEPTHS[color_type]:
		raise UnsupportedColorTypeError(
			f"bit depth {raster.bit_depth} is not allowed for color type {color_type.name}"
		)
	if raster.width <= 0 or raster.height <= 0:
		raise UnsupportedColorTypeError(f"invalid image size {raster.width}x{raster.height}")
	if color_type == ColorType.PALETTE:
		palette = raster.palette or b""
		if not palette or len(palette) % 3 or len(palette) > 3 * 256:
			raise UnsupportedColorTypeError("palette image needs a PLTE table of 1 to 256 RGB entries")
		if raster.transparency is not None and not 0 < len(raster.transparency) <= len(palette) // 3:
			raise UnsupportedColorTypeError("tRNS needs between 1 entry and one entry per palette color")
	elif color_type in (ColorType.GRAYSCALE_ALPHA, ColorType.RGBA):
		if raster.transparency is not None:
			raise UnsupportedColorTypeError(f"{color_type.name} images carry alpha and cannot have tRNS")
	if color_type in (ColorType.GRAYSCALE, ColorType.GRAYSCALE_ALPHA) and raster.palette is not None:
		raise UnsupportedColorTypeError("grayscale images cannot have a palette")
	if raster.transparency is not None:
		expected = {ColorType.GRAYSCALE: 2, ColorType.RGB: 6}.get(color_type)
		if expected is not None and len(raster.transparency) != expected:
			raise UnsupportedColorTypeError(f"tRNS for {color_type.name} must be {expected} bytes")
