from __future__ import annotations

import logging
import sys
import zlib
from dataclasses import replace
from typing import Iterator, List, Optional, Tuple

import numpy as np

from pngtag.services.errors import (
	CorruptImageDataError,
	MissingHeaderError,
	NotAPngError,
	UnsupportedFormatError,
)
from pngtag.services.image_utils import identify_format
from pngtag.services.png_format import (
	IDAT,
	IEND,
	IHDR,
	PLTE,
	PNG_SIGNATURE,
	TEXT,
	TRNS,
	Chunk,
	ColorType,
	ImageRaster,
	MetadataEntry,
	decode_text,
	is_valid_combination,
	iter_chunks,
	scanline_bytes,
	unpack_header,
)

logger = logging.getLogger(__name__)

# (x0, y0, dx, dy) for the seven Adam7 passes
ADAM7_PASSES = (
	(0, 0, 8, 8),
	(4, 0, 8, 8),
	(0, 4, 4, 8),
	(2, 0, 4, 4),
	(0, 2, 2, 4),
	(1, 0, 2, 2),
	(0, 1, 1, 2),
)

MAX_DIMENSION = 2 ** 31 - 1


def decode(data: bytes) -> Tuple[ImageRaster, List[MetadataEntry]]:
	"""Decode a PNG byte stream into its raster and its tEXt entries (file order)."""
	if not data.startswith(PNG_SIGNATURE):
		fmt = identify_format(data)
		if fmt:
			raise UnsupportedFormatError(fmt)
		raise NotAPngError()

	chunks = iter_chunks(data)
	header = _read_header(chunks)
	width, height, bit_depth, color_type, interlace = header

	palette: Optional[bytes] = None
	transparency: Optional[bytes] = None
	idat = bytearray()
	entries: List[MetadataEntry] = []
	seen_iend = False

	for chunk in chunks:
		if chunk.is_critical and not chunk.crc_ok:
			raise CorruptImageDataError(f"CRC mismatch in {chunk.type.decode('latin-1')} chunk")
		if chunk.type == IDAT:
			idat += chunk.data
		elif chunk.type == PLTE:
			palette = _check_palette(chunk.data, color_type)
		elif chunk.type == IEND:
			seen_iend = True
		elif chunk.type == IHDR:
			raise CorruptImageDataError("duplicate IHDR chunk")
		elif chunk.is_critical:
			raise CorruptImageDataError(f"unknown critical chunk {chunk.type!r}")
		elif not chunk.crc_ok:
			logger.warning("Skipping %r chunk with bad CRC", chunk.type)
		elif chunk.type == TEXT:
			entry = decode_text(chunk.data)
			if entry is None:
				logger.warning("Skipping malformed tEXt chunk (%d bytes)", len(chunk.data))
			else:
				entries.append(entry)
		elif chunk.type == TRNS:
			transparency = _check_transparency(chunk.data, color_type)
		else:
			logger.debug("Ignoring ancillary chunk %r", chunk.type)

	if not idat:
		raise CorruptImageDataError("no IDAT chunk found")
	if color_type == ColorType.PALETTE and palette is None:
		raise CorruptImageDataError("palette image without PLTE chunk")
	if palette is not None and transparency is not None and len(transparency) > len(palette) // 3:
		logger.warning("Ignoring tRNS chunk with more entries than the palette")
		transparency = None
	if not seen_iend:
		logger.warning("PNG stream ends without an IEND chunk")

	raster = ImageRaster(
		width=width,
		height=height,
		color_type=ColorType(color_type),
		bit_depth=bit_depth,
		pixels=b"",
		palette=palette,
		transparency=transparency,
	)
	raw = _inflate(bytes(idat), _filtered_size(raster, interlace))
	if interlace:
		pixels = _deinterlace(raw, raster)
	else:
		pixels = _unfilter(raw, raster.row_bytes, height, raster.filter_unit).tobytes()
	return replace(raster, pixels=pixels), entries


def _read_header(chunks) -> Tuple[int, int, int, int, int]:
	try:
		first: Chunk = next(chunks)
	except (StopIteration, CorruptImageDataError) as exc:
		raise MissingHeaderError("PNG has no IHDR chunk") from exc
	if first.type != IHDR:
		raise MissingHeaderError(f"first chunk is {first.type!r}, expected IHDR")
	if len(first.data) != 13 or not first.crc_ok:
		raise MissingHeaderError("IHDR chunk is malformed")
	width, height, bit_depth, color_type, compression, filter_method, interlace = unpack_header(first.data)
	if not (0 < width <= MAX_DIMENSION and 0 < height <= MAX_DIMENSION):
		raise MissingHeaderError(f"invalid image size {width}x{height}")
	if not is_valid_combination(color_type, bit_depth):
		raise MissingHeaderError(f"invalid color type {color_type} with bit depth {bit_depth}")
	if compression != 0 or filter_method != 0 or interlace not in (0, 1):
		raise MissingHeaderError("IHDR uses an unknown compression, filter or interlace method")
	return width, height, bit_depth, color_type, interlace


def _check_palette(data: bytes, color_type: int) -> Optional[bytes]:
	if color_type in (ColorType.GRAYSCALE, ColorType.GRAYSCALE_ALPHA):
		raise CorruptImageDataError("PLTE chunk not allowed for grayscale images")
	if not data or len(data) % 3 or len(data) > 256 * 3:
		raise CorruptImageDataError(f"PLTE chunk has invalid length {len(data)}")
	if color_type != ColorType.PALETTE:
		# suggested palette for truecolor images, not needed to rebuild the pixels
		return None
	return data


def _check_transparency(data: bytes, color_type: int) -> Optional[bytes]:
	expected = {ColorType.GRAYSCALE: 2, ColorType.RGB: 6}.get(ColorType(color_type))
	if color_type == ColorType.PALETTE:
		if 0 < len(data) <= 256:
			return data
	elif expected is not None and len(data) == expected:
		return data
	logger.warning("Ignoring invalid tRNS chunk for color type %d", color_type)
	return None


def _inflate(data: bytes, limit: int) -> bytes:
	"""Inflate IDAT, refusing to produce more than the `limit` bytes the header allows."""
	inflater = zlib.decompressobj()
	try:
		raw = inflater.decompress(data, min(limit + 1, sys.maxsize))
	except zlib.error as exc:
		raise CorruptImageDataError(f"image data does not decompress: {exc}") from exc
	if len(raw) > limit:
		raise CorruptImageDataError(f"image data inflates past the {limit} bytes its header allows")
	if not inflater.eof:
		raise CorruptImageDataError("image data stream is truncated")
	if len(raw) != limit:
		raise CorruptImageDataError(f"image data is {len(raw)} bytes, expected {limit}")
	return raw


def _unfilter(raw: bytes, row_bytes: int, height: int, unit: int) -> np.ndarray:
	"""Undo per-scanline filtering; returns a (height, row_bytes) uint8 array."""
	stride = row_bytes + 1
	if len(raw) != stride * height:
		raise CorruptImageDataError(
			f"image data is {len(raw)} bytes, expected {stride * height}"
		)
	rows = np.frombuffer(raw, dtype=np.uint8).reshape(height, stride)
	out = np.empty((height, row_bytes), dtype=np.uint8)
	prev = np.zeros(row_bytes, dtype=np.uint8)
	for y in range(height):
		filter_type = int(rows[y, 0])
		line = rows[y, 1:]
		if filter_type == 0:
			cur = line
		elif filter_type == 1:
			cur = _undo_sub(line, unit)
		elif filter_type == 2:
			cur = line + prev
		elif filter_type == 3:
			cur = _undo_average(line, prev, unit)
		elif filter_type == 4:
			cur = _undo_paeth(line, prev, unit)
		else:
			raise CorruptImageDataError(f"unknown filter type {filter_type} on row {y}")
		out[y] = cur
		prev = out[y]
	return out


def _undo_sub(line: np.ndarray, unit: int) -> np.ndarray:
	# running sum per byte position within a pixel, wrapping at 256
	return np.cumsum(line.reshape(-1, unit), axis=0, dtype=np.uint8).reshape(-1)


def _undo_average(line: np.ndarray, prev: np.ndarray, unit: int) -> np.ndarray:
	cur = bytearray(line.tobytes())
	up = prev.tobytes()
	for i in range(min(unit, len(cur))):
		cur[i] = (cur[i] + (up[i] >> 1)) & 0xFF
	for i in range(unit, len(cur)):
		cur[i] = (cur[i] + ((cur[i - unit] + up[i]) >> 1)) & 0xFF
	return np.frombuffer(bytes(cur), dtype=np.uint8)


def _undo_paeth(line: np.ndarray, prev: np.ndarray, unit: int) -> np.ndarray:
	if not prev.any():
		# above and upper-left are zero, so Paeth always predicts the left byte
		return _undo_sub(line, unit)
	cur = bytearray(line.tobytes())
	up = prev.tobytes()
	for i in range(min(unit, len(cur))):
		cur[i] = (cur[i] + up[i]) & 0xFF
	for i in range(unit, len(cur)):
		a = cur[i - unit]
		b = up[i]
		c = up[i - unit]
		# distances of p = a + b - c to a, b and c
		pb = a - c
		pa = b - c
		pc = abs(pa + pb)
		pa = abs(pa)
		pb = abs(pb)
		if pa <= pb and pa <= pc:
			pred = a
		elif pb <= pc:
			pred = b
		else:
			pred = c
		cur[i] = (cur[i] + pred) & 0xFF
	return np.frombuffer(bytes(cur), dtype=np.uint8)


def _adam7_passes(width: int, height: int) -> Iterator[Tuple[int, int, int, int, int, int]]:
	"""Yield (x0, y0, dx, dy, pass_width, pass_height) for every non-empty pass."""
	for x0, y0, dx, dy in ADAM7_PASSES:
		pass_w = (width - x0 + dx - 1) // dx
		pass_h = (height - y0 + dy - 1) // dy
		if pass_w > 0 and pass_h > 0:
			yield x0, y0, dx, dy, pass_w, pass_h


def _filtered_size(raster: ImageRaster, interlace: int) -> int:
	"""Size of the inflated IDAT stream the header calls for, filter bytes included."""
	if not interlace:
		return (raster.row_bytes + 1) * raster.height
	return sum(
		(scanline_bytes(pass_w, raster.bits_per_pixel) + 1) * pass_h
		for _, _, _, _, pass_w, pass_h in _adam7_passes(raster.width, raster.height)
	)


def _deinterlace(raw: bytes, raster: ImageRaster) -> bytes:
	"""Reassemble the seven Adam7 sub-images into one non-interlaced buffer.

	Whole-byte pixels are moved as byte groups; sub-byte pixels are unpacked to
	bits first so every depth goes through the same scatter.
	"""
	bpp = raster.bits_per_pixel
	by_bytes = bpp % 8 == 0
	unit = bpp // 8 if by_bytes else bpp
	full = np.zeros((raster.height, raster.width, unit), dtype=np.uint8)
	offset = 0
	for x0, y0, dx, dy, pass_w, pass_h in _adam7_passes(raster.width, raster.height):
		row_bytes = scanline_bytes(pass_w, bpp)
		size = (row_bytes + 1) * pass_h
		rows = _unfilter(raw[offset:offset + size], row_bytes, pass_h, raster.filter_unit)
		offset += size
		if not by_bytes:
			rows = np.unpackbits(rows, axis=1)[:, :pass_w * bpp]
		full[y0::dy, x0::dx] = rows.reshape(pass_h, pass_w, unit)
	flat = full.reshape(raster.height, raster.width * unit)
	if not by_bytes:
		flat = np.packbits(flat, axis=1)
	return flat.tobytes()
