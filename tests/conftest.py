"""Pytest configuration and fixtures."""

import hashlib
import struct
import zlib
from io import BytesIO
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pytest
from PIL import Image, PngImagePlugin

SIGNATURE = b"\x89PNG\r\n\x1a\n"

ADAM7 = ((0, 0, 8, 8), (4, 0, 8, 8), (0, 4, 4, 8), (2, 0, 4, 4), (0, 2, 2, 4), (1, 0, 2, 2), (0, 1, 1, 2))

# 2x2 RGB, 12 samples
RGB_2X2 = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (10, 20, 30)]


def chunk(chunk_type: bytes, data: bytes) -> bytes:
	crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
	return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def pack_row(values: Sequence[int], bits_per_pixel: int) -> bytes:
	"""Pack one scanline of pixel values (each `bits_per_pixel` wide) MSB first."""
	bits = "".join(format(v, f"0{bits_per_pixel}b") for v in values)
	bits += "0" * (-len(bits) % 8)
	return int(bits, 2).to_bytes(len(bits) // 8, "big") if bits else b""


def _paeth(a: int, b: int, c: int) -> int:
	p = a + b - c
	pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
	if pa <= pb and pa <= pc:
		return a
	if pb <= pc:
		return b
	return c


def filter_row(filter_type: int, row: bytes, prev: bytes, unit: int) -> bytes:
	out = bytearray([filter_type])
	for i, x in enumerate(row):
		a = row[i - unit] if i >= unit else 0
		b = prev[i]
		c = prev[i - unit] if i >= unit else 0
		pred = (0, a, b, (a + b) // 2, _paeth(a, b, c))[filter_type]
		out.append((x - pred) & 0xFF)
	return bytes(out)


def filtered_stream(rows: List[bytes], unit: int, filters: Sequence[int]) -> bytes:
	out = bytearray()
	prev = bytes(len(rows[0])) if rows else b""
	for y, row in enumerate(rows):
		out += filter_row(filters[y % len(filters)], row, prev, unit)
		prev = row
	return bytes(out)


def build_png(
	width: int,
	height: int,
	color_type: int,
	bit_depth: int,
	pixels: List[List[int]],
	filters: Sequence[int] = (0,),
	interlace: bool = False,
	before_idat: Sequence[Tuple[bytes, bytes]] = (),
	after_idat: Sequence[Tuple[bytes, bytes]] = (),
	idat_override: Optional[bytes] = None,
) -> bytes:
	"""Build a PNG by hand from rows of pixel values.

	Each pixel is one integer holding all of its channels (e.g. 0xRRGGBB for RGB 8-bit).
	"""
	channels = {0: 1, 2: 3, 3: 1, 4: 2, 6: 4}[color_type]
	bpp = channels * bit_depth
	unit = max(1, bpp // 8)
	if interlace:
		raw = bytearray()
		for x0, y0, dx, dy in ADAM7:
			sub = [row[x0::dx] for row in pixels[y0::dy]]
			sub = [r for r in sub if r]
			if sub:
				raw += filtered_stream([pack_row(r, bpp) for r in sub], unit, filters)
		raw = bytes(raw)
	else:
		raw = filtered_stream([pack_row(r, bpp) for r in pixels], unit, filters)
	header = struct.pack(">IIBBBBB", width, height, bit_depth, color_type, 0, 0, 1 if interlace else 0)
	body = chunk(b"IHDR", header)
	for ctype, data in before_idat:
		body += chunk(ctype, data)
	body += chunk(b"IDAT", zlib.compress(raw) if idat_override is None else idat_override)
	for ctype, data in after_idat:
		body += chunk(ctype, data)
	return SIGNATURE + body + chunk(b"IEND", b"")


def expected_pixels(pixels: List[List[int]], bits_per_pixel: int) -> bytes:
	return b"".join(pack_row(r, bits_per_pixel) for r in pixels)


def sha256(path: Path) -> str:
	return hashlib.sha256(path.read_bytes()).hexdigest()


def chunk_types(data: bytes) -> List[bytes]:
	types = []
	pos = 8
	while pos < len(data):
		length, ctype = struct.unpack_from(">I4s", data, pos)
		types.append(ctype)
		pos += 12 + length
	return types


@pytest.fixture
def make_png(tmp_path: Path) -> Callable[..., Path]:
	"""Save a Pillow image as PNG in tmp_path, optionally with tEXt entries."""

	def _make(img: Image.Image, name: str = "image.png", texts: Sequence[Tuple[str, str]] = ()) -> Path:
		info = PngImagePlugin.PngInfo()
		for key, value in texts:
			info.add_text(key, value)
		path = tmp_path / name
		img.save(path, format="PNG", pnginfo=info)
		return path

	return _make


@pytest.fixture
def rgb_image() -> Image.Image:
	img = Image.new("RGB", (2, 2))
	img.putdata(RGB_2X2)
	return img


@pytest.fixture
def rgb_png(make_png, rgb_image) -> Path:
	return make_png(rgb_image, "photo.png")


@pytest.fixture
def jpeg_file(tmp_path: Path) -> Path:
	path = tmp_path / "holiday.jpg"
	Image.new("RGB", (8, 8), (200, 100, 50)).save(path, format="JPEG")
	return path


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
	path = tmp_path / "config.json"
	monkeypatch.setenv("PNGTAG_CONFIG", str(path))
	return path


@pytest.fixture
def oversized_gif(tmp_path: Path) -> Path:
	"""A tiny GIF whose header claims 65535x65535, saved under a .jpg name."""
	buf = BytesIO()
	Image.new("L", (1, 1)).save(buf, format="GIF")
	data = bytearray(buf.getvalue())
	data[6:10] = b"\xff\xff\xff\xff"
	path = tmp_path / "huge.jpg"
	path.write_bytes(bytes(data))
	return path
