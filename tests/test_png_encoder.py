"""Tests for PNG encoding and decode/encode round trips."""

import random
from io import BytesIO

import pytest
from PIL import Image

from conftest import chunk_types
from pngtag.services.errors import (
	CorruptImageDataError,
	InvalidEncodingError,
	KeyTooLongError,
	UnsupportedColorTypeError,
)
from pngtag.services.png_decoder import decode
from pngtag.services.png_encoder import encode
from pngtag.services.png_format import ColorType, ImageRaster, MetadataEntry


def _raster(color_type, bit_depth, width=5, height=3, seed=1, **extra) -> ImageRaster:
	shape = ImageRaster(width, height, color_type, bit_depth, b"")
	rng = random.Random(seed)
	pixels = bytes(rng.randrange(256) for _ in range(shape.expected_size))
	return ImageRaster(width, height, color_type, bit_depth, pixels, **extra)


def test_encode_readable_by_pillow(rgb_image):
	raster = ImageRaster(2, 2, ColorType.RGB, 8, rgb_image.tobytes())

	data = encode(raster, [MetadataEntry("Author", "Alice"), MetadataEntry("Caption", "café")])

	img = Image.open(BytesIO(data))
	assert img.format == "PNG"
	assert img.size == (2, 2)
	assert img.mode == "RGB"
	assert img.tobytes() == rgb_image.tobytes()
	assert img.text == {"Author": "Alice", "Caption": "café"}


def test_encode_chunk_order():
	raster = _raster(ColorType.RGB, 8)

	data = encode(raster, [("A", "1"), ("B", "2")])

	assert chunk_types(data) == [b"IHDR", b"tEXt", b"tEXt", b"IDAT", b"IEND"]


def test_encode_palette_chunk_order():
	raster = ImageRaster(5, 3, ColorType.PALETTE, 8, bytes(15), palette=bytes(range(256)) * 3, transparency=b"\x00\xff")

	data = encode(raster, [("Title", "x")])

	assert chunk_types(data) == [b"IHDR", b"PLTE", b"tRNS", b"tEXt", b"IDAT", b"IEND"]


def test_encode_without_entries():
	data = encode(_raster(ColorType.GRAYSCALE, 8), [])

	assert b"tEXt" not in chunk_types(data)


@pytest.mark.parametrize(
	"color_type,bit_depth",
	[
		(ColorType.GRAYSCALE, 1),
		(ColorType.GRAYSCALE, 2),
		(ColorType.GRAYSCALE, 4),
		(ColorType.GRAYSCALE, 8),
		(ColorType.GRAYSCALE, 16),
		(ColorType.RGB, 8),
		(ColorType.RGB, 16),
		(ColorType.GRAYSCALE_ALPHA, 8),
		(ColorType.GRAYSCALE_ALPHA, 16),
		(ColorType.RGBA, 8),
		(ColorType.RGBA, 16),
	],
)
def test_round_trip_identity(color_type, bit_depth):
	raster = _raster(color_type, bit_depth)
	entries = [MetadataEntry("Title", "one"), MetadataEntry("Title", "two"), MetadataEntry("Comment", "naïve")]

	assert decode(encode(raster, entries)) == (raster, entries)


@pytest.mark.parametrize("bit_depth", [1, 2, 4, 8])
def test_round_trip_palette(bit_depth):
	colors = 1 << bit_depth
	palette = bytes((i * 37) % 256 for i in range(colors * 3))
	raster = _raster(ColorType.PALETTE, bit_depth, palette=palette, transparency=b"\x10\x20")

	assert decode(encode(raster, [("k", "v")])) == (raster, [("k", "v")])


def test_round_trip_gray_and_rgb_transparency():
	gray = _raster(ColorType.GRAYSCALE, 16, transparency=b"\x01\x02")
	rgb = _raster(ColorType.RGB, 8, transparency=b"\x00\x01\x00\x02\x00\x03")

	assert decode(encode(gray, []))[0] == gray
	assert decode(encode(rgb, []))[0] == rgb


def test_large_image_spans_several_idat_chunks():
	raster = _raster(ColorType.RGB, 8, width=200, height=200, seed=3)

	data = encode(raster, [("Author", "Alice")])

	assert chunk_types(data).count(b"IDAT") >= 2
	assert decode(data) == (raster, [("Author", "Alice")])


def test_unknown_color_type():
	raster = ImageRaster(2, 2, 1, 8, bytes(4))

	with pytest.raises(UnsupportedColorTypeError):
		encode(raster, [])


@pytest.mark.parametrize(
	"raster",
	[
		ImageRaster(2, 2, ColorType.RGB, 4, bytes(4)),
		ImageRaster(2, 2, ColorType.PALETTE, 16, bytes(8)),
		ImageRaster(2, 2, ColorType.PALETTE, 8, bytes(4)),
		ImageRaster(2, 2, ColorType.RGBA, 8, bytes(16), transparency=b"\x00\x00"),
		ImageRaster(2, 2, ColorType.GRAYSCALE, 8, bytes(4), palette=b"\x00\x00\x00"),
		ImageRaster(2, 2, ColorType.RGB, 8, bytes(12), transparency=b"\x00"),
		ImageRaster(2, 2, ColorType.PALETTE, 8, bytes(4), palette=b"\x00" * 6, transparency=b"\x00" * 3),
		ImageRaster(1, 1, ColorType.PALETTE, 8, b"\x00", palette=b"\x00" * 3, transparency=b""),
	],
)
def test_unreproducible_color_configuration(raster):
	with pytest.raises(UnsupportedColorTypeError):
		encode(raster, [])


def test_pixel_buffer_size_mismatch():
	with pytest.raises(CorruptImageDataError):
		encode(ImageRaster(2, 2, ColorType.RGB, 8, bytes(11)), [])


def test_key_too_long():
	with pytest.raises(KeyTooLongError):
		encode(_raster(ColorType.RGB, 8), [("ok", "1"), ("x" * 80, "2")])


def test_value_outside_latin1():
	with pytest.raises(InvalidEncodingError):
		encode(_raster(ColorType.RGB, 8), [("Title", "東京")])
