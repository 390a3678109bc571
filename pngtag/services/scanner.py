from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pngtag.services.errors import MissingFileError, StorageError, TagError
from pngtag.services.metadata import read_metadata
from pngtag.services.png_format import MetadataEntry

logger = logging.getLogger(__name__)


class ImageFormat(str, Enum):
	PNG = "PNG"
	JPEG = "JPEG"


EXTENSION_FORMATS = {
	".png": ImageFormat.PNG,
	".jpg": ImageFormat.JPEG,
	".jpeg": ImageFormat.JPEG,
}


@dataclass
class FileTags:
	path: Path
	format: ImageFormat
	entries: List[MetadataEntry] = field(default_factory=list)
	error: Optional[TagError] = None


def format_from_extension(path: Union[str, Path]) -> Optional[ImageFormat]:
	return EXTENSION_FORMATS.get(Path(path).suffix.lower())


def list_image_files(folder: Union[str, Path]) -> List[Path]:
	folder = Path(folder)
	if not folder.exists():
		raise MissingFileError(folder)
	if not folder.is_dir():
		raise StorageError(f"not a directory: {folder}", folder)
	try:
		candidates = [p for p in folder.iterdir() if p.is_file() and format_from_extension(p)]
	except OSError as exc:
		raise StorageError.from_os_error(exc, folder) from exc
	return sorted(candidates, key=lambda p: p.name)


def scan_with_tags(folder: Union[str, Path]) -> List[FileTags]:
	"""Read the tags of every candidate image in `folder`.

	Per-file failures (JPEG input, corrupt PNGs, permissions) are kept on the
	result instead of aborting the listing.
	"""
	results: List[FileTags] = []
	for path in list_image_files(folder):
		item = FileTags(path=path, format=format_from_extension(path))
		try:
			item.entries = read_metadata(path)
		except TagError as exc:
			logger.info("Cannot read tags of %s: %s", path, exc)
			item.error = exc
		results.append(item)
	return results
