from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class TagError(Exception):
	"""Base class for every failure reported by pngtag operations."""

	code = "tag_error"

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class FormatError(TagError):
	code = "format_error"


class NotAPngError(FormatError):
	code = "not_a_png"

	def __init__(self, message: str = "not a valid PNG file (bad signature)") -> None:
		super().__init__(message)


class UnsupportedFormatError(NotAPngError):
	"""The bytes are a known image format, just not one whose metadata we handle."""

	code = "unsupported_format"

	def __init__(self, format_name: str) -> None:
		super().__init__(f"{format_name} files are recognized but metadata is only supported for PNG")
		self.format_name = format_name


class MissingHeaderError(FormatError):
	code = "missing_header"


class CorruptImageDataError(FormatError):
	code = "corrupt_image_data"


class UnsupportedColorTypeError(FormatError):
	code = "unsupported_color_type"


class KeyTooLongError(FormatError):
	code = "key_too_long"


class InvalidEncodingError(FormatError):
	code = "invalid_encoding"


class StorageError(TagError):
	code = "io_error"

	def __init__(self, message: str, path: Optional[Union[str, Path]] = None) -> None:
		super().__init__(message)
		self.path = None if path is None else Path(path)

	@classmethod
	def from_os_error(cls, exc: OSError, path: Union[str, Path]) -> "StorageError":
		if isinstance(exc, FileNotFoundError):
			return MissingFileError(path)
		reason = exc.strerror or str(exc)
		return cls(f"cannot access {path}: {reason}", path)


class MissingFileError(StorageError):
	code = "file_not_found"

	def __init__(self, path: Union[str, Path]) -> None:
		super().__init__(f"file not found: {path}", path)
