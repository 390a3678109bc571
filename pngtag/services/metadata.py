from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from pngtag.services.edit_policy import EditPolicy, apply_edit
from pngtag.services.file_store import read_bytes, write_bytes_atomic
from pngtag.services.png_decoder import decode
from pngtag.services.png_encoder import encode
from pngtag.services.png_format import ImageRaster, MetadataEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifyResult:
	key: str
	values: List[str]
	expected: Optional[str] = None

	@property
	def found(self) -> bool:
		return bool(self.values)

	@property
	def matched(self) -> bool:
		if not self.found:
			return False
		return self.expected is None or self.expected in self.values


def read_png(path: Union[str, Path]) -> Tuple[ImageRaster, List[MetadataEntry]]:
	return decode(read_bytes(path))


def read_metadata(path: Union[str, Path]) -> List[MetadataEntry]:
	_, entries = read_png(path)
	return entries


def find_values(entries: Iterable[MetadataEntry], key: str) -> List[str]:
	return [v for k, v in entries if k == key]


def verify_metadata(path: Union[str, Path], key: str, expected: Optional[str] = None) -> VerifyResult:
	return VerifyResult(key=key, values=find_values(read_metadata(path), key), expected=expected)


def tag_file(
	path: Union[str, Path],
	key: str,
	value: str,
	policy: EditPolicy = EditPolicy.REPLACE,
) -> List[MetadataEntry]:
	"""Set `key` to `value` inside the PNG at `path` and return the entries written.

	The file is only touched by the final atomic rename; decode, edit or encode
	failures propagate with the original bytes still in place.
	"""
	raster, entries = read_png(path)
	updated = apply_edit(entries, key, value, policy)
	data = encode(raster, updated)
	write_bytes_atomic(path, data)
	logger.info("Tagged %s: %s=%r (%s, %d entries)", path, key, value, EditPolicy(policy).value, len(updated))
	return updated
