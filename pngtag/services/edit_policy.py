from __future__ import annotations

from enum import Enum
from typing import Iterable, List

from pngtag.services.png_format import MetadataEntry


APPEND_SEPARATOR = "; "


class EditPolicy(str, Enum):
	"""How setting a key composes with entries that already use it.

	REPLACE is the default: re-tagging with the same value is idempotent.
	APPEND keeps a history by joining values with "; ".
	"""
	REPLACE = "replace"
	APPEND = "append"


def replace_entry(entries: Iterable[MetadataEntry], key: str, value: str) -> List[MetadataEntry]:
	"""Drop every entry for `key` and add one (key, value) at the end."""
	kept = [MetadataEntry(*e) for e in entries if e[0] != key]
	kept.append(MetadataEntry(key, value))
	return kept


def append_entry(entries: Iterable[MetadataEntry], key: str, value: str) -> List[MetadataEntry]:
	"""Extend the first entry for `key` with "; value", or add a new entry if none exists.

	Later duplicates of the key keep their position and value.
	"""
	out: List[MetadataEntry] = []
	merged = False
	for k, v in entries:
		if not merged and k == key:
			out.append(MetadataEntry(k, v + APPEND_SEPARATOR + value))
			merged = True
		else:
			out.append(MetadataEntry(k, v))
	if not merged:
		out.append(MetadataEntry(key, value))
	return out


def apply_edit(
	entries: Iterable[MetadataEntry],
	key: str,
	value: str,
	policy: EditPolicy = EditPolicy.REPLACE,
) -> List[MetadataEntry]:
	policy = EditPolicy(policy)
	if policy is EditPolicy.APPEND:
		return append_entry(entries, key, value)
	return replace_entry(entries, key, value)
