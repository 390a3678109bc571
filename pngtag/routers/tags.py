from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, Form, HTTPException, Query

from pngtag.services.config_store import load_config, resolve_folder, resolve_image_path
from pngtag.services.edit_policy import EditPolicy
from pngtag.services.metadata import read_metadata, tag_file, verify_metadata
from pngtag.services.png_format import MetadataEntry
from pngtag.services.scanner import format_from_extension, list_image_files, scan_with_tags


router = APIRouter(prefix="/tags", tags=["tags"])


def _entries(entries: List[MetadataEntry]) -> List[Dict[str, str]]:
	return [{"key": k, "value": v} for k, v in entries]


def _folder(folder: Optional[str]) -> Path:
	resolved = resolve_folder(folder, load_config())
	if resolved is None:
		raise HTTPException(status_code=400, detail="no folder given and no default folder configured")
	return resolved


@router.get("/scan", summary="List candidate image files in a folder")
def scan(folder: Optional[str] = Query(None)):
	target = _folder(folder)
	return {
		"folder": str(target),
		"files": [{"name": p.name, "format": format_from_extension(p).value} for p in list_image_files(target)],
	}


@router.get("/list", summary="List every image in a folder with its tags")
def list_tags(folder: Optional[str] = Query(None)):
	target = _folder(folder)
	files = []
	for item in scan_with_tags(target):
		record = {"name": item.path.name, "format": item.format.value, "entries": _entries(item.entries)}
		if item.error is not None:
			record["error"] = {"error": item.error.code, "message": item.error.message}
		files.append(record)
	return {"folder": str(target), "files": files}


@router.get("/file", summary="Read all tEXt metadata of a PNG")
def view(path: str = Query(...)):
	target = resolve_image_path(path, load_config())
	return {"path": str(target), "entries": _entries(read_metadata(target))}


@router.post("/file", summary="Add or update one metadata key in a PNG")
def add(
	path: str = Form(...),
	key: str = Form(...),
	value: str = Form(...),
	policy: EditPolicy = Form(EditPolicy.REPLACE),
):
	target = resolve_image_path(path, load_config())
	entries = tag_file(target, key, value, policy)
	return {"path": str(target), "policy": policy.value, "entries": _entries(entries)}


@router.get("/verify", summary="Check a metadata key (and optionally its value)")
def verify(path: str = Query(...), key: str = Query(...), expected: Optional[str] = Query(None)):
	target = resolve_image_path(path, load_config())
	result = verify_metadata(target, key, expected)
	return {
		"path": str(target),
		"key": key,
		"values": result.values,
		"expected": expected,
		"found": result.found,
		"matched": result.matched,
	}
