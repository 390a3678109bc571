from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from pngtag.services.config_store import Config, load_config, resolve_folder, resolve_image_path, save_config
from pngtag.services.edit_policy import EditPolicy
from pngtag.services.errors import MissingFileError, StorageError, TagError
from pngtag.services.metadata import read_metadata, tag_file, verify_metadata
from pngtag.services.scanner import format_from_extension, list_image_files, scan_with_tags

logger = logging.getLogger("pngtag")


def _print_table(headers: Sequence[str], rows: List[Sequence[str]]) -> None:
	widths = [len(h) for h in headers]
	for row in rows:
		widths = [max(w, len(str(c))) for w, c in zip(widths, row)]
	line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
	print(line.rstrip())
	print("  ".join("-" * w for w in widths))
	for row in rows:
		print("  ".join(str(c).ljust(w) for c, w in zip(row, widths)).rstrip())


def _folder(args: argparse.Namespace, config: Config) -> Path:
	folder = resolve_folder(args.folder, config)
	if folder is None:
		raise SystemExit("error: no folder given and no default folder configured (see `pngtag set-folder`)")
	return folder


def cmd_scan(args: argparse.Namespace, config: Config) -> int:
	folder = _folder(args, config)
	files = list_image_files(folder)
	if not files:
		print(f"No images found in: {folder}")
		return 0
	_print_table(["File", "Format"], [(p.name, format_from_extension(p).value) for p in files])
	return 0


def cmd_add(args: argparse.Namespace, config: Config) -> int:
	path = resolve_image_path(args.file, config)
	entries = tag_file(path, args.key, args.value, EditPolicy(args.policy))
	print(f"Metadata added to {path}: '{args.key}: {args.value}'")
	_print_table(["Key", "Value"], entries)
	return 0


def cmd_view(args: argparse.Namespace, config: Config) -> int:
	path = resolve_image_path(args.file, config)
	entries = read_metadata(path)
	if not entries:
		print(f"No metadata found in {path}")
		return 0
	_print_table(["Key", "Value"], entries)
	return 0


def cmd_verify(args: argparse.Namespace, config: Config) -> int:
	path = resolve_image_path(args.file, config)
	result = verify_metadata(path, args.key, args.expect)
	if not result.found:
		print(f"Metadata key '{args.key}' not found in {path}", file=sys.stderr)
		return 1
	for value in result.values:
		print(f"Metadata found: Key: {args.key}, Value: {value}")
	if not result.matched:
		print(f"Value mismatch for '{args.key}': expected {args.expect!r}", file=sys.stderr)
		return 1
	return 0


def cmd_list(args: argparse.Namespace, config: Config) -> int:
	folder = _folder(args, config)
	results = scan_with_tags(folder)
	if not results:
		print(f"No images found in: {folder}")
		return 0
	rows = []
	for item in results:
		if item.error is not None:
			rows.append((item.path.name, "!", item.error.message))
		elif not item.entries:
			rows.append((item.path.name, "", "(no metadata)"))
		else:
			rows.extend((item.path.name, k, v) for k, v in item.entries)
	_print_table(["File", "Key", "Value"], rows)
	return 0


def cmd_set_folder(args: argparse.Namespace, config: Config) -> int:
	folder = Path(args.folder).expanduser()
	if not folder.exists():
		raise MissingFileError(folder)
	if not folder.is_dir():
		raise StorageError(f"not a directory: {folder}", folder)
	config.default_folder = str(folder.resolve())
	saved = save_config(config, args.config)
	print(f"Default folder set to: {config.default_folder} ({saved})")
	return 0


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="pngtag", description="Tag PNG images with tEXt metadata")
	parser.add_argument("--config", default=None, help="Config file (default: $PNGTAG_CONFIG or ./config.json)")
	parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
	sub = parser.add_subparsers(dest="command", required=True)

	p = sub.add_parser("scan", help="List candidate images in a folder")
	p.add_argument("folder", nargs="?", help="Folder to scan (default: configured folder)")
	p.set_defaults(func=cmd_scan)

	p = sub.add_parser("add", help="Add or update a metadata key in a PNG")
	p.add_argument("file")
	p.add_argument("key")
	p.add_argument("value")
	p.add_argument(
		"--policy",
		choices=[e.value for e in EditPolicy],
		default=EditPolicy.REPLACE.value,
		help="What to do when the key exists: replace it or append '; value'",
	)
	p.set_defaults(func=cmd_add)

	p = sub.add_parser("view", help="Show all metadata of a PNG")
	p.add_argument("file")
	p.set_defaults(func=cmd_view)

	p = sub.add_parser("verify", help="Check that a key is present (and optionally its value)")
	p.add_argument("file")
	p.add_argument("key")
	p.add_argument("--expect", default=None, help="Value the key must have")
	p.set_defaults(func=cmd_verify)

	p = sub.add_parser("list", help="List every image in a folder with its tags")
	p.add_argument("folder", nargs="?", help="Folder to list (default: configured folder)")
	p.set_defaults(func=cmd_list)

	p = sub.add_parser("set-folder", help="Remember a default folder for bare file names")
	p.add_argument("folder")
	p.set_defaults(func=cmd_set_folder)
	return parser


def _setup_logging(verbosity: int) -> None:
	level = logging.WARNING
	if verbosity == 1:
		level = logging.INFO
	elif verbosity >= 2:
		level = logging.DEBUG
	logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	_setup_logging(args.verbose)
	config = load_config(args.config)
	try:
		return args.func(args, config)
	except TagError as exc:
		logger.debug("%s failed", args.command, exc_info=True)
		print(f"error: {exc.message}", file=sys.stderr)
		return 1


if __name__ == "__main__":
	raise SystemExit(main())
