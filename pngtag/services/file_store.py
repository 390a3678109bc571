from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Union

from pngtag.services.errors import StorageError

logger = logging.getLogger(__name__)


def read_bytes(path: Union[str, Path]) -> bytes:
	path = Path(path)
	try:
		with path.open("rb") as f:
			return f.read()
	except OSError as exc:
		raise StorageError.from_os_error(exc, path) from exc


def write_bytes_atomic(path: Union[str, Path], data: bytes) -> None:
	"""Replace the contents of `path` with `data` without ever exposing a partial file.

	The bytes go to a temporary file in the same directory, are flushed to disk
	and then renamed over the target. On failure the target is left as it was.
	"""
	path = Path(path)
	directory = path.parent
	try:
		mode = stat.S_IMODE(path.stat().st_mode)
	except FileNotFoundError:
		mode = None
	except OSError as exc:
		raise StorageError.from_os_error(exc, path) from exc

	try:
		fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(directory))
	except OSError as exc:
		raise StorageError.from_os_error(exc, directory) from exc
	tmp_path = Path(tmp_name)
	try:
		with os.fdopen(fd, "wb") as f:
			f.write(data)
			f.flush()
			os.fsync(f.fileno())
		if mode is not None:
			os.chmod(tmp_path, mode)
		os.replace(tmp_path, path)
	except OSError as exc:
		_discard(tmp_path)
		raise StorageError(f"cannot write {path}: {exc.strerror or exc}", path) from exc
	except BaseException:
		_discard(tmp_path)
		raise
	_sync_directory(directory)


def _discard(tmp_path: Path) -> None:
	try:
		tmp_path.unlink()
	except FileNotFoundError:
		pass
	except OSError as exc:
		logger.warning("Could not remove temporary file %s: %s", tmp_path, exc)
	else:
		logger.debug("Removed temporary file %s", tmp_path)


def _sync_directory(directory: Path) -> None:
	# makes the rename itself durable; not possible on every platform
	if os.name != "posix":
		return
	try:
		fd = os.open(str(directory), os.O_RDONLY)
	except OSError as exc:
		logger.debug("Cannot open %s to sync the rename: %s", directory, exc)
		return
	try:
		os.fsync(fd)
	except OSError as exc:
		logger.debug("fsync on directory %s failed: %s", directory, exc)
	finally:
		os.close(fd)
