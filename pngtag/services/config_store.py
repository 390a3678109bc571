from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Union

from pngtag.services.errors import StorageError

logger = logging.getLogger(__name__)

CONFIG_ENV = "PNGTAG_CONFIG"
CONFIG_PATH = Path("config.json")


@dataclass
class Config:
	default_folder: Optional[str] = None


def config_path(path: Optional[Union[str, Path]] = None) -> Path:
	if path is not None:
		return Path(path)
	env = os.environ.get(CONFIG_ENV)
	return Path(env) if env else CONFIG_PATH


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
	"""Read the saved preferences; a missing or unreadable file yields the defaults."""
	config_file = config_path(path)
	if not config_file.exists():
		return Config()
	try:
		with config_file.open("r", encoding="utf-8") as f:
			data = json.load(f)
	except (OSError, ValueError) as exc:
		logger.warning("Ignoring unreadable config %s: %s", config_file, exc)
		return Config()
	if not isinstance(data, dict):
		logger.warning("Ignoring config %s: expected a JSON object", config_file)
		return Config()
	folder = data.get("default_folder")
	return Config(default_folder=folder if isinstance(folder, str) and folder else None)


def save_config(config: Config, path: Optional[Union[str, Path]] = None) -> Path:
	config_file = config_path(path)
	try:
		config_file.parent.mkdir(parents=True, exist_ok=True)
		with config_file.open("w", encoding="utf-8") as f:
			json.dump(asdict(config), f, indent=2)
	except OSError as exc:
		raise StorageError.from_os_error(exc, config_file) from exc
	return config_file


def resolve_image_path(name: Union[str, Path], config: Config) -> Path:
	"""Turn a user-supplied file name into a path.

	Bare names (no directory part) are looked up in the configured default
	folder; anything else is used as given.
	"""
	path = Path(name).expanduser()
	if path.is_absolute() or not config.default_folder:
		return path
	if len(path.parts) == 1:
		return Path(config.default_folder).expanduser() / path
	return path


def resolve_folder(folder: Optional[Union[str, Path]], config: Config) -> Optional[Path]:
	if folder:
		return Path(folder).expanduser()
	if config.default_folder:
		return Path(config.default_folder).expanduser()
	return None
