from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)


def identify_format(data: bytes) -> Optional[str]:
	"""Name of the image format Pillow recognizes in `data` ("JPEG", "GIF", ...), or None."""
	try:
		with Image.open(BytesIO(data)) as img:
			return img.format
	except (OSError, ValueError):
		# UnidentifiedImageError is an OSError
		return None
	except Exception as exc:
		# DecompressionBombError and plugin parse failures on hostile headers
		logger.warning("Could not identify image format: %s: %s", type(exc).__name__, exc)
		return None
