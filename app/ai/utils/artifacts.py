from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from app.ai.pipeline.contracts import DEFAULT_SCREEN_HEIGHT, DEFAULT_SCREEN_WIDTH

logger = logging.getLogger(__name__)

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp", "video/mp4": "mp4", "video/webm": "webm"}


def measure_image(data: bytes) -> tuple[int, int] | None:
  """Read pixel dimensions from encoded image bytes without decoding the full image."""
  try:
    with Image.open(io.BytesIO(data)) as image:
      return image.size
  except (UnidentifiedImageError, OSError) as exc:
    logger.debug("Could not measure image (%d bytes): %s", len(data), exc)
    return None


def resolve_screen_dimensions(width: int | None, height: int | None, data: bytes) -> tuple[int, int]:
  """Prefer provider-reported dimensions, then measured ones, then the default phone canvas."""
  if width and height:
    return width, height
  measured = measure_image(data)
  if measured is not None:
    return measured
  return DEFAULT_SCREEN_WIDTH, DEFAULT_SCREEN_HEIGHT


def extension_for(content_type: str | None, *, default: str = "png") -> str:
  if not content_type:
    return default
  base = content_type.split(";", 1)[0].strip().lower()
  return _EXTENSIONS.get(base, default)
