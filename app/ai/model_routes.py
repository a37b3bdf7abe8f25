"""Static route table: which backend serves each (operation, tier) and what to fall back to."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class Operation(str, Enum):
  """Abstract generation operations the router understands."""

  TEXT_TO_IMAGE = "text_to_image"
  IMAGE_EDIT = "image_edit"
  TEXT_TO_VIDEO = "text_to_video"
  IMAGE_TO_VIDEO = "image_to_video"

  @property
  def is_video(self) -> bool:
    return self in {Operation.TEXT_TO_VIDEO, Operation.IMAGE_TO_VIDEO}


class Tier(str, Enum):
  """Quality/speed/cost preference used to pick a route."""

  QUALITY = "quality"
  DEFAULT = "default"
  FAST = "fast"


# Params owned by the route entry; a caller cannot override them.
ROUTING_PARAMS = frozenset({"duration", "resolution"})


@dataclass(frozen=True)
class RouteEntry:
  backend_id: str
  params: Mapping[str, Any] = field(default_factory=dict)

  def __post_init__(self) -> None:
    # Freeze params so the shared table cannot be mutated through an entry.
    object.__setattr__(self, "params", MappingProxyType(dict(self.params)))


@dataclass(frozen=True)
class RouteConfig:
  operation: Operation
  tier: Tier
  primary: RouteEntry
  fallbacks: tuple[RouteEntry, ...] = ()

  @property
  def entries(self) -> tuple[RouteEntry, ...]:
    """Primary followed by fallbacks, in attempt order."""
    return (self.primary, *self.fallbacks)


@dataclass(frozen=True)
class UseCasePreset:
  tier: Tier
  duration: int
  aspect_ratio: str
  resolution: str


KLING_TEXT_TO_VIDEO = "kling-text-to-video"
KLING_IMAGE_TO_VIDEO = "kling-image-to-video"
SEEDANCE_TEXT_TO_VIDEO = "seedance-text-to-video"
SEEDANCE_IMAGE_TO_VIDEO = "seedance-image-to-video"
LUCY_IMAGE_TO_VIDEO = "lucy-image-to-video"
HAILUO_IMAGE_TO_VIDEO = "hailuo-image-to-video"
GEMINI_FLASH_IMAGE = "gemini-flash-image"
GEMINI_FLASH_IMAGE_EDIT = "gemini-flash-image-edit"
NANO_BANANA_EDIT = "nano-banana-edit"
SEEDREAM_TEXT_TO_IMAGE = "seedream-v4-text-to-image"
FLUX_DEV = "flux-dev"
FLUX_SCHNELL = "flux-schnell"
FLUX_PRO = "flux-pro"


def _route(operation: Operation, tier: Tier, primary: RouteEntry, *fallbacks: RouteEntry) -> RouteConfig:
  return RouteConfig(operation=operation, tier=tier, primary=primary, fallbacks=tuple(fallbacks))


_ROUTE_LIST: tuple[RouteConfig, ...] = (
  # Quality: best output, cost secondary.
  _route(
    Operation.TEXT_TO_VIDEO,
    Tier.QUALITY,
    RouteEntry(KLING_TEXT_TO_VIDEO, {"duration": 10, "aspect_ratio": "16:9", "cfg_scale": 0.7}),
    RouteEntry(KLING_TEXT_TO_VIDEO, {"duration": 5, "aspect_ratio": "16:9", "cfg_scale": 0.5}),
    RouteEntry(SEEDANCE_TEXT_TO_VIDEO, {"duration": 10, "resolution": "1080p", "aspect_ratio": "16:9"}),
  ),
  _route(
    Operation.IMAGE_TO_VIDEO,
    Tier.QUALITY,
    RouteEntry(KLING_IMAGE_TO_VIDEO, {"duration": 10, "cfg_scale": 0.7}),
    RouteEntry(KLING_IMAGE_TO_VIDEO, {"duration": 5, "cfg_scale": 0.5}),
  ),
  _route(
    Operation.TEXT_TO_IMAGE,
    Tier.QUALITY,
    RouteEntry(SEEDREAM_TEXT_TO_IMAGE, {}),
    RouteEntry(GEMINI_FLASH_IMAGE, {}),
    RouteEntry(FLUX_PRO, {}),
  ),
  _route(
    Operation.IMAGE_EDIT,
    Tier.QUALITY,
    RouteEntry(GEMINI_FLASH_IMAGE_EDIT, {}),
    RouteEntry(NANO_BANANA_EDIT, {}),
  ),
  # Default: balanced quality, speed and cost.
  _route(
    Operation.TEXT_TO_VIDEO,
    Tier.DEFAULT,
    RouteEntry(SEEDANCE_TEXT_TO_VIDEO, {"duration": 5, "resolution": "720p", "aspect_ratio": "16:9"}),
    RouteEntry(SEEDANCE_TEXT_TO_VIDEO, {"duration": 5, "resolution": "480p", "aspect_ratio": "16:9"}),
    RouteEntry(KLING_TEXT_TO_VIDEO, {"duration": 5, "aspect_ratio": "16:9"}),
  ),
  _route(
    Operation.IMAGE_TO_VIDEO,
    Tier.DEFAULT,
    RouteEntry(SEEDANCE_IMAGE_TO_VIDEO, {"duration": 5, "resolution": "720p"}),
    RouteEntry(LUCY_IMAGE_TO_VIDEO, {"sync_mode": False, "aspect_ratio": "16:9"}),
    RouteEntry(SEEDANCE_IMAGE_TO_VIDEO, {"duration": 5, "resolution": "480p"}),
  ),
  _route(
    Operation.TEXT_TO_IMAGE,
    Tier.DEFAULT,
    RouteEntry(GEMINI_FLASH_IMAGE, {}),
    RouteEntry(SEEDREAM_TEXT_TO_IMAGE, {}),
    RouteEntry(FLUX_DEV, {}),
  ),
  _route(
    Operation.IMAGE_EDIT,
    Tier.DEFAULT,
    RouteEntry(GEMINI_FLASH_IMAGE_EDIT, {}),
    RouteEntry(NANO_BANANA_EDIT, {}),
  ),
  # Fast: quick iterations and drafts.
  _route(
    Operation.TEXT_TO_VIDEO,
    Tier.FAST,
    RouteEntry(SEEDANCE_TEXT_TO_VIDEO, {"duration": 3, "resolution": "480p", "aspect_ratio": "16:9"}),
    RouteEntry(SEEDANCE_TEXT_TO_VIDEO, {"duration": 5, "resolution": "480p", "aspect_ratio": "1:1"}),
  ),
  _route(
    Operation.IMAGE_TO_VIDEO,
    Tier.FAST,
    RouteEntry(LUCY_IMAGE_TO_VIDEO, {"sync_mode": True, "aspect_ratio": "16:9"}),
    RouteEntry(SEEDANCE_IMAGE_TO_VIDEO, {"duration": 3, "resolution": "480p"}),
  ),
  _route(
    Operation.TEXT_TO_IMAGE,
    Tier.FAST,
    RouteEntry(FLUX_SCHNELL, {}),
    RouteEntry(GEMINI_FLASH_IMAGE, {}),
  ),
  _route(
    Operation.IMAGE_EDIT,
    Tier.FAST,
    RouteEntry(NANO_BANANA_EDIT, {}),
    RouteEntry(GEMINI_FLASH_IMAGE_EDIT, {}),
  ),
)

ROUTES: Mapping[tuple[Operation, Tier], RouteConfig] = MappingProxyType({(route.operation, route.tier): route for route in _ROUTE_LIST})

USE_CASE_PRESETS: Mapping[str, UseCasePreset] = MappingProxyType(
  {
    "app_preview": UseCasePreset(tier=Tier.DEFAULT, duration=5, aspect_ratio="9:16", resolution="720p"),
    "marketing": UseCasePreset(tier=Tier.QUALITY, duration=10, aspect_ratio="16:9", resolution="1080p"),
    "social": UseCasePreset(tier=Tier.DEFAULT, duration=5, aspect_ratio="1:1", resolution="720p"),
    "draft": UseCasePreset(tier=Tier.FAST, duration=3, aspect_ratio="16:9", resolution="480p"),
    "bulk": UseCasePreset(tier=Tier.FAST, duration=3, aspect_ratio="1:1", resolution="480p"),
  }
)


def all_backend_ids() -> set[str]:
  """Every backend id referenced by the route table."""
  return {entry.backend_id for route in _ROUTE_LIST for entry in route.entries}
