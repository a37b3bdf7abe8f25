"""Storage interfaces and records for generated app artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class AppRecord:
  """Target artifact a generation job fills in."""

  app_id: str
  owner_id: str
  name: str
  description: str
  created_at: str
  updated_at: str
  subtitle: str | None = None
  category: str | None = None
  style_guide: str | None = None
  icon_storage_id: str | None = None
  cover_image_storage_id: str | None = None
  cover_video_storage_id: str | None = None
  concept_id: str | None = None


@dataclass(frozen=True)
class ScreenRecord:
  """One generated screen image attached to an app."""

  screen_id: str
  app_id: str
  position: int
  name: str
  storage_id: str
  width: int
  height: int
  size_bytes: int
  created_at: str


class ArtifactsRepository(Protocol):
  """Repository contract for apps and their screens."""

  async def create_app(self, record: AppRecord) -> None:
    """Persist a new app placeholder."""

  async def get_app(self, app_id: str) -> AppRecord | None:
    """Fetch an app by identifier."""

  async def update_app(
    self,
    app_id: str,
    *,
    name: str | None = None,
    subtitle: str | None = None,
    description: str | None = None,
    category: str | None = None,
    style_guide: str | None = None,
    icon_storage_id: str | None = None,
    cover_image_storage_id: str | None = None,
    cover_video_storage_id: str | None = None,
  ) -> AppRecord | None:
    """Apply a field-subset update to an app."""

  async def add_screen(self, record: ScreenRecord) -> None:
    """Persist a generated screen."""

  async def list_screens(self, app_id: str) -> list[ScreenRecord]:
    """Return an app's screens ordered by position."""
