"""Shared data contracts for the generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.ai.utils.cost import CostEstimate

DEFAULT_SCREEN_WIDTH = 1290
DEFAULT_SCREEN_HEIGHT = 2796


class AppGenerationRequest(BaseModel):
  """Inputs for one app generation job."""

  owner_id: str
  description: str = Field(min_length=1, max_length=4000)
  category_hint: str | None = None
  ui_style: str | None = None
  tier: str = "default"
  target_screen_count: int = Field(default=5, ge=1, le=8)
  canvas_url: str | None = None
  model_config = ConfigDict(extra="forbid")


class ConceptDescriptor(BaseModel):
  """App concept produced by the concept planner."""

  app_name: str = Field(min_length=1)
  app_subtitle: str = ""
  app_description: str = ""
  app_category: str = ""
  style_guide: str = ""
  app_icon_prompt: str = Field(min_length=1)
  cover_image_prompt: str = ""

  @property
  def full_description(self) -> str:
    if self.app_subtitle:
      return f"{self.app_subtitle}. {self.app_description}".strip()
    return self.app_description


class ScreenPlan(BaseModel):
  """One unit of the screens fan-out."""

  screen_name: str = Field(min_length=1)
  purpose: str = ""
  key_elements: list[str] = Field(default_factory=list)


class TabsPlan(BaseModel):
  has_tabs: bool = False
  tab_names: list[str] = Field(default_factory=list)


class StructurePlan(BaseModel):
  """Ordered screen list plus layout shared by every screen."""

  screens: list[ScreenPlan] = Field(min_length=1)
  common_layout_elements: str = ""
  tabs: TabsPlan = Field(default_factory=TabsPlan)


class ImprovedDescription(BaseModel):
  improved_description: str
  improved_style: str
  inferred_category: str


@dataclass(frozen=True)
class GeneratedAsset:
  """What a generation backend returns for one call."""

  asset_url: str
  width: int | None = None
  height: int | None = None
  measured_duration: float | None = None
  extra_urls: tuple[str, ...] = ()
  raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass
class GenerationAttemptResult:
  """Outcome of a routed generation call."""

  success: bool
  backend_id: str | None = None
  asset_url: str | None = None
  measured_duration: float | None = None
  width: int | None = None
  height: int | None = None
  error: str | None = None
  attempted_backends: list[str] = field(default_factory=list)
  cost: CostEstimate | None = None
  extra_urls: list[str] = field(default_factory=list)

  @property
  def asset_urls(self) -> list[str]:
    """Primary asset URL followed by any extra variants."""
    if self.asset_url is None:
      return []
    return [self.asset_url, *self.extra_urls]
