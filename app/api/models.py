from __future__ import annotations

from typing import Any, Literal

import msgspec
from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.jobs.models import JobStatus, MediaJobKind, MediaJobStatus
from app.services.covers import CoverVideoSource, StoredImageSource
from app.storage.concepts_repo import ConceptJobStatus

TierName = Literal["quality", "default", "fast"]


class GenerateAppRequest(BaseModel):
  """Request body for starting an app generation job."""

  description: StrictStr = Field(min_length=1, max_length=4000)
  category_hint: StrictStr | None = Field(default=None, alias="categoryHint")
  ui_style: StrictStr | None = Field(default=None, alias="uiStyle")
  tier: TierName | None = None
  target_screen_count: int | None = Field(default=None, ge=1, le=8, alias="targetScreenCount")
  canvas_url: StrictStr | None = Field(default=None, alias="canvasUrl")
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class GenerateAppResponse(BaseModel):
  app_id: str
  job_id: str


class FailedScreenView(BaseModel):
  unit_name: str
  error_message: str


class JobStatusResponse(BaseModel):
  """What a polling client sees for one app generation job."""

  job_id: str
  app_id: str
  status: JobStatus
  current_step: str
  progress_percentage: int
  screens_total: int
  screens_generated: int
  failed_screens: list[FailedScreenView] = Field(default_factory=list)
  error: str | None = None
  created_at: str
  updated_at: str
  completed_at: str | None = None


class GenerateConceptsRequest(BaseModel):
  """Request body for generating several alternative concepts for one idea."""

  description: StrictStr = Field(min_length=1, max_length=4000)
  category_hint: StrictStr | None = Field(default=None, alias="categoryHint")
  ui_style: StrictStr | None = Field(default=None, alias="uiStyle")
  count: int = Field(default=4, ge=1, le=6)
  tier: TierName | None = None
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ConceptView(BaseModel):
  concept_id: str
  position: int
  app_name: str
  app_subtitle: str
  app_description: str
  app_category: str
  style_guide: str
  icon_storage_id: str | None = None
  cover_image_storage_id: str | None = None
  error: str | None = None


class ConceptJobResponse(BaseModel):
  job_id: str
  status: ConceptJobStatus
  requested_count: int
  concepts: list[ConceptView] = Field(default_factory=list)
  error: str | None = None
  created_at: str
  updated_at: str
  completed_at: str | None = None


class GenerateFromConceptRequest(BaseModel):
  """Request body for turning a saved concept into an app."""

  tier: TierName | None = None
  target_screen_count: int | None = Field(default=None, ge=1, le=8, alias="targetScreenCount")
  canvas_url: StrictStr | None = Field(default=None, alias="canvasUrl")
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ImproveDescriptionRequest(BaseModel):
  description: StrictStr = Field(min_length=1, max_length=4000)
  ui_style_hint: StrictStr | None = Field(default=None, alias="uiStyleHint")
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ImproveDescriptionResponse(BaseModel):
  improved_description: str
  improved_style: str
  inferred_category: str


class CoverImageRequest(BaseModel):
  num_variants: int = Field(default=4, ge=1, le=6, alias="numVariants")
  width: int = Field(default=1920, ge=256, le=4096)
  height: int = Field(default=960, ge=256, le=4096)
  user_feedback: StrictStr | None = Field(default=None, max_length=1000, alias="userFeedback")
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class SaveCoverImageRequest(BaseModel):
  image_url: StrictStr = Field(min_length=1, alias="imageUrl")
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class CoverVideoRequest(msgspec.Struct, forbid_unknown_fields=True):
  """Cover video body; ``source`` is tagged by its ``kind`` field."""

  source: CoverVideoSource = msgspec.field(default_factory=StoredImageSource)
  custom_prompt: str | None = None
  tier: Literal["quality", "default", "fast"] = "default"
  backend_id: str | None = None


class AppView(BaseModel):
  app_id: str
  name: str
  subtitle: str | None = None
  description: str
  category: str | None = None
  icon_storage_id: str | None = None
  cover_image_storage_id: str | None = None
  cover_video_storage_id: str | None = None


class MediaJobResponse(BaseModel):
  job_id: str
  app_id: str
  kind: MediaJobKind
  status: MediaJobStatus
  result: dict[str, Any] | None = None
  error: str | None = None
  created_at: str
  updated_at: str
  completed_at: str | None = None


class SpeedBandView(BaseModel):
  min_seconds: int
  max_seconds: int
  typical_seconds: int


class EstimateView(BaseModel):
  cost: float
  speed_band: SpeedBandView


class RouteEntryView(BaseModel):
  backend_id: str
  params: dict[str, Any]


class CapabilitiesView(BaseModel):
  supports_text_input: bool
  supports_image_input: bool
  max_duration: int | None = None
  resolutions: list[str] = Field(default_factory=list)


class RouteDescriptionResponse(BaseModel):
  operation: str
  tier: str
  primary: RouteEntryView
  fallbacks: list[RouteEntryView]
  estimate: EstimateView
  capabilities: CapabilitiesView


class EstimateRequest(BaseModel):
  backend_id: StrictStr = Field(min_length=1)
  duration: int | float | str | None = None
  resolution: str | int | None = None


class RecommendRequest(BaseModel):
  quality: Literal["high", "medium", "low"] = "medium"
  speed: Literal["fast", "normal", "slow"] = "normal"
  budget: Literal["unlimited", "moderate", "tight"] = "moderate"
  duration: int = Field(default=5, ge=1, le=12)
  use_case: StrictStr | None = None


class PresetView(BaseModel):
  tier: str
  duration: int
  aspect_ratio: str
  resolution: str


class RecommendResponse(BaseModel):
  tier: str
  preset: PresetView | None = None


class SweepResponse(BaseModel):
  failed_jobs: int
  failed_media_jobs: int
  deleted_media_jobs: int
  failed_concept_jobs: int
