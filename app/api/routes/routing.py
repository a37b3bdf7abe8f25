from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.ai.model_routes import RouteEntry
from app.ai.router import preset_for, recommend_tier
from app.ai.utils.cost import CostEstimate, estimate
from app.api.deps import get_services
from app.api.models import CapabilitiesView, EstimateRequest, EstimateView, PresetView, RecommendRequest, RecommendResponse, RouteDescriptionResponse, RouteEntryView, SpeedBandView
from app.services.engine import EngineServices

router = APIRouter()


def _estimate_view(value: CostEstimate) -> EstimateView:
  band = value.speed_band
  return EstimateView(cost=value.cost, speed_band=SpeedBandView(min_seconds=band.min_seconds, max_seconds=band.max_seconds, typical_seconds=band.typical_seconds))


def _entry_view(entry: RouteEntry) -> RouteEntryView:
  return RouteEntryView(backend_id=entry.backend_id, params=dict(entry.params))


@router.get("/{operation}/{tier}", response_model=RouteDescriptionResponse)
async def describe_route(operation: str, tier: str, services: Annotated[EngineServices, Depends(get_services)]) -> RouteDescriptionResponse:
  """Describe the backend chain for an operation and tier, with the primary's estimate."""
  try:
    description = services.router.describe_route(operation, tier)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

  config = description.config
  capabilities = description.capabilities
  return RouteDescriptionResponse(
    operation=config.operation.value,
    tier=config.tier.value,
    primary=_entry_view(config.primary),
    fallbacks=[_entry_view(entry) for entry in config.fallbacks],
    estimate=_estimate_view(description.estimate),
    capabilities=CapabilitiesView(
      supports_text_input=capabilities.supports_text_input,
      supports_image_input=capabilities.supports_image_input,
      max_duration=capabilities.max_duration,
      resolutions=list(capabilities.resolutions),
    ),
  )


@router.post("/estimate", response_model=EstimateView)
async def estimate_cost(payload: EstimateRequest) -> EstimateView:
  """Estimate cost and speed for one backend call."""
  return _estimate_view(estimate(payload.backend_id, payload.duration, payload.resolution))


@router.post("/recommend", response_model=RecommendResponse)
async def recommend(payload: RecommendRequest) -> RecommendResponse:
  """Recommend a tier from coarse requirements, or from a named use case."""
  if payload.use_case:
    try:
      preset = preset_for(payload.use_case)
    except ValueError as exc:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return RecommendResponse(tier=preset.tier.value, preset=PresetView(tier=preset.tier.value, duration=preset.duration, aspect_ratio=preset.aspect_ratio, resolution=preset.resolution))

  tier = recommend_tier(payload.quality, payload.speed, payload.budget, payload.duration)
  return RecommendResponse(tier=tier.value)
