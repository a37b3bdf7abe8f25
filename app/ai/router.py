"""Tiered model router with ordered fallback chains."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from app.ai.errors import ProviderError, RouteExhausted, describe_exception
from app.ai.model_routes import ROUTES, ROUTING_PARAMS, USE_CASE_PRESETS, Operation, RouteConfig, RouteEntry, Tier, UseCasePreset
from app.ai.pipeline.contracts import GeneratedAsset, GenerationAttemptResult
from app.ai.providers.base import GenerationProvider
from app.ai.utils.cost import CostEstimate, estimate, resolution_from_dimensions

logger = logging.getLogger(__name__)

QualityNeed = Literal["high", "medium", "low"]
SpeedNeed = Literal["fast", "normal", "slow"]
BudgetNeed = Literal["unlimited", "moderate", "tight"]


@dataclass(frozen=True)
class RouteCapabilities:
  supports_text_input: bool
  supports_image_input: bool
  max_duration: int | None
  resolutions: tuple[str, ...]


@dataclass(frozen=True)
class RouteDescription:
  config: RouteConfig
  estimate: CostEstimate
  capabilities: RouteCapabilities


def coerce_operation(operation: Operation | str) -> Operation:
  try:
    return Operation(operation)
  except ValueError as exc:
    raise ValueError(f"Unknown operation '{operation}'.") from exc


def coerce_tier(tier: Tier | str) -> Tier:
  try:
    return Tier(tier)
  except ValueError as exc:
    raise ValueError(f"Unknown tier '{tier}'.") from exc


def merge_params(entry: RouteEntry, caller_params: Mapping[str, Any] | None) -> dict[str, Any]:
  """Layer caller params over entry params, except routing params the entry defines."""
  merged = dict(entry.params)
  for key, value in (caller_params or {}).items():
    if key in ROUTING_PARAMS and key in entry.params:
      continue
    merged[key] = value
  return merged


def _actual_cost(backend_id: str, asset: GeneratedAsset, params: Mapping[str, Any]) -> CostEstimate:
  """Price what the backend actually produced, falling back to what was requested."""
  duration = asset.measured_duration if asset.measured_duration is not None else params.get("duration")
  resolution = resolution_from_dimensions(asset.width, asset.height) or params.get("resolution")
  return estimate(backend_id, duration, resolution)


class ModelRouter:
  """Resolve (operation, tier) to a backend chain and run it until one succeeds."""

  def __init__(self, providers: Mapping[str, GenerationProvider], routes: Mapping[tuple[Operation, Tier], RouteConfig] = ROUTES) -> None:
    self._providers = dict(providers)
    self._routes = routes

  def resolve(self, operation: Operation | str, tier: Tier | str) -> RouteConfig:
    key = (coerce_operation(operation), coerce_tier(tier))
    try:
      return self._routes[key]
    except KeyError as exc:
      raise ValueError(f"No route configured for {key[0].value}/{key[1].value}.") from exc

  async def execute(self, operation: Operation | str, tier: Tier | str, prompt: str, params: Mapping[str, Any] | None = None) -> GenerationAttemptResult:
    """Try the primary backend then each fallback in order; stop at the first success."""
    config = self.resolve(operation, tier)
    attempted: list[str] = []
    last_error: str | None = None

    for index, entry in enumerate(config.entries):
      attempted.append(entry.backend_id)
      merged = merge_params(entry, params)
      try:
        asset = await self._invoke(entry.backend_id, config.operation, prompt, merged)
      except ProviderError as exc:
        last_error = exc.message
        logger.warning("Route %s/%s entry %d (%s) failed: %s", config.operation.value, config.tier.value, index, entry.backend_id, exc.message)
        continue
      except Exception as exc:  # noqa: BLE001
        # Unexpected provider errors move on to the next entry like HTTP failures.
        last_error = describe_exception(exc)
        logger.warning("Route %s/%s entry %d (%s) raised %s: %s", config.operation.value, config.tier.value, index, entry.backend_id, type(exc).__name__, last_error)
        continue

      if index > 0:
        logger.info("Route %s/%s served by fallback %s after %d failure(s)", config.operation.value, config.tier.value, entry.backend_id, index)
      return self._success(entry.backend_id, asset, merged, attempted)

    # Exhaustion is reported as a value; callers decide whether it is fatal.
    logger.error("Route %s/%s exhausted (tried %s): %s", config.operation.value, config.tier.value, ", ".join(attempted), last_error)
    return GenerationAttemptResult(success=False, error=last_error, attempted_backends=attempted)

  async def execute_direct(self, backend_id: str, operation: Operation | str, prompt: str, params: Mapping[str, Any] | None = None) -> GenerationAttemptResult:
    """Call one backend without any fallback."""
    kind = coerce_operation(operation)
    # No route means no entry defaults to merge.
    merged = dict(params or {})
    try:
      asset = await self._invoke(backend_id, kind, prompt, merged)
    except ProviderError as exc:
      return GenerationAttemptResult(success=False, error=exc.message, attempted_backends=[backend_id])
    except Exception as exc:  # noqa: BLE001
      return GenerationAttemptResult(success=False, error=describe_exception(exc), attempted_backends=[backend_id])
    return self._success(backend_id, asset, merged, [backend_id])

  def describe_route(self, operation: Operation | str, tier: Tier | str) -> RouteDescription:
    """Return the route with the primary's cost/speed estimate and capabilities."""
    config = self.resolve(operation, tier)
    primary = config.primary
    # Quotes reflect the primary's configured duration and resolution.
    cost = estimate(primary.backend_id, primary.params.get("duration"), primary.params.get("resolution"))
    return RouteDescription(config=config, estimate=cost, capabilities=_capabilities(config))

  async def _invoke(self, backend_id: str, operation: Operation, prompt: str, params: Mapping[str, Any]) -> GeneratedAsset:
    provider = self._providers.get(backend_id)
    if provider is None:
      raise ProviderError(backend_id, "No provider registered for backend", error_type="config")
    return await provider.generate(operation, prompt, params)

  def _success(self, backend_id: str, asset: GeneratedAsset, params: Mapping[str, Any], attempted: list[str]) -> GenerationAttemptResult:
    return GenerationAttemptResult(
      success=True,
      backend_id=backend_id,
      asset_url=asset.asset_url,
      measured_duration=asset.measured_duration,
      width=asset.width,
      height=asset.height,
      attempted_backends=attempted,
      cost=_actual_cost(backend_id, asset, params),
      extra_urls=list(asset.extra_urls),
    )


def raise_for_result(result: GenerationAttemptResult, operation: Operation | str, tier: Tier | str) -> GenerationAttemptResult:
  """Return a successful result unchanged; turn a failed one into RouteExhausted."""
  if result.success and result.asset_url:
    return result
  op = coerce_operation(operation).value
  tier_value = coerce_tier(tier).value
  raise RouteExhausted(op, tier_value, result.attempted_backends, result.error)


def _capabilities(config: RouteConfig) -> RouteCapabilities:
  backend = config.primary.backend_id
  if not config.operation.is_video:
    return RouteCapabilities(supports_text_input=config.operation is Operation.TEXT_TO_IMAGE, supports_image_input=config.operation is Operation.IMAGE_EDIT, max_duration=None, resolutions=())

  # Kling and Seedance accept a text-only prompt on their image-to-video endpoints.
  supports_text = config.operation is Operation.TEXT_TO_VIDEO or backend.startswith(("kling", "seedance"))
  if backend.startswith("seedance"):
    return RouteCapabilities(supports_text_input=supports_text, supports_image_input=True, max_duration=12, resolutions=("480p", "720p", "1080p"))
  if backend.startswith("kling"):
    return RouteCapabilities(supports_text_input=supports_text, supports_image_input=True, max_duration=10, resolutions=("720p",))
  return RouteCapabilities(supports_text_input=supports_text, supports_image_input=True, max_duration=5, resolutions=("720p",))


def recommend_tier(quality: QualityNeed = "medium", speed: SpeedNeed = "normal", budget: BudgetNeed = "moderate", duration: int = 5) -> Tier:
  """Pick a tier from coarse quality, speed, budget and duration requirements."""
  # Clips longer than five seconds need a backend that can produce them.
  if duration > 5 and budget != "tight":
    return Tier.QUALITY
  if quality == "high" and budget != "tight":
    return Tier.QUALITY
  if speed == "fast" and quality != "high":
    return Tier.FAST
  return Tier.DEFAULT


def preset_for(use_case: str) -> UseCasePreset:
  try:
    return USE_CASE_PRESETS[use_case]
  except KeyError as exc:
    raise ValueError(f"Unknown use case '{use_case}'.") from exc
