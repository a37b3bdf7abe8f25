"""fal.ai generation backends called over HTTP."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any, Final

import httpx

from app.ai import model_routes as routes
from app.ai.errors import ProviderError
from app.ai.model_routes import Operation
from app.ai.pipeline.contracts import GeneratedAsset
from app.ai.providers.base import GenerationProvider
from app.config import Settings

logger = logging.getLogger("app.ai.providers.fal")

FAL_ENDPOINTS: Final[dict[str, str]] = {
  routes.KLING_TEXT_TO_VIDEO: "fal-ai/kling-video/v2.5-turbo/pro/text-to-video",
  routes.KLING_IMAGE_TO_VIDEO: "fal-ai/kling-video/v2.5-turbo/pro/image-to-video",
  routes.SEEDANCE_TEXT_TO_VIDEO: "fal-ai/bytedance/seedance/v1/pro/text-to-video",
  routes.SEEDANCE_IMAGE_TO_VIDEO: "fal-ai/bytedance/seedance/v1/pro/image-to-video",
  routes.LUCY_IMAGE_TO_VIDEO: "decart/lucy-14b/image-to-video",
  routes.HAILUO_IMAGE_TO_VIDEO: "fal-ai/minimax/hailuo-02-fast/image-to-video",
  routes.GEMINI_FLASH_IMAGE: "fal-ai/gemini-25-flash-image",
  routes.GEMINI_FLASH_IMAGE_EDIT: "fal-ai/gemini-25-flash-image/edit",
  routes.NANO_BANANA_EDIT: "fal-ai/nano-banana/edit",
  routes.SEEDREAM_TEXT_TO_IMAGE: "fal-ai/bytedance/seedream/v4/text-to-image",
  routes.FLUX_DEV: "fal-ai/flux-1/dev",
  routes.FLUX_SCHNELL: "fal-ai/flux-1/schnell",
  routes.FLUX_PRO: "fal-ai/flux-pro/new",
}

# Video endpoints that take duration as an enum string ("5") rather than a number.
_STRING_DURATION_PREFIXES: Final[tuple[str, ...]] = ("kling", "seedance", "hailuo")


def _build_input(backend_id: str, prompt: str, params: Mapping[str, Any]) -> dict[str, Any]:
  payload: dict[str, Any] = {key: value for key, value in params.items() if value is not None}
  payload["prompt"] = prompt
  duration = payload.get("duration")
  if duration is not None and backend_id.startswith(_STRING_DURATION_PREFIXES):
    payload["duration"] = str(int(float(duration)))
  return payload


def _error_detail(response: httpx.Response) -> tuple[str, str | None]:
  """Pull a readable message and error type from a fal error body."""
  try:
    body = response.json()
  except ValueError:
    return f"HTTP {response.status_code}: {response.text[:200]}", None

  detail = body.get("detail") if isinstance(body, dict) else None
  if isinstance(detail, list) and detail and isinstance(detail[0], dict):
    first = detail[0]
    return f"HTTP {response.status_code}: {first.get('msg') or first}", first.get("type")
  if isinstance(detail, str):
    return f"HTTP {response.status_code}: {detail}", None
  return f"HTTP {response.status_code}", None


def _parse_asset(backend_id: str, kind: Operation, body: Mapping[str, Any], params: Mapping[str, Any]) -> GeneratedAsset:
  if kind.is_video:
    video = body.get("video")
    if not isinstance(video, dict) or not video.get("url"):
      raise ProviderError(backend_id, "No video returned from generation", error_type="empty_result")
    duration = video.get("duration") or body.get("duration") or params.get("duration")
    return GeneratedAsset(asset_url=video["url"], width=video.get("width"), height=video.get("height"), measured_duration=float(duration) if duration is not None else None, raw=dict(body))

  images = body.get("images")
  if not isinstance(images, list) or not images or not isinstance(images[0], dict) or not images[0].get("url"):
    raise ProviderError(backend_id, "No images returned from generation", error_type="empty_result")
  first = images[0]
  extra = tuple(image["url"] for image in images[1:] if isinstance(image, dict) and image.get("url"))
  return GeneratedAsset(asset_url=first["url"], width=first.get("width"), height=first.get("height"), extra_urls=extra, raw=dict(body))


class FalGenerationProvider(GenerationProvider):
  """One fal.ai model endpoint exposed under a backend id."""

  def __init__(self, backend_id: str, endpoint: str, *, api_key: str | None, base_url: str = "https://fal.run", timeout_seconds: float = 300.0, client: httpx.AsyncClient | None = None) -> None:
    self.backend_id = backend_id
    self.endpoint = endpoint
    self._api_key = api_key
    self._base_url = base_url.rstrip("/")
    self._timeout_seconds = timeout_seconds
    self._client = client

  async def generate(self, kind: Operation, prompt: str, params: Mapping[str, Any]) -> GeneratedAsset:
    if not self._api_key:
      raise ProviderError(self.backend_id, "FAL_KEY is not configured", error_type="auth")

    payload = _build_input(self.backend_id, prompt, params)
    url = f"{self._base_url}/{self.endpoint}"
    headers = {"Authorization": f"Key {self._api_key}", "Content-Type": "application/json"}
    started = time.monotonic()
    try:
      if self._client is not None:
        response = await self._client.post(url, json=payload, headers=headers)
      else:
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
          response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
      raise ProviderError(self.backend_id, f"{type(exc).__name__}: {exc}", error_type="transient") from exc

    elapsed = time.monotonic() - started
    if not response.is_success:
      message, error_type = _error_detail(response)
      logger.warning("fal %s failed after %.1fs: %s", self.endpoint, elapsed, message)
      raise ProviderError(self.backend_id, message, error_type=error_type)

    try:
      body = response.json()
    except ValueError as exc:
      raise ProviderError(self.backend_id, "Response was not JSON", error_type="invalid_response") from exc
    if not isinstance(body, dict):
      raise ProviderError(self.backend_id, "Response was not a JSON object", error_type="invalid_response")

    asset = _parse_asset(self.backend_id, kind, body, params)
    logger.info("fal %s returned %s in %.1fs", self.endpoint, kind.value, elapsed)
    return asset


def build_generation_providers(settings: Settings, *, client: httpx.AsyncClient | None = None) -> dict[str, GenerationProvider]:
  """Create one provider per backend id known to the route table."""
  providers: dict[str, GenerationProvider] = {}
  for backend_id, endpoint in FAL_ENDPOINTS.items():
    providers[backend_id] = FalGenerationProvider(backend_id, endpoint, api_key=settings.fal_api_key, base_url=settings.fal_base_url, timeout_seconds=settings.fal_timeout_seconds, client=client)
  return providers
