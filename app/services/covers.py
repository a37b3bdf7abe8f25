"""Cover image and cover video generation for existing apps."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

import msgspec

from app.ai.errors import describe_exception
from app.ai.fetcher import RetryableFetcher
from app.ai.model_routes import Operation, Tier
from app.ai.pipeline.contracts import ConceptDescriptor
from app.ai.providers.base import ConceptProvider
from app.ai.router import ModelRouter, coerce_tier, raise_for_result
from app.ai.utils.artifacts import extension_for
from app.jobs.models import MediaJobKind, MediaJobRecord
from app.services.storage_client import ObjectStorage
from app.storage.artifacts_repo import AppRecord, ArtifactsRepository
from app.storage.jobs_repo import MediaJobsRepository
from app.utils.ids import generate_job_id
from app.utils.time import now_iso

logger = logging.getLogger(__name__)

MAX_COVER_VARIANTS = 6
DEFAULT_COVER_VARIANTS = 4
DEFAULT_COVER_WIDTH = 1920
DEFAULT_COVER_HEIGHT = 960


class StoredImageSource(msgspec.Struct, tag="stored", tag_field="kind", forbid_unknown_fields=True):
  """Animate an image already in object storage; defaults to the app's cover image."""

  storage_id: str | None = None


class UrlImageSource(msgspec.Struct, tag="url", tag_field="kind", forbid_unknown_fields=True):
  """Animate an image reachable at a public URL."""

  url: str


CoverVideoSource = StoredImageSource | UrlImageSource


class AppNotFoundError(LookupError):
  """The app does not exist or belongs to someone else."""


class CoverSourceError(ValueError):
  """The requested cover video source cannot be resolved."""


def concept_from_app(app: AppRecord) -> ConceptDescriptor:
  """Rebuild the planner's view of an app from its stored artifact."""
  return ConceptDescriptor(app_name=app.name, app_subtitle=app.subtitle or "", app_description=app.description, app_category=app.category or "", style_guide=app.style_guide or "", app_icon_prompt=app.name)


def _cost_payload(result: Any) -> dict[str, Any] | None:
  if result.cost is None:
    return None
  band = result.cost.speed_band
  return {"cost": result.cost.cost, "speed_band": {"min_seconds": band.min_seconds, "max_seconds": band.max_seconds, "typical_seconds": band.typical_seconds}}


class CoverMediaService:
  """Create media jobs and run them in the background until they settle."""

  def __init__(
    self,
    *,
    concept_provider: ConceptProvider,
    router: ModelRouter,
    fetcher: RetryableFetcher,
    storage: ObjectStorage,
    artifacts_repo: ArtifactsRepository,
    media_jobs_repo: MediaJobsRepository,
  ) -> None:
    self._concept_provider = concept_provider
    self._router = router
    self._fetcher = fetcher
    self._storage = storage
    self._artifacts_repo = artifacts_repo
    self._media_jobs_repo = media_jobs_repo
    self._tasks: set[asyncio.Task[None]] = set()

  async def generate_cover_image(
    self,
    app_id: str,
    owner_id: str,
    *,
    num_variants: int = DEFAULT_COVER_VARIANTS,
    width: int = DEFAULT_COVER_WIDTH,
    height: int = DEFAULT_COVER_HEIGHT,
    user_feedback: str | None = None,
  ) -> MediaJobRecord:
    """Start a cover image job that produces up to six landscape variants."""
    app = await self._require_app(app_id, owner_id)
    variants = max(1, min(num_variants, MAX_COVER_VARIANTS))
    record = await self._create_job(app, "cover_image")
    self._spawn(record.job_id, self._run_cover_image(record.job_id, app, num_variants=variants, width=width, height=height, user_feedback=user_feedback))
    return record

  async def save_cover_image(self, app_id: str, owner_id: str, image_url: str) -> AppRecord:
    """Download a chosen variant and attach it to the app as its cover image."""
    await self._require_app(app_id, owner_id)
    asset = await self._fetcher.fetch_asset(image_url)
    storage_id = await self._storage.store(asset.data, asset.content_type or "image/png", extension=extension_for(asset.content_type))
    updated = await self._artifacts_repo.update_app(app_id, cover_image_storage_id=storage_id)
    if updated is None:
      raise AppNotFoundError(app_id)
    logger.info("Saved cover image %s for app %s (%d bytes)", storage_id, app_id, len(asset.data))
    return updated

  async def generate_cover_video(
    self,
    app_id: str,
    owner_id: str,
    source: CoverVideoSource,
    *,
    custom_prompt: str | None = None,
    tier: Tier | str = Tier.DEFAULT,
    backend_id: str | None = None,
  ) -> MediaJobRecord:
    """Start a cover video job animating a stored image or an image URL.

    With ``backend_id`` the call goes to that backend only; otherwise the
    image-to-video route for ``tier`` runs with its fallbacks.
    """
    app = await self._require_app(app_id, owner_id)
    tier_value = coerce_tier(tier)
    image_url = await self._resolve_source(app, source)
    record = await self._create_job(app, "cover_video")
    self._spawn(record.job_id, self._run_cover_video(record.job_id, app, image_url, custom_prompt=custom_prompt, tier=tier_value, backend_id=backend_id))
    return record

  async def drain(self) -> None:
    """Wait for in-flight media jobs to settle."""
    if self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def cancel_all(self) -> None:
    tasks = list(self._tasks)
    for task in tasks:
      task.cancel()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)

  async def _run_cover_image(self, job_id: str, app: AppRecord, *, num_variants: int, width: int, height: int, user_feedback: str | None) -> dict[str, Any]:
    # Variants come back as backend URLs; the client stores the one it picks.
    prompt = await self._concept_provider.write_cover_image_prompt(concept_from_app(app), user_feedback=user_feedback)
    params = {"num_images": num_variants, "image_size": {"width": width, "height": height}}
    result = raise_for_result(await self._router.execute(Operation.TEXT_TO_IMAGE, Tier.QUALITY, prompt, params), Operation.TEXT_TO_IMAGE, Tier.QUALITY)
    # One request yields every variant; extra URLs ride along on the same result.
    variants = [{"image_url": url, "width": result.width, "height": result.height} for url in result.asset_urls]
    logger.info("Cover image job %s produced %d variants via %s", job_id, len(variants), result.backend_id)
    return {"variants": variants, "image_prompt": prompt, "backend_id": result.backend_id, "attempted_backends": result.attempted_backends, "estimate": _cost_payload(result)}

  async def _run_cover_video(self, job_id: str, app: AppRecord, image_url: str, *, custom_prompt: str | None, tier: Tier, backend_id: str | None) -> dict[str, Any]:
    prompt = custom_prompt or await self._concept_provider.write_cover_video_prompt(concept_from_app(app))
    params = {"image_url": image_url}
    # An explicit backend bypasses the route and its fallbacks.
    if backend_id:
      result = await self._router.execute_direct(backend_id, Operation.IMAGE_TO_VIDEO, prompt, params)
    else:
      result = await self._router.execute(Operation.IMAGE_TO_VIDEO, tier, prompt, params)
    raise_for_result(result, Operation.IMAGE_TO_VIDEO, tier)

    # Video URLs expire quickly; persist the clip before linking it to the app.
    asset = await self._fetcher.fetch_asset(result.asset_url)
    storage_id = await self._storage.store(asset.data, asset.content_type or "video/mp4", extension=extension_for(asset.content_type, default="mp4"))
    await self._artifacts_repo.update_app(app.app_id, cover_video_storage_id=storage_id)
    logger.info("Cover video job %s stored %s via %s", job_id, storage_id, result.backend_id)
    return {
      "storage_id": storage_id,
      "video_prompt": prompt,
      "backend_id": result.backend_id,
      "attempted_backends": result.attempted_backends,
      "duration": result.measured_duration,
      "estimate": _cost_payload(result),
    }

  async def _settle(self, job_id: str, work: Awaitable[dict[str, Any]]) -> None:
    """Drive one media job to completed or failed."""
    # pending -> generating -> completed | failed; the repository ignores writes after a terminal status.
    await self._media_jobs_repo.patch_media_job(job_id, status="generating")
    try:
      result = await work
    except asyncio.CancelledError:
      await self._media_jobs_repo.patch_media_job(job_id, status="failed", error="Generation was cancelled", completed_at=now_iso())
      raise
    except Exception as exc:
      logger.warning("Media job %s failed: %s", job_id, describe_exception(exc))
      await self._media_jobs_repo.patch_media_job(job_id, status="failed", error=describe_exception(exc), completed_at=now_iso())
      return
    await self._media_jobs_repo.patch_media_job(job_id, status="completed", result=result, completed_at=now_iso())

  def _spawn(self, job_id: str, work: Awaitable[dict[str, Any]]) -> None:
    task = asyncio.create_task(self._guarded(job_id, work), name=f"media-job-{job_id}")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def _guarded(self, job_id: str, work: Awaitable[dict[str, Any]]) -> None:
    try:
      await self._settle(job_id, work)
    except asyncio.CancelledError:
      raise
    except Exception:
      logger.error("Media job %s could not record its outcome", job_id, exc_info=True)

  async def _require_app(self, app_id: str, owner_id: str) -> AppRecord:
    app = await self._artifacts_repo.get_app(app_id)
    if app is None or app.owner_id != owner_id:
      raise AppNotFoundError(app_id)
    return app

  async def _resolve_source(self, app: AppRecord, source: CoverVideoSource) -> str:
    if isinstance(source, UrlImageSource):
      if not source.url.startswith(("http://", "https://")):
        raise CoverSourceError("Image URL must be http(s).")
      return source.url
    # Without an explicit storage id, animate the app's saved cover image.
    storage_id = source.storage_id or app.cover_image_storage_id
    if not storage_id:
      raise CoverSourceError("App must have a cover image before generating video")
    return await self._storage.url_for(storage_id)

  async def _create_job(self, app: AppRecord, kind: MediaJobKind) -> MediaJobRecord:
    timestamp = now_iso()
    record = MediaJobRecord(job_id=generate_job_id(), owner_id=app.owner_id, app_id=app.app_id, kind=kind, status="pending", created_at=timestamp, updated_at=timestamp)
    await self._media_jobs_repo.create_media_job(record)
    logger.info("Created %s job %s for app %s", kind, record.job_id, app.app_id)
    return record
