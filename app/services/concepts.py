"""Multi-concept generation: alternative concepts for one idea, each with an icon and a cover."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from app.ai.errors import StructuralFailure, describe_exception
from app.ai.fetcher import RetryableFetcher
from app.ai.model_routes import Operation, Tier
from app.ai.pipeline.contracts import ConceptDescriptor
from app.ai.providers.base import ConceptProvider
from app.ai.router import ModelRouter, coerce_tier, raise_for_result
from app.ai.utils.artifacts import extension_for
from app.services.storage_client import ObjectStorage
from app.storage.concepts_repo import ConceptJobRecord, ConceptRecord, ConceptsRepository
from app.utils.ids import generate_concept_id, generate_job_id
from app.utils.time import now_iso

logger = logging.getLogger(__name__)

DEFAULT_CONCEPT_COUNT = 4
MAX_CONCEPTS = 6
CONCEPT_COVER_WIDTH = 1920
CONCEPT_COVER_HEIGHT = 1080


class ConceptNotFoundError(LookupError):
  """The concept or concept job does not exist or belongs to someone else."""


@dataclass(frozen=True)
class ConceptBatch:
  job: ConceptJobRecord
  concepts: list[ConceptRecord]


class ConceptService:
  """Plan several concepts in parallel, then illustrate each one concurrently.

  A concept whose images fail keeps its text and records the error; the job only
  fails when no concept could be planned or none could be illustrated.
  """

  def __init__(
    self,
    *,
    concept_provider: ConceptProvider,
    router: ModelRouter,
    fetcher: RetryableFetcher,
    storage: ObjectStorage,
    concepts_repo: ConceptsRepository,
  ) -> None:
    self._concept_provider = concept_provider
    self._router = router
    self._fetcher = fetcher
    self._storage = storage
    self._concepts_repo = concepts_repo
    self._tasks: set[asyncio.Task[None]] = set()

  async def generate_concepts(
    self,
    owner_id: str,
    description: str,
    *,
    count: int = DEFAULT_CONCEPT_COUNT,
    category_hint: str | None = None,
    ui_style: str | None = None,
    tier: Tier | str = Tier.DEFAULT,
  ) -> ConceptJobRecord:
    """Create a concept job and run it in the background."""
    timestamp = now_iso()
    requested = max(1, min(count, MAX_CONCEPTS))
    record = ConceptJobRecord(job_id=generate_job_id(), owner_id=owner_id, status="generating_concepts", requested_count=requested, created_at=timestamp, updated_at=timestamp)
    await self._concepts_repo.create_concept_job(record)

    hints = {"category_hint": category_hint, "ui_style": ui_style}
    task = asyncio.create_task(self._guarded(record, description, hints, coerce_tier(tier)), name=f"concept-job-{record.job_id}")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)
    logger.info("Created concept job %s for %s (%d concepts)", record.job_id, owner_id, requested)
    return record

  async def get_batch(self, job_id: str, owner_id: str) -> ConceptBatch:
    job = await self._concepts_repo.get_concept_job(job_id)
    if job is None or job.owner_id != owner_id:
      raise ConceptNotFoundError(job_id)
    return ConceptBatch(job=job, concepts=await self._concepts_repo.list_concepts(job_id))

  async def require_concept(self, concept_id: str, owner_id: str) -> ConceptRecord:
    concept = await self._concepts_repo.get_concept(concept_id)
    if concept is None or concept.owner_id != owner_id:
      raise ConceptNotFoundError(concept_id)
    return concept

  async def drain(self) -> None:
    """Wait for in-flight concept jobs to settle."""
    if self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def cancel_all(self) -> None:
    tasks = list(self._tasks)
    for task in tasks:
      task.cancel()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)

  async def _guarded(self, job: ConceptJobRecord, description: str, hints: Mapping[str, str | None], tier: Tier) -> None:
    try:
      await self._run(job, description, hints, tier)
    except asyncio.CancelledError:
      await self._fail(job.job_id, "Generation was cancelled")
      raise
    except StructuralFailure as exc:
      logger.warning("Concept job %s failed: %s", job.job_id, exc)
      await self._fail(job.job_id, describe_exception(exc))
    except Exception as exc:
      logger.error("Concept job %s failed with unexpected %s", job.job_id, type(exc).__name__, exc_info=True)
      await self._fail(job.job_id, describe_exception(exc))

  async def _run(self, job: ConceptJobRecord, description: str, hints: Mapping[str, str | None], tier: Tier) -> None:
    # One planner call per concept; parallel calls give independent variations.
    planned = await asyncio.gather(*(self._concept_provider.plan_concept(description, hints) for _ in range(job.requested_count)), return_exceptions=True)
    descriptors: list[ConceptDescriptor] = []
    errors: list[str] = []
    for outcome in planned:
      if isinstance(outcome, Exception):
        errors.append(describe_exception(outcome))
      elif isinstance(outcome, BaseException):
        raise outcome
      else:
        descriptors.append(outcome)
    if not descriptors:
      raise StructuralFailure(f"Concept generation failed: {errors[0] if errors else 'no concepts returned'}", stage="concept")
    if errors:
      logger.warning("Concept job %s planned %d/%d concepts: %s", job.job_id, len(descriptors), job.requested_count, errors[0])

    # Concept text is readable before any image work starts.
    timestamp = now_iso()
    concepts: list[ConceptRecord] = []
    for position, descriptor in enumerate(descriptors):
      record = ConceptRecord(concept_id=generate_concept_id(), job_id=job.job_id, owner_id=job.owner_id, position=position, descriptor=descriptor, created_at=timestamp, updated_at=timestamp)
      await self._concepts_repo.add_concept(record)
      concepts.append(record)
    await self._concepts_repo.patch_concept_job(job.job_id, status="generating_images")

    illustrated = await asyncio.gather(*(self._illustrate(job.job_id, concept, tier) for concept in concepts), return_exceptions=True)
    finished = 0
    for outcome in illustrated:
      if isinstance(outcome, Exception):
        logger.error("Concept job %s could not record concept images", job.job_id, exc_info=outcome)
      elif isinstance(outcome, BaseException):
        raise outcome
      elif outcome:
        finished += 1

    if finished == 0:
      await self._fail(job.job_id, "No concept images were generated")
      return
    await self._concepts_repo.patch_concept_job(job.job_id, status="completed", completed_at=now_iso())
    logger.info("Concept job %s completed: %d/%d concepts illustrated", job.job_id, finished, len(concepts))

  async def _illustrate(self, job_id: str, concept: ConceptRecord, tier: Tier) -> bool:
    """Generate and store the icon and cover of one concept; False when either is missing."""
    descriptor = concept.descriptor
    try:
      cover_prompt = descriptor.cover_image_prompt or await self._concept_provider.write_cover_image_prompt(descriptor)
    except Exception as exc:
      await self._concepts_repo.update_concept_images(concept.concept_id, error=f"Cover prompt failed: {describe_exception(exc)}")
      logger.warning("Concept job %s concept %d has no cover prompt: %s", job_id, concept.position + 1, describe_exception(exc))
      return False

    icon_params: dict[str, Any] = {"num_images": 1, "output_format": "png"}
    cover_params: dict[str, Any] = {"num_images": 1, "image_size": {"width": CONCEPT_COVER_WIDTH, "height": CONCEPT_COVER_HEIGHT}}
    icon_result, cover_result = await asyncio.gather(
      self._store_image(descriptor.app_icon_prompt, tier, icon_params),
      self._store_image(cover_prompt, Tier.QUALITY, cover_params),
      return_exceptions=True,
    )
    failure = next((result for result in (icon_result, cover_result) if isinstance(result, BaseException)), None)
    if failure is not None and not isinstance(failure, Exception):
      raise failure

    # Keep whichever image did succeed; the error explains the missing one.
    error = describe_exception(failure) if failure is not None else None
    await self._concepts_repo.update_concept_images(
      concept.concept_id,
      icon_storage_id=icon_result if isinstance(icon_result, str) else None,
      cover_image_storage_id=cover_result if isinstance(cover_result, str) else None,
      error=error,
    )
    if error is not None:
      logger.warning("Concept job %s concept %d (%s) images failed: %s", job_id, concept.position + 1, descriptor.app_name, error)
      return False
    logger.info("Concept job %s concept %d (%s) illustrated", job_id, concept.position + 1, descriptor.app_name)
    return True

  async def _store_image(self, prompt: str, tier: Tier, params: dict[str, Any]) -> str:
    result = raise_for_result(await self._router.execute(Operation.TEXT_TO_IMAGE, tier, prompt, params), Operation.TEXT_TO_IMAGE, tier)
    asset = await self._fetcher.fetch_asset(result.asset_url)
    return await self._storage.store(asset.data, asset.content_type or "image/png", extension=extension_for(asset.content_type))

  async def _fail(self, job_id: str, message: str) -> None:
    try:
      await self._concepts_repo.patch_concept_job(job_id, status="failed", error=message, completed_at=now_iso())
    except Exception:
      logger.error("Failed to mark concept job %s as failed", job_id, exc_info=True)
