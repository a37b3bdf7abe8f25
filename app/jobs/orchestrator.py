"""Top-level driver for app generation jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from app.ai.errors import StructuralFailure, describe_exception
from app.ai.pipeline.contracts import AppGenerationRequest, ConceptDescriptor
from app.jobs.executor import PipelineOutcome, StageExecutor
from app.jobs.models import JobRecord, JobStatus
from app.storage.artifacts_repo import AppRecord, ArtifactsRepository
from app.storage.concepts_repo import ConceptRecord
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import generate_app_id, generate_job_id
from app.utils.time import now_iso

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Generating..."
PLACEHOLDER_DESCRIPTION = "AI is generating your app. This will update in real-time."


@dataclass(frozen=True)
class SubmittedJob:
  job_id: str
  app_id: str


@dataclass(frozen=True)
class ConceptSeed:
  """A previously planned concept a job starts from instead of planning one."""

  concept: ConceptDescriptor
  icon_storage_id: str | None = None


def terminal_status_for(outcome: PipelineOutcome) -> JobStatus:
  """Map joined pipeline results onto completed, partial or failed."""
  if outcome.total_successful <= 0:
    return "failed"
  if outcome.total_successful >= outcome.total_units and not outcome.failed_units:
    return "completed"
  return "partial"


class JobOrchestrator:
  """Create jobs, run the pipeline in the background and always write a terminal state."""

  def __init__(self, *, executor: StageExecutor, jobs_repo: JobsRepository, artifacts_repo: ArtifactsRepository) -> None:
    self._executor = executor
    self._jobs_repo = jobs_repo
    self._artifacts_repo = artifacts_repo
    # Strong references so running jobs are not garbage collected mid-flight.
    self._tasks: set[asyncio.Task[None]] = set()

  @property
  def running_jobs(self) -> int:
    return len(self._tasks)

  async def submit(self, request: AppGenerationRequest) -> SubmittedJob:
    """Create the app placeholder and a pending job, schedule the run and return at once."""
    timestamp = now_iso()
    app_id = generate_app_id()
    job_id = generate_job_id()

    await self._artifacts_repo.create_app(AppRecord(app_id=app_id, owner_id=request.owner_id, name=PLACEHOLDER_NAME, description=PLACEHOLDER_DESCRIPTION, category=request.category_hint, created_at=timestamp, updated_at=timestamp))
    record = JobRecord(job_id=job_id, owner_id=request.owner_id, app_id=app_id, status="pending", current_step="Starting generation...", created_at=timestamp, updated_at=timestamp)
    await self._jobs_repo.create_job(record)

    self._schedule(job_id, self.run(job_id, request, app_id=app_id))
    logger.info("Submitted job %s for app %s (owner=%s tier=%s)", job_id, app_id, request.owner_id, request.tier)
    return SubmittedJob(job_id=job_id, app_id=app_id)

  async def submit_from_concept(self, concept: ConceptRecord, request: AppGenerationRequest) -> SubmittedJob:
    """Create an app filled in from a saved concept and schedule its screens.

    The app starts with the concept's name, copy and stored images, so only the
    structure plan and the screens fan-out remain.
    """
    timestamp = now_iso()
    app_id = generate_app_id()
    job_id = generate_job_id()
    descriptor = concept.descriptor

    app = AppRecord(
      app_id=app_id,
      owner_id=request.owner_id,
      name=descriptor.app_name,
      subtitle=descriptor.app_subtitle or None,
      description=descriptor.full_description or descriptor.app_name,
      category=descriptor.app_category or None,
      style_guide=descriptor.style_guide or None,
      icon_storage_id=concept.icon_storage_id,
      cover_image_storage_id=concept.cover_image_storage_id,
      concept_id=concept.concept_id,
      created_at=timestamp,
      updated_at=timestamp,
    )
    await self._artifacts_repo.create_app(app)
    record = JobRecord(job_id=job_id, owner_id=request.owner_id, app_id=app_id, status="pending", current_step="Starting generation from concept...", created_at=timestamp, updated_at=timestamp)
    await self._jobs_repo.create_job(record)

    seed = ConceptSeed(concept=descriptor, icon_storage_id=concept.icon_storage_id)
    self._schedule(job_id, self.run(job_id, request, app_id=app_id, seed=seed))
    logger.info("Submitted job %s for app %s from concept %s (owner=%s)", job_id, app_id, concept.concept_id, request.owner_id)
    return SubmittedJob(job_id=job_id, app_id=app_id)

  async def run(self, job_id: str, request: AppGenerationRequest, *, app_id: str, seed: ConceptSeed | None = None) -> None:
    """Execute one job to a terminal status. Never raises except on cancellation."""
    try:
      if seed is None:
        await self._jobs_repo.patch_job(job_id, status="generating_concept", current_step="Generating app concept...", progress_percentage=0)
        outcome = await self._executor.run_pipeline(job_id, request, app_id=app_id)
      else:
        outcome = await self._executor.run_from_concept(job_id, request, app_id=app_id, concept=seed.concept, icon_storage_id=seed.icon_storage_id)
    except asyncio.CancelledError:
      await self._write_failed(job_id, "Generation was cancelled")
      raise
    except StructuralFailure as exc:
      logger.warning("Job %s failed at %s: %s", job_id, exc.stage or "unknown stage", exc)
      await self._write_failed(job_id, describe_exception(exc))
      return
    except Exception as exc:
      logger.error("Job %s failed with unexpected %s", job_id, type(exc).__name__, exc_info=True)
      await self._write_failed(job_id, describe_exception(exc))
      return

    await self._write_outcome(job_id, outcome)

  async def drain(self) -> None:
    """Wait for every scheduled job to reach a terminal status."""
    if self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def cancel_all(self) -> None:
    """Cancel in-flight jobs on shutdown; each writes its own failed status."""
    tasks = list(self._tasks)
    for task in tasks:
      task.cancel()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)

  def _schedule(self, job_id: str, work: Coroutine[Any, Any, None]) -> None:
    task = asyncio.create_task(work, name=f"app-generation-{job_id}")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def _write_outcome(self, job_id: str, outcome: PipelineOutcome) -> None:
    status = terminal_status_for(outcome)
    if status == "failed":
      await self._write_failed(job_id, "No screens were generated")
      return

    label = f"Completed: {outcome.total_successful}/{outcome.total_units} screens generated"
    try:
      record = await self._jobs_repo.patch_job(
        job_id,
        status=status,
        current_step=label,
        progress_percentage=100,
        screens_generated=outcome.total_successful,
        failed_screens=outcome.failed_units or None,
        completed_at=now_iso(),
      )
    except Exception:
      logger.error("Failed to write terminal status %s for job %s", status, job_id, exc_info=True)
      return
    # None means the row was already terminal or never reached generating_screens.
    if record is None:
      logger.warning("Job %s did not accept terminal status %s", job_id, status)
      return
    logger.info("Job %s %s: %s", job_id, status, label)

  async def _write_failed(self, job_id: str, message: str) -> None:
    try:
      await self._jobs_repo.patch_job(job_id, status="failed", current_step="Generation failed", error=message, completed_at=now_iso())
    except Exception:
      logger.error("Failed to mark job %s as failed", job_id, exc_info=True)
