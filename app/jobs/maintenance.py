"""Maintenance sweeps for abandoned and expired generation jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from app.config import Settings
from app.storage.concepts_repo import ConceptsRepository
from app.storage.jobs_repo import JobsRepository, MediaJobsRepository
from app.utils.time import iso_before, to_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepReport:
  failed_jobs: int
  failed_media_jobs: int
  deleted_media_jobs: int
  failed_concept_jobs: int = 0


def timeout_message(timeout_seconds: int) -> str:
  minutes = max(1, round(timeout_seconds / 60))
  return f"Job timed out after {minutes} minutes"


async def fail_stale_jobs(jobs_repo: JobsRepository, media_jobs_repo: MediaJobsRepository, *, settings: Settings, now: datetime | None = None) -> tuple[int, int]:
  """Mark jobs that stopped reporting progress as failed.

  A job whose process died mid-run never writes a terminal status; the staleness
  cutoff uses ``updated_at`` so slow but live jobs are left alone.
  """
  moment = now or datetime.now(UTC)
  cutoff = iso_before(moment, settings.stale_job_timeout_seconds)
  message = timeout_message(settings.stale_job_timeout_seconds)
  completed_at = to_iso(moment)

  # App generation jobs first, then cover media jobs, with the same cutoff and message.
  failed_jobs = 0
  for record in await jobs_repo.list_stale_jobs(updated_before=cutoff):
    patched = await jobs_repo.patch_job(record.job_id, status="failed", current_step="Generation failed", error=message, completed_at=completed_at)
    if patched is not None:
      failed_jobs += 1
      logger.warning("Marked stale job %s as failed (last update %s)", record.job_id, record.updated_at)

  failed_media_jobs = 0
  for media_record in await media_jobs_repo.list_stale_media_jobs(updated_before=cutoff):
    patched_media = await media_jobs_repo.patch_media_job(media_record.job_id, status="failed", error=message, completed_at=completed_at)
    if patched_media is not None:
      failed_media_jobs += 1
      logger.warning("Marked stale %s job %s as failed", media_record.kind, media_record.job_id)

  return failed_jobs, failed_media_jobs


async def fail_stale_concept_jobs(concepts_repo: ConceptsRepository, *, settings: Settings, now: datetime | None = None) -> int:
  """Mark concept jobs that stopped making progress as failed."""
  moment = now or datetime.now(UTC)
  cutoff = iso_before(moment, settings.stale_job_timeout_seconds)
  message = timeout_message(settings.stale_job_timeout_seconds)

  failed = 0
  for record in await concepts_repo.list_stale_concept_jobs(updated_before=cutoff):
    patched = await concepts_repo.patch_concept_job(record.job_id, status="failed", error=message, completed_at=to_iso(moment))
    if patched is not None:
      failed += 1
      logger.warning("Marked stale concept job %s as failed (last update %s)", record.job_id, record.updated_at)
  return failed


async def cleanup_media_jobs(media_jobs_repo: MediaJobsRepository, *, settings: Settings, now: datetime | None = None) -> int:
  """Delete finished media jobs older than the retention window."""
  moment = now or datetime.now(UTC)
  cutoff = iso_before(moment, settings.media_job_retention_seconds)
  deleted = await media_jobs_repo.delete_media_jobs(completed_before=cutoff)
  if deleted:
    logger.info("Deleted %d media jobs completed before %s", deleted, cutoff)
  return deleted


async def run_sweep(jobs_repo: JobsRepository, media_jobs_repo: MediaJobsRepository, concepts_repo: ConceptsRepository, *, settings: Settings, now: datetime | None = None) -> SweepReport:
  # One timestamp for every step so a single sweep applies a single cutoff.
  moment = now or datetime.now(UTC)
  failed_jobs, failed_media_jobs = await fail_stale_jobs(jobs_repo, media_jobs_repo, settings=settings, now=moment)
  failed_concept_jobs = await fail_stale_concept_jobs(concepts_repo, settings=settings, now=moment)
  deleted = await cleanup_media_jobs(media_jobs_repo, settings=settings, now=moment)
  return SweepReport(failed_jobs=failed_jobs, failed_media_jobs=failed_media_jobs, deleted_media_jobs=deleted, failed_concept_jobs=failed_concept_jobs)
