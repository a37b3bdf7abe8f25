from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.jobs.maintenance import cleanup_media_jobs, fail_stale_concept_jobs, fail_stale_jobs, run_sweep, timeout_message
from app.jobs.models import JobRecord, MediaJobRecord
from app.storage.concepts_repo import ConceptJobRecord
from conftest import InMemoryConceptsRepo, InMemoryJobsRepo, InMemoryMediaJobsRepo, make_settings

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _job(job_id: str, status: str, updated_at: str) -> JobRecord:
  return JobRecord(job_id=job_id, owner_id="owner-1", app_id=f"app-{job_id}", status=status, current_step="working", created_at="2026-03-01T10:00:00Z", updated_at=updated_at)  # type: ignore[arg-type]


def _media_job(job_id: str, status: str, updated_at: str, completed_at: str | None = None) -> MediaJobRecord:
  return MediaJobRecord(job_id=job_id, owner_id="owner-1", app_id="app-1", kind="cover_video", status=status, created_at="2026-02-01T00:00:00Z", updated_at=updated_at, completed_at=completed_at)  # type: ignore[arg-type]


def test_timeout_message_uses_minutes() -> None:
  assert timeout_message(360) == "Job timed out after 6 minutes"
  assert timeout_message(20) == "Job timed out after 1 minutes"


@pytest.mark.anyio
async def test_only_stale_non_terminal_jobs_are_failed() -> None:
  jobs_repo = InMemoryJobsRepo()
  media_repo = InMemoryMediaJobsRepo()
  await jobs_repo.create_job(_job("stale", "generating_screens", "2026-03-01T11:50:00Z"))
  await jobs_repo.create_job(_job("fresh", "generating_screens", "2026-03-01T11:58:00Z"))
  await jobs_repo.create_job(_job("done", "completed", "2026-03-01T09:00:00Z"))
  await media_repo.create_media_job(_media_job("media-stale", "generating", "2026-03-01T11:00:00Z"))

  failed_jobs, failed_media = await fail_stale_jobs(jobs_repo, media_repo, settings=make_settings(), now=NOW)

  assert (failed_jobs, failed_media) == (1, 1)
  stale = await jobs_repo.get_job("stale")
  assert stale is not None
  assert stale.status == "failed"
  assert stale.error == "Job timed out after 6 minutes"
  assert stale.completed_at == "2026-03-01T12:00:00Z"
  fresh = await jobs_repo.get_job("fresh")
  assert fresh is not None and fresh.status == "generating_screens"
  done = await jobs_repo.get_job("done")
  assert done is not None and done.status == "completed"


@pytest.mark.anyio
async def test_cleanup_deletes_only_expired_finished_media_jobs() -> None:
  media_repo = InMemoryMediaJobsRepo()
  await media_repo.create_media_job(_media_job("old", "completed", "2026-02-20T00:00:00Z", completed_at="2026-02-20T00:00:00Z"))
  await media_repo.create_media_job(_media_job("recent", "failed", "2026-03-01T06:00:00Z", completed_at="2026-03-01T06:00:00Z"))
  await media_repo.create_media_job(_media_job("running", "generating", "2026-02-20T00:00:00Z"))

  deleted = await cleanup_media_jobs(media_repo, settings=make_settings(), now=NOW)

  assert deleted == 1
  assert set(media_repo.records) == {"recent", "running"}


@pytest.mark.anyio
async def test_run_sweep_reports_every_count() -> None:
  jobs_repo = InMemoryJobsRepo()
  media_repo = InMemoryMediaJobsRepo()
  await jobs_repo.create_job(_job("stale", "pending", "2026-03-01T08:00:00Z"))
  await media_repo.create_media_job(_media_job("old", "completed", "2026-02-01T00:00:00Z", completed_at="2026-02-01T00:00:00Z"))

  report = await run_sweep(jobs_repo, media_repo, InMemoryConceptsRepo(), settings=make_settings(), now=NOW)

  assert (report.failed_jobs, report.failed_media_jobs, report.deleted_media_jobs, report.failed_concept_jobs) == (1, 0, 1, 0)


@pytest.mark.anyio
async def test_stale_concept_jobs_are_failed() -> None:
  concepts_repo = InMemoryConceptsRepo()
  for job_id, status, updated_at in (
    ("stuck", "generating_images", "2026-03-01T11:00:00Z"),
    ("busy", "generating_concepts", "2026-03-01T11:59:00Z"),
    ("done", "completed", "2026-03-01T08:00:00Z"),
  ):
    await concepts_repo.create_concept_job(ConceptJobRecord(job_id=job_id, owner_id="owner-1", status=status, requested_count=4, created_at="2026-03-01T08:00:00Z", updated_at=updated_at))  # type: ignore[arg-type]

  assert await fail_stale_concept_jobs(concepts_repo, settings=make_settings(), now=NOW) == 1
  assert concepts_repo.jobs["stuck"].status == "failed"
  assert concepts_repo.jobs["stuck"].error == "Job timed out after 6 minutes"
  assert concepts_repo.jobs["busy"].status == "generating_concepts"
  assert concepts_repo.jobs["done"].status == "completed"
