"""Storage interfaces for generation jobs."""

from __future__ import annotations

from typing import Any, Protocol

from app.jobs.models import FailedUnit, JobRecord, JobStatus, MediaJobRecord, MediaJobStatus


class JobsRepository(Protocol):
  """Repository contract for app generation job persistence.

  Writers only ever send the fields they own. A record in a terminal status is
  immutable: ``patch_job`` and ``increment_screens_generated`` return None for it.
  A status write that is not a legal move from the current status also returns None.
  """

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def patch_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    current_step: str | None = None,
    progress_percentage: int | None = None,
    screens_total: int | None = None,
    screens_generated: int | None = None,
    failed_screens: list[FailedUnit] | None = None,
    error: str | None = None,
    completed_at: str | None = None,
  ) -> JobRecord | None:
    """Apply a field-subset update unless the job is terminal or the status move is illegal."""

  async def increment_screens_generated(self, job_id: str, *, progress_percentage: int | None = None, current_step: str | None = None) -> JobRecord | None:
    """Atomically add one to screens_generated, optionally setting progress and label."""

  async def list_stale_jobs(self, *, updated_before: str) -> list[JobRecord]:
    """Return non-terminal jobs whose last update is older than the cutoff."""

  async def get_latest_job_for_app(self, app_id: str) -> JobRecord | None:
    """Return the most recently created job for an app."""

  async def list_active_jobs(self, owner_id: str) -> list[JobRecord]:
    """Return an owner's non-terminal jobs, newest first."""


class MediaJobsRepository(Protocol):
  """Repository contract for cover media jobs."""

  async def create_media_job(self, record: MediaJobRecord) -> None:
    """Persist an initial media job record."""

  async def get_media_job(self, job_id: str) -> MediaJobRecord | None:
    """Fetch a media job by identifier."""

  async def patch_media_job(self, job_id: str, *, status: MediaJobStatus | None = None, result: dict[str, Any] | None = None, error: str | None = None, completed_at: str | None = None) -> MediaJobRecord | None:
    """Apply a field-subset update unless the media job is already terminal."""

  async def list_stale_media_jobs(self, *, updated_before: str) -> list[MediaJobRecord]:
    """Return media jobs still generating whose last update is older than the cutoff."""

  async def delete_media_jobs(self, *, completed_before: str) -> int:
    """Delete terminal media jobs finished before the cutoff; return the count."""
