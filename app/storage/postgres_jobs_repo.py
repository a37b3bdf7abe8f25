"""Postgres-backed repositories for generation jobs using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Update, delete, select, update

from app.core.database import require_session_factory
from app.jobs.models import ACTIVE_STATUSES, MEDIA_TERMINAL_STATUSES, FailedUnit, JobRecord, JobStatus, MediaJobRecord, MediaJobStatus, allowed_sources
from app.schema.sql import AppGenerationJob, MediaGenerationJob
from app.storage.jobs_repo import JobsRepository, MediaJobsRepository
from app.utils.time import now_iso


def guarded_job_update(job_id: str, values: dict[str, Any]) -> Update:
  """Build the UPDATE for one job, restricted to statuses that may accept ``values``."""
  target = values.get("status")
  # Field-only writes still skip terminal rows.
  sources = allowed_sources(target) if target is not None else ACTIVE_STATUSES
  return (
    update(AppGenerationJob)
    .where(AppGenerationJob.job_id == job_id, AppGenerationJob.status.in_(sorted(sources)))
    .values(**values)
    .returning(AppGenerationJob)
    .execution_options(synchronize_session=False)
  )


class PostgresJobsRepository(JobsRepository):
  """Persist app generation jobs to Postgres.

  Every write is a single guarded ``UPDATE ... RETURNING`` so concurrent branches
  only ever touch the columns they send. Terminal rows stay untouched and a status
  write only lands when the current status may legally move to it.
  """

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        AppGenerationJob(
          job_id=record.job_id,
          owner_id=record.owner_id,
          app_id=record.app_id,
          status=record.status,
          current_step=record.current_step,
          progress_percentage=record.progress_percentage,
          screens_total=record.screens_total,
          screens_generated=record.screens_generated,
          failed_screens=[unit.to_dict() for unit in record.failed_screens] or None,
          error=record.error,
          created_at=record.created_at,
          updated_at=record.updated_at,
          completed_at=record.completed_at,
        )
      )
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(AppGenerationJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def patch_job(  # pylint: disable=too-many-arguments
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
    values: dict[str, Any] = {"updated_at": now_iso()}
    if status is not None:
      values["status"] = status
    if current_step is not None:
      values["current_step"] = current_step
    if progress_percentage is not None:
      values["progress_percentage"] = progress_percentage
    if screens_total is not None:
      values["screens_total"] = screens_total
    if screens_generated is not None:
      values["screens_generated"] = screens_generated
    if failed_screens is not None:
      values["failed_screens"] = [unit.to_dict() for unit in failed_screens]
    if error is not None:
      values["error"] = error
    if completed_at is not None:
      values["completed_at"] = completed_at
    return await self._guarded_update(job_id, values)

  async def increment_screens_generated(self, job_id: str, *, progress_percentage: int | None = None, current_step: str | None = None) -> JobRecord | None:
    # Evaluated in SQL so concurrent units never lose an increment.
    values: dict[str, Any] = {"screens_generated": AppGenerationJob.screens_generated + 1, "updated_at": now_iso()}
    if progress_percentage is not None:
      values["progress_percentage"] = progress_percentage
    if current_step is not None:
      values["current_step"] = current_step
    return await self._guarded_update(job_id, values)

  async def list_stale_jobs(self, *, updated_before: str) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(AppGenerationJob).where(AppGenerationJob.status.in_(sorted(ACTIVE_STATUSES)), AppGenerationJob.updated_at < updated_before).order_by(AppGenerationJob.updated_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def get_latest_job_for_app(self, app_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(AppGenerationJob).where(AppGenerationJob.app_id == app_id).order_by(AppGenerationJob.created_at.desc()).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

  async def list_active_jobs(self, owner_id: str) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(AppGenerationJob).where(AppGenerationJob.owner_id == owner_id, AppGenerationJob.status.in_(sorted(ACTIVE_STATUSES))).order_by(AppGenerationJob.created_at.desc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def _guarded_update(self, job_id: str, values: dict[str, Any]) -> JobRecord | None:
    stmt = guarded_job_update(job_id, values)
    # No row back means the job is missing or its status rejected the write.
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  def _model_to_record(self, row: AppGenerationJob) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      owner_id=row.owner_id,
      app_id=row.app_id,
      status=row.status,  # type: ignore[arg-type]
      current_step=row.current_step,
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress_percentage=int(row.progress_percentage or 0),
      screens_total=int(row.screens_total or 0),
      screens_generated=int(row.screens_generated or 0),
      failed_screens=[FailedUnit.from_dict(item) for item in (row.failed_screens or [])],
      error=row.error,
      completed_at=row.completed_at,
    )


class PostgresMediaJobsRepository(MediaJobsRepository):
  """Persist cover media jobs to Postgres."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_media_job(self, record: MediaJobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        MediaGenerationJob(
          job_id=record.job_id,
          owner_id=record.owner_id,
          app_id=record.app_id,
          kind=record.kind,
          status=record.status,
          result_json=record.result,
          error=record.error,
          created_at=record.created_at,
          updated_at=record.updated_at,
          completed_at=record.completed_at,
        )
      )
      await session.commit()

  async def get_media_job(self, job_id: str) -> MediaJobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(MediaGenerationJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def patch_media_job(self, job_id: str, *, status: MediaJobStatus | None = None, result: dict[str, Any] | None = None, error: str | None = None, completed_at: str | None = None) -> MediaJobRecord | None:
    values: dict[str, Any] = {"updated_at": now_iso()}
    if status is not None:
      values["status"] = status
    if result is not None:
      values["result_json"] = result
    if error is not None:
      values["error"] = error
    if completed_at is not None:
      values["completed_at"] = completed_at
    stmt = (
      update(MediaGenerationJob)
      .where(MediaGenerationJob.job_id == job_id, MediaGenerationJob.status.not_in(MEDIA_TERMINAL_STATUSES))
      .values(**values)
      .returning(MediaGenerationJob)
      .execution_options(synchronize_session=False)
    )
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def list_stale_media_jobs(self, *, updated_before: str) -> list[MediaJobRecord]:
    async with self._session_factory() as session:
      stmt = select(MediaGenerationJob).where(MediaGenerationJob.status.in_(("pending", "generating")), MediaGenerationJob.updated_at < updated_before)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def delete_media_jobs(self, *, completed_before: str) -> int:
    async with self._session_factory() as session:
      stmt = delete(MediaGenerationJob).where(MediaGenerationJob.status.in_(MEDIA_TERMINAL_STATUSES), MediaGenerationJob.completed_at.is_not(None), MediaGenerationJob.completed_at < completed_before)
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)

  def _model_to_record(self, row: MediaGenerationJob) -> MediaJobRecord:
    return MediaJobRecord(
      job_id=row.job_id,
      owner_id=row.owner_id,
      app_id=row.app_id,
      kind=row.kind,  # type: ignore[arg-type]
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      result=row.result_json,
      error=row.error,
      completed_at=row.completed_at,
    )
