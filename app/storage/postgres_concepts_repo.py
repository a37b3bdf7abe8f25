"""Postgres-backed repository for concept jobs and saved concepts."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update

from app.ai.pipeline.contracts import ConceptDescriptor
from app.core.database import require_session_factory
from app.schema.sql import AppConcept, ConceptGenerationJob
from app.storage.concepts_repo import CONCEPT_JOB_TERMINAL_STATUSES, ConceptJobRecord, ConceptJobStatus, ConceptRecord, ConceptsRepository
from app.utils.time import now_iso


class PostgresConceptsRepository(ConceptsRepository):
  """Persist concept jobs and their concepts to Postgres."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_concept_job(self, record: ConceptJobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        ConceptGenerationJob(
          job_id=record.job_id,
          owner_id=record.owner_id,
          status=record.status,
          requested_count=record.requested_count,
          error=record.error,
          created_at=record.created_at,
          updated_at=record.updated_at,
          completed_at=record.completed_at,
        )
      )
      await session.commit()

  async def get_concept_job(self, job_id: str) -> ConceptJobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(ConceptGenerationJob, job_id)
      if row is None:
        return None
      return self._job_to_record(row)

  async def patch_concept_job(self, job_id: str, *, status: ConceptJobStatus | None = None, error: str | None = None, completed_at: str | None = None) -> ConceptJobRecord | None:
    values: dict[str, Any] = {"updated_at": now_iso()}
    if status is not None:
      values["status"] = status
    if error is not None:
      values["error"] = error
    if completed_at is not None:
      values["completed_at"] = completed_at
    # Finished jobs are immutable, so a late writer cannot reopen one.
    stmt = (
      update(ConceptGenerationJob)
      .where(ConceptGenerationJob.job_id == job_id, ConceptGenerationJob.status.not_in(CONCEPT_JOB_TERMINAL_STATUSES))
      .values(**values)
      .returning(ConceptGenerationJob)
      .execution_options(synchronize_session=False)
    )
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._job_to_record(row)

  async def list_stale_concept_jobs(self, *, updated_before: str) -> list[ConceptJobRecord]:
    async with self._session_factory() as session:
      stmt = select(ConceptGenerationJob).where(ConceptGenerationJob.status.not_in(CONCEPT_JOB_TERMINAL_STATUSES), ConceptGenerationJob.updated_at < updated_before)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._job_to_record(row) for row in rows]

  async def add_concept(self, record: ConceptRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        AppConcept(
          concept_id=record.concept_id,
          job_id=record.job_id,
          owner_id=record.owner_id,
          position=record.position,
          descriptor_json=record.descriptor.model_dump(),
          icon_storage_id=record.icon_storage_id,
          cover_image_storage_id=record.cover_image_storage_id,
          error=record.error,
          created_at=record.created_at,
          updated_at=record.updated_at,
        )
      )
      await session.commit()

  async def get_concept(self, concept_id: str) -> ConceptRecord | None:
    async with self._session_factory() as session:
      row = await session.get(AppConcept, concept_id)
      if row is None:
        return None
      return self._concept_to_record(row)

  async def list_concepts(self, job_id: str) -> list[ConceptRecord]:
    async with self._session_factory() as session:
      stmt = select(AppConcept).where(AppConcept.job_id == job_id).order_by(AppConcept.position.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._concept_to_record(row) for row in rows]

  async def update_concept_images(self, concept_id: str, *, icon_storage_id: str | None = None, cover_image_storage_id: str | None = None, error: str | None = None) -> ConceptRecord | None:
    fields = {"icon_storage_id": icon_storage_id, "cover_image_storage_id": cover_image_storage_id, "error": error}
    values: dict[str, Any] = {key: value for key, value in fields.items() if value is not None}
    values["updated_at"] = now_iso()
    stmt = update(AppConcept).where(AppConcept.concept_id == concept_id).values(**values).returning(AppConcept).execution_options(synchronize_session=False)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._concept_to_record(row)

  def _job_to_record(self, row: ConceptGenerationJob) -> ConceptJobRecord:
    return ConceptJobRecord(
      job_id=row.job_id,
      owner_id=row.owner_id,
      status=row.status,  # type: ignore[arg-type]
      requested_count=int(row.requested_count or 0),
      created_at=row.created_at,
      updated_at=row.updated_at,
      error=row.error,
      completed_at=row.completed_at,
    )

  def _concept_to_record(self, row: AppConcept) -> ConceptRecord:
    return ConceptRecord(
      concept_id=row.concept_id,
      job_id=row.job_id,
      owner_id=row.owner_id,
      position=row.position,
      descriptor=ConceptDescriptor.model_validate(row.descriptor_json),
      created_at=row.created_at,
      updated_at=row.updated_at,
      icon_storage_id=row.icon_storage_id,
      cover_image_storage_id=row.cover_image_storage_id,
      error=row.error,
    )
