from __future__ import annotations

import pytest
from sqlalchemy.dialects import postgresql

from app.jobs.models import ACTIVE_STATUSES, JobRecord, allowed_sources, can_transition
from app.storage.postgres_jobs_repo import guarded_job_update
from conftest import InMemoryJobsRepo


def _where_clause(values: dict[str, object]) -> str:
  statement = guarded_job_update("job-1", values)
  sql = str(statement.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))
  return sql.split(" WHERE ", 1)[1]


@pytest.mark.parametrize(
  ("current", "target", "allowed"),
  [
    ("pending", "generating_concept", True),
    ("pending", "generating_screens", True),
    ("generating_concept", "generating_screens", True),
    ("generating_screens", "partial", True),
    ("generating_screens", "generating_screens", True),
    ("generating_screens", "generating_concept", False),
    ("pending", "completed", False),
    ("completed", "failed", False),
    ("failed", "failed", False),
  ],
)
def test_can_transition(current: str, target: str, allowed: bool) -> None:
  assert can_transition(current, target) is allowed


def test_allowed_sources() -> None:
  assert allowed_sources("failed") == ACTIVE_STATUSES
  assert allowed_sources("completed") == {"generating_screens"}
  assert allowed_sources("generating_concept") == {"pending", "generating_concept"}


def test_status_update_filters_on_legal_sources() -> None:
  failing = _where_clause({"status": "failed", "error": "boom"})
  assert all(f"'{status}'" in failing for status in ACTIVE_STATUSES)
  assert "'completed'" not in failing

  concept = _where_clause({"status": "generating_concept"})
  assert "'pending'" in concept and "'generating_concept'" in concept
  assert "'generating_screens'" not in concept


def test_field_update_only_touches_active_jobs() -> None:
  where = _where_clause({"progress_percentage": 40})
  assert "'generating_screens'" in where
  assert "'partial'" not in where


@pytest.mark.anyio
async def test_in_memory_repo_applies_the_same_transitions() -> None:
  repo = InMemoryJobsRepo()
  await repo.create_job(JobRecord(job_id="job-1", owner_id="owner-1", app_id="app-1", status="pending", current_step="Starting generation...", created_at="2026-03-01T10:00:00Z", updated_at="2026-03-01T10:00:00Z"))

  assert await repo.patch_job("job-1", status="completed") is None
  forward = await repo.patch_job("job-1", status="generating_screens")
  assert forward is not None and forward.status == "generating_screens"
  assert await repo.patch_job("job-1", status="generating_concept") is None
  finished = await repo.patch_job("job-1", status="partial")
  assert finished is not None and finished.status == "partial"
