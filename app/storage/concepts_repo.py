"""Storage interfaces and records for multi-concept generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from app.ai.pipeline.contracts import ConceptDescriptor

ConceptJobStatus = Literal["generating_concepts", "generating_images", "completed", "failed"]

CONCEPT_JOB_TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass
class ConceptJobRecord:
  """One request for several alternative concepts of the same app idea."""

  job_id: str
  owner_id: str
  status: ConceptJobStatus
  requested_count: int
  created_at: str
  updated_at: str
  error: str | None = None
  completed_at: str | None = None


@dataclass
class ConceptRecord:
  """A saved concept a user can later turn into an app."""

  concept_id: str
  job_id: str
  owner_id: str
  position: int
  descriptor: ConceptDescriptor
  created_at: str
  updated_at: str
  icon_storage_id: str | None = None
  cover_image_storage_id: str | None = None
  error: str | None = None

  @property
  def illustrated(self) -> bool:
    return self.icon_storage_id is not None and self.cover_image_storage_id is not None


class ConceptsRepository(Protocol):
  """Repository contract for concept jobs and the concepts they produce."""

  async def create_concept_job(self, record: ConceptJobRecord) -> None:
    """Persist an initial concept job record."""

  async def get_concept_job(self, job_id: str) -> ConceptJobRecord | None:
    """Fetch a concept job by identifier."""

  async def patch_concept_job(self, job_id: str, *, status: ConceptJobStatus | None = None, error: str | None = None, completed_at: str | None = None) -> ConceptJobRecord | None:
    """Apply a field-subset update unless the concept job is already terminal."""

  async def list_stale_concept_jobs(self, *, updated_before: str) -> list[ConceptJobRecord]:
    """Return unfinished concept jobs whose last update is older than the cutoff."""

  async def add_concept(self, record: ConceptRecord) -> None:
    """Persist one generated concept."""

  async def get_concept(self, concept_id: str) -> ConceptRecord | None:
    """Fetch a concept by identifier."""

  async def list_concepts(self, job_id: str) -> list[ConceptRecord]:
    """Return a job's concepts ordered by position."""

  async def update_concept_images(self, concept_id: str, *, icon_storage_id: str | None = None, cover_image_storage_id: str | None = None, error: str | None = None) -> ConceptRecord | None:
    """Attach stored images (or the reason they are missing) to a concept."""
