"""Domain models for app generation and cover media jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["pending", "generating_concept", "generating_screens", "completed", "partial", "failed"]
MediaJobKind = Literal["cover_image", "cover_video"]
MediaJobStatus = Literal["pending", "generating", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "partial", "failed"})
ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "generating_concept", "generating_screens"})
MEDIA_TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

# Allowed forward transitions; any non-terminal status may also move to failed.
# Jobs seeded from a saved concept go straight from pending to generating_screens.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
  "pending": frozenset({"generating_concept", "generating_screens", "failed"}),
  "generating_concept": frozenset({"generating_screens", "failed"}),
  "generating_screens": frozenset({"completed", "partial", "failed"}),
  "completed": frozenset(),
  "partial": frozenset(),
  "failed": frozenset(),
}


def is_terminal(status: str) -> bool:
  return status in TERMINAL_STATUSES


def can_transition(current: str, target: str) -> bool:
  """Return True when ``current -> target`` is a legal status move (or a no-op)."""
  if current == target:
    return not is_terminal(current)
  return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def allowed_sources(target: str) -> frozenset[str]:
  """Statuses a job may currently hold for a write that sets ``target``."""
  return frozenset(status for status in ALLOWED_TRANSITIONS if can_transition(status, target))


@dataclass(frozen=True)
class FailedUnit:
  """A fan-out unit that did not produce an asset."""

  unit_name: str
  error_message: str

  def to_dict(self) -> dict[str, str]:
    return {"unit_name": self.unit_name, "error_message": self.error_message}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> FailedUnit:
    return cls(unit_name=str(payload.get("unit_name") or ""), error_message=str(payload.get("error_message") or ""))


@dataclass
class JobRecord:
  """Represents one app generation job as the client polls it."""

  job_id: str
  owner_id: str
  app_id: str
  status: JobStatus
  current_step: str
  created_at: str
  updated_at: str
  progress_percentage: int = 0
  screens_total: int = 0
  screens_generated: int = 0
  failed_screens: list[FailedUnit] = field(default_factory=list)
  error: str | None = None
  completed_at: str | None = None


@dataclass
class MediaJobRecord:
  """Represents one cover image or cover video job."""

  job_id: str
  owner_id: str
  app_id: str
  kind: MediaJobKind
  status: MediaJobStatus
  created_at: str
  updated_at: str
  result: dict[str, Any] | None = None
  error: str | None = None
  completed_at: str | None = None
