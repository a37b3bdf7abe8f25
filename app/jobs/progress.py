"""Weighted progress model for app generation jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from app.jobs.models import JobRecord
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


class Phase(str, Enum):
  """Pipeline phases that carry progress weight."""

  CONCEPT = "concept"
  ICON = "icon"
  FIRST_UNIT = "first_unit"
  REMAINING_UNITS = "remaining_units"


@dataclass(frozen=True)
class PhasePointBudget:
  """Integer point weight per phase; the weights always add up to 100."""

  concept: int = 15
  icon: int = 15
  first_unit: int = 20
  remaining_units: int = 50

  def __post_init__(self) -> None:
    weights = (self.concept, self.icon, self.first_unit, self.remaining_units)
    if any(weight < 0 for weight in weights):
      raise ValueError("Phase weights must not be negative.")
    if sum(weights) != 100:
      raise ValueError(f"Phase weights must sum to 100, got {sum(weights)}.")

  @property
  def total(self) -> int:
    return self.concept + self.icon + self.first_unit + self.remaining_units

  @property
  def after_concept(self) -> int:
    return self.concept

  @property
  def after_icon(self) -> int:
    return self.concept + self.icon

  @property
  def after_first_unit(self) -> int:
    return self.concept + self.icon + self.first_unit

  def points_per_unit(self, screens_total: int) -> float:
    """Share of the remaining-units weight earned by each unit after the first."""
    if screens_total < 1:
      raise ValueError("screens_total must be at least 1.")
    if screens_total == 1:
      return 0.0
    return self.remaining_units / (screens_total - 1)


DEFAULT_BUDGET = PhasePointBudget()


def clamp_progress(value: float) -> int:
  return max(0, min(100, round(value)))


class ProgressTracker:
  """Translate pipeline milestones into Job Record progress writes.

  Every milestone writes an absolute percentage (set-to-value), so repeating a call
  rewrites the same number. The icon and screen branches report independently; a
  slower icon milestone can move the percentage backwards, which readers must tolerate.
  """

  def __init__(self, job_id: str, jobs_repo: JobsRepository, *, budget: PhasePointBudget = DEFAULT_BUDGET) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._budget = budget
    self._screens_total: int | None = None

  @property
  def budget(self) -> PhasePointBudget:
    return self._budget

  @property
  def screens_total(self) -> int | None:
    return self._screens_total

  async def set_screens_total(self, screens_total: int) -> None:
    """Fix the unit count once structure planning has returned it."""
    if screens_total < 1:
      raise ValueError("screens_total must be at least 1.")
    self._screens_total = screens_total
    await self._jobs_repo.patch_job(self._job_id, screens_total=screens_total, status="generating_screens", current_step=f"Generating screen 1/{screens_total}...")

  def value_for(self, phase: Phase | str, unit_index: int | None = None) -> int:
    """Return the absolute percentage a milestone writes."""
    phase = Phase(phase)
    if phase is Phase.CONCEPT:
      return clamp_progress(self._budget.after_concept)
    if phase is Phase.ICON:
      return clamp_progress(self._budget.after_icon)

    total = self._require_total(phase)
    if phase is Phase.FIRST_UNIT:
      # With a single unit there is nothing left to divide; award the remainder now.
      if total == 1:
        return clamp_progress(self._budget.after_first_unit + self._budget.remaining_units)
      return clamp_progress(self._budget.after_first_unit)

    if unit_index is None or unit_index < 0:
      raise ValueError("remaining_units milestones need a non-negative unit_index.")
    if unit_index >= total - 1:
      raise ValueError(f"unit_index {unit_index} out of range for {total - 1} remaining units.")
    return clamp_progress(self._budget.after_first_unit + self._budget.points_per_unit(total) * (unit_index + 1))

  async def apply_milestone(self, phase: Phase | str, unit_index: int | None = None) -> JobRecord | None:
    """Write the milestone's progress (and unit counters) to the Job Record."""
    phase = Phase(phase)
    value = self.value_for(phase, unit_index)

    # Unit milestones bump the counter atomically, then refresh the step label.
    if phase is Phase.REMAINING_UNITS:
      record = await self._jobs_repo.increment_screens_generated(self._job_id, progress_percentage=value)
      if record is None:
        logger.info("Job %s no longer accepts unit progress (unit %s)", self._job_id, unit_index)
        return None
      return await self._jobs_repo.patch_job(self._job_id, current_step=f"Generated {record.screens_generated}/{self._screens_total} screens")

    if phase is Phase.FIRST_UNIT:
      return await self._jobs_repo.patch_job(self._job_id, progress_percentage=value, screens_generated=1, current_step=f"Matching style from first screen... (1/{self._screens_total})")

    return await self._jobs_repo.patch_job(self._job_id, progress_percentage=value)

  def _require_total(self, phase: Phase) -> int:
    if self._screens_total is None:
      raise RuntimeError(f"{phase.value} milestone applied before screens_total was known.")
    return self._screens_total
