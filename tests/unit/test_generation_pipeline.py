"""End-to-end pipeline runs against in-memory repositories and fake backends."""

from __future__ import annotations

import pytest

from app.ai.model_routes import Operation
from app.ai.pipeline.contracts import AppGenerationRequest
from app.jobs.orchestrator import PLACEHOLDER_NAME
from app.jobs.models import JobRecord
from conftest import FakeConceptProvider, InMemoryJobsRepo, build_harness, failed_unit_names, make_settings


def _request(count: int = 5, **overrides: object) -> AppGenerationRequest:
  payload = {"owner_id": "owner-1", "description": "A habit tracker with streaks", "target_screen_count": count}
  payload.update(overrides)
  return AppGenerationRequest(**payload)


def _fails_for_screen(name: str):
  return lambda kind, prompt, params: kind is Operation.IMAGE_EDIT and prompt == f"render {name}"


class FlakyCounterJobsRepo(InMemoryJobsRepo):
  """Drops the first screen counter write with a transient database error."""

  def __init__(self) -> None:
    super().__init__()
    self.dropped = 0

  async def increment_screens_generated(self, job_id: str, **fields: object) -> JobRecord | None:
    if not self.dropped:
      self.dropped += 1
      raise RuntimeError("connection reset by peer")
    return await super().increment_screens_generated(job_id, **fields)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_submit_returns_before_generation_and_creates_placeholders() -> None:
  harness = build_harness()
  submitted = await harness.services.orchestrator.submit(_request(3))

  job = await harness.jobs_repo.get_job(submitted.job_id)
  app = await harness.artifacts_repo.get_app(submitted.app_id)
  assert job is not None and app is not None
  assert job.status == "pending"
  assert job.current_step == "Starting generation..."
  assert job.progress_percentage == 0
  assert app.name == PLACEHOLDER_NAME

  await harness.services.orchestrator.drain()


@pytest.mark.anyio
async def test_full_success_completes_every_unit() -> None:
  harness = build_harness()
  submitted = await harness.services.orchestrator.submit(_request(3))
  await harness.services.orchestrator.drain()
  assert harness.services.orchestrator.running_jobs == 0

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "completed"
  assert job.progress_percentage == 100
  assert job.screens_total == 3
  assert job.screens_generated == 3
  assert job.failed_screens == []
  assert job.current_step == "Completed: 3/3 screens generated"
  assert job.completed_at is not None

  app = await harness.artifacts_repo.get_app(submitted.app_id)
  assert app is not None
  assert app.name == "Habitual"
  assert app.icon_storage_id is not None
  screens = await harness.artifacts_repo.list_screens(submitted.app_id)
  assert [screen.name for screen in screens] == ["Screen 1", "Screen 2", "Screen 3"]
  assert all((screen.width, screen.height) == (1290, 2796) for screen in screens)


@pytest.mark.anyio
async def test_later_unit_failure_yields_partial_job() -> None:
  harness = build_harness(fail_when=_fails_for_screen("Screen 3"))
  submitted = await harness.services.orchestrator.submit(_request(5))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "partial"
  assert job.progress_percentage == 100
  assert job.screens_total == 5
  assert job.screens_generated == 4
  assert failed_unit_names(job) == ["Screen 3"]
  assert "All backends failed" in job.failed_screens[0].error_message
  assert job.current_step == "Completed: 4/5 screens generated"
  assert len(await harness.artifacts_repo.list_screens(submitted.app_id)) == 4


@pytest.mark.anyio
async def test_remaining_units_reference_the_first_unit_and_canvas() -> None:
  harness = build_harness()
  await harness.services.orchestrator.submit(_request(3, canvas_url="https://assets.test/phone.png"))
  await harness.services.orchestrator.drain()

  edits = harness.image_calls(Operation.IMAGE_EDIT)
  assert len(edits) == 3
  first_params = next(params for _, prompt, params in edits if prompt == "render Screen 1")
  assert first_params["image_urls"] == ["https://assets.test/phone.png"]
  later = [params["image_urls"] for _, prompt, params in edits if prompt != "render Screen 1"]
  assert all(len(urls) == 2 and urls[1] == "https://assets.test/phone.png" for urls in later)
  assert all(urls[0].startswith("https://cdn.test/") for urls in later)


@pytest.mark.anyio
async def test_concept_failure_fails_job_without_any_generation_calls() -> None:
  harness = build_harness(concept_provider=FakeConceptProvider(fail_on={"plan_concept"}))
  submitted = await harness.services.orchestrator.submit(_request(4))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "failed"
  assert job.current_step == "Generation failed"
  assert "Concept generation failed" in (job.error or "")
  assert harness.image_calls(Operation.TEXT_TO_IMAGE) == []
  assert harness.image_calls(Operation.IMAGE_EDIT) == []


@pytest.mark.anyio
async def test_first_unit_failure_is_structural() -> None:
  harness = build_harness(fail_when=_fails_for_screen("Screen 1"))
  submitted = await harness.services.orchestrator.submit(_request(4))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "failed"
  assert "First screen generation failed" in (job.error or "")
  # No later unit is attempted without a style reference.
  prompts = {prompt for _, prompt, _ in harness.image_calls(Operation.IMAGE_EDIT)}
  assert prompts == {"render Screen 1"}


@pytest.mark.anyio
async def test_icon_failure_fails_the_job() -> None:
  harness = build_harness(fail_when=lambda kind, prompt, params: kind is Operation.TEXT_TO_IMAGE)
  submitted = await harness.services.orchestrator.submit(_request(2))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "failed"
  assert "Icon generation failed" in (job.error or "")


@pytest.mark.anyio
async def test_structure_failure_fails_the_job() -> None:
  harness = build_harness(concept_provider=FakeConceptProvider(fail_on={"plan_structure"}))
  submitted = await harness.services.orchestrator.submit(_request(2))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "failed"
  assert "Structure planning failed" in (job.error or "")
  assert harness.image_calls(Operation.IMAGE_EDIT) == []


@pytest.mark.anyio
async def test_missing_canvas_fails_the_job() -> None:
  harness = build_harness(settings=make_settings(device_canvas_url=None))
  submitted = await harness.services.orchestrator.submit(_request(2))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "failed"
  assert "device canvas" in (job.error or "")


@pytest.mark.anyio
async def test_unit_fetch_failure_is_contained_to_that_unit() -> None:
  # The default image-edit primary serves Screen 2 as its second call.
  harness = build_harness(failing_urls={"https://cdn.test/gemini-flash-image-edit/2.png"})
  submitted = await harness.services.orchestrator.submit(_request(2))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "partial"
  assert failed_unit_names(job) == ["Screen 2"]
  assert "after 3 attempts" in job.failed_screens[0].error_message
  assert harness.sleep.delays == [2.0, 4.0]


@pytest.mark.anyio
async def test_single_unit_job_completes() -> None:
  harness = build_harness()
  submitted = await harness.services.orchestrator.submit(_request(1))
  await harness.services.orchestrator.drain()

  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "completed"
  assert job.screens_generated == 1
  assert 100 in harness.jobs_repo.progress_writes


@pytest.mark.anyio
async def test_terminal_job_is_not_rewritten() -> None:
  harness = build_harness()
  submitted = await harness.services.orchestrator.submit(_request(2))
  await harness.services.orchestrator.drain()

  assert await harness.jobs_repo.patch_job(submitted.job_id, status="failed", error="late writer") is None
  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "completed"


@pytest.mark.anyio
async def test_lost_progress_write_does_not_fail_a_stored_screen() -> None:
  jobs_repo = FlakyCounterJobsRepo()
  harness = build_harness(jobs_repo=jobs_repo)
  submitted = await harness.services.orchestrator.submit(_request(3))
  await harness.services.orchestrator.drain()

  assert jobs_repo.dropped == 1
  job = await harness.jobs_repo.get_job(submitted.job_id)
  assert job is not None
  assert job.status == "completed"
  assert job.failed_screens == []
  assert job.screens_generated == 3
  assert len(await harness.artifacts_repo.list_screens(submitted.app_id)) == 3


@pytest.mark.anyio
async def test_jobs_cannot_move_backwards() -> None:
  harness = build_harness()
  submitted = await harness.services.orchestrator.submit(_request(2))
  await harness.services.orchestrator.drain()
  await harness.jobs_repo.create_job(JobRecord(job_id="job-mid", owner_id="owner-1", app_id=submitted.app_id, status="generating_screens", current_step="Generating screen 1/2...", created_at="2026-03-01T10:00:00Z", updated_at="2026-03-01T10:00:00Z"))

  assert await harness.jobs_repo.patch_job("job-mid", status="generating_concept") is None
  assert await harness.jobs_repo.patch_job("job-mid", status="pending") is None
  job = await harness.jobs_repo.get_job("job-mid")
  assert job is not None and job.status == "generating_screens"
