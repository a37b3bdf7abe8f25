"""Shared fakes and fixtures for engine tests."""

from __future__ import annotations

import io
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import httpx
import pytest
from PIL import Image

from app.ai.errors import ProviderError
from app.ai.fetcher import RetryableFetcher, RetryPolicy
from app.ai.model_routes import Operation, all_backend_ids
from app.ai.pipeline.contracts import ConceptDescriptor, GeneratedAsset, ImprovedDescription, ScreenPlan, StructurePlan
from app.ai.providers.base import ConceptProvider, GenerationProvider
from app.ai.router import ModelRouter
from app.config import Settings
from app.jobs.models import ACTIVE_STATUSES, MEDIA_TERMINAL_STATUSES, TERMINAL_STATUSES, FailedUnit, JobRecord, MediaJobRecord, allowed_sources
from app.services.engine import EngineServices, assemble_services
from app.storage.artifacts_repo import AppRecord, ScreenRecord
from app.storage.concepts_repo import CONCEPT_JOB_TERMINAL_STATUSES, ConceptJobRecord, ConceptRecord


def _png_bytes(width: int = 4, height: int = 8) -> bytes:
  buffer = io.BytesIO()
  Image.new("RGB", (width, height), color=(40, 90, 200)).save(buffer, format="PNG")
  return buffer.getvalue()


PNG_BYTES = _png_bytes()


def make_settings(**overrides: Any) -> Settings:
  base = Settings(
    environment="test",
    debug=False,
    allowed_origins=("http://localhost:3000",),
    log_max_bytes=1024,
    log_backup_count=0,
    log_http_4xx=False,
    pg_dsn=None,
    pg_connect_timeout=5,
    gcp_project_id=None,
    asset_bucket="appforge-test",
    asset_object_prefix="assets",
    gcs_storage_host=None,
    signed_url_ttl_seconds=3600,
    fal_api_key="fal-test-key",
    fal_base_url="https://fal.test",
    fal_timeout_seconds=30,
    concept_provider="gemini",
    concept_model="gemini-2.5-flash",
    gemini_api_key=None,
    openai_api_key=None,
    openai_base_url=None,
    default_tier="default",
    target_screen_count=5,
    device_canvas_url="https://assets.test/canvas.png",
    fetch_max_attempts=3,
    fetch_base_delay_seconds=1.0,
    fetch_timeout_seconds=10,
    stale_job_timeout_seconds=360,
    media_job_retention_seconds=86400,
    task_secret="task-secret",
  )
  return replace(base, **overrides)


class InMemoryJobsRepo:
  """Jobs repository that mirrors the guarded-update semantics of the Postgres one."""

  def __init__(self) -> None:
    self.records: dict[str, JobRecord] = {}
    self.progress_writes: list[int] = []

  async def create_job(self, record: JobRecord) -> None:
    self.records[record.job_id] = record

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self.records.get(job_id)

  async def patch_job(self, job_id: str, **fields: Any) -> JobRecord | None:
    record = self.records.get(job_id)
    if record is None or record.status in TERMINAL_STATUSES:
      return None
    target = fields.get("status")
    if target is not None and record.status not in allowed_sources(target):
      return None
    changes = {key: value for key, value in fields.items() if value is not None}
    if changes.get("progress_percentage") is not None:
      self.progress_writes.append(changes["progress_percentage"])
    record = replace(record, **changes)
    self.records[job_id] = record
    return record

  async def increment_screens_generated(self, job_id: str, *, progress_percentage: int | None = None, current_step: str | None = None) -> JobRecord | None:
    record = self.records.get(job_id)
    if record is None or record.status in TERMINAL_STATUSES:
      return None
    return await self.patch_job(job_id, screens_generated=record.screens_generated + 1, progress_percentage=progress_percentage, current_step=current_step)

  async def list_stale_jobs(self, *, updated_before: str) -> list[JobRecord]:
    return [record for record in self.records.values() if record.status in ACTIVE_STATUSES and record.updated_at < updated_before]

  async def get_latest_job_for_app(self, app_id: str) -> JobRecord | None:
    matches = [record for record in self.records.values() if record.app_id == app_id]
    return matches[-1] if matches else None

  async def list_active_jobs(self, owner_id: str) -> list[JobRecord]:
    active = [record for record in self.records.values() if record.owner_id == owner_id and record.status in ACTIVE_STATUSES]
    return list(reversed(active))


class InMemoryMediaJobsRepo:
  def __init__(self) -> None:
    self.records: dict[str, MediaJobRecord] = {}

  async def create_media_job(self, record: MediaJobRecord) -> None:
    self.records[record.job_id] = record

  async def get_media_job(self, job_id: str) -> MediaJobRecord | None:
    return self.records.get(job_id)

  async def patch_media_job(self, job_id: str, **fields: Any) -> MediaJobRecord | None:
    record = self.records.get(job_id)
    if record is None or record.status in MEDIA_TERMINAL_STATUSES:
      return None
    record = replace(record, **{key: value for key, value in fields.items() if value is not None})
    self.records[job_id] = record
    return record

  async def list_stale_media_jobs(self, *, updated_before: str) -> list[MediaJobRecord]:
    return [record for record in self.records.values() if record.status in {"pending", "generating"} and record.updated_at < updated_before]

  async def delete_media_jobs(self, *, completed_before: str) -> int:
    expired = [job_id for job_id, record in self.records.items() if record.status in MEDIA_TERMINAL_STATUSES and record.completed_at and record.completed_at < completed_before]
    for job_id in expired:
      del self.records[job_id]
    return len(expired)


class InMemoryConceptsRepo:
  def __init__(self) -> None:
    self.jobs: dict[str, ConceptJobRecord] = {}
    self.concepts: dict[str, ConceptRecord] = {}

  async def create_concept_job(self, record: ConceptJobRecord) -> None:
    self.jobs[record.job_id] = record

  async def get_concept_job(self, job_id: str) -> ConceptJobRecord | None:
    return self.jobs.get(job_id)

  async def patch_concept_job(self, job_id: str, **fields: Any) -> ConceptJobRecord | None:
    record = self.jobs.get(job_id)
    if record is None or record.status in CONCEPT_JOB_TERMINAL_STATUSES:
      return None
    record = replace(record, **{key: value for key, value in fields.items() if value is not None})
    self.jobs[job_id] = record
    return record

  async def list_stale_concept_jobs(self, *, updated_before: str) -> list[ConceptJobRecord]:
    return [record for record in self.jobs.values() if record.status not in CONCEPT_JOB_TERMINAL_STATUSES and record.updated_at < updated_before]

  async def add_concept(self, record: ConceptRecord) -> None:
    self.concepts[record.concept_id] = record

  async def get_concept(self, concept_id: str) -> ConceptRecord | None:
    return self.concepts.get(concept_id)

  async def list_concepts(self, job_id: str) -> list[ConceptRecord]:
    return sorted((concept for concept in self.concepts.values() if concept.job_id == job_id), key=lambda concept: concept.position)

  async def update_concept_images(self, concept_id: str, **fields: Any) -> ConceptRecord | None:
    record = self.concepts.get(concept_id)
    if record is None:
      return None
    record = replace(record, **{key: value for key, value in fields.items() if value is not None})
    self.concepts[concept_id] = record
    return record


class InMemoryArtifactsRepo:
  def __init__(self) -> None:
    self.apps: dict[str, AppRecord] = {}
    self.screens: list[ScreenRecord] = []

  async def create_app(self, record: AppRecord) -> None:
    self.apps[record.app_id] = record

  async def get_app(self, app_id: str) -> AppRecord | None:
    return self.apps.get(app_id)

  async def update_app(self, app_id: str, **fields: Any) -> AppRecord | None:
    record = self.apps.get(app_id)
    if record is None:
      return None
    record = replace(record, **{key: value for key, value in fields.items() if value is not None})
    self.apps[app_id] = record
    return record

  async def add_screen(self, record: ScreenRecord) -> None:
    self.screens.append(record)

  async def list_screens(self, app_id: str) -> list[ScreenRecord]:
    return sorted((screen for screen in self.screens if screen.app_id == app_id), key=lambda screen: screen.position)


class FakeStorage:
  def __init__(self) -> None:
    self.objects: dict[str, tuple[bytes, str]] = {}

  async def store(self, data: bytes, content_type: str, *, extension: str = "bin") -> str:
    storage_id = f"assets/object-{len(self.objects) + 1}.{extension}"
    self.objects[storage_id] = (data, content_type)
    return storage_id

  async def url_for(self, storage_id: str) -> str:
    return f"https://storage.test/{storage_id}"


class FakeConceptProvider(ConceptProvider):
  """Deterministic planner; ``fail_on`` names the calls that should raise."""

  def __init__(self, *, screen_count: int | None = None, fail_on: set[str] | None = None, concept_names: list[str] | None = None) -> None:
    self.name = "fake"
    self.screen_count = screen_count
    self.concept_names = list(concept_names or [])
    self.fail_on = fail_on or set()
    self.calls: list[str] = []

  def _record(self, call: str) -> None:
    self.calls.append(call)
    if call in self.fail_on:
      raise RuntimeError(f"{call} planner failure")

  async def plan_concept(self, description: str, hints: Mapping[str, str | None]) -> ConceptDescriptor:
    self._record("plan_concept")
    name = self.concept_names.pop(0) if self.concept_names else "Habitual"
    return ConceptDescriptor(
      app_name=name,
      app_subtitle="Build better habits",
      app_description=description,
      app_category="Health & Fitness",
      style_guide="Soft pastel cards",
      app_icon_prompt=f"Icon for {name}",
      cover_image_prompt=f"Banner for {name}",
    )

  async def plan_structure(self, concept: ConceptDescriptor, target_unit_count: int) -> StructurePlan:
    self._record("plan_structure")
    count = self.screen_count or target_unit_count
    return StructurePlan(screens=[ScreenPlan(screen_name=f"Screen {index + 1}", purpose="demo") for index in range(count)])

  async def write_screen_prompt(self, concept: ConceptDescriptor, plan: StructurePlan, screen: ScreenPlan, *, has_reference: bool) -> str:
    self._record("write_screen_prompt")
    return f"render {screen.screen_name}"

  async def write_cover_image_prompt(self, concept: ConceptDescriptor, *, user_feedback: str | None = None) -> str:
    self._record("write_cover_image_prompt")
    return f"cover for {concept.app_name} {user_feedback or ''}".strip()

  async def write_cover_video_prompt(self, concept: ConceptDescriptor) -> str:
    self._record("write_cover_video_prompt")
    return f"slow pan across {concept.app_name}"

  async def improve_description(self, draft: str, ui_style_hint: str | None = None) -> ImprovedDescription:
    self._record("improve_description")
    return ImprovedDescription(improved_description=f"{draft} (improved)", improved_style=ui_style_hint or "minimal", inferred_category="Productivity")


@dataclass
class FakeGenerationProvider(GenerationProvider):
  """Backend double; ``fail_when`` decides per call whether to raise."""

  backend_id: str
  fail_when: Callable[[Operation, str, Mapping[str, Any]], bool] = lambda kind, prompt, params: False
  width: int | None = 1290
  height: int | None = 2796
  duration: float | None = None
  calls: list[tuple[Operation, str, dict[str, Any]]] = field(default_factory=list)

  async def generate(self, kind: Operation, prompt: str, params: Mapping[str, Any]) -> GeneratedAsset:
    self.calls.append((kind, prompt, dict(params)))
    if self.fail_when(kind, prompt, params):
      raise ProviderError(self.backend_id, f"HTTP 500: {self.backend_id} unavailable")
    index = len(self.calls)
    extension = "mp4" if kind.is_video else "png"
    extra = tuple(f"https://cdn.test/{self.backend_id}/{index}-{variant}.png" for variant in range(1, int(params.get("num_images") or 1)))
    return GeneratedAsset(asset_url=f"https://cdn.test/{self.backend_id}/{index}.{extension}", width=self.width, height=self.height, measured_duration=self.duration, extra_urls=extra)


def asset_transport(failing_urls: set[str] | None = None) -> httpx.MockTransport:
  """Serve PNG bytes for every URL except those listed, which return 500."""
  failing = failing_urls or set()

  def handler(request: httpx.Request) -> httpx.Response:
    if str(request.url) in failing:
      return httpx.Response(500, text="boom")
    content_type = "video/mp4" if request.url.path.endswith(".mp4") else "image/png"
    return httpx.Response(200, content=PNG_BYTES, headers={"content-type": content_type})

  return httpx.MockTransport(handler)


class RecordingSleep:
  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


@dataclass
class EngineHarness:
  services: EngineServices
  concept_provider: FakeConceptProvider
  providers: dict[str, FakeGenerationProvider]
  jobs_repo: InMemoryJobsRepo
  media_jobs_repo: InMemoryMediaJobsRepo
  artifacts_repo: InMemoryArtifactsRepo
  concepts_repo: InMemoryConceptsRepo
  storage: FakeStorage
  sleep: RecordingSleep

  def image_calls(self, operation: Operation) -> list[tuple[Operation, str, dict[str, Any]]]:
    return [call for provider in self.providers.values() for call in provider.calls if call[0] is operation]


def build_harness(
  *,
  concept_provider: FakeConceptProvider | None = None,
  fail_when: Callable[[Operation, str, Mapping[str, Any]], bool] | None = None,
  failing_urls: set[str] | None = None,
  settings: Settings | None = None,
  jobs_repo: InMemoryJobsRepo | None = None,
) -> EngineHarness:
  concept = concept_provider or FakeConceptProvider()
  providers = {backend_id: FakeGenerationProvider(backend_id, fail_when=fail_when or (lambda kind, prompt, params: False)) for backend_id in all_backend_ids()}
  sleep = RecordingSleep()
  fetcher = RetryableFetcher(policy=RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep), client=httpx.AsyncClient(transport=asset_transport(failing_urls)))
  jobs_repo = jobs_repo or InMemoryJobsRepo()
  media_jobs_repo = InMemoryMediaJobsRepo()
  artifacts_repo = InMemoryArtifactsRepo()
  concepts_repo = InMemoryConceptsRepo()
  storage = FakeStorage()
  services = assemble_services(
    settings or make_settings(),
    concept_provider=concept,
    router=ModelRouter(providers),
    fetcher=fetcher,
    storage=storage,
    jobs_repo=jobs_repo,
    media_jobs_repo=media_jobs_repo,
    artifacts_repo=artifacts_repo,
    concepts_repo=concepts_repo,
  )
  return EngineHarness(
    services=services,
    concept_provider=concept,
    providers=providers,
    jobs_repo=jobs_repo,
    media_jobs_repo=media_jobs_repo,
    artifacts_repo=artifacts_repo,
    concepts_repo=concepts_repo,
    storage=storage,
    sleep=sleep,
  )


def failed_unit_names(record: JobRecord) -> list[str]:
  return [unit.unit_name for unit in record.failed_screens if isinstance(unit, FailedUnit)]


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def harness() -> EngineHarness:
  return build_harness()
