"""HTTP surface tests against in-memory services."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest

from app.config import get_settings
from app.main import app
from app.jobs.models import JobRecord
from app.storage.artifacts_repo import AppRecord
from conftest import EngineHarness

OWNER = {"X-Subject-Id": "owner-1"}


@pytest.fixture
async def client(harness: EngineHarness) -> AsyncIterator[httpx.AsyncClient]:
  app.state.services = harness.services
  app.dependency_overrides[get_settings] = lambda: harness.services.settings
  transport = httpx.ASGITransport(app=app)
  async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
    yield http_client
  app.dependency_overrides.clear()
  app.state.services = None


async def _seed_app(harness: EngineHarness, **fields: str) -> None:
  await harness.artifacts_repo.create_app(AppRecord(app_id="app-1", owner_id="owner-1", name="Habitual", description="Track habits", created_at="2026-01-01T00:00:00Z", updated_at="2026-01-01T00:00:00Z", **fields))


@pytest.mark.anyio
async def test_generate_returns_accepted_and_job_becomes_pollable(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  response = await client.post("/v1/apps/generate", json={"description": "A habit tracker", "targetScreenCount": 3}, headers=OWNER)
  assert response.status_code == 202
  body = response.json()
  assert set(body) == {"app_id", "job_id"}

  await harness.services.orchestrator.drain()
  status_response = await client.get(f"/v1/jobs/{body['job_id']}", headers=OWNER)
  assert status_response.status_code == 200
  job = status_response.json()
  assert job["status"] == "completed"
  assert job["progress_percentage"] == 100
  assert job["screens_generated"] == 3
  assert job["app_id"] == body["app_id"]


@pytest.mark.anyio
async def test_generate_requires_a_subject(client: httpx.AsyncClient) -> None:
  response = await client.post("/v1/apps/generate", json={"description": "A habit tracker"})
  assert response.status_code == 401


@pytest.mark.anyio
async def test_generate_rejects_oversized_fan_out(client: httpx.AsyncClient) -> None:
  response = await client.post("/v1/apps/generate", json={"description": "A habit tracker", "targetScreenCount": 20}, headers=OWNER)
  assert response.status_code == 422
  assert all("input" not in error for error in response.json()["detail"])


@pytest.mark.anyio
async def test_jobs_of_other_owners_read_as_missing(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  response = await client.post("/v1/apps/generate", json={"description": "A habit tracker", "targetScreenCount": 1}, headers=OWNER)
  job_id = response.json()["job_id"]
  await harness.services.orchestrator.drain()

  other = await client.get(f"/v1/jobs/{job_id}", headers={"X-Subject-Id": "intruder"})
  assert other.status_code == 404
  assert other.json()["detail"] == "Job not found."
  assert (await client.get("/v1/jobs/unknown", headers=OWNER)).status_code == 404


@pytest.mark.anyio
async def test_improve_description(client: httpx.AsyncClient) -> None:
  response = await client.post("/v1/apps/improve-description", json={"description": "habit app", "uiStyleHint": "playful"}, headers=OWNER)
  assert response.status_code == 200
  assert response.json() == {"improved_description": "habit app (improved)", "improved_style": "playful", "inferred_category": "Productivity"}


@pytest.mark.anyio
async def test_cover_image_job_flow(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  await _seed_app(harness)
  response = await client.post("/v1/apps/app-1/cover-image", json={"numVariants": 2}, headers=OWNER)
  assert response.status_code == 202
  job_id = response.json()["job_id"]
  await harness.services.covers.drain()

  job = (await client.get(f"/v1/media-jobs/{job_id}", headers=OWNER)).json()
  assert job["status"] == "completed"
  assert len(job["result"]["variants"]) == 2

  chosen = job["result"]["variants"][1]["image_url"]
  selected = await client.post("/v1/apps/app-1/cover-image/select", json={"imageUrl": chosen}, headers=OWNER)
  assert selected.status_code == 200
  assert selected.json()["cover_image_storage_id"] is not None


@pytest.mark.anyio
async def test_cover_image_for_missing_app_is_404(client: httpx.AsyncClient) -> None:
  response = await client.post("/v1/apps/nope/cover-image", json={}, headers=OWNER)
  assert response.status_code == 404


@pytest.mark.anyio
async def test_cover_video_without_cover_image_conflicts(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  await _seed_app(harness)
  response = await client.post("/v1/apps/app-1/cover-video", json={}, headers=OWNER)
  assert response.status_code == 409
  assert "cover image" in response.json()["detail"]


@pytest.mark.anyio
async def test_cover_video_from_url_source(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  await _seed_app(harness)
  payload = {"source": {"kind": "url", "url": "https://images.test/hero.png"}, "tier": "fast"}
  response = await client.post("/v1/apps/app-1/cover-video", json=payload, headers=OWNER)
  assert response.status_code == 202
  await harness.services.covers.drain()

  job = (await client.get(f"/v1/media-jobs/{response.json()['job_id']}", headers=OWNER)).json()
  assert job["status"] == "completed"
  assert job["kind"] == "cover_video"


@pytest.mark.anyio
async def test_cover_video_rejects_unknown_source_kind(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  await _seed_app(harness)
  response = await client.post("/v1/apps/app-1/cover-video", json={"source": {"kind": "camera"}}, headers=OWNER)
  assert response.status_code == 400


@pytest.mark.anyio
async def test_describe_route(client: httpx.AsyncClient) -> None:
  response = await client.get("/v1/routing/image_to_video/default")
  assert response.status_code == 200
  body = response.json()
  assert body["primary"]["backend_id"] == "seedance-image-to-video"
  assert [entry["backend_id"] for entry in body["fallbacks"]] == ["lucy-image-to-video", "seedance-image-to-video"]
  assert body["estimate"]["cost"] == pytest.approx(0.18)
  assert (await client.get("/v1/routing/image_to_video/premium")).status_code == 404


@pytest.mark.anyio
async def test_estimate_and_recommend(client: httpx.AsyncClient) -> None:
  estimate = await client.post("/v1/routing/estimate", json={"backend_id": "kling-image-to-video", "duration": "10s"})
  assert estimate.json()["cost"] == pytest.approx(0.70)

  recommended = await client.post("/v1/routing/recommend", json={"quality": "high"})
  assert recommended.json() == {"tier": "quality", "preset": None}

  preset = await client.post("/v1/routing/recommend", json={"use_case": "draft"})
  assert preset.json()["preset"]["resolution"] == "480p"
  assert (await client.post("/v1/routing/recommend", json={"use_case": "unknown"})).status_code == 400


@pytest.mark.anyio
async def test_sweep_requires_the_task_secret(client: httpx.AsyncClient) -> None:
  assert (await client.post("/internal/maintenance/sweep")).status_code == 403
  assert (await client.post("/internal/maintenance/sweep", headers={"X-AppForge-Task-Secret": "wrong"})).status_code == 403

  response = await client.post("/internal/maintenance/sweep", headers={"X-AppForge-Task-Secret": "task-secret"})
  assert response.status_code == 200
  assert response.json() == {"failed_jobs": 0, "failed_media_jobs": 0, "deleted_media_jobs": 0, "failed_concept_jobs": 0}

  bearer = await client.post("/internal/maintenance/sweep", headers={"Authorization": "Bearer task-secret"})
  assert bearer.status_code == 200


@pytest.mark.anyio
async def test_health(client: httpx.AsyncClient) -> None:
  response = await client.get("/health")
  assert response.json()["status"] == "ok"


@pytest.mark.anyio
async def test_concepts_flow_into_an_app(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  response = await client.post("/v1/concepts/generate", json={"description": "A habit tracker", "count": 2}, headers=OWNER)
  assert response.status_code == 202
  assert response.json()["status"] == "generating_concepts"
  job_id = response.json()["job_id"]
  await harness.services.concepts.drain()

  batch = (await client.get(f"/v1/concepts/jobs/{job_id}", headers=OWNER)).json()
  assert batch["status"] == "completed"
  assert [concept["position"] for concept in batch["concepts"]] == [0, 1]
  assert all(concept["cover_image_storage_id"] for concept in batch["concepts"])
  assert (await client.get(f"/v1/concepts/jobs/{job_id}", headers={"X-Subject-Id": "intruder"})).status_code == 404

  concept_id = batch["concepts"][0]["concept_id"]
  created = await client.post(f"/v1/concepts/{concept_id}/apps", json={"targetScreenCount": 2}, headers=OWNER)
  assert created.status_code == 202
  await harness.services.orchestrator.drain()

  app_job = await client.get(f"/v1/apps/{created.json()['app_id']}/job", headers=OWNER)
  assert app_job.status_code == 200
  assert app_job.json()["job_id"] == created.json()["job_id"]
  assert app_job.json()["status"] == "completed"
  assert (await client.get(f"/v1/apps/{created.json()['app_id']}/job", headers={"X-Subject-Id": "intruder"})).status_code == 404


@pytest.mark.anyio
async def test_unknown_concept_is_404(client: httpx.AsyncClient) -> None:
  response = await client.post("/v1/concepts/missing/apps", json={}, headers=OWNER)
  assert response.status_code == 404
  assert response.json()["detail"] == "Concept not found."


@pytest.mark.anyio
async def test_active_jobs_lists_only_unfinished_jobs_of_the_caller(client: httpx.AsyncClient, harness: EngineHarness) -> None:
  for job_id, owner_id, status in (("job-a", "owner-1", "generating_screens"), ("job-b", "owner-1", "completed"), ("job-c", "someone-else", "pending")):
    await harness.jobs_repo.create_job(JobRecord(job_id=job_id, owner_id=owner_id, app_id=f"app-{job_id}", status=status, current_step="working", created_at="2026-03-01T10:00:00Z", updated_at="2026-03-01T10:00:00Z"))  # type: ignore[arg-type]

  response = await client.get("/v1/jobs/active", headers=OWNER)
  assert response.status_code == 200
  assert [job["job_id"] for job in response.json()] == ["job-a"]
