"""Wiring for the generation engine's long-lived collaborators."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.ai.fetcher import RetryableFetcher, build_fetcher
from app.ai.providers import build_concept_provider, build_generation_providers
from app.ai.providers.base import ConceptProvider
from app.ai.router import ModelRouter
from app.config import Settings
from app.jobs.executor import StageExecutor
from app.jobs.orchestrator import JobOrchestrator
from app.services.concepts import ConceptService
from app.services.covers import CoverMediaService
from app.services.storage_client import ObjectStorage, build_storage_client
from app.storage.artifacts_repo import ArtifactsRepository
from app.storage.concepts_repo import ConceptsRepository
from app.storage.jobs_repo import JobsRepository, MediaJobsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineServices:
  """Everything request handlers need, built once per process."""

  settings: Settings
  concept_provider: ConceptProvider
  router: ModelRouter
  fetcher: RetryableFetcher
  storage: ObjectStorage
  jobs_repo: JobsRepository
  media_jobs_repo: MediaJobsRepository
  artifacts_repo: ArtifactsRepository
  concepts_repo: ConceptsRepository
  orchestrator: JobOrchestrator
  covers: CoverMediaService
  concepts: ConceptService

  async def shutdown(self) -> None:
    await self.orchestrator.cancel_all()
    await self.covers.cancel_all()
    await self.concepts.cancel_all()


def assemble_services(
  settings: Settings,
  *,
  concept_provider: ConceptProvider,
  router: ModelRouter,
  fetcher: RetryableFetcher,
  storage: ObjectStorage,
  jobs_repo: JobsRepository,
  media_jobs_repo: MediaJobsRepository,
  artifacts_repo: ArtifactsRepository,
  concepts_repo: ConceptsRepository,
) -> EngineServices:
  """Connect already-built collaborators into the executor, orchestrator and media services."""
  executor = StageExecutor(
    concept_provider=concept_provider,
    router=router,
    fetcher=fetcher,
    storage=storage,
    artifacts_repo=artifacts_repo,
    jobs_repo=jobs_repo,
    default_canvas_url=settings.device_canvas_url,
  )
  orchestrator = JobOrchestrator(executor=executor, jobs_repo=jobs_repo, artifacts_repo=artifacts_repo)
  covers = CoverMediaService(concept_provider=concept_provider, router=router, fetcher=fetcher, storage=storage, artifacts_repo=artifacts_repo, media_jobs_repo=media_jobs_repo)
  concepts = ConceptService(concept_provider=concept_provider, router=router, fetcher=fetcher, storage=storage, concepts_repo=concepts_repo)
  return EngineServices(
    settings=settings,
    concept_provider=concept_provider,
    router=router,
    fetcher=fetcher,
    storage=storage,
    jobs_repo=jobs_repo,
    media_jobs_repo=media_jobs_repo,
    artifacts_repo=artifacts_repo,
    concepts_repo=concepts_repo,
    orchestrator=orchestrator,
    covers=covers,
    concepts=concepts,
  )


def build_services(settings: Settings) -> EngineServices:
  """Build production collaborators from settings."""
  # Imported here so test wiring never needs a configured database.
  from app.storage.postgres_artifacts_repo import PostgresArtifactsRepository
  from app.storage.postgres_concepts_repo import PostgresConceptsRepository
  from app.storage.postgres_jobs_repo import PostgresJobsRepository, PostgresMediaJobsRepository

  router = ModelRouter(build_generation_providers(settings))
  logger.info("Model router ready with concept provider %s (%s)", settings.concept_provider, settings.concept_model)
  return assemble_services(
    settings,
    concept_provider=build_concept_provider(settings),
    router=router,
    fetcher=build_fetcher(settings),
    storage=build_storage_client(settings),
    jobs_repo=PostgresJobsRepository(),
    media_jobs_repo=PostgresMediaJobsRepository(),
    artifacts_repo=PostgresArtifactsRepository(),
    concepts_repo=PostgresConceptsRepository(),
  )
