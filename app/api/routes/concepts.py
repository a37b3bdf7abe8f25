import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.ai.pipeline.contracts import AppGenerationRequest
from app.api.deps import get_services, get_subject_id
from app.api.models import ConceptJobResponse, ConceptView, GenerateAppResponse, GenerateConceptsRequest, GenerateFromConceptRequest
from app.services.concepts import ConceptNotFoundError
from app.services.engine import EngineServices
from app.storage.concepts_repo import ConceptJobRecord, ConceptRecord

router = APIRouter()
logger = logging.getLogger("app.api.routes.concepts")

Services = Annotated[EngineServices, Depends(get_services)]
SubjectId = Annotated[str, Depends(get_subject_id)]


def _concept_view(record: ConceptRecord) -> ConceptView:
  descriptor = record.descriptor
  return ConceptView(
    concept_id=record.concept_id,
    position=record.position,
    app_name=descriptor.app_name,
    app_subtitle=descriptor.app_subtitle,
    app_description=descriptor.app_description,
    app_category=descriptor.app_category,
    style_guide=descriptor.style_guide,
    icon_storage_id=record.icon_storage_id,
    cover_image_storage_id=record.cover_image_storage_id,
    error=record.error,
  )


def _concept_job_view(job: ConceptJobRecord, concepts: list[ConceptRecord]) -> ConceptJobResponse:
  return ConceptJobResponse(
    job_id=job.job_id,
    status=job.status,
    requested_count=job.requested_count,
    concepts=[_concept_view(concept) for concept in concepts],
    error=job.error,
    created_at=job.created_at,
    updated_at=job.updated_at,
    completed_at=job.completed_at,
  )


@router.post("/generate", response_model=ConceptJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_concepts(payload: GenerateConceptsRequest, services: Services, subject_id: SubjectId) -> ConceptJobResponse:
  """Start a job producing several alternative concepts, each with an icon and a cover."""
  job = await services.concepts.generate_concepts(
    subject_id,
    payload.description,
    count=payload.count,
    category_hint=payload.category_hint,
    ui_style=payload.ui_style,
    tier=payload.tier or services.settings.default_tier,
  )
  return _concept_job_view(job, [])


@router.get("/jobs/{job_id}", response_model=ConceptJobResponse)
async def get_concept_job(job_id: str, services: Services, subject_id: SubjectId) -> ConceptJobResponse:
  """Fetch a concept job together with the concepts produced so far."""
  try:
    batch = await services.concepts.get_batch(job_id, subject_id)
  except ConceptNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.") from exc
  return _concept_job_view(batch.job, batch.concepts)


@router.post("/{concept_id}/apps", response_model=GenerateAppResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_app_from_concept(concept_id: str, payload: GenerateFromConceptRequest, services: Services, subject_id: SubjectId) -> GenerateAppResponse:
  """Create an app from a saved concept and start generating its screens."""
  try:
    concept = await services.concepts.require_concept(concept_id, subject_id)
  except ConceptNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Concept not found.") from exc

  settings = services.settings
  descriptor = concept.descriptor
  request = AppGenerationRequest(
    owner_id=subject_id,
    description=descriptor.full_description or descriptor.app_name,
    category_hint=descriptor.app_category or None,
    tier=payload.tier or settings.default_tier,
    target_screen_count=payload.target_screen_count or settings.target_screen_count,
    canvas_url=payload.canvas_url,
  )
  submitted = await services.orchestrator.submit_from_concept(concept, request)
  logger.info("Concept %s became app %s (job %s)", concept_id, submitted.app_id, submitted.job_id)
  return GenerateAppResponse(app_id=submitted.app_id, job_id=submitted.job_id)
