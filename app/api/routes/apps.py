import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.ai.pipeline.contracts import AppGenerationRequest
from app.api.deps import get_services, get_subject_id
from app.api.models import (
  AppView,
  CoverImageRequest,
  CoverVideoRequest,
  GenerateAppRequest,
  GenerateAppResponse,
  ImproveDescriptionRequest,
  ImproveDescriptionResponse,
  JobStatusResponse,
  MediaJobResponse,
  SaveCoverImageRequest,
)
from app.api.msgspec_utils import decode_msgspec_request
from app.api.routes.jobs import job_status_view
from app.api.routes.media_jobs import media_job_view
from app.services.covers import AppNotFoundError, CoverSourceError
from app.services.engine import EngineServices
from app.storage.artifacts_repo import AppRecord

router = APIRouter()
logger = logging.getLogger("app.api.routes.apps")

Services = Annotated[EngineServices, Depends(get_services)]
SubjectId = Annotated[str, Depends(get_subject_id)]


def _app_view(record: AppRecord) -> AppView:
  return AppView(
    app_id=record.app_id,
    name=record.name,
    subtitle=record.subtitle,
    description=record.description,
    category=record.category,
    icon_storage_id=record.icon_storage_id,
    cover_image_storage_id=record.cover_image_storage_id,
    cover_video_storage_id=record.cover_video_storage_id,
  )


@router.post("/generate", response_model=GenerateAppResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_app(payload: GenerateAppRequest, services: Services, subject_id: SubjectId) -> GenerateAppResponse:
  """Start an app generation job and return immediately."""
  settings = services.settings
  request = AppGenerationRequest(
    owner_id=subject_id,
    description=payload.description,
    category_hint=payload.category_hint,
    ui_style=payload.ui_style,
    tier=payload.tier or settings.default_tier,
    target_screen_count=payload.target_screen_count or settings.target_screen_count,
    canvas_url=payload.canvas_url,
  )
  submitted = await services.orchestrator.submit(request)
  return GenerateAppResponse(app_id=submitted.app_id, job_id=submitted.job_id)


@router.post("/improve-description", response_model=ImproveDescriptionResponse)
async def improve_description(payload: ImproveDescriptionRequest, services: Services, subject_id: SubjectId) -> ImproveDescriptionResponse:
  """Rewrite a rough app idea into a generation-ready description."""
  try:
    improved = await services.concept_provider.improve_description(payload.description, payload.ui_style_hint)
  except Exception as exc:
    logger.warning("Description improvement failed for %s: %s", subject_id, exc)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Description improvement failed.") from exc
  return ImproveDescriptionResponse(improved_description=improved.improved_description, improved_style=improved.improved_style, inferred_category=improved.inferred_category)


@router.post("/{app_id}/cover-image", response_model=MediaJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_cover_image(app_id: str, payload: CoverImageRequest, services: Services, subject_id: SubjectId) -> MediaJobResponse:
  """Start a cover image job producing several landscape variants."""
  try:
    record = await services.covers.generate_cover_image(app_id, subject_id, num_variants=payload.num_variants, width=payload.width, height=payload.height, user_feedback=payload.user_feedback)
  except AppNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="App not found.") from exc
  return media_job_view(record)


@router.post("/{app_id}/cover-image/select", response_model=AppView)
async def select_cover_image(app_id: str, payload: SaveCoverImageRequest, services: Services, subject_id: SubjectId) -> AppView:
  """Store a chosen cover variant on the app."""
  try:
    record = await services.covers.save_cover_image(app_id, subject_id, payload.image_url)
  except AppNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="App not found.") from exc
  return _app_view(record)


@router.post("/{app_id}/cover-video", response_model=MediaJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_cover_video(app_id: str, request: Request, services: Services, subject_id: SubjectId) -> MediaJobResponse:
  """Start a cover video job from the stored cover image or an image URL."""
  payload = await decode_msgspec_request(request, CoverVideoRequest)
  try:
    record = await services.covers.generate_cover_video(app_id, subject_id, payload.source, custom_prompt=payload.custom_prompt, tier=payload.tier, backend_id=payload.backend_id)
  except AppNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="App not found.") from exc
  except CoverSourceError as exc:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
  return media_job_view(record)


@router.get("/{app_id}/job", response_model=JobStatusResponse)
async def get_app_job(app_id: str, services: Services, subject_id: SubjectId) -> JobStatusResponse:
  """Fetch the most recent generation job for one of the caller's apps."""
  record = await services.jobs_repo.get_latest_job_for_app(app_id)
  if record is None or record.owner_id != subject_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
  return job_status_view(record)
