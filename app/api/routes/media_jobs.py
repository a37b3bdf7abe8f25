from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_services, get_subject_id
from app.api.models import MediaJobResponse
from app.jobs.models import MediaJobRecord
from app.services.engine import EngineServices

router = APIRouter()


def media_job_view(record: MediaJobRecord) -> MediaJobResponse:
  return MediaJobResponse(
    job_id=record.job_id,
    app_id=record.app_id,
    kind=record.kind,
    status=record.status,
    result=record.result,
    error=record.error,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
  )


@router.get("/{job_id}", response_model=MediaJobResponse)
async def get_media_job(job_id: str, services: Annotated[EngineServices, Depends(get_services)], subject_id: Annotated[str, Depends(get_subject_id)]) -> MediaJobResponse:
  """Fetch a cover media job."""
  record = await services.media_jobs_repo.get_media_job(job_id)
  if record is None or record.owner_id != subject_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
  return media_job_view(record)
