from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_services, get_subject_id
from app.api.models import FailedScreenView, JobStatusResponse
from app.jobs.models import JobRecord
from app.services.engine import EngineServices

router = APIRouter()

_JOB_NOT_FOUND_MSG = "Job not found."

Services = Annotated[EngineServices, Depends(get_services)]
SubjectId = Annotated[str, Depends(get_subject_id)]


def job_status_view(record: JobRecord) -> JobStatusResponse:
  return JobStatusResponse(
    job_id=record.job_id,
    app_id=record.app_id,
    status=record.status,
    current_step=record.current_step,
    progress_percentage=record.progress_percentage,
    screens_total=record.screens_total,
    screens_generated=record.screens_generated,
    failed_screens=[FailedScreenView(unit_name=unit.unit_name, error_message=unit.error_message) for unit in record.failed_screens],
    error=record.error,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
  )


# Registered before /{job_id} so "active" is never read as a job id.
@router.get("/active", response_model=list[JobStatusResponse])
async def list_active_jobs(services: Services, subject_id: SubjectId) -> list[JobStatusResponse]:
  """List the caller's app generation jobs that have not finished yet."""
  records = await services.jobs_repo.list_active_jobs(subject_id)
  return [job_status_view(record) for record in records]


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, services: Services, subject_id: SubjectId) -> JobStatusResponse:
  """Fetch the current progress of an app generation job."""
  record = await services.jobs_repo.get_job(job_id)
  # Other owners' jobs read as missing.
  if record is None or record.owner_id != subject_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  return job_status_view(record)
