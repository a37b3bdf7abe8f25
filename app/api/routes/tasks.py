from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.api.deps import get_services, require_task_secret
from app.api.models import SweepResponse
from app.jobs.maintenance import run_sweep
from app.services.engine import EngineServices

router = APIRouter(prefix="/maintenance", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/sweep", response_model=SweepResponse, status_code=status.HTTP_200_OK)
async def sweep(services: Annotated[EngineServices, Depends(get_services)]) -> SweepResponse:
  """Fail stale jobs of every kind and delete expired media jobs; called by the scheduler."""
  report = await run_sweep(services.jobs_repo, services.media_jobs_repo, services.concepts_repo, settings=services.settings)
  logger.info("Maintenance sweep: %d stale jobs failed, %d stale media jobs failed, %d stale concept jobs failed, %d media jobs deleted", report.failed_jobs, report.failed_media_jobs, report.failed_concept_jobs, report.deleted_media_jobs)
  return SweepResponse(failed_jobs=report.failed_jobs, failed_media_jobs=report.failed_media_jobs, deleted_media_jobs=report.deleted_media_jobs, failed_concept_jobs=report.failed_concept_jobs)
