"""Shared FastAPI dependencies for caller identity and engine services."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from app.config import Settings, get_settings
from app.services.engine import EngineServices

logger = logging.getLogger(__name__)


def get_services(request: Request) -> EngineServices:
  """Return the services built at startup."""
  services: EngineServices | None = getattr(request.app.state, "services", None)
  if services is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Generation services are not available.")
  return services


async def get_subject_id(x_subject_id: Annotated[str | None, Header()] = None) -> str:
  """Caller identity as forwarded by the authenticating gateway."""
  subject = (x_subject_id or "").strip()
  if not subject:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Subject-Id header.")
  return subject


async def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)],
  authorization: Annotated[str | None, Header()] = None,
  x_appforge_task_secret: Annotated[str | None, Header()] = None,
) -> None:
  """Authenticate scheduler calls to internal task endpoints."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest(x_appforge_task_secret or "", settings.task_secret)
  bearer_valid = secrets.compare_digest(authorization or "", f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
