import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.database import Base, get_db_engine
from app.core.logging import _initialize_logging
from app.services.engine import build_services
from app.services.storage_client import StorageClient


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, storage, tables and engine services for the process."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified.")

  # Tests install their own services before startup.
  if getattr(app.state, "services", None) is None:
    logger.info("Connecting to database %s", _redact_dsn(settings.pg_dsn))
    await _ensure_tables(logger=logger)
    services = build_services(settings)
    try:
      if isinstance(services.storage, StorageClient):
        await services.storage.ensure_bucket()
      logger.info("Asset bucket ensured: %s", settings.asset_bucket)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to ensure asset bucket at startup: %s", exc)
    app.state.services = services

  try:
    yield
  finally:
    await app.state.services.shutdown()
    logger.info("Shutdown complete.")


async def _ensure_tables(*, logger: logging.Logger) -> None:
  """Create missing tables; existing tables are left untouched."""
  from app.schema import sql as _tables  # noqa: F401

  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("Database connection is not configured (APPFORGE_PG_DSN is missing).")
  async with engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
  logger.info("Database tables ensured: %s", ", ".join(sorted(Base.metadata.tables)))


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
