"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_VALID_TIERS = {"quality", "default", "fast"}
_VALID_CONCEPT_PROVIDERS = {"gemini", "openai"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the AppForge service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  gcp_project_id: str | None
  asset_bucket: str
  asset_object_prefix: str
  gcs_storage_host: str | None
  signed_url_ttl_seconds: int
  fal_api_key: str | None
  fal_base_url: str
  fal_timeout_seconds: int
  concept_provider: str
  concept_model: str
  gemini_api_key: str | None
  openai_api_key: str | None
  openai_base_url: str | None
  default_tier: str
  target_screen_count: int
  device_canvas_url: str | None
  fetch_max_attempts: int
  fetch_base_delay_seconds: float
  fetch_timeout_seconds: int
  stale_job_timeout_seconds: int
  media_job_retention_seconds: int
  task_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("APPFORGE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("APPFORGE_ENV", "development").lower()
  debug = _parse_bool(os.getenv("APPFORGE_DEBUG"))

  log_max_bytes = _positive_int("APPFORGE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("APPFORGE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("APPFORGE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  concept_provider = (os.getenv("APPFORGE_CONCEPT_PROVIDER") or "gemini").strip().lower()
  if concept_provider not in _VALID_CONCEPT_PROVIDERS:
    raise ValueError("APPFORGE_CONCEPT_PROVIDER must be 'gemini' or 'openai'.")
  default_concept_model = "gemini-2.5-flash" if concept_provider == "gemini" else "gpt-4o-mini"

  default_tier = (os.getenv("APPFORGE_DEFAULT_TIER") or "default").strip().lower()
  if default_tier not in _VALID_TIERS:
    raise ValueError("APPFORGE_DEFAULT_TIER must be one of quality, default, fast.")

  # Keep the fan-out bounded; the structure planner is asked for exactly this many screens.
  target_screen_count = int(os.getenv("APPFORGE_TARGET_SCREEN_COUNT", "5"))
  if target_screen_count < 1 or target_screen_count > 8:
    raise ValueError("APPFORGE_TARGET_SCREEN_COUNT must be between 1 and 8.")

  fetch_base_delay_seconds = float(os.getenv("APPFORGE_FETCH_BASE_DELAY_SECONDS", "1.0"))
  if fetch_base_delay_seconds < 0:
    raise ValueError("APPFORGE_FETCH_BASE_DELAY_SECONDS must not be negative.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("APPFORGE_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("APPFORGE_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("APPFORGE_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("APPFORGE_PG_CONNECT_TIMEOUT", "5"),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    asset_bucket=os.getenv("APPFORGE_ASSET_BUCKET", "appforge-assets"),
    asset_object_prefix=(os.getenv("APPFORGE_ASSET_OBJECT_PREFIX") or "assets").strip().strip("/"),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    signed_url_ttl_seconds=_positive_int("APPFORGE_SIGNED_URL_TTL_SECONDS", "3600"),
    fal_api_key=_optional_str(os.getenv("FAL_KEY")),
    fal_base_url=(os.getenv("APPFORGE_FAL_BASE_URL") or "https://fal.run").strip().rstrip("/"),
    fal_timeout_seconds=_positive_int("APPFORGE_FAL_TIMEOUT_SECONDS", "300"),
    concept_provider=concept_provider,
    concept_model=(os.getenv("APPFORGE_CONCEPT_MODEL") or default_concept_model).strip(),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_base_url=_optional_str(os.getenv("APPFORGE_OPENAI_BASE_URL")),
    default_tier=default_tier,
    target_screen_count=target_screen_count,
    device_canvas_url=_optional_str(os.getenv("APPFORGE_DEVICE_CANVAS_URL")),
    fetch_max_attempts=_positive_int("APPFORGE_FETCH_MAX_ATTEMPTS", "3"),
    fetch_base_delay_seconds=fetch_base_delay_seconds,
    fetch_timeout_seconds=_positive_int("APPFORGE_FETCH_TIMEOUT_SECONDS", "60"),
    stale_job_timeout_seconds=_positive_int("APPFORGE_STALE_JOB_TIMEOUT_SECONDS", "360"),
    media_job_retention_seconds=_positive_int("APPFORGE_MEDIA_JOB_RETENTION_SECONDS", "86400"),
    task_secret=_optional_str(os.getenv("APPFORGE_TASK_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  debug = _parse_bool(os.getenv("APPFORGE_DEBUG"))
  pg_connect_timeout = _positive_int("APPFORGE_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("APPFORGE_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
