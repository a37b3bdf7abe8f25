"""Object storage for generated assets."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Protocol
from urllib.parse import quote, urlparse, urlunparse

from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.utils.ids import generate_storage_id


class ObjectStorage(Protocol):
  """Contract the pipeline uses to persist asset bytes."""

  async def store(self, data: bytes, content_type: str, *, extension: str = "bin") -> str:
    """Persist bytes and return a storage id."""

  async def url_for(self, storage_id: str) -> str:
    """Return a URL a provider or client can read the object from."""


class StorageClient:
  """Thin wrapper over GCS and emulator access for asset upload and URL signing."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.asset_bucket
    self._prefix = settings.asset_object_prefix
    self._signed_url_ttl = timedelta(seconds=settings.signed_url_ttl_seconds)
    self._storage_host = settings.gcs_storage_host
    self._emulator_endpoint: str | None = None
    # Make the emulator endpoint visible to the SDK in local development.
    if self._storage_host:
      self._emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = self._emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": self._emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing, in emulator mode only."""
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def store(self, data: bytes, content_type: str, *, extension: str = "bin") -> str:
    """Upload bytes under a fresh object name and return that name as the storage id."""
    storage_id = f"{self._prefix}/{generate_storage_id(extension)}" if self._prefix else generate_storage_id(extension)
    blob = self._client.bucket(self._bucket_name).blob(storage_id)
    blob.cache_control = "private, max-age=3600"
    await run_in_threadpool(blob.upload_from_string, data, content_type)
    return storage_id

  async def url_for(self, storage_id: str) -> str:
    """Return a readable URL: a direct emulator URL locally, a V4 signed URL otherwise."""
    if self._emulator_endpoint:
      return f"{self._emulator_endpoint}/storage/v1/b/{self._bucket_name}/o/{quote(storage_id, safe='')}?alt=media"
    blob = self._client.bucket(self._bucket_name).blob(storage_id)
    return await run_in_threadpool(blob.generate_signed_url, version="v4", expiration=self._signed_url_ttl, method="GET")


def build_storage_client(settings: Settings) -> StorageClient:
  """Create a storage client with environment-aware credentials."""
  return StorageClient(settings)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Reduce the emulator endpoint to scheme+host+port."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
