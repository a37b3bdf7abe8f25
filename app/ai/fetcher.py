"""Retrying download of generated assets from provider URLs."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import unquote_to_bytes

import httpx

from app.ai.errors import FetchExhausted
from app.config import Settings

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
  """Attempt budget and exponential backoff for asset downloads.

  Attempt ``k`` (1-indexed) that fails is followed by ``delay_for(k)`` seconds of sleep,
  except after the final attempt.
  """

  max_attempts: int = 3
  base_delay: float = 1.0
  sleep: SleepFunc = field(default=asyncio.sleep, compare=False, repr=False)

  def __post_init__(self) -> None:
    if self.max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")
    if self.base_delay < 0:
      raise ValueError("base_delay must not be negative.")

  def delay_for(self, attempt: int) -> float:
    """Return the sleep after failed attempt number ``attempt``."""
    return float(2**attempt) * self.base_delay


@dataclass(frozen=True)
class FetchedAsset:
  data: bytes
  content_type: str | None


class RetryableFetcher:
  """Download asset bytes, retrying transport errors and non-2xx responses."""

  def __init__(self, *, policy: RetryPolicy | None = None, client: httpx.AsyncClient | None = None, timeout_seconds: float = 60.0) -> None:
    self._policy = policy or RetryPolicy()
    self._client = client
    self._timeout_seconds = timeout_seconds

  @property
  def policy(self) -> RetryPolicy:
    return self._policy

  async def fetch(self, url: str, max_attempts: int | None = None) -> bytes:
    """Return the body of ``url`` or raise FetchExhausted."""
    asset = await self.fetch_asset(url, max_attempts=max_attempts)
    return asset.data

  async def fetch_asset(self, url: str, max_attempts: int | None = None) -> FetchedAsset:
    """Return the body and content type of ``url`` or raise FetchExhausted."""
    attempts = max_attempts if max_attempts is not None else self._policy.max_attempts
    if attempts < 1:
      raise ValueError("max_attempts must be at least 1.")

    # Sync-mode backends return the asset inline as a data URI.
    if url.startswith("data:"):
      return _decode_data_uri(url)

    if self._client is not None:
      return await self._fetch_with(self._client, url, attempts)

    async with httpx.AsyncClient(timeout=self._timeout_seconds, follow_redirects=True) as client:
      return await self._fetch_with(client, url, attempts)

  async def _fetch_with(self, client: httpx.AsyncClient, url: str, attempts: int) -> FetchedAsset:
    last_error = "no attempt made"
    for attempt in range(1, attempts + 1):
      try:
        response = await client.get(url)
        if response.is_success:
          if attempt > 1:
            logger.info("Fetched %s on attempt %d/%d", url, attempt, attempts)
          return FetchedAsset(data=response.content, content_type=response.headers.get("content-type"))
        last_error = f"HTTP {response.status_code}"
      except httpx.TransportError as exc:
        last_error = f"{type(exc).__name__}: {exc}"

      # No sleep after the final attempt.
      if attempt < attempts:
        delay = self._policy.delay_for(attempt)
        logger.warning("Fetch attempt %d/%d for %s failed (%s); retrying in %.1fs", attempt, attempts, url, last_error, delay)
        await self._policy.sleep(delay)

    logger.error("Fetch exhausted for %s after %d attempts: %s", url, attempts, last_error)
    raise FetchExhausted(url, attempts, last_error)


def _decode_data_uri(url: str) -> FetchedAsset:
  header, sep, payload = url.partition(",")
  if not sep:
    raise FetchExhausted(url[:40], 1, "malformed data URI")
  content_type = header.removeprefix("data:").split(";", 1)[0] or None
  try:
    if header.endswith(";base64"):
      data = base64.b64decode(payload, validate=True)
    else:
      data = unquote_to_bytes(payload)
  except binascii.Error as exc:
    raise FetchExhausted(url[:40], 1, f"invalid base64 payload: {exc}") from exc
  return FetchedAsset(data=data, content_type=content_type)


def build_fetcher(settings: Settings, *, client: httpx.AsyncClient | None = None) -> RetryableFetcher:
  """Create the fetcher configured from settings."""
  policy = RetryPolicy(max_attempts=settings.fetch_max_attempts, base_delay=settings.fetch_base_delay_seconds)
  return RetryableFetcher(policy=policy, client=client, timeout_seconds=settings.fetch_timeout_seconds)
