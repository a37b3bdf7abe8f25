"""Gemini concept planner using the google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

from google import genai

from app.ai.providers.base import StructuredConceptProvider

logger = logging.getLogger("app.ai.providers.gemini")


class GeminiConceptProvider(StructuredConceptProvider):
  """Concept planner backed by Gemini JSON mode."""

  def __init__(self, model: str, api_key: str | None) -> None:
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")
    self.name = "gemini"
    self.model = model
    self._client = genai.Client(api_key=api_key)

  async def _generate_json(self, prompt: str, schema: dict[str, Any], *, schema_name: str) -> str:
    # Use the async client to avoid blocking the event loop.
    try:
      response = await _with_backoff(self._client.aio.models.generate_content, model=self.model, contents=prompt, config={"response_mime_type": "application/json", "response_json_schema": schema})
    except Exception as e:
      raise RuntimeError(f"Gemini {schema_name} request failed: {e}") from e

    text = response.text or ""
    logger.debug("Gemini %s response (raw):\n%s", schema_name, text)
    if response.usage_metadata:
      logger.info("Gemini %s usage prompt_tokens=%s completion_tokens=%s", schema_name, response.usage_metadata.prompt_token_count, response.usage_metadata.candidates_token_count)
    if not text.strip():
      raise RuntimeError(f"Gemini returned an empty {schema_name} payload")
    return text


async def _with_backoff(func, *args, **kwargs):
  retries = 3
  base_delay = 1
  for i in range(retries):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      # Only rate limits are retried here; everything else surfaces immediately.
      if "429" in str(e) or "Too Many Requests" in str(e) or "RESOURCE_EXHAUSTED" in str(e):
        if i == retries - 1:
          raise
        delay = base_delay * (2**i) + random.uniform(0, 1)
        logger.warning("Gemini rate limited; retrying in %.1fs (%d/%d)", delay, i + 1, retries)
        await asyncio.sleep(delay)
      else:
        raise
  return await func(*args, **kwargs)
