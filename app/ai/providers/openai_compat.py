"""Concept planner for any OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai import AsyncOpenAI

from app.ai.providers.base import StructuredConceptProvider

logger = logging.getLogger("app.ai.providers.openai_compat")


class OpenAICompatibleConceptProvider(StructuredConceptProvider):
  """Concept planner using the openai SDK, optionally pointed at another base URL."""

  def __init__(self, model: str, api_key: str | None, base_url: str | None = None) -> None:
    if not api_key:
      raise ValueError("OPENAI_API_KEY environment variable is required")
    self.name = "openai"
    self.model = model
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

  async def _generate_json(self, prompt: str, schema: dict[str, Any], *, schema_name: str) -> str:
    # Repeat the schema in the system message for endpoints that ignore response_format.
    schema_str = json.dumps(schema, indent=2)
    system_msg = f"You output valid JSON only.\nThe JSON MUST follow this schema:\n```json\n{schema_str}\n```\nNo markdown formatting."

    response = await self._client.chat.completions.create(
      model=self.model,
      messages=[{"role": "system", "content": system_msg}, {"role": "user", "content": prompt}],
      response_format={"type": "json_schema", "json_schema": {"name": schema_name, "schema": schema}},
    )

    content = response.choices[0].message.content or ""
    logger.debug("OpenAI-compatible %s response (raw):\n%s", schema_name, content)
    if response.usage:
      logger.info("OpenAI-compatible %s usage prompt_tokens=%s completion_tokens=%s", schema_name, response.usage.prompt_tokens, response.usage.completion_tokens)
    if not content.strip():
      raise RuntimeError(f"{self.model} returned an empty {schema_name} payload")
    return content
