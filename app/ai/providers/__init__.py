"""Provider implementations and selection."""

from __future__ import annotations

from enum import Enum

from app.ai.providers.base import ConceptProvider, GenerationProvider, StructuredConceptProvider
from app.ai.providers.fal import FalGenerationProvider, build_generation_providers
from app.ai.providers.gemini import GeminiConceptProvider
from app.ai.providers.openai_compat import OpenAICompatibleConceptProvider
from app.config import Settings


class ConceptProviderMode(str, Enum):
  """Supported concept planner backends."""

  GEMINI = "gemini"
  OPENAI = "openai"


def build_concept_provider(settings: Settings) -> ConceptProvider:
  """Return the concept planner selected by settings."""
  try:
    mode = ConceptProviderMode(settings.concept_provider)
  except ValueError as exc:
    raise ValueError(f"Unsupported concept provider '{settings.concept_provider}'.") from exc

  if mode is ConceptProviderMode.GEMINI:
    return GeminiConceptProvider(settings.concept_model, api_key=settings.gemini_api_key)
  return OpenAICompatibleConceptProvider(settings.concept_model, api_key=settings.openai_api_key, base_url=settings.openai_base_url)


__all__ = [
  "ConceptProvider",
  "ConceptProviderMode",
  "FalGenerationProvider",
  "GenerationProvider",
  "GeminiConceptProvider",
  "OpenAICompatibleConceptProvider",
  "StructuredConceptProvider",
  "build_concept_provider",
  "build_generation_providers",
]
