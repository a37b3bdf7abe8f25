"""Base interfaces for generation backends and concept planners."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from app.ai import prompts
from app.ai.model_routes import Operation
from app.ai.pipeline.contracts import ConceptDescriptor, GeneratedAsset, ImprovedDescription, ScreenPlan, StructurePlan

ModelT = TypeVar("ModelT", bound=BaseModel)


class GenerationProvider(ABC):
  """One image or video backend addressed by a stable backend id."""

  backend_id: str

  @abstractmethod
  async def generate(self, kind: Operation, prompt: str, params: Mapping[str, Any]) -> GeneratedAsset:
    """Run one generation call or raise ProviderError."""


class ConceptProvider(ABC):
  """Language-model planner for concepts, screen structure and prompts."""

  name: str

  @abstractmethod
  async def plan_concept(self, description: str, hints: Mapping[str, str | None]) -> ConceptDescriptor:
    """Turn a free-text description into an app concept."""

  @abstractmethod
  async def plan_structure(self, concept: ConceptDescriptor, target_unit_count: int) -> StructurePlan:
    """Plan the ordered screens for a concept."""

  @abstractmethod
  async def write_screen_prompt(self, concept: ConceptDescriptor, plan: StructurePlan, screen: ScreenPlan, *, has_reference: bool) -> str:
    """Write the canvas-edit prompt for one screen."""

  @abstractmethod
  async def write_cover_image_prompt(self, concept: ConceptDescriptor, *, user_feedback: str | None = None) -> str:
    """Write a prompt for a landscape cover image."""

  @abstractmethod
  async def write_cover_video_prompt(self, concept: ConceptDescriptor) -> str:
    """Write a motion prompt for animating the cover image."""

  @abstractmethod
  async def improve_description(self, draft: str, ui_style_hint: str | None = None) -> ImprovedDescription:
    """Rewrite a rough app description into a generation-ready one."""


class StructuredConceptProvider(ConceptProvider):
  """ConceptProvider built on a single structured-JSON completion primitive."""

  @abstractmethod
  async def _generate_json(self, prompt: str, schema: dict[str, Any], *, schema_name: str) -> str:
    """Return raw JSON text that should conform to ``schema``."""

  async def _generate_model(self, prompt: str, model_type: type[ModelT]) -> ModelT:
    logger = logging.getLogger("app.ai.providers.base")
    raw = await self._generate_json(prompt, model_type.model_json_schema(), schema_name=model_type.__name__)
    try:
      return model_type.model_validate_json(strip_json_fences(raw))
    except ValidationError as exc:
      logger.warning("%s returned invalid %s payload: %s", self.name, model_type.__name__, exc.error_count())
      raise RuntimeError(f"{self.name} returned invalid {model_type.__name__}: {exc}") from exc

  async def plan_concept(self, description: str, hints: Mapping[str, str | None]) -> ConceptDescriptor:
    prompt = prompts.render_concept_prompt(description, category_hint=hints.get("category_hint"), ui_style=hints.get("ui_style"))
    return await self._generate_model(prompt, ConceptDescriptor)

  async def plan_structure(self, concept: ConceptDescriptor, target_unit_count: int) -> StructurePlan:
    prompt = prompts.render_structure_prompt(concept, target_unit_count)
    plan = await self._generate_model(prompt, StructurePlan)
    # Planners occasionally overshoot the requested count; the fan-out is sized by the request.
    if len(plan.screens) > target_unit_count:
      plan = plan.model_copy(update={"screens": plan.screens[:target_unit_count]})
    return plan

  async def write_screen_prompt(self, concept: ConceptDescriptor, plan: StructurePlan, screen: ScreenPlan, *, has_reference: bool) -> str:
    prompt = prompts.render_screen_prompt_request(concept, plan, screen, has_reference=has_reference)
    result = await self._generate_model(prompt, prompts.CanvasEditPrompt)
    return result.canvas_edit_prompt

  async def write_cover_image_prompt(self, concept: ConceptDescriptor, *, user_feedback: str | None = None) -> str:
    prompt = prompts.render_cover_image_prompt_request(concept, user_feedback=user_feedback)
    result = await self._generate_model(prompt, prompts.MediaPrompt)
    return result.prompt

  async def write_cover_video_prompt(self, concept: ConceptDescriptor) -> str:
    prompt = prompts.render_cover_video_prompt_request(concept)
    result = await self._generate_model(prompt, prompts.MediaPrompt)
    return result.prompt

  async def improve_description(self, draft: str, ui_style_hint: str | None = None) -> ImprovedDescription:
    prompt = prompts.render_improve_description_prompt(draft, ui_style_hint)
    return await self._generate_model(prompt, ImprovedDescription)


def strip_json_fences(text: str) -> str:
  """Remove a surrounding ```json fence when a model adds one."""
  cleaned = text.strip()
  if cleaned.startswith("```"):
    cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
    if cleaned.rstrip().endswith("```"):
      cleaned = cleaned.rstrip()[:-3]
  return cleaned.strip()
