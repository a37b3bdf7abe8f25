"""Fan-out/fan-in executor for the app generation pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from app.ai.errors import StructuralFailure, UnitFailure, describe_exception
from app.ai.fetcher import RetryableFetcher
from app.ai.model_routes import Operation
from app.ai.pipeline.contracts import AppGenerationRequest, ConceptDescriptor, ScreenPlan, StructurePlan
from app.ai.providers.base import ConceptProvider
from app.ai.router import ModelRouter, raise_for_result
from app.ai.utils.artifacts import extension_for, resolve_screen_dimensions
from app.jobs.models import FailedUnit
from app.jobs.progress import DEFAULT_BUDGET, Phase, PhasePointBudget, ProgressTracker
from app.services.storage_client import ObjectStorage
from app.storage.artifacts_repo import ArtifactsRepository, ScreenRecord
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import generate_screen_id
from app.utils.time import now_iso

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
  """Joined result of both branches."""

  total_successful: int
  total_units: int
  failed_units: list[FailedUnit] = field(default_factory=list)
  icon_storage_id: str | None = None
  unit_storage_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _RunContext:
  job_id: str
  app_id: str
  request: AppGenerationRequest
  concept: ConceptDescriptor
  tracker: ProgressTracker


@dataclass(frozen=True)
class _UnitResult:
  storage_id: str
  asset_url: str


@dataclass(frozen=True)
class _ScreensResult:
  total_units: int
  storage_ids: list[str]
  failed_units: list[FailedUnit]


class StageExecutor:
  """Run concept, then the icon and screens branches concurrently, then join."""

  def __init__(
    self,
    *,
    concept_provider: ConceptProvider,
    router: ModelRouter,
    fetcher: RetryableFetcher,
    storage: ObjectStorage,
    artifacts_repo: ArtifactsRepository,
    jobs_repo: JobsRepository,
    budget: PhasePointBudget = DEFAULT_BUDGET,
    default_canvas_url: str | None = None,
  ) -> None:
    self._concept_provider = concept_provider
    self._router = router
    self._fetcher = fetcher
    self._storage = storage
    self._artifacts_repo = artifacts_repo
    self._jobs_repo = jobs_repo
    self._budget = budget
    self._default_canvas_url = default_canvas_url

  async def run_pipeline(self, job_id: str, request: AppGenerationRequest, *, app_id: str) -> PipelineOutcome:
    """Generate every asset for one job and report what succeeded.

    Raises StructuralFailure when the concept, structure plan, icon or first screen
    cannot be produced. Failures of later screens are collected, never raised.
    """
    tracker = ProgressTracker(job_id, self._jobs_repo, budget=self._budget)

    # Concept first; everything after it depends on the name and style guide.
    concept = await self._plan_concept(request)
    await self._artifacts_repo.update_app(app_id, name=concept.app_name, subtitle=concept.app_subtitle or None, description=concept.full_description, category=concept.app_category or None, style_guide=concept.style_guide or None)
    await tracker.apply_milestone(Phase.CONCEPT)
    logger.info("Job %s concept ready: %s (%s)", job_id, concept.app_name, concept.app_category)

    ctx = _RunContext(job_id=job_id, app_id=app_id, request=request, concept=concept, tracker=tracker)
    return await self._fan_out(ctx, icon_storage_id=None)

  async def run_from_concept(self, job_id: str, request: AppGenerationRequest, *, app_id: str, concept: ConceptDescriptor, icon_storage_id: str | None = None) -> PipelineOutcome:
    """Generate screens for an app whose concept was planned by an earlier job.

    The concept phase is credited at once. The icon branch only runs when the saved
    concept has no stored icon; otherwise that icon is reused as is.
    """
    tracker = ProgressTracker(job_id, self._jobs_repo, budget=self._budget)
    await tracker.apply_milestone(Phase.CONCEPT)
    logger.info("Job %s starting from saved concept %s", job_id, concept.app_name)

    ctx = _RunContext(job_id=job_id, app_id=app_id, request=request, concept=concept, tracker=tracker)
    return await self._fan_out(ctx, icon_storage_id=icon_storage_id)

  async def _fan_out(self, ctx: _RunContext, *, icon_storage_id: str | None) -> PipelineOutcome:
    icon_branch = self._icon_branch(ctx) if icon_storage_id is None else self._reuse_icon(ctx, icon_storage_id)
    # Let both branches settle before surfacing a failure so no sibling is abandoned mid-write.
    icon_result, screens_result = await asyncio.gather(icon_branch, self._screens_branch(ctx), return_exceptions=True)

    if isinstance(icon_result, BaseException):
      raise icon_result
    if isinstance(screens_result, BaseException):
      raise screens_result

    total_successful = len(screens_result.storage_ids)
    logger.info("Job %s generated %d/%d screens (%d failed)", ctx.job_id, total_successful, screens_result.total_units, len(screens_result.failed_units))
    return PipelineOutcome(total_successful=total_successful, total_units=screens_result.total_units, failed_units=screens_result.failed_units, icon_storage_id=icon_result, unit_storage_ids=screens_result.storage_ids)

  async def _plan_concept(self, request: AppGenerationRequest) -> ConceptDescriptor:
    hints = {"category_hint": request.category_hint, "ui_style": request.ui_style}
    try:
      return await self._concept_provider.plan_concept(request.description, hints)
    except Exception as exc:
      raise StructuralFailure(f"Concept generation failed: {describe_exception(exc)}", stage="concept") from exc

  async def _icon_branch(self, ctx: _RunContext) -> str:
    try:
      result = await self._router.execute(Operation.TEXT_TO_IMAGE, ctx.request.tier, ctx.concept.app_icon_prompt, {"num_images": 1, "output_format": "png"})
      raise_for_result(result, Operation.TEXT_TO_IMAGE, ctx.request.tier)
      asset = await self._fetcher.fetch_asset(result.asset_url)
      storage_id = await self._storage.store(asset.data, asset.content_type or "image/png", extension=extension_for(asset.content_type))
    except Exception as exc:
      raise StructuralFailure(f"Icon generation failed: {describe_exception(exc)}", stage="icon") from exc

    await self._artifacts_repo.update_app(ctx.app_id, icon_storage_id=storage_id)
    await ctx.tracker.apply_milestone(Phase.ICON)
    logger.info("Job %s icon stored as %s via %s", ctx.job_id, storage_id, result.backend_id)
    return storage_id

  async def _reuse_icon(self, ctx: _RunContext, storage_id: str) -> str:
    await ctx.tracker.apply_milestone(Phase.ICON)
    return storage_id

  async def _screens_branch(self, ctx: _RunContext) -> _ScreensResult:
    try:
      plan = await self._concept_provider.plan_structure(ctx.concept, ctx.request.target_screen_count)
    except Exception as exc:
      raise StructuralFailure(f"Structure planning failed: {describe_exception(exc)}", stage="structure") from exc

    # The plan fixes the unit count, which sizes every later progress write.
    screens = plan.screens
    total = len(screens)
    await ctx.tracker.set_screens_total(total)

    canvas_url = ctx.request.canvas_url or self._default_canvas_url
    if not canvas_url:
      raise StructuralFailure("No device canvas is configured for screen generation", stage="first_unit")

    # The first screen is the style reference for every later screen.
    try:
      first = await self._generate_unit(ctx, plan, screens[0], position=0, image_urls=[canvas_url], has_reference=False)
    except UnitFailure as exc:
      raise StructuralFailure(f"First screen generation failed: {exc.message}", stage="first_unit") from exc
    await ctx.tracker.apply_milestone(Phase.FIRST_UNIT)

    # Fan out the remaining screens concurrently.
    remaining = [self._remaining_unit(ctx, plan, screen, index, reference_urls=[first.asset_url, canvas_url]) for index, screen in enumerate(screens[1:])]
    outcomes = await asyncio.gather(*remaining, return_exceptions=True)

    storage_ids = [first.storage_id]
    failed_units: list[FailedUnit] = []
    # Unit failures arrive as FailedUnit values; anything raised here is unexpected.
    for outcome in outcomes:
      if isinstance(outcome, BaseException):
        raise outcome
      if isinstance(outcome, FailedUnit):
        failed_units.append(outcome)
      else:
        storage_ids.append(outcome.storage_id)
    return _ScreensResult(total_units=total, storage_ids=storage_ids, failed_units=failed_units)

  async def _remaining_unit(self, ctx: _RunContext, plan: StructurePlan, screen: ScreenPlan, index: int, *, reference_urls: list[str]) -> _UnitResult | FailedUnit:
    try:
      unit = await self._generate_unit(ctx, plan, screen, position=index + 1, image_urls=reference_urls, has_reference=True)
    except UnitFailure as failure:
      logger.warning("Job %s screen %d (%s) failed: %s", ctx.job_id, index + 2, failure.unit_name, failure.message)
      return FailedUnit(unit_name=failure.unit_name, error_message=failure.message)

    # The screen is already persisted; a lost progress write must not fail it.
    try:
      await ctx.tracker.apply_milestone(Phase.REMAINING_UNITS, unit_index=index)
    except Exception:
      logger.warning("Job %s progress write for screen %d failed", ctx.job_id, index + 2, exc_info=True)
    return unit

  async def _generate_unit(self, ctx: _RunContext, plan: StructurePlan, screen: ScreenPlan, *, position: int, image_urls: list[str], has_reference: bool) -> _UnitResult:
    """Prompt, route, fetch and persist one screen; any failure becomes UnitFailure."""
    try:
      prompt = await self._concept_provider.write_screen_prompt(ctx.concept, plan, screen, has_reference=has_reference)
      result = await self._router.execute(Operation.IMAGE_EDIT, ctx.request.tier, prompt, {"image_urls": image_urls, "num_images": 1, "output_format": "png"})
      raise_for_result(result, Operation.IMAGE_EDIT, ctx.request.tier)

      # Backend URLs expire; copy the bytes into object storage before recording the screen.
      asset = await self._fetcher.fetch_asset(result.asset_url)
      width, height = resolve_screen_dimensions(result.width, result.height, asset.data)
      storage_id = await self._storage.store(asset.data, asset.content_type or "image/png", extension=extension_for(asset.content_type))
      record = ScreenRecord(screen_id=generate_screen_id(), app_id=ctx.app_id, position=position, name=screen.screen_name, storage_id=storage_id, width=width, height=height, size_bytes=len(asset.data), created_at=now_iso())
      await self._artifacts_repo.add_screen(record)
    except Exception as exc:
      raise UnitFailure(screen.screen_name, describe_exception(exc)) from exc

    logger.info("Job %s screen %d (%s) stored via %s", ctx.job_id, position + 1, screen.screen_name, result.backend_id)
    return _UnitResult(storage_id=storage_id, asset_url=result.asset_url)
