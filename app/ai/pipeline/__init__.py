"""Pipeline contracts."""

from app.ai.pipeline.contracts import AppGenerationRequest, ConceptDescriptor, GeneratedAsset, GenerationAttemptResult, ScreenPlan, StructurePlan

__all__ = ["AppGenerationRequest", "ConceptDescriptor", "GeneratedAsset", "GenerationAttemptResult", "ScreenPlan", "StructurePlan"]
