"""Schema package exports."""

from .sql import App, AppConcept, AppGenerationJob, AppScreen, ConceptGenerationJob, MediaGenerationJob

__all__ = ["App", "AppConcept", "AppGenerationJob", "AppScreen", "ConceptGenerationJob", "MediaGenerationJob"]
