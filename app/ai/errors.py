"""Generation error types and provider error classification."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

_TRANSIENT_HINTS: tuple[str, ...] = ("rate limit", "quota", "timeout", "timed out", "connection", "network", "service unavailable", "bad gateway", "gateway", "429", "too many requests")

_AUTH_HINTS: tuple[str, ...] = ("api key", "unauthorized", "forbidden", "401", "403")

_MODEL_HINTS: tuple[str, ...] = ("unsupported model", "model not found", "no such model", "model is not available", "not supported")


class GenerationError(Exception):
  """Base class for failures raised by the generation pipeline."""


class StructuralFailure(GenerationError):
  """A required sequential step failed, so the whole job fails."""

  def __init__(self, message: str, *, stage: str | None = None) -> None:
    super().__init__(message)
    self.stage = stage


class UnitFailure(GenerationError):
  """A single fan-out unit failed; siblings keep running."""

  def __init__(self, unit_name: str, message: str) -> None:
    super().__init__(f"{unit_name}: {message}")
    self.unit_name = unit_name
    self.message = message


class FetchExhausted(GenerationError):
  """Every fetch attempt for an asset URL failed."""

  def __init__(self, url: str, attempts: int, last_error: str) -> None:
    super().__init__(f"Failed to fetch {url} after {attempts} attempts: {last_error}")
    self.url = url
    self.attempts = attempts
    self.last_error = last_error


class RouteExhausted(GenerationError):
  """The primary backend and every fallback failed for a route."""

  def __init__(self, operation: str, tier: str, attempted_backends: Sequence[str], last_error: str | None) -> None:
    attempted = ", ".join(attempted_backends) or "none"
    super().__init__(f"All backends failed for {operation}/{tier} (tried {attempted}): {last_error or 'unknown error'}")
    self.operation = operation
    self.tier = tier
    self.attempted_backends = list(attempted_backends)
    self.last_error = last_error


class ProviderError(GenerationError):
  """A backend call failed or returned an unusable payload."""

  def __init__(self, backend_id: str, message: str, *, error_type: str | None = None) -> None:
    super().__init__(f"{backend_id}: {message}")
    self.backend_id = backend_id
    self.message = message
    self.error_type = error_type or classify_error_message(message)


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def classify_error_message(message: str) -> str:
  """Bucket a provider error message into transient, auth, model or unknown."""
  lowered = message.lower()
  if _match_hint(lowered, _AUTH_HINTS):
    return "auth"
  if _match_hint(lowered, _MODEL_HINTS):
    return "model"
  if _match_hint(lowered, _TRANSIENT_HINTS):
    return "transient"
  return "unknown"


def describe_exception(exc: BaseException) -> str:
  """Return a short message for storing on records, never an empty string."""
  message = str(exc).strip()
  if message:
    return message
  return type(exc).__name__
