"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_app_id() -> str:
  """Return a new app artifact identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_screen_id() -> str:
  """Return a new screen identifier."""
  return str(uuid.uuid4())


def generate_concept_id() -> str:
  return str(uuid.uuid4())


def generate_storage_id(extension: str) -> str:
  """Return an object key suffix for a stored asset."""
  suffix = extension.lstrip(".") or "bin"
  return f"{uuid.uuid4().hex}.{suffix}"
