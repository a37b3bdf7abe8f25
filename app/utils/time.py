"""Timestamp helpers; records store ISO-8601 UTC strings."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def now_iso() -> str:
  return to_iso(datetime.now(UTC))


def to_iso(moment: datetime) -> str:
  return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_before(moment: datetime, seconds: int) -> str:
  """ISO string for ``seconds`` before ``moment``; used as a staleness cutoff."""
  return to_iso(moment - timedelta(seconds=seconds))
