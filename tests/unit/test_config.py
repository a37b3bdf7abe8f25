from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  for name in ("APPFORGE_DEFAULT_TIER", "APPFORGE_TARGET_SCREEN_COUNT", "APPFORGE_FETCH_MAX_ATTEMPTS", "APPFORGE_STALE_JOB_TIMEOUT_SECONDS", "APPFORGE_FAL_BASE_URL"):
    monkeypatch.delenv(name, raising=False)
  settings = get_settings()
  assert settings.default_tier == "default"
  assert settings.target_screen_count == 5
  assert settings.fetch_max_attempts == 3
  assert settings.stale_job_timeout_seconds == 360
  assert settings.fal_base_url == "https://fal.run"


def test_openai_concept_provider_changes_default_model(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("APPFORGE_CONCEPT_PROVIDER", "openai")
  monkeypatch.delenv("APPFORGE_CONCEPT_MODEL", raising=False)
  assert get_settings().concept_model == "gpt-4o-mini"


@pytest.mark.parametrize(
  ("name", "value"),
  [
    ("APPFORGE_DEFAULT_TIER", "premium"),
    ("APPFORGE_TARGET_SCREEN_COUNT", "9"),
    ("APPFORGE_FETCH_MAX_ATTEMPTS", "0"),
    ("APPFORGE_CONCEPT_PROVIDER", "llama"),
    ("APPFORGE_ALLOWED_ORIGINS", "*"),
  ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError):
    get_settings()
