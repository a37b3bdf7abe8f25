from __future__ import annotations

import pytest

from app.ai.utils.cost import DEFAULT_COST, HAILUO_SPEED, IMAGE_SPEED, KLING_SPEED, SEEDANCE_SPEED, estimate, normalize_duration, normalize_resolution, resolution_from_dimensions


@pytest.mark.parametrize("duration", [5, 5.0, "5", "5s", " 5S ", None])
def test_duration_spellings_price_identically(duration: object) -> None:
  assert estimate("kling-text-to-video", duration).cost == pytest.approx(0.35)
  assert estimate("seedance-text-to-video", duration, "720p").cost == pytest.approx(0.18)


def test_kling_prices_by_clip_length() -> None:
  assert estimate("kling-image-to-video", 5).cost == pytest.approx(0.35)
  assert estimate("kling-image-to-video", 10).cost == pytest.approx(0.70)
  assert estimate("kling-image-to-video", 10).speed_band == KLING_SPEED
  assert estimate("kling-image-to-video", 5.04).cost == pytest.approx(0.35)
  assert estimate("kling-image-to-video", 9.97).cost == pytest.approx(0.70)


def test_per_second_backends() -> None:
  assert estimate("lucy-image-to-video", 5).cost == pytest.approx(0.40)
  assert estimate("hailuo-image-to-video", "6").cost == pytest.approx(0.102)
  assert estimate("hailuo-image-to-video", "6").speed_band == HAILUO_SPEED


def test_seedance_table_and_formula() -> None:
  assert estimate("seedance-text-to-video", 3, "480p").cost == pytest.approx(0.11)
  assert estimate("seedance-text-to-video", 5, "1080p").cost == pytest.approx(0.25)
  assert estimate("seedance-text-to-video", 10, 720).cost == pytest.approx(0.36)
  assert estimate("seedance-text-to-video", 5.04, "720p").cost == pytest.approx(0.18)
  # Off-table combinations use base price scaled by length and resolution.
  assert estimate("seedance-text-to-video", 8, "1080p").cost == pytest.approx(DEFAULT_COST * 8 / 5 * 1.4)


def test_image_backends_ignore_duration_and_resolution() -> None:
  assert estimate("flux-schnell", 99, "1080p").cost == pytest.approx(0.025)
  assert estimate("seedream-v4-text-to-image", None).cost == pytest.approx(0.03)
  assert estimate("gemini-flash-image", None).speed_band == IMAGE_SPEED


def test_unknown_backend_falls_back_to_default_price() -> None:
  result = estimate("mystery-model", 5)
  assert result.cost == pytest.approx(DEFAULT_COST)
  assert result.speed_band == SEEDANCE_SPEED


def test_estimates_are_deterministic() -> None:
  assert estimate("lucy-image-to-video", 3) == estimate("lucy-image-to-video", "3s")


def test_resolution_helpers() -> None:
  assert normalize_resolution("1080P") == "1080p"
  assert normalize_resolution(700) == "720p"
  assert normalize_resolution(None) is None
  assert resolution_from_dimensions(1280, 720) == "720p"
  assert resolution_from_dimensions(1920, 1080) == "1080p"
  assert resolution_from_dimensions(None, None) is None


def test_invalid_durations_are_rejected() -> None:
  with pytest.raises(ValueError):
    normalize_duration("soon")
  with pytest.raises(ValueError):
    normalize_duration(-1)
